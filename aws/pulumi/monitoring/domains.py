#!/usr/bin/env python3

from typing import Optional

import pulumi
from pulumi import ResourceOptions, Output
from pulumi_aws import ec2, route53

from pulumi_util import TTL_MINUTE

DEFAULT_RECORD_TTL: int = TTL_MINUTE * 30


class Domains(pulumi.ComponentResource):
  """A records that route {bugsink}.{domain} and {uptime}.{domain} to the
  monitoring instance's Elastic IP.

  The hosted zone is not managed by this stack; it is referenced by id. Both
  records target the same Elastic IP output, so an address change updates both
  in the same deployment.
  """

  bugsink_fqdn: str
  uptime_fqdn: str
  bugsink_record: route53.Record
  uptime_record: route53.Record
  bugsink_record_comment: Output[str]
  uptime_record_comment: Output[str]

  def __init__(
        self,
        name: str,
        instance: ec2.Instance,
        eip: ec2.Eip,
        hosted_zone_id: str,
        domain_name: str,
        bugsink_subdomain: str,
        uptime_subdomain: str,
        eip_association: Optional[ec2.EipAssociation]=None,
        ttl: int=DEFAULT_RECORD_TTL,
        opts: Optional[ResourceOptions]=None,
      ):
    super().__init__('monitoring:index:Domains', name, None, opts)

    self.bugsink_fqdn = f"{bugsink_subdomain}.{domain_name}"
    self.uptime_fqdn = f"{uptime_subdomain}.{domain_name}"

    depends_on = [ eip ] if eip_association is None else [ eip, eip_association ]

    def a_record(record_name: str, fqdn: str) -> route53.Record:
      return route53.Record(
          record_name,
          opts=ResourceOptions(parent=self, depends_on=depends_on),
          name=fqdn,
          records=[ eip.public_ip ],
          ttl=ttl,
          type='A',
          zone_id=hosted_zone_id,
        )

    def comment(fqdn: str) -> Output[str]:
      return instance.id.apply(lambda instance_id: f"A record for {fqdn} pointing to EC2 instance {instance_id}")

    self.bugsink_record = a_record(f"{name}-bugsink-record", self.bugsink_fqdn)
    self.bugsink_record_comment = comment(self.bugsink_fqdn)

    self.uptime_record = a_record(f"{name}-uptime-record", self.uptime_fqdn)
    self.uptime_record_comment = comment(self.uptime_fqdn)

    self.register_outputs(dict(
        bugsink_fqdn=self.bugsink_fqdn,
        uptime_fqdn=self.uptime_fqdn,
        bugsink_record_comment=self.bugsink_record_comment,
        uptime_record_comment=self.uptime_record_comment,
      ))
