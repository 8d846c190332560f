#!/usr/bin/env python3

from typing import Any, Dict, Optional

import pulumi
from pulumi import ResourceOptions
import pulumi_aws as aws

from .config import StackConfig
from .domains import Domains
from .instance import MonitoringInstance
from .networking import MonitoringNetwork


class MonitoringStack(pulumi.ComponentResource):
  """Network, monitoring instance with its Elastic IP, and DNS records.

  Declaration order is network -> instance -> address -> DNS; Pulumi derives the
  rest of the ordering from the outputs passed between the pieces.
  """

  network: MonitoringNetwork
  monitoring: MonitoringInstance
  domains: Domains

  def __init__(self, name: str, cfg: StackConfig, opts: Optional[ResourceOptions]=None):
    super().__init__('monitoring:index:MonitoringStack', name, None, opts)
    self.cfg = cfg

    self.network = MonitoringNetwork(
        f"{name}-network",
        vpc_cidr=cfg.vpc_cidr,
        availability_zone=cfg.availability_zone,
        tags=cfg.default_tags,
        opts=ResourceOptions(parent=self),
      )

    self.monitoring = MonitoringInstance(
        f"{name}-instance",
        network=self.network,
        cfg=cfg,
        opts=ResourceOptions(parent=self),
      )

    self.domains = Domains(
        f"{name}-domains",
        instance=self.monitoring.instance,
        eip=self.monitoring.eip,
        eip_association=self.monitoring.eip_association,
        hosted_zone_id=cfg.hosted_zone_id,
        domain_name=cfg.domain_name,
        bugsink_subdomain=cfg.bugsink_subdomain,
        uptime_subdomain=cfg.uptime_subdomain,
        opts=ResourceOptions(parent=self),
      )

    self.register_outputs(dict(
        instance_id=self.monitoring.instance.id,
        public_ip=self.monitoring.eip.public_ip,
        bugsink_fqdn=self.domains.bugsink_fqdn,
        uptime_fqdn=self.domains.uptime_fqdn,
      ))


def create_provider(cfg: StackConfig) -> aws.Provider:
  """An explicit provider that pins the region (and, optionally, the account) the stack deploys into."""
  return aws.Provider(
      f"aws-{cfg.aws_region}",
      region=cfg.aws_region,
      allowed_account_ids=None if cfg.aws_account is None else [ cfg.aws_account ],
    )

def stack_outputs(cfg: StackConfig, stack: MonitoringStack) -> Dict[str, Any]:
  """The stack outputs to export, by export name.

  The first three are namespaced by stack name so several deployments can be told apart.
  """
  return {
      f"{cfg.stack_name}-MonitoringInstanceId": stack.monitoring.instance.id,
      f"{cfg.stack_name}-BugsinkDomainName": stack.domains.bugsink_fqdn,
      f"{cfg.stack_name}-UptimeDomainName": stack.domains.uptime_fqdn,
      'instance_id': stack.monitoring.instance.id,
      'public_ip': stack.monitoring.eip.public_ip,
      'bugsink_url': f"https://{cfg.bugsink_fqdn}",
      'uptime_url': f"https://{cfg.uptime_fqdn}",
      'credentials_secret_arn': stack.monitoring.credentials_secret.arn,
      'vpc_id': stack.network.vpc.id,
      'availability_zone': stack.network.public_subnets[0].availability_zone,
    }
