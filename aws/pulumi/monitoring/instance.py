#!/usr/bin/env python3

from typing import Dict, List, Optional

import json

import pulumi
from pulumi import ResourceOptions, Output
from pulumi_aws import ec2, iam

from pulumi_util import TTL_HOUR, jsonify_promise, list_of_promises, with_tags

from .config import StackConfig
from .networking import MonitoringNetwork
from .secrets import CREDENTIALS_POLICY, SIGNING_KEY_POLICY, GeneratedSecret
from .user_data import boot_script

CREDENTIALS_USERNAME = 'admin'
SSM_MANAGED_POLICY_ARN = 'arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore'

# a policy that allows EC2 to assume our role on behalf of the instance
ec2_assume_role_policy_obj = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Action": "sts:AssumeRole",
            "Principal": {
               "Service": "ec2.amazonaws.com",
            },
            "Effect": "Allow",
            "Sid": "",
          },
      ],
  }

def gen_secret_read_policy_obj(secret_arns: List[str]) -> Dict:
  return {
      "Version": "2012-10-17",
      "Statement": [
          {
              "Action": [
                  "secretsmanager:GetSecretValue",
                  "secretsmanager:DescribeSecret",
                ],
              "Effect": "Allow",
              "Resource": sorted(secret_arns),
            },
        ],
    }


class MonitoringInstance(pulumi.ComponentResource):
  """An EC2 instance running Bugsink and Uptime Kuma behind a Caddy reverse proxy
  with automatic TLS, plus the secrets, role, security group and Elastic IP it needs.
  """

  credentials_secret: GeneratedSecret
  signing_key_secret: GeneratedSecret
  role: iam.Role
  instance_profile: iam.InstanceProfile
  security_group: ec2.SecurityGroup
  instance: ec2.Instance
  eip: ec2.Eip
  eip_association: ec2.EipAssociation

  def __init__(
        self,
        name: str,
        network: MonitoringNetwork,
        cfg: StackConfig,
        opts: Optional[ResourceOptions]=None,
      ):
    super().__init__('monitoring:index:MonitoringInstance', name, None, opts)
    tags = cfg.default_tags

    if cfg.ami_id is None:
      # Resolved at deploy time, so the exact image can drift between deployments
      # if the name pattern matches a newer build. Set AMI_ID to pin it.
      ami = ec2.get_ami_output(
          most_recent=True,
          filters=[
              ec2.GetAmiFilterArgs(name="name", values=[ cfg.ami_name ]),
              ec2.GetAmiFilterArgs(name="virtualization-type", values=[ "hvm" ]),
            ],
          owners=[ cfg.ami_owner ],
          opts=pulumi.InvokeOptions(parent=self),
        )
      ami_id: Output[str] = ami.id
    else:
      ami_id = Output.from_input(cfg.ami_id)

    self.credentials_secret = GeneratedSecret(
        f"{name}-bugsink-credentials",
        description="BugSink database and application secrets",
        policy=CREDENTIALS_POLICY,
        template=dict(username=CREDENTIALS_USERNAME),
        generate_key='password',
        tags=tags,
        opts=ResourceOptions(parent=self),
      )

    self.signing_key_secret = GeneratedSecret(
        f"{name}-django-secret-key",
        description="Django SECRET_KEY for BugSink",
        policy=SIGNING_KEY_POLICY,
        tags=tags,
        opts=ResourceOptions(parent=self),
      )

    self.role = iam.Role(
        f"{name}-role",
        opts=ResourceOptions(parent=self),
        assume_role_policy=json.dumps(ec2_assume_role_policy_obj, sort_keys=True),
        description=f"Monitoring EC2 instance role in stack {cfg.stack_name}",
        max_session_duration=12*TTL_HOUR,
        tags=tags,
      )

    # keep track of things we want to finish doing before we launch the EC2 instance
    instance_dependencies: List[pulumi.Resource] = []

    # Allow SSM session management
    ssm_attached_policy = iam.RolePolicyAttachment(
        f"{name}-attached-policy-ssm-managed",
        opts=ResourceOptions(parent=self),
        role=self.role.name,
        policy_arn=SSM_MANAGED_POLICY_ARN,
      )
    instance_dependencies.append(ssm_attached_policy)

    # Allow reading (only) our two secrets
    secret_read_policy = iam.RolePolicy(
        f"{name}-secret-read-policy",
        opts=ResourceOptions(parent=self),
        role=self.role.id,
        policy=jsonify_promise(
            list_of_promises([ self.credentials_secret.arn, self.signing_key_secret.arn ]).apply(
                gen_secret_read_policy_obj
              )
          ),
      )
    instance_dependencies.append(secret_read_policy)

    self.instance_profile = iam.InstanceProfile(
        f"{name}-instance-profile",
        opts=ResourceOptions(parent=self),
        role=self.role.name,
        tags=tags,
      )

    user_data = boot_script(
        cfg.aws_region,
        self.credentials_secret.arn,
        self.signing_key_secret.arn,
        cfg.bugsink_fqdn,
        cfg.uptime_fqdn,
      )

    # HTTP must be open to the world for Let's Encrypt HTTP-01 challenges;
    # HTTPS is the public entry point for Bugsink and Uptime Kuma.
    self.security_group = ec2.SecurityGroup(
        f"{name}-web-sg",
        opts=ResourceOptions(parent=self),
        description="Allow inbound HTTP/HTTPS access for BugSink and uptime-kuma",
        egress=[
            ec2.SecurityGroupEgressArgs(
                cidr_blocks=[ '0.0.0.0/0' ],
                description="Allow all outbound traffic",
                protocol='-1',
                from_port=0,
                to_port=0,
              ),
          ],
        ingress=[
            ec2.SecurityGroupIngressArgs(
                cidr_blocks=[ '0.0.0.0/0' ],
                description="Lets Encrypt HTTP-01 Challenge requires inbound 80 on all IPv4 addresses",
                protocol='tcp',
                from_port=80,
                to_port=80,
              ),
            ec2.SecurityGroupIngressArgs(
                cidr_blocks=[ '0.0.0.0/0' ],
                description="HTTPS Public Access to BugSink and uptime-kuma",
                protocol='tcp',
                from_port=443,
                to_port=443,
              ),
          ],
        vpc_id=network.vpc.id,
        tags=tags,
      )

    self.instance = ec2.Instance(
        f"{name}-instance",
        opts=ResourceOptions(parent=self, depends_on=instance_dependencies),
        ami=ami_id,
        instance_type=cfg.instance_type,
        iam_instance_profile=self.instance_profile.name,
        associate_public_ip_address=True,
        subnet_id=network.public_subnet_ids[0],
        vpc_security_group_ids=[ self.security_group.id ],
        root_block_device=ec2.InstanceRootBlockDeviceArgs(
            volume_size=cfg.ebs_size,
            volume_type='gp3',
          ),
        user_data=user_data,
        tags=with_tags(tags, Name=f"{cfg.stack_name}-monitoring"),
        volume_tags=with_tags(tags, Name=f"{cfg.stack_name}-monitoring"),
      )

    # The Elastic IP keeps the address stable if the instance is stopped, started or
    # replaced, so DNS entries and caches stay valid.
    self.eip = ec2.Eip(
        f"{name}-eip",
        opts=ResourceOptions(parent=self),
        domain='vpc',
        tags=with_tags(tags, Name=f"{cfg.stack_name}-monitoring"),
      )

    self.eip_association = ec2.EipAssociation(
        f"{name}-eip-assoc",
        opts=ResourceOptions(parent=self),
        instance_id=self.instance.id,
        allocation_id=self.eip.id,
      )

    pulumi.log.info(f"Monitoring instance {cfg.instance_type} with {cfg.ebs_size} GiB root volume", resource=self)

    self.register_outputs(dict(
        instance_id=self.instance.id,
        public_ip=self.eip.public_ip,
        credentials_secret_arn=self.credentials_secret.arn,
        signing_key_secret_arn=self.signing_key_secret.arn,
      ))
