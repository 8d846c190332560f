#!/usr/bin/env python3

"""Pulumi program: a single EC2 host running Bugsink and Uptime Kuma behind Caddy,
in its own VPC, with DNS records in an existing Route53 hosted zone.

All configuration is validated before anything is declared; see monitoring/config.py
for where values come from.
"""

from typing import Any, Dict, Optional

import pulumi
from pulumi import ResourceOptions

from monitoring import (
  StackConfigError,
  MonitoringStack,
  create_provider,
  stack_outputs,
  build_settings,
  get_default_aws_region,
  load_stack_config,
)
from monitoring.config import REQUIRED_SETTINGS

OPTIONAL_KEYS = [
    'aws_account',
    'instance_class',
    'instance_size',
    'ebs_size',
    'ami_name',
    'ami_owner',
    'ami_id',
    'vpc_cidr',
    'availability_zone',
    'owner',
  ]

config = pulumi.Config()
aws_config = pulumi.Config('aws')

# Pulumi stack config takes priority over Dynaconf settings
overrides: Dict[str, Any] = {}
for key in [ name.lower() for name, _ in REQUIRED_SETTINGS ] + OPTIONAL_KEYS:
  value = config.get(key)
  if not value is None:
    overrides[key] = value

settings = build_settings()

default_region: Optional[str] = aws_config.get('region')
if default_region is None:
  default_region = get_default_aws_region(aws_config.get('profile') or settings.get('AWS_PROFILE', None))

try:
  cfg = load_stack_config(settings, overrides=overrides, default_region=default_region)
except StackConfigError as e:
  for problem in e.problems:
    pulumi.log.error(problem)
  raise

provider = create_provider(cfg)

stack = MonitoringStack(
    'monitoring',
    cfg,
    opts=ResourceOptions(providers=[ provider ]),
  )

for export_name, value in stack_outputs(cfg, stack).items():
  pulumi.export(export_name, value)
