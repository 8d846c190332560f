#!/usr/bin/env python3

from .config import (
  StackConfig,
  StackConfigError,
  build_settings,
  get_default_aws_region,
  load_stack_config,
)
from .networking import MonitoringNetwork
from .secrets import PasswordPolicy, GeneratedSecret
from .instance import MonitoringInstance
from .domains import Domains
from .stack import MonitoringStack, create_provider, stack_outputs
