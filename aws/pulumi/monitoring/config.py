#!/usr/bin/env python3

"""Settings and validated stack configuration for the monitoring stack.

Settings are layered, lowest priority first:

  1.  config/default-config.toml
  2.  any other config/*.toml (files starting with '.' last; '*.local.*' files are ignored)
  3.  a .env file in the current directory
  4.  MONITORING_* environment variables
  5.  overrides supplied by the caller (normally the Pulumi stack config)

load_stack_config() turns the merged settings into an immutable StackConfig, or raises
StackConfigError listing every problem found. Nothing is declared to Pulumi until
a StackConfig exists.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple

from dataclasses import dataclass
import ipaddress
import os

import boto3.session
import pulumi
from dynaconf import Dynaconf, ValidationError, Validator
from dynaconf.validator import ValidatorList

project_prefix = "MONITORING"
package_dir = os.path.dirname(os.path.abspath(__file__))
default_config_dir = os.path.join(os.path.dirname(package_dir), 'config')

DEFAULT_ENVIRONMENT = 'development'
DEFAULT_INSTANCE_CLASS = 't3'
DEFAULT_INSTANCE_SIZE = 'small'
DEFAULT_EBS_SIZE = 80
DEFAULT_AMI_NAME = 'ubuntu/images/hvm-ssd-gp3/ubuntu-noble-24.04-amd64-server-20250610'
AMI_OWNER_CANONICAL = '099720109477'  # The publisher of Ubuntu AMI's
DEFAULT_VPC_CIDR = '10.0.0.0/16'
DEFAULT_SUBNET_PREFIXLEN = 20

# (setting name, description) of every value that must be present and non-empty
REQUIRED_SETTINGS: List[Tuple[str, str]] = [
    ('STACK_NAME', 'name of the stack, used to namespace exported outputs'),
    ('HOSTED_ZONE_ID', 'Route53 hosted zone id that holds the domain'),
    ('DOMAIN_NAME', 'root domain name of the hosted zone, e.g. example.com'),
    ('BUGSINK_SUBDOMAIN', 'subdomain label for Bugsink, e.g. bugsink'),
    ('UPTIME_SUBDOMAIN', 'subdomain label for Uptime Kuma, e.g. uptime'),
    ('AWS_REGION', 'AWS region to deploy into'),
  ]


class StackConfigError(ValueError):
  """One or more configuration values are missing or invalid."""

  problems: List[str]

  def __init__(self, problems: List[str]):
    self.problems = list(problems)
    lines = '\n'.join(f"  - {p}" for p in self.problems)
    super().__init__(f"Invalid monitoring stack configuration:\n{lines}")


@dataclass(frozen=True)
class StackConfig:
  stack_name: str
  hosted_zone_id: str
  domain_name: str
  bugsink_subdomain: str
  uptime_subdomain: str
  aws_region: str
  aws_account: Optional[str] = None
  instance_class: str = DEFAULT_INSTANCE_CLASS
  instance_size: str = DEFAULT_INSTANCE_SIZE
  ebs_size: int = DEFAULT_EBS_SIZE
  ami_name: str = DEFAULT_AMI_NAME
  ami_owner: str = AMI_OWNER_CANONICAL
  ami_id: Optional[str] = None
  vpc_cidr: str = DEFAULT_VPC_CIDR
  availability_zone: Optional[str] = None
  owner: Optional[str] = None

  @property
  def bugsink_fqdn(self) -> str:
    return f"{self.bugsink_subdomain}.{self.domain_name}"

  @property
  def uptime_fqdn(self) -> str:
    return f"{self.uptime_subdomain}.{self.domain_name}"

  @property
  def instance_type(self) -> str:
    return f"{self.instance_class}.{self.instance_size}"

  @property
  def default_tags(self) -> Dict[str, str]:
    tags = dict(Project="monitoring", Stack=self.stack_name)
    if not self.owner is None:
      tags['Owner'] = self.owner
    return tags


def get_config_files(config_dir: str) -> List[str]:
  """Return the settings files in config_dir, in load order."""
  default_config_file = os.path.join(config_dir, 'default-config.toml')
  config_files: List[str] = [ default_config_file ]
  dot_config_files: List[str] = []
  if os.path.isdir(config_dir):
    for filename in sorted(os.listdir(config_dir)):
      if filename.endswith('.toml') and filename.find('.local.') < 0:
        pathname = os.path.join(config_dir, filename)
        if filename.startswith('.'):
          dot_config_files.append(pathname)
        elif not pathname in config_files:
          config_files.append(pathname)
  config_files.extend(dot_config_files)
  return config_files

def build_settings(config_dir: Optional[str]=None, env: Optional[str]=None) -> Dynaconf:
  if config_dir is None:
    config_dir = default_config_dir
  if env is None or env == '':
    env = os.environ.get('ENV_FOR_DYNACONF', DEFAULT_ENVIRONMENT)
  config_files = get_config_files(config_dir)
  pulumi.log.debug(f"Monitoring settings files for env \"{env}\": {config_files}")
  settings = Dynaconf(
      envvar_prefix=project_prefix,
      settings_files=config_files,
      environments=True,
      load_dotenv=True,
      env=env,
    )
  return settings

def get_default_aws_region(aws_profile: Optional[str]=None) -> Optional[str]:
  """The region of the default boto3 session for aws_profile, or None."""
  if aws_profile == '':
    aws_profile = None
  sess = boto3.session.Session(profile_name=aws_profile)
  region = sess.region_name
  if region == '':
    region = None
  return region

def _is_blank(value: Any) -> bool:
  return value is None or (isinstance(value, str) and value.strip() == '')

def is_present(value: Any) -> bool:
  return not _is_blank(value)

def gen_required_validators() -> List[Validator]:
  """One Dynaconf validator per required setting; each fails with a single message
  that names the setting and the environment variable that provides it."""
  validators: List[Validator] = []
  for name, description in REQUIRED_SETTINGS:
    message = f"{name} is required ({description}); set {project_prefix}_{name}"
    validators.append(Validator(
        name,
        must_exist=True,
        ne='',
        condition=is_present,
        messages=dict(must_exist_true=message, operations=message, condition=message),
      ))
  return validators

def _get_value(settings: Dynaconf, name: str) -> Any:
  value = settings.get(name, None)
  if isinstance(value, str):
    value = value.strip()
  return value

def load_stack_config(
      settings: Dynaconf,
      overrides: Optional[Mapping[str, Any]]=None,
      default_region: Optional[str]=None,
    ) -> StackConfig:
  """Build a validated StackConfig from settings.

  Args:
    settings: Dynaconf settings, as returned by build_settings().
    overrides: Values that take priority over settings, keyed by lower-case
        setting name (e.g. "hosted_zone_id"). Blank values are ignored.
        Non-blank values are set on settings before validation.
    default_region: Region to use if AWS_REGION is not otherwise configured.

  Raises:
    StackConfigError: if any required value is missing or empty, or any
        optional value is invalid. All problems are reported together.

  Returns:
    StackConfig: the validated configuration.
  """
  if overrides is None:
    overrides = {}

  for key, value in overrides.items():
    if not _is_blank(value):
      settings.set(key.upper(), value)
  if _is_blank(settings.get('AWS_REGION', None)) and not _is_blank(default_region):
    settings.set('AWS_REGION', default_region)

  problems: List[str] = []
  validators = ValidatorList(settings, validators=gen_required_validators())
  try:
    validators.validate_all(only_current_env=True)
  except ValidationError as e:
    problems.extend(message for _, message in e.details)

  values: Dict[str, Any] = {}
  if len(problems) == 0:
    for name, _ in REQUIRED_SETTINGS:
      values[name.lower()] = str(_get_value(settings, name))

  def optional_str(name: str, default: Optional[str]) -> Optional[str]:
    value = _get_value(settings, name)
    if _is_blank(value):
      return default
    return str(value)

  ebs_size: Any = _get_value(settings, 'EBS_SIZE')
  if _is_blank(ebs_size):
    ebs_size = DEFAULT_EBS_SIZE
  try:
    ebs_size = int(ebs_size)
  except (TypeError, ValueError):
    problems.append(f"EBS_SIZE must be an integer number of GiB: {ebs_size!r}")
  else:
    if ebs_size < 1:
      problems.append(f"EBS_SIZE must be a positive number of GiB: {ebs_size}")

  vpc_cidr = optional_str('VPC_CIDR', DEFAULT_VPC_CIDR)
  try:
    vpc_network = ipaddress.ip_network(vpc_cidr)
  except ValueError:
    problems.append(f"VPC_CIDR is not a valid IPv4 network: {vpc_cidr!r}")
  else:
    if vpc_network.version != 4 or vpc_network.prefixlen > DEFAULT_SUBNET_PREFIXLEN:
      problems.append(f"VPC_CIDR must be an IPv4 network of /{DEFAULT_SUBNET_PREFIXLEN} or larger: {vpc_cidr}")

  if len(problems) > 0:
    raise StackConfigError(problems)

  result = StackConfig(
      aws_account=optional_str('AWS_ACCOUNT', None),
      instance_class=optional_str('INSTANCE_CLASS', DEFAULT_INSTANCE_CLASS),
      instance_size=optional_str('INSTANCE_SIZE', DEFAULT_INSTANCE_SIZE),
      ebs_size=ebs_size,
      ami_name=optional_str('AMI_NAME', DEFAULT_AMI_NAME),
      ami_owner=optional_str('AMI_OWNER', AMI_OWNER_CANONICAL),
      ami_id=optional_str('AMI_ID', None),
      vpc_cidr=vpc_cidr,
      availability_zone=optional_str('AVAILABILITY_ZONE', None),
      owner=optional_str('OWNER', None),
      **values
    )
  pulumi.log.debug(f"Monitoring stack config: {result}")
  return result
