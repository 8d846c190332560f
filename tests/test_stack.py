"""End-to-end declaration tests for the whole monitoring stack."""

from typing import List

import dataclasses
import json

import pulumi
import pytest

from monitoring import MonitoringStack, StackConfigError, build_settings, create_provider, load_stack_config, stack_outputs
from monitoring.config import StackConfig
from tests.pulumi_mocks import MOCKS, PUBLIC_IP, normalized_inputs

CFG = StackConfig(
    stack_name='monitoring',
    hosted_zone_id='Z0123456789ABCDEFGHIJ',
    domain_name='example.com',
    bugsink_subdomain='bugsink',
    uptime_subdomain='uptime',
    aws_region='us-east-1',
  )

INSTANCE_TYPE = 'aws:ec2/instance:Instance'


def _all_urns(stack: MonitoringStack) -> List[pulumi.Output]:
  net = stack.network
  mon = stack.monitoring
  dns = stack.domains
  resources = [
      net.vpc, net.internet_gateway, net.route_table, net.route_table_association, *net.public_subnets,
      mon.credentials_secret.secret, mon.credentials_secret.version,
      mon.signing_key_secret.secret, mon.signing_key_secret.version,
      mon.role, mon.instance_profile, mon.security_group, mon.instance, mon.eip, mon.eip_association,
      dns.bugsink_record, dns.uptime_record,
    ]
  return [ r.urn for r in resources ]


@pulumi.runtime.test
def test_records_for_both_subdomains_target_the_elastic_ip():
  stack = MonitoringStack('mon', CFG)
  dns = stack.domains

  def check(args):
    bugsink_name, bugsink_records, bugsink_zone, uptime_name, uptime_records, uptime_zone, public_ip = args[:7]
    assert bugsink_name == 'bugsink.example.com'
    assert uptime_name == 'uptime.example.com'
    assert bugsink_zone == uptime_zone == 'Z0123456789ABCDEFGHIJ'
    assert public_ip == PUBLIC_IP
    assert bugsink_records == [ public_ip ]
    assert uptime_records == [ public_ip ]
    for record in MOCKS.resources_of_type('aws:route53/record:Record'):
      assert record.inputs['type'] == 'A'
      assert record.inputs['ttl'] == 1800

  return pulumi.Output.all(
      dns.bugsink_record.name, dns.bugsink_record.records, dns.bugsink_record.zone_id,
      dns.uptime_record.name, dns.uptime_record.records, dns.uptime_record.zone_id,
      stack.monitoring.eip.public_ip,
      *_all_urns(stack),
    ).apply(check)


@pulumi.runtime.test
def test_record_comments_name_the_instance():
  stack = MonitoringStack('comments', CFG)
  dns = stack.domains

  def check(args):
    instance_id, bugsink_comment, uptime_comment = args
    assert bugsink_comment == f"A record for bugsink.example.com pointing to EC2 instance {instance_id}"
    assert uptime_comment == f"A record for uptime.example.com pointing to EC2 instance {instance_id}"

  return pulumi.Output.all(
      stack.monitoring.instance.id, dns.bugsink_record_comment, dns.uptime_record_comment,
    ).apply(check)


@pulumi.runtime.test
def test_declaring_twice_with_identical_config_is_identical():
  first = MonitoringStack('stacka', CFG)
  second = MonitoringStack('stackb', CFG)

  def check(_):
    a = normalized_inputs('stacka')
    b = normalized_inputs('stackb')
    assert len(a) > 0
    assert a == b

  return pulumi.Output.all(*_all_urns(first), *_all_urns(second)).apply(check)


@pulumi.runtime.test
def test_storage_override_changes_only_instance_volume():
  first = MonitoringStack('stacka', CFG)
  second = MonitoringStack('stackb', dataclasses.replace(CFG, ebs_size=200))

  def check(_):
    a = normalized_inputs('stacka')
    b = normalized_inputs('stackb')
    assert set(a) == set(b)
    changed = [ key for key in a if a[key] != b[key] ]
    assert [ typ for typ, _ in changed ] == [ INSTANCE_TYPE ]

    instance_a = json.loads(a[changed[0]])
    instance_b = json.loads(b[changed[0]])
    assert instance_a.pop('rootBlockDevice')['volumeSize'] == 80
    assert instance_b.pop('rootBlockDevice')['volumeSize'] == 200
    assert instance_a == instance_b

  return pulumi.Output.all(*_all_urns(first), *_all_urns(second)).apply(check)


def test_missing_zone_aborts_before_any_resource(clean_env: pytest.MonkeyPatch) -> None:
  for key, value in dict(
        MONITORING_STACK_NAME='monitoring',
        MONITORING_DOMAIN_NAME='example.com',
        MONITORING_BUGSINK_SUBDOMAIN='bugsink',
        MONITORING_UPTIME_SUBDOMAIN='uptime',
        MONITORING_AWS_REGION='us-east-1',
      ).items():
    clean_env.setenv(key, value)

  with pytest.raises(StackConfigError) as excinfo:
    cfg = load_stack_config(build_settings())
    MonitoringStack('never', cfg)
  assert excinfo.value.problems == [
      'HOSTED_ZONE_ID is required (Route53 hosted zone id that holds the domain); set MONITORING_HOSTED_ZONE_ID',
    ]
  assert MOCKS.resources == []
  assert MOCKS.calls == []


@pulumi.runtime.test
def test_stack_outputs_are_namespaced_by_stack_name():
  stack = MonitoringStack('outputs', CFG)
  outputs = stack_outputs(CFG, stack)
  assert list(outputs)[:3] == [
      'monitoring-MonitoringInstanceId',
      'monitoring-BugsinkDomainName',
      'monitoring-UptimeDomainName',
    ]
  assert outputs['bugsink_url'] == 'https://bugsink.example.com'
  assert outputs['uptime_url'] == 'https://uptime.example.com'

  def check(args):
    instance_id, bugsink_fqdn, uptime_fqdn, public_ip, zone = args
    assert instance_id == 'outputs-instance-instance_id'
    assert bugsink_fqdn == 'bugsink.example.com'
    assert uptime_fqdn == 'uptime.example.com'
    assert public_ip == PUBLIC_IP
    assert zone == 'us-east-1a'

  return pulumi.Output.all(
      outputs['monitoring-MonitoringInstanceId'],
      outputs['monitoring-BugsinkDomainName'],
      outputs['monitoring-UptimeDomainName'],
      outputs['public_ip'],
      outputs['availability_zone'],
    ).apply(check)


@pulumi.runtime.test
def test_every_resource_uses_the_pinned_provider():
  cfg = dataclasses.replace(CFG, aws_account='123456789012')
  provider = create_provider(cfg)
  stack = MonitoringStack('pinned', cfg, opts=pulumi.ResourceOptions(providers=[ provider ]))

  def check(_):
    providers = MOCKS.resources_of_type('pulumi:providers:aws')
    assert [ p.name for p in providers ] == [ 'aws-us-east-1' ]
    assert providers[0].inputs['region'] == 'us-east-1'
    assert json.loads(providers[0].inputs['allowedAccountIds']) == [ '123456789012' ]
    aws_resources = [ r for r in MOCKS.resources if r.typ.startswith('aws:') ]
    assert len(aws_resources) > 0
    for r in aws_resources:
      assert r.provider is not None and '::aws-us-east-1::' in r.provider, r.name

  return pulumi.Output.all(provider.urn, *_all_urns(stack)).apply(check)
