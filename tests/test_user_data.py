"""Unit tests for the user-data boot script."""

import pulumi

from monitoring.user_data import LOG_FILE, boot_script, gen_boot_script

DB_ARN = 'arn:aws:secretsmanager:us-east-1:123456789012:secret:creds-AbCdEf'
KEY_ARN = 'arn:aws:secretsmanager:us-east-1:123456789012:secret:key-GhIjKl'


def _script() -> str:
  return gen_boot_script('us-east-1', DB_ARN, KEY_ARN, 'bugsink.example.com', 'uptime.example.com')


def _index(lines, prefix: str) -> int:
  for i, line in enumerate(lines):
    if line.startswith(prefix):
      return i
  raise AssertionError(f"no line starts with {prefix!r}")


def test_starts_by_logging_everything() -> None:
  lines = _script().splitlines()
  assert lines[0] == '#!/bin/bash'
  assert lines[1] == f"exec > >(tee -a {LOG_FILE}) 2>&1"


def test_no_exit_on_error() -> None:
  script = _script()
  assert 'set -e' not in script
  assert 'set -o errexit' not in script


def test_steps_run_in_order() -> None:
  lines = _script().splitlines()
  steps = [
      'sudo apt-get upgrade -y',
      'sudo ./aws/install',
      'sudo systemctl enable docker',
      'sudo usermod -aG docker ubuntu',
      'sudo mkdir -p /srv/caddy',
      'export AWS_DEFAULT_REGION=$REGION',
      'DB_SECRET=$(aws secretsmanager get-secret-value',
      "cat > docker-compose.yml << 'COMPOSE_EOF'",
      'envsubst ',
      'docker compose up -d',
      "sudo tee /etc/systemd/system/appmonitoring.service > /dev/null << 'UNIT_EOF'",
      'sudo systemctl enable appmonitoring.service',
      'unset DB_PASSWORD',
      "echo 'BugSink should be available at:'",
    ]
  positions = [ _index(lines, step) for step in steps ]
  assert positions == sorted(positions)


def test_data_directories_owned_by_ubuntu() -> None:
  script = _script()
  for data_dir in [ '/srv/caddy', '/srv/bugsink', '/srv/uptime' ]:
    assert f"sudo mkdir -p {data_dir}" in script
    assert f"sudo chown -R ubuntu:ubuntu {data_dir}" in script


def test_resolved_values_embedded() -> None:
  script = _script()
  assert 'REGION=us-east-1' in script
  assert f"DB_SECRET_ARN='{DB_ARN}'" in script
  assert f"DJANGO_SECRET_ARN='{KEY_ARN}'" in script
  assert "DB_PASSWORD=$(echo \"$DB_SECRET\" | jq -r '.password')" in script
  assert "DB_USERNAME=$(echo \"$DB_SECRET\" | jq -r '.username')" in script


def test_compose_heredoc_keeps_placeholders_for_envsubst() -> None:
  lines = _script().splitlines()
  start = _index(lines, "cat > docker-compose.yml << 'COMPOSE_EOF'")
  end = lines.index('COMPOSE_EOF', start)
  body = '\n'.join(lines[start + 1:end])
  assert '${DB_PASSWORD}' in body
  assert '${DJANGO_SECRET}' in body
  assert 'bugsink.example.com' in body
  assert "envsubst '${DB_PASSWORD} ${DB_USERNAME} ${DJANGO_SECRET}' < docker-compose.yml" in '\n'.join(lines)
  assert 'export DB_PASSWORD DB_USERNAME DJANGO_SECRET' in lines


def test_secrets_unset_and_never_echoed() -> None:
  lines = _script().splitlines()
  for var in [ 'DB_SECRET', 'DB_PASSWORD', 'DB_USERNAME', 'DJANGO_SECRET' ]:
    assert f"unset {var}" in lines
  for line in lines:
    if line.startswith('echo'):
      assert '$DB_PASSWORD' not in line
      assert '$DJANGO_SECRET' not in line


def test_summary_names_urls_and_secret_reference() -> None:
  script = _script()
  assert "echo '  https://bugsink.example.com'" in script
  assert "echo '  https://uptime.example.com'" in script
  assert f"echo '  Secret ARN: {DB_ARN}'" in script


@pulumi.runtime.test
def test_boot_script_resolves_outputs():
  script = boot_script(
      pulumi.Output.from_input('eu-west-1'),
      pulumi.Output.from_input(DB_ARN),
      KEY_ARN,
      'bugsink.example.com',
      'uptime.example.com',
    )

  def check(text):
    assert 'REGION=eu-west-1' in text
    assert DB_ARN in text
    assert KEY_ARN in text

  return script.apply(check)
