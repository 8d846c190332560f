#!/usr/bin/env python3

"""The bash user-data script that turns a fresh Ubuntu instance into the monitoring host.

The script runs once, at first boot. It is deliberately linear: there is no
"set -e", no retry and no rollback, and a failing step only shows up in the log
file. After it finishes, the systemd unit it installs keeps the compose project
running across reboots.
"""

from typing import List, Union

from pulumi import Output

from pulumi_util import future_func

from .compose import (
    ADMIN_USER,
    APP_DIR,
    COMPOSE_FILE,
    DATA_DIRS,
    DB_PASSWORD_VAR,
    DB_USERNAME_VAR,
    SIGNING_KEY_VAR,
    SECRET_VARS,
    SYSTEMD_SERVICE_NAME,
    render_compose_file,
    render_systemd_unit,
  )

LOG_FILE = f"{APP_DIR}/user-data.log"
AWS_CLI_URL = 'https://awscli.amazonaws.com/awscli-exe-linux-x86_64.zip'
DOCKER_APT_URL = 'https://download.docker.com/linux/ubuntu'
PREREQUISITE_PACKAGES = 'ca-certificates curl gnupg lsb-release unzip jq gettext-base'
DOCKER_PACKAGES = 'docker-ce docker-ce-cli containerd.io docker-buildx-plugin docker-compose-plugin'


def _heredoc(command: str, body: str, delimiter: str) -> List[str]:
  # quoted delimiter: the shell does not expand anything inside the body
  return [ f"{command} << '{delimiter}'" ] + body.rstrip('\n').split('\n') + [ delimiter ]

def gen_boot_script(
      region: str,
      db_secret_arn: str,
      signing_key_secret_arn: str,
      bugsink_fqdn: str,
      uptime_fqdn: str,
    ) -> str:
  """Render the user-data script with all provisioning-time values resolved."""
  secret_var_formats = ' '.join('${' + v + '}' for v in SECRET_VARS)

  lines: List[str] = [
      "#!/bin/bash",
      # Keep everything the script prints for later inspection
      f"exec > >(tee -a {LOG_FILE}) 2>&1",
      'echo "Starting user data script execution at $(date)"',
      "",
      "echo 'Updating system packages...'",
      "sudo apt-get update -y",
      "sudo apt-get upgrade -y",
      "",
      "echo 'Installing required packages...'",
      f"sudo apt-get install -y {PREREQUISITE_PACKAGES}",
      "",
      "echo 'Installing AWS CLI...'",
      f"curl '{AWS_CLI_URL}' -o 'awscliv2.zip'",
      "unzip -q awscliv2.zip",
      "sudo ./aws/install",
      "",
      "echo 'Installing Docker...'",
      "sudo mkdir -p /etc/apt/keyrings",
      f"curl -fsSL {DOCKER_APT_URL}/gpg | sudo gpg --dearmor -o /etc/apt/keyrings/docker.gpg",
      f'echo "deb [arch=$(dpkg --print-architecture) signed-by=/etc/apt/keyrings/docker.gpg] {DOCKER_APT_URL} $(lsb_release -cs) stable" | sudo tee /etc/apt/sources.list.d/docker.list > /dev/null',
      "sudo apt-get update -y",
      f"sudo apt-get install -y {DOCKER_PACKAGES}",
      "",
      "echo 'Starting Docker service...'",
      "sudo systemctl start docker",
      "sudo systemctl enable docker",
      "",
      f"echo 'Adding {ADMIN_USER} user to docker group...'",
      f"sudo usermod -aG docker {ADMIN_USER}",
      "",
      "echo 'Creating application data directories...'",
    ]
  for data_dir in DATA_DIRS:
    lines += [
        f"sudo mkdir -p {data_dir}",
        f"sudo chown -R {ADMIN_USER}:{ADMIN_USER} {data_dir}",
      ]

  lines += [
      "",
      "echo 'Setting AWS region...'",
      f"REGION={region}",
      "export AWS_DEFAULT_REGION=$REGION",
      "",
      "echo 'Retrieving secrets from AWS Secrets Manager...'",
      f"DB_SECRET_ARN='{db_secret_arn}'",
      f"DJANGO_SECRET_ARN='{signing_key_secret_arn}'",
      'DB_SECRET=$(aws secretsmanager get-secret-value --secret-id "$DB_SECRET_ARN" --query SecretString --output text)',
      f'{SIGNING_KEY_VAR}=$(aws secretsmanager get-secret-value --secret-id "$DJANGO_SECRET_ARN" --query SecretString --output text)',
      "",
      f"{DB_PASSWORD_VAR}=$(echo \"$DB_SECRET\" | jq -r '.password')",
      f"{DB_USERNAME_VAR}=$(echo \"$DB_SECRET\" | jq -r '.username')",
      "",
      f"echo 'Creating {COMPOSE_FILE} file...'",
      f"cd {APP_DIR}",
    ]
  lines += _heredoc(f"cat > {COMPOSE_FILE}", render_compose_file(bugsink_fqdn, uptime_fqdn), 'COMPOSE_EOF')

  lines += [
      "",
      "echo 'Substituting secrets into compose file...'",
      f"export {' '.join(SECRET_VARS)}",
      f"envsubst '{secret_var_formats}' < {COMPOSE_FILE} > {COMPOSE_FILE}.final",
      f"mv {COMPOSE_FILE}.final {COMPOSE_FILE}",
      f"sudo chown {ADMIN_USER}:{ADMIN_USER} {COMPOSE_FILE}",
      f"chmod 600 {COMPOSE_FILE}",
      "",
      "echo 'Waiting for Docker to be ready...'",
      "sleep 10",
      "",
      "echo 'Starting MySQL, BugSink, Uptime Kuma and Caddy services...'",
      "docker compose up -d",
      "",
      "echo 'Waiting for services to start...'",
      "sleep 30",
      "",
      f"echo 'Creating systemd service {SYSTEMD_SERVICE_NAME}...'",
    ]
  lines += _heredoc(f"sudo tee /etc/systemd/system/{SYSTEMD_SERVICE_NAME} > /dev/null", render_systemd_unit(), 'UNIT_EOF')

  lines += [
      "",
      f"echo 'Enabling {SYSTEMD_SERVICE_NAME}...'",
      "sudo systemctl daemon-reload",
      f"sudo systemctl enable {SYSTEMD_SERVICE_NAME}",
      "",
      "unset DB_SECRET",
    ]
  lines += [ f"unset {v}" for v in SECRET_VARS ]

  lines += [
      "",
      "echo ''",
      "echo '================================================'",
      "echo 'User data script completed!'",
      "echo '================================================'",
      "echo 'BugSink should be available at:'",
      f"echo '  https://{bugsink_fqdn}'",
      "echo 'Uptime Kuma should be available at:'",
      f"echo '  https://{uptime_fqdn}'",
      "echo ''",
      "echo 'Login credentials are stored in AWS Secrets Manager:'",
      f"echo '  Secret ARN: {db_secret_arn}'",
      "echo '  Username: (stored in secret)'",
      "echo '  Password: (stored in secret)'",
      "echo ''",
      "echo 'Available commands:'",
      f"echo '  tail -f {LOG_FILE} - View this installation log'",
      "echo '  docker compose ps - View container status'",
      "echo '  docker compose logs <service> - View logs of mysql, bugsink, uptime-kuma or caddy'",
      "echo ''",
      "echo 'Note: TLS certificates are obtained automatically by Caddy.'",
      "echo 'Make sure DNS is pointing to this instance before accessing.'",
      "echo ''",
      'echo "User data script execution completed at $(date)"',
    ]
  return '\n'.join(lines) + '\n'

def boot_script(
      region: Union[str, Output[str]],
      db_secret_arn: Union[str, Output[str]],
      signing_key_secret_arn: Union[str, Output[str]],
      bugsink_fqdn: Union[str, Output[str]],
      uptime_fqdn: Union[str, Output[str]],
    ) -> Output[str]:
  """gen_boot_script(), once all of its (possibly future) arguments have values."""
  return future_func(gen_boot_script)(region, db_secret_arn, signing_key_secret_arn, bugsink_fqdn, uptime_fqdn)
