#!/usr/bin/env python3

"""Generated credentials stored in AWS Secrets Manager.

Secret values are generated by Secrets Manager's GetRandomPassword API and only
ever held as Pulumi secret outputs. Consumers get the secret ARN, never the value.
"""

from typing import Any, Dict, List, Optional

from dataclasses import dataclass
import string

import pulumi
from pulumi import ResourceOptions, Output
import pulumi_aws as aws

from pulumi_util import jsonify_promise

# Shell metacharacters and quoting-sensitive symbols. Generated values are interpolated
# into a bash script and a docker compose file, so none of these may appear.
EXCLUDED_CHARACTERS: str = " %+~`#$&*()|[]{}:;<>?!'/\"\\"


@dataclass(frozen=True)
class PasswordPolicy:
  """Length and character rules for a generated secret value.

  random_password_args() is what the deployment uses: the arguments passed to
  GetRandomPassword. allowed_characters() and violations() are for checking
  generated values for compliance; the deployment never sees those values.
  """

  password_length: int
  exclude_characters: str = EXCLUDED_CHARACTERS
  include_space: bool = False

  def allowed_characters(self) -> str:
    alphabet = string.ascii_letters + string.digits + string.punctuation
    if self.include_space:
      alphabet += ' '
    return ''.join(c for c in alphabet if not c in self.exclude_characters)

  def violations(self, value: str) -> List[str]:
    """Describe every way value breaks this policy; empty if it complies."""
    problems: List[str] = []
    if len(value) != self.password_length:
      problems.append(f"length is {len(value)}, expected {self.password_length}")
    allowed = self.allowed_characters()
    bad = sorted(set(c for c in value if not c in allowed))
    if len(bad) > 0:
      problems.append(f"contains disallowed characters {''.join(bad)!r}")
    if not self.include_space and any(c.isspace() for c in value):
      problems.append("contains whitespace")
    return problems

  def random_password_args(self) -> Dict[str, Any]:
    return dict(
        password_length=self.password_length,
        exclude_characters=self.exclude_characters,
        include_space=self.include_space,
      )


CREDENTIALS_POLICY = PasswordPolicy(password_length=32)
SIGNING_KEY_POLICY = PasswordPolicy(password_length=50)


class GeneratedSecret(pulumi.ComponentResource):
  """A Secrets Manager secret whose value is generated once, at first deployment.

  If template is provided, the secret is a JSON object made of the template's fields
  plus the generated value stored under generate_key. Otherwise the secret is the bare
  generated value.

  The first version is never replaced by later deployments, so re-running the program
  does not rotate the value.
  """

  secret: aws.secretsmanager.Secret
  version: aws.secretsmanager.SecretVersion
  arn: Output[str]

  def __init__(
        self,
        name: str,
        description: str,
        policy: PasswordPolicy,
        template: Optional[Dict[str, str]]=None,
        generate_key: str='password',
        tags: Optional[Dict[str, str]]=None,
        opts: Optional[ResourceOptions]=None,
      ):
    super().__init__('monitoring:index:GeneratedSecret', name, None, opts)

    generated = aws.secretsmanager.get_random_password_output(
        **policy.random_password_args(),
        opts=pulumi.InvokeOptions(parent=self),
      )
    value: Output[str] = Output.secret(generated.random_password)

    if template is None:
      secret_string = value
    else:
      secret_string = jsonify_promise(
          value.apply(lambda v: dict(template, **{generate_key: v}))
        )

    self.secret = aws.secretsmanager.Secret(
        name,
        opts=ResourceOptions(parent=self),
        description=description,
        tags=tags,
      )

    self.version = aws.secretsmanager.SecretVersion(
        f"{name}-version",
        opts=ResourceOptions(parent=self, ignore_changes=['secret_string']),
        secret_id=self.secret.id,
        secret_string=secret_string,
      )

    self.arn = self.secret.arn

    self.register_outputs(dict(arn=self.arn))
