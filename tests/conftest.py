from typing import Iterator

import os

import pulumi
import pytest

from tests.pulumi_mocks import MOCKS

pulumi.runtime.set_mocks(MOCKS, project='monitoring-stack', stack='test', preview=False)


@pytest.fixture(autouse=True)
def _reset_mocks() -> Iterator[None]:
  MOCKS.reset()
  yield


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> pytest.MonkeyPatch:
  """No MONITORING_* variables and no .env file leak in from the developer's shell."""
  for key in list(os.environ):
    if key.startswith('MONITORING_') or key == 'ENV_FOR_DYNACONF':
      monkeypatch.delenv(key, raising=False)
  monkeypatch.chdir(tmp_path)
  return monkeypatch
