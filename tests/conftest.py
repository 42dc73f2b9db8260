"""Shared pytest fixtures for cf-driver tests."""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from cloud import ClientConfig, CloudCredentials, CloudFoundryClient, CloudInfo  # noqa: E402


@pytest.fixture
def controller():
    """Controller client test double.

    A MagicMock standing in for CloudControllerClient; tests set return values
    and side effects on the operations they exercise.
    """
    cc = MagicMock(name='controller')
    cc.session_space = None
    cc.get_info.return_value = CloudInfo(name='test-platform', version='2')
    cc.get_cloud_controller_url.return_value = 'https://api.example.com'
    return cc


@pytest.fixture
def client(controller):
    """CloudFoundryClient wired to the controller double."""
    config = ClientConfig(
        target='https://api.example.com',
        credentials=CloudCredentials(email='dev@example.com', password='secret'),
    )
    return CloudFoundryClient(config, controller=controller)


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    """Create a temporary config directory and point CF_DRIVER_CONFIG at it.

    Creates:
    - targets/dev.yaml (password credentials, org/space, proxy)
    - targets/ci.yaml (token credentials, no scope)
    - secrets.yaml
    """
    (tmp_path / 'targets').mkdir()
    (tmp_path / 'targets' / 'dev.yaml').write_text("""
api: https://api.dev.example.com
org: acme
space: development
username: dev@example.com
credentials: dev
skip_ssl_validation: true
timeout: 45
proxy:
  host: proxy.example.com
  port: 3128
""")
    (tmp_path / 'targets' / 'ci.yaml').write_text("""
api: https://api.ci.example.com
credentials: ci-token
""")
    (tmp_path / 'secrets.yaml').write_text("""
credentials:
  dev:
    password: hunter2
  ci-token:
    token: abc.def.ghi
""")

    monkeypatch.setenv('CF_DRIVER_CONFIG', str(tmp_path))
    for var in ('CF_DRIVER_API', 'CF_DRIVER_USERNAME', 'CF_DRIVER_PASSWORD',
                'CF_DRIVER_TOKEN', 'CF_DRIVER_ORG', 'CF_DRIVER_SPACE'):
        monkeypatch.delenv(var, raising=False)
    return tmp_path
