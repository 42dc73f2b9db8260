"""Target configuration management.

Configuration is loaded from a config directory:
- targets/*.yaml: One file per controller target (api, org, space, proxy)
- secrets.yaml: Passwords and tokens, referenced by key from targets

Resolution order for the config directory:
1. $CF_DRIVER_CONFIG
2. $XDG_CONFIG_HOME/cf-driver
3. ~/.config/cf-driver

Environment variables override file values:
CF_DRIVER_API, CF_DRIVER_USERNAME, CF_DRIVER_PASSWORD, CF_DRIVER_TOKEN,
CF_DRIVER_ORG, CF_DRIVER_SPACE.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from cloud.client import ClientConfig
from cloud.domain import CloudCredentials, HttpProxyConfiguration


class ConfigError(Exception):
    """Configuration error."""


# Environment variable -> TargetConfig attribute
ENV_OVERRIDES = {
    'CF_DRIVER_API': 'api',
    'CF_DRIVER_USERNAME': 'username',
    'CF_DRIVER_ORG': 'org',
    'CF_DRIVER_SPACE': 'space',
}


@dataclass
class TargetConfig:
    """Configuration for one controller target.

    Secrets (password or token) are resolved from secrets.yaml at load time
    and never written back.
    """
    name: str
    config_file: Path
    api: str = ''
    org: str = ''
    space: str = ''
    username: str = ''
    skip_ssl_validation: bool = False
    timeout: int = 30
    proxy: Optional[HttpProxyConfiguration] = None

    _password: str = field(default='', init=False, repr=False)
    _token: str = field(default='', init=False, repr=False)

    def __post_init__(self):
        if isinstance(self.config_file, str):
            self.config_file = Path(self.config_file)

        if self.config_file.is_file():
            self._load_from_yaml()

        self._apply_env()

    def _load_from_yaml(self):
        """Load target file and resolve its credentials from secrets.yaml."""
        config_dir = self.config_file.parent.parent
        data = _parse_yaml(self.config_file)

        self.api = self.api or data.get('api', '')
        self.org = self.org or data.get('org', '')
        self.space = self.space or data.get('space', '')
        self.username = self.username or data.get('username', '')
        self.skip_ssl_validation = bool(data.get('skip_ssl_validation', self.skip_ssl_validation))
        self.timeout = int(data.get('timeout', self.timeout))

        if proxy := data.get('proxy'):
            if not proxy.get('host') or not proxy.get('port'):
                raise ConfigError(f"{self.config_file}: proxy requires host and port")
            self.proxy = HttpProxyConfiguration(
                host=proxy['host'],
                port=int(proxy['port']),
                username=proxy.get('username', ''),
                password=proxy.get('password', ''),
            )

        secrets = _load_secrets(config_dir)
        credentials_key = data.get('credentials', self.name)
        if secrets and credentials_key in (secrets.get('credentials') or {}):
            entry = secrets['credentials'][credentials_key] or {}
            self._password = str(entry.get('password', ''))
            self._token = str(entry.get('token', ''))

    def _apply_env(self):
        for env_var, attr in ENV_OVERRIDES.items():
            if value := os.environ.get(env_var):
                setattr(self, attr, value)
        if password := os.environ.get('CF_DRIVER_PASSWORD'):
            self._password = password
        if token := os.environ.get('CF_DRIVER_TOKEN'):
            self._token = token

    def get_credentials(self) -> Optional[CloudCredentials]:
        """Credentials for this target, or None for anonymous access."""
        if self._token:
            return CloudCredentials(email=self.username, token=self._token)
        if self.username and self._password:
            return CloudCredentials(email=self.username, password=self._password)
        return None

    def to_client_config(self) -> ClientConfig:
        """Build the client configuration for this target."""
        if not self.api:
            raise ConfigError(
                f"No API endpoint for target '{self.name}'. "
                f"Set 'api' in {self.config_file} or CF_DRIVER_API"
            )
        credentials = self.get_credentials()
        if (self.org or self.space) and credentials is None:
            raise ConfigError(
                f"Target '{self.name}' sets org/space but has no credentials. "
                f"Add a password or token to secrets.yaml, or set CF_DRIVER_PASSWORD or CF_DRIVER_TOKEN"
            )
        if bool(self.org) != bool(self.space):
            raise ConfigError(f"Target '{self.name}' must set both org and space, or neither")
        scoped = bool(self.org and self.space)
        return ClientConfig(
            target=self.api,
            credentials=credentials,
            org_name=self.org if scoped else None,
            space_name=self.space if scoped else None,
            proxy=self.proxy,
            trust_self_signed_certs=self.skip_ssl_validation,
            timeout=self.timeout,
        )


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e


def _load_secrets(config_dir: Path) -> Optional[dict]:
    """Load secrets.yaml from the config directory, if present."""
    secrets_file = config_dir / 'secrets.yaml'
    if not secrets_file.exists():
        return None
    return _parse_yaml(secrets_file)


def get_config_dir() -> Path:
    """Discover the config directory (see module docstring for order)."""
    if env_path := os.environ.get('CF_DRIVER_CONFIG'):
        path = Path(env_path)
        if path.exists():
            return path
        raise ConfigError(f"CF_DRIVER_CONFIG={env_path} does not exist")

    if xdg := os.environ.get('XDG_CONFIG_HOME'):
        return Path(xdg) / 'cf-driver'
    return Path.home() / '.config' / 'cf-driver'


def list_targets() -> list[str]:
    """List target names from targets/*.yaml."""
    try:
        targets_dir = get_config_dir() / 'targets'
    except ConfigError:
        return []
    if not targets_dir.exists():
        return []
    return sorted(f.stem for f in targets_dir.glob('*.yaml') if f.is_file())


def load_target_config(name: Optional[str] = None) -> TargetConfig:
    """Load configuration for a named target.

    Without a name, builds the target from environment variables only.
    """
    if not name:
        return TargetConfig(name='env', config_file=Path('/dev/null'))

    target_file = get_config_dir() / 'targets' / f'{name}.yaml'
    if target_file.exists():
        return TargetConfig(name=name, config_file=target_file)

    available = list_targets()
    raise ConfigError(
        f"Target '{name}' not found: no {target_file}\n"
        f"Available targets: {', '.join(available) if available else 'none configured'}"
    )
