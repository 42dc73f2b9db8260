"""Domain entities returned by the cloud controller client.

Entities with a remote identity are built from the v2 resource shape:

    {"metadata": {"guid": "..."}, "entity": {...}}
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional


def _meta(resource: dict) -> dict:
    return resource.get('metadata') or {}


def _entity(resource: dict) -> dict:
    return resource.get('entity') or {}


@dataclass(frozen=True)
class CloudCredentials:
    """Authentication material for a client instance.

    Either email/password (exchanged for a token at first use) or a
    pre-obtained bearer token.
    """
    email: str = ''
    password: str = field(default='', repr=False)
    token: str = field(default='', repr=False)

    @property
    def has_token(self) -> bool:
        return bool(self.token)


@dataclass(frozen=True)
class HttpProxyConfiguration:
    """HTTP proxy settings for the controller connection."""
    host: str
    port: int
    username: str = ''
    password: str = field(default='', repr=False)

    @property
    def url(self) -> str:
        auth = ''
        if self.username:
            auth = f"{self.username}:{self.password}@" if self.password else f"{self.username}@"
        return f"http://{auth}{self.host}:{self.port}"


@dataclass(frozen=True)
class CloudInfo:
    """Platform metadata from /v2/info."""
    name: str = ''
    build: str = ''
    support: str = ''
    version: str = ''
    description: str = ''
    api_version: str = ''
    authorization_endpoint: str = ''
    token_endpoint: str = ''
    doppler_logging_endpoint: str = ''
    user: str = ''

    @classmethod
    def from_dict(cls, data: dict) -> 'CloudInfo':
        return cls(
            name=data.get('name') or '',
            build=str(data.get('build') or ''),
            support=data.get('support') or '',
            version=str(data.get('version') or ''),
            description=data.get('description') or '',
            api_version=data.get('api_version') or '',
            authorization_endpoint=data.get('authorization_endpoint') or '',
            token_endpoint=data.get('token_endpoint') or '',
            doppler_logging_endpoint=data.get('doppler_logging_endpoint') or '',
            user=data.get('user') or '',
        )


@dataclass(frozen=True)
class CloudOrganization:
    name: str
    guid: str = ''

    @classmethod
    def from_resource(cls, resource: dict) -> 'CloudOrganization':
        return cls(name=_entity(resource).get('name', ''), guid=_meta(resource).get('guid', ''))


@dataclass(frozen=True)
class CloudSpace:
    """A space, optionally with its owning organization."""
    name: str
    guid: str = ''
    organization: Optional[CloudOrganization] = None

    @classmethod
    def from_resource(cls, resource: dict, organization: Optional[CloudOrganization] = None) -> 'CloudSpace':
        entity = _entity(resource)
        if organization is None and entity.get('organization'):
            organization = CloudOrganization.from_resource(entity['organization'])
        if organization is None and entity.get('organization_guid'):
            organization = CloudOrganization(name='', guid=entity['organization_guid'])
        return cls(name=entity.get('name', ''), guid=_meta(resource).get('guid', ''), organization=organization)


@dataclass
class Staging:
    """How an application is staged and started."""
    buildpack: Optional[str] = None
    command: Optional[str] = None
    stack: Optional[str] = None
    health_check_timeout: Optional[int] = None


@dataclass
class CloudApplication:
    """An application deployed in a space."""
    name: str
    guid: str = ''
    memory: int = 0
    disk_quota: int = 0
    instances: int = 1
    state: str = 'STOPPED'
    staging: Staging = field(default_factory=Staging)
    env: dict = field(default_factory=dict)
    uris: list = field(default_factory=list)
    services: list = field(default_factory=list)

    @classmethod
    def from_resource(cls, resource: dict) -> 'CloudApplication':
        entity = _entity(resource)
        return cls(
            name=entity.get('name', ''),
            guid=_meta(resource).get('guid', ''),
            memory=entity.get('memory') or 0,
            disk_quota=entity.get('disk_quota') or 0,
            instances=entity.get('instances') or 0,
            state=entity.get('state') or 'STOPPED',
            staging=Staging(
                buildpack=entity.get('buildpack'),
                command=entity.get('command'),
                stack=(entity.get('stack') or {}).get('entity', {}).get('name'),
                health_check_timeout=entity.get('health_check_timeout'),
            ),
            env=dict(entity.get('environment_json') or {}),
        )


@dataclass(frozen=True)
class InstanceInfo:
    """State of a single application instance."""
    index: int
    state: str
    since: Optional[datetime] = None


@dataclass
class InstancesInfo:
    instances: list[InstanceInfo] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> 'InstancesInfo':
        instances = []
        for index, info in (data or {}).items():
            since = info.get('since')
            instances.append(InstanceInfo(
                index=int(index),
                state=info.get('state', 'UNKNOWN'),
                since=datetime.fromtimestamp(since, tz=timezone.utc) if since else None,
            ))
        instances.sort(key=lambda i: i.index)
        return cls(instances=instances)


@dataclass(frozen=True)
class InstanceStats:
    """Resource usage of a running instance from /v2/apps/:guid/stats."""
    index: int
    state: str
    host: str = ''
    port: int = 0
    cpu: float = 0.0
    memory: int = 0
    disk: int = 0
    uptime: int = 0

    @classmethod
    def from_dict(cls, index: str, data: dict) -> 'InstanceStats':
        stats = data.get('stats') or {}
        usage = stats.get('usage') or {}
        return cls(
            index=int(index),
            state=data.get('state', 'UNKNOWN'),
            host=stats.get('host') or '',
            port=stats.get('port') or 0,
            cpu=float(usage.get('cpu') or 0.0),
            memory=usage.get('mem') or 0,
            disk=usage.get('disk') or 0,
            uptime=stats.get('uptime') or 0,
        )


@dataclass(frozen=True)
class CrashInfo:
    instance: str
    since: Optional[datetime] = None


@dataclass
class CloudService:
    """A service instance (managed or user-provided)."""
    name: str
    guid: str = ''
    label: Optional[str] = None
    provider: Optional[str] = None
    version: Optional[str] = None
    plan: Optional[str] = None
    user_provided: bool = False

    @classmethod
    def from_resource(cls, resource: dict) -> 'CloudService':
        entity = _entity(resource)
        plan = _entity(entity.get('service_plan') or {})
        offering = _entity(plan.get('service') or {})
        return cls(
            name=entity.get('name', ''),
            guid=_meta(resource).get('guid', ''),
            label=offering.get('label'),
            provider=offering.get('provider'),
            version=offering.get('version'),
            plan=plan.get('name'),
            user_provided=entity.get('type') == 'user_provided_service_instance',
        )


@dataclass(frozen=True)
class CloudServicePlan:
    name: str
    guid: str = ''
    description: str = ''
    free: bool = True

    @classmethod
    def from_resource(cls, resource: dict) -> 'CloudServicePlan':
        entity = _entity(resource)
        return cls(
            name=entity.get('name', ''),
            guid=_meta(resource).get('guid', ''),
            description=entity.get('description') or '',
            free=bool(entity.get('free', True)),
        )


@dataclass
class CloudServiceOffering:
    """A service offering from the marketplace, with its plans."""
    label: str
    guid: str = ''
    provider: Optional[str] = None
    version: Optional[str] = None
    description: str = ''
    active: bool = True
    plans: list[CloudServicePlan] = field(default_factory=list)

    @classmethod
    def from_resource(cls, resource: dict) -> 'CloudServiceOffering':
        entity = _entity(resource)
        return cls(
            label=entity.get('label', ''),
            guid=_meta(resource).get('guid', ''),
            provider=entity.get('provider'),
            version=entity.get('version'),
            description=entity.get('description') or '',
            active=bool(entity.get('active', True)),
            plans=[CloudServicePlan.from_resource(p) for p in entity.get('service_plans') or []],
        )


@dataclass(frozen=True)
class CloudServiceBroker:
    name: str
    url: str = ''
    username: str = ''
    guid: str = ''

    @classmethod
    def from_resource(cls, resource: dict) -> 'CloudServiceBroker':
        entity = _entity(resource)
        return cls(
            name=entity.get('name', ''),
            url=entity.get('broker_url') or '',
            username=entity.get('auth_username') or '',
            guid=_meta(resource).get('guid', ''),
        )


@dataclass(frozen=True)
class CloudDomain:
    """A shared or private domain."""
    name: str
    guid: str = ''
    owner: Optional[CloudOrganization] = None

    @property
    def shared(self) -> bool:
        return self.owner is None

    @classmethod
    def from_resource(cls, resource: dict) -> 'CloudDomain':
        entity = _entity(resource)
        owner = None
        if entity.get('owning_organization_guid'):
            owner = CloudOrganization(name='', guid=entity['owning_organization_guid'])
        return cls(name=entity.get('name', ''), guid=_meta(resource).get('guid', ''), owner=owner)


@dataclass(frozen=True)
class CloudRoute:
    """A host + domain pair, bound to zero or more applications."""
    host: str
    domain: CloudDomain
    guid: str = ''
    app_count: int = 0

    @property
    def name(self) -> str:
        return f"{self.host}.{self.domain.name}" if self.host else self.domain.name

    @property
    def in_use(self) -> bool:
        return self.app_count > 0

    @classmethod
    def from_resource(cls, resource: dict, domain: CloudDomain, app_count: int = 0) -> 'CloudRoute':
        return cls(
            host=_entity(resource).get('host', ''),
            domain=domain,
            guid=_meta(resource).get('guid', ''),
            app_count=app_count,
        )


@dataclass(frozen=True)
class CloudStack:
    name: str
    guid: str = ''
    description: str = ''

    @classmethod
    def from_resource(cls, resource: dict) -> 'CloudStack':
        entity = _entity(resource)
        return cls(
            name=entity.get('name', ''),
            guid=_meta(resource).get('guid', ''),
            description=entity.get('description') or '',
        )


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NANOS_PER_SECOND = 1_000_000_000


def to_nanos(moment: datetime) -> int:
    """Nanoseconds since the epoch for an aware datetime, without float rounding."""
    delta = moment - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * _NANOS_PER_SECOND + delta.microseconds * 1000


def from_nanos(nanos: int) -> datetime:
    """Aware UTC datetime for nanoseconds since the epoch (truncated to microseconds)."""
    return _EPOCH + timedelta(microseconds=nanos // 1000)


@dataclass(frozen=True, order=True)
class ApplicationLog:
    """A single log line emitted by an application instance.

    Orders by the envelope's integer nanosecond timestamp; ties keep arrival
    order when sorted stably.
    """
    timestamp_ns: int
    app_id: str = field(compare=False)
    message: str = field(compare=False)
    message_type: str = field(default='STDOUT', compare=False)  # STDOUT or STDERR
    source_name: str = field(default='', compare=False)  # e.g., APP/PROC/WEB
    source_id: str = field(default='', compare=False)  # instance index

    @property
    def timestamp(self) -> datetime:
        return from_nanos(self.timestamp_ns)

    @classmethod
    def from_envelope(cls, envelope: dict, payload: str) -> 'ApplicationLog':
        """Build from a log-cache envelope with an already decoded payload."""
        log = envelope.get('log') or {}
        tags = envelope.get('tags') or {}
        return cls(
            timestamp_ns=int(envelope.get('timestamp') or 0),
            app_id=envelope.get('source_id', ''),
            message=payload,
            message_type='STDERR' if log.get('type') == 'ERR' else 'STDOUT',
            source_name=tags.get('source_type', ''),
            source_id=str(envelope.get('instance_id', '')),
        )


@dataclass(frozen=True)
class RestLogEntry:
    """One HTTP exchange with the controller, passed to REST log listeners."""
    method: str
    url: str
    status: int
    message: str = ''


def entity_of(resource: dict) -> dict[str, Any]:
    return _entity(resource)


def guid_of(resource: dict) -> str:
    return _meta(resource).get('guid', '')
