"""Client library for the cloud controller API.

CloudFoundryClient is the entry point; it forwards to CloudControllerClient,
which performs the HTTP calls.
"""

from cloud.client import ClientConfig, CloudFoundryClient
from cloud.controller import CloudControllerClient, create_controller
from cloud.domain import (
    ApplicationLog,
    CloudApplication,
    CloudCredentials,
    CloudDomain,
    CloudInfo,
    CloudOrganization,
    CloudRoute,
    CloudService,
    CloudSpace,
    HttpProxyConfiguration,
    InstanceInfo,
    InstancesInfo,
    Staging,
)
from cloud.errors import (
    CloudError,
    ConfigurationError,
    InvalidArgumentError,
    RemoteApiError,
    ResourceNotFoundError,
    RouteCleanupError,
    TransportError,
)
from cloud.logs import ApplicationLogListener, LogStreamState, StreamingLogToken

__all__ = [
    # Client
    "ClientConfig",
    "CloudFoundryClient",
    "CloudControllerClient",
    "create_controller",
    # Domain
    "ApplicationLog",
    "CloudApplication",
    "CloudCredentials",
    "CloudDomain",
    "CloudInfo",
    "CloudOrganization",
    "CloudRoute",
    "CloudService",
    "CloudSpace",
    "HttpProxyConfiguration",
    "InstanceInfo",
    "InstancesInfo",
    "Staging",
    # Errors
    "CloudError",
    "ConfigurationError",
    "InvalidArgumentError",
    "RemoteApiError",
    "ResourceNotFoundError",
    "RouteCleanupError",
    "TransportError",
    # Logs
    "ApplicationLogListener",
    "LogStreamState",
    "StreamingLogToken",
]
