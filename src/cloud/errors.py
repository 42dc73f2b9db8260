"""Error taxonomy for the cloud controller client.

Callers distinguish failures by type:
- ConfigurationError: bad construction input
- InvalidArgumentError: caller-supplied parameter rejected before any remote call
- ResourceNotFoundError: remote reports the named thing does not exist
- RemoteApiError: any other non-2xx response
- TransportError: no response obtained (connect, TLS, timeout)
"""

from typing import Optional


class CloudError(Exception):
    """Base exception for cloud client errors."""


class ConfigurationError(CloudError):
    """Invalid or missing client configuration."""


class InvalidArgumentError(CloudError, ValueError):
    """Caller-supplied parameter violates a precondition."""


class RemoteApiError(CloudError):
    """Non-2xx response from the remote API.

    Attributes:
        status_code: HTTP status returned by the remote API
        message: Short message (HTTP reason or remote error title)
        description: Remote-provided description, verbatim
        error_code: Remote error code (e.g., CF-AppNotFound), may be empty
    """

    def __init__(self, status_code: int, message: str, description: str = '', error_code: str = ''):
        self.status_code = status_code
        self.message = message
        self.description = description
        self.error_code = error_code
        super().__init__(f"{status_code} {message}" + (f": {description}" if description else ''))


class ResourceNotFoundError(RemoteApiError):
    """Remote API reports the requested resource does not exist."""

    def __init__(self, message: str, description: str = '', status_code: int = 404, error_code: str = ''):
        super().__init__(status_code, message, description, error_code)


class TransportError(CloudError):
    """Connectivity, TLS or timeout failure before a response was received."""


class RouteCleanupError(CloudError):
    """Orphaned route deletion stopped at the first failure.

    Attributes:
        deleted: Routes deleted before the failure
        route: Route whose deletion failed
        cause: Classified error raised for that route
    """

    def __init__(self, deleted: list, route, cause: Optional[CloudError]):
        self.deleted = deleted
        self.route = route
        self.cause = cause
        super().__init__(
            f"Failed to delete route '{getattr(route, 'name', route)}' "
            f"after deleting {len(deleted)} route(s): {cause}"
        )
