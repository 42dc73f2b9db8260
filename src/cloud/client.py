"""Client façade over the cloud controller.

CloudFoundryClient presents one stable operation set built from a single
ClientConfig. It validates arguments, applies small policies (file ranges,
memoized platform info, fail-fast route cleanup) and forwards everything
else to the controller client unchanged.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union

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
    CloudServiceBroker,
    CloudServiceOffering,
    CloudSpace,
    CloudStack,
    CrashInfo,
    HttpProxyConfiguration,
    InstancesInfo,
    InstanceStats,
    RestLogEntry,
    Staging,
)
from cloud.errors import CloudError, ConfigurationError, InvalidArgumentError, RouteCleanupError
from cloud.logs import ApplicationLogListener, StreamingLogToken

logger = logging.getLogger(__name__)


@dataclass
class ClientConfig:
    """Everything needed to build a client.

    Scope is either a pre-resolved session_space or an org_name/space_name
    pair, never both.
    """
    target: str = ''
    credentials: Optional[CloudCredentials] = None
    session_space: Optional[CloudSpace] = None
    org_name: Optional[str] = None
    space_name: Optional[str] = None
    proxy: Optional[HttpProxyConfiguration] = None
    trust_self_signed_certs: bool = False
    timeout: int = 30

    def validate(self) -> None:
        """Raise ConfigurationError if the configuration cannot produce a client."""
        if not self.target:
            raise ConfigurationError("URL for cloud controller cannot be empty")
        if self.session_space is not None and (self.org_name or self.space_name):
            raise ConfigurationError("Use either session_space or org_name/space_name, not both")
        if bool(self.org_name) != bool(self.space_name):
            raise ConfigurationError("org_name and space_name must be given together")
        if self.org_name and self.credentials is None:
            raise ConfigurationError("Resolving an org and space requires credentials")


class CloudFoundryClient:
    """Typed operations against a cloud controller."""

    def __init__(self, config: ClientConfig, controller: Optional[CloudControllerClient] = None):
        """Build a client.

        Args:
            config: Target, credentials, scope, proxy and TLS settings
            controller: Pre-built controller client (default: built from config)

        Raises:
            ConfigurationError: Invalid config
            ResourceNotFoundError: org_name or space_name does not exist
        """
        config.validate()
        self.config = config
        self.cc = controller or create_controller(config)
        self._info: Optional[CloudInfo] = None
        self._info_lock = threading.Lock()
        self._streams: list[StreamingLogToken] = []
        self._streams_lock = threading.Lock()

        if config.session_space is not None:
            self.cc.use_space(config.session_space)
        elif config.org_name:
            logger.debug(f"Resolving org '{config.org_name}' space '{config.space_name}'")
            self.cc.use_space(self.cc.find_space(config.org_name, config.space_name))

    # -- session -----------------------------------------------------------

    def get_cloud_controller_url(self) -> str:
        return self.cc.get_cloud_controller_url()

    def get_cloud_info(self) -> CloudInfo:
        """Platform metadata, fetched on first call and kept for the client's lifetime."""
        if self._info is None:
            info = self.cc.get_info()
            # Concurrent first calls may both fetch; the first stored value wins
            with self._info_lock:
                if self._info is None:
                    self._info = info
        return self._info

    @property
    def session_space(self) -> Optional[CloudSpace]:
        return self.cc.session_space

    def login(self) -> dict:
        return self.cc.login()

    def logout(self) -> None:
        """Forget the access token and cancel log streams started by this client."""
        with self._streams_lock:
            streams, self._streams = self._streams, []
        for token in streams:
            token.cancel()
        self.cc.logout()

    def get_organizations(self) -> list[CloudOrganization]:
        return self.cc.get_organizations()

    def get_spaces(self) -> list[CloudSpace]:
        return self.cc.get_spaces()

    def register_rest_log_listener(self, callback: Callable[[RestLogEntry], None]) -> None:
        self.cc.register_rest_log_listener(callback)

    def unregister_rest_log_listener(self, callback: Callable[[RestLogEntry], None]) -> None:
        self.cc.unregister_rest_log_listener(callback)

    # -- applications ------------------------------------------------------

    def get_applications(self) -> list[CloudApplication]:
        return self.cc.get_applications()

    def get_application(self, app_name: str) -> CloudApplication:
        return self.cc.get_application(app_name)

    def get_application_by_guid(self, app_guid: str) -> CloudApplication:
        return self.cc.get_application_by_guid(app_guid)

    def get_application_stats(self, app_name: str) -> list[InstanceStats]:
        return self.cc.get_application_stats(app_name)

    def get_application_instances(self, app: Union[str, CloudApplication]) -> InstancesInfo:
        app_name = app.name if isinstance(app, CloudApplication) else app
        return self.cc.get_application_instances(app_name)

    def get_crashes(self, app_name: str) -> list[CrashInfo]:
        return self.cc.get_crashes(app_name)

    def create_application(
        self,
        app_name: str,
        staging: Staging,
        memory: int,
        uris: Optional[list[str]] = None,
        service_names: Optional[list[str]] = None,
        disk_quota: Optional[int] = None,
        instances: int = 1,
    ) -> CloudApplication:
        if memory <= 0:
            raise InvalidArgumentError(f"{memory} is not a valid memory size, it should be 1 or greater.")
        if instances < 0:
            raise InvalidArgumentError(f"{instances} is not a valid instance count.")
        return self.cc.create_application(
            app_name, staging, memory, uris=uris, service_names=service_names,
            disk_quota=disk_quota, instances=instances,
        )

    def upload_application(self, app_name: str, path: Union[str, Path]) -> None:
        self.cc.upload_application(app_name, path)

    def start_application(self, app_name: str) -> None:
        self.cc.start_application(app_name)

    def stop_application(self, app_name: str) -> None:
        self.cc.stop_application(app_name)

    def restart_application(self, app_name: str) -> None:
        self.cc.restart_application(app_name)

    def delete_application(self, app_name: str) -> None:
        self.cc.delete_application(app_name)

    def delete_all_applications(self) -> None:
        self.cc.delete_all_applications()

    def rename(self, app_name: str, new_name: str) -> None:
        self.cc.rename(app_name, new_name)

    def update_application_memory(self, app_name: str, memory: int) -> None:
        self.cc.update_application_memory(app_name, memory)

    def update_application_disk_quota(self, app_name: str, disk_quota: int) -> None:
        self.cc.update_application_disk_quota(app_name, disk_quota)

    def update_application_instances(self, app_name: str, instances: int) -> None:
        if instances < 0:
            raise InvalidArgumentError(f"{instances} is not a valid instance count.")
        self.cc.update_application_instances(app_name, instances)

    def update_application_services(self, app_name: str, services: list[str]) -> None:
        self.cc.update_application_services(app_name, services)

    def update_application_staging(self, app_name: str, staging: Staging) -> None:
        self.cc.update_application_staging(app_name, staging)

    def update_application_uris(self, app_name: str, uris: list[str]) -> None:
        self.cc.update_application_uris(app_name, uris)

    def update_application_env(self, app_name: str, env: Union[dict, list]) -> None:
        self.cc.update_application_env(app_name, env)

    # -- logs --------------------------------------------------------------

    def get_recent_logs(self, app_name: str) -> list[ApplicationLog]:
        """Log entries already produced by the application, oldest first."""
        return self.cc.get_recent_logs(app_name)

    def stream_logs(self, app_name: str, listener: ApplicationLogListener) -> StreamingLogToken:
        """Subscribe a listener to new log entries. Cancel through the returned token."""
        token = self.cc.stream_logs(app_name, listener)
        with self._streams_lock:
            self._streams = [t for t in self._streams if not t.cancelled]
            self._streams.append(token)
        return token

    # -- files -------------------------------------------------------------

    def get_file(
        self,
        app_name: str,
        instance_index: int,
        file_path: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> bytes:
        """Read a file, or a byte range of it, from an application instance.

        Args:
            start: First byte to read (default: beginning of file)
            end: Stop before this byte, exclusive (default: end of file)

        Raises:
            InvalidArgumentError: start < 0, or end <= start
        """
        if start is None and end is None:
            return self.cc.get_file(app_name, instance_index, file_path, 0, -1)

        start = 0 if start is None else start
        if start < 0:
            raise InvalidArgumentError(
                f"{start} is not a valid value for start position, it should be 0 or greater."
            )
        if end is None:
            return self.cc.get_file(app_name, instance_index, file_path, start, -1)
        if end <= start:
            raise InvalidArgumentError(
                f"{end} is not a valid value for end position, it should be greater than "
                f"startPosition which is {start}."
            )
        return self.cc.get_file(app_name, instance_index, file_path, start, end - 1)

    def get_file_tail(self, app_name: str, instance_index: int, file_path: str, length: int) -> bytes:
        """Read the last `length` bytes of a file.

        Raises:
            InvalidArgumentError: length <= 0
        """
        if length <= 0:
            raise InvalidArgumentError(f"{length} is not a valid value for length, it should be 1 or greater.")
        return self.cc.get_file(app_name, instance_index, file_path, -1, length)

    def open_file(
        self,
        app_name: str,
        instance_index: int,
        file_path: str,
        callback: Callable[[Iterator[bytes]], Any],
    ) -> Any:
        """Stream a whole file through `callback`, which receives byte chunks.

        Returns what the callback returns.
        """
        return self.cc.open_file(app_name, instance_index, file_path, callback)

    # -- services ----------------------------------------------------------

    def get_services(self) -> list[CloudService]:
        return self.cc.get_services()

    def get_service(self, service_name: str) -> CloudService:
        return self.cc.get_service(service_name)

    def create_service(self, service: CloudService) -> None:
        self.cc.create_service(service)

    def create_user_provided_service(
        self,
        service: CloudService,
        credentials: dict,
        syslog_drain_url: Optional[str] = None,
    ) -> None:
        self.cc.create_user_provided_service(service, credentials, syslog_drain_url)

    def delete_service(self, service_name: str) -> None:
        """Delete a service instance.

        Raises:
            ResourceNotFoundError: No such service; bulk cleanup callers treat this as a no-op
        """
        self.cc.delete_service(service_name)

    def delete_all_services(self) -> None:
        self.cc.delete_all_services()

    def get_service_offerings(self) -> list[CloudServiceOffering]:
        return self.cc.get_service_offerings()

    def get_service_brokers(self) -> list[CloudServiceBroker]:
        return self.cc.get_service_brokers()

    def bind_service(self, app_name: str, service_name: str) -> None:
        self.cc.bind_service(app_name, service_name)

    def unbind_service(self, app_name: str, service_name: str) -> None:
        self.cc.unbind_service(app_name, service_name)

    # -- stacks, domains, routes -------------------------------------------

    def get_stacks(self) -> list[CloudStack]:
        return self.cc.get_stacks()

    def get_stack(self, name: str) -> Optional[CloudStack]:
        return self.cc.get_stack(name)

    def get_domains(self) -> list[CloudDomain]:
        return self.cc.get_domains()

    def get_domains_for_org(self) -> list[CloudDomain]:
        return self.cc.get_domains_for_org()

    def get_private_domains(self) -> list[CloudDomain]:
        return self.cc.get_private_domains()

    def get_shared_domains(self) -> list[CloudDomain]:
        return self.cc.get_shared_domains()

    def get_default_domain(self) -> Optional[CloudDomain]:
        return self.cc.get_default_domain()

    def add_domain(self, domain_name: str) -> None:
        self.cc.add_domain(domain_name)

    def delete_domain(self, domain_name: str) -> None:
        self.cc.delete_domain(domain_name)

    def get_routes(self, domain_name: str) -> list[CloudRoute]:
        return self.cc.get_routes(domain_name)

    def add_route(self, host: str, domain_name: str) -> None:
        self.cc.add_route(host, domain_name)

    def delete_route(self, host: str, domain_name: str) -> None:
        self.cc.delete_route(host, domain_name)

    def delete_orphaned_routes(self) -> list[CloudRoute]:
        """Delete every route not bound to an application.

        Stops at the first failure. Routes deleted before it are reported on
        the raised RouteCleanupError; the rest are left in place.

        Returns:
            The routes deleted, in deletion order

        Raises:
            RouteCleanupError: A deletion failed
        """
        deleted: list[CloudRoute] = []
        for route in self.cc.get_orphaned_routes():
            logger.debug(f"Deleting orphaned route {route.name}")
            try:
                self.cc.delete_route_by_guid(route.guid)
            except CloudError as e:
                raise RouteCleanupError(deleted, route, e) from e
            deleted.append(route)
        return deleted
