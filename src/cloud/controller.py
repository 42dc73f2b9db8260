"""HTTP client for the cloud controller v2 API.

Performs authenticated calls against the controller and the platform's log
cache. Every failure is classified into the cloud.errors taxonomy; nothing is
retried here.
"""

import base64
import io
import logging
import zipfile
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union

import requests
import urllib3

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
    entity_of,
    guid_of,
)
from cloud.errors import (
    ConfigurationError,
    InvalidArgumentError,
    RemoteApiError,
    ResourceNotFoundError,
    TransportError,
)
from cloud.logs import DEFAULT_POLL_INTERVAL, ApplicationLogListener, LogStream, StreamingLogToken

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
OAUTH_CLIENT_ID = 'cf'
RECENT_LOG_LIMIT = 1000
FILE_CHUNK_SIZE = 64 * 1024


class CloudControllerClient:
    """Authenticated client for the controller API."""

    def __init__(
        self,
        target: str,
        credentials: Optional[CloudCredentials] = None,
        proxy: Optional[HttpProxyConfiguration] = None,
        trust_self_signed_certs: bool = False,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        """Initialize controller client.

        Args:
            target: Controller URL (e.g., https://api.example.com)
            credentials: Email/password or token; None for anonymous access
            proxy: HTTP proxy for all requests
            trust_self_signed_certs: Skip TLS certificate verification
            timeout: Per-request timeout in seconds
        """
        self.target = target.rstrip('/')
        self.credentials = credentials
        self.proxy = proxy
        self.trust_self_signed_certs = trust_self_signed_certs
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers['Accept'] = 'application/json'
        if trust_self_signed_certs:
            self.session.verify = False
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        if proxy:
            self.session.proxies = {'http': proxy.url, 'https': proxy.url}
        self.session.hooks['response'].append(self._notify_rest_listeners)

        self._token: Optional[str] = None
        self._session_space: Optional[CloudSpace] = None
        self._log_cache_url: Optional[str] = None
        self._rest_listeners: list[Callable[[RestLogEntry], None]] = []

    # -- transport ---------------------------------------------------------

    def _request(
        self,
        method: str,
        url: str,
        authenticated: bool = True,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        data: Optional[dict] = None,
        files: Optional[dict] = None,
        headers: Optional[dict] = None,
        basic_auth: Optional[tuple[str, str]] = None,
        stream: bool = False,
    ) -> requests.Response:
        """Issue a request and classify any failure.

        Raises:
            TransportError: No response was obtained
            ResourceNotFoundError: Response status 404
            RemoteApiError: Any other status >= 400
        """
        if not url.startswith(('http://', 'https://')):
            url = f"{self.target}{url}"

        request_headers = dict(headers or {})
        if authenticated:
            token = self._access_token()
            if token:
                request_headers['Authorization'] = f"bearer {token}"

        logger.debug(f"{method} {url}")
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                data=data,
                files=files,
                headers=request_headers,
                auth=basic_auth,
                timeout=self.timeout,
                stream=stream,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if response.status_code >= 400:
            raise self._error_from_response(response)
        return response

    @staticmethod
    def _error_from_response(response: requests.Response) -> RemoteApiError:
        """Build the classified error for a failed response."""
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        status = response.status_code
        message = response.reason or body.get('error') or f"HTTP {status}"
        description = body.get('description') or body.get('error_description') or ''
        error_code = str(body.get('error_code') or '')

        if status == 404:
            return ResourceNotFoundError(message, description, status_code=status, error_code=error_code)
        return RemoteApiError(status, message, description, error_code)

    def _get(self, path: str, params: Optional[dict] = None, authenticated: bool = True) -> Any:
        return _json(self._request('GET', path, authenticated=authenticated, params=params))

    def _get_all(self, path: str, params: Optional[dict] = None) -> list[dict]:
        """Collect every resource of a paginated v2 listing."""
        resources: list[dict] = []
        url: Optional[str] = path
        while url:
            body = self._get(url, params=params)
            resources.extend(body.get('resources') or [])
            url = body.get('next_url')
            params = None  # next_url already carries the query
        return resources

    def _notify_rest_listeners(self, response, *_args, **_kwargs):
        """requests response hook: report the exchange to registered observers."""
        if not self._rest_listeners:
            return
        entry = RestLogEntry(
            method=response.request.method if response.request is not None else '',
            url=response.url,
            status=response.status_code,
            message=response.reason or '',
        )
        for callback in list(self._rest_listeners):
            callback(entry)

    def register_rest_log_listener(self, callback: Callable[[RestLogEntry], None]) -> None:
        if callback not in self._rest_listeners:
            self._rest_listeners.append(callback)

    def unregister_rest_log_listener(self, callback: Callable[[RestLogEntry], None]) -> None:
        if callback in self._rest_listeners:
            self._rest_listeners.remove(callback)

    # -- authentication ----------------------------------------------------

    def _access_token(self) -> Optional[str]:
        if self.credentials is None:
            return None
        if self.credentials.has_token:
            return self.credentials.token
        if self._token is None:
            self._token = self.login()['access_token']
        return self._token

    def login(self) -> dict:
        """Obtain an access token.

        Token credentials are returned as-is; email/password credentials use
        the OAuth2 password grant against the advertised token endpoint.
        """
        if self.credentials is None:
            raise ConfigurationError("No credentials configured for login")
        if self.credentials.has_token:
            return {'access_token': self.credentials.token, 'token_type': 'bearer'}

        info = self.get_info()
        endpoint = info.token_endpoint or info.authorization_endpoint
        if not endpoint:
            raise ConfigurationError(f"Controller {self.target} does not advertise a token endpoint")

        logger.debug(f"Logging in as {self.credentials.email} via {endpoint}")
        response = self._request(
            'POST',
            f"{endpoint.rstrip('/')}/oauth/token",
            authenticated=False,
            data={
                'grant_type': 'password',
                'username': self.credentials.email,
                'password': self.credentials.password,
            },
            basic_auth=(OAUTH_CLIENT_ID, ''),
        )
        token = _json(response)
        self._token = token.get('access_token')
        return token

    def logout(self) -> None:
        self._token = None

    # -- info, orgs, spaces ------------------------------------------------

    def get_cloud_controller_url(self) -> str:
        return self.target

    def get_info(self) -> CloudInfo:
        return CloudInfo.from_dict(self._get('/v2/info', authenticated=False))

    @property
    def session_space(self) -> Optional[CloudSpace]:
        return self._session_space

    def use_space(self, space: CloudSpace) -> None:
        """Scope subsequent calls to a resolved space."""
        if not space.guid:
            raise ConfigurationError(f"Space '{space.name}' has no guid")
        self._session_space = space

    def _space_guid(self) -> str:
        if self._session_space is None:
            raise ConfigurationError("No session space: configure an org and space for this client")
        return self._session_space.guid

    def _org_guid(self) -> str:
        space = self._session_space
        if space is None or space.organization is None or not space.organization.guid:
            raise ConfigurationError("No session organization: configure an org and space for this client")
        return space.organization.guid

    def find_space(self, org_name: str, space_name: str) -> CloudSpace:
        """Resolve org and space names to a CloudSpace.

        Raises:
            ResourceNotFoundError: Either name does not exist
        """
        orgs = self._get_all('/v2/organizations', {'q': f'name:{org_name}'})
        if not orgs:
            raise ResourceNotFoundError(f"Organization '{org_name}' not found")
        org = CloudOrganization.from_resource(orgs[0])

        spaces = self._get_all(f'/v2/organizations/{org.guid}/spaces', {'q': f'name:{space_name}'})
        if not spaces:
            raise ResourceNotFoundError(f"Space '{space_name}' not found in organization '{org_name}'")
        return CloudSpace.from_resource(spaces[0], organization=org)

    def get_organizations(self) -> list[CloudOrganization]:
        return [CloudOrganization.from_resource(r) for r in self._get_all('/v2/organizations')]

    def get_spaces(self) -> list[CloudSpace]:
        resources = self._get_all('/v2/spaces', {'inline-relations-depth': 1})
        return [CloudSpace.from_resource(r) for r in resources]

    # -- applications ------------------------------------------------------

    def _find_application_resource(self, app_name: str) -> dict:
        resources = self._get_all(
            f'/v2/spaces/{self._space_guid()}/apps',
            {'q': f'name:{app_name}', 'inline-relations-depth': 1},
        )
        if not resources:
            raise ResourceNotFoundError(f"Application '{app_name}' not found")
        return resources[0]

    def _app_guid(self, app_name: str) -> str:
        return guid_of(self._find_application_resource(app_name))

    def _to_application(self, resource: dict) -> CloudApplication:
        app = CloudApplication.from_resource(resource)
        app.uris = self._app_uris(app.guid)
        app.services = self._app_service_names(app.guid)
        return app

    def _app_uris(self, app_guid: str) -> list[str]:
        uris = []
        for route in self._get_all(f'/v2/apps/{app_guid}/routes', {'inline-relations-depth': 1}):
            entity = entity_of(route)
            domain = entity_of(entity.get('domain') or {}).get('name', '')
            host = entity.get('host', '')
            uris.append(f"{host}.{domain}" if host else domain)
        return uris

    def _app_service_names(self, app_guid: str) -> list[str]:
        names = []
        for binding in self._get_all(f'/v2/apps/{app_guid}/service_bindings', {'inline-relations-depth': 1}):
            instance = entity_of(entity_of(binding).get('service_instance') or {})
            if instance.get('name'):
                names.append(instance['name'])
        return names

    def get_applications(self) -> list[CloudApplication]:
        resources = self._get_all(f'/v2/spaces/{self._space_guid()}/apps', {'inline-relations-depth': 1})
        return [self._to_application(r) for r in resources]

    def get_application(self, app_name: str) -> CloudApplication:
        return self._to_application(self._find_application_resource(app_name))

    def get_application_by_guid(self, app_guid: str) -> CloudApplication:
        return self._to_application(self._get(f'/v2/apps/{app_guid}', {'inline-relations-depth': 1}))

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
        """Create a stopped application, map its URIs and bind its services."""
        body: dict[str, Any] = {
            'name': app_name,
            'space_guid': self._space_guid(),
            'memory': memory,
            'instances': instances,
            'state': 'STOPPED',
        }
        if disk_quota is not None:
            body['disk_quota'] = disk_quota
        body.update(self._staging_fields(staging))

        resource = _json(self._request('POST', '/v2/apps', json=body))
        app_guid = guid_of(resource)
        logger.debug(f"Created application {app_name} ({app_guid})")

        if uris:
            self._map_uris(app_guid, uris)
        for service_name in service_names or []:
            self._bind(app_guid, service_name)
        return CloudApplication.from_resource(resource)

    def _staging_fields(self, staging: Staging) -> dict:
        fields: dict[str, Any] = {}
        if staging.buildpack is not None:
            fields['buildpack'] = staging.buildpack
        if staging.command is not None:
            fields['command'] = staging.command
        if staging.health_check_timeout is not None:
            fields['health_check_timeout'] = staging.health_check_timeout
        if staging.stack is not None:
            stack = self.get_stack(staging.stack)
            if stack is None:
                raise ResourceNotFoundError(f"Stack '{staging.stack}' not found")
            fields['stack_guid'] = stack.guid
        return fields

    def upload_application(self, app_name: str, path: Union[str, Path]) -> None:
        """Upload application bits from a directory, a zip archive or a single file."""
        path = Path(path)
        if not path.exists():
            raise InvalidArgumentError(f"Application path {path} does not exist")
        app_guid = self._app_guid(app_name)
        archive = _build_archive(path)
        logger.debug(f"Uploading {len(archive)} bytes for {app_name}")
        self._request(
            'PUT',
            f'/v2/apps/{app_guid}/bits',
            data={'resources': '[]'},
            files={'application': ('application.zip', archive, 'application/zip')},
        )

    def _update_application(self, app_name: str, fields: dict) -> None:
        self._request('PUT', f'/v2/apps/{self._app_guid(app_name)}', json=fields)

    def start_application(self, app_name: str) -> None:
        self._update_application(app_name, {'state': 'STARTED'})

    def stop_application(self, app_name: str) -> None:
        self._update_application(app_name, {'state': 'STOPPED'})

    def restart_application(self, app_name: str) -> None:
        self.stop_application(app_name)
        self.start_application(app_name)

    def delete_application(self, app_name: str) -> None:
        app_guid = self._app_guid(app_name)
        self._request('DELETE', f'/v2/apps/{app_guid}', params={'recursive': 'true'})

    def delete_all_applications(self) -> None:
        for app in self.get_applications():
            self.delete_application(app.name)

    def rename(self, app_name: str, new_name: str) -> None:
        self._update_application(app_name, {'name': new_name})

    def update_application_memory(self, app_name: str, memory: int) -> None:
        self._update_application(app_name, {'memory': memory})

    def update_application_disk_quota(self, app_name: str, disk_quota: int) -> None:
        self._update_application(app_name, {'disk_quota': disk_quota})

    def update_application_instances(self, app_name: str, instances: int) -> None:
        self._update_application(app_name, {'instances': instances})

    def update_application_staging(self, app_name: str, staging: Staging) -> None:
        self._update_application(app_name, self._staging_fields(staging))

    def update_application_env(self, app_name: str, env: Union[dict, list]) -> None:
        """Replace the application's environment.

        Accepts a mapping or a list of 'KEY=VALUE' strings.
        """
        if isinstance(env, list):
            pairs = {}
            for item in env:
                if '=' not in item:
                    raise InvalidArgumentError(f"Invalid environment entry '{item}'. Expected KEY=VALUE")
                key, value = item.split('=', 1)
                pairs[key] = value
            env = pairs
        self._update_application(app_name, {'environment_json': env})

    def update_application_services(self, app_name: str, services: list[str]) -> None:
        app = self.get_application(app_name)
        for name in services:
            if name not in app.services:
                self._bind(app.guid, name)
        for name in app.services:
            if name not in services:
                self._unbind(app.guid, name)

    def update_application_uris(self, app_name: str, uris: list[str]) -> None:
        app = self.get_application(app_name)
        self._map_uris(app.guid, [u for u in uris if u not in app.uris])
        removed = [u for u in app.uris if u not in uris]
        if removed:
            domains = self.get_domains()
            for uri in removed:
                host, domain = _split_uri(uri, domains)
                route_guid = self._find_route_guid(host, domain)
                if route_guid:
                    self._request('DELETE', f'/v2/apps/{app.guid}/routes/{route_guid}')

    def _map_uris(self, app_guid: str, uris: list[str]) -> None:
        if not uris:
            return
        domains = self.get_domains()
        for uri in uris:
            host, domain = _split_uri(uri, domains)
            route_guid = self._find_route_guid(host, domain) or self._create_route(host, domain)
            self._request('PUT', f'/v2/apps/{app_guid}/routes/{route_guid}')

    def get_application_instances(self, app_name: str) -> InstancesInfo:
        app_guid = self._app_guid(app_name)
        return InstancesInfo.from_dict(self._get(f'/v2/apps/{app_guid}/instances'))

    def get_application_stats(self, app_name: str) -> list[InstanceStats]:
        app_guid = self._app_guid(app_name)
        data = self._get(f'/v2/apps/{app_guid}/stats') or {}
        return sorted((InstanceStats.from_dict(i, s) for i, s in data.items()), key=lambda s: s.index)

    def get_crashes(self, app_name: str) -> list[CrashInfo]:
        app_guid = self._app_guid(app_name)
        crashes = []
        for item in self._get(f'/v2/apps/{app_guid}/crashes') or []:
            since = item.get('since')
            crashes.append(CrashInfo(
                instance=item.get('instance', ''),
                since=datetime.fromtimestamp(since) if since else None,
            ))
        return crashes

    # -- services ----------------------------------------------------------

    def _service_resources(self, name: Optional[str] = None) -> list[dict]:
        params: dict[str, Any] = {'return_user_provided_service_instances': 'true', 'inline-relations-depth': 2}
        if name is not None:
            params['q'] = f'name:{name}'
        return self._get_all(f'/v2/spaces/{self._space_guid()}/service_instances', params)

    def _find_service_resource(self, service_name: str) -> dict:
        resources = self._service_resources(service_name)
        if not resources:
            raise ResourceNotFoundError(f"Service '{service_name}' not found")
        return resources[0]

    def get_services(self) -> list[CloudService]:
        return [CloudService.from_resource(r) for r in self._service_resources()]

    def get_service(self, service_name: str) -> CloudService:
        return CloudService.from_resource(self._find_service_resource(service_name))

    def create_service(self, service: CloudService) -> None:
        """Provision a managed service instance from its offering label and plan."""
        if not service.label or not service.plan:
            raise InvalidArgumentError(f"Service '{service.name}' needs a label and a plan")

        for offering in self.get_service_offerings():
            if offering.label != service.label:
                continue
            if service.provider and offering.provider != service.provider:
                continue
            if service.version and offering.version != service.version:
                continue
            for plan in offering.plans:
                if plan.name == service.plan:
                    self._request('POST', '/v2/service_instances', json={
                        'name': service.name,
                        'space_guid': self._space_guid(),
                        'service_plan_guid': plan.guid,
                    })
                    return
            raise ResourceNotFoundError(f"Plan '{service.plan}' not found for service '{service.label}'")
        raise ResourceNotFoundError(f"Service offering '{service.label}' not found")

    def create_user_provided_service(
        self,
        service: CloudService,
        credentials: dict,
        syslog_drain_url: Optional[str] = None,
    ) -> None:
        body: dict[str, Any] = {
            'name': service.name,
            'space_guid': self._space_guid(),
            'credentials': credentials,
        }
        if syslog_drain_url:
            body['syslog_drain_url'] = syslog_drain_url
        self._request('POST', '/v2/user_provided_service_instances', json=body)

    def delete_service(self, service_name: str) -> None:
        """Delete a service instance.

        Raises:
            ResourceNotFoundError: No service with that name in the space
        """
        resource = self._find_service_resource(service_name)
        if entity_of(resource).get('type') == 'user_provided_service_instance':
            path = '/v2/user_provided_service_instances'
        else:
            path = '/v2/service_instances'
        self._request('DELETE', f'{path}/{guid_of(resource)}')

    def delete_all_services(self) -> None:
        for service in self.get_services():
            self.delete_service(service.name)

    def get_service_offerings(self) -> list[CloudServiceOffering]:
        resources = self._get_all('/v2/services', {'inline-relations-depth': 1})
        return [CloudServiceOffering.from_resource(r) for r in resources]

    def get_service_brokers(self) -> list[CloudServiceBroker]:
        return [CloudServiceBroker.from_resource(r) for r in self._get_all('/v2/service_brokers')]

    def bind_service(self, app_name: str, service_name: str) -> None:
        self._bind(self._app_guid(app_name), service_name)

    def unbind_service(self, app_name: str, service_name: str) -> None:
        self._unbind(self._app_guid(app_name), service_name)

    def _bind(self, app_guid: str, service_name: str) -> None:
        service_guid = guid_of(self._find_service_resource(service_name))
        self._request('POST', '/v2/service_bindings', json={
            'app_guid': app_guid,
            'service_instance_guid': service_guid,
        })

    def _unbind(self, app_guid: str, service_name: str) -> None:
        service_guid = guid_of(self._find_service_resource(service_name))
        for binding in self._get_all(f'/v2/apps/{app_guid}/service_bindings'):
            if entity_of(binding).get('service_instance_guid') == service_guid:
                self._request('DELETE', f'/v2/service_bindings/{guid_of(binding)}')

    # -- stacks ------------------------------------------------------------

    def get_stacks(self) -> list[CloudStack]:
        return [CloudStack.from_resource(r) for r in self._get_all('/v2/stacks')]

    def get_stack(self, name: str) -> Optional[CloudStack]:
        resources = self._get_all('/v2/stacks', {'q': f'name:{name}'})
        return CloudStack.from_resource(resources[0]) if resources else None

    # -- domains -----------------------------------------------------------

    def get_shared_domains(self) -> list[CloudDomain]:
        return [CloudDomain.from_resource(r) for r in self._get_all('/v2/shared_domains')]

    def get_private_domains(self) -> list[CloudDomain]:
        return [CloudDomain.from_resource(r) for r in self._get_all('/v2/private_domains')]

    def get_domains_for_org(self) -> list[CloudDomain]:
        """Shared domains plus the session organization's private domains."""
        private = self._get_all(f'/v2/organizations/{self._org_guid()}/private_domains')
        return self.get_shared_domains() + [CloudDomain.from_resource(r) for r in private]

    def get_domains(self) -> list[CloudDomain]:
        return self.get_domains_for_org() if self._session_space else (
            self.get_shared_domains() + self.get_private_domains()
        )

    def get_default_domain(self) -> Optional[CloudDomain]:
        shared = self.get_shared_domains()
        return shared[0] if shared else None

    def _find_domain(self, domain_name: str) -> CloudDomain:
        for domain in self.get_domains():
            if domain.name == domain_name:
                return domain
        raise ResourceNotFoundError(f"Domain '{domain_name}' not found")

    def add_domain(self, domain_name: str) -> None:
        """Create a private domain owned by the session organization (no-op if present)."""
        for domain in self.get_domains_for_org():
            if domain.name == domain_name:
                logger.debug(f"Domain {domain_name} already exists")
                return
        self._request('POST', '/v2/private_domains', json={
            'name': domain_name,
            'owning_organization_guid': self._org_guid(),
        })

    def delete_domain(self, domain_name: str) -> None:
        """Delete a private domain that has no routes."""
        domain = self._find_domain(domain_name)
        if domain.shared:
            raise InvalidArgumentError(f"Domain '{domain_name}' is shared and cannot be deleted")
        routes = self.get_routes(domain_name)
        if routes:
            raise InvalidArgumentError(
                f"Unable to remove domain that is in use -- it has {len(routes)} routes"
            )
        self._request('DELETE', f'/v2/private_domains/{domain.guid}')

    # -- routes ------------------------------------------------------------

    def _route_app_count(self, route_guid: str) -> int:
        body = self._get(f'/v2/routes/{route_guid}/apps', {'results-per-page': 1})
        return int(body.get('total_results') or 0)

    def _find_route_guid(self, host: str, domain: CloudDomain) -> Optional[str]:
        resources = self._get_all('/v2/routes', {'q': [f'host:{host}', f'domain_guid:{domain.guid}']})
        return guid_of(resources[0]) if resources else None

    def _create_route(self, host: str, domain: CloudDomain) -> str:
        response = self._request('POST', '/v2/routes', json={
            'host': host,
            'domain_guid': domain.guid,
            'space_guid': self._space_guid(),
        })
        return guid_of(_json(response))

    def get_routes(self, domain_name: str) -> list[CloudRoute]:
        domain = self._find_domain(domain_name)
        resources = self._get_all(
            f'/v2/spaces/{self._space_guid()}/routes',
            {'q': f'domain_guid:{domain.guid}'},
        )
        return [
            CloudRoute.from_resource(r, domain, app_count=self._route_app_count(guid_of(r)))
            for r in resources
        ]

    def add_route(self, host: str, domain_name: str) -> None:
        domain = self._find_domain(domain_name)
        if self._find_route_guid(host, domain):
            logger.debug(f"Route {host}.{domain_name} already exists")
            return
        self._create_route(host, domain)

    def delete_route(self, host: str, domain_name: str) -> None:
        domain = self._find_domain(domain_name)
        route_guid = self._find_route_guid(host, domain)
        if route_guid is None:
            raise ResourceNotFoundError(f"Route '{host}.{domain_name}' not found")
        self.delete_route_by_guid(route_guid)

    def delete_route_by_guid(self, route_guid: str) -> None:
        self._request('DELETE', f'/v2/routes/{route_guid}')

    def get_orphaned_routes(self) -> list[CloudRoute]:
        """Routes in the session space not bound to any application."""
        orphans = []
        for domain in self.get_domains_for_org():
            orphans.extend(r for r in self.get_routes(domain.name) if not r.in_use)
        return orphans

    # -- files -------------------------------------------------------------

    def _file_url(self, app_name: str, instance_index: int, file_path: str) -> str:
        app_guid = self._app_guid(app_name)
        return f'/v2/apps/{app_guid}/instances/{instance_index}/files/{file_path.lstrip("/")}'

    def get_file(self, app_name: str, instance_index: int, file_path: str, start: int, end: int) -> bytes:
        """Read a file from an application instance, as raw bytes.

        Args:
            start: First byte (0 for whole file), or -1 for a tail read
            end: Last byte inclusive, -1 for end of file, or the tail length
                when start is -1
        """
        headers = {}
        byte_range = file_range_header(start, end)
        if byte_range:
            headers['Range'] = byte_range
        response = self._request('GET', self._file_url(app_name, instance_index, file_path), headers=headers)
        return response.content

    def open_file(
        self,
        app_name: str,
        instance_index: int,
        file_path: str,
        callback: Callable[[Iterator[bytes]], Any],
        chunk_size: int = FILE_CHUNK_SIZE,
    ) -> Any:
        """Stream a file from an application instance through a callback.

        The callback receives an iterator of byte chunks while the response is
        open; the response is closed when it returns. Returns what the
        callback returns.
        """
        response = self._request('GET', self._file_url(app_name, instance_index, file_path), stream=True)
        try:
            return callback(response.iter_content(chunk_size=chunk_size))
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Reading {file_path} from {app_name}/{instance_index} failed: {e}") from e
        finally:
            response.close()

    # -- logs --------------------------------------------------------------

    def _log_cache(self) -> str:
        if self._log_cache_url is None:
            links = (self._get('/', authenticated=False) or {}).get('links') or {}
            href = (links.get('log_cache') or {}).get('href')
            if not href:
                raise ConfigurationError(f"Controller {self.target} does not advertise a log cache endpoint")
            self._log_cache_url = href.rstrip('/')
        return self._log_cache_url

    def read_logs(
        self,
        app_guid: str,
        start_time: Optional[int] = None,
        limit: int = RECENT_LOG_LIMIT,
        descending: bool = False,
    ) -> list[ApplicationLog]:
        """Read log envelopes for an application from the log cache.

        Args:
            start_time: Nanoseconds since the epoch; entries at or after it
        """
        params: dict[str, Any] = {'envelope_types': 'LOG', 'limit': limit}
        if start_time is not None:
            params['start_time'] = start_time
        if descending:
            params['descending'] = 'true'

        body = self._get(f'{self._log_cache()}/api/v1/read/{app_guid}', params)
        entries = []
        for envelope in ((body or {}).get('envelopes') or {}).get('batch') or []:
            payload = (envelope.get('log') or {}).get('payload', '')
            try:
                text = base64.b64decode(payload).decode('utf-8', errors='replace') if payload else ''
            except ValueError as e:
                raise RemoteApiError(200, 'Invalid response body', f"Undecodable log payload: {e}") from e
            entries.append(ApplicationLog.from_envelope(envelope, text))
        return entries

    def get_recent_logs(self, app_name: str) -> list[ApplicationLog]:
        """Recent log history in timestamp order."""
        newest_first = self.read_logs(self._app_guid(app_name), descending=True)
        # Reverse before the stable sort so equal timestamps keep arrival order
        return sorted(reversed(newest_first))

    def stream_logs(
        self,
        app_name: str,
        listener: ApplicationLogListener,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> StreamingLogToken:
        app_guid = self._app_guid(app_name)
        stream = LogStream(
            fetch=lambda since: self.read_logs(app_guid, since),
            listener=listener,
            poll_interval=poll_interval,
            name=f'logs-{app_name}',
        )
        return stream.start()


def _json(response: requests.Response) -> Any:
    """Decode a successful response body, classifying a non-JSON body."""
    try:
        return response.json()
    except ValueError as e:
        content_type = response.headers.get('Content-Type', 'unknown content type')
        raise RemoteApiError(
            response.status_code,
            'Invalid response body',
            f"Expected JSON from {response.url}, got {content_type}",
        ) from e


def file_range_header(start: int, end: int) -> Optional[str]:
    """Map a (start, end) file request to an HTTP Range header value.

    start=-1 means "last `end` bytes"; end=-1 means "to end of file".
    """
    if start == -1:
        return f"bytes=-{end}"
    if end == -1:
        return f"bytes={start}-" if start > 0 else None
    return f"bytes={start}-{end}"


def _split_uri(uri: str, domains: list[CloudDomain]) -> tuple[str, CloudDomain]:
    """Split 'host.domain' using the longest matching known domain."""
    uri = uri.split('://', 1)[-1].rstrip('/')
    for domain in sorted(domains, key=lambda d: len(d.name), reverse=True):
        if uri == domain.name:
            return '', domain
        if uri.endswith(f".{domain.name}"):
            return uri[:-(len(domain.name) + 1)], domain
    raise InvalidArgumentError(f"Domain not found for URI {uri}")


def _build_archive(path: Path) -> bytes:
    """Zip a directory or single file; pass an existing zip through."""
    if path.is_file() and zipfile.is_zipfile(path):
        return path.read_bytes()

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as archive:
        if path.is_dir():
            for item in sorted(path.rglob('*')):
                if item.is_file():
                    archive.write(item, item.relative_to(path).as_posix())
        else:
            archive.write(path, path.name)
    return buffer.getvalue()


def create_controller(config) -> CloudControllerClient:
    """Build the default controller client for a ClientConfig."""
    return CloudControllerClient(
        config.target,
        credentials=config.credentials,
        proxy=config.proxy,
        trust_self_signed_certs=config.trust_self_signed_certs,
        timeout=config.timeout,
    )
