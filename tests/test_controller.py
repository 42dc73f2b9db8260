#!/usr/bin/env python3
"""Tests for cloud/controller.py - the requests-based controller client.

HTTP is never hit: session.request is replaced by a mock returning canned
responses.
"""

import base64
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
import requests
from cloud import (
    CloudCredentials,
    CloudDomain,
    CloudOrganization,
    CloudRoute,
    CloudSpace,
    ConfigurationError,
    HttpProxyConfiguration,
    InvalidArgumentError,
    RemoteApiError,
    ResourceNotFoundError,
    TransportError,
)
from cloud.controller import CloudControllerClient, file_range_header

API = 'https://api.example.com'
SPACE = CloudSpace(name='dev', guid='s1', organization=CloudOrganization(name='acme', guid='o1'))


def _response(status=200, body=None, reason='OK', content=b'', headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.reason = reason
    resp.content = content
    resp.headers = headers or {}
    resp.url = ''
    if isinstance(body, Exception):
        resp.json.side_effect = body
    else:
        resp.json.return_value = body if body is not None else {}
    return resp


def _page(*resources, next_url=None):
    return _response(body={'resources': list(resources), 'next_url': next_url})


def _resource(guid, **entity):
    return {'metadata': {'guid': guid}, 'entity': entity}


@pytest.fixture
def cc():
    """Controller with token credentials, scoped to SPACE, HTTP mocked."""
    client = CloudControllerClient(API, credentials=CloudCredentials(token='tok'))
    client.session.request = MagicMock(name='request')
    client.use_space(SPACE)
    return client


def _calls(cc):
    return cc.session.request.call_args_list


class TestSessionSetup:
    """Test requests.Session configuration."""

    def test_self_signed_disables_verification(self):
        with patch('cloud.controller.urllib3.disable_warnings') as disable:
            client = CloudControllerClient(API, trust_self_signed_certs=True)
        assert client.session.verify is False
        disable.assert_called_once()

    def test_verification_on_by_default(self):
        client = CloudControllerClient(API)
        assert client.session.verify is True

    def test_proxy_applied(self):
        proxy = HttpProxyConfiguration(host='proxy.local', port=3128, username='u', password='p')
        client = CloudControllerClient(API, proxy=proxy)
        assert client.session.proxies['https'] == 'http://u:p@proxy.local:3128'

    def test_trailing_slash_stripped(self):
        assert CloudControllerClient(API + '/').get_cloud_controller_url() == API


class TestErrorClassification:
    """Test _request failure mapping."""

    def test_not_found(self, cc):
        cc.session.request.return_value = _response(
            404, {'description': 'The app could not be found', 'error_code': 'CF-AppNotFound'}, reason='Not Found'
        )
        with pytest.raises(ResourceNotFoundError) as exc_info:
            cc.get_application_by_guid('missing')
        assert exc_info.value.status_code == 404
        assert exc_info.value.description == 'The app could not be found'
        assert exc_info.value.error_code == 'CF-AppNotFound'

    def test_remote_error_keeps_payload(self, cc):
        cc.session.request.return_value = _response(
            400, {'description': 'memory quota exceeded', 'error_code': 'CF-AppMemoryQuotaExceeded'},
            reason='Bad Request',
        )
        with pytest.raises(RemoteApiError) as exc_info:
            cc.get_stacks()
        error = exc_info.value
        assert not isinstance(error, ResourceNotFoundError)
        assert error.status_code == 400
        assert error.message == 'Bad Request'
        assert error.description == 'memory quota exceeded'

    def test_oauth_error_description(self, cc):
        cc.session.request.return_value = _response(
            401, {'error': 'unauthorized', 'error_description': 'Bad credentials'}, reason='Unauthorized'
        )
        with pytest.raises(RemoteApiError) as exc_info:
            cc.get_stacks()
        assert exc_info.value.description == 'Bad credentials'

    def test_non_json_error_body(self, cc):
        cc.session.request.return_value = _response(502, ValueError('no json'), reason='Bad Gateway')
        with pytest.raises(RemoteApiError) as exc_info:
            cc.get_stacks()
        assert exc_info.value.message == 'Bad Gateway'
        assert exc_info.value.description == ''

    def test_non_json_success_body(self, cc):
        """A 200 page from an intercepting proxy is a classified error, not a decode crash."""
        cc.session.request.return_value = _response(
            body=requests.exceptions.JSONDecodeError('Expecting value', '<html>', 0),
            headers={'Content-Type': 'text/html'},
        )
        with pytest.raises(RemoteApiError) as exc_info:
            cc.get_info()
        assert exc_info.value.status_code == 200
        assert exc_info.value.message == 'Invalid response body'
        assert 'text/html' in exc_info.value.description

    def test_non_json_login_body(self):
        client = CloudControllerClient(API, credentials=CloudCredentials(email='dev@example.com', password='pw'))
        client.session.request = MagicMock(side_effect=[
            _response(body={'token_endpoint': 'https://uaa.example.com'}),
            _response(body=ValueError('no json')),
        ])
        with pytest.raises(RemoteApiError):
            client.login()

    def test_transport_failure(self, cc):
        cause = requests.exceptions.ConnectionError('connection refused')
        cc.session.request.side_effect = cause
        with pytest.raises(TransportError) as exc_info:
            cc.get_stacks()
        assert exc_info.value.__cause__ is cause

    def test_timeout_is_transport_failure(self, cc):
        cc.session.request.side_effect = requests.exceptions.Timeout('read timed out')
        with pytest.raises(TransportError):
            cc.get_stacks()

    def test_not_retried(self, cc):
        cc.session.request.return_value = _response(503, {}, reason='Service Unavailable')
        with pytest.raises(RemoteApiError):
            cc.get_stacks()
        assert cc.session.request.call_count == 1


class TestRequests:
    """Test request construction."""

    def test_bearer_token_sent(self, cc):
        cc.session.request.return_value = _page()
        cc.get_stacks()
        assert _calls(cc)[0].kwargs['headers']['Authorization'] == 'bearer tok'

    def test_info_is_unauthenticated(self, cc):
        cc.session.request.return_value = _response(body={'name': 'vcap', 'api_version': '2.150.0'})
        info = cc.get_info()
        assert info.api_version == '2.150.0'
        assert 'Authorization' not in _calls(cc)[0].kwargs['headers']

    def test_pagination_follows_next_url(self, cc):
        cc.session.request.side_effect = [
            _page(_resource('st1', name='cflinuxfs3'), next_url='/v2/stacks?page=2'),
            _page(_resource('st2', name='cflinuxfs4')),
        ]
        stacks = cc.get_stacks()

        assert [s.name for s in stacks] == ['cflinuxfs3', 'cflinuxfs4']
        second = _calls(cc)[1]
        assert second.args[1] == f'{API}/v2/stacks?page=2'
        assert second.kwargs['params'] is None

    def test_scoped_call_without_space(self):
        client = CloudControllerClient(API, credentials=CloudCredentials(token='tok'))
        client.session.request = MagicMock()
        with pytest.raises(ConfigurationError):
            client.get_applications()
        client.session.request.assert_not_called()


class TestLogin:
    """Test OAuth password grant."""

    def test_password_grant_then_bearer(self):
        client = CloudControllerClient(API, credentials=CloudCredentials(email='dev@example.com', password='pw'))
        client.session.request = MagicMock(side_effect=[
            _response(body={'token_endpoint': 'https://uaa.example.com'}),
            _response(body={'access_token': 'fresh', 'token_type': 'bearer'}),
            _page(),
        ])

        client.get_stacks()

        info_call, token_call, stacks_call = _calls(client)
        assert info_call.args == ('GET', f'{API}/v2/info')
        assert token_call.args == ('POST', 'https://uaa.example.com/oauth/token')
        assert token_call.kwargs['auth'] == ('cf', '')
        assert token_call.kwargs['data']['grant_type'] == 'password'
        assert token_call.kwargs['data']['username'] == 'dev@example.com'
        assert stacks_call.kwargs['headers']['Authorization'] == 'bearer fresh'

    def test_token_credentials_skip_login(self, cc):
        assert cc.login()['access_token'] == 'tok'
        cc.session.request.assert_not_called()

    def test_login_without_credentials(self):
        with pytest.raises(ConfigurationError):
            CloudControllerClient(API).login()

    def test_logout_forgets_token(self):
        client = CloudControllerClient(API, credentials=CloudCredentials(email='a', password='b'))
        client._token = 'old'  # pylint: disable=protected-access
        client.logout()
        assert client._token is None  # pylint: disable=protected-access


class TestSpaces:
    """Test org/space resolution."""

    def test_find_space(self):
        client = CloudControllerClient(API, credentials=CloudCredentials(token='tok'))
        client.session.request = MagicMock(side_effect=[
            _page(_resource('o1', name='acme')),
            _page(_resource('s1', name='dev')),
        ])
        space = client.find_space('acme', 'dev')
        assert space.guid == 's1'
        assert space.organization.guid == 'o1'

    def test_unknown_org(self):
        client = CloudControllerClient(API, credentials=CloudCredentials(token='tok'))
        client.session.request = MagicMock(return_value=_page())
        with pytest.raises(ResourceNotFoundError):
            client.find_space('nope', 'dev')

    def test_unknown_space(self):
        client = CloudControllerClient(API, credentials=CloudCredentials(token='tok'))
        client.session.request = MagicMock(side_effect=[_page(_resource('o1', name='acme')), _page()])
        with pytest.raises(ResourceNotFoundError):
            client.find_space('acme', 'nope')


class TestFileRangeHeader:
    """Test (start, end) -> Range header mapping."""

    @pytest.mark.parametrize('start,end,expected', [
        (0, -1, None),
        (200, -1, 'bytes=200-'),
        (0, 99, 'bytes=0-99'),
        (10, 19, 'bytes=10-19'),
        (-1, 64, 'bytes=-64'),
    ])
    def test_mapping(self, start, end, expected):
        assert file_range_header(start, end) == expected


class TestGetFile:
    """Test file retrieval requests."""

    def test_whole_file_has_no_range(self, cc):
        cc.session.request.side_effect = [
            _page(_resource('g1', name='web')),
            _response(content=b'file content'),
        ]
        assert cc.get_file('web', 0, '/logs/app.log', 0, -1) == b'file content'

        file_call = _calls(cc)[1]
        assert file_call.args == ('GET', f'{API}/v2/apps/g1/instances/0/files/logs/app.log')
        assert 'Range' not in file_call.kwargs['headers']

    def test_tail_range(self, cc):
        cc.session.request.side_effect = [
            _page(_resource('g1', name='web')),
            _response(content=b'tail'),
        ]
        cc.get_file('web', 1, 'logs/app.log', -1, 64)
        assert _calls(cc)[1].kwargs['headers']['Range'] == 'bytes=-64'

    def test_non_ascii_bytes_untouched(self, cc):
        body = 'café ✓\n'.encode('utf-8')
        cc.session.request.side_effect = [
            _page(_resource('g1', name='web')),
            _response(content=body, headers={'Content-Type': 'text/plain'}),
        ]
        assert cc.get_file('web', 0, 'notes.txt', 0, -1) == body

    def test_unknown_application(self, cc):
        cc.session.request.return_value = _page()
        with pytest.raises(ResourceNotFoundError):
            cc.get_file('nope', 0, 'f.txt', 0, -1)


class TestOpenFile:
    """Test streamed file reads."""

    def test_callback_receives_chunks(self, cc):
        file_response = _response()
        file_response.iter_content.return_value = iter([b'first ', b'second'])
        cc.session.request.side_effect = [_page(_resource('g1', name='web')), file_response]

        result = cc.open_file('web', 2, 'logs/app.log', lambda chunks: b''.join(chunks))

        assert result == b'first second'
        file_call = _calls(cc)[1]
        assert file_call.args == ('GET', f'{API}/v2/apps/g1/instances/2/files/logs/app.log')
        assert file_call.kwargs['stream'] is True
        file_response.close.assert_called_once()

    def test_response_closed_when_callback_raises(self, cc):
        file_response = _response()
        cc.session.request.side_effect = [_page(_resource('g1', name='web')), file_response]

        def callback(_chunks):
            raise RuntimeError('disk full')

        with pytest.raises(RuntimeError):
            cc.open_file('web', 0, 'f.txt', callback)
        file_response.close.assert_called_once()

    def test_broken_stream_is_transport_error(self, cc):
        file_response = _response()
        file_response.iter_content.side_effect = requests.exceptions.ChunkedEncodingError('connection reset')
        cc.session.request.side_effect = [_page(_resource('g1', name='web')), file_response]

        with pytest.raises(TransportError):
            cc.open_file('web', 0, 'f.txt', list)

    def test_missing_file(self, cc):
        cc.session.request.side_effect = [
            _page(_resource('g1', name='web')),
            _response(404, {}, reason='Not Found'),
        ]
        with pytest.raises(ResourceNotFoundError):
            cc.open_file('web', 0, 'missing.txt', list)


class TestRoutes:
    """Test route deletion."""

    def test_delete_route_by_guid(self, cc):
        cc.session.request.return_value = _response(204)
        cc.delete_route_by_guid('r1')
        assert _calls(cc)[0].args == ('DELETE', f'{API}/v2/routes/r1')

    def test_delete_route_by_name_resolves_guid(self, cc):
        domain = CloudDomain(name='apps.example.com', guid='d1')
        cc.session.request.side_effect = [_page(_resource('r9', host='web')), _response(204)]
        with patch.object(cc, '_find_domain', return_value=domain):
            cc.delete_route('web', 'apps.example.com')
        assert _calls(cc)[1].args == ('DELETE', f'{API}/v2/routes/r9')


class TestLogs:
    """Test log-cache reads."""

    def test_read_logs_decodes_envelopes(self, cc):
        cc.session.request.side_effect = [
            _response(body={'links': {'log_cache': {'href': 'https://log-cache.example.com/'}}}),
            _response(body={'envelopes': {'batch': [
                {
                    'timestamp': '1704067201000000000',
                    'source_id': 'g1',
                    'instance_id': '0',
                    'tags': {'source_type': 'APP/PROC/WEB'},
                    'log': {'payload': base64.b64encode(b'oops').decode(), 'type': 'ERR'},
                },
            ]}}),
        ]
        logs = cc.read_logs('g1', start_time=1704067200123456789)

        assert len(logs) == 1
        assert logs[0].message == 'oops'
        assert logs[0].message_type == 'STDERR'
        assert logs[0].source_name == 'APP/PROC/WEB'
        assert logs[0].timestamp_ns == 1704067201000000000
        assert logs[0].timestamp == datetime(2024, 1, 1, 0, 0, 1, tzinfo=timezone.utc)
        read_call = _calls(cc)[1]
        assert read_call.args == ('GET', 'https://log-cache.example.com/api/v1/read/g1')
        assert read_call.kwargs['params']['start_time'] == 1704067200123456789
        assert read_call.kwargs['params']['envelope_types'] == 'LOG'

    def _recent(self, cc, *envelopes):
        cc.session.request.side_effect = [
            _page(_resource('g1', name='web')),
            _response(body={'links': {'log_cache': {'href': 'https://log-cache.example.com'}}}),
            _response(body={'envelopes': {'batch': list(envelopes)}}),
        ]
        return [log.message for log in cc.get_recent_logs('web')]

    @staticmethod
    def _envelope(ts, text):
        return {'timestamp': str(ts), 'log': {'payload': base64.b64encode(text.encode()).decode()}}

    def test_recent_logs_sorted(self, cc):
        envelope = self._envelope
        assert self._recent(cc, envelope(3, 'c'), envelope(1, 'a'), envelope(2, 'b')) == ['a', 'b', 'c']
        assert _calls(cc)[2].kwargs['params']['descending'] == 'true'

    def test_recent_logs_within_one_microsecond(self, cc):
        """Newest-first entries 200ns apart still come back oldest first."""
        envelope = self._envelope
        messages = self._recent(
            cc,
            envelope(1704067200000000300, 'second'),
            envelope(1704067200000000100, 'first'),
        )
        assert messages == ['first', 'second']

    def test_recent_logs_equal_timestamps_keep_arrival_order(self, cc):
        envelope = self._envelope
        messages = self._recent(cc, envelope(5, 'later'), envelope(5, 'earlier'))
        assert messages == ['earlier', 'later']

    def test_undecodable_payload(self, cc):
        cc.session.request.side_effect = [
            _response(body={'links': {'log_cache': {'href': 'https://log-cache.example.com'}}}),
            _response(body={'envelopes': {'batch': [{'timestamp': '1', 'log': {'payload': 'abc'}}]}}),
        ]
        with pytest.raises(RemoteApiError):
            cc.read_logs('g1')

    def test_missing_log_cache(self, cc):
        cc.session.request.return_value = _response(body={'links': {}})
        with pytest.raises(ConfigurationError):
            cc.read_logs('g1')


class TestDomains:
    """Test domain guards."""

    def test_delete_domain_in_use(self, cc):
        domain = CloudDomain(name='apps.acme.com', guid='d1', owner=SPACE.organization)
        with patch.object(cc, '_find_domain', return_value=domain), \
                patch.object(cc, 'get_routes', return_value=[CloudRoute(host='web', domain=domain)]):
            with pytest.raises(InvalidArgumentError):
                cc.delete_domain('apps.acme.com')
        cc.session.request.assert_not_called()

    def test_delete_shared_domain(self, cc):
        domain = CloudDomain(name='example.com', guid='d0')
        with patch.object(cc, '_find_domain', return_value=domain):
            with pytest.raises(InvalidArgumentError):
                cc.delete_domain('example.com')


class TestRestListeners:
    """Test raw HTTP exchange observers."""

    def test_listener_receives_entries(self):
        client = CloudControllerClient(API)
        entries = []
        client.register_rest_log_listener(entries.append)

        response = MagicMock()
        response.request.method = 'GET'
        response.url = f'{API}/v2/info'
        response.status_code = 200
        response.reason = 'OK'
        for hook in client.session.hooks['response']:
            hook(response)

        assert len(entries) == 1
        assert entries[0].method == 'GET'
        assert entries[0].status == 200

    def test_unregister(self):
        client = CloudControllerClient(API)
        entries = []
        client.register_rest_log_listener(entries.append)
        client.unregister_rest_log_listener(entries.append)

        response = MagicMock()
        response.status_code = 200
        for hook in client.session.hooks['response']:
            hook(response)
        assert not entries
