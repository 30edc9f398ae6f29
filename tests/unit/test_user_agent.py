import sys
import ssl
from unittest import mock

from agbcloud import __version__
from agbcloud.client import ApiClient, _build_user_agent
from agbcloud.user_agent_utils import (
    _get_python_version,
    _get_os_info,
    _get_ssl_version,
    build_user_agent
)


class TestBuildUserAgent:
    """Tests for the _build_user_agent function in client.py."""

    def test_user_agent_format(self):
        """
        Test that User-Agent has the correct format with semicolon separators.

        Example User-Agent:
        agbcloud-cli/1.0.0;python-3.11.2;debian-12;openssl-3.0.0
        """
        result = _build_user_agent()
        assert isinstance(result, str)
        parts = result.split(';')
        # Library version, python version, OS and maybe SSL.
        assert len(parts) >= 3

    def test_user_agent_contains_library_version(self):
        result = _build_user_agent()
        assert result.split(';')[0] == 'agbcloud-cli/%s' % __version__

    def test_user_agent_contains_python_version(self):
        expected_version = '%d.%d.%d' % (
            sys.version_info.major,
            sys.version_info.minor,
            sys.version_info.micro
        )
        assert 'python-%s' % expected_version in _build_user_agent()

    def test_user_agent_consistent_format(self):
        assert _build_user_agent() == _build_user_agent()

    def test_client_session_sends_user_agent(self):
        client = ApiClient()
        assert client._session.headers['User-Agent'] == _build_user_agent()


class TestUserAgentHelpers:
    """Tests for the helpers in user_agent_utils.py."""

    def test_macos_detection(self):
        with mock.patch('platform.system', return_value='Darwin'):
            with mock.patch('platform.mac_ver', return_value=('14.0', ('', '', ''), '')):
                assert _get_os_info() == 'macos-14.0'

    def test_windows_detection(self):
        with mock.patch('platform.system', return_value='Windows'):
            with mock.patch('platform.win32_ver', return_value=('10', '10.0.19041', '', '')):
                assert _get_os_info() == 'windows-10'

    def test_linux_release_detection(self):
        with mock.patch('platform.system', return_value='Linux'):
            with mock.patch('platform.freedesktop_os_release', return_value={'ID': 'debian', 'VERSION_ID': '12'}, create=True):
                assert _get_os_info() == 'debian-12'

    def test_os_detection_fallback(self):
        """Without an os-release file we fall back to the system name."""
        with mock.patch('platform.system', return_value='Linux'):
            with mock.patch('platform.freedesktop_os_release', side_effect=OSError("no os-release"), create=True):
                assert _get_os_info() == 'linux'

    def test_ssl_version_format(self):
        result = _get_ssl_version()
        if hasattr(ssl, 'OPENSSL_VERSION_INFO'):
            assert result.startswith('openssl-')
            assert result.count('.') == 2
        else:
            assert result is None

    def test_ssl_version_unavailable(self):
        with mock.patch.object(ssl, 'OPENSSL_VERSION_INFO', None):
            assert _get_ssl_version() is None

    def test_get_python_version_format(self):
        result = _get_python_version()
        assert result.startswith('python-')
        assert result.count('.') == 2

    def test_build_user_agent_custom_prefix(self):
        result = build_user_agent('custom-client', '2.0.0')
        assert result.startswith('custom-client/2.0.0;')

    def test_build_user_agent_component_order(self):
        with mock.patch('agbcloud.user_agent_utils._get_os_info', return_value='debian-12'):
            with mock.patch('agbcloud.user_agent_utils._get_ssl_version', return_value='openssl-3.0.0'):
                with mock.patch('agbcloud.user_agent_utils._get_python_version', return_value='python-3.11.2'):
                    result = build_user_agent('agbcloud-cli', '1.0.0')
        assert result == 'agbcloud-cli/1.0.0;python-3.11.2;debian-12;openssl-3.0.0'

    def test_build_user_agent_without_ssl(self):
        with mock.patch('agbcloud.user_agent_utils._get_ssl_version', return_value=None):
            result = build_user_agent('agbcloud-cli', '1.0.0')
        assert 'openssl-' not in result
        assert len(result.split(';')) == 3
