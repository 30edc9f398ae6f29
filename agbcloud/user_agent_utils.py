"""
User-Agent utility functions for building the User-Agent sent by the CLI.
"""

import sys
import platform
import ssl


def _get_python_version():
    """
    Get the Python version string.

    Returns:
        str: Python version in format "python-X.Y.Z"
    """
    return 'python-%d.%d.%d' % (
        sys.version_info.major,
        sys.version_info.minor,
        sys.version_info.micro
    )


def _get_os_info():
    """
    Get the operating system information string.

    Returns:
        str: Operating system identifier, e.g. "debian-12", "darwin" or "windows-10".
    """
    try:
        os_str = platform.system().lower()
        if os_str == 'linux' and hasattr(platform, 'freedesktop_os_release'):
            os_info = platform.freedesktop_os_release()
            return '%s-%s' % (os_info.get('ID', 'linux'), os_info.get('VERSION_ID', 'unknown'))
        if os_str == 'darwin':
            mac_ver = platform.mac_ver()[0]
            if mac_ver:
                return 'macos-%s' % mac_ver
        elif os_str == 'windows':
            win_ver = platform.win32_ver()[0]
            if win_ver:
                return 'windows-%s' % win_ver
        return os_str or 'unknown'
    except OSError:
        # No os-release file on this Linux box.
        return platform.system().lower()


def _get_ssl_version():
    """
    Returns:
        str or None: "openssl-X.Y.Z" or None if unavailable
    """
    ssl_info = getattr(ssl, 'OPENSSL_VERSION_INFO', None)
    if not ssl_info:
        return None
    return 'openssl-%d.%d.%d' % (ssl_info[0], ssl_info[1], ssl_info[2])


def build_user_agent(client_prefix, client_version):
    """
    Build a User-Agent string with environment information.

    Parameters:
        client_prefix (str): The client identifier prefix (e.g., "agbcloud-cli")
        client_version (str): The client version string

    Returns:
        str: semicolon-separated components, for example
            "agbcloud-cli/1.0.0;python-3.11.2;debian-12;openssl-3.0.0"
    """
    parts = [
        '%s/%s' % (client_prefix, client_version),
        _get_python_version(),
        _get_os_info(),
    ]

    ssl_version = _get_ssl_version()
    if ssl_version:
        parts.append(ssl_version)

    return ';'.join(parts)
