import os
import socket
import sys

import pytest

# Get the directory of the current conftest.py file
current_dir = os.path.dirname(os.path.abspath(__file__))

# Calculate the project root (adjust the number of ".." if needed)
project_root = os.path.abspath(os.path.join(current_dir, '../../'))

# Insert the project root at the beginning of sys.path
if project_root not in sys.path:
    sys.path.insert(0, project_root)


def _ephemeral_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def free_port():
    """A loopback port that was free a moment ago."""
    return _ephemeral_port()


@pytest.fixture
def occupied_port():
    """A loopback port held by a listening socket for the duration of the test."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    s.listen(1)
    try:
        yield s.getsockname()[1]
    finally:
        s.close()


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    """Path of an isolated config file, nothing written yet."""
    path = str(tmp_path / "agbcloud.yaml")
    monkeypatch.setattr("agbcloud.config.CONFIG_FILE_PATH", path)
    monkeypatch.delenv("AGBCLOUD_EPHEMERAL_CREDS", raising=False)
    monkeypatch.delenv("AGBCLOUD_ENDPOINT", raising=False)
    monkeypatch.delenv("AGBCLOUD_CALLBACK_PORT", raising=False)
    return path
