"""
테스트 공통 픽스처
원격/데몬/네트워크 협력 객체를 메모리 가짜 객체로 대체
"""

import posixpath
from pathlib import Path

import pytest

from tinc_mesh.config import Config
from tinc_mesh.errors import AuthError, ConnectivityError
from tinc_mesh.logger import init_logger
from tinc_mesh.manager import MembershipManager
from tinc_mesh.remote import Credentials

PUBLIC_KEY_BLOCK = "-----BEGIN RSA PUBLIC KEY-----\nFAKEKEY\n-----END RSA PUBLIC KEY-----\n"


class FakeRemote:
    """RemoteExecutor 대역: 호출 기록 + 원격 파일 시스템 흉내"""

    def __init__(self):
        self.executed = []
        self.copies = []
        self.fetches = []
        self.unreachable = set()
        self.auth_fail = set()
        self.hostnames = {}
        self.fail_on = {}
        self.remote_files = {}

    def _check(self, host):
        if host.address in self.auth_fail:
            raise AuthError(str(host), "authentication failed")
        if host.address in self.unreachable:
            raise ConnectivityError(str(host), "timed out")

    def execute(self, host, credentials, script):
        credentials.reveal()
        self._check(host)
        self.executed.append((host.address, script))
        for needle, status in self.fail_on.get(host.address, {}).items():
            if needle in script:
                return "", status
        if script.startswith("hostname"):
            return self.hostnames.get(host.address, "node") + "\n", 0
        return "", 0

    def copy(self, host, credentials, source, destination):
        credentials.reveal()
        self._check(host)
        source = Path(source)
        files = sorted(p for p in source.iterdir() if p.is_file()) if source.is_dir() else [source]
        store = self.remote_files.setdefault(host.address, {})
        for path in files:
            store[posixpath.join(destination, path.name)] = path.read_text()
        self.copies.append((host.address, str(source), destination))

    def fetch(self, host, credentials, remote_path, local_dir):
        credentials.reveal()
        self._check(host)
        target = Path(local_dir) / posixpath.basename(remote_path)
        existing = target.read_text() if target.exists() else ""
        target.write_text(existing + PUBLIC_KEY_BLOCK)
        self.fetches.append((host.address, remote_path))
        return target

    def scripts_for(self, address):
        return [script for addr, script in self.executed if addr == address]


class FakeDaemon:
    """TincDaemon 대역"""

    def __init__(self):
        self.calls = []

    def ensure_packages(self):
        self.calls.append(("ensure_packages",))
        return True, ""

    def check_dependencies(self, commands=None):
        self.calls.append(("check_dependencies",))
        return []

    def generate_keys(self, net, bits=4096):
        self.calls.append(("generate_keys", net, bits))
        return True, ""

    def send_reload_signal(self, net):
        self.calls.append(("reload", net))
        return True, ""

    def restart(self, net, mtu):
        self.calls.append(("restart", net, mtu))
        return True, ""

    def names(self):
        return [call[0] for call in self.calls]


class FakeNetwork:
    def __init__(self, remote):
        self.remote = remote

    def check_port(self, host, port, timeout=5):
        if host in self.remote.unreachable:
            return False, f"✗ {host}:{port} 연결 실패"
        return True, f"✓ {host}:{port} 연결 성공"

    def interface_exists(self, interface):
        return False


@pytest.fixture(autouse=True)
def logger(tmp_path):
    return init_logger(str(tmp_path / "logs"), "DEBUG", False)


@pytest.fixture
def config(tmp_path):
    cfg = Config(str(tmp_path / "missing-config.yaml"))
    cfg.paths.tinc_root = str(tmp_path / "tinc")
    cfg.paths.state_dir = str(tmp_path / "tinc" / "mesh_state")
    cfg.agent.log_dir = str(tmp_path / "logs")
    cfg.agent.install_packages = False
    cfg.mesh.key_bits = 2048
    return cfg


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def daemon():
    return FakeDaemon()


@pytest.fixture
def manager(config, remote, daemon, monkeypatch):
    monkeypatch.delenv("MESH_SSH_PASS", raising=False)
    return MembershipManager(config, remote=remote, daemon=daemon, network=FakeNetwork(remote))


@pytest.fixture
def credentials():
    return Credentials("s3cret")


@pytest.fixture
def initialized(manager):
    """앵커 A 로 초기화된 메시 m"""
    manager.init("m", "A", "1.2.3.4", "10.20.0.1", "255.255.255.0")
    return manager
