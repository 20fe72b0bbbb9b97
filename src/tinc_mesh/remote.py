"""
원격 실행 모듈 (SSH / SFTP)

- 인증 정보는 워크플로우 동안 메모리에만 존재하며 paramiko에 프로세스 내부로 전달된다.
  (sshpass처럼 프로세스 인자나 환경변수로 노출하지 않음)
- 원격 스크립트는 검증된 값만 담은 ProvisioningRequest에서 렌더링된다.
"""

import os
import posixpath
import re
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple
import paramiko
from jinja2 import Template

from .descriptors import render_host, render_tinc_conf, render_tinc_down, render_tinc_up
from .errors import AuthError, ConnectivityError, ValidationError
from .logger import get_logger
from .models import Node, validate_ipv4, validate_name, validate_port

HEREDOC_MARK = "TINC_MESH_EOF"
REMOTE_ROOT_PATTERN = re.compile(r"^(/[A-Za-z0-9._-]+)+$")


@dataclass(frozen=True)
class RemoteHost:
    """원격 접속 대상"""
    address: str
    user: str
    port: int = 22

    @classmethod
    def for_node(cls, node: Node, ssh_port: int = 22) -> "RemoteHost":
        return cls(address=node.public_address, user=node.ssh_user, port=ssh_port)

    @property
    def sudo(self) -> str:
        return "" if self.user == "root" else "sudo "

    def __str__(self) -> str:
        return f"{self.user}@{self.address}"


class Credentials:
    """한 워크플로우 동안만 유지되는 SSH 비밀번호"""

    __slots__ = ("_secret",)

    def __init__(self, secret: str):
        if not secret:
            raise ValidationError("Empty password.")
        self._secret = secret

    def reveal(self) -> str:
        if self._secret is None:
            raise ValidationError("Credentials already wiped")
        return self._secret

    def wipe(self):
        self._secret = None

    def __repr__(self) -> str:
        return "Credentials(***)"

    __str__ = __repr__


class CredentialProvider:
    """호스트별 인증 정보 제공자

    환경변수(MESH_SSH_PASS)나 share()로 지정된 공용 비밀번호가 있으면 그것을 쓰고,
    없으면 prompt 콜백으로 호스트마다 묻는다. with 블록 종료 시 모두 폐기된다.
    """

    def __init__(self, prompt: Optional[Callable[[RemoteHost], str]] = None,
                 env_var: Optional[str] = "MESH_SSH_PASS"):
        self.prompt = prompt
        self._shared: Optional[Credentials] = None
        self._cache: Dict[RemoteHost, Credentials] = {}
        self.from_env = False

        if env_var and os.environ.get(env_var):
            self._shared = Credentials(os.environ[env_var])
            self.from_env = True

    def share(self, credentials: Credentials):
        """공용 비밀번호가 없을 때만 배치 기본값으로 지정"""
        if self._shared is None:
            self._shared = credentials

    def for_host(self, host: RemoteHost) -> Credentials:
        if self._shared is not None:
            return self._shared
        if host in self._cache:
            return self._cache[host]
        if self.prompt is None:
            raise ValidationError(f"No credentials available for {host}")

        credentials = Credentials(self.prompt(host))
        self._cache[host] = credentials
        return credentials

    def close(self):
        if self._shared is not None:
            self._shared.wipe()
        for credentials in self._cache.values():
            credentials.wipe()
        self._shared = None
        self._cache.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class RemoteExecutor:
    """paramiko 기반 원격 명령 실행 및 파일 복사"""

    def __init__(self, ssh_config=None):
        self.timeout = getattr(ssh_config, "timeout", 10)
        self.logger = get_logger()

    def _connect(self, host: RemoteHost, credentials: Credentials) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                host.address,
                port=host.port,
                username=host.user,
                password=credentials.reveal(),
                timeout=self.timeout,
                banner_timeout=self.timeout,
                auth_timeout=self.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except paramiko.AuthenticationException as e:
            client.close()
            self.logger.error(f"Authentication failed for {host}")
            raise AuthError(str(host), f"authentication failed: {e}")
        except (paramiko.SSHException, socket.timeout, OSError) as e:
            client.close()
            self.logger.error(f"Cannot connect to {host}: {e}")
            raise ConnectivityError(str(host), str(e))
        return client

    def execute(self, host: RemoteHost, credentials: Credentials, script: str) -> Tuple[str, int]:
        """bash -s 로 스크립트 실행, (출력, 종료코드) 반환

        stderr 는 stdout 에 합쳐 한 스트림으로 읽는다 (채널 윈도우가 차서 멈추지 않도록).
        """
        client = self._connect(host, credentials)
        try:
            channel = client.get_transport().open_session()
            channel.set_combined_stderr(True)
            channel.exec_command("bash -s")
            channel.sendall(script.encode("utf-8"))
            channel.shutdown_write()
            output = channel.makefile("rb").read().decode("utf-8", errors="replace")
            status = channel.recv_exit_status()
        except (paramiko.SSHException, socket.timeout, OSError) as e:
            raise ConnectivityError(str(host), str(e))
        finally:
            client.close()

        if status != 0:
            tail = output.strip().splitlines()[-5:]
            self.logger.debug(f"Remote script on {host} exited {status}: {' | '.join(tail)}")
        return output, status

    def copy(self, host: RemoteHost, credentials: Credentials, source: str, destination: str):
        """로컬 파일 또는 디렉토리 안의 파일들을 원격 디렉토리로 업로드"""
        source_path = Path(source)
        if source_path.is_dir():
            files = sorted(p for p in source_path.iterdir() if p.is_file())
        else:
            files = [source_path]

        client = self._connect(host, credentials)
        try:
            sftp = client.open_sftp()
            try:
                for path in files:
                    target = posixpath.join(destination, path.name)
                    sftp.put(str(path), target)
                    self.logger.debug(f"Uploaded {path} -> {host}:{target}")
            finally:
                sftp.close()
        except (paramiko.SSHException, socket.timeout, OSError) as e:
            raise ConnectivityError(str(host), f"copy failed: {e}")
        finally:
            client.close()

    def fetch(self, host: RemoteHost, credentials: Credentials, remote_path: str, local_dir: str) -> Path:
        """원격 파일을 로컬 디렉토리로 다운로드"""
        target = Path(local_dir) / posixpath.basename(remote_path)
        client = self._connect(host, credentials)
        try:
            sftp = client.open_sftp()
            try:
                sftp.get(remote_path, str(target))
            finally:
                sftp.close()
        except (paramiko.SSHException, socket.timeout, OSError) as e:
            raise ConnectivityError(str(host), f"fetch failed: {e}")
        finally:
            client.close()

        self.logger.debug(f"Downloaded {host}:{remote_path} -> {target}")
        return target


# -----------------------------
# 프로비저닝 요청
# -----------------------------

INSTALL_SCRIPT = Template("""set -e
export DEBIAN_FRONTEND=noninteractive
{{ sudo }}apt-get update -y >/dev/null 2>&1 || true
{{ sudo }}apt-get install -y tinc net-tools iproute2 >/dev/null
""", keep_trailing_newline=True)

CONFIGURE_SCRIPT = Template("""set -e
{{ sudo }}rm -rf {{ net_dir }}
{{ sudo }}mkdir -p {{ net_dir }}/hosts
{% for path, content, mode in files %}
{{ sudo }}tee {{ path }} >/dev/null <<'{{ mark }}'
{{ content }}{{ mark }}
{% if mode %}{{ sudo }}chmod {{ mode }} {{ path }}
{% endif %}{% endfor %}
""", keep_trailing_newline=True)

KEYGEN_SCRIPT = Template("""{{ sudo }}tincd -n {{ net }} -K{{ bits }} </dev/null >/dev/null 2>&1
""", keep_trailing_newline=True)

START_SCRIPT = Template("""{{ sudo }}systemctl enable tinc@{{ net }} >/dev/null 2>&1 || true
{{ sudo }}systemctl restart tinc@{{ net }}
""", keep_trailing_newline=True)


@dataclass(frozen=True)
class ProvisioningRequest:
    """원격 노드 부트스트랩에 필요한 값 (모두 검증 후 스크립트에 삽입)"""
    net: str
    node: Node
    connect_to: str
    netmask: str
    mesh: object
    remote_root: str = "/etc/tinc"
    ssh_port: int = 22

    def __post_init__(self):
        self.validate()

    def validate(self):
        validate_name(self.net, "net")
        validate_name(self.connect_to, "anchor name")
        validate_ipv4(self.netmask, "netmask")
        self.node.validate()
        validate_port(self.ssh_port)
        if not REMOTE_ROOT_PATTERN.match(self.remote_root):
            raise ValidationError(f"Invalid remote root: {self.remote_root!r}")
        if int(self.mesh.key_bits) < 1024:
            raise ValidationError(f"Invalid key size: {self.mesh.key_bits!r}")
        return self

    @property
    def host(self) -> RemoteHost:
        return RemoteHost.for_node(self.node, self.ssh_port)

    @property
    def net_dir(self) -> str:
        return posixpath.join(self.remote_root, self.net)

    @property
    def hosts_dir(self) -> str:
        return posixpath.join(self.net_dir, "hosts")

    @property
    def descriptor_path(self) -> str:
        return posixpath.join(self.hosts_dir, self.node.name)

    def files(self):
        """(원격 경로, 내용, 권한) 목록"""
        return [
            (posixpath.join(self.net_dir, "tinc.conf"),
             render_tinc_conf(self.mesh, self.node.name, self.net, self.connect_to), None),
            (posixpath.join(self.net_dir, "tinc-up"),
             render_tinc_up(self.node.private_address, self.netmask, self.node.mtu), "+x"),
            (posixpath.join(self.net_dir, "tinc-down"), render_tinc_down(), "+x"),
            (self.descriptor_path, render_host(self.node), None),
        ]

    def install_script(self) -> str:
        return INSTALL_SCRIPT.render(sudo=self.host.sudo)

    def configure_script(self) -> str:
        return CONFIGURE_SCRIPT.render(
            sudo=self.host.sudo,
            net_dir=self.net_dir,
            files=self.files(),
            mark=HEREDOC_MARK,
        )

    def keygen_script(self) -> str:
        return KEYGEN_SCRIPT.render(sudo=self.host.sudo, net=self.net, bits=int(self.mesh.key_bits))

    def start_script(self) -> str:
        return START_SCRIPT.render(sudo=self.host.sudo, net=self.net)


def reload_script(host: RemoteHost, net: str) -> str:
    validate_name(net, "net")
    return f"{host.sudo}pkill -HUP -f 'tincd -n {net}' || true\n"


def retract_script(host: RemoteHost, net: str, name: str, remote_root: str = "/etc/tinc") -> str:
    validate_name(net, "net")
    validate_name(name)
    path = posixpath.join(remote_root, net, "hosts", name)
    return f"{host.sudo}rm -f {path} || true\n" + reload_script(host, net)


def teardown_script(host: RemoteHost, net: str, remote_root: str = "/etc/tinc") -> str:
    validate_name(net, "net")
    net_dir = posixpath.join(remote_root, net)
    return (
        f"{host.sudo}systemctl stop tinc@{net} || true\n"
        f"{host.sudo}systemctl disable tinc@{net} || true\n"
        f"{host.sudo}rm -rf {net_dir} || true\n"
    )


HOSTNAME_SCRIPT = "hostname -s 2>/dev/null || hostname 2>/dev/null || echo node\n"
