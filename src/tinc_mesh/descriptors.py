"""
tinc 설정 파일 생성 모듈

- tinc.conf : 노드 정체성, ConnectTo, 전송 정책
- tinc-up / tinc-down : 인터페이스 주소 및 MTU 설정
- hosts/<name> : 다른 노드가 이 노드에 접속하는 방법 (디스크립터)

같은 템플릿이 앵커(로컬 파일)와 원격 노드(프로비저닝 스크립트) 양쪽에 사용된다.
"""

import os
import re
from pathlib import Path
from typing import List, Optional
from jinja2 import Template

from .models import Node

TINC_CONF_TEMPLATE = Template("""Name = {{ name }}
AddressFamily = {{ mesh.address_family }}
Interface = {{ interface }}
{% if connect_to %}ConnectTo = {{ connect_to }}
{% endif %}
# --- Performance & stability tuning ---
Mode = {{ mesh.mode }}
Compression = {{ mesh.compression }}
Cipher = {{ mesh.cipher }}
Digest = {{ mesh.digest }}
DirectOnly = yes
AutoConnect = yes
PingInterval = {{ mesh.ping_interval }}
PingTimeout  = {{ mesh.ping_timeout }}
""", keep_trailing_newline=True)

TINC_UP_TEMPLATE = Template("""#!/bin/sh
/sbin/ifconfig $INTERFACE {{ private_address }} netmask {{ netmask }}
/sbin/ip link set dev $INTERFACE mtu {{ mtu }} || true
""", keep_trailing_newline=True)

TINC_DOWN = """#!/bin/sh
/sbin/ifconfig $INTERFACE down
"""

HOST_TEMPLATE = Template("""Address = {{ node.public_address }}
Port = {{ node.port }}
Subnet = {{ node.private_address }}/32
PMTUDiscovery = yes
ClampMSS = yes
""", keep_trailing_newline=True)

NAME_LINE = re.compile(r"^\s*Name\s*=\s*(\S+)", re.MULTILINE)
NETMASK_WORD = re.compile(r"netmask\s+([0-9.]+)")


def render_tinc_conf(mesh_config, name: str, interface: str, connect_to: Optional[str] = None) -> str:
    return TINC_CONF_TEMPLATE.render(
        mesh=mesh_config,
        name=name,
        interface=interface,
        connect_to=connect_to,
    )


def render_tinc_up(private_address: str, netmask: str, mtu: int) -> str:
    return TINC_UP_TEMPLATE.render(private_address=private_address, netmask=netmask, mtu=mtu)


def render_tinc_down() -> str:
    return TINC_DOWN


def render_host(node: Node) -> str:
    """노드 레코드만으로 결정되는 디스크립터 내용"""
    return HOST_TEMPLATE.render(node=node)


class MeshLayout:
    """로컬 /etc/tinc/<net> 디렉토리 관리"""

    def __init__(self, tinc_root: str, net: str):
        self.tinc_root = Path(tinc_root)
        self.net = net

    @property
    def net_dir(self) -> Path:
        return self.tinc_root / self.net

    @property
    def hosts_dir(self) -> Path:
        return self.net_dir / "hosts"

    @property
    def conf_path(self) -> Path:
        return self.net_dir / "tinc.conf"

    @property
    def up_path(self) -> Path:
        return self.net_dir / "tinc-up"

    @property
    def down_path(self) -> Path:
        return self.net_dir / "tinc-down"

    def descriptor_path(self, name: str) -> Path:
        return self.hosts_dir / name

    def is_initialized(self) -> bool:
        return self.net_dir.is_dir() and self.hosts_dir.is_dir()

    def prepare(self):
        self.hosts_dir.mkdir(parents=True, exist_ok=True)

    def write_conf(self, mesh_config, name: str, connect_to: Optional[str] = None):
        self.conf_path.write_text(
            render_tinc_conf(mesh_config, name, self.net, connect_to), encoding="utf-8"
        )

    def write_scripts(self, private_address: str, netmask: str, mtu: int):
        self.up_path.write_text(render_tinc_up(private_address, netmask, mtu), encoding="utf-8")
        self.up_path.chmod(0o755)
        self.down_path.write_text(render_tinc_down(), encoding="utf-8")
        self.down_path.chmod(0o755)

    def write_descriptor(self, node: Node) -> Path:
        """hosts/<name> 덮어쓰기 (기존 공개키도 함께 지워짐)"""
        path = self.descriptor_path(node.name)
        path.write_text(render_host(node), encoding="utf-8")
        return path

    def remove_descriptor(self, name: str) -> bool:
        path = self.descriptor_path(name)
        if path.exists():
            os.unlink(path)
            return True
        return False

    def descriptors(self) -> List[Path]:
        if not self.hosts_dir.is_dir():
            return []
        return sorted(p for p in self.hosts_dir.iterdir() if p.is_file())

    def read_main_name(self) -> Optional[str]:
        """tinc.conf 의 Name 값"""
        if not self.conf_path.exists():
            return None
        match = NAME_LINE.search(self.conf_path.read_text(encoding="utf-8"))
        return match.group(1) if match else None

    def read_netmask(self) -> Optional[str]:
        """tinc-up 에 기록된 netmask"""
        if not self.up_path.exists():
            return None
        match = NETMASK_WORD.search(self.up_path.read_text(encoding="utf-8"))
        return match.group(1) if match else None
