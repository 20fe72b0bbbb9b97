"""
데이터 모델
노드 레코드, 상태 파일 라인 포맷, 워크플로우 결과 타입
"""

import ipaddress
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .errors import ValidationError

NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
USER_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")
NAME_STRIP = re.compile(r"[^A-Za-z0-9_-]")

AUTH_LOCAL = "local"
AUTH_PASSWORD = "pass"
AUTH_PLACEHOLDER = "-"

RECORD_FIELDS = 8


class Role(str, Enum):
    """노드 역할"""
    ANCHOR = "anchor"
    MEMBER = "member"


def sanitize_name(raw: str) -> str:
    """허용되지 않는 문자 제거 (a-zA-Z0-9_-)"""
    return NAME_STRIP.sub("", raw or "")


def validate_name(value: str, label: str = "name") -> str:
    if not value or not NAME_PATTERN.match(value):
        raise ValidationError(f"Invalid {label}: {value!r} (allowed: a-zA-Z0-9_-)")
    return value


def validate_user(value: str) -> str:
    if not value or not USER_PATTERN.match(value):
        raise ValidationError(f"Invalid ssh user: {value!r}")
    return value


def validate_ipv4(value: str, label: str = "address") -> str:
    try:
        return str(ipaddress.IPv4Address(value))
    except (ipaddress.AddressValueError, ValueError):
        raise ValidationError(f"Invalid {label}: {value!r}")


def validate_port(value) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid port: {value!r}")
    if not 1 <= port <= 65535:
        raise ValidationError(f"Invalid port: {value!r}")
    return port


def validate_mtu(value) -> int:
    try:
        mtu = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid mtu: {value!r}")
    if not 576 <= mtu <= 9000:
        raise ValidationError(f"Invalid mtu: {value!r}")
    return mtu


@dataclass(frozen=True)
class Node:
    """메시 참여 노드 레코드 (인증 정보는 포함하지 않음)"""
    name: str
    public_address: str
    private_address: str
    ssh_user: str
    role: Role
    port: int
    mtu: int

    @property
    def is_anchor(self) -> bool:
        return self.role == Role.ANCHOR

    def validate(self) -> "Node":
        validate_name(self.name)
        validate_ipv4(self.public_address, "public address")
        validate_ipv4(self.private_address, "private address")
        validate_user(self.ssh_user)
        validate_port(self.port)
        validate_mtu(self.mtu)
        return self

    def to_line(self) -> str:
        """name|pub|priv|ssh_user|auth_kind|auth_placeholder|port|mtu"""
        auth_kind = AUTH_LOCAL if self.is_anchor else AUTH_PASSWORD
        return "|".join([
            self.name,
            self.public_address,
            self.private_address,
            self.ssh_user,
            auth_kind,
            AUTH_PLACEHOLDER,
            str(self.port),
            str(self.mtu),
        ])

    @classmethod
    def from_line(cls, line: str) -> "Node":
        parts = line.rstrip("\n").split("|")
        if len(parts) != RECORD_FIELDS:
            raise ValidationError(f"Malformed node record: {line.strip()!r}")

        name, pub, priv, ssh_user, auth_kind, _placeholder, port, mtu = parts
        try:
            port, mtu = int(port), int(mtu)
        except ValueError:
            raise ValidationError(f"Malformed node record: {line.strip()!r}")

        return cls(
            name=name,
            public_address=pub,
            private_address=priv,
            ssh_user=ssh_user,
            role=Role.ANCHOR if auth_kind == AUTH_LOCAL else Role.MEMBER,
            port=port,
            mtu=mtu,
        )


# -----------------------------
# 워크플로우 결과
# -----------------------------

@dataclass
class StepResult:
    """부트스트랩 단계별 실행 결과"""
    step: str
    success: bool
    message: str = ""
    fatal: bool = False


@dataclass
class BootstrapResult:
    """원격 노드 부트스트랩 결과"""
    node: Node
    steps: List[StepResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(s.fatal and not s.success for s in self.steps)

    @property
    def failure(self) -> Optional[StepResult]:
        for step in self.steps:
            if step.fatal and not step.success:
                return step
        return None


SYNCED = "synced"
SKIPPED = "skipped"
RELOAD_FAILED = "reload_failed"


@dataclass
class PeerSyncResult:
    name: str
    address: str
    status: str
    message: str = ""


@dataclass
class SyncReport:
    """push / retract 결과"""
    net: str
    peers: List[PeerSyncResult] = field(default_factory=list)
    local_reloaded: bool = False

    def record(self, node: Node, status: str, message: str = "") -> PeerSyncResult:
        result = PeerSyncResult(node.name, node.public_address, status, message)
        self.peers.append(result)
        return result

    @property
    def synced(self) -> List[str]:
        return [p.name for p in self.peers if p.status == SYNCED]

    @property
    def skipped(self) -> List[str]:
        return [p.name for p in self.peers if p.status == SKIPPED]

    @property
    def partial_failure(self) -> bool:
        return any(p.status != SYNCED for p in self.peers)

    @property
    def warnings(self) -> List[str]:
        return [
            f"{p.name} ({p.address}): {p.status} {p.message}".rstrip()
            for p in self.peers
            if p.status != SYNCED
        ]


@dataclass
class AddResult:
    node: Node
    bootstrap: BootstrapResult
    sync: SyncReport


@dataclass
class DeleteResult:
    node: Node
    teardown_ok: bool
    sync: SyncReport
