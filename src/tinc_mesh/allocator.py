"""
프라이빗 IP 할당
설정된 prefix.start ~ prefix.end 범위를 오름차순으로 스캔하여 첫 빈 주소 반환
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, Set

from .errors import PoolExhausted, ValidationError
from .models import Node, validate_ipv4


@dataclass(frozen=True)
class AddressPool:
    """할당 대상 주소 범위 (예: 10.20.0.2 ~ 10.20.0.254)"""
    prefix: str = "10.20.0"
    start: int = 2
    end: int = 254

    def __post_init__(self):
        if not 0 <= self.start <= self.end <= 255:
            raise ValidationError(f"Invalid pool range: {self.start}-{self.end}")
        validate_ipv4(f"{self.prefix}.{self.start}", "pool prefix")

    @classmethod
    def from_config(cls, pool_config) -> "AddressPool":
        return cls(
            prefix=pool_config.prefix,
            start=int(pool_config.start),
            end=int(pool_config.end),
        )

    def candidates(self) -> Iterator[str]:
        for i in range(self.start, self.end + 1):
            yield f"{self.prefix}.{i}"

    def __str__(self) -> str:
        return f"{self.prefix}.{self.start}-{self.end}"


def active_addresses(nodes: Iterable[Node]) -> Set[str]:
    return {n.private_address for n in nodes}


def allocate(pool: AddressPool, active: Iterable[str]) -> str:
    """사용 중이지 않은 가장 작은 주소 반환"""
    used = set(active)
    for candidate in pool.candidates():
        if candidate not in used:
            return candidate

    raise PoolExhausted(f"No free private IP in {pool}")
