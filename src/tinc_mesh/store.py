"""
멤버십 상태 저장소
네트워크별 <state_dir>/<net>.nodes 파일, 한 줄에 노드 하나

모든 변경은 전체 레코드를 임시 파일에 쓴 뒤 os.replace로 교체한다.
잠금은 없으며 단일 writer를 가정한다.
"""

import os
import tempfile
from pathlib import Path
from typing import List, Optional

from .logger import get_logger
from .models import Node


class StateStore:
    """노드 레코드 저장소"""

    def __init__(self, state_dir: str):
        self.state_dir = Path(state_dir)
        self.logger = get_logger()

    def path_for(self, net: str) -> Path:
        return self.state_dir / f"{net}.nodes"

    def exists(self, net: str) -> bool:
        return self.path_for(net).exists()

    def load(self, net: str) -> List[Node]:
        """파일 순서대로 노드 목록 반환 (파일 없으면 빈 목록)"""
        path = self.path_for(net)
        if not path.exists():
            return []

        nodes = []
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    nodes.append(Node.from_line(line))
        return nodes

    def find(self, net: str, name: str) -> Optional[Node]:
        for node in self.load(net):
            if node.name == name:
                return node
        return None

    def anchor(self, net: str) -> Optional[Node]:
        for node in self.load(net):
            if node.is_anchor:
                return node
        return None

    def upsert(self, net: str, node: Node):
        """같은 이름이 있으면 제자리 교체, 없으면 추가"""
        nodes = self.load(net)
        for i, existing in enumerate(nodes):
            if existing.name == node.name:
                nodes[i] = node
                break
        else:
            nodes.append(node)

        self._write(net, nodes)
        self.logger.debug(f"Saved node {node.name} to {self.path_for(net)}")

    def remove(self, net: str, name: str) -> bool:
        nodes = self.load(net)
        remaining = [n for n in nodes if n.name != name]
        if len(remaining) == len(nodes):
            return False

        self._write(net, remaining)
        self.logger.debug(f"Removed node {name} from {self.path_for(net)}")
        return True

    def _write(self, net: str, nodes: List[Node]):
        path = self.path_for(net)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(prefix=f".{net}.", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for node in nodes:
                    f.write(node.to_line() + "\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
