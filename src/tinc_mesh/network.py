"""
네트워크 체크 모듈
SSH 포트 도달성, tinc 인터페이스 존재 여부 확인
"""

import subprocess
import socket
from typing import Tuple
from .logger import get_logger


class NetworkChecker:
    """네트워크 연결성 확인 클래스"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.logger = get_logger()

    def check_port(self, host: str, port: int, timeout: int = 5) -> Tuple[bool, str]:
        """포트 연결 테스트"""
        try:
            self.logger.debug(f"Checking port {host}:{port}...")
            with socket.create_connection((host, port), timeout=timeout):
                pass
            self.logger.debug(f"✓ {host}:{port} is open")
            return True, f"✓ {host}:{port} 연결 성공"

        except socket.gaierror:
            self.logger.error(f"✗ Cannot resolve {host}")
            return False, f"✗ {host} 호스트를 찾을 수 없습니다"
        except (socket.timeout, OSError, OverflowError) as e:
            self.logger.warning(f"✗ {host}:{port} is closed ({e})")
            return False, f"✗ {host}:{port} 연결 실패"

    def interface_exists(self, interface: str) -> bool:
        """네트워크 인터페이스 존재 여부"""
        try:
            result = subprocess.run(
                ["ip", "link", "show", interface],
                capture_output=True,
                text=True
            )
        except FileNotFoundError:
            self.logger.warning("ip command not found")
            return False

        exists = result.returncode == 0
        self.logger.debug(f"Interface {interface} exists: {exists}")
        return exists
