"""
로컬 tinc 데몬 관리 모듈
systemd 유닛(tinc@<net>) 제어, 키 생성, HUP 리로드, MTU 적용
"""

import os
import shutil
import subprocess
from typing import List, Optional, Sequence, Tuple
from rich.console import Console
from .errors import DaemonError, DependencyMissing
from .logger import get_logger
from .network import NetworkChecker

console = Console()

REQUIRED_COMMANDS = ["tincd", "systemctl", "ip", "pkill"]
PACKAGES = ["tinc", "net-tools", "iproute2"]


class ServiceManager:
    """systemctl 래퍼"""

    def __init__(self):
        self.logger = get_logger()

    def _systemctl(self, *args: str) -> Tuple[bool, str]:
        try:
            result = subprocess.run(
                ["systemctl", *args],
                capture_output=True,
                text=True
            )
        except FileNotFoundError:
            return False, "systemctl not found"

        if result.returncode == 0:
            return True, result.stdout.strip()
        return False, (result.stderr or result.stdout).strip()

    def enable(self, unit: str) -> Tuple[bool, str]:
        success, msg = self._systemctl("enable", unit)
        self.logger.debug(f"systemctl enable {unit}: {success}")
        return success, msg

    def restart(self, unit: str) -> Tuple[bool, str]:
        success, msg = self._systemctl("restart", unit)
        if success:
            self.logger.info(f"Restarted {unit}")
        else:
            self.logger.error(f"Failed to restart {unit}: {msg}")
        return success, msg


class TincDaemon:
    """앵커 호스트의 tincd 제어"""

    def __init__(self, service_manager: Optional[ServiceManager] = None,
                 network: Optional[NetworkChecker] = None):
        self.services = service_manager or ServiceManager()
        self.network = network or NetworkChecker()
        self.logger = get_logger()

    @staticmethod
    def unit(net: str) -> str:
        return f"tinc@{net}"

    def check_dependencies(self, commands: Sequence[str] = REQUIRED_COMMANDS) -> List[str]:
        """필수 명령어 확인, 누락 시 DependencyMissing"""
        missing = [cmd for cmd in commands if shutil.which(cmd) is None]
        if missing:
            self.logger.error(f"Missing dependencies: {', '.join(missing)}")
            raise DependencyMissing(missing)
        self.logger.debug("All local dependencies are installed")
        return list(commands)

    def ensure_packages(self) -> Tuple[bool, str]:
        """tinc 패키지가 없으면 apt-get으로 설치 (idempotent)"""
        if shutil.which("dpkg"):
            installed = subprocess.run(["dpkg", "-s", "tinc"], capture_output=True).returncode == 0
        else:
            installed = shutil.which("tincd") is not None

        if installed:
            self.logger.debug("tinc already installed (idempotent)")
            return True, "이미 설치됨"

        if shutil.which("apt-get") is None:
            return False, "apt-get not available"

        console.print("[cyan]tinc 패키지 설치 중...[/cyan]")
        self.logger.info("Installing tinc packages...")
        env = dict(os.environ, DEBIAN_FRONTEND="noninteractive")
        subprocess.run(["apt-get", "update", "-y"], capture_output=True, env=env)
        result = subprocess.run(
            ["apt-get", "install", "-y", *PACKAGES],
            capture_output=True,
            text=True,
            env=env
        )
        if result.returncode == 0:
            self.logger.info("tinc packages installed")
            return True, "설치 완료"

        self.logger.error(f"Package install failed: {result.stderr}")
        return False, result.stderr.strip()

    def generate_keys(self, net: str, bits: int = 4096) -> Tuple[bool, str]:
        """tincd -n <net> -K<bits> (공개키는 hosts/<name> 에 추가됨)"""
        console.print(f"[cyan]-> RSA 키 생성 중 ({bits}-bit, {net})...[/cyan]")
        self.logger.info(f"Generating {bits}-bit RSA keys for {net}")
        try:
            result = subprocess.run(
                ["tincd", "-n", net, f"-K{bits}"],
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True
            )
        except FileNotFoundError:
            return False, "tincd not found"

        if result.returncode == 0:
            return True, "키 생성 완료"

        self.logger.warning(f"Key generation for {net} returned {result.returncode}: {result.stderr.strip()}")
        return False, result.stderr.strip()

    def send_reload_signal(self, net: str) -> Tuple[bool, str]:
        """실행 중인 tincd에 HUP 전송 (세션 유지)"""
        try:
            result = subprocess.run(
                ["pkill", "-HUP", "-f", f"tincd -n {net}"],
                capture_output=True
            )
        except FileNotFoundError:
            return False, "pkill not found"

        # pkill: 1 = 일치하는 프로세스 없음
        reloaded = result.returncode == 0
        self.logger.debug(f"HUP sent to tincd -n {net}: {reloaded}")
        return reloaded, "리로드 완료" if reloaded else "실행 중인 데몬 없음"

    def set_mtu_now(self, net: str, mtu: int) -> bool:
        """인터페이스가 이미 올라와 있으면 MTU 즉시 적용"""
        if not self.network.interface_exists(net):
            return False

        result = subprocess.run(
            ["ip", "link", "set", "dev", net, "mtu", str(mtu)],
            capture_output=True
        )
        if result.returncode != 0:
            self.logger.warning(f"Failed to set MTU {mtu} on {net}")
            return False
        return True

    def restart(self, net: str, mtu: int) -> Tuple[bool, str]:
        """유닛 enable(실패 무시) 후 restart, MTU 적용. restart 실패 시 DaemonError"""
        unit = self.unit(net)
        self.services.enable(unit)

        success, msg = self.services.restart(unit)
        if not success:
            raise DaemonError(f"Failed to restart {unit}: {msg}")

        self.set_mtu_now(net, mtu)
        return True, f"{unit} 재시작 완료"
