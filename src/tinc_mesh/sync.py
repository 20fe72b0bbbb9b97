"""
토폴로지 동기화 모듈

push    : 로컬 hosts/ 디렉토리 전체를 모든 멤버 노드에 복사하고 HUP 리로드
retract : 삭제된 노드의 디스크립터를 다른 멤버 노드에서 제거하고 HUP 리로드

도달 불가 노드는 건너뛰고 SyncReport 에 기록한다. 재시도하지 않으며,
운영자가 push를 다시 실행하여 최종 일관성을 맞춘다. 상태 저장소는 변경하지 않는다.
"""

import posixpath
from rich.console import Console
from .errors import ConnectivityError, NotInitialized, ValidationError
from .logger import get_logger
from .models import RELOAD_FAILED, SKIPPED, SYNCED, SyncReport
from .remote import CredentialProvider, RemoteExecutor, RemoteHost, reload_script, retract_script
from .store import StateStore

console = Console()


class TopologySynchronizer:
    """디스크립터 동기화"""

    def __init__(self, config, remote: RemoteExecutor, store: StateStore, daemon, layout_factory):
        self.config = config
        self.remote = remote
        self.store = store
        self.daemon = daemon
        self.layout_factory = layout_factory
        self.logger = get_logger()

    def _host(self, node) -> RemoteHost:
        return RemoteHost.for_node(node, int(self.config.ssh.port))

    def push(self, net: str, credentials: CredentialProvider) -> SyncReport:
        if not self.store.exists(net):
            raise NotInitialized(f"No nodes file: {self.store.path_for(net)}")
        layout = self.layout_factory(net)
        if not layout.hosts_dir.is_dir():
            raise NotInitialized(f"Missing hosts dir: {layout.hosts_dir}")

        remote_hosts_dir = posixpath.join(self.config.paths.remote_tinc_root, net, "hosts")
        report = SyncReport(net=net)

        for node in self.store.load(net):
            if node.is_anchor:
                continue

            host = self._host(node)
            console.print(f"[cyan]-> {node.name} ({node.public_address}) 호스트 동기화[/cyan]")
            self.logger.info(f"Syncing hosts to {node.name} ({host})")

            try:
                creds = credentials.for_host(host)
                self.remote.copy(host, creds, str(layout.hosts_dir), remote_hosts_dir)
            except (ConnectivityError, ValidationError) as e:
                console.print(f"  [yellow]⚠ {node.name} 건너뜀: {e}[/yellow]")
                self.logger.warning(f"Skipping {node.name}: {e}")
                report.record(node, SKIPPED, str(e))
                continue

            try:
                _, status = self.remote.execute(host, creds, reload_script(host, net))
            except ConnectivityError as e:
                status, reason = -1, str(e)
            else:
                reason = f"exit status {status}"

            if status == 0:
                report.record(node, SYNCED)
            else:
                self.logger.warning(f"Reload on {node.name} failed: {reason}")
                report.record(node, RELOAD_FAILED, reason)

        report.local_reloaded, _ = self.daemon.send_reload_signal(net)

        if report.partial_failure:
            console.print(f"[yellow]⚠ 일부 노드 동기화 실패: {', '.join(p.name for p in report.peers if p.status != SYNCED)}[/yellow]")
            self.logger.warning(f"Partial sync failure in {net}: {report.warnings}")
        else:
            console.print("[green]✓ 호스트 동기화 + 리로드 완료[/green]")
        self.logger.info(f"Push for {net} finished: {len(report.synced)} synced, {len(report.skipped)} skipped")
        return report

    def retract(self, net: str, name: str, credentials: CredentialProvider) -> SyncReport:
        """삭제된 노드의 디스크립터를 나머지 멤버에서 제거 (best-effort)"""
        report = SyncReport(net=net)
        remote_root = self.config.paths.remote_tinc_root

        for node in self.store.load(net):
            if node.is_anchor or node.name == name:
                continue

            host = self._host(node)
            try:
                creds = credentials.for_host(host)
                _, status = self.remote.execute(host, creds, retract_script(host, net, name, remote_root))
            except (ConnectivityError, ValidationError) as e:
                self.logger.warning(f"Could not remove {name} from {node.name}: {e}")
                report.record(node, SKIPPED, str(e))
                continue

            if status == 0:
                report.record(node, SYNCED)
            else:
                report.record(node, RELOAD_FAILED, f"exit status {status}")

        report.local_reloaded, _ = self.daemon.send_reload_signal(net)
        return report
