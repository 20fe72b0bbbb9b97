"""
원격 노드 부트스트랩 모듈

단계: connect -> install -> configure -> keys -> start
- connect 실패는 ConnectivityError/AuthError로 즉시 중단
- install/configure/keys 는 best-effort (경고 후 계속)
- start 실패는 BootstrapResult.ok = False

이미 구성된 노드에 다시 실행하면 원격 /etc/tinc/<net> 을 통째로 지우고 새로 만든다.
고장 난 노드를 복구하는 공식 경로이므로 막지 않는다.
"""

from typing import Optional
from rich.console import Console
from .errors import ConnectivityError, NotInitialized
from .logger import get_logger
from .models import BootstrapResult, Node, StepResult
from .network import NetworkChecker
from .remote import Credentials, ProvisioningRequest, RemoteExecutor
from .store import StateStore

console = Console()


class NodeProvisioner:
    """신규 피어 1회성 부트스트랩"""

    def __init__(self, config, remote: RemoteExecutor, store: StateStore,
                 layout_factory, network: Optional[NetworkChecker] = None):
        self.config = config
        self.remote = remote
        self.store = store
        self.layout_factory = layout_factory
        self.network = network or NetworkChecker()
        self.logger = get_logger()

    def build_request(self, net: str, node: Node) -> ProvisioningRequest:
        anchor = self.store.anchor(net)
        if anchor is None:
            raise NotInitialized(f"No anchor node recorded for {net}. Run init first.")

        layout = self.layout_factory(net)
        netmask = layout.read_netmask() or self.config.mesh.default_netmask

        return ProvisioningRequest(
            net=net,
            node=node,
            connect_to=anchor.name,
            netmask=netmask,
            mesh=self.config.mesh,
            remote_root=self.config.paths.remote_tinc_root,
            ssh_port=int(self.config.ssh.port),
        )

    def bootstrap(self, net: str, node: Node, credentials: Credentials) -> BootstrapResult:
        request = self.build_request(net, node)
        host = request.host
        result = BootstrapResult(node=node)

        console.print(f"\n[bold cyan]{node.name} ({host}) 부트스트랩 시작...[/bold cyan]")
        self.logger.info(f"Bootstrapping {node.name} at {host}")

        # 1. 접속 및 인증 (실패 시 예외 전파)
        result.steps.append(self._connect(request, credentials))

        # 2~4. best-effort
        for step, script in (
            ("install", request.install_script()),
            ("configure", request.configure_script()),
            ("keys", request.keygen_script()),
        ):
            result.steps.append(self._run_step(request, credentials, step, script, fatal=False))

        # 5. 데몬 시작
        start = self._run_step(request, credentials, "start", request.start_script(), fatal=True)
        result.steps.append(start)

        if result.ok:
            console.print(f"[green]✓ {node.name} 부트스트랩 완료[/green]")
            self.logger.info(f"Bootstrap of {node.name} completed")
        else:
            console.print(f"[red]✗ {node.name} 데몬 시작 실패: {start.message}[/red]")
            self.logger.error(f"Bootstrap of {node.name} failed at start: {start.message}")

        return result

    def _connect(self, request: ProvisioningRequest, credentials: Credentials) -> StepResult:
        host = request.host
        reachable, msg = self.network.check_port(host.address, host.port, int(self.config.ssh.timeout))
        if not reachable:
            raise ConnectivityError(str(host), msg)

        _, status = self.remote.execute(host, credentials, "true\n")
        if status != 0:
            raise ConnectivityError(str(host), f"remote shell exited {status}")

        self.logger.debug(f"Connected to {host}")
        return StepResult("connect", True, "접속 성공", fatal=True)

    def _run_step(self, request: ProvisioningRequest, credentials: Credentials,
                  step: str, script: str, fatal: bool) -> StepResult:
        console.print(f"  [cyan]-> {step}[/cyan]")
        try:
            output, status = self.remote.execute(request.host, credentials, script)
        except ConnectivityError as e:
            if fatal:
                return StepResult(step, False, str(e), fatal=True)
            self.logger.warning(f"{request.node.name}: step {step} failed: {e}")
            return StepResult(step, False, str(e))

        if status == 0:
            return StepResult(step, True, "완료", fatal=fatal)

        message = f"exit status {status}"
        if not fatal:
            console.print(f"  [yellow]⚠ {step} 실패 ({message}), 계속 진행[/yellow]")
            self.logger.warning(f"{request.node.name}: step {step} returned {status}, continuing")
        return StepResult(step, False, message, fatal=fatal)
