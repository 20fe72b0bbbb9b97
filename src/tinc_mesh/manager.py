"""
멤버십 매니저
init / add / addq / del / list / push / restart 워크플로우

원격 부트스트랩이 완전히 성공한 뒤에만 상태 저장소에 노드를 기록한다.
중단(Ctrl+C) 시 롤백하지 않으며, 이미 쓰인 파일과 원격 변경은 그대로 남는다.
"""

import time
from functools import partial
from typing import List, Optional
from rich.console import Console
from .allocator import AddressPool, active_addresses, allocate
from .daemon import TincDaemon
from .descriptors import MeshLayout
from .errors import (
    BootstrapError, ConnectivityError, InvariantViolation, NodeNotFound, NotInitialized, ValidationError,
)
from .logger import get_logger
from .models import (
    AddResult, DeleteResult, Node, Role, sanitize_name, validate_ipv4, validate_mtu,
    validate_name, validate_port, validate_user,
)
from .network import NetworkChecker
from .provisioner import NodeProvisioner
from .remote import HOSTNAME_SCRIPT, CredentialProvider, Credentials, RemoteExecutor, RemoteHost, teardown_script
from .store import StateStore
from .sync import TopologySynchronizer

console = Console()


class MembershipManager:
    """메시 멤버십 워크플로우 오케스트레이터"""

    def __init__(self, config, store: Optional[StateStore] = None,
                 remote: Optional[RemoteExecutor] = None,
                 daemon: Optional[TincDaemon] = None,
                 network: Optional[NetworkChecker] = None):
        self.config = config
        self.logger = get_logger()
        self.store = store or StateStore(config.paths.state_dir)
        self.remote = remote or RemoteExecutor(config.ssh)
        self.network = network or NetworkChecker()
        self.daemon = daemon or TincDaemon(network=self.network)
        self.layout_factory = partial(MeshLayout, config.paths.tinc_root)
        self.pool = AddressPool.from_config(config.pool)
        self.provisioner = NodeProvisioner(config, self.remote, self.store, self.layout_factory, self.network)
        self.synchronizer = TopologySynchronizer(config, self.remote, self.store, self.daemon, self.layout_factory)

    def _host(self, public_address: str, ssh_user: str) -> RemoteHost:
        return RemoteHost(public_address, ssh_user, int(self.config.ssh.port))

    def _require_initialized(self, net: str) -> MeshLayout:
        layout = self.layout_factory(net)
        if not layout.net_dir.is_dir():
            raise NotInitialized("Network not initialized locally. Run init first.")
        if not layout.hosts_dir.is_dir():
            raise NotInitialized("Missing hosts dir locally.")
        if self.store.anchor(net) is None:
            raise NotInitialized(f"No anchor node recorded for {net}. Run init first.")
        return layout

    # -----------------------------
    # init
    # -----------------------------

    def init(self, net: str, name: str, public_address: str, private_address: str,
             netmask: str, port: Optional[int] = None, mtu: Optional[int] = None) -> Node:
        validate_name(net, "net")
        node = Node(
            name=validate_name(sanitize_name(name)),
            public_address=validate_ipv4(public_address, "public address"),
            private_address=validate_ipv4(private_address, "private address"),
            ssh_user="root",
            role=Role.ANCHOR,
            port=validate_port(port or self.config.mesh.port),
            mtu=validate_mtu(mtu or self.config.mesh.mtu),
        )
        netmask = validate_ipv4(netmask, "netmask")

        existing = self.store.anchor(net)
        if existing is not None and existing.name != node.name:
            raise InvariantViolation(f"Net {net} already has anchor node {existing.name}")
        self._check_unique_address(net, node)

        console.print(f"\n[bold cyan]{net} 메시 초기화 ({node.name})...[/bold cyan]\n")
        self.logger.info(f"Initializing net {net} with anchor {node.name}")

        if self.config.agent.install_packages:
            self.daemon.ensure_packages()
        self.daemon.check_dependencies()

        layout = self.layout_factory(net)
        layout.prepare()
        layout.write_conf(self.config.mesh, node.name)
        layout.write_scripts(node.private_address, netmask, node.mtu)
        layout.write_descriptor(node)

        success, msg = self.daemon.generate_keys(net, int(self.config.mesh.key_bits))
        if not success:
            self.logger.warning(f"Key generation reported: {msg}")

        self.daemon.restart(net, node.mtu)
        self.store.upsert(net, node)

        self.logger.info(f"Initialized main node {node.name} in net {net}")
        return node

    # -----------------------------
    # add / addq
    # -----------------------------

    def _check_unique_address(self, net: str, node: Node):
        for other in self.store.load(net):
            if other.name != node.name and other.private_address == node.private_address:
                raise InvariantViolation(
                    f"Private address {node.private_address} already used by {other.name}"
                )

    def add(self, net: str, name: str, public_address: str, private_address: str,
            ssh_user: str, credentials: Credentials, port: Optional[int] = None,
            mtu: Optional[int] = None, provider: Optional[CredentialProvider] = None) -> AddResult:
        validate_name(net, "net")
        node = Node(
            name=validate_name(sanitize_name(name)),
            public_address=validate_ipv4(public_address, "public address"),
            private_address=validate_ipv4(private_address, "private address"),
            ssh_user=validate_user(ssh_user),
            role=Role.MEMBER,
            port=validate_port(port or self.config.mesh.port),
            mtu=validate_mtu(mtu or self.config.mesh.mtu),
        )

        layout = self._require_initialized(net)
        anchor = self.store.anchor(net)
        if node.name == anchor.name:
            raise InvariantViolation(f"{node.name} is the anchor node of {net}")
        self._check_unique_address(net, node)

        self.logger.info(f"Adding node {node.name} ({node.public_address} -> {node.private_address}) to {net}")
        layout.write_descriptor(node)

        # 부트스트랩 실패 시 여기서 중단 (저장소 변경 없음)
        result = self.provisioner.bootstrap(net, node, credentials)
        if not result.ok:
            raise BootstrapError(f"Bootstrap of {node.name} failed: {result.failure.message}")

        # 디스크립터 교환: 새 노드(공개키 포함) -> 앵커, 앵커 -> 새 노드
        request = self.provisioner.build_request(net, node)
        self.remote.fetch(request.host, credentials, request.descriptor_path, str(layout.hosts_dir))
        self.remote.copy(request.host, credentials, str(layout.descriptor_path(anchor.name)), request.hosts_dir)

        self.store.upsert(net, node)

        if provider is None:
            with CredentialProvider(env_var=self.config.ssh.password_env) as batch:
                batch.share(credentials)
                sync = self.synchronizer.push(net, batch)
        else:
            provider.share(credentials)
            sync = self.synchronizer.push(net, provider)

        self.daemon.restart(net, node.mtu)
        self.logger.info(f"Added node {node.name} ({node.public_address} -> {node.private_address}) to net {net}")
        return AddResult(node=node, bootstrap=result, sync=sync)

    def resolve_name(self, host: RemoteHost, credentials: Credentials) -> str:
        """피어의 hostname 조회 (허용 문자만 남김, 비면 node<타임스탬프>)"""
        output, _ = self.remote.execute(host, credentials, HOSTNAME_SCRIPT)
        lines = [line for line in output.splitlines() if line.strip()]
        name = sanitize_name(lines[-1].strip()) if lines else ""
        return name or f"node{int(time.time())}"

    def addq(self, net: str, public_address: str, credentials: Credentials,
             ssh_user: Optional[str] = None, name: Optional[str] = None,
             private_address: Optional[str] = None, port: Optional[int] = None,
             mtu: Optional[int] = None, provider: Optional[CredentialProvider] = None) -> AddResult:
        validate_name(net, "net")
        ssh_user = validate_user(ssh_user or self.config.ssh.default_user)
        public_address = validate_ipv4(public_address, "public address")
        self._require_initialized(net)

        if name:
            name = sanitize_name(name)
        else:
            name = self.resolve_name(self._host(public_address, ssh_user), credentials)
            self.logger.info(f"Resolved node name {name} for {public_address}")

        if not private_address:
            private_address = allocate(self.pool, active_addresses(self.store.load(net)))
            self.logger.info(f"Allocated private address {private_address} for {name}")

        return self.add(net, name, public_address, private_address, ssh_user, credentials,
                        port=port, mtu=mtu, provider=provider)

    # -----------------------------
    # del
    # -----------------------------

    def delete(self, net: str, name: str, provider: CredentialProvider) -> DeleteResult:
        validate_name(net, "net")
        node = self.store.find(net, name)
        if node is None:
            raise NodeNotFound(f"Node not found in state: {name}")
        if node.is_anchor:
            raise InvariantViolation("Refusing to delete local/main node.")

        console.print(f"[cyan]-> {name} 제거 중 (pub={node.public_address} priv={node.private_address})[/cyan]")
        self.logger.info(f"Removing {name} (pub={node.public_address} priv={node.private_address})")

        host = self._host(node.public_address, node.ssh_user)
        teardown_ok = True
        try:
            credentials = provider.for_host(host)
            self.remote.execute(host, credentials, teardown_script(host, net, self.config.paths.remote_tinc_root))
        except (ConnectivityError, ValidationError) as e:
            teardown_ok = False
            console.print(f"  [yellow]⚠ {name} 원격 정리 실패, 계속 진행: {e}[/yellow]")
            self.logger.warning(f"Remote teardown of {name} failed: {e}")

        self.layout_factory(net).remove_descriptor(name)
        sync = self.synchronizer.retract(net, name, provider)

        self.store.remove(net, name)
        self.logger.info(f"Deleted node {name}")
        return DeleteResult(node=node, teardown_ok=teardown_ok, sync=sync)

    # -----------------------------
    # list / push / restart
    # -----------------------------

    def list(self, net: str) -> List[Node]:
        return self.store.load(net)

    def push(self, net: str, provider: CredentialProvider):
        return self.synchronizer.push(net, provider)

    def restart(self, net: str) -> int:
        """앵커 데몬 재시작

        MTU는 저장소의 마지막 레코드 값을 사용한다 (앵커 값이 아님).
        """
        nodes = self.store.load(net)
        mtu = nodes[-1].mtu if nodes else int(self.config.mesh.mtu)
        self.daemon.restart(net, mtu)
        self.logger.info(f"Restarted tinc@{net} (mtu={mtu})")
        return mtu
