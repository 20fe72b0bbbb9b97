"""
CLI 메인 인터페이스
Click 및 Rich 기반 tinc 메시 관리 CLI
"""

import sys
import click
from typing import Dict, List
from rich.console import Console
from rich.table import Table
from rich.prompt import Prompt
from .config import Config
from .errors import MeshError
from .logger import init_logger, get_logger
from .manager import MembershipManager
from .models import SYNCED, SyncReport
from .remote import CredentialProvider, Credentials, RemoteHost

console = Console()

USAGE = """사용법:
  init    --net NET --name NAME --pub PUBIP --priv PRIVIP --mask NETMASK [--port PORT] [--mtu MTU]
  add     --net NET --name NAME --pub PUBIP --priv PRIVIP --ssh-user USER [--port PORT] [--mtu MTU]
  addq    --net NET --pub PUBIP [--ssh-user USER] [--name NAME] [--priv PRIVIP] [--port PORT] [--mtu MTU]
  del     --net NET --name NAME
  list    --net NET
  push    --net NET
  restart --net NET

인증:
  add/addq 실행 시 SSH 비밀번호를 묻습니다 (저장/표시하지 않음).
  모든 노드 비밀번호가 같다면 MESH_SSH_PASS 환경변수로 한 번에 지정할 수 있습니다.

예시:
  tinc-mesh init --net ali --name iranserver --pub 88.218.18.155 --priv 10.20.0.1 --mask 255.255.255.0
  tinc-mesh addq --net ali --pub 91.107.154.234
  tinc-mesh del --net ali --name ger6
"""


def prompt_password(host: RemoteHost) -> str:
    """SSH 비밀번호 입력 (화면에 표시하지 않음)"""
    return Prompt.ask(f"SSH password for {host}", password=True, console=console)


def require(params: Dict[str, object]):
    """필수 파라미터 확인, 누락 시 사용법 출력 후 종료 코드 1"""
    missing = [f"--{key}" for key, value in params.items() if value in (None, "")]
    if missing:
        console.print(f"[red]오류: 필수 옵션 누락: {', '.join(missing)}[/red]\n")
        console.print(USAGE)
        sys.exit(1)


def build_manager(ctx) -> MembershipManager:
    return MembershipManager(ctx.obj["config"])


def provider_for(ctx) -> CredentialProvider:
    cfg = ctx.obj["config"]
    return CredentialProvider(prompt=prompt_password, env_var=cfg.ssh.password_env)


def show_sync_report(report: SyncReport):
    """동기화 결과 표시"""
    if not report.peers:
        console.print("[yellow]동기화할 멤버 노드가 없습니다.[/yellow]")
        return

    table = Table(title=f"{report.net} 동기화 결과", show_header=True, header_style="bold magenta")
    table.add_column("노드", style="cyan")
    table.add_column("주소")
    table.add_column("상태")
    table.add_column("메시지")

    for peer in report.peers:
        color = "green" if peer.status == SYNCED else "yellow"
        table.add_row(peer.name, peer.address, f"[{color}]{peer.status}[/{color}]", peer.message)

    console.print(table)
    for warning in report.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")


def run_workflow(ctx, workflow):
    """워크플로우 실행, 오류 시 종료 코드 1 (롤백 없음)"""
    logger = get_logger()
    try:
        return workflow()
    except MeshError as e:
        console.print(f"[red]ERROR: {e}[/red]")
        logger.error(f"{ctx.info_name} failed: {e}")
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        console.print("\n[yellow]사용자에 의해 중단되었습니다. (이미 적용된 변경은 롤백되지 않음)[/yellow]")
        logger.warning(f"{ctx.info_name} interrupted by user")
        sys.exit(1)


@click.group()
@click.version_option(version="1.0.0")
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True), help='설정 파일 경로')
@click.option('--debug', is_flag=True, help='디버그 모드')
@click.pass_context
def cli(ctx, config_path, debug):
    """Tinc Mesh Manager

    앵커 호스트에서 tinc 메시 네트워크의 노드를 추가/삭제/동기화합니다.
    """
    cfg = Config(config_path)
    init_logger(cfg.agent.log_dir, cfg.agent.log_level, debug)
    get_logger().debug(f"Loaded config from {cfg.config_path or 'defaults'}")
    ctx.ensure_object(dict)
    ctx.obj["config"] = cfg
    ctx.obj["debug"] = debug


@cli.command()
@click.option('--net')
@click.option('--name')
@click.option('--pub')
@click.option('--priv')
@click.option('--mask')
@click.option('--port', type=int)
@click.option('--mtu', type=int)
@click.pass_context
def init(ctx, net, name, pub, priv, mask, port, mtu):
    """앵커(메인) 노드로 메시 초기화"""
    require({"net": net, "name": name, "pub": pub, "priv": priv, "mask": mask})
    manager = build_manager(ctx)

    node = run_workflow(ctx, lambda: manager.init(net, name, pub, priv, mask, port=port, mtu=mtu))
    console.print(f"[green]OK: Initialized main node {node.name} in net {net}[/green]")


@cli.command()
@click.option('--net')
@click.option('--name')
@click.option('--pub')
@click.option('--priv')
@click.option('--ssh-user', 'ssh_user')
@click.option('--port', type=int)
@click.option('--mtu', type=int)
@click.pass_context
def add(ctx, net, name, pub, priv, ssh_user, port, mtu):
    """노드 추가 (모든 값 지정)"""
    require({"net": net, "name": name, "pub": pub, "priv": priv, "ssh-user": ssh_user})
    manager = build_manager(ctx)

    def workflow():
        with provider_for(ctx) as provider:
            credentials = Credentials(prompt_password(RemoteHost(pub, ssh_user)))
            return manager.add(net, name, pub, priv, ssh_user, credentials,
                               port=port, mtu=mtu, provider=provider)

    result = run_workflow(ctx, workflow)
    show_sync_report(result.sync)
    node = result.node
    console.print(f"[green]OK: Added node {node.name} ({node.public_address} -> {node.private_address}) to net {net}[/green]")


@cli.command()
@click.option('--net')
@click.option('--pub')
@click.option('--ssh-user', 'ssh_user')
@click.option('--name')
@click.option('--priv')
@click.option('--port', type=int)
@click.option('--mtu', type=int)
@click.pass_context
def addq(ctx, net, pub, ssh_user, name, priv, port, mtu):
    """노드 빠른 추가 (이름/프라이빗 IP 자동)"""
    require({"net": net, "pub": pub})
    cfg = ctx.obj["config"]
    manager = build_manager(ctx)
    user = ssh_user or cfg.ssh.default_user

    def workflow():
        with provider_for(ctx) as provider:
            credentials = Credentials(prompt_password(RemoteHost(pub, user)))
            return manager.addq(net, pub, credentials, ssh_user=user, name=name,
                                private_address=priv, port=port, mtu=mtu, provider=provider)

    result = run_workflow(ctx, workflow)
    show_sync_report(result.sync)
    node = result.node
    console.print(f"[green]OK: Added node {node.name} ({node.public_address} -> {node.private_address}) to net {net}[/green]")


@cli.command(name="del")
@click.option('--net')
@click.option('--name')
@click.pass_context
def delete(ctx, net, name):
    """노드 삭제 (앵커 노드는 삭제 불가)"""
    require({"net": net, "name": name})
    manager = build_manager(ctx)

    def workflow():
        with provider_for(ctx) as provider:
            return manager.delete(net, name, provider)

    result = run_workflow(ctx, workflow)
    if not result.teardown_ok:
        console.print(f"[yellow]⚠ {name} 원격 정리에 실패했습니다. 해당 서버에서 tinc@{net} 를 직접 확인하세요.[/yellow]")
    for warning in result.sync.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")
    console.print(f"[green]OK: Deleted node {name}[/green]")


def render_nodes(net: str, nodes: List) -> Table:
    table = Table(title=f"{net} 노드 목록", show_header=True, header_style="bold magenta")
    for column in ("NAME", "PUBLIC_IP", "PRIVATE_IP", "SSH_USER", "ROLE", "PORT", "MTU"):
        table.add_column(column)

    for node in nodes:
        table.add_row(
            node.name,
            node.public_address,
            node.private_address,
            node.ssh_user,
            node.role.value,
            str(node.port),
            str(node.mtu),
        )
    return table


@cli.command(name="list")
@click.option('--net')
@click.pass_context
def list_nodes(ctx, net):
    """저장된 노드 목록"""
    require({"net": net})
    manager = build_manager(ctx)

    nodes = run_workflow(ctx, lambda: manager.list(net))
    if not nodes:
        console.print("(no nodes saved yet)")
        return
    console.print(render_nodes(net, nodes))


@cli.command()
@click.option('--net')
@click.pass_context
def push(ctx, net):
    """모든 노드에 hosts 동기화 + 리로드"""
    require({"net": net})
    manager = build_manager(ctx)

    def workflow():
        with provider_for(ctx) as provider:
            return manager.push(net, provider)

    report = run_workflow(ctx, workflow)
    show_sync_report(report)
    console.print("[green]OK: hosts synced + reloaded[/green]")


@cli.command()
@click.option('--net')
@click.pass_context
def restart(ctx, net):
    """앵커 노드 tinc 데몬 재시작"""
    require({"net": net})
    manager = build_manager(ctx)

    mtu = run_workflow(ctx, lambda: manager.restart(net))
    console.print(f"[green]OK: restarted tinc@{net} (mtu {mtu})[/green]")


@cli.command(name="sample-config")
@click.argument('output', type=click.Path(), default='./config.yaml')
@click.pass_context
def sample_config(ctx, output):
    """샘플 설정 파일 생성"""
    ctx.obj["config"].create_sample(output)
    console.print(f"[green]✓ 샘플 설정 파일 생성: {output}[/green]")
    console.print(f"[cyan]설정 파일을 편집한 후 /etc/tinc-mesh/config.yaml 에 두거나 --config 로 지정하세요.[/cyan]")


def main():
    """메인 엔트리 포인트"""
    cli()


if __name__ == '__main__':
    main()
