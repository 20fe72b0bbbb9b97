"""
토폴로지 동기화 테스트
"""

import pytest

from tinc_mesh.errors import NotInitialized
from tinc_mesh.models import RELOAD_FAILED, SKIPPED, SYNCED
from tinc_mesh.remote import CredentialProvider, Credentials


def provider():
    return CredentialProvider(prompt=lambda host: "pw", env_var=None)


@pytest.fixture
def mesh(initialized, remote):
    """앵커 A + 멤버 B(5.6.7.8), C(5.6.7.9)"""
    remote.hostnames = {"5.6.7.8": "B", "5.6.7.9": "C"}
    initialized.addq("m", "5.6.7.8", Credentials("pw"))
    initialized.addq("m", "5.6.7.9", Credentials("pw"))
    remote.executed.clear()
    remote.copies.clear()
    return initialized


def test_push_skips_unreachable_peer(mesh, remote, daemon):
    remote.unreachable.add("5.6.7.9")
    state_file = mesh.store.path_for("m")
    before = state_file.read_bytes()

    with provider() as creds:
        report = mesh.push("m", creds)

    assert report.synced == ["B"]
    assert report.skipped == ["C"]
    assert report.partial_failure
    assert report.warnings == ["C (5.6.7.9): skipped root@5.6.7.9: timed out"]
    assert report.local_reloaded

    b_files = remote.remote_files["5.6.7.8"]
    for name in ("A", "B", "C"):
        assert f"/etc/tinc/m/hosts/{name}" in b_files
    assert any("pkill -HUP -f 'tincd -n m'" in s for s in remote.scripts_for("5.6.7.8"))
    assert remote.scripts_for("5.6.7.9") == []
    assert daemon.calls[-1] == ("reload", "m")
    assert state_file.read_bytes() == before


def test_push_reports_reload_failure(mesh, remote):
    remote.fail_on["5.6.7.8"] = {"pkill -HUP": 1}

    with provider() as creds:
        report = mesh.push("m", creds)

    statuses = {p.name: p.status for p in report.peers}
    assert statuses == {"B": RELOAD_FAILED, "C": SYNCED}


def test_push_never_contacts_anchor(mesh, remote):
    with provider() as creds:
        report = mesh.push("m", creds)

    assert [p.name for p in report.peers] == ["B", "C"]
    assert "1.2.3.4" not in {addr for addr, _ in remote.executed}


def test_push_requires_state(manager):
    with pytest.raises(NotInitialized):
        with provider() as creds:
            manager.push("m", creds)


def test_retract_removes_descriptor_from_members(mesh, remote):
    with provider() as creds:
        report = mesh.synchronizer.retract("m", "C", creds)

    assert [p.name for p in report.peers] == ["B"]
    assert report.peers[0].status == SYNCED
    assert remote.scripts_for("5.6.7.8")[0].startswith("rm -f /etc/tinc/m/hosts/C || true\n")


def test_retract_skips_unreachable(mesh, remote):
    remote.unreachable.add("5.6.7.8")
    with provider() as creds:
        report = mesh.synchronizer.retract("m", "C", creds)
    assert report.peers[0].status == SKIPPED


def test_push_skips_peer_without_password(mesh, remote):
    """빈 비밀번호를 입력한 노드만 건너뛰고 나머지는 계속 동기화"""
    passwords = {"5.6.7.8": "", "5.6.7.9": "pw"}

    with CredentialProvider(prompt=lambda host: passwords[host.address], env_var=None) as creds:
        report = mesh.push("m", creds)

    assert report.skipped == ["B"]
    assert report.synced == ["C"]
    assert report.warnings[0].startswith("B (5.6.7.8): skipped")
    assert "/etc/tinc/m/hosts/C" in remote.remote_files["5.6.7.9"]


def test_retract_skips_peer_without_password(mesh, remote):
    with CredentialProvider(prompt=lambda host: "", env_var=None) as creds:
        report = mesh.synchronizer.retract("m", "C", creds)

    assert report.skipped == ["B"]
    assert remote.scripts_for("5.6.7.8") == []
