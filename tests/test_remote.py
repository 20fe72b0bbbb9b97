"""
원격 실행 모듈 테스트 (paramiko 경계는 mock)
"""

import socket
from unittest import mock

import paramiko
import pytest

from tinc_mesh.config import MeshConfig, SSHConfig
from tinc_mesh.errors import AuthError, ConnectivityError, ValidationError
from tinc_mesh.models import Node, Role
from tinc_mesh.remote import (
    CredentialProvider, Credentials, ProvisioningRequest, RemoteExecutor, RemoteHost,
    reload_script, retract_script, teardown_script,
)


def make_request(**overrides):
    values = dict(
        net="ali",
        node=Node("ger6", "91.107.154.234", "10.20.0.2", "ubuntu", Role.MEMBER, 655, 1380),
        connect_to="iran",
        netmask="255.255.255.0",
        mesh=MeshConfig(),
    )
    values.update(overrides)
    return ProvisioningRequest(**values)


def test_credentials_are_masked():
    creds = Credentials("hunter2")
    assert "hunter2" not in repr(creds)
    assert "hunter2" not in str(creds)
    assert creds.reveal() == "hunter2"

    creds.wipe()
    with pytest.raises(ValidationError):
        creds.reveal()


def test_empty_password_rejected():
    with pytest.raises(ValidationError):
        Credentials("")


def test_provider_prompts_once_per_host_and_wipes():
    prompts = []

    def prompt(host):
        prompts.append(str(host))
        return "pw"

    host = RemoteHost("5.6.7.8", "root")
    with CredentialProvider(prompt=prompt, env_var=None) as provider:
        first = provider.for_host(host)
        assert provider.for_host(host) is first
        provider.for_host(RemoteHost("5.6.7.9", "root"))

    assert prompts == ["root@5.6.7.8", "root@5.6.7.9"]
    with pytest.raises(ValidationError):
        first.reveal()


def test_provider_uses_env_override(monkeypatch):
    monkeypatch.setenv("MESH_SSH_PASS", "shared")
    provider = CredentialProvider(prompt=None)

    assert provider.from_env
    assert provider.for_host(RemoteHost("5.6.7.8", "root")).reveal() == "shared"

    # 환경변수가 있으면 share()는 무시
    provider.share(Credentials("other"))
    assert provider.for_host(RemoteHost("5.6.7.9", "root")).reveal() == "shared"


def test_provider_share_sets_batch_default(monkeypatch):
    monkeypatch.delenv("MESH_SSH_PASS", raising=False)
    provider = CredentialProvider(prompt=None)
    with pytest.raises(ValidationError):
        provider.for_host(RemoteHost("5.6.7.8", "root"))

    provider.share(Credentials("pw"))
    assert provider.for_host(RemoteHost("5.6.7.8", "root")).reveal() == "pw"


def test_request_rejects_unsafe_values():
    with pytest.raises(ValidationError):
        make_request(net="ali;reboot")
    with pytest.raises(ValidationError):
        make_request(connect_to="$(id)")
    with pytest.raises(ValidationError):
        make_request(netmask="255.255.255.0 && id")
    with pytest.raises(ValidationError):
        make_request(remote_root="/etc/tinc; rm -rf /")


def test_request_scripts_use_sudo_for_non_root():
    request = make_request()
    assert request.host == RemoteHost("91.107.154.234", "ubuntu", 22)
    assert "sudo apt-get install -y tinc net-tools iproute2" in request.install_script()
    assert request.keygen_script() == "sudo tincd -n ali -K4096 </dev/null >/dev/null 2>&1\n"
    assert "sudo systemctl restart tinc@ali" in request.start_script()


def test_configure_script_writes_all_files():
    request = make_request()
    script = request.configure_script()

    assert "sudo rm -rf /etc/tinc/ali\n" in script
    assert "sudo mkdir -p /etc/tinc/ali/hosts\n" in script
    assert "sudo tee /etc/tinc/ali/tinc.conf >/dev/null <<'TINC_MESH_EOF'" in script
    assert "ConnectTo = iran\n" in script
    assert "sudo tee /etc/tinc/ali/hosts/ger6 >/dev/null" in script
    assert "Subnet = 10.20.0.2/32\n" in script
    assert "sudo chmod +x /etc/tinc/ali/tinc-up" in script
    # 인용된 heredoc 이므로 $INTERFACE 는 원격 셸에서 확장되지 않음
    assert "/sbin/ifconfig $INTERFACE 10.20.0.2 netmask 255.255.255.0" in script
    assert script.count("TINC_MESH_EOF") == 8


def test_root_scripts_have_no_sudo():
    host = RemoteHost("5.6.7.8", "root")
    assert reload_script(host, "ali") == "pkill -HUP -f 'tincd -n ali' || true\n"
    assert retract_script(host, "ali", "ger6").startswith("rm -f /etc/tinc/ali/hosts/ger6 || true\n")
    assert "systemctl disable tinc@ali" in teardown_script(host, "ali")
    with pytest.raises(ValidationError):
        retract_script(host, "ali", "../../etc")


def test_executor_maps_auth_failure():
    executor = RemoteExecutor(SSHConfig(timeout=1))
    with mock.patch("tinc_mesh.remote.paramiko.SSHClient") as client_cls:
        client_cls.return_value.connect.side_effect = paramiko.AuthenticationException("denied")
        with pytest.raises(AuthError):
            executor.execute(RemoteHost("5.6.7.8", "root"), Credentials("bad"), "true\n")

    connect_kwargs = client_cls.return_value.connect.call_args.kwargs
    assert connect_kwargs["password"] == "bad"
    assert connect_kwargs["look_for_keys"] is False
    assert connect_kwargs["allow_agent"] is False


def test_executor_maps_unreachable():
    executor = RemoteExecutor(SSHConfig(timeout=1))
    with mock.patch("tinc_mesh.remote.paramiko.SSHClient") as client_cls:
        client_cls.return_value.connect.side_effect = socket.timeout("timed out")
        with pytest.raises(ConnectivityError) as info:
            executor.execute(RemoteHost("5.6.7.8", "root"), Credentials("pw"), "true\n")

    assert not isinstance(info.value, AuthError)


def test_executor_runs_script_over_stdin():
    executor = RemoteExecutor(SSHConfig(timeout=1))
    with mock.patch("tinc_mesh.remote.paramiko.SSHClient") as client_cls:
        client = client_cls.return_value
        channel = client.get_transport.return_value.open_session.return_value
        channel.makefile.return_value.read.return_value = b"ger6\n"
        channel.recv_exit_status.return_value = 0

        output, status = executor.execute(RemoteHost("5.6.7.8", "root"), Credentials("pw"), "hostname -s\n")

    assert (output, status) == ("ger6\n", 0)
    channel.exec_command.assert_called_once_with("bash -s")
    channel.sendall.assert_called_once_with(b"hostname -s\n")
    channel.shutdown_write.assert_called_once()
    client.close.assert_called()


def test_executor_merges_stderr_into_output():
    """stderr 를 따로 읽지 않고 한 스트림으로 받음"""
    executor = RemoteExecutor(SSHConfig(timeout=1))
    with mock.patch("tinc_mesh.remote.paramiko.SSHClient") as client_cls:
        channel = client_cls.return_value.get_transport.return_value.open_session.return_value
        channel.makefile.return_value.read.return_value = b"E: Unable to locate package tinc\n"
        channel.recv_exit_status.return_value = 100

        output, status = executor.execute(RemoteHost("5.6.7.8", "root"), Credentials("pw"), "apt-get install -y tinc\n")

    channel.set_combined_stderr.assert_called_once_with(True)
    assert status == 100
    assert "Unable to locate package" in output
    channel.makefile_stderr.assert_not_called()
