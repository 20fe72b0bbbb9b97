"""
tinc 설정 파일 생성 테스트
"""

from tinc_mesh.config import MeshConfig
from tinc_mesh.descriptors import MeshLayout, render_host, render_tinc_conf, render_tinc_up
from tinc_mesh.models import Node, Role


def make_node():
    return Node("ger6", "91.107.154.234", "10.20.0.2", "root", Role.MEMBER, 655, 1380)


def test_host_descriptor_content():
    assert render_host(make_node()) == (
        "Address = 91.107.154.234\n"
        "Port = 655\n"
        "Subnet = 10.20.0.2/32\n"
        "PMTUDiscovery = yes\n"
        "ClampMSS = yes\n"
    )


def test_tinc_conf_anchor_has_no_connect_to():
    conf = render_tinc_conf(MeshConfig(), "iran", "ali")
    assert conf.startswith("Name = iran\nAddressFamily = ipv4\nInterface = ali\n")
    assert "ConnectTo" not in conf
    assert "Cipher = aes-128-gcm\n" in conf
    assert "Digest = sha256\n" in conf
    assert "Compression = 0\n" in conf
    assert "PingTimeout  = 5\n" in conf


def test_tinc_conf_member_connects_to_anchor():
    conf = render_tinc_conf(MeshConfig(), "ger6", "ali", connect_to="iran")
    assert "Interface = ali\nConnectTo = iran\n" in conf


def test_tinc_up_keeps_interface_variable():
    up = render_tinc_up("10.20.0.2", "255.255.255.0", 1380)
    assert up.startswith("#!/bin/sh\n")
    assert "/sbin/ifconfig $INTERFACE 10.20.0.2 netmask 255.255.255.0" in up
    assert "mtu 1380 || true" in up


def test_layout_roundtrip(tmp_path):
    layout = MeshLayout(str(tmp_path), "ali")
    assert not layout.is_initialized()

    layout.prepare()
    layout.write_conf(MeshConfig(), "iran")
    layout.write_scripts("10.20.0.1", "255.255.0.0", 1400)
    path = layout.write_descriptor(make_node())

    assert layout.is_initialized()
    assert path == tmp_path / "ali" / "hosts" / "ger6"
    assert layout.read_main_name() == "iran"
    assert layout.read_netmask() == "255.255.0.0"
    assert layout.up_path.stat().st_mode & 0o111
    assert [p.name for p in layout.descriptors()] == ["ger6"]

    assert layout.remove_descriptor("ger6") is True
    assert layout.remove_descriptor("ger6") is False
    assert layout.descriptors() == []


def test_layout_missing_files(tmp_path):
    layout = MeshLayout(str(tmp_path), "none")
    assert layout.read_main_name() is None
    assert layout.read_netmask() is None
    assert layout.descriptors() == []
