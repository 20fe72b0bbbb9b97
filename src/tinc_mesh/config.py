"""
설정 관리 모듈
YAML/JSON 기반 설정 파일 관리 및 기본값 제공
"""

import os
import yaml
import json
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict


@dataclass
class MeshConfig:
    """tinc 메시 기본값 및 전송 정책"""
    port: int = 655
    mtu: int = 1380
    ping_interval: int = 10
    ping_timeout: int = 5
    key_bits: int = 4096
    cipher: str = "aes-128-gcm"
    digest: str = "sha256"
    compression: int = 0
    mode: str = "router"
    address_family: str = "ipv4"
    default_netmask: str = "255.255.255.0"


@dataclass
class PoolConfig:
    """프라이빗 IP 할당 범위"""
    prefix: str = "10.20.0"
    start: int = 2
    end: int = 254


@dataclass
class PathsConfig:
    """경로 설정"""
    tinc_root: str = "/etc/tinc"
    state_dir: str = "/etc/tinc/mesh_state"
    remote_tinc_root: str = "/etc/tinc"


@dataclass
class SSHConfig:
    """원격 접속 설정"""
    port: int = 22
    timeout: int = 10
    default_user: str = "root"
    password_env: str = "MESH_SSH_PASS"


@dataclass
class AgentConfig:
    """로깅 및 로컬 실행 설정"""
    log_dir: str = "/var/log/tinc-mesh"
    log_level: str = "INFO"
    install_packages: bool = True


class Config:
    """전체 설정 관리 클래스"""

    DEFAULT_CONFIG_PATHS = [
        "/etc/tinc-mesh/config.yaml",
        "~/.tinc-mesh/config.yaml",
        "./config/config.yaml",
        "./config.yaml",
    ]

    SECTIONS = ("mesh", "pool", "paths", "ssh", "agent")

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.mesh = MeshConfig()
        self.pool = PoolConfig()
        self.paths = PathsConfig()
        self.ssh = SSHConfig()
        self.agent = AgentConfig()

        if config_path:
            self.load(config_path)
        else:
            self._load_from_default_paths()

    def _load_from_default_paths(self):
        """기본 경로에서 설정 파일 로드"""
        for path in self.DEFAULT_CONFIG_PATHS:
            expanded_path = os.path.expanduser(path)
            if os.path.exists(expanded_path):
                self.load(expanded_path)
                return

    def load(self, path: str):
        """설정 파일 로드"""
        path = os.path.expanduser(path)
        if not os.path.exists(path):
            return

        with open(path, 'r', encoding='utf-8') as f:
            if path.endswith('.json'):
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}

        self._update_from_dict(data)
        self.config_path = path

    def _update_from_dict(self, data: Dict[str, Any]):
        """딕셔너리에서 설정 업데이트"""
        for section in self.SECTIONS:
            if section not in data or not data[section]:
                continue
            target = getattr(self, section)
            for key, value in data[section].items():
                if hasattr(target, key):
                    setattr(target, key, value)

    def save(self, path: Optional[str] = None):
        """설정 파일 저장"""
        save_path = path or self.config_path or self.DEFAULT_CONFIG_PATHS[0]
        save_path = os.path.expanduser(save_path)

        directory = os.path.dirname(save_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        data = self.to_dict()

        with open(save_path, 'w', encoding='utf-8') as f:
            if save_path.endswith('.json'):
                json.dump(data, f, indent=2)
            else:
                yaml.dump(data, f, default_flow_style=False, allow_unicode=True)

    def to_dict(self) -> Dict[str, Any]:
        """딕셔너리로 변환"""
        return {section: asdict(getattr(self, section)) for section in self.SECTIONS}

    def create_sample(self, output_path: str):
        """샘플 설정 파일 생성"""
        template = """# Tinc Mesh Manager Configuration File
# 이 파일을 /etc/tinc-mesh/config.yaml 로 복사하여 사용하세요

# 메시 기본값 및 전송 정책 (모든 노드에 동일하게 적용)
mesh:
  port: 655
  mtu: 1380
  ping_interval: 10
  ping_timeout: 5
  key_bits: 4096
  cipher: "aes-128-gcm"
  digest: "sha256"
  compression: 0
  mode: "router"
  address_family: "ipv4"
  default_netmask: "255.255.255.0"

# addq에서 --priv 생략 시 사용하는 주소 범위 (prefix.start ~ prefix.end)
pool:
  prefix: "10.20.0"
  start: 2
  end: 254

# 경로 설정
paths:
  tinc_root: "/etc/tinc"
  state_dir: "/etc/tinc/mesh_state"
  remote_tinc_root: "/etc/tinc"

# SSH 설정 (비밀번호는 저장하지 않음)
ssh:
  port: 22
  timeout: 10
  default_user: "root"
  password_env: "MESH_SSH_PASS"  # 모든 노드 비밀번호가 같을 때만 사용

# 로깅 및 로컬 실행
agent:
  log_dir: "/var/log/tinc-mesh"
  log_level: "INFO"  # DEBUG, INFO, WARNING, ERROR
  install_packages: true  # init 시 apt-get으로 tinc 설치
"""

        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(template)
