"""
예외 정의
모든 워크플로우 오류는 MeshError를 상속하며 CLI에서 종료 코드 1로 처리된다
"""


class MeshError(Exception):
    """메시 컨트롤 플레인 기본 예외"""

    exit_code = 1


class ValidationError(MeshError):
    """필수 파라미터 누락 또는 잘못된 값"""


class InvariantViolation(ValidationError):
    """앵커 삭제, 주소 중복 등 불변 조건 위반"""


class NodeNotFound(ValidationError):
    """상태 파일에 없는 노드"""


class NotInitialized(MeshError):
    """로컬에서 init 되지 않은 네트워크"""


class DependencyMissing(MeshError):
    """로컬 필수 명령어 누락"""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(f"Missing command: {', '.join(self.missing)}")


class ConnectivityError(MeshError):
    """피어에 접속할 수 없음"""

    def __init__(self, host: str, reason: str = ""):
        self.host = host
        self.reason = reason
        message = f"{host}: {reason}" if reason else host
        super().__init__(message)


class AuthError(ConnectivityError):
    """피어가 인증 정보를 거부함"""


class PoolExhausted(MeshError):
    """할당 가능한 프라이빗 IP 없음"""


class BootstrapError(MeshError):
    """원격 노드 부트스트랩 실패 (데몬 시작 실패)"""


class DaemonError(MeshError):
    """로컬 tinc 데몬 재시작 실패"""
