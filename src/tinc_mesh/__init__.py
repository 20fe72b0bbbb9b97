
"""
Tinc Mesh Manager
앵커 호스트에서 tinc 기반 프라이빗 메시 네트워크를 구성/관리하는 컨트롤 플레인

Features:
- 노드 멤버십 상태 관리 (원자적 파일 교체)
- 프라이빗 IP 자동 할당
- SSH 기반 원격 노드 부트스트랩
- 호스트 디스크립터 동기화 및 무중단 리로드 (HUP)
"""

__version__ = "1.0.0"
__author__ = "DevOps Team"
