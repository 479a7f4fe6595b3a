"""
Blurt 네트워크 어댑터

JSON-RPC 정산 조회 + 서명 서비스 브로드캐스트.
"""

from adapters.blurt.broadcaster import SignerBroadcaster
from adapters.blurt.rpc_client import BlurtRpcClient, parse_asset

__all__ = [
    "SignerBroadcaster",
    "BlurtRpcClient",
    "parse_asset",
]
