"""
Supabase 어댑터

PostgREST 백킹 스토어/사용자 디렉토리 + Realtime 변경 피드.
"""

from adapters.supabase.realtime_client import RealtimeChannel, SupabaseRealtimeClient
from adapters.supabase.rest_client import SupabaseRestClient
from adapters.supabase.store import SupabaseBackingStore, SupabaseUserDirectory

__all__ = [
    "RealtimeChannel",
    "SupabaseRealtimeClient",
    "SupabaseRestClient",
    "SupabaseBackingStore",
    "SupabaseUserDirectory",
]
