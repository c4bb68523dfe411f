"""
appdeck KV capability.

Per-App, per-user namespaced key-value storage for JSON documents.

Usage:
    from appdeck.kv import AppKVService, IncomingRequest, create_store

    kv = AppKVService(create_store("redis", redis_url="redis://localhost:6379"))
    r = IncomingRequest(acting_user_id=user_id, from_app_id=app_id)
    await kv.set(r, "prefs", "theme", b'{"dark": true}')
"""

from .api import ACTING_USER_HEADER, APP_ID_HEADER, make_kv_router
from .request import IncomingRequest
from .service import AppKVService
from .store import InMemoryKVStore, KVStore, RedisKVStore, create_store

__all__ = [
    "ACTING_USER_HEADER",
    "APP_ID_HEADER",
    "AppKVService",
    "IncomingRequest",
    "InMemoryKVStore",
    "KVStore",
    "RedisKVStore",
    "create_store",
    "make_kv_router",
]
