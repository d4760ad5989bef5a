import json
import logging
import time
from typing import Any, List, Optional

import redis
from redis.exceptions import RedisError

from app.core.config import settings

logger = logging.getLogger(__name__)

# Redis client singleton
_redis_client: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    """Get Redis client singleton."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
            retry_on_timeout=True,
        )
    return _redis_client


def check_redis_health() -> dict:
    """Check Redis connectivity and return health status."""
    try:
        client = get_redis()
        client.ping()
        return {"status": "healthy", "connected": True}
    except RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return {"status": "unhealthy", "connected": False, "error": str(e)}


class RedisCache:
    """Redis helper for JSON values under a key prefix.

    Reads and writes fail soft: a Redis outage degrades to "nothing cached"
    instead of failing the request.
    """

    def __init__(self, prefix: str = "fleetdesk", client: Optional[redis.Redis] = None):
        self.prefix = prefix
        self._client = client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = get_redis()
        return self._client

    def _make_key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get(self, key: str) -> Optional[Any]:
        try:
            data = self.client.get(self._make_key(key))
            if data:
                return json.loads(data)
            return None
        except RedisError as e:
            logger.warning(f"Redis get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        try:
            ttl = ttl or settings.REDIS_CACHE_TTL
            return bool(self.client.setex(self._make_key(key), ttl, json.dumps(value)))
        except RedisError as e:
            logger.warning(f"Redis set error for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        try:
            return bool(self.client.delete(self._make_key(key)))
        except RedisError as e:
            logger.warning(f"Redis delete error for {key}: {e}")
            return False


class ChatSessionStore(RedisCache):
    """Conversation history per chat session.

    Each session is a JSON blob under ``<user_id>:<session_id>`` holding the
    machine, a title and the list of turns. A sorted set per user, scored by
    the last update time, indexes the user's sessions for listing. Sessions are
    scoped to the user so ids cannot be replayed across tenants.
    """

    TITLE_LENGTH = 60

    def __init__(self, client: Optional[redis.Redis] = None):
        super().__init__(prefix="fleetdesk:chat", client=client)

    @staticmethod
    def _session_key(user_id: int, session_id: str) -> str:
        return f"{user_id}:{session_id}"

    def _index_key(self, user_id: int) -> str:
        return self._make_key(f"index:{user_id}")

    def _index_add(self, user_id: int, session_id: str, updated_at: float) -> None:
        try:
            index_key = self._index_key(user_id)
            pipe = self.client.pipeline()
            pipe.zadd(index_key, {session_id: updated_at})
            pipe.expire(index_key, settings.REDIS_CHAT_TTL)
            pipe.execute()
        except RedisError as e:
            logger.warning(f"Redis index error for user {user_id}: {e}")

    def _index_members(self, user_id: int, limit: int) -> List[str]:
        try:
            return list(self.client.zrevrange(self._index_key(user_id), 0, limit - 1))
        except RedisError as e:
            logger.warning(f"Redis index error for user {user_id}: {e}")
            return []

    def _index_remove(self, user_id: int, session_id: str) -> None:
        try:
            self.client.zrem(self._index_key(user_id), session_id)
        except RedisError as e:
            logger.warning(f"Redis index error for user {user_id}: {e}")

    def get_session(self, user_id: int, session_id: str) -> Optional[dict]:
        return self.get(self._session_key(user_id, session_id))

    def get_history(self, user_id: int, session_id: str) -> List[dict]:
        session = self.get_session(user_id, session_id)
        if not session:
            return []
        return session.get("messages", [])

    def get_machine_id(self, user_id: int, session_id: str) -> Optional[int]:
        session = self.get_session(user_id, session_id)
        return session.get("machine_id") if session else None

    def append_message(
        self,
        user_id: int,
        session_id: str,
        machine_id: int,
        role: str,
        content: Any,
        title: Optional[str] = None,
    ) -> bool:
        now = time.time()
        session = self.get_session(user_id, session_id)
        if not session:
            if not title and isinstance(content, str):
                title = " ".join(content.split())[: self.TITLE_LENGTH]
            session = {
                "machine_id": machine_id,
                "title": title or "",
                "created_at": now,
                "messages": [],
            }
        session["messages"].append({"role": role, "content": content})
        session["updated_at"] = now

        stored = self.set(self._session_key(user_id, session_id), session, ttl=settings.REDIS_CHAT_TTL)
        if stored:
            self._index_add(user_id, session_id, now)
        return stored

    def list_sessions(self, user_id: int, limit: int = 50) -> List[dict]:
        """The user's sessions, most recently updated first."""
        sessions = []
        for session_id in self._index_members(user_id, limit):
            session = self.get_session(user_id, session_id)
            if not session:
                # The blob expired before its index entry
                self._index_remove(user_id, session_id)
                continue
            sessions.append({
                "session_id": session_id,
                "machine_id": session.get("machine_id"),
                "title": session.get("title") or "",
                "message_count": len(session.get("messages", [])),
                "created_at": session.get("created_at"),
                "updated_at": session.get("updated_at"),
            })
        return sessions

    def clear_session(self, user_id: int, session_id: str) -> bool:
        self._index_remove(user_id, session_id)
        return self.delete(self._session_key(user_id, session_id))


chat_session_store = ChatSessionStore()


def get_chat_store() -> ChatSessionStore:
    return chat_session_store
