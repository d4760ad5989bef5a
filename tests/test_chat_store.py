from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.redis_client import ChatSessionStore


class DownRedis:
    """A Redis client whose every command fails."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise RedisConnectionError("connection refused")
        return fail


def test_store_degrades_when_redis_is_down():
    store = ChatSessionStore(client=DownRedis())

    assert store.append_message(1, "s1", 7, "user", "Hi") is False
    assert store.get_history(1, "s1") == []
    assert store.list_sessions(1) == []
    assert store.clear_session(1, "s1") is False


def test_title_defaults_to_start_of_first_message(chat_store):
    chat_store.append_message(1, "s1", 7, "user", "  Boom   is slow " + "x" * 100)
    chat_store.append_message(1, "s1", 7, "user", "Second message")

    session = chat_store.get_session(1, "s1")
    assert session["title"] == ("Boom is slow " + "x" * 100)[:ChatSessionStore.TITLE_LENGTH]
    assert len(session["messages"]) == 2
    assert session["updated_at"] >= session["created_at"]
