"""One-time OAuth session hand-off."""
from app.services import callback_store
from app.services.callback_store import (
    set_callback_session,
    store_callback_token,
    take_callback_session,
)


class TestCallbackStore:

    def test_session_is_returned_once(self):
        session_id = store_callback_token("access-1", "refresh-1")

        first = take_callback_session(session_id)
        second = take_callback_session(session_id)

        assert first == {"access_token": "access-1", "refresh_token": "refresh-1"}
        assert second is None

    def test_unknown_id_returns_none(self):
        assert take_callback_session("does-not-exist") is None

    def test_missing_refresh_token_is_stored_as_empty_string(self):
        session_id = store_callback_token("access-2", None)
        assert take_callback_session(session_id)["refresh_token"] == ""

    def test_expired_session_is_rejected_and_removed(self, monkeypatch):
        clock = [1000.0]
        monkeypatch.setattr(callback_store.time, "monotonic", lambda: clock[0])

        set_callback_session("abc", {"access_token": "a", "refresh_token": "r"})
        clock[0] += 61

        assert take_callback_session("abc", max_age_seconds=60) is None
        # A second lookup does not resurrect it
        clock[0] = 1000.0
        assert take_callback_session("abc", max_age_seconds=60) is None

    def test_session_within_ttl_is_returned(self, monkeypatch):
        clock = [50.0]
        monkeypatch.setattr(callback_store.time, "monotonic", lambda: clock[0])

        set_callback_session("fresh", {"access_token": "a", "refresh_token": "r"})
        clock[0] += 59

        assert take_callback_session("fresh", max_age_seconds=60)["access_token"] == "a"

    def test_ids_are_unique(self):
        ids = {store_callback_token(f"token-{i}", None) for i in range(20)}
        assert len(ids) == 20
