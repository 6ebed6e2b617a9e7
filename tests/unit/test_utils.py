"""Tests for JWT claim reading and structured logging helpers."""

import logging
from unittest.mock import MagicMock

import pytest

from helpers import make_jwt
from sso_portal.services.client_storage import ClientStorage
from sso_portal.utils.jwt import decode_jwt_payload, token_expiry
from sso_portal.utils.logging import (
    StructuredFormatter,
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    log_auth_event,
    mask_user_id,
    set_correlation_id,
)


class TestJwt:
    def test_decodes_payload(self) -> None:
        token = make_jwt({"sub": "abc", "exp": 1700000000})
        assert decode_jwt_payload(token) == {"sub": "abc", "exp": 1700000000}
        assert token_expiry(token) == 1700000000

    @pytest.mark.parametrize(
        "token", [None, "", "opaque-token", "a.b", "a.!!!.c", "a.bnVsbA.c"]
    )
    def test_undecodable_tokens(self, token: str | None) -> None:
        assert decode_jwt_payload(token) is None
        assert token_expiry(token) is None

    def test_missing_or_non_numeric_exp(self) -> None:
        assert token_expiry(make_jwt({"sub": "abc"})) is None
        assert token_expiry(make_jwt({"exp": "soon"})) is None


class TestCorrelationId:
    def test_generated_when_absent(self) -> None:
        cid = set_correlation_id()
        assert cid and get_correlation_id() == cid
        clear_correlation_id()
        assert get_correlation_id() is None

    def test_existing_id_is_kept(self) -> None:
        assert set_correlation_id("req-123") == "req-123"

    def test_formatter_prefixes_id(self) -> None:
        set_correlation_id("req-456")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)

        assert StructuredFormatter("%(message)s").format(record) == "[req-456] hello"


class TestAuthEventLog:
    def test_user_id_is_masked(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO)
        logger = get_logger("sso_portal.test")

        log_auth_event(logger, "sign_in", outcome="success", user_id="abcdefghijklmnop")

        message = caplog.records[-1].getMessage()
        assert "user_id=abcdefgh..." in message
        assert "ijklmnop" not in message
        assert caplog.records[-1].levelno == logging.INFO

    @pytest.mark.parametrize(
        "outcome,level", [("failed", logging.ERROR), ("rejected", logging.WARNING)]
    )
    def test_level_follows_outcome(
        self, caplog: pytest.LogCaptureFixture, outcome: str, level: int
    ) -> None:
        log_auth_event(get_logger("sso_portal.test"), "handoff", outcome=outcome)
        assert caplog.records[-1].levelno == level

    def test_mask_empty(self) -> None:
        assert mask_user_id(None) is None


class TestClientStorage:
    def test_change_tracking(self) -> None:
        storage = ClientStorage("device", {"a": "1"})
        assert not storage.dirty

        storage.set("a", "1")
        assert not storage.dirty

        storage.set("b", "2")
        assert storage.pending_changes() == {"b": "2"}
        storage.mark_saved()
        assert not storage.dirty

        storage.remove("a")
        assert storage.pending_changes() == {"a": None}

    def test_pop_without_backend_is_local(self) -> None:
        storage = ClientStorage("device", {"a": "1"})

        assert storage.pop("a") == "1"
        assert storage.pop("a") is None
        assert storage.pending_changes() == {"a": None}

    def test_pop_goes_to_backend(self) -> None:
        backend = MagicMock()
        backend.pop_browser_storage_key.return_value = "from-backend"
        storage = ClientStorage("device", {"a": "stale"}, backend=backend)

        assert storage.pop("a") == "from-backend"
        backend.pop_browser_storage_key.assert_called_once_with("device", "a")
        assert "a" not in storage
        assert not storage.dirty

    def test_pop_of_unsaved_write_stays_local(self) -> None:
        backend = MagicMock()
        storage = ClientStorage("device", backend=backend)
        storage.set("a", "new")

        assert storage.pop("a") == "new"
        backend.pop_browser_storage_key.assert_not_called()
        assert storage.pending_changes() == {"a": None}

    def test_values_must_be_strings(self) -> None:
        with pytest.raises(TypeError):
            ClientStorage("device").set("a", 1)  # type: ignore[arg-type]
