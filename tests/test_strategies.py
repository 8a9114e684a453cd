"""
Tests for authentication strategies and the dispatcher policy.
"""

from datetime import timedelta
from typing import Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr
from starlette.requests import Request

from auth.dispatcher import AuthDispatcher, build_dispatcher
from auth.models import AuthenticationResult, AuthOutcome, FailureReason
from auth.strategies import (
    ApiKeyStrategy,
    AuthStrategy,
    BearerJwtStrategy,
    SessionTokenStrategy,
    extract_bearer,
)
from auth.tokens import SigningKey, TokenIssuer, TokenVerifier


SECRET = "strategy-test-signing-secret-0123456789abcdef"
API_KEY = "build-test-api-key-77"


def _request(headers: Optional[Dict[str, str]] = None) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/protected",
        "raw_path": b"/protected",
        "root_path": "",
        "query_string": b"",
        "scheme": "http",
        "server": ("testserver", 80),
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
    }
    return Request(scope)


class _Fixed(AuthStrategy):
    """Strategy returning a canned result once its header is present."""

    def __init__(self, scheme: str, result: AuthenticationResult, header: str = "X-Test"):
        self.scheme = scheme
        self._result = result
        self._header = header
        self.calls = 0

    def extract_credential(self, request):
        return request.headers.get(self._header)

    async def authenticate(self, credential):
        self.calls += 1
        return self._result


class TestExtractBearer:
    @pytest.mark.parametrize(
        "header, expected",
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            ("bearer token123", "token123"),
            ("Bearer   spaced  ", "spaced"),
            ("Bearer", ""),
            ("Bearer ", ""),
            ("Bearer two tokens", ""),
            ("Basic dXNlcjpwYXNz", None),
        ],
    )
    def test_header_forms(self, header, expected):
        assert extract_bearer(_request({"Authorization": header})) == expected

    def test_missing_header(self):
        assert extract_bearer(_request()) is None


class TestBearerJwtStrategy:
    def setup_method(self):
        key = SigningKey(secret=SecretStr(SECRET))
        self.issuer = TokenIssuer(key)
        self.strategy = BearerJwtStrategy(TokenVerifier(key))

    @pytest.mark.asyncio
    async def test_valid_token(self):
        token = self.issuer.issue("alice").token
        result = await self.strategy(_request({"Authorization": f"Bearer {token}"}))
        assert result == AuthenticationResult.success("alice", "Jwt")

    @pytest.mark.asyncio
    async def test_no_header_is_no_result(self):
        result = await self.strategy(_request())
        assert result.outcome is AuthOutcome.NO_RESULT

    @pytest.mark.asyncio
    async def test_empty_bearer_is_malformed(self):
        result = await self.strategy(_request({"Authorization": "Bearer "}))
        assert result.reason is FailureReason.MALFORMED

    @pytest.mark.asyncio
    async def test_expired_token(self):
        token = self.issuer.issue("alice", ttl=timedelta(0)).token
        result = await self.strategy(_request({"Authorization": f"Bearer {token}"}))
        assert result.reason is FailureReason.EXPIRED


class TestApiKeyStrategy:
    def setup_method(self):
        self.strategy = ApiKeyStrategy({"key-one-123": "ops", "key-two-456": "api-key"})

    @pytest.mark.asyncio
    async def test_matching_key(self):
        result = await self.strategy(_request({"X-Api-Key": "key-one-123"}))
        assert result == AuthenticationResult.success("ops", "ApiKey")

    @pytest.mark.asyncio
    async def test_second_key_matches(self):
        result = await self.strategy(_request({"X-Api-Key": "key-two-456"}))
        assert result.principal == "api-key"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["wrong", "key-one-12", "key-one-1234", "KEY-ONE-123"])
    async def test_wrong_key(self, value):
        result = await self.strategy(_request({"X-Api-Key": value}))
        assert result.outcome is AuthOutcome.FAILURE

    @pytest.mark.asyncio
    async def test_empty_header_is_malformed(self):
        result = await self.strategy(_request({"X-Api-Key": "  "}))
        assert result.reason is FailureReason.MALFORMED

    @pytest.mark.asyncio
    async def test_missing_header(self):
        result = await self.strategy(_request())
        assert result.outcome is AuthOutcome.NO_RESULT

    def test_requires_keys(self):
        with pytest.raises(ValueError):
            ApiKeyStrategy({})


class TestSessionTokenStrategy:
    @pytest.mark.asyncio
    async def test_known_token(self):
        store = MagicMock()
        store.find_session_principal = AsyncMock(return_value="alice")
        strategy = SessionTokenStrategy(store)

        result = await strategy(_request({"Authorization": "Bearer opaque-token"}))

        assert result == AuthenticationResult.success("alice", "Custom")
        store.find_session_principal.assert_awaited_once_with("opaque-token")

    @pytest.mark.asyncio
    async def test_unknown_token(self):
        store = MagicMock()
        store.find_session_principal = AsyncMock(return_value=None)
        result = await SessionTokenStrategy(store)(_request({"Authorization": "Bearer nope"}))
        assert result.outcome is AuthOutcome.FAILURE

    @pytest.mark.asyncio
    async def test_no_lookup_without_header(self):
        store = MagicMock()
        store.find_session_principal = AsyncMock()
        result = await SessionTokenStrategy(store)(_request())
        assert result.outcome is AuthOutcome.NO_RESULT
        store.find_session_principal.assert_not_awaited()


class TestDispatcherPolicy:
    @pytest.mark.asyncio
    async def test_first_success_wins(self):
        first = _Fixed("A", AuthenticationResult.success("alice", "A"))
        second = _Fixed("B", AuthenticationResult.success("bob", "B"))
        result = await AuthDispatcher([first, second]).authenticate(_request({"X-Test": "1"}))
        assert result.principal == "alice"
        assert second.calls == 0

    @pytest.mark.asyncio
    async def test_failure_falls_through_to_next(self):
        failing = _Fixed("A", AuthenticationResult.fail(FailureReason.BAD_SIGNATURE))
        passing = _Fixed("B", AuthenticationResult.success("bob", "B"))
        result = await AuthDispatcher([failing, passing]).authenticate(_request({"X-Test": "1"}))
        assert result == AuthenticationResult.success("bob", "B")
        assert failing.calls == 1

    @pytest.mark.asyncio
    async def test_no_result_is_skipped(self):
        absent = _Fixed("A", AuthenticationResult.success("ghost", "A"), header="X-Other")
        passing = _Fixed("B", AuthenticationResult.success("bob", "B"))
        result = await AuthDispatcher([absent, passing]).authenticate(_request({"X-Test": "1"}))
        assert result.principal == "bob"
        assert absent.calls == 0

    @pytest.mark.asyncio
    async def test_all_fail_is_rejected(self):
        strategies = [
            _Fixed("A", AuthenticationResult.fail(FailureReason.EXPIRED)),
            _Fixed("B", AuthenticationResult.fail(FailureReason.MALFORMED)),
        ]
        result = await AuthDispatcher(strategies).authenticate(_request({"X-Test": "1"}))
        assert not result.succeeded
        assert result.outcome is AuthOutcome.FAILURE

    @pytest.mark.asyncio
    async def test_no_credentials_is_rejected(self):
        strategy = _Fixed("A", AuthenticationResult.success("alice", "A"))
        result = await AuthDispatcher([strategy]).authenticate(_request())
        assert not result.succeeded

    def test_requires_strategies(self):
        with pytest.raises(ValueError):
            AuthDispatcher([])


class TestBuildDispatcher:
    def _build(self, settings_factory, **overrides):
        overrides.setdefault("api_keys", f"ops:{API_KEY}")
        settings = settings_factory(**overrides)
        return build_dispatcher(settings, SigningKey.from_settings(settings), MagicMock())

    def test_default_order(self, settings_factory):
        assert self._build(settings_factory).schemes == ["Jwt", "ApiKey", "Custom"]

    def test_configured_order(self, settings_factory):
        dispatcher = self._build(settings_factory, auth_strategies="api_key,jwt")
        assert dispatcher.schemes == ["ApiKey", "Jwt"]

    def test_api_key_skipped_without_keys(self, settings_factory):
        dispatcher = self._build(settings_factory, api_keys="")
        assert dispatcher.schemes == ["Jwt", "Custom"]

    @pytest.mark.asyncio
    async def test_api_key_from_settings(self, settings_factory):
        dispatcher = self._build(settings_factory)
        result = await dispatcher.authenticate(_request({"X-Api-Key": API_KEY}))
        assert result == AuthenticationResult.success("ops", "ApiKey")
