"""Tests for the Facebook callback orchestrator."""

from unittest.mock import patch

import httpx
import pytest

from fblogin.auth.callback import (
    FAILURE_MESSAGES,
    CallbackFailure,
    CallbackOrchestrator,
    CallbackState,
    FailureCode,
    failure_code_for,
)
from fblogin.auth.credentials import VerificationContext
from fblogin.auth.errors import (
    AppIdMismatchError,
    CallbackError,
    GraphAPIError,
    InvalidStateError,
    MalformedInputError,
    MissingScopesError,
    NoAuthorizationCredentialError,
    SignatureMismatchError,
    UnknownSignatureAlgorithmError,
)
from fblogin.auth.graph import GraphClient
from fblogin.auth.providers import FacebookProvider
from fblogin.auth.verifier import compute_appsecret_proof

from conftest import graph_handler

CALLBACK_URL = "https://example.com/auth/facebook/callback"


def _orchestrator(config, transport, params=None, cookies=None):
    context = VerificationContext(config, params or {}, default_callback_url=CALLBACK_URL)
    return CallbackOrchestrator(
        FacebookProvider(config),
        GraphClient(config, transport),
        context,
        cookies or {},
    )


def _form(request: httpx.Request) -> dict:
    return dict(httpx.QueryParams(request.content.decode()))


class TestCodeFlow:
    @pytest.mark.asyncio
    async def test_direct_code(self, facebook_config, graph_transport):
        transport = graph_transport(graph_handler())
        orchestrator = _orchestrator(facebook_config, transport, {"code": "abc", "state": "s1"})

        result = await orchestrator.run(stored_state="s1")

        assert result.uid == "42"
        assert result.user.email == "fred@smith.com"
        assert result.credentials == {"token": "exchanged-token", "expires": True, "expires_in": 3600}
        assert orchestrator.state is CallbackState.AUTHENTICATED

        exchange = transport.requests[0]
        assert _form(exchange)["code"] == "abc"
        assert _form(exchange)["redirect_uri"] == CALLBACK_URL
        assert not any(r.url.path == "/debug_token" for r in transport.requests)

    @pytest.mark.asyncio
    async def test_profile_request_carries_appsecret_proof(self, facebook_config, graph_transport):
        transport = graph_transport(graph_handler())
        await _orchestrator(facebook_config, transport, {"code": "abc", "state": "s1"}).run("s1")

        me = transport.requests[-1]
        assert me.url.params["appsecret_proof"] == compute_appsecret_proof("53cr3t", "exchanged-token")
        assert me.url.params["fields"] == "name,email"
        assert me.headers["Authorization"] == "OAuth exchanged-token"

    @pytest.mark.asyncio
    async def test_state_mismatch(self, facebook_config, graph_transport):
        transport = graph_transport(graph_handler())
        orchestrator = _orchestrator(facebook_config, transport, {"code": "abc", "state": "forged"})

        with pytest.raises(CallbackFailure) as exc_info:
            await orchestrator.run(stored_state="s1")
        assert exc_info.value.code is FailureCode.CSRF_DETECTED
        assert orchestrator.state is CallbackState.FAILED
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_missing_state(self, facebook_config, graph_transport):
        orchestrator = _orchestrator(facebook_config, graph_transport(graph_handler()), {"code": "abc"})
        with pytest.raises(CallbackFailure) as exc_info:
            await orchestrator.run(stored_state=None)
        assert exc_info.value.code is FailureCode.CSRF_DETECTED

    @pytest.mark.asyncio
    async def test_code_beats_signed_cookie(self, facebook_config, graph_transport, signed_cookie):
        transport = graph_transport(graph_handler())
        cookies = {"fbsr_123": signed_cookie({"code": "xyz"})}
        await _orchestrator(facebook_config, transport, {"code": "abc", "state": "s1"}, cookies).run("s1")
        assert _form(transport.requests[0])["code"] == "abc"

    @pytest.mark.asyncio
    async def test_exchange_error_is_invalid_credentials(self, facebook_config, graph_transport):
        transport = graph_transport(
            lambda request: httpx.Response(400, json={"error": {"message": "Code was invalid"}})
        )
        orchestrator = _orchestrator(facebook_config, transport, {"code": "abc", "state": "s1"})
        with pytest.raises(CallbackFailure) as exc_info:
            await orchestrator.run("s1")
        assert exc_info.value.code is FailureCode.INVALID_CREDENTIALS
        assert exc_info.value.message == FAILURE_MESSAGES[FailureCode.INVALID_CREDENTIALS]
        assert "Code was invalid" not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_exchange_timeout(self, facebook_config, graph_transport):
        def _timeout(request):
            raise httpx.ReadTimeout("timed out", request=request)

        orchestrator = _orchestrator(facebook_config, graph_transport(_timeout), {"code": "abc", "state": "s1"})
        with pytest.raises(CallbackFailure) as exc_info:
            await orchestrator.run("s1")
        assert exc_info.value.code is FailureCode.TIMEOUT
        assert exc_info.value.message == FAILURE_MESSAGES[FailureCode.TIMEOUT]


class TestSignedCookieFlow:
    @pytest.mark.asyncio
    async def test_code_from_cookie(self, facebook_config, graph_transport, signed_cookie):
        transport = graph_transport(graph_handler())
        cookies = {"fbsr_123": signed_cookie({"code": "xyz", "user_id": "42"})}
        orchestrator = _orchestrator(facebook_config, transport, {}, cookies)

        result = await orchestrator.run(stored_state=None)

        assert result.uid == "42"
        exchange = _form(transport.requests[0])
        assert exchange["code"] == "xyz"
        assert exchange["redirect_uri"] == ""

    @pytest.mark.asyncio
    async def test_overrides_reverted_after_success(self, facebook_config, graph_transport, signed_cookie):
        cookies = {"fbsr_123": signed_cookie({"code": "xyz"})}
        orchestrator = _orchestrator(facebook_config, graph_transport(graph_handler()), {}, cookies)
        await orchestrator.run()

        context = orchestrator.context
        assert "code" not in context.params
        assert context.provider_ignores_state is False
        assert context.callback_url == CALLBACK_URL

    @pytest.mark.asyncio
    async def test_overrides_reverted_after_failure(self, facebook_config, graph_transport, signed_cookie):
        transport = graph_transport(lambda request: httpx.Response(400, json={"error": {"message": "bad"}}))
        cookies = {"fbsr_123": signed_cookie({"code": "xyz"})}
        orchestrator = _orchestrator(facebook_config, transport, {}, cookies)

        with pytest.raises(CallbackFailure):
            await orchestrator.run()

        context = orchestrator.context
        assert "code" not in context.params
        assert context.provider_ignores_state is False
        assert context.auth_code_from_cookie is False

    @pytest.mark.asyncio
    async def test_bad_signature(self, facebook_config, graph_transport, signed_cookie):
        cookies = {"fbsr_123": signed_cookie({"code": "xyz"}, secret="wrong")}
        with pytest.raises(CallbackFailure) as exc_info:
            await _orchestrator(facebook_config, graph_transport(graph_handler()), {}, cookies).run()
        assert exc_info.value.code is FailureCode.INVALID_SIGNATURE

    @pytest.mark.asyncio
    async def test_unknown_algorithm(self, facebook_config, graph_transport, signed_cookie):
        cookies = {"fbsr_123": signed_cookie({"algorithm": "none", "code": "xyz"})}
        with pytest.raises(CallbackFailure) as exc_info:
            await _orchestrator(facebook_config, graph_transport(graph_handler()), {}, cookies).run()
        assert exc_info.value.code is FailureCode.UNKNOWN_SIGNATURE_ALGORITHM

    @pytest.mark.asyncio
    async def test_malformed_cookie(self, facebook_config, graph_transport):
        cookies = {"fbsr_123": "not-a-signed-request"}
        with pytest.raises(CallbackFailure) as exc_info:
            await _orchestrator(facebook_config, graph_transport(graph_handler()), {}, cookies).run()
        assert exc_info.value.code is FailureCode.INVALID_SIGNED_REQUEST

    @pytest.mark.asyncio
    async def test_cookie_without_code(self, facebook_config, graph_transport, signed_cookie):
        cookies = {"fbsr_123": signed_cookie({"user_id": "42"})}
        with pytest.raises(CallbackFailure) as exc_info:
            await _orchestrator(facebook_config, graph_transport(graph_handler()), {}, cookies).run()
        assert exc_info.value.code is FailureCode.NO_AUTHORIZATION_CODE


class TestAccessTokenFlow:
    @pytest.mark.asyncio
    async def test_verified_token(self, facebook_config, graph_transport):
        transport = graph_transport(graph_handler(scopes=["email", "public_profile"]))
        orchestrator = _orchestrator(facebook_config, transport, {"access_token": "client-token", "state": "s1"})

        result = await orchestrator.run("s1")

        assert result.credentials == {"token": "client-token", "expires": False}
        paths = [r.url.path for r in transport.requests]
        assert paths == ["/debug_token", "/v2.10/me"]
        assert transport.requests[0].url.params["access_token"] == "123|53cr3t"
        me = transport.requests[-1]
        assert me.url.params["appsecret_proof"] == compute_appsecret_proof("53cr3t", "client-token")
        assert me.headers["Authorization"] == "OAuth client-token"

    @pytest.mark.asyncio
    async def test_non_object_introspection_body(self, facebook_config, graph_transport):
        def _handler(request):
            if request.url.path == "/debug_token":
                return httpx.Response(200, json=["unexpected"])
            return graph_handler()(request)

        params = {"access_token": "client-token", "state": "s1"}
        with pytest.raises(CallbackFailure) as exc_info:
            await _orchestrator(facebook_config, graph_transport(_handler), params).run("s1")
        assert exc_info.value.code is FailureCode.APP_ID_MISMATCH

    @pytest.mark.asyncio
    async def test_missing_scopes(self, facebook_config, graph_transport):
        transport = graph_transport(graph_handler(scopes=["email"]))
        params = {"access_token": "client-token", "state": "s1", "scope": "email,public_profile"}

        with pytest.raises(CallbackFailure) as exc_info:
            await _orchestrator(facebook_config, transport, params).run("s1")

        assert exc_info.value.code is FailureCode.MISSING_SCOPES
        assert "public_profile" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, MissingScopesError)
        assert exc_info.value.__cause__.scopes == ["public_profile"]

    @pytest.mark.asyncio
    async def test_introspection_transport_error(self, facebook_config, graph_transport):
        def _refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        params = {"access_token": "client-token", "state": "s1"}
        with pytest.raises(CallbackFailure) as exc_info:
            await _orchestrator(facebook_config, graph_transport(_refuse), params).run("s1")

        assert exc_info.value.code is FailureCode.APP_ID_MISMATCH
        assert "connection refused" not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_token_for_another_app(self, facebook_config, graph_transport):
        params = {"access_token": "client-token", "state": "s1"}
        transport = graph_transport(graph_handler(debug_status=400))
        with pytest.raises(CallbackFailure) as exc_info:
            await _orchestrator(facebook_config, transport, params).run("s1")
        assert exc_info.value.code is FailureCode.APP_ID_MISMATCH


class TestProviderErrors:
    @pytest.mark.asyncio
    async def test_error_param(self, facebook_config, graph_transport):
        params = {"error": "access_denied", "error_reason": "user_denied"}
        with pytest.raises(CallbackFailure) as exc_info:
            await _orchestrator(facebook_config, graph_transport(graph_handler()), params).run()
        assert exc_info.value.code is FailureCode.ACCESS_DENIED
        assert "user_denied" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_no_credentials(self, facebook_config, graph_transport):
        with pytest.raises(CallbackFailure) as exc_info:
            await _orchestrator(facebook_config, graph_transport(graph_handler()), {}).run()
        assert exc_info.value.code is FailureCode.NO_AUTHORIZATION_CODE

    @pytest.mark.asyncio
    async def test_profile_without_id(self, facebook_config, graph_transport):
        transport = graph_transport(graph_handler(profile={"name": "No Id"}))
        with pytest.raises(CallbackFailure) as exc_info:
            await _orchestrator(facebook_config, transport, {"code": "abc", "state": "s1"}).run("s1")
        assert exc_info.value.code is FailureCode.INVALID_CREDENTIALS

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, facebook_config, graph_transport):
        with patch("fblogin.auth.callback.logger") as mock_logger:
            with pytest.raises(CallbackFailure):
                await _orchestrator(facebook_config, graph_transport(graph_handler()), {}).run()
        mock_logger.warning.assert_called_once()


class TestFailureCodeFor:
    @pytest.mark.parametrize(
        ("exc", "code"),
        [
            (MalformedInputError("x"), FailureCode.INVALID_SIGNED_REQUEST),
            (UnknownSignatureAlgorithmError("none"), FailureCode.UNKNOWN_SIGNATURE_ALGORITHM),
            (SignatureMismatchError("x"), FailureCode.INVALID_SIGNATURE),
            (NoAuthorizationCredentialError(), FailureCode.NO_AUTHORIZATION_CODE),
            (MissingScopesError(["email"]), FailureCode.MISSING_SCOPES),
            (AppIdMismatchError("x"), FailureCode.APP_ID_MISMATCH),
            (InvalidStateError("x"), FailureCode.CSRF_DETECTED),
            (CallbackError("access_denied"), FailureCode.ACCESS_DENIED),
            (GraphAPIError(400, "x"), FailureCode.INVALID_CREDENTIALS),
            (httpx.ConnectTimeout("x"), FailureCode.TIMEOUT),
        ],
    )
    def test_mapping(self, exc, code):
        assert failure_code_for(exc) is code

    def test_unmapped_error(self):
        with pytest.raises(TypeError):
            failure_code_for(ValueError("x"))
