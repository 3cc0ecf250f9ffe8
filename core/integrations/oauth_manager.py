"""
Platform Sync OAuth Flow Manager.

Drives the three authorization variants behind one interface:
- authorization_code: redirect carries ``code`` in the query, exchanged at
  the token endpoint (PKCE S256 for public clients, client secret otherwise)
- implicit: redirect carries ``access_token`` in the fragment, no exchange
- external_delegated: a landing page runs the provider flow and posts the
  token back through ``handle_external_token``

Every failure is terminal for the attempt. Nothing here retries: codes are
single-use and the user is the only one who can restart a login.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol
from urllib.parse import parse_qs, urlencode, urlsplit
import asyncio
import base64
import hashlib
import secrets

import structlog

from core.config import EngineSettings
from core.errors import (
    AuthorizationTimeout,
    CallbackMalformed,
    InvalidOrExpiredState,
    OperationInProgress,
    PKCEVerifierMissing,
    SyncEngineError,
    TokenExchangeFailed,
    TransportError,
    UserCancelled,
)
from core.integrations.auth_states import AuthFlow, AuthState
from core.integrations.http_client import HttpClient
from core.integrations.models import AuthResult, PendingAuthState, UserToken
from core.integrations.platform_registry import AuthFlowKind, PlatformConfig, PlatformRegistry
from core.integrations.token_manager import TokenManager
from core.storage.kv_store import KeyValueStore

logger = structlog.get_logger(__name__)

# (platform, explicit credential or None) -> number of facts stored
PostAuthHook = Callable[[str, "str | None"], Awaitable[int]]


def pending_key(state: str) -> str:
    return f"pending:{state}"


# ---------------------------------------------------------------------------
# Interactive authorization port
# ---------------------------------------------------------------------------

class AuthorizationLauncher(Protocol):
    async def launch(self, url: str) -> str | None:
        """Open ``url`` for the user; return the final redirect URL, or None if cancelled."""
        ...

    async def clear_cached_sessions(self) -> None: ...

    async def open_page(self, url: str) -> None:
        """Open ``url`` in a new top-level browsing context without waiting."""
        ...


# ---------------------------------------------------------------------------
# PKCE + URL helpers
# ---------------------------------------------------------------------------

def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def generate_code_verifier() -> str:
    """32 random bytes, base64url without padding (43 chars)."""
    return _b64url(secrets.token_bytes(32))


def code_challenge_s256(verifier: str) -> str:
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def build_authorization_url(
    config: PlatformConfig,
    redirect_uri: str,
    state: str,
    code_challenge: str | None = None,
) -> str:
    params = {
        "client_id": config.client_id,
        "redirect_uri": redirect_uri,
        "scope": " ".join(config.scopes),
        "state": state,
        "response_type": config.response_type,
    }
    if code_challenge:
        params["code_challenge"] = code_challenge
        params["code_challenge_method"] = "S256"
    separator = "&" if "?" in config.auth_url else "?"
    return f"{config.auth_url}{separator}{urlencode(params)}"


@dataclass
class RedirectParams:
    code: str | None = None
    access_token: str | None = None
    state: str | None = None
    error: str | None = None


def parse_redirect(url: str, flow: AuthFlowKind) -> RedirectParams:
    """Implicit flow reads the fragment; authorization code reads the query."""
    parts = urlsplit(url)
    query = {k: v[0] for k, v in parse_qs(parts.query).items()}
    fragment = {k: v[0] for k, v in parse_qs(parts.fragment).items()}
    source = fragment if flow is AuthFlowKind.IMPLICIT else query
    return RedirectParams(
        code=source.get("code"),
        access_token=source.get("access_token"),
        state=source.get("state"),
        error=query.get("error") or fragment.get("error"),
    )


# ---------------------------------------------------------------------------
# Flow manager
# ---------------------------------------------------------------------------

class OAuthFlowManager:
    """Runs authorization flows and hands credentials to the TokenManager."""

    def __init__(
        self,
        registry: PlatformRegistry,
        tokens: TokenManager,
        store: KeyValueStore,
        http: HttpClient,
        launcher: AuthorizationLauncher,
        settings: EngineSettings | None = None,
        on_authenticated: PostAuthHook | None = None,
    ):
        self.registry = registry
        self.tokens = tokens
        self.store = store
        self.http = http
        self.launcher = launcher
        self.settings = settings or EngineSettings.default()
        self.on_authenticated = on_authenticated
        self._flows: dict[str, AuthFlow] = {}
        self._external_waiters: dict[str, asyncio.Future] = {}
        self._state_lock = asyncio.Lock()

    def set_post_auth_hook(self, hook: PostAuthHook) -> None:
        self.on_authenticated = hook

    def get_flow(self, platform: str) -> AuthFlow | None:
        return self._flows.get(platform)

    # --- Entry point ---

    async def initiate(self, platform: str) -> AuthResult:
        config = self.registry.require_config(platform)
        flow = self._claim(platform)
        flow.transition(AuthState.AUTH_REQUESTED)

        if config.flow is AuthFlowKind.EXTERNAL_DELEGATED:
            return await self._initiate_external(flow, config)

        state = secrets.token_urlsafe(32)
        try:
            verifier = challenge = None
            if config.requires_pkce:
                verifier = generate_code_verifier()
                challenge = code_challenge_s256(verifier)

            pending = PendingAuthState(state=state, platform=platform, code_verifier=verifier)
            await self.store.set(
                pending_key(state), pending.to_dict(), ttl_seconds=self.settings.pending_state_ttl_seconds,
            )
            auth_url = build_authorization_url(config, self.settings.redirect_uri, state, challenge)
            logger.info("Authorization initiated", platform=platform, flow=config.flow.value, pkce=bool(challenge))

            await self.launcher.clear_cached_sessions()
            flow.transition(AuthState.AWAITING_REDIRECT)
            redirect_url = await self._await_redirect(auth_url)
            params = parse_redirect(redirect_url, config.flow)

            if params.error:
                if params.error == "access_denied":
                    raise UserCancelled(f"User denied access to {platform}", platform=platform)
                raise CallbackMalformed(f"Provider returned error {params.error!r}", platform=platform)

            if config.flow is AuthFlowKind.IMPLICIT:
                if not params.access_token or not params.state:
                    raise CallbackMalformed("Redirect is missing access_token or state", platform=platform)
                result = await self.handle_implicit_callback(platform, params.access_token, params.state)
            else:
                if not params.code or not params.state:
                    raise CallbackMalformed("Redirect is missing code or state", platform=platform)
                result = await self.handle_callback(platform, params.code, params.state)
        except Exception as exc:
            await self.store.delete(pending_key(state))
            flow.fail(exc)
            logger.warning("Authorization failed", platform=platform, error=type(exc).__name__)
            raise

        result.auth_url = auth_url
        return result

    async def _await_redirect(self, auth_url: str) -> str:
        try:
            redirect_url = await asyncio.wait_for(
                self.launcher.launch(auth_url), timeout=self.settings.interactive_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise AuthorizationTimeout(
                f"No redirect within {self.settings.interactive_timeout:.0f}s"
            ) from exc
        if not redirect_url:
            raise UserCancelled("Authorization window closed")
        return redirect_url

    async def _initiate_external(self, flow: AuthFlow, config: PlatformConfig) -> AuthResult:
        params = urlencode({"extensionCallerId": self.settings.caller_id, "platform": config.platform})
        landing_url = f"{self.settings.external_landing_url}?{params}"
        try:
            await self.launcher.open_page(landing_url)
        except Exception as exc:
            flow.fail(exc)
            raise
        flow.transition(AuthState.AWAITING_REDIRECT)
        self._external_waiters[config.platform] = asyncio.get_running_loop().create_future()
        logger.info("External authorization opened", platform=config.platform)
        return AuthResult(platform=config.platform, auth_url=landing_url)

    # --- Callbacks ---

    async def handle_callback(self, platform: str, code: str, state: str) -> AuthResult:
        """Authorization-code path: consume state, exchange code, store token."""
        config = self.registry.require_config(platform)
        if config.flow is not AuthFlowKind.AUTHORIZATION_CODE:
            raise CallbackMalformed(f"{platform} does not use the authorization-code flow", platform=platform)
        # A state that fails to consume never touches the platform's live flow
        pending = await self._consume_state(platform, state)
        flow = self._callback_flow(platform)
        try:
            if config.requires_pkce and not pending.code_verifier:
                raise PKCEVerifierMissing(f"No PKCE verifier stored for {platform}", platform=platform)

            token = await self._exchange_code(config, code, pending.code_verifier)
            flow.transition(AuthState.TOKEN_EXCHANGED)
            await self.tokens.store(platform, token)
            flow.transition(AuthState.STORED)
        except Exception as exc:
            flow.fail(exc)
            raise

        logger.info("Authorization completed", platform=platform, flow="authorization_code")
        return await self._after_auth(flow, platform)

    async def handle_implicit_callback(self, platform: str, access_token: str, state: str) -> AuthResult:
        """Implicit path: consume state, store the token as-is (no refresh credential)."""
        config = self.registry.require_config(platform)
        if config.flow is not AuthFlowKind.IMPLICIT:
            raise CallbackMalformed(f"{platform} does not use the implicit flow", platform=platform)
        await self._consume_state(platform, state)
        flow = self._callback_flow(platform)
        try:
            flow.transition(AuthState.TOKEN_EXCHANGED)
            await self.tokens.store(platform, UserToken(access_token=access_token, platform=platform))
            flow.transition(AuthState.STORED)
        except Exception as exc:
            flow.fail(exc)
            raise

        logger.info("Authorization completed", platform=platform, flow="implicit")
        return await self._after_auth(flow, platform, explicit_credential=access_token)

    async def handle_external_token(
        self,
        platform: str,
        access_token: str,
        refresh_token: str | None = None,
        expires_in: int | None = None,
    ) -> AuthResult:
        """Token posted back by the landing page. Correlation already happened there."""
        config = self.registry.require_config(platform)
        if config.flow is not AuthFlowKind.EXTERNAL_DELEGATED:
            raise CallbackMalformed(f"{platform} does not accept externally delegated tokens", platform=platform)
        if not access_token:
            raise CallbackMalformed("External token is empty", platform=platform)

        flow = self._callback_flow(platform)
        waiter = self._external_waiters.pop(platform, None)
        try:
            flow.transition(AuthState.TOKEN_EXCHANGED)
            payload = {"access_token": access_token, "refresh_token": refresh_token, "expires_in": expires_in}
            await self.tokens.store(platform, UserToken.from_token_response(platform, payload))
            flow.transition(AuthState.STORED)
        except Exception as exc:
            flow.fail(exc)
            if waiter is not None and not waiter.done():
                waiter.set_exception(exc)
            raise

        logger.info("Authorization completed", platform=platform, flow="external_delegated")
        result = await self._after_auth(flow, platform)
        if waiter is not None and not waiter.done():
            waiter.set_result(result)
        return result

    async def wait_for_external_token(self, platform: str, timeout: float | None = None) -> AuthResult:
        """Await the landing page's token for a flow started by ``initiate``."""
        waiter = self._external_waiters.get(platform)
        if waiter is None:
            raise InvalidOrExpiredState(f"No external authorization pending for {platform}", platform=platform)
        timeout = timeout if timeout is not None else self.settings.interactive_timeout
        try:
            return await asyncio.wait_for(asyncio.shield(waiter), timeout=timeout)
        except asyncio.TimeoutError as exc:
            self._external_waiters.pop(platform, None)
            error = AuthorizationTimeout(f"No token from landing page within {timeout:.0f}s", platform=platform)
            flow = self._flows.get(platform)
            if flow is not None:
                flow.fail(error)
            raise error from exc

    # --- Internals ---

    def _max_flow_age(self, platform: str) -> float:
        """External flows have no pending state, so only the interactive timeout bounds them."""
        config = self.registry.require_config(platform)
        if config.flow is AuthFlowKind.EXTERNAL_DELEGATED:
            return self.settings.interactive_timeout
        return self.settings.pending_state_ttl_seconds

    def _expire(self, flow: AuthFlow) -> None:
        flow.fail(AuthorizationTimeout(f"Authorization for {flow.platform} was abandoned", platform=flow.platform))
        waiter = self._external_waiters.pop(flow.platform, None)
        if waiter is not None and not waiter.done():
            waiter.cancel()
        logger.info("Abandoned authorization expired", platform=flow.platform)

    def _claim(self, platform: str) -> AuthFlow:
        existing = self._flows.get(platform)
        if existing is not None and not existing.is_terminal:
            if existing.is_live(self._max_flow_age(platform)):
                raise OperationInProgress(f"Authorization already in progress for {platform}", platform=platform)
            self._expire(existing)
        flow = AuthFlow(platform=platform)
        self._flows[platform] = flow
        return flow

    def _callback_flow(self, platform: str) -> AuthFlow:
        """The flow awaiting this redirect, or a fresh one for out-of-band callbacks."""
        existing = self._flows.get(platform)
        if existing is not None and existing.current_state is AuthState.AWAITING_REDIRECT:
            return existing
        flow = self._claim(platform)
        flow.transition(AuthState.AWAITING_REDIRECT)
        return flow

    async def _consume_state(self, platform: str, state: str) -> PendingAuthState:
        """Fetch and delete the pending state in one step. Fails closed."""
        if not state:
            raise InvalidOrExpiredState("Callback carries no state", platform=platform)
        async with self._state_lock:
            data = await self.store.get(pending_key(state))
            if data is not None:
                await self.store.delete(pending_key(state))

        if data is None:
            raise InvalidOrExpiredState("Unknown or already used state", platform=platform)
        pending = PendingAuthState.from_dict(data)
        if pending.platform != platform:
            raise InvalidOrExpiredState(f"State was issued for {pending.platform}", platform=platform)
        if pending.is_expired(self.settings.pending_state_ttl_seconds):
            raise InvalidOrExpiredState("State expired", platform=platform)
        return pending

    async def _exchange_code(self, config: PlatformConfig, code: str, verifier: str | None) -> UserToken:
        if not config.token_url:
            raise TokenExchangeFailed(f"{config.platform} has no token endpoint", platform=config.platform)

        data = {
            "client_id": config.client_id,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.settings.redirect_uri,
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        if config.requires_pkce:
            # Public client: verifier instead of a secret, Basic auth with an empty secret half
            data["code_verifier"] = verifier or ""
            basic = base64.b64encode(f"{config.client_id}:".encode()).decode()
            headers["Authorization"] = f"Basic {basic}"
        elif config.client_secret:
            data["client_secret"] = config.client_secret

        try:
            resp = await self.http.request(
                "POST", config.token_url, headers=headers, data=data,
                timeout=self.settings.token_request_timeout,
            )
        except TransportError as exc:
            raise TokenExchangeFailed(f"Token exchange failed: {exc}", platform=config.platform) from exc

        if not resp.ok:
            logger.warning("Token exchange rejected", platform=config.platform, status=resp.status_code)
            raise TokenExchangeFailed(
                f"Token exchange failed: HTTP {resp.status_code}",
                platform=config.platform,
                status_code=resp.status_code,
                body=resp.text[:1000],
            )

        try:
            body = resp.json() or {}
        except ValueError as exc:
            raise TokenExchangeFailed("Token endpoint returned invalid JSON", platform=config.platform,
                                      status_code=resp.status_code, body=resp.text[:1000]) from exc
        if not isinstance(body, dict) or not body.get("access_token"):
            raise TokenExchangeFailed("Token response has no access_token", platform=config.platform,
                                      status_code=resp.status_code, body=resp.text[:1000])
        try:
            return UserToken.from_token_response(config.platform, body)
        except (TypeError, ValueError) as exc:
            raise TokenExchangeFailed(f"Token response is malformed: {exc}", platform=config.platform,
                                      status_code=resp.status_code) from exc

    async def _after_auth(
        self,
        flow: AuthFlow,
        platform: str,
        explicit_credential: str | None = None,
    ) -> AuthResult:
        """Run the post-auth hook. Sync trouble is reported, the credential stays."""
        result = AuthResult(platform=platform)
        if self.on_authenticated is not None:
            try:
                result.fact_count = await self.on_authenticated(platform, explicit_credential)
            except SyncEngineError as exc:
                logger.warning("Post-auth sync failed", platform=platform, error=str(exc))
                result.sync_error = str(exc)
        flow.transition(AuthState.SYNC_TRIGGERED)
        return result
