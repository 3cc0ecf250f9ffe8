"""Platform Sync API — FastAPI entry point.

Exposes the message router to the UI, captures OAuth redirects for the
browser launcher, and accepts tokens posted back by the external landing page.
"""

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse

from api.launcher import BrowserRedirectLauncher
from api.schemas import CancelAuthorization, ExternalToken, OAuthMessage, RedirectCapture
from core.config import ClientCredentials, EngineSettings
from core.integrations import (
    HttpxClient,
    MessageType,
    NullNotifier,
    OperationRouter,
    Orchestrator,
    WebhookNotifier,
)
from core.observability.logging import setup_logging
from core.storage import SqlKeyValueStore
from platforms import build_registry

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:3001"
).split(",")

VERSION = "0.1.0"

# Redirect page: the fragment never reaches the server, so the page posts its own URL.
CALLBACK_PAGE = """<!doctype html>
<html><body>
<p id="status">Completing sign-in...</p>
<script>
fetch("/oauth/redirect", {
  method: "POST",
  headers: {"Content-Type": "application/json"},
  body: JSON.stringify({url: window.location.href})
}).then(function () {
  document.getElementById("status").textContent = "You can close this window.";
});
</script>
</body></html>"""


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    orchestrator: Optional[Orchestrator] = None,
    launcher: Optional[BrowserRedirectLauncher] = None,
    settings: Optional[EngineSettings] = None,
) -> FastAPI:
    settings = settings or EngineSettings.from_env()
    launcher = launcher or BrowserRedirectLauncher()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build the engine unless one was injected."""
        setup_logging(settings.log_level, settings.log_json)
        store = http = None
        if orchestrator is None:
            store = SqlKeyValueStore.from_url(settings.database_url)
            await store.init()
            http = HttpxClient()
            notifier = (
                WebhookNotifier(http, settings.notification_webhook_url, settings.notification_secret)
                if settings.notification_webhook_url else NullNotifier()
            )
            engine = Orchestrator(
                registry=build_registry(ClientCredentials.from_env()),
                store=store,
                http=http,
                launcher=launcher,
                notifier=notifier,
                settings=settings,
            )
            app.state.orchestrator = engine
            app.state.router = OperationRouter(engine)
        yield
        if http is not None:
            await http.aclose()
        if store is not None:
            await store.close()

    app = FastAPI(
        title="Platform Sync",
        description="OAuth connections and incremental activity sync for third-party platforms",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.launcher = launcher
    if orchestrator is not None:
        app.state.orchestrator = orchestrator
        app.state.router = OperationRouter(orchestrator)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------

    @app.get("/health")
    async def health():
        return {"status": "healthy", "version": VERSION}

    @app.post("/oauth/messages")
    async def oauth_message(message: OAuthMessage):
        return await app.state.router.dispatch(message.model_dump(exclude_none=True))

    @app.get("/oauth/callback", response_class=HTMLResponse)
    async def oauth_callback():
        return CALLBACK_PAGE

    @app.post("/oauth/redirect")
    async def oauth_redirect(capture: RedirectCapture):
        if not app.state.launcher.resolve(capture.url):
            raise HTTPException(status_code=404, detail="No authorization is waiting for this redirect")
        return {"accepted": True}

    @app.post("/oauth/cancel")
    async def oauth_cancel(body: CancelAuthorization):
        if body.state is None:
            return {"cancelled": app.state.launcher.cancel_all()}
        if not app.state.launcher.cancel(body.state):
            raise HTTPException(status_code=404, detail="No authorization is waiting for this state")
        return {"cancelled": 1}

    @app.post("/oauth/external-token")
    async def external_token(body: ExternalToken):
        return await app.state.router.dispatch({
            "type": MessageType.OAUTH_EXTERNAL_TOKEN.value,
            "platform": body.platform,
            "accessToken": body.access_token,
            "refreshToken": body.refresh_token,
            "expiresIn": body.expires_in,
        })

    return app


app = create_app()
