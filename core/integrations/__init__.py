"""
Platform Sync Integrations — OAuth + incremental sync engine.

- PlatformRegistry: declarative platform configs and triplet rules
- TokenManager: credential storage, validation, refresh
- OAuthFlowManager: authorization-code / implicit / external-delegated flows
- SyncManager: per-platform incremental-sync cursors
- PlatformDataFetcher: authenticated fetch + incremental filtering
- TripletExtractor: rule application, dedup, provenance
- Orchestrator / OperationRouter: the surface the UI talks to
"""
from core.integrations.data_fetcher import PlatformDataFetcher
from core.integrations.http_client import HttpClient, HttpResponse, HttpxClient
from core.integrations.models import (
    AuthResult,
    PendingAuthState,
    SyncInfo,
    SyncResult,
    Triplet,
    UserData,
    UserToken,
)
from core.integrations.notifications import NullNotifier, WebhookNotifier
from core.integrations.oauth_manager import AuthorizationLauncher, OAuthFlowManager
from core.integrations.orchestrator import Orchestrator
from core.integrations.platform_registry import (
    AuthFlowKind,
    PlatformConfig,
    PlatformRegistry,
    ResponseShape,
    TripletRule,
)
from core.integrations.router import MessageType, OperationRouter
from core.integrations.sync_manager import SyncManager
from core.integrations.token_manager import TokenManager
from core.integrations.triplet_extractor import TripletExtractor

__all__ = [
    # Engine
    "OAuthFlowManager",
    "Orchestrator",
    "OperationRouter",
    "MessageType",
    "PlatformDataFetcher",
    "SyncManager",
    "TokenManager",
    "TripletExtractor",
    # Registry
    "AuthFlowKind",
    "PlatformConfig",
    "PlatformRegistry",
    "ResponseShape",
    "TripletRule",
    # Records
    "AuthResult",
    "PendingAuthState",
    "SyncInfo",
    "SyncResult",
    "Triplet",
    "UserData",
    "UserToken",
    # Ports
    "AuthorizationLauncher",
    "HttpClient",
    "HttpResponse",
    "HttpxClient",
    "NullNotifier",
    "WebhookNotifier",
]
