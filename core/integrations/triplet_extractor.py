"""
Platform Sync Triplet Extractor — raw platform JSON to canonical facts.

Each ``TripletRule`` whose pattern occurs in the endpoint name is applied to
every item of the endpoint's item array. Mapping happens one item at a time:
a rule that returns ``None`` skips the item, a rule that raises is logged
and skips the item, and neither aborts the batch.

Facts carry a dedup key built from (platform, rule pattern, item identity);
``store_triplets`` persists a key at most once across syncs.
"""
from __future__ import annotations
from typing import Any
import json
import uuid

import structlog

from core.config import EngineSettings
from core.integrations.models import Triplet, UserData, utc_now
from core.integrations.notifications import FACTS_UPDATED, Notifier, NullNotifier, notify_safely
from core.integrations.platform_registry import (
    PlatformConfig,
    PlatformRegistry,
    TripletRule,
    get_nested,
)
from core.resilience.idempotency import DedupLedger, generate_idempotency_key
from core.storage.kv_store import KeyValueStore

logger = structlog.get_logger(__name__)


def item_identity(item: Any, rule: TripletRule, config: PlatformConfig) -> str:
    """Stable identity of a source item: rule override, id field, ``id``, else content hash."""
    if rule.extract_identity is not None:
        identity = rule.extract_identity(item)
        if identity:
            return str(identity)
    if isinstance(item, dict):
        for field_name in (config.id_field, "id"):
            if field_name and item.get(field_name) is not None:
                return str(item[field_name])
    return generate_idempotency_key("item", body=json.dumps(item, sort_keys=True, default=str))


class TripletExtractor:
    """Applies triplet rules and persists facts with provenance."""

    def __init__(
        self,
        registry: PlatformRegistry,
        store: KeyValueStore,
        notifier: Notifier | None = None,
        settings: EngineSettings | None = None,
    ):
        self.registry = registry
        self.store = store
        self.notifier = notifier or NullNotifier()
        self.settings = settings or EngineSettings.default()
        self.ledger = DedupLedger(store)

    # --- Extraction ---

    def extract_triplets(self, platform: str, endpoint: str, raw_data: Any) -> list[Triplet]:
        config = self.registry.require_config(platform)
        triplets: list[Triplet] = []
        batch_keys: set[str] = set()

        for rule in self.registry.matching_rules(platform, endpoint):
            path = rule.extract_from_path or config.response_shape.items_path
            items = get_nested(raw_data, path)
            if not isinstance(items, list):
                continue
            for item in items:
                triplet = self._apply_rule(rule, item, platform, config)
                if triplet is None or triplet.dedup_key in batch_keys:
                    continue
                batch_keys.add(triplet.dedup_key)
                triplets.append(triplet)

        logger.debug("Triplets extracted", platform=platform, endpoint=endpoint, count=len(triplets))
        return triplets

    def _apply_rule(
        self,
        rule: TripletRule,
        item: Any,
        platform: str,
        config: PlatformConfig,
    ) -> Triplet | None:
        try:
            obj = rule.extract_object(item)
            if not obj:
                return None
            object_url = rule.extract_object_url(item) if rule.extract_object_url else None
            identity = item_identity(item, rule, config)
        except Exception as exc:
            logger.warning(
                "Skipping item, rule failed",
                platform=platform,
                pattern=rule.pattern,
                error=f"{type(exc).__name__}: {exc}",
            )
            return None

        return Triplet(
            subject=self.settings.subject_label,
            predicate=rule.predicate,
            object=str(obj),
            object_url=object_url or None,
            dedup_key=generate_idempotency_key(
                "triplet", platform=platform, pattern=rule.pattern, item=identity,
            ),
        )

    # --- Persistence ---

    def evidence_url(self, platform: str, facts: list[Triplet], user_data: UserData | None) -> str:
        """First fact URL, else the platform's profile-URL heuristic, else its homepage."""
        for fact in facts:
            if fact.object_url:
                return fact.object_url

        config = self.registry.require_config(platform)
        if config.profile_url is not None and user_data is not None and user_data.profile:
            try:
                url = config.profile_url(user_data.profile)
            except Exception as exc:
                logger.warning("Profile URL heuristic failed", platform=platform, error=str(exc))
                url = None
            if url:
                return url
        return config.homepage

    async def store_triplets(
        self,
        platform: str,
        facts: list[Triplet],
        user_data: UserData | None = None,
    ) -> int:
        """Persist facts not seen before as one provenance record. Returns how many were stored."""
        if not facts:
            logger.info("No facts to store", platform=platform)
            return 0

        fresh_keys = await self.ledger.unseen(f.dedup_key for f in facts)
        fresh: list[Triplet] = []
        for fact in facts:
            if fact.dedup_key in fresh_keys:
                fresh.append(fact)
                fresh_keys.discard(fact.dedup_key)

        if not fresh:
            logger.info("All facts already stored", platform=platform, skipped=len(facts))
            return 0

        record_id = uuid.uuid4().hex
        record = {
            "platform": platform,
            "facts": [f.to_dict() for f in fresh],
            "produced_at": utc_now().isoformat(),
            "evidence_url": self.evidence_url(platform, fresh, user_data),
        }
        await self.store.set(f"facts:{platform}:{record_id}", record)
        await self.ledger.mark((f.dedup_key for f in fresh), record_id)
        logger.info(
            "Facts stored",
            platform=platform,
            stored=len(fresh),
            skipped=len(facts) - len(fresh),
        )

        await notify_safely(self.notifier, FACTS_UPDATED)
        return len(fresh)

    async def list_records(self, platform: str) -> list[dict[str, Any]]:
        """Provenance records stored for a platform, oldest first."""
        records = []
        for key in await self.store.keys(f"facts:{platform}:"):
            record = await self.store.get(key)
            if record:
                records.append(record)
        return sorted(records, key=lambda r: r["produced_at"])
