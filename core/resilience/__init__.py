"""
Platform Sync Resilience — duplicate suppression.

- DedupLedger: at-most-once fact persistence across syncs
"""
from core.resilience.idempotency import (
    DedupLedger,
    generate_idempotency_key,
)

__all__ = [
    "DedupLedger",
    "generate_idempotency_key",
]
