"""Background workers for async processing tasks."""

from styleswap.workers.hold_reconciler import reconcile_stale_holds, run_hold_reconciler

__all__ = [
    "reconcile_stale_holds",
    "run_hold_reconciler",
]
