"""
Periodic reconciliation of sessions left active past the timeout.

Each run queries sessions with status ``active`` whose check-in is older than
the cutoff and auto-checks them out one by one. A failure on one session is
logged and does not stop the rest; only a failing query aborts the run.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

import anyio

from sessions import SessionEngine

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_MINUTES = 15


@dataclass
class SweepResult:
    matched: int = 0
    closed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class StaleSessionSweep:
    def __init__(self, engine: SessionEngine, timeout_hours: Optional[float] = None):
        self.engine = engine
        self.timeout_hours = engine.auto_checkout_hours if timeout_hours is None else timeout_hours

    def run(self) -> SweepResult:
        now = self.engine.clock()
        cutoff = now - timedelta(hours=self.timeout_hours)
        stale = self.engine.store.query_stale_active_sessions(cutoff)

        result = SweepResult(matched=len(stale))
        if not stale:
            logger.info("No stale sessions found")
            return result

        for session in stale:
            try:
                if self.engine.auto_checkout(session, now, hours=self.timeout_hours):
                    result.closed.append(session.id)
                else:
                    # closed by a user check-out between query and update
                    result.skipped.append(session.id)
            except Exception:
                logger.exception("Auto-checkout failed for session %s", session.id)
                result.failed.append(session.id)

        logger.info("Auto-checked out %d stale sessions (%d skipped, %d failed)",
                    len(result.closed), len(result.skipped), len(result.failed))
        return result

    async def run_forever(self, interval_minutes: float = SWEEP_INTERVAL_MINUTES) -> None:
        """Run the sweep every ``interval_minutes`` until cancelled."""
        while True:
            try:
                await anyio.to_thread.run_sync(self.run)
            except Exception:
                logger.exception("Stale session sweep failed")
            await anyio.sleep(interval_minutes * 60)
