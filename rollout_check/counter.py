"""
Shared tally of deployments under watch.
"""
import logging
import threading
from dataclasses import dataclass, field

from rollout_check.kube_types import ActionableOutcome

logger = logging.getLogger(__name__)


@dataclass
class Counter:
    """Total, pending and failed deployments of one status-check run."""
    total: int = 0
    pending: int = 0
    failed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    @classmethod
    def new(cls, total: int) -> "Counter":
        return cls(total=total, pending=total)

    def mark_processed(self, outcome: ActionableOutcome) -> "Counter":
        """
        Record one deployment reaching a terminal state.

        Args:
            outcome: the deployment's final outcome

        Returns:
            A snapshot taken under the lock, safe to format afterwards
        """
        with self._lock:
            if self.pending <= 0:
                logger.warning(f"⚠️ Deployment marked processed with none pending ({self.total} total), ignoring")
                return self._snapshot()
            self.pending -= 1
            if not outcome.is_success:
                self.failed += 1
            return self._snapshot()

    def copy(self) -> "Counter":
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> "Counter":
        return Counter(total=self.total, pending=self.pending, failed=self.failed)
