"""
Run identity used to scope discovery to the deployments of this run.
"""
import uuid
from typing import Dict, Optional

from rollout_check.config import settings


class Labeller:
    """Holds the run id and the label key it is stored under."""

    def __init__(self, run_id: Optional[str] = None, label_key: Optional[str] = None):
        self.run_id = run_id or str(uuid.uuid4())
        self.label_key = label_key or settings.RUN_ID_LABEL

    def labels(self) -> Dict[str, str]:
        """Labels the deploy step stamps on every manifest."""
        return {self.label_key: self.run_id}

    def selector(self) -> str:
        return f"{self.label_key}={self.run_id}"

    def matches(self, labels: Optional[Dict[str, str]]) -> bool:
        return (labels or {}).get(self.label_key) == self.run_id
