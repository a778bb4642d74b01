"""
Deployment resource tracked by the status check.

A ``Deployment`` is mutated only by the poller that owns it; the orchestrator
and printer read it.
"""
from datetime import timedelta
from typing import List, Optional, Tuple

from rollout_check.classification import is_fatal
from rollout_check.kube_types import ActionableOutcome, PodOutcome, StatusCode, WorkloadRef

TAB_HEADER = " -"
TAB = "  "

DEPLOYMENT_KIND = "deployment"


class Deployment:
    """Rollout status and pod diagnostics of one deployment."""

    def __init__(self, name: str, namespace: str, deadline: timedelta, pod_selector: Optional[dict] = None):
        self.ref = WorkloadRef(DEPLOYMENT_KIND, name, namespace, dict(pod_selector or {}))
        self.deadline = deadline
        self.status = ActionableOutcome(StatusCode.STATUSCHECK_DEPLOYMENT_ROLLOUT_PENDING)
        self.pod_statuses: List[PodOutcome] = []
        self.done = False
        self._reported: Optional[Tuple] = None

    @property
    def name(self) -> str:
        return self.ref.name

    @property
    def namespace(self) -> str:
        return self.ref.namespace

    @property
    def kind(self) -> str:
        return self.ref.kind

    def __str__(self) -> str:
        return str(self.ref)

    def __repr__(self) -> str:
        return f"Deployment({self.ref}, deadline={self.deadline}, status={self.status.code.name})"

    @property
    def outcome(self) -> ActionableOutcome:
        """
        The outcome to report for this deployment.

        While the rollout is only pending, the first failing pod explains why,
        so its outcome is surfaced instead (fatal pods first).
        """
        if self.status.code != StatusCode.STATUSCHECK_DEPLOYMENT_ROLLOUT_PENDING:
            return self.status
        failing = [p.outcome for p in self.pod_statuses if not p.outcome.is_success]
        for pod_outcome in failing:
            if is_fatal(pod_outcome.code):
                return pod_outcome
        if failing:
            return failing[0]
        return self.status

    def update_status(self, outcome: ActionableOutcome) -> bool:
        """Record the latest rollout outcome; returns True if it differs from the previous one."""
        if outcome == self.status:
            return False
        self.status = outcome
        return True

    def update_pod_statuses(self, pods: List[PodOutcome]) -> None:
        self.pod_statuses = list(pods)

    def unrecoverable_pod_outcome(self) -> Optional[ActionableOutcome]:
        """The first pod outcome that cannot recover without a new deploy, if any."""
        for pod in self.pod_statuses:
            if is_fatal(pod.outcome.code):
                return pod.outcome
        return None

    def mark_complete(self) -> None:
        self.done = True

    def is_complete_or_cancelled(self) -> bool:
        return self.done or self.status.is_cancelled

    def _report_key(self) -> Tuple:
        pods = tuple((str(p), p.outcome) for p in self.pod_statuses if not p.outcome.is_success)
        return self.outcome, pods

    @property
    def changed(self) -> bool:
        """Whether the reportable state differs from what was last reported."""
        return self._report_key() != self._reported

    def mark_reported(self) -> None:
        self._reported = self._report_key()

    def report_since_last_updated(self) -> str:
        """
        Progress text for this deployment, or "" if nothing changed since the last report.

        Calling it marks the current state as reported.
        """
        if not self.changed:
            return ""
        self.mark_reported()

        outcome = self.outcome
        message = outcome.message.strip() or outcome.code.name
        lines = [f"{TAB_HEADER} {self}: {message}"]
        for pod in self.pod_statuses:
            pod_message = pod.outcome.message.strip()
            if pod.outcome.is_success or not pod_message:
                continue
            lines.append(f"{TAB} {TAB_HEADER} {pod}: {pod_message}")
            for log_line in pod.logs:
                lines.append(f"{TAB}{TAB}  > {log_line}")
        return "\n".join(lines)
