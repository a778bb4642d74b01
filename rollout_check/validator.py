"""
Pod-level diagnostics for a deployment.

The validator lists the pods behind a workload and turns each pod's
scheduling and container state into an ``ActionableOutcome``.
"""
import logging
from typing import Dict, List, Optional

from kubernetes.client.rest import ApiException

from rollout_check.kube_types import ActionableOutcome, PodOutcome, StatusCode, SUCCESS, WorkloadRef

logger = logging.getLogger(__name__)

LOG_TAIL_LINES = 3

IMAGE_PULL_REASONS = {"ErrImagePull", "ImagePullBackOff", "InvalidImageName", "ErrImageNeverPull"}
RUN_CONTAINER_REASONS = {"RunContainerError", "CreateContainerConfigError", "CreateContainerError"}

# Scheduler message fragment -> code. First match wins.
UNSCHEDULABLE_PATTERNS = [
    ("disk-pressure", StatusCode.STATUSCHECK_NODE_DISK_PRESSURE),
    ("disk pressure", StatusCode.STATUSCHECK_NODE_DISK_PRESSURE),
    ("memory-pressure", StatusCode.STATUSCHECK_NODE_MEMORY_PRESSURE),
    ("memory pressure", StatusCode.STATUSCHECK_NODE_MEMORY_PRESSURE),
    ("pid-pressure", StatusCode.STATUSCHECK_NODE_PID_PRESSURE),
    ("pid pressure", StatusCode.STATUSCHECK_NODE_PID_PRESSURE),
    ("network-unavailable", StatusCode.STATUSCHECK_NODE_NETWORK_UNAVAILABLE),
    ("network unavailable", StatusCode.STATUSCHECK_NODE_NETWORK_UNAVAILABLE),
    ("unreachable", StatusCode.STATUSCHECK_NODE_UNREACHABLE),
    ("not-ready", StatusCode.STATUSCHECK_NODE_NOT_READY),
    ("not ready", StatusCode.STATUSCHECK_NODE_NOT_READY),
    ("unschedulable", StatusCode.STATUSCHECK_NODE_UNSCHEDULABLE),
    ("Insufficient", StatusCode.STATUSCHECK_FAILED_SCHEDULING),
]


def _unschedulable_outcome(message: str) -> ActionableOutcome:
    for fragment, code in UNSCHEDULABLE_PATTERNS:
        if fragment in message:
            return ActionableOutcome(code, f"Unschedulable: {message}")
    return ActionableOutcome(StatusCode.STATUSCHECK_UNKNOWN_UNSCHEDULABLE, f"Unschedulable: {message}")


def _waiting_outcome(container_name: str, image: str, waiting) -> ActionableOutcome:
    reason = waiting.reason or ""
    detail = waiting.message or reason
    if reason in IMAGE_PULL_REASONS:
        return ActionableOutcome(
            StatusCode.STATUSCHECK_IMAGE_PULL_ERR,
            f"container {container_name} is waiting to start: {image} can't be pulled",
        )
    if reason == "CrashLoopBackOff":
        return ActionableOutcome(
            StatusCode.STATUSCHECK_CONTAINER_RESTARTING,
            f"container {container_name} is backing off waiting to restart",
        )
    if reason in RUN_CONTAINER_REASONS:
        return ActionableOutcome(
            StatusCode.STATUSCHECK_RUN_CONTAINER_ERR,
            f"container {container_name} in error: {detail}",
        )
    if reason == "ContainerCreating":
        return ActionableOutcome(StatusCode.STATUSCHECK_CONTAINER_CREATING, f"creating container {container_name}")
    if reason == "PodInitializing":
        return ActionableOutcome(StatusCode.STATUSCHECK_POD_INITIALIZING, "waiting for init containers to finish")
    return ActionableOutcome(
        StatusCode.STATUSCHECK_CONTAINER_WAITING_UNKNOWN,
        f"container {container_name} is waiting to start: {detail}",
    )


def pod_outcome(pod) -> ActionableOutcome:
    """Classify a V1Pod."""
    status = pod.status
    phase = status.phase if status else None
    if phase == "Succeeded":
        return SUCCESS

    for condition in (status.conditions or []) if status else []:
        if condition.type == "PodScheduled" and condition.status == "False":
            return _unschedulable_outcome(condition.message or condition.reason or "")

    container_statuses = list(status.init_container_statuses or []) + list(status.container_statuses or []) if status else []
    for cs in container_statuses:
        state = cs.state
        if state is None:
            continue
        if state.waiting is not None:
            return _waiting_outcome(cs.name, cs.image, state.waiting)
        if state.terminated is not None and state.terminated.exit_code:
            return ActionableOutcome(
                StatusCode.STATUSCHECK_CONTAINER_TERMINATED,
                f"container {cs.name} terminated with exit code {state.terminated.exit_code}",
            )

    if phase == "Running":
        not_ready = [cs.name for cs in (status.container_statuses or []) if not cs.ready]
        if not_ready:
            return ActionableOutcome(
                StatusCode.STATUSCHECK_UNHEALTHY,
                f"container {not_ready[0]} is not ready",
            )
        return SUCCESS
    if phase == "Failed":
        return ActionableOutcome(
            StatusCode.STATUSCHECK_CONTAINER_TERMINATED,
            f"pod failed: {status.message or status.reason or 'unknown reason'}",
        )
    return ActionableOutcome(
        StatusCode.STATUSCHECK_CONTAINER_WAITING_UNKNOWN,
        f"pod is {(phase or 'unknown').lower()}",
    )


class PodValidator:
    """Diagnoses the pods selected by a workload's pod selector."""

    def __init__(self, kube_client, labels: Optional[Dict[str, str]] = None, fetch_logs: bool = True):
        self.kube_client = kube_client
        self.labels = dict(labels or {})
        self.fetch_logs = fetch_logs

    def with_label(self, key: str, value: str) -> "PodValidator":
        """Return a validator additionally scoped to ``key=value``."""
        labels = dict(self.labels)
        labels[key] = value
        return PodValidator(self.kube_client, labels, self.fetch_logs)

    def _selector(self, ref: WorkloadRef) -> str:
        labels = dict(ref.pod_selector)
        labels.update(self.labels)
        return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))

    def run(self, ref: WorkloadRef) -> List[PodOutcome]:
        """
        Diagnose the pods of a workload.

        Args:
            ref: workload whose pods should be inspected

        Returns:
            One PodOutcome per pod, in API order

        Raises:
            ApiException: pods could not be listed
        """
        if not ref.pod_selector:
            logger.debug(f"No pod selector for {ref}, skipping pod diagnostics")
            return []

        pods = self.kube_client.list_pods(ref.namespace, label_selector=self._selector(ref))
        results = []
        for pod in pods:
            outcome = pod_outcome(pod)
            logs = []
            if self.fetch_logs and outcome.code in (
                StatusCode.STATUSCHECK_CONTAINER_TERMINATED,
                StatusCode.STATUSCHECK_CONTAINER_RESTARTING,
            ):
                logs = self._tail_logs(pod)
            results.append(PodOutcome(
                namespace=pod.metadata.namespace or ref.namespace,
                name=pod.metadata.name,
                phase=(pod.status.phase if pod.status else None) or "Unknown",
                outcome=outcome,
                logs=logs,
            ))
        return results

    def _tail_logs(self, pod) -> List[str]:
        try:
            text = self.kube_client.pod_logs(pod.metadata.namespace, pod.metadata.name, tail_lines=LOG_TAIL_LINES)
        except ApiException as e:
            logger.debug(f"Could not fetch logs for pod {pod.metadata.name}: {e}")
            return []
        return [line for line in (text or "").splitlines() if line.strip()]
