"""
Type definitions for Kubernetes objects and status-check outcomes.
"""
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List

DEFAULT_NAMESPACE = "default"


class StatusCode(IntEnum):
    """Status-check codes reported for deployments and pods."""
    STATUSCHECK_SUCCESS = 200

    STATUSCHECK_IMAGE_PULL_ERR = 300
    STATUSCHECK_CONTAINER_CREATING = 301
    STATUSCHECK_RUN_CONTAINER_ERR = 302
    STATUSCHECK_CONTAINER_TERMINATED = 303
    STATUSCHECK_DEPLOYMENT_ROLLOUT_PENDING = 304
    STATUSCHECK_CONTAINER_RESTARTING = 356
    STATUSCHECK_UNHEALTHY = 357

    STATUSCHECK_NODE_MEMORY_PRESSURE = 400
    STATUSCHECK_NODE_DISK_PRESSURE = 401
    STATUSCHECK_NODE_NETWORK_UNAVAILABLE = 402
    STATUSCHECK_NODE_PID_PRESSURE = 403
    STATUSCHECK_NODE_UNSCHEDULABLE = 404
    STATUSCHECK_NODE_UNREACHABLE = 405
    STATUSCHECK_NODE_NOT_READY = 406
    STATUSCHECK_FAILED_SCHEDULING = 407
    STATUSCHECK_KUBECTL_CONNECTION_ERR = 409
    STATUSCHECK_KUBECTL_PID_KILLED = 410
    STATUSCHECK_DEPLOYMENT_FETCH_ERR = 412
    STATUSCHECK_POD_INITIALIZING = 451

    STATUSCHECK_UNKNOWN = 500
    STATUSCHECK_UNKNOWN_UNSCHEDULABLE = 501
    STATUSCHECK_CONTAINER_WAITING_UNKNOWN = 502

    STATUSCHECK_USER_CANCELLED = 800
    STATUSCHECK_DEADLINE_EXCEEDED = 801


@dataclass(frozen=True)
class ActionableOutcome:
    """A status code plus the message shown to the user."""
    code: StatusCode
    message: str = ""

    @property
    def is_success(self) -> bool:
        return self.code == StatusCode.STATUSCHECK_SUCCESS

    @property
    def is_cancelled(self) -> bool:
        return self.code == StatusCode.STATUSCHECK_USER_CANCELLED


SUCCESS = ActionableOutcome(StatusCode.STATUSCHECK_SUCCESS)


def qualified_name(kind: str, name: str, namespace: str) -> str:
    """Render ``[ns:]kind/name``, omitting the default namespace."""
    if namespace == DEFAULT_NAMESPACE:
        return f"{kind}/{name}"
    return f"{namespace}:{kind}/{name}"


@dataclass(frozen=True)
class WorkloadRef:
    """A workload created by the current run."""
    kind: str
    name: str
    namespace: str
    pod_selector: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    def __str__(self) -> str:
        return qualified_name(self.kind, self.name, self.namespace)


@dataclass(frozen=True)
class PodOutcome:
    """Diagnostic result for a single pod."""
    namespace: str
    name: str
    phase: str
    outcome: ActionableOutcome
    logs: List[str] = field(default_factory=list, compare=False, hash=False)

    def __str__(self) -> str:
        return qualified_name("pod", self.name, self.namespace)
