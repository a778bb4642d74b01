"""
Retry classification for status codes and parsing of kubectl rollout output.

Retryability is decided from the status code alone, through ``DISPOSITIONS``.
Every ``StatusCode`` must have an entry; add one whenever a code is added.
"""
from enum import Enum
from datetime import timedelta
from typing import Optional

from rollout_check.kube_types import ActionableOutcome, StatusCode

ROLLOUT_SUCCESS = "successfully rolled out"
CONNECTION_ERR_MSG = "Unable to connect to the server"
KILLED_ERR_MSG = "signal: killed"

MSG_KUBECTL_CONNECTION = "kubectl connection error"


class Disposition(Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


DISPOSITIONS = {
    StatusCode.STATUSCHECK_SUCCESS: Disposition.SUCCESS,

    # still converging
    StatusCode.STATUSCHECK_DEPLOYMENT_ROLLOUT_PENDING: Disposition.RETRYABLE,
    StatusCode.STATUSCHECK_CONTAINER_CREATING: Disposition.RETRYABLE,
    StatusCode.STATUSCHECK_POD_INITIALIZING: Disposition.RETRYABLE,
    StatusCode.STATUSCHECK_UNHEALTHY: Disposition.RETRYABLE,
    StatusCode.STATUSCHECK_CONTAINER_WAITING_UNKNOWN: Disposition.RETRYABLE,

    # transient infrastructure
    StatusCode.STATUSCHECK_KUBECTL_CONNECTION_ERR: Disposition.RETRYABLE,
    StatusCode.STATUSCHECK_NODE_MEMORY_PRESSURE: Disposition.RETRYABLE,
    StatusCode.STATUSCHECK_NODE_DISK_PRESSURE: Disposition.RETRYABLE,
    StatusCode.STATUSCHECK_NODE_NETWORK_UNAVAILABLE: Disposition.RETRYABLE,
    StatusCode.STATUSCHECK_NODE_PID_PRESSURE: Disposition.RETRYABLE,
    StatusCode.STATUSCHECK_NODE_UNSCHEDULABLE: Disposition.RETRYABLE,
    StatusCode.STATUSCHECK_NODE_UNREACHABLE: Disposition.RETRYABLE,
    StatusCode.STATUSCHECK_NODE_NOT_READY: Disposition.RETRYABLE,
    StatusCode.STATUSCHECK_FAILED_SCHEDULING: Disposition.RETRYABLE,
    StatusCode.STATUSCHECK_UNKNOWN_UNSCHEDULABLE: Disposition.RETRYABLE,

    # container errors that do not recover without a new deploy
    StatusCode.STATUSCHECK_IMAGE_PULL_ERR: Disposition.FATAL,
    StatusCode.STATUSCHECK_RUN_CONTAINER_ERR: Disposition.FATAL,
    StatusCode.STATUSCHECK_CONTAINER_TERMINATED: Disposition.FATAL,
    StatusCode.STATUSCHECK_CONTAINER_RESTARTING: Disposition.FATAL,

    StatusCode.STATUSCHECK_KUBECTL_PID_KILLED: Disposition.FATAL,
    StatusCode.STATUSCHECK_DEPLOYMENT_FETCH_ERR: Disposition.FATAL,
    StatusCode.STATUSCHECK_UNKNOWN: Disposition.FATAL,
    StatusCode.STATUSCHECK_USER_CANCELLED: Disposition.FATAL,
    StatusCode.STATUSCHECK_DEADLINE_EXCEEDED: Disposition.FATAL,
}


def is_retryable(code: StatusCode) -> bool:
    return DISPOSITIONS[code] is Disposition.RETRYABLE


def is_fatal(code: StatusCode) -> bool:
    return DISPOSITIONS[code] is Disposition.FATAL


def parse_rollout_status(details: str, error: Optional[Exception] = None,
                         deadline: Optional[timedelta] = None) -> ActionableOutcome:
    """
    Turn one ``kubectl rollout status --watch=false`` result into an outcome.

    Args:
        details: kubectl stdout
        error: the error kubectl failed with, if any
        deadline: the resource deadline, quoted when kubectl was killed

    Returns:
        ActionableOutcome for the rollout
    """
    details = details.strip()
    if error is None:
        if ROLLOUT_SUCCESS in details:
            return ActionableOutcome(StatusCode.STATUSCHECK_SUCCESS)
        return ActionableOutcome(StatusCode.STATUSCHECK_DEPLOYMENT_ROLLOUT_PENDING, details)

    message = str(error)
    if CONNECTION_ERR_MSG in message:
        return ActionableOutcome(StatusCode.STATUSCHECK_KUBECTL_CONNECTION_ERR, MSG_KUBECTL_CONNECTION)
    if KILLED_ERR_MSG in message:
        return ActionableOutcome(
            StatusCode.STATUSCHECK_KUBECTL_PID_KILLED,
            f"received Ctrl-C or deployments could not stabilize within {format_duration(deadline)}: {message}",
        )
    return ActionableOutcome(StatusCode.STATUSCHECK_UNKNOWN, message)


def format_duration(value: Optional[timedelta]) -> str:
    """Render a deadline the way users type it, e.g. ``1m30s``."""
    if value is None:
        return "the deadline"
    total = value.total_seconds()
    if total < 1:
        return f"{int(total * 1000)}ms"
    minutes, seconds = divmod(int(total), 60)
    if minutes:
        return f"{minutes}m{seconds}s"
    return f"{seconds}s"
