"""
Rollout status check for Kubernetes deployments.
"""
from rollout_check.exceptions import DeploymentsFailedError, ResourceDiscoveryError, StatusCheckError
from rollout_check.kube_types import ActionableOutcome, StatusCode
from rollout_check.labeller import Labeller
from rollout_check.status_check import StatusChecker

__version__ = "1.0.0"

__all__ = [
    "ActionableOutcome",
    "DeploymentsFailedError",
    "Labeller",
    "ResourceDiscoveryError",
    "StatusChecker",
    "StatusCheckError",
    "StatusCode",
]
