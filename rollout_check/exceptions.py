"""
Errors raised by the rollout status check.
"""
from rollout_check.kube_types import StatusCode


class StatusCheckError(Exception):
    """Base error carrying the status code to report for the run."""

    def __init__(self, message: str, status_code: StatusCode = StatusCode.STATUSCHECK_UNKNOWN):
        super().__init__(message)
        self.status_code = status_code


class ResourceDiscoveryError(StatusCheckError):
    """Deployments for the run could not be listed."""

    def __init__(self, message: str):
        super().__init__(message, StatusCode.STATUSCHECK_DEPLOYMENT_FETCH_ERR)


class DeploymentsFailedError(StatusCheckError):
    """One or more deployments did not become healthy."""

    def __init__(self, failed: int, total: int, status_code: StatusCode):
        super().__init__(f"{failed}/{total} deployment(s) failed", status_code)
        self.failed = failed
        self.total = total


class KubectlError(Exception):
    """kubectl exited with a non-zero status."""

    def __init__(self, stderr: str, returncode: int = 1):
        super().__init__(stderr.strip() or f"kubectl exited with status {returncode}")
        self.stderr = stderr
        self.returncode = returncode
