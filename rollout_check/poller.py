"""
Per-deployment polling loop.
"""
import asyncio
import logging
from concurrent.futures import Executor
from typing import Callable, Optional

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from rollout_check.classification import MSG_KUBECTL_CONNECTION, format_duration, is_fatal, parse_rollout_status
from rollout_check.exceptions import KubectlError
from rollout_check.kube_types import ActionableOutcome, StatusCode
from rollout_check.resource import Deployment

logger = logging.getLogger(__name__)

DEFAULT_POLL_PERIOD_MS = 1000

OnChange = Callable[[Deployment], None]

# The kubernetes client raises urllib3 errors, not ApiException, when the
# API server can't be reached at all.
TRANSPORT_ERRORS = (HTTPError, OSError)


async def check_status(kube_client, validator, resource: Deployment, executor: Optional[Executor] = None) -> None:
    """
    Poll the rollout once and update the resource.

    Pod diagnostics are attached on every poll that isn't a success. The
    resource is marked complete on success, on a fatal rollout code, or when
    a pod reports an error it can't recover from.

    Args:
        kube_client: provides ``async rollout_status(ref)``
        validator: provides blocking ``run(ref)``, run on ``executor``
        resource: the deployment to update
        executor: executor for blocking API calls, the loop default if None
    """
    try:
        details = await kube_client.rollout_status(resource.ref)
        outcome = parse_rollout_status(details, None, resource.deadline)
    except KubectlError as e:
        outcome = parse_rollout_status("", e, resource.deadline)
    except TRANSPORT_ERRORS as e:
        logger.debug(f"rollout status for {resource} could not be queried this time: {e}")
        outcome = ActionableOutcome(StatusCode.STATUSCHECK_KUBECTL_CONNECTION_ERR, MSG_KUBECTL_CONNECTION)

    resource.update_status(outcome)
    if outcome.is_success:
        resource.mark_complete()
        return

    loop = asyncio.get_running_loop()
    try:
        pods = await loop.run_in_executor(executor, validator.run, resource.ref)
    except (ApiException, *TRANSPORT_ERRORS) as e:
        logger.debug(f"pod statuses for {resource} could not be fetched this time: {e}")
    else:
        resource.update_pod_statuses(pods)

    if is_fatal(outcome.code):
        resource.mark_complete()
        return

    fatal_pod = resource.unrecoverable_pod_outcome()
    if fatal_pod is not None:
        resource.update_status(fatal_pod)
        resource.mark_complete()


async def _poll_until_done(kube_client, validator, resource: Deployment, period_s: float,
                           on_change: Optional[OnChange], executor: Optional[Executor]) -> None:
    while True:
        await asyncio.sleep(period_s)
        await check_status(kube_client, validator, resource, executor)
        if on_change is not None and resource.changed:
            on_change(resource)
        if resource.is_complete_or_cancelled():
            return


async def poll_deployment_status(
    kube_client,
    validator,
    resource: Deployment,
    poll_period_ms: Optional[int] = None,
    on_change: Optional[OnChange] = None,
    executor: Optional[Executor] = None,
) -> None:
    """
    Poll a deployment until it is healthy, fails, or runs out of time.

    Errors are recorded on the resource and never raised, so one
    deployment can't stop the others from being checked.

    Args:
        kube_client: provides ``async rollout_status(ref)``
        validator: provides ``run(ref)`` returning pod outcomes
        resource: the deployment, owned by this poller
        poll_period_ms: interval between polls
        on_change: called after a poll whenever the reportable state changed
        executor: executor for the validator's blocking calls

    Raises:
        asyncio.CancelledError: the check was cancelled; the resource is
            marked with the cancellation outcome first
    """
    period_s = (poll_period_ms or DEFAULT_POLL_PERIOD_MS) / 1000
    try:
        await asyncio.wait_for(
            _poll_until_done(kube_client, validator, resource, period_s, on_change, executor),
            timeout=resource.deadline.total_seconds(),
        )
    except asyncio.TimeoutError:
        resource.update_status(ActionableOutcome(
            StatusCode.STATUSCHECK_DEADLINE_EXCEEDED,
            f"could not stabilize within {format_duration(resource.deadline)}",
        ))
        resource.mark_complete()
        logger.debug(f"{resource} exceeded its deadline of {format_duration(resource.deadline)}")
    except asyncio.CancelledError:
        resource.update_status(ActionableOutcome(StatusCode.STATUSCHECK_USER_CANCELLED, "check cancelled"))
        resource.mark_complete()
        raise
    except Exception as e:
        logger.error(f"❌ Status check of {resource} failed: {e}")
        resource.update_status(ActionableOutcome(StatusCode.STATUSCHECK_UNKNOWN, str(e) or type(e).__name__))
        resource.mark_complete()
