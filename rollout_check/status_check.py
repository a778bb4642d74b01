"""
Status check for the deployments of a run.

``StatusChecker.check`` discovers the deployments labelled with the run id,
polls each one concurrently, prints progress as it changes and a summary
line as each deployment finishes, then returns or raises the aggregate
verdict.
"""
import asyncio
import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import timedelta
from typing import Iterable, List, Optional, Sequence, TextIO

from rollout_check.config import settings
from rollout_check.counter import Counter
from rollout_check.discovery import get_deployments
from rollout_check.exceptions import DeploymentsFailedError
from rollout_check.kube_types import StatusCode
from rollout_check.labeller import Labeller
from rollout_check.poller import poll_deployment_status
from rollout_check.resource import TAB_HEADER, Deployment
from rollout_check.validator import PodValidator

logger = logging.getLogger(__name__)


class StatusPrinter:
    """Serializes progress lines written by concurrent pollers."""

    def __init__(self, out: TextIO):
        self.out = out
        self._lock = threading.Lock()

    def write_line(self, text: str) -> None:
        with self._lock:
            try:
                self.out.write(text + "\n")
                self.out.flush()
            except (OSError, ValueError) as e:
                logger.warning(f"⚠️ Could not write status output: {e}")

    def print_summary(self, resource: Deployment, counter: Counter) -> None:
        """
        Print the final line for a deployment.

        ``counter`` is the snapshot taken when this deployment was marked
        processed, so the pending count is the one at print time.
        """
        outcome = resource.outcome
        if outcome.is_cancelled:
            return
        if outcome.is_success:
            line = f"{TAB_HEADER} {resource} is ready."
            if counter.pending > 0:
                line += f" [{counter.pending}/{counter.total} deployment(s) still pending]"
        else:
            line = f"{TAB_HEADER} {resource} failed. Error: {outcome.message.strip()}."
        self.write_line(line)

    def print_resource_status(self, resource: Deployment) -> None:
        """Print a deployment's progress if it changed since it was last printed."""
        if resource.is_complete_or_cancelled() or resource.outcome.is_success:
            return
        text = resource.report_since_last_updated()
        if text:
            self.write_line(text)

    def print_status(self, resources: Iterable[Deployment]) -> bool:
        """
        Print progress for every deployment still being checked.

        Returns:
            True if every deployment's outcome is success
        """
        all_succeeded = True
        for resource in resources:
            self.print_resource_status(resource)
            if not resource.outcome.is_success:
                all_succeeded = False
        return all_succeeded


def get_deploy_status(counter: Counter, resources: Sequence[Deployment]) -> StatusCode:
    """
    Aggregate verdict for a run.

    Returns:
        STATUSCHECK_SUCCESS when nothing failed

    Raises:
        DeploymentsFailedError: with the code of the first failed deployment,
            in discovery order. Cancelled deployments are only used when
            nothing else failed.
    """
    if counter.failed == 0:
        return StatusCode.STATUSCHECK_SUCCESS

    failed = [r.outcome for r in resources if not r.outcome.is_success]
    code = StatusCode.STATUSCHECK_UNKNOWN
    for outcome in failed:
        if not outcome.is_cancelled:
            code = outcome.code
            break
    else:
        if failed:
            code = failed[0].code
    raise DeploymentsFailedError(counter.failed, counter.total, code)


class StatusChecker:
    """Checks that the deployments of one run roll out successfully."""

    def __init__(
        self,
        kube_client,
        labeller: Labeller,
        validator: Optional[PodValidator] = None,
        deadline: Optional[timedelta] = None,
        poll_period_ms: Optional[int] = None,
        namespaces: Optional[List[str]] = None,
    ):
        """
        Args:
            kube_client: lists deployments and queries rollout status
            labeller: identity of the run to check
            validator: pod diagnostics, defaults to a PodValidator on kube_client;
                scoped to the run label before use
            deadline: deadline for deployments that don't declare one
            poll_period_ms: interval between rollout polls
            namespaces: namespaces to check, defaults to the client namespace
        """
        self.kube_client = kube_client
        self.labeller = labeller
        self.validator = (validator or PodValidator(kube_client)).with_label(labeller.label_key, labeller.run_id)
        self.deadline = deadline or timedelta(seconds=settings.STATUS_CHECK_DEADLINE_SECS)
        self.poll_period_ms = poll_period_ms or settings.POLL_PERIOD_MS
        self.namespaces = namespaces or [getattr(kube_client, "namespace", settings.K8S_NAMESPACE)]

    async def discover(self) -> List[Deployment]:
        deployments = []
        for namespace in self.namespaces:
            deployments += await asyncio.to_thread(
                get_deployments, self.kube_client, namespace, self.labeller, self.deadline
            )
        return deployments

    async def check(self, out: TextIO) -> StatusCode:
        """
        Wait for every deployment of the run to stabilize.

        Args:
            out: writer for user-facing progress

        Returns:
            STATUSCHECK_SUCCESS

        Raises:
            ResourceDiscoveryError: deployments could not be listed
            DeploymentsFailedError: at least one deployment failed
            asyncio.CancelledError: the check was aborted
        """
        deployments = await self.discover()
        if not deployments:
            logger.info(f"No deployments found for run {self.labeller.run_id}")
            return StatusCode.STATUSCHECK_SUCCESS

        printer = StatusPrinter(out)
        counter = Counter.new(len(deployments))
        printer.write_line("Waiting for deployments to stabilize...")
        logger.info(f"Checking rollout of {len(deployments)} deployment(s) for run {self.labeller.run_id}")

        # One worker per deployment; pod probes never queue behind each other.
        executor = ThreadPoolExecutor(max_workers=len(deployments), thread_name_prefix="status-check")
        tasks = [
            asyncio.create_task(self._watch(d, counter, printer, executor), name=f"status-check {d}")
            for d in deployments
        ]
        try:
            await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        final = counter.copy()
        try:
            code = get_deploy_status(final, deployments)
        except DeploymentsFailedError as e:
            logger.error(f"❌ {e} ({e.status_code.name})")
            raise
        printer.write_line("Deployments stabilized.")
        logger.info(f"✅ {final.total} deployment(s) stabilized")
        return code

    async def _watch(self, resource: Deployment, counter: Counter, printer: StatusPrinter,
                     executor: Executor) -> None:
        await poll_deployment_status(
            self.kube_client,
            self.validator,
            resource,
            poll_period_ms=self.poll_period_ms,
            on_change=printer.print_resource_status,
            executor=executor,
        )
        snapshot = counter.mark_processed(resource.outcome)
        printer.print_summary(resource, snapshot)
