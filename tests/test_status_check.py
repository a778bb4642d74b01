"""Tests for the status-check orchestrator and its printer."""

from __future__ import annotations

import asyncio
import io
import threading
from datetime import timedelta

import pytest
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError

from rollout_check.counter import Counter
from rollout_check.exceptions import DeploymentsFailedError, ResourceDiscoveryError
from rollout_check.kube_types import ActionableOutcome, StatusCode, SUCCESS
from rollout_check.labeller import Labeller
from rollout_check.resource import Deployment
from rollout_check.status_check import StatusChecker, StatusPrinter, get_deploy_status

from fakes import (
    CONNECTION_REFUSED,
    ROLLED_OUT,
    RUN_ID,
    RUN_ID_LABEL,
    WAITING,
    FakeKubeClient,
    FakeValidator,
    k8s_deployment,
    run_labels,
    pod,
)

POLL_MS = 100
DEADLINE_EXPIRED = ActionableOutcome(StatusCode.STATUSCHECK_DEADLINE_EXCEEDED, "context deadline expired")
CANCELLED = ActionableOutcome(StatusCode.STATUSCHECK_USER_CANCELLED)


def with_status(dep: Deployment, outcome: ActionableOutcome) -> Deployment:
    dep.update_status(outcome)
    return dep


def _dep(name: str, namespace: str = "test") -> Deployment:
    return Deployment(name, namespace, timedelta(seconds=1))


class TestPrintSummary:

    @pytest.mark.parametrize("description, namespace, pending, outcome, expected", [
        ("no deployment left and current is in success", "test", 0, SUCCESS,
         " - test:deployment/dep is ready.\n"),
        ("default namespace", "default", 0, SUCCESS,
         " - deployment/dep is ready.\n"),
        ("no deployment left and current is in error", "test", 0, DEADLINE_EXPIRED,
         " - test:deployment/dep failed. Error: context deadline expired.\n"),
        ("more than 1 deployment left and current is in success", "test", 4, SUCCESS,
         " - test:deployment/dep is ready. [4/10 deployment(s) still pending]\n"),
        ("more than 1 deployment left and current is in error", "test", 8, DEADLINE_EXPIRED,
         " - test:deployment/dep failed. Error: context deadline expired.\n"),
        ("skip printing if status check is cancelled", "test", 4, CANCELLED, ""),
        ("skip printing if cancelled in default namespace", "default", 0, CANCELLED, ""),
    ])
    def test_print_summary(self, description, namespace, pending, outcome, expected) -> None:
        out = io.StringIO()
        dep = with_status(_dep("dep", namespace), outcome)

        StatusPrinter(out).print_summary(dep, Counter(total=10, pending=pending))

        assert out.getvalue() == expected


class TestPrintStatus:

    def test_complete_resources_are_skipped(self) -> None:
        out = io.StringIO()
        r1 = with_status(_dep("r1"), SUCCESS)
        r1.mark_complete()
        r2 = with_status(_dep("r2"), ActionableOutcome(StatusCode.STATUSCHECK_UNKNOWN, "error"))
        r2.mark_complete()

        all_succeeded = StatusPrinter(out).print_status([r1, r2])

        assert out.getvalue() == ""
        assert not all_succeeded

    def test_single_successful_resource(self) -> None:
        out = io.StringIO()
        assert StatusPrinter(out).print_status([with_status(_dep("r1"), SUCCESS)])
        assert out.getvalue() == ""

    def test_pending_resource_with_failing_pod(self) -> None:
        out = io.StringIO()
        r2 = with_status(_dep("r2"), ActionableOutcome(StatusCode.STATUSCHECK_DEPLOYMENT_ROLLOUT_PENDING, "pending\n"))
        r2.update_pod_statuses([pod(StatusCode.STATUSCHECK_IMAGE_PULL_ERR)])

        all_succeeded = StatusPrinter(out).print_status([with_status(_dep("r1"), SUCCESS), r2])

        assert out.getvalue() == (
            " - test:deployment/r2: pod failed\n"
            "    - test:pod/foo: pod failed\n"
        )
        assert not all_succeeded

    def test_retryable_error(self) -> None:
        out = io.StringIO()
        r2 = with_status(_dep("r2"), ActionableOutcome(
            StatusCode.STATUSCHECK_KUBECTL_CONNECTION_ERR, "kubectl connection error"))

        StatusPrinter(out).print_status([with_status(_dep("r1"), SUCCESS), r2])

        assert out.getvalue() == " - test:deployment/r2: kubectl connection error\n"

    def test_cancelled_resource_is_not_printed(self) -> None:
        out = io.StringIO()
        assert not StatusPrinter(out).print_status([with_status(_dep("r1"), CANCELLED)])
        assert out.getvalue() == ""

    def test_unchanged_status_is_printed_once(self) -> None:
        out = io.StringIO()
        printer = StatusPrinter(out)
        r1 = with_status(_dep("r1"), ActionableOutcome(
            StatusCode.STATUSCHECK_KUBECTL_CONNECTION_ERR, "kubectl connection error"))

        for _ in range(5):
            printer.print_status([r1])

        assert out.getvalue().count("test:deployment/r1") == 1


def test_printer_swallows_write_errors() -> None:
    out = io.StringIO()
    out.close()
    StatusPrinter(out).write_line("ignored")


class TestGetDeployStatus:

    def test_one_error(self) -> None:
        dep = _dep("foo")
        dep.update_pod_statuses([pod(StatusCode.STATUSCHECK_NODE_DISK_PRESSURE)])

        with pytest.raises(DeploymentsFailedError) as exc_info:
            get_deploy_status(Counter(total=2, failed=1), [dep])

        assert str(exc_info.value) == "1/2 deployment(s) failed"
        assert exc_info.value.status_code == StatusCode.STATUSCHECK_NODE_DISK_PRESSURE

    def test_no_error(self) -> None:
        deps = [with_status(_dep("r1"), SUCCESS), with_status(_dep("r2"), SUCCESS)]
        assert get_deploy_status(Counter(total=2), deps) == StatusCode.STATUSCHECK_SUCCESS

    def test_no_deployments(self) -> None:
        assert get_deploy_status(Counter(), []) == StatusCode.STATUSCHECK_SUCCESS

    def test_first_failure_in_order_wins(self) -> None:
        deps = [
            with_status(_dep("r1"), SUCCESS),
            with_status(_dep("r2"), ActionableOutcome(StatusCode.STATUSCHECK_DEPLOYMENT_FETCH_ERR)),
            with_status(_dep("r3"), DEADLINE_EXPIRED),
        ]
        with pytest.raises(DeploymentsFailedError) as exc_info:
            get_deploy_status(Counter(total=3, failed=2), deps)

        assert str(exc_info.value) == "2/3 deployment(s) failed"
        assert exc_info.value.status_code == StatusCode.STATUSCHECK_DEPLOYMENT_FETCH_ERR

    def test_cancelled_resources_do_not_take_precedence(self) -> None:
        deps = [with_status(_dep("r1"), CANCELLED), with_status(_dep("r2"), DEADLINE_EXPIRED)]
        with pytest.raises(DeploymentsFailedError) as exc_info:
            get_deploy_status(Counter(total=2, failed=2), deps)

        assert exc_info.value.status_code == StatusCode.STATUSCHECK_DEADLINE_EXCEEDED

    def test_all_cancelled(self) -> None:
        deps = [with_status(_dep("r1"), CANCELLED)]
        with pytest.raises(DeploymentsFailedError) as exc_info:
            get_deploy_status(Counter(total=1, failed=1), deps)

        assert exc_info.value.status_code == StatusCode.STATUSCHECK_USER_CANCELLED


def _checker(client: FakeKubeClient, validator: FakeValidator | None = None) -> StatusChecker:
    return StatusChecker(
        client,
        Labeller(run_id=RUN_ID, label_key=RUN_ID_LABEL),
        validator=validator or FakeValidator(),
        deadline=timedelta(seconds=5),
        poll_period_ms=POLL_MS,
        namespaces=["test"],
    )


class TestCheck:

    @pytest.mark.asyncio
    async def test_no_deployments_succeeds_without_output(self) -> None:
        out = io.StringIO()
        client = FakeKubeClient(deployments=[k8s_deployment("other", labels=run_labels("another-run"))])

        assert await _checker(client).check(out) == StatusCode.STATUSCHECK_SUCCESS
        assert out.getvalue() == ""

    @pytest.mark.asyncio
    async def test_all_deployments_stabilize(self) -> None:
        out = io.StringIO()
        client = FakeKubeClient(
            deployments=[
                k8s_deployment("dep1", labels=run_labels()),
                k8s_deployment("dep2", labels=run_labels()),
                k8s_deployment("dep3", labels=run_labels("another-run")),
            ],
            rollouts={
                "dep1": [(ROLLED_OUT, None)],
                "dep2": [(WAITING, None), ("", CONNECTION_REFUSED), (ROLLED_OUT, None)],
            },
        )

        assert await _checker(client).check(out) == StatusCode.STATUSCHECK_SUCCESS

        lines = out.getvalue().splitlines()
        assert lines[0] == "Waiting for deployments to stabilize..."
        assert lines[-1] == "Deployments stabilized."
        assert " - test:deployment/dep1 is ready. [1/2 deployment(s) still pending]" in lines
        dep2_lines = [line for line in lines if "dep2" in line]
        assert dep2_lines == [
            " - test:deployment/dep2: Waiting for replicas to be available",
            " - test:deployment/dep2: kubectl connection error",
            " - test:deployment/dep2 is ready.",
        ]
        assert len(lines) == 6
        assert "dep3" not in client.calls

    @pytest.mark.asyncio
    async def test_failed_deployment_fails_the_check(self) -> None:
        out = io.StringIO()
        client = FakeKubeClient(
            deployments=[
                k8s_deployment("dep1", labels=run_labels()),
                k8s_deployment("dep2", labels=run_labels()),
            ],
            rollouts={"dep1": [(ROLLED_OUT, None)], "dep2": [(WAITING, None)]},
        )
        validator = FakeValidator([[pod(StatusCode.STATUSCHECK_IMAGE_PULL_ERR, "container app is waiting to start: img can't be pulled")]])

        with pytest.raises(DeploymentsFailedError) as exc_info:
            await _checker(client, validator).check(out)

        assert str(exc_info.value) == "1/2 deployment(s) failed"
        assert exc_info.value.status_code == StatusCode.STATUSCHECK_IMAGE_PULL_ERR
        assert " - test:deployment/dep2 failed. Error: container app is waiting to start: img can't be pulled." \
            in out.getvalue()
        assert validator.labels == {RUN_ID_LABEL: RUN_ID}

    @pytest.mark.asyncio
    async def test_discovery_failure_is_fatal(self) -> None:
        client = FakeKubeClient(list_error=ApiException(status=500, reason="Internal Server Error"))

        with pytest.raises(ResourceDiscoveryError) as exc_info:
            await _checker(client).check(io.StringIO())

        assert exc_info.value.status_code == StatusCode.STATUSCHECK_DEPLOYMENT_FETCH_ERR

    @pytest.mark.asyncio
    async def test_cancelled_check_prints_no_summary(self) -> None:
        out = io.StringIO()
        client = FakeKubeClient(
            deployments=[k8s_deployment("dep1", labels=run_labels())],
            rollouts={"dep1": [(WAITING, None)]},
        )
        checker = _checker(client)

        task = asyncio.create_task(checker.check(out))
        await asyncio.sleep(0.35)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert "failed" not in out.getvalue()
        assert "is ready" not in out.getvalue()
        assert "cancelled" not in out.getvalue()

    @pytest.mark.asyncio
    async def test_unreachable_api_for_one_deployment_does_not_stop_the_others(self) -> None:
        class UnreachableForDep2(FakeValidator):
            def run(self, ref):
                if ref.name == "dep2":
                    raise MaxRetryError(None, "/api/v1/namespaces/test/pods", reason="connection refused")
                return []

        out = io.StringIO()
        client = FakeKubeClient(
            deployments=[
                k8s_deployment("dep1", labels=run_labels()),
                k8s_deployment("dep2", labels=run_labels()),
            ],
            rollouts={
                "dep1": [(WAITING, None)] * 3 + [(ROLLED_OUT, None)],
                "dep2": [(WAITING, None)] * 2 + [(ROLLED_OUT, None)],
            },
        )

        assert await _checker(client, UnreachableForDep2()).check(out) == StatusCode.STATUSCHECK_SUCCESS
        assert client.calls["dep1"] == 4
        assert client.calls["dep2"] == 3
        assert out.getvalue().splitlines()[-1] == "Deployments stabilized."

    @pytest.mark.asyncio
    async def test_pod_probes_of_every_deployment_run_at_once(self) -> None:
        # More deployments than the default executor has workers.
        count = 40
        arrived = threading.Barrier(count, timeout=3)

        class WaitForAll(FakeValidator):
            def run(self, ref):
                arrived.wait()
                return []

        names = [f"dep{i}" for i in range(count)]
        client = FakeKubeClient(
            deployments=[k8s_deployment(name, labels=run_labels()) for name in names],
            rollouts={name: [(WAITING, None), (ROLLED_OUT, None)] for name in names},
        )

        assert await _checker(client, WaitForAll()).check(io.StringIO()) == StatusCode.STATUSCHECK_SUCCESS
        assert all(client.calls[name] == 2 for name in names)

    @pytest.mark.asyncio
    async def test_slow_rollout_queries_do_not_share_a_deadline(self) -> None:
        names = [f"dep{i}" for i in range(10)]
        client = FakeKubeClient(
            deployments=[k8s_deployment(name, labels=run_labels()) for name in names],
            rollouts={name: [(ROLLED_OUT, None)] for name in names},
            rollout_delay=0.6,
        )
        checker = _checker(client)
        checker.deadline = timedelta(seconds=1)

        assert await checker.check(io.StringIO()) == StatusCode.STATUSCHECK_SUCCESS
