"""Tests for deployment discovery and deadline resolution."""

from __future__ import annotations

from datetime import timedelta

import pytest
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError

from rollout_check.discovery import MAX_PROGRESS_DEADLINE, get_deployments, resolve_deadline
from rollout_check.exceptions import ResourceDiscoveryError
from rollout_check.kube_types import StatusCode
from rollout_check.labeller import Labeller

from fakes import RUN_ID, RUN_ID_LABEL, FakeKubeClient, k8s_deployment, run_labels

GLOBAL_DEADLINE = timedelta(seconds=200)


def _summary(deployments):
    return [(d.name, d.namespace, d.deadline) for d in deployments]


@pytest.mark.parametrize("description, deps, expected", [
    (
        "multiple deployments in same namespace",
        [
            k8s_deployment("dep1", labels=run_labels(random="foo"), progress_deadline=10),
            k8s_deployment("dep2", labels=run_labels(), progress_deadline=20),
        ],
        [("dep1", "test", timedelta(seconds=10)), ("dep2", "test", timedelta(seconds=20))],
    ),
    (
        "declared deadline longer than the global deadline is honored",
        [k8s_deployment("dep1", labels=run_labels(), progress_deadline=300)],
        [("dep1", "test", timedelta(seconds=300))],
    ),
    (
        "deployment without a progress deadline uses the global deadline",
        [
            k8s_deployment("dep1", labels=run_labels(), progress_deadline=100),
            k8s_deployment("dep2", labels=run_labels()),
        ],
        [("dep1", "test", timedelta(seconds=100)), ("dep2", "test", GLOBAL_DEADLINE)],
    ),
    (
        "progress deadline at the kubernetes default falls back to the global deadline",
        [k8s_deployment("dep1", labels=run_labels(), progress_deadline=600)],
        [("dep1", "test", GLOBAL_DEADLINE)],
    ),
    ("no deployments", [], []),
    (
        "deployments in other namespaces are ignored",
        [
            k8s_deployment("dep1", labels=run_labels(), progress_deadline=100),
            k8s_deployment("dep2", namespace="test1", labels=run_labels(), progress_deadline=100),
        ],
        [("dep1", "test", timedelta(seconds=100))],
    ),
    (
        "deployment not labelled with a run id",
        [k8s_deployment("dep1", labels={"some-other-tool": "helm"}, progress_deadline=100)],
        [],
    ),
    (
        "deployment from a different run",
        [
            k8s_deployment("dep1", labels=run_labels("9876-6789"), progress_deadline=100),
            k8s_deployment("dep2", labels=run_labels(), progress_deadline=100),
        ],
        [("dep2", "test", timedelta(seconds=100))],
    ),
])
def test_get_deployments(description, deps, expected) -> None:
    client = FakeKubeClient(deployments=deps)
    labeller = Labeller(run_id=RUN_ID, label_key=RUN_ID_LABEL)

    actual = get_deployments(client, "test", labeller, GLOBAL_DEADLINE)

    assert _summary(actual) == expected


def test_get_deployments_keeps_pod_selector() -> None:
    client = FakeKubeClient(deployments=[
        k8s_deployment("dep1", labels=run_labels(), match_labels={"app": "web", "tier": "front"}),
    ])
    labeller = Labeller(run_id=RUN_ID, label_key=RUN_ID_LABEL)

    [dep] = get_deployments(client, "test", labeller, GLOBAL_DEADLINE)

    assert dep.ref.pod_selector == {"app": "web", "tier": "front"}
    assert str(dep) == "test:deployment/dep1"


def test_get_deployments_wraps_api_errors() -> None:
    client = FakeKubeClient(list_error=ApiException(status=403, reason="Forbidden"))
    labeller = Labeller(run_id=RUN_ID, label_key=RUN_ID_LABEL)

    with pytest.raises(ResourceDiscoveryError) as exc_info:
        get_deployments(client, "test", labeller, GLOBAL_DEADLINE)

    assert exc_info.value.status_code == StatusCode.STATUSCHECK_DEPLOYMENT_FETCH_ERR
    assert "could not fetch deployments: Forbidden" in str(exc_info.value)


def test_get_deployments_wraps_unreachable_api() -> None:
    client = FakeKubeClient(list_error=MaxRetryError(None, "/apis/apps/v1", reason="connection refused"))
    labeller = Labeller(run_id=RUN_ID, label_key=RUN_ID_LABEL)

    with pytest.raises(ResourceDiscoveryError) as exc_info:
        get_deployments(client, "test", labeller, GLOBAL_DEADLINE)

    assert exc_info.value.status_code == StatusCode.STATUSCHECK_DEPLOYMENT_FETCH_ERR
    assert str(exc_info.value).startswith("could not fetch deployments: ")


@pytest.mark.parametrize("declared, expected", [
    (None, GLOBAL_DEADLINE),
    (10, timedelta(seconds=10)),
    (300, timedelta(seconds=300)),
    (599, timedelta(seconds=599)),
    (600, GLOBAL_DEADLINE),
    (3600, GLOBAL_DEADLINE),
])
def test_resolve_deadline(declared, expected) -> None:
    assert resolve_deadline(declared, GLOBAL_DEADLINE) == expected


def test_max_progress_deadline_is_the_kubernetes_default() -> None:
    assert MAX_PROGRESS_DEADLINE == timedelta(seconds=600)
