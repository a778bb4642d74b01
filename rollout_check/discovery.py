"""
Discovery of the deployments created by the current run.
"""
import logging
from datetime import timedelta
from typing import List, Optional

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from rollout_check.exceptions import ResourceDiscoveryError
from rollout_check.labeller import Labeller
from rollout_check.resource import Deployment

logger = logging.getLogger(__name__)

# Kubernetes defaults spec.progressDeadlineSeconds to this value, so a
# deployment declaring it (or more) has effectively not chosen a deadline.
MAX_PROGRESS_DEADLINE = timedelta(seconds=600)


def resolve_deadline(declared_seconds: Optional[int], global_deadline: timedelta) -> timedelta:
    """
    Effective deadline for one deployment.

    A declared deadline below ``MAX_PROGRESS_DEADLINE`` is honored, even when
    it is longer than the global deadline. An undeclared deadline, or one at
    or above the cap, falls back to the global deadline.
    """
    if declared_seconds is None:
        return global_deadline
    declared = timedelta(seconds=declared_seconds)
    if declared >= MAX_PROGRESS_DEADLINE:
        return global_deadline
    return declared


def get_deployments(kube_client, namespace: str, labeller: Labeller, global_deadline: timedelta) -> List[Deployment]:
    """
    List the deployments of this run in a namespace.

    Args:
        kube_client: anything with ``list_deployments(namespace, label_selector)``
        namespace: namespace to look in
        labeller: run identity
        global_deadline: deadline used when a deployment doesn't pick its own

    Returns:
        Deployments in API order, each with its effective deadline

    Raises:
        ResourceDiscoveryError: the deployments could not be listed
    """
    try:
        items = kube_client.list_deployments(namespace, label_selector=labeller.selector())
    except ApiException as e:
        raise ResourceDiscoveryError(f"could not fetch deployments: {e.reason or e}") from e
    except HTTPError as e:
        raise ResourceDiscoveryError(f"could not fetch deployments: {e}") from e

    deployments = []
    for item in items:
        metadata = item.metadata
        if metadata.namespace and metadata.namespace != namespace:
            continue
        if not labeller.matches(metadata.labels):
            logger.debug(f"Skipping deployment {metadata.name}: not created by run {labeller.run_id}")
            continue

        spec = item.spec
        declared = spec.progress_deadline_seconds if spec else None
        selector = {}
        if spec and spec.selector and spec.selector.match_labels:
            selector = dict(spec.selector.match_labels)

        deployments.append(Deployment(
            metadata.name,
            namespace,
            resolve_deadline(declared, global_deadline),
            pod_selector=selector,
        ))

    logger.info(f"Found {len(deployments)} deployment(s) for run {labeller.run_id} in namespace {namespace}")
    return deployments
