"""Command-line interface for the rollout status check.

Registered as a console script in ``pyproject.toml``::

    [project.scripts]
    rollout-check = "rollout_check.cli:main"

Usage examples::

    rollout-check --run-id 1a2b3c --namespace staging
    rollout-check --run-id 1a2b3c --namespace api --namespace workers --deadline 300
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import timedelta

from rollout_check.config import settings
from rollout_check.exceptions import StatusCheckError
from rollout_check.kube_client import KubeClient
from rollout_check.labeller import Labeller
from rollout_check.status_check import StatusChecker


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rollout-check",
        description="Wait for the deployments of a run to roll out and report the result.",
    )
    parser.add_argument("--run-id", required=True, help="Run id the deployments are labelled with")
    parser.add_argument(
        "--namespace", "-n", action="append", dest="namespaces",
        help=f"Namespace to check, may be repeated (default: {settings.K8S_NAMESPACE})",
    )
    parser.add_argument(
        "--deadline", type=int, default=settings.STATUS_CHECK_DEADLINE_SECS,
        help="Seconds a deployment without its own progress deadline gets to stabilize",
    )
    parser.add_argument("--kube-context", default=settings.K8S_CONTEXT, help="Kubernetes context")
    parser.add_argument("--poll-period-ms", type=int, default=settings.POLL_PERIOD_MS, help="Interval between polls")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="info|debug|warning")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    namespaces = args.namespaces or [settings.K8S_NAMESPACE]
    try:
        kube_client = KubeClient(
            namespace=namespaces[0],
            in_cluster=settings.K8S_IN_CLUSTER,
            context=args.kube_context,
            kubectl=settings.KUBECTL_BINARY,
            kubectl_timeout_s=settings.KUBECTL_TIMEOUT_SECS,
        )
    except Exception as e:
        print(f"unable to connect to Kubernetes: {e}", file=sys.stderr)
        return 1

    checker = StatusChecker(
        kube_client,
        Labeller(run_id=args.run_id),
        deadline=timedelta(seconds=args.deadline),
        poll_period_ms=args.poll_period_ms,
        namespaces=namespaces,
    )

    try:
        asyncio.run(checker.check(sys.stdout))
    except KeyboardInterrupt:
        # An aborted check is not a failed deploy.
        print("Status check cancelled.", file=sys.stderr)
        return 0
    except StatusCheckError as e:
        print(f"{e} [{e.status_code.name}]", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
