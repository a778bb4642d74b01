"""
Kubernetes client for status-check operations.
"""
import asyncio
import logging
import os
import signal
from typing import List

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from rollout_check.exceptions import KubectlError
from rollout_check.kube_types import WorkloadRef

logger = logging.getLogger(__name__)


class KubeClient:
    """Kubernetes client for status-check operations."""

    def __init__(
        self,
        namespace: str,
        in_cluster: bool = True,
        context: str | None = None,
        kubectl: str = "kubectl",
        kubectl_timeout_s: int = 30,
    ):
        """
        Initialize Kubernetes client.

        Args:
            namespace: Default Kubernetes namespace
            in_cluster: Whether running inside cluster (default: True)
            context: Kubernetes context name (optional)
            kubectl: kubectl executable used for rollout status
            kubectl_timeout_s: Timeout for a single kubectl call
        """
        self.namespace = namespace
        self.in_cluster = in_cluster
        self.context = context
        self.kubectl = kubectl
        self.kubectl_timeout_s = kubectl_timeout_s

        try:
            if in_cluster:
                config.load_incluster_config()
            else:
                if context:
                    config.load_kube_config(context=context)
                else:
                    config.load_kube_config()

            self.v1 = client.CoreV1Api()
            self.apps_v1 = client.AppsV1Api()
            logger.info(f"✅ Kubernetes client initialized for namespace: {namespace}")

        except Exception as e:
            logger.error(f"❌ Failed to initialize Kubernetes client: {e}")
            raise

    def list_deployments(self, namespace: str | None = None, label_selector: str | None = None) -> List[client.V1Deployment]:
        """
        List deployments in a namespace.

        Args:
            namespace: Namespace to list, defaults to the client namespace
            label_selector: Optional label selector for filtering

        Returns:
            List of V1Deployment objects, in API order
        """
        namespace = namespace or self.namespace
        try:
            deployments = self.apps_v1.list_namespaced_deployment(
                namespace=namespace,
                label_selector=label_selector
            )
            logger.debug(f"Retrieved {len(deployments.items)} deployments from namespace {namespace}")
            return list(deployments.items)

        except ApiException as e:
            logger.error(f"Failed to list deployments in {namespace}: {e}")
            raise

    def list_pods(self, namespace: str | None = None, label_selector: str | None = None) -> List[client.V1Pod]:
        """
        List pods in a namespace.

        Args:
            namespace: Namespace to list, defaults to the client namespace
            label_selector: Optional label selector for filtering

        Returns:
            List of V1Pod objects
        """
        namespace = namespace or self.namespace
        try:
            pods = self.v1.list_namespaced_pod(
                namespace=namespace,
                label_selector=label_selector
            )
            logger.debug(f"Retrieved {len(pods.items)} pods from namespace {namespace}")
            return list(pods.items)

        except ApiException as e:
            logger.error(f"Failed to get pods: {e}")
            raise

    def pod_logs(self, namespace: str, pod_name: str, tail_lines: int = 100) -> str:
        """
        Get the last lines of a pod's logs.

        Args:
            namespace: Pod namespace
            pod_name: Pod name
            tail_lines: Number of lines to return

        Returns:
            Log text
        """
        try:
            return self.v1.read_namespaced_pod_log(
                name=pod_name,
                namespace=namespace,
                tail_lines=tail_lines
            )

        except ApiException as e:
            logger.error(f"Failed to get logs for pod {namespace}/{pod_name}: {e}")
            raise

    def rollout_status_command(self, ref: WorkloadRef) -> List[str]:
        cmd = [self.kubectl]
        if self.context:
            cmd += ["--context", self.context]
        cmd += [
            "rollout", "status", ref.kind.lower(), ref.name,
            "--namespace", ref.namespace,
            "--watch=false",
        ]
        return cmd

    async def rollout_status(self, ref: WorkloadRef) -> str:
        """
        Run a single non-watching ``kubectl rollout status``.

        kubectl is killed if the call is cancelled or times out.

        Args:
            ref: Workload to query

        Returns:
            The raw kubectl output

        Raises:
            KubectlError: kubectl failed, was killed or timed out
            OSError: kubectl could not be started
        """
        env = os.environ.copy()
        env["PATH"] = f"{os.environ.get('HOME')}/.local/bin:{os.environ.get('PATH')}"

        process = await asyncio.create_subprocess_exec(
            *self.rollout_status_command(ref),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.kubectl_timeout_s)
        except asyncio.TimeoutError:
            raise KubectlError(
                f"Unable to connect to the server: kubectl timed out after {self.kubectl_timeout_s}s"
            )
        finally:
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        out = stdout.decode(errors="replace")
        if process.returncode == -signal.SIGKILL:
            raise KubectlError("signal: killed", process.returncode)
        if process.returncode != 0:
            raise KubectlError(stderr.decode(errors="replace") or out, process.returncode)
        return out
