"""Kubernetes workload gateway for dmngr."""

from typing import Any, Dict, List, Optional

import urllib3
import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from dmngr.errors import ConfigError, GatewayError, NotFoundError
from dmngr.errors_catalog import actionable_error
from dmngr.models import WorkloadKind


class WorkloadGateway:
    """Get/list/update pods and workloads inside a single kubeconfig context."""

    DRY_RUN_ALL = "All"

    _READERS = {
        WorkloadKind.DEPLOYMENT: "read_namespaced_deployment",
        WorkloadKind.STATEFULSET: "read_namespaced_stateful_set",
    }
    _WRITERS = {
        WorkloadKind.DEPLOYMENT: "replace_namespaced_deployment",
        WorkloadKind.STATEFULSET: "replace_namespaced_stateful_set",
    }

    def __init__(self, context: str, api_client, logger, core_v1=None, apps_v1=None):
        self.context = context
        self.api_client = api_client
        self.logger = logger
        self.core_v1 = core_v1 or client.CoreV1Api(api_client)
        self.apps_v1 = apps_v1 or client.AppsV1Api(api_client)

    def _call(self, description: str, callback, *args, **kwargs):
        self.logger.debug("[%s] %s", self.context, description)
        try:
            return callback(*args, **kwargs)
        except ApiException as exc:
            if exc.status == 404:
                raise NotFoundError(
                    f"Not found while trying to {description} in context '{self.context}'."
                ) from exc
            raise GatewayError(
                f"Kubernetes API error while trying to {description} in context "
                f"'{self.context}': {exc.status} {exc.reason}"
            ) from exc
        except urllib3.exceptions.HTTPError as exc:
            raise GatewayError(
                f"Could not reach the cluster for context '{self.context}' "
                f"while trying to {description}: {exc}"
            ) from exc

    def get_pod(self, namespace: str, name: str):
        return self._call(
            f"read pod {namespace}/{name}",
            self.core_v1.read_namespaced_pod,
            name=name,
            namespace=namespace,
        )

    def list_pods(self, namespace: str, label_selector: Optional[str] = None) -> List[Any]:
        kwargs: Dict[str, Any] = {"namespace": namespace}
        if label_selector:
            kwargs["label_selector"] = label_selector

        pods = self._call(
            f"list pods in {namespace} ({label_selector or 'all'})",
            self.core_v1.list_namespaced_pod,
            **kwargs,
        )
        return list(pods.items or [])

    def list_pod_names(self, namespace: str, label_selector: Optional[str] = None) -> List[str]:
        return [pod.metadata.name for pod in self.list_pods(namespace, label_selector)]

    def stream_pod_logs(self, namespace: str, pod: str, container: str, timestamps: bool = True):
        """Open the pod log as a raw urllib3 response; callers must close it."""
        return self._call(
            f"stream logs of {namespace}/{pod}[{container}]",
            self.core_v1.read_namespaced_pod_log,
            name=pod,
            namespace=namespace,
            container=container,
            timestamps=timestamps,
            _preload_content=False,
        )

    def get_workload(self, namespace: str, name: str, kind):
        kind = WorkloadKind.parse(kind)
        reader = getattr(self.apps_v1, self._READERS[kind])
        return self._call(f"read {kind.value} {namespace}/{name}", reader, name=name, namespace=namespace)

    def update_workload(self, namespace: str, workload, kind, dry_run: bool = False):
        kind = WorkloadKind.parse(kind)
        writer = getattr(self.apps_v1, self._WRITERS[kind])
        kwargs: Dict[str, Any] = {
            "name": workload.metadata.name,
            "namespace": namespace,
            "body": workload,
        }
        if dry_run:
            kwargs["dry_run"] = self.DRY_RUN_ALL

        mode = " (dry run)" if dry_run else ""
        return self._call(
            f"update {kind.value} {namespace}/{workload.metadata.name}{mode}",
            writer,
            **kwargs,
        )

    def serialize(self, obj) -> Dict[str, Any]:
        return self.api_client.sanitize_for_serialization(obj)


class GatewayFactory:
    """Builds one independent API client per kubeconfig context."""

    def __init__(self, logger, kubeconfig: Optional[str] = None, config_module=config):
        self.logger = logger
        self.kubeconfig = kubeconfig
        self.config = config_module

    def build(self, context: str) -> WorkloadGateway:
        try:
            api_client = self.config.new_client_from_config(
                config_file=self.kubeconfig,
                context=context,
                persist_config=False,
            )
        except (ConfigException, OSError, ValueError, yaml.YAMLError) as exc:
            raise ConfigError(
                actionable_error("context_unavailable", context=context, detail=str(exc))
            ) from exc

        self.logger.debug("Built Kubernetes client for context %s", context)
        return WorkloadGateway(context=context, api_client=api_client, logger=self.logger)
