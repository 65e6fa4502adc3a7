"""Kubeconfig context discovery for dmngr."""

from typing import Iterable, List, Optional

import yaml
from kubernetes.config.config_exception import ConfigException
from kubernetes.config.kube_config import KUBE_CONFIG_DEFAULT_LOCATION, KubeConfigMerger

from dmngr.errors import ConfigError
from dmngr.errors_catalog import actionable_error
from dmngr.models import ClusterContext


class ContextDiscoveryService:
    """Lists the contexts declared in the local kubeconfig.

    The kubeconfig is read and merged without activating any context, so a
    file that sets no ``current-context`` still lists its contexts.
    """

    def __init__(self, logger, kubeconfig: Optional[str] = None, merger_class=KubeConfigMerger):
        self.logger = logger
        self.kubeconfig = kubeconfig
        self.merger_class = merger_class

    def list_contexts(self) -> List[ClusterContext]:
        path = self.kubeconfig or KUBE_CONFIG_DEFAULT_LOCATION
        try:
            merged = self.merger_class(path).config
        except (ConfigException, OSError, ValueError, yaml.YAMLError) as exc:
            raise ConfigError(actionable_error("kubeconfig_unreadable", detail=str(exc))) from exc
        if merged is None:
            raise ConfigError(
                actionable_error("kubeconfig_unreadable", detail=f"No configuration found in {path}.")
            )

        raw = getattr(merged, "value", merged)
        if not isinstance(raw, dict):
            raise ConfigError(
                actionable_error("kubeconfig_unreadable", detail=f"{path} is not a YAML mapping.")
            )

        active_name = raw.get("current-context")
        contexts = []
        for node in raw.get("contexts") or []:
            entry = getattr(node, "value", node)
            name = entry.get("name") if isinstance(entry, dict) else None
            if not name:
                continue
            details = entry.get("context") or {}
            contexts.append(
                ClusterContext(
                    name=name,
                    cluster=details.get("cluster", ""),
                    user=details.get("user"),
                    namespace=details.get("namespace"),
                    active=name == active_name,
                )
            )

        self.logger.debug("Discovered %s kubeconfig contexts", len(contexts))
        return contexts

    @staticmethod
    def filter_by_name_pattern(contexts: Iterable[ClusterContext], pattern: str) -> List[ClusterContext]:
        return [context for context in contexts if pattern in context.name]
