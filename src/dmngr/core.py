import logging
import threading
from datetime import datetime
from typing import List, Optional, Tuple

from .errors import DmngrError
from .models import ClusterContext, RolloutResult, Target, WatchedWorkload, WorkloadKind, WorkloadRef
from .services.aggregator import ClusterReportService
from .services.contexts import ContextDiscoveryService
from .services.gateway import GatewayFactory
from .services.probes import ProbeService
from .services.rollout import RolloutController

logger = logging.getLogger("dmngr")


class DeploymentManager:
    """Entry points for inspecting and updating workloads across kube contexts.

    Every call names its context explicitly; the kubeconfig's current context
    is never consulted.
    """

    VALID_KINDS = [kind.value for kind in WorkloadKind]

    def __init__(
        self,
        kubeconfig: Optional[str] = None,
        namespace: str = ClusterReportService.DEFAULT_NAMESPACE,
        context_pattern: str = "dev",
        container: str = ProbeService.DEFAULT_CONTAINER,
        activity_marker: str = ProbeService.DEFAULT_ACTIVITY_MARKER,
        rollout_timeout: float = RolloutController.DEFAULT_TIMEOUT_SECONDS,
        poll_interval: float = RolloutController.DEFAULT_POLL_INTERVAL_SECONDS,
        max_workers: int = 1,
        web_workload: str = "webapp",
        api_workload: str = "omiq-api",
        gateway_factory=None,
        context_service=None,
        rollout_controller=None,
    ):
        self.kubeconfig = kubeconfig
        self.namespace = namespace
        self.context_pattern = context_pattern

        self.gateway_factory = gateway_factory or GatewayFactory(logger=logger, kubeconfig=kubeconfig)
        self.context_service = context_service or ContextDiscoveryService(
            logger=logger,
            kubeconfig=kubeconfig,
        )
        self.probe_service = ProbeService(
            logger=logger,
            container=container,
            activity_marker=activity_marker,
        )
        self.rollout_controller = rollout_controller or RolloutController(
            logger=logger,
            timeout_seconds=rollout_timeout,
            poll_interval_seconds=poll_interval,
        )
        self.report_service = ClusterReportService(
            logger=logger,
            gateway_factory=self.gateway_factory,
            probe_service=self.probe_service,
            namespace=namespace,
            workloads=(
                WatchedWorkload(name=web_workload, kind=WorkloadKind.DEPLOYMENT),
                WatchedWorkload(name=api_workload, kind=WorkloadKind.STATEFULSET),
            ),
            max_workers=max_workers,
        )

    def _gateway(self, context: str):
        return self.gateway_factory.build(context)

    def restart_time(self, context: str, namespace: str, pod_name: str) -> datetime:
        return self.probe_service.restart_time(self._gateway(context), namespace, pod_name)

    def last_log_time(self, context: str, namespace: str, pod_name: str) -> datetime:
        return self.probe_service.last_log_time(self._gateway(context), namespace, pod_name)

    def last_image_update(
        self,
        context: str,
        namespace: str,
        resource_name: str,
        kind,
    ) -> Tuple[datetime, str]:
        kind = WorkloadKind.parse(kind)
        return self.probe_service.last_image_update(
            self._gateway(context), namespace, resource_name, kind
        )

    def update_image(
        self,
        context: str,
        resource_name: str,
        namespace: str,
        image: str,
        kind,
        dry_run: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> RolloutResult:
        """Set the workload's monitored image and wait for the rollout.

        Overlapping calls against the same workload are not serialized.
        """
        ref = WorkloadRef(context=context, namespace=namespace, name=resource_name, kind=kind)
        return self.rollout_controller.update_image(
            self._gateway(context),
            ref,
            image,
            dry_run=dry_run,
            cancel_event=cancel_event,
        )

    def list_contexts(self) -> List[str]:
        return [context.name for context in self.context_service.list_contexts()]

    def discover_contexts(self, pattern: Optional[str] = None) -> List[ClusterContext]:
        pattern = self.context_pattern if pattern is None else pattern
        contexts = self.context_service.list_contexts()
        return self.context_service.filter_by_name_pattern(contexts, pattern)

    def list_pods(self, context: str, namespace: str, label_selector: Optional[str] = None) -> List[str]:
        return self._gateway(context).list_pod_names(namespace, label_selector)

    def all_clusters_info(self) -> List[Target]:
        contexts = self.discover_contexts()
        if not contexts:
            logger.warning("No kubeconfig context name contains '%s'.", self.context_pattern)
            return []

        logger.info(
            "Collecting status from %s context(s): %s",
            len(contexts),
            ", ".join(context.name for context in contexts),
        )
        return self.report_service.all_clusters_info(contexts)

