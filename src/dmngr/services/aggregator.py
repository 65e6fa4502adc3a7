"""Multi-cluster status report for dmngr."""

from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Sequence, Tuple

from dmngr.errors import DmngrError
from dmngr.models import ZERO_TIME, ClusterContext, Target, WatchedWorkload, WorkloadKind


class ClusterReportService:
    """Runs the read-only probes for the watched workloads in many contexts.

    A failure in one context never stops the others: the (workload, context)
    pair is either skipped or filled with a fallback value, depending on which
    probe failed.
    """

    DEFAULT_NAMESPACE = "default"
    DEFAULT_WORKLOADS = (
        WatchedWorkload(name="webapp", kind=WorkloadKind.DEPLOYMENT),
        WatchedWorkload(name="omiq-api", kind=WorkloadKind.STATEFULSET),
    )

    def __init__(
        self,
        logger,
        gateway_factory,
        probe_service,
        namespace: str = DEFAULT_NAMESPACE,
        workloads: Sequence[WatchedWorkload] = DEFAULT_WORKLOADS,
        max_workers: int = 1,
    ):
        self.logger = logger
        self.gateway_factory = gateway_factory
        self.probes = probe_service
        self.namespace = namespace
        self.workloads = tuple(workloads)
        self.max_workers = max(1, int(max_workers))

    def all_clusters_info(self, contexts: Iterable[ClusterContext]) -> List[Target]:
        gateways = self._build_gateways(contexts)
        jobs = [
            (workload, context_name, gateway)
            for workload in self.workloads
            for context_name, gateway in gateways
        ]

        if self.max_workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                rows = list(executor.map(lambda job: self.probe_target(*job), jobs))
        else:
            rows = [self.probe_target(*job) for job in jobs]

        return [row for row in rows if row is not None]

    def _build_gateways(self, contexts: Iterable[ClusterContext]) -> List[Tuple[str, object]]:
        gateways = []
        for context in contexts:
            try:
                gateways.append((context.name, self.gateway_factory.build(context.name)))
            except DmngrError as exc:
                self.logger.warning("Skipping context %s: %s", context.name, exc)
        return gateways

    def probe_target(self, workload: WatchedWorkload, context: str, gateway) -> Optional[Target]:
        namespace = self.namespace

        try:
            last_image_update, current_image = self.probes.last_image_update(
                gateway, namespace, workload.name, workload.kind
            )
        except DmngrError as exc:
            return self._skip(workload, context, "image probe failed", exc)

        try:
            pod_names = gateway.list_pod_names(namespace, workload.kind.pod_selector(workload.name))
        except DmngrError as exc:
            return self._skip(workload, context, "pod listing failed", exc)
        if not pod_names:
            return self._skip(workload, context, "no pods matched", None)
        pod_name = pod_names[0]

        try:
            last_restart = self.probes.restart_time(gateway, namespace, pod_name)
        except DmngrError as exc:
            # Statefulsets drop out of the report here; deployments stay with a zero time.
            if workload.kind is WorkloadKind.STATEFULSET:
                return self._skip(workload, context, "restart probe failed", exc)
            self.logger.debug("Restart time unknown for %s in %s: %s", pod_name, context, exc)
            last_restart = ZERO_TIME

        try:
            last_log_time = self.probes.last_log_time(gateway, namespace, pod_name)
        except DmngrError as exc:
            self.logger.debug("No activity timestamp for %s in %s: %s", pod_name, context, exc)
            last_log_time = last_restart

        return Target(
            context=context,
            name=workload.name,
            current_image=current_image,
            last_restart=last_restart,
            last_log_time=last_log_time,
            last_image_update=last_image_update,
        )

    def _skip(self, workload: WatchedWorkload, context: str, reason: str, exc) -> None:
        if exc is None:
            self.logger.warning("Skipping %s in %s: %s", workload.name, context, reason)
        else:
            self.logger.warning("Skipping %s in %s: %s (%s)", workload.name, context, reason, exc)
        return None
