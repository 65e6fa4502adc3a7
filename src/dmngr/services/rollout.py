"""Image rollout service for dmngr."""

import json
import threading
import time
from typing import Callable, Optional

from dmngr.errors import RolloutCancelledError, RolloutTimeoutError
from dmngr.errors_catalog import actionable_error
from dmngr.models import (
    RolloutOperation,
    RolloutResult,
    RolloutState,
    WorkloadRef,
)
from dmngr.services.probes import monitored_container


class RolloutController:
    """Pushes a new image to a workload and waits for the rollout.

    A rollout ends in exactly one way: a returned RolloutResult (succeeded or
    dry run), RolloutTimeoutError, RolloutCancelledError, or the gateway error
    that stopped it. Nothing is retried or rolled back. Two rollouts against
    the same workload are not serialized; callers that overlap them get
    whatever the API server makes of the second update.
    """

    DEFAULT_TIMEOUT_SECONDS = 60.0
    DEFAULT_POLL_INTERVAL_SECONDS = 5.0

    def __init__(
        self,
        logger,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.logger = logger
        self.timeout_seconds = timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.clock = clock
        self.sleep = sleep

    def update_image(
        self,
        gateway,
        ref: WorkloadRef,
        image: str,
        dry_run: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> RolloutResult:
        kind = ref.kind
        started_at = self.clock()
        operation = RolloutOperation(
            ref=ref,
            image=image,
            dry_run=dry_run,
            started_at=started_at,
            deadline=started_at + self.timeout_seconds,
        )

        operation.state = RolloutState.VALIDATING
        try:
            workload = gateway.get_workload(ref.namespace, ref.name, kind)
            container = monitored_container(workload, kind)
            self.logger.info(
                "Updating %s container '%s': %s -> %s%s",
                ref,
                container.name,
                container.image,
                image,
                " (dry run)" if dry_run else "",
            )
            container.image = image
            updated = gateway.update_workload(ref.namespace, workload, kind, dry_run=dry_run)
        except Exception:
            operation.state = RolloutState.FAILED
            raise

        if dry_run:
            operation.state = RolloutState.DRY_RUN_RETURNED
            summary = json.dumps(gateway.serialize(updated), indent=2, sort_keys=True)
            return self._result(operation, summary)

        operation.state = RolloutState.POLLING
        return self._wait_for_rollout(gateway, operation, kind, cancel_event)

    def _wait_for_rollout(self, gateway, operation: RolloutOperation, kind, cancel_event):
        ref = operation.ref
        while True:
            self._raise_if_cancelled(operation, cancel_event)

            try:
                workload = gateway.get_workload(ref.namespace, ref.name, kind)
            except Exception:
                operation.state = RolloutState.FAILED
                raise

            self._observe(operation, workload)
            self.logger.debug(
                "%s poll %s: replicas=%s updated=%s ready=%s",
                ref,
                operation.polls,
                operation.replicas,
                operation.updated_replicas,
                operation.ready_replicas,
            )
            if operation.converged:
                operation.state = RolloutState.SUCCEEDED
                self.logger.info("Rollout of %s to %s completed.", operation.image, ref)
                return self._result(
                    operation,
                    f"{kind.value}/{ref.name} is running {operation.image} "
                    f"on {operation.ready_replicas}/{operation.replicas} ready replicas.",
                )

            remaining = operation.deadline - self.clock()
            if remaining <= 0:
                operation.state = RolloutState.TIMED_OUT
                raise RolloutTimeoutError(
                    actionable_error(
                        "rollout_timeout",
                        image=operation.image,
                        kind=kind.value,
                        name=ref.name,
                        timeout=f"{self.timeout_seconds:g}",
                    )
                )

            self._wait(min(self.poll_interval_seconds, remaining), cancel_event)

    @staticmethod
    def _observe(operation: RolloutOperation, workload):
        status = workload.status
        operation.polls += 1
        operation.replicas = (status.replicas or 0) if status else 0
        operation.updated_replicas = (status.updated_replicas or 0) if status else 0
        operation.ready_replicas = (status.ready_replicas or 0) if status else 0

    def _wait(self, seconds: float, cancel_event: Optional[threading.Event]):
        if self.sleep is not None:
            self.sleep(seconds)
        elif cancel_event is not None:
            cancel_event.wait(seconds)
        else:
            time.sleep(seconds)

    def _raise_if_cancelled(self, operation: RolloutOperation, cancel_event):
        if cancel_event is None or not cancel_event.is_set():
            return
        operation.state = RolloutState.CANCELLED
        ref = operation.ref
        raise RolloutCancelledError(
            actionable_error(
                "rollout_cancelled",
                image=operation.image,
                kind=ref.kind.value,
                name=ref.name,
            )
        )

    def _result(self, operation: RolloutOperation, summary: str) -> RolloutResult:
        return RolloutResult(
            ref=operation.ref,
            image=operation.image,
            state=operation.state,
            summary=summary,
            elapsed_seconds=self.clock() - operation.started_at,
            polls=operation.polls,
        )
