"""Shared domain models for dmngr."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from dmngr.errors import InvalidResourceTypeError
from dmngr.errors_catalog import actionable_error

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


class WorkloadKind(str, Enum):
    """The two workload kinds dmngr knows how to read and update."""

    DEPLOYMENT = "deployment"
    STATEFULSET = "statefulset"

    @classmethod
    def parse(cls, value) -> "WorkloadKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidResourceTypeError(
                actionable_error("invalid_resource_type", kind=str(value))
            ) from None

    @property
    def container_index(self) -> int:
        # The web deployment runs the app container first; the API statefulset
        # runs a sidecar at index 0 and the app container at index 1.
        if self is WorkloadKind.DEPLOYMENT:
            return 0
        return 1

    def pod_selector(self, name: str) -> str:
        if self is WorkloadKind.DEPLOYMENT:
            return f"run={name}"
        return f"app={name}"


class RolloutState(str, Enum):
    REQUESTED = "requested"
    VALIDATING = "validating"
    DRY_RUN_RETURNED = "dry_run_returned"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ClusterContext:
    """One kubeconfig context: a cluster endpoint plus credentials."""

    name: str
    cluster: str
    user: Optional[str] = None
    namespace: Optional[str] = None
    active: bool = False


@dataclass(frozen=True)
class WorkloadRef:
    context: str
    namespace: str
    name: str
    kind: WorkloadKind

    def __post_init__(self):
        object.__setattr__(self, "kind", WorkloadKind.parse(self.kind))

    def __str__(self) -> str:
        return f"{self.context}/{self.namespace}/{self.kind.value}/{self.name}"


@dataclass(frozen=True)
class WatchedWorkload:
    """A workload the cluster report looks for in every context."""

    name: str
    kind: WorkloadKind


@dataclass
class RolloutOperation:
    """In-memory record of one image update while it is in flight."""

    ref: WorkloadRef
    image: str
    dry_run: bool
    started_at: float
    deadline: float
    state: RolloutState = RolloutState.REQUESTED
    replicas: int = 0
    updated_replicas: int = 0
    ready_replicas: int = 0
    polls: int = 0

    @property
    def converged(self) -> bool:
        return (
            self.updated_replicas == self.replicas
            and self.ready_replicas == self.replicas
        )


@dataclass(frozen=True)
class RolloutResult:
    ref: WorkloadRef
    image: str
    state: RolloutState
    summary: str
    elapsed_seconds: float
    polls: int


@dataclass(frozen=True)
class Target:
    """One row of the multi-cluster status report."""

    context: str
    name: str
    current_image: str
    last_restart: datetime
    last_log_time: datetime
    last_image_update: datetime
