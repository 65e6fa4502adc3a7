import pytest

from dmngr.errors import InvalidResourceTypeError
from dmngr.models import RolloutOperation, WorkloadKind, WorkloadRef


def test_workload_kind_container_index_convention():
    assert WorkloadKind.DEPLOYMENT.container_index == 0
    assert WorkloadKind.STATEFULSET.container_index == 1


def test_workload_kind_parse_accepts_strings_and_members():
    assert WorkloadKind.parse("statefulset") is WorkloadKind.STATEFULSET
    assert WorkloadKind.parse(WorkloadKind.DEPLOYMENT) is WorkloadKind.DEPLOYMENT


@pytest.mark.parametrize("value", ["daemonset", "", None, 3, "Deployment", " statefulset ", "STATEFULSET"])
def test_workload_kind_parse_rejects_other_kinds_and_spellings(value):
    with pytest.raises(InvalidResourceTypeError):
        WorkloadKind.parse(value)


def test_pod_selector_depends_on_kind():
    assert WorkloadKind.DEPLOYMENT.pod_selector("webapp") == "run=webapp"
    assert WorkloadKind.STATEFULSET.pod_selector("omiq-api") == "app=omiq-api"


def test_rollout_operation_converged_requires_updated_and_ready():
    ref = WorkloadRef(context="dev", namespace="default", name="webapp", kind="deployment")
    operation = RolloutOperation(ref=ref, image="web:2", dry_run=False, started_at=0.0, deadline=60.0)

    operation.replicas, operation.updated_replicas, operation.ready_replicas = 3, 3, 2
    assert operation.converged is False

    operation.ready_replicas = 3
    assert operation.converged is True
    assert str(ref) == "dev/default/deployment/webapp"
