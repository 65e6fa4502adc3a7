import pytest
import urllib3
from kubernetes import client
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from dmngr.errors import ConfigError, GatewayError, InvalidResourceTypeError, NotFoundError
from dmngr.models import WorkloadKind
from dmngr.services.gateway import GatewayFactory, WorkloadGateway


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None


class RecordingApi:
    """Records every API call and answers from a canned response or error."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def __getattr__(self, name):
        def method(**kwargs):
            self.calls.append((name, kwargs))
            if self.error is not None:
                raise self.error
            return self.response

        return method


def _gateway(core_v1=None, apps_v1=None):
    return WorkloadGateway(
        context="dev-us",
        api_client=client.ApiClient(),
        logger=DummyLogger(),
        core_v1=core_v1 or RecordingApi(),
        apps_v1=apps_v1 or RecordingApi(),
    )


def _deployment():
    return client.V1Deployment(
        metadata=client.V1ObjectMeta(name="webapp"),
        spec=client.V1DeploymentSpec(
            selector=client.V1LabelSelector(match_labels={"run": "webapp"}),
            template=client.V1PodTemplateSpec(
                spec=client.V1PodSpec(containers=[client.V1Container(name="backend", image="web:1")])
            ),
        ),
    )


def test_get_pod_maps_404_to_not_found():
    core_v1 = RecordingApi(error=ApiException(status=404, reason="Not Found"))

    with pytest.raises(NotFoundError, match="read pod default/webapp-1"):
        _gateway(core_v1=core_v1).get_pod("default", "webapp-1")

    assert core_v1.calls == [("read_namespaced_pod", {"name": "webapp-1", "namespace": "default"})]


def test_api_errors_other_than_404_become_gateway_errors():
    core_v1 = RecordingApi(error=ApiException(status=403, reason="Forbidden"))

    with pytest.raises(GatewayError, match="403 Forbidden"):
        _gateway(core_v1=core_v1).get_pod("default", "webapp-1")


def test_transport_errors_become_gateway_errors():
    apps_v1 = RecordingApi(error=urllib3.exceptions.MaxRetryError(None, "/apis/apps/v1"))

    with pytest.raises(GatewayError, match="Could not reach the cluster"):
        _gateway(apps_v1=apps_v1).get_workload("default", "webapp", "deployment")


def test_list_pods_passes_label_selector():
    pods = client.V1PodList(
        items=[
            client.V1Pod(metadata=client.V1ObjectMeta(name="omiq-api-0")),
            client.V1Pod(metadata=client.V1ObjectMeta(name="omiq-api-1")),
        ]
    )
    core_v1 = RecordingApi(response=pods)

    names = _gateway(core_v1=core_v1).list_pod_names("default", "app=omiq-api")

    assert names == ["omiq-api-0", "omiq-api-1"]
    assert core_v1.calls == [
        ("list_namespaced_pod", {"namespace": "default", "label_selector": "app=omiq-api"})
    ]


def test_list_pods_without_selector_lists_everything():
    core_v1 = RecordingApi(response=client.V1PodList(items=[]))

    assert _gateway(core_v1=core_v1).list_pods("default") == []
    assert core_v1.calls == [("list_namespaced_pod", {"namespace": "default"})]


def test_stream_pod_logs_requests_raw_timestamped_stream():
    stream = object()
    core_v1 = RecordingApi(response=stream)

    result = _gateway(core_v1=core_v1).stream_pod_logs("default", "omiq-api-0", "backend")

    assert result is stream
    assert core_v1.calls == [
        (
            "read_namespaced_pod_log",
            {
                "name": "omiq-api-0",
                "namespace": "default",
                "container": "backend",
                "timestamps": True,
                "_preload_content": False,
            },
        )
    ]


def test_get_workload_dispatches_on_kind():
    apps_v1 = RecordingApi(response="sts")

    assert _gateway(apps_v1=apps_v1).get_workload("default", "omiq-api", WorkloadKind.STATEFULSET) == "sts"
    assert apps_v1.calls == [
        ("read_namespaced_stateful_set", {"name": "omiq-api", "namespace": "default"})
    ]


def test_get_workload_rejects_unknown_kind():
    apps_v1 = RecordingApi()

    with pytest.raises(InvalidResourceTypeError):
        _gateway(apps_v1=apps_v1).get_workload("default", "webapp", "replicaset")

    assert apps_v1.calls == []


def test_update_workload_dry_run_sets_server_side_flag():
    deployment = _deployment()
    apps_v1 = RecordingApi(response=deployment)

    _gateway(apps_v1=apps_v1).update_workload("default", deployment, "deployment", dry_run=True)

    assert apps_v1.calls == [
        (
            "replace_namespaced_deployment",
            {"name": "webapp", "namespace": "default", "body": deployment, "dry_run": "All"},
        )
    ]


def test_update_workload_without_dry_run_omits_flag():
    deployment = _deployment()
    apps_v1 = RecordingApi(response=deployment)

    _gateway(apps_v1=apps_v1).update_workload("default", deployment, "deployment")

    assert "dry_run" not in apps_v1.calls[0][1]


def test_serialize_uses_api_field_names():
    serialized = _gateway().serialize(_deployment())

    assert serialized == {
        "metadata": {"name": "webapp"},
        "spec": {
            "selector": {"matchLabels": {"run": "webapp"}},
            "template": {"spec": {"containers": [{"name": "backend", "image": "web:1"}]}},
        },
    }


class FakeConfigModule:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def new_client_from_config(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return client.ApiClient()


def test_factory_builds_gateway_for_explicit_context():
    config_module = FakeConfigModule()
    factory = GatewayFactory(logger=DummyLogger(), kubeconfig="/tmp/kubeconfig", config_module=config_module)

    gateway = factory.build("dev-eu")

    assert gateway.context == "dev-eu"
    assert isinstance(gateway.core_v1, client.CoreV1Api)
    assert config_module.calls == [
        {"config_file": "/tmp/kubeconfig", "context": "dev-eu", "persist_config": False}
    ]


def test_factory_wraps_config_failures():
    config_module = FakeConfigModule(error=ConfigException("context not found"))
    factory = GatewayFactory(logger=DummyLogger(), config_module=config_module)

    with pytest.raises(ConfigError, match="context 'missing'"):
        factory.build("missing")
