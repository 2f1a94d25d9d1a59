"""Unit tests for the workload and event models."""

from __future__ import annotations

import pytest

from workloadwatch.models.events import PodWatchEvent, WatchEventType
from workloadwatch.models.workloads import (
    CustomResourceDescriptor,
    OwnerDescriptor,
    OwnerKind,
    Pod,
    PodRecord,
    ResourceBody,
    WorkloadHead,
    containers_equal,
)

_RAW = {
    "kind": "Pod",
    "metadata": {
        "name": "web-abc",
        "namespace": "shop",
        "generateName": "web-",
        "labels": {"app": "web"},
        "ownerReferences": [{"kind": "ReplicaSet", "name": "web-5d9c", "apiVersion": "apps/v1"}],
        "resourceVersion": "4242",
    },
    "spec": {"containers": [{"name": "web", "image": "web:1"}], "nodeName": "node-3"},
    "status": {"phase": "Pending", "podIP": "10.1.2.3"},
}


class TestWatchEventType:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("ADDED", WatchEventType.ADDED),
            ("MODIFIED", WatchEventType.MODIFIED),
            ("MODIFY", WatchEventType.MODIFIED),
            ("DELETED", WatchEventType.DELETED),
            ("BOOKMARK", WatchEventType.BOOKMARK),
            ("ERROR", WatchEventType.ERROR),
            ("SYNC", None),
        ],
    )
    def test_parse(self, raw: str, expected: WatchEventType | None) -> None:
        assert WatchEventType.parse(raw) is expected


class TestPodWatchEvent:
    def test_pod_body(self) -> None:
        event = PodWatchEvent.from_raw("ADDED", _RAW)
        assert event.pod is not None
        assert event.pod.owner_references[0].kind == "ReplicaSet"

    def test_status_object_has_no_pod(self) -> None:
        event = PodWatchEvent.from_raw("ERROR", {"kind": "Status", "code": 410, "metadata": {}})
        assert event.pod is None
        assert event.raw["code"] == 410

    def test_non_dict_object(self) -> None:
        event = PodWatchEvent.from_raw("ADDED", None)
        assert event.pod is None
        assert event.raw == {}


class TestPod:
    def test_from_raw(self) -> None:
        pod = Pod.from_raw(_RAW)

        assert (pod.name, pod.namespace, pod.generate_name) == ("web-abc", "shop", "web-")
        assert pod.phase == "Pending"
        assert pod.pod_ip == "10.1.2.3"
        assert pod.node_name == "node-3"
        assert pod.resource_version == "4242"

    def test_display_name_falls_back_to_generate_name(self) -> None:
        pod = Pod.from_raw({"metadata": {"generateName": "web-"}, "spec": {}})
        assert pod.display_name == "web-"

    def test_copy_is_deep(self) -> None:
        pod = Pod.from_raw(_RAW)
        clone = pod.copy()

        clone.spec["containers"][0]["image"] = "web:2"

        assert pod.containers[0]["image"] == "web:1"


class TestContainersEqual:
    def test_deep_equality(self) -> None:
        a = [{"name": "web", "env": [{"name": "A", "value": "1"}]}]
        b = [{"name": "web", "env": [{"name": "A", "value": "1"}]}]
        assert containers_equal(a, b)

    def test_length_mismatch(self) -> None:
        assert not containers_equal([{"name": "web"}], [{"name": "web"}, {"name": "sidecar"}])


class TestOwnerKind:
    def test_parse(self) -> None:
        assert OwnerKind.parse("DaemonSet") is OwnerKind.DAEMON_SET
        assert OwnerKind.parse("Rollout") is None


class TestSerialisation:
    def test_owner_with_resource_body(self) -> None:
        owner = OwnerDescriptor("web", "Deployment", ResourceBody(OwnerKind.DEPLOYMENT, {"metadata": {"name": "web"}}))
        data = owner.to_dict()
        assert data["ownerData"] == {"metadata": {"name": "web"}, "kind": "Deployment"}

    def test_owner_with_custom_descriptor(self) -> None:
        descriptor = CustomResourceDescriptor("Rollout", "argoproj.io/v1alpha1", "rollouts")
        assert (descriptor.group, descriptor.version) == ("argoproj.io", "v1alpha1")
        assert OwnerDescriptor("checkout", "Rollout", descriptor).to_dict()["ownerData"] == {
            "kind": "Rollout",
            "apiVersion": "argoproj.io/v1alpha1",
        }

    def test_owner_without_payload(self) -> None:
        assert OwnerDescriptor("web", "Deployment").to_dict() == {"name": "web", "kind": "Deployment"}

    def test_pod_record(self) -> None:
        record = PodRecord.from_pod(Pod.from_raw(_RAW), 3, OwnerDescriptor("web", "Deployment"))
        assert record.to_dict() == {
            "podName": "web-abc",
            "numberOfRunningPods": 3,
            "nodeName": "node-3",
            "podIP": "10.1.2.3",
            "namespace": "shop",
            "uptreeOwner": {"name": "web", "kind": "Deployment"},
        }

    def test_workload_head(self) -> None:
        head = WorkloadHead(Pod.from_raw(_RAW), OwnerDescriptor("web", "Deployment"), workload_id=4)
        data = head.to_dict()
        assert data["podSpecId"] == 4
        assert data["metadata"]["name"] == "web-abc"
        assert data["uptreeOwner"]["kind"] == "Deployment"
