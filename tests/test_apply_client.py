import copy

import pytest

from xpdiff.apply_client import ApplyClient, ApplyError
from xpdiff.type_converter import (
    APIResource,
    APIResourceList,
    DiscoveryError,
    GroupVersionResource,
    TypeConverter,
)


def make_resource(api_version, kind, name, namespace=None, spec=None):
    metadata = {"name": name}
    if namespace:
        metadata["namespace"] = namespace
    obj = {"apiVersion": api_version, "kind": kind, "metadata": metadata}
    if spec is not None:
        obj["spec"] = dict(spec)
    return obj


class FakeDynamic:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def apply(self, gvr, namespace, name, obj, *, field_manager, force, dry_run):
        self.calls.append(
            {
                "gvr": gvr,
                "namespace": namespace,
                "name": name,
                "field_manager": field_manager,
                "force": force,
                "dry_run": dry_run,
            }
        )
        if self.error is not None:
            raise self.error
        result = copy.deepcopy(obj)
        result["metadata"]["resourceVersion"] = "1000"
        return result


class FixedConverter:
    def __init__(self, resource=None, error=None):
        self.resource = resource
        self.error = error

    def gvk_to_gvr(self, gvk):
        if self.error is not None:
            raise self.error
        return GroupVersionResource(gvk.group, gvk.version, self.resource)


def without_version(obj):
    out = copy.deepcopy(obj)
    out["metadata"].pop("resourceVersion", None)
    return out


def test_namespaced_resource_applied():
    dynamic = FakeDynamic()
    client = ApplyClient(dynamic, FixedConverter("exampleresources"))
    obj = make_resource("example.org/v1", "ExampleResource", "test-resource", "test-namespace", {"property": "new-value"})
    result = client.dry_run_apply(obj)
    assert result["metadata"]["resourceVersion"] == "1000"
    assert without_version(result) == obj
    call = dynamic.calls[0]
    assert call["gvr"] == GroupVersionResource("example.org", "v1", "exampleresources")
    assert call["namespace"] == "test-namespace"
    assert call["name"] == "test-resource"
    assert call["field_manager"] == "crossplane-diff"
    assert call["force"] is True
    assert call["dry_run"] == ["All"]


def test_cluster_scoped_resource_applied():
    dynamic = FakeDynamic()
    client = ApplyClient(dynamic, FixedConverter("clusterresources"))
    obj = make_resource("example.org/v1", "ClusterResource", "test-cluster-resource", spec={"property": "new-value"})
    result = client.dry_run_apply(obj)
    assert without_version(result) == obj
    assert dynamic.calls[0]["namespace"] == ""
    assert dynamic.calls[0]["gvr"].resource == "clusterresources"


def test_converter_error():
    client = ApplyClient(FakeDynamic(), FixedConverter(error=DiscoveryError("conversion error")))
    obj = make_resource("example.org/v1", "ExampleResource", "test-resource", "test-namespace", {"property": "new-value"})
    with pytest.raises(ApplyError) as info:
        client.dry_run_apply(obj)
    assert "cannot perform dry-run apply for ExampleResource/test-resource" in str(info.value)


def test_apply_error():
    client = ApplyClient(FakeDynamic(error=RuntimeError("apply failed")), FixedConverter("exampleresources"))
    obj = make_resource("example.org/v1", "ExampleResource", "test-resource", "test-namespace", {"property": "new-value"})
    with pytest.raises(ApplyError) as info:
        client.dry_run_apply(obj)
    assert "failed to apply resource test-namespace/test-resource" in str(info.value)
    assert "apply failed" in str(info.value)


def test_apply_with_discovery_backed_converter():
    class Discovery:
        def server_resources_for_group_version(self, group_version):
            return APIResourceList(group_version, [APIResource("indices", "Index", True)])

    dynamic = FakeDynamic()
    client = ApplyClient(dynamic, TypeConverter(Discovery()))
    obj = make_resource("example.org/v1", "Index", "idx", "ns")
    client.dry_run_apply(obj)
    assert dynamic.calls[0]["gvr"] == GroupVersionResource("example.org", "v1", "indices")