import pytest

from xpdiff.type_converter import (
    APIResource,
    APIResourceList,
    DiscoveryError,
    GroupVersionKind,
    GroupVersionResource,
    TypeConverter,
    gvk_of,
    parse_group_version,
)


class FakeDiscovery:
    def __init__(self, lists):
        self.lists = {item.group_version: item for item in lists}
        self.calls = []

    def server_resources_for_group_version(self, group_version):
        self.calls.append(group_version)
        if group_version not in self.lists:
            raise LookupError(f"the server could not find the requested resource, GroupVersion {group_version!r} not found")
        return self.lists[group_version]


RESOURCE_GVK = GroupVersionKind("example.org", "v1", "Resource")


def example_list(*resources):
    return [APIResourceList("example.org/v1", list(resources))]


@pytest.mark.parametrize(
    "lists, gvk, expected",
    [
        (
            example_list(APIResource("resources", "Resource", True)),
            RESOURCE_GVK,
            GroupVersionResource("example.org", "v1", "resources"),
        ),
        (
            example_list(APIResource("indices", "Index", True)),
            GroupVersionKind("example.org", "v1", "Index"),
            GroupVersionResource("example.org", "v1", "indices"),
        ),
    ],
)
def test_gvk_to_gvr_maps(lists, gvk, expected):
    converter = TypeConverter(FakeDiscovery(lists))
    assert converter.gvk_to_gvr(gvk) == expected


@pytest.mark.parametrize(
    "lists, message",
    [
        ([], "failed to discover resources for example.org/v1"),
        (
            example_list(APIResource("other-resources", "OtherResource", True)),
            "no resource found for kind Resource in group version example.org/v1",
        ),
    ],
)
def test_gvk_to_gvr_errors(lists, message):
    converter = TypeConverter(FakeDiscovery(lists))
    with pytest.raises(DiscoveryError) as info:
        converter.gvk_to_gvr(RESOURCE_GVK)
    assert message in str(info.value)


def test_gvk_to_gvr_is_cached():
    discovery = FakeDiscovery(example_list(APIResource("resources", "Resource", True)))
    converter = TypeConverter(discovery)
    first = converter.gvk_to_gvr(RESOURCE_GVK)
    second = converter.gvk_to_gvr(RESOURCE_GVK)
    assert first == second
    assert discovery.calls == ["example.org/v1"]


@pytest.mark.parametrize(
    "lists, gvk, expected",
    [
        (example_list(APIResource("resources", "Resource", True)), RESOURCE_GVK, "resources"),
        (
            example_list(APIResource("indices", "Index", True)),
            GroupVersionKind("example.org", "v1", "Index"),
            "indices",
        ),
        (
            example_list(
                APIResource("resources", "Resource", True),
                APIResource("resources/status", "Resource", True),
            ),
            RESOURCE_GVK,
            "resources",
        ),
    ],
)
def test_resource_name_for_gvk(lists, gvk, expected):
    converter = TypeConverter(FakeDiscovery(lists))
    assert converter.resource_name_for_gvk(gvk) == expected


@pytest.mark.parametrize(
    "lists, message",
    [
        ([], "failed to discover resources for example.org/v1"),
        (
            example_list(APIResource("other-resources", "OtherResource", True)),
            "no resource found for kind Resource in group version example.org/v1",
        ),
        ([APIResourceList("example.org/v1", [])], "no resources found for group version example.org/v1"),
    ],
)
def test_resource_name_for_gvk_errors(lists, message):
    converter = TypeConverter(FakeDiscovery(lists))
    with pytest.raises(DiscoveryError) as info:
        converter.resource_name_for_gvk(RESOURCE_GVK)
    assert message in str(info.value)


def test_core_group_uses_bare_version():
    discovery = FakeDiscovery([APIResourceList("v1", [APIResource("configmaps", "ConfigMap", True)])])
    converter = TypeConverter(discovery)
    assert converter.resource_name_for_gvk(GroupVersionKind("", "v1", "ConfigMap")) == "configmaps"
    assert discovery.calls == ["v1"]


@pytest.mark.parametrize(
    "text, expected",
    [
        ("v1", ("", "v1")),
        ("example.org/v1", ("example.org", "v1")),
        ("", ("", "")),
        ("/", ("", "")),
    ],
)
def test_parse_group_version(text, expected):
    assert parse_group_version(text) == expected


def test_parse_group_version_rejects_extra_slashes():
    with pytest.raises(ValueError):
        parse_group_version("a/b/c")


def test_gvk_string_and_group_version():
    assert str(RESOURCE_GVK) == "example.org/v1, Kind=Resource"
    assert RESOURCE_GVK.group_version() == "example.org/v1"
    assert GroupVersionKind("", "v1", "Pod").group_version() == "v1"


def test_from_api_version_and_gvk_of():
    assert GroupVersionKind.from_api_version("apps/v1", "Deployment") == GroupVersionKind("apps", "v1", "Deployment")
    obj = {"apiVersion": "example.org/v1", "kind": "XR", "metadata": {"name": "x"}}
    assert gvk_of(obj) == GroupVersionKind("example.org", "v1", "XR")
    assert gvk_of({"apiVersion": "a/b/c", "kind": "Broken"}) == GroupVersionKind("", "", "")