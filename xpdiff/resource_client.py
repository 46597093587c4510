"""Reading and listing resources held by an API server."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from xpdiff.type_converter import DiscoveryError, GroupVersionKind, parse_group_version


class ResourceError(Exception):
    """Raised when resources cannot be fetched or described."""


def format_label_selector(match_labels: Optional[Mapping[str, str]]) -> str:
    """Render equality label requirements as a selector string, keys in sorted order."""
    if not match_labels:
        return "<none>"
    return ",".join(f"{key}={match_labels[key]}" for key in sorted(match_labels))


class ResourceClient:
    """Basic read operations on resources.

    ``dynamic`` must offer ``get(gvr, namespace, name)`` and
    ``list(gvr, namespace, label_selector=...)``; ``discovery`` must offer
    ``server_resources_for_group_version(group_version)`` and
    ``server_preferred_resources()``.
    """

    def __init__(
        self,
        dynamic: Any,
        discovery: Any,
        type_converter: Any,
        logger: Optional[logging.Logger] = None,
    ):
        self._dynamic = dynamic
        self._discovery = discovery
        self._types = type_converter
        self._log = logger or logging.getLogger(__name__)

    def get_resource(self, gvk: GroupVersionKind, namespace: str, name: str) -> dict:
        """Fetch one resource by type, namespace and name."""
        resource_id = f"{gvk}/{namespace}/{name}"
        failure = f"cannot get resource {namespace}/{name} of kind {gvk.kind}"
        self._log.debug("Getting resource from cluster resource=%s", resource_id)

        try:
            gvr = self._types.gvk_to_gvr(gvk)
        except DiscoveryError as exc:
            self._log.debug("Failed to convert GVK to GVR gvk=%s error=%s", gvk, exc)
            raise ResourceError(f"{failure}: {exc}") from exc

        try:
            found = self._dynamic.get(gvr, namespace, name)
        except Exception as exc:
            self._log.debug("Failed to get resource resource=%s error=%s", resource_id, exc)
            raise ResourceError(f"{failure}: {exc}") from exc

        metadata = found.get("metadata") or {}
        self._log.debug(
            "Retrieved resource resource=%s uid=%s resourceVersion=%s",
            resource_id,
            metadata.get("uid", ""),
            metadata.get("resourceVersion", ""),
        )
        return found

    def get_resources_by_label(
        self,
        gvk: GroupVersionKind,
        namespace: str,
        match_labels: Optional[Mapping[str, str]],
    ) -> list[dict]:
        """List resources of a type in a namespace whose labels match."""
        self._log.debug(
            "Getting resources by label namespace=%s gvk=%s selector=%s",
            namespace,
            gvk,
            match_labels,
        )
        try:
            gvr = self._types.gvk_to_gvr(gvk)
        except DiscoveryError as exc:
            self._log.debug("Failed to convert GVK to GVR gvk=%s error=%s", gvk, exc)
            raise ResourceError(
                f"cannot list resources for '{gvk}' matching labels: {exc}"
            ) from exc

        selector = format_label_selector(match_labels) if match_labels else ""
        try:
            items = self._dynamic.list(gvr, namespace, label_selector=selector)
        except Exception as exc:
            self._log.debug(
                "Failed to list resources gvk=%s namespace=%s labelSelector=%s error=%s",
                gvk,
                namespace,
                selector,
                exc,
            )
            raise ResourceError(
                f"cannot list resources for '{namespace}/{gvk}' matching '{selector}': {exc}"
            ) from exc

        resources = list(items)
        self._log.debug("Resources found by label count=%d gvk=%s", len(resources), gvk)
        return resources

    def list_resources(self, gvk: GroupVersionKind, namespace: str) -> list[dict]:
        """List every resource of a type in a namespace (all namespaces when empty)."""
        self._log.debug("Listing resources gvk=%s namespace=%s", gvk, namespace)
        failure = f"cannot list resources for '{gvk}'"
        try:
            gvr = self._types.gvk_to_gvr(gvk)
        except DiscoveryError as exc:
            self._log.debug("Failed to convert GVK to GVR gvk=%s error=%s", gvk, exc)
            raise ResourceError(f"{failure}: {exc}") from exc

        try:
            items = self._dynamic.list(gvr, namespace, label_selector="")
        except Exception as exc:
            self._log.debug(
                "Failed to list resources gvk=%s namespace=%s error=%s", gvk, namespace, exc
            )
            raise ResourceError(f"{failure}: {exc}") from exc

        resources = list(items)
        self._log.debug(
            "Listed resources gvk=%s namespace=%s count=%d", gvk, namespace, len(resources)
        )
        return resources

    def gvks_for_group_kind(self, group: str, kind: str) -> list[GroupVersionKind]:
        """Return every served version of a kind within a group."""
        try:
            listings = self._discovery.server_preferred_resources()
        except Exception as exc:
            raise ResourceError(str(exc)) from exc

        gvks: list[GroupVersionKind] = []
        for listing in listings:
            try:
                gv_group, gv_version = parse_group_version(listing.group_version)
            except ValueError:
                continue
            if gv_group != group:
                continue
            if any(resource.kind == kind for resource in listing.resources):
                gvks.append(GroupVersionKind(gv_group, gv_version, kind))
        return gvks

    def is_namespaced_resource(self, gvk: GroupVersionKind) -> bool:
        """Tell from discovery whether a kind lives in namespaces."""
        group_version = gvk.group_version()
        try:
            listing = self._discovery.server_resources_for_group_version(group_version)
        except Exception as exc:
            raise ResourceError(
                f"cannot get server resources for group version {group_version}: {exc}"
            ) from exc

        resources = list(listing.resources) if listing is not None else []
        for resource in resources:
            if resource.kind == gvk.kind:
                self._log.debug(
                    "Determined resource scope from discovery gvk=%s namespaced=%s",
                    gvk,
                    resource.namespaced,
                )
                return resource.namespaced

        available = " ".join(resource.kind for resource in resources)
        raise ResourceError(
            f"resource kind {gvk.kind} not found in discovery API for group version "
            f"{group_version} (available kinds: [{available}])"
        )