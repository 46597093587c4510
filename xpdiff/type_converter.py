"""Mapping between resource kinds and the resource names an API server serves."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol


class DiscoveryError(Exception):
    """Raised when discovery data cannot answer a type lookup."""


def parse_group_version(text: str) -> tuple[str, str]:
    """Split an ``apiVersion`` string into ``(group, version)``.

    ``"v1"`` is the core group; ``""`` and ``"/"`` give two empty strings.
    """
    if text in ("", "/"):
        return "", ""
    parts = text.split("/")
    if len(parts) == 1:
        return "", parts[0]
    if len(parts) == 2:
        return parts[0], parts[1]
    raise ValueError(f"unexpected GroupVersion string: {text}")


@dataclass(frozen=True)
class GroupVersionKind:
    """The API group, version and kind of a resource type."""

    group: str
    version: str
    kind: str

    def group_version(self) -> str:
        """Return the ``apiVersion`` form of the group and version."""
        return f"{self.group}/{self.version}" if self.group else self.version

    @classmethod
    def from_api_version(cls, api_version: str, kind: str) -> "GroupVersionKind":
        group, version = parse_group_version(api_version)
        return cls(group, version, kind)

    def __str__(self) -> str:
        return f"{self.group}/{self.version}, Kind={self.kind}"


@dataclass(frozen=True)
class GroupVersionResource:
    """The API group, version and plural resource name of a resource type."""

    group: str
    version: str
    resource: str

    def __str__(self) -> str:
        return f"{self.group}/{self.version}, Resource={self.resource}"


@dataclass(frozen=True)
class APIResource:
    """One resource type served under a group version."""

    name: str
    kind: str
    namespaced: bool = False


@dataclass
class APIResourceList:
    """The resource types served under one group version."""

    group_version: str
    resources: list[APIResource] = field(default_factory=list)


class _Discovery(Protocol):
    def server_resources_for_group_version(
        self, group_version: str
    ) -> Optional[APIResourceList]: ...


def gvk_of(obj: Mapping[str, Any]) -> GroupVersionKind:
    """Return the type of an unstructured object; an unparsable apiVersion gives an empty type."""
    try:
        return GroupVersionKind.from_api_version(
            obj.get("apiVersion", "") or "", obj.get("kind", "") or ""
        )
    except ValueError:
        return GroupVersionKind("", "", "")


class TypeConverter:
    """Resolves kinds to resource names through discovery, caching the results."""

    def __init__(self, discovery: _Discovery, logger: Optional[logging.Logger] = None):
        self._discovery = discovery
        self._log = logger or logging.getLogger(__name__)
        self._cache: dict[GroupVersionKind, GroupVersionResource] = {}
        self._lock = threading.Lock()

    def gvk_to_gvr(self, gvk: GroupVersionKind) -> GroupVersionResource:
        """Return the group, version and resource name for a kind."""
        with self._lock:
            cached = self._cache.get(gvk)
        if cached is not None:
            return cached

        try:
            name = self.resource_name_for_gvk(gvk)
        except DiscoveryError as exc:
            self._log.debug("Failed to get resource name for GVK gvk=%s error=%s", gvk, exc)
            raise

        gvr = GroupVersionResource(gvk.group, gvk.version, name)
        with self._lock:
            self._cache[gvk] = gvr
        return gvr

    def resource_name_for_gvk(self, gvk: GroupVersionKind) -> str:
        """Return the plural resource name the server uses for a kind."""
        group_version = gvk.group_version()
        try:
            listing = self._discovery.server_resources_for_group_version(group_version)
        except Exception as exc:
            raise DiscoveryError(
                f"failed to discover resources for {group_version}: {exc}"
            ) from exc

        if listing is None or not listing.resources:
            raise DiscoveryError(f"no resources found for group version {group_version}")

        for resource in listing.resources:
            if resource.kind == gvk.kind:
                return resource.name

        raise DiscoveryError(
            f"no resource found for kind {gvk.kind} in group version {group_version}"
        )