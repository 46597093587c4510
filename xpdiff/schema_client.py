"""Lookups of CustomResourceDefinitions and schema requirements."""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from xpdiff.type_converter import DiscoveryError, GroupVersionKind, GroupVersionResource

_CRD_GVR = GroupVersionResource("apiextensions.k8s.io", "v1", "customresourcedefinitions")
_BUILTIN_GROUPS = frozenset({"apps", "batch", "extensions", "policy", "autoscaling"})


class SchemaError(Exception):
    """Raised when a CRD cannot be found or named."""


class SchemaClient:
    """Answers schema questions about resource types.

    ``dynamic`` must offer ``get(gvr, namespace, name)`` returning an
    unstructured object and raising when it cannot.
    """

    def __init__(self, dynamic: Any, type_converter: Any, logger: Optional[logging.Logger] = None):
        self._dynamic = dynamic
        self._types = type_converter
        self._log = logger or logging.getLogger(__name__)
        self._requires_crd: dict[GroupVersionKind, bool] = {}
        self._lock = threading.Lock()

    def get_crd(self, gvk: GroupVersionKind) -> dict:
        """Fetch the CustomResourceDefinition that defines a kind."""
        try:
            resource_name = self._types.resource_name_for_gvk(gvk)
        except DiscoveryError as exc:
            raise SchemaError(f"cannot determine CRD name for {gvk}: {exc}") from exc

        crd_name = f"{resource_name}.{gvk.group}"
        self._log.debug("Looking up CRD gvk=%s crdName=%s", gvk, crd_name)

        try:
            crd = self._dynamic.get(_CRD_GVR, "", crd_name)
        except Exception as exc:
            self._log.debug("Failed to get CRD gvk=%s crdName=%s error=%s", gvk, crd_name, exc)
            raise SchemaError(f"cannot get CRD {crd_name} for {gvk}: {exc}") from exc

        self._log.debug("Successfully retrieved CRD gvk=%s crdName=%s", gvk, crd_name)
        return crd

    def is_crd_required(self, gvk: GroupVersionKind) -> bool:
        """Tell whether a kind is defined by a CRD rather than built into the server."""
        with self._lock:
            if gvk in self._requires_crd:
                return self._requires_crd[gvk]

        if gvk.group == "" or gvk.group in _BUILTIN_GROUPS:
            return self._remember(gvk, False)

        if gvk.group.endswith(".k8s.io") and gvk.group != "apiextensions.k8s.io":
            return self._remember(gvk, False)

        try:
            self._types.resource_name_for_gvk(gvk)
        except DiscoveryError as exc:
            self._log.debug(
                "Resource not found in discovery, assuming CRD is required gvk=%s error=%s",
                gvk,
                exc,
            )
        return self._remember(gvk, True)

    def validate_resource(self, resource: dict) -> None:
        """Validate a resource against its schema; every resource is accepted."""
        self._log.debug(
            "Validating resource kind=%s name=%s",
            resource.get("kind", ""),
            (resource.get("metadata") or {}).get("name", ""),
        )

    def _remember(self, gvk: GroupVersionKind, requires_crd: bool) -> bool:
        with self._lock:
            self._requires_crd[gvk] = requires_crd
        return requires_crd