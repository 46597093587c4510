"""Server-side dry-run apply of unstructured objects."""

from __future__ import annotations

import logging
from typing import Any, Optional

from xpdiff.type_converter import DiscoveryError, gvk_of

_FIELD_MANAGER = "crossplane-diff"
_DRY_RUN_ALL = "All"


class ApplyError(Exception):
    """Raised when a dry-run apply cannot be performed."""


class ApplyClient:
    """Performs dry-run server-side applies.

    ``dynamic`` must offer ``apply(gvr, namespace, name, obj, *, field_manager,
    force, dry_run)`` returning the object as the server would store it.
    """

    def __init__(self, dynamic: Any, type_converter: Any, logger: Optional[logging.Logger] = None):
        self._dynamic = dynamic
        self._types = type_converter
        self._log = logger or logging.getLogger(__name__)

    def dry_run_apply(self, obj: dict) -> dict:
        """Return what ``obj`` would look like after a server-side apply."""
        metadata = obj.get("metadata") or {}
        name = metadata.get("name", "")
        namespace = metadata.get("namespace", "")
        resource_id = f"{obj.get('kind', '')}/{name}"
        self._log.debug("Performing dry-run apply resource=%s", resource_id)

        gvk = gvk_of(obj)
        try:
            gvr = self._types.gvk_to_gvr(gvk)
        except DiscoveryError as exc:
            self._log.debug("Failed to convert GVK to GVR gvk=%s error=%s", gvk, exc)
            raise ApplyError(f"cannot perform dry-run apply for {resource_id}: {exc}") from exc

        try:
            result = self._dynamic.apply(
                gvr,
                namespace,
                name,
                obj,
                field_manager=_FIELD_MANAGER,
                force=True,
                dry_run=[_DRY_RUN_ALL],
            )
        except Exception as exc:
            self._log.debug("Dry-run apply failed resource=%s error=%s", resource_id, exc)
            raise ApplyError(f"failed to apply resource {namespace}/{name}: {exc}") from exc

        self._log.debug(
            "Dry-run apply successful resource=%s resourceVersion=%s",
            resource_id,
            (result.get("metadata") or {}).get("resourceVersion", ""),
        )
        return result