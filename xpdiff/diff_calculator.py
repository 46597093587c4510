"""Working out how resources would change if a composite resource were applied."""

from __future__ import annotations

import copy
import logging
from collections.abc import Collection, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Protocol

COMPOSITION_RESOURCE_NAME_ANNOTATION = "crossplane.io/composition-resource-name"


class DiffType(Enum):
    """How a resource would change."""

    ADDED = "+"
    REMOVED = "-"
    MODIFIED = "~"
    EQUAL = "="


def make_diff_key(api_version: str, kind: str, name: str) -> str:
    """Return the key that identifies a resource among a set of diffs."""
    return f"{api_version}/{kind}/{name}"


@dataclass
class ResourceNode:
    """A resource in a composition tree, with the resources composed beneath it."""

    resource: dict
    children: list["ResourceNode"] = field(default_factory=list)


class DiffCalculationError(Exception):
    """Raised when diffs cannot be calculated.

    ``diffs`` holds whatever diffs were worked out before the failure and
    ``errors`` the individual failures that were collected.
    """

    def __init__(
        self,
        message: str,
        diffs: Optional[dict[str, Any]] = None,
        errors: Optional[list[Exception]] = None,
    ):
        super().__init__(message)
        self.diffs = diffs if diffs is not None else {}
        self.errors = errors if errors is not None else []


class _ResourceDiff(Protocol):
    diff_type: DiffType
    current: Optional[dict]
    key: str


class _ResourceManager(Protocol):
    def fetch_current_object(
        self, composite: Optional[dict], desired: dict
    ) -> tuple[Optional[dict], bool]: ...

    def update_owner_refs(self, composite: Optional[dict], desired: dict) -> None: ...


class _ApplyClient(Protocol):
    def dry_run_apply(self, obj: dict) -> dict: ...


class _TreeClient(Protocol):
    def get_resource_tree(self, xr: dict) -> ResourceNode: ...


_DiffGenerator = Callable[[Optional[dict], Optional[dict]], Optional[_ResourceDiff]]


def _metadata(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("metadata") or {}


def _rendered_keys(rendered: Collection[str] | Mapping[str, bool]) -> set[str]:
    if isinstance(rendered, Mapping):
        return {key for key, present in rendered.items() if present}
    return set(rendered)


class DiffCalculator:
    """Calculates the diffs a composite resource and its composed resources would cause.

    ``diff_generator(current, desired)`` builds a diff object carrying
    ``diff_type``, ``current`` and ``key``; either side may be ``None``.
    """

    def __init__(
        self,
        apply_client: _ApplyClient,
        tree_client: _TreeClient,
        resource_manager: _ResourceManager,
        diff_generator: _DiffGenerator,
        logger: Optional[logging.Logger] = None,
    ):
        self._apply = apply_client
        self._tree = tree_client
        self._resources = resource_manager
        self._generate = diff_generator
        self._log = logger or logging.getLogger(__name__)

    def calculate_diff(self, composite: Optional[dict], desired: dict) -> Optional[_ResourceDiff]:
        """Return the diff between a resource in the cluster and what it would become."""
        meta = _metadata(desired)
        name = meta.get("name", "") or ""
        generate_name = meta.get("generateName", "") or ""
        kind = desired.get("kind", "") or ""

        if name:
            resource_id = f"{kind}/{name}"
        elif generate_name:
            resource_id = f"{kind}/{generate_name}(generated)"
        else:
            resource_id = f"{kind}/<no-name>"

        self._log.debug("Calculating diff resource=%s", resource_id)

        try:
            current, is_new = self._resources.fetch_current_object(composite, desired)
        except Exception as exc:
            self._log.debug("Failed to fetch current object resource=%s error=%s", resource_id, exc)
            raise DiffCalculationError(f"cannot fetch current object: {exc}") from exc

        if is_new:
            self._log.debug("Resource is new (not found in cluster) resource=%s", resource_id)
        elif current is not None:
            self._log.debug(
                "Found existing resource resourceID=%s existingName=%s resourceVersion=%s",
                resource_id,
                _metadata(current).get("name", ""),
                _metadata(current).get("resourceVersion", ""),
            )

        self._resources.update_owner_refs(composite, desired)

        if current is not None and not name and generate_name:
            current_name = _metadata(current).get("name", "")
            self._log.debug(
                "Using existing resource name for desired object with generateName "
                "resource=%s currentName=%s",
                resource_id,
                current_name,
            )
            named = copy.deepcopy(desired)
            named["metadata"] = {**(named.get("metadata") or {}), "name": current_name}
            desired = named

        would_be = desired
        if current is not None:
            self._log.debug("Performing dry-run apply resource=%s", resource_id)
            try:
                would_be = self._apply.dry_run_apply(desired)
            except Exception as exc:
                self._log.debug("Dry-run apply failed resource=%s error=%s", resource_id, exc)
                raise DiffCalculationError(
                    f"cannot dry-run apply desired object: {exc}"
                ) from exc

        diff = self._generate(current, would_be)
        if diff is not None:
            self._log.debug(
                "Diff generated resource=%s diffType=%s hasChanges=%s",
                resource_id,
                diff.diff_type,
                diff.diff_type is not DiffType.EQUAL,
            )
        return diff

    def calculate_diffs(self, xr: dict, composed: Iterable[dict]) -> dict[str, _ResourceDiff]:
        """Return the changed diffs for an XR, its rendered resources and any removed ones."""
        xr_name = _metadata(xr).get("name", "")
        composed = list(composed)
        self._log.debug("Calculating diffs xr=%s composedCount=%d", xr_name, len(composed))

        diffs: dict[str, _ResourceDiff] = {}
        errors: list[Exception] = []
        rendered: set[str] = set()

        try:
            xr_diff = self.calculate_diff(None, xr)
        except Exception as exc:
            raise DiffCalculationError(f"cannot calculate diff for XR: {exc}") from exc
        if xr_diff is None:
            return diffs
        if xr_diff.diff_type is not DiffType.EQUAL:
            diffs[xr_diff.key] = xr_diff

        for obj in composed:
            meta = _metadata(obj)
            kind = obj.get("kind", "") or ""
            name = meta.get("name", "") or ""
            generate_name = meta.get("generateName", "") or ""

            resource_id = f"{kind}/{name}"
            if not name and generate_name:
                resource_id = f"{kind}/{generate_name}*"

            if not name and not generate_name:
                self._log.debug(
                    "Skipping resource with empty name and generateName kind=%s apiVersion=%s",
                    kind,
                    obj.get("apiVersion", ""),
                )
                continue

            try:
                diff = self.calculate_diff(xr_diff.current, obj)
            except Exception as exc:
                self._log.debug(
                    "Error calculating diff for composed resource resource=%s error=%s",
                    resource_id,
                    exc,
                )
                errors.append(
                    DiffCalculationError(f"cannot calculate diff for {resource_id}: {exc}")
                )
                continue

            if diff is None:
                continue
            if diff.diff_type is not DiffType.EQUAL:
                diffs[diff.key] = diff
            rendered.add(diff.key)

        if xr_diff.current is not None:
            self._log.debug("Finding resources to be removed xr=%s", xr_name)
            try:
                removed = self.calculate_removed_resource_diffs(xr_diff.current, rendered)
            except DiffCalculationError as exc:
                self._log.debug("Error calculating removed resources (continuing) error=%s", exc)
            else:
                diffs.update(removed)

        self._log.debug(
            "Diff calculation complete totalDiffs=%d errors=%d xr=%s",
            len(diffs),
            len(errors),
            xr_name,
        )

        if errors:
            raise DiffCalculationError(
                "\n".join(str(error) for error in errors), diffs=diffs, errors=errors
            )
        return diffs

    def calculate_removed_resource_diffs(
        self, xr: dict, rendered: Collection[str] | Mapping[str, bool]
    ) -> dict[str, _ResourceDiff]:
        """Return removal diffs for composed resources that were not rendered."""
        keys = _rendered_keys(rendered)
        self._log.debug(
            "Checking for resources to be removed xr=%s renderedResourceCount=%d",
            _metadata(xr).get("name", ""),
            len(keys),
        )

        try:
            tree = self._tree.get_resource_tree(xr)
        except Exception as exc:
            self._log.debug("Cannot get resource tree; aborting error=%s", exc)
            raise DiffCalculationError("cannot get resource tree") from exc

        removed: dict[str, _ResourceDiff] = {}
        for diff in self._removals(tree.children, keys):
            removed[diff.key] = diff

        self._log.debug("Found resources to be removed count=%d", len(removed))
        return removed

    def _removals(self, nodes: Iterable[ResourceNode], keys: set[str]) -> Iterator[_ResourceDiff]:
        for node in nodes:
            resource = node.resource
            meta = _metadata(resource)
            annotations = meta.get("annotations") or {}
            if COMPOSITION_RESOURCE_NAME_ANNOTATION in annotations:
                kind = resource.get("kind", "") or ""
                name = meta.get("name", "") or ""
                key = make_diff_key(resource.get("apiVersion", "") or "", kind, name)
                if key not in keys:
                    resource_id = f"{kind}/{name}"
                    self._log.debug("Resource will be removed resource=%s", resource_id)
                    try:
                        diff = self._generate(resource, None)
                    except Exception as exc:
                        self._log.debug(
                            "Cannot calculate removal diff (continuing) resource=%s error=%s",
                            resource_id,
                            exc,
                        )
                        continue
                    if diff is not None:
                        yield diff
            yield from self._removals(node.children, keys)