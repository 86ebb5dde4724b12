"""Diff engine for reconciling desired against current state.

Only the classes of truth are diffed. Everything else in the desired
document is passed through untouched, since other handlers own it.
"""
import copy
import logging
from dataclasses import replace
from typing import Any, Iterable, Iterator, Optional

from .schema import (
    ChangeType,
    ClassChange,
    Difference,
    NormalizedDocument,
    ReconcileResult,
)

logger = logging.getLogger(__name__)

DEFAULT_VARIABLES_CLASS = "DbVariables"


def structural_diff(
    before: Any,
    after: Any,
    path: tuple[str, ...] = (),
) -> Iterator[Difference]:
    """
    Yield the differences that turn `before` into `after`.

    Mappings are compared key by key; lists and scalars are compared as
    whole values.
    """
    if isinstance(before, dict) and isinstance(after, dict):
        for key in before:
            if key not in after:
                yield Difference(path + (key,), ChangeType.DELETE, before=before[key])
        for key, value in after.items():
            if key not in before:
                yield Difference(path + (key,), ChangeType.CREATE, after=value)
            else:
                yield from structural_diff(before[key], value, path + (key,))
    elif not _same_value(before, after):
        yield Difference(path, ChangeType.MODIFY, before=before, after=after)


def _same_value(before: Any, after: Any) -> bool:
    """Equality that also requires matching types, so 1, 1.0 and True differ."""
    if type(before) is not type(after):
        return False
    if isinstance(before, dict):
        return before.keys() == after.keys() and all(
            _same_value(value, after[key]) for key, value in before.items()
        )
    if isinstance(before, list):
        return len(before) == len(after) and all(
            _same_value(b, a) for b, a in zip(before, after)
        )
    return before == after


def backfill(
    desired: NormalizedDocument,
    original: NormalizedDocument,
    classes_of_truth: Iterable[str],
    variables_class: str = DEFAULT_VARIABLES_CLASS,
) -> NormalizedDocument:
    """
    Fill truth classes the declaration leaves out from the original snapshot.

    Dropping a class from the declaration means "put it back the way it was",
    not "delete it". Variables are filled one by one, so a declaration that
    sets some of them still gets the rest restored.

    Returns:
        A new document; neither input is modified
    """
    truth = set(classes_of_truth)
    filled = copy.deepcopy(desired)

    for domain, tenants in filled.items():
        for tenant, classes in tenants.items():
            snapshot = original.get(domain, {}).get(tenant, {})
            if not isinstance(snapshot, dict):
                continue

            for class_name, value in snapshot.items():
                if class_name not in truth:
                    continue
                if class_name not in classes:
                    classes[class_name] = copy.deepcopy(value)
                elif class_name == variables_class and isinstance(value, dict):
                    declared = classes[class_name]
                    if isinstance(declared, dict):
                        for name, setting in value.items():
                            declared.setdefault(name, copy.deepcopy(setting))

    return filled


class DiffEngine:
    """Reconcile desired state against current state for the classes of truth."""

    def __init__(
        self,
        classes_of_truth: Iterable[str],
        variables_class: str = DEFAULT_VARIABLES_CLASS,
    ):
        """
        Args:
            classes_of_truth: Classes this engine is authoritative for
            variables_class: Class whose entries are backfilled key by key
        """
        self.classes_of_truth = frozenset(classes_of_truth)
        self.variables_class = variables_class

    def reconcile(
        self,
        desired: NormalizedDocument,
        current: NormalizedDocument,
        original: Optional[NormalizedDocument] = None,
    ) -> ReconcileResult:
        """
        Build the document to apply.

        Non-truth classes are copied from `desired` as-is. A truth class is
        copied whole when anything under it differs from `current`, and left
        out when it already matches. A truth class present in `current` but
        absent from `desired` (after backfill) is reported as a DELETE change
        and does not appear in `merged`, so apply handlers never see it.

        Args:
            desired: Parsed declaration
            current: Current device state
            original: Snapshot used to backfill omitted truth classes

        Returns:
            ReconcileResult with the merged document and per-class changes
        """
        if original:
            desired = backfill(desired, original, self.classes_of_truth, self.variables_class)

        result = ReconcileResult()

        for domain, tenants in desired.items():
            for tenant, classes in tenants.items():
                current_bag = current.get(domain, {}).get(tenant, {})
                if not isinstance(current_bag, dict):
                    current_bag = {}
                self._reconcile_scope(domain, tenant, classes, current_bag, result)

        logger.debug(
            f"Reconciled {len(result.differences)} differences into "
            f"{result.total_changes} class changes"
        )
        return result

    def _reconcile_scope(
        self,
        domain: str,
        tenant: str,
        desired: dict[str, Any],
        current: dict[str, Any],
        result: ReconcileResult,
    ) -> None:
        merged = result.merged.setdefault(domain, {}).setdefault(tenant, {})

        for class_name, value in desired.items():
            if class_name not in self.classes_of_truth:
                merged[class_name] = copy.deepcopy(value)

        # Insertion-ordered set of changed truth classes
        marked: dict[str, None] = {}
        for difference in structural_diff(current, desired):
            class_name = difference.path[0] if difference.path else None
            if class_name in self.classes_of_truth:
                result.differences.append(replace(difference, domain=domain, tenant=tenant))
                marked.setdefault(class_name, None)

        for class_name in marked:
            if class_name not in desired:
                change_type = ChangeType.DELETE
            elif class_name not in current:
                change_type = ChangeType.CREATE
                merged[class_name] = copy.deepcopy(desired[class_name])
            else:
                change_type = ChangeType.MODIFY
                merged[class_name] = copy.deepcopy(desired[class_name])

            result.changes.append(ClassChange(domain, tenant, class_name, change_type))


def summarize_reconcile(result: ReconcileResult) -> str:
    """
    Create a human-readable summary of a reconcile result.

    Useful for dry-run output and logging.
    """
    if result.no_change:
        return "No changes needed - current state matches desired state"

    lines = [f"Classes to apply ({result.total_changes} total):", ""]
    markers = {
        ChangeType.CREATE: "[+]",
        ChangeType.MODIFY: "[~]",
        ChangeType.DELETE: "[-]",
    }

    for change in result.changes:
        lines.append(
            f"  {markers[change.change_type]} {change.domain}/{change.tenant}/{change.class_name}"
        )
        for difference in result.differences:
            if (difference.domain, difference.tenant, difference.path[0]) != (
                change.domain, change.tenant, change.class_name
            ):
                continue
            location = ".".join(str(p) for p in difference.path)
            if difference.kind == ChangeType.CREATE:
                lines.append(f"      + {location}: {difference.after!r}")
            elif difference.kind == ChangeType.DELETE:
                lines.append(f"      - {location}: {difference.before!r}")
            else:
                lines.append(f"      ~ {location}: {difference.before!r} -> {difference.after!r}")

    return "\n".join(lines)
