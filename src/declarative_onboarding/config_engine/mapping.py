"""Property mapping from device objects to normalized property bags.

Every function here is pure: inputs are never modified, new dicts are
returned.
"""
import copy
from typing import Any, Optional
from urllib.parse import parse_qsl, urlsplit

from ..config.descriptors import (
    ConfigItemDescriptor,
    IgnoreRule,
    PropertySpec,
    SchemaMerge,
    MERGE_ADD,
    select_properties,
)

# Keys the device adds to every object whether we select them or not
NOISE_KEYS = ("kind", "selfLink")
REFERENCE_SUFFIX = "Reference"
MGMT_PREFIX = "/mgmt"


def remove_unused_keys(item: dict[str, Any], nameless: bool = False) -> dict[str, Any]:
    """Drop noise keys, unresolved `*Reference` links and optionally `name`."""
    unwanted = set(NOISE_KEYS)
    if nameless:
        unwanted.add("name")

    return {
        key: value for key, value in item.items()
        if key not in unwanted and not key.endswith(REFERENCE_SUFFIX)
    }


def should_ignore(item: dict[str, Any], rules: tuple[IgnoreRule, ...]) -> bool:
    return any(rule.matches(item) for rule in rules)


def strip_partition(value: Any, partition: str) -> Any:
    """`/Common/foo` -> `foo` for string values in the given partition."""
    prefix = f"/{partition}/"
    if isinstance(value, str) and value.startswith(prefix):
        return value[len(prefix):]
    return value


def map_truth(item: dict[str, Any], prop: PropertySpec) -> bool:
    """Map values like enabled/disabled to booleans. Missing is False."""
    value = item.get(prop.id)
    if not value:
        return False
    return value == prop.truth


def map_new_id(item: dict[str, Any], old_id: str, new_id: str) -> None:
    """Move `item[old_id]` to `new_id`, nesting on dots (`a.b` -> {a: {b: v}})."""
    value = item.pop(old_id)
    parts = new_id.split(".") if new_id.find(".") > 0 else [new_id]

    target = item
    for part in parts[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[parts[-1]] = value


def _apply_transform(item: dict[str, Any], prop: PropertySpec) -> None:
    composite = item.pop(prop.id)
    if isinstance(composite, list):
        composite = composite[0] if composite and isinstance(composite[0], dict) else {}
    elif not isinstance(composite, dict):
        composite = {}

    for trans in prop.transform:
        item[trans.new_id or trans.id] = copy.deepcopy(composite.get(trans.id))


def map_properties(
    item: dict[str, Any],
    descriptor: ConfigItemDescriptor,
    partition: str = "Common",
) -> Any:
    """
    Apply the descriptor's property rules to one cleaned device object.

    For each property, in order: truth mapping, partition stripping,
    transform expansion, default substitution, then renaming.

    Returns:
        The mapped property bag, or the bare value for single_value items
    """
    mapped = copy.deepcopy(item)

    if descriptor.single_value:
        return mapped.get(descriptor.properties[0].id)

    for prop in descriptor.properties:
        has_value = False

        if prop.is_boolean and (prop.id in mapped or not prop.skip_when_omitted):
            mapped[prop.id] = map_truth(mapped, prop)

        if prop.id in mapped:
            mapped[prop.id] = strip_partition(mapped[prop.id], partition)
            if prop.transform:
                _apply_transform(mapped, prop)
            has_value = True
        elif prop.has_default:
            mapped[prop.id] = copy.deepcopy(prop.default_when_omitted)
            has_value = True

        if has_value and prop.new_id and prop.id in mapped:
            map_new_id(mapped, prop.id, prop.new_id)

    return mapped


def merge_schema(
    class_bag: Optional[dict[str, Any]],
    value: Any,
    schema_merge: SchemaMerge,
) -> dict[str, Any]:
    """
    Place `value` at `schema_merge.path` inside a copy of `class_bag`.

    `replace` assigns the value, `add` shallow-merges it into what is
    already there. An empty value is skipped when `skip_when_omitted`.
    """
    merged = copy.deepcopy(class_bag) if class_bag else {}

    omitted = value is None or (isinstance(value, (dict, list)) and len(value) == 0)
    if schema_merge.skip_when_omitted and omitted:
        return merged

    *parents, key = schema_merge.path
    pointer = merged
    for part in parents:
        if not isinstance(pointer.get(part), dict):
            pointer[part] = {}
        pointer = pointer[part]

    value = copy.deepcopy(value)
    if schema_merge.action == MERGE_ADD and isinstance(value, dict):
        existing = pointer.get(key)
        pointer[key] = {**(existing if isinstance(existing, dict) else {}), **value}
    else:
        pointer[key] = value

    return merged


# --- References ---

def reference_property_name(reference: str) -> str:
    """`interfacesReference` -> `interfaces`."""
    return reference[:-len(REFERENCE_SUFFIX)]


def reference_request(
    link: str,
    properties: tuple[PropertySpec, ...],
) -> tuple[str, dict[str, str], list[str]]:
    """
    Turn a reference link into a read request.

    Returns:
        (path without /mgmt, query params from the link, properties to select)
    """
    parts = urlsplit(link)
    path = parts.path
    if path.startswith(MGMT_PREFIX):
        path = path[len(MGMT_PREFIX):]

    params = dict(parse_qsl(parts.query))
    params.pop("$select", None)
    return path, params, select_properties(properties)


def map_reference_items(result: Any, properties: tuple[PropertySpec, ...]) -> list[dict[str, Any]]:
    """Clean and truth-map referenced objects. A single object counts as one item."""
    items = result if isinstance(result, list) else [result]
    mapped = []

    for reference in items:
        if not isinstance(reference, dict):
            continue
        patched = remove_unused_keys(reference)
        for prop in properties:
            if prop.is_boolean:
                patched[prop.id] = map_truth(patched, prop)
        mapped.append(patched)

    return mapped
