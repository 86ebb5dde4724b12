"""Config item descriptors.

A descriptor is static metadata describing how to read one category of
device state and reshape it into the normalized document. Descriptors are
loaded once per process from YAML and never modified afterwards.

Example (YAML):

```yaml
items:
  - path: /tm/cm/device/~Common~{{deviceName}}
    schema_class: FailoverUnicast
    nameless: true
    properties:
      - id: unicastAddress
        transform:
          - id: ip
            new_id: address
          - id: port
  - path: /tm/net/vlan
    schema_class: VLAN
    domain: Network
    properties:
      - id: tag
      - id: mtu
    references:
      interfacesReference:
        - id: tagged
          truth: true
          falsehood: false
```
"""
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import DescriptorError

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN = "System"

MERGE_REPLACE = "replace"
MERGE_ADD = "add"


@dataclass(frozen=True)
class TransformSpec:
    """Moves one sub-field of a composite value to a top-level property."""
    id: str
    new_id: Optional[str] = None


@dataclass(frozen=True)
class PropertySpec:
    """A property of interest on a device object."""
    id: str
    new_id: Optional[str] = None
    truth: Any = None
    falsehood: Any = None
    skip_when_omitted: bool = False
    has_default: bool = False
    default_when_omitted: Any = field(default=None, hash=False)
    transform: tuple[TransformSpec, ...] = ()

    @property
    def is_boolean(self) -> bool:
        return self.truth is not None


@dataclass(frozen=True)
class IgnoreRule:
    """Drop an instance when the value of `key` matches `pattern`."""
    key: str
    pattern: re.Pattern

    def matches(self, item: dict[str, Any]) -> bool:
        value = item.get(self.key)
        if not value:
            return False
        return self.pattern.search(str(value)) is not None


@dataclass(frozen=True)
class SchemaMerge:
    """Where a sub-resource lands inside its class bag."""
    path: tuple[str, ...]
    action: str = MERGE_REPLACE
    skip_when_omitted: bool = False


@dataclass(frozen=True)
class ConfigItemDescriptor:
    """How to retrieve and reshape one category of device state."""
    path: str
    schema_class: Optional[str] = None
    domain: str = DEFAULT_DOMAIN
    properties: tuple[PropertySpec, ...] = ()
    references: tuple[tuple[str, tuple[PropertySpec, ...]], ...] = ()
    single_value: bool = False
    nameless: bool = False
    silent: bool = False
    ignore: tuple[IgnoreRule, ...] = ()
    schema_merge: Optional[SchemaMerge] = None
    required_module: Optional[str] = None

    @property
    def select(self) -> list[str]:
        """Property ids to ask the device for; `name` is always included."""
        return select_properties(self.properties)


def select_properties(properties: tuple[PropertySpec, ...]) -> list[str]:
    names = [p.id for p in properties]
    if "name" not in names:
        names.append("name")
    return names


# --- Parsing ---

def _parse_transform(data: Any, where: str) -> TransformSpec:
    if not isinstance(data, dict) or "id" not in data:
        raise DescriptorError(f"{where}: transform entries need an 'id'")
    return TransformSpec(id=data["id"], new_id=data.get("new_id"))


def _parse_property(data: Any, where: str) -> PropertySpec:
    if isinstance(data, str):
        return PropertySpec(id=data)
    if not isinstance(data, dict) or "id" not in data:
        raise DescriptorError(f"{where}: properties need an 'id'")

    transform = tuple(
        _parse_transform(t, f"{where}.{data['id']}")
        for t in data.get("transform", [])
    )
    return PropertySpec(
        id=data["id"],
        new_id=data.get("new_id"),
        truth=data.get("truth"),
        falsehood=data.get("falsehood"),
        skip_when_omitted=bool(data.get("skip_when_omitted", False)),
        has_default="default_when_omitted" in data,
        default_when_omitted=data.get("default_when_omitted"),
        transform=transform,
    )


def _parse_ignore(data: Any, where: str) -> IgnoreRule:
    if not isinstance(data, dict) or len(data) != 1:
        raise DescriptorError(f"{where}: ignore entries must be a single key: regex pair")
    key, pattern = next(iter(data.items()))
    try:
        compiled = re.compile(str(pattern))
    except re.error as e:
        raise DescriptorError(f"{where}: invalid ignore regex for '{key}': {e}")
    return IgnoreRule(key=key, pattern=compiled)


def _parse_schema_merge(data: Any, where: str) -> SchemaMerge:
    if not isinstance(data, dict) or not data.get("path"):
        raise DescriptorError(f"{where}: schema_merge needs a non-empty 'path'")
    action = data.get("action", MERGE_REPLACE)
    if action not in (MERGE_REPLACE, MERGE_ADD):
        raise DescriptorError(
            f"{where}: invalid schema_merge action: {action}. Must be 'replace' or 'add'"
        )
    path = data["path"]
    if isinstance(path, str):
        path = [path]
    return SchemaMerge(
        path=tuple(path),
        action=action,
        skip_when_omitted=bool(data.get("skip_when_omitted", False)),
    )


def parse_descriptor(data: dict[str, Any], index: int = 0) -> ConfigItemDescriptor:
    """Build a ConfigItemDescriptor from its YAML/JSON mapping.

    Raises:
        DescriptorError: If the mapping is malformed
    """
    if not isinstance(data, dict) or not data.get("path"):
        raise DescriptorError(f"items[{index}]: every item needs a 'path'")

    where = f"items[{index}] ({data['path']})"
    properties = tuple(_parse_property(p, where) for p in data.get("properties", []))

    if data.get("single_value") and not properties:
        raise DescriptorError(f"{where}: single_value items need at least one property")

    references = []
    for ref_name, ref_props in (data.get("references") or {}).items():
        if not ref_name.endswith("Reference"):
            raise DescriptorError(f"{where}: reference '{ref_name}' must end with 'Reference'")
        references.append((ref_name, tuple(_parse_property(p, where) for p in ref_props or [])))

    schema_merge = None
    if data.get("schema_merge"):
        schema_merge = _parse_schema_merge(data["schema_merge"], where)

    return ConfigItemDescriptor(
        path=data["path"],
        schema_class=data.get("schema_class"),
        domain=data.get("domain", DEFAULT_DOMAIN),
        properties=properties,
        references=tuple(references),
        single_value=bool(data.get("single_value", False)),
        nameless=bool(data.get("nameless", False)),
        silent=bool(data.get("silent", False)),
        ignore=tuple(_parse_ignore(i, where) for i in data.get("ignore", [])),
        schema_merge=schema_merge,
        required_module=data.get("required_module"),
    )


def parse_descriptors(data: Any) -> tuple[ConfigItemDescriptor, ...]:
    """Parse a descriptor document (`{"items": [...]}` or a bare list)."""
    if isinstance(data, dict):
        data = data.get("items")
    if not isinstance(data, list):
        raise DescriptorError("Descriptor document must be a list or contain an 'items' list")
    return tuple(parse_descriptor(item, i) for i, item in enumerate(data))


@lru_cache(maxsize=8)
def _load(path: Optional[str]) -> tuple[ConfigItemDescriptor, ...]:
    if path is None:
        text = resources.files(__package__).joinpath("config_items.yaml").read_text()
        source = "packaged config_items.yaml"
    else:
        text = Path(path).read_text()
        source = path

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DescriptorError(f"Could not parse {source}: {e}")

    descriptors = parse_descriptors(data)
    logger.debug(f"Loaded {len(descriptors)} config item descriptors from {source}")
    return descriptors


def load_descriptors(path: Optional[str | Path] = None) -> tuple[ConfigItemDescriptor, ...]:
    """Load descriptors once per path.

    Args:
        path: YAML file with descriptors (default: the packaged set)

    Returns:
        Tuple of descriptors, in file order
    """
    return _load(str(path) if path is not None else None)
