"""Static configuration: descriptors and settings."""
from .descriptors import (
    ConfigItemDescriptor,
    PropertySpec,
    TransformSpec,
    IgnoreRule,
    SchemaMerge,
    load_descriptors,
    parse_descriptor,
    parse_descriptors,
)
from .settings import Settings

__all__ = [
    "ConfigItemDescriptor",
    "PropertySpec",
    "TransformSpec",
    "IgnoreRule",
    "SchemaMerge",
    "load_descriptors",
    "parse_descriptor",
    "parse_descriptors",
    "Settings",
]
