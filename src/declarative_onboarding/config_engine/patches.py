"""Per-class post-processors for objects that do not map generically.

Each patch is a pure function `(item, context) -> item` registered by class
name. Returning None drops the item.
"""
import copy
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..config.descriptors import ConfigItemDescriptor
from .mapping import strip_partition

RADIUS_SERVER_PREFIX = "system_auth_name"
RADIUS_PRIMARY_SERVER = "system_auth_name1"
RADIUS_SECONDARY_SERVER = "system_auth_name2"


@dataclass(frozen=True)
class PatchContext:
    """What a patch may know besides the item itself."""
    descriptor: ConfigItemDescriptor
    name: Optional[str] = None
    partition: str = "Common"


ClassPatch = Callable[[dict[str, Any], PatchContext], Optional[dict[str, Any]]]

CLASS_PATCHES: dict[str, ClassPatch] = {}


def register_patch(class_name: str) -> Callable[[ClassPatch], ClassPatch]:
    """Decorator registering a patch for `class_name`."""
    def decorator(func: ClassPatch) -> ClassPatch:
        CLASS_PATCHES[class_name] = func
        return func
    return decorator


def apply_patch(class_name: Optional[str], item: dict[str, Any], context: PatchContext) -> Optional[dict[str, Any]]:
    """Run the patch registered for `class_name`, if any."""
    patch = CLASS_PATCHES.get(class_name) if class_name else None
    if patch is None:
        return item
    return patch(item, context)


@register_patch("SelfIp")
def patch_self_ip(item: dict[str, Any], context: PatchContext) -> dict[str, Any]:
    """
    Give allowService a single canonical form.

    The device accepts "default" or ["default"] but always returns
    ["default"]; "none" comes back as a missing property; "all" round-trips.
    """
    patched = dict(item)
    allow = patched.get("allowService")

    if not allow:
        patched["allowService"] = "none"
    elif isinstance(allow, list) and allow == ["default"]:
        patched["allowService"] = "default"

    return patched


@register_patch("RemoteAuthRole")
def patch_remote_auth_role(item: dict[str, Any], context: PatchContext) -> dict[str, Any]:
    """Role entries carry their own short name."""
    patched = dict(item)
    if context.name is not None:
        patched["name"] = context.name
    return patched


@register_patch("Authentication")
def patch_authentication(item: dict[str, Any], context: PatchContext) -> Optional[dict[str, Any]]:
    """
    Authentication is assembled from several device objects.

    The source object holds the parent properties (`type` becomes
    `enabledSourceType`). Sub-resources (RADIUS, LDAP, ...) are merged later
    via the descriptor's schema_merge; RADIUS servers have fixed names that
    map to primary/secondary.
    """
    if context.descriptor.schema_merge is None:
        patched = dict(item)
        source_type = patched.pop("type", None)
        if source_type == "active-directory":
            source_type = "activeDirectory"
        patched["enabledSourceType"] = source_type
        return patched

    name = item.get("name", "")
    if RADIUS_SERVER_PREFIX in name:
        server = {k: v for k, v in item.items() if k != "name"}
        if name == RADIUS_PRIMARY_SERVER:
            return {"primary": server}
        if name == RADIUS_SECONDARY_SERVER:
            return {"secondary": server}
        return None

    return dict(item)


@register_patch("SyslogRemoteServer")
def patch_syslog(item: dict[str, Any], context: PatchContext) -> dict[str, Any]:
    """Re-key the remoteServers list by server name."""
    patched = {k: v for k, v in item.items() if k != "remoteServers"}

    for server in item.get("remoteServers") or []:
        server = copy.deepcopy(server)
        server["name"] = strip_partition(server.get("name", ""), context.partition)
        patched[server["name"]] = server

    return patched
