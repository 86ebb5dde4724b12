"""Declaration normalizer.

Splits a declaration into domains (System, Network, ...), each domain into
tenants, and each tenant into classes. For example, given

    {
        "schemaVersion": "1.0.0",
        "class": "Device",
        "Common": {
            "class": "Tenant",
            "mySystem": {
                "class": "System",
                "hostname": "bigip.example.com",
                "myDns": {"class": "DNS", "nameServers": ["1.2.3.4"]}
            },
            "myNetwork": {
                "class": "Network",
                "commonVlan": {"class": "VLAN", "tag": 2345}
            }
        }
    }

the parsed declaration is

    {
        "System": {
            "Common": {
                "hostname": "bigip.example.com",
                "DNS": {"myDns": {"nameServers": ["1.2.3.4"]}}
            }
        },
        "Network": {
            "Common": {
                "VLAN": {"myNetwork_commonVlan": {"tag": 2345}}
            }
        }
    }

Outside the System domain instance names are qualified with the container
name.
"""
import copy
import logging
from typing import Any, Iterable

from ..errors import ParseError
from .schema import NormalizedDocument, ParsedDeclaration

logger = logging.getLogger(__name__)

KEYS_TO_IGNORE = ("schemaVersion", "class")
TENANT_CLASS = "Tenant"
SYSTEM_DOMAIN = "System"


class DeclarationParser:
    """Normalize a declaration into domain -> tenant -> class -> instance."""

    def __init__(self, allow_overwrite: bool = False):
        """
        Args:
            allow_overwrite: Let a later container silently replace an
                instance with the same synthesized name instead of failing
        """
        self.allow_overwrite = allow_overwrite

    def parse(self, declaration: dict[str, Any]) -> ParsedDeclaration:
        """
        Parse a declaration.

        Args:
            declaration: The declaration as loaded from JSON/YAML. It is not
                modified.

        Returns:
            ParsedDeclaration with tenant names and the normalized document

        Raises:
            ParseError: If the declaration is malformed. Nothing partial is
                returned.
        """
        try:
            if not isinstance(declaration, dict):
                raise ParseError(
                    f"Declaration must be an object, got {type(declaration).__name__}"
                )

            parsed: NormalizedDocument = {}
            tenants = self._get_tenants(declaration)

            for tenant_name in tenants:
                self._parse_tenant(tenant_name, declaration[tenant_name], parsed)

            return ParsedDeclaration(tenants=tenants, parsed=parsed)
        except ParseError as e:
            logger.error(f"Error parsing declaration: {e}")
            raise

    def _get_tenants(self, declaration: dict[str, Any]) -> list[str]:
        return [
            key for key, value in declaration.items()
            if key not in KEYS_TO_IGNORE
            and isinstance(value, dict)
            and value.get("class") == TENANT_CLASS
        ]

    def _parse_tenant(
        self,
        tenant_name: str,
        tenant: dict[str, Any],
        parsed: NormalizedDocument,
    ) -> None:
        for container_name, container in tenant.items():
            if container_name in KEYS_TO_IGNORE:
                continue

            if not isinstance(container, dict):
                raise ParseError(
                    f"{tenant_name}.{container_name}: expected an object, "
                    f"got {type(container).__name__}"
                )
            domain = container.get("class")
            if not domain or not isinstance(domain, str):
                raise ParseError(f"{tenant_name}.{container_name}: missing class")

            tenant_bag = parsed.setdefault(domain, {}).setdefault(tenant_name, {})
            self._parse_container(domain, tenant_name, container_name, container, tenant_bag)

    def _parse_container(
        self,
        domain: str,
        tenant_name: str,
        container_name: str,
        container: dict[str, Any],
        tenant_bag: dict[str, Any],
    ) -> None:
        for key, value in container.items():
            if key in KEYS_TO_IGNORE:
                continue

            full_name = key if domain == SYSTEM_DOMAIN else f"{container_name}_{key}"
            where = f"{tenant_name}.{container_name}.{key}"

            if isinstance(value, dict) and value.get("class"):
                property_class = value["class"]
                bucket = tenant_bag.setdefault(property_class, {})
                if not isinstance(bucket, dict):
                    raise ParseError(f"{where}: class {property_class} clashes with a property")
                self._check_collision(bucket, full_name, where)
                bucket[full_name] = {
                    k: copy.deepcopy(v) for k, v in value.items() if k != "class"
                }
            else:
                self._check_collision(tenant_bag, full_name, where)
                tenant_bag[full_name] = copy.deepcopy(value)

    def _check_collision(self, bucket: dict[str, Any], name: str, where: str) -> None:
        if name in bucket and not self.allow_overwrite:
            raise ParseError(f"{where}: duplicate name '{name}'")


def collapse_singletons(
    document: NormalizedDocument,
    singleton_classes: Iterable[str],
) -> NormalizedDocument:
    """Replace `class -> {name: bag}` with `class -> bag` for singleton classes.

    Classes such as DNS exist once per device but are declared as a named
    sub-instance. Collapsing them lines the desired document up with what
    the fetcher reads back.

    Returns:
        A new document; the input is left untouched

    Raises:
        ParseError: If a singleton class is declared more than once in a tenant
    """
    singletons = set(singleton_classes)
    collapsed: NormalizedDocument = {}

    for domain, tenants in document.items():
        collapsed[domain] = {}
        for tenant, classes in tenants.items():
            bag = {}
            for class_name, value in classes.items():
                if class_name in singletons and isinstance(value, dict):
                    if len(value) > 1:
                        raise ParseError(
                            f"{domain}.{tenant}: {class_name} may only be declared once, "
                            f"found {', '.join(sorted(value))}"
                        )
                    bag[class_name] = copy.deepcopy(next(iter(value.values()), {}))
                else:
                    bag[class_name] = copy.deepcopy(value)
            collapsed[domain][tenant] = bag

    return collapsed
