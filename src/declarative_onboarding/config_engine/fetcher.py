"""Config fetcher: read the device's current configuration.

Builds a current-state document shaped like the parsed declaration, driven
entirely by config item descriptors. Reads happen in stages:

    stage 0: device identity and its snapshot, cluster name for tokens,
             provisioned modules
    stage 1: one read per descriptor, all concurrent
    stage 2: one read per reference link found in stage 1, all concurrent

A stage only starts once every read of the previous stage has finished.
Any failed read aborts the whole fetch; the snapshot is not touched.
"""
import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Iterable, Optional

from ..config.descriptors import ConfigItemDescriptor, PropertySpec
from ..config.settings import Settings
from ..config_store.store import SnapshotStore
from ..devices.base import DeviceReader
from .mapping import (
    map_properties,
    map_reference_items,
    merge_schema,
    reference_property_name,
    reference_request,
    remove_unused_keys,
    should_ignore,
    strip_partition,
)
from .patches import PatchContext, apply_patch
from .schema import FetchResult, NormalizedDocument, PriorState
from .tokens import TokenResolver

logger = logging.getLogger(__name__)

PROVISION_PATH = "/tm/sys/provision"


@dataclass
class _ReferenceRead:
    """A pending reference read and where its result goes."""
    domain: str
    schema_class: str
    name: Optional[str]
    property: str
    properties: tuple[PropertySpec, ...]
    path: str
    params: dict[str, str]
    select: list[str]


class ConfigFetcher:
    """Read and normalize current device configuration."""

    def __init__(
        self,
        device: DeviceReader,
        descriptors: Iterable[ConfigItemDescriptor],
        store: SnapshotStore,
        settings: Optional[Settings] = None,
    ):
        """
        Args:
            device: Reader for the managed device
            descriptors: Config items to read, in processing order
            store: Original-state snapshot store
            settings: Partition, variables class and concurrency cap
        """
        self.device = device
        self.descriptors = tuple(descriptors)
        self.store = store
        self.settings = settings or Settings()

    @property
    def partition(self) -> str:
        return self.settings.partition

    async def fetch(
        self,
        declaration: Optional[dict[str, Any]] = None,
        prior: Optional[PriorState] = None,
        device_identity: Optional[str] = None,
    ) -> FetchResult:
        """
        Read the current configuration of the device.

        Args:
            declaration: Raw declaration; variables it names are read even
                if the previous state does not have them
            prior: State kept from the previous run
            device_identity: Snapshot key (default: the device machine id)

        Returns:
            FetchResult with current state and the persisted snapshot

        Raises:
            Whatever the device reader raises, and TokenError
        """
        prior = prior or PriorState()

        try:
            # Stage 0
            info = await self.device.device_info()
            identity = device_identity or info.machine_id
            stored = self.store.get(identity)
            variables_scope = self._variables_of_interest(
                declaration, prior, stored if stored is not None else prior.original
            )
            tokens = await TokenResolver.from_device(self.device, info)
            provisioned = await self._provisioned_modules()

            # Stage 1
            active: list[ConfigItemDescriptor] = []
            skipped: list[str] = []
            for descriptor in self.descriptors:
                if descriptor.required_module and descriptor.required_module not in provisioned:
                    logger.debug(
                        f"Skipping {descriptor.path}: module {descriptor.required_module} "
                        f"not provisioned"
                    )
                    skipped.append(descriptor.path)
                else:
                    active.append(descriptor)

            results = await self._gather([
                self._read_item(descriptor, tokens) for descriptor in active
            ])

            current: NormalizedDocument = {}
            references: list[_ReferenceRead] = []
            for descriptor, result in zip(active, results):
                self._process_result(descriptor, result, current, variables_scope, references)

            # Stage 2
            if references:
                reference_results = await self._gather([
                    self.device.list(ref.path, ref.select, params=ref.params)
                    for ref in references
                ])
                for ref, result in zip(references, reference_results):
                    self._splice_reference(current, ref, result)

            original = self._update_snapshot(identity, current, prior, stored)
        except Exception as e:
            logger.error(f"Error getting current config: {e}")
            raise

        logger.info(
            f"Fetched current config for {identity}: "
            f"{len(active)} items read, {len(references)} references, {len(skipped)} skipped"
        )
        return FetchResult(
            device_identity=identity,
            current=current,
            original=original,
            skipped=skipped,
        )

    # === Concurrency ===

    async def _gather(self, coros: list[Awaitable[Any]]) -> list[Any]:
        """Run reads concurrently; on the first failure cancel the rest and raise."""
        limit = self.settings.max_concurrency
        semaphore = asyncio.Semaphore(limit) if limit else None

        async def _run(coro: Awaitable[Any]) -> Any:
            if semaphore is None:
                return await coro
            async with semaphore:
                return await coro

        tasks = [asyncio.ensure_future(_run(coro)) for coro in coros]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    # === Stage 0 helpers ===

    def _variables_of_interest(
        self,
        declaration: Optional[dict[str, Any]],
        prior: PriorState,
        snapshot: Optional[NormalizedDocument] = None,
    ) -> set[str]:
        """
        Variables to keep from the (unfilterable) variables collection.

        The device has thousands of them and no way to query a subset, so we
        read them all and keep what the previous state had, what the snapshot
        holds, and what the declaration names. Snapshot variables are restored
        by backfill once dropped from the declaration, so their device value
        must be in current state for the diff to converge.
        """
        variables_class = self.settings.variables_class
        scope: set[str] = set()

        for document in (prior.current, snapshot):
            for bag in find_class_bags(document or {}, variables_class):
                scope.update(k for k in bag if k != "class")

        for obj in _walk_objects(declaration or {}):
            if obj.get("class") == variables_class:
                scope.update(k for k in obj if k != "class")

        return scope

    async def _provisioned_modules(self) -> set[str]:
        if not any(d.required_module for d in self.descriptors):
            return set()
        provisioning = await self.device.list(PROVISION_PATH, ["name", "level"])
        return {
            module["name"] for module in provisioning
            if module.get("level") != "none"
        }

    # === Stage 1 ===

    async def _read_item(self, descriptor: ConfigItemDescriptor, tokens: TokenResolver) -> Any:
        path = tokens.resolve(descriptor.path)
        params = {"$filter": f"partition eq {self.partition}"}
        return await self.device.list(
            path,
            descriptor.select,
            params=params,
            silent=descriptor.silent,
        )

    def _process_result(
        self,
        descriptor: ConfigItemDescriptor,
        result: Any,
        current: NormalizedDocument,
        variables_scope: set[str],
        references: list[_ReferenceRead],
    ) -> None:
        tenant_bag = current.setdefault(descriptor.domain, {}).setdefault(self.partition, {})
        schema_class = descriptor.schema_class

        if not schema_class:
            # Plain key/value item (hostname, for example)
            if isinstance(result, dict):
                cleaned = remove_unused_keys(result, nameless=True)
                tenant_bag.update(map_properties(cleaned, descriptor, self.partition))
            return

        if isinstance(result, list):
            if not result:
                tenant_bag.setdefault(schema_class, {})
                return
            for item in result:
                self._process_item(descriptor, item, tenant_bag, variables_scope, references, True)
        elif isinstance(result, dict):
            self._process_item(descriptor, result, tenant_bag, variables_scope, references, False)

    def _process_item(
        self,
        descriptor: ConfigItemDescriptor,
        item: dict[str, Any],
        tenant_bag: dict[str, Any],
        variables_scope: set[str],
        references: list[_ReferenceRead],
        in_collection: bool,
    ) -> None:
        if should_ignore(item, descriptor.ignore):
            return

        schema_class = descriptor.schema_class
        name = strip_partition(item.get("name"), self.partition) if in_collection else None

        if schema_class == self.settings.variables_class and in_collection:
            if name not in variables_scope:
                return

        patched = remove_unused_keys(item, descriptor.nameless)
        if "name" in patched:
            patched["name"] = name if in_collection else strip_partition(patched["name"], self.partition)
        patched = map_properties(patched, descriptor, self.partition)
        if isinstance(patched, dict):
            context = PatchContext(descriptor=descriptor, name=name, partition=self.partition)
            patched = apply_patch(schema_class, patched, context)

        if descriptor.schema_merge is not None:
            if patched is not None:
                tenant_bag[schema_class] = merge_schema(
                    tenant_bag.get(schema_class), patched, descriptor.schema_merge
                )
            return

        if in_collection:
            if patched is None and not descriptor.single_value:
                return
            tenant_bag.setdefault(schema_class, {})[name] = patched
        else:
            if patched is None:
                return
            tenant_bag[schema_class] = patched

        self._collect_references(descriptor, item, name, references)

    def _collect_references(
        self,
        descriptor: ConfigItemDescriptor,
        item: dict[str, Any],
        name: Optional[str],
        references: list[_ReferenceRead],
    ) -> None:
        for key, properties in descriptor.references:
            value = item.get(key)
            if not isinstance(value, dict) or not value.get("link"):
                if key in item:
                    logger.debug(f"{descriptor.schema_class} {name}: {key} has no link, skipping")
                continue

            path, params, select = reference_request(value["link"], properties)
            references.append(_ReferenceRead(
                domain=descriptor.domain,
                schema_class=descriptor.schema_class,
                name=name,
                property=reference_property_name(key),
                properties=properties,
                path=path,
                params=params,
                select=select,
            ))

    # === Stage 2 ===

    def _splice_reference(self, current: NormalizedDocument, ref: _ReferenceRead, result: Any) -> None:
        class_bag = current[ref.domain][self.partition][ref.schema_class]
        target = class_bag[ref.name] if ref.name is not None else class_bag
        target[ref.property] = map_reference_items(result, ref.properties)

    # === Snapshot ===

    def _update_snapshot(
        self,
        identity: str,
        current: NormalizedDocument,
        prior: PriorState,
        original: Optional[NormalizedDocument],
    ) -> NormalizedDocument:
        """
        Keep the first-observed configuration of the device.

        Variables seen now but missing from the snapshot are added so a
        variable set by a later declaration can still be restored when it is
        dropped again. Existing snapshot values are never overwritten.
        """
        if original is None and prior.original:
            logger.info(f"Adopting original config from prior state for {identity}")
            original = copy.deepcopy(prior.original)
        if original is None:
            original = copy.deepcopy(current)

        variables_class = self.settings.variables_class
        for domain, tenants in current.items():
            for tenant, classes in tenants.items():
                variables = classes.get(variables_class)
                if not isinstance(variables, dict):
                    continue
                snapshot_bag = (
                    original.setdefault(domain, {})
                    .setdefault(tenant, {})
                    .setdefault(variables_class, {})
                )
                for name, value in variables.items():
                    if name not in snapshot_bag:
                        snapshot_bag[name] = copy.deepcopy(value)

        self.store.set(identity, original)
        return original


def find_class_bags(document: NormalizedDocument, class_name: str) -> list[dict[str, Any]]:
    """Every `document[domain][tenant][class_name]` that is a mapping."""
    bags = []
    for tenants in document.values():
        if not isinstance(tenants, dict):
            continue
        for classes in tenants.values():
            if isinstance(classes, dict) and isinstance(classes.get(class_name), dict):
                bags.append(classes[class_name])
    return bags


def _walk_objects(node: Any):
    """Yield every mapping in a declaration tree, depth first."""
    if isinstance(node, dict):
        yield node
        for value in node.values():
            yield from _walk_objects(value)
    elif isinstance(node, list):
        for value in node:
            yield from _walk_objects(value)
