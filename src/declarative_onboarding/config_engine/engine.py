"""Main Config Engine - orchestrates one reconciliation run.

Provides a single entry point for:
1. Normalizing the declaration
2. Reading the device's current configuration (and its original snapshot)
3. Reconciling desired against current for the classes of truth
"""
import contextlib
import logging
from typing import Any, Optional, Sequence

from ..config.descriptors import ConfigItemDescriptor, load_descriptors
from ..config.settings import Settings
from ..config_store.store import FileSnapshotStore, SnapshotStore
from ..devices.base import DeviceReader
from ..utils.logging_config import timed_section
from .diff import DiffEngine, summarize_reconcile
from .fetcher import ConfigFetcher
from .parser import DeclarationParser, collapse_singletons
from .schema import ParsedDeclaration, PriorState, ProcessResult

logger = logging.getLogger(__name__)


class ConfigEngine:
    """
    Config Engine for reconciling a declaration against one device.

    Usage:
        engine = ConfigEngine(device, settings)
        result = await engine.process(declaration)
        apply(result.merged)
    """

    def __init__(
        self,
        device: DeviceReader,
        settings: Optional[Settings] = None,
        descriptors: Optional[Sequence[ConfigItemDescriptor]] = None,
        store: Optional[SnapshotStore] = None,
    ):
        """
        Initialize the Config Engine.

        Args:
            device: Reader for the managed device
            settings: Runtime settings (default: built-in defaults)
            descriptors: Config items to read (default: from settings, else packaged set)
            store: Snapshot store (default: YAML files under settings.state_dir)
        """
        self.device = device
        self.settings = settings or Settings()
        if descriptors is None:
            descriptors = load_descriptors(self.settings.descriptors_path)
        self.store = store if store is not None else FileSnapshotStore(self.settings.state_dir)

        self.parser = DeclarationParser()
        self.fetcher = ConfigFetcher(device, descriptors, self.store, self.settings)
        self.diff_engine = DiffEngine(
            self.settings.classes_of_truth,
            variables_class=self.settings.variables_class,
        )

    def parse(self, declaration: dict[str, Any]) -> ParsedDeclaration:
        """Normalize a declaration without touching the device."""
        return self.parser.parse(declaration)

    async def process(
        self,
        declaration: dict[str, Any],
        prior: Optional[PriorState] = None,
    ) -> ProcessResult:
        """
        Run the full pipeline: parse, fetch, reconcile.

        Args:
            declaration: Declaration as loaded from JSON/YAML
            prior: State kept from the previous run, if any

        Returns:
            ProcessResult; `result.merged` is what the apply handlers get

        Raises:
            ParseError: If the declaration is malformed (the device is not read)
            Whatever the fetch raises
        """
        device_id = self.device.device_id

        async with timed_section("parse", device_id=device_id):
            parsed = self.parse(declaration)
            desired = collapse_singletons(parsed.parsed, self.settings.singleton_classes)

        logger.info(f"Parsed declaration for {device_id}: tenants {', '.join(parsed.tenants)}")

        async with self._session():
            async with timed_section("fetch", device_id=device_id,
                                     descriptors=len(self.fetcher.descriptors)):
                fetch = await self.fetcher.fetch(declaration, prior)

        async with timed_section("reconcile", device_id=device_id):
            result = self.diff_engine.reconcile(desired, fetch.current, fetch.original)

        if result.no_change:
            logger.info(f"{device_id}: no changes needed for classes of truth")
        else:
            logger.info(
                f"{device_id}: {result.total_changes} classes to apply "
                f"({', '.join(sorted(result.changed_classes()))})"
            )

        return ProcessResult(
            tenants=parsed.tenants,
            desired=desired,
            fetch=fetch,
            result=result,
        )

    async def preview(
        self,
        declaration: dict[str, Any],
        prior: Optional[PriorState] = None,
    ) -> str:
        """
        Preview what would be applied without applying anything.

        Returns:
            Human-readable summary of the class changes
        """
        processed = await self.process(declaration, prior)
        return summarize_reconcile(processed.result)

    def _session(self):
        """Connect for the duration of the fetch unless the caller already did."""
        if self.device.is_connected:
            return contextlib.nullcontext()
        return self.device
