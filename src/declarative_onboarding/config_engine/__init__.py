"""Config Engine - reconcile declarations against live device configuration.

The pipeline:
- Normalize the declaration into domain -> tenant -> class -> instance
- Read the device's current configuration into the same shape
- Diff the two for the classes of truth, pass everything else through

Usage:
    from declarative_onboarding.config_engine import ConfigEngine

    engine = ConfigEngine(device)
    result = await engine.process({
        "schemaVersion": "1.0.0",
        "class": "Device",
        "Common": {
            "class": "Tenant",
            "mySystem": {
                "class": "System",
                "hostname": "bigip.example.com"
            }
        }
    })
"""

from .engine import ConfigEngine
from .schema import (
    NormalizedDocument,
    ChangeType,
    ParsedDeclaration,
    PriorState,
    FetchResult,
    Difference,
    ClassChange,
    ReconcileResult,
    ProcessResult,
)
from .parser import DeclarationParser, collapse_singletons
from .tokens import TokenResolver
from .fetcher import ConfigFetcher
from .diff import DiffEngine, backfill, structural_diff, summarize_reconcile
from .patches import CLASS_PATCHES, PatchContext, register_patch

__all__ = [
    # Main engine
    "ConfigEngine",
    # Schema classes
    "NormalizedDocument",
    "ChangeType",
    "ParsedDeclaration",
    "PriorState",
    "FetchResult",
    "Difference",
    "ClassChange",
    "ReconcileResult",
    "ProcessResult",
    # Components (for advanced use)
    "DeclarationParser",
    "collapse_singletons",
    "TokenResolver",
    "ConfigFetcher",
    "DiffEngine",
    "backfill",
    "structural_diff",
    "summarize_reconcile",
    "CLASS_PATCHES",
    "PatchContext",
    "register_patch",
]
