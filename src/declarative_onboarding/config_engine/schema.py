"""Schema definitions for the reconciliation pipeline.

Documents are plain nested dicts:

    domain -> tenant -> class -> instance name -> property bag

Scalar container properties sit directly under the tenant
(`document["System"]["Common"]["hostname"]`).
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

NormalizedDocument = dict[str, Any]


class ChangeType(str, Enum):
    """Type of change in a diff."""
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


@dataclass
class ParsedDeclaration:
    """Result of normalizing a declaration."""
    tenants: list[str]
    parsed: NormalizedDocument


# --- Fetch ---

@dataclass
class PriorState:
    """State kept by the caller between runs for one device.

    `current` is the previous current-state document. `original` is a
    snapshot carried in state written by older releases, adopted when the
    snapshot store has nothing for the device yet.
    """
    current: Optional[NormalizedDocument] = None
    original: Optional[NormalizedDocument] = None


@dataclass
class FetchResult:
    """Current state of a device plus its original-state snapshot."""
    device_identity: str
    current: NormalizedDocument
    original: NormalizedDocument
    skipped: list[str] = field(default_factory=list)

    def to_prior_state(self) -> PriorState:
        """State to hand back on the next run."""
        return PriorState(current=self.current)


# --- Diff Results ---

@dataclass(frozen=True)
class Difference:
    """One structural difference between two documents.

    `path` is relative to the scope that was diffed; for a tenant bag the
    first segment is the class name.
    """
    path: tuple[str, ...]
    kind: ChangeType
    before: Any = None
    after: Any = None
    domain: str = ""
    tenant: str = ""


@dataclass(frozen=True)
class ClassChange:
    """A class whose whole subtree must be written."""
    domain: str
    tenant: str
    class_name: str
    change_type: ChangeType


@dataclass
class ReconcileResult:
    """Result of reconciling desired against current state."""
    merged: NormalizedDocument = field(default_factory=dict)
    changes: list[ClassChange] = field(default_factory=list)
    differences: list[Difference] = field(default_factory=list)

    @property
    def no_change(self) -> bool:
        """Check if any class of truth needs to be written."""
        return len(self.changes) == 0

    @property
    def total_changes(self) -> int:
        """Number of classes that changed."""
        return len(self.changes)

    def changed_classes(self) -> set[str]:
        return {c.class_name for c in self.changes}


@dataclass
class ProcessResult:
    """Everything one pipeline run produced."""
    tenants: list[str]
    desired: NormalizedDocument
    fetch: FetchResult
    result: ReconcileResult

    @property
    def merged(self) -> NormalizedDocument:
        return self.result.merged
