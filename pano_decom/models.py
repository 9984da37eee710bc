"""
Data structures passed between the pipeline stages.

Python side: plain dataclasses, nothing here talks to Panorama.
Panorama side: the *Entry classes mirror the config elements we edit and may
carry the backing pan-os-python object in ``raw`` so the store can apply
changes without rebuilding the element from scratch.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

SHARED = "shared"
ALL_GROUPINGS = "all"

PRE_RULEBASE = "pre-rulebase"
POST_RULEBASE = "post-rulebase"
RULEBASES = (PRE_RULEBASE, POST_RULEBASE)


@dataclass(frozen=True)
class LivenessResult:
    host: str
    reachable: bool


@dataclass(frozen=True)
class HostPartition:
    fresh: FrozenSet[str]
    stale: FrozenSet[str]


@dataclass(frozen=True)
class AddressObject:
    name: str
    value: str


@dataclass(frozen=True)
class MatchedObject:
    """An address object whose value points at a stale host."""

    name: str
    value: str
    host: str
    grouping: str


class RemovalStage(Enum):
    ADDRESS_GROUP_REF = "address-group-ref"
    SECURITY_RULE = "security-rule"
    NAT_RULE = "nat-rule"
    OBJECT_DELETION = "object-deletion"


# Order matters: references go before the object itself.
STAGE_ORDER = (
    RemovalStage.ADDRESS_GROUP_REF,
    RemovalStage.SECURITY_RULE,
    RemovalStage.NAT_RULE,
    RemovalStage.OBJECT_DELETION,
)


@dataclass(frozen=True)
class RemovalOutcome:
    grouping: str
    object_name: str
    stage: RemovalStage
    ok: bool
    detail: str = ""

    def as_row(self) -> Dict[str, str]:
        return {
            "grouping": self.grouping,
            "object_name": self.object_name,
            "stage": self.stage.value,
            "status": "OK" if self.ok else "FAILED",
            "detail": self.detail,
        }


# ──────────────────────────────────────────────────────────────────
# COLLABORATOR ENTRIES
# ──────────────────────────────────────────────────────────────────
@dataclass
class AddressGroupEntry:
    name: str
    static_members: List[str] = field(default_factory=list)
    raw: Any = field(default=None, repr=False, compare=False)


@dataclass
class SecurityRuleEntry:
    name: str
    source: List[str] = field(default_factory=list)
    destination: List[str] = field(default_factory=list)
    raw: Any = field(default=None, repr=False, compare=False)


@dataclass
class NatRuleEntry:
    name: str
    source: List[str] = field(default_factory=list)
    destination: List[str] = field(default_factory=list)
    translated_addresses: List[str] = field(default_factory=list)
    fallback_translated_addresses: List[str] = field(default_factory=list)
    nat_type: Optional[str] = None
    to_interface: Optional[str] = None
    service: Optional[str] = None
    source_translation_type: Optional[str] = None
    destination_translation_type: Optional[str] = None
    raw: Any = field(default=None, repr=False, compare=False)


# ──────────────────────────────────────────────────────────────────
# PIPELINE RESULTS
# ──────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class DecomPlan:
    """Everything established before the first write: the run's snapshot."""

    partition: HostPartition
    groupings: List[str]
    matched: List[MatchedObject]
    index_errors: List[Exception] = field(default_factory=list)


@dataclass(frozen=True)
class DecomResult:
    plan: DecomPlan
    scope: str
    outcomes: List[RemovalOutcome]

    @property
    def failures(self) -> List[RemovalOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def summary(self) -> Dict[str, Dict[str, int]]:
        """Per-stage OK/FAILED counts."""
        totals = {stage.value: {"OK": 0, "FAILED": 0} for stage in STAGE_ORDER}
        for o in self.outcomes:
            totals[o.stage.value]["OK" if o.ok else "FAILED"] += 1
        return totals
