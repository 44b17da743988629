"""
Policy and rule data models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from bs4 import Tag
from pydantic import BaseModel, ConfigDict, Field


class ClassificationStrategy(str, Enum):
    """How markers are classified when no hide-all switch applies."""
    LAYERED = "layered"
    NEIGHBORS = "neighbors"


class RuleTag(str, Enum):
    """Rule responsible for a marker's state."""
    GLOBAL_HIDE_ALL = "globalHideAll"
    SCOPE_HIDE_ALL = "scopeHideAll"
    LEADING = "leading"
    MERGE_CONSECUTIVE = "mergeConsecutive"
    SMART_EXTERNAL_NAKED = "smartExternalNaked"
    SMART_EXTERNAL_WRAPPED = "smartExternalWrapped"
    NEIGHBOR_CONTEXT = "neighborContext"
    NONE = "none"


class PolicySet(BaseModel):
    """Named switches controlling which hiding rules are active."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=False)

    hide_all_global: bool = Field(False, alias="hideAllGlobal", description="Hide every marker in the document")
    hide_all_in_scope: bool = Field(False, alias="hideAllInScope", description="Hide every marker inside messages")
    hide_leading: bool = Field(False, alias="hideLeading", description="Hide a marker that opens a message")
    merge_consecutive: bool = Field(False, alias="mergeConsecutive", description="Collapse runs of markers into one")
    smart_external: bool = Field(False, alias="smartExternal", description="Hide markers outside block context (experimental)")
    classification_strategy: ClassificationStrategy = Field(
        ClassificationStrategy.LAYERED,
        alias="classificationStrategy",
        description="layered rules or textual-neighbour strategy"
    )

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# Keys written by the first release, mapped to their current names.
LEGACY_POLICY_KEYS = {
    "hideAllBr": "hideAllGlobal",
    "hideChatBr": "hideAllInScope",
}

BOOLEAN_POLICY_FIELDS = (
    "hideAllGlobal",
    "hideAllInScope",
    "hideLeading",
    "mergeConsecutive",
    "smartExternal",
)


@dataclass
class Decision:
    """Classification of one marker."""
    hidden: bool
    rule: RuleTag = RuleTag.NONE


@dataclass
class ApplicationRun:
    """One revert-and-reclassify pass."""
    run_id: str
    source: str
    target_scope: Optional[Tag] = None
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    scopes_processed: int = 0
    scopes_failed: int = 0
    scopes_skipped: int = 0
    hidden_by_rule: Dict[str, int] = field(default_factory=dict)

    @property
    def hidden_count(self) -> int:
        return sum(self.hidden_by_rule.values())

    def summary(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "source": self.source,
            "targeted": self.target_scope is not None,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "scopes_processed": self.scopes_processed,
            "scopes_failed": self.scopes_failed,
            "scopes_skipped": self.scopes_skipped,
            "hidden": self.hidden_count,
            "hidden_by_rule": dict(self.hidden_by_rule),
        }


@dataclass
class RunResult:
    """Outcome of a run request."""
    executed: bool
    run: Optional[ApplicationRun] = None
    reason: Optional[str] = None
    errors: List[str] = field(default_factory=list)
