"""Pydantic models for the scheduling engine.

This module defines the work item, requirement document and complexity
report shapes shared with existing consumers. Field names keep their
camelCase spelling on the wire (``parentId``, ``prdSource``,
``complexityScore``) through aliases, while Python code uses snake_case.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from taskhero.scheduling.ids import (
    ItemId,
    SubtaskId,
    TopLevelId,
    normalize_subtask_dependency,
    parse_item_id,
)

# =============================================================================
# ENUMS
# =============================================================================


class TaskStatus(str, Enum):
    """Status of a task or subtask."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    REVIEW = "review"
    BLOCKED = "blocked"
    DEFERRED = "deferred"
    CANCELLED = "cancelled"
    # Legacy spelling of DONE found in older task files
    COMPLETED = "completed"


COMPLETE_STATUSES = frozenset({TaskStatus.DONE, TaskStatus.COMPLETED})

ACTIVE_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS})


class Priority(str, Enum):
    """Task priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def weight(self) -> int:
        return PRIORITY_WEIGHTS[self]


PRIORITY_WEIGHTS: dict[Priority, int] = {
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


class RequirementStatus(str, Enum):
    """Status of a requirement document (PRD)."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    ARCHIVED = "archived"


# =============================================================================
# WORK ITEMS
# =============================================================================


class RequirementSource(BaseModel):
    """Back-reference from a work item to the requirement it came from."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    prd_id: str | None = Field(default=None, alias="prdId")
    file_name: str | None = Field(default=None, alias="fileName")
    file_path: str | None = Field(default=None, alias="filePath")
    parsed_date: str | None = Field(default=None, alias="parsedDate")

    @property
    def key(self) -> str | None:
        """Grouping key: the requirement id, falling back to the file name."""
        return self.prd_id or self.file_name


class WorkItem(BaseModel):
    """A task or subtask.

    Top-level tasks keep their subtasks nested in ``subtasks``; a subtask's
    own ``id`` is its sub-id and its composite id is available through
    :attr:`item_id` once ``parent_id`` is set.

    Example:
        >>> task = WorkItem(id=5, title="Auth", status="in-progress")
        >>> str(task.item_id)
        '5'
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int = Field(..., ge=0, description="Task id or subtask sub-id")
    title: str = Field(default="", description="Short title")
    description: str = Field(default="", description="Description")
    details: str = Field(default="", description="Implementation details")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Current status")
    priority: Priority | None = Field(default=None, description="Priority")
    dependencies: list[int | str] = Field(
        default_factory=list,
        description="Ids this item depends on",
    )
    parent_id: int | None = Field(
        default=None,
        alias="parentId",
        description="Parent task id (subtasks only)",
    )
    subtasks: list["WorkItem"] = Field(
        default_factory=list,
        description="Nested subtasks (top-level tasks only)",
    )
    complexity_score: float | None = Field(
        default=None,
        alias="complexityScore",
        description="Score attached from a complexity report",
    )
    requirement_source: RequirementSource | None = Field(
        default=None,
        alias="prdSource",
        validation_alias=AliasChoices("prdSource", "requirementSource", "requirement_source"),
        description="Requirement document this item traces back to",
    )

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        """Accept any casing and treat a missing status as pending."""
        if v is None or v == "":
            return TaskStatus.PENDING
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, v: Any) -> Any:
        if v == "":
            return None
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def item_id(self) -> ItemId:
        """Fully qualified identifier."""
        if self.parent_id is not None:
            return SubtaskId(self.parent_id, self.id)
        return TopLevelId(self.id)

    @property
    def is_subtask(self) -> bool:
        return self.parent_id is not None

    @property
    def is_complete(self) -> bool:
        return self.status in COMPLETE_STATUSES

    @property
    def effective_priority(self) -> Priority:
        return self.priority or Priority.MEDIUM

    @property
    def text(self) -> str:
        """Lower-cased title, description and details used for scoring."""
        return f"{self.title} {self.description} {self.details}".lower()

    def qualified_dependencies(self) -> list[ItemId]:
        """Dependencies in fully qualified form.

        Raises:
            InvalidItemIdError: If a dependency is malformed.
        """
        if self.parent_id is not None:
            return [
                normalize_subtask_dependency(self.parent_id, dep)
                for dep in self.dependencies
            ]
        return [parse_item_id(dep) for dep in self.dependencies]

    def iter_subtasks(self) -> list["WorkItem"]:
        """Subtasks with ``parent_id`` filled in from this task."""
        return [
            st if st.parent_id == self.id else st.model_copy(update={"parent_id": self.id})
            for st in self.subtasks
        ]

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase wire format."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# =============================================================================
# REQUIREMENT DOCUMENTS
# =============================================================================


class RequirementTaskStats(BaseModel):
    """Aggregate task counts for a requirement document (derived)."""

    model_config = ConfigDict(populate_by_name=True)

    total_tasks: int = Field(default=0, alias="totalTasks")
    completed_tasks: int = Field(default=0, alias="completedTasks")
    pending_tasks: int = Field(default=0, alias="pendingTasks")
    in_progress_tasks: int = Field(default=0, alias="inProgressTasks")
    blocked_tasks: int = Field(default=0, alias="blockedTasks")
    deferred_tasks: int = Field(default=0, alias="deferredTasks")
    cancelled_tasks: int = Field(default=0, alias="cancelledTasks")
    completion_percentage: int = Field(default=0, alias="completionPercentage")


class RequirementDocument(BaseModel):
    """Requirement document (PRD) metadata."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(..., description="Requirement document id")
    title: str = Field(default="", description="Title")
    file_name: str | None = Field(default=None, alias="fileName")
    status: RequirementStatus = Field(default=RequirementStatus.PENDING)
    task_stats: RequirementTaskStats | None = Field(default=None, alias="taskStats")
    manual_status_override: bool = Field(
        default=False,
        alias="manualStatusOverride",
        description="Status was pinned by hand; automated updates leave it alone",
    )

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        if v is None or v == "":
            return RequirementStatus.PENDING
        if isinstance(v, str):
            return v.strip().lower()
        return v

    def owns(self, item: WorkItem) -> bool:
        """Check whether a work item traces back to this document."""
        source = item.requirement_source
        if source is None:
            return False
        if source.prd_id is not None:
            return source.prd_id == self.id
        return source.file_name is not None and source.file_name == self.file_name

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class RequirementStatusChange(BaseModel):
    """A requirement status transition derived by the cascade."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    requirement_id: str = Field(..., alias="requirementId")
    previous_status: RequirementStatus = Field(..., alias="previousStatus")
    new_status: RequirementStatus = Field(..., alias="newStatus")
    reason: str = Field(
        default="Automated update based on linked task completion",
        description="Why the status changed",
    )
    linked_tasks: int = Field(default=0, alias="linkedTasks")
    changed_at: datetime = Field(default_factory=datetime.utcnow, alias="changedAt")


# =============================================================================
# COMPLEXITY REPORT
# =============================================================================


class TaskComplexity(BaseModel):
    """Complexity analysis of one work item (0-10 scale)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    task_id: int | str = Field(..., alias="taskId")
    task_title: str = Field(default="", alias="taskTitle")
    complexity_score: float = Field(..., ge=0, le=10, alias="complexityScore")
    recommended_subtasks: int | None = Field(default=None, ge=0, alias="recommendedSubtasks")
    expansion_prompt: str | None = Field(default=None, alias="expansionPrompt")
    reasoning: str = Field(default="")


class ComplexityReport(BaseModel):
    """Side artifact produced by a prior analysis pass."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    meta: dict[str, Any] = Field(default_factory=dict)
    complexity_analysis: list[TaskComplexity] = Field(
        default_factory=list,
        alias="complexityAnalysis",
    )

    @property
    def by_id(self) -> dict[str, TaskComplexity]:
        """Entries keyed by the string form of their item id."""
        return {str(entry.task_id): entry for entry in self.complexity_analysis}

    def get(self, item_id: ItemId | int | str) -> TaskComplexity | None:
        """Look up the analysis for an item, if any."""
        return self.by_id.get(str(item_id))

    def __contains__(self, item_id: object) -> bool:
        return str(item_id) in self.by_id


WorkItem.model_rebuild()
