"""Boundary contracts for external collaborators.

The engine owns no storage and does not generate text itself. It talks to
a task repository for snapshots and write-backs, and to a decomposition
service for complexity analysis and subtask generation.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from pydantic import BaseModel, Field

from taskhero.scheduling.ids import ItemId
from taskhero.scheduling.models import (
    ComplexityReport,
    RequirementDocument,
    RequirementStatusChange,
    WorkItem,
)


class ExpansionDirective(BaseModel):
    """Instructions passed to the decomposition service for one item."""

    num_subtasks: int = Field(..., ge=1, description="Target subtask count")
    context: str = Field(default="", description="Why the item was selected")

    def to_prompt(self) -> str:
        """Render the directive as additional prompt context."""
        return f"{self.context}\nGenerate {self.num_subtasks} subtasks.".strip()


class TaskRepository(ABC):
    """Persistence collaborator supplying snapshots and accepting write-backs."""

    @abstractmethod
    def load_work_items(self) -> list[WorkItem]:
        """Load all top-level work items with nested subtasks."""
        ...

    @abstractmethod
    def load_requirements(self) -> list[RequirementDocument]:
        """Load all requirement documents."""
        ...

    def load_complexity_report(self) -> ComplexityReport | None:
        """Load the latest complexity report, if one exists."""
        return None

    @abstractmethod
    def apply_status_change(self, change: RequirementStatusChange) -> None:
        """Persist a derived requirement status change."""
        ...

    @abstractmethod
    def apply_new_subtasks(self, parent_id: ItemId, subtasks: Sequence[WorkItem]) -> None:
        """Attach newly generated subtasks to a parent task."""
        ...


class DecompositionService(ABC):
    """Analysis and decomposition collaborator.

    Both operations may be slow and may fail; the orchestrator keeps at
    most one call outstanding at a time.
    """

    @abstractmethod
    async def analyze(self, items: Sequence[WorkItem]) -> ComplexityReport:
        """Produce a complexity report for a batch of items."""
        ...

    @abstractmethod
    async def decompose(
        self,
        item: WorkItem,
        directive: ExpansionDirective,
    ) -> list[WorkItem]:
        """Split an item into subtasks."""
        ...
