"""Next work item selection.

Selection runs in two phases:

1. Subtask preference: eligible subtasks of tasks that are already
   ``in-progress`` always win, ordered by priority, dependency count,
   parent id and sub-id.
2. Top-level fallback: eligible top-level tasks ordered by requirement
   completion priority, priority, dependency count and id.

Requirement completion priority favours finishing nearly complete
requirement documents over starting new ones. Its bonus constants are
part of the observable behaviour and are kept exactly.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from loguru import logger

from taskhero.scheduling.graph import DependencyGraph
from taskhero.scheduling.ids import ItemId
from taskhero.scheduling.models import (
    ACTIVE_STATUSES,
    ComplexityReport,
    Priority,
    TaskStatus,
    WorkItem,
)

NEAR_COMPLETION_RATIO = 0.8
NEAR_COMPLETION_BONUS = 50
FEW_REMAINING_LIMIT = 3
FEW_REMAINING_BONUS = 25
SEQUENTIAL_BONUS = 10
FIRST_SIBLING_BONUS = 5


@dataclass(frozen=True)
class RequirementPriority:
    """Components of an item's requirement completion priority."""

    base: int = 0
    near_completion_bonus: int = 0
    few_remaining_bonus: int = 0
    sequence_bonus: int = 0

    @property
    def total(self) -> int:
        return (
            self.base
            + self.near_completion_bonus
            + self.few_remaining_bonus
            + self.sequence_bonus
        )


def requirement_priority_breakdown(
    item: WorkItem,
    items: Sequence[WorkItem],
) -> RequirementPriority:
    """
    Compute the requirement completion priority of a top-level item.

    Args:
        item: Item to evaluate.
        items: All top-level items in the snapshot.

    Returns:
        RequirementPriority; all zero when the item has no requirement.

    Example:
        >>> # 5 siblings, 4 done: base 80, +50, +25, plus ordering bonus
        >>> requirement_priority_breakdown(pending, tasks).total
        165
    """
    source = item.requirement_source
    key = source.key if source else None
    if key is None:
        return RequirementPriority()

    siblings = [
        t for t in items
        if t.requirement_source is not None and t.requirement_source.key == key
    ]
    if not siblings:
        return RequirementPriority()

    completed = sum(1 for t in siblings if t.is_complete)
    ratio = completed / len(siblings)
    remaining = len(siblings) - completed

    near_completion = NEAR_COMPLETION_BONUS if ratio >= NEAR_COMPLETION_RATIO else 0
    few_remaining = FEW_REMAINING_BONUS if remaining <= FEW_REMAINING_LIMIT else 0

    ordered = sorted(siblings, key=lambda t: t.id)
    index = next((i for i, t in enumerate(ordered) if t.id == item.id), -1)
    sequence = 0
    if index > 0:
        if all(t.is_complete for t in ordered[:index]):
            sequence = SEQUENTIAL_BONUS
    elif index == 0:
        sequence = FIRST_SIBLING_BONUS

    return RequirementPriority(
        base=int(ratio * 100),
        near_completion_bonus=near_completion,
        few_remaining_bonus=few_remaining,
        sequence_bonus=sequence,
    )


def requirement_priority(item: WorkItem, items: Sequence[WorkItem]) -> int:
    """Integer requirement completion priority (higher is picked first)."""
    return requirement_priority_breakdown(item, items).total


def annotate_complexity(item: WorkItem, report: ComplexityReport | None) -> WorkItem:
    """Return a copy of ``item`` carrying its report score, if any."""
    if report is None:
        return item
    entry = report.get(item.item_id)
    if entry is None:
        return item
    return item.model_copy(update={"complexity_score": entry.complexity_score})


class NextItemSelector:
    """
    Pick the single best next work item from a snapshot.

    The selector is stateless; it reads the snapshot and returns a copy
    of the chosen item, never mutating the input.

    Example:
        >>> selector = NextItemSelector()
        >>> item = selector.select(tasks)
        >>> str(item.item_id)
        '5.1'
    """

    def select(
        self,
        items: Sequence[WorkItem],
        complexity_report: ComplexityReport | None = None,
    ) -> WorkItem | None:
        """
        Select the next item to work on.

        Args:
            items: Top-level work items with nested subtasks.
            complexity_report: Optional report used to annotate the result.

        Returns:
            The chosen item (a copy), or None if nothing is eligible.

        Raises:
            DependencyValidationError: If a dependency does not resolve.
            InvalidItemIdError: If a dependency id is malformed.
        """
        graph = DependencyGraph(items)
        graph.validate()

        chosen = self._select_subtask(graph)
        if chosen is None:
            chosen = self._select_top_level(graph)

        if chosen is None:
            logger.info("No eligible work item found")
            return None

        logger.info(f"Next work item: {chosen.item_id} - {chosen.title}")
        return annotate_complexity(chosen, complexity_report)

    # =========================================================================
    # PHASE A - SUBTASKS OF IN-PROGRESS TASKS
    # =========================================================================

    def subtask_candidates(self, graph: DependencyGraph) -> list[WorkItem]:
        """Eligible subtasks of in-progress parents, in selection order."""
        candidates: list[WorkItem] = []

        for parent in graph.roots:
            if parent.status != TaskStatus.IN_PROGRESS:
                continue
            for subtask in parent.iter_subtasks():
                if subtask.status not in ACTIVE_STATUSES:
                    continue
                deps = graph.dependencies_of(subtask)
                if not graph.is_ready(subtask):
                    continue
                candidates.append(
                    subtask.model_copy(
                        update={
                            "title": subtask.title or f"Subtask {subtask.id}",
                            "priority": subtask.priority or parent.priority or Priority.MEDIUM,
                            "dependencies": [str(dep) for dep in deps],
                        }
                    )
                )

        candidates.sort(key=self._subtask_sort_key)
        return candidates

    @staticmethod
    def _subtask_sort_key(item: WorkItem) -> tuple[int, int, int, int]:
        return (
            -item.effective_priority.weight,
            len(item.dependencies),
            item.parent_id or 0,
            item.id,
        )

    def _select_subtask(self, graph: DependencyGraph) -> WorkItem | None:
        candidates = self.subtask_candidates(graph)
        if candidates:
            logger.debug(f"Found {len(candidates)} eligible subtasks of in-progress tasks")
            return candidates[0]
        return None

    # =========================================================================
    # PHASE B - TOP-LEVEL TASKS
    # =========================================================================

    def top_level_candidates(self, graph: DependencyGraph) -> list[WorkItem]:
        """Eligible top-level items, in selection order."""
        roots = graph.roots
        eligible = [
            item for item in roots
            if item.status in ACTIVE_STATUSES and graph.is_ready(item)
        ]

        def sort_key(item: WorkItem) -> tuple[int, int, int, int]:
            return (
                -requirement_priority(item, roots),
                -item.effective_priority.weight,
                len(item.dependencies),
                item.id,
            )

        return sorted(eligible, key=sort_key)

    def _select_top_level(self, graph: DependencyGraph) -> WorkItem | None:
        candidates = self.top_level_candidates(graph)
        if not candidates:
            return None
        logger.debug(f"Found {len(candidates)} eligible top-level tasks")
        return candidates[0].model_copy(deep=True)

    def ready_ids(self, items: Sequence[WorkItem]) -> list[ItemId]:
        """Ids of every eligible item across both phases."""
        graph = DependencyGraph(items)
        graph.validate()
        return [c.item_id for c in self.subtask_candidates(graph)] + [
            c.item_id for c in self.top_level_candidates(graph)
        ]


def select_next(
    items: Sequence[WorkItem],
    complexity_report: ComplexityReport | None = None,
) -> WorkItem | None:
    """
    Convenience function to select the next work item.

    Example:
        >>> select_next(tasks).id
        1
    """
    return NextItemSelector().select(items, complexity_report)
