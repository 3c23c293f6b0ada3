"""Requirement status cascade.

When work items change status, the requirement documents they trace back
to are re-derived from the current statuses of *all* their linked items.
Because the derivation never looks at the change itself, applying it
repeatedly or out of order converges on the same result.
"""

from collections.abc import Iterable, Sequence

from loguru import logger

from taskhero.scheduling.graph import DependencyGraph
from taskhero.scheduling.ids import RawId
from taskhero.scheduling.models import (
    COMPLETE_STATUSES,
    RequirementDocument,
    RequirementStatus,
    RequirementStatusChange,
    RequirementTaskStats,
    TaskStatus,
    WorkItem,
)
from taskhero.scheduling.services import TaskRepository

DEFAULT_TRIGGER_STATUSES = frozenset(
    {TaskStatus.IN_PROGRESS, TaskStatus.DONE, TaskStatus.PENDING}
)


def _coerce_status(status: str | TaskStatus) -> TaskStatus | None:
    if isinstance(status, TaskStatus):
        return status
    try:
        return TaskStatus(status.strip().lower())
    except ValueError:
        return None


def linked_items(
    requirement: RequirementDocument,
    items: Iterable[WorkItem],
) -> list[WorkItem]:
    """Top-level items that trace back to ``requirement``."""
    return [item for item in items if requirement.owns(item)]


def derive_requirement_status(
    current: RequirementStatus,
    items: Sequence[WorkItem],
) -> RequirementStatus:
    """
    Derive a requirement's status from its linked items.

    Rules, in order:
    - no linked items: pending
    - every item done: done
    - any item in progress: in-progress
    - every item pending: pending
    - otherwise keep the current status, except that done falls back to
      in-progress

    Args:
        current: Stored status of the requirement.
        items: Items linked to the requirement.

    Returns:
        The derived RequirementStatus.
    """
    if not items:
        return RequirementStatus.PENDING

    statuses = [item.status for item in items]
    if all(status in COMPLETE_STATUSES for status in statuses):
        return RequirementStatus.DONE
    if any(status == TaskStatus.IN_PROGRESS for status in statuses):
        return RequirementStatus.IN_PROGRESS
    if all(status == TaskStatus.PENDING for status in statuses):
        return RequirementStatus.PENDING
    if current == RequirementStatus.DONE:
        return RequirementStatus.IN_PROGRESS
    return current


def requirement_stats(
    requirement: RequirementDocument,
    items: Iterable[WorkItem],
) -> RequirementTaskStats:
    """Aggregate task counts for a requirement document."""
    linked = linked_items(requirement, items)
    total = len(linked)

    def count(*statuses: TaskStatus) -> int:
        return sum(1 for item in linked if item.status in statuses)

    completed = count(TaskStatus.DONE, TaskStatus.COMPLETED)
    return RequirementTaskStats(
        total_tasks=total,
        completed_tasks=completed,
        pending_tasks=count(TaskStatus.PENDING),
        in_progress_tasks=count(TaskStatus.IN_PROGRESS),
        blocked_tasks=count(TaskStatus.BLOCKED),
        deferred_tasks=count(TaskStatus.DEFERRED),
        cancelled_tasks=count(TaskStatus.CANCELLED),
        completion_percentage=round(completed / total * 100) if total else 0,
    )


class StatusCascade:
    """
    Propagate item status changes to requirement documents.

    Callers invoke :meth:`cascade` on every status change; statuses
    outside the trigger list are ignored. Archived requirements are never
    recomputed, and neither are requirements whose status was pinned by
    hand unless ``allow_manual_override`` is set.

    Example:
        >>> cascade = StatusCascade(repository)
        >>> changes = cascade.cascade(["3"], "done", tasks)
        >>> [(c.requirement_id, c.new_status) for c in changes]
        [('prd_001', <RequirementStatus.DONE: 'done'>)]
    """

    def __init__(
        self,
        repository: TaskRepository | None = None,
        trigger_statuses: Iterable[str | TaskStatus] | None = None,
        allow_manual_override: bool = False,
    ) -> None:
        """
        Initialize the cascade.

        Args:
            repository: Optional repository supplying requirement
                documents and receiving status changes.
            trigger_statuses: Item statuses that trigger a cascade.
            allow_manual_override: Also recompute requirements carrying
                ``manualStatusOverride``.
        """
        self.repository = repository
        self.allow_manual_override = allow_manual_override
        if trigger_statuses is None:
            self.trigger_statuses = set(DEFAULT_TRIGGER_STATUSES)
        else:
            self.trigger_statuses = {
                s if isinstance(s, TaskStatus) else TaskStatus(s.strip().lower())
                for s in trigger_statuses
            }

    def is_trigger(self, status: str | TaskStatus) -> bool:
        """Check whether a status change should cascade."""
        return _coerce_status(status) in self.trigger_statuses

    def cascade(
        self,
        changed_ids: Iterable[RawId],
        new_status: str | TaskStatus,
        items: Sequence[WorkItem],
        requirements: Sequence[RequirementDocument] | None = None,
    ) -> list[RequirementStatusChange]:
        """
        Re-derive the requirements affected by a status change.

        Args:
            changed_ids: Ids of the items whose status changed.
            new_status: Status they were set to.
            items: Current snapshot of all top-level items.
            requirements: Requirement documents; loaded from the
                repository when omitted.

        Returns:
            Status changes, one per requirement whose derived status
            differs from the stored one. Changes are also written back
            through the repository when one is configured.

        Raises:
            InvalidItemIdError: If a changed id is malformed.
            UnknownWorkItemError: If a changed id is not in the snapshot.
        """
        changed_ids = list(changed_ids)
        status = _coerce_status(new_status)
        if status not in self.trigger_statuses:
            logger.debug(
                f"Skipping requirement cascade - status '{new_status}' not in trigger list"
            )
            return []

        if requirements is None:
            requirements = self.repository.load_requirements() if self.repository else []
        if not requirements:
            return []

        graph = DependencyGraph(items)
        affected: list[RequirementDocument] = []
        seen: set[str] = set()
        for raw_id in changed_ids:
            owner = graph.owner_of(raw_id)
            if owner.requirement_source is None:
                logger.debug(f"Work item {raw_id} has no requirement source")
                continue
            for requirement in requirements:
                if requirement.owns(owner) and requirement.id not in seen:
                    seen.add(requirement.id)
                    affected.append(requirement)

        logger.info(
            f"Requirement cascade for items {', '.join(str(i) for i in changed_ids)} "
            f"-> {status.value}: {len(affected)} requirement(s) affected"
        )
        return self._rederive(affected, graph.roots)

    def cascade_all(
        self,
        items: Sequence[WorkItem],
        requirements: Sequence[RequirementDocument] | None = None,
    ) -> list[RequirementStatusChange]:
        """Re-derive every requirement regardless of what changed."""
        if requirements is None:
            requirements = self.repository.load_requirements() if self.repository else []
        changes = self._rederive(list(requirements), list(items))
        logger.info(
            f"Batch requirement status update: {len(changes)} updated, "
            f"{len(requirements) - len(changes)} unchanged"
        )
        return changes

    def _rederive(
        self,
        requirements: Sequence[RequirementDocument],
        items: Sequence[WorkItem],
    ) -> list[RequirementStatusChange]:
        changes: list[RequirementStatusChange] = []

        for requirement in requirements:
            if requirement.status == RequirementStatus.ARCHIVED:
                logger.debug(f"Requirement {requirement.id} is archived, skipping")
                continue
            if requirement.manual_status_override and not self.allow_manual_override:
                logger.debug(f"Requirement {requirement.id} has a manual status override, skipping")
                continue

            linked = linked_items(requirement, items)
            derived = derive_requirement_status(requirement.status, linked)
            if derived == requirement.status:
                continue

            change = RequirementStatusChange(
                requirement_id=requirement.id,
                previous_status=requirement.status,
                new_status=derived,
                linked_tasks=len(linked),
            )
            if self.repository is not None:
                self.repository.apply_status_change(change)
            logger.info(
                f"Requirement {requirement.id} status {change.previous_status.value} "
                f"-> {change.new_status.value}"
            )
            changes.append(change)

        return changes


def cascade(
    changed_ids: Iterable[RawId],
    new_status: str | TaskStatus,
    items: Sequence[WorkItem],
    requirements: Sequence[RequirementDocument],
) -> list[RequirementStatusChange]:
    """Convenience function running a cascade without write-back."""
    return StatusCascade().cascade(changed_ids, new_status, items, requirements)
