"""Dependency graph model.

Builds an in-memory view over a snapshot of work items (tasks and their
nested subtasks), answers "is this item unblocked" queries and validates
that every dependency reference resolves.
"""

from collections.abc import Iterable, Iterator

from loguru import logger

from taskhero.core.errors import (
    DependencyValidationError,
    InvalidItemIdError,
    UnknownWorkItemError,
)
from taskhero.scheduling.ids import ItemId, RawId, SubtaskId, parse_item_id
from taskhero.scheduling.models import WorkItem


def iter_work_items(items: Iterable[WorkItem]) -> Iterator[WorkItem]:
    """Yield every top-level item followed by its subtasks.

    Subtasks are yielded with ``parent_id`` filled in.
    """
    for item in items:
        yield item
        yield from item.iter_subtasks()


def completed_set(items: Iterable[WorkItem]) -> set[ItemId]:
    """
    Collect the ids of every complete task and subtask.

    An id is a member iff its status is ``done`` (or the legacy
    ``completed``). Subtask ids are added in dotted form.

    Args:
        items: Top-level work items, subtasks nested.

    Returns:
        Set of TopLevelId / SubtaskId values.

    Example:
        >>> done = completed_set(tasks)
        >>> SubtaskId(5, 1) in done
        True
    """
    return {item.item_id for item in iter_work_items(items) if item.is_complete}


class DependencyGraph:
    """
    Index of work items and their qualified dependency edges.

    Example:
        >>> graph = DependencyGraph(tasks)
        >>> graph.validate()
        >>> graph.is_ready(graph.get("2"))
        True
    """

    def __init__(self, items: Iterable[WorkItem]) -> None:
        """
        Build the graph.

        Args:
            items: Top-level work items, subtasks nested.

        Raises:
            InvalidItemIdError: If a dependency id is malformed.
        """
        self._roots: list[WorkItem] = list(items)
        self._nodes: dict[ItemId, WorkItem] = {}
        self._edges: dict[ItemId, list[ItemId]] = {}

        for item in iter_work_items(self._roots):
            item_id = item.item_id
            if item_id in self._nodes:
                logger.warning(f"Duplicate work item id {item_id}, keeping the first")
                continue
            self._nodes[item_id] = item
            self._edges[item_id] = item.qualified_dependencies()

        self._completed = {
            item_id for item_id, item in self._nodes.items() if item.is_complete
        }

        logger.debug(
            f"Built dependency graph with {len(self._roots)} tasks and "
            f"{len(self._nodes) - len(self._roots)} subtasks"
        )

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    @property
    def roots(self) -> list[WorkItem]:
        """Top-level items in snapshot order."""
        return self._roots

    @property
    def completed(self) -> set[ItemId]:
        """Ids of complete items (see :func:`completed_set`)."""
        return set(self._completed)

    def __contains__(self, item_id: object) -> bool:
        try:
            return parse_item_id(item_id) in self._nodes  # type: ignore[arg-type]
        except InvalidItemIdError:
            return False

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, item_id: RawId) -> WorkItem:
        """
        Get an item by id.

        Raises:
            InvalidItemIdError: If the id is malformed.
            UnknownWorkItemError: If no such item exists.
        """
        parsed = parse_item_id(item_id)
        try:
            return self._nodes[parsed]
        except KeyError:
            raise UnknownWorkItemError(f"Work item {parsed} not found") from None

    def owner_of(self, item_id: RawId) -> WorkItem:
        """Return the top-level item owning ``item_id`` (itself for tasks)."""
        parsed = parse_item_id(item_id)
        if isinstance(parsed, SubtaskId):
            self.get(parsed)
            return self.get(parsed.parent)
        return self.get(parsed)

    def dependencies_of(self, item: WorkItem | RawId) -> list[ItemId]:
        """Qualified dependency ids of an item."""
        item_id = item.item_id if isinstance(item, WorkItem) else parse_item_id(item)
        if item_id not in self._edges:
            raise UnknownWorkItemError(f"Work item {item_id} not found")
        return list(self._edges[item_id])

    def get_dependents(self, item_id: RawId) -> list[ItemId]:
        """Ids of items that list ``item_id`` as a dependency."""
        target = parse_item_id(item_id)
        return [node for node, deps in self._edges.items() if target in deps]

    def is_ready(self, item: WorkItem | RawId, completed: set[ItemId] | None = None) -> bool:
        """
        Check if all of an item's dependencies are complete.

        Args:
            item: Item or item id.
            completed: Completed ids; defaults to the snapshot's own set.
        """
        done = self._completed if completed is None else completed
        return all(dep in done for dep in self.dependencies_of(item))

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def find_problems(self) -> list[str]:
        """Describe every dependency reference that does not resolve."""
        problems: list[str] = []
        for item_id, deps in self._edges.items():
            for dep in deps:
                if dep == item_id:
                    problems.append(f"{item_id} depends on itself")
                elif dep not in self._nodes:
                    problems.append(f"{item_id} depends on unknown item {dep}")
                elif (
                    isinstance(item_id, SubtaskId)
                    and isinstance(dep, SubtaskId)
                    and dep.parent_id > item_id.parent_id
                ):
                    problems.append(
                        f"{item_id} depends on {dep} from a later parent scope"
                    )
        return problems

    def validate(self) -> None:
        """
        Validate that every dependency resolves.

        Raises:
            DependencyValidationError: Listing every bad reference.
        """
        problems = self.find_problems()
        if problems:
            for problem in problems:
                logger.error(problem)
            raise DependencyValidationError(problems)
