"""
Task repositories.

Two implementations of :class:`TaskRepository`:

- :class:`InMemoryTaskRepository` keeps its own copy of a snapshot and is
  used by tests and dry runs.
- :class:`JsonTaskRepository` reads and writes the ``.taskmaster`` project
  files (``tasks.json``, ``prds.json`` and the complexity report), keeping
  any fields it does not model untouched.
"""

import json
from collections.abc import Iterable, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from taskhero.core.config import Settings, get_settings
from taskhero.core.errors import UnknownWorkItemError
from taskhero.scheduling.cascade import requirement_stats
from taskhero.scheduling.ids import ItemId, RawId, SubtaskId, parse_item_id
from taskhero.scheduling.models import (
    ComplexityReport,
    RequirementDocument,
    RequirementStatusChange,
    TaskStatus,
    WorkItem,
)
from taskhero.scheduling.services import TaskRepository


def _next_subtask_id(existing: Iterable[int]) -> int:
    return max(existing, default=0) + 1


def _to_status(status: str | TaskStatus) -> TaskStatus:
    if isinstance(status, TaskStatus):
        return status
    return TaskStatus(status.strip().lower())


class InMemoryTaskRepository(TaskRepository):
    """
    Repository backed by in-process lists.

    The constructor copies its inputs; callers observe write-backs only
    through the ``load_*`` methods.

    Example:
        >>> repo = InMemoryTaskRepository(tasks, prds)
        >>> StatusCascade(repo).cascade(["3"], "done", repo.load_work_items())
    """

    def __init__(
        self,
        items: Sequence[WorkItem] = (),
        requirements: Sequence[RequirementDocument] = (),
        complexity_report: ComplexityReport | None = None,
    ) -> None:
        self._items = [item.model_copy(deep=True) for item in items]
        self._requirements = [req.model_copy(deep=True) for req in requirements]
        self._report = complexity_report
        self.status_changes: list[RequirementStatusChange] = []

    def load_work_items(self) -> list[WorkItem]:
        return [item.model_copy(deep=True) for item in self._items]

    def load_requirements(self) -> list[RequirementDocument]:
        return [req.model_copy(deep=True) for req in self._requirements]

    def load_complexity_report(self) -> ComplexityReport | None:
        return self._report

    def apply_status_change(self, change: RequirementStatusChange) -> None:
        for index, requirement in enumerate(self._requirements):
            if requirement.id == change.requirement_id:
                self._requirements[index] = requirement.model_copy(
                    update={
                        "status": change.new_status,
                        "task_stats": requirement_stats(requirement, self._items),
                    }
                )
                self.status_changes.append(change)
                return
        raise UnknownWorkItemError(f"Requirement {change.requirement_id} not found")

    def apply_new_subtasks(self, parent_id: ItemId, subtasks: Sequence[WorkItem]) -> None:
        parent = self._find(parent_id)
        next_id = _next_subtask_id(st.id for st in parent.subtasks)
        for offset, subtask in enumerate(subtasks):
            parent.subtasks.append(
                subtask.model_copy(update={"id": next_id + offset, "parent_id": parent.id})
            )

    def set_status(self, item_ids: Iterable[RawId], status: str | TaskStatus) -> None:
        """Set the status of tasks or subtasks in place."""
        new_status = _to_status(status)
        for raw_id in item_ids:
            parsed = parse_item_id(raw_id)
            if isinstance(parsed, SubtaskId):
                parent = self._find(parsed.parent)
                target = next((st for st in parent.subtasks if st.id == parsed.sub_id), None)
                if target is None:
                    raise UnknownWorkItemError(f"Work item {parsed} not found")
            else:
                target = self._find(parsed)
            target.status = new_status

    def _find(self, item_id: RawId) -> WorkItem:
        parsed = parse_item_id(item_id)
        if isinstance(parsed, SubtaskId):
            raise UnknownWorkItemError(f"Expected a top-level task id, got {parsed}")
        for item in self._items:
            if item.id == parsed.value:
                return item
        raise UnknownWorkItemError(f"Work item {parsed} not found")


class JsonTaskRepository(TaskRepository):
    """
    Repository over the JSON files of a task project.

    Files are resolved through :class:`Settings` (``tasks_path``,
    ``requirements_path``, ``complexity_report_path``). Missing files read
    as empty. Writes go through a temporary file and a rename.

    Example:
        >>> repo = JsonTaskRepository(Settings(project_root=Path("my-project")))
        >>> tasks = repo.load_work_items()
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    @property
    def tasks_path(self) -> Path:
        return self.settings.tasks_path

    @property
    def requirements_path(self) -> Path:
        return self.settings.requirements_path

    @property
    def complexity_report_path(self) -> Path:
        return self.settings.complexity_report_path

    # =========================================================================
    # RAW FILE ACCESS
    # =========================================================================

    @staticmethod
    def _read_json(path: Path) -> dict[str, Any] | None:
        if not path.exists():
            logger.debug(f"{path} does not exist")
            return None
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _write_json(path: Path, data: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        tmp_path.replace(path)
        logger.debug(f"Wrote {path}")

    def _read_tasks_data(self) -> dict[str, Any]:
        data = self._read_json(self.tasks_path)
        if data is None:
            return {"tasks": []}
        if isinstance(data, list):
            return {"tasks": data}
        data.setdefault("tasks", [])
        return data

    def _read_requirements_data(self) -> dict[str, Any]:
        data = self._read_json(self.requirements_path)
        if data is None:
            return {"prds": []}
        data.setdefault("prds", [])
        return data

    # =========================================================================
    # TaskRepository
    # =========================================================================

    def load_work_items(self) -> list[WorkItem]:
        raw_tasks = self._read_tasks_data()["tasks"]
        items = [WorkItem.model_validate(raw) for raw in raw_tasks]
        logger.debug(f"Loaded {len(items)} tasks from {self.tasks_path}")
        return items

    def load_requirements(self) -> list[RequirementDocument]:
        raw_prds = self._read_requirements_data()["prds"]
        return [RequirementDocument.model_validate(raw) for raw in raw_prds]

    def load_complexity_report(self) -> ComplexityReport | None:
        data = self._read_json(self.complexity_report_path)
        if data is None:
            return None
        return ComplexityReport.model_validate(data)

    def apply_status_change(self, change: RequirementStatusChange) -> None:
        data = self._read_requirements_data()
        raw = next((p for p in data["prds"] if p.get("id") == change.requirement_id), None)
        if raw is None:
            raise UnknownWorkItemError(f"Requirement {change.requirement_id} not found")

        requirement = RequirementDocument.model_validate(raw)
        stats = requirement_stats(requirement, self.load_work_items())

        raw["status"] = change.new_status.value
        raw["statusUpdatedAt"] = change.changed_at.isoformat()
        raw["statusUpdateReason"] = change.reason
        raw["taskStats"] = stats.model_dump(by_alias=True)
        raw["lastModified"] = datetime.utcnow().isoformat()

        metadata = data.get("metadata")
        if isinstance(metadata, dict):
            metadata["lastUpdated"] = datetime.utcnow().isoformat()

        self._write_json(self.requirements_path, data)
        logger.info(
            f"Saved requirement {change.requirement_id} status "
            f"{change.previous_status.value} -> {change.new_status.value}"
        )

    def apply_new_subtasks(self, parent_id: ItemId, subtasks: Sequence[WorkItem]) -> None:
        data = self._read_tasks_data()
        parent = self._find_raw(data, parent_id)

        raw_subtasks = parent.setdefault("subtasks", [])
        next_id = _next_subtask_id(int(st.get("id", 0)) for st in raw_subtasks)
        for offset, subtask in enumerate(subtasks):
            raw = subtask.model_copy(
                update={"id": next_id + offset, "parent_id": parent["id"]}
            ).to_dict()
            raw.pop("subtasks", None)
            raw_subtasks.append(raw)

        self._write_json(self.tasks_path, data)
        logger.info(f"Added {len(subtasks)} subtasks to task {parent_id}")

    def set_status(self, item_ids: Iterable[RawId], status: str | TaskStatus) -> None:
        """
        Set the status of tasks or subtasks and save the tasks file.

        Raises:
            InvalidItemIdError: If an id is malformed.
            UnknownWorkItemError: If an id is not in the tasks file.
        """
        new_status = _to_status(status)
        data = self._read_tasks_data()
        for raw_id in item_ids:
            parsed = parse_item_id(raw_id)
            if isinstance(parsed, SubtaskId):
                parent = self._find_raw(data, parsed.parent)
                target = next(
                    (
                        st
                        for st in parent.get("subtasks", [])
                        if int(st.get("id", -1)) == parsed.sub_id
                    ),
                    None,
                )
                if target is None:
                    raise UnknownWorkItemError(f"Work item {parsed} not found")
            else:
                target = self._find_raw(data, parsed)
            target["status"] = new_status.value
        self._write_json(self.tasks_path, data)

    @staticmethod
    def _find_raw(data: dict[str, Any], item_id: RawId) -> dict[str, Any]:
        parsed = parse_item_id(item_id)
        if isinstance(parsed, SubtaskId):
            raise UnknownWorkItemError(f"Expected a top-level task id, got {parsed}")
        for raw in data["tasks"]:
            if int(raw.get("id", -1)) == parsed.value:
                return raw
        raise UnknownWorkItemError(f"Work item {parsed} not found")
