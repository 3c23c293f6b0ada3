"""Work item identifiers.

Top-level tasks are addressed by a scalar id (``7``) and subtasks by a
dotted composite id (``"7.2"``). Both are modelled as small immutable
values so that parsing, normalization and ordering live in one place
instead of being re-implemented with ad-hoc string splitting.
"""

from dataclasses import dataclass

from taskhero.core.errors import InvalidItemIdError


@dataclass(frozen=True, order=True)
class TopLevelId:
    """Identifier of a top-level task."""

    value: int

    @property
    def parent(self) -> None:
        return None

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.value, 0)

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True, order=True)
class SubtaskId:
    """Identifier of a subtask, ``<parent>.<sub>``."""

    parent_id: int
    sub_id: int

    @property
    def parent(self) -> TopLevelId:
        return TopLevelId(self.parent_id)

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.parent_id, self.sub_id)

    def __str__(self) -> str:
        return f"{self.parent_id}.{self.sub_id}"


ItemId = TopLevelId | SubtaskId

RawId = int | str | TopLevelId | SubtaskId


def _to_int(part: str, raw: object) -> int:
    part = part.strip()
    if not (part.isascii() and part.isdigit()):
        raise InvalidItemIdError(f"Malformed work item id: {raw!r}")
    return int(part)


def parse_item_id(raw: RawId) -> ItemId:
    """Parse a raw id into a tagged identifier.

    Args:
        raw: An int, a numeric string, a dotted ``"parent.sub"`` string,
            or an already parsed identifier.

    Returns:
        TopLevelId or SubtaskId.

    Raises:
        InvalidItemIdError: If the value is not a valid id.

    Example:
        >>> parse_item_id("5.2")
        SubtaskId(parent_id=5, sub_id=2)
        >>> parse_item_id(3)
        TopLevelId(value=3)
    """
    if isinstance(raw, (TopLevelId, SubtaskId)):
        return raw
    if isinstance(raw, bool):
        raise InvalidItemIdError(f"Malformed work item id: {raw!r}")
    if isinstance(raw, int):
        if raw < 0:
            raise InvalidItemIdError(f"Malformed work item id: {raw!r}")
        return TopLevelId(raw)
    if not isinstance(raw, str):
        raise InvalidItemIdError(f"Malformed work item id: {raw!r}")

    parts = raw.split(".")
    if len(parts) == 1:
        return TopLevelId(_to_int(parts[0], raw))
    if len(parts) == 2:
        return SubtaskId(_to_int(parts[0], raw), _to_int(parts[1], raw))
    raise InvalidItemIdError(f"Malformed work item id: {raw!r}")


def normalize_subtask_dependency(parent_id: int, raw: RawId) -> ItemId:
    """Qualify a subtask dependency relative to its parent.

    A bare sub-id (``1`` or ``"1"``) becomes ``SubtaskId(parent_id, 1)``;
    dotted ids are returned as parsed.

    Example:
        >>> str(normalize_subtask_dependency(5, "1"))
        '5.1'
        >>> str(normalize_subtask_dependency(5, "3.2"))
        '3.2'
    """
    parsed = parse_item_id(raw)
    if isinstance(parsed, TopLevelId):
        return SubtaskId(parent_id, parsed.value)
    return parsed
