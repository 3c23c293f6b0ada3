"""Exception hierarchy for TaskHero."""


class TaskHeroError(Exception):
    """Base exception for TaskHero errors."""

    pass


class InvalidItemIdError(TaskHeroError, ValueError):
    """A work item id could not be parsed."""

    pass


class DependencyValidationError(TaskHeroError, ValueError):
    """One or more dependency references do not resolve.

    Attributes:
        problems: Human-readable description of every bad reference.
    """

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("Invalid dependencies: " + "; ".join(problems))


class UnknownWorkItemError(TaskHeroError, LookupError):
    """A referenced work item does not exist in the snapshot."""

    pass


class ServiceError(TaskHeroError):
    """The analysis or decomposition service failed."""

    pass
