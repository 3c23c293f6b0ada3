"""
TaskHero - task scheduling and dependency resolution.

Picks the next task to work on, scores tasks for complexity, expands
complex tasks into subtasks and keeps requirement documents in sync with
the status of their tasks.
"""

__version__ = "0.1.0"

from taskhero.scheduling import (
    ExpansionOrchestrator,
    NextItemSelector,
    StatusCascade,
    WorkItem,
    select_next,
)

__all__ = [
    "ExpansionOrchestrator",
    "NextItemSelector",
    "StatusCascade",
    "WorkItem",
    "__version__",
    "select_next",
]
