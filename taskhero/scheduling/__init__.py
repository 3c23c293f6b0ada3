"""Task scheduling - selection, complexity, expansion and status cascade.

This module provides the scheduling engine:
- Work item ids and models (tasks, subtasks, requirement documents)
- Dependency graph (readiness and reference validation)
- Complexity scoring (text -> 0-100 score -> subtask count)
- Next item selection (subtasks of active tasks first, then top-level)
- Automatic expansion of complex items
- Requirement status cascade
"""

from taskhero.scheduling.cascade import (
    StatusCascade,
    derive_requirement_status,
    requirement_stats,
)
from taskhero.scheduling.complexity import (
    AnalysisMethod,
    ComplexityAnalysis,
    ComplexityAssessment,
    ComplexityBreakdown,
    ComplexityScorer,
    ScoringConfig,
    ScoringWeights,
    score_item,
)
from taskhero.scheduling.expansion import (
    ExpansionCandidate,
    ExpansionOrchestrator,
    ExpansionRunReport,
    ExpansionStage,
    ItemExpansionResult,
    ItemState,
)
from taskhero.scheduling.graph import DependencyGraph, completed_set, iter_work_items
from taskhero.scheduling.ids import (
    ItemId,
    SubtaskId,
    TopLevelId,
    normalize_subtask_dependency,
    parse_item_id,
)
from taskhero.scheduling.models import (
    ComplexityReport,
    Priority,
    RequirementDocument,
    RequirementSource,
    RequirementStatus,
    RequirementStatusChange,
    RequirementTaskStats,
    TaskComplexity,
    TaskStatus,
    WorkItem,
)
from taskhero.scheduling.selector import (
    NextItemSelector,
    requirement_priority,
    select_next,
)
from taskhero.scheduling.services import (
    DecompositionService,
    ExpansionDirective,
    TaskRepository,
)
from taskhero.scheduling.storage import InMemoryTaskRepository, JsonTaskRepository

__all__ = [
    # Ids
    "ItemId",
    "SubtaskId",
    "TopLevelId",
    "normalize_subtask_dependency",
    "parse_item_id",
    # Models
    "ComplexityReport",
    "Priority",
    "RequirementDocument",
    "RequirementSource",
    "RequirementStatus",
    "RequirementStatusChange",
    "RequirementTaskStats",
    "TaskComplexity",
    "TaskStatus",
    "WorkItem",
    # Dependency Graph
    "DependencyGraph",
    "completed_set",
    "iter_work_items",
    # Complexity
    "AnalysisMethod",
    "ComplexityAnalysis",
    "ComplexityAssessment",
    "ComplexityBreakdown",
    "ComplexityScorer",
    "ScoringConfig",
    "ScoringWeights",
    "score_item",
    # Selection
    "NextItemSelector",
    "requirement_priority",
    "select_next",
    # Expansion
    "ExpansionCandidate",
    "ExpansionOrchestrator",
    "ExpansionRunReport",
    "ExpansionStage",
    "ItemExpansionResult",
    "ItemState",
    # Status Cascade
    "StatusCascade",
    "derive_requirement_status",
    "requirement_stats",
    # Collaborators
    "DecompositionService",
    "ExpansionDirective",
    "InMemoryTaskRepository",
    "JsonTaskRepository",
    "TaskRepository",
]
