"""
Automatic expansion of complex work items.

After a batch of work items is created (for example by decomposing a
requirement document) the orchestrator scores the batch, picks the items
that are complex enough to be split, and asks the decomposition service
to expand them one at a time. Every item gets its own result; a failed
item never stops the batch, and the run report is always returned.
"""

import asyncio
import time
from collections.abc import Callable, Sequence
from datetime import datetime
from enum import Enum
from typing import Any

from loguru import logger

from taskhero.core.config import Settings
from taskhero.scheduling.complexity import (
    AnalysisMethod,
    ComplexityAssessment,
    ComplexityScorer,
)
from taskhero.scheduling.models import ComplexityReport, WorkItem
from taskhero.scheduling.services import (
    DecompositionService,
    ExpansionDirective,
    TaskRepository,
)

# =============================================================================
# STATES
# =============================================================================


class ExpansionStage(str, Enum):
    """Stage of an expansion run."""

    ANALYZING = "analyzing"
    IDENTIFYING = "identifying"
    EXPANDING = "expanding"
    DONE = "done"


class ItemState(str, Enum):
    """State of a single candidate within a run."""

    QUEUED = "queued"
    EXPANDING = "expanding"
    EXPANDED = "expanded"
    FAILED = "failed"


# =============================================================================
# RESULT MODELS
# =============================================================================


class ExpansionCandidate:
    """An item selected for expansion, with the reason it was selected."""

    def __init__(self, item: WorkItem, assessment: ComplexityAssessment):
        self.item = item
        self.assessment = assessment

    @property
    def item_id(self) -> str:
        return str(self.item.item_id)

    @property
    def method(self) -> AnalysisMethod:
        return self.assessment.method

    @property
    def recommended_subtasks(self) -> int:
        return self.assessment.recommended_subtasks

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "title": self.item.title,
            "method": self.method.value,
            "score": self.assessment.score,
            "recommended_subtasks": self.recommended_subtasks,
            "reason": self.assessment.reason,
        }


class ItemExpansionResult:
    """Outcome of expanding one candidate."""

    def __init__(
        self,
        item_id: str,
        method: AnalysisMethod,
        state: ItemState = ItemState.QUEUED,
        requested_subtasks: int = 0,
        subtasks: list[WorkItem] | None = None,
        error: str | None = None,
        duration_seconds: float = 0.0,
    ):
        self.item_id = item_id
        self.method = method
        self.state = state
        self.requested_subtasks = requested_subtasks
        self.subtasks = subtasks or []
        self.error = error
        self.duration_seconds = duration_seconds
        self.completed_at: str | None = None

    @property
    def success(self) -> bool:
        return self.state == ItemState.EXPANDED

    @property
    def attempted(self) -> bool:
        return self.state in (ItemState.EXPANDED, ItemState.FAILED)

    @property
    def subtasks_created(self) -> int:
        return len(self.subtasks)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "item_id": self.item_id,
            "method": self.method.value,
            "state": self.state.value,
            "success": self.success,
            "requested_subtasks": self.requested_subtasks,
            "subtasks_created": self.subtasks_created,
            "error": self.error,
            "duration_seconds": self.duration_seconds,
            "completed_at": self.completed_at,
        }


class ExpansionRunReport:
    """Summary of one expansion run.

    This is the single surface for partial failure: callers inspect
    :attr:`failed_items` to decide what to retry.
    """

    def __init__(self) -> None:
        self.stage = ExpansionStage.ANALYZING
        self.stage_history: list[ExpansionStage] = [ExpansionStage.ANALYZING]
        self.skipped = False
        self.cancelled = False
        self.analysis_used = False
        self.analysis_error: str | None = None
        self.error: str | None = None
        self.candidates: list[ExpansionCandidate] = []
        self.results: list[ItemExpansionResult] = []
        self.started_at = datetime.utcnow().isoformat()
        self.completed_at: str | None = None
        self.total_duration_seconds = 0.0

    def advance(self, stage: ExpansionStage) -> None:
        self.stage = stage
        self.stage_history.append(stage)

    @property
    def total_candidates(self) -> int:
        return len(self.candidates)

    @property
    def expanded_items(self) -> list[str]:
        """Ids of successfully expanded items."""
        return [r.item_id for r in self.results if r.success]

    @property
    def failed_items(self) -> list[str]:
        """Ids of items whose expansion failed."""
        return [r.item_id for r in self.results if r.state == ItemState.FAILED]

    @property
    def total_expanded(self) -> int:
        return len(self.expanded_items)

    @property
    def total_failed(self) -> int:
        return len(self.failed_items)

    @property
    def total_subtasks_created(self) -> int:
        return sum(r.subtasks_created for r in self.results if r.success)

    @property
    def average_latency_seconds(self) -> float:
        """Mean duration of every attempted expansion."""
        attempted = [r for r in self.results if r.attempted]
        if not attempted:
            return 0.0
        return sum(r.duration_seconds for r in attempted) / len(attempted)

    @property
    def method_breakdown(self) -> dict[str, int]:
        """How many candidates used rich analysis vs. the heuristic."""
        breakdown = {method.value: 0 for method in AnalysisMethod}
        for candidate in self.candidates:
            breakdown[candidate.method.value] += 1
        return breakdown

    def get_result(self, item_id: str) -> ItemExpansionResult | None:
        return next((r for r in self.results if r.item_id == str(item_id)), None)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "stage": self.stage.value,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "analysis_used": self.analysis_used,
            "analysis_error": self.analysis_error,
            "error": self.error,
            "total_candidates": self.total_candidates,
            "total_expanded": self.total_expanded,
            "total_failed": self.total_failed,
            "total_subtasks_created": self.total_subtasks_created,
            "average_latency_seconds": self.average_latency_seconds,
            "method_breakdown": self.method_breakdown,
            "candidates": [c.to_dict() for c in self.candidates],
            "results": [r.to_dict() for r in self.results],
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "total_duration_seconds": self.total_duration_seconds,
        }


# =============================================================================
# ORCHESTRATOR
# =============================================================================


ExpansionCallback = Callable[[ItemExpansionResult], None]


class ExpansionOrchestrator:
    """
    Run the analyze -> identify -> expand pipeline over a batch.

    Expansion is strictly sequential: each decomposition may write new
    subtasks that change what the next call sees, and the service gives
    no isolation between concurrent calls for the same project.

    Example:
        >>> orchestrator = ExpansionOrchestrator(service, repository=repo)
        >>> report = await orchestrator.run(new_tasks)
        >>> print(f"Expanded {report.total_expanded}/{report.total_candidates}")
    """

    def __init__(
        self,
        service: DecompositionService,
        repository: TaskRepository | None = None,
        scorer: ComplexityScorer | None = None,
        analysis_timeout: float = 120.0,
        expansion_timeout: float = 300.0,
        context_prefix: str = "Auto-expanded during PRD parsing.",
        auto_expand: bool = True,
    ):
        """
        Initialize the orchestrator.

        Args:
            service: Decomposition/analysis service.
            repository: Optional repository receiving new subtasks.
            scorer: Fallback complexity scorer.
            analysis_timeout: Timeout for the analysis call in seconds.
            expansion_timeout: Timeout per item expansion in seconds.
            context_prefix: Provenance text opening every directive.
            auto_expand: Default for ``run`` when the caller passes no flag.
        """
        self.service = service
        self.repository = repository
        self.scorer = scorer or ComplexityScorer()
        self.analysis_timeout = analysis_timeout
        self.expansion_timeout = expansion_timeout
        self.context_prefix = context_prefix
        self.auto_expand = auto_expand
        self._callbacks: list[ExpansionCallback] = []

    @classmethod
    def from_settings(
        cls,
        service: DecompositionService,
        settings: Settings,
        repository: TaskRepository | None = None,
    ) -> "ExpansionOrchestrator":
        """Build an orchestrator from application settings."""
        return cls(
            service=service,
            repository=repository,
            scorer=ComplexityScorer.from_settings(settings),
            analysis_timeout=settings.analysis_timeout,
            expansion_timeout=settings.expansion_timeout,
            auto_expand=settings.auto_expand,
        )

    def add_callback(self, callback: ExpansionCallback) -> None:
        """Add a callback invoked after each item finishes."""
        self._callbacks.append(callback)

    def _emit_callback(self, result: ItemExpansionResult) -> None:
        for callback in self._callbacks:
            try:
                callback(result)
            except Exception as e:
                logger.warning(f"Callback error: {e}")

    async def run(
        self,
        items: Sequence[WorkItem],
        auto_expand: bool | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ExpansionRunReport:
        """
        Run the full pipeline over a batch of new items.

        Args:
            items: Newly created top-level items.
            auto_expand: Caller's auto-expand flag, defaulting to the
                orchestrator's own; when False the run is skipped and an
                empty report is returned.
            cancel_event: Checked between steps and between items; once
                set, remaining candidates stay queued.

        Returns:
            ExpansionRunReport, never raises once the run has started.
        """
        report = ExpansionRunReport()
        start = time.monotonic()

        if auto_expand is None:
            auto_expand = self.auto_expand
        if not auto_expand:
            logger.debug("Auto-expansion disabled, skipping")
            report.skipped = True
            return self._finish(report, start)

        try:
            complexity_report = await self._analyze(items, report)
            if self._cancelled(cancel_event, report):
                return self._finish(report, start)

            report.advance(ExpansionStage.IDENTIFYING)
            report.candidates = self.identify(items, complexity_report)
            report.results = [
                ItemExpansionResult(
                    item_id=c.item_id,
                    method=c.method,
                    requested_subtasks=c.recommended_subtasks,
                )
                for c in report.candidates
            ]
            self._log_candidates(report.candidates)
            if self._cancelled(cancel_event, report):
                return self._finish(report, start)

            report.advance(ExpansionStage.EXPANDING)
            total = len(report.candidates)
            for index, (candidate, result) in enumerate(
                zip(report.candidates, report.results, strict=True), start=1
            ):
                if self._cancelled(cancel_event, report):
                    break
                logger.info(
                    f"{index}/{total} Expanding item {candidate.item_id} "
                    f"(score: {candidate.assessment.score_display})"
                )
                await self._expand_candidate(candidate, result)
                self._emit_callback(result)

        except Exception as e:
            logger.exception(f"Error in auto-expansion process: {e}")
            report.error = str(e)

        return self._finish(report, start)

    # =========================================================================
    # STAGES
    # =========================================================================

    async def _analyze(
        self,
        items: Sequence[WorkItem],
        report: ExpansionRunReport,
    ) -> ComplexityReport | None:
        """Run the rich analysis; any failure degrades to heuristic mode."""
        logger.info(f"Performing complexity analysis on {len(items)} items")
        try:
            complexity_report = await asyncio.wait_for(
                self.service.analyze(items),
                timeout=self.analysis_timeout,
            )
        except TimeoutError:
            report.analysis_error = f"Analysis timed out after {self.analysis_timeout} seconds"
            logger.warning(f"{report.analysis_error}. Using fallback criteria.")
            return None
        except Exception as e:
            report.analysis_error = str(e)
            logger.warning(f"Complexity analysis failed: {e}. Using fallback criteria.")
            return None

        report.analysis_used = True
        logger.info("Complexity analysis completed successfully")
        return complexity_report

    def identify(
        self,
        items: Sequence[WorkItem],
        complexity_report: ComplexityReport | None = None,
    ) -> list[ExpansionCandidate]:
        """
        Select the items that should be expanded.

        Items that already have subtasks are skipped. Candidates are
        ordered by descending score, with analysis scores (0-10) scaled to
        the heuristic's 0-100 range so both kinds compare fairly.

        Args:
            items: Batch of top-level items.
            complexity_report: Optional rich analysis.

        Returns:
            Ordered list of ExpansionCandidate.
        """
        candidates: list[ExpansionCandidate] = []
        for item in items:
            if item.subtasks:
                continue
            assessment = self.scorer.assess(item, complexity_report)
            if assessment.is_complex:
                candidates.append(ExpansionCandidate(item, assessment))

        candidates.sort(key=lambda c: c.assessment.normalized_score, reverse=True)
        return candidates

    def build_directive(self, candidate: ExpansionCandidate) -> ExpansionDirective:
        """Combine provenance text and target subtask count."""
        assessment = candidate.assessment
        num_subtasks = assessment.recommended_subtasks
        context = (
            f"{self.context_prefix} {assessment.reason} "
            f"Recommended {num_subtasks} subtasks based on complexity assessment."
        )
        return ExpansionDirective(num_subtasks=num_subtasks, context=context)

    async def _expand_candidate(
        self,
        candidate: ExpansionCandidate,
        result: ItemExpansionResult,
    ) -> None:
        """Expand one candidate, recording success or failure on ``result``."""
        directive = self.build_directive(candidate)
        result.state = ItemState.EXPANDING
        start = time.monotonic()

        try:
            subtasks = await asyncio.wait_for(
                self.service.decompose(candidate.item, directive),
                timeout=self.expansion_timeout,
            )
            if self.repository is not None:
                self.repository.apply_new_subtasks(candidate.item.item_id, subtasks)
        except TimeoutError:
            result.state = ItemState.FAILED
            result.error = f"Expansion timed out after {self.expansion_timeout} seconds"
        except Exception as e:
            result.state = ItemState.FAILED
            result.error = str(e) or type(e).__name__
        else:
            result.state = ItemState.EXPANDED
            result.subtasks = list(subtasks)

        result.duration_seconds = time.monotonic() - start
        result.completed_at = datetime.utcnow().isoformat()

        if result.success:
            logger.success(
                f"Expanded item {result.item_id} into {result.subtasks_created} subtasks "
                f"({result.duration_seconds * 1000:.0f}ms)"
            )
        else:
            logger.error(
                f"Failed to expand item {result.item_id} after "
                f"{result.duration_seconds * 1000:.0f}ms: {result.error}"
            )

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _cancelled(cancel_event: asyncio.Event | None, report: ExpansionRunReport) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            if not report.cancelled:
                logger.warning("Expansion run cancelled")
            report.cancelled = True
            return True
        return False

    @staticmethod
    def _log_candidates(candidates: list[ExpansionCandidate]) -> None:
        if not candidates:
            logger.info("No items met the complexity threshold for auto-expansion")
            return
        logger.info(f"Found {len(candidates)} complex item(s) suitable for expansion")
        for index, candidate in enumerate(candidates, start=1):
            logger.info(
                f"  {index}. Item {candidate.item_id}: {candidate.item.title} - "
                f"{candidate.assessment.reason} "
                f"(recommended subtasks: {candidate.recommended_subtasks})"
            )

    @staticmethod
    def _finish(report: ExpansionRunReport, start: float) -> ExpansionRunReport:
        report.advance(ExpansionStage.DONE)
        report.total_duration_seconds = time.monotonic() - start
        report.completed_at = datetime.utcnow().isoformat()

        if not report.skipped:
            logger.info(
                f"Auto-expansion complete: {report.total_expanded} expanded, "
                f"{report.total_failed} failed, "
                f"{report.total_subtasks_created} subtasks created "
                f"in {report.total_duration_seconds:.2f}s"
            )
            if report.total_failed:
                logger.warning(f"{report.total_failed} item(s) failed to expand")
        return report
