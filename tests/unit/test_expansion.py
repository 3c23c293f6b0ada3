"""Unit tests for the expansion orchestrator."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from taskhero.core.config import Settings
from taskhero.core.errors import ServiceError
from taskhero.scheduling.complexity import AnalysisMethod, ComplexityScorer, ScoringConfig
from taskhero.scheduling.expansion import (
    ExpansionOrchestrator,
    ExpansionRunReport,
    ExpansionStage,
    ItemExpansionResult,
    ItemState,
)
from taskhero.scheduling.models import ComplexityReport, WorkItem
from taskhero.scheduling.storage import InMemoryTaskRepository

# =============================================================================
# FIXTURES
# =============================================================================


def analysis_report(*entries: tuple[int, float, int]) -> ComplexityReport:
    """Build a report from (task id, score, recommended subtasks) tuples."""
    return ComplexityReport.model_validate(
        {
            "complexityAnalysis": [
                {
                    "taskId": task_id,
                    "complexityScore": score,
                    "recommendedSubtasks": subtasks,
                    "reasoning": f"Reasoning for {task_id}.",
                }
                for task_id, score, subtasks in entries
            ]
        }
    )


@pytest.fixture
def batch() -> list[WorkItem]:
    """A freshly created batch of items."""
    return [
        WorkItem(id=1, title="Auth service"),
        WorkItem(id=2, title="Billing service"),
        WorkItem(id=3, title="Search service"),
        WorkItem(id=4, title="Fix typo"),
    ]


@pytest.fixture
def report() -> ComplexityReport:
    return analysis_report((1, 6, 3), (2, 9, 5), (3, 7, 4), (4, 2, 1))


@pytest.fixture
def service(report: ComplexityReport) -> MagicMock:
    """Decomposition service returning one subtask per requested slot."""

    async def decompose(item, directive):
        return [WorkItem(id=i, title=f"{item.title} {i}") for i in range(1, directive.num_subtasks + 1)]

    service = MagicMock()
    service.analyze = AsyncMock(return_value=report)
    service.decompose = AsyncMock(side_effect=decompose)
    return service


def decomposed_ids(service: MagicMock) -> list[int]:
    return [call.args[0].id for call in service.decompose.await_args_list]


# =============================================================================
# RESULT MODELS
# =============================================================================


class TestItemExpansionResult:
    """Tests for ItemExpansionResult."""

    def test_defaults(self) -> None:
        """Test a fresh result is queued."""
        result = ItemExpansionResult(item_id="1", method=AnalysisMethod.HEURISTIC)

        assert result.state == ItemState.QUEUED
        assert result.success is False
        assert result.attempted is False
        assert result.subtasks_created == 0

    def test_to_dict(self) -> None:
        """Test conversion to dictionary."""
        result = ItemExpansionResult(
            item_id="3",
            method=AnalysisMethod.ANALYSIS,
            state=ItemState.EXPANDED,
            subtasks=[WorkItem(id=1), WorkItem(id=2)],
            duration_seconds=0.5,
        )

        d = result.to_dict()

        assert d["item_id"] == "3"
        assert d["method"] == "analysis"
        assert d["state"] == "expanded"
        assert d["success"] is True
        assert d["subtasks_created"] == 2
        assert "completed_at" in d


class TestExpansionRunReport:
    """Tests for ExpansionRunReport aggregates."""

    def test_aggregates(self) -> None:
        """Test totals and latency over attempted items."""
        report = ExpansionRunReport()
        report.results = [
            ItemExpansionResult(
                "1", AnalysisMethod.ANALYSIS, ItemState.EXPANDED,
                subtasks=[WorkItem(id=1)], duration_seconds=1.0,
            ),
            ItemExpansionResult(
                "2", AnalysisMethod.ANALYSIS, ItemState.FAILED,
                error="boom", duration_seconds=3.0,
            ),
            ItemExpansionResult("3", AnalysisMethod.HEURISTIC),
        ]

        assert report.expanded_items == ["1"]
        assert report.failed_items == ["2"]
        assert report.total_subtasks_created == 1
        assert report.average_latency_seconds == 2.0
        assert report.get_result("2").error == "boom"
        assert report.get_result("9") is None

    def test_empty(self) -> None:
        """Test an empty report."""
        report = ExpansionRunReport()

        assert report.average_latency_seconds == 0.0
        assert report.method_breakdown == {"analysis": 0, "heuristic": 0}
        assert report.to_dict()["total_candidates"] == 0


# =============================================================================
# ORCHESTRATOR
# =============================================================================


class TestExpansionOrchestrator:
    """Tests for ExpansionOrchestrator.run."""

    @pytest.mark.asyncio
    async def test_skipped_when_disabled(self, service: MagicMock, batch: list[WorkItem]) -> None:
        """Test auto_expand=False does nothing."""
        report = await ExpansionOrchestrator(service).run(batch, auto_expand=False)

        assert report.skipped is True
        assert report.stage == ExpansionStage.DONE
        service.analyze.assert_not_awaited()
        service.decompose.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expands_in_score_order(self, service: MagicMock, batch: list[WorkItem]) -> None:
        """Test candidates are expanded sequentially, highest score first."""
        report = await ExpansionOrchestrator(service).run(batch)

        assert decomposed_ids(service) == [2, 3, 1]
        assert report.stage_history == [
            ExpansionStage.ANALYZING,
            ExpansionStage.IDENTIFYING,
            ExpansionStage.EXPANDING,
            ExpansionStage.DONE,
        ]
        assert report.analysis_used is True
        assert report.total_candidates == 3
        assert report.total_expanded == 3
        assert report.total_failed == 0
        assert report.total_subtasks_created == 5 + 4 + 3
        assert report.method_breakdown == {"analysis": 3, "heuristic": 0}

    @pytest.mark.asyncio
    async def test_directive(self, service: MagicMock, batch: list[WorkItem]) -> None:
        """Test the directive carries provenance and the target count."""
        await ExpansionOrchestrator(service).run(batch)

        item, directive = service.decompose.await_args_list[0].args
        assert item.id == 2
        assert directive.num_subtasks == 5
        assert directive.context == (
            "Auto-expanded during PRD parsing. Complexity analysis score: 9/10. "
            "Reasoning for 2. Recommended 5 subtasks based on complexity assessment."
        )
        assert directive.to_prompt().startswith("Auto-expanded during PRD parsing.")
        assert directive.to_prompt().endswith("\nGenerate 5 subtasks.")

    @pytest.mark.asyncio
    async def test_partial_failure(self, service: MagicMock, batch: list[WorkItem]) -> None:
        """Test one failing item does not stop the others."""

        async def decompose(item, directive):
            if item.id == 3:
                raise ServiceError("model overloaded")
            return [WorkItem(id=1)]

        service.decompose.side_effect = decompose

        report = await ExpansionOrchestrator(service).run(batch)

        assert report.total_expanded == 2
        assert report.total_failed == 1
        assert report.failed_items == ["3"]
        assert report.get_result("3").error == "model overloaded"
        assert report.get_result("3").state == ItemState.FAILED
        assert report.get_result("1").success is True
        assert report.get_result("2").success is True
        assert report.error is None

    @pytest.mark.asyncio
    async def test_analysis_failure_falls_back(self, service: MagicMock, batch: list[WorkItem]) -> None:
        """Test a failed analysis switches to the heuristic."""
        service.analyze.side_effect = ServiceError("no API key")
        scorer = ComplexityScorer(ScoringConfig(threshold=10))

        report = await ExpansionOrchestrator(service, scorer=scorer).run(batch)

        assert report.analysis_used is False
        assert report.analysis_error == "no API key"
        assert report.total_candidates > 0
        assert report.method_breakdown["heuristic"] == report.total_candidates
        assert report.candidates[0].assessment.reason.startswith("Fallback analysis score:")

    @pytest.mark.asyncio
    async def test_analysis_timeout_falls_back(self, service: MagicMock, batch: list[WorkItem]) -> None:
        """Test a slow analysis times out into heuristic mode."""

        async def slow_analyze(items):
            await asyncio.sleep(1)
            return ComplexityReport()

        service.analyze.side_effect = slow_analyze

        report = await ExpansionOrchestrator(service, analysis_timeout=0.01).run(batch)

        assert report.analysis_used is False
        assert "timed out" in report.analysis_error
        # Short titles never cross the default heuristic threshold
        assert report.total_candidates == 0
        service.decompose.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expansion_timeout_is_item_failure(self, service: MagicMock, batch: list[WorkItem]) -> None:
        """Test a slow decomposition fails only that item."""

        async def decompose(item, directive):
            if item.id == 2:
                await asyncio.sleep(1)
            return [WorkItem(id=1)]

        service.decompose.side_effect = decompose

        report = await ExpansionOrchestrator(service, expansion_timeout=0.01).run(batch)

        assert report.failed_items == ["2"]
        assert "timed out" in report.get_result("2").error
        assert report.expanded_items == ["3", "1"]

    @pytest.mark.asyncio
    async def test_skips_items_with_subtasks(self, service: MagicMock, batch: list[WorkItem]) -> None:
        """Test items that already have children are not candidates."""
        batch[1] = batch[1].model_copy(update={"subtasks": [WorkItem(id=1)]})

        report = await ExpansionOrchestrator(service).run(batch)

        assert [c.item_id for c in report.candidates] == ["3", "1"]

    @pytest.mark.asyncio
    async def test_cancellation_between_items(self, service: MagicMock, batch: list[WorkItem]) -> None:
        """Test cancellation stops before the next item."""
        cancel = asyncio.Event()

        async def decompose(item, directive):
            cancel.set()
            return [WorkItem(id=1)]

        service.decompose.side_effect = decompose

        report = await ExpansionOrchestrator(service).run(batch, cancel_event=cancel)

        assert report.cancelled is True
        assert decomposed_ids(service) == [2]
        assert report.get_result("3").state == ItemState.QUEUED
        assert report.stage == ExpansionStage.DONE

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, service: MagicMock, batch: list[WorkItem]) -> None:
        """Test a pre-set event stops after analysis."""
        cancel = asyncio.Event()
        cancel.set()

        report = await ExpansionOrchestrator(service).run(batch, cancel_event=cancel)

        assert report.cancelled is True
        assert report.total_candidates == 0
        service.decompose.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_writes_back_to_repository(self, service: MagicMock, batch: list[WorkItem]) -> None:
        """Test new subtasks are attached through the repository."""
        repository = InMemoryTaskRepository(batch)

        await ExpansionOrchestrator(service, repository=repository).run(batch)

        stored = {item.id: item for item in repository.load_work_items()}
        assert [st.id for st in stored[2].subtasks] == [1, 2, 3, 4, 5]
        assert all(st.parent_id == 2 for st in stored[2].subtasks)
        assert stored[4].subtasks == []

    @pytest.mark.asyncio
    async def test_repository_failure_is_item_failure(self, service: MagicMock, batch: list[WorkItem]) -> None:
        """Test a failed write-back marks the item failed."""
        repository = MagicMock()
        repository.apply_new_subtasks.side_effect = [None, OSError("disk full"), None]

        report = await ExpansionOrchestrator(service, repository=repository).run(batch)

        assert report.failed_items == ["3"]
        assert report.get_result("3").error == "disk full"
        assert report.total_expanded == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_still_reports(self, service: MagicMock, batch: list[WorkItem]) -> None:
        """Test an error outside item expansion is captured on the report."""
        scorer = MagicMock()
        scorer.assess.side_effect = RuntimeError("scorer crashed")

        report = await ExpansionOrchestrator(service, scorer=scorer).run(batch)

        assert report.error == "scorer crashed"
        assert report.stage == ExpansionStage.DONE

    @pytest.mark.asyncio
    async def test_callbacks(self, service: MagicMock, batch: list[WorkItem]) -> None:
        """Test callbacks fire once per item and errors are contained."""
        seen: list[str] = []
        orchestrator = ExpansionOrchestrator(service)
        orchestrator.add_callback(lambda result: seen.append(result.item_id))
        orchestrator.add_callback(MagicMock(side_effect=ValueError("bad callback")))

        report = await orchestrator.run(batch)

        assert seen == ["2", "3", "1"]
        assert report.total_expanded == 3

    def test_from_settings(self, service: MagicMock, mock_settings: None) -> None:
        """Test settings configure timeouts and thresholds."""
        settings = Settings(analysis_timeout=5, expansion_timeout=30, complexity_threshold=70)

        orchestrator = ExpansionOrchestrator.from_settings(service, settings)

        assert orchestrator.analysis_timeout == 5
        assert orchestrator.expansion_timeout == 30
        assert orchestrator.scorer.config.threshold == 70
        assert orchestrator.auto_expand is False

    @pytest.mark.asyncio
    async def test_settings_auto_expand_disabled(
        self, service: MagicMock, batch: list[WorkItem], mock_settings: None
    ) -> None:
        """Test the configured auto_expand flag is the run default."""
        orchestrator = ExpansionOrchestrator.from_settings(service, Settings(auto_expand=False))

        report = await orchestrator.run(batch)

        assert report.skipped is True
        assert report.total_expanded == 0
        service.analyze.assert_not_awaited()
        service.decompose.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_explicit_flag_overrides_settings(
        self, service: MagicMock, batch: list[WorkItem], mock_settings: None
    ) -> None:
        """Test an explicit run flag wins over the configured default."""
        orchestrator = ExpansionOrchestrator.from_settings(service, Settings(auto_expand=False))

        report = await orchestrator.run(batch, auto_expand=True)

        assert report.skipped is False
        assert report.total_expanded == 3
