"""Heuristic complexity scoring.

Maps a work item's text to a 0-100 score from five weighted criteria
(length, keyword density, structure, technical indicators and scope
indicators) and recommends how many subtasks it should be split into.
The vocabulary and thresholds are data (:class:`ScoringConfig`) so they
can be tuned or replaced without touching the algorithm.

When a richer analysis (a :class:`ComplexityReport` entry, 0-10 scale)
exists for an item it takes precedence over the heuristic; see
:meth:`ComplexityScorer.assess`.
"""

import math
import re
from enum import Enum
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, model_validator

from taskhero.core.config import Settings
from taskhero.scheduling.ids import ItemId
from taskhero.scheduling.models import ComplexityReport, TaskComplexity, WorkItem

BULLET_PATTERN = re.compile(r"[•\-\*]\s")
NUMBERED_PATTERN = re.compile(r"\d+\.\s")
SENTENCE_SPLIT = re.compile(r"[.!?]+")


# =============================================================================
# CONFIGURATION
# =============================================================================


class ScoringWeights(BaseModel):
    """Criterion weights; they must add up to 100."""

    length: int = Field(default=25, ge=0)
    keywords: int = Field(default=30, ge=0)
    structure: int = Field(default=20, ge=0)
    technical: int = Field(default=15, ge=0)
    scope: int = Field(default=10, ge=0)

    @model_validator(mode="after")
    def check_total(self) -> "ScoringWeights":
        total = self.length + self.keywords + self.structure + self.technical + self.scope
        if total != 100:
            raise ValueError(f"Scoring weights must sum to 100, got {total}")
        return self


class LengthThresholds(BaseModel):
    """Character counts separating the length buckets."""

    short: int = 100
    medium: int = 250
    long: int = 500
    very_long: int = 1000


class KeywordTier(BaseModel):
    """A group of keywords sharing a weight."""

    weight: int = Field(..., ge=1)
    keywords: list[str] = Field(default_factory=list)


def _default_tiers() -> dict[str, KeywordTier]:
    return {
        "high_complexity": KeywordTier(
            weight=3,
            keywords=[
                "architecture",
                "framework",
                "infrastructure",
                "microservice",
                "distributed",
                "scalable",
                "enterprise",
                "integration",
                "authentication",
                "authorization",
                "security",
                "encryption",
            ],
        ),
        "medium_complexity": KeywordTier(
            weight=2,
            keywords=[
                "implement",
                "develop",
                "design",
                "create",
                "build",
                "configure",
                "setup",
                "establish",
                "database",
                "api",
                "interface",
                "component",
                "module",
                "service",
                "system",
            ],
        ),
        "low_complexity": KeywordTier(
            weight=1,
            keywords=[
                "update",
                "modify",
                "fix",
                "adjust",
                "change",
                "add",
                "remove",
                "delete",
                "install",
                "deploy",
                "test",
            ],
        ),
    }


class ScoringConfig(BaseModel):
    """
    Vocabulary and thresholds used by :class:`ComplexityScorer`.

    Example:
        >>> config = ScoringConfig(threshold=70)
        >>> config = ScoringConfig.from_file("scoring.json")
    """

    model_config = ConfigDict(frozen=False)

    threshold: int = Field(
        default=60,
        ge=0,
        le=100,
        description="Score at which an item counts as complex",
    )
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    length_thresholds: LengthThresholds = Field(default_factory=LengthThresholds)
    keyword_tiers: dict[str, KeywordTier] = Field(default_factory=_default_tiers)
    technical_indicators: list[str] = Field(
        default_factory=lambda: [
            "algorithm",
            "optimization",
            "performance",
            "caching",
            "queue",
            "async",
            "concurrent",
            "parallel",
            "real-time",
            "streaming",
            "machine learning",
            "ai",
            "ml",
            "neural",
            "model",
        ]
    )
    scope_indicators: list[str] = Field(
        default_factory=lambda: [
            " and ",
            " or ",
            "including",
            "such as",
            "multiple",
            "various",
            "different",
            "several",
            "both",
            "either",
            "as well as",
        ]
    )
    subtask_steps: list[tuple[int, int]] = Field(
        default_factory=lambda: [(90, 6), (80, 5), (70, 4)],
        description="(minimum score, subtask count) pairs, checked in order",
    )
    default_subtasks: int = Field(default=3, ge=1)
    analysis_threshold: float = Field(
        default=5,
        ge=0,
        le=10,
        description="Analysis score (0-10) at which an item counts as complex",
    )

    @classmethod
    def from_file(cls, path: str | Path) -> "ScoringConfig":
        """Load a configuration from a JSON file."""
        logger.debug(f"Loading scoring configuration from {path}")
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))


# =============================================================================
# RESULTS
# =============================================================================


class ComplexityBreakdown(BaseModel):
    """Per-criterion scores, each 0-100."""

    length: int = 0
    keywords: int = 0
    structure: int = 0
    technical: int = 0
    scope: int = 0


class ComplexityAnalysis(BaseModel):
    """Heuristic score of one item."""

    score: int = Field(..., ge=0, le=100)
    breakdown: ComplexityBreakdown
    reasons: list[str] = Field(default_factory=list)


class AnalysisMethod(str, Enum):
    """Where an assessment came from."""

    ANALYSIS = "analysis"
    HEURISTIC = "heuristic"


class ComplexityAssessment(BaseModel):
    """Expansion-eligibility verdict for one item."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    item_id: ItemId
    method: AnalysisMethod
    is_complex: bool
    score: float = Field(..., description="Score on the source's own scale")
    normalized_score: float = Field(..., description="Score on a 0-100 scale")
    recommended_subtasks: int
    reason: str
    reasoning: str = ""
    analysis: ComplexityAnalysis | None = None

    @property
    def score_display(self) -> str:
        if self.method is AnalysisMethod.ANALYSIS:
            return f"{self.score:g}/10"
        return f"{self.score:g}/100"


# =============================================================================
# SCORER
# =============================================================================


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ComplexityScorer:
    """
    Score work items for structural complexity.

    The scorer is deterministic and keeps no state beyond its
    configuration, so one instance can be shared freely.

    Example:
        >>> scorer = ComplexityScorer()
        >>> analysis = scorer.score(item)
        >>> analysis.score
        72
        >>> scorer.recommended_subtasks(analysis.score)
        4
    """

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self.config = config or ScoringConfig()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ComplexityScorer":
        """Build a scorer from application settings."""
        if settings.scoring_config_file:
            config = ScoringConfig.from_file(settings.scoring_config_file)
        else:
            config = ScoringConfig()
        config.threshold = settings.complexity_threshold
        config.analysis_threshold = settings.analysis_threshold
        config.default_subtasks = settings.default_subtasks
        return cls(config)

    # =========================================================================
    # CRITERIA
    # =========================================================================

    def _length_score(self, text: str, reasons: list[str]) -> int:
        limits = self.config.length_thresholds
        length = len(text)
        if length > limits.very_long:
            reasons.append(f"Very long description ({length} chars)")
            return 100
        if length > limits.long:
            reasons.append(f"Long description ({length} chars)")
            return 80
        if length > limits.medium:
            reasons.append(f"Medium description ({length} chars)")
            return 60
        if length > limits.short:
            return 40
        return 20

    def _keyword_score(self, text: str, reasons: list[str]) -> int:
        score = 0
        found: list[str] = []
        for tier in self.config.keyword_tiers.values():
            matched = [kw for kw in tier.keywords if kw in text]
            score += len(matched) * tier.weight * 10
            found.extend(matched)

        if found:
            shown = ", ".join(found[:3])
            suffix = "..." if len(found) > 3 else ""
            reasons.append(f"Contains complexity keywords: {shown}{suffix}")
        return min(score, 100)

    def _structure_score(self, item: WorkItem, text: str, reasons: list[str]) -> int:
        score = 0
        sentences = [s for s in SENTENCE_SPLIT.split(item.description) if s.strip()]
        bullets = len(BULLET_PATTERN.findall(text))
        numbered = len(NUMBERED_PATTERN.findall(text))

        if len(sentences) > 5:
            score += 40
            reasons.append(f"Multiple sentences ({len(sentences)})")
        if bullets > 0:
            score += 30
            reasons.append(f"Contains bullet points ({bullets})")
        if numbered > 0:
            score += 30
            reasons.append(f"Contains numbered lists ({numbered})")
        return min(score, 100)

    def _technical_score(self, text: str, reasons: list[str]) -> int:
        matches = [ind for ind in self.config.technical_indicators if ind in text]
        if not matches:
            return 0
        reasons.append(f"Technical complexity: {', '.join(matches[:2])}")
        return min(len(matches) * 25, 100)

    def _scope_score(self, text: str, reasons: list[str]) -> int:
        matches = [ind for ind in self.config.scope_indicators if ind in text]
        if not matches:
            return 0
        reasons.append("Multiple requirements indicated")
        return min(len(matches) * 20, 100)

    # =========================================================================
    # PUBLIC INTERFACE
    # =========================================================================

    def score(self, item: WorkItem) -> ComplexityAnalysis:
        """
        Score an item's text on a 0-100 scale.

        Args:
            item: Work item to score.

        Returns:
            ComplexityAnalysis with score, per-criterion breakdown and
            human-readable reasons.
        """
        text = item.text
        reasons: list[str] = []

        breakdown = ComplexityBreakdown(
            length=self._length_score(text, reasons),
            keywords=self._keyword_score(text, reasons),
            structure=self._structure_score(item, text, reasons),
            technical=self._technical_score(text, reasons),
            scope=self._scope_score(text, reasons),
        )

        weights = self.config.weights
        weighted = (
            breakdown.length * weights.length
            + breakdown.keywords * weights.keywords
            + breakdown.structure * weights.structure
            + breakdown.technical * weights.technical
            + breakdown.scope * weights.scope
        )

        return ComplexityAnalysis(
            score=_round_half_up(weighted / 100),
            breakdown=breakdown,
            reasons=reasons,
        )

    def is_complex(self, analysis: ComplexityAnalysis | WorkItem) -> bool:
        """Check a heuristic score against the configured threshold."""
        if isinstance(analysis, WorkItem):
            analysis = self.score(analysis)
        return analysis.score >= self.config.threshold

    def recommended_subtasks(self, score: int) -> int:
        """Map a 0-100 score to a subtask count (monotone step function)."""
        for minimum, count in self.config.subtask_steps:
            if score >= minimum:
                return count
        return self.config.default_subtasks

    def assess(
        self,
        item: WorkItem,
        report: ComplexityReport | None = None,
    ) -> ComplexityAssessment:
        """
        Decide whether an item should be expanded.

        A report entry for the item wins over the heuristic: its 0-10
        score is compared against ``analysis_threshold`` and its
        recommended subtask count is used as-is.

        Args:
            item: Item to assess.
            report: Optional complexity report.

        Returns:
            ComplexityAssessment.
        """
        entry: TaskComplexity | None = report.get(item.item_id) if report else None

        if entry is not None:
            subtasks = entry.recommended_subtasks or self.config.default_subtasks
            reason = (
                f"Complexity analysis score: {entry.complexity_score:g}/10. {entry.reasoning}"
            ).strip()
            return ComplexityAssessment(
                item_id=item.item_id,
                method=AnalysisMethod.ANALYSIS,
                is_complex=entry.complexity_score >= self.config.analysis_threshold,
                score=entry.complexity_score,
                normalized_score=entry.complexity_score * 10,
                recommended_subtasks=subtasks,
                reason=reason,
                reasoning=entry.reasoning,
            )

        analysis = self.score(item)
        reason = (
            f"Fallback analysis score: {analysis.score}/100. "
            f"Reasons: {', '.join(analysis.reasons)}"
        )
        return ComplexityAssessment(
            item_id=item.item_id,
            method=AnalysisMethod.HEURISTIC,
            is_complex=self.is_complex(analysis),
            score=analysis.score,
            normalized_score=analysis.score,
            recommended_subtasks=self.recommended_subtasks(analysis.score),
            reason=reason,
            analysis=analysis,
        )


def score_item(item: WorkItem, config: ScoringConfig | None = None) -> ComplexityAnalysis:
    """
    Convenience function to score a single item.

    Example:
        >>> score_item(WorkItem(id=1, title="Fix typo")).score
        8
    """
    return ComplexityScorer(config).score(item)
