"""
Quality scoring engine

Seven oracle-judged criteria (1-10 each) are combined into one weighted score:

    score = round_half_up(10 * sum(criterion_i * weight_i))      in [10, 100]

    interviewFrequency     .25
    practicalRelevance     .20
    conceptDepth           .15
    industryDemand         .15
    difficultyAppropriate  .10
    questionClarity        .10
    answerQuality          .05

The score maps to two independent classifications:

    recommendation band     >=80 excellent, 60-79 good, 40-59 fair, <40 needs_review
    review status           >=90 approved, <40 retire, otherwise needs_improvement

The 90 auto-approval gate is deliberately not the same cutoff as the 80 band.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any, Optional, List, Mapping, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..models.content_item import ContentItem
from .oracle_client import OracleClient, OracleTask

logger = logging.getLogger(__name__)

WEIGHTS: Dict[str, Decimal] = {
    'interview_frequency': Decimal('0.25'),
    'practical_relevance': Decimal('0.20'),
    'concept_depth': Decimal('0.15'),
    'industry_demand': Decimal('0.15'),
    'difficulty_appropriate': Decimal('0.10'),
    'question_clarity': Decimal('0.10'),
    'answer_quality': Decimal('0.05'),
}

CRITERION_MIN = 1
CRITERION_MAX = 10

# Recommendation bands
EXCELLENT_THRESHOLD = 80
GOOD_THRESHOLD = 60
FAIR_THRESHOLD = 40

# Review status gates
AUTO_APPROVE_THRESHOLD = 90
RETIRE_THRESHOLD = 40


def weighted_score(criteria: Mapping[str, Any]) -> int:
    """
    Weighted 10-100 score from the seven criteria.

    Computed in Decimal so .5 boundaries round half up exactly.

    Raises:
        ValueError: a criterion is missing, not a number, or outside 1-10
    """
    total = Decimal('0')
    for name, weight in WEIGHTS.items():
        if name not in criteria:
            raise ValueError(f"Missing criterion: {name}")
        value = criteria[name]
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            raise ValueError(f"Criterion {name} must be a number, got {value!r}")
        if not CRITERION_MIN <= value <= CRITERION_MAX:
            raise ValueError(f"Criterion {name}={value} outside {CRITERION_MIN}-{CRITERION_MAX}")
        total += Decimal(str(value)) * weight

    return int((total * 10).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def recommendation_band(score: int) -> str:
    if score >= EXCELLENT_THRESHOLD:
        return 'excellent'
    if score >= GOOD_THRESHOLD:
        return 'good'
    if score >= FAIR_THRESHOLD:
        return 'fair'
    return 'needs_review'


def review_status(score: int) -> str:
    if score >= AUTO_APPROVE_THRESHOLD:
        return 'approved'
    if score < RETIRE_THRESHOLD:
        return 'retire'
    return 'needs_improvement'


class ImprovementGuidance(BaseModel):
    """Structured guidance consumed by a follow-up improvement work item."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    question_issues: List[str] = Field(default_factory=list)
    answer_issues: List[str] = Field(default_factory=list)
    missing_topics: List[str] = Field(default_factory=list)
    suggested_additions: List[str] = Field(default_factory=list)
    difficulty_adjustment: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (
            self.question_issues
            or self.answer_issues
            or self.missing_topics
            or self.suggested_additions
            or self.difficulty_adjustment
        )


class CriteriaJudgment(BaseModel):
    """
    Oracle payload for the relevance task.

    Accepts camelCase keys (interviewFrequency) or snake_case.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    interview_frequency: float = Field(ge=CRITERION_MIN, le=CRITERION_MAX)
    practical_relevance: float = Field(ge=CRITERION_MIN, le=CRITERION_MAX)
    concept_depth: float = Field(ge=CRITERION_MIN, le=CRITERION_MAX)
    industry_demand: float = Field(ge=CRITERION_MIN, le=CRITERION_MAX)
    difficulty_appropriate: float = Field(ge=CRITERION_MIN, le=CRITERION_MAX)
    question_clarity: float = Field(ge=CRITERION_MIN, le=CRITERION_MAX)
    answer_quality: float = Field(ge=CRITERION_MIN, le=CRITERION_MAX)
    reasoning: str = ""
    recommendation: Literal['keep', 'improve', 'retire'] = 'keep'
    improvements: ImprovementGuidance = Field(default_factory=ImprovementGuidance)

    @field_validator('recommendation', mode='before')
    @classmethod
    def lowercase_recommendation(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    def criteria(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in WEIGHTS}


@dataclass
class QualityAssessment:
    score: int
    band: str
    review_status: str
    criteria: Dict[str, float]
    reasoning: str = ""
    recommendation: str = "keep"
    guidance: ImprovementGuidance = field(default_factory=ImprovementGuidance)

    @property
    def needs_improvement(self) -> bool:
        return self.review_status == 'needs_improvement'

    def to_metadata(self) -> Dict[str, Any]:
        """The whole quality-metadata field group, ready to overwrite."""
        return {
            'relevance_score': self.score,
            'relevance_details': {
                **self.criteria,
                'reasoning': self.reasoning,
                'recommendation': self.recommendation,
                'band': self.band,
            },
            'review_status': self.review_status,
            'improvement_suggestions': None if self.guidance.is_empty else self.guidance.model_dump(),
        }


def assess(judgment: CriteriaJudgment) -> QualityAssessment:
    criteria = judgment.criteria()
    score = weighted_score(criteria)
    return QualityAssessment(
        score=score,
        band=recommendation_band(score),
        review_status=review_status(score),
        criteria=criteria,
        reasoning=judgment.reasoning,
        recommendation=judgment.recommendation,
        guidance=judgment.improvements,
    )


RELEVANCE_INSTRUCTIONS = (
    "You rate technical interview questions. Score each criterion from 1 to 10: "
    "interviewFrequency, practicalRelevance, conceptDepth, industryDemand, "
    "difficultyAppropriate, questionClarity, answerQuality. "
    "Return JSON with those keys plus reasoning (1-2 sentences), "
    "recommendation (keep|improve|retire) and improvements "
    "{questionIssues, answerIssues, missingTopics, suggestedAdditions, difficultyAdjustment}."
)

RELEVANCE_TASK = OracleTask(
    name='relevance',
    instructions=RELEVANCE_INSTRUCTIONS,
    response_model=CriteriaJudgment,
    temperature=0.1,
)


class QualityScorer:
    """Scores a content item through the oracle."""

    def __init__(self, oracle: OracleClient, task: OracleTask = RELEVANCE_TASK):
        self.oracle = oracle
        self.task = task

    @staticmethod
    def build_input(item: ContentItem) -> Dict[str, Any]:
        return {
            'question': item.question,
            'answer': (item.answer or '')[:500],
            'channel': item.channel,
            'subChannel': item.sub_channel,
            'difficulty': item.difficulty,
            'tags': list(item.tags or [])[:5],
        }

    async def score(self, item: ContentItem) -> Optional[QualityAssessment]:
        """
        Returns:
            QualityAssessment, or None when the oracle gave no usable judgment
        """
        data = await self.oracle.invoke(self.task, self.build_input(item))
        if data is None:
            return None

        judgment = CriteriaJudgment.model_validate(data)
        assessment = assess(judgment)
        logger.info(
            f"✅ {item.id}: {assessment.score}/100 ({assessment.band}, {assessment.review_status})"
        )
        return assessment
