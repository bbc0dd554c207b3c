"""
data_model.py
Data models for source planning, iteration results and synthesis.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class SourceType(str, Enum):
    EXCEL_SQL = "excel-sql"
    VECTOR_SEARCH = "vector-search"


class Approach(str, Enum):
    SQL = "sql"
    VECTOR = "vector"

    @classmethod
    def from_text(cls, value: Any) -> "Approach":
        """Anything other than "sql" is a vector search."""
        return cls.SQL if str(value).strip().lower() == cls.SQL.value else cls.VECTOR

    @property
    def source_type(self) -> SourceType:
        return SourceType.EXCEL_SQL if self == Approach.SQL else SourceType.VECTOR_SEARCH


class Mode(str, Enum):
    SQL = "sql"
    VECTOR = "vector"
    HYBRID = "hybrid"
    ITERATIVE = "iterative"


class Complexity(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


@dataclass(frozen=True)
class DataSource:
    """A retrieval source with the planner's confidence in it."""
    type: SourceType
    confidence: float
    reasoning: str
    tables: Tuple[str, ...] = ()    # only for excel-sql


@dataclass(frozen=True)
class PlanStep:
    approach: Approach
    reasoning: str
    expected_outcome: str = ""


@dataclass(frozen=True)
class AgentDecision:
    """The planner's output for one question. Never mutated after planning."""
    selected_source: DataSource
    alternatives: Tuple[DataSource, ...]
    mode: Mode
    plan: Tuple[PlanStep, ...]
    max_iterations: int
    context: str


@dataclass
class QuestionSignals:
    """Keyword based hints about a question, passed to the planner."""
    complexity: Complexity
    features: List[str]
    sql_suitable: bool
    vector_suitable: bool


@dataclass
class Review:
    overall_score: float
    should_try_alternative: bool
    reasoning: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IterationResult:
    approach: Approach
    result: str
    confidence: float
    reasoning: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return "error" in self.metadata

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["approach"] = self.approach.value
        return data


@dataclass
class SqlGenerationResult:
    success: bool
    query: Optional[str] = None
    error: Optional[str] = None


@dataclass
class Synthesis:
    final_answer: str
    confidence: float
    reasoning: str
    sources_used: List[str] = field(default_factory=list)


@dataclass
class AgentRunResult:
    """What the answering prompt is built from."""
    context: str
    mode: Mode
    metadata: Dict[str, Any] = field(default_factory=dict)
