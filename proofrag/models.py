"""Core data model: stored documents, search results and proof steps."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, model_validator


class DocumentType(str, Enum):
    """Categories accepted by the ingest endpoint."""

    SVO_VERIFICATION = "svo_verification"
    BAN_VERIFICATION = "ban_verification"


class ChunkMetadata(BaseModel):
    """Typed metadata attached to every stored chunk.

    The declared fields are the keys every row is guaranteed to carry.
    Anything else (frontmatter fields, caller supplied tags) goes into
    ``attributes`` and is flattened next to the declared keys when
    persisted, so ``from_dict(m.to_dict()) == m``.
    """

    DECLARED_KEYS: ClassVar[Tuple[str, ...]] = (
        "filename",
        "position",
        "char_start",
        "char_end",
        "heading_context",
    )

    filename: str
    position: int = Field(ge=0)
    char_start: Optional[int] = None
    char_end: Optional[int] = None
    heading_context: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Flatten to the JSON object stored with the row."""
        flat = {k: v for k, v in self.attributes.items() if k not in self.DECLARED_KEYS}
        for key in self.DECLARED_KEYS:
            value = getattr(self, key)
            if value is not None:
                flat[key] = value
        return flat

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkMetadata":
        declared = {k: data[k] for k in cls.DECLARED_KEYS if k in data}
        extra = {k: v for k, v in data.items() if k not in cls.DECLARED_KEYS}
        return cls(**declared, attributes=extra)


@dataclass
class Document:
    """A stored row: chunk content plus metadata and optional vector."""

    id: str
    content: str
    type: str
    metadata: ChunkMetadata
    embedding: Optional[List[float]] = None


@dataclass
class SearchResult:
    """A single similarity match. Built per query, never persisted."""

    document: Document
    similarity: float

    @property
    def relevance_score(self) -> float:
        """Map cosine similarity in [-1, 1] to a 0-1 relevance score."""
        return max(0.0, min(1.0, (self.similarity + 1.0) / 2.0))

    @property
    def source(self) -> str:
        meta = self.document.metadata
        if meta.heading_context:
            return f"{meta.filename} > {meta.heading_context}"
        return meta.filename


class SemanticQuery(BaseModel):
    query: str
    filters: Dict[str, Any] = Field(default_factory=dict)
    top_k: PositiveInt = 5


class StepType(str, Enum):
    """Proof step categories in phase order."""

    ASSUMPTION = "assumption"
    GOAL = "goal"
    HYPOTHESIS = "hypothesis"
    ANNOTATION = "annotation"
    COMPREHENSION = "comprehension"
    INTERPRETATION = "interpretation"
    DERIVATION = "derivation"

    @property
    def letter(self) -> str:
        return STEP_LETTERS[self]

    @property
    def phase(self) -> int:
        return list(StepType).index(self)

    @classmethod
    def from_letter(cls, letter: str) -> "StepType":
        return LETTER_STEPS[letter]


STEP_LETTERS: Dict[StepType, str] = {
    StepType.ASSUMPTION: "A",
    StepType.GOAL: "G",
    StepType.HYPOTHESIS: "H",
    StepType.ANNOTATION: "N",
    StepType.COMPREHENSION: "C",
    StepType.INTERPRETATION: "P",
    StepType.DERIVATION: "D",
}
LETTER_STEPS: Dict[str, StepType] = {v: k for k, v in STEP_LETTERS.items()}

STEP_ID_PATTERN = r"^[AGHNCPD][1-9][0-9]*$"


class VerificationStep(BaseModel):
    """One typed step of an SVO proof."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(
        pattern=STEP_ID_PATTERN,
        description="Category letter (A, G, H, N, C, P or D) followed by a positive integer",
    )
    type: StepType = Field(description="Step category; must agree with the id letter")
    derivation: str = Field(description="The statement in SVO notation")
    reason: str = Field(description="Why the statement holds")
    rules: List[str] = Field(description="Names of the SVO axioms applied, in order")
    dependencies: Optional[List[str]] = Field(
        default=None,
        description="Ids of earlier steps this step uses",
    )

    @model_validator(mode="after")
    def _check_category_letter(self) -> "VerificationStep":
        expected = self.type.letter
        if self.id[0] != expected:
            raise ValueError(
                f"id {self.id!r} has category letter {self.id[0]!r} "
                f"but type {self.type.value!r} requires {expected!r}"
            )
        return self


@dataclass(frozen=True)
class Proof:
    """Validated, immutable sequence of verification steps."""

    steps: Tuple[VerificationStep, ...]
    attempts: int = 1
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    def __iter__(self) -> Iterator[VerificationStep]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def __getitem__(self, index: int) -> VerificationStep:
        return self.steps[index]

    @property
    def ids(self) -> List[str]:
        return [step.id for step in self.steps]

    def to_list(self) -> List[Dict[str, Any]]:
        return [step.model_dump(mode="json", exclude_none=True) for step in self.steps]
