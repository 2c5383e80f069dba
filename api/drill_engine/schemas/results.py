"""
Attempt results schemas.

An attempt carries exactly one results payload whose shape depends on the drill
type. The payloads form a tagged union keyed by ``kind``; the attempt row stores the
tag next to the JSON so the review queue can be filtered without parsing.
"""
from pydantic import BaseModel, Field, TypeAdapter
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from datetime import datetime


# Vocabulary / definition

class WordScore(BaseModel):
    """Per-word outcome of a spoken practice item."""
    word: str
    score: float = Field(0, ge=0, le=100, description="Best score reached (0-100)")
    attempts: int = Field(0, ge=0)
    passed: bool = False
    pronunciation_score: Optional[float] = Field(None, description="Last oracle pronunciation score")
    sentence_score: Optional[float] = Field(None, description="Best score of the sentence phase, if any")


class VocabularyResults(BaseModel):
    kind: Literal["vocabulary"] = "vocabulary"
    word_scores: List[WordScore] = Field(default_factory=list)


class DefinitionResults(BaseModel):
    kind: Literal["definition"] = "definition"
    words_defined: int = 0
    total_words: int = 0
    accuracy: float = 0
    word_scores: List[WordScore] = Field(default_factory=list)


# Roleplay

class SceneScore(BaseModel):
    """Outcome of one roleplay scene."""
    scene_name: str
    score: float = Field(0, ge=0, le=100)
    attempts: int = Field(0, ge=0)
    passed: bool = False
    pronunciation_score: Optional[float] = None
    fluency_score: Optional[float] = None


class RoleplayResults(BaseModel):
    kind: Literal["roleplay"] = "roleplay"
    scene_scores: List[SceneScore] = Field(default_factory=list)


# Matching / fill in the blank

class IncorrectPair(BaseModel):
    left: str
    right: str
    attempted_match: str


class MatchingResults(BaseModel):
    kind: Literal["matching"] = "matching"
    pairs_matched: int = 0
    total_pairs: int = 0
    accuracy: float = 0
    incorrect_pairs: List[IncorrectPair] = Field(default_factory=list)


class BlankAnswer(BaseModel):
    index: int
    answer: str
    correct: bool
    attempts: int = 0


class FillBlankResults(BaseModel):
    kind: Literal["fill_blank"] = "fill_blank"
    total_blanks: int = 0
    correct_blanks: int = 0
    accuracy: float = 0
    answers: List[BlankAnswer] = Field(default_factory=list)


# Listening

class ListeningResults(BaseModel):
    kind: Literal["listening"] = "listening"
    completed: bool = True
    time_listened: Optional[int] = Field(None, ge=0, description="Seconds spent listening")


# Subjective payloads (reviewed by a human)

class WrittenSentence(BaseModel):
    index: int
    text: str


class SentenceReviewEntry(BaseModel):
    """Reviewer judgment of one written sentence."""
    sentence_index: int
    is_correct: bool
    corrected_text: Optional[str] = None
    reviewed_at: datetime
    reviewed_by: int


class SentenceWordEntry(BaseModel):
    word: str
    definition: str = ""
    sentences: List[WrittenSentence] = Field(default_factory=list)


class SentenceResults(BaseModel):
    kind: Literal["sentence"] = "sentence"
    words: List[SentenceWordEntry] = Field(default_factory=list)
    review_status: Literal["pending", "reviewed"] = "pending"
    sentence_reviews: List[SentenceReviewEntry] = Field(default_factory=list)

    def total_sentences(self) -> int:
        return sum(len(w.sentences) for w in self.words)


class GrammarReviewEntry(BaseModel):
    """Reviewer judgment of one sentence written for a grammar pattern."""
    pattern_index: int
    sentence_index: int
    is_correct: bool
    corrected_text: Optional[str] = None
    reviewed_at: datetime
    reviewed_by: int


class GrammarPatternEntry(BaseModel):
    pattern: str
    example: str = ""
    hint: Optional[str] = None
    sentences: List[WrittenSentence] = Field(default_factory=list)


class GrammarResults(BaseModel):
    kind: Literal["grammar"] = "grammar"
    patterns: List[GrammarPatternEntry] = Field(default_factory=list)
    review_status: Literal["pending", "reviewed"] = "pending"
    pattern_reviews: List[GrammarReviewEntry] = Field(default_factory=list)

    def total_sentences(self) -> int:
        return sum(len(p.sentences) for p in self.patterns)


class SummaryReviewEntry(BaseModel):
    """Holistic reviewer judgment of a summary."""
    feedback: Optional[str] = None
    is_acceptable: bool
    corrected_version: Optional[str] = None
    reviewed_at: datetime
    reviewed_by: int


class SummaryResults(BaseModel):
    kind: Literal["summary"] = "summary"
    summary_provided: bool = True
    article_title: Optional[str] = None
    summary: str = ""
    word_count: int = 0
    review_status: Literal["pending", "reviewed"] = "pending"
    review: Optional[SummaryReviewEntry] = None


DrillResults = Annotated[
    Union[
        VocabularyResults,
        RoleplayResults,
        MatchingResults,
        DefinitionResults,
        GrammarResults,
        SentenceResults,
        SummaryResults,
        ListeningResults,
        FillBlankResults,
    ],
    Field(discriminator="kind"),
]

_results_adapter = TypeAdapter(DrillResults)


# Results kind expected for each drill type
RESULTS_KIND_BY_DRILL_TYPE: Dict[str, str] = {
    "vocabulary": "vocabulary",
    "roleplay": "roleplay",
    "matching": "matching",
    "definition": "definition",
    "grammar": "grammar",
    "sentence_writing": "sentence",
    "summary": "summary",
    "listening": "listening",
    "fill_blank": "fill_blank",
}

# Kinds that wait for a human reviewer before their score is final
SUBJECTIVE_KINDS = {"sentence", "grammar", "summary"}


def parse_results(data: Dict[str, Any]) -> DrillResults:
    """Validate a stored or submitted results dict into its union variant."""
    return _results_adapter.validate_python(data)


def dump_results(results: DrillResults) -> Dict[str, Any]:
    """Serialize a results variant into a JSON-ready dict."""
    return results.model_dump(mode="json")
