"""
Gated progression machine.

Drives one learner through the ordered items of a drill during a practice session.
Nothing here is persisted: the only durable outcome is the attempt created when the
session is submitted.

Each item is a sequence of gates. A gate is Locked until the previous gate of its item
passes; a learner works on it (Attempting) until it is Passed. Spoken gates are scored
by the pronunciation oracle and pass at PASS_THRESHOLD or above; a lower score sends
the gate back to Attempting with no retry cap. System gates ("the other side speaks")
pass once their playback finishes. Written gates pass once a non-empty answer is given.
Choice gates pass on the expected answer.

The session moves NotStarted -> InProgress -> ReadyToSubmit -> Submitted, or to
Abandoned from anywhere before Submitted. ReadyToSubmit requires every gate of every
item to be Passed.

Only one oracle call can be in flight. While it is pending every mutating action
raises ConflictError, except abandon(). A result that arrives after the learner has
moved on or abandoned is discarded.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Optional, TypeVar

from drill_engine.core.config import settings
from drill_engine.core.exceptions import ConflictError, OracleError, ValidationError
from drill_engine.models.enums import DrillType
from drill_engine.schemas.drill import DrillContent
from drill_engine.schemas.results import (
    BlankAnswer,
    DefinitionResults,
    DrillResults,
    FillBlankResults,
    GrammarPatternEntry,
    GrammarResults,
    IncorrectPair,
    MatchingResults,
    RoleplayResults,
    SceneScore,
    SentenceResults,
    SentenceWordEntry,
    SummaryResults,
    VocabularyResults,
    WordScore,
    WrittenSentence,
)
from drill_engine.services.pronunciation_service import PronunciationOracle, PronunciationScore
from drill_engine.utils.score_utils import percentage, round_half_up

logger = logging.getLogger(__name__)

T = TypeVar("T")

OBJECTIVE_DRILL_TYPES = {
    DrillType.VOCABULARY.value,
    DrillType.ROLEPLAY.value,
    DrillType.MATCHING.value,
    DrillType.DEFINITION.value,
    DrillType.FILL_BLANK.value,
}
SUBJECTIVE_DRILL_TYPES = {
    DrillType.GRAMMAR.value,
    DrillType.SENTENCE_WRITING.value,
    DrillType.SUMMARY.value,
}


class ItemState(str, Enum):
    LOCKED = "locked"
    ATTEMPTING = "attempting"
    SCORED = "scored"  # Answer handed in, verdict not applied yet
    PASSED = "passed"


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    READY_TO_SUBMIT = "ready_to_submit"
    SUBMITTED = "submitted"
    ABANDONED = "abandoned"


class OracleCallState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class AudioMode(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PLAYING = "playing"


class GateKind(str, Enum):
    SPOKEN = "spoken"
    SYSTEM = "system"
    WRITTEN = "written"
    CHOICE = "choice"


@dataclass
class Gate:
    """One step of an item the learner must clear."""
    kind: GateKind
    reference_text: str
    label: str = ""
    expected_answer: Optional[str] = None
    state: ItemState = ItemState.LOCKED
    attempts: int = 0
    best_score: float = 0
    last_score: Optional[float] = None
    answer: Optional[str] = None
    first_answer: Optional[str] = None
    pronunciation: Optional[PronunciationScore] = None

    @property
    def passed(self) -> bool:
        return self.state == ItemState.PASSED


@dataclass
class Item:
    """An ordered unit of a drill: a vocabulary word, a roleplay scene, a pair, ..."""
    key: str
    gates: List[Gate]
    hint: str = ""
    example: str = ""

    @property
    def passed(self) -> bool:
        return all(gate.passed for gate in self.gates)

    @property
    def current_gate(self) -> Optional[Gate]:
        for gate in self.gates:
            if not gate.passed:
                return gate
        return None

    @property
    def phase(self) -> int:
        """Index of the first gate not yet passed (len(gates) once passed)."""
        for index, gate in enumerate(self.gates):
            if not gate.passed:
                return index
        return len(self.gates)

    @property
    def attempts(self) -> int:
        return sum(gate.attempts for gate in self.gates)

    def gates_of(self, kind: GateKind) -> List[Gate]:
        return [gate for gate in self.gates if gate.kind == kind]


@dataclass
class GateOutcome:
    """What happened to a gate after the learner handed in an answer."""
    gate_state: ItemState
    passed: bool
    attempts: int
    score: Optional[float] = None
    item_passed: bool = False
    session_state: Optional[SessionState] = None


def build_items(drill_type: str, content: Any) -> List[Item]:
    """
    Turn drill content into the ordered items of a practice session.

    Args:
        drill_type: Drill type value
        content: DrillContent or its dict form

    Returns:
        Items in practice order

    Raises:
        ValidationError: For listening drills, which have no guided items, or empty content
    """
    if not isinstance(content, DrillContent):
        content = DrillContent.model_validate(content or {})

    items: List[Item] = []
    if drill_type == DrillType.VOCABULARY:
        for sentence in content.target_sentences:
            gates = []
            if sentence.word:
                gates.append(Gate(GateKind.SPOKEN, sentence.word, label="word"))
            gates.append(Gate(GateKind.SPOKEN, sentence.text, label="sentence"))
            items.append(Item(key=sentence.word or sentence.text, gates=gates))
    elif drill_type == DrillType.ROLEPLAY:
        for scene in content.roleplay_scenes:
            gates = [
                Gate(
                    GateKind.SPOKEN if turn.speaker == "student" else GateKind.SYSTEM,
                    turn.text,
                    label=turn.speaker,
                )
                for turn in scene.dialogue
            ]
            if gates:
                items.append(Item(key=scene.scene_name, gates=gates))
    elif drill_type == DrillType.DEFINITION:
        for definition in content.definition_items:
            items.append(Item(
                key=definition.word,
                gates=[Gate(GateKind.SPOKEN, definition.word, label="definition")],
                hint=definition.hint,
            ))
    elif drill_type == DrillType.MATCHING:
        for pair in content.matching_pairs:
            items.append(Item(
                key=pair.left,
                gates=[Gate(GateKind.CHOICE, pair.left, label="match", expected_answer=pair.right)],
            ))
    elif drill_type == DrillType.FILL_BLANK:
        for blank in content.fill_blank_items:
            items.append(Item(
                key=blank.sentence,
                gates=[Gate(GateKind.CHOICE, blank.sentence, label="blank", expected_answer=blank.answer)],
                hint=blank.hint,
            ))
    elif drill_type == DrillType.GRAMMAR:
        for grammar in content.grammar_items:
            items.append(Item(
                key=grammar.pattern,
                gates=[
                    Gate(GateKind.WRITTEN, grammar.pattern, label=f"sentence {n + 1}")
                    for n in range(content.sentences_per_item)
                ],
                hint=grammar.hint,
                example=grammar.example,
            ))
    elif drill_type == DrillType.SENTENCE_WRITING:
        for writing in content.sentence_writing_items:
            items.append(Item(
                key=writing.word,
                gates=[
                    Gate(GateKind.WRITTEN, writing.word, label=f"sentence {n + 1}")
                    for n in range(content.sentences_per_item)
                ],
                hint=writing.hint,
            ))
    elif drill_type == DrillType.SUMMARY:
        items.append(Item(
            key=content.article_title or "summary",
            gates=[Gate(GateKind.WRITTEN, content.article_content or "", label="summary")],
        ))
    elif drill_type == DrillType.LISTENING:
        raise ValidationError("Listening drills have no guided practice; complete them directly")
    else:
        raise ValidationError(f"Unknown drill type: {drill_type}")

    if not items:
        raise ValidationError("This drill has no items to practice")
    return items


def _normalize_answer(answer: str) -> str:
    return " ".join(answer.split()).casefold()


class ProgressionSession:
    """
    One learner's run through one drill.

    Single-threaded and cooperative: the only suspension point is the oracle call in
    submit_recording().
    """

    def __init__(
        self,
        drill_id: int,
        drill_type: str,
        items: List[Item],
        oracle: Optional[PronunciationOracle] = None,
        assignment_id: Optional[int] = None,
        learner_id: Optional[int] = None,
        pass_threshold: Optional[int] = None,
        article_title: Optional[str] = None,
    ):
        self.drill_id = drill_id
        self.drill_type = DrillType(drill_type).value
        self.items = items
        self.oracle = oracle
        self.assignment_id = assignment_id
        self.learner_id = learner_id
        self.pass_threshold = pass_threshold if pass_threshold is not None else settings.pass_threshold
        self.article_title = article_title

        self.state = SessionState.NOT_STARTED
        self.current_index = 0
        self.oracle_state = OracleCallState.IDLE
        self.audio_mode = AudioMode.IDLE
        self.started_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        # Bumped on every navigation; an oracle result tagged with an older value is stale
        self._navigation = 0

    # Queries

    @property
    def current_item(self) -> Optional[Item]:
        if not self.items or self.current_index >= len(self.items):
            return None
        return self.items[self.current_index]

    @property
    def current_gate(self) -> Optional[Gate]:
        item = self.current_item
        return item.current_gate if item else None

    @property
    def passed_count(self) -> int:
        return sum(1 for item in self.items if item.passed)

    @property
    def is_subjective(self) -> bool:
        return self.drill_type in SUBJECTIVE_DRILL_TYPES

    # Guards

    def _require_in_progress(self) -> None:
        if self.oracle_state == OracleCallState.PENDING:
            raise ConflictError("Wait for the current recording to be scored")
        if self.state != SessionState.IN_PROGRESS:
            raise ConflictError(f"Session is {self.state.value}")

    def _require_gate(self, *kinds: GateKind) -> Gate:
        self._require_in_progress()
        gate = self.current_gate
        if gate is None:
            raise ConflictError("The current item is already passed; continue to the next one")
        if gate.kind not in kinds:
            raise ConflictError(f"The current step expects a {gate.kind.value} answer")
        if gate.state != ItemState.ATTEMPTING:
            raise ConflictError(f"The current step is {gate.state.value}")
        return gate

    # Transitions

    def start(self) -> None:
        """Begin the session with the first item unlocked."""
        if self.state != SessionState.NOT_STARTED:
            raise ConflictError(f"Session is {self.state.value}")
        self.state = SessionState.IN_PROGRESS
        self.started_at = datetime.utcnow()
        self._unlock_next_gate(self.items[0])
        logger.info(f"Practice started: drill_id={self.drill_id}, learner_id={self.learner_id}, items={len(self.items)}")

    def start_recording(self) -> None:
        """Start capturing the learner's voice; stops any playback."""
        self._require_gate(GateKind.SPOKEN)
        if self.audio_mode == AudioMode.PLAYING:
            logger.debug("Stopping playback to start recording")
        self.audio_mode = AudioMode.RECORDING

    def stop_recording(self) -> None:
        """Discard the capture in progress without scoring it."""
        self._require_in_progress()
        if self.audio_mode == AudioMode.RECORDING:
            self.audio_mode = AudioMode.IDLE

    def play_reference(self) -> None:
        """Start reference playback (or the other side's line); stops any recording."""
        self._require_in_progress()
        if self.current_gate is None:
            raise ConflictError("Nothing left to play for this item")
        if self.audio_mode == AudioMode.RECORDING:
            logger.debug("Stopping recording to start playback")
        self.audio_mode = AudioMode.PLAYING

    def finish_playback(self) -> Optional[GateOutcome]:
        """
        Playback ended.

        A system gate passes here, which unlocks the next turn of the item.
        """
        self._require_in_progress()
        if self.audio_mode != AudioMode.PLAYING:
            raise ConflictError("Nothing is playing")
        self.audio_mode = AudioMode.IDLE

        gate = self.current_gate
        if gate is None or gate.kind != GateKind.SYSTEM or gate.state != ItemState.ATTEMPTING:
            return None
        gate.attempts += 1
        gate.state = ItemState.PASSED
        return self._after_pass(gate)

    async def submit_recording(self, audio: bytes) -> Optional[GateOutcome]:
        """
        Score the recording of the current spoken gate.

        Returns:
            The outcome, or None when the result arrived after the learner moved on

        Raises:
            ConflictError: If the current step is not a spoken one or a call is pending
            OracleError: If the oracle failed; the gate stays Attempting and can be retried
        """
        gate = self._require_gate(GateKind.SPOKEN)
        if self.oracle is None:
            raise OracleError("No pronunciation oracle configured")

        self.audio_mode = AudioMode.IDLE
        self.oracle_state = OracleCallState.PENDING
        self.last_error = None
        gate.state = ItemState.SCORED
        navigation = self._navigation

        try:
            result = await self.oracle.score(gate.reference_text, audio, self.learner_id)
        except Exception as e:
            if self._is_stale(navigation):
                logger.warning(f"Discarding oracle failure for drill {self.drill_id}: session moved on")
                return None
            self.oracle_state = OracleCallState.REJECTED
            self.last_error = str(e)
            gate.state = ItemState.ATTEMPTING
            logger.warning(f"Pronunciation scoring failed for '{gate.reference_text}': {str(e)}")
            if isinstance(e, OracleError):
                raise
            raise OracleError(f"Pronunciation scoring failed: {str(e)}") from e

        if self._is_stale(navigation):
            logger.warning(f"Discarding oracle result for drill {self.drill_id}: session moved on")
            return None

        self.oracle_state = OracleCallState.RESOLVED
        return self.apply_score(gate, result)

    def apply_score(self, gate: Gate, result: PronunciationScore) -> GateOutcome:
        """Apply an oracle verdict to a spoken gate."""
        score = result.pronunciation
        gate.attempts += 1
        gate.last_score = score
        gate.best_score = max(gate.best_score, score)
        gate.pronunciation = result

        if score >= self.pass_threshold:
            gate.state = ItemState.PASSED
            return self._after_pass(gate, score)

        gate.state = ItemState.ATTEMPTING
        logger.debug(f"Gate '{gate.reference_text}' scored {score}, below {self.pass_threshold}; retry")
        return GateOutcome(
            gate_state=gate.state,
            passed=False,
            attempts=gate.attempts,
            score=score,
            item_passed=False,
            session_state=self.state,
        )

    def submit_text(self, text: str) -> GateOutcome:
        """Save a written answer for the current written gate."""
        gate = self._require_gate(GateKind.WRITTEN)
        text = (text or "").strip()
        if not text:
            raise ValidationError("Answer cannot be empty")
        gate.attempts += 1
        gate.answer = text
        gate.state = ItemState.PASSED
        return self._after_pass(gate)

    def submit_choice(self, answer: str) -> GateOutcome:
        """Check a matching or fill-in answer; a wrong one counts an attempt and can be retried."""
        gate = self._require_gate(GateKind.CHOICE)
        answer = (answer or "").strip()
        if not answer:
            raise ValidationError("Answer cannot be empty")
        gate.attempts += 1
        gate.answer = answer
        if gate.first_answer is None:
            gate.first_answer = answer

        if _normalize_answer(answer) == _normalize_answer(gate.expected_answer or ""):
            gate.state = ItemState.PASSED
            return self._after_pass(gate)

        return GateOutcome(
            gate_state=gate.state,
            passed=False,
            attempts=gate.attempts,
            item_passed=False,
            session_state=self.state,
        )

    def advance(self) -> Item:
        """
        Continue to the next item. The current item must be passed.

        Raises:
            ConflictError: If the current item is not passed, a call is pending or
                there is no next item
        """
        if self.oracle_state == OracleCallState.PENDING:
            raise ConflictError("Wait for the current recording to be scored")
        if self.state not in (SessionState.IN_PROGRESS, SessionState.READY_TO_SUBMIT):
            raise ConflictError(f"Session is {self.state.value}")
        item = self.current_item
        if item is None or not item.passed:
            raise ConflictError("Pass the current item before continuing")
        if self.current_index + 1 >= len(self.items):
            raise ConflictError("This is the last item")

        self.current_index += 1
        self._navigation += 1
        self.audio_mode = AudioMode.IDLE
        self.oracle_state = OracleCallState.IDLE
        self._unlock_next_gate(self.items[self.current_index])
        return self.items[self.current_index]

    def abandon(self) -> None:
        """Drop the session. Nothing is persisted; a pending oracle result is discarded."""
        if self.state == SessionState.SUBMITTED:
            raise ConflictError("Session was already submitted")
        if self.state == SessionState.ABANDONED:
            return
        self.state = SessionState.ABANDONED
        self._navigation += 1
        self.audio_mode = AudioMode.IDLE
        self.oracle_state = OracleCallState.IDLE
        self.items = []
        logger.info(f"Practice abandoned: drill_id={self.drill_id}, learner_id={self.learner_id}")

    def submit(self, complete: Callable[[int, int, DrillResults], T], time_spent: Optional[int] = None) -> T:
        """
        Hand the aggregated result to the attempt store.

        Args:
            complete: Called with (score, time_spent, results); normally wraps
                attempt_service.complete_drill
            time_spent: Seconds spent; measured from start() when omitted

        Returns:
            Whatever complete returns (the created attempt)

        Raises:
            ConflictError: If the session is not ReadyToSubmit. If complete raises,
                the session stays ReadyToSubmit so it can be submitted again.
        """
        if self.oracle_state == OracleCallState.PENDING:
            raise ConflictError("Wait for the current recording to be scored")
        if self.state != SessionState.READY_TO_SUBMIT:
            raise ConflictError(f"Session is {self.state.value}, not ready to submit")

        if time_spent is None:
            elapsed = (datetime.utcnow() - self.started_at).total_seconds() if self.started_at else 0
            time_spent = max(0, int(elapsed))

        attempt = complete(self.final_score(), time_spent, self.build_results())

        self.state = SessionState.SUBMITTED
        self.items = []
        logger.info(f"Practice submitted: drill_id={self.drill_id}, learner_id={self.learner_id}")
        return attempt

    # Helpers

    def _is_stale(self, navigation: int) -> bool:
        return navigation != self._navigation or self.state == SessionState.ABANDONED

    def _unlock_next_gate(self, item: Item) -> None:
        for gate in item.gates:
            if gate.state == ItemState.LOCKED:
                gate.state = ItemState.ATTEMPTING
                return
            if not gate.passed:
                return

    def _after_pass(self, gate: Gate, score: Optional[float] = None) -> GateOutcome:
        item = self.current_item
        self._unlock_next_gate(item)
        if all(i.passed for i in self.items):
            self.state = SessionState.READY_TO_SUBMIT
            logger.info(f"Practice ready to submit: drill_id={self.drill_id}, learner_id={self.learner_id}")
        return GateOutcome(
            gate_state=gate.state,
            passed=True,
            attempts=gate.attempts,
            score=score,
            item_passed=item.passed,
            session_state=self.state,
        )

    # Aggregation

    def final_score(self) -> int:
        """Share of passed items for objective drills; 0 for drills waiting on review."""
        if self.is_subjective:
            return 0
        return percentage(self.passed_count, len(self.items))

    def build_results(self) -> DrillResults:
        """Results payload of the drill's type from the current item states."""
        if self.drill_type == DrillType.VOCABULARY.value:
            return VocabularyResults(word_scores=[self._word_score(item) for item in self.items])

        if self.drill_type == DrillType.DEFINITION.value:
            word_scores = [self._word_score(item) for item in self.items]
            defined = sum(1 for w in word_scores if w.passed)
            return DefinitionResults(
                words_defined=defined,
                total_words=len(word_scores),
                accuracy=percentage(defined, len(word_scores)),
                word_scores=word_scores,
            )

        if self.drill_type == DrillType.ROLEPLAY.value:
            scenes = []
            for item in self.items:
                spoken = item.gates_of(GateKind.SPOKEN)
                best = [gate.best_score for gate in spoken]
                average = round_half_up(sum(best) / len(best)) if best else 100
                scenes.append(SceneScore(
                    scene_name=item.key,
                    score=average,
                    attempts=sum(gate.attempts for gate in spoken),
                    passed=item.passed,
                    pronunciation_score=average if spoken else None,
                ))
            return RoleplayResults(scene_scores=scenes)

        if self.drill_type == DrillType.MATCHING.value:
            incorrect = []
            for item in self.items:
                gate = item.gates[0]
                if gate.first_answer is not None and gate.attempts > 1:
                    incorrect.append(IncorrectPair(
                        left=gate.reference_text,
                        right=gate.expected_answer or "",
                        attempted_match=gate.first_answer,
                    ))
            matched = len(self.items) - len(incorrect)
            return MatchingResults(
                pairs_matched=matched,
                total_pairs=len(self.items),
                accuracy=percentage(matched, len(self.items)),
                incorrect_pairs=incorrect,
            )

        if self.drill_type == DrillType.FILL_BLANK.value:
            answers = []
            for index, item in enumerate(self.items):
                gate = item.gates[0]
                answers.append(BlankAnswer(
                    index=index,
                    answer=gate.answer or "",
                    correct=gate.passed and gate.attempts == 1,
                    attempts=gate.attempts,
                ))
            correct = sum(1 for a in answers if a.correct)
            return FillBlankResults(
                total_blanks=len(answers),
                correct_blanks=correct,
                accuracy=percentage(correct, len(answers)),
                answers=answers,
            )

        if self.drill_type == DrillType.SENTENCE_WRITING.value:
            words = []
            index = 0
            for item in self.items:
                sentences = []
                for gate in item.gates:
                    sentences.append(WrittenSentence(index=index, text=gate.answer or ""))
                    index += 1
                words.append(SentenceWordEntry(word=item.key, definition=item.hint, sentences=sentences))
            return SentenceResults(words=words)

        if self.drill_type == DrillType.GRAMMAR.value:
            patterns = [
                GrammarPatternEntry(
                    pattern=item.key,
                    example=item.example,
                    hint=item.hint or None,
                    sentences=[
                        WrittenSentence(index=n, text=gate.answer or "")
                        for n, gate in enumerate(item.gates)
                    ],
                )
                for item in self.items
            ]
            return GrammarResults(patterns=patterns)

        if self.drill_type == DrillType.SUMMARY.value:
            text = self.items[0].gates[0].answer or "" if self.items else ""
            return SummaryResults(
                summary_provided=bool(text),
                article_title=self.article_title,
                summary=text,
                word_count=len(text.split()),
            )

        raise ValidationError(f"Drill type {self.drill_type} has no practice results")

    def _word_score(self, item: Item) -> WordScore:
        word_gate = next((g for g in item.gates if g.label == "word"), None)
        sentence_gate = next((g for g in item.gates if g.label == "sentence"), None)
        primary = word_gate or item.gates[0]
        return WordScore(
            word=item.key,
            score=primary.best_score,
            attempts=item.attempts,
            passed=item.passed,
            pronunciation_score=primary.last_score,
            sentence_score=sentence_gate.best_score if sentence_gate and word_gate else None,
        )

    def snapshot(self) -> dict:
        """Plain view of the session for API responses."""
        item = self.current_item
        gate = self.current_gate
        return {
            "drill_id": self.drill_id,
            "drill_type": self.drill_type,
            "assignment_id": self.assignment_id,
            "state": self.state.value,
            "oracle_state": self.oracle_state.value,
            "audio_mode": self.audio_mode.value,
            "current_index": self.current_index,
            "total_items": len(self.items),
            "passed_items": self.passed_count,
            "current_item": item.key if item else None,
            "current_phase": item.phase if item else None,
            "current_gate": {
                "kind": gate.kind.value,
                "label": gate.label,
                "reference_text": gate.reference_text,
                "state": gate.state.value,
                "attempts": gate.attempts,
                "best_score": gate.best_score,
                "last_score": gate.last_score,
            } if gate else None,
            "last_error": self.last_error,
        }


def start_session(
    drill,
    oracle: Optional[PronunciationOracle] = None,
    assignment_id: Optional[int] = None,
    learner_id: Optional[int] = None,
) -> ProgressionSession:
    """Build a session for a drill and start it."""
    content = DrillContent.model_validate(drill.content or {})
    session = ProgressionSession(
        drill_id=drill.id,
        drill_type=drill.type,
        items=build_items(drill.type, content),
        oracle=oracle,
        assignment_id=assignment_id,
        learner_id=learner_id,
        article_title=content.article_title,
    )
    session.start()
    return session
