"""
Pronunciation scoring oracle.

The progression machine only needs one thing from speech scoring: a 0-100 confidence
for an utterance against its reference text, plus optional per-word and per-phoneme
detail. SpeechaceOracle gets it from the Speechace text scoring API.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import requests

from drill_engine.core.config import settings
from drill_engine.core.exceptions import OracleError

logger = logging.getLogger(__name__)


@dataclass
class WordPronunciation:
    word: str
    score: float


@dataclass
class PhonemePronunciation:
    word: str
    phoneme: str
    score: float
    sounds_like: Optional[str] = None


@dataclass
class PronunciationScore:
    """Oracle verdict for one utterance."""
    pronunciation: float
    per_word: List[WordPronunciation] = field(default_factory=list)
    per_phoneme: List[PhonemePronunciation] = field(default_factory=list)


class PronunciationOracle(Protocol):
    async def score(self, reference_text: str, audio: bytes, user_id: Optional[int] = None) -> PronunciationScore:
        ...


def parse_speechace_response(data: Dict[str, Any]) -> PronunciationScore:
    """
    Parse a Speechace v9 text scoring response.

    Args:
        data: Decoded JSON body

    Returns:
        PronunciationScore with the overall and per-word/per-phoneme scores

    Raises:
        OracleError: If the response reports an error or has no score
    """
    if data.get("status") not in (None, "success"):
        detail = data.get("detail_message") or data.get("short_message") or data.get("status")
        raise OracleError(f"Speechace scoring failed: {detail}")

    text_score = data.get("text_score") or {}
    overall = (text_score.get("speechace_score") or {}).get("pronunciation")
    if overall is None:
        raise OracleError(f"Unexpected Speechace response format: {data}")

    per_word = []
    per_phoneme = []
    for word_score in text_score.get("word_score_list") or []:
        word = word_score.get("word", "")
        per_word.append(WordPronunciation(word=word, score=float(word_score.get("quality_score", 0))))
        for phone in word_score.get("phone_score_list") or []:
            per_phoneme.append(PhonemePronunciation(
                word=word,
                phoneme=phone.get("phone", ""),
                score=float(phone.get("quality_score", 0)),
                sounds_like=phone.get("sound_most_like"),
            ))

    return PronunciationScore(
        pronunciation=max(0.0, min(100.0, float(overall))),
        per_word=per_word,
        per_phoneme=per_phoneme,
    )


class SpeechaceOracle:
    """Pronunciation oracle backed by the Speechace API."""

    def __init__(self, api_key: Optional[str] = None, endpoint: Optional[str] = None,
                 dialect: Optional[str] = None, timeout: Optional[int] = None):
        self.api_key = api_key if api_key is not None else settings.speechace_api_key
        self.endpoint = (endpoint or settings.speechace_api_endpoint).rstrip("/")
        self.dialect = dialect or settings.speechace_dialect
        self.timeout = timeout or settings.oracle_timeout_seconds

        if not self.api_key:
            logger.warning("Speechace API key not configured. Pronunciation scoring will fail.")

    def score_sync(self, reference_text: str, audio: bytes, user_id: Optional[int] = None) -> PronunciationScore:
        """
        Score an utterance against its reference text (blocking).

        Args:
            reference_text: Text the learner was asked to say
            audio: Recorded audio file content
            user_id: Learner id passed through to Speechace

        Returns:
            PronunciationScore

        Raises:
            OracleError: On a missing key, a transport failure or an unusable response
        """
        if not self.api_key:
            raise OracleError("Speechace API key not configured")
        if not audio:
            raise OracleError("No audio recorded")

        try:
            response = requests.post(
                f"{self.endpoint}/api/scoring/text/v9/json",
                params={
                    "key": self.api_key,
                    "dialect": self.dialect,
                    "user_id": str(user_id) if user_id is not None else "anonymous",
                },
                data={"text": reference_text},
                files={"user_audio_file": ("audio.wav", audio, "audio/wav")},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            error_msg = f"Speechace API request failed: {str(e)}"
            if hasattr(e, "response") and e.response is not None:
                error_msg += f" - Status: {e.response.status_code}"
            logger.error(error_msg)
            raise OracleError(error_msg) from e
        except ValueError as e:
            logger.error(f"Speechace returned invalid JSON: {str(e)}")
            raise OracleError("Speechace returned an invalid response") from e

        result = parse_speechace_response(data)
        logger.info(f"Speechace score for user {user_id}: '{reference_text}' -> {result.pronunciation}")
        return result

    async def score(self, reference_text: str, audio: bytes, user_id: Optional[int] = None) -> PronunciationScore:
        """Score an utterance without blocking the event loop."""
        return await asyncio.to_thread(self.score_sync, reference_text, audio, user_id)
