import asyncio

import pytest
import requests

from drill_engine.core.exceptions import OracleError
from drill_engine.services import pronunciation_service
from drill_engine.services.pronunciation_service import SpeechaceOracle, parse_speechace_response

SPEECHACE_RESPONSE = {
    "status": "success",
    "text_score": {
        "text": "gate",
        "speechace_score": {"pronunciation": 82},
        "word_score_list": [
            {
                "word": "gate",
                "quality_score": 82,
                "phone_score_list": [
                    {"phone": "g", "quality_score": 95, "sound_most_like": "g"},
                    {"phone": "ey", "quality_score": 70, "sound_most_like": "eh"},
                    {"phone": "t", "quality_score": 81},
                ],
            }
        ],
    },
}


class FakeResponse:
    def __init__(self, body, status_code=200):
        self.body = body
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Client Error", response=self)

    def json(self):
        if isinstance(self.body, Exception):
            raise self.body
        return self.body


def test_parse_scores():
    result = parse_speechace_response(SPEECHACE_RESPONSE)

    assert result.pronunciation == 82
    assert [w.word for w in result.per_word] == ["gate"]
    assert [p.phoneme for p in result.per_phoneme] == ["g", "ey", "t"]
    assert result.per_phoneme[1].sounds_like == "eh"


def test_parse_error_status():
    with pytest.raises(OracleError) as exc_info:
        parse_speechace_response({"status": "error", "short_message": "error_no_speech"})

    assert "error_no_speech" in str(exc_info.value)


def test_parse_missing_score():
    with pytest.raises(OracleError):
        parse_speechace_response({"status": "success", "text_score": {}})


def test_oracle_posts_audio_with_reference_text(monkeypatch):
    captured = {}

    def fake_post(url, params=None, data=None, files=None, timeout=None):
        captured.update(url=url, params=params, data=data, files=files, timeout=timeout)
        return FakeResponse(SPEECHACE_RESPONSE)

    monkeypatch.setattr(pronunciation_service.requests, "post", fake_post)
    oracle = SpeechaceOracle(api_key="secret", endpoint="https://speech.example.com/", dialect="en-gb", timeout=5)

    result = asyncio.run(oracle.score("gate", b"audio-bytes", user_id=4))

    assert result.pronunciation == 82
    assert captured["url"] == "https://speech.example.com/api/scoring/text/v9/json"
    assert captured["params"] == {"key": "secret", "dialect": "en-gb", "user_id": "4"}
    assert captured["data"] == {"text": "gate"}
    assert captured["files"]["user_audio_file"][1] == b"audio-bytes"
    assert captured["timeout"] == 5


@pytest.mark.parametrize("response", [
    FakeResponse({}, status_code=503),
    FakeResponse(ValueError("not json")),
])
def test_oracle_failures_become_oracle_errors(monkeypatch, response):
    monkeypatch.setattr(pronunciation_service.requests, "post", lambda *args, **kwargs: response)
    oracle = SpeechaceOracle(api_key="secret")

    with pytest.raises(OracleError):
        oracle.score_sync("gate", b"audio")


def test_oracle_without_key_or_audio():
    with pytest.raises(OracleError):
        SpeechaceOracle(api_key="").score_sync("gate", b"audio")
    with pytest.raises(OracleError):
        SpeechaceOracle(api_key="secret").score_sync("gate", b"")
