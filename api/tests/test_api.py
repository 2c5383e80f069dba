import base64
import json
from datetime import datetime, timedelta

from drill_engine.api.v1.endpoints.practice import evict_idle_sessions, last_activity, practice_sessions
from drill_engine.core.config import settings

API = "/api/v1"

VOCABULARY_CONTENT = {
    "target_sentences": [
        {"word": "boarding pass", "text": "Here is my boarding pass."},
    ]
}

GRAMMAR_CONTENT = {
    "grammar_items": [
        {"pattern": "Used to", "example": "I used to live in Paris."},
    ],
    "sentences_per_item": 2,
}

AUDIO = base64.b64encode(b"RIFF....WAVEfmt ").decode("ascii")


def _create_drill(client, tutor, learners, drill_type="vocabulary", content=VOCABULARY_CONTENT):
    response = client.post(f"{API}/drills", json={
        "creator_id": tutor.id,
        "drill": {"title": "Airport vocabulary", "type": drill_type, "duration_days": 7, "content": content},
        "learner_ids": [learner.id for learner in learners],
    })
    assert response.status_code == 201, response.text
    return response.json()


def _assignment_id(client, drill_id, learner):
    response = client.get(f"{API}/drill-assignments", params={"learner_id": learner.id})
    assert response.status_code == 200
    return next(a["id"] for a in response.json()["assignments"] if a["drill_id"] == drill_id)


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_create_and_assign_twice(client, tutor, learner, other_learner):
    created = _create_drill(client, tutor, [learner])
    drill_id = created["drill"]["id"]
    assert created["assignment_count"] == 1

    response = client.post(f"{API}/drills/{drill_id}/assign", json={
        "learner_ids": [learner.id, other_learner.id],
        "assigned_by": tutor.id,
    })

    assert response.status_code == 201
    body = response.json()
    assert body["total"] == 1
    assert body["skipped"] == 1
    assert body["created"][0]["learner_id"] == other_learner.id

    listed = client.get(f"{API}/drills/{drill_id}/assignments").json()
    assert listed["total"] == 2


def test_error_mapping(client, tutor, learner, other_learner):
    drill_id = _create_drill(client, tutor, [learner])["drill"]["id"]

    missing = client.post(f"{API}/drills/9999/assign", json={"learner_ids": [learner.id], "assigned_by": tutor.id})
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Drill not found", "type": "NotFoundError"}

    forbidden = client.get(f"{API}/drills/{drill_id}", params={"user_id": other_learner.id})
    assert forbidden.status_code == 403

    not_a_learner = client.post(f"{API}/drills/{drill_id}/assign", json={"learner_ids": [tutor.id], "assigned_by": tutor.id})
    assert not_a_learner.status_code == 400
    assert not_a_learner.json()["type"] == "ValidationError"

    invalid = client.post(f"{API}/drills", json={
        "creator_id": tutor.id,
        "drill": {"title": "Empty", "type": "vocabulary", "content": {}},
    })
    assert invalid.status_code == 400

    malformed = client.post(f"{API}/drills", json={"creator_id": tutor.id})
    assert malformed.status_code == 422
    assert json.loads(malformed.json()["body"]) == {"creator_id": tutor.id}


def test_complete_with_wrong_assignment(client, tutor, learner):
    first = _create_drill(client, tutor, [learner])["drill"]["id"]
    second = _create_drill(client, tutor, [learner])["drill"]["id"]
    assignment_id = _assignment_id(client, first, learner)

    response = client.post(f"{API}/drills/{second}/complete", json={
        "assignment_id": assignment_id,
        "learner_id": learner.id,
        "score": 100,
        "time_spent": 120,
        "results": {"kind": "vocabulary", "word_scores": []},
    })

    assert response.status_code == 400
    assert f"Assignment is for drill {first}" in response.json()["detail"]


def test_complete_and_review_flow(client, tutor, learner):
    drill_id = _create_drill(client, tutor, [learner], "grammar", GRAMMAR_CONTENT)["drill"]["id"]
    assignment_id = _assignment_id(client, drill_id, learner)

    completed = client.post(f"{API}/drills/{drill_id}/complete", json={
        "assignment_id": assignment_id,
        "learner_id": learner.id,
        "score": 0,
        "time_spent": 300,
        "results": {
            "kind": "grammar",
            "patterns": [{"pattern": "Used to", "sentences": [
                {"index": 0, "text": "I used to swim."},
                {"index": 1, "text": "He use to run."},
            ]}],
        },
    })
    assert completed.status_code == 201, completed.text
    attempt = completed.json()
    assert attempt["review_status"] == "pending"

    queue = client.get(f"{API}/drill-attempts/submissions", params={"drill_type": "grammar"}).json()
    assert [a["id"] for a in queue["attempts"]] == [attempt["id"]]

    review = {
        "reviewer_id": tutor.id,
        "reviews": [
            {"pattern_index": 0, "sentence_index": 0, "is_correct": True},
            {"pattern_index": 0, "sentence_index": 1, "is_correct": False, "corrected_text": "He used to run."},
        ],
    }
    first = client.post(f"{API}/drill-attempts/{attempt['id']}/grammar-review", json=review)
    assert first.status_code == 200
    assert first.json()["score"] == 50

    second = client.post(f"{API}/drill-attempts/{attempt['id']}/grammar-review", json=review)
    assert second.status_code == 400

    latest = client.get(f"{API}/drill-assignments/latest-attempts", params={"assignment_ids": [assignment_id]}).json()
    info = latest[str(assignment_id)]
    assert info["score"] == 50
    assert info["review_status"] == "reviewed"
    assert info["correct_count"] == 1
    assert info["total_count"] == 2


def test_practice_session_flow(client, tutor, learner, fake_oracle):
    drill_id = _create_drill(client, tutor, [learner])["drill"]["id"]
    assignment_id = _assignment_id(client, drill_id, learner)
    fake_oracle.scores = [50, 90, 70]

    started = client.post(f"{API}/practice/sessions", json={
        "drill_id": drill_id, "assignment_id": assignment_id, "learner_id": learner.id,
    })
    assert started.status_code == 201, started.text
    session_id = started.json()["session_id"]
    assert started.json()["current_gate"]["reference_text"] == "boarding pass"

    early = client.post(f"{API}/practice/sessions/{session_id}/submit", json={"time_spent": 10})
    assert early.status_code == 409

    low = client.post(f"{API}/practice/sessions/{session_id}/recording", json={"audio_base64": AUDIO}).json()
    assert low["passed"] is False
    assert low["session"]["current_gate"]["state"] == "attempting"

    word = client.post(f"{API}/practice/sessions/{session_id}/recording", json={"audio_base64": AUDIO}).json()
    assert word["passed"] is True
    assert word["session"]["current_phase"] == 1

    sentence = client.post(f"{API}/practice/sessions/{session_id}/recording", json={"audio_base64": AUDIO}).json()
    assert sentence["item_passed"] is True
    assert sentence["session"]["state"] == "ready_to_submit"

    submitted = client.post(f"{API}/practice/sessions/{session_id}/submit", json={"time_spent": 120})
    assert submitted.status_code == 201, submitted.text
    attempt = submitted.json()
    assert attempt["score"] == 100
    assert attempt["results"]["word_scores"][0]["passed"] is True
    assert session_id not in practice_sessions

    assignment = client.get(f"{API}/drill-assignments", params={"learner_id": learner.id}).json()["assignments"][0]
    assert assignment["status"] == "completed"


def test_practice_rejects_bad_audio_and_unknown_sessions(client, tutor, learner, fake_oracle):
    drill_id = _create_drill(client, tutor, [learner])["drill"]["id"]
    assignment_id = _assignment_id(client, drill_id, learner)
    session_id = client.post(f"{API}/practice/sessions", json={
        "drill_id": drill_id, "assignment_id": assignment_id, "learner_id": learner.id,
    }).json()["session_id"]

    bad_audio = client.post(f"{API}/practice/sessions/{session_id}/recording", json={"audio_base64": "not base64!"})
    assert bad_audio.status_code == 400
    assert fake_oracle.calls == []

    abandoned = client.delete(f"{API}/practice/sessions/{session_id}")
    assert abandoned.status_code == 204
    assert client.get(f"{API}/practice/sessions/{session_id}").status_code == 404


def test_oracle_failure_maps_to_bad_gateway(client, tutor, learner, fake_oracle):
    from drill_engine.core.exceptions import OracleError

    drill_id = _create_drill(client, tutor, [learner])["drill"]["id"]
    assignment_id = _assignment_id(client, drill_id, learner)
    fake_oracle.scores = [OracleError("Speechace request failed"), 80]
    session_id = client.post(f"{API}/practice/sessions", json={
        "drill_id": drill_id, "assignment_id": assignment_id, "learner_id": learner.id,
    }).json()["session_id"]

    failed = client.post(f"{API}/practice/sessions/{session_id}/recording", json={"audio_base64": AUDIO})
    assert failed.status_code == 502

    retried = client.post(f"{API}/practice/sessions/{session_id}/recording", json={"audio_base64": AUDIO})
    assert retried.status_code == 200
    assert retried.json()["passed"] is True


def test_practice_needs_own_assignment(client, tutor, learner, other_learner):
    drill_id = _create_drill(client, tutor, [learner])["drill"]["id"]
    assignment_id = _assignment_id(client, drill_id, learner)

    response = client.post(f"{API}/practice/sessions", json={
        "drill_id": drill_id, "assignment_id": assignment_id, "learner_id": other_learner.id,
    })

    assert response.status_code == 404


def test_idle_practice_sessions_are_evicted(client, tutor, learner):
    drill_id = _create_drill(client, tutor, [learner])["drill"]["id"]
    assignment_id = _assignment_id(client, drill_id, learner)
    start = {"drill_id": drill_id, "assignment_id": assignment_id, "learner_id": learner.id}
    idle_id = client.post(f"{API}/practice/sessions", json=start).json()["session_id"]
    idle = practice_sessions[idle_id]
    last_activity[idle_id] = datetime.utcnow() - timedelta(minutes=settings.practice_session_ttl_minutes + 1)

    active_id = client.post(f"{API}/practice/sessions", json=start).json()["session_id"]

    assert idle_id not in practice_sessions
    assert idle_id not in last_activity
    assert idle.state == "abandoned"
    assert client.get(f"{API}/practice/sessions/{idle_id}").status_code == 404
    assert client.get(f"{API}/practice/sessions/{active_id}").status_code == 200


def test_touching_a_session_keeps_it_alive(client, tutor, learner):
    drill_id = _create_drill(client, tutor, [learner])["drill"]["id"]
    assignment_id = _assignment_id(client, drill_id, learner)
    session_id = client.post(f"{API}/practice/sessions", json={
        "drill_id": drill_id, "assignment_id": assignment_id, "learner_id": learner.id,
    }).json()["session_id"]
    last_activity[session_id] = datetime.utcnow() - timedelta(minutes=settings.practice_session_ttl_minutes - 1)

    assert client.get(f"{API}/practice/sessions/{session_id}").status_code == 200
    evict_idle_sessions(now=datetime.utcnow() + timedelta(minutes=2))
    assert session_id in practice_sessions

    assert evict_idle_sessions(now=datetime.utcnow() + timedelta(minutes=settings.practice_session_ttl_minutes + 1)) >= 1
    assert session_id not in practice_sessions


def test_unexpected_errors_hide_details(session, tutor, monkeypatch):
    from fastapi.testclient import TestClient

    from drill_engine import main
    from drill_engine.core.database import get_session
    from drill_engine.services import drill_service

    def broken(*args, **kwargs):
        raise RuntimeError("database exploded")

    monkeypatch.setattr(drill_service, "get_drill_for_user", broken)
    main.app.dependency_overrides[get_session] = lambda: session
    client = TestClient(main.app, raise_server_exceptions=False)
    try:
        response = client.get(f"{API}/drills/1", params={"user_id": tutor.id})
        assert response.status_code == 500
        assert response.json() == {
            "detail": "An internal server error occurred. Please try again later.",
            "type": "InternalServerError",
        }

        monkeypatch.setattr(main, "IS_DEVELOPMENT", True)
        detailed = client.get(f"{API}/drills/1", params={"user_id": tutor.id}).json()
        assert detailed["detail"] == "database exploded"
        assert "RuntimeError" in detailed["traceback"]
    finally:
        main.app.dependency_overrides.clear()
