import pytest
from sqlmodel import select

from drill_engine.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from drill_engine.models import Drill, DrillAssignment
from drill_engine.schemas.drill import DrillContent, DrillData, UpdateDrillRequest
from drill_engine.services import drill_service

VOCABULARY_CONTENT = {
    "target_sentences": [
        {"word": "boarding pass", "text": "Here is my boarding pass."},
    ]
}


def _drill_data(**overrides):
    data = {
        "title": "Airport vocabulary",
        "type": "vocabulary",
        "duration_days": 7,
        "content": VOCABULARY_CONTENT,
    }
    data.update(overrides)
    return DrillData.model_validate(data)


def test_create_drill_with_assignments(session, tutor, learner, other_learner, scheduler):
    drill, count = drill_service.create_drill_with_assignments(
        session, _drill_data(), tutor.id, [learner.id, other_learner.id], schedule=scheduler
    )

    assert drill.id is not None
    assert drill.created_by_id == tutor.id
    assert drill.content["target_sentences"][0]["word"] == "boarding pass"
    assert count == 2
    assert drill.total_assignments == 2
    assert {n.recipient_id for n in scheduler.notifications} == {learner.id, other_learner.id}


def test_create_drill_without_learners(session, tutor, scheduler):
    drill, count = drill_service.create_drill_with_assignments(session, _drill_data(), tutor.id, [], schedule=scheduler)

    assert count == 0
    assert drill.total_assignments == 0
    assert scheduler.calls == []


def test_learners_cannot_create_drills(session, learner):
    with pytest.raises(ForbiddenError):
        drill_service.create_drill_with_assignments(session, _drill_data(), learner.id, [])


def test_create_drill_validates_before_writing(session, tutor, learner):
    with pytest.raises(ValidationError):
        drill_service.create_drill_with_assignments(session, _drill_data(content={}), tutor.id, [learner.id])
    with pytest.raises(NotFoundError):
        drill_service.create_drill_with_assignments(session, _drill_data(), tutor.id, [learner.id, 9999])

    assert session.exec(select(Drill)).all() == []
    assert session.exec(select(DrillAssignment)).all() == []


def test_content_rules_per_type():
    assert DrillContent(matching_pairs=[{"left": "a", "right": "b"}]).validate_type_specific_fields("matching")
    assert DrillContent.model_validate({
        "roleplay_scenes": [{"scene_name": "Cafe", "dialogue": [{"speaker": "ai_0", "text": "Hello"}]}]
    }).validate_type_specific_fields("roleplay")
    assert DrillContent(article_content="Text").validate_type_specific_fields("summary") == []


def test_update_assigns_only_new_learners(session, tutor, learner, other_learner, scheduler):
    drill, _ = drill_service.create_drill_with_assignments(
        session, _drill_data(), tutor.id, [learner.id], schedule=scheduler
    )
    scheduler.calls.clear()

    updated, new_count = drill_service.update_drill(session, drill.id, UpdateDrillRequest(
        actor_id=tutor.id,
        title="Airport vocabulary (fixed)",
        learner_ids=[learner.id, other_learner.id],
    ), schedule=scheduler)

    assert updated.title == "Airport vocabulary (fixed)"
    assert new_count == 1
    assert updated.total_assignments == 2
    assert [n.recipient_id for n in scheduler.notifications] == [other_learner.id]
    assignments = session.exec(select(DrillAssignment).where(DrillAssignment.drill_id == drill.id)).all()
    assert sorted(a.learner_id for a in assignments) == sorted([learner.id, other_learner.id])


def test_only_creator_or_admin_can_update(session, tutor, admin, make_drill):
    other_tutor_drill = make_drill(created_by_id=admin.id)
    drill = make_drill()

    with pytest.raises(ForbiddenError):
        drill_service.update_drill(session, other_tutor_drill.id, UpdateDrillRequest(actor_id=tutor.id, title="Mine"))

    updated, _ = drill_service.update_drill(session, drill.id, UpdateDrillRequest(actor_id=admin.id, is_active=False))
    assert updated.is_active is False


def test_drill_access_rules(session, tutor, admin, learner, other_learner, make_drill, make_assignment):
    drill = make_drill()
    foreign = make_drill(created_by_id=admin.id)
    assignment = make_assignment(drill, learner)

    assert drill_service.get_drill_for_user(session, foreign.id, admin.id) == (foreign, None)
    assert drill_service.get_drill_for_user(session, drill.id, tutor.id) == (drill, None)
    assert drill_service.get_drill_for_user(session, drill.id, learner.id) == (drill, assignment)
    assert drill_service.get_drill_for_user(session, drill.id, learner.id, assignment.id)[1].id == assignment.id

    with pytest.raises(ForbiddenError):
        drill_service.get_drill_for_user(session, foreign.id, tutor.id)
    with pytest.raises(ForbiddenError):
        drill_service.get_drill_for_user(session, drill.id, other_learner.id)
    with pytest.raises(NotFoundError):
        drill_service.get_drill_for_user(session, drill.id, other_learner.id, assignment.id)


def test_list_drills_filters(session, tutor, admin, learner, make_drill, make_assignment):
    vocabulary = make_drill("vocabulary")
    grammar = make_drill("grammar", created_by_id=admin.id)
    make_assignment(grammar, learner)

    by_type, type_total = drill_service.list_drills(session, drill_type="vocabulary")
    by_learner, _ = drill_service.list_drills(session, learner_id=learner.id)
    by_creator, _ = drill_service.list_drills(session, created_by_id=tutor.id)

    assert [d.id for d in by_type] == [vocabulary.id]
    assert type_total == 1
    assert [d.id for d in by_learner] == [grammar.id]
    assert [d.id for d in by_creator] == [vocabulary.id]
