from datetime import datetime, timedelta

import pytest
from sqlmodel import select

from drill_engine.core.exceptions import NotFoundError, ValidationError
from drill_engine.models import AssignmentStatus, DrillAssignment
from drill_engine.services import assignment_service
from drill_engine.services.notification_service import NotificationKind


def _assignments(session, drill_id):
    return session.exec(select(DrillAssignment).where(DrillAssignment.drill_id == drill_id)).all()


def test_assign_creates_pending_assignments(session, tutor, learner, other_learner, make_drill, scheduler):
    drill = make_drill()

    result = assignment_service.assign_drill(
        session, drill.id, [learner.id, other_learner.id], tutor.id, schedule=scheduler
    )

    assert result.total == 2
    assert result.skipped == 0
    assert result.failed == 0
    assert {a.learner_id for a in result.created} == {learner.id, other_learner.id}
    assert all(a.status == AssignmentStatus.PENDING.value for a in result.created)
    assert all(a.assigned_by_id == tutor.id for a in result.created)

    session.refresh(drill)
    assert drill.total_assignments == 2


def test_assigning_twice_creates_one_assignment(session, tutor, learner, make_drill, scheduler):
    drill = make_drill()

    first = assignment_service.assign_drill(session, drill.id, [learner.id], tutor.id, schedule=scheduler)
    second = assignment_service.assign_drill(session, drill.id, [learner.id], tutor.id, schedule=scheduler)

    assert first.total == 1
    assert second.total == 0
    assert second.skipped == 1
    assert len(_assignments(session, drill.id)) == 1

    session.refresh(drill)
    assert drill.total_assignments == 1


def test_insert_conflict_counts_as_skipped(session, tutor, learner, other_learner, make_drill, scheduler, monkeypatch):
    """A row inserted by a concurrent call is reported as already assigned."""
    drill = make_drill()
    assignment_service.assign_drill(session, drill.id, [learner.id], tutor.id, schedule=scheduler)

    # Simulate the race: the pre-check misses the row another call just inserted
    monkeypatch.setattr(assignment_service, "find_existing_learner_ids", lambda *args: set())

    result = assignment_service.assign_drill(
        session, drill.id, [learner.id, other_learner.id], tutor.id, schedule=scheduler
    )

    assert result.total == 1
    assert result.created[0].learner_id == other_learner.id
    assert result.skipped == 1
    assert result.failed == 0
    assert len(_assignments(session, drill.id)) == 2


def test_repeated_learner_ids_are_assigned_once(session, tutor, learner, make_drill, scheduler):
    drill = make_drill()

    result = assignment_service.assign_drill(
        session, drill.id, [learner.id, learner.id], tutor.id, schedule=scheduler
    )

    assert result.total == 1
    assert len(_assignments(session, drill.id)) == 1


def test_validation_failure_creates_nothing(session, tutor, learner, make_drill, scheduler):
    drill = make_drill()

    with pytest.raises(NotFoundError) as exc_info:
        assignment_service.assign_drill(session, drill.id, [learner.id, 9999], tutor.id, schedule=scheduler)

    assert "9999" in str(exc_info.value)
    assert _assignments(session, drill.id) == []
    assert scheduler.calls == []


def test_only_learners_can_be_assigned(session, tutor, admin, make_drill, scheduler):
    drill = make_drill()

    with pytest.raises(ValidationError) as exc_info:
        assignment_service.assign_drill(session, drill.id, [admin.id], tutor.id, schedule=scheduler)
    assert "One or more learner IDs are invalid" in str(exc_info.value)

    with pytest.raises(NotFoundError):
        assignment_service.assign_drill(session, drill.id, [9999], tutor.id, schedule=scheduler)
    assert scheduler.calls == []


def test_missing_drill_or_assigner(session, tutor, learner, make_drill, scheduler):
    drill = make_drill()

    with pytest.raises(NotFoundError) as drill_error:
        assignment_service.assign_drill(session, 9999, [learner.id], tutor.id, schedule=scheduler)
    assert str(drill_error.value) == "Drill not found"

    with pytest.raises(NotFoundError) as assigner_error:
        assignment_service.assign_drill(session, drill.id, [learner.id], 9999, schedule=scheduler)
    assert str(assigner_error.value) == "Assigner not found"


def test_empty_learner_list_is_rejected(session, tutor, make_drill):
    drill = make_drill()

    with pytest.raises(ValidationError):
        assignment_service.assign_drill(session, drill.id, [], tutor.id)


def test_new_learners_are_notified(session, tutor, learner, make_drill, scheduler):
    drill = make_drill(title="Airport vocabulary")

    assignment_service.assign_drill(session, drill.id, [learner.id], tutor.id, schedule=scheduler)

    notifications = scheduler.notifications
    assert len(notifications) == 1
    assert notifications[0].kind == NotificationKind.ASSIGNED
    assert notifications[0].recipient_id == learner.id
    assert "Tina Tutor" in notifications[0].body
    assert "Airport vocabulary" in notifications[0].body


def test_due_date_policy(make_drill):
    now = datetime(2026, 3, 1, 12, 0)
    explicit = datetime(2026, 4, 1)

    dated = make_drill(due_date=datetime(2026, 3, 15))
    undated = make_drill(duration_days=7)

    assert assignment_service.derive_due_date(dated, explicit, now=now) == explicit
    assert assignment_service.derive_due_date(dated, now=now) == datetime(2026, 3, 15)
    assert assignment_service.derive_due_date(undated, now=now) == now + timedelta(days=7)


def test_update_status(session, learner, make_drill, make_assignment):
    assignment = make_assignment(make_drill(), learner)

    updated = assignment_service.update_assignment_status(session, assignment.id, AssignmentStatus.IN_PROGRESS)

    assert updated.status == "in-progress"


def test_update_status_cannot_complete(session, learner, make_drill, make_assignment):
    assignment = make_assignment(make_drill(), learner)

    with pytest.raises(ValidationError):
        assignment_service.update_assignment_status(session, assignment.id, AssignmentStatus.COMPLETED)

    session.refresh(assignment)
    assert assignment.status == "pending"


def test_update_status_missing_assignment(session):
    with pytest.raises(NotFoundError):
        assignment_service.update_assignment_status(session, 9999, AssignmentStatus.SKIPPED)


def test_list_assignments_for_learner(session, tutor, learner, other_learner, make_drill, scheduler):
    first = make_drill(title="First")
    second = make_drill(title="Second")
    assignment_service.assign_drill(session, first.id, [learner.id, other_learner.id], tutor.id, schedule=scheduler)
    result = assignment_service.assign_drill(session, second.id, [learner.id], tutor.id, schedule=scheduler)
    assignment_service.update_assignment_status(session, result.created[0].id, AssignmentStatus.SKIPPED)

    assignments, total = assignment_service.list_assignments_for_learner(session, learner.id)
    skipped, skipped_total = assignment_service.list_assignments_for_learner(
        session, learner.id, status=AssignmentStatus.SKIPPED
    )

    assert total == 2
    assert {a.drill_id for a in assignments} == {first.id, second.id}
    assert skipped_total == 1
    assert skipped[0].drill_id == second.id
