"""Tests for the SQLAlchemy schedule repository."""

from datetime import date, datetime

import pytest
from sqlalchemy.exc import OperationalError

from care_docs.exceptions import CompletedItemImmutable, PersistenceError, ScheduleConflict
from care_docs.schemas import (
    DocumentScheduleSchema, GoalPeriodInput, GoalPeriodSchema, MonitoringScheduleSchema, ValidationResult,
)
from care_docs.services.monitoring_generator import create_emergency_monitoring


def test_save_schedule_bumps_version_and_keeps_one_row(repository, add_client, save_schedule):
    client = add_client()
    first = save_schedule(client, "care_plan")

    second = save_schedule(client, "care_plan", status="active", last_generated_at=datetime(2025, 2, 25))

    assert first.version == 1
    assert second.id == first.id
    assert second.version == 2
    assert len(repository.load_schedules(client.id)) == 1


def test_status_update_is_compare_and_swap(repository, add_client, save_schedule):
    client = add_client()
    schedule = save_schedule(client, "care_plan", status="active")

    assert repository.update_schedule_status(schedule, "overdue") is True
    # 같은 (status, version)으로 다시 쓰면 경합에서 진 것으로 처리
    assert repository.update_schedule_status(schedule, "due_soon") is False

    stored = repository.get_schedule(client.id, "care_plan")
    assert stored.status == "overdue"
    assert stored.version == 2


def test_replace_goal_periods_keeps_history(repository, add_client):
    client = add_client()
    first = repository.replace_goal_periods(client.id, [
        GoalPeriodInput(goal_type="long_term", start_date=date(2025, 1, 1), end_date=date(2025, 12, 31)),
        GoalPeriodInput(goal_type="short_term", goal_index=0, start_date=date(2025, 1, 1), end_date=date(2025, 6, 30)),
    ])

    second = repository.replace_goal_periods(client.id, [
        GoalPeriodInput(goal_type="long_term", start_date=date(2025, 7, 1), end_date=date(2026, 6, 30)),
    ])

    old_long = next(g for g in first if g.goal_type == "long_term")
    assert second[0].supersedes_id == old_long.id
    assert [g.id for g in repository.load_goal_periods(client.id, active_only=True)] == [second[0].id]
    assert len(repository.load_goal_periods(client.id)) == 3


def test_reset_goal_periods_keeps_completed_monitoring(repository, add_client):
    client = add_client()
    goals = repository.replace_goal_periods(client.id, [
        GoalPeriodInput(goal_type="long_term", start_date=date(2025, 1, 1), end_date=date(2025, 12, 31)),
    ])
    repository.save_monitoring_schedule(MonitoringScheduleSchema(
        care_client_id=client.id, goal_period_id=goals[0].id, monitoring_type="long_term",
        status="scheduled", due_date=date(2025, 12, 31),
    ))
    repository.save_monitoring_schedule(MonitoringScheduleSchema(
        care_client_id=client.id, goal_period_id=goals[0].id, monitoring_type="short_term",
        status="completed", due_date=date(2025, 6, 30), completed_at=datetime(2025, 6, 28),
    ))
    repository.save_monitoring_schedule(create_emergency_monitoring(client.id, "입원", date(2025, 5, 1)))

    deleted = repository.reset_goal_periods(client.id)

    assert deleted == 1
    assert repository.load_goal_periods(client.id) == []
    remaining = sorted(i.status for i in repository.load_monitoring_schedules(client.id))
    assert remaining == ["completed", "pending"]


def test_completed_monitoring_item_is_immutable(repository, add_client):
    client = add_client()
    item = repository.save_monitoring_schedule(MonitoringScheduleSchema(
        care_client_id=client.id, monitoring_type="emergency", status="pending", due_date=date(2025, 5, 1),
    ))
    completed = repository.save_monitoring_schedule(
        item.model_copy(update={"status": "completed", "completed_at": datetime(2025, 5, 2, 15)})
    )

    with pytest.raises(CompletedItemImmutable):
        repository.save_monitoring_schedule(completed.model_copy(update={"notes": "추기"}))

    assert repository.get_monitoring_schedule(item.id).completed_at == datetime(2025, 5, 2, 15)


def test_billing_records_loaded_for_month(repository, add_client, add_billing):
    client = add_client()
    add_billing(client, "田中", date(2025, 4, 1))
    add_billing(client, "田中", date(2025, 4, 30))
    add_billing(client, "田中", date(2025, 5, 1))

    records = repository.load_billing_records_for_month(2025, 4)

    assert [r.service_date for r in records] == [date(2025, 4, 1), date(2025, 4, 30)]


def test_goal_period_crud(repository, add_client):
    client = add_client()
    goal = repository.save_goal_period(GoalPeriodSchema(
        care_client_id=client.id, goal_type="short_term", goal_index=1,
        start_date=date(2025, 1, 1), end_date=date(2025, 3, 31),
    ))
    updated = repository.save_goal_period(goal.model_copy(update={"goal_text": "주 2회 외출"}))

    assert updated.id == goal.id
    assert repository.load_goal_periods(client.id)[0].goal_text == "주 2회 외출"

    repository.delete_goal_period(goal.id)
    assert repository.load_goal_periods(client.id) == []


def test_save_batch_rejects_row_changed_since_read(repository, add_client, save_schedule):
    client = add_client()
    plan = save_schedule(client, "care_plan", status="active")
    procedure = save_schedule(client, "tejunsho", status="active")
    assert repository.update_schedule_status(procedure, "generating")

    with pytest.raises(ScheduleConflict):
        repository.save_batch([
            plan.model_copy(update={"last_generated_at": datetime(2025, 2, 25)}),
            procedure.model_copy(update={"status": "active", "last_generated_at": datetime(2025, 2, 25)}),
        ])

    assert repository.get_schedule(client.id, "care_plan").last_generated_at is None
    assert repository.get_schedule(client.id, "tejunsho").status == "generating"


def test_save_batch_staging_failure_leaves_nothing_behind(repository, add_client, monkeypatch):
    client = add_client()

    def broken_get(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(repository.db, "get", broken_get)
    with pytest.raises(PersistenceError):
        repository.save_batch([
            DocumentScheduleSchema(care_client_id=client.id, doc_type="care_plan", status="active"),
            DocumentScheduleSchema(id="missing", care_client_id=client.id, doc_type="tejunsho"),
        ])
    monkeypatch.undo()

    # 이후 커밋에 스테이징된 행이 섞이지 않아야 함
    repository.save_validation(ValidationResult(
        care_client_id=client.id, is_valid=True, checks=[], checked_at=datetime(2025, 2, 25)
    ))
    assert repository.load_schedules(client.id) == []
