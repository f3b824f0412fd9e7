"""Tests for goal-driven monitoring schedule generation."""

from datetime import date

from care_docs.schemas import GoalPeriodSchema, MonitoringScheduleSchema
from care_docs.services.monitoring_generator import (
    create_emergency_monitoring,
    generate_monitoring_schedules_from_goals,
)


def _goal(goal_id: str, goal_type: str = "long_term", end: date = date(2025, 12, 31), **fields) -> GoalPeriodSchema:
    return GoalPeriodSchema(
        id=goal_id,
        care_client_id="c1",
        goal_type=goal_type,
        goal_index=fields.pop("goal_index", 0 if goal_type == "short_term" else None),
        start_date=fields.pop("start_date", date(2025, 1, 1)),
        end_date=end,
        **fields,
    )


def test_long_term_goal_yields_one_item_and_rerun_yields_none():
    goals = [_goal("g-long")]

    created = generate_monitoring_schedules_from_goals(goals, [], date(2025, 8, 1), alert_days_before=14)

    assert len(created) == 1
    item = created[0]
    assert item.monitoring_type == "long_term"
    assert item.goal_period_id == "g-long"
    assert item.status == "scheduled"
    assert item.due_date == date(2025, 12, 31)
    assert item.alert_date == date(2025, 12, 17)

    assert generate_monitoring_schedules_from_goals(goals, created, date(2025, 8, 1)) == []


def test_one_item_per_active_goal():
    goals = [
        _goal("g-long"),
        _goal("g-s0", "short_term", date(2025, 9, 30), goal_index=0),
        _goal("g-s1", "short_term", date(2025, 10, 31), goal_index=1),
        _goal("g-old", "short_term", date(2025, 6, 30), goal_index=2, is_active=False),
    ]

    created = generate_monitoring_schedules_from_goals(goals, [], date(2025, 8, 1))

    assert [(i.goal_period_id, i.monitoring_type) for i in created] == [
        ("g-long", "long_term"),
        ("g-s0", "short_term"),
        ("g-s1", "short_term"),
    ]


def test_goal_already_ended_gives_pending_item():
    created = generate_monitoring_schedules_from_goals(
        [_goal("g-past", end=date(2025, 7, 15))], [], date(2025, 8, 1)
    )

    assert created[0].status == "pending"


def test_completed_history_kept_and_new_goal_gets_new_item():
    completed = MonitoringScheduleSchema(
        id="m1", care_client_id="c1", goal_period_id="g-s0-old", monitoring_type="short_term",
        status="completed", due_date=date(2025, 6, 30),
    )
    old_goal = _goal("g-s0-old", "short_term", date(2025, 6, 30), is_active=False)
    new_goal = _goal("g-s0-new", "short_term", date(2025, 12, 31), supersedes_id="g-s0-old")

    created = generate_monitoring_schedules_from_goals([old_goal, new_goal], [completed], date(2025, 7, 1))

    assert [i.goal_period_id for i in created] == ["g-s0-new"]


def test_completed_item_for_same_goal_is_not_duplicated():
    completed = MonitoringScheduleSchema(
        id="m1", care_client_id="c1", goal_period_id="g-long", monitoring_type="long_term",
        status="completed", due_date=date(2025, 12, 31),
    )

    assert generate_monitoring_schedules_from_goals([_goal("g-long")], [completed], date(2026, 1, 5)) == []


def test_emergency_item_has_no_goal():
    item = create_emergency_monitoring("c1", "입원", date(2025, 8, 1), trigger_notes="낙상으로 입원")

    assert item.monitoring_type == "emergency"
    assert item.goal_period_id is None
    assert item.status == "pending"
    assert item.due_date == date(2025, 8, 1)
    assert item.trigger_event == "입원"
