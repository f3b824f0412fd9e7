"""
목표 기간 → 모니터링 일정 자동 생성
"""
from datetime import date
from typing import Iterable, List, Optional

from care_docs.config import settings
from care_docs.schemas import GoalPeriodSchema, MonitoringScheduleSchema
from care_docs.services.date_utils import add_days

def generate_monitoring_schedules_from_goals(
    goal_periods: Iterable[GoalPeriodSchema],
    existing_items: Iterable[MonitoringScheduleSchema],
    today: date,
    alert_days_before: Optional[int] = None
) -> List[MonitoringScheduleSchema]:
    """
    활성 목표마다 종료일을 기한으로 하는 모니터링 항목을 만든다.

    같은 (goal_period_id, monitoring_type) 항목이 이미 있으면 상태와 무관하게 만들지 않는다.
    완료 항목은 이력으로 남고, 새 항목은 다른 id의 목표가 대체했을 때만 생긴다.
    반환값은 새로 저장할 항목뿐이며 기존 항목은 건드리지 않는다.
    """
    if alert_days_before is None:
        alert_days_before = settings.monitoring_alert_days_before

    seen = {
        (item.goal_period_id, item.monitoring_type)
        for item in existing_items
        if item.goal_period_id is not None
    }
    new_items = []

    for goal in goal_periods:
        if not goal.is_active or goal.id is None:
            continue
        key = (goal.id, goal.goal_type)
        if key in seen:
            continue
        seen.add(key)

        due_date = goal.end_date
        new_items.append(MonitoringScheduleSchema(
            care_client_id=goal.care_client_id,
            goal_period_id=goal.id,
            monitoring_type=goal.goal_type,
            # 기한이 이미 지났으면 즉시 대응 대상
            status="scheduled" if due_date >= today else "pending",
            due_date=due_date,
            alert_date=add_days(due_date, -alert_days_before),
        ))

    return new_items

def create_emergency_monitoring(
    care_client_id: str,
    trigger_event: str,
    today: date,
    trigger_notes: Optional[str] = None,
    due_date: Optional[date] = None
) -> MonitoringScheduleSchema:
    """긴급 모니터링 (입원·상태 급변 등 계기 1건당 1항목, 목표와 무관)"""
    return MonitoringScheduleSchema(
        care_client_id=care_client_id,
        goal_period_id=None,
        monitoring_type="emergency",
        status="pending",
        due_date=due_date or today,
        trigger_event=trigger_event,
        trigger_notes=trigger_notes,
    )
