"""
서류 갱신 기한 계산
"""
from datetime import date
from typing import NamedTuple, Optional

from care_docs.config import settings
from care_docs.exceptions import ScheduleConfigurationError
from care_docs.schemas import DocumentScheduleSchema, CareClientSchema
from care_docs.services.date_utils import add_months, add_days

class DueDates(NamedTuple):
    next_due_date: date
    alert_date: date
    expiry_date: date

def validate_cycle(schedule: DocumentScheduleSchema):
    if schedule.cycle_months <= 0:
        raise ScheduleConfigurationError(
            schedule.id, f"갱신 주기는 1개월 이상이어야 합니다 (cycle_months={schedule.cycle_months})"
        )
    if schedule.alert_days_before < 0:
        raise ScheduleConfigurationError(
            schedule.id, f"알림 일수는 0 이상이어야 합니다 (alert_days_before={schedule.alert_days_before})"
        )

def compute_next_dates(
    cycle_months: int,
    alert_days_before: int,
    base_date: date,
    grace_days: Optional[int] = None
) -> DueDates:
    """기준일 + 주기 → 다음 기한 / 알림일 / 만료일"""
    if cycle_months <= 0 or alert_days_before < 0:
        raise ScheduleConfigurationError(
            None, f"잘못된 갱신 설정: cycle_months={cycle_months}, alert_days_before={alert_days_before}"
        )
    if grace_days is None:
        grace_days = settings.expiry_grace_days

    next_due_date = add_months(base_date, cycle_months)
    return DueDates(
        next_due_date=next_due_date,
        alert_date=add_days(next_due_date, -alert_days_before),
        expiry_date=add_days(next_due_date, grace_days),
    )

def anchor_date(schedule: DocumentScheduleSchema) -> Optional[date]:
    return schedule.last_generated_at.date() if schedule.last_generated_at else None

def resolve_baseline(
    schedule: DocumentScheduleSchema,
    client: Optional[CareClientSchema],
    today: Optional[date] = None
) -> date:
    """미생성 서류의 기준일: 계약 개시일 → 스케줄 생성일 → 오늘"""
    if client is not None and client.contract_start:
        return client.contract_start
    if schedule.created_at:
        return schedule.created_at.date()
    return today or date.today()

def resolve_due_dates(
    schedule: DocumentScheduleSchema,
    client: Optional[CareClientSchema],
    today: Optional[date] = None
) -> DueDates:
    """
    스케줄의 실효 기한을 파생한다 (저장된 next_due_date는 신뢰하지 않음).

    - 생성 이력 또는 연결된 계획서 기간 시작일 있음: 둘 중 늦은 날 + cycle_months
    - 최초 발행: 기준일 당일이 기한 (알림 창 없음)
    """
    validate_cycle(schedule)

    anchors = [d for d in (anchor_date(schedule), schedule.period_start) if d is not None]
    if anchors:
        return compute_next_dates(schedule.cycle_months, schedule.alert_days_before, max(anchors))

    baseline = resolve_baseline(schedule, client, today)
    return DueDates(
        next_due_date=baseline,
        alert_date=baseline,
        expiry_date=add_days(baseline, settings.expiry_grace_days),
    )
