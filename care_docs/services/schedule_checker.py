"""
서류 스케줄 체크 (순수 판정 + 호출자 측 상태 동기화)
"""
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from care_docs.config import settings
from care_docs.exceptions import ScheduleConfigurationError, PersistenceError
from care_docs.logging_config import get_logger, log_schedule_event, log_status_sync_failure
from care_docs.schemas import (
    DOC_TYPES, CareClientSchema, DocumentScheduleSchema, MonitoringScheduleSchema,
    ScheduleAction, ScheduleCheckResult, ScheduleConfigurationIssue, StatusSyncReport,
    MonitoringAction, MonitoringCheckResult,
)
from care_docs.services.date_utils import add_days, days_diff
from care_docs.services.due_dates import resolve_due_dates

logger = get_logger(__name__)

UNKNOWN_CLIENT_NAME = "不明"

# ========== 초기 스케줄 ==========

def create_initial_schedules(
    care_client_id: str,
    contract_start: Optional[date] = None
) -> List[DocumentScheduleSchema]:
    """이용자 1명분의 미발행(pending) 스케줄 3종"""
    return [
        DocumentScheduleSchema(
            care_client_id=care_client_id,
            doc_type=doc_type,
            status="pending",
            next_due_date=contract_start,
            cycle_months=settings.default_cycle_months,
            alert_days_before=settings.default_alert_days_before,
        )
        for doc_type in DOC_TYPES
    ]

def ensure_client_schedules(repository, clients: Iterable[CareClientSchema]) -> List[DocumentScheduleSchema]:
    """스케줄이 없는 이용자/서류 조합을 지연 생성. 생성 실패는 로그만 남기고 계속"""
    schedules = repository.load_schedules()
    existing = {(s.care_client_id, s.doc_type) for s in schedules}

    for client in clients:
        if client.deleted:
            continue
        for initial in create_initial_schedules(client.id, client.contract_start):
            if (client.id, initial.doc_type) in existing:
                continue
            try:
                schedules.append(repository.save_schedule(initial))
                existing.add((client.id, initial.doc_type))
            except PersistenceError as e:
                logger.warning(
                    f"초기 스케줄 생성 실패 ({client.name}/{initial.doc_type}): {e}",
                    extra={'client_id': client.id}
                )

    return schedules

# ========== 상태 판정 ==========

def _needs_plan_revision(schedule: DocumentScheduleSchema) -> bool:
    return (
        schedule.doc_type == "care_plan"
        and bool(schedule.plan_revision_needed)
        and schedule.last_generated_at is not None
    )

def classify_schedule(
    schedule: DocumentScheduleSchema,
    client: Optional[CareClientSchema],
    today: date
) -> str:
    """오늘 기준으로 체커가 부여할 상태. 설정 오류는 ScheduleConfigurationError"""
    if schedule.status == "generating":
        return "generating"

    dates = resolve_due_dates(schedule, client, today)
    if _needs_plan_revision(schedule) or today > dates.next_due_date:
        return "overdue"
    if dates.alert_date <= today:
        return "due_soon"
    if schedule.last_generated_at is None and schedule.period_start is None:
        return "pending"
    return "active"

def _overdue_action_type(schedule: DocumentScheduleSchema) -> str:
    if schedule.doc_type == "monitoring":
        return "generate_monitoring"
    if schedule.doc_type == "care_plan" and schedule.last_generated_at is not None:
        return "plan_revision"
    return "generate_plan"

def _alert_action_type(schedule: DocumentScheduleSchema) -> str:
    if schedule.doc_type == "monitoring":
        return "alert_monitoring_upcoming"
    return "alert_plan_expiring"

# ========== 메인 체크 ==========

def check_document_schedules(
    schedules: Iterable[DocumentScheduleSchema],
    clients: Iterable[CareClientSchema],
    today: date
) -> ScheduleCheckResult:
    """
    활성 이용자 x 서류 3종을 today 기준으로 판정한다.

    - today > 기한 → actions (기한 초과)
    - 알림일 <= today <= 기한 → alerts (기한 임박)
    - generating 상태는 판정하지 않음 (생성 중인 항목을 재분류하지 않는다)
    - 설정 오류 스케줄은 skipped로 보고하고 나머지는 계속 판정

    입력 순서(이용자 순 → care_plan, tejunsho, monitoring)를 유지하며 부작용 없음.
    """
    by_key: Dict[Tuple[str, str], DocumentScheduleSchema] = {
        (s.care_client_id, s.doc_type): s for s in schedules
    }
    result = ScheduleCheckResult()

    for client in clients:
        if client.deleted:
            continue
        client_name = client.name or UNKNOWN_CLIENT_NAME
        initial = {s.doc_type: s for s in create_initial_schedules(client.id, client.contract_start)}

        for doc_type in DOC_TYPES:
            schedule = by_key.get((client.id, doc_type)) or initial[doc_type]
            if schedule.status == "generating":
                continue

            try:
                dates = resolve_due_dates(schedule, client, today)
            except ScheduleConfigurationError as e:
                result.skipped.append(ScheduleConfigurationIssue(
                    schedule_id=schedule.id,
                    client_id=client.id,
                    doc_type=doc_type,
                    message=str(e),
                ))
                continue

            if _needs_plan_revision(schedule):
                # 모니터링 결과 계획 변경 필요 → 기한과 무관하게 즉시 개정
                result.actions.append(ScheduleAction(
                    type="plan_revision",
                    client_id=client.id,
                    client_name=client_name,
                    doc_type=doc_type,
                    schedule=schedule,
                    due_date=today,
                    days_until_due=0,
                    auto_generate=schedule.auto_generate,
                ))
                continue

            days_until_due = days_diff(today, dates.next_due_date)

            if today > dates.next_due_date:
                result.actions.append(ScheduleAction(
                    type=_overdue_action_type(schedule),
                    client_id=client.id,
                    client_name=client_name,
                    doc_type=doc_type,
                    schedule=schedule,
                    due_date=dates.next_due_date,
                    days_until_due=days_until_due,
                    auto_generate=schedule.auto_generate,
                ))
            elif dates.alert_date <= today:
                result.alerts.append(ScheduleAction(
                    type=_alert_action_type(schedule),
                    client_id=client.id,
                    client_name=client_name,
                    doc_type=doc_type,
                    schedule=schedule,
                    due_date=dates.next_due_date,
                    days_until_due=days_until_due,
                    auto_generate=schedule.auto_generate,
                ))

    return result

def sort_by_urgency(actions: List) -> List:
    """표시용: 기한이 가까운 순 (엔진 출력 순서는 바꾸지 않음)"""
    return sorted(actions, key=lambda a: a.days_until_due)

# ========== 상태 동기화 (best-effort) ==========

def sync_schedule_statuses(repository, result: ScheduleCheckResult) -> StatusSyncReport:
    """
    판정 결과를 스케줄 상태에 반영한다.

    overdue / due_soon 으로만 올리며, 이미 같은 상태이거나 generating 이면 건드리지 않는다.
    쓰기는 조건부(CAS)이고, 실패해도 로그/이벤트만 남기고 다음 항목으로 진행한다.
    """
    report = StatusSyncReport()
    targets = [(a.schedule, "overdue") for a in result.actions]
    targets += [(a.schedule, "due_soon") for a in result.alerts]

    for schedule, target_status in targets:
        if schedule.status in (target_status, "generating"):
            report.unchanged += 1
            continue
        try:
            if schedule.id is None:
                repository.save_schedule(schedule.model_copy(update={"status": target_status}))
                applied = True
            else:
                applied = repository.update_schedule_status(schedule, target_status, expected_status=schedule.status)
        except PersistenceError as e:
            log_status_sync_failure(schedule, target_status, e)
            report.failed += 1
            continue

        if applied:
            report.updated += 1
            log_schedule_event("status_synced", schedule.care_client_id, {
                "doc_type": schedule.doc_type,
                "from_status": schedule.status,
                "to_status": target_status,
            })
        else:
            # 동시 실행 등으로 행이 이미 바뀜 → 덮어쓰지 않음
            report.unchanged += 1

    return report

# ========== 모니터링 일정 체크 ==========

def check_monitoring_schedules(
    items: Iterable[MonitoringScheduleSchema],
    clients: Iterable[CareClientSchema],
    today: date,
    alert_days_before: Optional[int] = None
) -> MonitoringCheckResult:
    """모니터링 일정 항목을 기한 초과 / 임박으로 분류 (완료·생성 중 제외)"""
    if alert_days_before is None:
        alert_days_before = settings.monitoring_alert_days_before
    client_map = {c.id: c for c in clients}
    result = MonitoringCheckResult()

    for item in items:
        if item.status in ("completed", "generating"):
            continue
        client = client_map.get(item.care_client_id)
        if client is None or client.deleted:
            continue

        alert_date = item.alert_date or add_days(item.due_date, -alert_days_before)
        action = dict(
            client_id=item.care_client_id,
            client_name=client.name or UNKNOWN_CLIENT_NAME,
            monitoring_type=item.monitoring_type,
            schedule_item=item,
            due_date=item.due_date,
            days_until_due=days_diff(today, item.due_date),
            auto_generate=item.auto_generate,
        )
        if today > item.due_date:
            result.actions.append(MonitoringAction(type="monitoring_overdue", **action))
        elif alert_date <= today:
            result.alerts.append(MonitoringAction(type="monitoring_upcoming", **action))

    return result

# ========== 계약 개시일 체크 ==========

def check_contract_date_alerts(
    schedules: Iterable[DocumentScheduleSchema],
    clients: Iterable[CareClientSchema],
    today: date,
    window_days: Optional[int] = None
) -> MonitoringCheckResult:
    """계획서 미발행 이용자의 계약 개시일 자체를 기한으로 보고 임박 / 초과를 알린다"""
    if window_days is None:
        window_days = settings.contract_alert_window_days
    plans = {s.care_client_id: s for s in schedules if s.doc_type == "care_plan"}
    result = MonitoringCheckResult()

    for client in clients:
        if client.deleted or not client.contract_start:
            continue
        plan = plans.get(client.id)
        if plan is not None and (plan.last_generated_at is not None or plan.status == "generating"):
            continue

        contract_start = client.contract_start
        action = MonitoringAction(
            type="plan_before_contract",
            client_id=client.id,
            client_name=client.name or UNKNOWN_CLIENT_NAME,
            due_date=contract_start,
            days_until_due=days_diff(today, contract_start),
        )
        if today > contract_start:
            result.actions.append(action)
        elif add_days(contract_start, -window_days) <= today:
            result.alerts.append(action)

    return result
