"""
서류 스케줄 / 목표 / 모니터링 / 검증 라우터
"""
from fastapi import APIRouter, Depends
from typing import List
from datetime import date, datetime

from ..dependencies import get_repository, get_executor
from ..exceptions import (
    ClientNotFound, InvalidDocType, MonitoringItemNotFound, GenerationInProgress,
    InvalidGoalSet, ModificationBlocked, PersistenceError,
)
from ..logging_config import get_logger, log_schedule_event
from ..response_models import (
    APIResponse, success_response, ClientScheduleOverview, ScheduleCheckResponse,
)
from ..schemas import (
    DOC_TYPES, CareClientSchema, DocumentScheduleSchema, GoalPeriodSchema, GoalSetUpdate,
    MonitoringScheduleSchema, EmergencyMonitoringRequest, ScheduleAction,
    ExecutionResult, BulkExecutionResult, ClientValidationSummary,
)
from ..services.executor import ScheduleExecutor
from ..services.monitoring_generator import (
    generate_monitoring_schedules_from_goals, create_emergency_monitoring,
)
from ..services.repository import ScheduleRepository
from ..services.schedule_checker import (
    ensure_client_schedules, check_document_schedules, sync_schedule_statuses,
    check_monitoring_schedules, check_contract_date_alerts, sort_by_urgency,
)
from ..services.validation import validate_client_documents, get_client_validation_status

router = APIRouter()
logger = get_logger(__name__)

def _get_client_or_404(repository: ScheduleRepository, client_id: str) -> CareClientSchema:
    client = repository.get_client(client_id)
    if client is None or client.deleted:
        raise ClientNotFound(client_id)
    return client

def _reconcile_monitoring(repository: ScheduleRepository, client_id: str) -> List[MonitoringScheduleSchema]:
    """활성 목표 기준으로 누락된 모니터링 일정만 추가"""
    new_items = generate_monitoring_schedules_from_goals(
        repository.load_goal_periods(client_id, active_only=True),
        repository.load_monitoring_schedules(client_id),
        date.today()
    )
    return [repository.save_monitoring_schedule(item) for item in new_items]

# ========== 서류 스케줄 ==========

@router.get("/clients/{client_id}/schedules", response_model=APIResponse[ClientScheduleOverview], tags=["schedule"])
async def get_client_schedules(
    client_id: str,
    repository: ScheduleRepository = Depends(get_repository)
):
    """이용자의 서류 스케줄과 오늘 기준 판정 (상태는 갱신하지 않음)"""
    client = _get_client_or_404(repository, client_id)
    schedules = repository.load_schedules(client_id)
    result = check_document_schedules(schedules, [client], date.today())

    return success_response(ClientScheduleOverview(
        client_id=client.id,
        client_name=client.name,
        schedules=schedules,
        actions=sort_by_urgency(result.actions),
        alerts=sort_by_urgency(result.alerts),
    ))

@router.post("/clients/{client_id}/schedule/check", response_model=APIResponse[ScheduleCheckResponse], tags=["schedule"])
async def check_client_schedule(
    client_id: str,
    repository: ScheduleRepository = Depends(get_repository)
):
    """이용자 1명 체크 + 상태 동기화"""
    client = _get_client_or_404(repository, client_id)
    schedules = [s for s in ensure_client_schedules(repository, [client]) if s.care_client_id == client_id]
    today = date.today()

    result = check_document_schedules(schedules, [client], today)
    report = sync_schedule_statuses(repository, result)
    monitoring = check_monitoring_schedules(repository.load_monitoring_schedules(client_id), [client], today)

    return success_response(ScheduleCheckResponse(
        checked_at=datetime.now(),
        actions=result.actions,
        alerts=result.alerts,
        skipped=result.skipped,
        monitoring_actions=monitoring.actions,
        monitoring_alerts=monitoring.alerts,
        sync=report,
    ))

@router.post("/schedule/check", response_model=APIResponse[ScheduleCheckResponse], tags=["schedule"])
async def check_all_schedules(repository: ScheduleRepository = Depends(get_repository)):
    """전체 이용자 체크 + 상태 동기화 + 계약 개시일 / 모니터링 일정 알림"""
    clients = repository.load_clients()
    schedules = ensure_client_schedules(repository, clients)
    today = date.today()

    result = check_document_schedules(schedules, clients, today)
    report = sync_schedule_statuses(repository, result)
    monitoring = check_monitoring_schedules(repository.load_monitoring_schedules(), clients, today)
    contract = check_contract_date_alerts(schedules, clients, today)

    log_schedule_event("schedule_checked", None, {
        "clients": len(clients),
        "actions": len(result.actions),
        "alerts": len(result.alerts),
        "skipped": len(result.skipped),
        "sync_failed": report.failed,
    })

    return success_response(ScheduleCheckResponse(
        checked_at=datetime.now(),
        actions=result.actions,
        alerts=result.alerts,
        skipped=result.skipped,
        monitoring_actions=monitoring.actions,
        monitoring_alerts=monitoring.alerts,
        contract_actions=contract.actions,
        contract_alerts=contract.alerts,
        sync=report,
    ))

# 서류 생성은 외부 호출을 기다리므로 동기 함수로 두어 스레드풀에서 실행
@router.post("/clients/{client_id}/schedule/{doc_type}/execute", response_model=APIResponse[ExecutionResult], tags=["schedule"])
def execute_client_schedule(
    client_id: str,
    doc_type: str,
    force: bool = False,
    repository: ScheduleRepository = Depends(get_repository),
    executor: ScheduleExecutor = Depends(get_executor)
):
    """
    서류 1종 생성 실행.
    체커가 해당 서류에 대한 액션을 내고 있으면 그 액션을, 없으면 수동 생성 액션을 실행한다.
    이미 최신인 서류는 생성하지 않으므로 재시도해도 안전하다. force=true 면 기한과 무관하게 재생성.
    """
    if doc_type not in DOC_TYPES:
        raise InvalidDocType(doc_type)
    client = _get_client_or_404(repository, client_id)

    schedules = [s for s in ensure_client_schedules(repository, [client]) if s.care_client_id == client_id]
    result = check_document_schedules(schedules, [client], date.today())
    action = next((a for a in result.actions + result.alerts if a.doc_type == doc_type), None)

    if action is None:
        schedule = next(
            (s for s in schedules if s.doc_type == doc_type),
            DocumentScheduleSchema(care_client_id=client_id, doc_type=doc_type)
        )
        action = ScheduleAction(
            type="generate_monitoring" if doc_type == "monitoring" else "generate_plan",
            client_id=client.id,
            client_name=client.name,
            doc_type=doc_type,
            schedule=schedule,
            due_date=date.today(),
            days_until_due=0,
        )

    execution = executor.execute_schedule_action(action, client, force=force)
    if execution.conflict:
        raise GenerationInProgress()

    if execution.skipped:
        message = "이미 최신 서류가 있어 생성하지 않았습니다"
    elif execution.success:
        message = "서류가 생성되었습니다"
    else:
        message = f"서류 생성 실패: {execution.error}"

    return APIResponse(
        success=execution.success,
        data=execution,
        message=message,
        timestamp=datetime.now()
    )

@router.post("/schedule/execute-overdue", response_model=APIResponse[BulkExecutionResult], tags=["schedule"])
def execute_overdue_schedules(
    auto_only: bool = False,
    repository: ScheduleRepository = Depends(get_repository),
    executor: ScheduleExecutor = Depends(get_executor)
):
    """기한 초과 액션 일괄 실행 (순차)"""
    clients = repository.load_clients()
    schedules = ensure_client_schedules(repository, clients)
    result = check_document_schedules(schedules, clients, date.today())
    sync_schedule_statuses(repository, result)

    actions = [a for a in result.actions if a.auto_generate or not auto_only]
    bulk = executor.execute_bulk(actions, clients)

    return success_response(
        bulk,
        message=f"성공 {bulk.success_count}건, 실패 {bulk.error_count}건, 건너뜀 {bulk.skipped_count}건"
    )

# ========== 목표 기간 ==========

@router.put("/clients/{client_id}/goals", response_model=APIResponse[List[GoalPeriodSchema]], tags=["goals"])
async def replace_client_goals(
    client_id: str,
    goal_set: GoalSetUpdate,
    repository: ScheduleRepository = Depends(get_repository)
):
    """활성 목표 세트 교체 후 모니터링 일정 보충"""
    _get_client_or_404(repository, client_id)
    if not any(g.goal_type == "long_term" for g in goal_set.goals):
        raise InvalidGoalSet("장기 목표가 포함되어야 합니다")

    goals = repository.replace_goal_periods(client_id, goal_set.goals)
    created = _reconcile_monitoring(repository, client_id)

    log_schedule_event("goals_replaced", client_id, {
        "goals": len(goals),
        "monitoring_created": len(created),
    })
    return success_response(goals, message=f"목표 {len(goals)}건 저장, 모니터링 일정 {len(created)}건 추가")

@router.delete("/clients/{client_id}/goals", response_model=APIResponse[int], tags=["goals"])
async def reset_client_goals(
    client_id: str,
    repository: ScheduleRepository = Depends(get_repository)
):
    """목표 초기화 (완료된 모니터링 이력은 남김)"""
    _get_client_or_404(repository, client_id)
    deleted = repository.reset_goal_periods(client_id)
    log_schedule_event("goals_reset", client_id, {"deleted": deleted})
    return success_response(deleted, message=f"목표 {deleted}건 삭제")

# ========== 모니터링 ==========

@router.get("/clients/{client_id}/monitoring", response_model=APIResponse[List[MonitoringScheduleSchema]], tags=["monitoring"])
async def get_client_monitoring(
    client_id: str,
    repository: ScheduleRepository = Depends(get_repository)
):
    _get_client_or_404(repository, client_id)
    return success_response(repository.load_monitoring_schedules(client_id))

@router.post("/clients/{client_id}/monitoring/generate", response_model=APIResponse[List[MonitoringScheduleSchema]], tags=["monitoring"])
async def generate_client_monitoring(
    client_id: str,
    repository: ScheduleRepository = Depends(get_repository)
):
    """활성 목표에서 모니터링 일정 생성 (이미 있는 항목은 건너뜀)"""
    _get_client_or_404(repository, client_id)
    created = _reconcile_monitoring(repository, client_id)
    return success_response(created, message=f"모니터링 일정 {len(created)}건 생성")

@router.post("/clients/{client_id}/monitoring/emergency", response_model=APIResponse[MonitoringScheduleSchema], tags=["monitoring"])
async def create_client_emergency_monitoring(
    client_id: str,
    request: EmergencyMonitoringRequest,
    repository: ScheduleRepository = Depends(get_repository)
):
    _get_client_or_404(repository, client_id)
    item = create_emergency_monitoring(
        client_id,
        request.trigger_event,
        date.today(),
        trigger_notes=request.trigger_notes,
        due_date=request.due_date
    )
    saved = repository.save_monitoring_schedule(item)
    log_schedule_event("emergency_monitoring_created", client_id, {"trigger_event": request.trigger_event})
    return success_response(saved, message="긴급 모니터링 일정이 등록되었습니다")

@router.post("/monitoring/{item_id}/execute", response_model=APIResponse[ExecutionResult], tags=["monitoring"])
def execute_monitoring_item(
    item_id: str,
    repository: ScheduleRepository = Depends(get_repository),
    executor: ScheduleExecutor = Depends(get_executor)
):
    item = repository.get_monitoring_schedule(item_id)
    if item is None:
        raise MonitoringItemNotFound(item_id)
    if item.status == "completed":
        raise ModificationBlocked()
    client = _get_client_or_404(repository, item.care_client_id)

    execution = executor.execute_monitoring_schedule_action(item, client)
    if execution.conflict:
        raise GenerationInProgress()

    return APIResponse(
        success=execution.success,
        data=execution,
        message="모니터링 보고서가 생성되었습니다" if execution.success else f"모니터링 실행 실패: {execution.error}",
        timestamp=datetime.now()
    )

# ========== 검증 ==========

@router.post("/clients/{client_id}/validate", response_model=APIResponse[ClientValidationSummary], tags=["validation"])
async def validate_client(
    client_id: str,
    repository: ScheduleRepository = Depends(get_repository)
):
    client = _get_client_or_404(repository, client_id)
    today = date.today()
    result = validate_client_documents(
        client,
        repository.load_schedules(client_id),
        repository.load_helpers(),
        repository.load_billing_records_for_month(today.year, today.month),
        today
    )
    try:
        repository.save_validation(result)
    except PersistenceError as e:
        logger.warning(f"검증 결과 저장 실패: {e}", extra={'client_id': client_id})

    return success_response(ClientValidationSummary(
        result=result,
        status=get_client_validation_status(result)
    ))

@router.get("/validations", response_model=APIResponse[List[ClientValidationSummary]], tags=["validation"])
async def list_validations(repository: ScheduleRepository = Depends(get_repository)):
    """저장된 검증 결과 (대시보드용 신호 포함)"""
    summaries = [
        ClientValidationSummary(result=r, status=get_client_validation_status(r))
        for r in repository.load_validations()
    ]
    return success_response(summaries)
