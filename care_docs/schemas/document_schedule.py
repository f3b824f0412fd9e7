"""
서류 스케줄 / 모니터링 / 검증 스키마
"""
from pydantic import BaseModel, validator, Field
from typing import Optional, List, Literal
from datetime import datetime, date

DocType = Literal["care_plan", "tejunsho", "monitoring"]
DOC_TYPES = ("care_plan", "tejunsho", "monitoring")

ScheduleStatus = Literal["pending", "active", "due_soon", "overdue", "generating"]
ScheduleActionType = Literal[
    "generate_plan",
    "generate_monitoring",
    "plan_revision",
    "alert_plan_expiring",
    "alert_monitoring_upcoming",
]

GoalType = Literal["long_term", "short_term"]
MonitoringType = Literal["short_term", "long_term", "emergency"]
MonitoringStatus = Literal["pending", "scheduled", "generating", "completed"]
MonitoringActionType = Literal["monitoring_overdue", "monitoring_upcoming", "plan_before_contract"]

CheckStatus = Literal["pass", "warn", "fail"]
Severity = Literal["critical", "warning"]
ClientValidationStatus = Literal["critical", "warning", "ok"]

MAX_SHORT_TERM_GOALS = 3

# === 외부 엔티티 (이용자 / 헬퍼 / 실적) ===

class CareClientSchema(BaseModel):
    id: str
    name: str
    contract_start: Optional[date] = None
    care_level: Optional[str] = None
    services: Optional[List[str]] = None
    deleted: bool = False

    class Config:
        from_attributes = True

class HelperSchema(BaseModel):
    id: Optional[str] = None
    name: str
    hire_date: Optional[date] = None
    deleted: bool = False

    class Config:
        from_attributes = True

class BillingRecordSchema(BaseModel):
    id: Optional[str] = None
    care_client_id: Optional[str] = None
    client_name: str
    helper_name: str
    service_date: date
    service_code: Optional[str] = None

    class Config:
        from_attributes = True

# === 서류 스케줄 ===

class DocumentScheduleSchema(BaseModel):
    id: Optional[str] = None
    care_client_id: str
    doc_type: DocType
    status: ScheduleStatus = "pending"
    last_generated_at: Optional[datetime] = None
    next_due_date: Optional[date] = None
    alert_date: Optional[date] = None
    expiry_date: Optional[date] = None
    cycle_months: int = 6
    alert_days_before: int = 30
    plan_revision_needed: Optional[bool] = None
    plan_revision_reason: Optional[str] = None
    last_document_id: Optional[str] = None
    last_file_url: Optional[str] = None
    auto_generate: bool = False
    notes: Optional[str] = None
    plan_creation_date: Optional[date] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    generation_batch_id: Optional[str] = None
    linked_plan_schedule_id: Optional[str] = None
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ScheduleAction(BaseModel):
    """체커가 산출하는 1회성 액션 (저장되지 않음)"""
    type: ScheduleActionType
    client_id: str
    client_name: str
    doc_type: DocType
    schedule: DocumentScheduleSchema
    due_date: Optional[date] = None
    days_until_due: int
    auto_generate: bool = False

class ScheduleConfigurationIssue(BaseModel):
    schedule_id: Optional[str] = None
    client_id: str
    doc_type: DocType
    message: str

class ScheduleCheckResult(BaseModel):
    actions: List[ScheduleAction] = []
    alerts: List[ScheduleAction] = []
    skipped: List[ScheduleConfigurationIssue] = []

class StatusSyncReport(BaseModel):
    updated: int = 0
    unchanged: int = 0
    failed: int = 0

# === 목표 기간 ===

class GoalPeriodInput(BaseModel):
    goal_type: GoalType
    goal_index: Optional[int] = Field(None, ge=0, le=MAX_SHORT_TERM_GOALS - 1)
    goal_text: Optional[str] = None
    start_date: date
    end_date: date

    @validator('end_date')
    def validate_date_range(cls, v, values):
        if 'start_date' in values and v < values['start_date']:
            raise ValueError('종료일은 시작일보다 빠를 수 없습니다')
        return v

class GoalPeriodSchema(GoalPeriodInput):
    id: Optional[str] = None
    care_client_id: str
    is_active: bool = True
    supersedes_id: Optional[str] = None

    class Config:
        from_attributes = True

class GoalSetUpdate(BaseModel):
    """목표 세트 교체 요청 (장기 1개 + 단기 최대 3개)"""
    goals: List[GoalPeriodInput] = Field(..., min_length=1)

    @validator('goals')
    def validate_goal_set(cls, v):
        long_term = [g for g in v if g.goal_type == 'long_term']
        short_term = [g for g in v if g.goal_type == 'short_term']
        if len(long_term) > 1:
            raise ValueError('장기 목표는 1개만 설정할 수 있습니다')
        if len(short_term) > MAX_SHORT_TERM_GOALS:
            raise ValueError(f'단기 목표는 최대 {MAX_SHORT_TERM_GOALS}개까지 설정할 수 있습니다')
        indexes = [g.goal_index for g in short_term]
        if any(i is None for i in indexes) or len(set(indexes)) != len(indexes):
            raise ValueError('단기 목표의 goal_index는 0~2 사이에서 중복 없이 지정해야 합니다')
        return v

# === 모니터링 ===

class MonitoringScheduleSchema(BaseModel):
    id: Optional[str] = None
    care_client_id: str
    goal_period_id: Optional[str] = None
    monitoring_type: MonitoringType
    status: MonitoringStatus = "pending"
    due_date: date
    alert_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    plan_revision_needed: Optional[bool] = None
    plan_revision_reason: Optional[str] = None
    trigger_event: Optional[str] = None
    trigger_notes: Optional[str] = None
    auto_generate: bool = False
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class EmergencyMonitoringRequest(BaseModel):
    trigger_event: str = Field(..., min_length=1, max_length=100, description="긴급 모니터링 계기 (입원, 상태 급변 등)")
    trigger_notes: Optional[str] = Field(None, max_length=1000)
    due_date: Optional[date] = None

class MonitoringAction(BaseModel):
    type: MonitoringActionType
    client_id: str
    client_name: str
    monitoring_type: Optional[MonitoringType] = None
    schedule_item: Optional[MonitoringScheduleSchema] = None
    due_date: date
    days_until_due: int
    auto_generate: bool = False

class MonitoringCheckResult(BaseModel):
    actions: List[MonitoringAction] = []
    alerts: List[MonitoringAction] = []

# === 검증 ===

class ValidationCheck(BaseModel):
    check: str
    status: CheckStatus
    message: str = ""
    severity: Severity

class ValidationResult(BaseModel):
    care_client_id: str
    is_valid: bool
    checks: List[ValidationCheck]
    checked_at: datetime

    class Config:
        from_attributes = True

class ClientValidationSummary(BaseModel):
    result: ValidationResult
    status: ClientValidationStatus

# === 실행 ===

class GeneratedDocument(BaseModel):
    """외부 서류 생성 서비스 응답"""
    file_url: Optional[str] = None
    document_id: Optional[str] = None
    plan_revision_needed: Optional[bool] = None
    plan_revision_reason: Optional[str] = None

class ExecutionResult(BaseModel):
    success: bool
    error: Optional[str] = None
    conflict: bool = False
    skipped: bool = False  # 이미 최신이라 생성하지 않음
    client_id: Optional[str] = None
    doc_type: Optional[str] = None
    plan_revision_needed: Optional[bool] = None

class BulkExecutionResult(BaseModel):
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    results: List[ExecutionResult] = []
