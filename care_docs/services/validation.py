"""
서류 정합성 검증 규칙

각 규칙은 독립된 순수 함수이며 예외를 던지지 않고 ValidationCheck를 반환한다.
"""
from datetime import date, datetime
from typing import Iterable, List, Optional

from care_docs.schemas import (
    DOC_TYPES, CareClientSchema, DocumentScheduleSchema, HelperSchema, BillingRecordSchema,
    ValidationCheck, ValidationResult,
)

DOC_TYPE_LABELS = {
    "care_plan": "계획서",
    "tejunsho": "수순서",
    "monitoring": "모니터링",
}

def _find_schedule(client: CareClientSchema, schedules: List[DocumentScheduleSchema], doc_type: str):
    return next(
        (s for s in schedules if s.care_client_id == client.id and s.doc_type == doc_type),
        None
    )

def _client_records(client: CareClientSchema, billing_records: List[BillingRecordSchema]):
    """이용자 실적: care_client_id 우선, 미연결 레코드는 이름으로 매칭"""
    return [
        r for r in billing_records
        if r.care_client_id == client.id or (r.care_client_id is None and r.client_name == client.name)
    ]

def _passed(check: str, severity: str) -> ValidationCheck:
    return ValidationCheck(check=check, status="pass", message="", severity=severity)

def check_plan_before_contract(
    client: CareClientSchema,
    schedules: List[DocumentScheduleSchema],
    today: date
) -> ValidationCheck:
    """계획서 작성일 <= 계약 개시일. 계약 개시 후 계획서 미작성이면 FAIL"""
    if not client.contract_start:
        return ValidationCheck(
            check="plan_before_contract", status="warn",
            message="계약 개시일이 설정되지 않았습니다", severity="warning"
        )

    plan = _find_schedule(client, schedules, "care_plan")
    if plan is None or plan.last_generated_at is None:
        if client.contract_start <= today:
            return ValidationCheck(
                check="plan_before_contract", status="fail",
                message="계약이 개시되었으나 계획서가 작성되지 않았습니다", severity="critical"
            )
        return ValidationCheck(
            check="plan_before_contract", status="warn",
            message="계획서 미작성 (계약 개시 전)", severity="warning"
        )

    creation_date = plan.plan_creation_date or plan.last_generated_at.date()
    if creation_date > client.contract_start:
        return ValidationCheck(
            check="plan_before_contract", status="fail",
            message=f"계획서 작성일({creation_date})이 계약 개시일({client.contract_start})보다 늦습니다",
            severity="critical"
        )

    return _passed("plan_before_contract", "critical")

def check_helper_employment(
    client: CareClientSchema,
    billing_records: List[BillingRecordSchema],
    helpers: List[HelperSchema]
) -> ValidationCheck:
    """실적의 헬퍼가 서비스일 기준으로 이미 고용되어 있었는지"""
    helper_map = {h.name: h for h in helpers}
    problems = []

    for record in _client_records(client, billing_records):
        helper = helper_map.get(record.helper_name)
        if helper is None or helper.hire_date is None:
            continue
        if helper.hire_date > record.service_date:
            problems.append(
                f"{record.helper_name}: 고용일 {helper.hire_date}이 서비스일 {record.service_date}보다 늦음"
            )

    if problems:
        return ValidationCheck(
            check="helper_employment", status="fail",
            message="; ".join(problems), severity="critical"
        )
    return _passed("helper_employment", "critical")

def check_service_consistency(
    client: CareClientSchema,
    billing_records: List[BillingRecordSchema]
) -> ValidationCheck:
    """실적 서비스 코드와 이용자 설정 서비스 대조"""
    records = _client_records(client, billing_records)
    if not records:
        return _passed("service_consistency", "warning")

    if not client.services:
        return ValidationCheck(
            check="service_consistency", status="warn",
            message="이용자의 서비스 정보가 설정되지 않았습니다", severity="warning"
        )

    configured = set(client.services)
    unknown = sorted({r.service_code for r in records if r.service_code and r.service_code not in configured})
    if unknown:
        return ValidationCheck(
            check="service_consistency", status="warn",
            message=f"설정되지 않은 서비스 코드의 실적이 있습니다: {', '.join(unknown)}",
            severity="warning"
        )
    return _passed("service_consistency", "warning")

def check_care_level_match(client: CareClientSchema) -> ValidationCheck:
    if not client.care_level or not client.care_level.strip():
        return ValidationCheck(
            check="care_level_match", status="warn",
            message="개호도(区分)가 설정되지 않았습니다", severity="warning"
        )
    return _passed("care_level_match", "warning")

def check_plan_monitoring_period_match(
    client: CareClientSchema,
    schedules: List[DocumentScheduleSchema]
) -> ValidationCheck:
    """모니터링 예정일이 계획서 기간 종료일을 넘지 않는지"""
    plan = _find_schedule(client, schedules, "care_plan")
    monitoring = _find_schedule(client, schedules, "monitoring")

    if plan is None or plan.last_generated_at is None or monitoring is None:
        return _passed("plan_monitoring_period_match", "warning")

    if plan.period_end and monitoring.next_due_date and monitoring.next_due_date > plan.period_end:
        return ValidationCheck(
            check="plan_monitoring_period_match", status="warn",
            message=f"모니터링 예정일({monitoring.next_due_date})이 계획서 기한({plan.period_end})보다 늦습니다",
            severity="warning"
        )
    return _passed("plan_monitoring_period_match", "warning")

def check_supply_amount_consistency(client: CareClientSchema) -> ValidationCheck:
    """수급자증 지급 결정량의 근거가 되는 이용 서비스 종류 설정 여부 (실적 유무와 무관)"""
    if not client.services:
        return ValidationCheck(
            check="supply_amount_consistency", status="warn",
            message="이용 서비스 종류가 설정되지 않았습니다 (수급자증 정보를 등록해 주세요)",
            severity="warning"
        )
    return _passed("supply_amount_consistency", "warning")

def check_document_freshness(
    client: CareClientSchema,
    schedules: List[DocumentScheduleSchema]
) -> ValidationCheck:
    """서류 3종이 모두 발행되었고 기한 초과가 아닌지"""
    problems = []
    for doc_type in DOC_TYPES:
        schedule = _find_schedule(client, schedules, doc_type)
        label = DOC_TYPE_LABELS[doc_type]
        if schedule is None or schedule.last_generated_at is None:
            problems.append(f"{label} 미작성")
        elif schedule.status == "overdue":
            problems.append(f"{label} 기한 초과")

    if problems:
        return ValidationCheck(
            check="document_freshness", status="fail",
            message="; ".join(problems), severity="critical"
        )
    return _passed("document_freshness", "critical")

def validate_client_documents(
    client: CareClientSchema,
    schedules: Iterable[DocumentScheduleSchema],
    helpers: Iterable[HelperSchema],
    billing_records: Iterable[BillingRecordSchema],
    today: Optional[date] = None
) -> ValidationResult:
    """이용자 1명의 서류 검증"""
    schedules = list(schedules)
    helpers = list(helpers)
    billing_records = list(billing_records)
    today = today or date.today()

    checks = [
        check_plan_before_contract(client, schedules, today),
        check_helper_employment(client, billing_records, helpers),
        check_service_consistency(client, billing_records),
        check_care_level_match(client),
        check_plan_monitoring_period_match(client, schedules),
        check_supply_amount_consistency(client),
        check_document_freshness(client, schedules),
    ]

    return ValidationResult(
        care_client_id=client.id,
        is_valid=all(c.status == "pass" for c in checks),
        checks=checks,
        checked_at=datetime.now(),
    )

def validate_all_clients(
    clients: Iterable[CareClientSchema],
    schedules: Iterable[DocumentScheduleSchema],
    helpers: Iterable[HelperSchema],
    billing_records: Iterable[BillingRecordSchema],
    today: Optional[date] = None
) -> List[ValidationResult]:
    """삭제되지 않은 전체 이용자 검증"""
    schedules = list(schedules)
    helpers = list(helpers)
    billing_records = list(billing_records)
    return [
        validate_client_documents(client, schedules, helpers, billing_records, today)
        for client in clients
        if not client.deleted
    ]

def get_client_validation_status(result: Optional[ValidationResult]) -> str:
    """
    대시보드용 3단계 신호
    critical: severity=critical 인 fail 존재 / warning: fail 또는 warn 존재 / ok: 모두 pass
    """
    if result is None:
        return "ok"
    if any(c.status == "fail" and c.severity == "critical" for c in result.checks):
        return "critical"
    if any(c.status in ("fail", "warn") for c in result.checks):
        return "warning"
    return "ok"
