"""
서류 생성 액션 실행

실행 1건의 상태 전이:
  1. 대상 스케줄을 generating 으로 조건부 갱신 (동시 실행 차단용 소프트 락)
  2. 외부 서류 생성 서비스 호출 (진행 상황은 on_progress 로 전달)
  3. 성공: 생성 결과와 파생 기한을 한 트랜잭션으로 저장
  4. 실패: 1 직전 상태로 되돌리고 ExecutionResult(success=False) 반환
"""
import uuid
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from care_docs.config import settings
from care_docs.exceptions import PersistenceError, ScheduleConfigurationError, ScheduleConflict
from care_docs.logging_config import get_logger, log_schedule_event, log_status_sync_failure
from care_docs.schemas import (
    CareClientSchema, DocumentScheduleSchema, MonitoringScheduleSchema, GeneratedDocument,
    ScheduleAction, ExecutionResult, BulkExecutionResult,
)
from care_docs.services.date_utils import add_days
from care_docs.services.document_generator import DocumentGenerator
from care_docs.services.due_dates import resolve_due_dates
from care_docs.services.repository import ScheduleRepository
from care_docs.services.schedule_checker import classify_schedule, create_initial_schedules
from care_docs.services.validation import validate_client_documents

logger = get_logger(__name__)

ProgressCallback = Optional[Callable[[str], None]]

PLAN_REVISION_REASON = "모니터링 결과 계획 변경이 필요하다고 판정됨"

def _noop(message: str):
    pass

class ScheduleExecutor:
    def __init__(
        self,
        repository: ScheduleRepository,
        generator: DocumentGenerator,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.repository = repository
        self.generator = generator
        self.clock = clock
        self._handlers = {
            "care_plan": self._generate_plan_batch,
            "tejunsho": self._generate_procedure,
            "monitoring": self._generate_monitoring_document,
        }

    # ========== 컨텍스트 ==========

    def build_context(
        self,
        client: CareClientSchema,
        now: datetime,
        render_target: Any = None,
        extra: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """서류 생성 서비스에 넘길 컨텍스트 (헬퍼, 당월 실적, 사업소 정보)"""
        helpers = self.repository.load_helpers()
        billing_records = self.repository.load_billing_records_for_month(now.year, now.month)
        context = {
            "year": now.year,
            "month": now.month,
            "helpers": [h.model_dump(mode="json") for h in helpers],
            "billing_records": [
                r.model_dump(mode="json") for r in billing_records
                if r.care_client_id == client.id or r.client_name == client.name
            ],
            "office_info": {
                "name": settings.office_name,
                "address": settings.office_address,
                "tel": settings.office_tel,
            },
            "render_target": render_target,
        }
        context.update(extra or {})
        return context

    # ========== 스케줄 갱신 헬퍼 ==========

    def _current_schedule(self, client: CareClientSchema, doc_type: str) -> DocumentScheduleSchema:
        schedule = self.repository.get_schedule(client.id, doc_type)
        if schedule is None:
            initial = next(
                s for s in create_initial_schedules(client.id, client.contract_start) if s.doc_type == doc_type
            )
            schedule = self.repository.save_schedule(initial)
        return schedule

    def _with_derived_dates(
        self,
        schedule: DocumentScheduleSchema,
        client: CareClientSchema,
        today: date
    ) -> DocumentScheduleSchema:
        """파생 기한을 다시 계산하고 오늘 기준 상태를 부여"""
        schedule = schedule.model_copy(update={"status": "active"})
        dates = resolve_due_dates(schedule, client, today)
        schedule = schedule.model_copy(update={
            "next_due_date": dates.next_due_date,
            "alert_date": dates.alert_date,
            "expiry_date": dates.expiry_date,
        })
        return schedule.model_copy(update={"status": classify_schedule(schedule, client, today)})

    def _issued(
        self,
        schedule: DocumentScheduleSchema,
        client: CareClientSchema,
        document: GeneratedDocument,
        now: datetime,
        **changes
    ) -> DocumentScheduleSchema:
        updated = schedule.model_copy(update={
            "last_generated_at": now,
            "last_document_id": document.document_id,
            "last_file_url": document.file_url,
            **changes,
        })
        return self._with_derived_dates(updated, client, now.date())

    def _plan_creation_date(self, plan: DocumentScheduleSchema, client: CareClientSchema, today: date) -> date:
        """최초 발행은 (계약 개시 전날, 오늘) 중 이른 날, 갱신은 오늘"""
        if plan.last_generated_at is None and client.contract_start:
            return min(add_days(client.contract_start, -1), today)
        return today

    def _flag_plan_revision(
        self,
        client: CareClientSchema,
        reason: Optional[str]
    ) -> Optional[DocumentScheduleSchema]:
        plan = self.repository.get_schedule(client.id, "care_plan")
        if plan is None or plan.status == "generating":
            return None
        return plan.model_copy(update={
            "plan_revision_needed": True,
            "plan_revision_reason": reason or PLAN_REVISION_REASON,
            "status": "overdue",
        })

    # ========== 소프트 락 ==========

    def _lock_schedule(
        self,
        client: CareClientSchema,
        doc_type: str,
        force: bool = False
    ) -> Tuple[Optional[DocumentScheduleSchema], str]:
        """
        generating 으로 조건부 갱신. 이미 최신이면 (None, 현재 상태) 반환.
        기한 판정은 락과 같은 (status, version) 을 기준으로 하므로 그 사이 변경은 CAS 에서 걸린다.
        """
        current = self._current_schedule(client, doc_type)
        if current.status == "generating":
            raise ScheduleConflict(f"{client.name}의 {doc_type} 서류를 이미 생성 중입니다")
        if not force and classify_schedule(current, client, self.clock().date()) not in ("overdue", "due_soon"):
            return None, current.status
        if not self.repository.update_schedule_status(current, "generating", expected_status=current.status):
            raise ScheduleConflict(f"{client.name}의 {doc_type} 스케줄이 다른 요청에 의해 변경되었습니다")
        locked = current.model_copy(update={"status": "generating", "version": current.version + 1})
        return locked, current.status

    def _release(self, locked: DocumentScheduleSchema, previous_status: str):
        try:
            restored = self.repository.update_schedule_status(locked, previous_status, expected_status="generating")
        except PersistenceError as e:
            log_status_sync_failure(locked, previous_status, e)
            return
        if not restored:
            logger.warning(
                f"상태 복원 대상이 이미 변경됨: {locked.doc_type}",
                extra={'client_id': locked.care_client_id}
            )

    def _release_monitoring(self, locked: MonitoringScheduleSchema, previous_status: str):
        try:
            self.repository.update_monitoring_status(locked, previous_status, expected_status="generating")
        except PersistenceError as e:
            log_status_sync_failure(locked, previous_status, e)

    # ========== 서류 종류별 생성 ==========

    def _generate_plan_batch(
        self,
        locked: DocumentScheduleSchema,
        client: CareClientSchema,
        render_target: Any,
        notify: Callable[[str], None]
    ) -> Optional[bool]:
        """계획서 + 수순서를 함께 생성하고 모니터링 주기를 새 계획에 맞춘다"""
        procedure = self._current_schedule(client, "tejunsho")
        if procedure.status == "generating":
            raise ScheduleConflict(f"{client.name}의 수순서를 이미 생성 중입니다")
        monitoring = self._current_schedule(client, "monitoring")

        now = self.clock()
        today = now.date()
        context = self.build_context(client, now, render_target, {
            "is_revision": locked.last_generated_at is not None,
            "plan_revision_reason": locked.plan_revision_reason,
        })

        notify("계획서를 생성 중...")
        plan_document = self.generator.generate("care_plan", client, context)
        notify("수순서를 생성 중...")
        procedure_document = self.generator.generate("tejunsho", client, context)

        # 생성이 모두 끝난 뒤에만 저장
        batch_id = str(uuid.uuid4())
        plan_creation_date = self._plan_creation_date(locked, client, today)
        plan = self._issued(
            locked, client, plan_document, now,
            plan_creation_date=plan_creation_date,
            period_start=plan_creation_date,
            generation_batch_id=batch_id,
            plan_revision_needed=None,
            plan_revision_reason=None,
        )
        plan = plan.model_copy(update={"period_end": plan.next_due_date})

        procedure = self._issued(
            procedure, client, procedure_document, now,
            period_start=plan_creation_date,
            period_end=plan.next_due_date,
            generation_batch_id=batch_id,
            linked_plan_schedule_id=locked.id,
        )
        updates = [plan, procedure]

        if monitoring.status != "generating":
            updates.append(self._with_derived_dates(
                monitoring.model_copy(update={"period_start": today, "linked_plan_schedule_id": locked.id}),
                client, today
            ))

        self.repository.save_batch(updates)
        notify("계획서·수순서 생성 완료")
        return None

    def _generate_procedure(
        self,
        locked: DocumentScheduleSchema,
        client: CareClientSchema,
        render_target: Any,
        notify: Callable[[str], None]
    ) -> Optional[bool]:
        now = self.clock()
        plan = self.repository.get_schedule(client.id, "care_plan")
        context = self.build_context(client, now, render_target)

        notify("수순서를 생성 중...")
        document = self.generator.generate("tejunsho", client, context)

        procedure = self._issued(
            locked, client, document, now,
            period_start=now.date(),
            linked_plan_schedule_id=plan.id if plan else locked.linked_plan_schedule_id,
        )
        self.repository.save_batch([procedure])
        notify("수순서 생성 완료")
        return None

    def _generate_monitoring_document(
        self,
        locked: DocumentScheduleSchema,
        client: CareClientSchema,
        render_target: Any,
        notify: Callable[[str], None]
    ) -> Optional[bool]:
        now = self.clock()
        context = self.build_context(client, now, render_target)

        notify("모니터링 보고서를 생성 중...")
        document = self.generator.generate("monitoring", client, context)

        updates = [self._issued(
            locked, client, document, now,
            plan_revision_needed=document.plan_revision_needed,
            plan_revision_reason=document.plan_revision_reason,
        )]
        if document.plan_revision_needed:
            notify("계획 변경 필요 - 계획서 재생성이 필요합니다")
            plan = self._flag_plan_revision(client, document.plan_revision_reason)
            if plan is not None:
                updates.append(plan)

        self.repository.save_batch(updates)
        notify("모니터링 보고서 생성 완료")
        return document.plan_revision_needed

    # ========== 실행 ==========

    def execute_schedule_action(
        self,
        action: ScheduleAction,
        client: CareClientSchema,
        render_target: Any = None,
        on_progress: ProgressCallback = None,
        force: bool = False
    ) -> ExecutionResult:
        """
        체커 액션 1건 실행. 예외를 올리지 않고 항상 ExecutionResult 반환.

        실행 직전에 현재 행으로 기한을 다시 판정해, 그 사이 다른 실행(계획서 일괄 생성 등)으로
        이미 최신이 된 서류는 생성하지 않는다 (skipped). force=True 는 수동 재생성.
        """
        notify = on_progress or _noop
        handler = self._handlers[action.doc_type]

        try:
            locked, previous_status = self._lock_schedule(client, action.doc_type, force)
        except ScheduleConflict as e:
            log_schedule_event("execution_conflict", client.id, {"doc_type": action.doc_type})
            return ExecutionResult(
                success=False, conflict=True, error=str(e), client_id=client.id, doc_type=action.doc_type
            )
        except (PersistenceError, SQLAlchemyError, ScheduleConfigurationError) as e:
            logger.error(f"스케줄 잠금 실패: {e}", extra={'client_id': client.id})
            return ExecutionResult(success=False, error=str(e), client_id=client.id, doc_type=action.doc_type)

        if locked is None:
            log_schedule_event("execution_skipped", client.id, {
                "doc_type": action.doc_type,
                "status": previous_status,
            })
            return ExecutionResult(success=True, skipped=True, client_id=client.id, doc_type=action.doc_type)

        log_schedule_event("execution_started", client.id, {
            "action_type": action.type,
            "doc_type": action.doc_type,
            "previous_status": previous_status,
        })

        try:
            plan_revision_needed = handler(locked, client, render_target, notify)
        except ScheduleConflict as e:
            self._release(locked, previous_status)
            return ExecutionResult(
                success=False, conflict=True, error=str(e), client_id=client.id, doc_type=action.doc_type
            )
        except Exception as e:
            logger.error(
                f"스케줄 액션 실행 오류: {type(e).__name__}: {e}",
                exc_info=True,
                extra={'client_id': client.id}
            )
            self._release(locked, previous_status)
            log_schedule_event("execution_failed", client.id, {
                "doc_type": action.doc_type,
                "restored_status": previous_status,
                "error": str(e),
            })
            return ExecutionResult(
                success=False, error=str(e) or type(e).__name__, client_id=client.id, doc_type=action.doc_type
            )

        log_schedule_event("execution_succeeded", client.id, {
            "doc_type": action.doc_type,
            "plan_revision_needed": plan_revision_needed,
        })
        self._validate_after_generation(client)
        return ExecutionResult(
            success=True, client_id=client.id, doc_type=action.doc_type, plan_revision_needed=plan_revision_needed
        )

    def execute_monitoring_schedule_action(
        self,
        item: MonitoringScheduleSchema,
        client: CareClientSchema,
        render_target: Any = None,
        on_progress: ProgressCallback = None
    ) -> ExecutionResult:
        """모니터링 일정 항목 1건 실행 (성공 시 completed)"""
        notify = on_progress or _noop
        current = self.repository.get_monitoring_schedule(item.id) if item.id else None
        if current is None:
            return ExecutionResult(success=False, error="모니터링 일정을 찾을 수 없습니다", client_id=client.id, doc_type="monitoring")
        if current.status == "completed":
            return ExecutionResult(success=False, error="이미 완료된 모니터링입니다", client_id=client.id, doc_type="monitoring")

        try:
            if current.status == "generating" or not self.repository.update_monitoring_status(current, "generating"):
                raise ScheduleConflict(f"{client.name}의 모니터링 보고서를 이미 생성 중입니다")
        except ScheduleConflict as e:
            log_schedule_event("execution_conflict", client.id, {"monitoring_id": current.id})
            return ExecutionResult(success=False, conflict=True, error=str(e), client_id=client.id, doc_type="monitoring")
        except PersistenceError as e:
            return ExecutionResult(success=False, error=str(e), client_id=client.id, doc_type="monitoring")

        previous_status = current.status
        locked = current.model_copy(update={"status": "generating"})

        try:
            now = self.clock()
            goal = None
            if current.goal_period_id:
                goal = next(
                    (g for g in self.repository.load_goal_periods(client.id) if g.id == current.goal_period_id),
                    None
                )
            context = self.build_context(client, now, render_target, {
                "monitoring": current.model_dump(mode="json"),
                "goal": goal.model_dump(mode="json") if goal else None,
            })

            notify("모니터링 보고서를 생성 중...")
            document = self.generator.generate("monitoring", client, context)
            plan_revision_needed = bool(document.plan_revision_needed)

            completed = locked.model_copy(update={
                "status": "completed",
                "completed_at": now,
                "plan_revision_needed": plan_revision_needed,
                "plan_revision_reason": document.plan_revision_reason,
            })

            schedules = []
            monitoring_doc = self._current_schedule(client, "monitoring")
            if monitoring_doc.status != "generating":
                schedules.append(self._issued(monitoring_doc, client, document, now))
            if plan_revision_needed:
                notify("계획 변경 필요 - 계획서 재생성이 필요합니다")
                plan = self._flag_plan_revision(client, document.plan_revision_reason)
                if plan is not None:
                    schedules.append(plan)

            self.repository.save_batch(schedules, [completed])
        except ScheduleConflict as e:
            self._release_monitoring(locked, previous_status)
            log_schedule_event("execution_conflict", client.id, {"monitoring_id": current.id})
            return ExecutionResult(success=False, conflict=True, error=str(e), client_id=client.id, doc_type="monitoring")
        except Exception as e:
            logger.error(
                f"모니터링 실행 오류: {type(e).__name__}: {e}",
                exc_info=True,
                extra={'client_id': client.id}
            )
            self._release_monitoring(locked, previous_status)
            return ExecutionResult(success=False, error=str(e) or type(e).__name__, client_id=client.id, doc_type="monitoring")

        notify("모니터링 보고서 생성 완료")
        log_schedule_event("monitoring_completed", client.id, {
            "monitoring_id": current.id,
            "plan_revision_needed": plan_revision_needed,
        })
        self._validate_after_generation(client)
        return ExecutionResult(
            success=True, client_id=client.id, doc_type="monitoring", plan_revision_needed=plan_revision_needed
        )

    def execute_bulk(
        self,
        actions: Iterable[ScheduleAction],
        clients: Iterable[CareClientSchema],
        render_target: Any = None,
        on_progress: ProgressCallback = None
    ) -> BulkExecutionResult:
        """기한 초과 액션을 순서대로 하나씩 실행. 1건 실패가 나머지를 막지 않는다"""
        client_map = {c.id: c for c in clients}
        result = BulkExecutionResult()

        for action in actions:
            client = client_map.get(action.client_id)
            if client is None:
                result.skipped_count += 1
                continue

            item = self.execute_schedule_action(action, client, render_target, on_progress)
            result.results.append(item)
            if item.skipped:
                # 앞선 액션(계획서 일괄 생성 등)이 이미 처리함
                result.skipped_count += 1
            elif item.success:
                result.success_count += 1
            else:
                result.error_count += 1

        log_schedule_event("bulk_execution_finished", None, {
            "success_count": result.success_count,
            "error_count": result.error_count,
            "skipped_count": result.skipped_count,
        })
        return result

    # ========== 생성 후 검증 ==========

    def _validate_after_generation(self, client: CareClientSchema):
        """검증 캐시 갱신. 실패해도 서류 생성 결과에는 영향 없음"""
        today = self.clock().date()
        try:
            result = validate_client_documents(
                client,
                self.repository.load_schedules(client.id),
                self.repository.load_helpers(),
                self.repository.load_billing_records_for_month(today.year, today.month),
                today,
            )
            self.repository.save_validation(result)
        except (PersistenceError, SQLAlchemyError) as e:
            logger.warning(f"생성 후 검증 실패 (서류 생성은 완료됨): {e}", extra={'client_id': client.id})
