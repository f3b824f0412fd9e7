"""
서류 스케줄 저장소 (SQLAlchemy)

ORM 행과 엔진용 스키마 사이를 변환한다. 쓰기 실패는 PersistenceError로 올린다.
"""
import calendar
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from care_docs.exceptions import PersistenceError, CompletedItemImmutable, ScheduleConflict
from care_docs.logging_config import log_database_operation
from care_docs.models import (
    CareClient, Helper, BillingRecord,
    DocumentSchedule, GoalPeriod, MonitoringSchedule, DocumentValidation,
)
from care_docs.schemas import (
    CareClientSchema, HelperSchema, BillingRecordSchema,
    DocumentScheduleSchema, GoalPeriodInput, GoalPeriodSchema, MonitoringScheduleSchema,
    ValidationResult,
)

# 저장 시 호출자가 덮어쓰지 않는 컬럼
SCHEDULE_READONLY_FIELDS = {"id", "version", "created_at", "updated_at"}
MONITORING_READONLY_FIELDS = {"id", "created_at", "updated_at"}

class ScheduleRepository:
    def __init__(self, db: Session):
        self.db = db

    def _commit(self, operation: str, table: str, record_id: Optional[str] = None):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"{table} {operation} 실패: {e}") from e
        log_database_operation(operation, table, record_id)

    # ========== 이용자 / 헬퍼 / 실적 ==========

    def load_clients(self, include_deleted: bool = False) -> List[CareClientSchema]:
        query = self.db.query(CareClient)
        if not include_deleted:
            query = query.filter(CareClient.deleted.is_(False))
        return [CareClientSchema.model_validate(c) for c in query.order_by(CareClient.name).all()]

    def get_client(self, client_id: str) -> Optional[CareClientSchema]:
        client = self.db.query(CareClient).filter(CareClient.id == client_id).first()
        return CareClientSchema.model_validate(client) if client else None

    def load_helpers(self) -> List[HelperSchema]:
        helpers = self.db.query(Helper).filter(Helper.deleted.is_(False)).all()
        return [HelperSchema.model_validate(h) for h in helpers]

    def load_billing_records_for_month(self, year: int, month: int) -> List[BillingRecordSchema]:
        first_day = date(year, month, 1)
        last_day = date(year, month, calendar.monthrange(year, month)[1])
        records = self.db.query(BillingRecord).filter(
            BillingRecord.service_date >= first_day,
            BillingRecord.service_date <= last_day
        ).order_by(BillingRecord.service_date).all()
        return [BillingRecordSchema.model_validate(r) for r in records]

    # ========== 서류 스케줄 ==========

    def load_schedules(self, client_id: Optional[str] = None) -> List[DocumentScheduleSchema]:
        query = self.db.query(DocumentSchedule)
        if client_id:
            query = query.filter(DocumentSchedule.care_client_id == client_id)
        rows = query.order_by(DocumentSchedule.care_client_id, DocumentSchedule.doc_type).all()
        return [DocumentScheduleSchema.model_validate(r) for r in rows]

    def get_schedule(self, client_id: str, doc_type: str) -> Optional[DocumentScheduleSchema]:
        row = self.db.query(DocumentSchedule).filter(
            DocumentSchedule.care_client_id == client_id,
            DocumentSchedule.doc_type == doc_type
        ).first()
        return DocumentScheduleSchema.model_validate(row) if row else None

    def _stage_schedule(self, schedule: DocumentScheduleSchema) -> DocumentSchedule:
        row = None
        if schedule.id:
            row = self.db.get(DocumentSchedule, schedule.id)
            if row is not None and row.version != schedule.version:
                # 읽은 뒤 다른 요청(소프트 락 등)이 먼저 바꾼 행
                raise ScheduleConflict(
                    f"{schedule.doc_type} 스케줄이 다른 요청에 의해 변경되었습니다 "
                    f"(version {schedule.version} -> {row.version})"
                )
        if row is None:
            # 이용자 x 서류 종류당 1행
            row = self.db.query(DocumentSchedule).filter(
                DocumentSchedule.care_client_id == schedule.care_client_id,
                DocumentSchedule.doc_type == schedule.doc_type
            ).first()
        if row is None:
            row = DocumentSchedule(version=1)
            self.db.add(row)
        else:
            row.version = (row.version or 0) + 1

        for field, value in schedule.model_dump(exclude=SCHEDULE_READONLY_FIELDS).items():
            setattr(row, field, value)
        return row

    def _flush_staged(self, operation: str):
        """스테이징한 변경을 flush. 실패하면 세션을 되돌려 다음 커밋에 섞이지 않게 한다"""
        try:
            self.db.flush()
        except StaleDataError as e:
            self.db.rollback()
            raise ScheduleConflict(f"document_schedules {operation} 중 동시 변경 감지: {e}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"document_schedules {operation} 실패: {e}") from e

    def save_schedule(self, schedule: DocumentScheduleSchema) -> DocumentScheduleSchema:
        try:
            row = self._stage_schedule(schedule)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"document_schedules save 실패: {e}") from e
        self._flush_staged("save")
        self._commit("save", "document_schedules", schedule.id)
        self.db.refresh(row)
        return DocumentScheduleSchema.model_validate(row)

    def update_schedule_status(
        self,
        schedule: DocumentScheduleSchema,
        new_status: str,
        expected_status: Optional[str] = None
    ) -> bool:
        """(status, version)이 읽었을 때와 같을 때만 상태를 바꾼다. 경합에서 지면 False"""
        if expected_status is None:
            expected_status = schedule.status
        try:
            result = self.db.execute(
                update(DocumentSchedule)
                .where(
                    DocumentSchedule.id == schedule.id,
                    DocumentSchedule.status == expected_status,
                    DocumentSchedule.version == schedule.version,
                )
                .values(status=new_status, version=DocumentSchedule.version + 1)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"document_schedules 상태 갱신 실패: {e}") from e
        self._commit("update_status", "document_schedules", schedule.id)
        return result.rowcount == 1

    # ========== 목표 기간 ==========

    def load_goal_periods(self, client_id: Optional[str] = None, active_only: bool = False) -> List[GoalPeriodSchema]:
        query = self.db.query(GoalPeriod)
        if client_id:
            query = query.filter(GoalPeriod.care_client_id == client_id)
        if active_only:
            query = query.filter(GoalPeriod.is_active.is_(True))
        rows = query.order_by(GoalPeriod.goal_type, GoalPeriod.goal_index).all()
        return [GoalPeriodSchema.model_validate(r) for r in rows]

    def save_goal_period(self, goal: GoalPeriodSchema) -> GoalPeriodSchema:
        row = self.db.get(GoalPeriod, goal.id) if goal.id else None
        if row is None:
            row = GoalPeriod()
            self.db.add(row)
        for field, value in goal.model_dump(exclude={"id"}).items():
            setattr(row, field, value)
        self._commit("save", "goal_periods", goal.id)
        self.db.refresh(row)
        return GoalPeriodSchema.model_validate(row)

    def delete_goal_period(self, goal_id: str):
        self.db.query(GoalPeriod).filter(GoalPeriod.id == goal_id).delete()
        self._commit("delete", "goal_periods", goal_id)

    def replace_goal_periods(self, client_id: str, goals: Iterable[GoalPeriodInput]) -> List[GoalPeriodSchema]:
        """
        활성 목표 세트 교체 (이력 보존).
        기존 활성 목표는 is_active=False, 새 목표는 같은 슬롯의 이전 목표를 supersedes_id로 참조한다.
        """
        previous = self.db.query(GoalPeriod).filter(
            GoalPeriod.care_client_id == client_id,
            GoalPeriod.is_active.is_(True)
        ).all()
        slots = {(g.goal_type, g.goal_index): g.id for g in previous}
        for goal in previous:
            goal.is_active = False

        new_rows = []
        for goal in goals:
            goal_index = goal.goal_index if goal.goal_type == "short_term" else None
            row = GoalPeriod(
                care_client_id=client_id,
                goal_type=goal.goal_type,
                goal_index=goal_index,
                goal_text=goal.goal_text,
                start_date=goal.start_date,
                end_date=goal.end_date,
                is_active=True,
                supersedes_id=slots.get((goal.goal_type, goal_index)),
            )
            self.db.add(row)
            new_rows.append(row)

        self._commit("replace", "goal_periods", client_id)
        for row in new_rows:
            self.db.refresh(row)
        return [GoalPeriodSchema.model_validate(r) for r in new_rows]

    def reset_goal_periods(self, client_id: str) -> int:
        """목표 초기화: 목표와 그에 묶인 미완료 모니터링 일정을 삭제. 삭제한 목표 수 반환"""
        goal_ids = [
            g.id for g in self.db.query(GoalPeriod.id).filter(GoalPeriod.care_client_id == client_id).all()
        ]
        if not goal_ids:
            return 0
        self.db.query(MonitoringSchedule).filter(
            MonitoringSchedule.goal_period_id.in_(goal_ids),
            MonitoringSchedule.status != "completed"
        ).delete(synchronize_session=False)
        self.db.query(GoalPeriod).filter(GoalPeriod.id.in_(goal_ids)).delete(synchronize_session=False)
        self._commit("reset", "goal_periods", client_id)
        return len(goal_ids)

    # ========== 모니터링 일정 ==========

    def load_monitoring_schedules(self, client_id: Optional[str] = None) -> List[MonitoringScheduleSchema]:
        query = self.db.query(MonitoringSchedule)
        if client_id:
            query = query.filter(MonitoringSchedule.care_client_id == client_id)
        rows = query.order_by(MonitoringSchedule.due_date).all()
        return [MonitoringScheduleSchema.model_validate(r) for r in rows]

    def get_monitoring_schedule(self, item_id: str) -> Optional[MonitoringScheduleSchema]:
        row = self.db.get(MonitoringSchedule, item_id)
        return MonitoringScheduleSchema.model_validate(row) if row else None

    def _stage_monitoring(self, item: MonitoringScheduleSchema) -> MonitoringSchedule:
        row = self.db.get(MonitoringSchedule, item.id) if item.id else None
        if row is None:
            row = MonitoringSchedule()
            self.db.add(row)
        elif row.status == "completed":
            # 완료 항목은 completed_at 최초 기록만 허용
            if row.completed_at is not None or item.completed_at is None:
                raise CompletedItemImmutable(f"완료된 모니터링 일정은 수정할 수 없습니다: {row.id}")
            row.completed_at = item.completed_at
            return row

        for field, value in item.model_dump(exclude=MONITORING_READONLY_FIELDS).items():
            setattr(row, field, value)
        return row

    def save_monitoring_schedule(self, item: MonitoringScheduleSchema) -> MonitoringScheduleSchema:
        row = self._stage_monitoring(item)
        self._commit("save", "monitoring_schedules", item.id)
        self.db.refresh(row)
        return MonitoringScheduleSchema.model_validate(row)

    def update_monitoring_status(
        self,
        item: MonitoringScheduleSchema,
        new_status: str,
        expected_status: Optional[str] = None
    ) -> bool:
        if expected_status is None:
            expected_status = item.status
        try:
            result = self.db.execute(
                update(MonitoringSchedule)
                .where(
                    MonitoringSchedule.id == item.id,
                    MonitoringSchedule.status == expected_status,
                )
                .values(status=new_status)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"monitoring_schedules 상태 갱신 실패: {e}") from e
        self._commit("update_status", "monitoring_schedules", item.id)
        return result.rowcount == 1

    # ========== 일괄 저장 ==========

    def save_batch(
        self,
        schedules: Iterable[DocumentScheduleSchema] = (),
        monitoring_items: Iterable[MonitoringScheduleSchema] = ()
    ) -> List[DocumentScheduleSchema]:
        """
        실행 결과를 한 트랜잭션으로 저장 (일부만 반영되는 일이 없도록).
        id 가 있는 스케줄은 읽었을 때의 version 과 같을 때만 쓰고, 아니면 ScheduleConflict.
        """
        try:
            schedule_rows = [self._stage_schedule(s) for s in schedules]
            for item in monitoring_items:
                self._stage_monitoring(item)
        except (CompletedItemImmutable, ScheduleConflict):
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"document_schedules save_batch 실패: {e}") from e
        self._flush_staged("save_batch")
        self._commit("save_batch", "document_schedules")
        for row in schedule_rows:
            self.db.refresh(row)
        return [DocumentScheduleSchema.model_validate(r) for r in schedule_rows]

    # ========== 검증 결과 캐시 ==========

    def load_validations(self) -> List[ValidationResult]:
        rows = self.db.query(DocumentValidation).all()
        return [ValidationResult.model_validate(r) for r in rows]

    def save_validation(self, result: ValidationResult) -> ValidationResult:
        row = self.db.get(DocumentValidation, result.care_client_id)
        if row is None:
            row = DocumentValidation(care_client_id=result.care_client_id)
            self.db.add(row)
        row.is_valid = result.is_valid
        row.checks = [c.model_dump() for c in result.checks]
        row.checked_at = result.checked_at
        self._commit("save", "document_validations", result.care_client_id)
        return result
