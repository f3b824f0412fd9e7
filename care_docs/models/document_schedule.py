"""
서류 라이프사이클 스케줄 모델
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Text, JSON, Date, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from care_docs.database import Base
from care_docs.models.client import generate_id

# 이용자 x 서류 종류별 갱신 스케줄
class DocumentSchedule(Base):
    __tablename__ = "document_schedules"
    __table_args__ = (
        UniqueConstraint("care_client_id", "doc_type", name="uq_document_schedules_client_doc_type"),
        {'mysql_charset': 'utf8mb4', 'mysql_collate': 'utf8mb4_unicode_ci'},
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    care_client_id = Column(String(36), ForeignKey("care_clients.id"), nullable=False, index=True)
    doc_type = Column(String(20), nullable=False)  # care_plan, tejunsho, monitoring
    status = Column(String(20), nullable=False, default="pending")  # pending, active, due_soon, overdue, generating
    last_generated_at = Column(DateTime)
    next_due_date = Column(Date)
    alert_date = Column(Date)
    expiry_date = Column(Date)
    cycle_months = Column(Integer, nullable=False, default=6)
    alert_days_before = Column(Integer, nullable=False, default=30)
    plan_revision_needed = Column(Boolean)
    plan_revision_reason = Column(Text)
    last_document_id = Column(String(100))
    last_file_url = Column(String(500))
    auto_generate = Column(Boolean, default=False)
    notes = Column(Text)

    # 계획서-수순서 연결 정보
    plan_creation_date = Column(Date)
    period_start = Column(Date)
    period_end = Column(Date)
    generation_batch_id = Column(String(36))
    linked_plan_schedule_id = Column(String(36))

    version = Column(Integer, nullable=False, default=1)  # 상태 갱신 CAS 가드
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # 관계 설정
    care_client = relationship("CareClient")

    # ORM UPDATE 는 읽은 시점의 version 을 조건으로 건다 (값은 저장소가 직접 올림)
    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

# 장기/단기 목표 기간
class GoalPeriod(Base):
    __tablename__ = "goal_periods"
    __table_args__ = {'mysql_charset': 'utf8mb4', 'mysql_collate': 'utf8mb4_unicode_ci'}

    id = Column(String(36), primary_key=True, default=generate_id)
    care_client_id = Column(String(36), ForeignKey("care_clients.id"), nullable=False, index=True)
    goal_type = Column(String(20), nullable=False)  # long_term, short_term
    goal_index = Column(Integer)  # 단기 목표 0~2, 장기는 null
    goal_text = Column(Text)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_active = Column(Boolean, default=True)
    supersedes_id = Column(String(36))  # 교체 이전 목표
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

# 목표 기간 기반 모니터링 일정 (긴급 모니터링 포함)
class MonitoringSchedule(Base):
    __tablename__ = "monitoring_schedules"
    __table_args__ = {'mysql_charset': 'utf8mb4', 'mysql_collate': 'utf8mb4_unicode_ci'}

    id = Column(String(36), primary_key=True, default=generate_id)
    care_client_id = Column(String(36), ForeignKey("care_clients.id"), nullable=False, index=True)
    goal_period_id = Column(String(36), index=True)  # 긴급 모니터링은 null
    monitoring_type = Column(String(20), nullable=False)  # short_term, long_term, emergency
    status = Column(String(20), nullable=False, default="pending")  # pending, scheduled, generating, completed
    due_date = Column(Date, nullable=False)
    alert_date = Column(Date)
    completed_at = Column(DateTime)
    plan_revision_needed = Column(Boolean)
    plan_revision_reason = Column(Text)
    trigger_event = Column(String(100))
    trigger_notes = Column(Text)
    auto_generate = Column(Boolean, default=False)
    notes = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

# 검증 결과 캐시 (대시보드 표시용, 원본 데이터 아님)
class DocumentValidation(Base):
    __tablename__ = "document_validations"
    __table_args__ = {'mysql_charset': 'utf8mb4', 'mysql_collate': 'utf8mb4_unicode_ci'}

    care_client_id = Column(String(36), ForeignKey("care_clients.id"), primary_key=True)
    is_valid = Column(Boolean, nullable=False)
    checks = Column(JSON, nullable=False)
    checked_at = Column(DateTime, nullable=False)
