import uuid
from sqlalchemy import Column, String, DateTime, Boolean, Date, JSON, Index
from sqlalchemy.sql import func
from care_docs.database import Base

def generate_id() -> str:
    return str(uuid.uuid4())

# 이용자 / 헬퍼 / 실적 모델 (서류 검증에서 참조)
class CareClient(Base):
    __tablename__ = "care_clients"
    __table_args__ = {'mysql_charset': 'utf8mb4', 'mysql_collate': 'utf8mb4_unicode_ci'}

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(100), nullable=False)
    contract_start = Column(Date)
    care_level = Column(String(20))  # 区分1~6, 要介護1~5 등
    services = Column(JSON)  # 이용 서비스 코드 목록
    deleted = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

class Helper(Base):
    __tablename__ = "helpers"
    __table_args__ = {'mysql_charset': 'utf8mb4', 'mysql_collate': 'utf8mb4_unicode_ci'}

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(50), nullable=False, index=True)  # 시프트표 표시용 성
    hire_date = Column(Date)
    deleted = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())

class BillingRecord(Base):
    __tablename__ = "billing_records"
    __table_args__ = (
        Index("ix_billing_records_service_date", "service_date"),
        {'mysql_charset': 'utf8mb4', 'mysql_collate': 'utf8mb4_unicode_ci'},
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    care_client_id = Column(String(36))  # 실적 CSV 임포트 시 미해결이면 null
    client_name = Column(String(100), nullable=False)
    helper_name = Column(String(50), nullable=False)
    service_date = Column(Date, nullable=False)
    service_code = Column(String(20))
    created_at = Column(DateTime, server_default=func.now())
