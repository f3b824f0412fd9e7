"""
표준화된 API 응답 모델
"""
from pydantic import BaseModel
from typing import Generic, TypeVar, Optional, List
from datetime import datetime

from care_docs.schemas import (
    DocumentScheduleSchema, ScheduleAction, MonitoringAction, ScheduleConfigurationIssue,
    StatusSyncReport,
)

T = TypeVar('T')

class APIResponse(BaseModel, Generic[T]):
    """표준 API 응답 모델"""
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    timestamp: Optional[datetime] = None

# 공통 응답 생성 함수
def success_response(data: T = None, message: str = None) -> APIResponse[T]:
    """성공 응답 생성"""
    return APIResponse(
        success=True,
        data=data,
        message=message,
        timestamp=datetime.now()
    )

# 특화된 응답 모델들
class ClientScheduleOverview(BaseModel):
    """이용자 1명의 서류 현황 (저장된 스케줄 + 오늘 기준 판정)"""
    client_id: str
    client_name: str
    schedules: List[DocumentScheduleSchema]
    actions: List[ScheduleAction] = []
    alerts: List[ScheduleAction] = []

class ScheduleCheckResponse(BaseModel):
    """체크 실행 결과 (판정 + 상태 동기화 보고)"""
    checked_at: datetime
    actions: List[ScheduleAction] = []
    alerts: List[ScheduleAction] = []
    skipped: List[ScheduleConfigurationIssue] = []
    monitoring_actions: List[MonitoringAction] = []
    monitoring_alerts: List[MonitoringAction] = []
    contract_actions: List[MonitoringAction] = []
    contract_alerts: List[MonitoringAction] = []
    sync: StatusSyncReport
