"""
표준화된 에러 응답 시스템
"""
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from datetime import datetime
import traceback

class StandardHTTPException(HTTPException):
    """표준화된 HTTP 예외"""

    def __init__(
        self,
        status_code: int,
        detail: str = None,
        error_code: str = None,
        headers: dict = None
    ):
        super().__init__(status_code, detail, headers)
        self.error_code = error_code or f"HTTP_{status_code}"

# 에러 코드 정의
class ErrorCodes:
    # 이용자 관련
    CLIENT_NOT_FOUND = "CLIENT_001"

    # 서류 스케줄 관련
    INVALID_DOC_TYPE = "SCHED_001"
    GENERATION_IN_PROGRESS = "SCHED_002"

    # 모니터링 관련
    MONITORING_NOT_FOUND = "MON_001"
    MODIFICATION_BLOCKED = "MON_002"

    # 목표 기간 관련
    INVALID_GOAL_SET = "GOAL_001"

    # 데이터베이스 관련
    DATABASE_ERROR = "DB_001"

async def http_exception_handler(request: Request, exc: HTTPException):
    """HTTP 예외 핸들러"""

    error_code = getattr(exc, 'error_code', f"HTTP_{exc.status_code}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "detail": exc.detail,
            "error_code": error_code,
            "timestamp": datetime.now().isoformat(),
            "path": str(request.url.path)
        }
    )

async def general_exception_handler(request: Request, exc: Exception):
    """일반 예외 핸들러"""

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "detail": "내부 서버 오류가 발생했습니다",
            "error_code": "INTERNAL_SERVER_ERROR",
            "timestamp": datetime.now().isoformat(),
            "path": str(request.url.path),
            # 개발 환경에서만 스택 트레이스 포함
            **({"traceback": traceback.format_exc()} if request.app.debug else {})
        }
    )

async def persistence_exception_handler(request: Request, exc: Exception):
    """저장소 쓰기 실패 핸들러 (재시도 가능)"""

    return JSONResponse(
        status_code=503,
        content={
            "success": False,
            "detail": f"데이터 저장 중 오류가 발생했습니다: {str(exc)}",
            "error_code": ErrorCodes.DATABASE_ERROR,
            "timestamp": datetime.now().isoformat(),
            "path": str(request.url.path)
        }
    )

# === 도메인 예외 (HTTP와 무관, 엔진 내부에서 사용) ===

class ScheduleConfigurationError(Exception):
    """잘못된 스케줄 설정 (cycle_months <= 0 등). 해당 스케줄만 건너뜀"""
    def __init__(self, schedule_id, message: str):
        super().__init__(message)
        self.schedule_id = schedule_id

class GenerationError(Exception):
    """외부 서류 생성 서비스 실패"""

class PersistenceError(Exception):
    """저장소 쓰기 실패"""

class ScheduleConflict(Exception):
    """이미 generating 상태인 항목에 대한 실행 요청 (재시도 가능)"""

class CompletedItemImmutable(Exception):
    """완료된 모니터링 항목 수정 시도"""

# === 서류 스케줄 전용 예외들 ===

class ClientNotFound(StandardHTTPException):
    """이용자 없음 예외"""
    def __init__(self, client_id: str):
        super().__init__(
            status_code=404,
            detail=f"이용자를 찾을 수 없습니다: {client_id}",
            error_code=ErrorCodes.CLIENT_NOT_FOUND
        )

class InvalidDocType(StandardHTTPException):
    """지원하지 않는 서류 종류 예외"""
    def __init__(self, doc_type: str):
        super().__init__(
            status_code=400,
            detail=f"지원하지 않는 서류 종류입니다: {doc_type}. care_plan, tejunsho, monitoring 중 하나여야 합니다.",
            error_code=ErrorCodes.INVALID_DOC_TYPE
        )

class MonitoringItemNotFound(StandardHTTPException):
    """모니터링 항목 없음 예외"""
    def __init__(self, item_id: str):
        super().__init__(
            status_code=404,
            detail=f"모니터링 일정을 찾을 수 없습니다: {item_id}",
            error_code=ErrorCodes.MONITORING_NOT_FOUND
        )

class GenerationInProgress(StandardHTTPException):
    """생성 중 충돌 예외"""
    def __init__(self):
        super().__init__(
            status_code=409,
            detail="이미 서류를 생성 중입니다. 잠시 후 다시 시도해주세요.",
            error_code=ErrorCodes.GENERATION_IN_PROGRESS
        )

class InvalidGoalSet(StandardHTTPException):
    """잘못된 목표 세트 예외"""
    def __init__(self, message: str):
        super().__init__(
            status_code=400,
            detail=message,
            error_code=ErrorCodes.INVALID_GOAL_SET
        )

class ModificationBlocked(StandardHTTPException):
    """수정 차단 예외"""
    def __init__(self, task_type: str = "완료된 모니터링"):
        super().__init__(
            status_code=403,
            detail=f"{task_type}은 데이터 무결성 보장을 위해 수정할 수 없습니다.",
            error_code=ErrorCodes.MODIFICATION_BLOCKED
        )
