"""
구조화된 로깅 시스템
"""
import logging
import json
from datetime import datetime
from typing import Dict, Any, Optional
import time

from .config import settings

class StructuredFormatter(logging.Formatter):
    """구조화된 로그 포맷터"""

    def format(self, record):
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        # 추가 컨텍스트 정보 포함
        if hasattr(record, 'client_id'):
            log_data['client_id'] = record.client_id
        if hasattr(record, 'request_id'):
            log_data['request_id'] = record.request_id
        if hasattr(record, 'execution_time'):
            log_data['execution_time'] = record.execution_time
        if hasattr(record, 'extra_data'):
            log_data['extra_data'] = record.extra_data
        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)

def setup_logging():
    """로깅 설정"""

    # 루트 로거 설정
    logger = logging.getLogger()
    logger.setLevel(settings.log_level)

    # 중복 설정 방지
    if any(isinstance(h.formatter, StructuredFormatter) for h in logger.handlers):
        return logger

    # 핸들러 생성
    console_handler = logging.StreamHandler()
    file_handler = logging.FileHandler(settings.log_file, encoding='utf-8')

    # 포맷터 설정
    structured_formatter = StructuredFormatter()
    console_handler.setFormatter(structured_formatter)
    file_handler.setFormatter(structured_formatter)

    # 핸들러 추가
    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger

def get_logger(name: str) -> logging.Logger:
    """로거 인스턴스 반환"""
    return logging.getLogger(name)

def log_database_operation(operation: str, table: str, record_id: Optional[str] = None):
    """데이터베이스 작업 로깅"""
    logger = get_logger("database")
    logger.info(
        f"DB 작업: {operation}",
        extra={
            'extra_data': {
                'operation': operation,
                'table': table,
                'record_id': record_id
            }
        }
    )

def log_schedule_event(event_type: str, client_id: Optional[str], details: Dict[str, Any] = None):
    """스케줄 상태 전이 / 실행 결과 로깅"""
    logger = get_logger("schedule")
    logger.info(
        f"스케줄 이벤트: {event_type}",
        extra={
            'client_id': client_id,
            'extra_data': {
                'event_type': event_type,
                'details': details or {}
            }
        }
    )

def log_status_sync_failure(schedule: Any, target_status: str, error: Exception):
    """상태 동기화 실패 이벤트 (외부에서 관측 가능하도록 구조화)"""
    logger = get_logger("schedule.sync")
    logger.warning(
        f"상태 동기화 실패: {getattr(schedule, 'doc_type', None) or getattr(schedule, 'monitoring_type', None)} -> {target_status}",
        extra={
            'client_id': getattr(schedule, 'care_client_id', None),
            'extra_data': {
                'event_type': 'status_sync_failed',
                'schedule_id': getattr(schedule, 'id', None),
                'from_status': getattr(schedule, 'status', None),
                'target_status': target_status,
                'error': str(error),
                'error_type': type(error).__name__
            }
        }
    )

def log_generation_call(doc_type: str, client_id: str, execution_time: float, success: bool, error: str = None):
    """외부 서류 생성 호출 로깅"""
    logger = get_logger("document_generator")
    level = logging.INFO if success else logging.ERROR
    logger.log(
        level,
        f"서류 생성 {'완료' if success else '실패'}: {doc_type}",
        extra={
            'client_id': client_id,
            'execution_time': execution_time,
            'extra_data': {
                'doc_type': doc_type,
                'success': success,
                'error': error
            }
        }
    )

class LoggingMiddleware:
    """로깅 미들웨어"""

    def __init__(self, app):
        self.app = app
        self.logger = get_logger("middleware")

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            start_time = time.time()

            # 요청 정보 추출
            method = scope["method"]
            path = scope["path"]
            client = scope.get("client") or ["unknown"]
            client_ip = client[0]

            # 요청 로깅
            self.logger.info(
                f"HTTP 요청: {method} {path}",
                extra={
                    'extra_data': {
                        'method': method,
                        'path': path,
                        'client_ip': client_ip
                    }
                }
            )

            # 응답 후 로깅을 위한 래퍼
            async def send_wrapper(message):
                if message["type"] == "http.response.start":
                    status_code = message["status"]
                    execution_time = time.time() - start_time

                    # 응답 로깅
                    self.logger.info(
                        f"HTTP 응답: {method} {path} - {status_code}",
                        extra={
                            'execution_time': execution_time,
                            'extra_data': {
                                'method': method,
                                'path': path,
                                'status_code': status_code,
                                'client_ip': client_ip
                            }
                        }
                    )

                await send(message)

            await self.app(scope, receive, send_wrapper)
        else:
            await self.app(scope, receive, send)
