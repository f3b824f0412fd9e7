"""
라우터 초기화 파일
"""
from .document_schedule import router as document_schedule_router

__all__ = [
    "document_schedule_router"
]
