from fastapi import Depends
from sqlalchemy.orm import Session

from .database import get_db
from .services.document_generator import DocumentGenerator, WebhookDocumentGenerator
from .services.executor import ScheduleExecutor
from .services.repository import ScheduleRepository


def get_repository(db: Session = Depends(get_db)) -> ScheduleRepository:
    return ScheduleRepository(db)

def get_document_generator() -> DocumentGenerator:
    """서류 생성 서비스 (테스트에서는 dependency_overrides로 교체)"""
    return WebhookDocumentGenerator()

def get_executor(
    repository: ScheduleRepository = Depends(get_repository),
    generator: DocumentGenerator = Depends(get_document_generator)
) -> ScheduleExecutor:
    return ScheduleExecutor(repository, generator)
