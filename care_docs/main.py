from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from care_docs.config import settings
from care_docs.database import Base, engine
from care_docs import models  # noqa: F401  테이블 등록

from care_docs.exceptions import (
    PersistenceError, http_exception_handler, general_exception_handler, persistence_exception_handler,
)
from care_docs.logging_config import LoggingMiddleware, setup_logging, get_logger

# 라우터 임포트
from care_docs.routers import document_schedule

logger = get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # 로깅 설정 및 테이블 생성
    setup_logging()
    Base.metadata.create_all(bind=engine)
    logger.info(f"Care Docs API 시작 (environment={settings.environment})")
    yield

# 태그 설명 정의
tags_metadata = [
    {
        "name": "schedule",
        "description": "서류 스케줄 API (기한 체크, 상태 동기화, 서류 생성 실행)",
    },
    {
        "name": "goals",
        "description": "장기/단기 목표 기간 관리 API",
    },
    {
        "name": "monitoring",
        "description": "모니터링 일정 API (목표 기반 자동 생성, 긴급 모니터링)",
    },
    {
        "name": "validation",
        "description": "서류 정합성 검증 API",
    }
]

app = FastAPI(
    title="Care Docs API",
    description="""
## 방문개호 서류 라이프사이클 관리 API

### 주요 기능
- **스케줄 체크**: 계획서 / 수순서 / 모니터링 갱신 기한 판정 (기한 초과, 임박)
- **서류 생성**: 외부 생성 서비스 호출, 실패 시 이전 상태로 복원
- **모니터링**: 목표 기간 종료일 기준 일정 자동 생성, 긴급 모니터링 등록
- **검증**: 계약 개시일, 헬퍼 고용일, 서비스 내용 정합성 체크
    """,
    version=settings.app_version,
    openapi_tags=tags_metadata,
    debug=settings.debug,
    lifespan=lifespan
)

# 미들웨어 추가
app.add_middleware(LoggingMiddleware)

# CORS 설정
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 예외 핸들러 등록
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(PersistenceError, persistence_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

# 라우터 연결
app.include_router(document_schedule.router, prefix="/api")

@app.get("/")
async def root():
    return {"message": "Care Docs API", "version": settings.app_version, "status": "running"}

@app.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
