from pydantic_settings import BaseSettings
from typing import List
import os

class Settings(BaseSettings):
    # 데이터베이스 설정 (환경변수에서 읽어오기)
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./care_docs.db")

    # 서류 갱신 주기 기본값
    default_cycle_months: int = int(os.getenv("DEFAULT_CYCLE_MONTHS", "6"))
    default_alert_days_before: int = int(os.getenv("DEFAULT_ALERT_DAYS_BEFORE", "30"))
    expiry_grace_days: int = int(os.getenv("EXPIRY_GRACE_DAYS", "14"))  # 2주 유예

    # 모니터링 설정 (목표 종료일 기준 알림 리드타임)
    monitoring_alert_days_before: int = int(os.getenv("MONITORING_ALERT_DAYS_BEFORE", "14"))

    # 계약 개시일 알림 창
    contract_alert_window_days: int = int(os.getenv("CONTRACT_ALERT_WINDOW_DAYS", "7"))

    # 서류 생성 서비스 설정 (외부 렌더링 연동)
    document_generator_url: str = os.getenv("DOCUMENT_GENERATOR_URL", "http://localhost:8001/generate")
    document_generator_timeout: int = int(os.getenv("DOCUMENT_GENERATOR_TIMEOUT", "120"))
    document_generator_api_key: str = os.getenv("DOCUMENT_GENERATOR_API_KEY", "")

    # 사업소 정보 (서류 생성 컨텍스트)
    office_name: str = os.getenv("OFFICE_NAME", "訪問介護事業所のあ")
    office_address: str = os.getenv("OFFICE_ADDRESS", "東京都渋谷区")
    office_tel: str = os.getenv("OFFICE_TEL", "")

    # 환경 설정
    environment: str = os.getenv("ENVIRONMENT", "development")
    debug: bool = os.getenv("DEBUG", "True").lower() == "true"
    app_version: str = os.getenv("APP_VERSION", "1.0.0")

    # CORS 설정
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",  # Vite 개발 서버
    ]

    # 로깅 설정
    log_level: str = "INFO"
    log_file: str = "app.log"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # 추가 필드 무시

settings = Settings()
