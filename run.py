#!/usr/bin/env python3
"""
Care Docs 서비스 실행 스크립트
"""
import uvicorn
import os
from dotenv import load_dotenv

# 환경 변수 로드
load_dotenv()

if __name__ == "__main__":
    uvicorn.run(
        "care_docs.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 10007)),
        reload=True if os.getenv("DEBUG", "True") == "True" else False,
        log_level="info"
    )
