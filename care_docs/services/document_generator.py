"""
서류 생성 서비스 연동
계획서 / 수순서 / 모니터링 보고서 렌더링은 외부 서비스가 담당하고, 여기서는 호출만 한다.
"""

import time
import requests
from typing import Any, Dict, Optional, Protocol

from care_docs.config import settings
from care_docs.exceptions import GenerationError
from care_docs.logging_config import get_logger, log_generation_call
from care_docs.schemas import CareClientSchema, GeneratedDocument

# 로거 설정
logger = get_logger(__name__)

class DocumentGenerator(Protocol):
    """서류 생성 협력자 인터페이스. 실패 시 GenerationError"""

    def generate(self, doc_type: str, client: CareClientSchema, context: Dict[str, Any]) -> GeneratedDocument:
        ...

class WebhookDocumentGenerator:
    """HTTP 웹훅 기반 서류 생성 (타임아웃은 이 경계에서 건다)"""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[int] = None,
        api_key: Optional[str] = None
    ):
        self.url = url or settings.document_generator_url
        self.timeout = timeout or settings.document_generator_timeout
        self.api_key = api_key if api_key is not None else settings.document_generator_api_key

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": f"CareDocs-Backend/{settings.app_version}"
        }
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def generate(self, doc_type: str, client: CareClientSchema, context: Dict[str, Any]) -> GeneratedDocument:
        payload = {
            "doc_type": doc_type,
            "client": client.model_dump(mode="json"),
            "context": context,
        }
        start_time = time.time()

        try:
            response = requests.post(
                url=self.url,
                json=payload,
                timeout=self.timeout,
                headers=self._headers()
            )
            response.raise_for_status()
            data = response.json() if response.text else {}

        except requests.exceptions.Timeout as e:
            error_msg = f"서류 생성 타임아웃 ({self.timeout}초)"
            log_generation_call(doc_type, client.id, time.time() - start_time, False, error_msg)
            raise GenerationError(error_msg) from e

        except requests.exceptions.ConnectionError as e:
            error_msg = "서류 생성 서버 연결 실패"
            log_generation_call(doc_type, client.id, time.time() - start_time, False, error_msg)
            raise GenerationError(error_msg) from e

        except requests.exceptions.HTTPError as e:
            error_msg = f"서류 생성 HTTP 오류: {e.response.status_code}"
            log_generation_call(doc_type, client.id, time.time() - start_time, False, error_msg)
            raise GenerationError(error_msg) from e

        except ValueError as e:
            error_msg = "서류 생성 응답이 JSON 형식이 아닙니다"
            log_generation_call(doc_type, client.id, time.time() - start_time, False, error_msg)
            raise GenerationError(error_msg) from e

        except requests.exceptions.RequestException as e:
            error_msg = f"서류 생성 호출 중 예상치 못한 오류: {str(e)}"
            log_generation_call(doc_type, client.id, time.time() - start_time, False, error_msg)
            raise GenerationError(error_msg) from e

        if not isinstance(data, dict) or not (data.get("file_url") or data.get("document_id")):
            error_msg = "서류 생성 응답에 file_url / document_id가 없습니다"
            log_generation_call(doc_type, client.id, time.time() - start_time, False, error_msg)
            raise GenerationError(error_msg)

        log_generation_call(doc_type, client.id, time.time() - start_time, True)
        return GeneratedDocument(
            file_url=data.get("file_url"),
            document_id=data.get("document_id"),
            plan_revision_needed=data.get("plan_revision_needed"),
            plan_revision_reason=data.get("plan_revision_reason"),
        )
