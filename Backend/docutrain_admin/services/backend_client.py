import logging
from typing import Any, BinaryIO, Dict, List, Optional

import requests

from docutrain_admin.core.config import settings
from docutrain_admin.core.errors import BackendError, BackendUnavailableError
from docutrain_admin.core.session import Session
from docutrain_admin.services.processing_jobs import ProcessingJob, ProcessingStatus

logger = logging.getLogger(__name__)


class DocuTrainClient:
    """
    Thin wrapper over the DocuTrain REST API.

    Every call takes the caller's Session explicitly; the client itself holds
    no credentials. Non-2xx answers become BackendError, 503 backpressure
    becomes BackendUnavailableError with the server's retry delay.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 http: Optional[requests.Session] = None):
        self.base_url = (base_url or settings.DOCUTRAIN_API_URL).rstrip("/")
        self.timeout = timeout or settings.REQUEST_TIMEOUT_SECONDS
        self.http = http or requests.Session()

    def close(self) -> None:
        self.http.close()

    # ─── Transport ───────────────────────────────────────────────────────────

    def _request(self, method: str, path: str, session: Session, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = dict(kwargs.pop("headers", {}) or {})
        headers.update(session.auth_headers)

        try:
            response = self.http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"{method} {path} transport failure: {e}")
            raise BackendError(f"Could not reach DocuTrain backend: {e}") from e

        payload = self._json_body(response)

        if response.status_code == 503:
            retry_after = payload.get("retry_after")
            if retry_after is None:
                retry_after = response.headers.get("Retry-After")
            try:
                retry_after = float(retry_after)
            except (TypeError, ValueError):
                retry_after = settings.DEFAULT_RETRY_AFTER_SECONDS
            message = payload.get("error") or "Server is busy. Please try again in a moment."
            logger.warning(f"{method} {path} backpressure, retry after {retry_after}s")
            raise BackendUnavailableError(message, retry_after=retry_after, payload=payload)

        if not response.ok:
            message = (
                payload.get("error")
                or payload.get("message")
                or f"Request failed with status {response.status_code}"
            )
            logger.error(f"{method} {path} -> {response.status_code}: {message}")
            raise BackendError(message, status_code=response.status_code, payload=payload)

        return payload

    @staticmethod
    def _json_body(response: requests.Response) -> Dict[str, Any]:
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {"data": data}

    # ─── Retraining & Processing ─────────────────────────────────────────────

    def retrain_document_text(self, session: Session, document_id: str, content: str,
                              retrain_mode: str = "replace") -> str:
        result = self._request(
            "POST", "/api/retrain-document-text", session,
            json={"document_id": document_id, "content": content, "retrain_mode": retrain_mode},
        )
        return self._user_document_id(result)

    def retrain_document_file(self, session: Session, document_id: str, filename: str,
                              fileobj: BinaryIO, retrain_mode: str = "replace") -> str:
        result = self._request(
            "POST", "/api/retrain-document", session,
            data={"document_id": document_id, "retrain_mode": retrain_mode, "use_edge_function": "false"},
            files={"file": (filename, fileobj, "application/pdf")},
        )
        return self._user_document_id(result)

    @staticmethod
    def _user_document_id(result: Dict[str, Any]) -> str:
        user_document_id = result.get("user_document_id")
        if not user_document_id:
            raise BackendError("Backend accepted the retrain request but returned no user_document_id")
        return str(user_document_id)

    def process_document(self, session: Session, user_document_id: str) -> Dict[str, Any]:
        return self._request("POST", "/api/process-document", session, json={"user_document_id": user_document_id})

    def get_processing_status(self, session: Session, user_document_id: str) -> ProcessingStatus:
        result = self._request("GET", f"/api/processing-status/{user_document_id}", session)
        return ProcessingStatus.from_dict(result, user_document_id)

    def list_user_documents(self, session: Session) -> List[ProcessingJob]:
        result = self._request("GET", "/api/user-documents", session)
        return [ProcessingJob.from_dict(doc) for doc in result.get("documents") or []]

    # ─── Documents & Owners ──────────────────────────────────────────────────

    def update_document(self, session: Session, identifier: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/api/documents/{identifier}", session, json=fields)

    def update_owner(self, session: Session, owner_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/api/owners/{owner_id}", session, json=fields)

    # ─── Attachments ─────────────────────────────────────────────────────────

    def list_attachments(self, session: Session, document_id: str) -> List[Dict[str, Any]]:
        result = self._request("GET", f"/api/documents/{document_id}/attachments", session)
        return result.get("attachments") or []

    def create_attachment(self, session: Session, document_id: str, attachment: Dict[str, Any]) -> Dict[str, Any]:
        result = self._request("POST", f"/api/documents/{document_id}/attachments", session, json=attachment)
        return result.get("attachment") or result

    def update_attachment(self, session: Session, attachment_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        result = self._request("PUT", f"/api/attachments/{attachment_id}", session, json=fields)
        return result.get("attachment") or result

    def delete_attachment(self, session: Session, attachment_id: str) -> None:
        self._request("DELETE", f"/api/attachments/{attachment_id}", session)

    # ─── Quiz ────────────────────────────────────────────────────────────────

    def generate_quiz(self, session: Session, document_slug: str, num_questions: Optional[int] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"documentSlug": document_slug}
        if num_questions is not None:
            body["numQuestions"] = num_questions
        return self._request("POST", "/api/quiz/generate-and-store", session, json=body)

    def get_quiz_status(self, session: Session, document_slug: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/quiz/{document_slug}/status", session)

    def get_quiz_statistics(self, session: Session, document_slug: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/quiz/{document_slug}/statistics", session)


backend_client = DocuTrainClient()
