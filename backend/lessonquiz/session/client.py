from __future__ import annotations

import logging
import uuid

import httpx

from lessonquiz.core.config import settings
from lessonquiz.schemas.progress import EnrollmentProgress
from lessonquiz.schemas.quiz import QuizPublic, QuizSubmitRequest, QuizSubmitResponse
from lessonquiz.session.errors import QuizApiError, SubmissionRejected, SubmissionTransportError


log = logging.getLogger(__name__)


def _error_body(resp: httpx.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class QuizApiClient:
    """Blocking client for the learner-facing quiz endpoints.

    ``http`` may be any ``httpx.Client`` (FastAPI's ``TestClient`` included);
    relative paths are resolved against its base URL.
    """

    def __init__(self, *, token: str | None = None, base_url: str | None = None, http: httpx.Client | None = None):
        self._owns_http = http is None
        if http is None:
            timeout = httpx.Timeout(
                connect=float(settings.quiz_api_timeout_connect),
                read=float(settings.quiz_api_timeout_read),
                write=float(settings.quiz_api_timeout_read),
                pool=3.0,
            )
            http = httpx.Client(base_url=(base_url or settings.quiz_api_base_url).rstrip("/"), timeout=timeout)
        self._http = http
        self._token = token

    def __enter__(self) -> "QuizApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def _headers(self) -> dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = self._http.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            log.warning("quiz_api: transport error method=%s path=%s err=%s", method, path, type(e).__name__)
            raise SubmissionTransportError(f"could not reach quiz API: {type(e).__name__}") from e

        if resp.status_code < 400:
            return resp

        body = _error_body(resp)
        error_code = str(body.get("error_code") or "http_error")
        message = str(body.get("error_message") or resp.reason_phrase or "request failed")
        status = int(resp.status_code)
        if status >= 500 or status == 429 or bool(body.get("retryable")):
            log.warning("quiz_api: retryable failure path=%s status=%s code=%s", path, status, error_code)
            raise SubmissionTransportError(message, status_code=status, error_code=error_code)
        raise SubmissionRejected(message, status_code=status, error_code=error_code)

    def fetch_quiz(self, quiz_id: uuid.UUID) -> QuizPublic:
        resp = self._request("GET", f"/quizzes/{quiz_id}")
        return QuizPublic.model_validate(resp.json())

    def submit(self, quiz_id: uuid.UUID, request: QuizSubmitRequest) -> QuizSubmitResponse:
        body = request.model_dump(mode="json", by_alias=True, exclude_none=True)
        resp = self._request("POST", f"/quizzes/{quiz_id}/submit", json=body)
        try:
            return QuizSubmitResponse.model_validate(resp.json())
        except ValueError as e:
            # A 2xx we cannot read still means the attempt was recorded.
            raise QuizApiError("unreadable submit response", status_code=int(resp.status_code)) from e

    def progress(self, module_id: uuid.UUID) -> EnrollmentProgress:
        resp = self._request("GET", f"/progress/modules/{module_id}")
        return EnrollmentProgress.model_validate(resp.json())
