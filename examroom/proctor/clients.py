"""
External collaborators - exam source, grading and identity verification

The exam room only assembles payloads and hands them off. Grading, storage
and face matching live behind these interfaces.
"""

import asyncio
import logging
from typing import Dict, List, Optional

import httpx

from ..config import settings
from .errors import SubmissionError, VerificationError
from .models import ExamDefinition, ImageArtifact, SubmissionPayload

logger = logging.getLogger(__name__)


# ============== Exam Source ==============

class ExamSource:
    """Provides immutable exam definitions by identifier"""

    def get_exam(self, exam_id: str) -> ExamDefinition:
        raise NotImplementedError


class InMemoryExamSource(ExamSource):
    def __init__(self, exams: Optional[List[ExamDefinition]] = None):
        self._exams: Dict[str, ExamDefinition] = {exam.id: exam for exam in exams or []}

    def add(self, exam: ExamDefinition):
        self._exams[exam.id] = exam

    def get_exam(self, exam_id: str) -> ExamDefinition:
        try:
            return self._exams[exam_id]
        except KeyError:
            raise KeyError(f"Exam {exam_id} not found")


# ============== Grading ==============

class GradingClient:
    """Accepts the single submission payload of a session"""

    async def submit(self, payload: SubmissionPayload) -> bool:
        """Deliver the payload; raise SubmissionError when delivery fails"""
        raise NotImplementedError


class RecordingGradingClient(GradingClient):
    """Keeps payloads in memory (demo mode and tests)"""

    def __init__(self):
        self.payloads: List[SubmissionPayload] = []

    async def submit(self, payload: SubmissionPayload) -> bool:
        self.payloads.append(payload)
        return True


class HttpGradingClient(GradingClient):
    """
    POSTs the payload as camelCase JSON to the results service.

    Retries transport errors and 5xx responses with exponential backoff;
    4xx responses are not retried.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url or settings.GRADING_API_URL
        if not self.url:
            raise ValueError("No grading service URL configured")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.max_retries = max_retries or settings.HTTP_MAX_RETRIES
        self.backoff_seconds = backoff_seconds
        self._transport = transport

    async def submit(self, payload: SubmissionPayload) -> bool:
        body = payload.model_dump(by_alias=True, mode="json")
        last_error = "no attempt made"

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.post(self.url, json=body)
                except httpx.HTTPError as e:
                    last_error = f"{type(e).__name__}: {e}"
                    logger.warning(f"Submission attempt {attempt + 1}/{self.max_retries} failed: {last_error}")
                else:
                    if response.is_success:
                        logger.info(f"Submission for exam {payload.exam_id} accepted ({response.status_code})")
                        return True
                    last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                    if response.status_code < 500:
                        break
                    logger.warning(f"Submission attempt {attempt + 1}/{self.max_retries} rejected: {last_error}")

                if attempt < self.max_retries - 1 and self.backoff_seconds > 0:
                    await asyncio.sleep(self.backoff_seconds * (2 ** attempt))

        raise SubmissionError(f"Could not deliver submission for exam {payload.exam_id}: {last_error}")


# ============== Identity Verification ==============

class IdentityVerifier:
    """Accepts the captured angle images once a capture completes"""

    def verify(self, artifacts: List[ImageArtifact]) -> bool:
        raise NotImplementedError


class HttpIdentityVerifier(IdentityVerifier):
    """Uploads the captured images as multipart form data, one file per angle"""

    def __init__(
        self,
        url: Optional[str] = None,
        user_id: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.url = url or settings.VERIFICATION_API_URL
        self.user_id = user_id
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    def verify(self, artifacts: List[ImageArtifact]) -> bool:
        files = [
            (artifact.angle.value, (artifact.filename, artifact.data, "image/jpeg"))
            for artifact in artifacts
        ]
        data = {"userId": self.user_id} if self.user_id else None

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.url, files=files, data=data)
        except httpx.HTTPError as e:
            raise VerificationError(f"Verification upload failed: {e}") from e

        if not response.is_success:
            raise VerificationError(f"Verification upload rejected: HTTP {response.status_code}")

        logger.info(f"Uploaded {len(artifacts)} verification images")
        return True
