"""Transcription through a plain HTTP endpoint."""

import httpx

from voiseform.constants import DEFAULT_TRANSCRIPTION_TIMEOUT
from voiseform.exceptions import APIError
from voiseform.transcription.base import TranscriptionBackend, TranscriptionRequest
from voiseform.utils.logger import get_logger

logger = get_logger(__name__)


class HttpTranscriptionBackend(TranscriptionBackend):
    """
    POSTs the recording as multipart field ``audio`` and reads the
    transcript from the JSON body.

    A body is accepted when it has a non-error ``text`` or
    ``transcription`` string. An ``error`` key, a non-2xx status or
    a body that is not JSON is a failure.
    """

    name = "http"

    def __init__(
        self,
        endpoint: str,
        timeout: float = DEFAULT_TRANSCRIPTION_TIMEOUT,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None
    ):
        """
        Initialize HTTP backend.

        Args:
            endpoint: Full URL of the transcription endpoint
            timeout: Request timeout in seconds
            headers: Extra request headers (e.g. authorization)
            client: Pre-built client (tests pass one with a mock transport)
        """
        self.endpoint = endpoint
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    async def transcribe(self, request: TranscriptionRequest) -> str:
        extension = request.mime_type.split("/")[-1].split(";")[0] or "wav"
        files = {"audio": (f"recording.{extension}", request.audio, request.mime_type)}

        try:
            response = await self._client.post(self.endpoint, files=files)
        except httpx.TimeoutException as e:
            raise APIError("Transcription request timed out", endpoint=self.endpoint, cause=e) from e
        except httpx.HTTPError as e:
            raise APIError(f"Network error: {e}", endpoint=self.endpoint, cause=e) from e

        if not response.is_success:
            raise APIError.from_response(self.endpoint, response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as e:
            raise APIError(
                "Transcription response is not valid JSON",
                status_code=response.status_code,
                endpoint=self.endpoint,
                cause=e
            ) from e

        if not isinstance(payload, dict):
            raise APIError("Transcription response is not an object", endpoint=self.endpoint)
        if payload.get("error"):
            raise APIError(
                f"Transcription endpoint reported an error: {payload['error']}",
                status_code=response.status_code,
                endpoint=self.endpoint
            )

        text = payload.get("text", payload.get("transcription"))
        if not isinstance(text, str):
            raise APIError("Transcription response has no text", endpoint=self.endpoint)
        logger.debug(f"{self.endpoint} returned {len(text)} chars for {request.size_bytes} bytes")
        return text

    async def close(self) -> None:
        await self._client.aclose()
