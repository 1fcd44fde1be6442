"""Client for long-running generation jobs (Gemini Veo video endpoint).

The remote API follows the long-running-operation pattern:
    POST {base}/models/{model}:predictLongRunning  -> {"name": "<operation>"}
    GET  {base}/{operation}                        -> {"name", "done", "response"?, "error"?}
"""

from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_VIDEO_MODEL = "veo-3.0-generate-001"


class JobAPIError(Exception):
    """Transport or HTTP error returned by the job API."""

    def __init__(
        self,
        status_code: Optional[int],
        code: Optional[str | int],
        message: str,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message

    def __str__(self) -> str:
        prefix = f"HTTP {self.status_code}" if self.status_code is not None else "Request error"
        if self.code is not None:
            prefix = f"{prefix} {self.code}"
        return f"{prefix}: {self.message}"


@dataclass
class OperationSnapshot:
    """State of a remote operation as returned by one status fetch."""

    name: str
    done: bool = False
    response: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "OperationSnapshot":
        response = payload.get("response")
        error = payload.get("error")
        if error and not isinstance(error, dict):
            error = {"message": str(error)}
        metadata = payload.get("metadata")
        return cls(
            name=str(payload.get("name", "")),
            done=bool(payload.get("done", False)),
            response=response if isinstance(response, dict) else None,
            error=error or None,
            metadata=metadata if isinstance(metadata, dict) else {},
        )


class JobClient(ABC):
    """Submit a job and fetch the status of its operation."""

    @abstractmethod
    async def submit(self, payload: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    async def get_operation(self, name: str) -> OperationSnapshot:
        ...


class GeminiVideoJobClient(JobClient):
    """
    Gemini API client for Veo video generation jobs.

    Usage:
        client = GeminiVideoJobClient()
        name = await client.submit(payload)
        snapshot = await client.get_operation(name)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_VIDEO_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        api_key = resolve_api_key(api_key)
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {"x-goog-api-key": api_key, "Content-Type": "application/json"}
        )

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise JobAPIError(None, None, str(exc)) from exc
        if not response.ok:
            raise error_from_response(response)
        return response

    def _request_json(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        response = self._request(method, url, **kwargs)
        try:
            data = response.json()
        except ValueError as exc:
            raise JobAPIError(response.status_code, None, "Response body is not JSON") from exc
        if not isinstance(data, dict):
            raise JobAPIError(response.status_code, None, "Malformed operation payload")
        return data

    def submit_sync(self, payload: Dict[str, Any]) -> str:
        url = f"{self.base_url}/models/{self.model}:predictLongRunning"
        data = self._request_json("POST", url, json=payload)
        name = data.get("name")
        if not name:
            raise JobAPIError(None, None, "Submission response did not include an operation name")
        return str(name)

    def get_operation_sync(self, name: str) -> OperationSnapshot:
        data = self._request_json("GET", f"{self.base_url}/{name}")
        return OperationSnapshot.from_payload(data)

    async def submit(self, payload: Dict[str, Any]) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.submit_sync, payload)

    async def get_operation(self, name: str) -> OperationSnapshot:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.get_operation_sync, name)

    def download(self, uri: str, output_path: Path | str) -> Path:
        """Download a generated file (the API key is required for the URI)."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        response = self._request("GET", uri, stream=True, allow_redirects=True)
        with response, open(output_path, "wb") as f:
            for chunk in response.iter_content(chunk_size=1 << 16):
                if chunk:
                    f.write(chunk)
        logger.info("Downloaded %s to %s", uri, output_path)
        return output_path

    def close(self) -> None:
        self.session.close()


def resolve_api_key(api_key: Optional[str] = None) -> str:
    key = api_key or os.getenv("GEMINI_API_KEY")
    if not key:
        raise ValueError("GEMINI_API_KEY is not configured for video generation")
    if len(key) < 10:
        raise ValueError("GEMINI_API_KEY is too short, please check the value")
    return key


def error_from_response(response: requests.Response) -> JobAPIError:
    """Build a JobAPIError from a Google-style ``{"error": {...}}`` body."""
    code: Optional[str | int] = None
    message = response.text[:500] or response.reason or "Unknown error"
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        code = error.get("status") or error.get("code")
        message = error.get("message") or message
    return JobAPIError(response.status_code, code, message)


def _video_response(response: Dict[str, Any]) -> Dict[str, Any]:
    nested = response.get("generateVideoResponse")
    return nested if isinstance(nested, dict) else response


def extract_video_uri(response: Dict[str, Any]) -> Optional[str]:
    """First generated video URI in a finished operation response, if any."""
    video_response = _video_response(response)
    samples = (
        video_response.get("generatedSamples")
        or video_response.get("generatedVideos")
        or video_response.get("videos")
        or []
    )
    for sample in samples:
        if not isinstance(sample, dict):
            continue
        video = sample.get("video", sample)
        uri = video.get("uri") if isinstance(video, dict) else None
        if uri:
            return str(uri)
    return None


def extract_filter_reasons(response: Dict[str, Any]) -> List[str]:
    """Content-policy filter reasons; empty when nothing was filtered."""
    video_response = _video_response(response)
    reasons = [str(r) for r in video_response.get("raiMediaFilteredReasons") or []]
    try:
        count = int(video_response.get("raiMediaFilteredCount") or 0)
    except (TypeError, ValueError):
        count = 0
    if count > 0 and not reasons:
        reasons = [f"{count} result(s) filtered by content policy"]
    return reasons
