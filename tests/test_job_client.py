"""
Unit tests for the Gemini video job client and response helpers.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from reelbatch.polling.job_client import (
    DEFAULT_BASE_URL,
    GeminiVideoJobClient,
    JobAPIError,
    OperationSnapshot,
    error_from_response,
    extract_filter_reasons,
    extract_video_uri,
    resolve_api_key,
)

API_KEY = "test-key-0123456789"


def make_response(status_code: int = 200, body=None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = "Error" if status_code >= 400 else "OK"
    response.text = text
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


def make_client(*responses) -> tuple[GeminiVideoJobClient, MagicMock]:
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = list(responses)
    client = GeminiVideoJobClient(api_key=API_KEY, session=session)
    return client, session


class TestResolveApiKey:
    """Tests for API key resolution."""

    def test_explicit_key(self) -> None:
        """Test an explicit key is returned unchanged."""
        assert resolve_api_key(API_KEY) == API_KEY

    def test_key_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the key is read from GEMINI_API_KEY."""
        monkeypatch.setenv("GEMINI_API_KEY", API_KEY)
        assert resolve_api_key() == API_KEY

    def test_missing_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a missing key raises."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(ValueError, match="not configured"):
            resolve_api_key()

    def test_short_key(self) -> None:
        """Test an implausibly short key raises."""
        with pytest.raises(ValueError, match="too short"):
            resolve_api_key("abc")


class TestGeminiVideoJobClient:
    """Tests for GeminiVideoJobClient."""

    def test_session_headers(self) -> None:
        """Test the API key header is set on the session."""
        client, session = make_client()
        assert session.headers["x-goog-api-key"] == API_KEY
        assert client.base_url == DEFAULT_BASE_URL

    def test_submit_posts_to_model_endpoint(self) -> None:
        """Test submission posts the payload to the model endpoint."""
        client, session = make_client(make_response(body={"name": "models/veo/operations/abc"}))
        payload = {"instances": [{"prompt": "a fox"}]}

        name = client.submit_sync(payload)

        assert name == "models/veo/operations/abc"
        method, url = session.request.call_args[0]
        assert method == "POST"
        assert url == f"{DEFAULT_BASE_URL}/models/veo-3.0-generate-001:predictLongRunning"
        assert session.request.call_args[1]["json"] == payload

    def test_submit_without_name_raises(self) -> None:
        """Test a submission response without an operation name raises."""
        client, _ = make_client(make_response(body={}))
        with pytest.raises(JobAPIError, match="operation name"):
            client.submit_sync({})

    def test_get_operation(self) -> None:
        """Test an operation status fetch builds a snapshot."""
        client, session = make_client(
            make_response(body={"name": "models/veo/operations/abc", "done": True, "response": {"x": 1}})
        )

        snapshot = client.get_operation_sync("models/veo/operations/abc")

        assert snapshot.done
        assert snapshot.response == {"x": 1}
        assert session.request.call_args[0][1] == f"{DEFAULT_BASE_URL}/models/veo/operations/abc"

    def test_http_error_raises_job_api_error(self) -> None:
        """Test HTTP errors are parsed from the Google error body."""
        body = {"error": {"code": 404, "status": "NOT_FOUND", "message": "Operation not found"}}
        client, _ = make_client(make_response(404, body=body))

        with pytest.raises(JobAPIError) as exc_info:
            client.get_operation_sync("models/veo/operations/missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.code == "NOT_FOUND"
        assert str(exc_info.value) == "HTTP 404 NOT_FOUND: Operation not found"

    def test_connection_error_has_no_status(self) -> None:
        """Test transport errors become JobAPIError without a status."""
        client, _ = make_client(requests.ConnectionError("connection refused"))

        with pytest.raises(JobAPIError) as exc_info:
            client.get_operation_sync("models/veo/operations/abc")

        assert exc_info.value.status_code is None
        assert str(exc_info.value) == "Request error: connection refused"

    @pytest.mark.asyncio
    async def test_async_wrappers(self) -> None:
        """Test the async methods delegate to the blocking calls."""
        client, _ = make_client(
            make_response(body={"name": "op"}),
            make_response(body={"name": "op", "done": False}),
        )

        assert await client.submit({}) == "op"
        snapshot = await client.get_operation("op")
        assert snapshot.name == "op"
        assert not snapshot.done

    def test_download_writes_file(self, tmp_path) -> None:
        """Test a streamed download is written to disk."""
        response = make_response(body={})
        response.iter_content.return_value = [b"abc", b"", b"def"]
        client, _ = make_client(response)

        path = client.download("https://cdn/video.mp4", tmp_path / "out" / "clip.mp4")

        assert path.read_bytes() == b"abcdef"
        response.__exit__.assert_called_once()

    def test_download_releases_connection_on_failure(self, tmp_path) -> None:
        """Test the streamed response is closed when reading the body fails."""
        response = make_response(body={})
        response.iter_content.side_effect = requests.ConnectionError("connection reset")
        client, _ = make_client(response)

        with pytest.raises(requests.ConnectionError):
            client.download("https://cdn/video.mp4", tmp_path / "clip.mp4")

        response.__exit__.assert_called_once()

    @pytest.mark.parametrize("body", [["not", "a", "dict"], "done", 42])
    def test_malformed_payload_raises_job_api_error(self, body) -> None:
        """Test a JSON body that is not an object becomes a classified JobAPIError."""
        client, _ = make_client(make_response(body=body))

        with pytest.raises(JobAPIError) as exc_info:
            client.get_operation_sync("models/veo/operations/abc")

        assert exc_info.value.status_code == 200
        assert exc_info.value.message == "Malformed operation payload"


def test_error_from_response_without_json() -> None:
    """Test a non-JSON error body falls back to the response text."""
    error = error_from_response(make_response(502, text="Bad gateway"))
    assert error.status_code == 502
    assert error.code is None
    assert error.message == "Bad gateway"


def test_snapshot_from_payload_defaults() -> None:
    """Test missing payload fields get defaults."""
    snapshot = OperationSnapshot.from_payload({"name": "op"})
    assert snapshot.done is False
    assert snapshot.response is None
    assert snapshot.error is None
    assert snapshot.metadata == {}


def test_snapshot_from_payload_normalizes_malformed_fields() -> None:
    """Test string errors and non-object responses are normalized."""
    snapshot = OperationSnapshot.from_payload(
        {"name": "op", "done": True, "error": "quota exceeded", "response": ["x"], "metadata": "m"}
    )
    assert snapshot.error == {"message": "quota exceeded"}
    assert snapshot.response is None
    assert snapshot.metadata == {}


class TestResponseHelpers:
    """Tests for result and filter extraction."""

    def test_extract_nested_sample(self) -> None:
        """Test the URI is read from generateVideoResponse samples."""
        response = {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": "gs://a"}}]}}
        assert extract_video_uri(response) == "gs://a"

    def test_extract_flat_generated_videos(self) -> None:
        """Test the URI is read from a flat generatedVideos list."""
        assert extract_video_uri({"generatedVideos": [{"video": {"uri": "gs://b"}}]}) == "gs://b"

    def test_extract_missing_uri(self) -> None:
        """Test no URI is returned when no sample exists."""
        assert extract_video_uri({"generateVideoResponse": {"generatedSamples": []}}) is None

    def test_filter_reasons(self) -> None:
        """Test filter reasons are returned as given."""
        response = {
            "generateVideoResponse": {
                "raiMediaFilteredCount": 1,
                "raiMediaFilteredReasons": ["Celebrity likeness"],
            }
        }
        assert extract_filter_reasons(response) == ["Celebrity likeness"]

    def test_filter_count_without_reasons(self) -> None:
        """Test a filter count without reasons yields a generic reason."""
        response = {"raiMediaFilteredCount": 2}
        assert extract_filter_reasons(response) == ["2 result(s) filtered by content policy"]

    def test_no_filtering(self) -> None:
        """Test an unfiltered response has no reasons."""
        assert extract_filter_reasons({}) == []
