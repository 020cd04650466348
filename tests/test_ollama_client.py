"""Tests for the local Ollama runtime client."""

import asyncio
import json

import httpx
import pytest

from modelscout.downloads import CANCELLED_MESSAGE, CancellationToken, JobState
from modelscout.errors import RegistryError, ScoutError
from modelscout.hub_client import HubClient
from modelscout.ollama_client import (
    OllamaClient,
    hf_reference,
    humanize_status,
    parse_timestamp,
)

PULL_LINES = [
    {"status": "pulling manifest"},
    {"status": "pulling abc123", "digest": "sha256:abc123", "total": 100, "completed": 50},
    {"status": "verifying sha256 digest"},
    {"status": "writing manifest"},
    {"status": "success"},
]

TAGS_PAYLOAD = {
    "models": [
        {
            "name": "hf.co/TheBloke/CodeHelper-7B-GGUF:q4_k_m",
            "digest": "0123456789abcdef0123",
            "size": 4 * 1024**3,
            "modified_at": "2024-01-01T10:00:00.123456789-05:00",
            "details": {
                "family": "llama",
                "parameter_size": "7B",
                "quantization_level": "Q4_K_M",
            },
        },
        {"name": "llama3:8b", "digest": "fedcba", "size": 10, "modified_at": ""},
    ]
}


def _ndjson(lines):
    return ("\n".join(json.dumps(line) for line in lines) + "\n").encode("utf-8")


def _client(config, mock_http, handler):
    http, requests = mock_http(handler)
    return OllamaClient(config, http_client=http), requests


class TestPull:
    def test_pull_streams_progress(self, isolated_config, mock_http):
        client, requests = _client(
            isolated_config, mock_http, lambda r: httpx.Response(200, content=_ndjson(PULL_LINES))
        )
        events = []

        result = asyncio.run(
            client.pull_model("TheBloke/CodeHelper-7B-GGUF", "Q4_K_M", events.append)
        )

        assert result.success
        assert result.message == "Model pulled: hf.co/TheBloke/CodeHelper-7B-GGUF:q4_k_m"
        assert json.loads(requests[0].content) == {
            "name": "hf.co/TheBloke/CodeHelper-7B-GGUF:q4_k_m",
            "stream": True,
        }
        assert requests[0].url.path == "/api/pull"
        assert [e.status for e in events] == [
            "Downloading: manifest",
            "Downloading: abc123 - 50.0 B / 100.0 B",
            "Verifying checksum...",
            "Writing manifest...",
            "Done!",
        ]
        assert events[1].percent == 50
        assert events[1].digest == "sha256:abc123"

    def test_error_line_fails_the_pull(self, isolated_config, mock_http):
        lines = [{"status": "pulling manifest"}, {"error": "file does not exist"}]
        client, _ = _client(
            isolated_config, mock_http, lambda r: httpx.Response(200, content=_ndjson(lines))
        )

        with pytest.raises(ScoutError, match="file does not exist"):
            asyncio.run(client.pull_model("org/repo", "Q4_K_M"))

    def test_cancel_stops_reading(self, isolated_config, mock_http):
        client, _ = _client(
            isolated_config, mock_http, lambda r: httpx.Response(200, content=_ndjson(PULL_LINES))
        )
        token = CancellationToken()
        events = []

        def _on_progress(event):
            events.append(event)
            token.cancel()

        result = asyncio.run(client.pull_model("org/repo", "Q4_K_M", _on_progress, token))

        assert not result.success
        assert result.message == CANCELLED_MESSAGE
        assert len(events) == 1

    def test_stream_error_after_cancel_is_a_clean_cancellation(self, isolated_config, mock_http):
        async def _broken_body():
            yield _ndjson(PULL_LINES[1:2])
            raise httpx.ReadError("connection reset")

        client, _ = _client(
            isolated_config, mock_http, lambda r: httpx.Response(200, content=_broken_body())
        )
        token = CancellationToken()

        result = asyncio.run(
            client.pull_model("org/repo", "Q4_K_M", lambda event: token.cancel(), token)
        )

        assert not result.success
        assert result.message == CANCELLED_MESSAGE
        assert client.active_job.state is JobState.CANCELLED

    def test_stream_error_without_cancel_propagates(self, isolated_config, mock_http):
        async def _broken_body():
            yield _ndjson(PULL_LINES[:1])
            raise httpx.ReadError("connection reset")

        client, _ = _client(
            isolated_config, mock_http, lambda r: httpx.Response(200, content=_broken_body())
        )

        with pytest.raises(httpx.ReadError):
            asyncio.run(client.pull_model("org/repo", "Q4_K_M"))
        assert client.active_job.state is JobState.FAILED

    def test_http_error(self, isolated_config, mock_http):
        client, _ = _client(
            isolated_config, mock_http, lambda r: httpx.Response(500, text="runtime exploded")
        )
        with pytest.raises(RegistryError, match="Ollama API returned 500"):
            asyncio.run(client.pull_model("org/repo", "Q4_K_M"))


def test_list_local_models(isolated_config, mock_http):
    client, requests = _client(
        isolated_config, mock_http, lambda r: httpx.Response(200, json=TAGS_PAYLOAD)
    )

    models = asyncio.run(client.list_local_models())

    assert requests[0].url.path == "/api/tags"
    assert [m.name for m in models] == [
        "hf.co/TheBloke/CodeHelper-7B-GGUF:q4_k_m",
        "llama3:8b",
    ]
    first = models[0]
    assert first.id == "0123456789ab"
    assert first.size_human == "4.0 GB"
    assert first.quantization_level == "Q4_K_M"
    assert models[1].family is None


def test_delete_model(isolated_config, mock_http):
    def _handler(request):
        assert request.method == "DELETE"
        name = json.loads(request.content)["name"]
        if name == "llama3:8b":
            return httpx.Response(200)
        return httpx.Response(404, text="model not found")

    client, _ = _client(isolated_config, mock_http, _handler)

    ok = asyncio.run(client.delete_model("llama3:8b"))
    missing = asyncio.run(client.delete_model("ghost:latest"))

    assert ok.success and ok.message == "Deleted llama3:8b"
    assert not missing.success
    assert "model not found" in missing.message


class TestUpdateCheck:
    def _hub(self, config, cache, mock_http, last_modified):
        record = {"id": "TheBloke/CodeHelper-7B-GGUF", "lastModified": last_modified}
        http, _ = mock_http(lambda r: httpx.Response(200, json=record))
        return HubClient(config, cache=cache, http_client=http)

    def test_newer_remote_reports_update(self, isolated_config, fresh_cache, mock_http):
        client, _ = _client(
            isolated_config, mock_http, lambda r: httpx.Response(200, json=TAGS_PAYLOAD)
        )
        hub = self._hub(isolated_config, fresh_cache, mock_http, "2024-05-01T00:00:00Z")

        check = asyncio.run(
            client.check_model_update("hf.co/TheBloke/CodeHelper-7B-GGUF:q4_k_m", hub)
        )

        assert check.has_update
        assert check.message.startswith("Update available")

    def test_older_remote_is_up_to_date(self, isolated_config, fresh_cache, mock_http):
        client, _ = _client(
            isolated_config, mock_http, lambda r: httpx.Response(200, json=TAGS_PAYLOAD)
        )
        hub = self._hub(isolated_config, fresh_cache, mock_http, "2023-05-01T00:00:00Z")

        check = asyncio.run(
            client.check_model_update("hf.co/TheBloke/CodeHelper-7B-GGUF:q4_k_m", hub)
        )

        assert not check.has_update
        assert check.message.startswith("Model is up to date")

    def test_non_hf_and_missing_models(self, isolated_config, fresh_cache, mock_http):
        client, _ = _client(
            isolated_config, mock_http, lambda r: httpx.Response(200, json=TAGS_PAYLOAD)
        )
        hub = self._hub(isolated_config, fresh_cache, mock_http, "2024-05-01T00:00:00Z")

        non_hf = asyncio.run(client.check_model_update("llama3:8b", hub))
        missing = asyncio.run(client.check_model_update("ghost:latest", hub))

        assert non_hf.message == "Cannot check updates for non-HF models"
        assert missing.message == "Model ghost:latest is not installed locally"


def test_helpers():
    assert hf_reference("org/repo", "Q5_K_M") == "hf.co/org/repo:q5_k_m"
    assert humanize_status("pulling manifest") == "Downloading: manifest"
    assert humanize_status("something else") == "something else"
    parsed = parse_timestamp("2024-01-01T10:00:00.123456789Z")
    assert parsed.microsecond == 123456
    assert parsed.utcoffset().total_seconds() == 0
    assert parse_timestamp("") is None
    assert parse_timestamp("yesterday") is None
