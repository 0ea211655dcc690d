"""
Unit tests for WhisperASRClient (HTTP mocked).
"""

from unittest.mock import Mock, patch

import pytest
import requests

from estimatix.domain.exceptions import TranscriptionError
from estimatix.infrastructure.audio.whisper_client import WhisperASRClient


@pytest.fixture
def client():
    return WhisperASRClient("http://whisper:9000/", timeout=60)


def asr_response(payload):
    response = Mock()
    response.json.return_value = payload
    return response


class TestTranscribe:
    def test_request(self, client):
        with patch("requests.post", return_value=asr_response({"text": " Replace the deck "})) as post:
            text = client.transcribe(b"audio", "walk.wav", language="en")

        assert text == "Replace the deck"
        assert post.call_args.args[0] == "http://whisper:9000/asr"
        filename, content, content_type = post.call_args.kwargs["files"]["audio_file"]
        assert (filename, content) == ("walk.wav", b"audio")
        assert content_type.startswith("audio/")
        assert post.call_args.kwargs["params"] == {"task": "transcribe", "output": "json", "language": "en"}
        assert post.call_args.kwargs["timeout"] == 60

    def test_segments_joined(self, client):
        payload = {"text": "", "segments": [{"text": " Two windows. "}, {"text": ""}, {"text": "One door."}]}
        with patch("requests.post", return_value=asr_response(payload)):
            assert client.transcribe(b"audio", "walk.webm") == "Two windows. One door."

    def test_http_failure(self, client):
        with patch("requests.post", side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(TranscriptionError, match="Whisper ASR failed"):
                client.transcribe(b"audio")

    def test_invalid_json(self, client):
        response = Mock()
        response.json.side_effect = ValueError("no json")
        with patch("requests.post", return_value=response):
            with pytest.raises(TranscriptionError, match="invalid JSON"):
                client.transcribe(b"audio")


class TestHealthCheck:
    def test_healthy(self, client):
        with patch("requests.get", return_value=Mock(ok=True)):
            assert client.health_check() is True

    def test_unreachable(self, client):
        with patch("requests.get", side_effect=requests.exceptions.ConnectionError()):
            assert client.health_check() is False
