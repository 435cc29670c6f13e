"""Tests for the completion client's retry and error handling."""

import os
import sys
from unittest.mock import Mock, patch

import pytest
import requests

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from clients.completion_client import MAX_ATTEMPTS, CompletionClient, extract_content
from discovery.errors import (
    AuthError,
    ClientError,
    EmptyResponseError,
    NetworkError,
    RateLimitError,
    ServerError,
)
from discovery.settings import Settings

MESSAGES = [{"role": "user", "content": "Find events"}]


def make_response(status=200, json_data=None, headers=None, text="", reason=""):
    resp = Mock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.text = text
    resp.reason = reason
    if json_data is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = json_data
    return resp


def ok_response(content="[]"):
    return make_response(json_data={"choices": [{"message": {"content": content}}]})


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def client(sleep):
    return CompletionClient(Settings(openrouter_api_key="test-key"), sleep=sleep)


def test_successful_completion(client, sleep):
    with patch("clients.completion_client.requests.post", return_value=ok_response("hello")) as mock_post:
        result = client.complete(MESSAGES, temperature=0.2, max_tokens=5000)

    assert result.text == "hello"
    assert result.raw_response["choices"][0]["message"]["content"] == "hello"
    sleep.assert_not_called()

    _, kwargs = mock_post.call_args
    assert kwargs["headers"]["Authorization"] == "Bearer test-key"
    assert kwargs["json"]["model"] == "perplexity/sonar-pro"
    assert kwargs["json"]["max_tokens"] == 5000
    assert kwargs["json"]["messages"] == MESSAGES


def test_missing_key_raises_auth_error_without_request(sleep):
    client = CompletionClient(Settings(openrouter_api_key=None), sleep=sleep)
    with patch("clients.completion_client.requests.post") as mock_post:
        with pytest.raises(AuthError):
            client.complete(MESSAGES)
    mock_post.assert_not_called()


def test_rate_limit_honors_retry_after_then_gives_up(client, sleep):
    limited = make_response(status=429, headers={"Retry-After": "2"})
    with patch("clients.completion_client.requests.post", return_value=limited) as mock_post:
        with pytest.raises(RateLimitError) as exc_info:
            client.complete(MESSAGES)

    assert mock_post.call_count == MAX_ATTEMPTS
    assert [c.args[0] for c in sleep.call_args_list] == [2.0, 2.0]
    assert exc_info.value.message == "Rate limit exceeded. Please try again later."
    assert exc_info.value.retryable


def test_rate_limit_without_header_waits_sixty_seconds(client, sleep):
    responses = [make_response(status=429), ok_response()]
    with patch("clients.completion_client.requests.post", side_effect=responses):
        client.complete(MESSAGES)
    sleep.assert_called_once_with(60.0)


def test_server_error_backs_off_exponentially(client, sleep):
    error = make_response(status=503, reason="Service Unavailable")
    with patch("clients.completion_client.requests.post", return_value=error) as mock_post:
        with pytest.raises(ServerError) as exc_info:
            client.complete(MESSAGES)

    assert mock_post.call_count == 3
    assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]
    assert exc_info.value.status_code == 503


def test_server_error_recovers(client, sleep):
    responses = [make_response(status=500), ok_response("recovered")]
    with patch("clients.completion_client.requests.post", side_effect=responses):
        result = client.complete(MESSAGES)
    assert result.text == "recovered"
    sleep.assert_called_once_with(1.0)


def test_client_error_is_not_retried(client, sleep):
    bad = make_response(status=400, text="bad model")
    with patch("clients.completion_client.requests.post", return_value=bad) as mock_post:
        with pytest.raises(ClientError) as exc_info:
            client.complete(MESSAGES)

    assert mock_post.call_count == 1
    sleep.assert_not_called()
    assert exc_info.value.message == "API error: 400 - bad model"
    assert not exc_info.value.retryable


def test_network_errors_are_retried(client, sleep):
    with patch(
        "clients.completion_client.requests.post",
        side_effect=requests.ConnectionError("boom"),
    ) as mock_post:
        with pytest.raises(NetworkError):
            client.complete(MESSAGES)
    assert mock_post.call_count == 3
    assert sleep.call_count == 2


def test_timeout_then_success(client, sleep):
    with patch(
        "clients.completion_client.requests.post",
        side_effect=[requests.Timeout("slow"), ok_response("ok")],
    ):
        assert client.complete(MESSAGES).text == "ok"
    sleep.assert_called_once_with(1.0)


def test_empty_choices_raise_empty_response(client):
    with patch(
        "clients.completion_client.requests.post",
        return_value=make_response(json_data={"choices": []}),
    ):
        with pytest.raises(EmptyResponseError):
            client.complete(MESSAGES)


def test_non_json_body_raises_empty_response(client):
    with patch("clients.completion_client.requests.post", return_value=make_response(status=200)):
        with pytest.raises(EmptyResponseError):
            client.complete(MESSAGES)


def test_extract_content_rejects_missing_message():
    with pytest.raises(EmptyResponseError):
        extract_content({"choices": [{"message": {}}]})
    with pytest.raises(EmptyResponseError):
        extract_content({})
    assert extract_content({"choices": [{"message": {"content": "x"}}]}) == "x"
