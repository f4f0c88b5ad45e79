"""Kling client tests.

The vendor API is replaced by httpx.MockTransport so request shapes and
response parsing are exercised without network access.
"""

import json

import httpx
import jwt
import pytest

from styleswap.services.exceptions import (
    ConfigurationError,
    ProviderUnavailableError,
    QuotaExceededError,
    SubmissionError,
    TransientError,
)
from styleswap.services.generation.base import PollState, TaskHandle, VideoRequest
from styleswap.services.generation.kling_client import (
    KlingClient,
    build_payload,
    extract_video_url,
    generate_token,
)
from styleswap.services.generation.prompts import DEFAULT_NEGATIVE_PROMPT


def make_client(handler) -> KlingClient:
    return KlingClient("ak-test", "sk-test", transport=httpx.MockTransport(handler))


def make_request(**overrides) -> VideoRequest:
    values = {"start_image": "data:image/png;base64,QUJD", "prompt": "slow zoom", "duration": "10"}
    values.update(overrides)
    return VideoRequest(**values)


def test_token_claims():
    token = generate_token("ak-test", "sk-test", now=1_700_000_000)

    claims = jwt.decode(
        token, "sk-test", algorithms=["HS256"], options={"verify_exp": False, "verify_nbf": False}
    )

    assert claims == {"iss": "ak-test", "exp": 1_700_001_800, "nbf": 1_699_999_940}
    assert jwt.get_unverified_header(token)["typ"] == "JWT"


def test_build_payload_single_frame():
    payload = build_payload(make_request())

    assert payload["model"] == "kling-v1"
    assert payload["image"] == "QUJD"
    assert payload["duration"] == "10"
    assert payload["cfg_scale"] == 0.5
    assert payload["negative_prompt"] == DEFAULT_NEGATIVE_PROMPT
    assert "last_image" not in payload


def test_build_payload_first_last_frame_pro():
    payload = build_payload(make_request(end_image="RU5E", mode="pro"))

    assert payload["last_image"] == "RU5E"
    assert payload["cfg_scale"] == 0.7
    assert payload["mode"] == "pro"


@pytest.mark.parametrize(
    "data, expected",
    [
        ({"video_resource": {"url": "https://a/1.mp4"}}, "https://a/1.mp4"),
        ({"task_result": {"video_url": "https://a/2.mp4"}}, "https://a/2.mp4"),
        ({"task_result": {"videos": [{"url": "https://a/3.mp4"}]}}, "https://a/3.mp4"),
        ({"task_result": {"videos": []}}, None),
        ({}, None),
    ],
)
def test_extract_video_url(data, expected):
    assert extract_video_url(data) == expected


@pytest.mark.asyncio
async def test_submit_sends_signed_request_and_returns_handle():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"code": 0, "data": {"task_id": "task-9"}})

    statuses: list[str] = []
    handle = await make_client(handler).submit(make_request(), on_status=statuses.append)

    assert handle.task_id == "task-9"
    assert statuses == ["Waking up AI Engine..."]
    request = seen[0]
    assert request.url.path == "/v1/videos/image2video"
    assert request.headers["Authorization"].startswith("Bearer ")
    assert json.loads(request.content)["prompt"] == "slow zoom"


@pytest.mark.asyncio
async def test_submit_without_keys_raises_before_network():
    def handler(request):
        raise AssertionError("no request expected")

    client = KlingClient("", "", transport=httpx.MockTransport(handler))

    with pytest.raises(ConfigurationError):
        await client.submit(make_request())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response, error, message",
    [
        (httpx.Response(200, json={"code": 0, "data": {}}), SubmissionError, "No Task ID"),
        (
            httpx.Response(200, json={"code": 1201, "message": "bad image"}),
            SubmissionError,
            "Kling API Error \\(1201\\): bad image",
        ),
        (httpx.Response(400, text="nope"), SubmissionError, "Server Error \\(400\\)"),
        (httpx.Response(429, text="slow down"), QuotaExceededError, "Rate limit"),
        (httpx.Response(503, text="down"), ProviderUnavailableError, "503"),
    ],
)
async def test_submit_errors(response, error, message):
    client = make_client(lambda request: response)

    with pytest.raises(error, match=message):
        await client.submit(make_request())


@pytest.mark.asyncio
async def test_submit_network_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProviderUnavailableError):
        await make_client(handler).submit(make_request())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "data, state, url, reason",
    [
        ({"task_status": "processing"}, PollState.PENDING, None, None),
        (
            {"task_status": "succeed", "task_result": {"videos": [{"url": "https://v/1.mp4"}]}},
            PollState.SUCCEEDED,
            "https://v/1.mp4",
            None,
        ),
        ({"task_status": "succeed", "task_result": {}}, PollState.SUCCEEDED, None, None),
        (
            {"task_status": "failed", "task_status_msg": "nsfw content"},
            PollState.FAILED,
            None,
            "nsfw content",
        ),
    ],
)
async def test_poll_parses_status(data, state, url, reason):
    client = make_client(lambda request: httpx.Response(200, json={"code": 0, "data": data}))

    result = await client.poll(TaskHandle(task_id="task-9", provider=client.provider))

    assert result.state == state
    assert result.result_url == url
    assert result.reason == reason


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="oops"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"code": 0}),
    ],
)
async def test_poll_problems_are_transient(response):
    client = make_client(lambda request: response)

    with pytest.raises(TransientError):
        await client.poll(TaskHandle(task_id="task-9", provider=client.provider))
