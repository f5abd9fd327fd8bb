"""FCM HTTP v1 client against a mocked transport."""

import json

import httpx
import pytest

from ridehail.infrastructure.push_gateway import FcmPushGateway, PushStatus


def _gateway(handler):
    return FcmPushGateway(
        project_id="ridehail-test",
        access_token="secret-token",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


def _fcm_error(status, code):
    return httpx.Response(
        status,
        json={
            "error": {
                "status": "NOT_FOUND" if status == 404 else "INTERNAL",
                "details": [
                    {
                        "@type": "type.googleapis.com/google.firebase.fcm.v1.FcmError",
                        "errorCode": code,
                    }
                ],
            }
        },
    )


class TestFcmPushGateway:
    @pytest.mark.asyncio
    async def test_sends_one_message_per_token(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"name": "projects/x/messages/1"})

        gateway = _gateway(handler)
        outcomes = await gateway.send_to_tokens(
            ["tok-a", "tok-b"],
            "Driver accepted",
            "On the way",
            {"trip_id": "t-1", "sequence": 2, "approved": True, "reason": None},
        )

        assert {t: o.status for t, o in outcomes.items()} == {
            "tok-a": PushStatus.SUCCESS,
            "tok-b": PushStatus.SUCCESS,
        }
        assert len(requests) == 2
        first = requests[0]
        assert first.url.path == "/v1/projects/ridehail-test/messages:send"
        assert first.headers["Authorization"] == "Bearer secret-token"
        message = json.loads(first.content)["message"]
        assert message["notification"] == {"title": "Driver accepted", "body": "On the way"}
        assert message["data"] == {"trip_id": "t-1", "sequence": "2", "approved": "true"}

    @pytest.mark.asyncio
    async def test_unregistered_token_is_invalid(self):
        gateway = _gateway(lambda request: _fcm_error(404, "UNREGISTERED"))
        outcomes = await gateway.send_to_tokens(["stale"], "t", "b", {})

        assert outcomes["stale"].status is PushStatus.INVALID_TOKEN
        assert outcomes["stale"].reason == "UNREGISTERED"

    @pytest.mark.asyncio
    async def test_server_error_is_a_failure_not_invalid(self):
        gateway = _gateway(lambda request: _fcm_error(503, "UNAVAILABLE"))
        outcomes = await gateway.send_to_tokens(["tok"], "t", "b", {})

        assert outcomes["tok"].status is PushStatus.FAILED
        assert outcomes["tok"].reason == "UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_non_json_error_uses_http_status(self):
        gateway = _gateway(lambda request: httpx.Response(502, text="bad gateway"))
        outcomes = await gateway.send_to_tokens(["tok"], "t", "b", {})

        assert outcomes["tok"].reason == "http_502"

    @pytest.mark.asyncio
    async def test_transport_error_is_a_failure(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        outcomes = await _gateway(handler).send_to_tokens(["tok"], "t", "b", {})

        assert outcomes["tok"].status is PushStatus.FAILED
        assert outcomes["tok"].reason == "ConnectTimeout"

    @pytest.mark.asyncio
    async def test_mixed_outcomes_per_token(self):
        def handler(request):
            token = json.loads(request.content)["message"]["token"]
            if token == "bad":
                return _fcm_error(400, "INVALID_ARGUMENT")
            return httpx.Response(200, json={})

        outcomes = await _gateway(handler).send_to_tokens(["good", "bad"], "t", "b", {})

        assert outcomes["good"].ok
        assert outcomes["bad"].status is PushStatus.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_unconfigured_gateway_fails_without_calling_out(self):
        def handler(request):
            raise AssertionError("must not be called")

        gateway = FcmPushGateway("", "", transport=httpx.MockTransport(handler))
        outcomes = await gateway.send_to_tokens(["tok"], "t", "b", {})

        assert gateway.configured is False
        assert outcomes["tok"].status is PushStatus.FAILED

    @pytest.mark.asyncio
    async def test_no_tokens_no_requests(self):
        def handler(request):
            raise AssertionError("must not be called")

        assert await _gateway(handler).send_to_tokens([], "t", "b", {}) == {}
