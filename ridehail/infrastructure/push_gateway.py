"""
Push Gateway -- Firebase Cloud Messaging HTTP v1 client.

Sends one message per device token and reports a per-token outcome:

* ``SUCCESS``        -- FCM accepted the message
* ``INVALID_TOKEN``  -- FCM says the token is unregistered / malformed;
  the caller should retire it
* ``FAILED``         -- anything else (timeouts, 5xx, quota); the token is
  kept and the record stays eligible for redelivery

FCM ``data`` values must be strings, so non-string payload values are
JSON-encoded.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx

from ridehail.config import settings

logger = logging.getLogger(__name__)

FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
ANDROID_CHANNEL_ID = "ridehail_high_importance"

_INVALID_TOKEN_CODES = {"UNREGISTERED", "INVALID_ARGUMENT"}


class PushStatus(str, enum.Enum):
    SUCCESS = "success"
    INVALID_TOKEN = "invalid_token"
    FAILED = "failed"


@dataclass(frozen=True)
class PushOutcome:
    status: PushStatus
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is PushStatus.SUCCESS


class PushGateway(Protocol):
    async def send_to_tokens(
        self, tokens: list[str], title: str, body: str, data: dict[str, Any]
    ) -> dict[str, PushOutcome]: ...


def _stringify(data: dict[str, Any]) -> dict[str, str]:
    return {
        key: value if isinstance(value, str) else json.dumps(value, default=str)
        for key, value in data.items()
        if value is not None
    }


class FcmPushGateway:
    def __init__(
        self,
        project_id: str = settings.fcm_project_id,
        access_token: str = settings.fcm_access_token,
        timeout: float = settings.push_timeout_seconds,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.project_id = project_id
        self.access_token = access_token
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.project_id and self.access_token)

    async def send_to_tokens(
        self, tokens: list[str], title: str, body: str, data: dict[str, Any]
    ) -> dict[str, PushOutcome]:
        if not tokens:
            return {}
        if not self.configured:
            logger.warning("FCM not configured, skipping push send")
            return {t: PushOutcome(PushStatus.FAILED, "fcm not configured") for t in tokens}

        payload_data = _stringify(data)
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            outcomes = await asyncio.gather(
                *(
                    self._send_one(client, token, title, body, payload_data)
                    for token in tokens
                )
            )
        return dict(zip(tokens, outcomes))

    async def _send_one(
        self,
        client: httpx.AsyncClient,
        token: str,
        title: str,
        body: str,
        data: dict[str, str],
    ) -> PushOutcome:
        message = {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
                "data": data,
                "android": {
                    "priority": "high",
                    "notification": {
                        "channel_id": ANDROID_CHANNEL_ID,
                        "sound": "default",
                    },
                },
                "apns": {"payload": {"aps": {"sound": "default", "badge": 1}}},
            }
        }
        try:
            resp = await client.post(
                FCM_SEND_URL.format(project_id=self.project_id),
                json=message,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("FCM request error for token=%s…: %r", token[:12], exc)
            return PushOutcome(PushStatus.FAILED, type(exc).__name__)

        if resp.status_code == 200:
            return PushOutcome(PushStatus.SUCCESS)

        error_code = _fcm_error_code(resp)
        if error_code in _INVALID_TOKEN_CODES:
            return PushOutcome(PushStatus.INVALID_TOKEN, error_code)

        logger.warning(
            "FCM send failed for token=%s… status=%d code=%s",
            token[:12],
            resp.status_code,
            error_code,
        )
        return PushOutcome(PushStatus.FAILED, error_code or f"http_{resp.status_code}")


def _fcm_error_code(resp: httpx.Response) -> Optional[str]:
    try:
        error = resp.json().get("error", {})
    except ValueError:
        return None
    for detail in error.get("details", []):
        if "errorCode" in detail:
            return detail["errorCode"]
    return error.get("status")
