"""Relay service: forwards one chat message to the automation webhook."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

import httpx

from lyra.config import RelayConfig
from lyra.core.types import RelayOutcome
from lyra.log import get_logger

logger = get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Client-Info, Apikey",
}

MISSING_FIELDS_ERROR = "Missing required fields"
CONFIG_ERROR_MESSAGE = "Service configuration error. Please contact support."
RELAY_FAILURE_MESSAGE = "Failed to process your message. Please try again."
DEFAULT_REPLY = "Message received and processed"
INTERNAL_ERROR = "Internal server error"


def _iso_millis(moment: datetime) -> str:
    """Millisecond UTC timestamp ending in "Z", as JavaScript's toISOString() writes it."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class RelayResult:
    """HTTP-shaped outcome of one relay call."""

    outcome: RelayOutcome
    status_code: int
    body: dict[str, Any]


def internal_error(exc: BaseException) -> RelayResult:
    return RelayResult(
        outcome=RelayOutcome.INTERNAL_ERROR,
        status_code=500,
        body={"error": INTERNAL_ERROR, "details": str(exc)},
    )


class RelayService:
    """Stateless boundary between the chat client and the automation webhook.

    At most one outbound request per call, never retried. Unexpected
    exceptions (for example an unparseable upstream body) propagate to the
    HTTP layer, which turns them into ``internal_error``.
    """

    def __init__(
        self,
        config: RelayConfig,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._config = config
        self._http_client = http_client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def relay(self, payload: Any) -> RelayResult:
        """Validate ``payload`` and forward it upstream."""
        message = payload.get("message") if isinstance(payload, dict) else None
        user_id = payload.get("userId") if isinstance(payload, dict) else None

        if not message or not user_id:
            logger.info("relay_bad_request", has_message=bool(message), has_user=bool(user_id))
            return RelayResult(
                outcome=RelayOutcome.BAD_REQUEST,
                status_code=400,
                body={"error": MISSING_FIELDS_ERROR},
            )

        token = self._config.auth_token
        if not token:
            logger.error("relay_config_error", reason="auth_token_not_configured")
            return RelayResult(
                outcome=RelayOutcome.CONFIG_ERROR,
                status_code=500,
                body={"success": False, "response": CONFIG_ERROR_MESSAGE},
            )

        request_body = {
            "message": message,
            "userId": user_id,
            "timestamp": _iso_millis(self._clock()),
        }
        headers = {
            "Content-Type": "application/json",
            self._config.auth_header: token,
        }

        try:
            response = await self._post(request_body, headers)
        except httpx.RequestError as e:
            logger.error(
                "relay_upstream_unreachable",
                user_id=user_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return self._relay_failure()

        if not response.is_success:
            logger.error(
                "relay_upstream_failed",
                user_id=user_id,
                status=response.status_code,
                detail=response.text[:1000],
            )
            return self._relay_failure()

        data = response.json()
        reply = data.get("response") if isinstance(data, dict) else None
        if not reply:
            reply = DEFAULT_REPLY
        elif not isinstance(reply, str):
            reply = str(reply)

        logger.info("relay_succeeded", user_id=user_id, reply_length=len(reply))
        return RelayResult(
            outcome=RelayOutcome.SUCCESS,
            status_code=200,
            body={"success": True, "response": reply},
        )

    async def _post(self, body: dict[str, Any], headers: dict[str, str]) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(
                self._config.webhook_url, json=body, headers=headers, timeout=self._config.timeout
            )
        async with httpx.AsyncClient(timeout=self._config.timeout) as client:
            return await client.post(self._config.webhook_url, json=body, headers=headers)

    @staticmethod
    def _relay_failure() -> RelayResult:
        return RelayResult(
            outcome=RelayOutcome.RELAY_FAILURE,
            status_code=502,
            body={"success": False, "response": RELAY_FAILURE_MESSAGE},
        )
