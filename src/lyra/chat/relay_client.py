"""HTTP client the conversation controller uses to reach the relay service."""

from __future__ import annotations

import httpx

from lyra.config import ClientConfig
from lyra.core.errors import RelayApplicationError, RelayRejectedError, RelayUnavailableError
from lyra.log import get_logger

logger = get_logger(__name__)

NO_RESPONSE_TEXT = "No response received"


class RelayClient:
    """Sends one message per call to the relay endpoint. No retries."""

    def __init__(self, config: ClientConfig, http_client: httpx.AsyncClient | None = None):
        self._config = config
        self._http_client = http_client

    async def send(self, message: str, user_id: str) -> str:
        """Return the assistant reply for ``message`` or raise a ``RelayError``."""
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        body = {"message": message, "userId": user_id}

        try:
            response = await self._post(body, headers)
        except httpx.RequestError as e:
            raise RelayUnavailableError(
                code="RELAY_UNAVAILABLE", message=str(e) or type(e).__name__
            ) from e

        if not response.is_success:
            raise RelayRejectedError(response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise RelayApplicationError(
                code="RELAY_BAD_BODY", message="Relay returned a non-JSON body"
            ) from e

        if not isinstance(data, dict):
            raise RelayApplicationError(code="RELAY_BAD_BODY", message="Relay returned a non-object body")
        if data.get("success") is False:
            raise RelayApplicationError(
                code="RELAY_REPORTED_FAILURE",
                message=str(data.get("response") or "Relay reported failure"),
            )

        reply = data.get("response")
        if not reply:
            logger.debug("relay_reply_missing", user_id=user_id)
            return NO_RESPONSE_TEXT
        return str(reply)

    async def _post(self, body: dict, headers: dict[str, str]) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(
                self._config.relay_url, json=body, headers=headers, timeout=self._config.timeout
            )
        async with httpx.AsyncClient(timeout=self._config.timeout) as client:
            return await client.post(self._config.relay_url, json=body, headers=headers)
