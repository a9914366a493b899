"""
Asterisk REST Interface (ARI) telephony control adapter.

Read-only: endpoint state and channel details. A 404 means the endpoint
or channel is gone (typically a hangup between two polls) and is not an
error.
"""

from typing import Any

import httpx

from callcenter.shared.logging import get_logger
from callcenter.telephony.config import TelephonyConfig, get_telephony_config
from callcenter.telephony.interface import (
    ChannelDetails,
    EndpointInfo,
    TelephonyControl,
    TelephonyControlError,
)

logger = get_logger(__name__)

# Channel variables holding the ids the CDR store will carry for this call
LINKED_ID_VARIABLE = "CDR(linkedid)"
UNIQUE_ID_VARIABLE = "CDR(uniqueid)"
CONNECTED_LINE_VARIABLE = "CONNECTEDLINE(num)"


class AriTelephonyControl(TelephonyControl):
    """ARI adapter over httpx.AsyncClient.

    The client is injectable for testing (httpx.MockTransport).
    """

    def __init__(
        self,
        config: TelephonyConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or get_telephony_config()
        self._http_client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.request_timeout_seconds),
            )
        return self._http_client

    def _get_auth(self) -> tuple[str, str]:
        return (self._config.ari_username, self._config.ari_password)

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _get(self, path: str, params: dict[str, str] | None = None) -> httpx.Response:
        url = self._config.get_api_url(path)
        try:
            return await self._get_client().get(url, params=params, auth=self._get_auth())
        except httpx.HTTPError as e:
            logger.warning(
                "ARI request failed",
                extra={"url": url, "error": str(e)},
            )
            raise TelephonyControlError(
                message=f"HTTP error: {e!s}",
                error_code="HTTP_ERROR",
            ) from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, what: str) -> None:
        if response.status_code < 400:
            return
        try:
            error_data = response.json() if response.content else {}
        except ValueError:
            error_data = {"body": response.text}
        if not isinstance(error_data, dict):
            error_data = {"body": error_data}
        logger.error(
            "ARI returned an error",
            extra={"what": what, "status_code": response.status_code, "error": error_data},
        )
        raise TelephonyControlError(
            message=error_data.get("message", f"Failed to get {what}"),
            error_code=str(response.status_code),
            provider_response=error_data,
        )

    @staticmethod
    def _json(response: httpx.Response, what: str) -> dict[str, Any]:
        """Decoded JSON object of a 2xx response."""
        try:
            data = response.json()
        except ValueError as e:
            logger.error(
                "ARI returned a non-JSON body",
                extra={
                    "what": what,
                    "status_code": response.status_code,
                    "body": response.text[:200],
                },
            )
            raise TelephonyControlError(
                message=f"Invalid response for {what}",
                error_code="INVALID_RESPONSE",
                provider_response={"body": response.text},
            ) from e
        if not isinstance(data, dict):
            raise TelephonyControlError(
                message=f"Unexpected response for {what}",
                error_code="INVALID_RESPONSE",
                provider_response={"body": data},
            )
        return data

    async def get_endpoint(self, extension: str) -> EndpointInfo | None:
        technology = self._config.endpoint_technology
        response = await self._get(f"endpoints/{technology}/{extension}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response, f"endpoint {technology}/{extension}")

        data = self._json(response, f"endpoint {technology}/{extension}")
        return EndpointInfo(
            technology=data.get("technology") or technology,
            resource=data.get("resource") or extension,
            state=data.get("state") or "",
            channel_ids=tuple(data.get("channel_ids") or ()),
            raw_response=data,
        )

    async def _get_variable(self, channel_id: str, variable: str) -> str | None:
        """Channel variable value; None when unset or the channel is gone."""
        response = await self._get(
            f"channels/{channel_id}/variable",
            params={"variable": variable},
        )
        if response.status_code >= 400:
            return None
        value = self._json(response, f"variable {variable}").get("value")
        return value or None

    async def get_channel(self, channel_id: str) -> ChannelDetails | None:
        response = await self._get(f"channels/{channel_id}")
        if response.status_code == 404:
            logger.debug("Channel gone", extra={"channel_id": channel_id})
            return None
        self._raise_for_status(response, f"channel {channel_id}")
        data = self._json(response, f"channel {channel_id}")

        linked_id = await self._get_variable(channel_id, LINKED_ID_VARIABLE)
        unique_id = await self._get_variable(channel_id, UNIQUE_ID_VARIABLE)
        connected_line = await self._get_variable(channel_id, CONNECTED_LINE_VARIABLE)

        caller = data.get("caller") or {}
        connected = data.get("connected") or {}
        dialplan = data.get("dialplan") or {}

        return ChannelDetails(
            channel_id=data.get("id") or channel_id,
            name=data.get("name") or "",
            state=data.get("state") or "",
            caller_number=caller.get("number") or None,
            connected_number=connected_line or connected.get("number") or None,
            correlation_id=linked_id or unique_id or data.get("id") or channel_id,
            context=dialplan.get("context") or None,
            extension=dialplan.get("exten") or None,
            raw_response=data,
        )
