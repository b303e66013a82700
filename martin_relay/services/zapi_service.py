from typing import Protocol

import httpx

from martin_relay.errors import DeliveryError
from martin_relay.logging_config import get_logger, mask_sender

logger = get_logger("zapi_service")


class OutboundGateway(Protocol):
    async def send_text(self, recipient: str, text: str) -> dict: ...


class ZapiClient:
    """Send WhatsApp text messages through Z-API."""

    def __init__(
        self,
        instance_id: str,
        token: str,
        client_token: str,
        *,
        base_url: str = "https://api.z-api.io",
        timeout_seconds: float = 30.0,
    ):
        self.instance_id = instance_id
        self.token = token
        self.client_token = client_token
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    @property
    def send_text_url(self) -> str:
        return f"{self.base_url}/instances/{self.instance_id}/token/{self.token}/send-text"

    async def send_text(self, recipient: str, text: str) -> dict:
        if not recipient or not text:
            raise DeliveryError(recipient or "-", "missing recipient or message")

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    self.send_text_url,
                    headers={"Content-Type": "application/json", "client-token": self.client_token},
                    json={"phone": recipient, "message": text},
                )
        except httpx.HTTPError as e:
            logger.error(f"Error sending WhatsApp message: {e}")
            raise DeliveryError(recipient, str(e)) from e

        logger.info(
            f"Z-API response: status={response.status_code}, phone={mask_sender(recipient)}, "
            f"body={response.text[:200]}"
        )
        if response.status_code >= 300:
            raise DeliveryError(recipient, f"HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if isinstance(payload, dict) and payload.get("error"):
            raise DeliveryError(recipient, str(payload["error"]))
        return payload if isinstance(payload, dict) else {"result": payload}
