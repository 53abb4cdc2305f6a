import asyncio
from typing import Optional

import httpx

from app.utils.errors import (
    DeliveryNetworkError,
    DeliveryStatusError,
    DeliveryTimeoutError,
)
from app.utils.logging import get_logger

logger = get_logger()


class EmailNotifier:
    """
    Client for the remote email service.

    One POST per call with {"email", "message"}. Any transport error, timeout
    or non-2xx status raises a NotificationDeliveryError subclass; retrying is
    left to the caller.
    """

    def __init__(
        self,
        service_url: str,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.service_url = service_url
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    async def send(self, recipient_address: str, message_text: str) -> None:
        """
        Send a message to one recipient.

        Args:
            recipient_address: Email address of the recipient
            message_text: Rendered message body

        Raises:
            DeliveryTimeoutError: The call did not complete within timeout_seconds
            DeliveryNetworkError: The service could not be reached
            DeliveryStatusError: The service answered with a non-2xx status
        """
        try:
            response = await asyncio.wait_for(
                self.client.post(
                    self.service_url,
                    json={"email": recipient_address, "message": message_text},
                ),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise DeliveryTimeoutError(
                f"Email service did not answer within {self.timeout_seconds}s"
            ) from e
        except httpx.HTTPError as e:
            raise DeliveryNetworkError(f"Email service unreachable: {e}") from e

        if not response.is_success:
            raise DeliveryStatusError(
                f"Email service returned {response.status_code}",
                status_code=response.status_code,
            )

        logger.debug(f"Email service accepted message for {recipient_address}")

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
