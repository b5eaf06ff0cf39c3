"""Callback delivery for completed investigations.

One POST per investigation, no retries. Any failure surfaces as
``CallbackDeliveryFailure`` for the engine to log.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from investigator.exceptions import CallbackDeliveryFailure

logger = logging.getLogger(__name__)


class CallbackNotifier:
    """Posts the completion payload to a caller-supplied URL."""

    def __init__(self, timeout_seconds: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def notify(self, callback_url: str, payload: Dict[str, Any]) -> None:
        """
        Deliver ``payload`` to ``callback_url``.

        Raises:
            CallbackDeliveryFailure: Transport error, timeout or non-2xx response
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(callback_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise CallbackDeliveryFailure(
                f"Callback to {callback_url} returned HTTP {e.response.status_code}",
                details={"callback_url": callback_url, "status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise CallbackDeliveryFailure(
                f"Callback to {callback_url} failed: {e}",
                details={"callback_url": callback_url},
            ) from e
        except (httpx.InvalidURL, ValueError) as e:
            # Caller-supplied URL that httpx refuses to parse
            raise CallbackDeliveryFailure(
                f"Invalid callback URL {callback_url!r}: {e}",
                details={"callback_url": callback_url},
            ) from e

        logger.info(f"Callback delivered to {callback_url} for {payload.get('investigation_id')}")
