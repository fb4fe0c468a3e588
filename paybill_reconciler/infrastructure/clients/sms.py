"""Outbound SMS client (Infobip-style HTTP API) for payment confirmations"""

import httpx
from paybill_reconciler.config import settings
from paybill_reconciler.domain.exceptions import NotificationSendError
from paybill_reconciler.infrastructure.observability.metrics import sms_latency_histogram, sms_failure_counter

# Infobip status group 1 = PENDING (accepted for delivery)
ACCEPTED_GROUP_ID = 1


class SmsClient:
    """Client for the SMS gateway; one attempt per message, no retries"""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        sender_id: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = base_url or settings.sms_api_base
        self.api_key = api_key if api_key is not None else settings.sms_api_key
        self.sender_id = sender_id or settings.sms_sender_id
        self.timeout = timeout or settings.http_timeout_seconds

    async def send(self, phone: str, text: str) -> str | None:
        """
        Send one text message.

        Returns:
            Gateway message id, if the gateway returned one

        Raises:
            NotificationSendError: On timeout, HTTP errors, or rejection by the gateway
        """
        payload = {
            "messages": [
                {
                    "from": self.sender_id,
                    "destinations": [{"to": phone.lstrip("+")}],
                    "text": text,
                }
            ]
        }
        headers = {
            "Authorization": f"App {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                with sms_latency_histogram.time():
                    response = await client.post(
                        f"{self.base_url}/sms/2/text/advanced",
                        json=payload,
                        headers=headers,
                    )
                response.raise_for_status()
                message = response.json()["messages"][0]
                status = message.get("status") or {}

            except httpx.TimeoutException as e:
                sms_failure_counter.inc()
                raise NotificationSendError(f"SMS gateway timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                sms_failure_counter.inc()
                raise NotificationSendError(f"SMS gateway error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                sms_failure_counter.inc()
                raise NotificationSendError(f"SMS gateway unreachable: {e}") from e
            except (KeyError, IndexError, ValueError, TypeError) as e:
                sms_failure_counter.inc()
                raise NotificationSendError(f"Invalid response from SMS gateway: {e}") from e

        if status.get("groupId") != ACCEPTED_GROUP_ID:
            sms_failure_counter.inc()
            raise NotificationSendError(f"SMS rejected: {status.get('description', 'unknown error')}")

        return message.get("messageId")
