"""Unit tests for the outbound SMS client"""

import httpx
import pytest
from unittest.mock import AsyncMock, patch
from paybill_reconciler.domain.exceptions import NotificationSendError
from paybill_reconciler.infrastructure.clients.sms import SmsClient

URL = "https://sms.test/sms/2/text/advanced"


def gateway_response(status_code: int = 200, group_id: int = 1, description: str = "Message sent to next instance") -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"messages": [{"messageId": "abc-123", "status": {"groupId": group_id, "description": description}}]},
        request=httpx.Request("POST", URL),
    )


@pytest.fixture
def sms() -> SmsClient:
    return SmsClient(base_url="https://sms.test", api_key="secret", sender_id="SHOP", timeout=1.0)


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_send_accepted(mock_post: AsyncMock, sms: SmsClient):
    """Test accepted message returns the gateway id and strips the plus sign"""
    mock_post.return_value = gateway_response()

    message_id = await sms.send("+254712345678", "Payment received")

    assert message_id == "abc-123"
    args, kwargs = mock_post.call_args
    assert args[0] == URL
    assert kwargs["json"]["messages"][0]["destinations"] == [{"to": "254712345678"}]
    assert kwargs["json"]["messages"][0]["from"] == "SHOP"
    assert kwargs["headers"]["Authorization"] == "App secret"


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_send_rejected(mock_post: AsyncMock, sms: SmsClient):
    """Test a non-pending status group is a failure"""
    mock_post.return_value = gateway_response(group_id=5, description="Invalid destination")

    with pytest.raises(NotificationSendError, match="Invalid destination"):
        await sms.send("+254712345678", "Payment received")


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_send_http_error(mock_post: AsyncMock, sms: SmsClient):
    mock_post.return_value = gateway_response(status_code=503)

    with pytest.raises(NotificationSendError, match="503"):
        await sms.send("+254712345678", "Payment received")


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_send_timeout(mock_post: AsyncMock, sms: SmsClient):
    """Test transport timeout surfaces as NotificationSendError"""
    mock_post.side_effect = httpx.ReadTimeout("timed out")

    with pytest.raises(NotificationSendError, match="timeout"):
        await sms.send("+254712345678", "Payment received")
