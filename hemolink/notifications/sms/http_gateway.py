# hemolink/notifications/sms/http_gateway.py
import httpx

from hemolink.core.config import Settings


def send_via_http_gateway(phone: str, message: str, *, settings: Settings) -> None:
    """
    POST {"to", "from", "message"} to SMS_GATEWAY_URL with a bearer key.

    Raises httpx.HTTPError on transport failure or non-2xx response.
    """
    if not settings.sms_gateway_url:
        raise ValueError("SMS_GATEWAY_URL is not configured")

    headers = {"Content-Type": "application/json"}
    if settings.sms_api_key:
        headers["Authorization"] = f"Bearer {settings.sms_api_key}"

    response = httpx.post(
        settings.sms_gateway_url,
        json={"to": phone, "from": settings.sms_sender_id, "message": message},
        headers=headers,
        timeout=settings.sms_timeout_seconds,
    )
    response.raise_for_status()
