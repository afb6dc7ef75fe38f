# hemolink/notifications/sms/base.py
import logging
from typing import Optional

from hemolink.core.config import get_settings

logger = logging.getLogger(__name__)


def send_sms(
    phone: str,
    message: str,
    *,
    reason: Optional[str] = None,
) -> None:
    """
    Donor-facing SMS, routed by SMS_PROVIDER.

    - If sms_enabled is False, or SMS_PROVIDER is "log":
        the message is only written to the log.
    - SMS_PROVIDER "http":
        posted to SMS_GATEWAY_URL.

    An unknown provider raises ValueError.
    """
    settings = get_settings()
    debug_reason = f" [{reason}]" if reason else ""
    provider = settings.sms_provider.lower()

    if not settings.sms_enabled:
        logger.info(f"[SMS DISABLED{debug_reason}] To: {phone}, Message: {message}")
        return

    if provider == "log":
        logger.info(f"[SMS LOG-ONLY{debug_reason}] To: {phone}, Message: {message}")
        return

    if provider != "http":
        raise ValueError(f"Unknown SMS_PROVIDER: {settings.sms_provider!r}")

    from hemolink.notifications.sms.http_gateway import send_via_http_gateway

    send_via_http_gateway(phone=phone, message=message, settings=settings)
    logger.info(f"[SMS SENT{debug_reason}] To: {phone}")
