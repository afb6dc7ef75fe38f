# hemolink/notifications/webhook.py
import json
from typing import Any

import httpx


def post_webhook(url: str, event: str, payload: dict[str, Any], *, timeout: float = 5.0) -> None:
    """
    POST {"event": ..., "payload": ...} to url.

    Raises httpx.HTTPError on transport failure or non-2xx response.
    """
    body = {"event": event, "payload": payload}
    response = httpx.post(
        url,
        content=json.dumps(body, default=str),
        headers={"Content-Type": "application/json"},
        timeout=timeout,
    )
    response.raise_for_status()
