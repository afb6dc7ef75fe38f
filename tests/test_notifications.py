import logging

import httpx
import pytest

from hemolink.core.config import Settings
from hemolink.notifications import notifier as notifier_module
from hemolink.notifications.notifier import EventKind, NotificationChannel, Notifier
from hemolink.notifications.sms import base as sms_base
from hemolink.notifications.sms import http_gateway


def _use_settings(monkeypatch, **overrides):
    settings = Settings(**overrides)
    monkeypatch.setattr(sms_base, "get_settings", lambda: settings)
    return settings


def _record_posts(monkeypatch, status_code=200):
    calls = []

    def fake_post(url, **kwargs):
        calls.append((url, kwargs))
        return httpx.Response(status_code, request=httpx.Request("POST", url))

    monkeypatch.setattr(http_gateway.httpx, "post", fake_post)
    return calls


def test_disabled_sms_is_logged_only(monkeypatch, caplog):
    _use_settings(monkeypatch, sms_enabled=False, sms_provider="http")
    calls = _record_posts(monkeypatch)

    with caplog.at_level(logging.INFO, logger=sms_base.__name__):
        sms_base.send_sms("+919800000001", "hello", reason="DONOR_PROPOSAL")

    assert calls == []
    assert "[SMS DISABLED [DONOR_PROPOSAL]] To: +919800000001" in caplog.text


def test_log_provider_never_posts(monkeypatch, caplog):
    _use_settings(monkeypatch, sms_enabled=True, sms_provider="log")
    calls = _record_posts(monkeypatch)

    with caplog.at_level(logging.INFO, logger=sms_base.__name__):
        sms_base.send_sms("+919800000001", "hello")

    assert calls == []
    assert "[SMS LOG-ONLY] To: +919800000001, Message: hello" in caplog.text


def test_http_provider_posts_to_gateway(monkeypatch):
    _use_settings(
        monkeypatch,
        sms_enabled=True,
        sms_provider="http",
        sms_gateway_url="https://sms.example.test/send",
        sms_api_key="secret",
    )
    calls = _record_posts(monkeypatch)

    sms_base.send_sms("+919800000001", "Your donation is booked")

    ((url, kwargs),) = calls
    assert url == "https://sms.example.test/send"
    assert kwargs["json"] == {
        "to": "+919800000001",
        "from": "HEMOLNK",
        "message": "Your donation is booked",
    }
    assert kwargs["headers"]["Authorization"] == "Bearer secret"


def test_http_provider_surfaces_gateway_errors(monkeypatch):
    _use_settings(
        monkeypatch,
        sms_enabled=True,
        sms_provider="http",
        sms_gateway_url="https://sms.example.test/send",
    )
    _record_posts(monkeypatch, status_code=503)

    with pytest.raises(httpx.HTTPStatusError):
        sms_base.send_sms("+919800000001", "hello")


@pytest.mark.parametrize(
    "overrides",
    [
        {"sms_provider": "carrier-pigeon"},
        {"sms_provider": "http", "sms_gateway_url": None},
    ],
)
def test_misconfigured_provider_raises(monkeypatch, overrides):
    _use_settings(monkeypatch, sms_enabled=True, **overrides)

    with pytest.raises(ValueError):
        sms_base.send_sms("+919800000001", "hello")


def test_notifier_swallows_sms_failures(monkeypatch, caplog):
    def broken_send_sms(**kwargs):
        raise httpx.ConnectError("gateway down")

    monkeypatch.setattr(notifier_module, "send_sms", broken_send_sms)

    with caplog.at_level(logging.WARNING, logger=notifier_module.__name__):
        Notifier(Settings()).emit(
            NotificationChannel.SMS,
            EventKind.APPOINTMENT_CONFIRMED,
            {"phone": "+919800000001", "message": "booked"},
        )

    assert "[NOTIFY FAILED:APPOINTMENT_CONFIRMED] channel=SMS" in caplog.text


def test_notifier_posts_webhook_per_event_kind(monkeypatch):
    posted = []
    monkeypatch.setattr(
        notifier_module,
        "post_webhook",
        lambda url, event, payload, timeout: posted.append((url, event, payload)),
    )
    settings = Settings(webhook_url_shortage="https://hooks.example.test/shortage")

    Notifier(settings).emit(NotificationChannel.WEBHOOK, EventKind.SHORTAGE, {"available": 1})
    Notifier(settings).emit(NotificationChannel.WEBHOOK, EventKind.ITEM_EXPIRED, {"item_id": "x"})

    assert posted == [("https://hooks.example.test/shortage", "SHORTAGE", {"available": 1})]
