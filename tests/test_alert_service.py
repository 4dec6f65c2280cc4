"""
test_alert_service.py — Tests for emergency-contact notification fan-out.

Covers:
    • Data models (DeliveryAttempt, ContactDeliveryRecord, DispatchReport)
    • Channel backends (SMS gateway, push) in simulation and HTTP modes
    • Retry with backoff, channel selection
    • Fan-out orchestration (per-contact independence, partial failure)

Run with:
    pytest tests/test_alert_service.py -v
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import httpx
import pytest

from safecircle.app.alerts.channels import push, sms_gateway
from safecircle.app.alerts.dispatch import (
    RETRY_CONFIGS,
    RetryConfig,
    _deliver_via_channel,
    compute_backoff,
    dispatch_alert,
    select_channels,
)
from safecircle.app.alerts.models import (
    ContactDeliveryRecord,
    DeliveryAttempt,
    DeliveryChannel,
    DeliveryStatus,
    DispatchReport,
    NotificationIntent,
)
from safecircle.app.state.models import (
    LOCATION_UNAVAILABLE,
    SOS_MESSAGE,
    Alert,
    AlertType,
    AppSettings,
    Contact,
)


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

GATEWAY = "https://notify.example.test"


def _make_contact(cid: str = "1", name: str = "Amma", phone: str = "+94771234567") -> Contact:
    return Contact(id=cid, name=name, phone=phone, relationship="Mother")


def _make_alert(location: str = "6.7106,79.9074") -> Alert:
    return Alert(
        id="1718460600000",
        type=AlertType.SOS,
        message=SOS_MESSAGE,
        location=location,
        timestamp="2026-06-15T12:00:00+00:00",
    )


def _make_intent(contact: Contact = None, location: str = "6.7106,79.9074") -> NotificationIntent:
    return NotificationIntent(
        alert_id="1718460600000",
        contact=contact or _make_contact(),
        message=SOS_MESSAGE,
        location=location,
    )


def _http_gateway(handler):
    """Patch httpx.AsyncClient so channel code talks to a MockTransport."""
    real_client = httpx.AsyncClient
    transport = httpx.MockTransport(handler)
    return patch(
        "httpx.AsyncClient",
        side_effect=lambda **kwargs: real_client(transport=transport, **kwargs),
    )


def _scripted(statuses):
    """Dispatcher returning the given statuses in order, recording call count."""
    calls = []

    async def send(intent):
        status = statuses[min(len(calls), len(statuses) - 1)]
        calls.append(intent.contact.id)
        return DeliveryAttempt(
            channel=DeliveryChannel.SMS,
            contact_id=intent.contact.id,
            status=status,
        )

    return send, calls


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Data Model Tests
# ═══════════════════════════════════════════════════════════════════════════

class TestNotificationIntent:

    def test_body_with_location(self):
        assert _make_intent().body == f"{SOS_MESSAGE} Location: 6.7106,79.9074"

    def test_body_without_location(self):
        assert _make_intent(location=None).body == SOS_MESSAGE


class TestDeliveryAttempt:

    def test_defaults(self):
        attempt = DeliveryAttempt()
        assert attempt.status == DeliveryStatus.PENDING
        assert attempt.retry_count == 0
        assert len(attempt.attempt_id) == 8

    def test_to_dict(self):
        d = DeliveryAttempt(channel=DeliveryChannel.PUSH, contact_id="1").to_dict()
        assert d["channel"] == "push"
        assert d["completed_at"] is None


class TestDispatchReport:

    def test_empty(self):
        report = DispatchReport(alert_id="x")
        assert report.total_contacts == 0
        assert report.reach_rate == 0.0

    def test_counts(self):
        reached = ContactDeliveryRecord(
            contact_id="1", name="A", channels_delivered=[DeliveryChannel.SMS],
        )
        missed = ContactDeliveryRecord(
            contact_id="2", name="B", channels_failed=[DeliveryChannel.SMS],
        )
        report = DispatchReport(alert_id="x", records=[reached, missed])
        assert report.contacts_reached == 1
        assert report.contacts_failed == 1
        assert report.to_dict()["reach_rate"] == "50.0%"


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Channel Backends
# ═══════════════════════════════════════════════════════════════════════════

class TestSmsFormat:

    def test_contains_message_location_ref(self):
        sms = sms_gateway.format_sms(_make_intent())
        assert sms.startswith("[SOS] EMERGENCY")
        assert "Location: 6.7106,79.9074" in sms
        assert sms.endswith("Ref:60600000")

    def test_truncated_to_160(self):
        intent = _make_intent()
        intent.message = "help " * 100
        sms = sms_gateway.format_sms(intent)
        assert len(sms) <= 160
        assert "..." in sms
        assert "Location: 6.7106,79.9074" in sms

    def test_sentinel_location_kept(self):
        sms = sms_gateway.format_sms(_make_intent(location=LOCATION_UNAVAILABLE))
        assert LOCATION_UNAVAILABLE in sms


class TestSmsGateway:

    def test_simulation_delivers(self):
        attempt = asyncio.run(sms_gateway.send(_make_intent(), provider="simulation"))
        assert attempt.status == DeliveryStatus.DELIVERED
        assert attempt.channel == DeliveryChannel.SMS
        assert attempt.completed_at is not None

    def test_missing_phone_skipped(self):
        intent = _make_intent(contact=_make_contact(phone=""))
        attempt = asyncio.run(sms_gateway.send(intent, provider="simulation"))
        assert attempt.status == DeliveryStatus.SKIPPED

    def test_unknown_provider_fails(self):
        attempt = asyncio.run(sms_gateway.send(_make_intent(), provider="pigeon"))
        assert attempt.status == DeliveryStatus.FAILED

    def test_http_without_gateway_fails(self):
        with patch.object(sms_gateway.settings, "NOTIFY_GATEWAY_URL", None):
            attempt = asyncio.run(sms_gateway.send(_make_intent(), provider="http"))
        assert attempt.status == DeliveryStatus.FAILED
        assert "NOTIFY_GATEWAY_URL" in attempt.error_message

    def test_http_posts_to_gateway(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(202, json={"queued": True})

        with _http_gateway(handler):
            attempt = asyncio.run(
                sms_gateway.send(_make_intent(), provider="http", gateway_url=GATEWAY)
            )
        assert attempt.status == DeliveryStatus.DELIVERED
        assert seen[0].url == f"{GATEWAY}/sms"
        assert b"+94771234567" in seen[0].content

    def test_http_error_fails(self):
        with _http_gateway(lambda request: httpx.Response(500)):
            attempt = asyncio.run(
                sms_gateway.send(_make_intent(), provider="http", gateway_url=GATEWAY)
            )
        assert attempt.status == DeliveryStatus.FAILED
        assert attempt.error_message


class TestPush:

    def test_simulation_delivers(self):
        attempt = asyncio.run(push.send(_make_intent(), provider="simulation"))
        assert attempt.status == DeliveryStatus.DELIVERED
        assert attempt.provider_response["title"] == push.PUSH_TITLE

    def test_unregistered_device_skipped(self):
        with _http_gateway(lambda request: httpx.Response(200, json={"registered": False})):
            attempt = asyncio.run(
                push.send(_make_intent(), provider="http", gateway_url=GATEWAY)
            )
        assert attempt.status == DeliveryStatus.SKIPPED

    def test_transport_error_fails(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with _http_gateway(handler):
            attempt = asyncio.run(
                push.send(_make_intent(), provider="http", gateway_url=GATEWAY)
            )
        assert attempt.status == DeliveryStatus.FAILED


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Retry and channel selection
# ═══════════════════════════════════════════════════════════════════════════

class TestBackoff:

    def test_exponential(self):
        config = RetryConfig(3, 2.0, "exponential")
        assert [compute_backoff(config, n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]

    def test_linear(self):
        config = RetryConfig(3, 1.0, "linear")
        assert [compute_backoff(config, n) for n in (1, 2, 3)] == [1.0, 2.0, 3.0]

    def test_scale(self):
        assert compute_backoff(RETRY_CONFIGS[DeliveryChannel.SMS], 2, scale=0) == 0.0


class TestChannelSelection:

    def test_sms_always(self):
        assert select_channels(AppSettings(push_notifications=False)) == [DeliveryChannel.SMS]

    def test_push_when_enabled(self):
        assert select_channels(AppSettings()) == [DeliveryChannel.SMS, DeliveryChannel.PUSH]


class TestDeliverViaChannel:

    def test_retries_until_delivered(self):
        send, calls = _scripted([DeliveryStatus.FAILED, DeliveryStatus.DELIVERED])
        attempt = asyncio.run(
            _deliver_via_channel(send, DeliveryChannel.SMS, _make_intent(), 0)
        )
        assert attempt.status == DeliveryStatus.DELIVERED
        assert attempt.retry_count == 1
        assert len(calls) == 2

    def test_exhausts_retries(self):
        send, calls = _scripted([DeliveryStatus.FAILED])
        attempt = asyncio.run(
            _deliver_via_channel(send, DeliveryChannel.SMS, _make_intent(), 0)
        )
        assert attempt.status == DeliveryStatus.FAILED
        assert len(calls) == RETRY_CONFIGS[DeliveryChannel.SMS].max_retries + 1

    def test_skipped_not_retried(self):
        send, calls = _scripted([DeliveryStatus.SKIPPED])
        attempt = asyncio.run(
            _deliver_via_channel(send, DeliveryChannel.PUSH, _make_intent(), 0)
        )
        assert attempt.status == DeliveryStatus.SKIPPED
        assert len(calls) == 1


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Fan-out
# ═══════════════════════════════════════════════════════════════════════════

class TestDispatchAlert:

    def test_every_contact_attempted(self):
        contacts = [_make_contact(str(i), f"C{i}", f"+9477123456{i}") for i in range(4)]
        report = asyncio.run(dispatch_alert(_make_alert(), contacts, retry_scale=0))
        assert report.total_contacts == 4
        assert report.contacts_reached == 4
        assert report.started_at <= report.completed_at

    def test_partial_failure(self):
        async def flaky(intent):
            status = DeliveryStatus.FAILED if intent.contact.id == "2" else DeliveryStatus.DELIVERED
            return DeliveryAttempt(
                channel=DeliveryChannel.SMS, contact_id=intent.contact.id, status=status,
            )

        contacts = [_make_contact(str(i)) for i in range(1, 4)]
        report = asyncio.run(dispatch_alert(
            _make_alert(), contacts,
            dispatchers={DeliveryChannel.SMS: flaky}, retry_scale=0,
        ))
        assert report.contacts_reached == 2
        assert [r.contact_id for r in report.records if not r.is_reached] == ["2"]

    def test_exception_isolated_per_contact(self):
        async def explode(intent):
            raise RuntimeError("boom")

        report = asyncio.run(dispatch_alert(
            _make_alert(), [_make_contact("1"), _make_contact("2")],
            dispatchers={DeliveryChannel.SMS: explode}, retry_scale=0,
        ))
        assert report.total_contacts == 2
        assert report.contacts_reached == 0
        assert all(r.error == "boom" for r in report.records)

    def test_missing_dispatcher_skipped(self):
        send, calls = _scripted([DeliveryStatus.DELIVERED])
        report = asyncio.run(dispatch_alert(
            _make_alert(), [_make_contact()],
            channels=[DeliveryChannel.SMS, DeliveryChannel.PUSH],
            dispatchers={DeliveryChannel.SMS: send}, retry_scale=0,
        ))
        assert report.records[0].channels_attempted == [DeliveryChannel.SMS]

    def test_no_contacts(self):
        report = asyncio.run(dispatch_alert(_make_alert(), [], retry_scale=0))
        assert report.total_contacts == 0

    @pytest.mark.parametrize("channels", [
        [DeliveryChannel.SMS],
        [DeliveryChannel.SMS, DeliveryChannel.PUSH],
    ])
    def test_simulation_all_channels_delivered(self, channels):
        report = asyncio.run(dispatch_alert(
            _make_alert(), [_make_contact()], channels=channels, retry_scale=0,
        ))
        assert report.records[0].channels_delivered == channels
