"""Tests for device registration and the token health state machine."""

from datetime import timedelta

from sqlmodel import select

from moment_notify.models.base_model import TokenStatus
from moment_notify.models.db_model import Device, Notification
from moment_notify.services.device_service import DeviceService
from moment_notify.utils.clock import utc_now

TOKEN = "ExponentPushToken[abc]"


def register(service: DeviceService, session, user_id="u1", device_id="d1", token=TOKEN) -> Device:
    return service.register_or_update(session, user_id=user_id, device_id=device_id, platform="ios", app_version="1.0.0", push_token=token)


class TestRegistration:
    def test_register_creates_active_device(self, session):
        device = register(DeviceService(), session)

        assert device.id is not None
        assert device.token_status == TokenStatus.ACTIVE
        assert device.is_active
        assert device.failure_count == 0

    def test_reregistration_resets_health(self, session):
        service = DeviceService()
        register(service, session)
        for _ in range(5):
            service.increment_failure_count(session, TOKEN)

        device = register(service, session, token="ExponentPushToken[new]")

        assert device.push_token == "ExponentPushToken[new]"
        assert device.token_status == TokenStatus.ACTIVE
        assert device.failure_count == 0
        assert device.is_active
        assert len(session.exec(select(Device)).all()) == 1

    def test_list_and_deactivate(self, session):
        service = DeviceService()
        register(service, session, device_id="phone")
        register(service, session, device_id="tablet", token="ExponentPushToken[tablet]")

        assert {d.device_id for d in service.list_devices_for_user(session, "u1")} == {"phone", "tablet"}
        assert service.deactivate_device(session, "u1", "phone") is True
        assert service.deactivate_device(session, "u1", "missing") is False
        assert service.deactivate_device(session, "other-user", "tablet") is False


class TestTokenHealth:
    def test_failure_thresholds(self, session):
        """Three failures make a token suspected, five confirm it invalid."""
        service = DeviceService()
        register(service, session)

        outcomes = [service.increment_failure_count(session, TOKEN) for _ in range(5)]

        assert outcomes[0] == (1, TokenStatus.ACTIVE)
        assert outcomes[1] == (2, TokenStatus.ACTIVE)
        assert outcomes[2] == (3, TokenStatus.SUSPECTED_INVALID)
        assert outcomes[3] == (4, TokenStatus.SUSPECTED_INVALID)
        assert outcomes[4] == (5, TokenStatus.CONFIRMED_INVALID)

        device = session.exec(select(Device)).one()
        session.refresh(device)
        assert device.is_active is False

    def test_increment_unknown_token(self, session):
        assert DeviceService().increment_failure_count(session, "ExponentPushToken[unknown]") is None

    def test_permanent_invalidation(self, session):
        service = DeviceService()
        register(service, session)

        assert service.mark_token_as_invalid(session, TOKEN, "DeviceNotRegistered") == 1

        device = session.exec(select(Device)).one()
        session.refresh(device)
        assert device.token_status == TokenStatus.CONFIRMED_INVALID
        assert device.is_active is False

    def test_healthy_devices_filter(self, session):
        """Suspected tokens are still targeted; confirmed, inactive and stale ones are not."""
        service = DeviceService()
        active = register(service, session, device_id="active", token="T-active")
        suspected = register(service, session, device_id="suspected", token="T-suspected")
        register(service, session, device_id="invalid", token="T-invalid")
        stale = register(service, session, device_id="stale", token="T-stale")
        register(service, session, device_id="no-token", token=None)

        for _ in range(3):
            service.increment_failure_count(session, "T-suspected")
        service.mark_token_as_invalid(session, "T-invalid", "DeviceNotRegistered")
        stale.last_seen = utc_now() - timedelta(days=31)
        session.add(stale)
        session.commit()

        healthy = {d.id for d in service.get_healthy_devices_for_user(session, "u1")}
        assert healthy == {active.id, suspected.id}
        assert [d.id for d in service.get_suspected_invalid_devices(session)] == [suspected.id]

    def test_mark_active_restores_device(self, session):
        service = DeviceService()
        device = register(service, session)
        for _ in range(3):
            service.increment_failure_count(session, TOKEN)

        service.mark_token_as_active(session, device.id)

        session.refresh(device)
        assert device.token_status == TokenStatus.ACTIVE
        assert device.failure_count == 0

    def test_cleanup_stale_tokens(self, session):
        service = DeviceService()
        fresh = register(service, session, device_id="fresh", token="T-fresh")
        old_invalid = register(service, session, device_id="old-invalid", token="T-old-invalid")
        recent_invalid = register(service, session, device_id="recent-invalid", token="T-recent-invalid")
        unrefreshed = register(service, session, device_id="unrefreshed", token="T-unrefreshed")

        service.mark_token_as_invalid(session, "T-old-invalid", "DeviceNotRegistered")
        service.mark_token_as_invalid(session, "T-recent-invalid", "DeviceNotRegistered")
        session.refresh(old_invalid)
        old_invalid.updated_at = utc_now() - timedelta(days=8)
        unrefreshed.last_token_refresh = utc_now() - timedelta(days=91)
        session.add(old_invalid)
        session.add(unrefreshed)
        session.commit()

        assert service.cleanup_stale_tokens(session) == 2
        remaining = {d.id for d in session.exec(select(Device)).all()}
        assert remaining == {fresh.id, recent_invalid.id}

    def test_update_last_seen_and_remove(self, session):
        service = DeviceService()
        register(service, session)

        assert service.update_device_last_seen(session, TOKEN) == 1
        assert service.remove_devices_by_tokens(session, [TOKEN]) == 1
        assert service.remove_devices_by_tokens(session, []) == 0

    def test_unread_count(self, session):
        for is_read in (False, False, True):
            session.add(Notification(user_id="u1", type="moment.request.created", title="t", body="b", is_read=is_read))
        session.add(Notification(user_id="u2", type="moment.request.created", title="t", body="b"))
        session.commit()

        assert DeviceService().get_unread_notification_count(session, "u1") == 2
