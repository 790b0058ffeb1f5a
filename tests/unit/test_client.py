"""Unit tests for clinic_client.client.ApiClient and its helpers."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from clinic_client.client import (
    BOOKING_PATH,
    UPCOMING_APPOINTMENTS_KEY,
    ApiClient,
    normalize_appointment,
    normalize_role,
)
from clinic_client.errors import ClassifiedError, ErrorKind
from clinic_client.offline.cache import ReadThroughCache
from clinic_client.offline.queue import OfflineQueue
from clinic_client.pipeline import RequestPipeline
from clinic_client.session.manager import SessionManager
from clinic_client.session.state import Session
from clinic_client.storage.memory import InMemoryStore
from clinic_client.transport.base import TransportErrorCode, TransportRequest

from fakes import ScriptedTransport, offline, ok, status

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
SIGNED_IN = Session(access_token="access-1", refresh_token="refresh-1")
APPOINTMENTS_PATH = "/appointments/patient-appointments"


def _script_booking_lookups(transport: ScriptedTransport) -> None:
    transport.script("GET", "/auth/me", ok({"id": 1, "clinic_id": 4, "role": "patient"}))
    transport.script("GET", "/patients/me", ok({"id": 9}))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestNormalizeRole:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("PATIENT", "patient"),
            ("Doctor", "doctor"),
            ({"value": "ADMIN"}, "admin"),
            (None, None),
        ],
    )
    def test_normalize(self, raw: object, expected: object) -> None:
        assert normalize_role(raw) == expected


class TestNormalizeAppointment:
    def test_fills_defaults(self) -> None:
        appointment = normalize_appointment({"id": 1, "datetime": "2026-03-02T09:00:00"})
        assert appointment["scheduled_datetime"] == "2026-03-02T09:00:00"
        assert appointment["duration_minutes"] == 30
        assert appointment["status"] == "scheduled"
        assert appointment["appointment_type"] == "consultation"
        assert appointment["clinic_id"] == 0
        assert appointment["created_at"]

    def test_keeps_values_and_lowercases_status(self) -> None:
        appointment = normalize_appointment(
            {
                "id": 1,
                "scheduled_datetime": "2026-03-02T09:00:00Z",
                "status": "CONFIRMED",
                "duration_minutes": 45,
                "clinic_id": 4,
            }
        )
        assert appointment["status"] == "confirmed"
        assert appointment["duration_minutes"] == 45
        assert appointment["clinic_id"] == 4
        assert appointment["datetime"] == "2026-03-02T09:00:00Z"

    def test_does_not_mutate_input(self) -> None:
        raw = {"id": 1, "status": "SCHEDULED"}
        normalize_appointment(raw)
        assert raw == {"id": 1, "status": "SCHEDULED"}


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class TestAuth:
    @pytest.mark.asyncio
    async def test_login_persists_session(
        self, client: ApiClient, session: SessionManager, transport: ScriptedTransport
    ) -> None:
        transport.script(
            "POST",
            "/auth/login",
            ok({"access_token": "a", "refresh_token": "r", "user": {"email": "ana@example.com", "role": "PATIENT"}}),
        )
        data = await client.login("ana@example.com", "secret")
        assert data["user"]["role"] == "patient"
        assert await session.current() == Session(access_token="a", refresh_token="r")
        [request] = transport.requests
        assert request.body == {
            "username_or_email": "ana@example.com",
            "password": "secret",
            "expected_role": "patient",
        }
        assert "Authorization" not in request.headers

    @pytest.mark.asyncio
    async def test_login_rejected(
        self, client: ApiClient, session: SessionManager, transport: ScriptedTransport
    ) -> None:
        transport.script("POST", "/auth/login", status(401, {"detail": "Incorrect password"}))
        with pytest.raises(ClassifiedError) as info:
            await client.login("ana@example.com", "wrong")
        assert info.value.kind is ErrorKind.AUTH
        assert await session.current() is None
        assert transport.calls("POST", "/auth/refresh") == []

    @pytest.mark.asyncio
    async def test_login_without_tokens(
        self, client: ApiClient, session: SessionManager, transport: ScriptedTransport
    ) -> None:
        transport.script("POST", "/auth/login", ok({"user": {}}))
        with pytest.raises(ClassifiedError) as info:
            await client.login("ana@example.com", "secret")
        assert info.value.kind is ErrorKind.SERVER
        assert await session.current() is None

    @pytest.mark.asyncio
    async def test_register(
        self, client: ApiClient, session: SessionManager, transport: ScriptedTransport
    ) -> None:
        transport.script("POST", "/auth/register", ok({"access_token": "a", "refresh_token": "r"}))
        await client.register("Ana", "Lima", "ana@example.com", "secret", phone="555")
        body = transport.requests[0].body
        assert body["username"] == "ana@example.com"
        assert body["role"] == "patient"
        assert body["phone"] == "555"
        assert await session.current() is not None

    @pytest.mark.asyncio
    async def test_logout_clears_even_when_offline(
        self, client: ApiClient, session: SessionManager, transport: ScriptedTransport
    ) -> None:
        await session.start(SIGNED_IN)
        transport.script("POST", "/auth/logout", offline())
        await client.logout()
        assert await session.current() is None

    @pytest.mark.asyncio
    async def test_logout_sends_token(
        self, client: ApiClient, session: SessionManager, transport: ScriptedTransport
    ) -> None:
        await session.start(SIGNED_IN)
        transport.script("POST", "/auth/logout", ok())
        await client.logout()
        assert transport.requests[0].headers["Authorization"] == "Bearer access-1"
        assert await session.current() is None

    @pytest.mark.asyncio
    async def test_is_authenticated_without_session(
        self, client: ApiClient, transport: ScriptedTransport
    ) -> None:
        assert await client.is_authenticated() is False
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_is_authenticated_accepted(
        self, client: ApiClient, session: SessionManager, transport: ScriptedTransport
    ) -> None:
        await session.start(SIGNED_IN)
        transport.script("GET", "/auth/me", ok({"id": 1}))
        assert await client.is_authenticated() is True

    @pytest.mark.asyncio
    async def test_is_authenticated_expired(
        self, client: ApiClient, session: SessionManager, transport: ScriptedTransport
    ) -> None:
        await session.start(SIGNED_IN)
        transport.script("GET", "/auth/me", status(401))
        transport.script("POST", "/auth/refresh", status(401))
        assert await client.is_authenticated() is False
        assert await session.current() is None

    @pytest.mark.asyncio
    async def test_is_authenticated_offline_propagates(
        self, client: ApiClient, session: SessionManager, transport: ScriptedTransport
    ) -> None:
        await session.start(SIGNED_IN)
        transport.script("GET", "/auth/me", offline())
        with pytest.raises(ClassifiedError) as info:
            await client.is_authenticated()
        assert info.value.kind is ErrorKind.TRANSPORT

    @pytest.mark.asyncio
    async def test_mfa(self, client: ApiClient, transport: ScriptedTransport) -> None:
        transport.script("POST", "/auth/mfa/verify", ok({"verified": True}))
        assert await client.verify_mfa("123456") == {"verified": True}
        assert transport.requests[0].body == {"code": "123456"}


# ---------------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------------


class TestAppointments:
    @pytest.mark.asyncio
    async def test_upcoming_filters_and_sorts(
        self, client: ApiClient, transport: ScriptedTransport
    ) -> None:
        transport.script(
            "GET",
            APPOINTMENTS_PATH,
            ok(
                [
                    {"id": 1, "scheduled_datetime": "2026-03-05T09:00:00Z", "status": "scheduled"},
                    {"id": 2, "scheduled_datetime": "2026-02-01T09:00:00Z", "status": "scheduled"},
                    {"id": 3, "scheduled_datetime": "2026-03-02T09:00:00Z", "status": "CONFIRMED"},
                    {"id": 4, "scheduled_datetime": "2026-03-03T09:00:00Z", "status": "CANCELLED"},
                    {"id": 5, "scheduled_datetime": "2026-03-04T09:00:00", "status": "completed"},
                ]
            ),
        )
        upcoming = await client.get_upcoming_appointments(now=NOW)
        assert [item["id"] for item in upcoming] == [3, 1]

    @pytest.mark.asyncio
    async def test_upcoming_accepts_naive_now_as_utc(
        self, client: ApiClient, transport: ScriptedTransport
    ) -> None:
        transport.script(
            "GET",
            APPOINTMENTS_PATH,
            ok(
                [
                    {"id": 1, "scheduled_datetime": "2026-03-01T13:00:00Z", "status": "scheduled"},
                    {"id": 2, "scheduled_datetime": "2026-03-01T11:00:00Z", "status": "scheduled"},
                ]
            ),
        )
        upcoming = await client.get_upcoming_appointments(now=datetime(2026, 3, 1, 12, 0))
        assert [item["id"] for item in upcoming] == [1]

    @pytest.mark.asyncio
    async def test_upcoming_is_cached_under_logical_key(
        self, client: ApiClient, transport: ScriptedTransport, cache_store: InMemoryStore
    ) -> None:
        raw = [{"id": 1, "scheduled_datetime": "2026-03-05T09:00:00Z", "status": "scheduled"}]
        transport.script("GET", APPOINTMENTS_PATH, ok(raw))
        await client.get_upcoming_appointments(now=NOW)
        entry = await ReadThroughCache(cache_store).read(UPCOMING_APPOINTMENTS_KEY)
        assert entry is not None
        assert entry.value == raw

    @pytest.mark.asyncio
    async def test_all_appointments_newest_first(
        self, client: ApiClient, transport: ScriptedTransport
    ) -> None:
        transport.script(
            "GET",
            APPOINTMENTS_PATH,
            ok(
                [
                    {"id": 1, "scheduled_datetime": "2026-01-05T09:00:00Z", "status": "COMPLETED"},
                    {"id": 2, "scheduled_datetime": "2026-04-01T09:00:00Z"},
                ]
            ),
        )
        appointments = await client.get_all_appointments()
        assert [item["id"] for item in appointments] == [2, 1]
        assert appointments[1]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_availability_passes_date(
        self, client: ApiClient, transport: ScriptedTransport
    ) -> None:
        transport.script("GET", "/appointments/doctor/4/availability", ok(["09:00"]))
        assert await client.get_doctor_availability(4, "2026-03-02") == ["09:00"]
        assert transport.requests[0].params == {"date": "2026-03-02"}

    @pytest.mark.asyncio
    async def test_book_online(self, client: ApiClient, transport: ScriptedTransport) -> None:
        _script_booking_lookups(transport)
        transport.script("POST", BOOKING_PATH, ok({"id": 50, "status": "SCHEDULED"}))
        booked = await client.book_appointment(3, "2026-03-02T09:00:00", reason="checkup")
        assert booked == {"id": 50, "status": "scheduled"}
        [request] = transport.calls("POST", BOOKING_PATH)
        assert request.body == {
            "patient_id": 9,
            "doctor_id": 3,
            "clinic_id": 4,
            "scheduled_datetime": "2026-03-02T09:00:00",
            "reason": "checkup",
            "appointment_type": "consultation",
        }

    @pytest.mark.asyncio
    async def test_book_queues_when_submit_fails(
        self, client: ApiClient, transport: ScriptedTransport
    ) -> None:
        _script_booking_lookups(transport)
        transport.script("POST", BOOKING_PATH, offline(TransportErrorCode.TIMEOUT))
        booked = await client.book_appointment(3, "2026-03-02T09:00:00")
        assert booked["queued"] is True
        assert booked["id"] is None
        assert booked["status"] == "scheduled"
        queue = client.pipeline.queue
        assert queue is not None
        [entry] = await queue.entries()
        assert entry.payload == {"doctor_id": 3, "scheduled_datetime": "2026-03-02T09:00:00", "reason": None}

    @pytest.mark.asyncio
    async def test_book_queues_when_lookup_fails(
        self, client: ApiClient, transport: ScriptedTransport
    ) -> None:
        transport.script("GET", "/auth/me", offline())
        booked = await client.book_appointment(3, "2026-03-02T09:00:00")
        assert booked["queued"] is True
        assert client.pipeline.queue is not None
        assert await client.pipeline.queue.size() == 1
        assert transport.calls("POST", BOOKING_PATH) == []

    @pytest.mark.asyncio
    async def test_book_rejected_is_not_queued(
        self, client: ApiClient, transport: ScriptedTransport
    ) -> None:
        _script_booking_lookups(transport)
        transport.script("POST", BOOKING_PATH, status(409, {"detail": "Slot no longer available"}))
        with pytest.raises(ClassifiedError) as info:
            await client.book_appointment(3, "2026-03-02T09:00:00")
        assert info.value.kind is ErrorKind.CLIENT
        assert info.value.message == "Slot no longer available"
        assert client.pipeline.queue is not None
        assert await client.pipeline.queue.size() == 0

    @pytest.mark.asyncio
    async def test_replay_queued_bookings(
        self, client: ApiClient, transport: ScriptedTransport
    ) -> None:
        transport.script("GET", "/auth/me", offline())
        await client.book_appointment(3, "2026-03-02T09:00:00")
        await client.book_appointment(5, "2026-03-03T09:00:00")

        _script_booking_lookups(transport)
        transport.script("POST", BOOKING_PATH, ok({"id": 1}))
        assert await client.replay_queued_bookings() == 2
        assert [request.body["doctor_id"] for request in transport.calls("POST", BOOKING_PATH)] == [3, 5]
        assert client.pipeline.queue is not None
        assert await client.pipeline.queue.size() == 0

    @pytest.mark.asyncio
    async def test_replay_stops_while_offline(
        self, client: ApiClient, transport: ScriptedTransport
    ) -> None:
        transport.script("GET", "/auth/me", offline())
        await client.book_appointment(3, "2026-03-02T09:00:00")
        with pytest.raises(ClassifiedError):
            await client.replay_queued_bookings()
        assert client.pipeline.queue is not None
        assert await client.pipeline.queue.size() == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("drop_rejected", "left"), [(False, 2), (True, 0)])
    async def test_replay_rejected_booking(
        self,
        client: ApiClient,
        transport: ScriptedTransport,
        drop_rejected: bool,
        left: int,
    ) -> None:
        transport.script("GET", "/auth/me", offline())
        await client.book_appointment(3, "2026-03-02T09:00:00")
        await client.book_appointment(5, "2026-03-03T09:00:00")

        def submit(request: TransportRequest) -> object:
            if request.body["doctor_id"] == 3:
                return status(409, {"detail": "Slot no longer available"})
            return ok({"id": 2})

        _script_booking_lookups(transport)
        transport.script("POST", BOOKING_PATH, submit)
        if drop_rejected:
            assert await client.replay_queued_bookings(drop_rejected=True) == 1
        else:
            with pytest.raises(ClassifiedError) as info:
                await client.replay_queued_bookings()
            assert info.value.kind is ErrorKind.CLIENT
        assert client.pipeline.queue is not None
        assert await client.pipeline.queue.size() == left

    @pytest.mark.asyncio
    async def test_cancel_and_reschedule(
        self, client: ApiClient, transport: ScriptedTransport
    ) -> None:
        transport.script("POST", "/appointments/7/cancel", ok())
        transport.script("POST", "/appointments/7/reschedule", ok({"id": 7}))
        await client.cancel_appointment(7, reason="travel")
        assert await client.reschedule_appointment(7, "2026-03-09T10:00:00") == {"id": 7}
        assert transport.requests[0].body == {"reason": "travel"}
        assert transport.requests[1].body == {"scheduled_datetime": "2026-03-09T10:00:00"}


# ---------------------------------------------------------------------------
# Other reads and writes
# ---------------------------------------------------------------------------


class TestOtherCalls:
    @pytest.mark.asyncio
    async def test_notifications_unwrap_data(
        self, client: ApiClient, transport: ScriptedTransport
    ) -> None:
        transport.script("GET", "/notifications", ok({"data": [{"id": 1}], "total": 1}))
        assert await client.get_notifications() == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_empty_bodies_become_lists(
        self, client: ApiClient, transport: ScriptedTransport
    ) -> None:
        transport.script("GET", "/clinical/me/history", ok(None))
        transport.script("GET", "/financial/invoices/me", ok(None))
        transport.script("GET", "/messages/threads", ok(None))
        assert await client.get_medical_records() == []
        assert await client.get_invoices() == []
        assert await client.get_message_threads() == []

    @pytest.mark.asyncio
    async def test_send_message(self, client: ApiClient, transport: ScriptedTransport) -> None:
        transport.script("POST", "/messages/threads/3/send", ok())
        await client.send_message(3, "Hello")
        assert transport.requests[0].body == {"content": "Hello", "attachments": []}

    @pytest.mark.asyncio
    async def test_update_profile(self, client: ApiClient, transport: ScriptedTransport) -> None:
        transport.script("PUT", "/patients/me", ok({"id": 9, "phone": "555"}))
        assert await client.update_my_patient_profile({"phone": "555"}) == {"id": 9, "phone": "555"}


# ---------------------------------------------------------------------------
# Resource cleanup
# ---------------------------------------------------------------------------


class _CountingStore(InMemoryStore):
    def __init__(self) -> None:
        super().__init__()
        self.close_count = 0

    async def aclose(self) -> None:
        self.close_count += 1


class TestClose:
    @pytest.mark.asyncio
    async def test_context_manager_closes_transport_and_stores(
        self, transport: ScriptedTransport
    ) -> None:
        credentials = _CountingStore()
        shared = _CountingStore()
        pipeline = RequestPipeline(
            transport,
            SessionManager(credentials, transport),
            cache=ReadThroughCache(shared),
            queue=OfflineQueue(shared),
        )
        transport.script("GET", "/auth/me", ok({"id": 1}))
        async with ApiClient(pipeline) as client:
            await client.get_current_user()
            assert transport.close_count == 0

        assert transport.close_count == 1
        assert credentials.close_count == 1
        assert shared.close_count == 1

    @pytest.mark.asyncio
    async def test_closes_on_error(self, client: ApiClient, transport: ScriptedTransport) -> None:
        transport.script("GET", "/auth/me", offline())
        with pytest.raises(ClassifiedError):
            async with client:
                await client.get_current_user()
        assert transport.close_count == 1
