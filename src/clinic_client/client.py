"""Patient-facing API facade.

``ApiClient`` exposes the domain calls the app makes (login, appointments,
booking, records, messages) as coroutines.  Every call goes through the
``RequestPipeline``; the facade only shapes request bodies and response
data.

Classes
-------
- ApiClient  — domain calls over a RequestPipeline
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from clinic_client.errors import ClassifiedError, ErrorKind
from clinic_client.pipeline import CallPolicy, QueuedResult, RequestPipeline, RequestSpec
from clinic_client.session.manager import session_from_body

logger = logging.getLogger(__name__)

UPCOMING_APPOINTMENTS_KEY = "upcoming_appointments"
BOOKING_PATH = "/appointments/patient/book"
_CLOSED_STATUSES = frozenset({"cancelled", "completed"})
_DEFAULT_DURATION_MINUTES = 30


class ApiClient:
    """Domain calls of the patient app.

    Parameters
    ----------
    pipeline:
        The request pipeline every call is routed through.
    """

    def __init__(self, pipeline: RequestPipeline) -> None:
        self._pipeline = pipeline

    @property
    def pipeline(self) -> RequestPipeline:
        return self._pipeline

    async def aclose(self) -> None:
        """Release the transport connection pool and the stores."""
        await self._pipeline.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def login(
        self,
        email: str,
        password: str,
        expected_role: str = "patient",
    ) -> dict[str, Any]:
        """Sign in and persist the issued token pair.

        Returns
        -------
        dict[str, Any]
            The login response, with ``user.role`` normalised to lower case.
        """
        data = await self._pipeline.call(
            RequestSpec(
                path="/auth/login",
                method="POST",
                body={
                    "username_or_email": email,
                    "password": password,
                    "expected_role": expected_role or "patient",
                },
                authenticated=False,
            )
        )
        await self._start_session(data)
        user = data.get("user")
        if isinstance(user, dict):
            user["role"] = normalize_role(user.get("role"))
        logger.debug("ApiClient: login succeeded")
        return data

    async def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        phone: str | None = None,
        clinic_id: int = 1,
    ) -> dict[str, Any]:
        """Create a patient account and persist the issued token pair."""
        body: dict[str, Any] = {
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "password": password,
            "username": email,
            "role": "patient",
            "clinic_id": clinic_id,
        }
        if phone:
            body["phone"] = phone
        data = await self._pipeline.call(
            RequestSpec(path="/auth/register", method="POST", body=body, authenticated=False)
        )
        await self._start_session(data)
        return data

    async def logout(self) -> None:
        """Tell the backend, then clear the local session regardless."""
        try:
            await self._pipeline.call(RequestSpec(path="/auth/logout", method="POST"))
        except ClassifiedError as error:
            logger.info("ApiClient: server logout failed (%s), clearing locally", error.kind.value)
        finally:
            await self._pipeline.session.clear()

    async def get_current_user(self) -> dict[str, Any]:
        return await self._pipeline.call(RequestSpec(path="/auth/me"))

    async def is_authenticated(self) -> bool:
        """Return True when a session exists and the backend accepts it.

        Connectivity failures propagate: being offline says nothing about
        the session.
        """
        if await self._pipeline.session.current() is None:
            return False
        try:
            await self.get_current_user()
        except ClassifiedError as error:
            if error.kind is ErrorKind.AUTH:
                return False
            raise
        return True

    async def initiate_mfa(self) -> dict[str, Any]:
        return await self._pipeline.call(
            RequestSpec(path="/auth/mfa/initiate", method="POST", body={})
        )

    async def verify_mfa(self, code: str) -> dict[str, Any]:
        return await self._pipeline.call(
            RequestSpec(path="/auth/mfa/verify", method="POST", body={"code": code})
        )

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    async def get_upcoming_appointments(
        self,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Return future, open appointments, soonest first.

        This read is cache-eligible: when the backend cannot be reached the
        last successfully fetched list is used instead.
        """
        data = await self._pipeline.call(
            RequestSpec(
                path="/appointments/patient-appointments",
                policy=CallPolicy.CACHE_READ,
                cache_key=UPCOMING_APPOINTMENTS_KEY,
            )
        )
        reference = now or datetime.now(timezone.utc)
        if reference.tzinfo is None:
            reference = reference.replace(tzinfo=timezone.utc)
        upcoming = [
            appointment
            for appointment in data or []
            if str(appointment.get("status", "")).lower() not in _CLOSED_STATUSES
            and _parse_datetime(appointment.get("scheduled_datetime")) >= reference
        ]
        return sorted(upcoming, key=lambda item: _parse_datetime(item.get("scheduled_datetime")))

    async def get_all_appointments(self) -> list[dict[str, Any]]:
        """Return every appointment, normalised, newest first."""
        data = await self._pipeline.call(RequestSpec(path="/appointments/patient-appointments"))
        appointments = [normalize_appointment(item) for item in data or []]
        return sorted(
            appointments,
            key=lambda item: _parse_datetime(item["scheduled_datetime"]),
            reverse=True,
        )

    async def get_doctors(self) -> list[dict[str, Any]]:
        return await self._pipeline.call(RequestSpec(path="/users/doctors"))

    async def get_doctor_availability(self, doctor_id: int, date: str) -> list[dict[str, Any]]:
        return await self._pipeline.call(
            RequestSpec(
                path=f"/appointments/doctor/{doctor_id}/availability",
                params={"date": date},
            )
        )

    async def book_appointment(
        self,
        doctor_id: int,
        scheduled_datetime: str,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """Book an appointment, queueing it when the backend is unreachable.

        The clinic and patient ids are resolved first.  A connectivity
        failure at any step records the booking in the offline queue and
        returns a placeholder appointment carrying ``"queued": True``.
        """
        intent: dict[str, Any] = {
            "doctor_id": doctor_id,
            "scheduled_datetime": scheduled_datetime,
            "reason": reason,
        }
        try:
            body = await self._booking_body(intent)
        except ClassifiedError as error:
            if not error.is_connectivity:
                raise
            return _placeholder(await self._pipeline.enqueue(intent))

        result = await self._pipeline.call(
            RequestSpec(
                path=BOOKING_PATH,
                method="POST",
                body=body,
                policy=CallPolicy.QUEUE_WRITE,
                queue_payload=intent,
            )
        )
        if isinstance(result, QueuedResult):
            return _placeholder(result)
        return _lowercase_status(result)

    async def replay_queued_bookings(self, drop_rejected: bool = False) -> int:
        """Submit queued bookings in order, stopping at the first failure.

        Only runs when called.  Returns the number of bookings delivered.
        With ``drop_rejected`` a booking the backend refuses as invalid
        (a client failure, e.g. the slot is gone) is dropped instead of
        blocking every later booking.
        """
        queue = self._pipeline.queue
        if queue is None:
            return 0

        async def deliver(intent: dict[str, Any]) -> Any:
            body = await self._booking_body(intent)
            return await self._pipeline.call(
                RequestSpec(path=BOOKING_PATH, method="POST", body=body)
            )

        discard = _is_rejection if drop_rejected else None
        return await queue.replay(deliver, discard=discard)

    async def cancel_appointment(self, appointment_id: int, reason: str | None = None) -> None:
        await self._pipeline.call(
            RequestSpec(
                path=f"/appointments/{appointment_id}/cancel",
                method="POST",
                body={"reason": reason},
            )
        )

    async def reschedule_appointment(
        self,
        appointment_id: int,
        scheduled_datetime: str,
    ) -> dict[str, Any]:
        return await self._pipeline.call(
            RequestSpec(
                path=f"/appointments/{appointment_id}/reschedule",
                method="POST",
                body={"scheduled_datetime": scheduled_datetime},
            )
        )

    # ------------------------------------------------------------------
    # Profile, records, billing, messages
    # ------------------------------------------------------------------

    async def get_my_patient_profile(self) -> dict[str, Any]:
        return await self._pipeline.call(RequestSpec(path="/patients/me"))

    async def update_my_patient_profile(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self._pipeline.call(RequestSpec(path="/patients/me", method="PUT", body=data))

    async def get_medical_records(self) -> list[dict[str, Any]]:
        return await self._pipeline.call(RequestSpec(path="/clinical/me/history")) or []

    async def get_invoices(self) -> list[dict[str, Any]]:
        return await self._pipeline.call(RequestSpec(path="/financial/invoices/me")) or []

    async def get_message_threads(self) -> list[dict[str, Any]]:
        return await self._pipeline.call(RequestSpec(path="/messages/threads")) or []

    async def send_message(self, thread_id: int, content: str) -> None:
        await self._pipeline.call(
            RequestSpec(
                path=f"/messages/threads/{thread_id}/send",
                method="POST",
                body={"content": content, "attachments": []},
            )
        )

    async def get_notifications(self) -> list[dict[str, Any]]:
        data = await self._pipeline.call(RequestSpec(path="/notifications"))
        if isinstance(data, dict):
            return data.get("data") or []
        return []

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _start_session(self, data: Any) -> None:
        session = session_from_body(data)
        if session is None:
            raise ClassifiedError(
                ErrorKind.SERVER,
                "The server returned an incomplete sign-in response.",
                retriable=False,
            )
        await self._pipeline.session.start(session)

    async def _booking_body(self, intent: dict[str, Any]) -> dict[str, Any]:
        user = await self.get_current_user()
        patient = await self.get_my_patient_profile()
        return {
            "patient_id": patient.get("id"),
            "doctor_id": intent["doctor_id"],
            "clinic_id": user.get("clinic_id"),
            "scheduled_datetime": intent["scheduled_datetime"],
            "reason": intent.get("reason"),
            "appointment_type": "consultation",
        }

    def __repr__(self) -> str:
        return f"ApiClient(pipeline={self._pipeline!r})"


def normalize_role(role: Any) -> Any:
    """Lower-case a role given as a string or an enum-like ``{"value": ...}``."""
    if isinstance(role, str):
        return role.lower()
    if isinstance(role, dict) and isinstance(role.get("value"), str):
        return role["value"].lower()
    return role


def normalize_appointment(raw: dict[str, Any]) -> dict[str, Any]:
    """Fill defaults and lower-case the status of a raw appointment."""
    appointment = dict(raw)
    when = raw.get("scheduled_datetime") or raw.get("datetime") or _now_iso()
    appointment["scheduled_datetime"] = when
    appointment["datetime"] = when
    appointment["duration_minutes"] = raw.get("duration_minutes") or _DEFAULT_DURATION_MINUTES
    appointment["status"] = str(raw.get("status") or "scheduled").lower()
    appointment["appointment_type"] = raw.get("appointment_type") or "consultation"
    appointment["clinic_id"] = raw.get("clinic_id") or 0
    appointment["created_at"] = raw.get("created_at") or _now_iso()
    return appointment


def _is_rejection(error: Exception) -> bool:
    return isinstance(error, ClassifiedError) and error.kind is ErrorKind.CLIENT


def _lowercase_status(data: Any) -> Any:
    if isinstance(data, dict) and isinstance(data.get("status"), str):
        data["status"] = data["status"].lower()
    return data


def _placeholder(result: QueuedResult) -> dict[str, Any]:
    return {
        "id": None,
        "queued": True,
        "doctor_id": result.payload.get("doctor_id"),
        "scheduled_datetime": result.payload.get("scheduled_datetime"),
        "reason": result.payload.get("reason"),
        "duration_minutes": _DEFAULT_DURATION_MINUTES,
        "status": "scheduled",
        "appointment_type": "consultation",
        "created_at": result.enqueued_at.isoformat(),
    }


def _parse_datetime(value: Any) -> datetime:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    if not isinstance(value, str) or not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


__all__ = [
    "ApiClient",
    "BOOKING_PATH",
    "UPCOMING_APPOINTMENTS_KEY",
    "normalize_appointment",
    "normalize_role",
]
