"""
Schedule repository backed by the hosted database's REST (PostgREST) API.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests
from pendulum import DateTime

from ..domain.exceptions import DataSourceError, NotFoundError, SlotUnavailableError
from ..domain.models import (
    ACTIVE_APPOINTMENT_STATUSES,
    Appointment,
    AppointmentSettings,
    BusinessHours,
    DEFAULT_TIMEZONE,
    TimeBlock,
)

logger = logging.getLogger(__name__)

Params = Sequence[Tuple[str, str]]


class SupabaseRepository:
    """
    Reads and writes scheduling tables through ``<url>/rest/v1/<table>``.

    Filters use PostgREST operators (``eq.``, ``gte.``, ``in.(...)``);
    writes ask for ``return=representation`` so the stored row comes back.
    """

    REST_PATH = "/rest/v1"

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: float = 30,
        fallback_timezone: str = DEFAULT_TIMEZONE,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the REST client.

        Args:
            url: Project base URL, e.g. https://xyz.supabase.co
            api_key: Service or anon key sent as ``apikey`` and bearer token
            timeout: Request timeout in seconds
            fallback_timezone: Timezone used when the settings row has none
            session: Optional requests session (tests inject one)
        """
        self.base_url = url.rstrip("/") + self.REST_PATH
        self.timeout = timeout
        self.fallback_timezone = fallback_timezone
        self.session = session or requests.Session()
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    # Reads

    def get_business_hours(self) -> List[BusinessHours]:
        rows = self._request(
            "GET",
            "business_hours",
            params=[("select", "*"), ("is_active", "eq.true"), ("order", "day_of_week")],
        )
        return self._parse_rows(rows, BusinessHours.from_record, "business_hours")

    def get_appointment_settings(self) -> Optional[AppointmentSettings]:
        rows = self._request(
            "GET",
            "appointment_settings",
            params=[("select", "*"), ("limit", "1")],
        )
        if not rows:
            return None
        try:
            return AppointmentSettings.from_record(rows[0], self.fallback_timezone)
        except (KeyError, ValueError, TypeError) as exc:
            raise DataSourceError(f"Malformed appointment_settings row: {exc}") from exc

    def get_appointments(self, start_date: date, end_date: date) -> List[Appointment]:
        statuses = ",".join(ACTIVE_APPOINTMENT_STATUSES)
        rows = self._request(
            "GET",
            "appointments",
            params=[
                ("select", "*"),
                ("appointment_date", f"gte.{start_date.isoformat()}"),
                ("appointment_date", f"lte.{end_date.isoformat()}"),
                ("status", f"in.({statuses})"),
                ("order", "start_time"),
            ],
        )
        return self._parse_rows(rows, Appointment.from_record, "appointments")

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        rows = self._request(
            "GET",
            "appointments",
            params=[("select", "*"), ("id", f"eq.{appointment_id}")],
        )
        parsed = self._parse_rows(rows, Appointment.from_record, "appointments")
        return parsed[0] if parsed else None

    def get_time_blocks(self, start: DateTime, end: DateTime) -> List[TimeBlock]:
        """Blocks overlapping ``[start, end)``."""
        rows = self._request(
            "GET",
            "time_blocks",
            params=[
                ("select", "*"),
                ("start_datetime", f"lt.{_utc_iso(end)}"),
                ("end_datetime", f"gt.{_utc_iso(start)}"),
                ("order", "start_datetime"),
            ],
        )
        return self._parse_rows(rows, TimeBlock.from_record, "time_blocks")

    # Writes

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        rows = self._request(
            "POST",
            "appointments",
            json=_without_id(appointment.to_record()),
            prefer="return=representation",
        )
        return self._single(rows, Appointment.from_record, "appointments")

    def update_appointment(self, appointment_id: str, changes: Dict[str, Any]) -> Appointment:
        rows = self._request(
            "PATCH",
            "appointments",
            params=[("id", f"eq.{appointment_id}")],
            json=changes,
            prefer="return=representation",
        )
        if not rows:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return self._single(rows, Appointment.from_record, "appointments")

    def upsert_business_hours(self, hours: BusinessHours) -> BusinessHours:
        rows = self._request(
            "POST",
            "business_hours",
            params=[("on_conflict", "day_of_week")],
            json=_without_id(hours.to_record()),
            prefer="resolution=merge-duplicates,return=representation",
        )
        return self._single(rows, BusinessHours.from_record, "business_hours")

    def insert_time_block(self, block: TimeBlock) -> TimeBlock:
        rows = self._request(
            "POST",
            "time_blocks",
            json=_without_id(block.to_record()),
            prefer="return=representation",
        )
        return self._single(rows, TimeBlock.from_record, "time_blocks")

    def delete_time_block(self, block_id: str) -> bool:
        rows = self._request(
            "DELETE",
            "time_blocks",
            params=[("id", f"eq.{block_id}")],
            prefer="return=representation",
        )
        return bool(rows)

    def save_appointment_settings(self, settings: AppointmentSettings) -> AppointmentSettings:
        if settings.id is not None:
            rows = self._request(
                "PATCH",
                "appointment_settings",
                params=[("id", f"eq.{settings.id}")],
                json=_without_id(settings.to_record()),
                prefer="return=representation",
            )
        else:
            rows = self._request(
                "POST",
                "appointment_settings",
                json=settings.to_record(),
                prefer="return=representation",
            )
        return self._single(
            rows,
            lambda row: AppointmentSettings.from_record(row, self.fallback_timezone),
            "appointment_settings",
        )

    # Transport

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[Params] = None,
        json: Optional[Dict[str, Any]] = None,
        prefer: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Perform one REST call and return the decoded rows.

        Raises:
            SlotUnavailableError: On a 409 conflict when writing appointments
            DataSourceError: On any other transport or HTTP failure
        """
        url = f"{self.base_url}/{table}"
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer

        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                params=list(params or []),
                json=json,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise DataSourceError(f"Failed to reach data source for {table}: {e}") from e

        if response.status_code == 409 and table == "appointments":
            raise SlotUnavailableError("The requested time conflicts with an existing appointment")

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise DataSourceError(f"{method} {table} failed: {e}") from e

        if not response.content:
            return []

        try:
            data = response.json()
        except ValueError as e:
            raise DataSourceError(f"Invalid JSON from data source for {table}: {e}") from e

        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise DataSourceError(f"Unexpected response shape for {table}")

        logger.debug("%s %s -> %d row(s)", method, table, len(data))
        return data

    @staticmethod
    def _parse_rows(rows, parser, table: str) -> list:
        try:
            return [parser(row) for row in rows]
        except (KeyError, ValueError, TypeError) as exc:
            raise DataSourceError(f"Malformed {table} row: {exc}") from exc

    def _single(self, rows, parser, table: str):
        if not rows:
            raise DataSourceError(f"Data source returned no row for {table}")
        return self._parse_rows(rows[:1], parser, table)[0]


def _utc_iso(value: DateTime) -> str:
    return value.in_timezone("UTC").to_iso8601_string()


def _without_id(record: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in record.items() if key != "id"}
