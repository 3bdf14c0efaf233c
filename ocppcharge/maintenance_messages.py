"""Maintenance messages: Reset, UnlockConnector, UpdateFirmware, GetDiagnostics."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from ocppcharge.core import Message, OcppError, OcppModel, lookup, parse_timestamp, tick_ms

logger = logging.getLogger(__name__)

UNLOCK_TIMEOUT_MS = 10_000
DEFAULT_RETRIES = 1
DEFAULT_RETRY_INTERVAL = 180


class Reset(Message):
    """Restart the charge point on request of the server.

    The charge point status service (``model.charge_point_status``) provides
    ``execute_reset``, an optional ``pre_reset`` veto and ``initiate_reset(is_hard)``.
    """

    operation_type = "Reset"

    def __init__(self, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.reset_accepted = False
        self.is_hard = False

    def process_request(self, payload: dict) -> None:
        self.is_hard = lookup(payload, "type", default="undefined") == "Hard"

        service = self.model.charge_point_status if self.model is not None else None
        if service is None:
            # Without a status service the application is assumed to handle the reset.
            self.reset_accepted = True
            return

        if getattr(service, "execute_reset", None) is None:
            logger.error("No reset handler set. Abort operation")
            return

        pre_reset: Callable[[bool], bool] | None = getattr(service, "pre_reset", None)
        if pre_reset is None or pre_reset(self.is_hard) or self.is_hard:
            self.reset_accepted = True
            service.initiate_reset(self.is_hard)
            reason = "HardReset" if self.is_hard else "SoftReset"
            for connector in self.model.connectors:
                if connector is not None:
                    connector.end_session(reason)

    def create_confirmation(self) -> dict:
        return {"status": "Accepted" if self.reset_accepted else "Rejected"}


class UnlockConnector(Message):
    """Unlock a connector; the result may take a while to become known.

    The connector's ``on_unlock_connector`` callback returns True or False once
    the outcome is known and None while it is still pending.
    """

    operation_type = "UnlockConnector"

    def __init__(self, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.error = False
        self.unlock: Callable[[], bool | None] | None = None
        self.result: bool | None = None
        self.timer_start = 0

    def process_request(self, payload: dict) -> None:
        connector_id = lookup(payload, "connectorId", default=-1)
        connector = self.model.connector(connector_id) if self.model is not None else None
        if connector is None:
            self.error = True
            return

        connector.end_session("UnlockCommand")

        self.unlock = getattr(connector, "on_unlock_connector", None)
        if self.unlock is not None:
            self.result = self.unlock()
        else:
            logger.warning("Unlock CB undefined")

        self.timer_start = tick_ms()

    def create_confirmation(self) -> dict | None:
        """The response, or None while the unlock result is still pending."""
        if not self.error and tick_ms() - self.timer_start < UNLOCK_TIMEOUT_MS:
            if self.unlock is not None and self.result is None:
                self.result = self.unlock()
                if self.result is None:
                    return None

        if self.error or self.unlock is None:
            status = "NotSupported"
        elif self.result:
            status = "Unlocked"
        else:
            status = "UnlockFailed"
        return {"status": status}


class UpdateFirmware(Message):
    """Schedule a firmware download and installation."""

    operation_type = "UpdateFirmware"

    def __init__(self, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.location = ""
        self.retrieve_date: datetime | None = None
        self.retries = DEFAULT_RETRIES
        self.retry_interval = DEFAULT_RETRY_INTERVAL

    def process_request(self, payload: dict) -> None:
        """Read the request; raises OcppError if location or retrieveDate is malformed."""
        self.location = lookup(payload, "location", default="")
        if not self.location:
            logger.warning("Could not read location. Abort")
            raise OcppError("FormationViolation", "Could not read location")

        raw_date = lookup(payload, "retrieveDate", default="Invalid")
        try:
            self.retrieve_date = parse_timestamp(raw_date)
        except ValueError as exc:
            logger.warning("Could not read retrieveDate. Abort")
            raise OcppError("FormationViolation", "Could not read retrieveDate") from exc

        self.retries = lookup(payload, "retries", default=DEFAULT_RETRIES)
        self.retry_interval = lookup(payload, "retryInterval", default=DEFAULT_RETRY_INTERVAL)

    def create_confirmation(self) -> dict:
        firmware = self.model.firmware if self.model is not None else None
        if firmware is not None:
            firmware.schedule_firmware_update(
                self.location, self.retrieve_date, self.retries, self.retry_interval
            )
        else:
            logger.error("FirmwareService has not been initialized before! Abort")
        return {}


class GetDiagnostics(Message):
    """Ask the charge point to upload a diagnostics file."""

    operation_type = "GetDiagnostics"

    def __init__(self, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.location = ""
        self.retries = DEFAULT_RETRIES
        self.retry_interval = DEFAULT_RETRY_INTERVAL
        self.start_time: datetime | None = None
        self.stop_time: datetime | None = None
        self.file_name = ""

    def process_request(self, payload: dict) -> None:
        """Read the request; raises OcppError if location or a time is malformed."""
        self.location = lookup(payload, "location", default="")
        if not self.location:
            logger.warning("Could not read location. Abort")
            raise OcppError("FormationViolation", "Could not read location")

        self.retries = lookup(payload, "retries", default=DEFAULT_RETRIES)
        self.retry_interval = lookup(payload, "retryInterval", default=DEFAULT_RETRY_INTERVAL)

        if "startTime" in payload:
            self.start_time = self._read_time(payload, "startTime")
            # A start time requires a stop time as well.
            self.stop_time = self._read_time(payload, "stopTime")

    @staticmethod
    def _read_time(payload: dict, key: str) -> datetime:
        try:
            return parse_timestamp(lookup(payload, key, default="Invalid"))
        except ValueError as exc:
            logger.warning("Could not read %s. Abort", key)
            raise OcppError("FormationViolation", f"Could not read {key}") from exc

    def create_confirmation(self) -> dict:
        service: Any = self.model.diagnostics if self.model is not None else None
        if service is None:
            logger.warning("DiagnosticsService has not been initialized before! Abort")
            return {}

        self.file_name = service.request_upload(
            self.location, self.retries, self.retry_interval, self.start_time, self.stop_time
        )
        if not self.file_name:
            return {}
        return {"fileName": self.file_name}