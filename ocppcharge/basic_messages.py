"""Simple OCPP 1.6 messages: Authorize, ClearCache, DataTransfer, Heartbeat, status notifications."""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone

from ocppcharge.core import (
    DEFAULT_ID_TAG,
    IDTAG_LEN_MAX,
    DiagnosticsStatus,
    Message,
    OcppModel,
    format_timestamp,
    lookup,
)

logger = logging.getLogger(__name__)

_HEARTBEAT_REFERENCE = datetime(2019, 11, 1, 11, 59, 55, tzinfo=timezone.utc)


class FirmwareStatus(enum.Enum):
    """Status of a firmware update."""

    DOWNLOADED = "Downloaded"
    DOWNLOAD_FAILED = "DownloadFailed"
    DOWNLOADING = "Downloading"
    IDLE = "Idle"
    INSTALLATION_FAILED = "InstallationFailed"
    INSTALLING = "Installing"
    INSTALLED = "Installed"


class Authorize(Message):
    """Ask the server whether an idTag may charge."""

    operation_type = "Authorize"

    def __init__(self, id_tag: str | None = None, *, model: OcppModel | None = None):
        super().__init__(model=model)
        if id_tag is not None and len(id_tag) <= IDTAG_LEN_MAX:
            self.id_tag = id_tag
        else:
            logger.warning("Format violation of idTag. Use default idTag")
            self.id_tag = DEFAULT_ID_TAG
        self.id_tag_status: str | None = None

    def create_request(self) -> dict:
        return {"idTag": self.id_tag}

    def process_confirmation(self, payload: dict) -> None:
        self.id_tag_status = lookup(payload, "idTagInfo", "status", default="not specified")
        if self.id_tag_status == "Accepted":
            logger.info("Request has been accepted")
        else:
            logger.info("Request has been denied. Reason: %s", self.id_tag_status)

    def create_confirmation(self) -> dict:
        return {"idTagInfo": {"status": "Accepted"}}


class ClearCache(Message):
    """Clear the authorization cache; there is none, so this always succeeds."""

    operation_type = "ClearCache"

    def process_request(self, payload: dict) -> None:
        logger.warning("Authorization Cache not supported - ClearCache is without effect")

    def create_confirmation(self) -> dict:
        return {"status": "Accepted"}


class DataTransfer(Message):
    """Send vendor-specific data to the server."""

    operation_type = "DataTransfer"

    def __init__(self, msg: str, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.msg = msg
        self.status: str | None = None

    def create_request(self) -> dict:
        return {"vendorId": "CustomVendor", "data": self.msg}

    def process_confirmation(self, payload: dict) -> None:
        self.status = lookup(payload, "status", default="Invalid")
        if self.status == "Accepted":
            logger.debug("Request has been accepted")
        else:
            logger.info("Request has been denied")


class Heartbeat(Message):
    """Keep-alive that also carries the server's current time."""

    operation_type = "Heartbeat"

    def create_request(self) -> dict:
        return {}

    def process_confirmation(self, payload: dict) -> None:
        current_time = lookup(payload, "currentTime", default="Invalid")
        if current_time == "Invalid":
            logger.warning("Missing field currentTime. Expect format like 2020-02-01T20:53:32.486Z")
            return
        if self.model is None:
            logger.warning("Could not read time string. Expect format like 2020-02-01T20:53:32.486Z")
            return
        try:
            self.model.clock.set_time(current_time)
        except ValueError:
            logger.warning("Could not read time string. Expect format like 2020-02-01T20:53:32.486Z")
        else:
            logger.debug("Request has been accepted")

    def create_confirmation(self) -> dict:
        selected = _HEARTBEAT_REFERENCE
        if self.model is not None:
            now = self.model.clock.now()
            if now > _HEARTBEAT_REFERENCE:
                selected = now
        return {"currentTime": format_timestamp(selected)}


class DiagnosticsStatusNotification(Message):
    """Report the state of a diagnostics upload."""

    operation_type = "DiagnosticsStatusNotification"

    def __init__(
        self, status: DiagnosticsStatus | None = None, *, model: OcppModel | None = None
    ):
        super().__init__(model=model)
        if status is None:
            if model is not None and model.diagnostics is not None:
                status = model.diagnostics.diagnostics_status()
            else:
                status = DiagnosticsStatus.IDLE
        self.status = status

    def create_request(self) -> dict:
        return {"status": self.status.value}


class FirmwareStatusNotification(Message):
    """Report the state of a firmware update."""

    operation_type = "FirmwareStatusNotification"

    def __init__(self, status: FirmwareStatus | None = None, *, model: OcppModel | None = None):
        super().__init__(model=model)
        if status is None:
            if model is not None and model.firmware is not None:
                status = model.firmware.firmware_status()
            else:
                status = FirmwareStatus.IDLE
        self.status = status

    def create_request(self) -> dict:
        return {"status": self.status.value}