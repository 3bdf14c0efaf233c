"""Diagnostics upload scheduling with retries and status reporting."""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from ocppcharge.basic_messages import DiagnosticsStatusNotification
from ocppcharge.core import MIN_TIME, DiagnosticsStatus, Message, OcppModel, format_timestamp

logger = logging.getLogger(__name__)

DIAGNOSTICS_FILE_NAME = "diagnostics.log"
FEATURE_PROFILE = "FirmwareManagement"

_UPLOAD_TIMEOUT = timedelta(seconds=60)
_TRANSITION_DELAY = timedelta(seconds=10)
_INITIAL_DELAY = timedelta(seconds=5)
_DEFAULT_STOP_SPAN = timedelta(days=365)
_STOP_MIN = datetime(2021, 1, 1, tzinfo=timezone.utc)


class UploadStatus(enum.Enum):
    """Progress of an upload as reported by the application."""

    NOT_UPLOADED = "NotUploaded"
    UPLOADED = "Uploaded"
    UPLOAD_FAILED = "UploadFailed"


UploadHandler = Callable[[str, "datetime | None", datetime], bool]


class DiagnosticsService:
    """Runs diagnostics uploads requested by the server.

    ``on_upload(location, start_time, stop_time)`` starts the upload;
    ``upload_status_sampler()`` reports its progress. Status notifications are
    passed to ``send``.
    """

    def __init__(
        self,
        model: OcppModel,
        send: Callable[[Message], object] | None = None,
        on_upload: UploadHandler | None = None,
        upload_status_sampler: Callable[[], UploadStatus] | None = None,
    ):
        self.model = model
        self.send = send
        self.on_upload = on_upload
        self.upload_status_sampler = upload_status_sampler

        self.location = ""
        self.retries = 0
        self.retry_interval = 0
        self.start_time: datetime | None = None
        self.stop_time: datetime | None = None
        self.next_try: datetime = MIN_TIME
        self.upload_issued = False
        self.last_reported_status = DiagnosticsStatus.IDLE

        profiles = model.configuration.declare(
            "SupportedFeatureProfiles", FEATURE_PROFILE, remote_read=True, remote_write=False
        )
        if FEATURE_PROFILE not in profiles.value:
            value = profiles.value
            if value and not value.endswith(","):
                value += ","
            profiles.value = value + FEATURE_PROFILE

    def loop(self) -> None:
        """Report status changes and drive the upload and its retries."""
        notification = self._status_notification()
        if notification is not None and self.send is not None:
            self.send(notification)

        now = self.model.clock.now()
        if self.retries <= 0 or now < self.next_try:
            return

        if not self.upload_issued:
            if self.on_upload is not None:
                logger.debug("Call onUpload")
                self.on_upload(self.location, self.start_time, self.stop_time)
                self.upload_issued = True
            else:
                logger.error("onUpload must be set! Will abort")
                self.retries = 0
                self.upload_issued = False

        if not self.upload_issued:
            return

        status = self.upload_status_sampler() if self.upload_status_sampler else None
        if status is UploadStatus.UPLOADED:
            logger.debug("end upload routine (by status)")
            self.upload_issued = False
            self.retries = 0

        if now - self.next_try >= _UPLOAD_TIMEOUT or status is UploadStatus.UPLOAD_FAILED:
            if self.upload_status_sampler is None:
                # No way to know whether it failed; the time is up, so assume success.
                logger.debug("end upload routine (by timer)")
                self.upload_issued = False
                self.retries = 0
            else:
                logger.warning("Upload timeout or failed")
                if timedelta(seconds=self.retry_interval) <= _UPLOAD_TIMEOUT + _TRANSITION_DELAY:
                    self.next_try = now + _TRANSITION_DELAY
                else:
                    self.next_try += timedelta(seconds=self.retry_interval)
                self.retries -= 1

    def request_upload(
        self,
        location: str,
        retries: int = 1,
        retry_interval: int = 0,
        start_time: datetime | None = None,
        stop_time: datetime | None = None,
    ) -> str:
        """Schedule an upload; return the file name, or "" if no upload handler is set.

        Stop times before 2021 count as undefined and are replaced by a time a year ahead.
        """
        if self.on_upload is None:
            return ""

        self.location = location
        self.retries = retries
        self.retry_interval = retry_interval
        self.start_time = start_time

        now = self.model.clock.now()
        if stop_time is not None and stop_time >= _STOP_MIN:
            self.stop_time = stop_time
        else:
            self.stop_time = now + _DEFAULT_STOP_SPAN

        logger.info(
            "Scheduled Diagnostics upload: location = %s, retries = %d, retryInterval = %d, "
            "startTime = %s, stopTime = %s",
            self.location,
            self.retries,
            self.retry_interval,
            format_timestamp(self.start_time) if self.start_time else "undefined",
            format_timestamp(self.stop_time),
        )

        self.next_try = now + _INITIAL_DELAY
        self.upload_issued = False
        logger.debug("Initial try at %s", format_timestamp(self.next_try))
        return DIAGNOSTICS_FILE_NAME

    def diagnostics_status(self) -> DiagnosticsStatus:
        if not self.upload_issued:
            return DiagnosticsStatus.IDLE
        if self.upload_status_sampler is not None:
            status = self.upload_status_sampler()
            if status is UploadStatus.UPLOADED:
                return DiagnosticsStatus.UPLOADED
            if status is UploadStatus.UPLOAD_FAILED:
                return DiagnosticsStatus.UPLOAD_FAILED
        return DiagnosticsStatus.UPLOADING

    def _status_notification(self) -> DiagnosticsStatusNotification | None:
        status = self.diagnostics_status()
        if status is self.last_reported_status:
            return None
        self.last_reported_status = status
        if status is DiagnosticsStatus.IDLE:
            return None
        return DiagnosticsStatusNotification(status, model=self.model)