from datetime import datetime, timedelta, timezone

import pytest

from ocppcharge.core import DiagnosticsStatus, OcppModel, set_timer
from ocppcharge.diagnostics import DiagnosticsService, UploadStatus


@pytest.fixture
def fake_ms():
    ms = [0]
    set_timer(lambda: ms[0])
    yield ms
    set_timer(None)


def advance(ms, seconds):
    ms[0] += seconds * 1000


def test_request_without_handler_returns_empty(fake_ms):
    service = DiagnosticsService(OcppModel())
    assert service.request_upload("ftp://example.com/upload") == ""
    assert service.retries == 0


def test_feature_profile_appended(fake_ms):
    model = OcppModel()
    model.configuration.declare("SupportedFeatureProfiles", "Core,RemoteTrigger")
    DiagnosticsService(model)
    config = model.configuration.get("SupportedFeatureProfiles")
    assert config.value == "Core,RemoteTrigger,FirmwareManagement"


def test_feature_profile_not_duplicated(fake_ms):
    model = OcppModel()
    DiagnosticsService(model)
    DiagnosticsService(model)
    assert model.configuration.get("SupportedFeatureProfiles").value == "FirmwareManagement"


def test_default_stop_time_is_one_year_ahead(fake_ms):
    model = OcppModel()
    calls = []
    service = DiagnosticsService(model, on_upload=lambda *args: calls.append(args) or True)
    now = model.clock.now()
    assert service.request_upload("ftp://example.com/upload") == "diagnostics.log"
    assert service.stop_time - now == timedelta(days=365)
    assert service.next_try - now == timedelta(seconds=5)


def test_explicit_stop_time_kept(fake_ms):
    service = DiagnosticsService(OcppModel(), on_upload=lambda *args: True)
    stop = datetime(2022, 5, 1, tzinfo=timezone.utc)
    service.request_upload("ftp://example.com/upload", stop_time=stop)
    assert service.stop_time == stop


def test_upload_ends_by_timer_without_sampler(fake_ms):
    model = OcppModel()
    calls, sent = [], []
    service = DiagnosticsService(
        model, send=sent.append, on_upload=lambda *args: calls.append(args) or True
    )
    start = datetime(2022, 1, 1, tzinfo=timezone.utc)
    service.request_upload("ftp://example.com/upload", retries=2, start_time=start)

    service.loop()
    assert calls == []

    advance(fake_ms, 5)
    service.loop()
    assert len(calls) == 1
    assert calls[0][0] == "ftp://example.com/upload"
    assert calls[0][1] == start
    assert service.diagnostics_status() is DiagnosticsStatus.UPLOADING

    service.loop()
    assert [msg.create_request() for msg in sent] == [{"status": "Uploading"}]

    advance(fake_ms, 60)
    service.loop()
    assert service.retries == 0
    assert service.diagnostics_status() is DiagnosticsStatus.IDLE


def test_upload_ends_by_status(fake_ms):
    status = [UploadStatus.NOT_UPLOADED]
    service = DiagnosticsService(
        OcppModel(), on_upload=lambda *args: True, upload_status_sampler=lambda: status[0]
    )
    service.request_upload("ftp://example.com/upload", retries=3)
    advance(fake_ms, 5)
    service.loop()
    assert service.diagnostics_status() is DiagnosticsStatus.UPLOADING

    status[0] = UploadStatus.UPLOADED
    assert service.diagnostics_status() is DiagnosticsStatus.UPLOADED
    service.loop()
    assert service.retries == 0
    assert service.diagnostics_status() is DiagnosticsStatus.IDLE


def test_failed_upload_retries_after_delay(fake_ms):
    calls = []
    service = DiagnosticsService(
        OcppModel(),
        on_upload=lambda *args: calls.append(args) or True,
        upload_status_sampler=lambda: UploadStatus.UPLOAD_FAILED,
    )
    service.request_upload("ftp://example.com/upload", retries=2, retry_interval=0)
    advance(fake_ms, 5)
    service.loop()
    assert service.retries == 1
    assert service.diagnostics_status() is DiagnosticsStatus.UPLOAD_FAILED

    service.loop()
    assert service.retries == 1

    advance(fake_ms, 10)
    service.loop()
    assert service.retries == 0
    assert len(calls) == 1


def test_long_retry_interval_moves_next_try(fake_ms):
    service = DiagnosticsService(
        OcppModel(),
        on_upload=lambda *args: True,
        upload_status_sampler=lambda: UploadStatus.UPLOAD_FAILED,
    )
    service.request_upload("ftp://example.com/upload", retries=2, retry_interval=600)
    first_try = service.next_try
    advance(fake_ms, 5)
    service.loop()
    assert service.next_try - first_try == timedelta(seconds=600)
    assert service.retries == 1


def test_model_diagnostics_status_used_by_notification(fake_ms):
    from ocppcharge.basic_messages import DiagnosticsStatusNotification

    model = OcppModel()
    service = DiagnosticsService(model, on_upload=lambda *args: True)
    model.diagnostics = service
    service.request_upload("ftp://example.com/upload")
    advance(fake_ms, 5)
    service.loop()
    msg = DiagnosticsStatusNotification(model=model)
    assert msg.create_request() == {"status": "Uploading"}