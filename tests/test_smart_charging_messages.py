import pytest

from ocppcharge.core import MIN_TIME, OcppError, OcppModel, parse_timestamp
from ocppcharge.smart_charging_messages import (
    ChargingProfilePurpose,
    ChargingRateUnit,
    ClearChargingProfile,
    GetCompositeSchedule,
    SetChargingProfile,
    profile_filter,
)


class FakeSmartCharging:
    def __init__(self, profiles=(), composite=None):
        self.profiles = list(profiles)
        self.composite = composite
        self.installed = []
        self.schedule_requests = []

    def clear_charging_profile(self, predicate):
        keep = [p for p in self.profiles if not predicate(*p)]
        found = len(keep) != len(self.profiles)
        self.profiles = keep
        return found

    def get_composite_schedule(self, connector_id, duration):
        self.schedule_requests.append((connector_id, duration))
        return self.composite

    def set_charging_profile(self, profile):
        self.installed.append(profile)


TX = ChargingProfilePurpose.TX_PROFILE
MAX = ChargingProfilePurpose.CHARGE_POINT_MAX_PROFILE


def test_filter_empty_matches_everything():
    predicate = profile_filter({})
    assert predicate(1, 0, TX, 0) is True
    assert predicate(5, 1, MAX, 3) is True


def test_filter_by_id():
    predicate = profile_filter({"id": 4})
    assert predicate(4, 0, TX, 0) is True
    assert predicate(5, 0, TX, 0) is False


def test_filter_by_purpose_and_stack_level():
    predicate = profile_filter({"chargingProfilePurpose": "TxProfile", "stackLevel": 2})
    assert predicate(1, 0, TX, 2) is True
    assert predicate(1, 0, MAX, 2) is False
    assert predicate(1, 0, TX, 1) is False


def test_filter_ignores_connector_id():
    predicate = profile_filter({"connectorId": 3})
    assert predicate(1, 0, TX, 0) is True


def test_clear_removes_matching_profiles():
    service = FakeSmartCharging([(1, 0, TX, 0), (2, 0, MAX, 0)])
    msg = ClearChargingProfile(model=OcppModel(smart_charging=service))
    msg.process_request({"chargingProfilePurpose": "ChargePointMaxProfile"})
    assert msg.create_confirmation() == {"status": "Accepted"}
    assert service.profiles == [(1, 0, TX, 0)]


def test_clear_without_match_is_unknown():
    service = FakeSmartCharging([(1, 0, TX, 0)])
    msg = ClearChargingProfile(model=OcppModel(smart_charging=service))
    msg.process_request({"id": 9})
    assert msg.create_confirmation() == {"status": "Unknown"}
    assert len(service.profiles) == 1


def test_clear_without_service_is_unknown():
    msg = ClearChargingProfile(model=OcppModel())
    msg.process_request({})
    assert msg.create_confirmation() == {"status": "Unknown"}


def test_composite_schedule_accepted():
    schedule = {"startSchedule": "2022-03-01T10:00:00.000Z", "chargingRateUnit": "W"}
    service = FakeSmartCharging(composite=schedule)
    model = OcppModel(smart_charging=service, connectors=[object(), object()])
    msg = GetCompositeSchedule(model=model)
    msg.process_request({"connectorId": 1, "duration": 3600, "chargingRateUnit": "A"})
    assert msg.charging_rate_unit is ChargingRateUnit.AMP
    conf = msg.create_confirmation()
    assert conf["status"] == "Accepted"
    assert conf["connectorId"] == 1
    assert conf["scheduleStart"] == "2022-03-01T10:00:00.000Z"
    assert conf["chargingSchedule"] == schedule
    assert service.schedule_requests == [(1, 3600)]


def test_composite_schedule_uses_now_without_start():
    service = FakeSmartCharging(composite={"chargingRateUnit": "W"})
    msg = GetCompositeSchedule(model=OcppModel(smart_charging=service))
    msg.process_request({"connectorId": 0, "duration": 60})
    conf = msg.create_confirmation()
    assert "connectorId" not in conf
    assert parse_timestamp(conf["scheduleStart"]) >= MIN_TIME


def test_composite_schedule_rejected_without_schedule():
    msg = GetCompositeSchedule(model=OcppModel(smart_charging=FakeSmartCharging()))
    msg.process_request({"connectorId": 0, "duration": 60})
    assert msg.create_confirmation() == {"status": "Rejected"}


def test_composite_schedule_missing_duration():
    msg = GetCompositeSchedule(model=OcppModel(smart_charging=FakeSmartCharging()))
    with pytest.raises(OcppError) as excinfo:
        msg.process_request({"connectorId": 0})
    assert excinfo.value.code == "FormationViolation"


def test_composite_schedule_bad_unit():
    msg = GetCompositeSchedule(model=OcppModel(smart_charging=FakeSmartCharging()))
    with pytest.raises(OcppError) as excinfo:
        msg.process_request({"connectorId": 0, "duration": 10, "chargingRateUnit": "X"})
    assert excinfo.value.code == "PropertyConstraintViolation"


def test_composite_schedule_connector_out_of_range():
    model = OcppModel(smart_charging=FakeSmartCharging(), connectors=[object()])
    msg = GetCompositeSchedule(model=model)
    with pytest.raises(OcppError) as excinfo:
        msg.process_request({"connectorId": 1, "duration": 10})
    assert excinfo.value.code == "PropertyConstraintViolation"


def test_composite_schedule_without_service():
    msg = GetCompositeSchedule(model=OcppModel())
    with pytest.raises(OcppError) as excinfo:
        msg.process_request({"connectorId": 0, "duration": 10})
    assert excinfo.value.code == "NotSupported"
    assert msg.create_confirmation() == {"status": "Rejected"}


def test_set_charging_profile_installs():
    service = FakeSmartCharging()
    msg = SetChargingProfile(model=OcppModel(smart_charging=service))
    profile = {"chargingProfileId": 7, "stackLevel": 0}
    msg.process_request({"connectorId": 1, "csChargingProfiles": profile})
    assert service.installed == [profile]
    assert msg.create_confirmation() == {"status": "Accepted"}


def test_set_charging_profile_request_round_trip():
    payload = {"connectorId": 1, "csChargingProfiles": {"chargingProfileId": 2}}
    msg = SetChargingProfile(payload)
    request = msg.create_request()
    assert request == payload
    request["connectorId"] = 5
    assert msg.create_request() == payload


def test_set_charging_profile_without_payload():
    assert SetChargingProfile().create_request() is None


def test_set_charging_profile_confirmation_status():
    msg = SetChargingProfile({})
    msg.process_confirmation({"status": "Rejected"})
    assert msg.status == "Rejected"
    msg.process_confirmation({})
    assert msg.status == "Invalid"