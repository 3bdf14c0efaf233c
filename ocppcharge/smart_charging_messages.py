"""Smart charging messages: ClearChargingProfile, GetCompositeSchedule, SetChargingProfile."""

from __future__ import annotations

import copy
import enum
import logging
from typing import Any, Callable

from ocppcharge.core import Message, OcppError, OcppModel, format_timestamp, lookup

logger = logging.getLogger(__name__)


class ChargingProfilePurpose(enum.Enum):
    """Purpose of a charging profile."""

    CHARGE_POINT_MAX_PROFILE = "ChargePointMaxProfile"
    TX_DEFAULT_PROFILE = "TxDefaultProfile"
    TX_PROFILE = "TxProfile"


class ChargingRateUnit(enum.Enum):
    """Unit in which a charging schedule limits the rate."""

    AMP = "A"
    WATT = "W"


ProfileFilter = Callable[[int, int, ChargingProfilePurpose, int], bool]


def profile_filter(payload: dict) -> ProfileFilter:
    """Build a predicate over (profile id, connector id, purpose, stack level) from a request.

    Every criterion present in the payload must match; missing criteria match anything.
    The connector id is not used for matching.
    """
    if "connectorId" in payload:
        logger.warning("Smart Charging does not implement multiple connectors yet. Ignore connectorId")

    def matches(
        charging_profile_id: int,
        connector_id: int,
        purpose: ChargingProfilePurpose,
        stack_level: int,
    ) -> bool:
        if "id" in payload and charging_profile_id != lookup(payload, "id", default=-1):
            return False
        if "chargingProfilePurpose" in payload:
            wanted = lookup(payload, "chargingProfilePurpose", default="INVALID")
            if wanted != ChargingProfilePurpose(purpose).value:
                return False
        if "stackLevel" in payload and stack_level != lookup(payload, "stackLevel", default=-1):
            return False
        return True

    return matches


class ClearChargingProfile(Message):
    """Remove the charging profiles that match the server's criteria."""

    operation_type = "ClearChargingProfile"

    def __init__(self, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.matching_profiles_found = False

    def process_request(self, payload: dict) -> None:
        predicate = profile_filter(payload)
        if self.model is None or self.model.smart_charging is None:
            logger.error("SmartChargingService not initialized! Ignore request")
            return
        self.matching_profiles_found = bool(
            self.model.smart_charging.clear_charging_profile(predicate)
        )

    def create_confirmation(self) -> dict:
        return {"status": "Accepted" if self.matching_profiles_found else "Unknown"}


class GetCompositeSchedule(Message):
    """Report the schedule that results from all active charging profiles."""

    operation_type = "GetCompositeSchedule"

    def __init__(self, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.connector_id = -1
        self.duration = 0
        self.charging_rate_unit = ChargingRateUnit.WATT

    def process_request(self, payload: dict) -> None:
        """Read the request; raises OcppError if it is malformed or unsupported."""
        self.connector_id = lookup(payload, "connectorId", default=-1)
        self.duration = lookup(payload, "duration", default=0)
        unit = lookup(payload, "chargingRateUnit", default="W")

        error_code: str | None = None
        first = unit[:1].upper()
        if first == "A":
            self.charging_rate_unit = ChargingRateUnit.AMP
        elif first == "W":
            self.charging_rate_unit = ChargingRateUnit.WATT
        else:
            error_code = "PropertyConstraintViolation"

        if self.model is not None and self.model.connectors:
            if self.connector_id >= len(self.model.connectors):
                error_code = "PropertyConstraintViolation"

        if self.connector_id < 0 or "duration" not in payload:
            error_code = "FormationViolation"

        if self.model is None or self.model.smart_charging is None:
            logger.error("SmartChargingService not initialized! Ignore request")
            error_code = "NotSupported"

        if error_code is not None:
            raise OcppError(error_code, "GetCompositeSchedule request not accepted")

    def create_confirmation(self) -> dict:
        if self.model is None or self.model.smart_charging is None:
            return {"status": "Rejected"}

        composite = self.model.smart_charging.get_composite_schedule(
            self.connector_id, self.duration
        )
        if composite is not None and not isinstance(composite, dict):
            composite = composite.to_json()
        if not composite:
            return {"status": "Rejected"}

        composite = copy.deepcopy(composite)
        payload: dict[str, Any] = {"status": "Accepted"}
        if self.connector_id > 0:
            payload["connectorId"] = self.connector_id
        start = lookup(composite, "startSchedule", default="")
        payload["scheduleStart"] = start or format_timestamp(self.model.clock.now())
        payload["chargingSchedule"] = composite
        return payload


class SetChargingProfile(Message):
    """Install a charging profile, or send one to the other side."""

    operation_type = "SetChargingProfile"

    def __init__(self, payload_to_client: dict | None = None, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.payload_to_client = copy.deepcopy(payload_to_client)
        self.status: str | None = None

    def process_request(self, payload: dict) -> None:
        profile = lookup(payload, "csChargingProfiles", default={})
        if self.model is not None and self.model.smart_charging is not None:
            self.model.smart_charging.set_charging_profile(profile)

    def create_confirmation(self) -> dict:
        return {"status": "Accepted"}

    def create_request(self) -> dict | None:
        if self.payload_to_client is None:
            return None
        return copy.deepcopy(self.payload_to_client)

    def process_confirmation(self, payload: dict) -> None:
        self.status = lookup(payload, "status", default="Invalid")
        if self.status != "Accepted":
            logger.warning("Send profile: rejected by client")