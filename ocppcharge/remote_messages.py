"""Remote control messages: RemoteStartTransaction, RemoteStopTransaction, ChangeAvailability."""

from __future__ import annotations

import copy
import enum
import logging
from typing import Any

from ocppcharge.core import (
    DEFAULT_ID_TAG,
    IDTAG_LEN_MAX,
    Message,
    OcppError,
    OcppModel,
    lookup,
)

logger = logging.getLogger(__name__)

_REMOTE_PROFILE_KEY = "AO_SRMTPROFILEID_CONN_1"


class Availability(enum.IntEnum):
    """Availability of a connector."""

    INOPERATIVE = 0
    INOPERATIVE_SCHEDULED = 1
    OPERATIVE = 2


def _is_free(connector: Any) -> bool:
    return (
        connector.transaction_id < 0
        and connector.availability == Availability.OPERATIVE
        and connector.session_id_tag is None
    )


class RemoteStartTransaction(Message):
    """Start a charging session on request of the server."""

    operation_type = "RemoteStartTransaction"

    def __init__(self, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.connector_id = -1
        self.id_tag = ""
        self.charging_profile: dict | None = None

    def process_request(self, payload: dict) -> None:
        """Read the request; raises OcppError if idTag or the profile is malformed."""
        self.connector_id = lookup(payload, "connectorId", default=-1)
        error_code: str | None = None

        id_tag = lookup(payload, "idTag", default="")
        if len(id_tag) <= IDTAG_LEN_MAX:
            self.id_tag = id_tag
        if not self.id_tag:
            logger.warning("idTag format violation")
            error_code = "FormationViolation"

        if "chargingProfile" in payload:
            logger.info("Setting Charging profile via RemoteStartTransaction")
            profile = lookup(payload, "chargingProfile", default={})
            if lookup(profile, "chargingProfileId", default=-1) < 0:
                logger.warning("RemoteStartTx profile requires non-negative chargingProfileId")
                error_code = (
                    "PropertyConstraintViolation"
                    if "chargingProfileId" in profile
                    else "FormationViolation"
                )
            self.charging_profile = copy.deepcopy(profile)

        if error_code is not None:
            raise OcppError(error_code, "RemoteStartTransaction request not accepted")

    def _find_connector(self) -> Any:
        if self.model is None:
            return None
        if self.connector_id >= 1:
            connector = self.model.connector(self.connector_id)
            return connector if connector is not None and _is_free(connector) else None
        for connector_id, connector in enumerate(self.model.connectors):
            if connector_id >= 1 and _is_free(connector):
                self.connector_id = connector_id
                return connector
        return None

    def create_confirmation(self) -> dict:
        connector = self._find_connector()
        if connector is None:
            logger.info("No connector to start transaction")
            return {"status": "Rejected"}

        store = self.model.configuration
        remote_profile_id = store.declare(
            _REMOTE_PROFILE_KEY, -1, remote_read=False, remote_write=False
        )
        smart_charging = self.model.smart_charging

        if smart_charging is not None and remote_profile_id.value >= 0:
            clear_id = remote_profile_id.value
            cleared = smart_charging.clear_charging_profile(
                lambda profile_id, _connector, _purpose, _stack: profile_id == clear_id
            )
            remote_profile_id.value = -1
            logger.debug(
                "Cleared Charging Profile from previous RemoteStartTx: %s",
                "success" if cleared else "already cleared",
            )
            store.save()

        connector.begin_session(self.id_tag)

        if self.charging_profile and smart_charging is not None:
            smart_charging.set_charging_profile(self.charging_profile)
            remote_profile_id.value = lookup(
                self.charging_profile, "chargingProfileId", default=-1
            )
            logger.debug("Charging Profile from RemoteStartTx set")
            store.save()

        return {"status": "Accepted"}

    def create_request(self) -> dict:
        return {"idTag": DEFAULT_ID_TAG}


class RemoteStopTransaction(Message):
    """End the session of the transaction the server names."""

    operation_type = "RemoteStopTransaction"

    def __init__(self, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.transaction_id = -1

    def process_request(self, payload: dict) -> None:
        self.transaction_id = lookup(payload, "transactionId", default=-1)

    def create_confirmation(self) -> dict:
        stopped = False
        connectors = self.model.connectors if self.model is not None else []
        for connector in connectors:
            if connector.transaction_id == self.transaction_id:
                stopped = True
                connector.end_session("Remote")
        return {"status": "Accepted" if stopped else "Rejected"}


class ChangeAvailability(Message):
    """Make one connector, or the whole charge point, operative or inoperative."""

    operation_type = "ChangeAvailability"

    def __init__(self, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.accepted = False
        self.scheduled = False

    def process_request(self, payload: dict) -> None:
        connector_id = lookup(payload, "connectorId", default=-1)
        if self.model is None or not self.model.connectors:
            return
        connectors = self.model.connectors
        if connector_id < 0 or connector_id >= len(connectors):
            return

        kind = lookup(payload, "type", default="INVALID")
        if kind == "Operative":
            available = True
        elif kind == "Inoperative":
            available = False
        else:
            return
        self.accepted = True

        targets = connectors if connector_id == 0 else [connectors[connector_id]]
        for connector in targets:
            connector.set_availability(available)
            if connector.availability == Availability.INOPERATIVE_SCHEDULED:
                self.scheduled = True

    def create_confirmation(self) -> dict:
        if not self.accepted:
            status = "Rejected"
        elif self.scheduled:
            status = "Scheduled"
        else:
            status = "Accepted"
        return {"status": status}