"""Provisioning messages: BootNotification, ChangeConfiguration, GetConfiguration, MeterValues."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from ocppcharge.core import (
    Configuration,
    Message,
    OcppError,
    OcppModel,
    format_timestamp,
    lookup,
)

logger = logging.getLogger(__name__)

_BOOT_REFERENCE = datetime(2022, 1, 28, 11, 59, 55, tzinfo=timezone.utc)
_DEFAULT_HEARTBEAT_INTERVAL = 86400
_INT_MAX_DIGITS = 9


class BootNotification(Message):
    """Announce the charge point to the server and receive time and heartbeat interval."""

    operation_type = "BootNotification"

    def __init__(self, credentials: dict | None = None, *, model: OcppModel | None = None):
        super().__init__(model=model)
        if credentials is not None and not isinstance(credentials, dict):
            raise TypeError("credentials must be a JSON object")
        self.credentials = copy.deepcopy(credentials) if credentials is not None else None
        self.status: str | None = None

    def _status_service(self) -> Any:
        return self.model.charge_point_status if self.model is not None else None

    def initiate(self) -> None:
        """Hand the credentials over to the charge point status service, if there is one."""
        status_service = self._status_service()
        if self.credentials is not None and status_service is not None:
            status_service.credentials = copy.deepcopy(self.credentials)
            self.credentials = None

    def create_request(self) -> dict:
        status_service = self._status_service()
        if status_service is not None:
            stored = getattr(status_service, "credentials", None)
            if not stored:
                return {}
            if isinstance(stored, str):
                try:
                    stored = json.loads(stored)
                except ValueError as exc:
                    logger.error("could not parse stored credentials: %s", exc)
                    stored = None
            if isinstance(stored, dict):
                return copy.deepcopy(stored)
            if stored is not None:
                logger.error("could not parse stored credentials: not a JSON object")

        if self.credentials is not None:
            return copy.deepcopy(self.credentials)

        logger.error("payload undefined")
        return {}

    def process_confirmation(self, payload: dict) -> None:
        current_time = lookup(payload, "currentTime", default="Invalid")
        if current_time != "Invalid":
            try:
                if self.model is None:
                    raise ValueError("no clock")
                self.model.clock.set_time(current_time)
            except ValueError:
                logger.error(
                    "Time string format violation. Expect format like 2022-02-01T20:53:32.486Z"
                )
        else:
            logger.error("Missing attribute currentTime")

        interval = lookup(payload, "interval", default=-1)
        if interval >= 1 and self.model is not None:
            store = self.model.configuration
            config = store.declare("HeartbeatInterval", _DEFAULT_HEARTBEAT_INTERVAL)
            if config.value != interval:
                config.value = interval
                store.save()

        self.status = lookup(payload, "status", default="Invalid")
        if self.status == "Accepted":
            logger.info("Request has been accepted")
            status_service = self._status_service()
            if status_service is not None:
                status_service.boot()
        else:
            logger.warning("Request unsuccessful")

    def create_confirmation(self) -> dict:
        selected = _BOOT_REFERENCE
        if self.model is not None:
            now = self.model.clock.now()
            if now > _BOOT_REFERENCE:
                selected = now
        return {
            "currentTime": format_timestamp(selected),
            "interval": _DEFAULT_HEARTBEAT_INTERVAL,
            "status": "Accepted",
        }


@dataclass(frozen=True)
class ParsedValue:
    """The readings of a configuration value string as int, float and bool."""

    as_int: int | None
    as_float: float | None
    as_bool: bool | None


def parse_config_value(value: str) -> ParsedValue:
    """Interpret a ChangeConfiguration value as number and boolean where possible.

    Only plain decimal notation is accepted: an optional leading minus sign,
    digits and at most one dot. Integers are limited to nine digits.
    """
    n_digits = n_non_digits = n_dots = n_sign = 0
    num_int = 0
    num_float = 0.0
    translate = 1.0
    for position, char in enumerate(value):
        if "0" <= char <= "9":
            if n_dots == 0:
                n_digits += 1
                num_int = num_int * 10 + int(char)
            num_float = num_float * 10.0 + float(int(char))
            if n_dots != 0:
                translate *= 10.0
        elif char == ".":
            n_dots += 1
        elif position == 0 and char == "-":
            n_sign += 1
        else:
            n_non_digits += 1

    num_float /= translate
    if n_sign == 1:
        num_int = -num_int
        num_float = -num_float

    convertible_int = convertible_float = True
    if n_non_digits > 0 or n_digits == 0 or n_sign > 1 or n_dots > 1:
        convertible_int = convertible_float = False
    if n_digits > _INT_MAX_DIGITS:
        logger.debug("Possible integer overflow: value = %s", value)
        convertible_int = False
    if num_float != num_float:
        convertible_float = False

    lowered = value.lower()
    if lowered == "true":
        as_bool: bool | None = True
    elif lowered == "false":
        as_bool = False
    elif convertible_int:
        as_bool = num_int != 0
    else:
        as_bool = None

    return ParsedValue(
        as_int=num_int if convertible_int else None,
        as_float=num_float if convertible_float else None,
        as_bool=as_bool,
    )


def _converted(config: Configuration, value: str) -> tuple[bool, Any]:
    """Return (ok, new value) for writing value into config."""
    parsed = parse_config_value(value)
    current = config.value
    if isinstance(current, bool):
        return parsed.as_bool is not None, parsed.as_bool
    if isinstance(current, int):
        return parsed.as_int is not None, parsed.as_int
    if isinstance(current, float):
        return parsed.as_float is not None, parsed.as_float
    if isinstance(current, str):
        return True, value
    return False, None


class ChangeConfiguration(Message):
    """Change a configuration key on request of the server."""

    operation_type = "ChangeConfiguration"

    def __init__(self, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.reject = False
        self.reboot_required = False
        self.read_only = False
        self.not_supported = False

    def process_request(self, payload: dict) -> None:
        """Apply the change; raises OcppError for malformed requests or failed saves."""
        key = lookup(payload, "key", default="")
        if not key:
            logger.warning("Could not read key")
            raise OcppError("FormationViolation", "Could not read key")

        value = lookup(payload, "value", default=None)
        if not isinstance(value, str):
            logger.warning("Message is lacking value")
            raise OcppError("FormationViolation", "Message is lacking value")

        config = self.model.configuration.get(key) if self.model is not None else None
        if config is None:
            self.not_supported = True
            return

        if not config.remote_write:
            logger.warning("Trying to override readonly value")
            if config.remote_read:
                self.read_only = True
            else:
                self.not_supported = True
            return

        ok, new_value = _converted(config, value)
        if not ok:
            self.reject = True
            logger.warning("Value has incompatible type")
            return

        if isinstance(config.value, str) and config.validator is not None:
            if not config.validator(value):
                self.reject = True
                logger.warning("validation failed for key=%s value=%s", key, value)
                return

        config.value = new_value

        try:
            self.model.configuration.save()
        except OSError as exc:
            logger.error("could not write changes to flash")
            raise OcppError("InternalError", "could not write changes") from exc

        if config.reboot_required:
            self.reboot_required = True

    def create_confirmation(self) -> dict:
        if self.not_supported:
            status = "NotSupported"
        elif self.reject or self.read_only:
            status = "Rejected"
        elif self.reboot_required:
            status = "RebootRequired"
        else:
            status = "Accepted"
        return {"status": status}


class GetConfiguration(Message):
    """Report configuration keys and their values to the server."""

    operation_type = "GetConfiguration"

    def __init__(self, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.keys: list[str] = []

    def process_request(self, payload: dict) -> None:
        requested = lookup(payload, "key", default=[])
        self.keys.extend(key for key in requested if isinstance(key, str))

    def create_confirmation(self) -> dict:
        store = self.model.configuration if self.model is not None else None
        unknown: list[str] = []
        if not self.keys:
            configs = store.all() if store is not None else []
        else:
            configs = []
            for key in self.keys:
                config = store.get(key) if store is not None else None
                if config is not None and config.remote_read:
                    configs.append(config)
                else:
                    unknown.append(key)

        payload: dict = {"configurationKey": [config.ocpp_entry() for config in configs]}
        if unknown:
            for key in unknown:
                logger.debug("Unknown key: %s", key)
            payload["unknownKey"] = unknown
        return payload


class MeterValues(Message):
    """Send meter readings of a connector, optionally tied to a transaction."""

    operation_type = "MeterValues"

    def __init__(
        self,
        meter_values: Iterable[Any] = (),
        connector_id: int = 0,
        transaction: Any = None,
        *,
        model: OcppModel | None = None,
    ):
        super().__init__(model=model)
        self.meter_values = list(meter_values)
        self.connector_id = connector_id
        self.transaction = transaction

    def create_request(self) -> dict:
        entries = []
        for meter_value in self.meter_values:
            entry = meter_value if isinstance(meter_value, dict) else meter_value.to_json()
            if entry is None:
                logger.error("Energy meter reading not convertible to JSON")
                continue
            entries.append(entry)

        payload: dict = {"connectorId": self.connector_id}
        if self.transaction is not None and not self.transaction.silent:
            payload["transactionId"] = self.transaction.transaction_id
        payload["meterValue"] = entries
        return payload

    def process_confirmation(self, payload: dict) -> None:
        logger.debug("Request has been confirmed")

    def create_confirmation(self) -> dict:
        return {}