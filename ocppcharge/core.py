"""Shared building blocks: platform hooks, timestamps, configuration and the message base."""

from __future__ import annotations

import enum
import json
import logging
import os
import re
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, ClassVar

logger = logging.getLogger(__name__)

CI_STRING_20_LEN = 20
CI_STRING_25_LEN = 25
CI_STRING_50_LEN = 50
CI_STRING_255_LEN = 255
CI_STRING_500_LEN = 500

IDTAG_LEN_MAX = CI_STRING_20_LEN
CONF_KEYLEN_MAX = CI_STRING_50_LEN
REASON_LEN_MAX = CI_STRING_25_LEN

DEFAULT_ID_TAG = "A0-00-00-00"

MIN_TIME = datetime(2010, 1, 1, tzinfo=timezone.utc)


class OcppEvseState(enum.Enum):
    """Status of a connector as reported in StatusNotification."""

    AVAILABLE = "Available"
    PREPARING = "Preparing"
    CHARGING = "Charging"
    SUSPENDED_EVSE = "SuspendedEVSE"
    SUSPENDED_EV = "SuspendedEV"
    FINISHING = "Finishing"
    RESERVED = "Reserved"
    UNAVAILABLE = "Unavailable"
    FAULTED = "Faulted"
    NOT_SET = "NOT_SET"


class DiagnosticsStatus(enum.Enum):
    """Status of a diagnostics upload."""

    IDLE = "Idle"
    UPLOADED = "Uploaded"
    UPLOAD_FAILED = "UploadFailed"
    UPLOADING = "Uploading"


class OcppError(Exception):
    """An OCPP CallError: a code, a description and optional details."""

    def __init__(self, code: str, description: str = "", details: dict | None = None):
        super().__init__(f"{code}: {description}" if description else code)
        self.code = code
        self.description = description
        self.details = details if details is not None else {}


# --- platform hooks -------------------------------------------------------


@dataclass
class _Platform:
    timer: Callable[[], int] | None = None
    reference: float | None = None
    console: Callable[[str], Any] | None = None


_platform = _Platform()


def tick_ms() -> int:
    """Milliseconds from a monotonic clock, or from the timer set with set_timer."""
    if _platform.timer is not None:
        return int(_platform.timer())
    if _platform.reference is None:
        _platform.reference = time.monotonic()
    return int((time.monotonic() - _platform.reference) * 1000)


def set_timer(get_ms: Callable[[], int] | None) -> None:
    """Use get_ms as the millisecond clock; None restores the monotonic clock."""
    _platform.timer = get_ms


def set_console_out(console_out: Callable[[str], Any] | None) -> None:
    """Route console output to console_out; None restores standard output."""
    _platform.console = console_out
    if console_out is not None:
        console_out("[AO] console initialized\n")


def console_out(msg: str) -> None:
    """Write msg to the configured console."""
    if _platform.console is not None:
        _platform.console(msg)
    else:
        sys.stdout.write(msg)


# --- timestamps -----------------------------------------------------------

_TIMESTAMP_RE = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d+))?"
    r"(Z|[+-]\d{2}:?\d{2})?"
)


def parse_timestamp(text: str) -> datetime:
    """Parse an OCPP date such as 2022-02-01T20:53:32.486Z into an aware UTC datetime."""
    if not isinstance(text, str):
        raise ValueError("timestamp must be a string")
    match = _TIMESTAMP_RE.fullmatch(text.strip())
    if match is None:
        raise ValueError(f"invalid timestamp: {text!r}")
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    micro = int((fraction or "0")[:6].ljust(6, "0"))
    tz = timezone.utc
    if offset and offset != "Z":
        sign = -1 if offset[0] == "-" else 1
        digits = offset[1:].replace(":", "")
        tz = timezone(sign * timedelta(hours=int(digits[:2]), minutes=int(digits[2:])))
    moment = datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), micro, tzinfo=tz
    )
    return moment.astimezone(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as an OCPP date in UTC with milliseconds."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{moment.microsecond // 1000:03d}Z"


def lookup(payload: Any, *keys: str, default: Any) -> Any:
    """Follow keys into nested dicts; return default if missing or of another kind."""
    value = payload
    for key in keys:
        if not isinstance(value, dict) or key not in value:
            return default
        value = value[key]
    if default is None:
        return value
    if isinstance(default, bool):
        return value if isinstance(value, bool) else default
    if isinstance(default, int):
        return value if isinstance(value, int) and not isinstance(value, bool) else default
    if isinstance(default, float):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        return default
    return value if isinstance(value, type(default)) else default


class Clock:
    """The charge point's notion of the current time, settable by the server."""

    def __init__(self, start: datetime = MIN_TIME):
        self._base = start
        self._reference = tick_ms()

    def now(self) -> datetime:
        return self._base + timedelta(milliseconds=tick_ms() - self._reference)

    def set_time(self, text: str) -> None:
        """Set the clock from an OCPP date string; raises ValueError if malformed."""
        self._base = parse_timestamp(text)
        self._reference = tick_ms()


# --- configuration --------------------------------------------------------


def _same_kind(value: Any, default: Any) -> bool:
    if isinstance(default, bool) or isinstance(value, bool):
        return isinstance(value, bool) and isinstance(default, bool)
    if isinstance(default, float):
        return isinstance(value, (int, float))
    return type(value) is type(default)


@dataclass
class Configuration:
    """A single configuration key with its value and access rules."""

    key: str
    value: Any
    remote_read: bool = True
    remote_write: bool = True
    reboot_required: bool = False
    validator: Callable[[str], bool] | None = None

    @property
    def value_type(self) -> type:
        return type(self.value)

    def serialized_value(self) -> str:
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        return str(self.value)

    def ocpp_entry(self) -> dict:
        """The entry for this key in a GetConfiguration response."""
        return {
            "key": self.key,
            "readonly": not self.remote_write,
            "value": self.serialized_value(),
        }


class ConfigurationStore:
    """Declared configuration keys, optionally persisted to a JSON file."""

    def __init__(self, path: str | os.PathLike | None = None):
        self.path = Path(path) if path is not None else None
        self._configs: dict[str, Configuration] = {}
        self._stored: dict[str, Any] = {}
        if self.path is not None and self.path.exists():
            with self.path.open(encoding="utf-8") as handle:
                stored = json.load(handle)
            if not isinstance(stored, dict):
                raise ValueError(f"configuration file {self.path} must hold a JSON object")
            self._stored = stored

    def declare(
        self,
        key: str,
        default: Any,
        *,
        remote_read: bool = True,
        remote_write: bool = True,
        reboot_required: bool = False,
    ) -> Configuration:
        """Return the configuration for key, creating it with default if new."""
        existing = self._configs.get(key)
        if existing is not None:
            if not _same_kind(existing.value, default):
                raise TypeError(
                    f"configuration {key!r} is {existing.value_type.__name__}, "
                    f"not {type(default).__name__}"
                )
            return existing
        value = default
        if key in self._stored and _same_kind(self._stored[key], default):
            value = self._stored[key]
            if isinstance(default, float):
                value = float(value)
        config = Configuration(
            key,
            value,
            remote_read=remote_read,
            remote_write=remote_write,
            reboot_required=reboot_required,
        )
        self._configs[key] = config
        return config

    def get(self, key: str) -> Configuration | None:
        return self._configs.get(key)

    def all(self) -> list[Configuration]:
        """All configurations the remote peer may read, in declaration order."""
        return [config for config in self._configs.values() if config.remote_read]

    def save(self) -> None:
        """Write all values to the file; does nothing without a path."""
        if self.path is None:
            return
        data = dict(self._stored)
        data.update({key: config.value for key, config in self._configs.items()})
        tmp = self.path.with_name(self.path.name + ".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(data, handle)
        os.replace(tmp, self.path)


# --- model and messages ---------------------------------------------------


@dataclass
class OcppModel:
    """The charge point state that messages read and change."""

    clock: Clock = field(default_factory=Clock)
    configuration: ConfigurationStore = field(default_factory=ConfigurationStore)
    connectors: list = field(default_factory=list)
    charge_point_status: Any = None
    smart_charging: Any = None
    metering: Any = None
    transactions: Any = None
    diagnostics: Any = None
    firmware: Any = None

    def connector(self, connector_id: int) -> Any:
        """The connector with this id, or None if out of range."""
        if 0 <= connector_id < len(self.connectors):
            return self.connectors[connector_id]
        return None


class Message:
    """Base of all OCPP messages; the default behaviour sends and accepts empty payloads."""

    operation_type: ClassVar[str] = ""

    def __init__(self, *, model: OcppModel | None = None):
        self.model = model

    def initiate(self) -> None:
        """Called once when the message is about to be sent."""

    def create_request(self) -> dict | None:
        return {}

    def process_confirmation(self, payload: dict) -> None:
        """Handle the response to a request this side sent."""

    def process_request(self, payload: dict) -> None:
        """Handle a request received from the other side."""

    def create_confirmation(self) -> dict | None:
        return {}

    def process_error(self, code: str, description: str, details: dict) -> bool:
        """Handle a CallError; return True if it was dealt with."""
        return False