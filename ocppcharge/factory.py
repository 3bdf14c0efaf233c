"""Creation of OCPP operations by action name, listener wiring and TriggerMessage."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from ocppcharge.basic_messages import (
    Authorize,
    ClearCache,
    DiagnosticsStatusNotification,
    FirmwareStatusNotification,
    Heartbeat,
)
from ocppcharge.core import DEFAULT_ID_TAG, Message, OcppError, OcppModel, lookup
from ocppcharge.maintenance_messages import (
    GetDiagnostics,
    Reset,
    UnlockConnector,
    UpdateFirmware,
)
from ocppcharge.provisioning import (
    BootNotification,
    ChangeConfiguration,
    GetConfiguration,
    MeterValues,
)
from ocppcharge.remote_messages import (
    ChangeAvailability,
    RemoteStartTransaction,
    RemoteStopTransaction,
)
from ocppcharge.smart_charging_messages import (
    ClearChargingProfile,
    GetCompositeSchedule,
    SetChargingProfile,
)
from ocppcharge.transaction_messages import (
    StartTransaction,
    StatusNotification,
    StopTransaction,
)

logger = logging.getLogger(__name__)

Listener = Callable[[dict], Any]
MessageCreator = Callable[[], Message]

RECEIVE_REQUEST_LISTENER_TYPES = frozenset(
    {
        "Authorize",
        "BootNotification",
        "SetChargingProfile",
        "StartTransaction",
        "TriggerMessage",
        "RemoteStartTransaction",
        "RemoteStopTransaction",
        "ChangeConfiguration",
        "GetConfiguration",
        "Reset",
        "UpdateFirmware",
        "MeterValues",
    }
)

SEND_CONFIRMATION_LISTENER_TYPES = frozenset(
    {
        "RemoteStartTransaction",
        "RemoteStopTransaction",
        "ChangeConfiguration",
        "GetConfiguration",
        "Reset",
    }
)


@dataclass
class Operation:
    """A message together with the listeners the application attached to it."""

    message: Message
    on_receive_request: Listener | None = None
    on_send_confirmation: Listener | None = None


class NotImplementedMessage(Message):
    """Stands in for an action this charge point does not support."""

    def __init__(self, operation_type: str = "NotImplemented", *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.operation_type = operation_type

    def process_request(self, payload: dict) -> None:
        raise OcppError("NotImplemented", f"Operation {self.operation_type} not supported")

    def create_request(self) -> dict:
        return {}

    def process_confirmation(self, payload: dict) -> None:
        raise OcppError("NotImplemented", f"Operation {self.operation_type} not supported")

    def create_confirmation(self) -> dict:
        return {}


class OperationFactory:
    """Builds operations for OCPP actions.

    Custom messages registered with ``register_custom_message`` take precedence
    over the built-in ones. ``send`` receives the operations TriggerMessage
    starts.
    """

    def __init__(
        self,
        model: OcppModel | None = None,
        send: Callable[[Operation], object] | None = None,
    ):
        self.model = model
        self.send = send
        self._custom: dict[str, tuple[MessageCreator, Listener | None]] = {}
        self._receive_listeners: dict[str, Listener] = {}
        self._confirmation_listeners: dict[str, Listener] = {}

    def register_custom_message(
        self,
        message_type: str,
        creator: MessageCreator,
        on_receive_request: Listener | None = None,
    ) -> None:
        """Register (or replace) a creator for message_type."""
        self._custom.pop(message_type, None)
        self._custom[message_type] = (creator, on_receive_request)

    def set_on_receive_request(self, message_type: str, listener: Listener | None) -> None:
        """Attach a listener called when a request of message_type arrives."""
        if message_type not in RECEIVE_REQUEST_LISTENER_TYPES:
            raise ValueError(f"no receive-request listener for {message_type}")
        if listener is None:
            self._receive_listeners.pop(message_type, None)
        else:
            self._receive_listeners[message_type] = listener

    def set_on_send_confirmation(self, message_type: str, listener: Listener | None) -> None:
        """Attach a listener called when a confirmation of message_type is sent."""
        if message_type not in SEND_CONFIRMATION_LISTENER_TYPES:
            raise ValueError(f"no send-confirmation listener for {message_type}")
        if listener is None:
            self._confirmation_listeners.pop(message_type, None)
        else:
            self._confirmation_listeners[message_type] = listener

    def _builtin(self, message_type: str, connector_id: int) -> Message | None:
        model = self.model
        simple: dict[str, Callable[[], Message]] = {
            "Authorize": lambda: Authorize(DEFAULT_ID_TAG, model=model),
            "BootNotification": lambda: BootNotification(model=model),
            "GetCompositeSchedule": lambda: GetCompositeSchedule(model=model),
            "Heartbeat": lambda: Heartbeat(model=model),
            "MeterValues": lambda: MeterValues(model=model),
            "SetChargingProfile": lambda: SetChargingProfile(model=model),
            "StatusNotification": lambda: StatusNotification(connector_id, model=model),
            "StartTransaction": lambda: StartTransaction(model=model),
            "StopTransaction": lambda: StopTransaction(model=model),
            "TriggerMessage": lambda: TriggerMessage(self, model=model),
            "RemoteStartTransaction": lambda: RemoteStartTransaction(model=model),
            "RemoteStopTransaction": lambda: RemoteStopTransaction(model=model),
            "ChangeConfiguration": lambda: ChangeConfiguration(model=model),
            "GetConfiguration": lambda: GetConfiguration(model=model),
            "Reset": lambda: Reset(model=model),
            "UpdateFirmware": lambda: UpdateFirmware(model=model),
            "FirmwareStatusNotification": lambda: FirmwareStatusNotification(model=model),
            "GetDiagnostics": lambda: GetDiagnostics(model=model),
            "DiagnosticsStatusNotification": lambda: DiagnosticsStatusNotification(model=model),
            "UnlockConnector": lambda: UnlockConnector(model=model),
            "ClearChargingProfile": lambda: ClearChargingProfile(model=model),
            "ChangeAvailability": lambda: ChangeAvailability(model=model),
            "ClearCache": lambda: ClearCache(model=model),
        }
        make = simple.get(message_type)
        return make() if make is not None else None

    def create(self, message_type: str, connector_id: int = -1) -> Operation:
        """Build the operation for message_type; unknown types get a NotImplementedMessage."""
        custom = self._custom.get(message_type)
        if custom is not None:
            creator, on_receive = custom
            return Operation(creator(), on_receive_request=on_receive)

        message = self._builtin(message_type, connector_id)
        if message is None:
            logger.warning("Operation not supported")
            return Operation(NotImplementedMessage(message_type, model=self.model))

        return Operation(
            message,
            on_receive_request=self._receive_listeners.get(message_type),
            on_send_confirmation=self._confirmation_listeners.get(message_type),
        )

    def from_json(self, message: list) -> Operation:
        """Build the operation for an OCPP-J call ``[2, id, action, payload]``."""
        if not isinstance(message, (list, tuple)) or len(message) < 3:
            raise ValueError("OCPP-J message must be an array with an action at index 2")
        action = message[2]
        if not isinstance(action, str):
            raise ValueError("OCPP-J action must be a string")
        return self.create(action)

    def wrap(self, message: Message | None) -> Operation:
        """Wrap an existing message in an operation."""
        if message is None:
            logger.error("msg is null")
            raise ValueError("message must not be None")
        return Operation(message)

    def clear(self) -> None:
        """Forget all custom messages and listeners."""
        self._custom.clear()
        self._receive_listeners.clear()
        self._confirmation_listeners.clear()


class TriggerMessage(Message):
    """Make the charge point send a message on request of the server."""

    operation_type = "TriggerMessage"

    def __init__(self, factory: OperationFactory, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.factory = factory
        self.triggered: list[Operation] = []
        self.status: str | None = None

    def _as_operation(self, item: Any) -> Operation | None:
        if item is None or isinstance(item, Operation):
            return item
        return self.factory.wrap(item)

    def process_request(self, payload: dict) -> None:
        """Prepare the requested messages; raises OcppError for an invalid connector."""
        requested = lookup(payload, "requestedMessage", default="Invalid")
        connector_id = lookup(payload, "connectorId", default=-1)
        logger.info("Execute for message type %s, connectorId = %d", requested, connector_id)

        self.status = "Rejected"
        error_code: str | None = None

        if requested == "MeterValues":
            metering = self.model.metering if self.model is not None else None
            if metering is not None:
                count = metering.num_connectors
                if connector_id < 0:
                    targets = list(range(count))
                elif connector_id < count:
                    targets = [connector_id]
                else:
                    targets = []
                    error_code = "PropertyConstraintViolation"
                for target in targets:
                    operation = self._as_operation(metering.take_triggered_meter_values(target))
                    if operation is not None:
                        self.triggered.append(operation)
        elif requested == "StatusNotification":
            connectors = self.model.connectors if self.model is not None else None
            if connectors:
                count = len(connectors)
                if connector_id < 0:
                    targets = list(range(count))
                elif connector_id < count:
                    targets = [connector_id]
                else:
                    targets = []
                    error_code = "PropertyConstraintViolation"
                self.triggered.extend(self.factory.create(requested, t) for t in targets)
        else:
            operation = self.factory.create(requested, connector_id)
            if operation is not None:
                self.triggered.append(operation)
            else:
                self.status = "NotImplemented"

        if self.triggered:
            self.status = "Accepted"
        elif error_code is not None:
            logger.error("errorCode: %s", error_code)
            raise OcppError(error_code, "connectorId out of range")
        else:
            logger.warning("TriggerMessage denied. statusMessage: %s", self.status)

    def create_confirmation(self) -> dict:
        payload = {"status": self.status}
        send = self.factory.send
        if send is not None:
            for operation in self.triggered:
                send(operation)
        self.triggered.clear()
        return payload