from types import SimpleNamespace

import pytest

from ocppcharge.basic_messages import Authorize, ClearCache, Heartbeat
from ocppcharge.core import OcppError
from ocppcharge.factory import (
    NotImplementedMessage,
    Operation,
    OperationFactory,
    TriggerMessage,
)
from ocppcharge.transaction_messages import StatusNotification

BUILTIN_TYPES = [
    "Authorize",
    "BootNotification",
    "GetCompositeSchedule",
    "Heartbeat",
    "MeterValues",
    "SetChargingProfile",
    "StatusNotification",
    "StartTransaction",
    "StopTransaction",
    "TriggerMessage",
    "RemoteStartTransaction",
    "RemoteStopTransaction",
    "ChangeConfiguration",
    "GetConfiguration",
    "Reset",
    "UpdateFirmware",
    "FirmwareStatusNotification",
    "GetDiagnostics",
    "DiagnosticsStatusNotification",
    "UnlockConnector",
    "ClearChargingProfile",
    "ChangeAvailability",
    "ClearCache",
]


@pytest.mark.parametrize("message_type", BUILTIN_TYPES)
def test_create_builtin_has_matching_type(message_type):
    operation = OperationFactory().create(message_type)
    assert isinstance(operation, Operation)
    assert operation.message.operation_type == message_type


def test_authorize_uses_default_id_tag():
    operation = OperationFactory().create("Authorize")
    assert isinstance(operation.message, Authorize)
    assert operation.message.create_request() == {"idTag": "A0-00-00-00"}


def test_status_notification_gets_connector_id():
    operation = OperationFactory().create("StatusNotification", 3)
    assert operation.message.connector_id == 3


def test_unknown_type_is_not_implemented():
    operation = OperationFactory().create("Unheard")
    assert isinstance(operation.message, NotImplementedMessage)
    assert operation.message.operation_type == "Unheard"
    with pytest.raises(OcppError):
        operation.message.process_request({})


def test_model_is_passed_to_messages():
    model = SimpleNamespace(connectors=[], metering=None)
    operation = OperationFactory(model).create("ClearCache")
    assert operation.message.model is model


def test_listeners_are_attached():
    factory = OperationFactory()
    received = []
    confirmed = []
    factory.set_on_receive_request("Reset", received.append)
    factory.set_on_send_confirmation("Reset", confirmed.append)
    operation = factory.create("Reset")
    assert operation.on_receive_request == received.append
    assert operation.on_send_confirmation == confirmed.append
    other = factory.create("Heartbeat")
    assert other.on_receive_request is None
    assert other.on_send_confirmation is None


def test_unsupported_listener_types_raise():
    factory = OperationFactory()
    with pytest.raises(ValueError):
        factory.set_on_receive_request("Heartbeat", print)
    with pytest.raises(ValueError):
        factory.set_on_send_confirmation("Authorize", print)


def test_custom_message_overrides_builtin_and_replaces():
    factory = OperationFactory()
    listener = [].append
    factory.register_custom_message("Heartbeat", ClearCache, listener)
    operation = factory.create("Heartbeat")
    assert isinstance(operation.message, ClearCache)
    assert operation.on_receive_request == listener

    factory.register_custom_message("Heartbeat", Heartbeat)
    replaced = factory.create("Heartbeat")
    assert isinstance(replaced.message, Heartbeat)
    assert replaced.on_receive_request is None


def test_clear_removes_custom_and_listeners():
    factory = OperationFactory()
    factory.register_custom_message("Heartbeat", ClearCache)
    factory.set_on_receive_request("Reset", print)
    factory.clear()
    assert isinstance(factory.create("Heartbeat").message, Heartbeat)
    assert factory.create("Reset").on_receive_request is None


def test_from_json_reads_action():
    operation = OperationFactory().from_json([2, "msg-1", "Heartbeat", {}])
    assert isinstance(operation.message, Heartbeat)
    assert operation.message.operation_type == "Heartbeat"
    assert operation.message.create_request() == {}


@pytest.mark.parametrize("bad", [[2, "msg-1"], [2, "msg-1", 7, {}], "Heartbeat"])
def test_from_json_rejects_malformed(bad):
    with pytest.raises(ValueError):
        OperationFactory().from_json(bad)


def test_wrap():
    factory = OperationFactory()
    message = Heartbeat()
    assert factory.wrap(message).message is message
    with pytest.raises(ValueError):
        factory.wrap(None)


def test_trigger_heartbeat_sends_operation():
    sent = []
    factory = OperationFactory(send=sent.append)
    trigger = factory.create("TriggerMessage").message
    assert isinstance(trigger, TriggerMessage)
    trigger.process_request({"requestedMessage": "Heartbeat"})
    assert trigger.create_confirmation() == {"status": "Accepted"}
    assert len(sent) == 1
    assert isinstance(sent[0].message, Heartbeat)
    assert trigger.triggered == []


def test_trigger_status_notification_for_all_connectors():
    sent = []
    model = SimpleNamespace(connectors=[object(), object(), object()], metering=None)
    factory = OperationFactory(model, send=sent.append)
    trigger = TriggerMessage(factory, model=model)
    trigger.process_request({"requestedMessage": "StatusNotification"})
    assert trigger.create_confirmation() == {"status": "Accepted"}
    assert [op.message.connector_id for op in sent] == [0, 1, 2]
    assert all(isinstance(op.message, StatusNotification) for op in sent)


def test_trigger_status_notification_single_connector():
    model = SimpleNamespace(connectors=[object(), object()], metering=None)
    factory = OperationFactory(model)
    trigger = TriggerMessage(factory, model=model)
    trigger.process_request({"requestedMessage": "StatusNotification", "connectorId": 1})
    assert [op.message.connector_id for op in trigger.triggered] == [1]


def test_trigger_connector_out_of_range_raises():
    model = SimpleNamespace(connectors=[object(), object()], metering=None)
    trigger = TriggerMessage(OperationFactory(model), model=model)
    with pytest.raises(OcppError):
        trigger.process_request({"requestedMessage": "StatusNotification", "connectorId": 5})
    assert trigger.create_confirmation() == {"status": "Rejected"}


def test_trigger_status_notification_without_model_is_rejected():
    trigger = TriggerMessage(OperationFactory())
    trigger.process_request({"requestedMessage": "StatusNotification"})
    assert trigger.create_confirmation() == {"status": "Rejected"}


def test_trigger_meter_values_uses_metering():
    taken = []

    def take(connector_id):
        taken.append(connector_id)
        return Heartbeat()

    metering = SimpleNamespace(num_connectors=2, take_triggered_meter_values=take)
    model = SimpleNamespace(connectors=[], metering=metering)
    sent = []
    trigger = TriggerMessage(OperationFactory(model, send=sent.append), model=model)
    trigger.process_request({"requestedMessage": "MeterValues"})
    assert taken == [0, 1]
    assert trigger.create_confirmation() == {"status": "Accepted"}
    assert len(sent) == 2
    assert all(isinstance(op, Operation) for op in sent)