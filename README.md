# ocppcharge

The charge point side of OCPP 1.6 (JSON). The package handles the messages a charge point
sends and receives. It keeps configuration keys, runs diagnostics uploads, and builds
operations from incoming action names.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Pieces

- `ocppcharge.core` holds the shared types:
  - `Message`, the base class with `initiate`, `create_request`, `process_confirmation`,
    `process_request`, `create_confirmation` and `process_error`.
  - `OcppModel`, the charge point state the messages read and change: a `Clock`, a
    `ConfigurationStore`, a list of connectors, and slots for the services the
    application provides.
  - `ConfigurationStore` and `Configuration`. The store keeps declared keys and, when it is
    given a path, saves their values to a JSON file.
  - `Clock`, plus the helpers `parse_timestamp` and `format_timestamp`.
  - `OcppError`, which carries a CallError code, a description and details.
  - The enums `OcppEvseState` and `DiagnosticsStatus`.
  - Platform hooks: `tick_ms` and `set_timer` for the millisecond clock, `set_console_out`
    and `console_out` for console output. Console output goes to standard output by default.
- `ocppcharge.basic_messages` has `Authorize`, `ClearCache`, `DataTransfer`, `Heartbeat`,
  `DiagnosticsStatusNotification` and `FirmwareStatusNotification`, plus the
  `FirmwareStatus` enum.
- `ocppcharge.provisioning` has `BootNotification`, `ChangeConfiguration`,
  `GetConfiguration` and `MeterValues`, plus the helper `parse_config_value`.
- `ocppcharge.smart_charging_messages` has `ClearChargingProfile`,
  `GetCompositeSchedule` and `SetChargingProfile`. It also has the `profile_filter` helper
  and the `ChargingProfilePurpose` and `ChargingRateUnit` enums.
- `ocppcharge.remote_messages` has `RemoteStartTransaction`, `RemoteStopTransaction` and
  `ChangeAvailability`, plus the `Availability` enum.
- `ocppcharge.transaction_messages` has `StartTransaction`, `StopTransaction` and
  `StatusNotification`.
- `ocppcharge.maintenance_messages` has `Reset`, `UnlockConnector`, `UpdateFirmware` and
  `GetDiagnostics`.
- `ocppcharge.diagnostics` has `DiagnosticsService` and `UploadStatus`.
- `ocppcharge.factory` has `OperationFactory`, `Operation`, `TriggerMessage` and
  `NotImplementedMessage`.

## Errors

When a received request is malformed or not supported, `process_request` raises
`OcppError`. Its `code` is an OCPP error code such as `FormationViolation`,
`PropertyConstraintViolation`, `NotSupported` or `NotImplemented`. Turn it into a
CallError on your connection.

`UnlockConnector.create_confirmation` returns `None` while the unlock result is still
pending. Call it again until it returns a payload.

## Examples

Handle an incoming `Heartbeat` call:

```python
from ocppcharge.factory import OperationFactory

factory = OperationFactory()
operation = factory.from_json([2, "19223201", "Heartbeat", {}])
operation.message.process_request({})
print(operation.message.create_confirmation())  # {'currentTime': '2019-11-01T11:59:55.000Z'}
```

Change a configuration key:

```python
from ocppcharge.core import OcppModel
from ocppcharge.provisioning import ChangeConfiguration

model = OcppModel()
model.configuration.declare("HeartbeatInterval", 86400)

message = ChangeConfiguration(model=model)
message.process_request({"key": "HeartbeatInterval", "value": "300"})
print(message.create_confirmation())                       # {'status': 'Accepted'}
print(model.configuration.get("HeartbeatInterval").value)  # 300
```

Register a message type of your own. Custom creators take precedence over the
built-in messages:

```python
from ocppcharge.basic_messages import DataTransfer

factory.register_custom_message("DataTransfer", lambda: DataTransfer("hello"))
```

The factory turns an action name it does not know into a `NotImplementedMessage`.
Calling `process_request` on that message raises `OcppError` with the code
`NotImplemented`.

## What this package does not do

- It has no transport. There is no WebSocket client, no OCPP-J framing and no message
  queue. You decode the JSON yourself and pass the payloads to the message objects. You
  send what `create_request` and `create_confirmation` return.
- It does not include connectors, a transaction store, a metering service, a smart
  charging service, a firmware service or a charge point status service. The messages
  reach these through the attributes of `OcppModel` and use them by duck typing. Your
  application supplies them. Where one is missing, the message falls back to the
  behaviour its docstring describes.
- It has no command-line program.