"""Charge point side of the OCPP 1.6 JSON protocol: messages, configuration, diagnostics and an operation factory."""

__version__ = "0.1.0"
__all__ = [
    "core",
    "basic_messages",
    "provisioning",
    "smart_charging_messages",
    "remote_messages",
    "transaction_messages",
    "maintenance_messages",
    "diagnostics",
    "factory",
]