"""Transaction messages: StartTransaction, StopTransaction and StatusNotification.

The transaction objects these messages work on are duck-typed. They provide
``connector_id``, ``tx_nr``, ``id_tag``, ``stop_id_tag``, ``meter_start``,
``meter_stop``, ``start_timestamp``, ``stop_timestamp``, ``transaction_id``,
``stop_reason``, ``id_tag_deauthorized``, the request trackers ``start_sync``
and ``stop_sync`` (each with ``requested``, ``set_requested()`` and
``confirm()``), and ``commit()``.
"""

from __future__ import annotations

import itertools
import logging
from datetime import datetime
from typing import Any, ClassVar, Iterable, Iterator

from ocppcharge.core import (
    MIN_TIME,
    Message,
    OcppEvseState,
    OcppModel,
    format_timestamp,
    lookup,
)

logger = logging.getLogger(__name__)

_CONTEXT_BEGIN = "Transaction.Begin"
_CONTEXT_END = "Transaction.End"


def _meter_defined(value: Any) -> bool:
    return value is not None and value >= 0


def _time_defined(moment: datetime | None) -> bool:
    return moment is not None and moment > MIN_TIME


def _read_meter(metering: Any, connector_id: int, context: str) -> int | None:
    """Read the transaction energy meter; None if there is no valid reading."""
    reading = metering.read_tx_energy_meter(connector_id, context)
    if reading is None:
        return None
    if isinstance(reading, int) and not isinstance(reading, bool):
        return reading
    if hasattr(reading, "to_integer"):
        return reading.to_integer()
    return int(reading)


def _store_reference(transaction: Any, op_store: Any) -> None:
    op_store.payload = {"connectorId": transaction.connector_id, "txNr": transaction.tx_nr}
    op_store.commit()


def _restore_transaction(model: OcppModel | None, op_store: Any) -> Any:
    """Find the transaction a stored operation refers to; raises ValueError if it cannot."""
    if model is None:
        raise ValueError("invalid state: no model")
    if op_store is None:
        raise ValueError("invalid argument: no operation store")
    payload = getattr(op_store, "payload", None)
    if not isinstance(payload, dict):
        raise ValueError("stored operation has no payload")
    connector_id = lookup(payload, "connectorId", default=-1)
    tx_nr = lookup(payload, "txNr", default=-1)
    if connector_id < 0 or tx_nr < 0:
        raise ValueError("stored operation record incomplete")
    if model.transactions is None:
        raise ValueError("invalid state: no transaction store")
    transaction = model.transactions.get_transaction(connector_id, tx_nr)
    if transaction is None:
        raise ValueError(
            f"no transaction {connector_id}-{tx_nr}: referential integrity violation"
        )
    return transaction


class StartTransaction(Message):
    """Tell the server that a transaction has started."""

    operation_type = "StartTransaction"

    _transaction_ids: ClassVar[Iterator[int]] = itertools.count(1000)

    def __init__(self, transaction: Any = None, *, model: OcppModel | None = None):
        super().__init__(model=model)
        self.transaction = transaction

    def initiate(self) -> None:
        """Fill in meter start and start time if they are still missing."""
        tx = self.transaction
        if self.model is not None and tx is not None and not tx.start_sync.requested:
            metering = self.model.metering
            if not _meter_defined(tx.meter_start) and metering is not None:
                reading = _read_meter(metering, tx.connector_id, _CONTEXT_BEGIN)
                if reading is None:
                    logger.error("MeterStart undefined")
                else:
                    tx.meter_start = reading
            if not _time_defined(tx.start_timestamp):
                tx.start_timestamp = self.model.clock.now()
            tx.start_sync.set_requested()
            tx.commit()
        logger.info("StartTransaction initiated")

    def initiate_stored(self, op_store: Any) -> bool:
        """Record a reference to the transaction in op_store.

        Returns False if that is not possible and initiate() should be used instead.
        """
        if op_store is None or self.model is None or self.transaction is None:
            logger.error("-> legacy")
            return False
        _store_reference(self.transaction, op_store)
        self.transaction.start_sync.set_requested()
        self.transaction.commit()
        return True

    def restore(self, op_store: Any) -> None:
        """Load the transaction referenced by op_store; raises ValueError if impossible."""
        self.transaction = _restore_transaction(self.model, op_store)

    def create_request(self) -> dict:
        tx = self.transaction
        payload: dict[str, Any] = {"connectorId": tx.connector_id}
        if tx.id_tag:
            payload["idTag"] = tx.id_tag
        if _meter_defined(tx.meter_start):
            payload["meterStart"] = tx.meter_start
        if _time_defined(tx.start_timestamp):
            payload["timestamp"] = format_timestamp(tx.start_timestamp)
        return payload

    def process_confirmation(self, payload: dict) -> None:
        status = lookup(payload, "idTagInfo", "status", default="not specified")
        if status == "Accepted":
            logger.info("Request has been accepted")
        else:
            logger.info("Request has been denied. Reason: %s", status)
            self.transaction.id_tag_deauthorized = True

        self.transaction.transaction_id = lookup(payload, "transactionId", default=-1)
        self.transaction.start_sync.confirm()
        self.transaction.commit()

    def create_confirmation(self) -> dict:
        return {
            "idTagInfo": {"status": "Accepted"},
            "transactionId": next(StartTransaction._transaction_ids),
        }


class StopTransaction(Message):
    """Tell the server that a transaction has ended, with its meter data."""

    operation_type = "StopTransaction"

    def __init__(
        self,
        transaction: Any = None,
        transaction_data: Iterable[Any] = (),
        *,
        model: OcppModel | None = None,
    ):
        super().__init__(model=model)
        self.transaction = transaction
        self.transaction_data = list(transaction_data)

    def initiate(self) -> None:
        """Fill in meter stop and stop time if they are still missing."""
        tx = self.transaction
        if self.model is not None and tx is not None and not tx.stop_sync.requested:
            metering = self.model.metering
            if not _meter_defined(tx.meter_stop) and metering is not None:
                reading = _read_meter(metering, tx.connector_id, _CONTEXT_END)
                if reading is None:
                    logger.error("MeterStop undefined")
                else:
                    tx.meter_stop = reading
            if not _time_defined(tx.stop_timestamp):
                tx.stop_timestamp = self.model.clock.now()
            tx.stop_sync.set_requested()
            tx.commit()
        logger.info("StopTransaction initiated!")

    def initiate_stored(self, op_store: Any) -> bool:
        """Record a reference to the transaction in op_store.

        Returns False if that is not possible and initiate() should be used instead.
        """
        if op_store is None or self.model is None or self.transaction is None:
            logger.error("-> legacy")
            return False
        _store_reference(self.transaction, op_store)
        self.transaction.stop_sync.set_requested()
        self.transaction.commit()
        return True

    def restore(self, op_store: Any) -> None:
        """Load the transaction and its stop data; raises ValueError if impossible."""
        self.transaction = _restore_transaction(self.model, op_store)
        metering = self.model.metering
        if metering is not None:
            tx_data = metering.get_stop_tx_meter_data(self.transaction)
            if tx_data is not None:
                self.transaction_data = list(tx_data.retrieve_stop_tx_data())

    def create_request(self) -> dict | None:
        entries = []
        for meter_value in self.transaction_data:
            entry = meter_value if isinstance(meter_value, dict) else meter_value.to_json()
            if entry is None:
                return None
            entries.append(entry)

        tx = self.transaction
        payload: dict[str, Any] = {}
        if tx.stop_id_tag:
            payload["idTag"] = tx.stop_id_tag
        if _meter_defined(tx.meter_stop):
            payload["meterStop"] = tx.meter_stop
        if _time_defined(tx.stop_timestamp):
            payload["timestamp"] = format_timestamp(tx.stop_timestamp)
        payload["transactionId"] = tx.transaction_id
        if tx.stop_reason:
            payload["reason"] = tx.stop_reason
        if entries:
            payload["transactionData"] = entries
        return payload

    def process_confirmation(self, payload: dict) -> None:
        if self.transaction is not None:
            self.transaction.stop_sync.confirm()
            self.transaction.commit()
        logger.info("Request has been accepted!")

    def process_error(self, code: str, description: str, details: dict) -> bool:
        # No retries: the data is considered delivered.
        if self.transaction is not None:
            self.transaction.stop_sync.confirm()
            self.transaction.commit()
        logger.error("Server error, data loss!")
        return False

    def create_confirmation(self) -> dict:
        return {"idTagInfo": {"status": "Accepted"}}


class StatusNotification(Message):
    """Report the status of a connector."""

    operation_type = "StatusNotification"

    def __init__(
        self,
        connector_id: int = -1,
        status: OcppEvseState = OcppEvseState.NOT_SET,
        timestamp: datetime | None = None,
        error_code: str | None = None,
        *,
        model: OcppModel | None = None,
    ):
        super().__init__(model=model)
        self.connector_id = connector_id
        self.status = status
        self.timestamp = timestamp
        self.error_code = error_code
        if status is not OcppEvseState.NOT_SET:
            logger.info("New status: %s (connectorId %d)", status.value, connector_id)

    def initiate(self) -> None:
        """Take the current connector status, unless one was given on construction."""
        if self.status is not OcppEvseState.NOT_SET:
            return

        if self.model is not None and self.model.connectors:
            count = len(self.model.connectors)
            if self.connector_id < 0 or self.connector_id >= count:
                # A charge point with one physical connector reports that connector.
                self.connector_id = 1 if count == 2 else 0
            connector = self.model.connector(self.connector_id)
            if connector is not None:
                self.status = connector.inference_status()

        self.timestamp = self.model.clock.now() if self.model is not None else MIN_TIME
        if self.status is OcppEvseState.NOT_SET:
            logger.error("Could not determine EVSE status")

    def create_request(self) -> dict:
        if self.error_code is not None:
            error_code = self.error_code
        elif self.status is OcppEvseState.NOT_SET:
            logger.error("Reporting undefined status")
            error_code = "InternalError"
        else:
            error_code = "NoError"
        return {
            "connectorId": self.connector_id,
            "errorCode": error_code,
            "status": self.status.value,
            "timestamp": format_timestamp(self.timestamp if self.timestamp else MIN_TIME),
        }

    def create_confirmation(self) -> dict:
        return {}