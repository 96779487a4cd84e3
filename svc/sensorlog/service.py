from __future__ import annotations
import os
import sqlite3
import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple
from .models import (
    DashboardData, DbStats, DeviceInfo, NormalizedMessage, RawMessage, RawReading, StoredMessage
)
from .normalizer import normalize_envelope, parse_envelope
from .store import MessageStore
from . import state

logger = logging.getLogger(__name__)

DASHBOARD_MAX_READINGS = 20


class DatabaseUnavailable(RuntimeError):
    """The SQLite sink could not be initialized at startup."""


class IngestService:
    """
    Wires the normalizer, the in-memory store and the persistence sink together.

    One instance is created per application and handed to the route handlers.
    """

    def __init__(
        self,
        store: MessageStore,
        *,
        persist: bool = True,
        archive_dir: Optional[str] = None,
        log_messages: bool = False,
    ) -> None:
        self.store = store
        self.archive_dir = archive_dir
        self.log_messages = log_messages
        self.db_enabled = False
        if persist:
            try:
                state.initialize_database()
                self.db_enabled = True
            except (OSError, sqlite3.Error) as e:
                logger.error(f"Database initialization failed, continuing without persistence: {e}")

    # write

    def ingest(self, body: bytes) -> Tuple[RawMessage, NormalizedMessage]:
        """
        Normalize one request body and add it to the in-memory window.

        Raises MalformedInput when the body is not a sensor message. The raw
        body is archived to disk when an archive directory is configured.
        """
        raw = parse_envelope(body)
        message = normalize_envelope(raw)
        logger.debug(
            f"Sensor data received: message={message.message_id} device={message.device_id} "
            f"session={message.session_id} readings={message.total_readings}"
        )

        self.store.add(message)

        if self.archive_dir:
            self._archive(body, message.received_at)
        if self.log_messages:
            logger.info(
                f"Message {message.message_id} from {message.device_id}: "
                f"{message.total_readings} readings [{', '.join(message.sensor_types)}]"
            )
        return raw, message

    def persist(self, message: NormalizedMessage, payload: Sequence[RawReading]) -> bool:
        """Best-effort save to the database. Failures are logged, never raised."""
        if not self.db_enabled:
            return False
        try:
            state.save_message(message, payload)
            return True
        except Exception as e:
            logger.error(
                f"Failed to save message {message.message_id} from {message.device_id}: {e}"
            )
            return False

    def _archive(self, body: bytes, received_at: datetime) -> Optional[str]:
        filename = f"sensor_messages_{received_at.strftime('%Y%m%d_%H%M%S_%f')}.json"
        path = os.path.join(self.archive_dir, filename)
        try:
            os.makedirs(self.archive_dir, exist_ok=True)
            with open(path, "wb") as f:
                f.write(body)
        except OSError as e:
            logger.error(f"Failed to archive raw message to {path}: {e}")
            return None
        logger.debug(f"Raw message archived to {path}")
        return path

    # read

    def memory_messages(self, limit: Optional[int] = None) -> List[NormalizedMessage]:
        if limit is None:
            return self.store.snapshot()
        return self.store.latest(limit)

    def dashboard_data(self) -> DashboardData:
        """Aggregate the in-memory window for the dashboard page."""
        # read-only aggregation, the list is not kept past this call
        items = self.store.unsafe_all()
        if not items:
            return DashboardData()

        total_readings = 0
        sensor_types = set()
        devices = set()
        for message in items:
            total_readings += message.total_readings
            devices.add(message.device_id)
            sensor_types.update(message.sensor_types)

        readings = list(items[-1].readings[:DASHBOARD_MAX_READINGS])

        return DashboardData(
            has_data=True,
            total_messages=len(items),
            total_readings=total_readings,
            sensor_type_count=len(sensor_types),
            device_count=len(devices),
            latest_data=readings,
        )

    def stored_messages(self, limit: int, device_id: str = "", sensor_type: str = "") -> List[StoredMessage]:
        self._require_db()
        return state.fetch_messages(limit=limit, device_id=device_id, sensor_type=sensor_type)

    def devices(self) -> List[DeviceInfo]:
        self._require_db()
        return state.fetch_devices()

    def stats(self) -> DbStats:
        self._require_db()
        return state.fetch_stats()

    def _require_db(self) -> None:
        if not self.db_enabled:
            raise DatabaseUnavailable("database not available")
