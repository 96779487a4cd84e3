from __future__ import annotations
import json
import os
import sqlite3
import time
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence
from .models import DbStats, DeviceInfo, NormalizedMessage, RawReading, StoredMessage
from .config import DB_FILE

logger = logging.getLogger(__name__)


def _ensure_dirs() -> None:
    os.makedirs(os.path.dirname(os.path.abspath(DB_FILE)), exist_ok=True)


def _ts(dt: datetime) -> float:
    return dt.timestamp()


def _dt(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


@contextmanager
def _db_connection(row_factory: Optional[Callable[[sqlite3.Cursor, tuple], Any]] = None) -> Iterator[sqlite3.Connection]:
    """
    Context manager for database connections.

    Commits on success, rolls back on error and always closes the connection.

    Args:
        row_factory: Optional row factory (e.g., sqlite3.Row) to set on connection
    """
    _ensure_dirs()
    conn = sqlite3.connect(DB_FILE)
    if row_factory:
        conn.row_factory = row_factory
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def initialize_database() -> None:
    """Create the tables and indexes. Called once at application startup."""
    _ensure_dirs()
    _ensure_messages_db()
    _ensure_device_info_db()


def _ensure_messages_db() -> None:
    """Create the sensor_messages table (one row per envelope) if it does not exist."""
    with _db_connection() as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sensor_messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                message_id INTEGER NOT NULL,
                session_id TEXT NOT NULL,
                device_id TEXT NOT NULL,
                received_at REAL NOT NULL,
                processed_at REAL NOT NULL,
                total_readings INTEGER NOT NULL,
                sensor_types TEXT NOT NULL,
                payload TEXT NOT NULL,
                parsed TEXT NOT NULL,
                UNIQUE (session_id, message_id)
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_messages_device_received "
            "ON sensor_messages (device_id, received_at DESC)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_messages_received "
            "ON sensor_messages (received_at DESC)"
        )


def _ensure_device_info_db() -> None:
    """Create the device_info table (one row per device) if it does not exist."""
    with _db_connection() as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS device_info (
                device_id TEXT PRIMARY KEY,
                first_seen REAL NOT NULL,
                last_seen REAL NOT NULL,
                total_messages INTEGER NOT NULL DEFAULT 0,
                total_records INTEGER NOT NULL DEFAULT 0,
                sensor_types TEXT NOT NULL DEFAULT '[]',
                sessions TEXT NOT NULL DEFAULT '[]'
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_device_last_seen ON device_info (last_seen DESC)"
        )


def save_message(message: NormalizedMessage, payload: Sequence[RawReading]) -> None:
    """
    Store one normalized message together with its original payload, then
    fold it into the device statistics.

    Raises sqlite3.IntegrityError if the (session, messageId) pair was already
    stored. A failure to update device statistics is logged and not raised.
    """
    with _db_connection() as conn:
        conn.execute(
            """
            INSERT INTO sensor_messages (
                message_id, session_id, device_id, received_at, processed_at,
                total_readings, sensor_types, payload, parsed
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.message_id,
                message.session_id,
                message.device_id,
                _ts(message.received_at),
                time.time(),
                message.total_readings,
                json.dumps(list(message.sensor_types)),
                json.dumps([r.model_dump(by_alias=True) for r in payload], default=str),
                message.model_dump_json(by_alias=True),
            ),
        )
    logger.debug(
        f"Stored message {message.message_id} from {message.device_id} "
        f"({message.total_readings} readings)"
    )

    try:
        update_device_info(message)
    except sqlite3.Error as e:
        logger.error(f"Failed to update device info for {message.device_id}: {e}")


def update_device_info(message: NormalizedMessage) -> None:
    """Create or update the aggregate row for the message's device."""
    _ensure_device_info_db()
    seen = _ts(message.received_at)
    with _db_connection() as conn:
        conn.execute("BEGIN IMMEDIATE")
        row = conn.execute(
            "SELECT sensor_types, sessions FROM device_info WHERE device_id = ?",
            (message.device_id,),
        ).fetchone()

        if row is None:
            conn.execute(
                """
                INSERT INTO device_info (
                    device_id, first_seen, last_seen, total_messages,
                    total_records, sensor_types, sessions
                )
                VALUES (?, ?, ?, 1, ?, ?, ?)
                """,
                (
                    message.device_id,
                    seen,
                    seen,
                    message.total_readings,
                    json.dumps(sorted(message.sensor_types)),
                    json.dumps([message.session_id]),
                ),
            )
            logger.info(f"New device registered: {message.device_id}")
            return

        sensor_types = set(_json_list(row[0])) | set(message.sensor_types)
        sessions = _json_list(row[1])
        if message.session_id not in sessions:
            sessions.append(message.session_id)

        conn.execute(
            """
            UPDATE device_info
            SET last_seen = MAX(last_seen, ?),
                total_messages = total_messages + 1,
                total_records = total_records + ?,
                sensor_types = ?,
                sessions = ?
            WHERE device_id = ?
            """,
            (
                seen,
                message.total_readings,
                json.dumps(sorted(sensor_types)),
                json.dumps(sessions),
                message.device_id,
            ),
        )


def _json_list(text: Optional[str]) -> List[Any]:
    try:
        value = json.loads(text) if text else []
    except json.JSONDecodeError:
        return []
    return value if isinstance(value, list) else []


def fetch_messages(
    limit: int = 50, device_id: str = "", sensor_type: str = ""
) -> List[StoredMessage]:
    """Fetch stored messages newest first, optionally filtered by device and sensor type."""
    _ensure_messages_db()
    clauses: List[str] = []
    params: List[Any] = []
    if device_id:
        clauses.append("device_id = ?")
        params.append(device_id)
    if sensor_type:
        # sensor_types holds a JSON array of strings; match the quoted element
        clauses.append("instr(sensor_types, ?) > 0")
        params.append(json.dumps(sensor_type))
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    with _db_connection(row_factory=sqlite3.Row) as conn:
        rows = conn.execute(
            f"""
            SELECT payload, parsed, processed_at
            FROM sensor_messages
            {where}
            ORDER BY received_at DESC, id DESC
            LIMIT ?
            """,
            (*params, limit),
        ).fetchall()

    result: List[StoredMessage] = []
    for r in rows:
        data: Dict[str, Any] = json.loads(r["parsed"])
        data["payload"] = _json_list(r["payload"])
        data["processedAt"] = _dt(r["processed_at"])
        result.append(StoredMessage.model_validate(data))

    logger.debug(
        f"Fetched {len(result)} messages (device={device_id or '*'}, sensor={sensor_type or '*'})"
    )
    return result


def fetch_devices() -> List[DeviceInfo]:
    """Fetch all device aggregates, most recently seen first."""
    _ensure_device_info_db()
    with _db_connection(row_factory=sqlite3.Row) as conn:
        rows = conn.execute(
            """
            SELECT device_id, first_seen, last_seen, total_messages,
                   total_records, sensor_types, sessions
            FROM device_info
            ORDER BY last_seen DESC
            """
        ).fetchall()

    return [
        DeviceInfo(
            device_id=r["device_id"],
            first_seen=_dt(r["first_seen"]),
            last_seen=_dt(r["last_seen"]),
            total_messages=r["total_messages"],
            total_records=r["total_records"],
            sensor_types=_json_list(r["sensor_types"]),
            sessions=_json_list(r["sessions"]),
        )
        for r in rows
    ]


def fetch_stats() -> DbStats:
    """Totals across everything stored in the database."""
    _ensure_messages_db()
    _ensure_device_info_db()
    with _db_connection() as conn:
        total_messages, total_records, latest = conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(total_readings), 0), MAX(received_at) FROM sensor_messages"
        ).fetchone()
        type_rows = conn.execute("SELECT DISTINCT sensor_types FROM sensor_messages").fetchall()
        (device_count,) = conn.execute("SELECT COUNT(*) FROM device_info").fetchone()

    # device_info misses the types of a message whose device update failed
    sensor_types = sorted({t for (types,) in type_rows for t in _json_list(types)})

    return DbStats(
        total_messages=total_messages,
        total_records=total_records,
        device_count=device_count,
        sensor_type_count=len(sensor_types),
        sensor_types=sensor_types,
        latest_data_time=_dt(latest) if latest is not None else None,
    )
