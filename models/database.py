"""SQLite store for buildings, sensors, energy telemetry and alerts."""
import json
import sqlite3
import logging
import threading
from datetime import timezone
from pathlib import Path

from models.alerts import Alert
from models.telemetry import Building, Sensor, TelemetryReading
from utils.clock import ensure_utc
from utils.errors import StoreError, TransientStoreError

logger = logging.getLogger("buildingalerts.db")


def _ts(dt):
    """Fixed-width UTC ISO string so timestamps compare correctly as text."""
    if dt is None:
        return None
    return ensure_utc(dt).astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


class Database:
    def __init__(self, db_path="data/building_alerts.db", busy_timeout=5.0):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self.conn = None
        self._lock = threading.RLock()

    def connect(self):
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        if self.db_path != ":memory:":
            self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS buildings (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                type TEXT,
                yearly_consumption REAL,
                status TEXT NOT NULL DEFAULT 'online',
                owner_id TEXT
            );

            CREATE TABLE IF NOT EXISTS sensors (
                id TEXT PRIMARY KEY,
                building_id TEXT NOT NULL,
                name TEXT NOT NULL,
                type TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                last_reading_at TEXT,
                current_value REAL,
                alert_threshold TEXT,
                FOREIGN KEY (building_id) REFERENCES buildings(id)
            );

            CREATE TABLE IF NOT EXISTS energy_data (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                building_id TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                granularity TEXT NOT NULL DEFAULT 'hour',
                consumption REAL,
                production REAL,
                efficiency REAL,
                co2_saved REAL,
                UNIQUE (building_id, granularity, timestamp)
            );

            CREATE INDEX IF NOT EXISTS idx_energy_building_time
                ON energy_data(building_id, granularity, timestamp);

            CREATE TABLE IF NOT EXISTS alerts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                building_id TEXT NOT NULL,
                type TEXT NOT NULL,
                title TEXT NOT NULL,
                message TEXT,
                priority TEXT NOT NULL,
                category TEXT,
                metadata TEXT,
                source TEXT,
                created_at TEXT NOT NULL,
                is_read INTEGER DEFAULT 0,
                is_resolved INTEGER DEFAULT 0,
                resolved_at TEXT,
                resolved_by TEXT,
                resolution_note TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_alerts_open
                ON alerts(building_id, title, is_resolved, created_at);
            CREATE INDEX IF NOT EXISTS idx_alerts_created
                ON alerts(created_at);
        """)
        self.conn.commit()

    def _query(self, sql, params=(), operation="query"):
        with self._lock:
            try:
                return self.conn.execute(sql, params).fetchall()
            except sqlite3.OperationalError as e:
                raise TransientStoreError(f"{operation} failed: {e}", operation=operation) from e
            except sqlite3.Error as e:
                raise StoreError(f"{operation} failed: {e}", operation=operation) from e

    def _write(self, sql, params=(), operation="write", many=False):
        with self._lock:
            try:
                if many:
                    cur = self.conn.executemany(sql, params)
                else:
                    cur = self.conn.execute(sql, params)
                self.conn.commit()
                return cur
            except sqlite3.OperationalError as e:
                self.conn.rollback()
                raise TransientStoreError(f"{operation} failed: {e}", operation=operation) from e
            except sqlite3.Error as e:
                self.conn.rollback()
                raise StoreError(f"{operation} failed: {e}", operation=operation) from e

    # --- Buildings ---

    def save_building(self, building):
        self._write("""
            INSERT OR REPLACE INTO buildings (id, name, type, yearly_consumption, status, owner_id)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (building.id, building.name, building.type, building.yearly_consumption,
              building.status, building.owner_id), operation="save_building")

    def list_buildings(self, status=None, owner_id=None):
        query = "SELECT * FROM buildings WHERE 1=1"
        params = []
        if status:
            query += " AND status = ?"
            params.append(getattr(status, "value", status))
        if owner_id is not None:
            query += " AND owner_id = ?"
            params.append(owner_id)
        query += " ORDER BY id ASC"
        rows = self._query(query, params, operation="list_buildings")
        return [Building.from_dict(dict(r)) for r in rows]

    # --- Sensors ---

    def save_sensor(self, sensor):
        threshold = json.dumps(sensor.alert_threshold) if sensor.alert_threshold is not None else None
        self._write("""
            INSERT OR REPLACE INTO sensors
            (id, building_id, name, type, status, last_reading_at, current_value, alert_threshold)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (sensor.id, sensor.building_id, sensor.name, sensor.type, sensor.status,
              _ts(sensor.last_reading_at), sensor.current_value, threshold),
            operation="save_sensor")

    def list_sensors(self, building_id):
        rows = self._query(
            "SELECT * FROM sensors WHERE building_id = ? ORDER BY id ASC",
            (building_id,), operation="list_sensors",
        )
        sensors = []
        for r in rows:
            d = dict(r)
            if d.get("alert_threshold"):
                d["alert_threshold"] = json.loads(d["alert_threshold"])
            sensors.append(Sensor.from_dict(d))
        return sensors

    # --- Energy Data ---

    def save_readings(self, readings):
        self._write("""
            INSERT OR REPLACE INTO energy_data
            (building_id, timestamp, granularity, consumption, production, efficiency, co2_saved)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, [(r.building_id, _ts(r.timestamp), r.granularity, r.consumption,
               r.production, r.efficiency, r.co2_saved) for r in readings],
            operation="save_readings", many=True)
        logger.debug(f"Saved {len(readings)} energy readings")

    def list_energy_readings(self, building_id, granularity, limit=None, since=None):
        """Readings for one building and granularity, newest first."""
        query = "SELECT * FROM energy_data WHERE building_id = ? AND granularity = ?"
        params = [building_id, getattr(granularity, "value", granularity)]
        if since is not None:
            query += " AND timestamp >= ?"
            params.append(_ts(since))
        query += " ORDER BY timestamp DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(int(limit))
        rows = self._query(query, params, operation="list_energy_readings")
        return [TelemetryReading.from_dict(dict(r)) for r in rows]

    # --- Alerts ---

    def insert_alert(self, alert):
        cur = self._write("""
            INSERT INTO alerts
            (building_id, type, title, message, priority, category, metadata, source,
             created_at, is_read, is_resolved, resolved_at, resolved_by, resolution_note)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            alert.building_id, alert.type.value, alert.title, alert.message,
            alert.priority.value, alert.category, json.dumps(alert.metadata, default=str),
            alert.source, _ts(alert.created_at), int(alert.is_read), int(alert.is_resolved),
            _ts(alert.resolved_at), alert.resolved_by, alert.resolution_note,
        ), operation="insert_alert")
        return self.get_alert(cur.lastrowid)

    def get_alert(self, alert_id):
        rows = self._query("SELECT * FROM alerts WHERE id = ?", (alert_id,), operation="get_alert")
        return Alert.from_dict(dict(rows[0])) if rows else None

    def find_open_alert(self, building_id, title, since):
        """Most recent unresolved alert with this title created at or after ``since``."""
        rows = self._query("""
            SELECT * FROM alerts
            WHERE building_id = ? AND title = ? AND is_resolved = 0 AND created_at >= ?
            ORDER BY created_at DESC LIMIT 1
        """, (building_id, title, _ts(since)), operation="find_open_alert")
        return Alert.from_dict(dict(rows[0])) if rows else None

    def list_alerts(self, building_id=None, building_ids=None, is_resolved=None,
                    priority=None, since=None, until=None):
        """Alerts matching every given filter, newest first."""
        query = "SELECT * FROM alerts WHERE 1=1"
        params = []
        if building_id is not None:
            query += " AND building_id = ?"
            params.append(building_id)
        if building_ids is not None:
            ids = list(building_ids)
            if not ids:
                return []
            query += f" AND building_id IN ({', '.join('?' for _ in ids)})"
            params.extend(ids)
        if is_resolved is not None:
            query += " AND is_resolved = ?"
            params.append(int(is_resolved))
        if priority is not None:
            query += " AND priority = ?"
            params.append(getattr(priority, "value", priority))
        if since is not None:
            query += " AND created_at >= ?"
            params.append(_ts(since))
        if until is not None:
            query += " AND created_at <= ?"
            params.append(_ts(until))
        query += " ORDER BY created_at DESC, id DESC"
        rows = self._query(query, params, operation="list_alerts")
        return [Alert.from_dict(dict(r)) for r in rows]

    def update_alert_resolution(self, alert_id, is_resolved, resolved_at, resolved_by=None,
                                resolution_note=None, is_read=None):
        """Resolve an open alert. Returns False if it was already resolved or missing."""
        sql = "UPDATE alerts SET is_resolved = ?, resolved_at = ?, resolved_by = ?, resolution_note = ?"
        params = [int(is_resolved), _ts(resolved_at), resolved_by, resolution_note]
        if is_read is not None:
            sql += ", is_read = ?"
            params.append(int(is_read))
        sql += " WHERE id = ? AND is_resolved = 0"
        params.append(alert_id)
        cur = self._write(sql, params, operation="update_alert_resolution")
        return cur.rowcount > 0

    def mark_alert_read(self, alert_id):
        cur = self._write(
            "UPDATE alerts SET is_read = 1 WHERE id = ?", (alert_id,), operation="mark_alert_read"
        )
        return cur.rowcount > 0

    def mark_alerts_read(self, building_ids):
        ids = list(building_ids)
        if not ids:
            return 0
        cur = self._write(
            f"UPDATE alerts SET is_read = 1 WHERE is_read = 0 AND building_id IN ({', '.join('?' for _ in ids)})",
            ids, operation="mark_alerts_read",
        )
        return cur.rowcount
