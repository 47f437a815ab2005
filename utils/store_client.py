"""Store client with per-call timeouts and retries."""
import time
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

from utils.errors import TransientStoreError

logger = logging.getLogger("buildingalerts.store")


class StoreClient:
    """Wraps a telemetry/alert store so no call blocks indefinitely.

    Each call runs on a worker thread and is abandoned after ``timeout``
    seconds with a TransientStoreError. Transient failures are retried up to
    ``max_retries`` times (reads only; a timed-out write may still land).
    Any other error propagates immediately.
    """

    def __init__(self, store, timeout=10.0, max_retries=1, retry_backoff=0.5, max_workers=16):
        self.store = store
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="store")

    @classmethod
    def from_config(cls, store, config):
        store_cfg = config.get("store", {})
        workers = config.get("engine", {}).get("max_concurrent_buildings", 8) * 4
        return cls(
            store,
            timeout=store_cfg.get("timeout_seconds", 10),
            max_retries=store_cfg.get("max_retries", 1),
            retry_backoff=store_cfg.get("retry_backoff_seconds", 0.5),
            max_workers=workers,
        )

    def close(self):
        self._executor.shutdown(wait=False)

    def _call(self, operation, *args, retry=True, **kwargs):
        func = getattr(self.store, operation)
        last_error = None
        attempts = self.max_retries + 1 if retry else 1
        for attempt in range(attempts):
            future = self._executor.submit(func, *args, **kwargs)
            try:
                start = time.monotonic()
                result = future.result(timeout=self.timeout)
                logger.debug(f"{operation} ok ({int((time.monotonic() - start) * 1000)}ms)")
                return result
            except FutureTimeout:
                future.cancel()
                last_error = TransientStoreError(
                    f"{operation} timed out after {self.timeout}s", operation=operation
                )
            except TransientStoreError as e:
                last_error = e

            logger.warning(f"{last_error} (attempt {attempt + 1})")
            if attempt < attempts - 1:
                time.sleep(self.retry_backoff * (2 ** attempt))

        raise last_error

    # --- Telemetry store ---

    def list_buildings(self, status=None, owner_id=None):
        return self._call("list_buildings", status=status, owner_id=owner_id)

    def list_energy_readings(self, building_id, granularity, limit=None, since=None):
        return self._call("list_energy_readings", building_id, granularity, limit=limit, since=since)

    def list_sensors(self, building_id):
        return self._call("list_sensors", building_id)

    def list_alerts(self, **filters):
        return self._call("list_alerts", **filters)

    # --- Alert store ---

    def insert_alert(self, alert):
        return self._call("insert_alert", alert, retry=False)

    def find_open_alert(self, building_id, title, since):
        return self._call("find_open_alert", building_id, title, since)

    def get_alert(self, alert_id):
        return self._call("get_alert", alert_id)

    def update_alert_resolution(self, alert_id, **fields):
        return self._call("update_alert_resolution", alert_id, retry=False, **fields)

    def mark_alert_read(self, alert_id):
        return self._call("mark_alert_read", alert_id)

    def mark_alerts_read(self, building_ids):
        return self._call("mark_alerts_read", building_ids)
