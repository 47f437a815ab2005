"""Batch orchestration of alert generation and auto-resolution."""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from alerts.evaluators import EVALUATORS, EvaluatorSettings
from alerts.resolution import AutoResolver
from alerts.writer import AlertWriter, DEDUP_WINDOW_HOURS
from models.enums import BuildingStatus, Granularity, Priority
from models.telemetry import BuildingSnapshot
from utils.clock import utc_now
from utils.errors import StoreError

logger = logging.getLogger("buildingalerts.alerts.engine")

HOURLY_WINDOW = 24
DAILY_WINDOW_DAYS = 7


@dataclass
class BuildingResult:
    building_id: str
    building_name: str
    candidates: int = 0
    alerts_generated: int = 0
    suppressed: int = 0
    alerts: list = field(default_factory=list)
    errors: list = field(default_factory=list)
    error: Optional[str] = None
    cancelled: bool = False

    @property
    def ok(self):
        return self.error is None and not self.cancelled


@dataclass
class GenerationReport:
    total_buildings: int = 0
    total_alerts: int = 0
    results: list = field(default_factory=list)
    timestamp: object = field(default_factory=utc_now)
    error: Optional[str] = None

    @property
    def failed(self):
        return [r for r in self.results if r.error]


@dataclass
class ResolutionReport:
    total_checked: int = 0
    resolved: int = 0
    resolved_alerts: list = field(default_factory=list)
    errors: list = field(default_factory=list)
    timestamp: object = field(default_factory=utc_now)
    error: Optional[str] = None


class AlertEngine:
    """Runs every evaluator for every online building and auto-resolves open alerts.

    ``store`` should be a StoreClient (or anything with the same methods) so
    each call is bounded by a timeout. Per-building and per-alert failures are
    recorded in the returned report and never abort the run.
    """

    def __init__(self, store, sink=None, settings=None, max_concurrent_buildings=8,
                 dedup_window_hours=DEDUP_WINDOW_HOURS, clock=utc_now):
        self.store = store
        self.sink = sink
        self.settings = settings or EvaluatorSettings()
        self.max_concurrent_buildings = max_concurrent_buildings
        self.clock = clock
        self.writer = AlertWriter(store, sink, dedup_window_hours=dedup_window_hours, clock=clock)

    @classmethod
    def from_config(cls, store, sink, config):
        return cls(
            store,
            sink,
            settings=EvaluatorSettings.from_config(config),
            max_concurrent_buildings=config.get("engine", {}).get("max_concurrent_buildings", 8),
            dedup_window_hours=config.get("alerts", {}).get("dedup_window_hours", DEDUP_WINDOW_HOURS),
        )

    # --- Snapshot ---

    def fetch_snapshot(self, building):
        """Fetch every telemetry slice concurrently; failed slices stay None."""
        now = self.clock()
        frequency_since = now - timedelta(hours=self.settings.frequency_window_hours)
        fetches = {
            "hourly_readings": lambda: self.store.list_energy_readings(
                building.id, Granularity.HOUR.value, limit=HOURLY_WINDOW),
            "daily_readings": lambda: self.store.list_energy_readings(
                building.id, Granularity.DAY.value, since=now - timedelta(days=DAILY_WINDOW_DAYS)),
            "sensors": lambda: self.store.list_sensors(building.id),
            "open_critical_alerts": lambda: self.store.list_alerts(
                building_id=building.id, is_resolved=False, priority=Priority.CRITICAL.value),
            "recent_alerts": lambda: self.store.list_alerts(
                building_id=building.id, since=frequency_since),
        }

        snapshot = BuildingSnapshot(building_id=building.id, taken_at=now)
        with ThreadPoolExecutor(max_workers=len(fetches)) as executor:
            futures = {executor.submit(func): name for name, func in fetches.items()}
            for future in as_completed(futures):
                name = futures[future]
                try:
                    setattr(snapshot, name, future.result())
                except Exception as e:
                    logger.warning(f"Fetching {name} for building {building.id} failed: {e}")
        return snapshot

    def evaluate(self, building, snapshot):
        """Run all evaluators; one failing evaluator does not affect the others."""
        candidates = []
        for name, evaluator in EVALUATORS.items():
            try:
                candidates.extend(evaluator(building, snapshot, self.settings))
            except Exception as e:
                logger.error(f"{name} evaluator failed for building {building.id}: {e}")
        return candidates

    # --- Generation ---

    def check_building(self, building):
        """Evaluate one building and submit its candidates through the writer."""
        result = BuildingResult(building_id=building.id, building_name=building.name)
        snapshot = self.fetch_snapshot(building)
        candidates = self.evaluate(building, snapshot)
        result.candidates = len(candidates)

        for candidate in candidates:
            try:
                alert = self.writer.submit(building.id, candidate)
            except Exception as e:
                logger.error(f"Writing '{candidate.title}' for building {building.id} failed: {e}")
                result.errors.append(f"{candidate.title}: {e}")
                continue
            if alert is None:
                result.suppressed += 1
            else:
                result.alerts.append(alert)

        result.alerts_generated = len(result.alerts)
        return result

    def _check_building_safely(self, building, cancel_event):
        if cancel_event is not None and cancel_event.is_set():
            return BuildingResult(building_id=building.id, building_name=building.name, cancelled=True)
        try:
            return self.check_building(building)
        except Exception as e:
            logger.error(f"Error checking alerts for building {building.id}: {e}")
            return BuildingResult(building_id=building.id, building_name=building.name, error=str(e))

    def generate_for_all_buildings(self, cancel_event=None):
        """Evaluate every online building, at most ``max_concurrent_buildings`` at a time.

        Setting ``cancel_event`` stops new buildings from starting; buildings
        already in progress finish and keep their results.
        """
        logger.info("Starting automated alert generation...")
        try:
            buildings = self.store.list_buildings(status=BuildingStatus.ONLINE.value)
        except StoreError as e:
            logger.error(f"Alert generation aborted, could not list buildings: {e}")
            return GenerationReport(error=str(e))
        report = GenerationReport(total_buildings=len(buildings))

        results = {}
        with ThreadPoolExecutor(max_workers=self.max_concurrent_buildings,
                                thread_name_prefix="building") as executor:
            futures = {
                executor.submit(self._check_building_safely, b, cancel_event): b.id
                for b in buildings
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()

        report.results = [results[b.id] for b in buildings]
        report.total_alerts = sum(r.alerts_generated for r in report.results)
        cancelled = sum(1 for r in report.results if r.cancelled)
        logger.info(
            f"Alert generation complete. Generated {report.total_alerts} alerts for "
            f"{len(buildings)} buildings ({len(report.failed)} failed, {cancelled} cancelled)."
        )
        return report

    # --- Resolution ---

    def auto_resolve_all(self):
        """Check every unresolved alert and close those whose condition cleared."""
        logger.info("Starting auto-resolution of alerts...")
        try:
            open_alerts = self.store.list_alerts(is_resolved=False)
        except StoreError as e:
            logger.error(f"Auto-resolution aborted, could not list open alerts: {e}")
            return ResolutionReport(error=str(e))
        try:
            buildings = {b.id: b for b in self.store.list_buildings()}
        except Exception as e:
            logger.warning(f"Could not load buildings, using default consumption baseline: {e}")
            buildings = {}

        resolver = AutoResolver(
            self.store, self.sink, buildings=buildings,
            default_yearly_consumption=self.settings.default_yearly_consumption,
            clock=self.clock,
        )
        report = ResolutionReport(total_checked=len(open_alerts))
        for alert in open_alerts:
            try:
                decision = resolver.should_auto_resolve(alert)
                if not decision.resolve:
                    continue
                resolved = resolver.resolve(alert, decision.reason)
            except Exception as e:
                logger.error(f"Error checking auto-resolve conditions for alert {alert.id}: {e}")
                report.errors.append({"alert_id": alert.id, "error": str(e)})
                continue
            if resolved is not None:
                report.resolved_alerts.append(resolved)

        report.resolved = len(report.resolved_alerts)
        logger.info(f"Auto-resolution complete. Resolved {report.resolved} of {report.total_checked} alerts.")
        return report
