"""Alert generation and lifecycle engine."""
from alerts.engine import AlertEngine, BuildingResult, GenerationReport, ResolutionReport
from alerts.evaluators import (
    EvaluatorSettings, evaluate_energy, evaluate_sensors, evaluate_performance, evaluate_system,
)
from alerts.writer import AlertWriter
from alerts.resolution import AutoResolver
from alerts.insights import InsightAggregator
from alerts.manager import AlertManager
from alerts.channels import NotificationSink, ConsoleChannel, FileChannel, WebhookChannel, FanOutSink
