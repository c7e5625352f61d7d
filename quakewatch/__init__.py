"""Quake, tsunami and EEW alert monitor for the dashboard."""

from .config import AppConfig, load_config
from .models import DisplayMode, FeedType, MonitorSnapshot, NormalizedEvent, SeverityLevel
from .monitor import AlertMonitor

__all__ = [
    "AlertMonitor",
    "AppConfig",
    "DisplayMode",
    "FeedType",
    "MonitorSnapshot",
    "NormalizedEvent",
    "SeverityLevel",
    "load_config",
]
