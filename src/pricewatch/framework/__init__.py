"""
Framework for pluggable snapshot sources, detectors and alert routing.

pricewatch uses a plugin architecture where:
- BaseConnector: Standardizes market-data source integration
- BaseDetector: Standardizes detection logic (locked, one alert per evaluation)
- DetectorRegistry: Instantiates the detectors enabled in configuration
- AlertRouter: Hands detector output to the Notifier without blocking
"""

from pricewatch.framework.alert_router import AlertRouter
from pricewatch.framework.base_connector import BaseConnector
from pricewatch.framework.base_detector import BaseDetector, EvaluationContext
from pricewatch.framework.module_registry import DetectorRegistry

__all__ = [
    "AlertRouter",
    "BaseConnector",
    "BaseDetector",
    "DetectorRegistry",
    "EvaluationContext",
]
