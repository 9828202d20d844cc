"""
Detector registry for config-driven detector instantiation.

Maps detector names to class paths and instantiates the enabled ones with
their own config section. This enables:
- Config-driven toggles (alerts.<name>.enabled) without code changes
- Adding a detector by registering its class path here
"""

import importlib
import logging

from pricewatch.config_loader import AlertsConfig
from pricewatch.framework.base_detector import BaseDetector

logger = logging.getLogger(__name__)


class DetectorRegistry:
    """
    Loads detectors in evaluation order.

    Usage:
        registry = DetectorRegistry(config.alerts)
        detectors = registry.load_active_detectors()
    """

    # Evaluation order matters: it is the order alerts are dispatched in
    DETECTOR_MAPPING = {
        "jump": "pricewatch.detectors.jump.JumpDetector",
        "trend": "pricewatch.detectors.trend.TrendDetector",
        "volatility": "pricewatch.detectors.volatility.VolatilityDetector",
        "health": "pricewatch.detectors.health.HealthDetector",
    }

    def __init__(self, alerts_config: AlertsConfig) -> None:
        self.alerts_config = alerts_config
        self._detectors: dict[str, BaseDetector] = {}

    def load_active_detectors(self) -> list[BaseDetector]:
        """
        Instantiate every enabled detector, in DETECTOR_MAPPING order.

        Raises:
            ImportError: If a detector class cannot be imported
            TypeError: If a class doesn't inherit from BaseDetector
        """
        detectors = []
        for name in self.DETECTOR_MAPPING:
            if not getattr(self.alerts_config, name).enabled:
                logger.info("Detector disabled: %s", name)
                continue
            detectors.append(self.get_detector(name))
        return detectors

    def get_detector(self, name: str) -> BaseDetector:
        """
        Get a detector by name, instantiating it on first access.

        Raises:
            KeyError: If name is not in DETECTOR_MAPPING
        """
        if name not in self._detectors:
            self._detectors[name] = self._load_single_detector(name)
        return self._detectors[name]

    def list_active_detectors(self) -> list[str]:
        return [
            name
            for name in self.DETECTOR_MAPPING
            if getattr(self.alerts_config, name).enabled
        ]

    def _load_single_detector(self, name: str) -> BaseDetector:
        class_path = self.DETECTOR_MAPPING[name]
        module_path, class_name = class_path.rsplit(".", 1)
        detector_cls = getattr(importlib.import_module(module_path), class_name)

        if not issubclass(detector_cls, BaseDetector):
            raise TypeError(f"{class_path} does not inherit from BaseDetector")

        detector = detector_cls(getattr(self.alerts_config, name))
        logger.info("Registered detector: %s (%s)", name, class_name)
        return detector
