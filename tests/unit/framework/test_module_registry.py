"""
Unit tests for DetectorRegistry.

Tests cover:
- load_active_detectors(): all four detectors in evaluation order by default
- disabled detectors are skipped
- each detector receives its own config section
- get_detector(): cached instance, KeyError for unknown names
- _load_single_detector(): TypeError for classes outside BaseDetector
"""

from dataclasses import replace

import pytest

from pricewatch.config_loader import AlertsConfig, JumpConfig, TrendConfig
from pricewatch.detectors import HealthDetector, JumpDetector, TrendDetector, VolatilityDetector
from pricewatch.framework import DetectorRegistry


class TestLoadActiveDetectors:
    def test_default_order(self) -> None:
        detectors = DetectorRegistry(AlertsConfig()).load_active_detectors()
        assert [type(d) for d in detectors] == [
            JumpDetector,
            TrendDetector,
            VolatilityDetector,
            HealthDetector,
        ]

    def test_disabled_detector_skipped(self) -> None:
        alerts = replace(AlertsConfig(), trend=TrendConfig(enabled=False))
        registry = DetectorRegistry(alerts)

        names = [d.detector_name for d in registry.load_active_detectors()]
        assert names == ["jump", "volatility", "health"]
        assert registry.list_active_detectors() == names

    def test_detector_gets_its_section(self) -> None:
        jump_config = JumpConfig(z_threshold=6.5)
        registry = DetectorRegistry(replace(AlertsConfig(), jump=jump_config))
        assert registry.get_detector("jump").config is jump_config


class TestGetDetector:
    def setup_method(self) -> None:
        self.registry = DetectorRegistry(AlertsConfig())

    def test_cached_instance(self) -> None:
        assert self.registry.get_detector("health") is self.registry.get_detector("health")

    def test_unknown_name(self) -> None:
        with pytest.raises(KeyError):
            self.registry.get_detector("momentum")

    def test_non_detector_class_rejected(self) -> None:
        self.registry.DETECTOR_MAPPING = {"jump": "pricewatch.config_loader.JumpConfig"}
        with pytest.raises(TypeError, match="does not inherit from BaseDetector"):
            self.registry.get_detector("jump")
