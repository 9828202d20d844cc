"""
pricewatch — real-time alerting for a single market-data stream.

Snapshots flow one way through the pipeline:

    connector → Monitor (rate gate, DerivedTick, RollingWindow)
              → detectors (jump, trend, volatility, health)
              → AlertRouter → Notifier queue → webhook workers
"""

__version__ = "0.1.0"
