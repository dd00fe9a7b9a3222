"""
MeterWatch: water meter telemetry monitoring.

A telemetry anomaly-detection system for smart water meters, paired with a
synthetic realistic-load generator that produces readings with the same
statistical shape the detector must recognise.

This package provides:
- Data models for readings, meters, and alerts
- Abstract ports for reading, alert, and meter persistence
- The anomaly detection engine and alert lifecycle manager
- The synthetic load generator
- Configuration management
- In-memory and Redis storage adapters
"""

__version__ = "0.1.0"
