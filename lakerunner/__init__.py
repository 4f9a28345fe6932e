"""Building blocks for a telemetry data lake of log and metric segments."""

__version__ = "0.1.0"

__all__ = [
    "compaction",
    "configdb",
    "estimator",
    "fingerprint",
    "helpers",
    "idgen",
    "nodes",
]