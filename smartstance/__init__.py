"""SmartStance — real-time presentation telemetry and coaching engine."""

__version__ = "1.0.0"
