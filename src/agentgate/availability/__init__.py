"""Health polling for services the application depends on."""

from agentgate.availability.monitor import (
    AvailabilityMonitor,
    AvailabilityState,
    MonitorStatus,
    ProbeError,
)

__all__ = [
    "AvailabilityMonitor",
    "AvailabilityState",
    "MonitorStatus",
    "ProbeError",
]
