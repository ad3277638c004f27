"""Background scheduler configuration."""

from pydantic import BaseModel


class SchedulerConfig(BaseModel, frozen=True):
    """Periodic job settings."""

    enabled: bool
    status_interval_seconds: int
    idle_sweep_interval_seconds: int
