"""
Core infrastructure package for the ReportsDAY service.

Provides:
- Configuration management via pydantic-settings (config)
- Time zone and rounding helpers (timeutils)
- The runtime container that owns every component (runtime)
- FastAPI dependency injection utilities (dependencies)

Only configuration and time helpers are re-exported here; runtime and
dependencies pull in the service layer and are imported from their modules:

    from reportsday.core import get_settings, round_half_up
    from reportsday.core.runtime import Runtime, build_runtime
    from reportsday.core.dependencies import RuntimeDep
"""

from reportsday.core.config import Settings, get_settings
from reportsday.core.timeutils import (
    Clock,
    get_timezone,
    make_clock,
    start_of_day,
    end_of_day,
    round_half_up,
)


__all__ = [
    'Settings',
    'get_settings',
    'Clock',
    'get_timezone',
    'make_clock',
    'start_of_day',
    'end_of_day',
    'round_half_up',
]
