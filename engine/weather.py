"""
engine/weather.py
=================
Process-wide weather state and its effect on speed and jam likelihood.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple, Union

from engine.errors import InvalidArgument


class Weather(Enum):
    CLEAR = "CLEAR"
    RAIN = "RAIN"
    FOG = "FOG"
    SNOW = "SNOW"


# weather → (speed multiplier ≤ 1, jam-probability multiplier ≥ 1)
_PROFILES: Dict[Weather, Tuple[float, float]] = {
    Weather.CLEAR: (1.0, 1.0),
    Weather.RAIN: (0.8, 1.3),
    Weather.FOG: (0.7, 1.2),
    Weather.SNOW: (0.55, 1.6),
}


def parse_weather(value: Union[str, Weather]) -> Weather:
    """Map a :class:`Weather` or its name (any case) to a member."""
    if isinstance(value, Weather):
        return value
    try:
        return Weather(str(value).strip().upper())
    except ValueError:
        raise InvalidArgument(f"unknown weather {value!r}") from None


class WeatherModel:
    """Holds the current :class:`Weather`; changed only by explicit action."""

    def __init__(self, state: Weather = Weather.CLEAR) -> None:
        self.state = state

    @property
    def speed_multiplier(self) -> float:
        return _PROFILES[self.state][0]

    @property
    def jam_multiplier(self) -> float:
        return _PROFILES[self.state][1]

    def set(self, value: Union[str, Weather]) -> bool:
        """Switch weather; return *True* if it actually changed."""
        new_state = parse_weather(value)
        if new_state is self.state:
            return False
        self.state = new_state
        return True
