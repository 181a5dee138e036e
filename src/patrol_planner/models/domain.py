"""Domain models for patrol zones and the headquarters location."""

from dataclasses import dataclass
from typing import Optional, Union

MAX_RISK = 10
CRITICAL_RISK = 8
ELEVATED_RISK = 5

HQ_WAYPOINT_ID = "HQ"
HQ_WAYPOINT_NAME = "Police HQ"

ZoneId = Union[str, int]


@dataclass(frozen=True, slots=True)
class Zone:
    """A point of interest with a risk score.

    ``risk`` is ``None`` only for the synthetic HQ waypoints that open and
    close every route.
    """

    id: ZoneId
    name: str
    lat: float
    lng: float
    risk: Optional[int] = None

    @property
    def is_headquarters(self) -> bool:
        return self.risk is None and self.id == HQ_WAYPOINT_ID

    @property
    def risk_level(self) -> Optional[str]:
        if self.risk is None:
            return None
        if self.risk >= CRITICAL_RISK:
            return "critical"
        if self.risk >= ELEVATED_RISK:
            return "elevated"
        return "routine"


@dataclass(frozen=True, slots=True)
class BaseLocation:
    """Headquarters coordinate every route starts from and returns to."""

    lat: float
    lng: float

    def as_waypoint(self) -> Zone:
        return Zone(id=HQ_WAYPOINT_ID, name=HQ_WAYPOINT_NAME, lat=self.lat, lng=self.lng, risk=None)
