"""Application configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="PATROL_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Patrol Route Planner API"
    api_prefix: str = "/api"
    directions_provider: Literal["osrm", "openrouteservice"] = Field(
        default="osrm",
        description="Road directions backend used to turn waypoints into a road route.",
    )
    directions_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the directions service (e.g., http://localhost:5000).",
    )
    directions_profile: str = Field(
        default="driving",
        description="Routing profile (OSRM 'driving', OpenRouteService 'driving-car').",
    )
    directions_api_key: Optional[str] = Field(
        default=None,
        description="API key sent in the Authorization header (OpenRouteService only).",
    )
    directions_timeout_seconds: float = Field(default=30.0, gt=0.0)
    directions_max_retries: int = Field(default=2, ge=0)
    directions_backoff_seconds: float = Field(default=0.5, ge=0.0)

    default_base_lat: float = Field(default=13.05, ge=-90.0, le=90.0)
    default_base_lng: float = Field(default=80.25, ge=-180.0, le=180.0)
    default_km_limit: float = Field(default=20.0, ge=0.0)
    default_scan_radius_km: float = Field(default=10.0, ge=0.0)

    distance_tolerance_km: float = Field(
        default=5.0,
        ge=0.0,
        description="Margin over the distance budget accepted without asking for a decision.",
    )
    strict_risk_tolerance: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Risk tolerance of the first attempt (minimum risk = 10 - tolerance).",
    )
    relaxed_risk_tolerance: int = Field(
        default=5,
        ge=0,
        le=10,
        description="Risk tolerance of the second attempt (minimum risk = 10 - tolerance).",
    )
    decision_timeout_seconds: Optional[float] = Field(
        default=120.0,
        gt=0.0,
        description="How long to wait for an overrun decision. None waits forever.",
    )
    endpoint_snap_tolerance_km: float = Field(
        default=0.05,
        ge=0.0,
        description="Road geometry further than this from HQ is anchored to the exact HQ point.",
    )

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @field_validator("directions_base_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().rstrip("/")
            return value or None
        return value


settings = Settings()
