"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Engine parameters are read once at startup and are immutable for the
    lifetime of the process. `validate_engine_settings()` lists every
    invalid value; the engine refuses to start while that list is non-empty.
    """

    # Application
    app_name: str = "Safety-Aware Navigation API"
    app_env: str = Field(default="development", description="Environment: development, staging, production")
    debug: bool = False

    # CORS
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:5174", "http://localhost:3000"]
    cors_allow_methods: List[str] = ["GET", "POST", "PUT", "OPTIONS"]
    cors_allow_headers: List[str] = ["Content-Type", "X-Request-ID"]

    # Service area (San Francisco)
    area_min_lng: float = -122.52
    area_min_lat: float = 37.70
    area_max_lng: float = -122.35
    area_max_lat: float = 37.82

    # Incident categories
    incident_categories: List[str] = ["theft", "accident", "assault", "vandalism"]
    default_enabled_categories: List[str] = ["theft", "accident", "assault"]

    # Risk model
    cell_size_meters: float = Field(default=150.0, description="Edge length of a risk grid cell")
    default_half_life_hours: float = Field(default=24.0 * 30, description="Decay half-life for categories without an override")
    category_half_life_hours: Dict[str, float] = Field(
        default={"assault": 24.0 * 90, "theft": 24.0 * 45, "vandalism": 24.0 * 14},
        description="Per-category decay half-life overrides",
    )
    retention_days: float = Field(default=365.0, description="Incidents older than this are ignored")

    # Routing
    risk_aversion: float = Field(default=60.0, description="Seconds of travel time traded per unit of risk")
    safest_risk_multiplier: float = Field(default=5.0, description="λ multiplier for the safest profile")
    route_timeout_seconds: float = Field(default=5.0, description="Default route search deadline")
    route_use_heuristic: bool = True

    # Safety bands (risk per km)
    safe_threshold: float = 0.5
    risky_threshold: float = 2.0
    density_epsilon_km: float = 0.001

    # Data
    graph_path: Optional[str] = Field(default=None, description="JSON node/edge dataset loaded at startup")
    incidents_path: Optional[str] = Field(default=None, description="Optional JSON incident batch ingested at startup")

    # Logging
    log_level: str = "INFO"
    log_requests: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("incident_categories", "default_enabled_categories")
    @classmethod
    def normalize_categories(cls, v: List[str]) -> List[str]:
        return [c.strip().lower() for c in v if c.strip()]

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"

    def validate_engine_settings(self) -> List[str]:
        """Validate engine parameters. Returns list of errors."""
        errors = []

        if not 0 <= self.safe_threshold < self.risky_threshold:
            errors.append(
                f"SAFE_THRESHOLD ({self.safe_threshold}) must be >= 0 and below "
                f"RISKY_THRESHOLD ({self.risky_threshold})"
            )
        if self.density_epsilon_km <= 0:
            errors.append("DENSITY_EPSILON_KM must be positive")
        if self.risk_aversion < 0:
            errors.append("RISK_AVERSION must be >= 0")
        if self.safest_risk_multiplier < 1:
            errors.append("SAFEST_RISK_MULTIPLIER must be >= 1")
        if self.cell_size_meters <= 0:
            errors.append("CELL_SIZE_METERS must be positive")
        if self.default_half_life_hours <= 0:
            errors.append("DEFAULT_HALF_LIFE_HOURS must be positive")
        for category, hours in self.category_half_life_hours.items():
            if hours <= 0:
                errors.append(f"Half-life for {category} must be positive")
        if self.retention_days <= 0:
            errors.append("RETENTION_DAYS must be positive")
        if self.route_timeout_seconds <= 0:
            errors.append("ROUTE_TIMEOUT_SECONDS must be positive")
        if self.area_min_lat >= self.area_max_lat or self.area_min_lng >= self.area_max_lng:
            errors.append("Service area bounds must satisfy min < max")
        if not self.incident_categories:
            errors.append("INCIDENT_CATEGORIES must not be empty")
        unknown = set(self.default_enabled_categories) - set(self.incident_categories)
        if unknown:
            errors.append(
                f"DEFAULT_ENABLED_CATEGORIES contains unknown categories: {', '.join(sorted(unknown))}"
            )

        return errors


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
