from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Health Units Nearby API"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8080
    # CORS: "*" for dev; in production set to comma-separated origins
    cors_origins: str = "*"
    rate_limit: str = "100/minute"

    units_db_path: str = "data/units.db"  # Path relative to project root, or absolute (load with scripts/load_units.py)
    locations_db_path: str = "data/locations.db"  # Previously geocoded addresses
    store_timeout_seconds: float = 5.0

    default_radius_m: float = 1000.0
    max_radius_m: float = 50_000.0
    max_per_page: int = 100
    # Query neighbouring degree cells when the radius reaches past the center's cell
    widen_cells_for_radius: bool = False

    geocoding_base_url: str = "https://nominatim.openstreetmap.org"
    geocoding_user_agent: str = "HealthUnits-API/1.0"
    geocoding_timeout_seconds: float = 10.0
    geocoding_cache_ttl_seconds: int = 86400
    geocoding_min_interval_seconds: float = 1.0  # Nominatim allows 1 request per second


def get_settings() -> Settings:
    return Settings()
