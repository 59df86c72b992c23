from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "FleetWatch API"
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = "sqlite:///./fleetwatch.db"
    report_dir: str = "reports"
    log_level: str = "INFO"

    motion_threshold_kmh: float = 1.0
    min_stop_seconds: float = 120.0
    trip_end_seconds: float = 300.0
    default_speed_limit_kmh: float | None = None
    # zone the geofence time-window rules are written in
    timezone: str = "UTC"


settings = Settings()
