"""
Configuration management for the dashboard cache worker
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Dashboard Cache Worker"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database
    database_url: str = "sqlite:///./dashboard_cache.db"

    # Query backend (Cube.js REST API)
    cube_api_url: str = "http://localhost:4000/cubejs-api/v1"
    cube_api_token: Optional[str] = None
    cube_request_timeout_seconds: float = 30.0
    cube_continue_wait_seconds: float = 1.0  # Poll interval while the backend says "Continue wait"
    cube_max_wait_seconds: float = 300.0

    # Step execution (retry policy applied to every refresh step)
    step_max_attempts: int = 3
    step_base_delay_seconds: float = 1.0
    step_max_delay_seconds: float = 60.0

    # Scheduling
    enable_scheduler: bool = True
    dashboard_refresh_interval_minutes: int = 60

    # Read-side response cache
    dashboard_response_ttl_seconds: int = 300

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
