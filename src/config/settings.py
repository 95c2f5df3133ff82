"""
Operations Dashboard Service
Centralized Configuration Management

Pydantic settings with environment variable support, validation, and type safety.
Each subsystem reads its own env prefix; `Settings` aggregates them.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""
    
    model_config = SettingsConfigDict(env_prefix="POSTGRES_", populate_by_name=True)
    
    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="ops_dashboard", alias="database", description="Database name")
    user: str = Field(default="ops", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    pool_size: int = Field(default=20, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Max overflow connections")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
        description="Full async URL (overrides host/port, e.g. sqlite+aiosqlite:///./ops.db)",
    )
    
    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Redis Configuration (distributed alert locks)"""
    
    model_config = SettingsConfigDict(env_prefix="REDIS_", populate_by_name=True)
    
    enabled: bool = Field(default=False, description="Use Redis for cross-worker alert locks")
    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=50, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    url: Optional[str] = Field(default=None, alias="REDIS_URL", description="Redis URL (overrides host/port)")
    
    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class SecuritySettings(BaseSettings):
    """Security and Authentication Configuration"""
    
    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)
    
    jwt_secret_key: SecretStr = Field(default="jwt-secret-change-me", alias="JWT_SECRET_KEY", description="JWT secret key")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM", description="JWT algorithm")
    
    # Rate limiting
    rate_limit_requests: int = Field(default=100, alias="RATE_LIMIT_REQUESTS", description="Rate limit requests")
    rate_limit_window_seconds: int = Field(default=60, alias="RATE_LIMIT_WINDOW_SECONDS", description="Rate limit window")
    
    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )


class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""
    
    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)
    
    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")
    
    enable_metrics: bool = Field(default=True, alias="ENABLE_METRICS", description="Expose Prometheus /metrics")


class AnalyticsSettings(BaseSettings):
    """Dashboard analytics configuration"""
    
    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")
    
    timezone: str = Field(default="Europe/London", description="Zone used for day boundaries")
    default_interval: str = Field(default="week", description="Default revenue series interval")
    dashboard_top_products: int = Field(default=5, description="Top products shown on the dashboard")
    dashboard_recent_orders: int = Field(default=5, description="Recent orders shown on the dashboard")
    dashboard_stock_limit: int = Field(default=50, description="Low/out-of-stock rows shown on the dashboard")


class AlertSettings(BaseSettings):
    """Inventory and order alert configuration"""
    
    model_config = SettingsConfigDict(env_prefix="ALERTS_")
    
    dashboard_url: Optional[str] = Field(default=None, description="Admin dashboard base URL used in emails")
    channel: str = Field(default="log", description="Notification channel: log or relay")
    relay_url: Optional[str] = Field(default=None, description="Mail relay endpoint for the relay channel")
    relay_token: Optional[SecretStr] = Field(default=None, description="Bearer token for the mail relay")
    relay_timeout_seconds: float = Field(default=10.0, description="Mail relay request timeout")
    lock_timeout_seconds: int = Field(default=30, description="Max time a unit lock is held")
    lock_wait_seconds: int = Field(default=10, description="Max time to wait for a unit lock")
    
    @field_validator("channel")
    @classmethod
    def validate_channel(cls, v: str) -> str:
        """Validate channel kind"""
        allowed = ["log", "relay"]
        if v.lower() not in allowed:
            raise ValueError(f"Alert channel must be one of: {allowed}")
        return v.lower()


class Settings(BaseSettings):
    """
    Main Application Settings
    
    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )
    
    # Application
    app_name: str = Field(default="ops-dashboard", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode (bypasses auth)")
    
    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")
    api_workers: int = Field(default=4, alias="API_WORKERS", description="API workers")
    
    # Version
    version: str = Field(default="1.0.0", description="Application version")
    
    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    
    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()
    
    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"
    
    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.
    
    Uses LRU cache to ensure settings are only loaded once.
    
    Returns:
        Settings: Application settings instance
    """
    return Settings()
