"""Redis and cache settings, loaded from the environment or a ``.env`` file."""
from typing import Annotated, Any, List, Optional, Tuple

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from chaincache.exceptions import ConfigurationError

DEFAULT_SENTINEL_PORT = 26379


class RedisSettings(BaseSettings):
    """Connection settings for the Redis store (``REDIS_*`` variables)."""

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        env_file=".env",
        extra="ignore",
        validate_assignment=True,
    )

    host: str = Field(min_length=1)
    port: int = Field(gt=0, le=65535)
    password: str = ""
    db: int = Field(ge=0)

    # Pool
    pool_size: int = Field(ge=1)
    min_idle_conns: int = Field(ge=0)
    max_conn_age: int = Field(ge=0, description="Maximum connection age in seconds")
    idle_timeout: int = Field(ge=0, description="Idle timeout in seconds")

    # Timeouts in seconds
    dial_timeout: float = Field(default=5.0, gt=0)
    read_timeout: float = Field(default=3.0, gt=0)
    write_timeout: float = Field(default=3.0, gt=0)

    # Sentinel failover
    sentinel_enabled: bool
    sentinel_master: Optional[str] = None
    sentinel_addresses: Annotated[List[str], NoDecode] = Field(default_factory=list)

    @field_validator("sentinel_addresses", mode="before")
    @classmethod
    def split_addresses(cls, value: Any) -> Any:
        """Accept a comma-separated string as well as a list."""
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            cleaned = ["".join(str(item).split()) for item in value]
            addresses = [item for item in cleaned if item]
            for address in addresses:
                _, sep, port = address.rpartition(":")
                if sep and not port.isdigit():
                    raise ValueError(f"invalid sentinel address {address!r}")
            return addresses
        return value

    @model_validator(mode="after")
    def check_consistency(self) -> "RedisSettings":
        if self.min_idle_conns > self.pool_size:
            raise ValueError("min_idle_conns cannot exceed pool_size")
        if self.sentinel_enabled:
            if not self.sentinel_master:
                raise ValueError("REDIS_SENTINEL_MASTER is required when Sentinel is enabled")
            if not self.sentinel_addresses:
                raise ValueError("REDIS_SENTINEL_ADDRESSES must be set when Sentinel is enabled")
        return self

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def sentinel_nodes(self) -> List[Tuple[str, int]]:
        """Sentinel addresses as ``(host, port)`` pairs."""
        nodes = []
        for address in self.sentinel_addresses:
            host, sep, port = address.rpartition(":")
            if not sep:
                nodes.append((address, DEFAULT_SENTINEL_PORT))
            else:
                nodes.append((host, int(port)))
        return nodes


class CacheSettings(BaseSettings):
    """Cache service settings (``CACHE_*`` variables)."""

    model_config = SettingsConfigDict(env_prefix="CACHE_", env_file=".env", extra="ignore")

    default_ttl: int = Field(default=300, gt=0, description="Default TTL in seconds")
    log_level: str = "INFO"


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(loc) for loc in item["loc"]) or "settings"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def load_redis_settings(**overrides: Any) -> RedisSettings:
    """Load Redis settings, raising ConfigurationError on invalid values."""
    try:
        return RedisSettings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(
            f"invalid Redis configuration: {_describe(e)}", operation="load_config"
        ) from e


def load_cache_settings(**overrides: Any) -> CacheSettings:
    """Load cache settings, raising ConfigurationError on invalid values."""
    try:
        return CacheSettings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(
            f"invalid cache configuration: {_describe(e)}", operation="load_config"
        ) from e
