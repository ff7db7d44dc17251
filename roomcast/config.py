import os
from enum import Enum
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv(".env")


def _env_int(*names: str, default: int) -> int:
    for name in names:
        value = os.getenv(name)
        if value:
            return int(value)
    return default


class SlowConsumerPolicy(str, Enum):
    """What an outbound channel does when its queue is full."""

    DROP_OLDEST = "drop_oldest"   # Discard the oldest queued event
    DISCONNECT = "disconnect"     # Close the slow connection
    BLOCK = "block"               # Wait up to send_timeout, then disconnect


class Settings(BaseModel):
    # Listener
    host: str = Field(default_factory=lambda: os.getenv("ROOMCAST_HOST", "localhost"))
    port: int = Field(
        default_factory=lambda: _env_int("ROOMCAST_PORT", "PORT", default=8080),
        description="Listen port (0 picks a free port)",
    )

    # Connect-time token check; None disables it
    auth_token: Optional[str] = Field(
        default_factory=lambda: os.getenv("ROOMCAST_AUTH_TOKEN") or None
    )

    # Outbound backpressure
    outbound_queue_size: int = Field(
        default_factory=lambda: _env_int("ROOMCAST_QUEUE_SIZE", default=100), ge=1
    )
    slow_consumer_policy: SlowConsumerPolicy = Field(
        default_factory=lambda: SlowConsumerPolicy(
            os.getenv("ROOMCAST_SLOW_CONSUMER_POLICY", SlowConsumerPolicy.DROP_OLDEST.value)
        )
    )
    send_timeout: float = Field(
        default_factory=lambda: float(os.getenv("ROOMCAST_SEND_TIMEOUT", "5.0")),
        gt=0,
        description="Seconds a 'block' policy waits for queue space",
    )

    # Keepalive
    heartbeat_interval: float = Field(
        default_factory=lambda: float(os.getenv("ROOMCAST_HEARTBEAT_INTERVAL", "30")),
        ge=0,
        description="Seconds between heartbeat events (0 disables)",
    )
    ping_interval: Optional[float] = Field(20.0, description="websockets keepalive ping interval")
    ping_timeout: Optional[float] = Field(20.0, description="websockets keepalive ping timeout")

    # Limits
    max_message_size: int = Field(
        default_factory=lambda: _env_int("ROOMCAST_MAX_MESSAGE_SIZE", default=64 * 1024)
    )
    max_room_name_length: int = Field(64, ge=1)
    max_username_length: int = Field(32, ge=1)

    @field_validator("auth_token")
    @classmethod
    def _blank_token_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


settings = Settings()
