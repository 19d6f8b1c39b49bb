from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

DEFAULT_USER_AGENT = "AxeMobile/1.0"


class ClientConfig(BaseModel):
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent sent with every request to the miner.",
    )
    telemetry_timeout_s: float = Field(
        default=5.0, gt=0, description="Timeout for each telemetry probe."
    )
    restart_timeout_s: float = Field(
        default=5.0, gt=0, description="Timeout for the restart command."
    )
    settings_timeout_s: float = Field(
        default=10.0, gt=0, description="Timeout for the settings PATCH."
    )
    telemetry_endpoints: List[str] = Field(
        default_factory=lambda: ["/api/system/info", "/api/system/statistics"],
        min_length=1,
        description="Read-only telemetry endpoints, probed in this order.",
    )


class ShellConfig(BaseModel):
    minimize_to_tray: bool = Field(
        default=False,
        description="Hide the window instead of closing it when close is requested.",
    )


class SavedMiner(BaseModel):
    address: str
    name: str | None = None


class AppConfig(BaseModel):
    host: str = Field(default="127.0.0.1", description="Bind address of the web shell.")
    port: int = Field(default=8000, ge=1, le=65535)
    client: ClientConfig = Field(default_factory=ClientConfig)
    shell: ShellConfig = Field(default_factory=ShellConfig)
    miners: List[SavedMiner] = Field(default_factory=list)


DEFAULT_CONFIG = AppConfig()
