from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from axe_companion.models import CommandAck, MinerSnapshot, SettingsPatch


class Miner(ABC):
    """Base protocol for miner integrations.

    Every operation targets the single miner at ``address`` and keeps no
    state between calls.
    """

    name: str

    @abstractmethod
    async def fetch_telemetry(self, address: str) -> Any:
        """Return the raw telemetry document reported by the miner."""

    @abstractmethod
    async def restart(self, address: str) -> CommandAck:
        """Ask the miner to reboot."""

    @abstractmethod
    async def apply_settings(self, address: str, patch: SettingsPatch) -> CommandAck:
        """Send a sparse settings update."""

    async def fetch_snapshot(self, address: str) -> MinerSnapshot:
        return MinerSnapshot.from_payload(await self.fetch_telemetry(address))


def human_readable_uptime(seconds: int | None) -> str:
    if seconds is None:
        return "unknown"
    days, remainder = divmod(int(seconds), 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes = remainder // 60
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
