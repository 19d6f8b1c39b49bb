from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Tuple

from pydantic import BaseModel, ConfigDict, Field

# SettingsPatch field -> key expected by the firmware's PATCH /api/system.
SETTINGS_FIELD_MAP: Dict[str, str] = {
    "stratum_url": "stratumURL",
    "stratum_port": "stratumPort",
    "stratum_user": "stratumUser",
    "stratum_password": "stratumPassword",
    "fan_speed": "fanspeed",
    "frequency": "frequency",
    "core_voltage": "coreVoltage",
}


def _safe_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _safe_uint(value: Any) -> int | None:
    numeric = _safe_float(value)
    if numeric is None or not math.isfinite(numeric) or numeric < 0:
        return None
    return int(numeric)


def _safe_str(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


class MinerSnapshot(BaseModel):
    """Normalized view of a telemetry document.

    Firmware variants drop fields freely, so every field is optional and
    :meth:`from_payload` never fails because of a missing or mistyped value.
    """

    model_config = ConfigDict(frozen=True)

    hostname: str | None = None
    asic_model: str | None = None
    version: str | None = None
    hash_rate: float | None = None
    temperature: float | None = None
    power: float | None = None
    core_voltage: float | None = None
    core_voltage_actual: float | None = None
    voltage: float | None = None
    uptime_seconds: int | None = None
    shares_accepted: int | None = None
    shares_rejected: int | None = None
    best_diff: str | None = None

    @classmethod
    def from_payload(cls, document: Any) -> "MinerSnapshot":
        if not isinstance(document, Mapping):
            return cls()
        best_diff = document.get("bestDiff")
        if best_diff is None:
            best_diff = document.get("bestSessionDiff")
        return cls(
            hostname=_safe_str(document.get("hostname")),
            asic_model=_safe_str(document.get("ASICModel")),
            version=_safe_str(document.get("version")),
            hash_rate=_safe_float(document.get("hashRate")),
            temperature=_safe_float(document.get("temp")),
            power=_safe_float(document.get("power")),
            core_voltage=_safe_float(document.get("coreVoltage")),
            core_voltage_actual=_safe_float(document.get("coreVoltageActual")),
            voltage=_safe_float(document.get("voltage")),
            uptime_seconds=_safe_uint(document.get("uptimeSeconds")),
            shares_accepted=_safe_uint(document.get("sharesAccepted")),
            shares_rejected=_safe_uint(document.get("sharesRejected")),
            best_diff=_safe_str(best_diff),
        )

    @property
    def effective_voltage(self) -> float | None:
        for value in (self.core_voltage_actual, self.core_voltage, self.voltage):
            if value is not None:
                return value
        return None


def parse_pool_uri(uri: str) -> Tuple[str, int | None]:
    """Split ``stratum+tcp://host:port`` into the firmware's URL and port.

    The firmware wants the bare host in ``stratumURL``, without the scheme.
    """
    remainder = uri.strip()
    if "://" in remainder:
        remainder = remainder.split("://", 1)[1]
    remainder = remainder.rstrip("/")
    host, sep, port = remainder.rpartition(":")
    if sep and port.isdigit():
        if not host:
            raise ValueError(f"Pool URI has no host: {uri!r}")
        return host, int(port)
    if not remainder:
        raise ValueError(f"Pool URI has no host: {uri!r}")
    return remainder, None


class SettingsPatch(BaseModel):
    """Sparse settings update. Only fields that were set reach the wire."""

    stratum_url: str | None = None
    stratum_port: int | None = Field(default=None, ge=0, le=65535)
    stratum_user: str | None = None
    stratum_password: str | None = None
    fan_speed: int | None = Field(default=None, ge=0, le=100)
    frequency: int | None = Field(default=None, ge=0, le=65535)
    core_voltage: int | None = Field(default=None, ge=0, le=65535)

    def to_payload(self) -> Dict[str, Any]:
        provided = self.model_dump(exclude_unset=True, exclude_none=True)
        return {
            wire_key: provided[field_name]
            for field_name, wire_key in SETTINGS_FIELD_MAP.items()
            if field_name in provided
        }

    @classmethod
    def for_pool(
        cls,
        uri: str,
        user: str | None = None,
        password: str | None = None,
        fan_speed: int | None = None,
    ) -> "SettingsPatch":
        url, port = parse_pool_uri(uri)
        fields: Dict[str, Any] = {"stratum_url": url}
        if port is not None:
            fields["stratum_port"] = port
        if user is not None:
            fields["stratum_user"] = user
        if password is not None:
            fields["stratum_password"] = password
        if fan_speed is not None:
            fields["fan_speed"] = fan_speed
        return cls(**fields)


@dataclass(frozen=True)
class CommandAck:
    message: str
    status_code: int | None = None

    def __str__(self) -> str:
        return self.message
