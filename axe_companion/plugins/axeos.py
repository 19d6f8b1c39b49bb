from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import httpx

from axe_companion.config import ClientConfig
from axe_companion.errors import MalformedResponse, MinerUnreachable, SettingsRejected
from axe_companion.logging_utils import TRACE_LEVEL, redact
from axe_companion.models import CommandAck, SettingsPatch

from .base import Miner

logger = logging.getLogger("axe_companion.axeos")

RESTART_PATH = "/api/system/restart"
SETTINGS_PATH = "/api/system"


def parse_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise MalformedResponse(str(response.url), str(exc)) from exc


@dataclass(frozen=True)
class TelemetryProbe:
    """One candidate telemetry endpoint and how to read its body."""

    path: str
    parse: Callable[[httpx.Response], Any] = parse_json


class MinerClient(Miner):
    """HTTP client for AxeOS-style firmware (Bitaxe, NerdQAxe and friends).

    Telemetry is discovered by probing ``config.telemetry_endpoints`` in
    order; the first endpoint that answers 2xx with a JSON body wins. Control
    commands are sent exactly once. Every call opens and closes its own
    ``httpx.AsyncClient``; ``transport`` only exists so tests can plug in
    ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self.name = "axeos"
        self.probes: tuple[TelemetryProbe, ...] = tuple(
            TelemetryProbe(path) for path in self.config.telemetry_endpoints
        )
        self._transport = transport

    def _client(self, timeout_s: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout_s,
            follow_redirects=False,
            headers={"User-Agent": self.config.user_agent},
            transport=self._transport,
        )

    def _build(
        self, client: httpx.AsyncClient, method: str, address: str, path: str, **kwargs: Any
    ) -> httpx.Request:
        url = f"http://{address}{path}"
        try:
            request = client.build_request(method, url, **kwargs)
        except httpx.InvalidURL as exc:
            raise MinerUnreachable(address, str(exc)) from exc
        # No Origin header.
        request.headers.pop("Origin", None)
        return request

    async def _send(
        self,
        client: httpx.AsyncClient,
        request: httpx.Request,
        timeout_s: float,
        stream: bool = False,
    ) -> httpx.Response:
        """Send ``request``; ``timeout_s`` bounds the whole exchange, not each read."""
        try:
            return await asyncio.wait_for(client.send(request, stream=stream), timeout_s)
        except asyncio.TimeoutError as exc:
            raise httpx.TimeoutException(
                f"No complete response within {timeout_s}s", request=request
            ) from exc

    async def _first_success(
        self, client: httpx.AsyncClient, address: str, probes: Sequence[TelemetryProbe]
    ) -> Any:
        for probe in probes:
            request = self._build(
                client, "GET", address, probe.path, headers={"Accept": "application/json"}
            )
            try:
                response = await self._send(client, request, self.config.telemetry_timeout_s)
            except httpx.RequestError as exc:
                logger.info("Request to %s failed: %s", request.url, exc)
                continue
            if not response.is_success:
                logger.info(
                    "Request to %s failed with status: %s", request.url, response.status_code
                )
                continue
            try:
                document = probe.parse(response)
            except MalformedResponse as exc:
                logger.info("%s", exc)
                continue
            logger.debug("Fetched telemetry from %s", request.url)
            logger.log(TRACE_LEVEL, "Telemetry payload from %s: %s", request.url, document)
            return document

        raise MinerUnreachable(address)

    async def fetch_telemetry(self, address: str) -> Any:
        async with self._client(self.config.telemetry_timeout_s) as client:
            return await self._first_success(client, address, self.probes)

    async def restart(self, address: str) -> CommandAck:
        async with self._client(self.config.restart_timeout_s) as client:
            request = self._build(client, "POST", address, RESTART_PATH)
            try:
                response = await self._send(
                    client, request, self.config.restart_timeout_s, stream=True
                )
            except httpx.RequestError as exc:
                logger.info("Restart request to %s failed: %s", request.url, exc)
                raise MinerUnreachable(address, str(exc)) from exc
            # Status line and headers are enough; the body may be cut off by the reboot.
            try:
                await response.aclose()
            except httpx.HTTPError as exc:
                logger.debug("Restart response from %s ended early: %s", request.url, exc)

        if not response.is_success:
            logger.warning(
                "Restart request to %s answered with status %s", request.url, response.status_code
            )
        return CommandAck("Restart command sent", response.status_code)

    async def apply_settings(self, address: str, patch: SettingsPatch) -> CommandAck:
        payload = patch.to_payload()
        body = json.dumps(payload, separators=(",", ":"))

        async with self._client(self.config.settings_timeout_s) as client:
            request = self._build(
                client,
                "PATCH",
                address,
                SETTINGS_PATH,
                content=body.encode("utf-8"),
                headers={"Content-Type": "application/json"},
            )
            logger.info("Sending PATCH to %s with keys %s", request.url, sorted(payload))
            logger.log(TRACE_LEVEL, "PATCH payload: %s", redact(payload))
            try:
                response = await self._send(client, request, self.config.settings_timeout_s)
            except httpx.RequestError as exc:
                logger.info("Settings request to %s failed: %s", request.url, exc)
                raise MinerUnreachable(address, str(exc)) from exc

        if not response.is_success:
            raise SettingsRejected(response.status_code, response.text)
        return CommandAck("Settings updated successfully", response.status_code)
