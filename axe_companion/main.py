from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from axe_companion.config import DEFAULT_CONFIG, AppConfig, SavedMiner
from axe_companion.errors import MinerError, SettingsRejected
from axe_companion.logging_utils import ensure_trace_level
from axe_companion.models import SettingsPatch
from axe_companion.plugins.axeos import MinerClient
from axe_companion.plugins.base import Miner, human_readable_uptime
from axe_companion.services.miner_registry import MinerRegistry
from axe_companion.services.window_shell import (
    HeadlessWindow,
    ShellPreferences,
    WindowShell,
)
from axe_companion.settings import (
    SETTINGS_FILE,
    build_app_config,
    load_settings,
    update_settings_section,
)

logger = logging.getLogger("axe_companion")
logging.basicConfig(level=logging.INFO)
ensure_trace_level()


class PoolUpdate(BaseModel):
    pool: str = Field(description="Pool URI, e.g. stratum+tcp://pool.example.com:3333")
    user: str | None = None
    password: str | None = None
    fan_speed: int | None = Field(default=None, ge=0, le=100)


class MinerName(BaseModel):
    name: str


class TrayPreference(BaseModel):
    enabled: bool


UI_MARKUP = """
<!doctype html>
<html lang="en">
<head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>AxeMobile companion</title>
    <style>
        body { font-family: system-ui, sans-serif; margin: 24px; color: #0f172a; background: #f8fafc; }
        .card { background: #fff; padding: 16px; border-radius: 8px; box-shadow: 0 1px 4px rgba(0,0,0,0.1); margin-bottom: 16px; }
        .row { display: flex; gap: 12px; flex-wrap: wrap; align-items: center; margin-bottom: 8px; }
        input { padding: 6px 8px; border-radius: 4px; border: 1px solid #cbd5e1; }
        button { cursor: pointer; padding: 8px 12px; border: none; background: #2563eb; color: white; border-radius: 4px; }
        button.danger { background: #dc2626; }
        pre { background: #0f172a; color: #e2e8f0; padding: 12px; border-radius: 6px; overflow-x: auto; }
    </style>
</head>
<body>
    <h1>AxeMobile companion</h1>

    <div class="card">
        <div class="row">
            <label for="address">Miner address</label>
            <input id="address" placeholder="192.168.1.50" />
            <button id="refresh">Refresh</button>
            <button id="restart" class="danger">Restart</button>
        </div>
        <pre id="output">Enter a miner address.</pre>
    </div>

    <div class="card">
        <div class="row">
            <label for="pool">Pool</label>
            <input id="pool" placeholder="stratum+tcp://pool.example.com:3333" size="36" />
            <label for="user">Worker</label>
            <input id="user" />
        </div>
        <div class="row">
            <label for="fan">Fan %</label>
            <input id="fan" type="number" min="0" max="100" />
            <label for="freq">Frequency MHz</label>
            <input id="freq" type="number" min="0" />
            <label for="volt">Core mV</label>
            <input id="volt" type="number" min="0" />
            <button id="apply">Apply</button>
        </div>
    </div>

    <div class="card">
        <label><input id="tray" type="checkbox" /> Minimize to tray on close</label>
    </div>

    <script>
        const out = document.getElementById('output');
        const addr = () => encodeURIComponent(document.getElementById('address').value.trim());
        const show = async (res) => { out.textContent = JSON.stringify(await res.json(), null, 2); };

        async function refresh() { await show(await fetch(`/miners/${addr()}/snapshot`)); }
        async function restart() { await show(await fetch(`/miners/${addr()}/restart`, { method: 'POST' })); }

        async function apply() {
            const patch = {};
            const num = (id) => document.getElementById(id).value;
            if (num('fan') !== '') patch.fan_speed = parseInt(num('fan'), 10);
            if (num('freq') !== '') patch.frequency = parseInt(num('freq'), 10);
            if (num('volt') !== '') patch.core_voltage = parseInt(num('volt'), 10);
            const pool = document.getElementById('pool').value.trim();
            const user = document.getElementById('user').value.trim();
            if (pool) {
                const body = { pool, user: user || null, fan_speed: patch.fan_speed ?? null };
                await show(await fetch(`/miners/${addr()}/pool`, {
                    method: 'POST', headers: { 'Content-Type': 'application/json' }, body: JSON.stringify(body) }));
                delete patch.fan_speed;
                if (Object.keys(patch).length === 0) return;
            }
            await show(await fetch(`/miners/${addr()}/settings`, {
                method: 'PATCH', headers: { 'Content-Type': 'application/json' }, body: JSON.stringify(patch) }));
        }

        async function loadTray() {
            const res = await fetch('/shell/minimize-to-tray');
            document.getElementById('tray').checked = (await res.json()).enabled;
        }

        async function setTray(event) {
            await fetch('/shell/minimize-to-tray', {
                method: 'PUT', headers: { 'Content-Type': 'application/json' },
                body: JSON.stringify({ enabled: event.target.checked }) });
        }

        document.getElementById('refresh').addEventListener('click', refresh);
        document.getElementById('restart').addEventListener('click', restart);
        document.getElementById('apply').addEventListener('click', apply);
        document.getElementById('tray').addEventListener('change', setTray);
        loadTray();
    </script>
</body>
</html>
"""


def _diagnostic_app(error: Exception):  # pragma: no cover - startup fallback
    async def app(scope, receive, send):
        if scope.get("type") != "http":
            return

        body = f"axe-companion failed to start: {error}".encode()
        headers = [(b"content-type", b"text/plain; charset=utf-8")]
        await send({"type": "http.response.start", "status": 500, "headers": headers})
        await send({"type": "http.response.body", "body": body})

    return app


def create_app(
    config: AppConfig = DEFAULT_CONFIG,
    client: Miner | None = None,
    settings_file: Path | None = None,
) -> FastAPI:
    """Build the web shell.

    With ``settings_file`` set, the tray preference and the saved miners are
    written back to it whenever they change.
    """
    logger.info("Starting axe-companion FastAPI app")

    miner = client or MinerClient(config.client)

    def persist_tray(enabled: bool) -> None:
        if settings_file:
            update_settings_section("shell", {"minimize_to_tray": enabled}, settings_file)

    def persist_miners(miners: List[SavedMiner]) -> None:
        if settings_file:
            update_settings_section(
                "miners", [saved.model_dump() for saved in miners], settings_file
            )

    shell = WindowShell(
        ShellPreferences(minimize_to_tray=config.shell.minimize_to_tray),
        HeadlessWindow(),
        persist=persist_tray,
    )
    registry = MinerRegistry(config.miners, persist=persist_miners)

    app = FastAPI(title="axe-companion", version="0.1.0")
    app.state.config = config
    app.state.shell = shell
    app.state.registry = registry

    @app.exception_handler(MinerError)
    async def miner_error_handler(request: Request, exc: MinerError) -> JSONResponse:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        content: Dict[str, Any] = {"detail": str(exc)}
        if isinstance(exc, SettingsRejected):
            content["status_code"] = exc.status_code
            content["body"] = exc.body
        return JSONResponse(content, status_code=502)

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    @app.get("/ui", response_class=HTMLResponse, include_in_schema=False)
    def ui() -> HTMLResponse:
        return HTMLResponse(UI_MARKUP)

    @app.get("/miners/{address}/telemetry")
    async def telemetry(address: str) -> Any:
        return await miner.fetch_telemetry(address)

    @app.get("/miners/{address}/snapshot")
    async def snapshot(address: str) -> Dict[str, Any]:
        snap = await miner.fetch_snapshot(address)
        return {
            "address": address,
            **snap.model_dump(),
            "effective_voltage": snap.effective_voltage,
            "uptime": human_readable_uptime(snap.uptime_seconds),
        }

    @app.post("/miners/{address}/restart")
    async def restart(address: str) -> Dict[str, Any]:
        ack = await miner.restart(address)
        return {"message": ack.message, "status_code": ack.status_code}

    @app.patch("/miners/{address}/settings")
    async def apply_settings(address: str, patch: SettingsPatch) -> Dict[str, Any]:
        ack = await miner.apply_settings(address, patch)
        return {"message": ack.message}

    @app.post("/miners/{address}/pool")
    async def update_pool(address: str, update: PoolUpdate) -> Dict[str, Any]:
        try:
            patch = SettingsPatch.for_pool(
                update.pool,
                user=update.user,
                password=update.password,
                fan_speed=update.fan_speed,
            )
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        ack = await miner.apply_settings(address, patch)
        return {"message": ack.message}

    @app.get("/miners")
    def list_miners() -> List[Dict[str, Any]]:
        return [saved.model_dump() for saved in registry.miners()]

    @app.post("/miners", status_code=201)
    def add_miner(saved: SavedMiner) -> Dict[str, Any]:
        try:
            return registry.add(saved.address, saved.name).model_dump()
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc

    @app.put("/miners/{address}/name")
    def rename_miner(address: str, body: MinerName) -> Dict[str, Any]:
        try:
            return registry.rename(address, body.name).model_dump()
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Unknown miner {address}") from exc

    @app.delete("/miners/{address}", status_code=204)
    def remove_miner(address: str) -> None:
        try:
            registry.remove(address)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Unknown miner {address}") from exc

    @app.get("/shell/minimize-to-tray")
    def get_minimize_to_tray() -> Dict[str, bool]:
        return {"enabled": shell.get_minimize_to_tray()}

    @app.put("/shell/minimize-to-tray")
    def set_minimize_to_tray(body: TrayPreference) -> Dict[str, bool]:
        shell.set_minimize_to_tray(body.enabled)
        return {"enabled": shell.get_minimize_to_tray()}

    @app.post("/shell/close-requested")
    def close_requested() -> Dict[str, str]:
        return {"action": shell.handle_close_requested().value}

    @app.post("/shell/hide")
    def hide() -> Dict[str, bool]:
        shell.hide_to_tray()
        return {"visible": False}

    @app.post("/shell/show")
    def show() -> Dict[str, bool]:
        shell.show_from_tray()
        return {"visible": True}

    return app


def _safe_create_app() -> Any:
    """Create the app from the settings file, or a diagnostics app if that fails.

    uvicorn then still serves something that explains the problem instead
    of refusing to start.
    """
    try:
        config = build_app_config(load_settings(SETTINGS_FILE))
        app_instance = create_app(config, settings_file=SETTINGS_FILE)
        logger.info("axe-companion app created successfully")
        return app_instance
    except Exception as exc:  # pragma: no cover - startup fallback
        logger.exception("axe-companion failed to create the ASGI app: %s", exc)
        return _diagnostic_app(exc)


app: FastAPI = _safe_create_app()


def run() -> None:
    import uvicorn

    config: AppConfig = getattr(getattr(app, "state", None), "config", DEFAULT_CONFIG)
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    run()
