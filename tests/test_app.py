import yaml
from fastapi.testclient import TestClient

from axe_companion import main
from axe_companion.config import AppConfig, SavedMiner, ShellConfig
from axe_companion.errors import MinerUnreachable, SettingsRejected
from axe_companion.models import CommandAck
from axe_companion.plugins.base import Miner
from axe_companion.settings import ensure_settings_file


class DummyMiner(Miner):
    def __init__(self, *args, **kwargs):
        self.name = "dummy"
        self.patches = []
        self.reject = None

    async def fetch_telemetry(self, address):
        if address == "offline":
            raise MinerUnreachable(address)
        return {"hostname": "bitaxe1", "hashRate": 450.2, "uptimeSeconds": 3660}

    async def restart(self, address):
        if address == "offline":
            raise MinerUnreachable(address)
        return CommandAck("Restart command sent", 200)

    async def apply_settings(self, address, patch):
        if self.reject:
            raise self.reject
        self.patches.append(patch.to_payload())
        return CommandAck("Settings updated successfully", 200)


def build_app(tmp_path, miner=None, config=None):
    settings_file = tmp_path / "settings.yaml"
    ensure_settings_file(settings_file)
    app = main.create_app(config or AppConfig(), client=miner or DummyMiner(), settings_file=settings_file)
    return TestClient(app), settings_file


def test_health(tmp_path):
    client, _ = build_app(tmp_path)
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_ui_served(tmp_path):
    client, _ = build_app(tmp_path)
    resp = client.get("/")
    assert resp.status_code == 200
    assert "AxeMobile companion" in resp.text


def test_telemetry_passthrough(tmp_path):
    client, _ = build_app(tmp_path)
    resp = client.get("/miners/10.0.0.5/telemetry")
    assert resp.status_code == 200
    assert resp.json()["hostname"] == "bitaxe1"


def test_snapshot_is_normalized(tmp_path):
    client, _ = build_app(tmp_path)
    payload = client.get("/miners/10.0.0.5/snapshot").json()
    assert payload["address"] == "10.0.0.5"
    assert payload["hash_rate"] == 450.2
    assert payload["temperature"] is None
    assert payload["uptime"] == "1h 1m"


def test_unreachable_miner_surfaces_message(tmp_path):
    client, _ = build_app(tmp_path)
    resp = client.get("/miners/offline/telemetry")
    assert resp.status_code == 502
    assert resp.json()["detail"] == "Failed to connect to miner at offline"

    resp = client.post("/miners/offline/restart")
    assert resp.status_code == 502


def test_restart(tmp_path):
    client, _ = build_app(tmp_path)
    resp = client.post("/miners/10.0.0.5/restart")
    assert resp.json() == {"message": "Restart command sent", "status_code": 200}


def test_settings_patch_is_sparse(tmp_path):
    miner = DummyMiner()
    client, _ = build_app(tmp_path, miner=miner)
    resp = client.patch("/miners/10.0.0.5/settings", json={"fan_speed": 60})
    assert resp.status_code == 200
    assert resp.json() == {"message": "Settings updated successfully"}
    assert miner.patches == [{"fanspeed": 60}]


def test_settings_validation(tmp_path):
    miner = DummyMiner()
    client, _ = build_app(tmp_path, miner=miner)
    resp = client.patch("/miners/10.0.0.5/settings", json={"fan_speed": 150})
    assert resp.status_code == 422
    assert miner.patches == []


def test_rejected_settings_keep_firmware_body(tmp_path):
    miner = DummyMiner()
    miner.reject = SettingsRejected(422, '{"error":"invalid frequency"}')
    client, _ = build_app(tmp_path, miner=miner)

    resp = client.patch("/miners/10.0.0.5/settings", json={"frequency": 5000})
    assert resp.status_code == 502
    payload = resp.json()
    assert payload["status_code"] == 422
    assert payload["body"] == '{"error":"invalid frequency"}'
    assert payload["detail"] == 'Failed with status 422: {"error":"invalid frequency"}'


def test_pool_update(tmp_path):
    miner = DummyMiner()
    client, _ = build_app(tmp_path, miner=miner)
    resp = client.post(
        "/miners/10.0.0.5/pool",
        json={"pool": "stratum+tcp://public-pool.io:21496", "user": "bc1q.worker", "fan_speed": 70},
    )
    assert resp.status_code == 200
    assert miner.patches == [
        {
            "stratumURL": "public-pool.io",
            "stratumPort": 21496,
            "stratumUser": "bc1q.worker",
            "fanspeed": 70,
        }
    ]

    resp = client.post("/miners/10.0.0.5/pool", json={"pool": "stratum+tcp://"})
    assert resp.status_code == 422


def test_minimize_to_tray_preference(tmp_path):
    client, settings_file = build_app(tmp_path)
    assert client.get("/shell/minimize-to-tray").json() == {"enabled": False}
    assert client.post("/shell/close-requested").json() == {"action": "close"}

    resp = client.put("/shell/minimize-to-tray", json={"enabled": True})
    assert resp.json() == {"enabled": True}
    assert client.post("/shell/close-requested").json() == {"action": "hide"}

    stored = yaml.safe_load(settings_file.read_text(encoding="utf-8"))
    assert stored["shell"] == {"minimize_to_tray": True}


def test_preference_loaded_from_config(tmp_path):
    config = AppConfig(shell=ShellConfig(minimize_to_tray=True))
    client, _ = build_app(tmp_path, config=config)
    assert client.get("/shell/minimize-to-tray").json() == {"enabled": True}


def test_hide_and_show(tmp_path):
    client, _ = build_app(tmp_path)
    assert client.post("/shell/hide").json() == {"visible": False}
    assert client.post("/shell/show").json() == {"visible": True}


def test_miner_registry_routes(tmp_path):
    config = AppConfig(miners=[SavedMiner(address="10.0.0.5", name="bitaxe1")])
    client, settings_file = build_app(tmp_path, config=config)

    assert client.get("/miners").json() == [{"address": "10.0.0.5", "name": "bitaxe1"}]

    resp = client.post("/miners", json={"address": "10.0.0.6"})
    assert resp.status_code == 201
    assert client.post("/miners", json={"address": "10.0.0.6"}).status_code == 409

    resp = client.put("/miners/10.0.0.6/name", json={"name": "garage"})
    assert resp.json() == {"address": "10.0.0.6", "name": "garage"}

    assert client.delete("/miners/10.0.0.5").status_code == 204
    assert client.delete("/miners/10.0.0.5").status_code == 404

    stored = yaml.safe_load(settings_file.read_text(encoding="utf-8"))
    assert stored["miners"] == [{"address": "10.0.0.6", "name": "garage"}]
