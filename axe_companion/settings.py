from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from dynaconf import Dynaconf

from axe_companion.config import AppConfig

BASE_DIR = Path(__file__).resolve().parents[1]
CONF_DIR = BASE_DIR / "conf"
SETTINGS_FILE = CONF_DIR / "settings.yaml"
SETTINGS_EXAMPLE_FILE = CONF_DIR / "settings.yaml.example"

DEFAULT_SETTINGS_YAML = """host: \"127.0.0.1\"\nport: 8000\nclient:\n  user_agent: \"AxeMobile/1.0\"\n  telemetry_timeout_s: 5\n  restart_timeout_s: 5\n  settings_timeout_s: 10\n  telemetry_endpoints:\n    - \"/api/system/info\"\n    - \"/api/system/statistics\"\nshell:\n  minimize_to_tray: false\nminers: []\n"""


def ensure_settings_file(settings_file: Path = SETTINGS_FILE) -> None:
    settings_file.parent.mkdir(parents=True, exist_ok=True)
    example_file = settings_file.with_name(SETTINGS_EXAMPLE_FILE.name)
    if not example_file.exists():
        example_file.write_text(DEFAULT_SETTINGS_YAML, encoding="utf-8")
    if not settings_file.exists():
        settings_file.write_text(
            example_file.read_text(encoding="utf-8"),
            encoding="utf-8",
        )


def load_settings(settings_file: Path = SETTINGS_FILE) -> Dynaconf:
    ensure_settings_file(settings_file)
    return Dynaconf(
        settings_files=[str(settings_file)],
        envvar_prefix="AXE",
        load_dotenv=True,
        merge_enabled=True,
    )


def serialize_settings(settings: Any) -> dict[str, Any]:
    if not hasattr(settings, "as_dict"):
        raise ValueError("Settings object does not support serialization.")
    return settings.as_dict()


def build_app_config(settings: Any) -> AppConfig:
    # Dynaconf upper-cases top-level keys.
    data = {str(key).lower(): value for key, value in serialize_settings(settings).items()}
    return AppConfig.model_validate(data)


def backup_settings_file(settings_file: Path = SETTINGS_FILE) -> Path | None:
    if not settings_file.exists():
        return None

    timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
    backup_path = settings_file.with_name(f"settings.{timestamp}.yaml")
    backup_path.write_text(settings_file.read_text(encoding="utf-8"), encoding="utf-8")
    return backup_path


def load_settings_yaml(settings_file: Path = SETTINGS_FILE) -> str:
    ensure_settings_file(settings_file)
    return settings_file.read_text(encoding="utf-8")


def parse_settings_yaml(raw_yaml: str) -> dict[str, Any]:
    parsed = yaml.safe_load(raw_yaml) or {}
    if not isinstance(parsed, dict):
        raise ValueError("Settings YAML must be a mapping at the top level.")
    return parsed


def _write_settings(parsed: dict[str, Any], settings_file: Path) -> None:
    settings_file.write_text(
        yaml.safe_dump(parsed, sort_keys=False, allow_unicode=True), encoding="utf-8"
    )


def save_settings_yaml(raw_yaml: str, settings_file: Path = SETTINGS_FILE) -> dict[str, Any]:
    parsed = parse_settings_yaml(raw_yaml)
    AppConfig.model_validate(parsed)
    backup_settings_file(settings_file)
    _write_settings(parsed, settings_file)
    return parsed


def update_settings_section(
    section: str, value: Any, settings_file: Path = SETTINGS_FILE
) -> dict[str, Any]:
    """Replace one top-level section of the settings file, keeping the rest."""
    parsed = parse_settings_yaml(load_settings_yaml(settings_file))
    parsed[section] = value
    _write_settings(parsed, settings_file)
    return parsed
