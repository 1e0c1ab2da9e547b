"""Airport and provider configuration loading from YAML and the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from zoneinfo import ZoneInfo

import yaml
from pydantic import BaseModel, Field, field_validator

from flightboard.times import resolve_timezone

CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"

DEFAULT_AIRPORT = "TIJ"
AVIATIONSTACK_BASE = "https://api.aviationstack.com/v1"
FR24_API_BASE = "https://fr24api.flightradar24.com/api"
FR24_API_VERSION = "v1"


class AirportConfig(BaseModel):
    iata: str
    icao: str
    timezone: str
    name: str = ""
    aliases: list[str] = Field(default_factory=list)

    @field_validator("iata", "icao")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("timezone")
    @classmethod
    def _known_zone(cls, v: str) -> str:
        if resolve_timezone(v) is None:
            raise ValueError(f"Unknown time zone '{v}'")
        return v

    @property
    def codes(self) -> set[str]:
        """All codes the airport may be reported under."""
        return {self.iata, self.icao, *(a.strip().upper() for a in self.aliases)}

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class FetchSettings(BaseModel):
    page_size: int = 100
    max_pages: int = 20
    page_delay_s: float = 1.2
    timeout_s: float = 20


class Settings(BaseModel):
    """Explicit configuration object handed to every component."""

    airport: AirportConfig
    timezones: dict[str, str] = Field(default_factory=dict)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    max_days: int = 7
    landed_grace_minutes: int = 60
    providers: list[str] = Field(default_factory=lambda: ["timetable", "flight_search"])

    aviationstack_key: str = ""
    aviationstack_base: str = AVIATIONSTACK_BASE
    fr24_api_token: str = ""
    fr24_api_base: str = FR24_API_BASE
    fr24_api_version: str = FR24_API_VERSION

    @field_validator("timezones")
    @classmethod
    def _upper_keys(cls, v: dict[str, str]) -> dict[str, str]:
        return {k.strip().upper(): tz for k, tz in v.items()}

    def zone_for(self, code: str | None) -> ZoneInfo | None:
        """Configured zone for a remote airport code, if known."""
        if not code:
            return None
        name = self.timezones.get(code.strip().upper())
        return resolve_timezone(name) if name else None


def _read_config(config_dir: Path | None, env: Mapping[str, str] | None = None) -> dict:
    env = os.environ if env is None else env
    config_dir = config_dir or Path(env.get("FLIGHTBOARD_CONFIG_DIR") or CONFIG_DIR)
    with open(config_dir / "airports.yaml") as f:
        return yaml.safe_load(f) or {}


def load_settings(
    name: str | None = None,
    config_dir: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Build Settings for one airport.

    Args:
        name: Airport key (IATA) in airports.yaml. Falls back to the
            FLIGHTBOARD_AIRPORT env var, then the file's default_airport.
        config_dir: Override for config directory. Falls back to the
            FLIGHTBOARD_CONFIG_DIR env var, then the repository's config/.
        env: Override for os.environ (testing).
    """
    env = os.environ if env is None else env
    data = _read_config(config_dir, env)

    airports = {k.upper(): v for k, v in (data.get("airports") or {}).items()}
    key = (name or env.get("FLIGHTBOARD_AIRPORT") or data.get("default_airport") or DEFAULT_AIRPORT).upper()
    if key not in airports:
        # allow selecting by ICAO too
        by_icao = {str(v.get("icao", "")).upper(): k for k, v in airports.items()}
        if key not in by_icao:
            available = ", ".join(airports.keys())
            raise KeyError(f"Airport '{key}' not found. Available: {available}")
        key = by_icao[key]

    cycle = data.get("cycle") or {}
    return Settings(
        airport=AirportConfig(**airports[key]),
        timezones=data.get("timezones") or {},
        fetch=FetchSettings(**(data.get("fetch") or {})),
        max_days=cycle.get("max_days", 7),
        landed_grace_minutes=cycle.get("landed_grace_minutes", 60),
        providers=cycle.get("providers", ["timetable", "flight_search"]),
        aviationstack_key=env.get("AVIATIONSTACK_KEY", ""),
        aviationstack_base=env.get("AVIATIONSTACK_BASE") or AVIATIONSTACK_BASE,
        fr24_api_token=env.get("FR24_API_TOKEN", ""),
        fr24_api_base=env.get("FR24_API_BASE") or FR24_API_BASE,
        fr24_api_version=env.get("FR24_API_VERSION") or FR24_API_VERSION,
    )


def list_airports(config_dir: Path | None = None) -> list[str]:
    """List configured airport keys."""
    return list((_read_config(config_dir).get("airports") or {}).keys())
