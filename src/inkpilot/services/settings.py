"""Configuration for the editing pipeline and its on-disk store.

Settings live in a single JSON file. The API key never touches disk in the
clear: it is sealed with a Fernet key kept beside the settings file. Values
are resolved in three layers, file first, then runtime overrides passed to
:meth:`SettingsStore.load`, then ``INKPILOT_*`` environment variables.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

__all__ = [
    "Settings",
    "AutomationSettings",
    "RiskSettings",
    "RoutingSettings",
    "SettingsStore",
    "SecretVault",
    "merge_settings",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)

CONFIG_HOME = Path.home() / ".inkpilot"
FORMAT_VERSION = 1
CIPHERTEXT_KEY = "api_key_ciphertext"
TOKEN_SCHEME = "fernet"


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class AutomationSettings:
    """Timing and capacity knobs of the background automation loop."""

    cooldown_seconds: float = 240.0
    preview_queue_limit: int = 8
    insight_min_chars: int = 180
    insight_idle_seconds: float = 45.0
    replan_interval_seconds: float = 600.0
    replan_idle_seconds: float = 35.0
    replan_min_diff: int = 180


@dataclass(slots=True)
class RiskSettings:
    """Weights and bucket thresholds used when scoring automatic actions."""

    destructive_weight: int = 3
    unmapped_weight: int = 2
    translate_weight: int = 3
    heavy_rewrite_weight: int = 2
    medium_threshold: int = 2
    high_threshold: int = 4


@dataclass(slots=True)
class RoutingSettings:
    """Thresholds for skill routing and search auto-enablement."""

    timeout_seconds: float = 1.8
    absolute_floor: float = 0.05
    relative_floor: float = 0.62
    max_skills: int = 3
    planning_solo_threshold: float = 0.17
    planning_shared_threshold: float = 0.12
    search_request_threshold: float = 0.1
    search_skill_threshold: float = 0.2


@dataclass(slots=True)
class Settings:
    """Everything the pipeline reads at runtime.

    The connection fields feed :class:`inkpilot.ai.client.AIClient`; the three
    nested sections hold the tuned constants of automation, risk scoring and
    skill routing.
    """

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    organization: str | None = None
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: dict[str, str] = field(default_factory=dict)
    ai_automation: bool = True
    debug_logging: bool = False
    automation: AutomationSettings = field(default_factory=AutomationSettings)
    risk: RiskSettings = field(default_factory=RiskSettings)
    routing: RoutingSettings = field(default_factory=RoutingSettings)


SECTIONS: Mapping[str, type] = {
    "automation": AutomationSettings,
    "risk": RiskSettings,
    "routing": RoutingSettings,
}


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def _parse_flag(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on", "debug"}


def _parse_int(raw: str) -> int:
    return int(raw.strip(), 10)


def _parse_float(raw: str) -> float:
    return float(raw.strip())


# (variable, dotted field path, parser)
ENVIRONMENT_TABLE: tuple[tuple[str, str, Callable[[str], Any]], ...] = (
    ("INKPILOT_API_KEY", "api_key", str),
    ("INKPILOT_BASE_URL", "base_url", str),
    ("INKPILOT_MODEL", "model", str),
    ("INKPILOT_AI_AUTOMATION", "ai_automation", _parse_flag),
    ("INKPILOT_DEBUG_LOGGING", "debug_logging", _parse_flag),
    ("INKPILOT_REQUEST_TIMEOUT", "request_timeout", _parse_float),
    ("INKPILOT_TEMPERATURE", "temperature", _parse_float),
    ("INKPILOT_MAX_RETRIES", "max_retries", _parse_int),
    ("INKPILOT_AUTOMATION_COOLDOWN", "automation.cooldown_seconds", _parse_float),
    ("INKPILOT_ROUTING_TIMEOUT", "routing.timeout_seconds", _parse_float),
)


def _environment_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Translate set ``INKPILOT_*`` variables into a nested override mapping."""

    overrides: Dict[str, Any] = {}
    for variable, path, parse in ENVIRONMENT_TABLE:
        raw = environ.get(variable)
        if raw is None:
            continue
        try:
            value = parse(raw)
        except ValueError:
            LOGGER.warning("Ignoring %s=%r: expected %s", variable, raw, parse.__name__.removeprefix("_parse_"))
            continue
        section, _, name = path.rpartition(".")
        target = overrides.setdefault(section, {}) if section else overrides
        target[name] = value
    return overrides


# ---------------------------------------------------------------------------
# Secret storage
# ---------------------------------------------------------------------------


class SecretVault:
    """Seals secrets with a Fernet key generated on first use."""

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (CONFIG_HOME / "settings.key")
        self._cipher: Fernet | None = None

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        sealed = self._fernet().encrypt(secret.encode("utf-8"))
        return f"{TOKEN_SCHEME}:{sealed.decode('ascii')}"

    def decrypt(self, token: str | None) -> str:
        """Open a token produced by :meth:`encrypt`.

        Bare tokens without a scheme prefix are accepted. Any other scheme, or
        a token sealed under a different key, raises ``ValueError``.
        """

        if not token:
            return ""
        scheme, sep, body = token.partition(":")
        if not sep:
            scheme, body = TOKEN_SCHEME, token
        if scheme != TOKEN_SCHEME:
            raise ValueError(f"Unsupported secret scheme {scheme!r}")
        try:
            return self._fernet().decrypt(body.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Secret could not be decrypted with the current key") from exc

    def _fernet(self) -> Fernet:
        if self._cipher is None:
            self._cipher = Fernet(self._read_or_generate_key())
        return self._cipher

    def _read_or_generate_key(self) -> bytes:
        if self._key_path.exists():
            return self._key_path.read_bytes().strip()
        self._key_path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        staging = self._key_path.with_name(self._key_path.name + ".new")
        staging.write_bytes(key)
        if os.name == "posix":
            staging.chmod(0o600)
        staging.replace(self._key_path)
        LOGGER.info("Generated new settings key at %s", self._key_path)
        return key


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SettingsStore:
    """Reads and writes :class:`Settings` as versioned JSON."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or (CONFIG_HOME / "settings.json")
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Return the effective settings: file, then ``overrides``, then environment."""

        document = self._read_document()
        settings, stale = self._decode(document)
        if stale:
            try:
                self.save(settings)
            except OSError as exc:
                LOGGER.warning("Could not rewrite %s in the current format: %s", self._path, exc)
        if overrides:
            settings = merge_settings(settings, overrides, source="runtime")
        env = _environment_overrides(os.environ)
        if env:
            settings = merge_settings(settings, env, source="environment")
        return settings

    def save(self, settings: Settings) -> Path:
        """Write ``settings`` atomically and return the file path."""

        body = json.dumps(self._encode(settings), indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_name(self._path.name + ".new")
        staging.write_text(body, encoding="utf-8")
        staging.replace(self._path)
        LOGGER.debug("Wrote settings to %s (api key %s)", self._path, redact_secret(settings.api_key) or "unset")
        return self._path

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------
    def _encode(self, settings: Settings) -> Dict[str, Any]:
        record = asdict(settings)
        secret = record.pop("api_key", "")
        if secret:
            record[CIPHERTEXT_KEY] = self._vault.encrypt(secret)
        record["version"] = FORMAT_VERSION
        return record

    def _decode(self, document: Dict[str, Any]) -> tuple[Settings, bool]:
        """Build settings from a raw document; the flag asks for a rewrite."""

        if not document:
            return Settings(), False
        stale = document.get("version") != FORMAT_VERSION
        sealed = document.pop(CIPHERTEXT_KEY, None)
        legacy = document.pop("api_key", None)
        api_key = ""
        if sealed:
            try:
                api_key = self._vault.decrypt(sealed)
            except ValueError as exc:
                LOGGER.warning("Stored API key is unreadable and was dropped: %s", exc)
        elif legacy:
            LOGGER.info("Found a plaintext API key in %s; it will be encrypted", self._path)
            api_key = str(legacy)
            stale = True

        values = _known_fields(Settings, document)
        for name, section_type in SECTIONS.items():
            if name in values:
                values[name] = _section_from(section_type, values[name])
        try:
            settings = Settings(**values)
        except TypeError as exc:
            LOGGER.warning("Discarding malformed settings in %s: %s", self._path, exc)
            settings = Settings()
        if api_key:
            settings = replace(settings, api_key=api_key)
        return settings, stale

    def _read_document(self) -> Dict[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Ignoring unparsable settings file %s: %s", self._path, exc)
            return {}
        return document if isinstance(document, dict) else {}


def merge_settings(settings: Settings, overrides: Mapping[str, Any], *, source: str = "runtime") -> Settings:
    """Apply ``overrides`` on top of ``settings``; section mappings merge field by field."""

    changes: Dict[str, Any] = {}
    for name, value in _known_fields(Settings, overrides).items():
        if value is None:
            continue
        if name in SECTIONS and isinstance(value, Mapping):
            value = replace(getattr(settings, name), **_known_fields(SECTIONS[name], value))
        changes[name] = value
    if not changes:
        return settings
    LOGGER.debug("Applying %s overrides to %s", source, ", ".join(sorted(changes)))
    return replace(settings, **changes)


def _known_fields(kind: type, payload: Mapping[str, Any]) -> Dict[str, Any]:
    names = {item.name for item in fields(kind)}
    return {key: value for key, value in payload.items() if key in names}


def _section_from(kind: type, payload: Any) -> Any:
    if not isinstance(payload, Mapping):
        return kind()
    try:
        return kind(**_known_fields(kind, payload))
    except TypeError:
        return kind()


def redact_secret(value: str) -> str:
    """Mask all but the first and last two characters of ``value``."""

    secret = (value or "").strip()
    if len(secret) <= 4:
        return "*" * len(secret)
    hidden = len(secret) - 4
    return secret[:2] + "*" * hidden + secret[-2:]
