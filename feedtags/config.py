"""
Configuration management for feedtags stores.

The configuration is stored as a TOML file in the store directory.
It specifies which LLM provider classifies entries, the provider's
parameters and credentials, Feedbin credentials, and retention policy.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

# tomli_w for writing TOML (tomllib is read-only)
try:
    import tomli_w
except ImportError:
    tomli_w = None  # type: ignore

from .errors import ConfigurationError


CONFIG_FILENAME = "feedtags.toml"
CONFIG_VERSION = 1

DEFAULT_STORE_DIR = Path.home() / ".feedtags"

DEFAULT_LOCAL_URL = "http://localhost:11434"
DEFAULT_LOCAL_MODEL = "gemma3:4b"
DEFAULT_ANTHROPIC_MODEL = "claude-haiku-4-5-20251001"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT = 60.0
DEFAULT_DAYS_TO_KEEP = 30
DEFAULT_FEEDBIN_URL = "https://api.feedbin.com/v2"


class Provider(str, Enum):
    """Which classifier backend to use."""
    LOCAL = "local"
    ANTHROPIC = "anthropic"
    OPENAI = "openai"

    @classmethod
    def parse(cls, value: "str | Provider") -> "Provider":
        """Parse a provider name. Raises ConfigurationError if unknown."""
        if isinstance(value, Provider):
            return value
        name = (value or "").strip().lower()
        # Older settings used "claude" for the Anthropic provider
        if name == "claude":
            return cls.ANTHROPIC
        try:
            return cls(name)
        except ValueError:
            available = ", ".join(p.value for p in cls)
            raise ConfigurationError(
                f"Unknown provider: '{value}'. Available providers: {available}"
            ) from None


@dataclass
class ProviderSettings:
    """Settings for the selected classifier provider.

    Only the fields of the selected provider are used.
    """
    provider: Provider = Provider.LOCAL
    local_url: str = DEFAULT_LOCAL_URL
    local_model: str = DEFAULT_LOCAL_MODEL
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL
    anthropic_api_key: Optional[str] = None
    openai_model: str = DEFAULT_OPENAI_MODEL
    openai_api_key: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self):
        self.provider = Provider.parse(self.provider)

    @property
    def model(self) -> str:
        """Model name for the selected provider."""
        if self.provider is Provider.ANTHROPIC:
            return self.anthropic_model
        if self.provider is Provider.OPENAI:
            return self.openai_model
        return self.local_model

    def provider_params(self) -> dict[str, Any]:
        """Constructor parameters for the selected provider's classifier."""
        if self.provider is Provider.ANTHROPIC:
            return {
                "model": self.anthropic_model,
                "api_key": self.anthropic_api_key,
                "timeout": self.timeout,
            }
        if self.provider is Provider.OPENAI:
            return {
                "model": self.openai_model,
                "api_key": self.openai_api_key,
                "timeout": self.timeout,
            }
        return {
            "model": self.local_model,
            "base_url": self.local_url,
            "timeout": self.timeout,
        }


@dataclass
class FeedbinCredentials:
    """Credentials for fetching full entries from Feedbin."""
    email: str = ""
    password: str = ""
    api_url: str = DEFAULT_FEEDBIN_URL

    @property
    def configured(self) -> bool:
        return bool(self.email and self.password)


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    provider: ProviderSettings = field(default_factory=ProviderSettings)
    feedbin: FeedbinCredentials = field(default_factory=FeedbinCredentials)
    days_to_keep: int = DEFAULT_DAYS_TO_KEEP

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def db_path(self) -> Path:
        """Path to the SQLite record store."""
        return self.path / "feedtags.db"

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_store_path(override: Optional[Path] = None) -> Path:
    """
    Resolve the store directory.

    Priority: explicit override, FEEDTAGS_STORE_PATH, ~/.feedtags.
    """
    if override is not None:
        return Path(override).expanduser()
    env = os.environ.get("FEEDTAGS_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return DEFAULT_STORE_DIR


def apply_environment(config: StoreConfig) -> StoreConfig:
    """
    Fill unset secrets and endpoints from environment variables.

    Values in the TOML file win over the environment.
    """
    p = config.provider
    p.anthropic_api_key = p.anthropic_api_key or os.environ.get("ANTHROPIC_API_KEY")
    p.openai_api_key = (
        p.openai_api_key or
        os.environ.get("FEEDTAGS_OPENAI_API_KEY") or
        os.environ.get("OPENAI_API_KEY")
    )
    host = os.environ.get("OLLAMA_HOST")
    if host and p.local_url == DEFAULT_LOCAL_URL:
        p.local_url = host if "://" in host else f"http://{host}"

    fb = config.feedbin
    fb.email = fb.email or os.environ.get("FEEDBIN_EMAIL", "")
    fb.password = fb.password or os.environ.get("FEEDBIN_PASSWORD", "")
    return config


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Validate version
    version = data.get("store", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    section = data.get("provider", {})
    provider = ProviderSettings(
        provider=section.get("name", Provider.LOCAL.value),
        local_url=section.get("local_url", DEFAULT_LOCAL_URL),
        local_model=section.get("local_model", DEFAULT_LOCAL_MODEL),
        anthropic_model=section.get("anthropic_model", DEFAULT_ANTHROPIC_MODEL),
        anthropic_api_key=section.get("anthropic_api_key") or None,
        openai_model=section.get("openai_model", DEFAULT_OPENAI_MODEL),
        openai_api_key=section.get("openai_api_key") or None,
        timeout=float(section.get("timeout", DEFAULT_TIMEOUT)),
    )

    fb = data.get("feedbin", {})
    feedbin = FeedbinCredentials(
        email=fb.get("email", ""),
        password=fb.get("password", ""),
        api_url=fb.get("api_url", DEFAULT_FEEDBIN_URL),
    )

    return StoreConfig(
        path=store_path,
        version=version,
        created=data.get("store", {}).get("created", ""),
        provider=provider,
        feedbin=feedbin,
        days_to_keep=int(data.get("retention", {}).get("days_to_keep", DEFAULT_DAYS_TO_KEEP)),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist. Secrets are written only
    when they are set.
    """
    if tomli_w is None:
        raise RuntimeError("tomli_w is required to save config. Install with: pip install tomli-w")

    config.path.mkdir(parents=True, exist_ok=True)

    p = config.provider
    provider: dict[str, Any] = {
        "name": p.provider.value,
        "local_url": p.local_url,
        "local_model": p.local_model,
        "anthropic_model": p.anthropic_model,
        "openai_model": p.openai_model,
        "timeout": p.timeout,
    }
    if p.anthropic_api_key:
        provider["anthropic_api_key"] = p.anthropic_api_key
    if p.openai_api_key:
        provider["openai_api_key"] = p.openai_api_key

    feedbin: dict[str, Any] = {"api_url": config.feedbin.api_url}
    if config.feedbin.email:
        feedbin["email"] = config.feedbin.email
    if config.feedbin.password:
        feedbin["password"] = config.feedbin.password

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "provider": provider,
        "feedbin": feedbin,
        "retention": {"days_to_keep": config.days_to_keep},
    }

    # Config may hold API keys; keep it private to the user
    fd = os.open(config.config_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management. Environment
    fallbacks are applied to the returned config but never saved.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        config = load_config(store_path)
    else:
        config = StoreConfig(path=store_path)
        save_config(config)
    return apply_environment(config)
