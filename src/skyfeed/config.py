"""Configuration management for SkyFeed."""

import os
from pathlib import Path

from dotenv import load_dotenv
import yaml

CONFIG_DIR = Path(os.environ.get("SKYFEED_HOME") or Path.home() / ".skyfeed")
CONFIG_FILE = CONFIG_DIR / "config.yaml"
ENV_FILE = CONFIG_DIR / ".env"

# Load .env from multiple locations
_project_root = Path(__file__).parent.parent.parent
load_dotenv(_project_root / ".env")  # Project directory
load_dotenv(ENV_FILE)  # Config directory

HANDLE_ENV = "BLUESKY_HANDLE"
APP_PASSWORD_ENV = "BLUESKY_APP_PASSWORD"

DEFAULT_CONFIG = {
    "service": "https://bsky.social",  # PDS used for login and authed calls
    "public_service": "https://public.api.bsky.app",  # AppView for anonymous reads
    "default_post_count": 50,
    "thread_depth": 6,
    "thread_parent_height": 80,
    "request_timeout": 15.0,
}


def ensure_config_dir() -> None:
    """Create config directory if it doesn't exist."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def load_config() -> dict:
    """Load configuration from file."""
    ensure_config_dir()

    if not CONFIG_FILE.exists():
        save_config(DEFAULT_CONFIG)
        return DEFAULT_CONFIG.copy()

    with open(CONFIG_FILE) as f:
        config = yaml.safe_load(f) or {}

    # Merge with defaults for any missing keys
    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = value

    return config


def save_config(config: dict) -> None:
    """Save configuration to file."""
    ensure_config_dir()

    with open(CONFIG_FILE, "w") as f:
        yaml.dump(config, f, default_flow_style=False)


def get_credentials() -> tuple[str, str] | None:
    """Get Bluesky handle and app password from .env or environment."""
    handle = os.environ.get(HANDLE_ENV)
    password = os.environ.get(APP_PASSWORD_ENV)
    if handle and password:
        return handle, password
    return None


def set_credentials(handle: str, app_password: str) -> None:
    """Save Bluesky credentials to .env file."""
    ensure_config_dir()

    # Write to .env file with restricted permissions
    ENV_FILE.write_text(
        f"{HANDLE_ENV}={handle}\n"
        f"{APP_PASSWORD_ENV}={app_password}\n"
    )
    ENV_FILE.chmod(0o600)  # Owner read/write only

    # Also set in environment for current session
    os.environ[HANDLE_ENV] = handle
    os.environ[APP_PASSWORD_ENV] = app_password


def clear_credentials() -> None:
    """Remove saved Bluesky credentials from .env and the environment."""
    if ENV_FILE.exists():
        ENV_FILE.unlink()

    os.environ.pop(HANDLE_ENV, None)
    os.environ.pop(APP_PASSWORD_ENV, None)
