"""
ChromeSec - Configuration Management
Centralized configuration for the browser session, scanner and API.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from chromesec.console import log
from chromesec.errors import UnsupportedPlatformError
from chromesec.proxy import ProxyEndpoint


# Base paths (relative to the working directory)
PROFILES_DIR = Path("./profiles")
REPORTS_DIR = Path("./reports")
CONFIG_FILE = Path("./chromesec.json")

CHROME_PATHS = {
    "win32": r"C:\Program Files\Google\Chrome\Application\chrome.exe",
    "darwin": "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "linux": "/usr/bin/google-chrome",
}


def resolve_executable_path(platform_tag: str) -> str:
    """Map a ``sys.platform`` style tag to the Chrome executable path."""
    if platform_tag.startswith("linux"):
        platform_tag = "linux"
    try:
        return CHROME_PATHS[platform_tag]
    except KeyError:
        raise UnsupportedPlatformError(platform_tag) from None


@dataclass
class LaunchOptions:
    """Browser launch options."""
    headless: bool = True
    # Unsafe outside a sandboxed testing harness; both are needed for
    # cross-origin probing and for running as root in containers.
    no_sandbox: bool = True
    disable_web_security: bool = True
    executable_path: Optional[str] = None
    navigation_timeout_ms: Optional[float] = None

    extra_flags: List[str] = field(default_factory=lambda: [
        "--no-first-run",
        "--no-default-browser-check",
        "--disable-background-networking",
        "--disable-sync",
        "--disable-translate",
        "--metrics-recording-only",
        "--safebrowsing-disable-auto-update",
    ])


@dataclass
class APIConfig:
    """Backend API configuration."""
    host: str = "127.0.0.1"
    port: int = 8765


@dataclass
class ScannerConfig:
    """Overall scanner configuration."""
    launch: LaunchOptions = field(default_factory=LaunchOptions)
    proxies: List[ProxyEndpoint] = field(default_factory=list)
    profiles_dir: Path = PROFILES_DIR
    reports_dir: Path = REPORTS_DIR
    probe_timeout_s: Optional[float] = None
    api: APIConfig = field(default_factory=APIConfig)


def parse_proxy_spec(spec: str) -> ProxyEndpoint:
    """Parse ``address[,username,password]`` as given on the command line."""
    parts = [p.strip() for p in spec.split(",")]
    if not parts[0]:
        raise ValueError(f"Invalid proxy spec: {spec!r}")
    if len(parts) == 1:
        return ProxyEndpoint(address=parts[0])
    if len(parts) == 3:
        return ProxyEndpoint(address=parts[0], username=parts[1] or None, password=parts[2] or None)
    raise ValueError(f"Invalid proxy spec: {spec!r} (expected address[,username,password])")


# ── User Config Persistence ───────────────────────────────────────

def _config_path(path: Optional[Path] = None) -> Path:
    if path is not None:
        return Path(path)
    return Path(os.environ.get("CHROMESEC_CONFIG", "") or CONFIG_FILE)


def load_user_config(path: Optional[Path] = None) -> dict:
    """Load user config overrides."""
    cfg_path = _config_path(path)
    if not cfg_path.exists():
        return {}
    try:
        with open(cfg_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        log("Config", f"Error loading {cfg_path}: {e}", "yellow")
        return {}
    if not isinstance(data, dict):
        log("Config", f"Ignoring {cfg_path}: top-level value must be an object", "yellow")
        return {}
    return data


def save_user_config(config: dict, path: Optional[Path] = None):
    """Save user config overrides, merged with what is already stored."""
    cfg_path = _config_path(path)
    existing = load_user_config(cfg_path)
    existing.update(config)
    if cfg_path.parent and not cfg_path.parent.exists():
        cfg_path.parent.mkdir(parents=True, exist_ok=True)
    with open(cfg_path, "w", encoding="utf-8") as f:
        json.dump(existing, f, indent=2)


def get_config(path: Optional[Path] = None) -> ScannerConfig:
    """Get the current configuration, merging defaults with persisted overrides."""
    cfg = ScannerConfig()
    user_cfg = load_user_config(path)

    for key in ("headless", "no_sandbox", "disable_web_security"):
        if key in user_cfg:
            setattr(cfg.launch, key, bool(user_cfg[key]))
    if user_cfg.get("executable_path"):
        cfg.launch.executable_path = str(user_cfg["executable_path"])
    if user_cfg.get("navigation_timeout_ms") is not None:
        cfg.launch.navigation_timeout_ms = float(user_cfg["navigation_timeout_ms"])
    if isinstance(user_cfg.get("extra_flags"), list):
        cfg.launch.extra_flags = [str(f) for f in user_cfg["extra_flags"]]

    if isinstance(user_cfg.get("proxies"), list):
        cfg.proxies = [ProxyEndpoint.from_dict(p) for p in user_cfg["proxies"]]
    if user_cfg.get("profiles_dir"):
        cfg.profiles_dir = Path(user_cfg["profiles_dir"])
    if user_cfg.get("reports_dir"):
        cfg.reports_dir = Path(user_cfg["reports_dir"])
    if user_cfg.get("probe_timeout_s") is not None:
        cfg.probe_timeout_s = float(user_cfg["probe_timeout_s"])

    api_cfg = user_cfg.get("api")
    if isinstance(api_cfg, dict):
        cfg.api.host = str(api_cfg.get("host", cfg.api.host))
        cfg.api.port = int(api_cfg.get("port", cfg.api.port))

    env_bin = os.environ.get("CHROMESEC_CHROME_BIN", "").strip()
    if env_bin:
        cfg.launch.executable_path = env_bin

    return cfg
