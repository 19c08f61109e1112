"""
Settings layer for RepTracker.
Contains configuration persistence, platform paths and WoW installation
lookup, with no GTK dependencies.
"""

import json
import os
import platform
import shutil
import subprocess


# Application name for config directories
APP_NAME = "reptracker"

# SavedVariables written by the tracking addon
SAVED_VARIABLES_FILE = "WarbandNexus.lua"

# Theme constants
THEME_AUTO = "auto"
THEME_LIGHT = "light"
THEME_DARK = "dark"

# Minimum seconds between automatic rebuilds
DEFAULT_REFRESH_INTERVAL = 5

# Default WoW installation paths by platform
WOW_DEFAULT_PATHS = {
    "Darwin": [  # macOS
        "/Applications/World of Warcraft",
        "/Applications/Games/World of Warcraft",
        os.path.expanduser("~/Applications/World of Warcraft"),
    ],
    "Windows": [
        "C:/Program Files (x86)/World of Warcraft",
        "C:/Program Files/World of Warcraft",
        "D:/World of Warcraft",
        "D:/Games/World of Warcraft",
    ],
    "Linux": [
        os.path.expanduser("~/.wine/drive_c/Program Files (x86)/World of Warcraft"),
        os.path.expanduser(
            "~/Games/world-of-warcraft/drive_c/Program Files (x86)/World of Warcraft"
        ),
    ],
}


class Config:
    """Manages application configuration."""

    def __init__(self, config_file: str):
        self.config_file = config_file
        self._data: dict = {}

    def load(self) -> None:
        """Load configuration from JSON file."""
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                self._data = data if isinstance(data, dict) else {}
            except (json.JSONDecodeError, IOError, UnicodeDecodeError) as e:
                print(f"Warning: Failed to load config file: {e}")
                self._data = {}
        else:
            self._data = {}

    def save(self) -> None:
        """Save configuration to JSON file atomically."""
        temp_file = self.config_file + ".tmp"
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
            shutil.move(temp_file, self.config_file)
        except (IOError, OSError, UnicodeEncodeError) as e:
            if os.path.exists(temp_file):
                try:
                    os.remove(temp_file)
                except OSError:
                    pass
            print(f"Warning: Failed to save config: {e}")

    def get(self, key: str, default=None):
        """Get a config value."""
        return self._data.get(key, default)

    def set(self, key: str, value) -> None:
        """Set a config value."""
        self._data[key] = value

    def update(self, updates: dict) -> None:
        """Update multiple config values."""
        self._data.update(updates)

    @property
    def data(self) -> dict:
        """Get the raw config data dict."""
        return self._data

    def get_nesting_exceptions(self, default: frozenset) -> frozenset:
        """Faction names kept at top level; config list overrides the default."""
        names = self._data.get("nesting_exceptions")
        if not isinstance(names, list):
            return default
        return frozenset(n for n in names if isinstance(n, str))

    def get_refresh_interval(self) -> float:
        value = self._data.get("refresh_interval", DEFAULT_REFRESH_INTERVAL)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            return DEFAULT_REFRESH_INTERVAL
        return value


def get_config_dir() -> str:
    """Get the platform-specific config directory for the application.

    Returns:
        macOS: ~/Library/Application Support/reptracker
        Linux: ~/.config/reptracker (or $XDG_CONFIG_HOME/reptracker)
        Windows: %APPDATA%/reptracker
    """
    system = platform.system().lower()
    home = os.path.expanduser("~")

    if system == "darwin":
        return os.path.join(home, "Library", "Application Support", APP_NAME)
    elif system == "windows":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return os.path.join(appdata, APP_NAME)
        return os.path.join(home, "AppData", "Roaming", APP_NAME)
    else:
        xdg_config = os.environ.get("XDG_CONFIG_HOME")
        if xdg_config:
            return os.path.join(xdg_config, APP_NAME)
        return os.path.join(home, ".config", APP_NAME)


def detect_wow_path() -> str | None:
    """Try to detect WoW installation from default paths."""
    for path in WOW_DEFAULT_PATHS.get(platform.system(), []):
        # _retail_ subdirectory marks a real installation
        if os.path.exists(os.path.join(path, "_retail_")):
            return path
    return None


def find_saved_variables(wow_path: str | None) -> str | None:
    """Find the addon SavedVariables file under a WoW installation.

    Account folders are searched in sorted order so the result is stable.
    """
    if not wow_path:
        return None

    wtf_account_path = os.path.join(wow_path, "_retail_", "WTF", "Account")
    if not os.path.isdir(wtf_account_path):
        return None

    try:
        account_dirs = sorted(os.listdir(wtf_account_path))
    except OSError:
        return None

    for account_dir in account_dirs:
        if account_dir.startswith("."):
            continue
        candidate = os.path.join(
            wtf_account_path, account_dir, "SavedVariables", SAVED_VARIABLES_FILE
        )
        if os.path.exists(candidate):
            return candidate
    return None


def resolve_saved_variables(config: Config) -> str | None:
    """SavedVariables path from an explicit config entry, else the WoW install."""
    explicit = config.get("saved_variables")
    if explicit and os.path.exists(explicit):
        return explicit

    wow_path = config.get("wow_path")
    if not wow_path or not os.path.exists(wow_path):
        wow_path = detect_wow_path()
    return find_saved_variables(wow_path)


# Per-platform dark mode query: (command, stdout check)
THEME_QUERIES = {
    "darwin": (
        ["defaults", "read", "-g", "AppleInterfaceStyle"],
        lambda out: "dark" in out.lower(),
    ),
    "linux": (
        ["gsettings", "get", "org.gnome.desktop.interface", "gtk-theme"],
        lambda out: "dark" in out.lower(),
    ),
    "windows": (
        [
            "reg",
            "query",
            "HKEY_CURRENT_USER\\Software\\Microsoft\\Windows\\CurrentVersion\\Themes\\Personalize",
            "/v",
            "AppsUseLightTheme",
        ],
        # 0x0 means apps use the dark theme
        lambda out: "0x0" in out,
    ),
}


def detect_system_theme() -> bool:
    """Detect if system prefers dark mode. Returns True for dark mode.

    Falls back to the GTK_THEME environment variable when the platform
    query is unavailable or fails.
    """
    query = THEME_QUERIES.get(platform.system().lower())
    if query:
        command, is_dark = query
        try:
            result = subprocess.run(command, capture_output=True, text=True, timeout=5)
            if result.returncode == 0:
                return is_dark(result.stdout)
        except (subprocess.SubprocessError, OSError):
            pass
    return "dark" in os.environ.get("GTK_THEME", "").lower()
