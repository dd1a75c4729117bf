"""
Central configuration for deskpm paths.

Mode detection:
    1. Environment variables DESKPM_BASE_DIR / DESKPM_INSTALL_ROOT win
    2. Find project root (parent of bin/ where deskpm is located)
    3. If .deskpm.local exists in project root → read config from it (DEV mode)
    4. If /usr/bin/deskpm exists → PROD mode (system installation)
    5. Otherwise → DEV mode (per-user directories)

PROD mode: /var/lib/deskpm/, packages installed under /opt/deskpm/
DEV mode:  ~/.local/share/deskpm-dev/, packages installed under <base_dir>/apps/

Structure:
    <base_dir>/packages.db           - Catalog and installed package versions
    <base_dir>/cache/                - Download cache
    <install_root>/<Name>/           - Ideal installation directory
    <install_root>/<Name>-<ver>/     - Secondary installation directory

.deskpm.local format (optional, one setting per line):
    base_dir=/path/to/custom/dir
    install_root=/path/to/apps
    # Comments start with #
"""

import os
import sys
from pathlib import Path
from typing import Optional

# Config file name
LOCAL_CONFIG_FILE = ".deskpm.local"

# Environment overrides
ENV_BASE_DIR = "DESKPM_BASE_DIR"
ENV_INSTALL_ROOT = "DESKPM_INSTALL_ROOT"

# PROD paths (system-wide)
PROD_BASE_DIR = Path("/var/lib/deskpm")
PROD_INSTALL_ROOT = Path("/opt/deskpm")

# DEV paths (per user, isolated from prod)
DEV_BASE_DIR = Path("~/.local/share/deskpm-dev").expanduser()

# Share of total progress for each stage of PackageOperations.process()
DOWNLOAD_WEIGHT = 0.70
STOP_WEIGHT = 0.10
APPLY_WEIGHT = 0.19
CLEANUP_WEIGHT = 0.01

# Downloads
DOWNLOAD_RETRIES = 3
DOWNLOAD_TIMEOUT = 30  # seconds

# Highest numbered directory variant tried (<dir>_2 ... <dir>_N)
MAX_DIRECTORY_VARIANTS = 100

# Per-package hook scripts live in <package dir>/.deskpm/
HOOK_DIR_NAME = ".deskpm"

# Cache for detected mode (avoid repeated filesystem checks)
_cached_config: Optional[dict] = None


def _get_project_root() -> Optional[Path]:
    """Find project root by looking at where the script is located.

    If running from ./bin/deskpm, project root is the parent of bin/.

    Returns:
        Project root path, or None if not in a dev environment
    """
    if sys.argv and sys.argv[0]:
        script_path = Path(sys.argv[0]).resolve()
        if script_path.parent.name == 'bin':
            return script_path.parent.parent
    return None


def _read_local_config(project_root: Path) -> Optional[dict]:
    """Read .deskpm.local config file if it exists in project root.

    Returns:
        Dict with config values, or None if file doesn't exist
    """
    config_path = project_root / LOCAL_CONFIG_FILE
    if not config_path.exists():
        return None

    config = {}
    try:
        with open(config_path) as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                if '=' in line:
                    key, value = line.split('=', 1)
                    config[key.strip()] = value.strip()
    except OSError:
        return None

    return config


def _is_system_install() -> bool:
    """Check if deskpm is installed system-wide."""
    return Path("/usr/bin/deskpm").exists()


def _make_config(base_dir: Path, install_root: Optional[Path], is_dev: bool) -> dict:
    return {
        'base_dir': base_dir,
        'db_path': base_dir / "packages.db",
        'cache_dir': base_dir / "cache",
        'install_root': install_root or base_dir / "apps",
        'is_dev': is_dev,
    }


def _detect_mode() -> dict:
    """Detect configuration based on environment.

    Returns:
        Dict with 'base_dir', 'db_path', 'cache_dir', 'install_root', 'is_dev'
    """
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    env_base = os.environ.get(ENV_BASE_DIR)
    env_root = os.environ.get(ENV_INSTALL_ROOT)
    env_root_path = Path(env_root).expanduser() if env_root else None

    # 1. Explicit environment
    if env_base:
        _cached_config = _make_config(Path(env_base).expanduser(), env_root_path, True)
        return _cached_config

    # 2. .deskpm.local in project root (if running from dev tree)
    project_root = _get_project_root()
    if project_root:
        local_config = _read_local_config(project_root)
        if local_config is not None:
            base_dir = Path(local_config.get('base_dir', DEV_BASE_DIR)).expanduser()
            install_root = env_root_path
            if install_root is None and 'install_root' in local_config:
                install_root = Path(local_config['install_root']).expanduser()
            _cached_config = _make_config(base_dir, install_root, True)
            return _cached_config

    # 3. System installation
    if _is_system_install():
        _cached_config = _make_config(PROD_BASE_DIR, env_root_path or PROD_INSTALL_ROOT, False)
        return _cached_config

    # 4. Default to DEV mode
    _cached_config = _make_config(DEV_BASE_DIR, env_root_path, True)
    return _cached_config


def reset_cache():
    """Forget the detected mode (environment changed)."""
    global _cached_config
    _cached_config = None


def is_dev_mode() -> bool:
    """Check if running in dev mode."""
    return _detect_mode()['is_dev']


def get_base_dir() -> Path:
    """Get base directory."""
    return _detect_mode()['base_dir']


def get_db_path() -> Path:
    """Get database path."""
    return _detect_mode()['db_path']


def get_cache_dir() -> Path:
    """Get download cache directory."""
    return _detect_mode()['cache_dir']


def get_install_root() -> Path:
    """Get the directory holding package installation directories."""
    return _detect_mode()['install_root']
