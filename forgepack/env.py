"""
Environment file loading.

Reads .env files from the project root with python-dotenv. Variables already
present in the process environment win unless FORGEPACK_OVERRIDE_ENV is set.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

MODE_VAR = "FORGEPACK_MODE"
CLIENT_ENV_PREFIX = "FORGEPACK_APP_"


def _load_file(path: Path) -> int:
    if not path.exists():
        return 0
    override = bool(os.environ.get("FORGEPACK_OVERRIDE_ENV"))
    try:
        values = dotenv_values(path, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Could not read {path}: {e}")
        return 0

    loaded = 0
    for key, value in values.items():
        if value is None:
            continue
        if override or key not in os.environ:
            os.environ[key] = value
            loaded += 1
    logger.debug(f"Loaded {loaded} variable(s) from {path}")
    return loaded


def load_env(cwd: Union[str, Path], env: Optional[str] = None) -> None:
    """
    Load .env[.<env>] and its .local variant into os.environ.

    The .local file is loaded first so it takes precedence. When an env is
    given, FORGEPACK_MODE defaults to that env for "production" and "test"
    and to "development" otherwise.
    """
    base = Path(cwd) / (f".env.{env}" if env else ".env")
    local = base.with_name(base.name + ".local")

    _load_file(local)
    _load_file(base)

    if env:
        default_mode = env if env in ("production", "test") else "development"
        # Tests force the default mode so they can't affect each other
        force = bool(os.environ.get("FORGEPACK_TEST")) and not os.environ.get("FORGEPACK_TEST_TESTING_ENV")
        if force or os.environ.get(MODE_VAR) is None:
            os.environ[MODE_VAR] = default_mode


def current_mode(default: str = "development") -> str:
    return os.environ.get(MODE_VAR) or default


def resolve_client_env() -> Dict[str, str]:
    """Variables exposed to the built application (FORGEPACK_APP_* and the mode)."""
    env = {
        key: value for key, value in sorted(os.environ.items())
        if key.startswith(CLIENT_ENV_PREFIX)
    }
    env[MODE_VAR] = current_mode()
    return env
