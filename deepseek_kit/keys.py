"""API key management for deepseek-kit.

Handles loading, saving, and validating the DeepSeek API key.
The key is stored in ~/.deepseek/keys.env and loaded with this priority:
  1. Environment variables (highest, already set in shell)
  2. ~/.deepseek/keys.env (saved with `deepseek keys set`)
  3. .env in current directory (project-level)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

# Directory for user-level deepseek-kit configuration
DEEPSEEK_HOME = Path.home() / ".deepseek"
KEYS_FILE = DEEPSEEK_HOME / "keys.env"

API_KEY_ENV = "DEEPSEEK_API_KEY"

# Lightweight model used for key validation
_VALIDATION_MODEL = "deepseek/deepseek-chat"


def load_keys_env() -> None:
    """Load keys from ~/.deepseek/keys.env and .env into os.environ.

    Existing env vars are NOT overwritten, and earlier files win over
    later ones.
    """
    files = [KEYS_FILE, Path.cwd() / ".env"]
    for env_file in files:
        if env_file.is_file():
            _load_env_file(env_file)


def _load_env_file(path: Path) -> None:
    """Parse a simple KEY=VALUE .env file and set vars that aren't already set."""
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key and not os.environ.get(key):
                os.environ[key] = value
                logger.debug("Loaded %s from %s", key, path)
    except OSError:
        logger.debug("Could not read %s", path)


def get_api_key(explicit: str | None = None) -> str:
    """Return the API key to use, or an empty string when none is configured.

    An explicitly passed key always wins over the environment.
    """
    if explicit:
        return explicit
    load_keys_env()
    return os.environ.get(API_KEY_ENV, "")


def mask_key(api_key: str) -> str:
    """Render a key for display, keeping only its prefix and last 4 characters."""
    if not api_key:
        return "(not set)"
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:3]}...{api_key[-4:]}"


def save_key(api_key: str) -> Path:
    """Save the API key to ~/.deepseek/keys.env.

    Returns:
        Path to the saved file.
    """
    DEEPSEEK_HOME.mkdir(parents=True, exist_ok=True)

    lines = ["# deepseek-kit API key", "# Saved by `deepseek keys set`", ""]
    lines.append(f"{API_KEY_ENV}={api_key}")

    KEYS_FILE.write_text("\n".join(lines) + "\n", encoding="utf-8")

    # Restrict permissions on Unix
    try:
        KEYS_FILE.chmod(0o600)
    except OSError:
        logger.debug("Could not restrict permissions on %s", KEYS_FILE)

    return KEYS_FILE


def clear_keys() -> bool:
    """Remove ~/.deepseek/keys.env if it exists.

    Returns:
        True if the file was removed, False if it didn't exist.
    """
    if KEYS_FILE.is_file():
        KEYS_FILE.unlink()
        return True
    return False


async def validate_key(api_key: str) -> tuple[bool, str]:
    """Validate an API key by making a tiny LiteLLM call.

    Returns:
        Tuple of (success, detail_message).
    """
    import litellm

    try:
        await litellm.acompletion(
            model=_VALIDATION_MODEL,
            messages=[{"role": "user", "content": "Say hi"}],
            max_tokens=5,
            timeout=15.0,
            api_key=api_key,
        )
        return True, "Connected (DeepSeek Chat)"
    except litellm.AuthenticationError:
        return False, "Invalid key (401 Unauthorized)"
    except litellm.BadRequestError as e:
        return False, f"Bad request: {e}"
    except (litellm.RateLimitError, litellm.ServiceUnavailableError):
        # Key is valid but the service is degraded
        raise
    except Exception as e:
        return False, f"Error: {str(e)[:80]}"
