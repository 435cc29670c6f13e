"""Runtime configuration for the discovery service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"
UNSPLASH_API_URL = "https://api.unsplash.com/photos/random"
DEFAULT_MODEL = "perplexity/sonar-pro"

EMPTY_RESULT_POLICIES = ("empty", "fallback")


def _read_secret_key(name: str) -> str | None:
    """Look up ``name`` in ``~/.secret_keys`` (``NAME=value`` lines)."""
    try:
        with open(os.path.expanduser("~/.secret_keys"), "r") as f:
            for line in f:
                if line.startswith(f"{name}="):
                    return line.split("=", 1)[1].strip()
    except FileNotFoundError:
        pass
    return None


@dataclass(frozen=True)
class Settings:
    """Configuration shared by every component of the pipeline.

    Build it once at process start with :meth:`from_env` and pass it to the
    clients and the orchestrator.
    """

    openrouter_api_key: str | None = None
    openrouter_api_url: str = OPENROUTER_API_URL
    model: str = DEFAULT_MODEL
    unsplash_access_key: str | None = None
    unsplash_api_url: str = UNSPLASH_API_URL
    cache_ttl_hours: float = 12
    cooldown_seconds: float = 0
    empty_result_policy: str = "empty"
    storage_path: str | None = None
    debug: bool = False

    @property
    def cache_ttl_ms(self) -> int:
        return int(self.cache_ttl_hours * 60 * 60 * 1000)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        debug = bool(os.getenv("DISCOVERY_DEBUG"))
        if debug:
            logging.basicConfig(level=logging.INFO, format="%(message)s")

        openrouter_key = os.getenv("OPENROUTER_API_KEY") or _read_secret_key("OPENROUTER_API_KEY")
        unsplash_key = os.getenv("UNSPLASH_ACCESS_KEY") or _read_secret_key("UNSPLASH_ACCESS_KEY")

        if not openrouter_key:
            logger.warning(
                "OPENROUTER_API_KEY not found in environment or ~/.secret_keys; "
                "event generation will fail until it is set"
            )
        if not unsplash_key:
            logger.warning("UNSPLASH_ACCESS_KEY not found; events will use local images")

        policy = os.getenv("DISCOVERY_EMPTY_RESULT_POLICY", "empty").strip().lower()
        if policy not in EMPTY_RESULT_POLICIES:
            logger.warning("Unknown DISCOVERY_EMPTY_RESULT_POLICY %r, using 'empty'", policy)
            policy = "empty"

        return cls(
            openrouter_api_key=openrouter_key,
            openrouter_api_url=os.getenv("OPENROUTER_API_URL", OPENROUTER_API_URL),
            model=os.getenv("DISCOVERY_MODEL", DEFAULT_MODEL),
            unsplash_access_key=unsplash_key,
            unsplash_api_url=os.getenv("UNSPLASH_API_URL", UNSPLASH_API_URL),
            cache_ttl_hours=float(os.getenv("DISCOVERY_CACHE_TTL_HOURS", "12")),
            cooldown_seconds=float(os.getenv("DISCOVERY_COOLDOWN_SECONDS", "0")),
            empty_result_policy=policy,
            storage_path=os.getenv("DISCOVERY_STORAGE_PATH") or None,
            debug=debug,
        )
