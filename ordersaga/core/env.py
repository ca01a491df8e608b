"""
Environment variable management with .env file support.

Loads ``.env`` from the project root (via python-dotenv) and offers typed
accessors used by ``CoordinatorConfig.from_env()``.
"""

from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation
from pathlib import Path

from dotenv import load_dotenv

_TRUTHY = frozenset({"true", "1", "yes", "on"})
_FALSY = frozenset({"false", "0", "no", "off"})


class EnvManager:
    """
    Manages environment variables for ordersaga deployments.

    Example:
        >>> env = EnvManager()
        >>> env.get("ORDERSAGA_REDIS_URL", "redis://localhost:6379/0")
    """

    def __init__(self, project_root: Path | str | None = None, auto_load: bool = True):
        """
        Initialize the environment manager.

        Args:
            project_root: Directory searched for the .env file
            auto_load: Load the .env file immediately if it exists
        """
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self._loaded = False

        if auto_load:
            self.load()

    def load(self, env_file: str | Path | None = None, override: bool = False) -> bool:
        """
        Load environment variables from a .env file.

        Returns:
            True if a .env file was loaded, False otherwise
        """
        env_path = Path(env_file) if env_file else self.project_root / ".env"

        if not env_path.exists():
            return False

        load_dotenv(env_path, override=override)
        self._loaded = True
        return True

    def get(self, key: str, default: str | None = None, required: bool = False) -> str | None:
        """
        Get an environment variable value.

        Raises:
            ValueError: If required=True and the variable is not set
        """
        value = os.environ.get(key, default)

        if required and value is None:
            msg = f"Required environment variable not set: {key}"
            raise ValueError(msg)

        return value

    def _raw(self, key: str) -> str | None:
        """Stripped value, or None when the variable is unset or blank."""
        value = os.environ.get(key)
        if value is None or not value.strip():
            return None
        return value.strip()

    def get_bool(self, key: str, default: bool = False) -> bool:
        raw = (self._raw(key) or "").lower()
        if raw in _TRUTHY:
            return True
        if raw in _FALSY:
            return False
        return default

    def get_int(self, key: str, default: int = 0) -> int:
        raw = self._raw(key)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError:
            return default

    def get_decimal(self, key: str, default: Decimal) -> Decimal:
        """Money amounts and rates; malformed values fall back to ``default``."""
        raw = self._raw(key)
        if raw is None:
            return default
        try:
            return Decimal(raw)
        except InvalidOperation:
            return default

    def get_mapping(self, key: str, default: dict[str, Decimal]) -> dict[str, Decimal]:
        """
        Parse ``name=value,name=value`` into a dict of Decimals.

        Used for regional shipping fees, e.g. ``Seoul=2500,Busan=2800``.
        """
        raw = self._raw(key)
        if raw is None:
            return dict(default)

        result: dict[str, Decimal] = {}
        for pair in raw.split(","):
            name, sep, value = pair.partition("=")
            if not sep:
                continue
            try:
                result[name.strip()] = Decimal(value.strip())
            except InvalidOperation:
                continue
        return result


_global_env: EnvManager | None = None


def get_env() -> EnvManager:
    """Get the global environment manager instance."""
    global _global_env
    if _global_env is None:
        _global_env = EnvManager()
    return _global_env
