from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]


DEFAULT_CONFIG_PATH = Path("/etc/prod/main.conf")
TRANSPORTS = ("paramiko", "fabric")


@dataclass
class ProdConfig:
    transport: str = "paramiko"
    connect_timeout: float = 30
    connect_retries: int = 15
    connect_retry_delay: float = 30
    package_lock_attempts: int = 20
    package_lock_delay: float = 20


def _positive(value: object, name: str, *, allow_zero: bool = False) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"config value '{name}' must be a number")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValueError(f"config value '{name}' must be positive")
    return value


def load_config(path: Path) -> ProdConfig:
    if not path.exists():
        return ProdConfig()
    data = tomllib.loads(path.read_text())
    defaults = data.get("defaults", {})
    base = ProdConfig()

    transport = str(defaults.get("transport", base.transport))
    if transport not in TRANSPORTS:
        raise ValueError(f"unknown transport '{transport}' in {path}")

    return ProdConfig(
        transport=transport,
        connect_timeout=_positive(defaults.get("connect_timeout", base.connect_timeout), "connect_timeout"),
        connect_retries=int(_positive(defaults.get("connect_retries", base.connect_retries), "connect_retries", allow_zero=True)),
        connect_retry_delay=_positive(
            defaults.get("connect_retry_delay", base.connect_retry_delay), "connect_retry_delay", allow_zero=True
        ),
        package_lock_attempts=int(
            _positive(defaults.get("package_lock_attempts", base.package_lock_attempts), "package_lock_attempts")
        ),
        package_lock_delay=_positive(
            defaults.get("package_lock_delay", base.package_lock_delay), "package_lock_delay", allow_zero=True
        ),
    )
