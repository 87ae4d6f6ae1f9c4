from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .credentials import CredentialResolver, PromptCredentialResolver
from .executors import Executor


@dataclass(frozen=True)
class SessionParams:
    host: str
    port: int = 22
    username: str = "root"
    elevate: bool = False
    hide_commands: bool = True

    @classmethod
    def for_user(
        cls,
        host: str,
        username: str,
        *,
        port: int = 22,
        use_sudo: Optional[bool] = None,
        hide_commands: bool = True,
    ) -> "SessionParams":
        """Elevate with sudo unless logged in as root or told otherwise."""

        elevate = username != "root" if use_sudo is None else use_sudo
        return cls(host=host, port=port, username=username, elevate=elevate, hide_commands=hide_commands)


@dataclass
class ControlSession:
    executor: Executor
    params: SessionParams
    credentials: CredentialResolver = field(default_factory=PromptCredentialResolver)
    script_dir: Optional[str] = None

    def close(self) -> None:
        self.executor.close()
