from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest

from prod_automation.credentials import StaticCredentialResolver
from prod_automation.executors import CommandResult, Executor
from prod_automation.params import ParamBag
from prod_automation.session import ControlSession, SessionParams
from prod_automation.types import Action, ActionKind


class RecordingExecutor(Executor):
    """Records commands and transfers; replies from queues keyed by command prefix."""

    name = "recording"

    def __init__(self, host: str = "target", *, port: int = 22, auth=None, connect_timeout: float = 30, files=None):
        super().__init__(host, port=port, auth=auth, connect_timeout=connect_timeout)
        self.responses: dict[str, list[CommandResult]] = {}
        self.commands: list[str] = []
        self.files: dict[str, str] = dict(files or {})
        self.writes: list[tuple[str, str, int]] = []
        self.sent: list[tuple[str, str, int]] = []
        self.received: list[tuple[str, str]] = []
        self.connect_calls = 0
        self.closed = False

    def respond(self, prefix: str, stdout: str = "", stderr: Optional[str] = "", exit_code: Optional[int] = 0) -> None:
        self.responses.setdefault(prefix, []).append(CommandResult(prefix, stdout, stderr, exit_code))

    @property
    def sent_commands(self) -> list[str]:
        return [command.strip() for command in self.commands]

    def connect(self) -> None:
        self.connect_calls += 1

    def run(self, command: str) -> CommandResult:
        self.commands.append(command)
        stripped = command.strip()
        for prefix, queue in self.responses.items():
            if stripped.startswith(prefix) and queue:
                # the last queued reply keeps answering
                reply = queue.pop(0) if len(queue) > 1 else queue[0]
                return CommandResult(command, reply.stdout, reply.stderr, reply.exit_code)
        return CommandResult(command, "", "", 0)

    def read_file(self, path: str) -> str:
        return self.files.get(path, "")

    def write_file(self, path: str, *, content: str, mode: int) -> None:
        self.writes.append((path, content, mode))
        self.files[path] = content

    def send_file(self, local_path, remote_path: str, mode: int) -> None:
        self.sent.append((str(local_path), remote_path, mode))

    def receive_file(self, remote_path: str, local_path) -> None:
        self.received.append((remote_path, str(local_path)))
        Path(local_path).write_text(self.files.get(remote_path, ""))

    def close(self) -> None:
        self.closed = True


def make_action(action_name: str, /, **params) -> Action:
    return Action(kind=ActionKind.from_name(action_name), params=ParamBag(params))


STAT_644 = """  File: /etc/fstab
  Size: 612       \tBlocks: 8          IO Block: 4096   regular file
Device: 801h/2049d\tInode: 131074      Links: 1
Access: (0644/-rw-r--r--)  Uid: (    0/    root)   Gid: (    0/    root)
"""


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def credentials() -> StaticCredentialResolver:
    return StaticCredentialResolver(hostname="prompted-host", username="admin", password="s3cret")


@pytest.fixture
def session(executor: RecordingExecutor, credentials: StaticCredentialResolver) -> ControlSession:
    params = SessionParams(host="target", username="root", elevate=False, hide_commands=True)
    return ControlSession(executor, params, credentials)
