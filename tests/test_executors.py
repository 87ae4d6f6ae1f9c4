import io
import socket
from pathlib import Path
from types import SimpleNamespace

import paramiko
import pytest

from prod_automation import executors
from prod_automation.errors import (
    AuthenticationError,
    ConfigFailure,
    OtherConnectionError,
    SessionConnectionError,
    TransportError,
)
from prod_automation.executors import (
    CHUNK_SIZE,
    POLL_INTERVAL,
    CommandResult,
    DryRunExecutor,
    FabricExecutor,
    ParamikoExecutor,
    SFTPExecutor,
    classify_connect_error,
    copy_stream,
    create_executor,
    read_channel,
)
from prod_automation.types import PublicKeyAuth, UserPassAuth


def test_command_result_prefers_exit_code():
    assert CommandResult("x", "", "warning", 0).failed is False
    assert CommandResult("x", "", "", 1).failed is True
    assert CommandResult("x", "out", None, None).failed is False
    assert CommandResult("x", "", "boom", None).failed is True
    assert CommandResult("x", "out").had_output
    assert CommandResult("x", exit_code=2).exited_with_error
    assert not CommandResult("x").exited_with_error
    assert CommandResult("x", stderr=None).stderr_text == ""


def test_connect_errors_carry_retry_eligibility():
    auth = classify_connect_error(paramiko.AuthenticationException("bad password"))
    refused = classify_connect_error(ConnectionRefusedError("refused"))
    timeout = classify_connect_error(socket.timeout("timed out"))
    other = classify_connect_error(paramiko.SSHException("banner"))

    assert isinstance(auth, AuthenticationError) and not auth.retryable
    assert isinstance(refused, SessionConnectionError) and refused.retryable
    assert isinstance(timeout, SessionConnectionError)
    assert isinstance(other, OtherConnectionError) and other.retryable


class ShortWriter:
    def write(self, data: bytes) -> int:
        return len(data) - 1


def test_copy_stream_chunks_and_verifies_size():
    payload = b"x" * (CHUNK_SIZE * 2 + 10)
    dest = io.BytesIO()

    assert copy_stream(io.BytesIO(payload), dest, len(payload), "payload") == len(payload)
    assert dest.getvalue() == payload


def test_copy_stream_fails_loudly_on_short_write():
    with pytest.raises(TransportError):
        copy_stream(io.BytesIO(b"abc"), ShortWriter(), 3, "payload")


def test_copy_stream_fails_on_truncated_source():
    with pytest.raises(TransportError):
        copy_stream(io.BytesIO(b"abc"), io.BytesIO(), 10, "payload")


class LocalSFTP:
    """Minimal SFTPClient stand-in backed by a local directory."""

    def __init__(self, root: Path):
        self.root = root
        self.modes: dict[str, int] = {}

    def _path(self, remote: str) -> Path:
        return self.root / remote.lstrip("/")

    def open(self, remote: str, mode: str):
        path = self._path(remote)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path.open(mode)

    def chmod(self, remote: str, mode: int) -> None:
        self.modes[remote] = mode

    def stat(self, remote: str):
        info = self._path(remote).stat()
        return SimpleNamespace(st_size=info.st_size, st_mode=info.st_mode)


class LocalSFTPExecutor(SFTPExecutor):
    def __init__(self, root: Path):
        super().__init__("target")
        self.client = LocalSFTP(root)

    def _sftp(self):
        return self.client


def test_sftp_file_round_trip(tmp_path: Path):
    remote_root = tmp_path / "remote"
    executor = LocalSFTPExecutor(remote_root)
    source = tmp_path / "archive.tar"
    source.write_bytes(b"\x00\x01" * CHUNK_SIZE)

    executor.send_file(source, "/opt/archive.tar", 0o600)
    executor.receive_file("/opt/archive.tar", tmp_path / "back.tar")
    executor.write_file("/etc/motd", content="hello\n", mode=0o644)

    assert (tmp_path / "back.tar").read_bytes() == source.read_bytes()
    assert executor.client.modes == {"/opt/archive.tar": 0o600, "/etc/motd": 0o644}
    assert executor.read_file("/etc/motd") == "hello\n"


def test_sftp_missing_local_file_is_a_transport_error(tmp_path: Path):
    executor = LocalSFTPExecutor(tmp_path)
    with pytest.raises(TransportError):
        executor.send_file(tmp_path / "missing", "/opt/x", 0o644)


def test_paramiko_connect_kwargs_for_each_auth_type():
    password = ParamikoExecutor("host", port=2222, auth=UserPassAuth("admin", "pw"))._connect_kwargs()
    key = ParamikoExecutor("host", auth=PublicKeyAuth("admin", "/keys/id_ed25519", passphrase="pp"))._connect_kwargs()

    assert password["port"] == 2222
    assert password["password"] == "pw"
    assert password["look_for_keys"] is False
    assert key["key_filename"] == "/keys/id_ed25519"
    assert key["passphrase"] == "pp"


def test_missing_private_key_is_a_config_failure():
    executor = ParamikoExecutor("host", auth=PublicKeyAuth("admin", "/nonexistent/id_rsa"))
    with pytest.raises(ConfigFailure) as excinfo:
        executor.connect()
    assert excinfo.value.retryable is False


class FakeChannel:
    """Replays queued stdout/stderr chunks; exits once both queues are empty."""

    def __init__(self, out, err, exit_status=0):
        self.out = list(out)
        self.err = list(err)
        self.exit_status = exit_status
        self.reads = []

    def recv_ready(self):
        return bool(self.out)

    def recv(self, size):
        self.reads.append("out")
        return self.out.pop(0) if self.out else b""

    def recv_stderr_ready(self):
        return bool(self.err)

    def recv_stderr(self, size):
        self.reads.append("err")
        return self.err.pop(0) if self.err else b""

    def exit_status_ready(self):
        return not self.out and not self.err

    def recv_exit_status(self):
        return self.exit_status


def test_read_channel_interleaves_stdout_and_stderr():
    channel = FakeChannel([b"a", b"b", b"c"], [b"x", b"y"])

    out, err = read_channel(channel, sleep=lambda seconds: pytest.fail("no idle polling expected"))

    assert (out, err) == (b"abc", b"xy")
    assert channel.reads[:4] == ["out", "err", "out", "err"]


def test_read_channel_polls_while_the_command_runs():
    channel = FakeChannel([], [])
    pending = [b"late"]
    channel.exit_status_ready = lambda: not pending and not channel.out
    naps = []

    def sleep(seconds):
        naps.append(seconds)
        channel.out.append(pending.pop())

    assert read_channel(channel, sleep=sleep) == (b"late", b"")
    assert naps == [POLL_INTERVAL]


def test_paramiko_run_collects_both_streams():
    channel = FakeChannel([b"out\n"], [b"warn\n"], exit_status=3)
    client = SimpleNamespace(exec_command=lambda command: (None, SimpleNamespace(channel=channel), None))
    executor = ParamikoExecutor("host")
    executor._client = client

    result = executor.run("ls")

    assert result == CommandResult("ls", "out\n", "warn\n", 3)


class FakeConnection:
    instances: list = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.calls: list = []
        FakeConnection.instances.append(self)

    def open(self):
        pass

    def run(self, command, **kwargs):
        self.calls.append((command, kwargs))
        return SimpleNamespace(stdout="merged output", stderr="", exited=3)

    def close(self):
        pass


def test_fabric_pty_reports_no_stderr(monkeypatch):
    monkeypatch.setattr(executors, "Connection", FakeConnection)
    executor = FabricExecutor("host", auth=UserPassAuth("admin", "pw"), pty=True)
    executor.connect()

    result = executor.run("ls /nope")

    assert result.stderr is None
    assert result.exit_code == 3
    assert result.failed
    connection = FakeConnection.instances[-1]
    assert connection.kwargs["user"] == "admin"
    assert connection.calls == [("ls /nope", {"hide": True, "warn": True, "pty": True})]


def test_dry_run_executor_records_without_side_effects():
    executor = DryRunExecutor("host", files={"/etc/fstab": "data"})
    executor.connect()

    result = executor.run("apt-get -y update")

    assert result.exit_code is None
    assert not result.failed
    assert executor.commands == ["apt-get -y update"]
    assert executor.read_file("/etc/fstab") == "data"
    assert executor.read_file("/etc/other") == ""


def test_create_executor_rejects_unknown_transport():
    assert isinstance(create_executor("dry-run", "host"), DryRunExecutor)
    with pytest.raises(ConfigFailure):
        create_executor("telnet", "host")
