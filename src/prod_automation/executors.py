from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Optional, Union
import logging
import os
import socket
import stat
import time

import paramiko
from fabric import Connection

from .errors import (
    AuthenticationError,
    ConfigFailure,
    ConnectionFailure,
    OtherConnectionError,
    SessionConnectionError,
    TransportError,
)
from .types import Auth, PublicKeyAuth, UserPassAuth

logger = logging.getLogger(__name__)

CHUNK_SIZE = 16 * 1024
POLL_INTERVAL = 0.05

PathLike = Union[str, Path]


@dataclass
class CommandResult:
    command: str
    stdout: str = ""
    stderr: Optional[str] = None
    exit_code: Optional[int] = None

    @property
    def had_output(self) -> bool:
        return bool(self.stdout)

    @property
    def stderr_text(self) -> str:
        return self.stderr or ""

    @property
    def exited_with_error(self) -> bool:
        return self.exit_code is not None and self.exit_code != 0

    @property
    def failed(self) -> bool:
        """Exit code when the transport reports one, otherwise stderr output."""

        if self.exit_code is not None:
            return self.exit_code != 0
        return bool(self.stderr_text.strip())


class Executor:
    """Base transport used by action providers to reach the target host."""

    name = "base"

    def __init__(self, host: str, *, port: int = 22, auth: Optional[Auth] = None, connect_timeout: float = 30):
        self.host = host
        self.port = port
        self.auth = auth
        self.connect_timeout = connect_timeout

    def __enter__(self) -> "Executor":
        self.connect()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def connect(self) -> None:
        raise NotImplementedError

    def run(self, command: str) -> CommandResult:
        raise NotImplementedError

    # File primitives -----------------------------------------------------
    def read_file(self, path: str) -> str:
        raise NotImplementedError

    def write_file(self, path: str, *, content: str, mode: int) -> None:
        raise NotImplementedError

    def send_file(self, local_path: PathLike, remote_path: str, mode: int) -> None:
        raise NotImplementedError

    def receive_file(self, remote_path: str, local_path: PathLike) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


def classify_connect_error(exc: BaseException) -> ConnectionFailure:
    """Map a paramiko/socket failure onto the connection error taxonomy."""

    if isinstance(exc, ConnectionFailure):
        return exc
    if isinstance(exc, paramiko.AuthenticationException):
        return AuthenticationError(f"Authentication failed: {exc}")
    if isinstance(exc, paramiko.BadHostKeyException):
        return ConfigFailure(f"Host key mismatch: {exc}")
    if isinstance(exc, paramiko.SSHException):
        return OtherConnectionError(f"SSH error: {exc}")
    if isinstance(exc, (socket.timeout, OSError)):
        return SessionConnectionError(f"Can't connect: {exc}")
    return OtherConnectionError(str(exc))


def copy_stream(source: BinaryIO, dest: Any, expected_size: int, description: str) -> int:
    """Copy ``source`` to ``dest`` in 16 KiB chunks and verify the total size."""

    transferred = 0
    while True:
        chunk = source.read(CHUNK_SIZE)
        if not chunk:
            break
        written = dest.write(chunk)
        # paramiko file objects return None, local files the byte count
        if written is not None and written != len(chunk):
            raise TransportError(
                f"Short write while transferring {description}: wrote {written} of {len(chunk)} bytes"
            )
        transferred += len(chunk)
        if len(chunk) < CHUNK_SIZE:
            break
    if transferred != expected_size:
        raise TransportError(
            f"Incomplete transfer of {description}: {transferred} of {expected_size} bytes"
        )
    return transferred


def read_channel(channel: Any, sleep=time.sleep) -> tuple[bytes, bytes]:
    """Drain stdout and stderr of ``channel`` together so neither window fills up."""

    out = bytearray()
    err = bytearray()
    while True:
        busy = False
        if channel.recv_ready():
            out += channel.recv(CHUNK_SIZE)
            busy = True
        if channel.recv_stderr_ready():
            err += channel.recv_stderr(CHUNK_SIZE)
            busy = True
        if busy:
            continue
        if channel.exit_status_ready():
            break
        sleep(POLL_INTERVAL)
    # the command has exited; read up to EOF on both streams
    for recv, buffer in ((channel.recv, out), (channel.recv_stderr, err)):
        chunk = recv(CHUNK_SIZE)
        while chunk:
            buffer += chunk
            chunk = recv(CHUNK_SIZE)
    return bytes(out), bytes(err)


class SFTPExecutor(Executor):
    """Shared SFTP based file handling for the SSH transports."""

    def _sftp(self) -> paramiko.SFTPClient:
        raise NotImplementedError

    def read_file(self, path: str) -> str:
        try:
            with self._sftp().open(path, "rb") as handle:
                data = handle.read()
        except (OSError, paramiko.SSHException) as exc:
            raise TransportError(f"Error reading remote file {path}: {exc}") from exc
        return data.decode("utf-8", errors="replace")

    def write_file(self, path: str, *, content: str, mode: int) -> None:
        payload = content.encode("utf-8")
        sftp = self._sftp()
        try:
            with sftp.open(path, "wb") as handle:
                handle.write(payload)
            sftp.chmod(path, mode)
        except (OSError, paramiko.SSHException) as exc:
            raise TransportError(f"Error writing remote file {path}: {exc}") from exc
        logger.debug("wrote %d bytes to %s mode=%04o", len(payload), path, mode)

    def send_file(self, local_path: PathLike, remote_path: str, mode: int) -> None:
        local = Path(local_path)
        try:
            size = local.stat().st_size
        except OSError as exc:
            raise TransportError(f"Can't read local file {local}: {exc}") from exc

        sftp = self._sftp()
        try:
            with local.open("rb") as source, sftp.open(remote_path, "wb") as dest:
                copy_stream(source, dest, size, str(local))
            sftp.chmod(remote_path, mode)
            remote_size = sftp.stat(remote_path).st_size
        except (OSError, paramiko.SSHException) as exc:
            raise TransportError(f"Error sending {local} to {remote_path}: {exc}") from exc
        if remote_size != size:
            raise TransportError(f"Remote file {remote_path} has {remote_size} bytes, expected {size}")
        logger.debug("sent %s -> %s (%d bytes)", local, remote_path, size)

    def receive_file(self, remote_path: str, local_path: PathLike) -> None:
        local = Path(local_path)
        sftp = self._sftp()
        try:
            attrs = sftp.stat(remote_path)
            if attrs.st_mode is not None and stat.S_ISDIR(attrs.st_mode):
                raise TransportError(f"Remote path {remote_path} is a directory")
            size = attrs.st_size or 0
            with sftp.open(remote_path, "rb") as source, local.open("wb") as dest:
                copy_stream(source, dest, size, remote_path)
        except (OSError, paramiko.SSHException) as exc:
            raise TransportError(f"Error receiving {remote_path} to {local}: {exc}") from exc
        logger.debug("received %s -> %s (%d bytes)", remote_path, local, size)


def _check_key_file(auth: Optional[Auth]) -> None:
    if isinstance(auth, PublicKeyAuth) and not os.path.exists(os.path.expanduser(auth.private_key_path)):
        raise ConfigFailure(f"Private key file {auth.private_key_path} does not exist")


class ParamikoExecutor(SFTPExecutor):
    """One ``exec_command`` channel per command on a paramiko ``SSHClient``."""

    name = "paramiko"

    def __init__(self, host: str, *, port: int = 22, auth: Optional[Auth] = None, connect_timeout: float = 30):
        super().__init__(host, port=port, auth=auth, connect_timeout=connect_timeout)
        self._client: Optional[paramiko.SSHClient] = None
        self._sftp_client: Optional[paramiko.SFTPClient] = None

    def _connect_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "hostname": self.host,
            "port": self.port,
            "timeout": self.connect_timeout,
        }
        auth = self.auth
        if isinstance(auth, UserPassAuth):
            kwargs.update(
                username=auth.username,
                password=auth.password,
                allow_agent=False,
                look_for_keys=False,
            )
        elif isinstance(auth, PublicKeyAuth):
            kwargs.update(
                username=auth.username,
                key_filename=os.path.expanduser(auth.private_key_path),
                passphrase=auth.passphrase or None,
            )
        return kwargs

    def connect(self) -> None:
        _check_key_file(self.auth)
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(**self._connect_kwargs())
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise classify_connect_error(exc) from exc
        self._client = client

    def run(self, command: str) -> CommandResult:
        if self._client is None:
            raise TransportError("Not connected")
        try:
            _, stdout, _ = self._client.exec_command(command)
            out, err = read_channel(stdout.channel)
            exit_code = stdout.channel.recv_exit_status()
        except (OSError, paramiko.SSHException) as exc:
            raise TransportError(f"Error running remote command: {exc}") from exc
        return CommandResult(
            command,
            out.decode("utf-8", errors="replace"),
            err.decode("utf-8", errors="replace"),
            exit_code if exit_code >= 0 else None,
        )

    def _sftp(self) -> paramiko.SFTPClient:
        if self._client is None:
            raise TransportError("Not connected")
        if self._sftp_client is None:
            try:
                self._sftp_client = self._client.open_sftp()
            except (OSError, paramiko.SSHException) as exc:
                raise TransportError(f"Can't open SFTP session: {exc}") from exc
        return self._sftp_client

    def close(self) -> None:
        if self._sftp_client is not None:
            self._sftp_client.close()
            self._sftp_client = None
        if self._client is not None:
            self._client.close()
            self._client = None


class FabricExecutor(SFTPExecutor):
    """Runs commands through ``fabric.Connection.run``.

    With ``pty=True`` the remote side merges stderr into stdout, so results
    carry ``stderr=None`` and callers fall back to the exit code.
    """

    name = "fabric"

    def __init__(
        self,
        host: str,
        *,
        port: int = 22,
        auth: Optional[Auth] = None,
        connect_timeout: float = 30,
        pty: bool = False,
    ):
        super().__init__(host, port=port, auth=auth, connect_timeout=connect_timeout)
        self.pty = pty
        self._connection: Optional[Connection] = None

    def _build_connection(self) -> Connection:
        connect_kwargs: dict[str, Any] = {}
        user = None
        auth = self.auth
        if isinstance(auth, UserPassAuth):
            user = auth.username
            connect_kwargs.update(password=auth.password, allow_agent=False, look_for_keys=False)
        elif isinstance(auth, PublicKeyAuth):
            user = auth.username
            connect_kwargs["key_filename"] = os.path.expanduser(auth.private_key_path)
            if auth.passphrase:
                connect_kwargs["passphrase"] = auth.passphrase
        return Connection(
            host=self.host,
            user=user,
            port=self.port,
            connect_timeout=self.connect_timeout,
            connect_kwargs=connect_kwargs,
        )

    def connect(self) -> None:
        _check_key_file(self.auth)
        connection = self._build_connection()
        try:
            connection.open()
        except Exception as exc:  # noqa: BLE001
            connection.close()
            raise classify_connect_error(exc) from exc
        self._connection = connection

    def run(self, command: str) -> CommandResult:
        if self._connection is None:
            raise TransportError("Not connected")
        try:
            result = self._connection.run(command, hide=True, warn=True, pty=self.pty)
        except (OSError, paramiko.SSHException) as exc:
            raise TransportError(f"Error running remote command: {exc}") from exc
        stderr = None if self.pty else result.stderr
        return CommandResult(command, result.stdout, stderr, result.exited)

    def _sftp(self) -> paramiko.SFTPClient:
        if self._connection is None:
            raise TransportError("Not connected")
        try:
            return self._connection.sftp()
        except (OSError, paramiko.SSHException) as exc:
            raise TransportError(f"Can't open SFTP session: {exc}") from exc

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None


class DryRunExecutor(Executor):
    """Logs commands and transfers instead of touching a host."""

    name = "dry-run"

    def __init__(
        self,
        host: str,
        *,
        port: int = 22,
        auth: Optional[Auth] = None,
        connect_timeout: float = 30,
        files: Optional[dict[str, str]] = None,
    ):
        super().__init__(host, port=port, auth=auth, connect_timeout=connect_timeout)
        self.files = dict(files or {})
        self.commands: list[str] = []

    def connect(self) -> None:
        logger.info("dry-run: connect %s:%s", self.host, self.port)

    def run(self, command: str) -> CommandResult:
        logger.info("dry-run: %s", command)
        self.commands.append(command)
        return CommandResult(command, "", "", None)

    def read_file(self, path: str) -> str:
        logger.info("dry-run: read %s", path)
        return self.files.get(path, "")

    def write_file(self, path: str, *, content: str, mode: int) -> None:
        logger.info("dry-run: write %s (%d bytes, mode %04o)", path, len(content), mode)

    def send_file(self, local_path: PathLike, remote_path: str, mode: int) -> None:
        logger.info("dry-run: send %s -> %s (mode %04o)", local_path, remote_path, mode)

    def receive_file(self, remote_path: str, local_path: PathLike) -> None:
        logger.info("dry-run: receive %s -> %s", remote_path, local_path)


EXECUTORS = {
    ParamikoExecutor.name: ParamikoExecutor,
    FabricExecutor.name: FabricExecutor,
    DryRunExecutor.name: DryRunExecutor,
}


def create_executor(
    transport: str,
    host: str,
    *,
    port: int = 22,
    auth: Optional[Auth] = None,
    connect_timeout: float = 30,
) -> Executor:
    executor_cls = EXECUTORS.get(transport)
    if executor_cls is None:
        raise ConfigFailure(f"Unknown transport '{transport}'")
    return executor_cls(host, port=port, auth=auth, connect_timeout=connect_timeout)
