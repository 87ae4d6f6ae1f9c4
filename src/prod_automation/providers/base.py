from __future__ import annotations

import dataclasses
import logging
import time
import uuid
from typing import Callable, Optional

from ..config import ProdConfig
from ..errors import ActionNotImplemented, FailedCommand, InvalidParams
from ..executors import CommandResult
from ..session import ControlSession, SessionParams
from ..types import Action, ActionKind, ActionResult

logger = logging.getLogger(__name__)

MASK = "********"


def package_list(action: Action) -> list[str]:
    """``package`` (one name) or ``packages`` (a list), never empty."""

    params = action.params
    if params.has("package"):
        packages = [params.require_str("package")]
    elif params.has("packages"):
        packages = [pkg for pkg in params.get_str_list("packages") if pkg]
    else:
        raise InvalidParams("Neither the 'package' nor the 'packages' parameter was specified.")
    if not packages:
        raise InvalidParams("No packages were specified.")
    return packages


def parse_mode(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value, 8)
    except ValueError as exc:
        raise InvalidParams(f"Invalid permissions value '{value}'.") from exc


class ActionProvider:
    """Turns actions into commands for one OS family.

    Every action has a method here that raises ``ActionNotImplemented``;
    providers override the ones they support.
    """

    name = "base"
    ssh_service = "sshd"
    firewall_enable_first = False

    def __init__(self, config: Optional[ProdConfig] = None, *, sleep: Callable[[float], None] = time.sleep):
        self.config = config or ProdConfig()
        self.sleep = sleep

    # Command helpers -----------------------------------------------------
    @staticmethod
    def elevated(params: SessionParams, command: str) -> str:
        return f"sudo {command}" if params.elevate else command

    def post_process_command(self, command: str, params: SessionParams) -> str:
        processed = self.elevated(params, command)
        if params.hide_commands and not processed.startswith(" "):
            # a leading space keeps the command out of bash history
            processed = f" {processed}"
        return processed

    def run(self, session: ControlSession, command: str, *, secret: Optional[str] = None) -> CommandResult:
        processed = self.post_process_command(command, session.params)
        shown = processed.replace(secret, MASK) if secret else processed
        logger.debug("host=%s command=%s", session.params.host, shown.strip())
        result = session.executor.run(processed)
        if secret:
            result = dataclasses.replace(result, command=shown)
        logger.debug("host=%s exit=%s stdout=%r", session.params.host, result.exit_code, result.stdout[:200])
        return result

    @staticmethod
    def check(result: CommandResult, what: str) -> CommandResult:
        if result.failed:
            detail = f"Unexpected response from '{what}' command"
            stderr = result.stderr_text.strip()
            if stderr:
                detail = f"{detail}: {stderr}"
            raise FailedCommand(detail, command=result.command.strip(), stderr=result.stderr)
        return result

    def run_checked(self, session: ControlSession, command: str, *, secret: Optional[str] = None) -> CommandResult:
        result = self.run(session, command, secret=secret)
        shown = command.replace(secret, MASK) if secret else command
        return self.check(result, shown)

    def write_text_file(self, session: ControlSession, path: str, content: str, mode: int) -> None:
        """Push ``content`` to ``path``; elevated sessions stage it and ``install`` it as root."""

        if not session.params.elevate:
            session.executor.write_file(path, content=content, mode=mode)
            return
        staging = f"/tmp/prod-{uuid.uuid4().hex}"
        session.executor.write_file(staging, content=content, mode=0o600)
        try:
            self.run_checked(session, f"install -m {mode:o} {staging} {path}")
        finally:
            self.run(session, f"rm -f {staging}")

    @staticmethod
    def make_result(
        session: ControlSession,
        action: Action,
        details: str,
        *,
        changed: bool = True,
        resource: Optional[str] = None,
    ) -> ActionResult:
        return ActionResult(
            host=session.params.host,
            action=str(action.kind),
            changed=changed,
            details=details,
            resource=resource,
        )

    # Dispatch ------------------------------------------------------------
    def dispatch(self, session: ControlSession, action: Action) -> ActionResult:
        handler_name = _HANDLERS.get(action.kind)
        if handler_name is None:
            raise InvalidParams(f"Invalid action type '{action.kind}'")
        return getattr(self, handler_name)(session, action)

    def distro_details(self, session: ControlSession) -> tuple[str, str]:
        raise ActionNotImplemented("the action provider can't query distribution details")

    # Actions -------------------------------------------------------------
    def generic_command(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def add_user(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def add_group(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def create_directory(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def remove_directory(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def install_packages(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def remove_packages(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def add_package_repo(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def system_ctl(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def firewall(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def edit_file(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def copy_path(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def remove_file(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def download_file(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def transmit_file(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def receive_file(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def create_symlink(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def set_time_zone(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def disable_swap(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def create_file(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def set_hostname(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def create_systemd_service(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()

    def configure_ssh(self, session: ControlSession, action: Action) -> ActionResult:
        raise ActionNotImplemented()


_HANDLERS = {
    ActionKind.GENERIC_COMMAND: "generic_command",
    ActionKind.ADD_USER: "add_user",
    ActionKind.ADD_GROUP: "add_group",
    ActionKind.CREATE_DIRECTORY: "create_directory",
    ActionKind.REMOVE_DIRECTORY: "remove_directory",
    ActionKind.INSTALL_PACKAGES: "install_packages",
    ActionKind.REMOVE_PACKAGES: "remove_packages",
    ActionKind.ADD_PACKAGE_REPO: "add_package_repo",
    ActionKind.SYSTEM_CTL: "system_ctl",
    ActionKind.FIREWALL: "firewall",
    ActionKind.EDIT_FILE: "edit_file",
    ActionKind.COPY_PATH: "copy_path",
    ActionKind.REMOVE_FILE: "remove_file",
    ActionKind.DOWNLOAD_FILE: "download_file",
    ActionKind.TRANSMIT_FILE: "transmit_file",
    ActionKind.RECEIVE_FILE: "receive_file",
    ActionKind.CREATE_SYMLINK: "create_symlink",
    ActionKind.SET_TIME_ZONE: "set_time_zone",
    ActionKind.DISABLE_SWAP: "disable_swap",
    ActionKind.CREATE_FILE: "create_file",
    ActionKind.SET_HOSTNAME: "set_hostname",
    ActionKind.CREATE_SYSTEMD_SERVICE: "create_systemd_service",
    ActionKind.CONFIGURE_SSH: "configure_ssh",
}
