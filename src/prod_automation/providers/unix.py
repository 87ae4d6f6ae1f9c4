"""Actions common to every POSIX-like target."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from string import Template
from typing import Optional

import jinja2

from ..errors import FailedCommand, FailedOther, InvalidParams
from ..file_editing import (
    CommentLineEntry,
    InsertLineEntry,
    PermitRootLogin,
    ReplaceLineEntry,
    SshdConfigChanges,
    edit_lines,
    modify_sshd_config,
)
from ..session import ControlSession
from ..stat_output import DEFAULT_FILE_MODE, StatDetails, mode_from_stat, parse_stat_output
from ..types import Action, ActionResult
from .base import ActionProvider, parse_mode

logger = logging.getLogger(__name__)

SSHD_CONFIG_PATH = "/etc/ssh/sshd_config"


# Shared helpers ----------------------------------------------------------
def apply_ownership(
    provider: ActionProvider,
    session: ControlSession,
    path: str,
    action: Action,
    *,
    permissions: bool = True,
) -> list[str]:
    """Run chmod/chown/chgrp for whichever of permissions/owner/group are set."""

    params = action.params
    applied: list[str] = []
    if permissions:
        mode = params.get_str_or_int("permissions")
        if mode:
            provider.run_checked(session, f"chmod {mode} {path}")
            applied.append(f"mode={mode}")
    owner = params.get_str("owner")
    if owner:
        provider.run_checked(session, f"chown {owner} {path}")
        applied.append(f"owner={owner}")
    group = params.get_str("group")
    if group:
        provider.run_checked(session, f"chgrp {group} {path}")
        applied.append(f"group={group}")
    return applied


def remote_stat(provider: ActionProvider, session: ControlSession, path: str) -> Optional[StatDetails]:
    result = provider.run(session, f"stat {path}")
    if result.failed:
        raise FailedCommand(
            f"Error accessing remote path {path}: {result.stderr_text.strip()}",
            command=result.command.strip(),
            stderr=result.stderr,
        )
    details = parse_stat_output(result.stdout)
    if details is None:
        logger.warning("Can't extract stat details for %s, using %04o as default permissions mode.", path, DEFAULT_FILE_MODE)
    return details


def _resolve_local(session: ControlSession, path: str) -> Path:
    local = Path(path).expanduser()
    if not local.is_absolute() and session.script_dir:
        local = Path(session.script_dir) / local
    return local


def _extract_archive(provider: ActionProvider, session: ControlSession, archive: str, action: Action) -> Optional[str]:
    extract_dir = action.params.get_str("extractDir")
    if not extract_dir:
        return None
    check = provider.run(session, f'test -d {extract_dir} && echo "yep"')
    if not check.had_output:
        raise FailedOther(f"The 'extractDir' parameter directory: '{extract_dir}' does not exist.")
    if archive.lower().endswith(".zip"):
        provider.run_checked(session, f"unzip -o {archive} -d {extract_dir}")
    else:
        provider.run_checked(session, f"tar -xf {archive} -C {extract_dir}")
    return extract_dir


def _backup(provider: ActionProvider, session: ControlSession, path: str) -> None:
    provider.run_checked(session, f"cp {path} {path}.bak")


# Actions -----------------------------------------------------------------
def generic_command(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    params = action.params
    command = params.require_str("command")
    result = provider.run(session, command)
    if params.get_bool("errorIfStdErrOutputExists", False) and result.stderr_text.strip():
        raise FailedCommand(
            f"Command wrote to stderr: {result.stderr_text.strip()}",
            command=result.command.strip(),
            stderr=result.stderr,
        )
    if params.get_bool("errorIfNonZeroExitCode", False) and result.exited_with_error:
        raise FailedCommand(
            f"Command exited with code {result.exit_code}",
            command=result.command.strip(),
            stderr=result.stderr,
        )
    return provider.make_result(session, action, f"exit={result.exit_code}", resource=command)


def create_directory(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    path = action.params.require_str("path")
    flag = "-p " if action.params.get_bool("multiLevel", False) else ""
    provider.run_checked(session, f"mkdir {flag}{path}")
    applied = apply_ownership(provider, session, path, action)
    return provider.make_result(session, action, ", ".join(["created", *applied]), resource=path)


def remove_directory(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    path = action.params.require_str("path")
    if action.params.get_bool("recursive", False):
        provider.run_checked(session, f"rm -rf {path}")
    else:
        provider.run_checked(session, f"rmdir {path}")
    return provider.make_result(session, action, "removed", resource=path)


def copy_path(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    params = action.params
    source = params.require_str("sourcePath")
    dest = params.require_str("destPath")
    flags = []
    if params.get_bool("recursive", False):
        flags.append("-R")
    if params.get_bool("update", False):
        flags.append("-u")
    command = " ".join(["cp", *flags, source, dest])
    provider.run_checked(session, command)
    return provider.make_result(session, action, f"copied to {dest}", resource=source)


def remove_file(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    params = action.params
    path = params.get_str("file") or params.require_str("path")
    flag = "-f " if params.get_bool("force", False) else ""
    provider.run_checked(session, f"rm {flag}{path}")
    return provider.make_result(session, action, "removed", resource=path)


def _render_template(session: ControlSession, action: Action) -> str:
    params = action.params
    template_path = _resolve_local(session, params.require_str("template"))
    try:
        template_text = template_path.read_text()
    except OSError as exc:
        raise InvalidParams(f"Can't read template {template_path}: {exc}") from exc
    variables = params.raw("variables") or {}
    if not isinstance(variables, dict):
        raise InvalidParams("The 'variables' parameter must be a mapping.")
    if re.search(r"{[{%]", template_text):
        env = jinja2.Environment(undefined=jinja2.StrictUndefined, autoescape=False, keep_trailing_newline=True)
        try:
            return env.from_string(template_text).render(**variables)
        except jinja2.TemplateError as exc:
            raise InvalidParams(f"Error rendering template {template_path}: {exc}") from exc
    return Template(template_text).safe_substitute(variables)


def create_file(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    params = action.params
    path = params.require_str("path")
    if params.has("template"):
        content = _render_template(session, action)
    elif params.has("content"):
        content = params.get_str("content") or ""
    else:
        raise InvalidParams("Neither the 'content' nor the 'template' parameter was specified.")
    mode = parse_mode(params.get_str_or_int("permissions"), DEFAULT_FILE_MODE)
    provider.write_text_file(session, path, content, mode)
    applied = apply_ownership(provider, session, path, action, permissions=False)
    return provider.make_result(session, action, ", ".join([f"written mode={mode:04o}", *applied]), resource=path)


def create_symlink(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    params = action.params
    target = params.require_str("targetPath")
    link = params.require_str("linkPath")
    flag = "-sf" if params.get_bool("force", False) else "-s"
    provider.run_checked(session, f"ln {flag} {target} {link}")
    return provider.make_result(session, action, f"-> {target}", resource=link)


def download_file(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    params = action.params
    url = params.require_str("sourceURL")
    dest = params.require_str("destPath")
    provider.run_checked(session, f"wget -q {url} -O {dest}")
    details = ["downloaded", *apply_ownership(provider, session, dest, action)]
    extracted = _extract_archive(provider, session, dest, action)
    if extracted:
        details.append(f"extracted to {extracted}")
    return provider.make_result(session, action, ", ".join(details), resource=dest)


def transmit_file(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    params = action.params
    local = _resolve_local(session, params.require_str("localSourcePath"))
    dest = params.require_str("remoteDestPath")
    mode = parse_mode(params.get_str_or_int("permissions"), DEFAULT_FILE_MODE)
    if not local.is_file():
        raise InvalidParams(f"Local file {local} does not exist.")
    session.executor.send_file(local, dest, mode)
    details = [f"sent mode={mode:04o}", *apply_ownership(provider, session, dest, action, permissions=False)]
    extracted = _extract_archive(provider, session, dest, action)
    if extracted:
        details.append(f"extracted to {extracted}")
    return provider.make_result(session, action, ", ".join(details), resource=dest)


def receive_file(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    params = action.params
    remote = params.require_str("remoteSourcePath")
    local = _resolve_local(session, params.require_str("localDestPath"))
    session.executor.receive_file(remote, local)
    return provider.make_result(session, action, f"saved to {local}", resource=remote)


def edit_file(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    params = action.params
    path = params.require_str("filepath")

    replace = [e for e in map(ReplaceLineEntry.from_map, params.get_map_entries("replaceLine")) if e]
    insert = [e for e in map(InsertLineEntry.from_map, params.get_map_entries("insertLine")) if e]
    comment = [e for e in map(CommentLineEntry.from_map, params.get_map_entries("commentLine")) if e]
    if not (replace or insert or comment):
        raise InvalidParams("The editFile action had no valid replaceLine, insertLine or commentLine items.")

    if params.get_bool("backup", False):
        _backup(provider, session, path)

    mode = mode_from_stat(remote_stat(provider, session, path))
    original = session.executor.read_file(path)
    if not original:
        raise FailedOther(f"Remote file {path} has empty contents.")

    updated = edit_lines(original, replace, insert, comment)
    if updated == original:
        return provider.make_result(session, action, "noop", changed=False, resource=path)
    provider.write_text_file(session, path, updated, mode)
    return provider.make_result(session, action, f"edited mode={mode:04o}", resource=path)


def _sshd_changes(action: Action) -> SshdConfigChanges:
    params = action.params
    changes = SshdConfigChanges()
    if params.has("passwordAuthentication"):
        changes.password_authentication = params.get_bool("passwordAuthentication", False)
    if params.has("permitEmptyPasswords"):
        changes.permit_empty_passwords = params.get_bool("permitEmptyPasswords", False)
    if params.has("permitRootLogin"):
        try:
            changes.permit_root_login = PermitRootLogin.from_param(params.raw("permitRootLogin"))
        except ValueError as exc:
            raise InvalidParams(f"The 'permitRootLogin' parameter is invalid: {exc}") from exc
    if params.has("port"):
        port = params.get_int("port")
        if port is None or not 0 < port < 65536:
            raise InvalidParams("The 'port' parameter must be between 1 and 65535.")
        changes.port = port
    if params.has("pubkeyAuthentication"):
        changes.pubkey_authentication = params.get_bool("pubkeyAuthentication", True)
    return changes


def configure_ssh(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    changes = _sshd_changes(action)
    if not changes.any_set():
        raise InvalidParams("No SSH configuration values were specified.")

    if action.params.get_bool("backup", False):
        _backup(provider, session, SSHD_CONFIG_PATH)

    mode = mode_from_stat(remote_stat(provider, session, SSHD_CONFIG_PATH))
    original = session.executor.read_file(SSHD_CONFIG_PATH)
    if not original:
        raise FailedOther(f"Remote file {SSHD_CONFIG_PATH} has empty contents.")
    provider.write_text_file(session, SSHD_CONFIG_PATH, modify_sshd_config(original, changes), mode)

    details = ["sshd_config updated"]
    if action.params.get_bool("restartService", True):
        provider.run_checked(session, f"systemctl restart {provider.ssh_service}")
        details.append(f"restarted {provider.ssh_service}")
    return provider.make_result(session, action, ", ".join(details), resource=SSHD_CONFIG_PATH)
