"""Actions shared by Linux distributions, and the provider base wiring them up."""

from __future__ import annotations

import logging
import shlex

from ..errors import FailedCommand, FailedOther, InvalidParams
from ..file_editing import comment_out_entries, split_lines
from ..session import ControlSession
from ..stat_output import mode_from_stat
from ..types import PROMPT_SENTINEL, Action, ActionResult
from . import unix
from .base import ActionProvider

logger = logging.getLogger(__name__)

FSTAB_PATH = "/etc/fstab"
SYSTEMD_UNIT_DIR = "/etc/systemd/system"


def add_user(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    params = action.params
    user = params.require_str("username")
    password = params.require_str("password")
    if password == PROMPT_SENTINEL:
        password = session.credentials.user_password(user)

    home_flag = "-m" if params.get_bool("createHome", True) else "-M"
    shell = params.get_str("shell", "/bin/bash")
    useradd = provider.run(session, f"useradd {home_flag} -s {shell} {user}")
    if useradd.had_output or useradd.failed:
        raise FailedCommand(
            f"Unexpected response from useradd command: {(useradd.stderr_text or useradd.stdout).strip()}",
            command=useradd.command.strip(),
            stderr=useradd.stderr,
        )

    chpasswd = provider.elevated(session.params, "chpasswd")
    credentials = shlex.quote(f"{user}:{password}")
    provider.run_checked(session, f"printf '%s\\n' {credentials} | {chpasswd}", secret=credentials)

    groups = params.get_str_list("group") + params.get_str_list("groups") + params.get_str_list("extraGroups")
    for group in groups:
        provider.run_checked(session, f"usermod -aG {group} {user}")

    details = "created"
    if groups:
        details += f", groups={','.join(groups)}"
    return provider.make_result(session, action, details, resource=user)


def add_group(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    params = action.params
    name = params.get_str("name") or params.require_str("group")
    options = []
    if params.get_bool("system", False):
        options.append("-r")
    gid = params.get_int("gid")
    if gid is not None:
        options.append(f"-g {gid}")
    provider.run_checked(session, " ".join(["groupadd", *options, name]))
    return provider.make_result(session, action, "created", resource=name)


def system_ctl(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    params = action.params
    if not params.has("action") or not params.has("service"):
        raise InvalidParams("The systemCtl action requires both the 'action' and 'service' parameters.")
    verb = params.require_str("action")
    service = params.require_str("service")
    provider.run_checked(session, f"systemctl {verb} {service}")
    return provider.make_result(session, action, verb, resource=service)


def firewall(provider: ActionProvider, session: ControlSession, action: Action, *, enable_first: bool) -> ActionResult:
    params = action.params
    firewall_type = params.get_str("type", "ufw")
    if firewall_type != "ufw":
        raise InvalidParams(f"Unsupported firewall type '{firewall_type}'.")

    def toggle() -> None:
        if params.has("enabled"):
            state = "enable" if params.get_bool("enabled", True) else "disable"
            provider.run_checked(session, f"ufw --force {state}")

    if enable_first:
        toggle()
    rules = params.get_str_list("rules")
    for rule in rules:
        provider.run_checked(session, f"ufw {rule}")
    if not enable_first:
        toggle()
    return provider.make_result(session, action, f"rules={len(rules)}", resource=firewall_type)


def set_time_zone(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    zone = action.params.require_str("timeZone")
    provider.run_checked(session, f"timedatectl set-timezone {zone}")
    return provider.make_result(session, action, f"zone->{zone}", resource=zone)


def set_hostname(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    hostname = action.params.require_str("hostname")
    provider.run_checked(session, f"hostnamectl set-hostname {hostname}")
    return provider.make_result(session, action, f"hostname->{hostname}", resource=hostname)


def create_systemd_service(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    params = action.params
    name = params.require_str("name")
    unit = name if "." in name else f"{name}.service"
    content = params.require_str("content")
    path = f"{SYSTEMD_UNIT_DIR}/{unit}"
    provider.write_text_file(session, path, content, 0o644)
    provider.run_checked(session, "systemctl daemon-reload")

    details = ["unit written"]
    if params.get_bool("enable", False):
        provider.run_checked(session, f"systemctl enable {unit}")
        details.append("enabled")
    if params.get_bool("start", False):
        provider.run_checked(session, f"systemctl start {unit}")
        details.append("started")
    return provider.make_result(session, action, ", ".join(details), resource=unit)


def _swap_entries(stdout: str) -> list[tuple[str, str]]:
    # first line of /proc/swaps is the column header
    entries = []
    for line in split_lines(stdout)[1:]:
        fields = line.split()
        if fields:
            entries.append((fields[0], fields[1] if len(fields) > 1 else ""))
    return entries


def disable_swap(provider: ActionProvider, session: ControlSession, action: Action) -> ActionResult:
    filename = action.params.require_str("filename")

    listing = provider.run(session, "cat /proc/swaps")
    if listing.failed:
        raise FailedCommand(
            f"Can't list swap files: {listing.stderr_text.strip()}",
            command=listing.command.strip(),
            stderr=listing.stderr,
        )
    if not listing.had_output:
        raise FailedOther("Unexpected empty response listing swap files.")

    entries = _swap_entries(listing.stdout)
    if not entries:
        return provider.make_result(session, action, "no swap configured", changed=False, resource=filename)

    selected = entries if filename == "*" else [entry for entry in entries if entry[0] == filename]
    if not selected:
        active = ", ".join(name for name, _ in entries)
        raise FailedOther(f"Swap file '{filename}' is not active (active: {active}).")
    names = [name for name, _ in selected]

    if filename == "*":
        provider.run_checked(session, "swapoff -a")
    else:
        provider.run_checked(session, f"swapoff {filename}")

    fstab = session.executor.read_file(FSTAB_PATH)
    if not fstab:
        raise FailedOther(f"Remote file {FSTAB_PATH} has empty contents.")
    mode = mode_from_stat(unix.remote_stat(provider, session, FSTAB_PATH))
    provider.write_text_file(session, FSTAB_PATH, comment_out_entries(fstab, names), mode)

    # partitions and zram devices are only switched off
    for name, swap_type in selected:
        if swap_type == "file":
            provider.run_checked(session, f"rm -f {name}")
    return provider.make_result(session, action, f"disabled {', '.join(names)}", resource=filename)


def distro_details(provider: ActionProvider, session: ControlSession) -> tuple[str, str]:
    distro_id = provider.run_checked(session, "lsb_release -is").stdout.strip()
    release = provider.run_checked(session, "lsb_release -rs").stdout.strip()
    if not distro_id or not release:
        raise FailedOther("Empty response from lsb_release.")
    return distro_id, release


class LinuxActionProvider(ActionProvider):
    """Wires the POSIX and Linux actions; distributions add package handling."""

    def distro_details(self, session: ControlSession) -> tuple[str, str]:
        return distro_details(self, session)

    def generic_command(self, session: ControlSession, action: Action) -> ActionResult:
        return unix.generic_command(self, session, action)

    def add_user(self, session: ControlSession, action: Action) -> ActionResult:
        return add_user(self, session, action)

    def add_group(self, session: ControlSession, action: Action) -> ActionResult:
        return add_group(self, session, action)

    def create_directory(self, session: ControlSession, action: Action) -> ActionResult:
        return unix.create_directory(self, session, action)

    def remove_directory(self, session: ControlSession, action: Action) -> ActionResult:
        return unix.remove_directory(self, session, action)

    def system_ctl(self, session: ControlSession, action: Action) -> ActionResult:
        return system_ctl(self, session, action)

    def firewall(self, session: ControlSession, action: Action) -> ActionResult:
        return firewall(self, session, action, enable_first=self.firewall_enable_first)

    def edit_file(self, session: ControlSession, action: Action) -> ActionResult:
        return unix.edit_file(self, session, action)

    def copy_path(self, session: ControlSession, action: Action) -> ActionResult:
        return unix.copy_path(self, session, action)

    def remove_file(self, session: ControlSession, action: Action) -> ActionResult:
        return unix.remove_file(self, session, action)

    def download_file(self, session: ControlSession, action: Action) -> ActionResult:
        return unix.download_file(self, session, action)

    def transmit_file(self, session: ControlSession, action: Action) -> ActionResult:
        return unix.transmit_file(self, session, action)

    def receive_file(self, session: ControlSession, action: Action) -> ActionResult:
        return unix.receive_file(self, session, action)

    def create_symlink(self, session: ControlSession, action: Action) -> ActionResult:
        return unix.create_symlink(self, session, action)

    def set_time_zone(self, session: ControlSession, action: Action) -> ActionResult:
        return set_time_zone(self, session, action)

    def disable_swap(self, session: ControlSession, action: Action) -> ActionResult:
        return disable_swap(self, session, action)

    def create_file(self, session: ControlSession, action: Action) -> ActionResult:
        return unix.create_file(self, session, action)

    def set_hostname(self, session: ControlSession, action: Action) -> ActionResult:
        return set_hostname(self, session, action)

    def create_systemd_service(self, session: ControlSession, action: Action) -> ActionResult:
        return create_systemd_service(self, session, action)

    def configure_ssh(self, session: ControlSession, action: Action) -> ActionResult:
        return unix.configure_ssh(self, session, action)
