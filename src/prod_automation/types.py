from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from .params import ParamBag
from .validation import SystemValidation

PROMPT_SENTINEL = "$PROMPT"


class ActionKind(Enum):
    NOT_SET = "notSet"
    UNRECOGNISED = "unrecognised"
    GENERIC_COMMAND = "genericCommand"
    ADD_USER = "addUser"
    ADD_GROUP = "addGroup"
    CREATE_DIRECTORY = "createDirectory"
    REMOVE_DIRECTORY = "removeDirectory"
    INSTALL_PACKAGES = "installPackages"
    REMOVE_PACKAGES = "removePackages"
    ADD_PACKAGE_REPO = "addPackageRepo"
    SYSTEM_CTL = "systemCtl"
    FIREWALL = "firewall"
    EDIT_FILE = "editFile"
    COPY_PATH = "copyPath"
    REMOVE_FILE = "removeFile"
    DOWNLOAD_FILE = "downloadFile"
    TRANSMIT_FILE = "transmitFile"
    RECEIVE_FILE = "receiveFile"
    CREATE_SYMLINK = "createSymlink"
    SET_TIME_ZONE = "setTimeZone"
    DISABLE_SWAP = "disableSwap"
    CREATE_FILE = "createFile"
    SET_HOSTNAME = "setHostname"
    CREATE_SYSTEMD_SERVICE = "createSystemdService"
    CONFIGURE_SSH = "configureSSH"

    @classmethod
    def from_name(cls, name: str) -> "ActionKind":
        name = _ALIASES.get(name, name)
        for kind in cls:
            if kind.value == name and kind not in (cls.NOT_SET, cls.UNRECOGNISED):
                return kind
        return cls.UNRECOGNISED

    def __str__(self) -> str:
        return self.value


_ALIASES = {"packagesInstall": "installPackages", "systemctl": "systemCtl"}


@dataclass
class Action:
    kind: ActionKind = ActionKind.NOT_SET
    params: ParamBag = field(default_factory=ParamBag)


@dataclass
class UserPassAuth:
    username: str
    password: Optional[str] = None


@dataclass
class PublicKeyAuth:
    username: str
    private_key_path: str
    public_key_path: Optional[str] = None
    passphrase: Optional[str] = None


Auth = Union[UserPassAuth, PublicKeyAuth]


@dataclass
class ActionScript:
    provider: str
    host: str
    auth: Auth
    port: int = 22
    system_validation: Optional[SystemValidation] = None
    use_sudo: Optional[bool] = None
    hide_commands: bool = True
    actions: list[Action] = field(default_factory=list)
    script_dir: Optional[str] = None


@dataclass
class ActionResult:
    host: str
    action: str
    changed: bool
    details: str
    failed: bool = False
    resource: Optional[str] = None
    index: Optional[int] = None
