from __future__ import annotations

import logging

from ..errors import FailedOther, InvalidParams
from ..session import ControlSession
from ..types import Action, ActionResult
from . import unix
from .base import package_list
from .linux import LinuxActionProvider

logger = logging.getLogger(__name__)

REPO_PREREQUISITES = ("gpg", "debian-keyring", "debian-archive-keyring", "apt-transport-https", "curl")
KEYRING_DIR = "/usr/share/keyrings"
SOURCES_DIR = "/etc/apt/sources.list.d"


class DebianActionProvider(LinuxActionProvider):
    """apt-get based provider for Debian and derivatives."""

    name = "linux_debian"
    ssh_service = "ssh"
    firewall_enable_first = False

    def wait_for_package_lock(self, session: ControlSession) -> None:
        """Poll until no apt/dpkg process is running.

        Fresh cloud images often run unattended upgrades on first boot, which
        holds the dpkg lock for a while.
        """

        attempts = self.config.package_lock_attempts
        for attempt in range(1, attempts + 1):
            result = self.run(session, "pidof apt apt-get dpkg")
            if not result.had_output:
                return
            logger.info(
                "host=%s package manager busy (pids %s), attempt %d/%d",
                session.params.host,
                result.stdout.strip(),
                attempt,
                attempts,
            )
            if attempt < attempts:
                self.sleep(self.config.package_lock_delay)
        raise FailedOther("Timed out waiting for the package manager lock to be released.")

    def _update_index(self, session: ControlSession) -> None:
        self.run_checked(session, "apt-get -y update")

    def install_packages(self, session: ControlSession, action: Action) -> ActionResult:
        packages = package_list(action)
        if action.params.get_bool("waitForLock", True):
            self.wait_for_package_lock(session)
        if action.params.get_bool("update", True):
            self._update_index(session)
        self.run_checked(session, f"apt-get -y install {' '.join(packages)}")
        return self.make_result(session, action, f"installed={','.join(packages)}", resource=", ".join(packages))

    def remove_packages(self, session: ControlSession, action: Action) -> ActionResult:
        packages = package_list(action)
        if action.params.get_bool("waitForLock", True):
            self.wait_for_package_lock(session)
        result = self.run(session, f"apt-get -y remove {' '.join(packages)}")
        if action.params.get_bool("ignoreFailure", False):
            if result.failed:
                logger.warning("Ignoring failure removing %s: %s", packages, result.stderr_text.strip())
        else:
            self.check(result, "apt-get remove")
        return self.make_result(session, action, f"removed={','.join(packages)}", resource=", ".join(packages))

    def add_package_repo(self, session: ControlSession, action: Action) -> ActionResult:
        params = action.params
        repo_type = params.require_str("type")
        if repo_type != "manualURL":
            raise InvalidParams(f"Unsupported package repository type '{repo_type}'.")
        key_url = params.require_str("keyURL")
        sources_url = params.require_str("sourceListDefURL")
        prefix = params.require_str("localFilePrefix")

        if params.get_bool("waitForLock", True):
            self.wait_for_package_lock(session)
        self.run_checked(session, f"apt-get -y install {' '.join(REPO_PREREQUISITES)}")

        keyring = f"{KEYRING_DIR}/{prefix}-archive-keyring.gpg"
        dearmor = self.elevated(session.params, f"gpg --dearmor --yes -o {keyring}")
        self.run_checked(session, f"curl -1sLf '{key_url}' | {dearmor}")

        # curl gives no reliable signal here, so check what actually landed
        sources = f"{SOURCES_DIR}/{prefix}.list"
        self.run(session, f"curl -1sLf '{sources_url}' -o {sources}")
        details = unix.remote_stat(self, session, sources)
        if details is None or details.file_size == 0:
            raise FailedOther(f"Downloading the sources list to {sources} failed (empty or missing file).")

        if params.get_bool("update", True):
            self._update_index(session)
        return self.make_result(session, action, f"keyring={keyring}, sources={sources}", resource=prefix)
