from __future__ import annotations

import logging

from ..session import ControlSession
from ..types import Action, ActionResult
from .base import package_list
from .linux import LinuxActionProvider

logger = logging.getLogger(__name__)


class FedoraActionProvider(LinuxActionProvider):
    name = "linux_fedora"
    ssh_service = "sshd"
    # ufw on Fedora rejects rules until it has been enabled once
    firewall_enable_first = True

    def install_packages(self, session: ControlSession, action: Action) -> ActionResult:
        packages = package_list(action)
        if action.params.get_bool("update", True):
            self.run_checked(session, "dnf -y makecache")
        self.run_checked(session, f"dnf -y install {' '.join(packages)}")
        return self.make_result(session, action, f"installed={','.join(packages)}", resource=", ".join(packages))

    def remove_packages(self, session: ControlSession, action: Action) -> ActionResult:
        packages = package_list(action)
        result = self.run(session, f"dnf -y remove {' '.join(packages)}")
        if action.params.get_bool("ignoreFailure", False):
            if result.failed:
                logger.warning("Ignoring failure removing %s: %s", packages, result.stderr_text.strip())
        else:
            self.check(result, "dnf remove")
        return self.make_result(session, action, f"removed={','.join(packages)}", resource=", ".join(packages))
