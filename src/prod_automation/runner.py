from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from .config import ProdConfig
from .credentials import CredentialResolver, PromptCredentialResolver, needs_prompt
from .errors import ActionError, ConfigFailure, ConnectionFailure, FailedCommand
from .executors import CommandResult, DryRunExecutor, Executor, create_executor
from .providers import PROVIDER_REGISTRY, ActionProvider
from .session import ControlSession, SessionParams
from .types import PROMPT_SENTINEL, Action, ActionResult, ActionScript, Auth, UserPassAuth

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[..., Executor]


@dataclass
class RunReport:
    success: bool
    results: list[ActionResult] = field(default_factory=list)
    error: Optional[str] = None


class ControlManager:
    """Connects to the target of an action script and runs its actions in order."""

    def __init__(
        self,
        config: Optional[ProdConfig] = None,
        *,
        executor_factory: Optional[ExecutorFactory] = None,
        credentials: Optional[CredentialResolver] = None,
        sleep: Callable[[float], None] = time.sleep,
        transport: Optional[str] = None,
    ):
        self.config = config or ProdConfig()
        self.transport = transport or self.config.transport
        self.executor_factory = executor_factory or create_executor
        self.credentials = credentials or PromptCredentialResolver()
        self.sleep = sleep

    # Connection ----------------------------------------------------------
    def _resolve_target(self, host: str, auth: Auth) -> tuple[str, Auth]:
        try:
            if needs_prompt(host):
                host = self.credentials.hostname()
            if not host:
                raise ConfigFailure("No hostname was provided")

            username = auth.username
            if needs_prompt(username):
                username = self.credentials.username(host)
            if not username:
                raise ConfigFailure("No username was provided")

            if self.transport == DryRunExecutor.name:
                return host, dataclasses.replace(auth, username=username)
            if isinstance(auth, UserPassAuth):
                password = auth.password
                if needs_prompt(password):
                    password = self.credentials.password(username, host)
                return host, UserPassAuth(username=username, password=password)
            passphrase = auth.passphrase
            if passphrase == PROMPT_SENTINEL:
                passphrase = self.credentials.passphrase(auth.private_key_path)
            return host, dataclasses.replace(auth, username=username, passphrase=passphrase)
        except (LookupError, EOFError) as exc:
            raise ConfigFailure(f"Can't resolve credentials: {exc}") from exc

    def connect(self, params: SessionParams, auth: Auth, *, retry: bool = False) -> Executor:
        attempts = self.config.connect_retries + 1 if retry else 1
        for attempt in range(1, attempts + 1):
            executor = self.executor_factory(
                self.transport,
                params.host,
                port=params.port,
                auth=auth,
                connect_timeout=self.config.connect_timeout,
            )
            try:
                executor.connect()
            except ConnectionFailure as exc:
                if not exc.retryable or attempt == attempts:
                    raise
                logger.warning(
                    "host=%s connection failed (%s), retrying in %ss (%d/%d)",
                    params.host,
                    exc,
                    self.config.connect_retry_delay,
                    attempt,
                    attempts - 1,
                )
                self.sleep(self.config.connect_retry_delay)
            else:
                logger.debug("host=%s connected via %s", params.host, executor.name)
                return executor
        raise ConfigFailure("connect_retries must not be negative")  # pragma: no cover

    # Script execution ----------------------------------------------------
    def perform_actions(self, script: ActionScript, *, retry: bool = False) -> RunReport:
        provider_cls = PROVIDER_REGISTRY.get(script.provider)
        if provider_cls is None:
            message = f"Can't find provider: '{script.provider}'"
            logger.error(message)
            return RunReport(success=False, error=message)
        if not script.actions:
            logger.warning("No actions specified.")

        try:
            host, auth = self._resolve_target(script.host, script.auth)
            params = SessionParams.for_user(
                host,
                auth.username,
                port=script.port,
                use_sudo=script.use_sudo,
                hide_commands=script.hide_commands,
            )
            executor = self.connect(params, auth, retry=retry)
        except ConnectionFailure as exc:
            logger.error("Error connecting to host: %s", exc)
            return RunReport(success=False, error=str(exc))

        session = ControlSession(executor, params, self.credentials, script.script_dir)
        provider = provider_cls(self.config, sleep=self.sleep)
        try:
            if script.system_validation is not None and script.system_validation.needs_checking():
                error = self._validate_system(provider, session, script)
                if error:
                    return RunReport(success=False, error=error)
            return self._run_actions(provider, session, script.actions)
        finally:
            session.close()

    @staticmethod
    def _validate_system(provider: ActionProvider, session: ControlSession, script: ActionScript) -> Optional[str]:
        validation = script.system_validation
        assert validation is not None
        try:
            distro_id, release = provider.distro_details(session)
        except ActionError as exc:
            message = f"Can't query distribution details for system validation: {exc.detail}"
            logger.error(message)
            return message
        if not validation.check_actual_distro_values(distro_id, release):
            message = (
                f"System validation failed: expected {validation.describe()}, "
                f"host reports {distro_id} {release}"
            )
            logger.error(message)
            return message
        logger.info("host=%s system validation passed (%s %s)", session.params.host, distro_id, release)
        return None

    @staticmethod
    def _run_actions(provider: ActionProvider, session: ControlSession, actions: list[Action]) -> RunReport:
        results: list[ActionResult] = []
        host = session.params.host
        for index, action in enumerate(actions, start=1):
            logger.debug("host=%s action #%d %s", host, index, action.kind)
            try:
                result = provider.dispatch(session, action)
            except ActionError as exc:
                logger.error("Error running action #%d : %s... - %s: %s", index, action.kind, exc.label, exc.detail)
                if isinstance(exc, FailedCommand):
                    if exc.command:
                        logger.error("  command: %s", exc.command)
                    if exc.stderr:
                        logger.error("  stderr: %s", exc.stderr.strip())
                details = f"{exc.label}: {exc.detail}" if exc.detail else exc.label
            except Exception as exc:  # noqa: BLE001
                logger.error("Error running action #%d : %s... - %s", index, action.kind, exc)
                logger.debug("action #%d traceback", index, exc_info=True)
                details = str(exc)
            else:
                result.index = index
                results.append(result)
                continue

            results.append(
                ActionResult(
                    host=host,
                    action=str(action.kind),
                    changed=False,
                    details=details,
                    failed=True,
                    index=index,
                )
            )
            return RunReport(success=False, results=results, error=f"action #{index} ({action.kind}) failed: {details}")

        logger.info("Successfully ran actions.")
        return RunReport(success=True, results=results)

    # Ad-hoc commands -----------------------------------------------------
    def run_command(
        self,
        host: str,
        command: str,
        *,
        username: Optional[str] = None,
        port: int = 22,
        retry: bool = False,
    ) -> CommandResult:
        """Connect with password auth and run ``command`` as given."""

        resolved_host, auth = self._resolve_target(host, UserPassAuth(username=username or ""))
        params = SessionParams.for_user(resolved_host, auth.username, port=port)
        executor = self.connect(params, auth, retry=retry)
        try:
            return executor.run(command)
        finally:
            executor.close()
