from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from .params import ParamBag
from .types import Action, ActionKind, ActionScript, Auth, PublicKeyAuth, UserPassAuth
from .validation import SystemValidation, ValidationParseError

logger = logging.getLogger(__name__)


class ScriptLoadError(ValueError):
    pass


class ScriptYamlLoader(yaml.SafeLoader):
    """SafeLoader that keeps zero-prefixed literals such as ``0755`` as strings."""


_OCTAL_LITERAL = re.compile(r"[-+]?0[0-7_]+")


def _construct_int(loader: yaml.SafeLoader, node: yaml.ScalarNode) -> Any:
    value = loader.construct_scalar(node)
    if _OCTAL_LITERAL.fullmatch(value):
        # file modes; YAML 1.1 would read 0755 as 493
        return value
    return yaml.SafeLoader.construct_yaml_int(loader, node)


ScriptYamlLoader.add_constructor("tag:yaml.org,2002:int", _construct_int)


class ScriptLoader:
    """Loads action scripts from YAML files."""

    def load(self, path: Path) -> ActionScript:
        path = Path(path)
        try:
            text = path.read_text()
        except OSError as exc:
            raise ScriptLoadError(f"{path}: {exc.strerror or exc}") from None
        script = self.load_text(text, source=str(path))
        script.script_dir = str(path.resolve().parent)
        return script

    def load_text(self, text: str, *, source: str = "<string>") -> ActionScript:
        try:
            data = yaml.load(text, Loader=ScriptYamlLoader)
        except yaml.YAMLError as exc:
            mark = getattr(exc, "problem_mark", None)
            problem = getattr(exc, "problem", None) or str(exc)
            if mark is not None:
                raise ScriptLoadError(f"{source}:{mark.line + 1}:{mark.column + 1} {problem}") from None
            raise ScriptLoadError(f"{source}: {problem}") from None

        if not isinstance(data, dict):
            raise ScriptLoadError(f"{source}: top level of an action script must be a mapping")
        return self._parse_script(data, source)

    def _parse_script(self, data: dict[str, Any], source: str) -> ActionScript:
        provider = data.get("provider")
        if not provider or not isinstance(provider, str):
            raise ScriptLoadError(f"{source}: the 'provider' value was not specified")

        host = data.get("host", data.get("hostname", ""))
        port = data.get("port", 22)
        if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
            raise ScriptLoadError(f"{source}: invalid port '{port}'")

        validation: Optional[SystemValidation] = None
        raw_validation = data.get("systemValidation")
        if raw_validation is not None:
            try:
                validation = SystemValidation.parse(str(raw_validation).strip())
            except ValidationParseError as exc:
                raise ScriptLoadError(f"{source}: {exc}") from None

        use_sudo = data.get("useSudo")
        if use_sudo is not None and not isinstance(use_sudo, bool):
            raise ScriptLoadError(f"{source}: 'useSudo' must be true or false")
        hide_commands = data.get("hideCommandsFromHistory", True)
        if not isinstance(hide_commands, bool):
            raise ScriptLoadError(f"{source}: 'hideCommandsFromHistory' must be true or false")

        return ActionScript(
            provider=provider,
            host=str(host or ""),
            port=port,
            auth=self._parse_auth(data, source),
            system_validation=validation,
            use_sudo=use_sudo,
            hide_commands=hide_commands,
            actions=self._parse_actions(data.get("actions"), source),
        )

    @staticmethod
    def _parse_auth(data: dict[str, Any], source: str) -> Auth:
        username = str(data.get("user", data.get("username", "")) or "")
        auth_type = str(data.get("authType", "userpass")).lower()
        if auth_type == "userpass":
            password = data.get("password")
            return UserPassAuth(username=username, password=str(password) if password is not None else None)
        if auth_type == "publickey":
            private_key = data.get("privateKeyPath")
            if not private_key:
                raise ScriptLoadError(f"{source}: authType 'publickey' requires 'privateKeyPath'")
            public_key = data.get("publicKeyPath")
            passphrase = data.get("passphrase")
            return PublicKeyAuth(
                username=username,
                private_key_path=str(private_key),
                public_key_path=str(public_key) if public_key else None,
                passphrase=str(passphrase) if passphrase is not None else None,
            )
        raise ScriptLoadError(f"{source}: unknown authType '{auth_type}'")

    @staticmethod
    def _parse_actions(raw_actions: Any, source: str) -> list[Action]:
        if raw_actions is None:
            return []
        if not isinstance(raw_actions, list):
            raise ScriptLoadError(f"{source}: 'actions' must be a list")

        actions: list[Action] = []
        for index, item in enumerate(raw_actions, start=1):
            if not isinstance(item, dict) or len(item) != 1:
                raise ScriptLoadError(f"{source}: action #{index} must be a mapping with a single action name")
            name, raw_params = next(iter(item.items()))
            kind = ActionKind.from_name(str(name))
            if kind is ActionKind.UNRECOGNISED:
                logger.warning("%s: skipping unrecognised action '%s' (#%d)", source, name, index)
                continue
            if raw_params is None:
                raw_params = {}
            if not isinstance(raw_params, dict):
                raise ScriptLoadError(f"{source}: parameters of action #{index} ({name}) must be a mapping")
            for key, value in raw_params.items():
                if value is None:
                    logger.warning("%s: ignoring empty '%s' parameter of action #%d (%s)", source, key, index, name)
            actions.append(Action(kind=kind, params=ParamBag(raw_params)))
        return actions
