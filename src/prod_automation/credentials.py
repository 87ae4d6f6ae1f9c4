from __future__ import annotations

import getpass
from typing import Callable, Optional

from .types import PROMPT_SENTINEL


def needs_prompt(value: Optional[str]) -> bool:
    return not value or value == PROMPT_SENTINEL


class CredentialResolver:
    """Supplies values the action script left empty or set to ``$PROMPT``."""

    def hostname(self) -> str:
        raise NotImplementedError

    def username(self, host: str) -> str:
        raise NotImplementedError

    def password(self, username: str, host: str) -> str:
        raise NotImplementedError

    def passphrase(self, key_path: str) -> str:
        raise NotImplementedError

    def user_password(self, username: str) -> str:
        """Password for a user account created on the target host."""

        raise NotImplementedError


class PromptCredentialResolver(CredentialResolver):
    def __init__(
        self,
        *,
        input_func: Callable[[str], str] = input,
        secret_func: Callable[[str], str] = getpass.getpass,
    ):
        self._input = input_func
        self._secret = secret_func

    def hostname(self) -> str:
        return self._input("Hostname: ").strip()

    def username(self, host: str) -> str:
        return self._input(f"Username for {host}: ").strip()

    def password(self, username: str, host: str) -> str:
        return self._secret(f"Password for {username}@{host}: ")

    def passphrase(self, key_path: str) -> str:
        return self._secret(f"Passphrase for {key_path}: ")

    def user_password(self, username: str) -> str:
        return self._secret(f"Password for new user '{username}': ")


class StaticCredentialResolver(CredentialResolver):
    """Resolver for headless runs; a ``None`` value means nothing to offer."""

    def __init__(
        self,
        *,
        hostname: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        passphrase: Optional[str] = None,
        user_passwords: Optional[dict[str, str]] = None,
    ):
        self._hostname = hostname
        self._username = username
        self._password = password
        self._passphrase = passphrase
        self._user_passwords = dict(user_passwords or {})

    @staticmethod
    def _require(value: Optional[str], what: str) -> str:
        if value is None:
            raise LookupError(f"no {what} available")
        return value

    def hostname(self) -> str:
        return self._require(self._hostname, "hostname")

    def username(self, host: str) -> str:
        return self._require(self._username, "username")

    def password(self, username: str, host: str) -> str:
        return self._require(self._password, "password")

    def passphrase(self, key_path: str) -> str:
        return self._require(self._passphrase, "passphrase")

    def user_password(self, username: str) -> str:
        return self._require(self._user_passwords.get(username), f"password for user '{username}'")
