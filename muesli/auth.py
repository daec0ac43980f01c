"""Secret discovery with an ordered precedence chain.

A :class:`SecretProvider` walks its strategies in order and returns the first
value found. The bearer token chain is CLI flag → ``BEARER_TOKEN`` → Granola
session file; the OpenAI key chain is config → environment → macOS keychain.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Protocol, Sequence

from .config import ENV_BEARER_TOKEN, ENV_OPENAI_KEY, OPENAI_ENV
from .errors import AuthError
from .text import Messages

KEYCHAIN_SERVICE = "muesli"
KEYCHAIN_ACCOUNT = "openai_api_key"


class SecretStrategy(Protocol):
    name: str

    def lookup(self) -> str | None:
        """Return the secret or None when this source has nothing."""
        raise NotImplementedError  # pragma: no cover


class ExplicitSecret:
    name = "explicit"

    def __init__(self, value: str | None) -> None:
        self.value = value

    def lookup(self) -> str | None:
        value = (self.value or "").strip()
        return value or None


class EnvSecret:
    name = "environment"

    def __init__(self, *names: str) -> None:
        self.names = names

    def lookup(self) -> str | None:
        for env_name in self.names:
            value = (os.getenv(env_name) or "").strip()
            if value:
                return value
        return None


def default_session_file() -> Path:
    return (
        Path(os.path.expanduser("~"))
        / "Library"
        / "Application Support"
        / "Granola"
        / "supabase.json"
    )


def parse_session_file(path: Path) -> str | None:
    """Return the WorkOS access token stored in a Granola session file."""
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        workos_raw = data.get("workos_tokens") if isinstance(data, dict) else None
        if isinstance(workos_raw, str):
            workos = json.loads(workos_raw)
        else:
            workos = workos_raw
    except (OSError, json.JSONDecodeError) as exc:
        raise AuthError(Messages.ERROR_SESSION_FILE.format(path=path, reason=exc)) from exc
    if isinstance(workos, dict):
        token = workos.get("access_token")
        if isinstance(token, str) and token:
            return token
    return None


class SessionFileSecret:
    name = "session-file"

    def __init__(self, path: Path | None = None) -> None:
        self.path = path

    def lookup(self) -> str | None:
        return parse_session_file(self.path or default_session_file())


class KeychainSecret:
    """Read a generic password from the macOS keychain via `security`."""

    name = "keychain"

    def __init__(
        self,
        service: str = KEYCHAIN_SERVICE,
        account: str = KEYCHAIN_ACCOUNT,
    ) -> None:
        self.service = service
        self.account = account

    def lookup(self) -> str | None:
        if sys.platform != "darwin":
            return None
        try:
            completed = subprocess.run(
                [
                    "security",
                    "find-generic-password",
                    "-s",
                    self.service,
                    "-a",
                    self.account,
                    "-w",
                ],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError:
            return None
        if completed.returncode != 0:
            return None
        value = completed.stdout.strip()
        return value or None


class SecretProvider:
    """Resolve a secret from an ordered list of strategies."""

    def __init__(self, strategies: Sequence[SecretStrategy]) -> None:
        self.strategies = list(strategies)

    def resolve(self) -> str | None:
        for strategy in self.strategies:
            value = strategy.lookup()
            if value:
                return value
        return None

    def require(self, message: str) -> str:
        value = self.resolve()
        if value is None:
            raise AuthError(message)
        return value


def bearer_token_provider(
    cli_token: str | None = None,
    *,
    session_file: Path | None = None,
) -> SecretProvider:
    return SecretProvider(
        [
            ExplicitSecret(cli_token),
            EnvSecret(ENV_BEARER_TOKEN),
            SessionFileSecret(session_file),
        ]
    )


def resolve_token(cli_token: str | None = None, *, session_file: Path | None = None) -> str:
    return bearer_token_provider(cli_token, session_file=session_file).require(
        Messages.ERROR_TOKEN_MISSING
    )


def openai_key_provider(configured: str | None = None) -> SecretProvider:
    return SecretProvider(
        [
            ExplicitSecret(configured),
            EnvSecret(ENV_OPENAI_KEY, OPENAI_ENV),
            KeychainSecret(),
        ]
    )


def resolve_openai_key(configured: str | None = None) -> str | None:
    return openai_key_provider(configured).resolve()


def set_api_key_in_keychain(api_key: str) -> None:
    if sys.platform != "darwin":
        raise AuthError(Messages.ERROR_KEYCHAIN_UNSUPPORTED)
    try:
        subprocess.run(
            [
                "security",
                "add-generic-password",
                "-U",
                "-s",
                KEYCHAIN_SERVICE,
                "-a",
                KEYCHAIN_ACCOUNT,
                "-w",
                api_key,
            ],
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        raise AuthError(Messages.ERROR_KEYCHAIN_FAILED.format(reason=exc)) from exc
