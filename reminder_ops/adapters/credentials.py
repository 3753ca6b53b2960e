"""Credential sources for the portal login."""

from __future__ import annotations

import getpass
import os
from dataclasses import dataclass, field
from typing import Protocol

from reminder_ops.domain.errors import AuthenticationError


@dataclass(frozen=True, slots=True)
class Credentials:
    email: str
    password: str = field(repr=False)


class CredentialSource(Protocol):
    def get(self) -> Credentials: ...


class EnvCredentialSource:
    def __init__(self, email_var: str = "FRESHA_EMAIL", password_var: str = "FRESHA_PASSWORD") -> None:
        self.email_var = email_var
        self.password_var = password_var

    def get(self) -> Credentials:
        email = os.getenv(self.email_var, "").strip()
        password = os.getenv(self.password_var, "").strip()
        if not email or not password:
            raise AuthenticationError(f"{self.email_var} and {self.password_var} are required to log in.")
        return Credentials(email=email, password=password)


class PromptCredentialSource:
    """Ask on the terminal; the password is read without echo."""

    def __init__(self, email: str | None = None) -> None:
        self.email = email

    def get(self) -> Credentials:
        email = (self.email or input("Fresha email: ")).strip()
        password = getpass.getpass("Fresha password: ").strip()
        if not email or not password:
            raise AuthenticationError("Email and password are required to log in.")
        return Credentials(email=email, password=password)


class StaticCredentialSource:
    def __init__(self, credentials: Credentials) -> None:
        self._credentials = credentials

    def get(self) -> Credentials:
        return self._credentials


def credential_source_for(kind: str) -> CredentialSource:
    if kind == "env":
        return EnvCredentialSource()
    if kind == "prompt":
        return PromptCredentialSource(email=os.getenv("FRESHA_EMAIL", "").strip() or None)
    raise ValueError(f"Unknown credential source {kind!r}; expected 'env' or 'prompt'.")
