"""Resolve the database user a check connects as."""

from __future__ import annotations

import getpass
import os
from typing import Mapping, Protocol

from .errors import IdentityResolutionError
from .models import ClusterEndpoint


class IdentityResolver(Protocol):
    """Interface implemented by identity resolvers."""

    def resolve(self, endpoint: ClusterEndpoint) -> str: ...


class EnvironmentIdentityResolver:
    """Uses ``PGUSER`` when set, otherwise the login name of the current process."""

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def resolve(self, endpoint: ClusterEndpoint) -> str:
        user = self._environ.get("PGUSER")
        if user:
            return user
        try:
            return getpass.getuser()
        except (OSError, KeyError) as exc:
            raise IdentityResolutionError(f"Could not determine the database user; set PGUSER: {exc}") from exc


class StaticIdentityResolver:
    """Always resolves to the same user."""

    def __init__(self, user: str) -> None:
        self._user = user

    def resolve(self, endpoint: ClusterEndpoint) -> str:
        return self._user


__all__ = ["EnvironmentIdentityResolver", "IdentityResolver", "StaticIdentityResolver"]
