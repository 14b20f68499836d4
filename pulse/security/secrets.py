"""Environment-backed secrets: signing keys and object storage credentials."""
from __future__ import annotations

import os
from typing import Final, Iterable, Literal, overload


class MissingSecretError(RuntimeError):
    """A required secret is unset or still holds a template value."""

    def __init__(self, names: Iterable[str]) -> None:
        self.names = sorted(names)
        super().__init__("Missing required configuration: " + ", ".join(self.names))


# Values copied from .env templates that must never reach a signer or S3 client.
_TEMPLATE_VALUES: Final[frozenset[str]] = frozenset(
    {
        "changeme",
        "change-me",
        "placeholder",
        "secret-key",
        "your-secret-key",
        "your-spaces-key",
        "your-spaces-secret",
        "your-bucket",
    }
)


def is_placeholder(value: str | None) -> bool:
    if value is None:
        return True
    normalized = value.strip().lower()
    return not normalized or normalized in _TEMPLATE_VALUES


def missing_secrets(names: Iterable[str]) -> list[str]:
    return [name for name in names if is_placeholder(os.getenv(name))]


@overload
def read_secret(name: str, *, required: Literal[True] = ...) -> str: ...


@overload
def read_secret(name: str, *, required: Literal[False]) -> str | None: ...


def read_secret(name: str, *, required: bool = True) -> str | None:
    """Return the trimmed value of ``name``.

    Unset and template values raise :class:`MissingSecretError` when
    ``required`` is true and read as ``None`` otherwise.
    """

    value = os.getenv(name)
    if is_placeholder(value):
        if required:
            raise MissingSecretError([name])
        return None
    return value.strip()


__all__ = ["MissingSecretError", "is_placeholder", "missing_secrets", "read_secret"]
