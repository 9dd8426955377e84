"""Error kinds raised by the key module.

Every error carries a negative errno-style ``code`` so a host that speaks
return codes (mount helpers, PAM modules) can map an exception to the value it
would have returned. Library exceptions are chained with ``raise ... from``.
"""
from __future__ import annotations

import errno
from typing import Optional

__all__ = [
    "KeyModError",
    "OutOfMemory",
    "IoError",
    "MalformedBlob",
    "ValidationError",
    "CryptoError",
    "KeyModuleNotFound",
    "MissingPassphraseOption",
    "InvalidTransition",
    "InternalConsistency",
    "Unsupported",
    "KeyringError",
]


class KeyModError(Exception):
    code: int = -errno.EIO

    def __init__(self, message: str = "", code: Optional[int] = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class OutOfMemory(KeyModError):
    code = -errno.ENOMEM


class IoError(KeyModError):
    """File or directory open/read/write/create failure."""

    code = -errno.EIO


class MalformedBlob(KeyModError):
    """A config blob violates its length-prefixed layout."""

    code = -errno.EINVAL


class ValidationError(KeyModError):
    code = -errno.EINVAL


class CryptoError(KeyModError):
    """Key generation, PEM parse, RSA transform or signature packet failure.

    ``lib_error`` holds the underlying crypto library error (message or
    reason code) when one is available.
    """

    code = -errno.EIO

    def __init__(self, message: str = "", lib_error: Optional[str] = None, code: Optional[int] = None):
        super().__init__(message, code)
        self.lib_error = lib_error

    def __str__(self) -> str:
        base = super().__str__()
        if self.lib_error:
            return f"{base} ({self.lib_error})"
        return base


class KeyModuleNotFound(KeyModError):
    code = -errno.ENOENT


class MissingPassphraseOption(KeyModError):
    code = -errno.EINVAL


class InvalidTransition(KeyModError):
    """A supplied value matches no transition of the current node."""

    code = -errno.EINVAL


class InternalConsistency(KeyModError):
    code = -errno.EFAULT


class Unsupported(KeyModError):
    code = -errno.EOPNOTSUPP


class KeyringError(KeyModError):
    code = -getattr(errno, "EKEYREJECTED", errno.EACCES)
