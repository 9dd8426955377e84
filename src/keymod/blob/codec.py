"""Key module config blob codec.

Wire layout, repeated for path then passphrase, contiguous:

    +--------+--------+---------------------------+
    | len lo | len hi | bytes ... NUL             |
    +--------+--------+---------------------------+

``len`` is little-endian and counts the trailing NUL. The host stores the blob
verbatim as key metadata, so the layout is fixed.

Decoding copies both fields out of the buffer; a decoded config never aliases
the blob it came from. Bytes after the passphrase field are not part of the
config and are ignored, so a blob written into an oversized buffer still
decodes.
"""
from __future__ import annotations

import os
import struct
from dataclasses import dataclass
from typing import Optional, Union

from ..errors import InternalConsistency, MalformedBlob, ValidationError
from ..utils.ct import wipe
from ..utils.logging import get_logger

log = get_logger()

_LEN = struct.Struct("<H")
MAX_FIELD = 0xFFFF

Secret = Union[str, bytes, bytearray]


def _to_secret(value: Optional[Secret]) -> Optional[bytearray]:
    if value is None:
        return None
    if isinstance(value, str):
        return bytearray(value.encode("utf-8"))
    return bytearray(value)


@dataclass
class KeyFileConfig:
    """Path to a PEM key file plus the passphrase that unlocks it.

    The passphrase is held in a ``bytearray`` so it can be zeroed with
    :meth:`wipe` once the owner is done with it.
    """

    path: Optional[str] = None
    passphrase: Optional[bytearray] = None

    def __post_init__(self):
        self.passphrase = _to_secret(self.passphrase)

    def set_passphrase(self, value: Optional[Secret]) -> None:
        self.wipe_passphrase()
        self.passphrase = _to_secret(value)

    def wipe_passphrase(self) -> None:
        if self.passphrase is not None:
            wipe(self.passphrase)

    def wipe(self) -> None:
        self.wipe_passphrase()
        self.path = None
        self.passphrase = None

    def __repr__(self) -> str:
        return f"KeyFileConfig(path={self.path!r}, passphrase=<{'set' if self.passphrase is not None else 'unset'}>)"


def _field(value: Union[bytes, bytearray]) -> bytearray:
    if 0 in value:
        raise ValidationError("config field contains an embedded NUL")
    out = bytearray(value)
    out.append(0)
    return out


def serialize(config: KeyFileConfig, blob: Optional[Union[bytearray, memoryview]] = None) -> int:
    """Return the serialized size of ``config``; fill ``blob`` when one is given.

    Call once without a buffer to size it and once with a buffer of at least
    that size to write it.
    """
    if config.path is None or config.passphrase is None:
        log.error("key file config not properly filled in")
        raise ValidationError("key file config requires both path and passphrase")
    path = _field(os.fsencode(config.path))
    passphrase = _field(config.passphrase)
    try:
        for name, field in (("path", path), ("passphrase", passphrase)):
            if len(field) > MAX_FIELD:
                raise ValidationError(f"{name} too long for a 16-bit length prefix ({len(field)} bytes)")
        size = _LEN.size + len(path) + _LEN.size + len(passphrase)
        if blob is None:
            return size
        if len(blob) < size:
            raise ValidationError(f"blob buffer too small: need {size}, have {len(blob)}")
        i = 0
        for field in (path, passphrase):
            _LEN.pack_into(blob, i, len(field))
            i += _LEN.size
            blob[i:i + len(field)] = field
            i += len(field)
        return size
    finally:
        wipe(passphrase)


def _read_field(view: memoryview, i: int, name: str) -> tuple[bytearray, int]:
    if i + _LEN.size > len(view):
        raise MalformedBlob(f"blob truncated in {name} length prefix")
    (length,) = _LEN.unpack_from(view, i)
    i += _LEN.size
    if length == 0:
        raise MalformedBlob(f"{name} field has zero length (missing NUL terminator)")
    if i + length > len(view):
        raise MalformedBlob(f"{name} length {length} runs past end of blob ({len(view) - i} bytes left)")
    raw = view[i:i + length]
    if raw[-1] != 0:
        raise MalformedBlob(f"{name} field is not NUL-terminated")
    value = bytearray(raw[:-1])
    if 0 in value:
        wipe(value)
        raise MalformedBlob(f"{name} field contains an embedded NUL")
    return value, i + length


def deserialize(blob: Union[bytes, bytearray, memoryview]) -> KeyFileConfig:
    view = memoryview(blob).cast("B")
    path, i = _read_field(view, 0, "path")
    passphrase, _ = _read_field(view, i, "passphrase")
    config = KeyFileConfig(path=os.fsdecode(bytes(path)))
    # the decoded buffer becomes the passphrase as is
    config.passphrase = passphrase
    return config


def dumps(config: KeyFileConfig) -> bytes:
    size = serialize(config)
    buf = bytearray(size)
    written = serialize(config, buf)
    if written != size:  # pragma: no cover - serialize is deterministic
        raise InternalConsistency(f"blob size changed between size query ({size}) and fill ({written})")
    return bytes(buf)


def loads(blob: Union[bytes, bytearray, memoryview]) -> KeyFileConfig:
    return deserialize(blob)
