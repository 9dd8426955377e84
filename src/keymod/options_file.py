"""Options files: one ``name=value`` pair per line.

Blank lines and lines starting with ``#`` are skipped. The value is everything
after the first ``=`` with the line ending removed, so passphrases may contain
``=``, ``,`` and spaces. Values are returned as ``bytearray`` so callers can
zero them.
"""
from __future__ import annotations

import os
from typing import List, Optional, Tuple

from .errors import IoError, MissingPassphraseOption
from .utils.ct import wipe
from .utils.logging import get_logger

log = get_logger()

Pair = Tuple[str, bytearray]


def parse_options(data: bytes) -> List[Pair]:
    pairs: List[Pair] = []
    for raw in bytes(data).split(b"\n"):
        line = raw.rstrip(b"\r")
        stripped = line.lstrip()
        if not stripped or stripped.startswith(b"#"):
            continue
        name, sep, value = stripped.partition(b"=")
        if not sep:
            continue
        pairs.append((name.strip().decode("utf-8", "replace"), bytearray(value)))
    return pairs


def read_fd(fd: int) -> bytearray:
    buf = bytearray()
    try:
        while True:
            chunk = os.read(fd, 4096)
            if not chunk:
                break
            buf += chunk
    except OSError as e:
        wipe(buf)
        raise IoError(f"error reading from fd {fd}: {e.strerror}") from e
    finally:
        os.close(fd)
    return buf


def parse_options_file(fd: int) -> List[Pair]:
    """Read ``fd`` to EOF, close it and parse the contents."""
    data = read_fd(fd)
    try:
        return parse_options(data)
    finally:
        wipe(data)


def open_options_file(path: str) -> int:
    try:
        return os.open(path, os.O_RDONLY)
    except OSError as e:
        log.error("error attempting to open file [%s]", path)
        raise IoError(f"unable to open {path}: {e.strerror}") from e


def find_option(pairs: List[Pair], name: str) -> Optional[bytearray]:
    found = None
    for k, v in pairs:
        if found is None and k == name:
            found = v
        else:
            wipe(v)
    return found


def passphrase_from_options(fd: int, name: str = "passwd") -> bytearray:
    """Return the ``name`` entry of the options file behind ``fd``."""
    value = find_option(parse_options_file(fd), name)
    if value is None:
        log.error("no %s option found in file", name)
        raise MissingPassphraseOption(f"no {name} option found in options file")
    return value
