from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Protocol, Tuple, runtime_checkable

from .errors import KeyModError, KeyringError
from .utils.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from .host import KeyModule

log = get_logger()


@runtime_checkable
class Keyring(Protocol):
    def add_key(self, sig: str, alias: str, blob: bytes) -> bool:
        """Store ``blob`` under ``sig``; return False when the key was already present."""
        ...


@dataclass
class MemoryKeyring:
    """Process-local keyring (tests, dry runs). Never leaves the process."""

    entries: Dict[str, Tuple[str, bytes]] = field(default_factory=dict)
    insertions: List[str] = field(default_factory=list)

    def add_key(self, sig: str, alias: str, blob: bytes) -> bool:
        if sig in self.entries:
            return False
        self.entries[sig] = (alias, bytes(blob))
        self.insertions.append(sig)
        return True


def add_key_module_key_to_keyring(keyring: Keyring, key_mod: "KeyModule") -> str:
    """Compute the signature of ``key_mod.blob`` and insert it; return the signature."""
    if not key_mod.blob:
        raise KeyringError(f"key module [{key_mod.alias}] has no blob to insert")
    sig = key_mod.ops.get_key_sig(key_mod.blob)
    try:
        added = keyring.add_key(sig, key_mod.alias, key_mod.blob)
    except KeyModError:
        raise
    except OSError as e:
        log.error("error attempting to add key to keyring for key module [%s]", key_mod.alias)
        raise KeyringError(f"keyring rejected key {sig}: {e}") from e
    if not added:
        log.info("key with signature [%s] already in keyring", sig)
    return sig
