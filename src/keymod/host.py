"""Host-side collaborators the key module talks to.

``HostContext`` stands in for the key-management daemon/mount helper: it holds
the loaded key modules, the keyring and an optional interactive prompt.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntFlag
from typing import Any, Callable, Dict, Optional, Protocol, Sequence, runtime_checkable

from .errors import KeyModuleNotFound
from .keyring import Keyring, MemoryKeyring
from .utils.logging import get_logger

log = get_logger()

# prompt(text, echo) -> value; passphrase prompts are called with echo=False
Prompt = Callable[[str, bool], Any]


class Versioning(IntFlag):
    PASSPHRASE = 0x00000001
    PUBKEY = 0x00000002
    PLAINTEXT_PASSTHROUGH = 0x00000004
    POLICY = 0x00000008
    XATTR = 0x00000010
    MULTKEY = 0x00000020


class ParamValFlag(IntFlag):
    NONE = 0
    NO_ECHO = 0x01
    LOCK_MEM = 0x02


@dataclass(frozen=True)
class KeyModParam:
    """Descriptor for one value a module needs to build its blob."""

    option: str
    description: str
    flags: ParamValFlag = ParamValFlag.NONE


@runtime_checkable
class KeyModuleOps(Protocol):
    def init(self) -> str: ...
    def get_gen_key_subgraph_trans_node(self, version: int) -> Any: ...
    def get_param_subgraph_trans_node(self, version: int, flow: Optional[str] = None) -> Any: ...
    def get_params(self) -> Sequence[Any]: ...
    def get_blob(self, param_vals: Any, blob: Optional[bytearray] = None) -> int: ...
    def get_key_sig(self, blob: bytes) -> str: ...
    def encrypt(self, blob: bytes, data: bytes, to: Optional[bytearray] = None) -> int: ...
    def decrypt(self, blob: bytes, data: bytes, to: Optional[bytearray] = None) -> int: ...
    def finalize(self) -> None: ...


@dataclass
class KeyModule:
    """Loaded key module descriptor; ``blob`` is filled in by a traversal."""

    alias: str
    ops: KeyModuleOps
    blob: Optional[bytes] = None
    blob_size: int = 0


@dataclass
class HostContext:
    keyring: Keyring = field(default_factory=MemoryKeyring)
    version: int = Versioning.PASSPHRASE | Versioning.PUBKEY
    prompt: Optional[Prompt] = None
    key_mods: Dict[str, KeyModule] = field(default_factory=dict)

    def load_key_module(self, ops: KeyModuleOps) -> KeyModule:
        alias = ops.init()
        km = KeyModule(alias=alias, ops=ops)
        self.key_mods[alias] = km
        log.debug("loaded key module [%s]", alias)
        return km

    def find_key_mod(self, alias: Optional[str]) -> KeyModule:
        km = self.key_mods.get(alias or "")
        if km is None:
            log.error("cannot find key_mod for alias [%s]", alias)
            raise KeyModuleNotFound(f"no key module loaded with alias {alias!r}")
        return km

    def unload(self) -> None:
        for km in self.key_mods.values():
            km.ops.finalize()
        self.key_mods.clear()
