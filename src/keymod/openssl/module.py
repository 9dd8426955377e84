"""OpenSSL key module: the operation table a host loads.

A host calls :meth:`OpenSSLKeyModule.init` once, asks for the entry
transitions into the parameter graphs, and later hands back the blob a
traversal produced to compute signatures and wrap or unwrap payloads.
"""
from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from ..blob.codec import KeyFileConfig, serialize
from ..config import KeyModConfig, load_config
from ..crypto import rsa_ops
from ..crypto.fingerprint import signature
from ..crypto.keystore import read_key
from ..errors import InternalConsistency, KeyModError, Unsupported, ValidationError
from ..graph.model import EntryPoint, NodeArena
from ..host import KeyModParam, ParamValFlag, Versioning
from ..obs.prom import KEY_OPS
from ..utils.logging import apply_config, get_logger
from .handlers import tf_openssl_enter
from .nodes import build_gen_key_graph, build_legacy_graph, build_method_graph

log = get_logger()

ALIAS = "openssl"

FLOWS = ("legacy", "method")

ParamVals = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]

PARAMS: Tuple[KeyModParam, ...] = (
    KeyModParam("path", "Path to the PEM key file"),
    KeyModParam("passphrase", "Passphrase for the key file", ParamValFlag.NO_ECHO | ParamValFlag.LOCK_MEM),
)

_ROOTS = {"legacy": "keyformat", "method": "keysource", "gen_key": "keyfile"}


class OpenSSLKeyModule:
    def __init__(self, config: Optional[KeyModConfig] = None):
        self.config = config or load_config()
        apply_config(self.config)
        self.graphs: dict[str, NodeArena] = {}

    def init(self) -> str:
        suggested = self.config.default_key_path()
        self.graphs = {
            "legacy": build_legacy_graph(suggested),
            "method": build_method_graph(suggested),
            "gen_key": build_gen_key_graph(suggested),
        }
        log.debug("initialized key module [%s]; default key file [%s]", ALIAS, suggested)
        return ALIAS

    def _entry(self, graph: str, version: int) -> EntryPoint:
        if not version & Versioning.PUBKEY:
            raise Unsupported(f"host version mask {version:#x} lacks public key support")
        arena = self.graphs.get(graph)
        if arena is None:
            raise InternalConsistency(f"key module [{ALIAS}] not initialized")
        return arena.entry(ALIAS, _ROOTS[graph], tf_openssl_enter, "OpenSSL module")

    def get_gen_key_subgraph_trans_node(self, version: int) -> EntryPoint:
        return self._entry("gen_key", version)

    def get_param_subgraph_trans_node(self, version: int, flow: Optional[str] = None) -> EntryPoint:
        flow = flow or self.config.param_flow
        if flow not in FLOWS:
            raise ValidationError(f"unknown parameter flow {flow!r}; expected one of {', '.join(FLOWS)}")
        return self._entry(flow, version)

    def get_params(self) -> List[KeyModParam]:
        return list(PARAMS)

    def get_blob(self, param_vals: ParamVals, blob: Optional[bytearray] = None) -> int:
        """Serialize ``path``/``passphrase`` values into ``blob``; without a buffer, return the size."""
        items = param_vals.items() if isinstance(param_vals, Mapping) else param_vals
        data = KeyFileConfig()
        try:
            for name, value in items:
                if name == "path":
                    data.path = str(value)
                elif name == "passphrase":
                    data.set_passphrase(value)
                else:
                    raise ValidationError(f"unknown parameter {name!r} for key module [{ALIAS}]")
            return serialize(data, blob)
        finally:
            data.wipe()

    def get_key_sig(self, blob: bytes) -> str:
        try:
            sig = signature(read_key(blob))
        except KeyModError as e:
            KEY_OPS.labels(op="sig", result="error").inc()
            log.error("error attempting to read RSA key from file; rc = [%d]", e.code)
            raise
        KEY_OPS.labels(op="sig", result="ok").inc()
        return sig

    def encrypt(self, blob: bytes, data: bytes, to: Optional[bytearray] = None) -> int:
        return rsa_ops.encrypt(blob, data, to)

    def decrypt(self, blob: bytes, data: bytes, to: Optional[bytearray] = None) -> int:
        return rsa_ops.decrypt(blob, data, to)

    def finalize(self) -> None:
        for arena in self.graphs.values():
            for node in arena:
                node.suggested_val = None
        self.graphs = {}
