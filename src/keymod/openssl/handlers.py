"""Transition handlers for the OpenSSL parameter graphs.

Every handler has the signature ``(host, node, trav)``. Handlers take the node
value with ``trav.take_val()`` so the walker no longer holds it, copy it into
the subgraph context and zero the source when it is a mutable buffer.
Terminal handlers finish the key and release the context.
"""
from __future__ import annotations

import os
from typing import Any, Callable

from ..blob.codec import serialize
from ..crypto.keystore import generate_key_for
from ..errors import InternalConsistency, InvalidTransition, KeyModError, MissingPassphraseOption, OutOfMemory
from ..graph.model import ParamNode
from ..graph.walker import Traversal
from ..keyring import add_key_module_key_to_keyring
from ..options_file import open_options_file, passphrase_from_options
from ..utils.ct import wipe
from ..utils.logging import get_logger
from .context import SubgraphContext

log = get_logger()

PassphraseReader = Callable[[ParamNode, Any], Any]


def _sub(trav: Traversal) -> SubgraphContext:
    if trav.subgraph is None:
        raise InternalConsistency("no subgraph context; entry transition was not taken")
    return trav.subgraph


def _record_passphrase(sub: SubgraphContext, value: Any) -> None:
    if value is None:
        raise MissingPassphraseOption("no passphrase supplied")
    sub.data.set_passphrase(value)
    wipe(value)


def tf_openssl_enter(host, node, trav: Traversal) -> None:
    """Entry into the subgraph: allocate the context and resolve the key module by alias."""
    km = host.find_key_mod(trav.val)
    trav.subgraph = SubgraphContext(key_mod=km)


def tf_ssl_keyfile(host, node: ParamNode, trav: Traversal) -> None:
    path = trav.take_val()
    if not path:
        raise InvalidTransition(f"{node.name} requires a path")
    _sub(trav).data.path = os.path.expanduser(str(path))


def process_key(host, sub: SubgraphContext, trav: Traversal) -> str:
    """Serialize the context into the key module blob, add it to the keyring, emit the sig option."""
    km = sub.key_mod
    if km is None:
        raise InternalConsistency("subgraph context has no key module")
    try:
        blob_size = serialize(sub.data)
        if blob_size == 0:
            raise InternalConsistency("serialized blob is empty")
        try:
            blob = bytearray(blob_size)
        except MemoryError as e:
            log.error("out of memory allocating %d byte key module blob", blob_size)
            raise OutOfMemory(f"cannot allocate {blob_size} byte blob") from e
        written = serialize(sub.data, blob)
        if written != blob_size:
            log.error("internal error: blob size %d does not match size query %d", written, blob_size)
            raise InternalConsistency(f"blob size {written} does not match size query {blob_size}")
        km.blob = bytes(blob)
        km.blob_size = written
        wipe(blob)
        sig = add_key_module_key_to_keyring(host.keyring, km)
    except KeyModError as e:
        log.error("error processing key for key module [%s]; rc = [%d]", km.alias, e.code)
        raise
    trav.mnt_params.append(f"ecryptfs_sig={sig}")
    return sig


def _literal(node: ParamNode, value: Any) -> Any:
    return value


def _from_env(node: ParamNode, value: Any) -> Any:
    name = str(value or "")
    secret = os.environ.get(name) if name else None
    if secret is None:
        log.error("passphrase environment variable [%s] is not set", name)
        raise MissingPassphraseOption(f"environment variable {name!r} is not set")
    return bytearray(secret.encode("utf-8"))


def _from_options_file(node: ParamNode, value: Any) -> Any:
    if node.name in ("passfile", "passwd_file"):
        fd = open_options_file(os.path.expanduser(str(value)))
    elif node.name in ("passfd", "passwd_fd"):
        try:
            fd = int(str(value), 0)
        except ValueError:
            raise InvalidTransition(f"{node.name} expects a file descriptor number, got {value!r}") from None
    else:
        raise InvalidTransition(f"node {node.name} cannot read a passphrase file")
    return passphrase_from_options(fd)


def _terminal(name: str, reader: PassphraseReader, generate_missing: bool = False):
    def handler(host, node: ParamNode, trav: Traversal) -> None:
        sub = _sub(trav)
        value = trav.take_val()
        try:
            _record_passphrase(sub, reader(node, value))
        finally:
            wipe(value)
        if generate_missing and not os.path.exists(sub.data.path):
            log.info("key file [%s] does not exist; generating a new key", sub.data.path)
            generate_key_for(sub.data, sub.key_mod.ops.config)
        process_key(host, sub, trav)
        trav.release()

    handler.__name__ = handler.__qualname__ = name
    return handler


tf_ssl_passwd = _terminal("tf_ssl_passwd", _literal)
tf_ssl_passenv = _terminal("tf_ssl_passenv", _from_env)
tf_ssl_passfile = _terminal("tf_ssl_passfile", _from_options_file)

# passphrase-method flow: a missing key file is generated on the spot
tf_ssl_passwd_method = _terminal("tf_ssl_passwd_method", _literal, generate_missing=True)
tf_ssl_passwd_file = _terminal("tf_ssl_passwd_file", _from_options_file, generate_missing=True)
tf_ssl_passwd_fd = _terminal("tf_ssl_passwd_fd", _from_options_file, generate_missing=True)


def tf_gen_key_passphrase(host, node: ParamNode, trav: Traversal) -> None:
    sub = _sub(trav)
    _record_passphrase(sub, trav.take_val())
    try:
        generate_key_for(sub.data, sub.key_mod.ops.config)
    except KeyModError as e:
        log.error("error generating key to file [%s]; rc = [%d]", sub.data.path, e.code)
        raise
    trav.release()
