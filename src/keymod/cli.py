from __future__ import annotations

import argparse
import base64
import getpass
import os
import sys
from pathlib import Path
from typing import Any

from .config import load_config
from .errors import KeyModError
from .graph.walker import walk
from .host import HostContext
from .openssl.module import FLOWS, OpenSSLKeyModule
from .utils.ct import wipe
from .utils.logging import get_logger

log = get_logger()

PASSPHRASE_ENV = "KEYMOD_PASSPHRASE"


def _tty_prompt(text: str, echo: bool) -> Any:
    if echo:
        return input(f"{text}: ")
    return bytearray(getpass.getpass(f"{text}: ").encode("utf-8"))


def _passphrase(args: argparse.Namespace) -> bytearray:
    value = os.environ.get(args.passphrase_env)
    if value is not None:
        return bytearray(value.encode("utf-8"))
    return _tty_prompt("Passphrase", False)


def _host() -> tuple[HostContext, OpenSSLKeyModule]:
    mod = OpenSSLKeyModule(load_config())
    host = HostContext(prompt=_tty_prompt if sys.stdin.isatty() else None)
    host.load_key_module(mod)
    return host, mod


def _blob(mod: OpenSSLKeyModule, args: argparse.Namespace) -> bytes:
    pw = _passphrase(args)
    try:
        vals = [("path", args.keyfile or mod.config.default_key_path()), ("passphrase", pw)]
        buf = bytearray(mod.get_blob(vals))
        mod.get_blob(vals, buf)
        return bytes(buf)
    finally:
        wipe(pw)


def cmd_genkey(args: argparse.Namespace) -> int:
    host, mod = _host()
    pw = _passphrase(args)
    path = args.keyfile or mod.config.default_key_path()
    try:
        walk(host, mod.get_gen_key_subgraph_trans_node(host.version), {"keyfile": path, "passphrase": pw}, flow="gen_key")
    finally:
        wipe(pw)
        host.unload()
    print(f"wrote {path}")
    return 0


def cmd_sig(args: argparse.Namespace) -> int:
    host, mod = _host()
    try:
        print(mod.get_key_sig(_blob(mod, args)))
    finally:
        host.unload()
    return 0


def cmd_mount(args: argparse.Namespace) -> int:
    host, mod = _host()
    try:
        flow = args.flow or mod.config.param_flow
        emitted = walk(host, mod.get_param_subgraph_trans_node(host.version, flow), args.options, flow=flow)
    finally:
        host.unload()
    print(",".join(emitted))
    return 0


def cmd_encrypt(args: argparse.Namespace) -> int:
    host, mod = _host()
    try:
        blob = _blob(mod, args)
        data = Path(args.input).read_bytes()
        buf = bytearray(mod.encrypt(blob, data))
        n = mod.encrypt(blob, data, buf)
    finally:
        host.unload()
    print(base64.b64encode(bytes(buf[:n])).decode("ascii"))
    return 0


def cmd_decrypt(args: argparse.Namespace) -> int:
    host, mod = _host()
    try:
        blob = _blob(mod, args)
        data = base64.b64decode(Path(args.input).read_text().strip())
        buf = bytearray(mod.decrypt(blob, data))
        n = mod.decrypt(blob, data, buf)
    finally:
        host.unload()
    if args.output:
        Path(args.output).write_bytes(bytes(buf[:n]))
        print(f"wrote {args.output} ({n} bytes)")
    else:
        sys.stdout.buffer.write(bytes(buf[:n]))
    wipe(buf)
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser("keymod")
    p.add_argument("--passphrase-env", dest="passphrase_env", default=PASSPHRASE_ENV,
                   help="environment variable holding the key passphrase (prompted when unset)")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_gen = sub.add_parser("genkey", help="generate a passphrase-protected RSA key")
    p_gen.add_argument("--keyfile")
    p_gen.set_defaults(func=cmd_genkey)

    p_sig = sub.add_parser("sig", help="print the key signature")
    p_sig.add_argument("--keyfile")
    p_sig.set_defaults(func=cmd_sig)

    p_mnt = sub.add_parser("mount", help="run the parameter graph against mount options")
    p_mnt.add_argument("-o", dest="options", default="")
    p_mnt.add_argument("--flow", choices=list(FLOWS), default=None)
    p_mnt.set_defaults(func=cmd_mount)

    p_enc = sub.add_parser("encrypt", help="RSA-OAEP encrypt a file; prints base64")
    p_enc.add_argument("--keyfile")
    p_enc.add_argument("--input", required=True)
    p_enc.set_defaults(func=cmd_encrypt)

    p_dec = sub.add_parser("decrypt", help="decrypt base64 ciphertext from a file")
    p_dec.add_argument("--keyfile")
    p_dec.add_argument("--input", required=True)
    p_dec.add_argument("--output")
    p_dec.set_defaults(func=cmd_decrypt)

    args = p.parse_args(argv)
    try:
        return args.func(args)
    except KeyModError as e:
        log.error("%s failed: %s (rc = %d)", args.cmd, e, e.code)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
