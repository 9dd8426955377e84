"""Parameter graph tables for the OpenSSL key module.

Three graphs, each in its own arena:

- ``legacy``: keyformat -> keyfile -> one of six passphrase sources. Mount
  options written against this table are already deployed; keep it as is.
- ``method``: keysource -> keyfile -> passwd_specification_method -> source.
- ``gen_key``: keyfile -> passphrase, writing a brand new key.
"""
from __future__ import annotations

from typing import Optional

from ..graph.model import DEFAULT_TRANSITION, NodeArena, ParamFlag, ParamNode, Transition
from . import handlers as tf

STDIN_REQUIRED = ParamFlag.STDIN_REQUIRED


def _terminal_node(key: str, name: str, prompt: str, flags: ParamFlag, trans_func) -> ParamNode:
    return ParamNode(
        key=key,
        mnt_opt_names=(name,),
        prompt=prompt,
        flags=flags,
        transitions=[Transition(val=None, trans_func=trans_func)],
    )


def build_legacy_graph(suggested_keyfile: Optional[str] = None) -> NodeArena:
    g = NodeArena("openssl-legacy")
    g.add(ParamNode(
        key="keyformat",
        mnt_opt_names=("keyformat",),
        prompt="Key format",
        default_val="keyfile",
        flags=ParamFlag.NO_VALUE,
        transitions=[Transition(val=DEFAULT_TRANSITION, pretty_val="OpenSSL Key File", next_key="keyfile")],
    ))
    sources = [
        ("passwd", None, "passwd"),
        ("passfile", "Passphrase File", "passfile"),
        ("passenv", "Passphrase ENV", "passenv"),
        ("passfd", "Passphrase File Descriptor", "passfd"),
        ("passstdin", "Passphrase STDIN", "passstdin"),
        (DEFAULT_TRANSITION, "Passphrase", "defaultpass"),
    ]
    g.add(ParamNode(
        key="keyfile",
        mnt_opt_names=("keyfile",),
        prompt="SSL key file",
        suggested_val=suggested_keyfile,
        flags=ParamFlag.ECHO_INPUT,
        transitions=[
            Transition(val=val, pretty_val=pretty, next_key=nxt, trans_func=tf.tf_ssl_keyfile)
            for val, pretty, nxt in sources
        ],
    ))
    mask = ParamFlag.MASK_OUTPUT
    g.add(_terminal_node("passwd", "passwd", "Passphrase", mask, tf.tf_ssl_passwd))
    g.add(_terminal_node("passfile", "passfile", "Passphrase", mask, tf.tf_ssl_passfile))
    g.add(_terminal_node("passenv", "passenv", "Passphrase", mask, tf.tf_ssl_passenv))
    g.add(_terminal_node("passfd", "passfd", "Passphrase", mask, tf.tf_ssl_passfile))
    g.add(_terminal_node("passstdin", "passstdin", "Passphrase",
                         ParamFlag.VERIFY_VALUE | STDIN_REQUIRED, tf.tf_ssl_passwd))
    g.add(_terminal_node("defaultpass", "defaultpass", "Passphrase", STDIN_REQUIRED, tf.tf_ssl_passwd))
    return g.freeze()


def build_method_graph(suggested_keyfile: Optional[str] = None) -> NodeArena:
    g = NodeArena("openssl-method")
    g.add(ParamNode(
        key="keysource",
        mnt_opt_names=("keysource",),
        prompt="Key source",
        default_val="keyfile",
        flags=ParamFlag.NO_VALUE,
        transitions=[Transition(val=DEFAULT_TRANSITION, pretty_val="OpenSSL Key File", next_key="keyfile")],
    ))
    g.add(ParamNode(
        key="keyfile",
        mnt_opt_names=("keyfile",),
        prompt="PEM key file",
        suggested_val=suggested_keyfile,
        flags=ParamFlag.ECHO_INPUT,
        transitions=[Transition(val=DEFAULT_TRANSITION, pretty_val="Passphrase Method",
                                next_key="passwd_specification_method", trans_func=tf.tf_ssl_keyfile)],
    ))
    g.add(ParamNode(
        key="passwd_specification_method",
        mnt_opt_names=("passwd_specification_method",),
        prompt="Method of providing the passphrase",
        default_val="passwd",
        flags=ParamFlag.NO_VALUE,
        transitions=[
            Transition(val="passwd", pretty_val="User-provided Passphrase", next_key="passwd"),
            Transition(val="passwd_file", pretty_val="File Containing Passphrase", next_key="passwd_file"),
            Transition(val="passwd_fd", pretty_val="File Descriptor for File Containing Passphrase",
                       next_key="passwd_fd"),
        ],
    ))
    g.add(_terminal_node("passwd", "passwd", "Passphrase", STDIN_REQUIRED, tf.tf_ssl_passwd_method))
    g.add(_terminal_node("passwd_file", "passwd_file", "Passphrase File", STDIN_REQUIRED, tf.tf_ssl_passwd_file))
    g.add(_terminal_node("passwd_fd", "passwd_fd", "Passphrase File Descriptor", STDIN_REQUIRED,
                         tf.tf_ssl_passwd_fd))
    return g.freeze()


def build_gen_key_graph(suggested_keyfile: Optional[str] = None) -> NodeArena:
    g = NodeArena("openssl-gen-key")
    g.add(ParamNode(
        key="keyfile",
        mnt_opt_names=("keyfile",),
        prompt="SSL key file path",
        suggested_val=suggested_keyfile,
        flags=ParamFlag.ECHO_INPUT,
        transitions=[Transition(val=DEFAULT_TRANSITION, next_key="passphrase", trans_func=tf.tf_ssl_keyfile)],
    ))
    g.add(_terminal_node("passphrase", "passphrase", "Passphrase", ParamFlag.MASK_OUTPUT,
                         tf.tf_gen_key_passphrase))
    return g.freeze()
