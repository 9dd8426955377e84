import os
import re
from dataclasses import dataclass

import pytest

from keymod.config import load_config
from keymod.crypto.keystore import generate_key, load_key
from keymod.errors import (
    CryptoError,
    InvalidTransition,
    IoError,
    KeyModuleNotFound,
    KeyringError,
    MissingPassphraseOption,
    OutOfMemory,
)
from keymod.graph.walker import walk
from keymod.host import HostContext
from keymod.keyring import MemoryKeyring
from keymod.openssl import handlers
from keymod.openssl.context import SubgraphContext
from keymod.openssl.module import OpenSSLKeyModule

SIG_OPT = re.compile(r"ecryptfs_sig=[0-9a-f]{40}")


@dataclass
class RecordingContext(SubgraphContext):
    created = []
    destroy_calls: int = 0

    def __post_init__(self):
        RecordingContext.created.append(self)

    def destroy(self):
        self.destroy_calls += 1
        super().destroy()


@pytest.fixture(autouse=True)
def _env(tmp_path, monkeypatch):
    monkeypatch.setenv("KEYMOD_HOME", str(tmp_path))
    RecordingContext.created = []
    monkeypatch.setattr(handlers, "SubgraphContext", RecordingContext)


def _host(prompt=None, keyring=None):
    host = HostContext(prompt=prompt, keyring=keyring or MemoryKeyring())
    mod = OpenSSLKeyModule(load_config())
    host.load_key_module(mod)
    return host, mod


def _only_context():
    assert len(RecordingContext.created) == 1
    return RecordingContext.created[0]


def test_method_flow_generates_missing_key(tmp_path):
    host, mod = _host()
    path = tmp_path / "k.pem"
    pw = bytearray(b"hunter2")
    opts = {
        "keysource": "default",
        "keyfile": str(path),
        "passwd_specification_method": "passwd",
        "passwd": pw,
    }
    out = walk(host, mod.get_param_subgraph_trans_node(host.version, "method"), opts)
    assert path.exists()
    load_key(str(path), b"hunter2")
    assert pw == bytearray(len(pw))
    assert len(out) == 1 and SIG_OPT.fullmatch(out[0])
    assert host.keyring.insertions == [out[0].split("=", 1)[1]]
    ctx = _only_context()
    assert ctx.destroy_calls == 1
    assert ctx.data.passphrase is None


def test_legacy_flow_uses_existing_key(tmp_path):
    path = str(tmp_path / "k.pem")
    generate_key(path, b"hunter2")
    host, mod = _host()
    out = walk(host, mod.get_param_subgraph_trans_node(host.version, "legacy"), f"keyfile={path},passwd=hunter2")
    assert len(out) == 1 and SIG_OPT.fullmatch(out[0])
    sig = out[0].split("=", 1)[1]
    assert host.keyring.insertions == [sig]
    assert sig == mod.get_key_sig(host.find_key_mod("openssl").blob)
    assert _only_context().destroy_calls == 1


def test_legacy_flow_second_mount_does_not_reinsert(tmp_path):
    path = str(tmp_path / "k.pem")
    generate_key(path, b"hunter2")
    host, mod = _host()
    entry = mod.get_param_subgraph_trans_node(host.version, "legacy")
    first = walk(host, entry, f"keyfile={path},passwd=hunter2")
    second = walk(host, entry, f"keyfile={path},passwd=hunter2")
    assert first == second
    assert len(host.keyring.insertions) == 1


def test_passfile_without_passwd_entry(tmp_path):
    opts_file = tmp_path / "opts"
    opts_file.write_text("other=value\n")
    host, mod = _host()
    with pytest.raises(MissingPassphraseOption):
        walk(host, mod.get_param_subgraph_trans_node(host.version, "legacy"),
             f"keyfile={tmp_path / 'k.pem'},passfile={opts_file}")
    ctx = _only_context()
    assert ctx.destroy_calls == 1
    assert host.keyring.insertions == []


def test_passfile_with_passwd_entry(tmp_path):
    path = str(tmp_path / "k.pem")
    generate_key(path, b"pass=word, with spaces")
    opts_file = tmp_path / "opts"
    opts_file.write_text("# comment\npasswd=pass=word, with spaces\n")
    host, mod = _host()
    out = walk(host, mod.get_param_subgraph_trans_node(host.version, "legacy"),
               {"keyfile": path, "passfile": str(opts_file)})
    assert SIG_OPT.fullmatch(out[0])


def test_passfd(tmp_path):
    path = str(tmp_path / "k.pem")
    generate_key(path, b"hunter2")
    r, w = os.pipe()
    os.write(w, b"passwd=hunter2\n")
    os.close(w)
    host, mod = _host()
    out = walk(host, mod.get_param_subgraph_trans_node(host.version, "legacy"), {"keyfile": path, "passfd": str(r)})
    assert SIG_OPT.fullmatch(out[0])


def test_passenv(tmp_path, monkeypatch):
    path = str(tmp_path / "k.pem")
    generate_key(path, b"hunter2")
    monkeypatch.setenv("KM_TEST_PASSPHRASE", "hunter2")
    host, mod = _host()
    out = walk(host, mod.get_param_subgraph_trans_node(host.version, "legacy"),
               {"keyfile": path, "passenv": "KM_TEST_PASSPHRASE"})
    assert SIG_OPT.fullmatch(out[0])


def test_passenv_unset(tmp_path, monkeypatch):
    monkeypatch.delenv("KM_TEST_PASSPHRASE", raising=False)
    host, mod = _host()
    with pytest.raises(MissingPassphraseOption):
        walk(host, mod.get_param_subgraph_trans_node(host.version, "legacy"),
             {"keyfile": str(tmp_path / "k.pem"), "passenv": "KM_TEST_PASSPHRASE"})
    assert _only_context().destroy_calls == 1


def test_passstdin_prompts_twice(tmp_path):
    path = str(tmp_path / "k.pem")
    generate_key(path, b"hunter2")
    asked = []

    def prompt(text, echo):
        asked.append((text, echo))
        return bytearray(b"hunter2")

    host, mod = _host(prompt=prompt)
    out = walk(host, mod.get_param_subgraph_trans_node(host.version, "legacy"), {"keyfile": path, "passstdin": ""})
    assert SIG_OPT.fullmatch(out[0])
    assert len(asked) == 2
    assert all(echo is False for _, echo in asked)


def test_passstdin_mismatch(tmp_path):
    answers = iter([bytearray(b"one"), bytearray(b"two")])
    host, mod = _host(prompt=lambda text, echo: next(answers))
    with pytest.raises(InvalidTransition):
        walk(host, mod.get_param_subgraph_trans_node(host.version, "legacy"),
             {"keyfile": str(tmp_path / "k.pem"), "passstdin": ""})
    assert _only_context().destroy_calls == 1


def test_defaultpass_prompts(tmp_path):
    path = str(tmp_path / "k.pem")
    generate_key(path, b"hunter2")
    host, mod = _host(prompt=lambda text, echo: bytearray(b"hunter2"))
    out = walk(host, mod.get_param_subgraph_trans_node(host.version, "legacy"), {"keyfile": path})
    assert SIG_OPT.fullmatch(out[0])


def test_method_flow_passwd_file(tmp_path):
    opts_file = tmp_path / "opts"
    opts_file.write_text("passwd=hunter2\n")
    path = tmp_path / "k.pem"
    host, mod = _host()
    out = walk(host, mod.get_param_subgraph_trans_node(host.version, "method"),
               {"keyfile": str(path), "passwd_file": str(opts_file)})
    assert path.exists()
    assert SIG_OPT.fullmatch(out[0])


def test_unknown_alias_aborts_before_nodes():
    asked = []
    host, mod = _host(prompt=lambda text, echo: asked.append(text))
    with pytest.raises(KeyModuleNotFound):
        walk(host, mod.get_param_subgraph_trans_node(host.version), {}, selector="nope")
    assert asked == []


def test_wrong_passphrase_aborts_and_wipes(tmp_path):
    path = str(tmp_path / "k.pem")
    generate_key(path, b"hunter2")
    host, mod = _host()
    with pytest.raises(CryptoError):
        walk(host, mod.get_param_subgraph_trans_node(host.version), {"keyfile": path, "passwd": "wrong"})
    ctx = _only_context()
    assert ctx.destroy_calls == 1
    assert ctx.data.passphrase is None
    assert host.keyring.insertions == []


class RefusingKeyring:
    def add_key(self, sig, alias, blob):
        raise PermissionError("key rejected")


def test_keyring_failure_is_reported(tmp_path):
    path = str(tmp_path / "k.pem")
    generate_key(path, b"hunter2")
    host, mod = _host(keyring=RefusingKeyring())
    with pytest.raises(KeyringError):
        walk(host, mod.get_param_subgraph_trans_node(host.version), {"keyfile": path, "passwd": "hunter2"})
    assert _only_context().destroy_calls == 1


def test_gen_key_flow(tmp_path):
    path = tmp_path / "new" / "k.pem"
    host, mod = _host()
    out = walk(host, mod.get_gen_key_subgraph_trans_node(host.version),
               {"keyfile": str(path), "passphrase": bytearray(b"s3cret")})
    assert out == []
    load_key(str(path), b"s3cret")
    assert _only_context().destroy_calls == 1


def test_keyfile_path_is_expanded(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    generate_key(str(tmp_path / "k.pem"), b"hunter2")
    host, mod = _host()
    out = walk(host, mod.get_param_subgraph_trans_node(host.version), {"keyfile": "~/k.pem", "passwd": "hunter2"})
    assert SIG_OPT.fullmatch(out[0])


def test_interactive_keyfile_prompt_is_a_plain_path(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    asked = []

    def prompt(text, echo):
        asked.append(text)
        return "passfile" if text.startswith("SSL key file") else bytearray(b"hunter2")

    host, mod = _host(prompt=prompt)
    default_path = mod.config.default_key_path()
    with pytest.raises(IoError):
        walk(host, mod.get_param_subgraph_trans_node(host.version, "legacy"), None)
    assert asked[0] == f"SSL key file [{default_path}]"
    # the typed value was taken as the key path, and the default source prompted
    assert asked[1] == "Passphrase"
    assert _only_context().destroy_calls == 1


def test_blob_allocation_failure_is_out_of_memory(tmp_path, monkeypatch):
    real_serialize = handlers.serialize

    def huge(data, blob=None):
        if blob is None:
            return 1 << 62
        return real_serialize(data, blob)

    monkeypatch.setattr(handlers, "serialize", huge)
    host, mod = _host()
    with pytest.raises(OutOfMemory):
        walk(host, mod.get_param_subgraph_trans_node(host.version),
             {"keyfile": str(tmp_path / "k.pem"), "passwd": "hunter2"})
    ctx = _only_context()
    assert ctx.destroy_calls == 1
    assert ctx.data.passphrase is None
