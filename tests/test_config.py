import logging

from keymod.config import KeyModConfig, load_config
from keymod.openssl.module import OpenSSLKeyModule
from keymod.utils.logging import apply_config, get_logger


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("KEYMOD_HOME", str(tmp_path))
    monkeypatch.delenv("KEYMOD_CONFIG", raising=False)
    cfg = load_config()
    assert cfg.module_name == "openssl"
    assert cfg.key_bits == 1024
    assert cfg.public_exponent == 65537
    assert cfg.dir_mode == 0o700
    assert cfg.param_flow == "legacy"
    assert cfg.key_dir_chain() == [
        str(tmp_path / ".ecryptfs"),
        str(tmp_path / ".ecryptfs" / "pki"),
        str(tmp_path / ".ecryptfs" / "pki" / "openssl"),
    ]
    assert cfg.default_key_path() == str(tmp_path / ".ecryptfs" / "pki" / "openssl" / "key.pem")


def test_yaml_layered_under_env(tmp_path, monkeypatch):
    f = tmp_path / "keymod.yaml"
    f.write_text("app_dir: .keys\nkey_filename: mine.pem\nunknown: 1\n")
    monkeypatch.setenv("KEYMOD_CONFIG", str(f))
    monkeypatch.setenv("KEYMOD_HOME", str(tmp_path))
    monkeypatch.setenv("KEYMOD_KEY_FILENAME", "env.pem")
    monkeypatch.setenv("KEYMOD_DIR_MODE", "750")
    cfg = load_config()
    assert cfg.app_dir == ".keys"
    assert cfg.key_filename == "env.pem"
    assert cfg.dir_mode == 0o750


def test_cache_rebuilds_on_env_change(tmp_path, monkeypatch):
    monkeypatch.setenv("KEYMOD_HOME", str(tmp_path))
    a = load_config()
    assert load_config() is a
    monkeypatch.setenv("KEYMOD_MODULE_NAME", "other")
    b = load_config()
    assert b is not a
    assert b.module_name == "other"


def test_home_from_passwd_database(monkeypatch):
    monkeypatch.delenv("KEYMOD_HOME", raising=False)
    assert load_config().home_dir()


def test_yaml_log_level_reaches_logger(tmp_path, monkeypatch):
    f = tmp_path / "keymod.yaml"
    f.write_text("log_level: DEBUG\n")
    monkeypatch.setenv("KEYMOD_CONFIG", str(f))
    monkeypatch.setenv("KEYMOD_HOME", str(tmp_path))
    monkeypatch.delenv("KEYMOD_LOG_LEVEL", raising=False)
    cfg = load_config()
    assert cfg.log_level == "DEBUG"
    try:
        OpenSSLKeyModule(cfg)
        assert get_logger().level == logging.DEBUG
    finally:
        apply_config(KeyModConfig())
    assert get_logger().level == logging.INFO
