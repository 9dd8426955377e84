"""Key module configuration loader.

Loads defaults, then an optional YAML file (``KEYMOD_CONFIG``), then
environment overrides. A ``.env`` in the working directory is honoured.
"""
from __future__ import annotations

import os
import pwd
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

from .errors import IoError

load_dotenv()

_DEFAULT: Dict[str, Any] = {
    "app_dir": ".ecryptfs",
    "module_name": "openssl",
    "key_filename": "key.pem",
    "key_bits": 1024,
    "public_exponent": 65537,
    "dir_mode": 0o700,
    "log_level": "INFO",
    "param_flow": "legacy",
}

_ENV_MAP = {
    "home": ("KEYMOD_HOME", str),
    "app_dir": ("KEYMOD_APP_DIR", str),
    "module_name": ("KEYMOD_MODULE_NAME", str),
    "key_filename": ("KEYMOD_KEY_FILENAME", str),
    "key_bits": ("KEYMOD_KEY_BITS", int),
    "public_exponent": ("KEYMOD_PUBLIC_EXPONENT", int),
    "dir_mode": ("KEYMOD_DIR_MODE", lambda v: int(v, 8)),
    "log_level": ("KEYMOD_LOG_LEVEL", str),
    "param_flow": ("KEYMOD_PARAM_FLOW", str),
}


class KeyModConfig(BaseModel):
    home: Optional[str] = None  # None -> current user's passwd entry
    app_dir: str = _DEFAULT["app_dir"]
    module_name: str = _DEFAULT["module_name"]
    key_filename: str = _DEFAULT["key_filename"]
    key_bits: int = _DEFAULT["key_bits"]
    public_exponent: int = _DEFAULT["public_exponent"]
    dir_mode: int = _DEFAULT["dir_mode"]
    log_level: str = _DEFAULT["log_level"]
    param_flow: str = _DEFAULT["param_flow"]  # legacy | method

    def home_dir(self) -> str:
        if self.home:
            return self.home
        try:
            return pwd.getpwuid(os.getuid()).pw_dir
        except KeyError as e:
            raise IoError("unable to get the home directory from the passwd database") from e

    def key_dir_chain(self) -> list[str]:
        """Directories from ``<home>/.<app>`` down to the module key directory, outermost first."""
        base = os.path.join(self.home_dir(), self.app_dir)
        pki = os.path.join(base, "pki")
        return [base, pki, os.path.join(pki, self.module_name)]

    def default_key_path(self) -> str:
        return os.path.join(self.key_dir_chain()[-1], self.key_filename)


_CONFIG: KeyModConfig | None = None
_CONFIG_ENV: Dict[str, str] = {}


def _env_snapshot() -> Dict[str, str]:
    names = [env for env, _ in _ENV_MAP.values()] + ["KEYMOD_CONFIG"]
    return {n: os.environ[n] for n in names if n in os.environ}


def load_config() -> KeyModConfig:
    global _CONFIG, _CONFIG_ENV
    snap = _env_snapshot()
    if _CONFIG is not None and snap == _CONFIG_ENV:
        return _CONFIG
    data: Dict[str, Any] = {}
    path = os.getenv("KEYMOD_CONFIG")
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            file_cfg = yaml.safe_load(f) or {}
        if isinstance(file_cfg, dict):
            data.update({k: v for k, v in file_cfg.items() if k in KeyModConfig.model_fields})
    for k, (env, cast) in _ENV_MAP.items():
        if env in os.environ:
            data[k] = cast(os.environ[env])
    _CONFIG = KeyModConfig(**data)
    _CONFIG_ENV = snap
    return _CONFIG
