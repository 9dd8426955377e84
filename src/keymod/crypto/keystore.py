"""PEM key file store: read, write and generate passphrase-protected RSA keys."""
from __future__ import annotations

import errno
import os
from typing import Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..blob.codec import KeyFileConfig, deserialize
from ..config import KeyModConfig, load_config
from ..errors import CryptoError, IoError
from ..obs.prom import KEYS_GENERATED
from ..utils.logging import get_logger

log = get_logger()

Passphrase = Union[str, bytes, bytearray]


def _pw(passphrase: Optional[Passphrase]) -> Optional[bytes]:
    if not passphrase:
        return None
    if isinstance(passphrase, str):
        return passphrase.encode("utf-8")
    return bytes(passphrase)


def ensure_key_dirs(cfg: Optional[KeyModConfig] = None) -> str:
    """Create ``<home>/.<app>/pki/<module>`` one segment at a time.

    Existing directories are left as they are. Returns the innermost directory.
    """
    cfg = cfg or load_config()
    chain = cfg.key_dir_chain()
    for d in chain:
        try:
            os.mkdir(d, cfg.dir_mode)
        except FileExistsError:
            continue
        except OSError as e:
            log.error("error attempting to mkdir [%s]; errno = [%d]", d, e.errno or 0)
            raise IoError(f"unable to create directory {d}: {e.strerror}", code=-(e.errno or errno.EIO)) from e
    return chain[-1]


def load_key(path: str, passphrase: Optional[Passphrase]) -> rsa.RSAPrivateKey:
    try:
        with open(path, "rb") as f:
            pem = f.read()
    except OSError as e:
        log.error("unable to read key file [%s]: %s", path, e.strerror)
        raise IoError(f"unable to read key file {path}: {e.strerror}") from e
    try:
        key = serialization.load_pem_private_key(pem, password=_pw(passphrase))
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        # Never include the passphrase here.
        log.error("unable to read private key from file [%s]", path)
        raise CryptoError(f"unable to load private key from {path}", lib_error=str(e)) from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CryptoError(f"{path} does not contain an RSA private key", lib_error=type(key).__name__)
    return key


def read_key(blob: Union[bytes, bytearray, memoryview]) -> rsa.RSAPrivateKey:
    """Decode ``blob`` and load the key it points at."""
    data = deserialize(blob)
    try:
        return load_key(data.path, data.passphrase)
    finally:
        data.wipe()


def write_key(
    key: rsa.RSAPrivateKey,
    path: str,
    passphrase: Passphrase,
    cfg: Optional[KeyModConfig] = None,
) -> None:
    """Write ``key`` to ``path`` as AES-256-CBC encrypted PEM.

    An existing file at ``path`` is overwritten.
    """
    ensure_key_dirs(cfg)
    parent = os.path.dirname(os.path.abspath(path))
    if not os.path.isdir(parent):
        try:
            os.makedirs(parent, mode=(cfg or load_config()).dir_mode, exist_ok=True)
        except OSError as e:
            log.error("error attempting to create key directory [%s]", parent)
            raise IoError(f"unable to create directory {parent}: {e.strerror}") from e
    pw = _pw(passphrase)
    enc = serialization.BestAvailableEncryption(pw) if pw else serialization.NoEncryption()
    try:
        pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=enc,
        )
    except ValueError as e:
        raise CryptoError("failed to encode private key", lib_error=str(e)) from e
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(pem)
    except OSError as e:
        log.error("failed to write key to file [%s]: %s", path, e.strerror)
        raise IoError(f"failed to write key to {path}: {e.strerror}") from e


def generate_key(path: str, passphrase: Passphrase, cfg: Optional[KeyModConfig] = None) -> rsa.RSAPrivateKey:
    cfg = cfg or load_config()
    try:
        key = rsa.generate_private_key(public_exponent=cfg.public_exponent, key_size=cfg.key_bits)
    except ValueError as e:
        log.error("error generating new RSA key")
        raise CryptoError("RSA key generation failed", lib_error=str(e)) from e
    try:
        write_key(key, path, passphrase, cfg)
    except IoError:
        log.error("error writing key to file [%s]", path)
        raise
    KEYS_GENERATED.inc()
    log.info("generated %d-bit RSA key at [%s]", cfg.key_bits, path)
    return key


def generate_key_for(data: KeyFileConfig, cfg: Optional[KeyModConfig] = None) -> rsa.RSAPrivateKey:
    return generate_key(data.path, data.passphrase, cfg)
