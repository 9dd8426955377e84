"""RSA-OAEP transforms over a key named by a config blob.

OAEP uses SHA-1 for both the label hash and MGF1, matching OpenSSL's
``RSA_PKCS1_OAEP_PADDING``, so payloads wrapped by other components unwrap here.

Both transforms follow the same size convention: called without a destination
buffer they only report the modulus size in bytes; with a buffer they write the
result into it and return the number of bytes written.

Only failures of the RSA transform itself become ``CryptoError`` (with the
library error attached). Failures loading the key keep their own kind:
``IoError`` for an unreadable key file, ``MalformedBlob`` for a bad blob and
``CryptoError`` for a PEM that does not decrypt or parse.
"""
from __future__ import annotations

from typing import Optional, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from ..errors import CryptoError, KeyModError, ValidationError
from ..obs.prom import KEY_OPS
from ..utils.logging import get_logger
from .keystore import read_key

log = get_logger()

Buffer = Union[bytearray, memoryview]
Blob = Union[bytes, bytearray, memoryview]

OAEP_OVERHEAD = 2 * hashes.SHA1.digest_size + 2  # 42


def oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA1()),
        algorithm=hashes.SHA1(),
        label=None,
    )


def max_payload(modulus_bytes: int) -> int:
    return modulus_bytes - OAEP_OVERHEAD


def _load(blob: Blob, op: str):
    try:
        return read_key(blob)
    except KeyModError as e:
        KEY_OPS.labels(op=op, result="key_error").inc()
        log.error("error attempting to read RSA key from file; rc = [%d]", e.code)
        raise


def _emit(result: bytes, to: Buffer) -> int:
    if len(to) < len(result):
        raise ValidationError(f"destination buffer too small: need {len(result)}, have {len(to)}")
    to[:len(result)] = result
    return len(result)


def encrypt(blob: Blob, plaintext: bytes, to: Optional[Buffer] = None) -> int:
    key = _load(blob, "encrypt")
    size = key.key_size // 8 + (1 if key.key_size % 8 else 0)
    if to is None:
        return size
    try:
        ct = key.public_key().encrypt(bytes(plaintext), oaep())
    except ValueError as e:
        KEY_OPS.labels(op="encrypt", result="error").inc()
        log.error("error attempting to perform RSA public key encryption")
        raise CryptoError("RSA public key encryption failed", lib_error=str(e)) from e
    KEY_OPS.labels(op="encrypt", result="ok").inc()
    return _emit(ct, to)


def decrypt(blob: Blob, ciphertext: bytes, to: Optional[Buffer] = None) -> int:
    key = _load(blob, "decrypt")
    size = key.key_size // 8 + (1 if key.key_size % 8 else 0)
    if to is None:
        return size
    try:
        pt = key.decrypt(bytes(ciphertext), oaep())
    except ValueError as e:
        KEY_OPS.labels(op="decrypt", result="error").inc()
        log.error("error attempting to perform RSA private key decryption")
        raise CryptoError("RSA private key decryption failed", lib_error=str(e)) from e
    KEY_OPS.labels(op="decrypt", result="ok").inc()
    return _emit(pt, to)


def encrypt_bytes(blob: Blob, plaintext: bytes) -> bytes:
    buf = bytearray(encrypt(blob, plaintext))
    n = encrypt(blob, plaintext, buf)
    return bytes(buf[:n])


def decrypt_bytes(blob: Blob, ciphertext: bytes) -> bytes:
    buf = bytearray(decrypt(blob, ciphertext))
    n = decrypt(blob, ciphertext, buf)
    return bytes(buf[:n])
