"""Key signature (fingerprint) derived from the RSA public numbers.

The packet hashed here is an OpenPGP v4 public-key packet with a zero creation
time; other components look keys up by the resulting hex string, so the layout
must not change:

    0x99 | len(2, BE) | 0x04 | 00 00 00 00 | 0x02 |
    bits(n)(2, BE) | n | bits(e)(2, BE) | e

``len`` covers everything after the 3-byte header.
"""
from __future__ import annotations

import hashlib
import struct

from cryptography.hazmat.primitives.asymmetric import rsa

from ..errors import CryptoError

SIG_SIZE = hashlib.sha1().digest_size  # 20
SIG_SIZE_HEX = SIG_SIZE * 2

_PACKET_TAG = 0x99
_VERSION = 0x04
_ALG_RSA_ENCRYPT = 0x02


def _mpi(value: int) -> bytes:
    bits = value.bit_length()
    if bits > 0xFFFF:
        raise CryptoError(f"integer too large for signature packet ({bits} bits)")
    return struct.pack(">H", bits) + value.to_bytes((bits + 7) // 8, "big")


def public_key_packet(n: int, e: int) -> bytes:
    body = bytes([_VERSION, 0, 0, 0, 0, _ALG_RSA_ENCRYPT]) + _mpi(n) + _mpi(e)
    if len(body) > 0xFFFF:
        raise CryptoError(f"signature packet too long ({len(body)} bytes)")
    return struct.pack(">BH", _PACKET_TAG, len(body)) + body


def signature_from_numbers(n: int, e: int) -> str:
    return hashlib.sha1(public_key_packet(n, e)).hexdigest()


def signature(key: rsa.RSAPrivateKey | rsa.RSAPublicKey) -> str:
    pub = key.public_key() if isinstance(key, rsa.RSAPrivateKey) else key
    nums = pub.public_numbers()
    return signature_from_numbers(nums.n, nums.e)
