import hashlib
import re

from cryptography.hazmat.primitives.asymmetric import rsa

from keymod.crypto.fingerprint import SIG_SIZE_HEX, public_key_packet, signature, signature_from_numbers


def _key():
    return rsa.generate_private_key(public_exponent=65537, key_size=1024)


def test_packet_layout_small_numbers():
    pkt = public_key_packet(0xC5, 3)
    assert pkt == bytes.fromhex("99000c" "040000000002" "0008c5" "000203")
    # length field = 10 + nbytes(n) + nbytes(e)
    assert int.from_bytes(pkt[1:3], "big") == 10 + 1 + 1


def test_packet_length_for_1024_bit_key():
    nums = _key().public_key().public_numbers()
    pkt = public_key_packet(nums.n, nums.e)
    assert int.from_bytes(pkt[1:3], "big") == 10 + 128 + 3
    assert len(pkt) == 3 + 10 + 128 + 3


def test_signature_is_sha1_hex_of_packet():
    sig = signature_from_numbers(0xC5, 3)
    assert sig == hashlib.sha1(public_key_packet(0xC5, 3)).hexdigest()
    assert len(sig) == SIG_SIZE_HEX == 40


def test_signature_deterministic_and_formatted():
    key = _key()
    a = signature(key)
    b = signature(key.public_key())
    assert a == b
    assert re.fullmatch(r"[0-9a-f]{40}", a)


def test_distinct_keys_distinct_signatures():
    assert signature(_key()) != signature(_key())
