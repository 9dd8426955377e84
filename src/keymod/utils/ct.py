import hmac


def ct_eq(a: bytes, b: bytes) -> bool:
    """Constant-time equality for two byte strings (length must match)."""
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a, b)


def wipe(buf) -> None:
    """Zero a mutable buffer in place. Immutable values (str, bytes) are left alone."""
    if isinstance(buf, memoryview) and buf.readonly:
        return
    if isinstance(buf, (bytearray, memoryview)):
        buf[:] = bytes(buf.nbytes if isinstance(buf, memoryview) else len(buf))
