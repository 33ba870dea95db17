"""Cipher engine: AES-256-CBC with a detached SHA-256 digest."""

import hashlib
import io

import pytest

from filevault.crypto import (
    ALGORITHM,
    compute_digest,
    decrypt,
    decrypt_stream,
    encrypt,
    encrypt_stream,
)
from filevault.errors import DecryptionError, IntegrityError


@pytest.mark.parametrize("payload", [
    b"",
    b"0123456789",
    b"exactly sixteen!",
    bytes(range(256)) * 300,
])
def test_round_trip(payload):
    result = encrypt(payload)
    assert result.ciphertext != payload or payload == b""
    assert len(result.key) == 32
    assert len(result.iv) == 16
    assert result.digest == hashlib.sha256(payload).hexdigest()

    plaintext = decrypt(result.ciphertext, result.key, result.iv, result.digest)
    assert plaintext == payload
    assert compute_digest(plaintext) == result.digest


def test_stream_round_trip_with_small_chunks():
    payload = b"streamed content " * 1000
    ciphertext = io.BytesIO()
    params = encrypt_stream(io.BytesIO(payload), ciphertext, chunk_size=7)

    assert params.algorithm == ALGORITHM
    assert params.plaintext_size == len(payload)
    assert params.ciphertext_size == len(ciphertext.getvalue())
    assert params.ciphertext_size % 16 == 0

    ciphertext.seek(0)
    out = io.BytesIO()
    digest = decrypt_stream(ciphertext, out, params.key, params.iv, params.digest, chunk_size=5)
    assert out.getvalue() == payload
    assert digest == params.digest


def test_fresh_key_and_iv_per_encryption():
    first = encrypt(b"same content")
    second = encrypt(b"same content")
    assert first.key != second.key
    assert first.iv != second.iv
    assert first.ciphertext != second.ciphertext
    assert first.digest == second.digest


def test_tampered_ciphertext_fails_integrity_check():
    payload = b"A" * 64
    result = encrypt(payload)
    tampered = bytearray(result.ciphertext)
    tampered[0] ^= 0x01

    with pytest.raises(IntegrityError) as exc_info:
        decrypt(bytes(tampered), result.key, result.iv, result.digest)
    assert result.key.hex() not in str(exc_info.value)


def test_wrong_expected_digest_fails():
    result = encrypt(b"payload")
    with pytest.raises(IntegrityError):
        decrypt(result.ciphertext, result.key, result.iv, compute_digest(b"other"))


def test_digest_is_optional_on_decrypt():
    result = encrypt(b"no digest check")
    assert decrypt(result.ciphertext, result.key, result.iv) == b"no digest check"


@pytest.mark.parametrize("key_len,iv_len", [(16, 16), (32, 8), (0, 16)])
def test_malformed_key_material_is_a_decryption_error(key_len, iv_len):
    result = encrypt(b"payload")
    with pytest.raises(DecryptionError):
        decrypt(result.ciphertext, b"k" * key_len, b"i" * iv_len)


def test_truncated_ciphertext_is_a_decryption_error():
    result = encrypt(b"x" * 40)
    with pytest.raises(DecryptionError):
        decrypt(result.ciphertext[:-3], result.key, result.iv, result.digest)


def test_repr_hides_key_material():
    result = encrypt(b"secret")
    text = repr(result)
    assert result.key.hex() not in text
    assert repr(result.key) not in text
    assert result.digest in text
