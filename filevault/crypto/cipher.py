"""
Cipher Engine

Encrypts file content with AES-256-CBC (PKCS7 padding) under a fresh key
and IV per file, and computes a detached SHA-256 digest of the plaintext.
Every read path decrypts and then verifies that digest.
"""

from contextlib import contextmanager
from dataclasses import dataclass
import hmac
import io
import os
from typing import BinaryIO, Optional, Union

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from filevault.errors import DecryptionError, EncryptionError, IntegrityError

ALGORITHM = "aes-256-cbc"
KEY_SIZE = 32
IV_SIZE = 16
CHUNK_SIZE = 64 * 1024

Readable = Union[bytes, bytearray, memoryview, BinaryIO]


@dataclass(frozen=True)
class CipherParams:
    """Key material and digest produced by one encryption."""

    algorithm: str
    key: bytes
    iv: bytes
    digest: str  # hex SHA-256 of plaintext
    plaintext_size: int
    ciphertext_size: int

    def __repr__(self) -> str:
        # keep key material out of tracebacks and log lines
        return (
            f"CipherParams(algorithm={self.algorithm!r}, digest={self.digest!r}, "
            f"plaintext_size={self.plaintext_size}, ciphertext_size={self.ciphertext_size})"
        )


@dataclass(frozen=True, repr=False)
class EncryptionResult:
    ciphertext: bytes
    params: CipherParams

    @property
    def key(self) -> bytes:
        return self.params.key

    @property
    def iv(self) -> bytes:
        return self.params.iv

    @property
    def digest(self) -> str:
        return self.params.digest

    def __repr__(self) -> str:
        return f"EncryptionResult(ciphertext=<{len(self.ciphertext)} bytes>, params={self.params!r})"


def generate_key() -> bytes:
    """Random 256-bit key; never reused across files."""
    return os.urandom(KEY_SIZE)


def generate_iv() -> bytes:
    return os.urandom(IV_SIZE)


def _as_reader(source: Readable) -> BinaryIO:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return io.BytesIO(bytes(source))
    return source


def _aes_cbc(key: bytes, iv: bytes) -> Cipher:
    return Cipher(algorithms.AES(key), modes.CBC(iv))


@contextmanager
def _cipher_errors(kind, action: str):
    # exception text from the backend is dropped so nothing key-related leaks
    try:
        yield
    except (ValueError, TypeError) as exc:
        raise kind(f"{action} failed: {type(exc).__name__}") from None


def compute_digest(data: bytes) -> str:
    """Compute the hex SHA-256 digest of data."""
    digest = hashes.Hash(hashes.SHA256())
    digest.update(data)
    return digest.finalize().hex()


def encrypt_stream(reader: BinaryIO, writer: BinaryIO, *, chunk_size: int = CHUNK_SIZE) -> CipherParams:
    """
    Encrypt everything readable from `reader` into `writer`.

    Args:
        reader: Binary file object holding the plaintext
        writer: Binary file object receiving the ciphertext
        chunk_size: Read size per iteration

    Returns:
        CipherParams with the freshly generated key, IV and plaintext digest
    """
    key = generate_key()
    iv = generate_iv()
    with _cipher_errors(EncryptionError, "encryption"):
        encryptor = _aes_cbc(key, iv).encryptor()
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
    digest = hashes.Hash(hashes.SHA256())
    plaintext_size = 0
    ciphertext_size = 0

    while True:
        chunk = reader.read(chunk_size)
        if not chunk:
            break
        plaintext_size += len(chunk)
        digest.update(chunk)
        with _cipher_errors(EncryptionError, "encryption"):
            block = encryptor.update(padder.update(chunk))
        ciphertext_size += len(block)
        writer.write(block)

    with _cipher_errors(EncryptionError, "encryption"):
        tail = encryptor.update(padder.finalize()) + encryptor.finalize()
    ciphertext_size += len(tail)
    writer.write(tail)

    return CipherParams(
        algorithm=ALGORITHM,
        key=key,
        iv=iv,
        digest=digest.finalize().hex(),
        plaintext_size=plaintext_size,
        ciphertext_size=ciphertext_size,
    )


def encrypt(plaintext: Readable) -> EncryptionResult:
    """Encrypt bytes (or a binary file object) and return ciphertext plus params."""
    out = io.BytesIO()
    params = encrypt_stream(_as_reader(plaintext), out)
    return EncryptionResult(ciphertext=out.getvalue(), params=params)


def decrypt_stream(
    reader: BinaryIO,
    writer: BinaryIO,
    key: bytes,
    iv: bytes,
    expected_digest: Optional[str] = None,
    *,
    chunk_size: int = CHUNK_SIZE,
) -> str:
    """
    Decrypt ciphertext from `reader` into `writer` and verify the digest.

    The writer receives plaintext before verification completes, so callers
    must treat its content as untrusted until this function returns.

    Args:
        reader: Binary file object holding the ciphertext
        writer: Binary file object receiving the plaintext
        key: 32-byte AES key
        iv: 16-byte CBC initialization vector
        expected_digest: Hex SHA-256 of the original plaintext, if known

    Returns:
        Hex digest of the decrypted plaintext

    Raises:
        DecryptionError: malformed key/IV, truncated ciphertext or bad padding
        IntegrityError: recomputed digest differs from `expected_digest`
    """
    if len(key) != KEY_SIZE or len(iv) != IV_SIZE:
        raise DecryptionError("invalid key or IV length")

    with _cipher_errors(DecryptionError, "decryption"):
        decryptor = _aes_cbc(key, iv).decryptor()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    digest = hashes.Hash(hashes.SHA256())

    while True:
        chunk = reader.read(chunk_size)
        if not chunk:
            break
        with _cipher_errors(DecryptionError, "decryption"):
            block = unpadder.update(decryptor.update(chunk))
        digest.update(block)
        writer.write(block)

    with _cipher_errors(DecryptionError, "decryption"):
        tail = unpadder.update(decryptor.finalize()) + unpadder.finalize()
    digest.update(tail)
    writer.write(tail)

    actual = digest.finalize().hex()
    if expected_digest is not None and not hmac.compare_digest(actual, expected_digest.lower()):
        raise IntegrityError("File integrity check failed: digest mismatch")
    return actual


def decrypt(ciphertext: Readable, key: bytes, iv: bytes, expected_digest: Optional[str] = None) -> bytes:
    """Decrypt bytes (or a binary file object) and return the verified plaintext."""
    out = io.BytesIO()
    decrypt_stream(_as_reader(ciphertext), out, key, iv, expected_digest)
    return out.getvalue()
