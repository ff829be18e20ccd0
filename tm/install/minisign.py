"""Minisign signature verification.

Key and signature layout (base64 payloads):

    public key   "Ed" | key_id[8] | ed25519_public_key[32]
    signature    untrusted comment line
                 "Ed"|"ED" | key_id[8] | ed25519_signature[64]
                 "trusted comment: <text>"
                 global_signature[64] over signature || <text>

"ED" signatures are computed over the BLAKE2b-512 hash of the file,
legacy "Ed" signatures over the file itself.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
from dataclasses import dataclass
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from tm.core.result import Err, Ok, Result

__all__ = ["MinisignError", "PublicKey", "Signature", "verify_file", "verify_bytes"]

_TRUSTED_PREFIX = "trusted comment: "
_CHUNK = 1024 * 1024


class MinisignError(ValueError):
    """Malformed key or signature."""


def _b64(text: str, what: str) -> bytes:
    try:
        return base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise MinisignError(f"{what} is not valid base64") from e


@dataclass(frozen=True, slots=True)
class PublicKey:
    key_id: bytes
    key: bytes

    @classmethod
    def parse(cls, text: str) -> PublicKey:
        """Parse a bare base64 key or the contents of a .pub file."""
        lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
        lines = [line for line in lines if not line.startswith("untrusted comment:")]
        if len(lines) != 1:
            raise MinisignError("public key must be a single base64 line")
        raw = _b64(lines[0], "public key")
        if len(raw) != 42 or raw[:2] != b"Ed":
            raise MinisignError("unsupported public key format")
        return cls(key_id=raw[2:10], key=raw[10:])


@dataclass(frozen=True, slots=True)
class Signature:
    algorithm: bytes
    key_id: bytes
    signature: bytes
    trusted_comment: str
    global_signature: bytes

    @property
    def prehashed(self) -> bool:
        return self.algorithm == b"ED"

    @classmethod
    def parse(cls, text: str) -> Signature:
        lines = [line.rstrip("\r") for line in text.strip().splitlines()]
        if len(lines) < 4 or not lines[2].startswith(_TRUSTED_PREFIX):
            raise MinisignError("signature file is incomplete")

        raw = _b64(lines[1], "signature")
        if len(raw) != 74 or raw[:2] not in (b"Ed", b"ED"):
            raise MinisignError("unsupported signature algorithm")
        global_signature = _b64(lines[3], "global signature")
        if len(global_signature) != 64:
            raise MinisignError("global signature has the wrong length")

        return cls(
            algorithm=raw[:2],
            key_id=raw[2:10],
            signature=raw[10:],
            trusted_comment=lines[2][len(_TRUSTED_PREFIX) :],
            global_signature=global_signature,
        )


def _check(key: PublicKey, sig: Signature, message: bytes) -> Result[str, str]:
    if key.key_id != sig.key_id:
        return Err(
            f"signature key id {sig.key_id[::-1].hex().upper()} does not match "
            f"public key {key.key_id[::-1].hex().upper()}"
        )
    verifier = Ed25519PublicKey.from_public_bytes(key.key)
    try:
        verifier.verify(sig.signature, message)
    except InvalidSignature:
        return Err("signature verification failed")
    try:
        verifier.verify(sig.global_signature, sig.signature + sig.trusted_comment.encode())
    except InvalidSignature:
        return Err("trusted comment signature verification failed")
    return Ok(sig.trusted_comment)


def verify_bytes(public_key: str, signature: str, data: bytes) -> Result[str, str]:
    """Verify data against a minisign signature.

    Returns:
        Ok(trusted comment) on success, Err(reason) otherwise
    """
    try:
        key = PublicKey.parse(public_key)
        sig = Signature.parse(signature)
    except MinisignError as e:
        return Err(str(e))
    message = hashlib.blake2b(data, digest_size=64).digest() if sig.prehashed else data
    return _check(key, sig, message)


def verify_file(public_key: str, signature: str, path: Path) -> Result[str, str]:
    """Like verify_bytes, streaming the file for prehashed signatures."""
    try:
        key = PublicKey.parse(public_key)
        sig = Signature.parse(signature)
    except MinisignError as e:
        return Err(str(e))

    if not sig.prehashed:
        return _check(key, sig, path.read_bytes())

    digest = hashlib.blake2b(digest_size=64)
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            digest.update(chunk)
    return _check(key, sig, digest.digest())
