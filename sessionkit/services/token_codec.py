from __future__ import annotations

import base64
import hashlib
import time
from typing import Callable, Generic, TypeVar

from cryptography.fernet import Fernet, InvalidToken, MultiFernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from itsdangerous import BadData, BadSignature, Signer
from itsdangerous.encoding import base64_decode, base64_encode

from sessionkit.config import SessionConfig
from sessionkit.errors import DecodeError, DecodeErrorKind
from sessionkit.services.serializers import SessionSerializer

T = TypeVar("T")

SEP = b"."
_ENCRYPTION_INFO = b"sessionkit.encryption"


def _derive_fernet_key(secret: str, salt: str) -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt.encode("utf-8"),
        info=_ENCRYPTION_INFO,
    )
    return base64.urlsafe_b64encode(hkdf.derive(secret.encode("utf-8")))


class TokenCodec(Generic[T]):
    """
    Stateless session token codec.

    Token layout: ``base64url(payload) . base64url(expiry) . signature``

    - signature: HMAC-SHA256 over ``payload.expiry`` (itsdangerous Signer,
      key derived from the server secret and the signing salt)
    - encrypt_data=True: payload bytes are a Fernet ciphertext, signed afterwards
    - empty expiry segment: the token never expires
    - expired when ``now >= expiry`` (seconds since epoch, server clock)

    Previous secrets keep verifying / decrypting old tokens; new tokens
    always use the current secret.
    """

    def __init__(
        self,
        config: SessionConfig,
        serializer: SessionSerializer[T],
        clock: Callable[[], float] = time.time,
    ):
        self._serializer = serializer
        self._clock = clock
        self._signer = Signer(
            config.signing_secrets,
            salt=config.signing_salt,
            sep=SEP,
            key_derivation="hmac",
            digest_method=hashlib.sha256,
        )
        self._fernet: MultiFernet | None = None
        if config.encrypt_data:
            # MultiFernet encrypts with the first key -> newest first
            self._fernet = MultiFernet(
                [Fernet(_derive_fernet_key(s, config.signing_salt)) for s in reversed(config.signing_secrets)]
            )

    def encode(self, payload: T, expires_at: float | None = None) -> str:
        data = self._serializer.serialize(payload).encode("utf-8")
        if self._fernet is not None:
            data = self._fernet.encrypt(data)
        expiry = b"" if expires_at is None else str(int(expires_at)).encode("ascii")
        value = base64_encode(data) + SEP + base64_encode(expiry)
        return self._signer.sign(value).decode("ascii")

    def encode_for(self, payload: T, max_age: int | None) -> str:
        """Encode with expiry ``now + max_age`` (no expiry when max_age is None)."""
        expires_at = None if max_age is None else self._clock() + max_age
        return self.encode(payload, expires_at)

    def decode(self, token: str) -> T:
        """Return the payload or raise DecodeError. Expiry is checked after the signature."""
        payload_b64, expiry_b64 = self._unsign(token)

        try:
            expiry_raw = base64_decode(expiry_b64)
            expires_at = int(expiry_raw) if expiry_raw else None
        except (BadData, ValueError):
            raise DecodeError(DecodeErrorKind.MALFORMED, "invalid expiry segment")

        if expires_at is not None and self._clock() >= expires_at:
            raise DecodeError(DecodeErrorKind.EXPIRED)

        try:
            data = base64_decode(payload_b64)
        except BadData:
            raise DecodeError(DecodeErrorKind.MALFORMED, "invalid payload segment")

        if self._fernet is not None:
            try:
                data = self._fernet.decrypt(data)
            except InvalidToken:
                raise DecodeError(DecodeErrorKind.MALFORMED, "payload cannot be decrypted")

        try:
            return self._serializer.deserialize(data.decode("utf-8"))
        except ValueError:
            # UnicodeDecodeError is a ValueError too
            raise DecodeError(DecodeErrorKind.MALFORMED, "payload cannot be deserialized")

    def verify_signature(self, token: str) -> bool:
        """Signature-only check: True for well-formed, untampered tokens, expired or not."""
        try:
            self._unsign(token)
        except DecodeError:
            return False
        return True

    def _unsign(self, token: str) -> tuple[bytes, bytes]:
        if not token:
            raise DecodeError(DecodeErrorKind.MALFORMED, "empty token")
        # anything wrong past the second separator belongs to the signature
        parts = token.split(".", 2)
        if len(parts) != 3:
            raise DecodeError(DecodeErrorKind.MALFORMED, "expected 3 segments")
        try:
            head = f"{parts[0]}.{parts[1]}".encode("ascii")
        except UnicodeEncodeError:
            raise DecodeError(DecodeErrorKind.MALFORMED, "non-ascii token")
        try:
            signature = parts[2].encode("ascii")
        except UnicodeEncodeError:
            raise DecodeError(DecodeErrorKind.BAD_SIGNATURE)

        # base64 trailing bits are ignored on decode; only the canonical form is accepted
        try:
            canonical = SEP not in signature and base64_encode(base64_decode(signature)) == signature
        except BadData:
            canonical = False
        if not canonical:
            raise DecodeError(DecodeErrorKind.BAD_SIGNATURE)

        try:
            value = self._signer.unsign(head + SEP + signature)
        except BadSignature:
            raise DecodeError(DecodeErrorKind.BAD_SIGNATURE)

        payload_b64, expiry_b64 = value.split(SEP)
        return payload_b64, expiry_b64
