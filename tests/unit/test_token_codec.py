"""TokenCodec: round-trip, tamper detection, expiry, encryption, key rotation."""
from __future__ import annotations

import string

import pytest
from itsdangerous.encoding import base64_decode, base64_encode
from pydantic import BaseModel

from sessionkit.errors import DecodeError, DecodeErrorKind
from sessionkit.services.serializers import JsonSerializer, ModelSerializer, StringSerializer
from sessionkit.services.token_codec import TokenCodec
from tests.helpers import OTHER_SECRET, SECRET

B64_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + "-_"


class UserSession(BaseModel):
    username: str
    role: str = "user"


@pytest.fixture
def codec(config, clock) -> TokenCodec:
    return TokenCodec(config, StringSerializer(), clock)


def _decode_kind(codec: TokenCodec, token: str) -> DecodeErrorKind:
    with pytest.raises(DecodeError) as exc:
        codec.decode(token)
    return exc.value.kind


# ---------------------------------------------------------------------------
# Round-trip
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestRoundTrip:
    @pytest.mark.parametrize(
        "payload",
        ["alice", "", "ünïcødé ✓", "a.b:c;d=e", "x" * 2000],
    )
    def test_decode_returns_encoded_payload(self, codec, clock, payload):
        token = codec.encode(payload, clock.now + 60)
        assert codec.decode(token) == payload

    def test_token_has_three_segments(self, codec, clock):
        token = codec.encode("alice", clock.now + 60)
        assert token.count(".") == 2

    def test_payload_segment_is_base64url_of_payload(self, codec, clock):
        token = codec.encode("alice", clock.now + 60)
        payload_b64, expiry_b64, _ = token.split(".")
        assert base64_decode(payload_b64) == b"alice"
        assert base64_decode(expiry_b64) == str(int(clock.now + 60)).encode()

    def test_no_expiry_never_expires(self, codec, clock):
        token = codec.encode("alice")
        clock.advance(10 * 365 * 24 * 3600)
        assert codec.decode(token) == "alice"

    def test_encode_for_uses_clock(self, codec, clock):
        token = codec.encode_for("alice", 30)
        clock.advance(29)
        assert codec.decode(token) == "alice"
        clock.advance(1)
        assert _decode_kind(codec, token) is DecodeErrorKind.EXPIRED

    def test_json_payload(self, config, clock):
        codec = TokenCodec(config, JsonSerializer(), clock)
        payload = {"uid": "42", "roles": ["admin", "user"]}
        assert codec.decode(codec.encode(payload, clock.now + 60)) == payload

    def test_model_payload(self, config, clock):
        codec = TokenCodec(config, ModelSerializer(UserSession), clock)
        payload = UserSession(username="alice", role="admin")
        assert codec.decode(codec.encode(payload, clock.now + 60)) == payload


# ---------------------------------------------------------------------------
# Tamper detection
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestTamperDetection:
    def test_flipping_any_signature_bit_is_bad_signature(self, codec, clock):
        token = codec.encode("alice", clock.now + 60)
        head, sig = token.rsplit(".", 1)
        raw = base64_decode(sig)
        for i in range(len(raw)):
            for bit in range(8):
                flipped = bytearray(raw)
                flipped[i] ^= 1 << bit
                forged = f"{head}.{base64_encode(bytes(flipped)).decode()}"
                assert _decode_kind(codec, forged) is DecodeErrorKind.BAD_SIGNATURE

    def test_flipping_any_signature_character_bit_is_bad_signature(self, codec, clock):
        """Covers flips that leave the base64 alphabet: non-ascii, '.', control chars."""
        token = codec.encode("alice", clock.now + 60)
        head, sig = token.rsplit(".", 1)
        for i, ch in enumerate(sig):
            for bit in range(8):
                forged_sig = sig[:i] + chr(ord(ch) ^ (1 << bit)) + sig[i + 1 :]
                assert _decode_kind(codec, f"{head}.{forged_sig}") is DecodeErrorKind.BAD_SIGNATURE

    def test_extra_separator_in_signature_is_bad_signature(self, codec, clock):
        token = codec.encode("alice", clock.now + 60)
        assert _decode_kind(codec, token + ".x") is DecodeErrorKind.BAD_SIGNATURE
        assert codec.verify_signature(token + ".x") is False

    def test_non_canonical_signature_encoding_is_rejected(self, codec, clock):
        """Changing ignored base64 trailing bits must not keep the token valid."""
        token = codec.encode("alice", clock.now + 60)
        head, sig = token.rsplit(".", 1)
        twin = B64_ALPHABET[B64_ALPHABET.index(sig[-1]) ^ 1]
        forged_sig = sig[:-1] + twin
        assert base64_decode(forged_sig) == base64_decode(sig)
        assert _decode_kind(codec, f"{head}.{forged_sig}") is DecodeErrorKind.BAD_SIGNATURE

    def test_swapped_payload_is_bad_signature(self, codec, clock):
        token = codec.encode("alice", clock.now + 60)
        _, expiry_b64, sig = token.split(".")
        forged = f"{base64_encode(b'mallory').decode()}.{expiry_b64}.{sig}"
        assert _decode_kind(codec, forged) is DecodeErrorKind.BAD_SIGNATURE

    def test_extended_expiry_is_bad_signature(self, codec, clock):
        token = codec.encode("alice", clock.now + 60)
        payload_b64, _, sig = token.split(".")
        later = base64_encode(str(int(clock.now + 99999)).encode()).decode()
        assert _decode_kind(codec, f"{payload_b64}.{later}.{sig}") is DecodeErrorKind.BAD_SIGNATURE

    def test_removed_expiry_is_bad_signature(self, codec, clock):
        token = codec.encode("alice", clock.now + 60)
        payload_b64, _, sig = token.split(".")
        assert _decode_kind(codec, f"{payload_b64}..{sig}") is DecodeErrorKind.BAD_SIGNATURE

    def test_other_secret_is_bad_signature(self, codec, make_config, clock):
        foreign = TokenCodec(make_config(server_secret=OTHER_SECRET), StringSerializer(), clock)
        token = foreign.encode("alice", clock.now + 60)
        assert _decode_kind(codec, token) is DecodeErrorKind.BAD_SIGNATURE

    def test_other_salt_is_bad_signature(self, codec, make_config, clock):
        foreign = TokenCodec(make_config(signing_salt="another.deployment"), StringSerializer(), clock)
        token = foreign.encode("alice", clock.now + 60)
        assert _decode_kind(codec, token) is DecodeErrorKind.BAD_SIGNATURE

    def test_tampered_expired_token_reports_bad_signature(self, codec, clock):
        """Signature is checked before expiry: tampering is never reported as expiry."""
        token = codec.encode("alice", clock.now + 60)
        _, expiry_b64, sig = token.split(".")
        forged = f"{base64_encode(b'mallory').decode()}.{expiry_b64}.{sig}"
        clock.advance(3600)
        assert _decode_kind(codec, forged) is DecodeErrorKind.BAD_SIGNATURE

    def test_decode_error_flags_tampering(self, codec):
        with pytest.raises(DecodeError) as exc:
            codec.decode("a.b.c")
        assert exc.value.is_tampering


# ---------------------------------------------------------------------------
# Malformed input
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestMalformed:
    @pytest.mark.parametrize("token", ["", "abc", "a.b", "ümlaut.x.y", "a.ü.y"])
    def test_wrong_structure_is_malformed(self, codec, token):
        assert _decode_kind(codec, token) is DecodeErrorKind.MALFORMED

    def test_signed_but_undeserializable_payload_is_malformed(self, config, clock):
        text_codec = TokenCodec(config, StringSerializer(), clock)
        json_codec = TokenCodec(config, JsonSerializer(), clock)
        token = text_codec.encode("{not json", clock.now + 60)
        assert _decode_kind(json_codec, token) is DecodeErrorKind.MALFORMED

    def test_malformed_is_not_expired(self, codec):
        with pytest.raises(DecodeError) as exc:
            codec.decode("abc")
        assert exc.value.kind is not DecodeErrorKind.EXPIRED


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestExpiry:
    def test_valid_until_one_second_before_expiry(self, codec, clock):
        token = codec.encode("alice", clock.now + 60)
        clock.advance(59)
        assert codec.decode(token) == "alice"

    def test_expired_at_exact_expiry(self, codec, clock):
        token = codec.encode("alice", clock.now + 60)
        clock.advance(60)
        assert _decode_kind(codec, token) is DecodeErrorKind.EXPIRED

    def test_expired_token_still_has_valid_signature(self, codec, clock):
        token = codec.encode("alice", clock.now - 1)
        assert _decode_kind(codec, token) is DecodeErrorKind.EXPIRED
        assert codec.verify_signature(token) is True

    def test_expired_error_is_not_tampering(self, codec, clock):
        token = codec.encode("alice", clock.now - 1)
        with pytest.raises(DecodeError) as exc:
            codec.decode(token)
        assert not exc.value.is_tampering

    def test_verify_signature_false_for_tampered(self, codec, clock):
        token = codec.encode("alice", clock.now + 60)
        _, expiry_b64, sig = token.split(".")
        forged = f"{base64_encode(b'mallory').decode()}.{expiry_b64}.{sig}"
        assert codec.verify_signature(forged) is False

    def test_verify_signature_false_for_garbage(self, codec):
        assert codec.verify_signature("not-a-token") is False


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestEncryption:
    @pytest.fixture
    def secret_codec(self, make_config, clock) -> TokenCodec:
        return TokenCodec(make_config(encrypt_data=True), StringSerializer(), clock)

    def test_round_trip(self, secret_codec, clock):
        token = secret_codec.encode("alice", clock.now + 60)
        assert secret_codec.decode(token) == "alice"

    def test_payload_is_not_readable(self, secret_codec, clock):
        token = secret_codec.encode("alice-secret-payload", clock.now + 60)
        payload_b64 = token.split(".")[0]
        assert b"alice-secret-payload" not in base64_decode(payload_b64)
        assert "alice-secret-payload" not in token

    def test_same_payload_encrypts_differently(self, secret_codec, clock):
        a = secret_codec.encode("alice", clock.now + 60)
        b = secret_codec.encode("alice", clock.now + 60)
        assert a.split(".")[0] != b.split(".")[0]

    def test_tampered_ciphertext_is_bad_signature(self, secret_codec, clock):
        token = secret_codec.encode("alice", clock.now + 60)
        payload_b64, expiry_b64, sig = token.split(".")
        data = bytearray(base64_decode(payload_b64))
        data[10] ^= 0x01
        forged = f"{base64_encode(bytes(data)).decode()}.{expiry_b64}.{sig}"
        assert _decode_kind(secret_codec, forged) is DecodeErrorKind.BAD_SIGNATURE

    def test_expiry_checked_for_encrypted_tokens(self, secret_codec, clock):
        token = secret_codec.encode("alice", clock.now + 60)
        clock.advance(60)
        assert _decode_kind(secret_codec, token) is DecodeErrorKind.EXPIRED


# ---------------------------------------------------------------------------
# Key rotation
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestKeyRotation:
    def test_previous_secret_still_verifies(self, make_config, clock):
        old = TokenCodec(make_config(server_secret=OTHER_SECRET), StringSerializer(), clock)
        rotated = TokenCodec(
            make_config(server_secret=SECRET, previous_secrets=[OTHER_SECRET]), StringSerializer(), clock
        )
        token = old.encode("alice", clock.now + 60)
        assert rotated.decode(token) == "alice"

    def test_new_tokens_use_current_secret(self, make_config, clock):
        old = TokenCodec(make_config(server_secret=OTHER_SECRET), StringSerializer(), clock)
        rotated = TokenCodec(
            make_config(server_secret=SECRET, previous_secrets=[OTHER_SECRET]), StringSerializer(), clock
        )
        token = rotated.encode("alice", clock.now + 60)
        assert _decode_kind(old, token) is DecodeErrorKind.BAD_SIGNATURE

    def test_previous_secret_still_decrypts(self, make_config, clock):
        old = TokenCodec(make_config(server_secret=OTHER_SECRET, encrypt_data=True), StringSerializer(), clock)
        rotated = TokenCodec(
            make_config(server_secret=SECRET, previous_secrets=[OTHER_SECRET], encrypt_data=True),
            StringSerializer(),
            clock,
        )
        token = old.encode("alice", clock.now + 60)
        assert rotated.decode(token) == "alice"
