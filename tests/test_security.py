"""Unit tests for app.core.security: bcrypt hashing, JWT signing and refresh-token format."""

import time
import unittest

import jwt

from app.core.errors import SigningError
from app.core.security import (
    decode_access_token,
    dummy_password_hash,
    encode_access_token,
    generate_refresh_token,
    hash_password,
    is_well_formed_refresh_token,
    verify_password,
)
from tests.support import make_settings


def _claims(**overrides: object) -> dict:
    now = int(time.time())
    claims = {"sub": "u1", "iat": now, "exp": now + 60, "iss": "taskify"}
    claims.update(overrides)
    return claims


class TestPasswordHashing(unittest.TestCase):
    def test_verify_accepts_original_password(self) -> None:
        hashed = hash_password("secret1")
        self.assertTrue(verify_password("secret1", hashed))

    def test_verify_rejects_other_password(self) -> None:
        hashed = hash_password("secret1")
        self.assertFalse(verify_password("secret2", hashed))

    def test_long_passwords_differing_after_72_bytes(self) -> None:
        hashed = hash_password("a" * 72 + "right")
        self.assertTrue(verify_password("a" * 72 + "right", hashed))
        self.assertFalse(verify_password("a" * 72 + "wrong", hashed))

    def test_multibyte_passwords_differing_after_72_bytes(self) -> None:
        hashed = hash_password("é" * 36 + "right")
        self.assertTrue(verify_password("é" * 36 + "right", hashed))
        self.assertFalse(verify_password("é" * 36 + "other", hashed))

    def test_maximum_length_password_round_trips(self) -> None:
        password = "密" * 128
        hashed = hash_password(password)
        self.assertTrue(verify_password(password, hashed))
        self.assertFalse(verify_password("密" * 127, hashed))

    def test_unencodable_password_never_verifies(self) -> None:
        self.assertFalse(verify_password("\ud800secret", hash_password("secret1")))

    def test_hashes_are_salted(self) -> None:
        self.assertNotEqual(hash_password("secret1"), hash_password("secret1"))

    def test_malformed_hash_returns_false(self) -> None:
        self.assertFalse(verify_password("secret1", "not-a-bcrypt-hash"))

    def test_dummy_hash_is_a_valid_bcrypt_hash(self) -> None:
        self.assertTrue(dummy_password_hash().startswith("$2"))
        self.assertFalse(verify_password("secret1", dummy_password_hash()))


class TestAccessTokens(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = make_settings()

    def test_round_trip(self) -> None:
        token = encode_access_token(_claims(user_id="abc"), self.settings)
        payload = decode_access_token(token, self.settings)
        self.assertEqual(payload["sub"], "u1")
        self.assertEqual(payload["user_id"], "abc")

    def test_token_is_compact_jws(self) -> None:
        token = encode_access_token(_claims(), self.settings)
        self.assertEqual(token.count("."), 2)

    def test_wrong_key_rejected(self) -> None:
        token = encode_access_token(_claims(), self.settings)
        other = make_settings(JWT_SECRET="a-completely-different-secret")
        with self.assertRaises(jwt.InvalidSignatureError):
            decode_access_token(token, other)

    def test_tampered_payload_rejected(self) -> None:
        token = encode_access_token(_claims(), self.settings)
        header, _payload, signature = token.split(".")
        forged = encode_access_token(_claims(sub="someone-else"), self.settings).split(".")[1]
        with self.assertRaises(jwt.PyJWTError):
            decode_access_token(f"{header}.{forged}.{signature}", self.settings)

    def test_expired_token_rejected(self) -> None:
        past = int(time.time()) - 120
        token = encode_access_token(_claims(iat=past, exp=past + 60), self.settings)
        with self.assertRaises(jwt.ExpiredSignatureError):
            decode_access_token(token, self.settings)

    def test_wrong_issuer_rejected(self) -> None:
        token = encode_access_token(_claims(iss="elsewhere"), self.settings)
        with self.assertRaises(jwt.InvalidIssuerError):
            decode_access_token(token, self.settings)

    def test_missing_subject_rejected(self) -> None:
        claims = _claims()
        del claims["sub"]
        token = encode_access_token(claims, self.settings)
        with self.assertRaises(jwt.MissingRequiredClaimError):
            decode_access_token(token, self.settings)

    def test_unserializable_claims_raise_signing_error(self) -> None:
        with self.assertRaises(SigningError):
            encode_access_token(_claims(bad=object()), self.settings)


class TestRefreshTokenFormat(unittest.TestCase):
    def test_generated_tokens_are_well_formed_and_unique(self) -> None:
        tokens = {generate_refresh_token() for _ in range(50)}
        self.assertEqual(len(tokens), 50)
        for token in tokens:
            self.assertEqual(len(token), 43)
            self.assertTrue(is_well_formed_refresh_token(token))

    def test_rejects_wrong_length_and_alphabet(self) -> None:
        self.assertFalse(is_well_formed_refresh_token(""))
        self.assertFalse(is_well_formed_refresh_token("a" * 42))
        self.assertFalse(is_well_formed_refresh_token("a" * 44))
        self.assertFalse(is_well_formed_refresh_token("a" * 42 + "="))
        self.assertFalse(is_well_formed_refresh_token("a" * 42 + "\n"))
        self.assertFalse(is_well_formed_refresh_token("a" * 43 + "\n"))
