"""Tests for the redirect / POST binding codecs."""

from __future__ import annotations

import base64
from urllib.parse import parse_qsl, quote, unquote

import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from saml_sso.saml.bindings import (
    SIG_RSA_SHA256,
    SIG_RSA_SHA512,
    BindingError,
    build_redirect_query,
    decode_and_inflate,
    decode_post_payload,
    deflate_and_encode,
    resolve_signature_algorithm,
)


@pytest.fixture(scope="module")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _pem(key, password: bytes | None = None) -> str:
    encryption = (
        serialization.BestAvailableEncryption(password)
        if password
        else serialization.NoEncryption()
    )
    return key.private_bytes(
        serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, encryption
    ).decode("ascii")


class TestDeflate:
    def test_payload_is_raw_deflate(self) -> None:
        encoded = deflate_and_encode("<samlp:AuthnRequest/>")

        assert decode_and_inflate(encoded) == "<samlp:AuthnRequest/>"
        # raw DEFLATE has no zlib header byte 0x78
        assert base64.b64decode(encoded)[0] != 0x78

    def test_garbage_raises_binding_error(self) -> None:
        with pytest.raises(BindingError):
            decode_and_inflate("not base64!!")


class TestDecodePostPayload:
    def test_decodes_line_wrapped_base64(self) -> None:
        encoded = base64.b64encode(b"<Response/>").decode("ascii")
        wrapped = f"{encoded[:4]}\n{encoded[4:]}\r\n"

        assert decode_post_payload(wrapped, 1024) == b"<Response/>"

    def test_empty_payload_rejected(self) -> None:
        with pytest.raises(BindingError, match="empty"):
            decode_post_payload("   ", 1024)

    def test_invalid_base64_rejected(self) -> None:
        with pytest.raises(BindingError, match="base64"):
            decode_post_payload("@@@@", 1024)

    def test_oversized_payload_rejected(self) -> None:
        encoded = base64.b64encode(b"x" * 2048).decode("ascii")

        with pytest.raises(BindingError, match="maximum"):
            decode_post_payload(encoded, 1024)

    def test_payload_at_limit_accepted(self) -> None:
        encoded = base64.b64encode(b"x" * 1024).decode("ascii")

        assert len(decode_post_payload(encoded, 1024)) == 1024


class TestSignatureAlgorithm:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [(None, SIG_RSA_SHA256), ("sha256", SIG_RSA_SHA256), ("SHA512", SIG_RSA_SHA512)],
    )
    def test_resolves_aliases(self, name, expected) -> None:
        assert resolve_signature_algorithm(name) == expected

    def test_full_uri_accepted(self) -> None:
        assert resolve_signature_algorithm(SIG_RSA_SHA512) == SIG_RSA_SHA512

    def test_unknown_algorithm_rejected(self) -> None:
        with pytest.raises(BindingError, match="Unsupported"):
            resolve_signature_algorithm("md5")


class TestBuildRedirectQuery:
    def test_unsigned_query(self) -> None:
        query = build_redirect_query(
            [("SAMLRequest", "abc+/="), ("RelayState", "/app?x=1"), ("prompt", "login")]
        )

        assert query == "SAMLRequest=abc%2B%2F%3D&RelayState=%2Fapp%3Fx%3D1&prompt=login"

    def test_signed_query_verifies(self, rsa_key: rsa.RSAPrivateKey) -> None:
        query = build_redirect_query(
            [("SAMLRequest", "abc"), ("RelayState", "/app"), ("prompt", "login")],
            private_key_pem=_pem(rsa_key),
        )

        signed_part, _, rest = query.partition("&Signature=")
        signature_value, _, extra = rest.partition("&")
        assert signed_part.endswith(f"SigAlg={quote(SIG_RSA_SHA256, safe='')}")
        assert extra == "prompt=login"

        signature = base64.b64decode(unquote(signature_value))
        rsa_key.public_key().verify(
            signature, signed_part.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256()
        )

    def test_tampered_query_fails_verification(self, rsa_key: rsa.RSAPrivateKey) -> None:
        query = build_redirect_query([("SAMLRequest", "abc")], private_key_pem=_pem(rsa_key))
        params = dict(parse_qsl(query))
        signed_part = query.partition("&Signature=")[0]

        with pytest.raises(InvalidSignature):
            rsa_key.public_key().verify(
                base64.b64decode(params["Signature"]),
                signed_part.replace("abc", "abd").encode("utf-8"),
                padding.PKCS1v15(),
                hashes.SHA256(),
            )

    def test_encrypted_key_with_passphrase(self, rsa_key: rsa.RSAPrivateKey) -> None:
        query = build_redirect_query(
            [("SAMLRequest", "abc")],
            private_key_pem=_pem(rsa_key, b"s3cret"),
            passphrase="s3cret",
            signature_algorithm="sha512",
        )

        assert "Signature=" in query
        assert dict(parse_qsl(query))["SigAlg"] == SIG_RSA_SHA512

    def test_invalid_key_raises_binding_error(self) -> None:
        with pytest.raises(BindingError, match="could not be loaded"):
            build_redirect_query([("SAMLRequest", "abc")], private_key_pem="not a key")

    def test_non_rsa_key_rejected(self) -> None:
        ec_key = ec.generate_private_key(ec.SECP256R1())

        with pytest.raises(BindingError, match="RSA"):
            build_redirect_query([("SAMLRequest", "abc")], private_key_pem=_pem(ec_key))
