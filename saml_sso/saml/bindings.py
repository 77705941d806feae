"""HTTP-Redirect and HTTP-POST binding codecs.

Redirect binding: the protocol message is raw-DEFLATE compressed, base64
encoded and placed in the ``SAMLRequest`` query parameter. When the request
must be signed, the signature covers the exact octets of
``SAMLRequest=...&RelayState=...&SigAlg=...`` as they appear in the URL.

POST binding: the message is plain base64 in a form field.
"""

from __future__ import annotations

import base64
import binascii
import zlib
from urllib.parse import quote

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

SIG_RSA_SHA1 = "http://www.w3.org/2000/09/xmldsig#rsa-sha1"
SIG_RSA_SHA256 = "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256"
SIG_RSA_SHA512 = "http://www.w3.org/2001/04/xmldsig-more#rsa-sha512"

_SIGNATURE_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    SIG_RSA_SHA1: hashes.SHA1,
    SIG_RSA_SHA256: hashes.SHA256,
    SIG_RSA_SHA512: hashes.SHA512,
}

# Short names accepted in SAMLConfig.signatureAlgorithm / digestAlgorithm
SIGNATURE_ALIASES = {
    "sha1": SIG_RSA_SHA1,
    "sha256": SIG_RSA_SHA256,
    "sha512": SIG_RSA_SHA512,
}
DIGEST_ALIASES = {
    "sha1": "http://www.w3.org/2000/09/xmldsig#sha1",
    "sha256": "http://www.w3.org/2001/04/xmlenc#sha256",
    "sha512": "http://www.w3.org/2001/04/xmlenc#sha512",
}

DEFAULT_SIGNATURE_ALGORITHM = SIG_RSA_SHA256


class BindingError(ValueError):
    """Raised when a binding payload cannot be encoded, decoded or signed."""


def deflate_and_encode(data: str) -> str:
    """Deflate (raw) + base64-encode a string for SAML redirect binding."""
    compressed = zlib.compress(data.encode("utf-8"))[2:-4]  # strip zlib header/trailer
    return base64.b64encode(compressed).decode("ascii")


def decode_and_inflate(data: str) -> str:
    """Inverse of :func:`deflate_and_encode`."""
    try:
        raw = base64.b64decode(data, validate=True)
        return zlib.decompress(raw, -zlib.MAX_WBITS).decode("utf-8")
    except (binascii.Error, zlib.error, UnicodeDecodeError) as exc:
        raise BindingError(f"Redirect payload is not valid DEFLATE/base64: {exc}") from exc


def decode_post_payload(payload: str, max_bytes: int) -> bytes:
    """Base64-decode a POST-binding message, enforcing a size cap.

    Whitespace (line-wrapped base64 from some IdPs) is ignored.
    """
    compact = "".join(payload.split())
    if not compact:
        raise BindingError("SAMLResponse is empty.")
    # base64 expands by 4/3; reject before decoding anything oversized
    if len(compact) > (max_bytes * 4) // 3 + 4:
        raise BindingError("SAMLResponse exceeds the maximum accepted size.")
    try:
        decoded = base64.b64decode(compact, validate=True)
    except binascii.Error as exc:
        raise BindingError(f"SAMLResponse is not valid base64: {exc}") from exc
    if len(decoded) > max_bytes:
        raise BindingError("SAMLResponse exceeds the maximum accepted size.")
    return decoded


def resolve_signature_algorithm(name: str | None) -> str:
    if not name:
        return DEFAULT_SIGNATURE_ALGORITHM
    uri = SIGNATURE_ALIASES.get(name.lower(), name)
    if uri not in _SIGNATURE_HASHES:
        raise BindingError(f"Unsupported signature algorithm: {name}")
    return uri


def _load_private_key(private_key_pem: str, passphrase: str | None) -> rsa.RSAPrivateKey:
    try:
        key = serialization.load_pem_private_key(
            private_key_pem.encode("utf-8"),
            password=passphrase.encode("utf-8") if passphrase else None,
        )
    except (ValueError, TypeError) as exc:
        raise BindingError(f"SP private key could not be loaded: {exc}") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise BindingError("SP private key must be an RSA key.")
    return key


def build_redirect_query(
    params: list[tuple[str, str]],
    *,
    private_key_pem: str | None = None,
    passphrase: str | None = None,
    signature_algorithm: str | None = None,
) -> str:
    """Encode redirect-binding query parameters, optionally signed.

    ``params`` must start with the protocol message parameter followed by
    ``RelayState`` when present; extension parameters may follow and are
    not covered by the signature.
    """
    protocol = [(k, v) for k, v in params if k in ("SAMLRequest", "SAMLResponse", "RelayState")]
    extra = [(k, v) for k, v in params if k not in ("SAMLRequest", "SAMLResponse", "RelayState")]

    parts = [f"{k}={quote(v, safe='')}" for k, v in protocol]
    if private_key_pem:
        sig_alg = resolve_signature_algorithm(signature_algorithm)
        parts.append(f"SigAlg={quote(sig_alg, safe='')}")
        signed_octets = "&".join(parts).encode("utf-8")
        key = _load_private_key(private_key_pem, passphrase)
        signature = key.sign(
            signed_octets, padding.PKCS1v15(), _SIGNATURE_HASHES[sig_alg]()
        )
        parts.append(
            f"Signature={quote(base64.b64encode(signature).decode('ascii'), safe='')}"
        )
    parts.extend(f"{quote(k, safe='')}={quote(v, safe='')}" for k, v in extra)
    return "&".join(parts)
