"""Paymentwall pingback signature verification.

Paymentwall signs every pingback with::

    sig = MD5(k1=v1k2=v2...kn=vn + secret_key)

where the keys are every query parameter except ``sig`` itself, sorted,
joined with no delimiter.  The exact byte string is part of the partner's
signing contract, so the canonical form must never gain separators or
whitespace.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from collections.abc import Mapping

logger = logging.getLogger(__name__)

SIGNATURE_PARAM = "sig"


def compute_digest(data: bytes) -> str:
    """Return the lowercase hex MD5 digest of ``data``."""
    return hashlib.md5(data, usedforsecurity=False).hexdigest()


def canonicalize(params: Mapping[str, str]) -> bytes:
    """Serialize pingback parameters into the signing base string.

    ``sig`` is dropped, the remaining keys are sorted by code point (the same
    order as comparing their UTF-8 bytes) and concatenated as ``key=value``
    pairs with nothing in between.
    """
    pairs = (
        f"{key}={params[key]}"
        for key in sorted(params)
        if key != SIGNATURE_PARAM
    )
    return "".join(pairs).encode("utf-8")


def sign_pingback(params: Mapping[str, str], secret: str) -> str:
    """Compute the signature Paymentwall would send for ``params``."""
    return compute_digest(canonicalize(params) + secret.encode("utf-8"))


def verify_pingback_signature(params: Mapping[str, str], secret: str) -> bool:
    """Check the ``sig`` parameter of a pingback against the shared secret.

    The comparison is case-insensitive on the hex digest and constant-time.

    Args:
        params: All query parameters of the pingback, ``sig`` included.
        secret: The shared Paymentwall secret key.

    Returns:
        True if the signature matches.  Malformed input of any kind yields
        False rather than an exception.
    """
    supplied = params.get(SIGNATURE_PARAM)
    if not isinstance(supplied, str) or not supplied:
        return False

    try:
        expected = sign_pingback(params, secret)
    except (TypeError, UnicodeError) as exc:
        logger.warning("Signature check failed on malformed parameters: %s", exc)
        return False

    return hmac.compare_digest(
        expected.encode("ascii"),
        supplied.lower().encode("utf-8", errors="replace"),
    )
