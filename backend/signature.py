"""Request signing for map APIs that require a `sig` parameter (AMap digital signature)."""

import hashlib
import logging
from typing import Any, Mapping

logger = logging.getLogger(__name__)


def mask_secret(value: str, keep: int = 4) -> str:
    """Show only the first/last `keep` chars of a credential for logging."""
    if not value:
        return "None"
    if len(value) <= keep * 2:
        return "***"
    return f"{value[:keep]}...{value[-keep:]}"


def string_to_sign(params: Mapping[str, Any]) -> str:
    """Sorted `key=value` pairs joined by `&`; empty/None values are skipped.

    Values are used raw (not URL-encoded), as the provider computes them.
    """
    pairs = [
        f"{key}={params[key]}"
        for key in sorted(params)
        if params[key] is not None and params[key] != ""
    ]
    return "&".join(pairs)


def sign(params: Mapping[str, Any], secret: str) -> str:
    """MD5 hex digest of the canonical parameter string followed by the secret."""
    digest = hashlib.md5((string_to_sign(params) + secret).encode("utf-8")).hexdigest()
    logger.debug("Signed request: sig=%s...%s", digest[:6], digest[-6:])
    return digest


def signed_params(params: Mapping[str, Any], secret: str) -> dict[str, Any]:
    """Copy of `params` with `sig` attached when a secret is configured."""
    out = dict(params)
    if secret:
        out["sig"] = sign(params, secret)
    return out
