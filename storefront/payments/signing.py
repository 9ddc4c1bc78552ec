from __future__ import annotations

import hmac
from hashlib import sha512
from typing import Mapping

from storefront.payments.canonical import QueryValue, canonical_query

HASH_FIELD = "vnp_SecureHash"
HASH_TYPE_FIELD = "vnp_SecureHashType"
SIGNATURE_FIELDS = frozenset({HASH_FIELD, HASH_TYPE_FIELD})


def sign(params: Mapping[str, QueryValue], secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), canonical_query(params), sha512).hexdigest()


def verify(params: Mapping[str, QueryValue], secret: str, claimed_digest: str | None) -> bool:
    if not claimed_digest:
        return False
    unsigned = {key: value for key, value in params.items() if key not in SIGNATURE_FIELDS}
    expected = sign(unsigned, secret).encode("ascii")
    claimed = claimed_digest.strip().lower().encode("utf-8")
    return hmac.compare_digest(expected, claimed)
