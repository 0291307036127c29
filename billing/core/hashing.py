from __future__ import annotations

import hashlib
import json
from typing import Any, Dict


def canonical_dumps(obj: Dict[str, Any]) -> str:
    # Deterministic JSON string: sorted keys, no whitespace.
    # Decimals and dates are stringified so money never goes through float.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def payload_hash(payload: Dict[str, Any]) -> str:
    return sha256_hex(canonical_dumps(payload))
