"""
Helpers for generating signed internal auth headers in integration tests.
"""
import os
import time

from cashflow.db_helpers import build_signature_payload, sign_payload


def build_internal_auth_headers(method: str, path_with_query: str, user_id: str) -> dict[str, str]:
    """
    Build signed headers accepted by backend internal auth middleware.
    """
    secret = os.getenv("INTERNAL_AUTH_SECRET", "").strip()
    if not secret:
        raise RuntimeError("INTERNAL_AUTH_SECRET is required for backend integration tests.")

    timestamp = str(int(time.time()))
    signature = sign_payload(secret, build_signature_payload(method, path_with_query, user_id, timestamp))

    return {
        "X-Cashflow-User-Id": user_id,
        "X-Cashflow-Timestamp": timestamp,
        "X-Cashflow-Signature": signature,
    }
