"""HMAC request signing for the device control API.

Signing is a pure function of its inputs so the clock-skew retry can be
exercised without a transport. The canonical string is::

    METHOD:path:timestamp:nonce                              (no body)
    METHOD:path:content-md5:content-type:timestamp:nonce     (with body)

and the digest is the hex HMAC-SHA256 of that string keyed with the shared
secret.
"""

import hashlib
import hmac
import json
import secrets
import time
from dataclasses import dataclass
from email.utils import formatdate
from typing import Any, Dict, Optional

from algo_provision import constants
from algo_provision.models import RequestSignature


@dataclass(frozen=True)
class SignedRequest:
    """Headers and body ready to send, plus the signature that produced them."""
    method: str
    path: str
    headers: Dict[str, str]
    body: Optional[bytes]
    signature: RequestSignature


def encode_json_body(payload: Any) -> bytes:
    """Serialize a payload to the exact bytes that are checksummed and sent."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def generate_nonce() -> str:
    return str(secrets.randbelow(constants.NONCE_LIMIT))


def canonical_string(
    method: str,
    path: str,
    timestamp: int,
    nonce: str,
    content_md5: Optional[str] = None,
    content_type: Optional[str] = None
) -> str:
    """Build the string that gets signed."""
    if content_md5 is not None:
        fields = [method, path, content_md5, content_type or "", str(timestamp), nonce]
    else:
        fields = [method, path, str(timestamp), nonce]
    return constants.SIGNATURE_DELIMITER.join(fields)


def sign_request(
    method: str,
    path: str,
    secret: str,
    principal: str = constants.DEFAULT_PRINCIPAL,
    body: Optional[bytes] = None,
    content_type: Optional[str] = None,
    clock_offset: int = 0,
    now: Optional[float] = None,
    nonce: Optional[str] = None
) -> SignedRequest:
    """
    Sign one request attempt.

    Args:
        method: HTTP method
        path: Request path, e.g. /api/settings
        secret: Shared HMAC secret
        principal: Name placed in the Authorization header
        body: Encoded request body, if any
        content_type: Content type of body (defaults to JSON)
        clock_offset: Seconds added to local time, learned from the device clock
        now: Local epoch time (defaults to time.time())
        nonce: Nonce override (a fresh random one is generated otherwise)

    Returns:
        SignedRequest carrying headers, body and signature
    """
    method = method.upper()
    if now is None:
        now = time.time()
    timestamp = int(now + clock_offset)
    if nonce is None:
        nonce = generate_nonce()

    headers = {"Date": formatdate(timestamp, usegmt=True)}
    content_md5 = None
    if body is not None:
        content_type = content_type or constants.CONTENT_TYPE_JSON
        content_md5 = hashlib.md5(body).hexdigest()
        headers["Content-Type"] = content_type
        headers["Content-Md5"] = content_md5

    message = canonical_string(method, path, timestamp, nonce, content_md5, content_type)
    digest = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()
    headers["Authorization"] = f"hmac {principal}:{nonce}:{digest}"

    return SignedRequest(
        method=method,
        path=path,
        headers=headers,
        body=body,
        signature=RequestSignature(timestamp=timestamp, nonce=nonce, digest=digest)
    )
