"""AWS Signature Version 4 request signing.

Implemented directly on ``hashlib``/``hmac`` so the SES adapter does not need
the AWS SDK. Every step is exposed as a pure function; ``SigV4Signer`` composes
them and only adds the clock.

Reference: https://docs.aws.amazon.com/IAM/latest/UserGuide/reference_sigv-create-signed-request.html
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import UTC, datetime
import hashlib
import hmac
from urllib.parse import parse_qsl, quote, urlsplit

ALGORITHM = "AWS4-HMAC-SHA256"
TERMINATOR = "aws4_request"

_UNRESERVED = "-_.~"


def _to_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def sha256_hex(payload: str | bytes) -> str:
    return hashlib.sha256(_to_bytes(payload)).hexdigest()


def hmac_sha256(key: str | bytes, message: str) -> bytes:
    return hmac.new(_to_bytes(key), message.encode("utf-8"), hashlib.sha256).digest()


def amz_timestamps(now: datetime) -> tuple[str, str]:
    """Return ``(amz_date, date_stamp)`` for ``now`` expressed in UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    now = now.astimezone(UTC)
    return now.strftime("%Y%m%dT%H%M%SZ"), now.strftime("%Y%m%d")


def canonical_uri(path: str) -> str:
    return quote(path or "/", safe="/" + _UNRESERVED)


def canonical_query_string(query: str) -> str:
    if not query:
        return ""
    pairs = [
        (quote(key, safe=_UNRESERVED), quote(value, safe=_UNRESERVED))
        for key, value in parse_qsl(query, keep_blank_values=True)
    ]
    return "&".join(f"{key}={value}" for key, value in sorted(pairs))


def _normalize_header_value(value: str) -> str:
    return " ".join(str(value).split())


def canonical_headers(headers: Mapping[str, str]) -> tuple[str, str]:
    """Return ``(canonical_headers, signed_headers)``.

    Keys are lower-cased and sorted; values are trimmed with inner whitespace
    runs collapsed. Keys that collide after lower-casing are folded into a
    single line with their values comma-joined in sorted order.
    """
    folded: dict[str, list[str]] = {}
    for key, value in headers.items():
        folded.setdefault(key.strip().lower(), []).append(_normalize_header_value(value))
    keys = sorted(folded)
    lines = "".join(f"{key}:{','.join(sorted(folded[key]))}\n" for key in keys)
    return lines, ";".join(keys)


def canonical_request(method: str, url: str, headers: Mapping[str, str], payload: str | bytes) -> str:
    parts = urlsplit(url)
    header_block, signed_headers = canonical_headers(headers)
    return "\n".join(
        [
            method.upper(),
            canonical_uri(parts.path),
            canonical_query_string(parts.query),
            header_block,
            signed_headers,
            sha256_hex(payload),
        ]
    )


def credential_scope(date_stamp: str, region: str, service: str) -> str:
    return f"{date_stamp}/{region}/{service}/{TERMINATOR}"


def string_to_sign(amz_date: str, scope: str, canonical: str) -> str:
    return "\n".join([ALGORITHM, amz_date, scope, sha256_hex(canonical)])


def derive_signing_key(secret_access_key: str, date_stamp: str, region: str, service: str) -> bytes:
    k_date = hmac_sha256(f"AWS4{secret_access_key}", date_stamp)
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, service)
    return hmac_sha256(k_service, TERMINATOR)


def sign(signing_key: bytes, to_sign: str) -> str:
    return hmac.new(signing_key, to_sign.encode("utf-8"), hashlib.sha256).hexdigest()


def authorization_header(access_key_id: str, scope: str, signed_headers: str, signature: str) -> str:
    return (
        f"{ALGORITHM} Credential={access_key_id}/{scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )


class SigV4Signer:
    def __init__(
        self,
        *,
        region: str,
        service: str,
        access_key_id: str,
        secret_access_key: str,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.region = region
        self.service = service
        self.access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._clock = clock or (lambda: datetime.now(UTC))

    def sign_request(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        payload: str | bytes,
    ) -> dict[str, str]:
        amz_date, date_stamp = amz_timestamps(self._clock())
        signed = {
            key: value for key, value in headers.items() if key.lower() not in {"host", "x-amz-date", "authorization"}
        }
        signed["x-amz-date"] = amz_date
        signed["host"] = urlsplit(url).netloc

        canonical = canonical_request(method, url, signed, payload)
        scope = credential_scope(date_stamp, self.region, self.service)
        signing_key = derive_signing_key(self._secret_access_key, date_stamp, self.region, self.service)
        signature = sign(signing_key, string_to_sign(amz_date, scope, canonical))
        _, signed_headers = canonical_headers(signed)

        return {
            **signed,
            "Authorization": authorization_header(self.access_key_id, scope, signed_headers, signature),
        }
