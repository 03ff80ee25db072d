from datetime import UTC, datetime

from mailrelay.providers.signing import (
    SigV4Signer,
    amz_timestamps,
    canonical_headers,
    canonical_query_string,
    canonical_request,
    credential_scope,
    derive_signing_key,
    sha256_hex,
    sign,
    string_to_sign,
)

# AWS SigV4 test suite, "get-vanilla".
ACCESS_KEY = "AKIDEXAMPLE"
SECRET_KEY = "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY"
VANILLA_NOW = datetime(2015, 8, 30, 12, 36, 0, tzinfo=UTC)
VANILLA_CANONICAL = (
    "GET\n"
    "/\n"
    "\n"
    "host:example.amazonaws.com\n"
    "x-amz-date:20150830T123600Z\n"
    "\n"
    "host;x-amz-date\n"
    "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
)
VANILLA_AUTHORIZATION = (
    "AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/20150830/us-east-1/service/aws4_request, "
    "SignedHeaders=host;x-amz-date, "
    "Signature=5fa00fa31553b73ebf1942676e86291e8372ff2a2260956d9b8aae1d763fbf31"
)


def _vanilla_signer() -> SigV4Signer:
    return SigV4Signer(
        region="us-east-1",
        service="service",
        access_key_id=ACCESS_KEY,
        secret_access_key=SECRET_KEY,
        clock=lambda: VANILLA_NOW,
    )


def test_amz_timestamps_are_utc() -> None:
    assert amz_timestamps(VANILLA_NOW) == ("20150830T123600Z", "20150830")
    naive = datetime(2015, 8, 30, 12, 36, 0)
    assert amz_timestamps(naive) == ("20150830T123600Z", "20150830")


def test_canonical_request_matches_reference_vector() -> None:
    headers = {"Host": "example.amazonaws.com", "X-Amz-Date": "20150830T123600Z"}
    canonical = canonical_request("GET", "https://example.amazonaws.com/", headers, b"")
    assert canonical == VANILLA_CANONICAL
    assert sha256_hex(canonical) == "bb579772317eb040ac9ed261061d46c1f17a8133879d6129b6e1c25292927e63"


def test_string_to_sign_layout() -> None:
    scope = credential_scope("20150830", "us-east-1", "service")
    assert string_to_sign("20150830T123600Z", scope, VANILLA_CANONICAL) == (
        "AWS4-HMAC-SHA256\n"
        "20150830T123600Z\n"
        "20150830/us-east-1/service/aws4_request\n"
        "bb579772317eb040ac9ed261061d46c1f17a8133879d6129b6e1c25292927e63"
    )


def test_derive_signing_key_matches_documented_example() -> None:
    key = derive_signing_key(SECRET_KEY, "20120215", "us-east-1", "iam")
    assert key.hex() == "f4780e2d9f65fa895f9c67b32ce1baf0b0d8a43505a000a1a9e090d414db404d"


def test_signer_produces_reference_authorization() -> None:
    headers = _vanilla_signer().sign_request("GET", "https://example.amazonaws.com/", {}, "")
    assert headers["host"] == "example.amazonaws.com"
    assert headers["x-amz-date"] == "20150830T123600Z"
    assert headers["Authorization"] == VANILLA_AUTHORIZATION


def test_signer_is_deterministic_and_replaces_stale_signing_headers() -> None:
    signer = _vanilla_signer()
    stale = {"Authorization": "old", "X-Amz-Date": "19700101T000000Z", "Host": "elsewhere"}
    first = signer.sign_request("GET", "https://example.amazonaws.com/", stale, "")
    second = signer.sign_request("GET", "https://example.amazonaws.com/", {}, "")
    assert first == second
    assert "X-Amz-Date" not in first


def test_signature_covers_exact_payload_bytes() -> None:
    signer = _vanilla_signer()
    compact = signer.sign_request("POST", "https://example.amazonaws.com/", {}, b'{"a":1}')
    spaced = signer.sign_request("POST", "https://example.amazonaws.com/", {}, b'{"a": 1}')
    assert compact["Authorization"] != spaced["Authorization"]


def test_canonical_headers_fold_duplicate_keys_in_sorted_order() -> None:
    block, signed = canonical_headers({"X-Dup": "b", "x-dup": "  a   value ", "Host": "h"})
    assert block == "host:h\nx-dup:a value,b\n"
    assert signed == "host;x-dup"


def test_canonical_query_string_empty_and_sorted() -> None:
    assert canonical_query_string("") == ""
    assert canonical_query_string("Version=2010-12-01&Action=GetSendQuota") == "Action=GetSendQuota&Version=2010-12-01"
    assert canonical_query_string("b=x y&a=") == "a=&b=x%20y"


def test_sign_is_lowercase_hex() -> None:
    signature = sign(b"key", "payload")
    assert signature == signature.lower()
    assert len(signature) == 64


def test_ses_scope_in_credential() -> None:
    signer = SigV4Signer(
        region="eu-west-1",
        service="ses",
        access_key_id="AKIATEST",
        secret_access_key="secret",
        clock=lambda: datetime(2024, 3, 5, 9, 0, 0, tzinfo=UTC),
    )
    headers = signer.sign_request("POST", "https://email.eu-west-1.amazonaws.com/v2/email/outbound-emails", {}, b"{}")
    assert "Credential=AKIATEST/20240305/eu-west-1/ses/aws4_request" in headers["Authorization"]
