# badge_oauth/oauth/pkce.py
import base64
import hashlib
import re
import secrets

# RFC 7636 Section 4.1 bounds the verifier to 43..128 characters
MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128
CODE_VERIFIER_LENGTH = 64

SUPPORTED_CODE_CHALLENGE_METHODS = ("S256", "plain")

_VERIFIER_PATTERN = re.compile(r"[A-Za-z0-9\-._~]+")


def generate_pkce_code_verifier(length: int = CODE_VERIFIER_LENGTH) -> str:
    """Random verifier drawn from the unreserved URL alphabet."""
    if not (MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH):
        raise ValueError(
            f"PKCE code verifier length must be between {MIN_VERIFIER_LENGTH} and {MAX_VERIFIER_LENGTH}."
        )
    # token_urlsafe(n) yields about 4n/3 characters
    return secrets.token_urlsafe(length)[:length]


def _s256(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("utf-8", "surrogatepass")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_code_challenge(code_verifier: str, method: str = "S256") -> str:
    """Derive the code_challenge sent on the authorization request. (RFC 7636 - Section 4.2)"""
    if method == "S256":
        return _s256(code_verifier)
    if method == "plain":
        return code_verifier
    raise ValueError(f"Unsupported PKCE code challenge method: {method}.")


def verify_pkce_code_verifier(code_verifier: str, code_challenge: str, method: str) -> bool:
    """
    Checks a code_verifier against the challenge stored with the authorization
    code. (RFC 7636 - Section 4.6)

    Unknown methods never verify. The final comparison is constant time.
    """
    if method not in SUPPORTED_CODE_CHALLENGE_METHODS:
        return False
    expected_challenge = generate_pkce_code_challenge(code_verifier, method)
    return secrets.compare_digest(
        expected_challenge.encode("utf-8", "surrogatepass"),
        code_challenge.encode("utf-8", "surrogatepass")
    )


def validate_pkce_code_verifier_format(code_verifier: str) -> bool:
    if not (MIN_VERIFIER_LENGTH <= len(code_verifier) <= MAX_VERIFIER_LENGTH):
        return False
    return bool(_VERIFIER_PATTERN.fullmatch(code_verifier))
