# badge_oauth/oauth/scopes.py
from typing import List, Optional

# OAuth 2.0 scopes defined by Open Badges v3.0, Section 7
CREDENTIAL_READONLY_SCOPE = "https://purl.imsglobal.org/spec/ob/v3p0/scope/credential.readonly"
CREDENTIAL_UPSERT_SCOPE = "https://purl.imsglobal.org/spec/ob/v3p0/scope/credential.upsert"
PROFILE_READONLY_SCOPE = "https://purl.imsglobal.org/spec/ob/v3p0/scope/profile.readonly"
PROFILE_UPDATE_SCOPE = "https://purl.imsglobal.org/spec/ob/v3p0/scope/profile.update"
OFFLINE_ACCESS_SCOPE = "offline_access"

RECOGNIZED_SCOPES: List[str] = [
    CREDENTIAL_READONLY_SCOPE,
    CREDENTIAL_UPSERT_SCOPE,
    PROFILE_READONLY_SCOPE,
    PROFILE_UPDATE_SCOPE,
    OFFLINE_ACCESS_SCOPE,
]

# Granted by the legacy password grant, which never issues a refresh token
PASSWORD_GRANT_SCOPES: List[str] = [
    CREDENTIAL_READONLY_SCOPE,
    CREDENTIAL_UPSERT_SCOPE,
    PROFILE_READONLY_SCOPE,
    PROFILE_UPDATE_SCOPE,
]


def split_scope(scope_str: Optional[str]) -> List[str]:
    """Split a space-delimited scope string, dropping empty entries."""
    if not scope_str:
        return []
    return scope_str.split()


def join_scopes(scopes: List[str]) -> str:
    return " ".join(scopes)


def filter_recognized_scopes(scope_str: Optional[str]) -> List[str]:
    """
    Returns the recognized scopes from a space-delimited string, in request
    order and without duplicates. Unknown scopes are silently dropped.
    """
    granted: List[str] = []
    for scope in split_scope(scope_str):
        if scope in RECOGNIZED_SCOPES and scope not in granted:
            granted.append(scope)
    return granted
