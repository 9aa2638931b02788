# badge_oauth/oauth/subject.py
import logging
import secrets
import time
from typing import Protocol

from starlette.requests import Request

logger = logging.getLogger(__name__)


class SubjectResolver(Protocol):
    """Resolves the resource owner on whose behalf an authorization code is issued."""

    async def current_subject(self, request: Request) -> str:
        ...


class DemoSubjectResolver:
    """
    Fabricates a fresh demo subject for every authorization request.

    There is no login or consent step behind this resolver, so every request
    is auto-approved. A deployment with real users must inject a resolver
    that authenticates the user agent instead.
    """

    async def current_subject(self, request: Request) -> str:
        subject = f"demo-user-{int(time.time() * 1000)}-{secrets.token_hex(4)}"
        logger.debug(f"DemoSubjectResolver minted subject '{subject}'.")
        return subject
