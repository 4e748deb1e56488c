"""PKCE (RFC 7636) verifier/challenge для authorization code flow."""

import base64
import hashlib
import secrets
from dataclasses import dataclass, field

VERIFIER_BYTES = 64


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def code_challenge_for(verifier: str) -> str:
    """S256 challenge для verifier"""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


@dataclass(frozen=True)
class PKCEPair:
    """Пара verifier/challenge, сгенерированная локально для одного запроса"""

    verifier: str = field(default_factory=lambda: _b64url(secrets.token_bytes(VERIFIER_BYTES)))
    method: str = "S256"

    @property
    def challenge(self) -> str:
        return code_challenge_for(self.verifier)


def new_state() -> str:
    """Случайный state для защиты от CSRF"""
    return secrets.token_urlsafe(24)
