"""
Identity Core - Authentication, sessions and identity proofs.
"""

from authcore.kernel.identity.password import PasswordHasher
from authcore.kernel.identity.jwt import (
    JWTManager,
    TokenPair,
    AccessTokenPayload,
    TokenError,
    TokenMalformedError,
    TokenSignatureError,
    TokenExpiredError,
    get_jwt_manager,
)
from authcore.kernel.identity.credential_store import CredentialStore, IdentityUpdate
from authcore.kernel.identity.session_registry import SessionRegistry, OpenedSession
from authcore.kernel.identity.proofs import IdentityProofs
from authcore.kernel.identity.gate import AuthenticationGate
from authcore.kernel.identity.identity_service import IdentityService, LoginResult, ProofIssued

__all__ = [
    "PasswordHasher",
    "JWTManager",
    "TokenPair",
    "AccessTokenPayload",
    "TokenError",
    "TokenMalformedError",
    "TokenSignatureError",
    "TokenExpiredError",
    "get_jwt_manager",
    "CredentialStore",
    "IdentityUpdate",
    "SessionRegistry",
    "OpenedSession",
    "IdentityProofs",
    "AuthenticationGate",
    "IdentityService",
    "LoginResult",
    "ProofIssued",
]
