"""Authentication module (bearer token consumption).

Token issuance belongs to the account service; this package only verifies
tokens that were already issued and maps them to a user id.

Services:
    - TokenVerifier: HS256 JWT signature and expiry checks.
"""
from .tokens import TokenVerifier, extract_bearer_token

__all__ = ["TokenVerifier", "extract_bearer_token"]
