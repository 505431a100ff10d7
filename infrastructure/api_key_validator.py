import hmac
from enum import Enum
from typing import List, Optional


class AuthResult(str, Enum):
    ALLOWED = "allowed"
    MISSING = "missing"
    MALFORMED = "malformed"
    REJECTED = "rejected"


class ApiKeyValidator:
    def __init__(self, api_keys: Optional[List[str]] = None, is_public: bool = False):
        self.api_keys = api_keys or []
        self.is_public = is_public

    def validate(self, api_key: Optional[str]) -> bool:
        if self.is_public:
            return True

        if not api_key:
            return False

        return any(self._timing_safe_compare(api_key, valid_key) for valid_key in self.api_keys)

    def check_authorization(self, authorization: Optional[str]) -> AuthResult:
        """Check an ``Authorization: Bearer <APIKEY>`` header value."""
        if self.is_public:
            return AuthResult.ALLOWED

        if not authorization:
            return AuthResult.MISSING

        scheme, _, api_key = authorization.partition(" ")
        if scheme != "Bearer" or not api_key:
            return AuthResult.MALFORMED

        return AuthResult.ALLOWED if self.validate(api_key) else AuthResult.REJECTED

    def _timing_safe_compare(self, a: str, b: str) -> bool:
        return hmac.compare_digest(a.encode('utf-8'), b.encode('utf-8'))
