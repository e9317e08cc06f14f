import logging
from typing import Any, Dict, Optional

from docvault.core.domain.user import User, UserRole
from docvault.core.errors import Conflict, Unauthorized
from docvault.infrastructure.db import refresh_token_repository, user_repository
from docvault.infrastructure.security import auth as security
from docvault.infrastructure.security.token_blacklist import TokenBlacklist, get_blacklist

logger = logging.getLogger("auth")


class AuthService:
    """
    Issues, rotates and revokes credential pairs.

    ``users`` and ``tokens`` are any objects exposing the repository functions
    (the repository modules themselves by default); ``blacklist`` holds access
    tokens invalidated at logout.
    """

    def __init__(
        self,
        users: Any = user_repository,
        tokens: Any = refresh_token_repository,
        blacklist: Optional[TokenBlacklist] = None,
    ) -> None:
        self.users = users
        self.tokens = tokens
        self.blacklist = blacklist if blacklist is not None else get_blacklist()

    def login(self, email: str, password: str) -> Dict[str, Any]:
        user = self._validate_user(email, password)
        if user is None:
            logger.warning("Login failed: invalid credentials", extra={"email": email})
            raise Unauthorized("Invalid credentials")
        logger.info("Login success", extra={"user_id": user.user_id})
        return self._issue_tokens(user)

    def register(self, name: str, email: str, password: str) -> Dict[str, Any]:
        if self.users.get_user_by_email(email) is not None:
            logger.warning("Registration blocked: email already registered", extra={"email": email})
            raise Conflict("Email already exists")

        user = self.users.create_user(
            name=name,
            email=email,
            password_hash=security.hash_password(password),
            role=UserRole.USER.value,
        )
        logger.info("User registered", extra={"user_id": user.user_id})
        return self._issue_tokens(user)

    def refresh(self, refresh_token: str) -> Dict[str, Any]:
        record = self.tokens.find_by_value(refresh_token, with_owner=True)
        if record is None or record.is_revoked:
            logger.warning("Refresh failed: unknown or revoked token")
            raise Unauthorized("Invalid refresh token")

        if security.utcnow() > record.expires_at:
            record.is_revoked = True
            self.tokens.save_token(record)
            logger.warning("Refresh failed: token expired", extra={"user_id": record.user_id})
            raise Unauthorized("Refresh token expired")

        owner = record.user or self.users.get_user_by_id(record.user_id)
        if owner is None or not owner.is_active:
            logger.warning("Refresh failed: user not found", extra={"user_id": record.user_id})
            raise Unauthorized("Invalid refresh token")

        # Rotation: the consumed token is never usable again. Only one of several
        # concurrent refreshes with the same value wins the claim.
        if not self.tokens.consume_token(record.token_id):
            logger.warning("Refresh failed: token already consumed", extra={"user_id": owner.user_id})
            raise Unauthorized("Invalid refresh token")

        tokens = self._issue_tokens(owner)
        logger.info("Refresh success", extra={"user_id": owner.user_id})
        return tokens

    def logout(self, access_token: str) -> Dict[str, str]:
        self.blacklist.add(access_token)

        user_id = self.get_user_id_from_token(access_token)
        if user_id:
            revoked = self.revoke_refresh_tokens_for_user(user_id)
            logger.info("Logout", extra={"user_id": user_id, "revoked_refresh_tokens": revoked})
        else:
            logger.info("Logout with undecodable token; blacklisted only")
        return {"message": "Logout successful"}

    def revoke_refresh_tokens_for_user(self, user_id: str) -> int:
        active = self.tokens.list_tokens(user_id, is_revoked=False)
        for token in active:
            token.is_revoked = True
            self.tokens.save_token(token)
        return len(active)

    def is_blacklisted(self, access_token: str) -> bool:
        return self.blacklist.contains(access_token)

    @staticmethod
    def get_user_id_from_token(token: str) -> Optional[str]:
        payload = security.decode_token(token)
        if payload is None:
            return None
        return payload.get("sub")

    def _validate_user(self, email: str, password: str) -> Optional[User]:
        user = self.users.get_user_by_email(email)
        if user is None or not user.is_active:
            security.verify_password(password, security.DUMMY_PASSWORD_HASH)
            return None
        if not security.verify_password(password, user.password_hash):
            return None
        return user

    def _issue_tokens(self, user: User) -> Dict[str, Any]:
        access_token = security.create_access_token(
            user_id=user.user_id, email=user.email, role=user.role
        )
        refresh_value = security.new_refresh_token_value()
        self.tokens.create_token(user.user_id, refresh_value, security.refresh_token_expiry())
        return {
            "access_token": access_token,
            "refresh_token": refresh_value,
            "token_type": "bearer",
            "user": {
                "id": user.user_id,
                "name": user.name,
                "email": user.email,
                "role": user.role,
            },
        }
