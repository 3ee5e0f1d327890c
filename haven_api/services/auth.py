# SPDX-License-Identifier: Apache-2.0

"""
Authentication service for JWT token management.

This module provides JWT token generation, validation and refresh using
RS256 signing. The identity provider handshake happens upstream; the API
only sees bearer tokens whose ``sub`` claim is the identity id.
"""

import os
import uuid
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

# Claims copied from the identity provider into issued tokens
PROFILE_CLAIMS = ("email", "first_name", "last_name", "profile_image_url")


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


class AuthService:
    """
    JWT authentication service with RS256 signing.

    Provides token generation, validation and refresh. When no key pair is
    configured a development pair is generated once per instance.
    """

    def __init__(self, private_key: Optional[str] = None, public_key: Optional[str] = None):
        """
        Initialize the authentication service.

        Args:
            private_key: RS256 private key for token signing (PEM format)
            public_key: RS256 public key for token verification (PEM format)
        """
        private_key = private_key or os.getenv("JWT_PRIVATE_KEY")
        public_key = public_key or os.getenv("JWT_PUBLIC_KEY")

        if not private_key or not public_key:
            logger.warning("No JWT key pair configured, generating development key pair")
            private_key, public_key = self._generate_dev_key_pair()

        self.private_key = private_key
        self.public_key = public_key
        self.algorithm = "RS256"
        self.access_token_expire_minutes = int(os.getenv("JWT_ACCESS_TOKEN_MINUTES", "15"))
        self.refresh_token_expire_days = int(os.getenv("JWT_REFRESH_TOKEN_DAYS", "7"))

    @staticmethod
    def _generate_dev_key_pair() -> Tuple[str, str]:
        """Generate RSA key pair for development use."""
        private_key = rsa.generate_private_key(
            public_exponent=65537,
            key_size=2048
        )

        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        ).decode('utf-8')

        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        ).decode('utf-8')

        return private_pem, public_pem

    def _encode(self, payload: Dict[str, Any]) -> str:
        return jwt.encode(payload, self.private_key, algorithm=self.algorithm)

    def generate_tokens(self, subject: str, claims: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Generate access and refresh tokens for a subject.

        Args:
            subject: Identity id placed in the ``sub`` claim
            claims: Optional profile claims (email, first_name, last_name,
                profile_image_url) carried into the access token

        Returns:
            Dictionary containing access_token, refresh_token, and metadata
        """
        with tracer.start_as_current_span("auth.generate_tokens") as span:
            span.set_attributes({
                "auth.operation": "generate_tokens",
                "identity.id": subject
            })

            now = datetime.now(timezone.utc)
            access_exp = now + timedelta(minutes=self.access_token_expire_minutes)
            refresh_exp = now + timedelta(days=self.refresh_token_expire_days)

            access_payload = {
                "sub": subject,
                "iat": now,
                "exp": access_exp,
                "jti": str(uuid.uuid4()),
                "type": "access"
            }
            for claim in PROFILE_CLAIMS:
                if claims and claims.get(claim):
                    access_payload[claim] = claims[claim]

            refresh_payload = {
                "sub": subject,
                "iat": now,
                "exp": refresh_exp,
                "jti": str(uuid.uuid4()),
                "type": "refresh"
            }

            try:
                access_token = self._encode(access_payload)
                refresh_token = self._encode(refresh_payload)

                span.set_attribute("auth.tokens_generated", "success")

                logger.info(
                    "JWT tokens generated successfully",
                    extra={
                        "identity_id": subject,
                        "access_expires_at": access_exp.isoformat(),
                        "refresh_expires_at": refresh_exp.isoformat()
                    }
                )

                return {
                    "access_token": access_token,
                    "refresh_token": refresh_token,
                    "token_type": "Bearer",
                    "expires_in": self.access_token_expire_minutes * 60,
                    "access_expires_at": access_exp.isoformat(),
                    "refresh_expires_at": refresh_exp.isoformat()
                }

            except Exception as e:
                span.set_attribute("auth.tokens_generated", "error")
                logger.error(f"Token generation failed: {str(e)}")
                raise AuthenticationError(f"Failed to generate tokens: {str(e)}")

    def validate_token(self, token: str, token_type: str = "access") -> Dict[str, Any]:
        """
        Validate and decode a JWT token.

        Args:
            token: JWT token string to validate
            token_type: Expected token type ("access" or "refresh")

        Returns:
            Decoded token payload

        Raises:
            TokenValidationError: If token is invalid or expired
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            span.set_attributes({
                "auth.operation": "validate_token",
                "auth.token_type": token_type
            })

            try:
                payload = jwt.decode(
                    token,
                    self.public_key,
                    algorithms=[self.algorithm],
                    options={"verify_exp": True, "require": ["sub", "exp", "jti"]}
                )
            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")

            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError(f"Invalid token: {str(e)}")

            if payload.get("type") != token_type:
                span.set_attribute("auth.validation_result", "wrong_type")
                raise TokenValidationError(f"Invalid token type. Expected {token_type}")

            span.set_attributes({
                "auth.validation_result": "success",
                "identity.id": payload.get("sub")
            })

            logger.debug(
                "Token validated successfully",
                extra={
                    "identity_id": payload.get("sub"),
                    "token_type": token_type
                }
            )

            return payload

    def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """
        Generate a new access token using a valid refresh token.

        Raises:
            TokenValidationError: If refresh token is invalid
        """
        with tracer.start_as_current_span("auth.refresh_access_token") as span:
            span.set_attribute("auth.operation", "refresh_access_token")

            refresh_payload = self.validate_token(refresh_token, "refresh")

            now = datetime.now(timezone.utc)
            access_exp = now + timedelta(minutes=self.access_token_expire_minutes)

            access_payload = {
                "sub": refresh_payload["sub"],
                "iat": now,
                "exp": access_exp,
                "jti": str(uuid.uuid4()),
                "type": "access"
            }

            try:
                access_token = self._encode(access_payload)
            except Exception as e:
                span.set_attribute("auth.refresh_result", "error")
                logger.error(f"Token refresh failed: {str(e)}")
                raise AuthenticationError(f"Failed to refresh token: {str(e)}")

            span.set_attribute("auth.refresh_result", "success")
            logger.info(
                "Access token refreshed successfully",
                extra={
                    "identity_id": refresh_payload["sub"],
                    "new_expires_at": access_exp.isoformat()
                }
            )

            return {
                "access_token": access_token,
                "token_type": "Bearer",
                "expires_in": self.access_token_expire_minutes * 60,
                "expires_at": access_exp.isoformat()
            }

    def extract_token_id(self, token: str) -> str:
        """
        Extract the ``jti`` claim for blocklist purposes.

        The signature is not verified here; callers validate first.
        """
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            logger.error(f"Failed to extract token ID: {str(e)}")
            raise TokenValidationError(f"Invalid token format: {str(e)}")

        token_id = payload.get("jti")
        if not token_id:
            raise TokenValidationError("Token has no identifier")
        return token_id
