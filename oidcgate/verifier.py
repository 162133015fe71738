import hashlib
import time
from typing import Any

from authlib.jose import JsonWebKey, JsonWebToken, KeySet
from authlib.jose.errors import ExpiredTokenError, JoseError
from pydantic import ValidationError

from oidcgate.errors import TokenExpiredError, VerificationError
from oidcgate.models import VerifiedIdentity
from oidcgate.utils.logging import get_logger

logger = get_logger(__name__)

# Constants
CLOCK_SKEW_LEEWAY_SECONDS = 0
VERIFY_DURATION_ALERT_MS = 50


def token_fingerprint(raw_token: str) -> str:
    """Short, non-reversible identifier for a token, safe to log."""
    return hashlib.sha256(raw_token.encode()).hexdigest()[:8]


class TokenVerifier:
    """
    Verifies identity tokens against the provider's key set.

    Signature, issuer, audience (the client id), expiry and signing algorithm
    (restricted to ``algorithms``) must all match.
    """

    def __init__(
        self,
        jwks: dict[str, Any],
        issuer: str,
        client_id: str,
        algorithms: list[str],
        leeway: int = CLOCK_SKEW_LEEWAY_SECONDS,
    ) -> None:
        self.issuer = issuer
        self.client_id = client_id
        self.algorithms = list(algorithms)
        self.leeway = leeway
        self._key_set: KeySet = JsonWebKey.import_key_set(jwks)
        self._jwt = JsonWebToken(self.algorithms)
        self._claims_options = {
            "iss": {"essential": True, "value": issuer},
            "aud": {"essential": True, "value": client_id},
            "sub": {"essential": True},
            "exp": {"essential": True},
        }

    def verify(self, raw_token: str) -> VerifiedIdentity:
        """
        Returns the verified identity for ``raw_token``.

        Raises:
            TokenExpiredError: the token is otherwise valid but past its expiry
            VerificationError: any other signature, claim or format problem
        """
        start_time = time.monotonic()
        fingerprint = token_fingerprint(raw_token)

        try:
            claims = self._jwt.decode(raw_token, self._key_set, claims_options=self._claims_options)
            claims.validate(leeway=self.leeway)
        except ExpiredTokenError as e:
            logger.info("oidc_token_expired", token_hash=fingerprint)
            raise TokenExpiredError(details={"token_hash": fingerprint}) from e
        except JoseError as e:
            logger.info("oidc_token_rejected", token_hash=fingerprint, error=str(e))
            raise VerificationError(
                f"Token validation failed: {e}", {"token_hash": fingerprint}
            ) from e
        except ValueError as e:
            # authlib raises ValueError when no key in the set matches the token's kid
            logger.info("oidc_token_rejected", token_hash=fingerprint, error=str(e))
            raise VerificationError(
                f"Token validation failed: {e}", {"token_hash": fingerprint}
            ) from e

        try:
            identity = VerifiedIdentity.from_claims(claims, raw_token)
        except ValidationError as e:
            raise VerificationError(
                "Token claims are malformed", {"token_hash": fingerprint, "errors": e.errors()}
            ) from e

        duration_ms = (time.monotonic() - start_time) * 1000
        logger.debug(
            "oidc_token_verified",
            token_hash=fingerprint,
            subject=identity.subject,
            duration_ms=round(duration_ms, 2),
        )
        if duration_ms > VERIFY_DURATION_ALERT_MS:
            logger.warning(
                "oidc_verify_performance_alert",
                duration_ms=round(duration_ms, 2),
                threshold_ms=VERIFY_DURATION_ALERT_MS,
            )
        return identity
