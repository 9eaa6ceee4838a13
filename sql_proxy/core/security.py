import logging
import secrets
from dataclasses import dataclass
from typing import Annotated, FrozenSet, Iterable, Optional

from fastapi import Depends, Request, status

from sql_proxy.core.config import Settings
from sql_proxy.core.errors import AuthenticationError, ClientFormatError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthDecision:
    admitted: bool
    reason: Optional[str] = None
    status_code: int = status.HTTP_200_OK


ADMITTED = AuthDecision(admitted=True)


def _reject(reason: str, status_code: int = status.HTTP_401_UNAUTHORIZED):
    return AuthDecision(admitted=False, reason=reason, status_code=status_code)


def _is_header_text(raw: bytes) -> bool:
    # Visible ASCII plus tab, anything else cannot be read as header text
    return all(byte == 0x09 or 0x20 <= byte <= 0x7E for byte in raw)


class CredentialGate:
    """
    Admits or rejects requests by their `Authorization: Bearer <token>` header.

    The accepted token set is fixed when the gate is built. An empty set means
    every request is rejected.
    """

    def __init__(self, tokens: Iterable[str]):
        self._tokens: FrozenSet[bytes] = frozenset(
            token.encode("utf-8") for token in tokens
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialGate":
        gate = cls(settings.accepted_tokens)
        if gate.disabled:
            logger.warning(
                "AUTH_TOKENS is not set, every request to /exec will be rejected"
            )
        return gate

    @property
    def disabled(self) -> bool:
        return not self._tokens

    def _accepts(self, token: bytes) -> bool:
        # Compare against every token so timing does not reveal a partial match
        matched = False
        for accepted in self._tokens:
            if secrets.compare_digest(token, accepted):
                matched = True
        return matched

    def check(self, raw_header: Optional[bytes]) -> AuthDecision:
        if raw_header is None:
            logger.debug("Authorization header missing.")
            return _reject("Authorization header missing")

        if not _is_header_text(raw_header):
            logger.debug("Authorization header contains non-text data.")
            return _reject("Invalid header encoding", status.HTTP_400_BAD_REQUEST)

        header = raw_header.decode("ascii")
        if not header.startswith(BEARER_PREFIX):
            logger.debug("Authorization header present but not Bearer scheme.")
            return _reject("Invalid authorization scheme")

        if not self._accepts(header[len(BEARER_PREFIX):].encode("ascii")):
            logger.debug("Invalid Bearer token provided.")
            return _reject("Invalid token")

        return ADMITTED


def _raw_authorization(request: Request) -> Optional[bytes]:
    # Starlette decodes headers as latin-1, the raw bytes are needed for the encoding check
    for name, value in request.headers.raw:
        if name.lower() == b"authorization":
            return value
    return None


# The lifespan stores the gate on app.state, tests override this dependency
async def get_credential_gate(request: Request) -> CredentialGate:
    return request.app.state.credential_gate


async def require_bearer(
    request: Request,
    gate: Annotated[CredentialGate, Depends(get_credential_gate)],
) -> None:
    decision = gate.check(_raw_authorization(request))
    if decision.admitted:
        return
    if decision.status_code == status.HTTP_400_BAD_REQUEST:
        raise ClientFormatError(decision.reason)
    raise AuthenticationError(decision.reason)
