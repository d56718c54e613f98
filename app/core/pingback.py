"""Paymentwall pingback controller.

Runs one pingback through a linear pipeline and reports which terminal state
it reached:

    parse -> secret check -> signature -> uid check -> dedup -> quota -> issue

Each step raises a ``PingbackError`` subclass to stop the pipeline.
``PingbackController.handle`` is the single place those are caught and
turned into an ``Outcome``; nothing escapes it, because the partner must see
the same ``200 OK`` whatever happened here.
"""

from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field

from app.config import Settings
from app.core.exceptions import (
    ConfigurationMissingError,
    DuplicateEventError,
    InvalidIdentifierError,
    InvalidSignatureError,
    MalformedPingbackError,
    PingbackError,
    StoreUnavailableError,
)
from app.core.rewards import RewardIssuer
from app.core.security import verify_pingback_signature
from app.models.reward_token import RewardToken

logger = logging.getLogger(__name__)

REQUIRED_PARAMS: tuple[str, ...] = ("uid", "ref", "sig")


class Outcome(str, enum.Enum):
    """Terminal state of a processed pingback."""

    ISSUED = "issued"
    MALFORMED = "malformed"
    MISCONFIGURED = "misconfigured"
    UNVERIFIED = "unverified"
    INVALID_IDENTIFIER = "invalid_identifier"
    DUPLICATE = "duplicate"
    QUOTA_EXCEEDED = "quota_exceeded"
    STORE_UNAVAILABLE = "store_unavailable"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class IncomingPingback:
    """Query parameters of one pingback, with the required keys pulled out."""

    uid: str
    ref: str
    sig: str
    type: str | None
    params: Mapping[str, str] = field(repr=False)

    @classmethod
    def parse(cls, params: Mapping[str, str]) -> IncomingPingback:
        """Validate the shape of ``params``.

        Raises:
            MalformedPingbackError: if uid, ref or sig is missing or empty.
        """
        missing = [key for key in REQUIRED_PARAMS if not params.get(key)]
        if missing:
            raise MalformedPingbackError(missing)
        return cls(
            uid=params["uid"],
            ref=params["ref"],
            sig=params["sig"],
            type=params.get("type"),
            params=dict(params),
        )


@dataclass(frozen=True)
class PingbackResult:
    """What happened to a pingback; never shown to the partner."""

    outcome: Outcome
    uid: str | None = None
    ref: str | None = None
    token: RewardToken | None = None
    detail: str = ""


def parse_user_id(uid: str) -> uuid.UUID:
    """Parse the partner's ``uid`` as a canonical hyphenated RFC 4122 UUID.

    Only versions 1-5 with the RFC 4122 variant are accepted, so the nil UUID
    and other reserved layouts are refused.

    Raises:
        InvalidIdentifierError: if ``uid`` is not UUID-shaped.
    """
    try:
        parsed = uuid.UUID(uid)
    except (ValueError, AttributeError, TypeError) as exc:
        raise InvalidIdentifierError(f"uid is not a UUID: {uid!r}") from exc
    # uuid.UUID also accepts braces, urn: prefixes and bare hex.
    if str(parsed) != uid.lower():
        raise InvalidIdentifierError(f"uid is not a canonical UUID: {uid!r}")
    if parsed.variant != uuid.RFC_4122 or parsed.version not in range(1, 6):
        raise InvalidIdentifierError(f"uid is not an RFC 4122 v1-v5 UUID: {uid!r}")
    return parsed


class PingbackController:
    """Orchestrates verification and issuance for one pingback at a time."""

    def __init__(
        self,
        settings: Settings,
        issuer: RewardIssuer | None,
    ) -> None:
        self._secret = settings.paymentwall_secret_key
        self._issuer = issuer

    async def handle(self, params: Mapping[str, str]) -> PingbackResult:
        """Process a pingback and return its terminal outcome.  Never raises."""
        uid = params.get("uid")
        ref = params.get("ref")
        context = {"uid": uid, "ref": ref, "type": params.get("type")}
        logger.info("Paymentwall pingback received", extra=context)

        try:
            token = await self._process(params)
        except PingbackError as exc:
            outcome = Outcome(exc.outcome)
            self._log_rejection(outcome, exc, context)
            return PingbackResult(outcome=outcome, uid=uid, ref=ref, detail=str(exc))
        except Exception:
            logger.exception("Paymentwall pingback crashed", extra=context)
            return PingbackResult(
                outcome=Outcome.INTERNAL_ERROR, uid=uid, ref=ref, detail="unexpected error"
            )

        logger.info(
            "Reward token issued",
            extra={**context, "outcome": Outcome.ISSUED.value, "token_id": str(token.id)},
        )
        return PingbackResult(outcome=Outcome.ISSUED, uid=uid, ref=ref, token=token)

    async def _process(self, params: Mapping[str, str]) -> RewardToken:
        pingback = IncomingPingback.parse(params)

        if not self._secret:
            raise ConfigurationMissingError("PAYMENTWALL_SECRET_KEY not configured")

        if not verify_pingback_signature(pingback.params, self._secret):
            raise InvalidSignatureError("Signature mismatch")

        user_id = parse_user_id(pingback.uid)

        if self._issuer is None:
            raise StoreUnavailableError("Token store is not initialized")

        if await self._issuer.seen(self._issuer.source, pingback.ref):
            raise DuplicateEventError(f"Duplicate pingback for ref={pingback.ref}")

        await self._issuer.ensure_quota(user_id)
        return await self._issuer.issue(user_id, pingback.ref)

    @staticmethod
    def _log_rejection(
        outcome: Outcome, exc: PingbackError, context: dict[str, str | None]
    ) -> None:
        extra = {**context, "outcome": outcome.value, "reason": str(exc)}
        if outcome is Outcome.STORE_UNAVAILABLE:
            logger.error("Pingback dropped: token store unavailable", extra=extra)
        elif outcome is Outcome.MISCONFIGURED:
            logger.error("Pingback dropped: service misconfigured", extra=extra)
        elif outcome in (Outcome.DUPLICATE, Outcome.QUOTA_EXCEEDED):
            logger.info("Pingback skipped", extra=extra)
        else:
            logger.warning("Pingback rejected", extra=extra)
