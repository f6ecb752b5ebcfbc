"""
Error taxonomy for cross-chain flows.

Three families, each handled at a different boundary:

    - Input/validation: ``RouteUnavailable`` is a value, never raised.
      Controllers return ``None`` from ``build_step_call`` and keep the
      user on the form.
    - Submission: ``SubmissionError`` is attributed to one flow step.
      The flow halts; no tracked message is created.
    - Reconciliation: ``StatusCheckError`` / ``DeploymentNotFound`` are
      transient. The reconciler catches them per message and retries on
      the next tick.

Signer backends surface failures in many shapes (wallet rejection
strings, JSON-RPC error objects, httpx exceptions). The classifier maps
them to a small set of codes and defaults to UNKNOWN rather than
guessing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx


class XChainError(Exception):
    """Base error carrying a stable machine-readable code."""

    def __init__(
        self,
        message: str,
        *,
        error_code: str = "UNKNOWN",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


# =========================================================================
# Input / validation
# =========================================================================


class RouteErrorCode(StrEnum):
    """Why a bridge route cannot be used."""

    UNKNOWN_CHAIN = "UNKNOWN_CHAIN"
    UNKNOWN_TOKEN = "UNKNOWN_TOKEN"
    NOT_BRIDGEABLE = "NOT_BRIDGEABLE"
    NO_QUOTE = "NO_QUOTE"


@dataclass(frozen=True)
class RouteUnavailable:
    """Typed "route unavailable" condition for the bridge form.

    Attributes:
        code: Machine-readable reason.
        message: Text suitable for showing inline on the form.
        details: Extra context (chain ids, token symbol).
    """

    code: RouteErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)


# =========================================================================
# Submission
# =========================================================================


class SubmissionErrorCode(StrEnum):
    """Why a step's transaction did not land."""

    USER_REJECTED = "USER_REJECTED"
    SIMULATION_FAILED = "SIMULATION_FAILED"
    REVERTED = "REVERTED"
    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
    UNKNOWN = "UNKNOWN"


class SubmissionError(XChainError):
    """A signer/submission failure attributed to one flow step."""

    def __init__(
        self,
        message: str,
        *,
        code: SubmissionErrorCode = SubmissionErrorCode.UNKNOWN,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, error_code=str(code), details=details)
        self.code = code


class UserRejected(SubmissionError):
    """The user declined to sign."""

    def __init__(self, message: str = "User rejected the request") -> None:
        super().__init__(message, code=SubmissionErrorCode.USER_REJECTED)


# Lowercase substrings → code. First match wins, so order matters.
_MESSAGE_PATTERNS: tuple[tuple[str, SubmissionErrorCode], ...] = (
    ("user rejected", SubmissionErrorCode.USER_REJECTED),
    ("user denied", SubmissionErrorCode.USER_REJECTED),
    ("rejected the request", SubmissionErrorCode.USER_REJECTED),
    ("simulation", SubmissionErrorCode.SIMULATION_FAILED),
    ("execution reverted", SubmissionErrorCode.SIMULATION_FAILED),
    ("reverted", SubmissionErrorCode.REVERTED),
)

# EIP-1193 provider error code for user rejection.
_EIP1193_USER_REJECTED = 4001


def classify_submission_error(exc: BaseException) -> SubmissionError:
    """Map an arbitrary signer/submitter exception to a SubmissionError.

    Args:
        exc: Whatever the signing collaborator raised.

    Returns:
        ``exc`` itself if it already is a SubmissionError, otherwise a new
        SubmissionError wrapping its message with the best-matching code.
    """
    if isinstance(exc, SubmissionError):
        return exc

    message = str(exc) or type(exc).__name__

    if isinstance(exc, httpx.HTTPError):
        return SubmissionError(message, code=SubmissionErrorCode.BACKEND_UNAVAILABLE)

    if getattr(exc, "code", None) == _EIP1193_USER_REJECTED:
        return SubmissionError(message, code=SubmissionErrorCode.USER_REJECTED)

    lowered = message.lower()
    for pattern, code in _MESSAGE_PATTERNS:
        if pattern in lowered:
            return SubmissionError(message, code=code)

    return SubmissionError(message, code=SubmissionErrorCode.UNKNOWN)


# =========================================================================
# Reconciliation
# =========================================================================


class StatusCheckError(XChainError):
    """A delivery status backend could not answer. Always transient."""


class DeploymentNotFound(XChainError):
    """No deployment (mailbox, RPC, router) is configured for a chain."""

    def __init__(self, chain_id: int, what: str = "deployment") -> None:
        super().__init__(
            f"no {what} configured for chain {chain_id}",
            error_code="DEPLOYMENT_NOT_FOUND",
            details={"chain_id": chain_id, "what": what},
        )
        self.chain_id = chain_id
