"""
Step-by-step progress view model.

A ProgressState is an ordered list of ProgressSteps. Two kinds exist:

    - A flow's own step list (e.g. approve → transfer → relay), owned by
      its FlowController.
    - The tracking view (submit → confirm → relay → deliver), created once
      a dispatching receipt yields a message identifier.

Ordering invariant:
    A step may be ACTIVE or COMPLETE only if every earlier step is
    COMPLETE. Every mutation is validated against the whole list before
    it is applied; a violating mutation raises StepOrderError and leaves
    the state unchanged.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import StrEnum

from xchain_flows.models import MessageStatus, TrackedMessage


class StepStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETE = "complete"
    ERROR = "error"


class StepOrderError(ValueError):
    """A mutation would make a later step run ahead of an earlier one."""


# Tracking view step ids, in order.
SUBMIT = "submit"
CONFIRM = "confirm"
RELAY = "relay"
DELIVER = "deliver"

TRACKING_STEPS: tuple[tuple[str, str], ...] = (
    (SUBMIT, "Submitting transaction"),
    (CONFIRM, "Confirming on origin chain"),
    (RELAY, "Relaying cross-chain"),
    (DELIVER, "Delivering to destination"),
)


@dataclass(frozen=True)
class ProgressStep:
    id: str
    label: str
    status: StepStatus = StepStatus.PENDING
    tx_hash: str | None = None
    error: str | None = None


def _check_order(steps: Sequence[ProgressStep]) -> None:
    all_complete = True
    for step in steps:
        if step.status in (StepStatus.ACTIVE, StepStatus.COMPLETE) and not all_complete:
            raise StepOrderError(
                f"step {step.id!r} cannot be {step.status} before earlier steps complete"
            )
        all_complete = all_complete and step.status is StepStatus.COMPLETE


class ProgressState:
    """Ordered, invariant-checked list of progress steps."""

    def __init__(self, steps: Sequence[ProgressStep]) -> None:
        ids = [s.id for s in steps]
        if len(set(ids)) != len(ids):
            raise ValueError(f"duplicate step ids: {ids}")
        _check_order(steps)
        self._steps: list[ProgressStep] = list(steps)

    @classmethod
    def create(cls, definitions: Sequence[tuple[str, str]]) -> ProgressState:
        """Fresh state with every step PENDING."""
        return cls([ProgressStep(id=step_id, label=label) for step_id, label in definitions])

    @classmethod
    def tracking(cls) -> ProgressState:
        return cls.create(TRACKING_STEPS)

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    @property
    def steps(self) -> tuple[ProgressStep, ...]:
        return tuple(self._steps)

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(s.id for s in self._steps)

    def get(self, step_id: str) -> ProgressStep:
        return self._steps[self._index(step_id)]

    def __contains__(self, step_id: object) -> bool:
        return any(s.id == step_id for s in self._steps)

    @property
    def active_step(self) -> ProgressStep | None:
        for step in self._steps:
            if step.status is StepStatus.ACTIVE:
                return step
        return None

    @property
    def is_complete(self) -> bool:
        return all(s.status is StepStatus.COMPLETE for s in self._steps)

    @property
    def has_error(self) -> bool:
        return any(s.status is StepStatus.ERROR for s in self._steps)

    # -----------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------

    def set_status(
        self,
        step_id: str,
        status: StepStatus,
        *,
        tx_hash: str | None = None,
        error: str | None = None,
    ) -> ProgressStep:
        """Set one step's status.

        ``tx_hash`` is kept from the previous value when not given.
        ``error`` is cleared unless the new status is ERROR.

        Raises:
            KeyError: Unknown step id.
            StepOrderError: The change would break the ordering invariant.
        """
        index = self._index(step_id)
        current = self._steps[index]
        updated = replace(
            current,
            status=status,
            tx_hash=tx_hash or current.tx_hash,
            error=error if status is StepStatus.ERROR else None,
        )
        candidate = list(self._steps)
        candidate[index] = updated
        _check_order(candidate)
        self._steps = candidate
        return updated

    def activate(self, step_id: str) -> ProgressStep:
        return self.set_status(step_id, StepStatus.ACTIVE)

    def complete(self, step_id: str, tx_hash: str | None = None) -> ProgressStep:
        return self.set_status(step_id, StepStatus.COMPLETE, tx_hash=tx_hash)

    def fail(self, step_id: str, error: str) -> ProgressStep:
        return self.set_status(step_id, StepStatus.ERROR, error=error)

    def reset_from(self, step_id: str) -> None:
        """Return ``step_id`` and every later step to PENDING."""
        first = self._index(step_id)
        self._steps = self._steps[:first] + [
            ProgressStep(id=s.id, label=s.label) for s in self._steps[first:]
        ]

    def complete_through(self, step_id: str, tx_hash: str | None = None) -> None:
        """Complete every step up to and including ``step_id``, in order."""
        last = self._index(step_id)
        for step in self._steps[: last + 1]:
            if step.status is not StepStatus.COMPLETE:
                self.complete(step.id, tx_hash)

    def apply_message(self, message: TrackedMessage) -> None:
        """Mirror a tracked message's delivery status into the steps.

        DELIVERED completes every remaining step; the last one carries the
        destination tx hash when known. FAILED marks the last step as an
        error. PENDING changes nothing.
        """
        if message.status is MessageStatus.DELIVERED:
            if self.is_complete:
                return
            remaining = [s.id for s in self._steps if s.status is not StepStatus.COMPLETE]
            for step_id in remaining[:-1]:
                self.complete(step_id)
            self.complete(remaining[-1], message.destination_tx_hash)
        elif message.status is MessageStatus.FAILED:
            last = self._steps[-1]
            if last.status is not StepStatus.ERROR:
                self.fail(last.id, "Delivery failed")

    def _index(self, step_id: str) -> int:
        for i, step in enumerate(self._steps):
            if step.id == step_id:
                return i
        raise KeyError(step_id)

    def __repr__(self) -> str:
        inner = ", ".join(f"{s.id}={s.status}" for s in self._steps)
        return f"ProgressState({inner})"
