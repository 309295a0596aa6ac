"""Purchase update events and the per-attempt state machine.

A purchase attempt moves ``STARTED -> {UPDATED | FAILED | STOPPED}`` and is
terminal on any of the three.
"""

import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from iap_sync.state_logger import log_purchase_attempt_transition


class PurchaseEvent(str, Enum):
    """Observable purchase transitions."""

    STARTED = "STARTED"  # Platform delivered a purchase result
    UPDATED = "UPDATED"  # Platform success and ledger accepted
    FAILED = "FAILED"  # Platform success but ledger rejected / unreachable
    STOPPED = "STOPPED"  # Platform reported non-success (e.g. user cancelled)

    @property
    def is_terminal(self) -> bool:
        return self is not PurchaseEvent.STARTED


class InvalidTransitionError(Exception):
    """Raised when a purchase attempt is moved out of a terminal state."""

    pass


class PurchaseAttempt(BaseModel):
    """One purchase result delivered by the platform and its outcome."""

    attempt_id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Attempt ID")
    state: PurchaseEvent = Field(default=PurchaseEvent.STARTED, description="Current state")
    product_id: Optional[str] = Field(None, description="First purchased product ID")
    purchase_token: Optional[str] = Field(None, description="Purchase token, if any")
    detail: Optional[str] = Field(None, description="Reason for the terminal state")

    def transition(self, new_state: PurchaseEvent, detail: Optional[str] = None) -> None:
        """Move to a terminal state and log the transition.

        Raises:
            InvalidTransitionError: If the attempt is already terminal or
                ``new_state`` is STARTED
        """
        if self.state.is_terminal:
            raise InvalidTransitionError(
                f"Purchase attempt {self.attempt_id} is already {self.state.value}"
            )
        if not new_state.is_terminal:
            raise InvalidTransitionError(f"Cannot move purchase attempt back to {new_state.value}")

        old_state = self.state
        self.state = new_state
        self.detail = detail
        log_purchase_attempt_transition(
            attempt_id=self.attempt_id,
            old_state=old_state.value,
            new_state=new_state.value,
            token=self.purchase_token,
            product_id=self.product_id,
            detail=detail,
        )
