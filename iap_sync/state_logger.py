"""State change logging for the platform connection, purchase attempts and sessions.

Tracks state transitions with before/after values for debugging and auditing.
"""

from typing import Any, Optional

from iap_sync.logging_config import get_logger

logger = get_logger(__name__)


def _short_token(token: Optional[str]) -> Optional[str]:
    if token is None:
        return None
    return token[:20] + "..." if len(token) > 20 else token


def log_connection_state_change(
    old_state: Any,
    new_state: Any,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log a purchase platform connection state change.

    Args:
        old_state: Previous connection state
        new_state: New connection state
        reason: Reason for state change (setup result, service lost, ...)
        **extra_context: Additional context (response_code, debug_message, ...)
    """
    logger.info(
        "connection_state_changed",
        old_state=str(old_state),
        new_state=str(new_state),
        reason=reason,
        **extra_context,
    )


def log_purchase_attempt_transition(
    attempt_id: str,
    old_state: Any,
    new_state: Any,
    token: Optional[str] = None,
    product_id: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log a purchase attempt transition (STARTED -> UPDATED/FAILED/STOPPED).

    Args:
        attempt_id: Identifier of the purchase attempt
        old_state: Previous attempt state (None for a fresh attempt)
        new_state: New attempt state
        token: Purchase token, if the platform reported one
        product_id: Product ID, if known
        **extra_context: Additional context
    """
    logger.info(
        "purchase_attempt_transition",
        attempt_id=attempt_id,
        old_state=str(old_state),
        new_state=str(new_state),
        token=_short_token(token),
        product_id=product_id,
        **extra_context,
    )


def log_reconciliation(
    token: str,
    product_id: str,
    accepted: bool,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log the outcome of a ledger submission for a purchase token."""
    logger.info(
        "purchase_reconciled" if accepted else "purchase_reconciliation_rejected",
        token=_short_token(token),
        product_id=product_id,
        accepted=accepted,
        reason=reason,
        **extra_context,
    )


def log_session_flag_change(
    flag: str,
    old_value: Any,
    new_value: Any,
    reason: Optional[str] = None,
) -> None:
    """Log a session view-state flag change.

    Args:
        flag: Flag name (e.g. "no_connection_and_no_cache")
        old_value: Previous value
        new_value: New value
        reason: Reason for the change
    """
    if old_value == new_value:
        return
    logger.info(
        "session_flag_changed",
        flag=flag,
        old_value=old_value,
        new_value=new_value,
        reason=reason,
    )
