"""
Bounded polling of an order's payment state.

After the redirect back from the hosted checkout, the webhook may not
have landed yet. ``poll_until_settled`` re-reads the state a fixed number
of times with a fixed delay and stops early once the payment is settled.
"""

import logging
import time
from dataclasses import dataclass, field

from django.conf import settings

from .services import get_order
from .state import PaymentStatus, TERMINAL_PAYMENT_STATES, is_settled

logger = logging.getLogger(__name__)

PROCESSING = "processing"


@dataclass(frozen=True)
class PollResult:
    outcome: str
    attempts: int
    state: dict = field(default_factory=dict)

    @property
    def settled(self) -> bool:
        return self.outcome != PROCESSING


def order_state(ctx, order_id) -> dict:
    """Cheap read of the fields the confirmation page needs."""
    order = get_order(ctx, order_id)
    return {
        "order_id": str(order.pk),
        "status": order.status,
        "payment_status": order.payment_status,
        "settled": order.is_settled,
    }


def _outcome(state):
    if state["payment_status"] in TERMINAL_PAYMENT_STATES:
        return state["payment_status"]
    return state["status"]


def poll_until_settled(fetch, attempts=None, delay=None, sleep=time.sleep) -> PollResult:
    """
    Call ``fetch`` until it reports a settled state or the budget runs out.

    ``fetch`` returns a mapping with ``status`` and ``payment_status``.
    The outcome is ``paid``/``refunded``/``cancelled`` when settled, and
    ``processing`` when every attempt came back unsettled.
    """
    attempts = settings.CONFIRMATION_POLL_ATTEMPTS if attempts is None else attempts
    delay = settings.CONFIRMATION_POLL_DELAY if delay is None else delay
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    state = {}
    for attempt in range(1, attempts + 1):
        state = fetch()
        if is_settled(state["payment_status"], state["status"]):
            logger.debug("Order settled after %s attempt(s): %s", attempt, state)
            return PollResult(_outcome(state), attempt, state)
        if attempt < attempts:
            sleep(delay)

    logger.info("Order still %s after %s attempts", state.get("payment_status", PaymentStatus.UNPAID), attempts)
    return PollResult(PROCESSING, attempts, state)
