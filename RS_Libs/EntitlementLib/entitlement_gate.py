"""
Entitlement Gate.

Wraps a remote-editing operation with a pre-check and post-success
accounting. Accounting is all-or-nothing: a failed operation never debits,
and a successful one consumes exactly one unit no matter how many remote
calls it made internally.
"""

from enum import Enum
from typing import Callable, TypeVar
import logging

from RS_Libs.errors import UpgradeRequiredError
from RS_Libs.EntitlementLib.entitlement_store import EntitlementStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OperationValue(Enum):
    """How an operation is paid for by non-Pro users."""
    STANDARD = "standard"  # monthly free quota
    HIGH = "high"          # one credit


class EntitlementGate:
    """Gate injected with the process-wide EntitlementStore."""

    def __init__(self, store: EntitlementStore):
        self.store = store

    def check(self, value: OperationValue) -> None:
        """
        Pre-check without invoking anything.

        Raises:
            UpgradeRequiredError: If the user cannot afford the operation
        """
        if self.store.is_pro:
            return

        if value is OperationValue.HIGH:
            if self.store.credits < 1:
                raise UpgradeRequiredError(
                    "Out of Credits",
                    "This is a premium feature that requires credits. Purchase a credit "
                    "pack or upgrade to Pro for unlimited access.",
                )
        elif value is OperationValue.STANDARD:
            if self.store.monthly_edits >= self.store.edit_limit:
                raise UpgradeRequiredError(
                    "Monthly Limit Reached",
                    f"You've used all your {self.store.edit_limit} free edits for this month. "
                    f"Upgrade to Pro for unlimited edits or purchase credits.",
                )
        else:
            raise ValueError(f"Unknown operation value: {value}")

    def perform(self, operation: Callable[[], T], value: OperationValue) -> T:
        """
        Run an operation under the entitlement contract.

        Args:
            operation: Zero-argument callable performing the edit
            value: OperationValue.HIGH (credit) or OperationValue.STANDARD (quota)

        Returns:
            Whatever the operation returns

        Raises:
            UpgradeRequiredError: Before invoking, if the pre-check fails
            Exception: Anything the operation raises, with no accounting
        """
        self.check(value)

        try:
            result = operation()
        except Exception:
            logger.info("Edit failed, nothing was charged")
            raise

        if not self.store.is_pro:
            if value is OperationValue.HIGH:
                self.store.consume_credit(1)
            else:
                self.store.increment_monthly_edits(1)
        return result
