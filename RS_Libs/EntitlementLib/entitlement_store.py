"""
Persisted entitlement state for Retouch Studio.

The store is a process-wide context object: it is opened once at startup
(reading the persisted key/value flags), injected into the entitlement gate,
and closed at teardown. Every mutation is written back immediately.

Persisted keys:
    rs-studio-session       "true" while signed in
    rs-studio-isPro         "true" for Pro accounts
    rs-studio-credits       integer credit balance
    rs-studio-monthlyEdits  integer count of free edits used this month
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional
import json
import logging
import os

from RS_Libs.constants import (
    FREE_TIER_EDIT_LIMIT,
    FREE_TIER_STARTING_CREDITS,
    KEY_CREDITS,
    KEY_IS_PRO,
    KEY_MONTHLY_EDITS,
    KEY_SESSION,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Entitlement:
    """Snapshot of the user's entitlement."""
    is_signed_in: bool = False
    is_pro: bool = False
    credits: int = 0
    monthly_edits: int = 0


def _parse_int(value: Optional[str]) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


class EntitlementStore:
    """
    Owns the entitlement flags and their persistence.

    Args:
        path: JSON file used as the key/value store
        edit_limit: Monthly free-edit quota
    """

    def __init__(self, path: Path, edit_limit: int = FREE_TIER_EDIT_LIMIT):
        if edit_limit < 0:
            raise ValueError(f"edit_limit must be >= 0, got {edit_limit}")
        self.path = Path(path)
        self.edit_limit = edit_limit
        self._values: Dict[str, str] = {}
        self._state = Entitlement()
        self._opened = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self) -> "EntitlementStore":
        """Read persisted values once. Returns self for chaining."""
        self._values = self._read()
        self._state = self._state_from_values()
        self._opened = True
        logger.info(f"Opened entitlement store {self.path}")
        return self

    def close(self) -> None:
        self._opened = False
        logger.info(f"Closed entitlement store {self.path}")

    def __enter__(self) -> "EntitlementStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._opened

    def _state_from_values(self) -> Entitlement:
        if self._values.get(KEY_SESSION) != "true":
            return Entitlement()
        return Entitlement(
            is_signed_in=True,
            is_pro=self._values.get(KEY_IS_PRO) == "true",
            credits=_parse_int(self._values.get(KEY_CREDITS)),
            monthly_edits=min(self.edit_limit, _parse_int(self._values.get(KEY_MONTHLY_EDITS))),
        )

    def _require_open(self) -> None:
        if not self._opened:
            raise RuntimeError("EntitlementStore is not open")

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read entitlement file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, values: Dict[str, str]) -> None:
        """Write to a sibling temp file, then swap it into place."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp_path.write_text(json.dumps(values, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def _set_many(self, changes: Dict[str, Optional[str]]) -> None:
        values = dict(self._values)
        for key, value in changes.items():
            if value is None:
                values.pop(key, None)
            else:
                values[key] = value
        self._write(values)
        self._values = values

    def _set(self, key: str, value: Optional[str]) -> None:
        self._set_many({key: value})

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def state(self) -> Entitlement:
        return self._state

    @property
    def is_pro(self) -> bool:
        return self._state.is_pro

    @property
    def credits(self) -> int:
        return self._state.credits

    @property
    def monthly_edits(self) -> int:
        return self._state.monthly_edits

    def _update(self, **changes) -> None:
        values = {
            "is_signed_in": self._state.is_signed_in,
            "is_pro": self._state.is_pro,
            "credits": self._state.credits,
            "monthly_edits": self._state.monthly_edits,
        }
        values.update(changes)
        self._state = Entitlement(**values)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------
    def sign_in(self) -> None:
        """
        Start a session with the persisted balances.

        Only a first-ever sign-in (no balance on record) grants the starting
        credits; signing out and back in does not.
        """
        self._require_open()
        first_sign_in = KEY_CREDITS not in self._values
        changes = {KEY_SESSION: "true"}
        if first_sign_in:
            changes[KEY_CREDITS] = str(FREE_TIER_STARTING_CREDITS)
        self._set_many(changes)
        self._state = self._state_from_values()
        if first_sign_in:
            logger.info(f"First sign-in: granted {FREE_TIER_STARTING_CREDITS} credits")

    def sign_out(self) -> None:
        """End the session; balances stay persisted for the next sign-in."""
        self._require_open()
        self._set(KEY_SESSION, None)
        self._state = Entitlement()

    # ------------------------------------------------------------------
    # Purchases and accounting
    # ------------------------------------------------------------------
    def purchase_pro_plan(self) -> None:
        self._require_open()
        self._set(KEY_IS_PRO, "true")
        self._update(is_pro=True)
        logger.info("Upgraded to Pro")

    def purchase_credits(self, amount: int) -> None:
        self._require_open()
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")
        credits = self._state.credits + amount
        self._set(KEY_CREDITS, str(credits))
        self._update(credits=credits)
        logger.info(f"Purchased {amount} credits (balance {credits})")

    def consume_credit(self, amount: int = 1) -> bool:
        """
        Debit credits. Pro accounts and insufficient balances are untouched.

        Returns:
            True if the balance changed
        """
        self._require_open()
        if self._state.is_pro or self._state.credits < amount:
            return False
        credits = self._state.credits - amount
        self._set(KEY_CREDITS, str(credits))
        self._update(credits=credits)
        logger.debug(f"Consumed {amount} credit(s), balance {credits}")
        return True

    def increment_monthly_edits(self, amount: int = 1) -> bool:
        """
        Count free edits. Pro accounts and an exhausted quota are untouched.

        Returns:
            True if the counter changed
        """
        self._require_open()
        if self._state.is_pro or self._state.monthly_edits >= self.edit_limit:
            return False
        edits = min(self.edit_limit, self._state.monthly_edits + amount)
        self._set(KEY_MONTHLY_EDITS, str(edits))
        self._update(monthly_edits=edits)
        logger.debug(f"Monthly edits {edits}/{self.edit_limit}")
        return True

    def reset_monthly_edits(self) -> None:
        """Start a new monthly quota period."""
        self._require_open()
        self._set(KEY_MONTHLY_EDITS, "0")
        self._update(monthly_edits=0)
