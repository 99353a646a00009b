"""Resource Credit estimation and pre-flight gating for posting operations.

RC is consumed destructively and regenerates linearly, so the status is
computed fresh for every posting attempt and never cached.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from .config import Settings, settings as default_settings
from .errors import ReadFailureError
from .interfaces import NodeReader
from .logging_setup import get_logger
from .models import ResourceCreditStatus
from .types import RawRcAccount

log = get_logger(__name__)

INSUFFICIENT_RC_MESSAGE = "Insufficient Resource Credits. You need more HIVE POWER or delegation to post."
RC_CHECK_FAILED_MESSAGE = "Error checking Resource Credits"


def current_mana(current: int, maximum: int, last_update_time: int, now: int, regeneration_seconds: int) -> int:
    """Linear manabar regeneration, capped at ``maximum``."""
    if maximum <= 0:
        return 0
    elapsed = now - last_update_time
    mana = current
    if elapsed > 0:
        mana = current + (maximum * elapsed) // regeneration_seconds
    return max(0, min(mana, maximum))


def manabar_percentage(mana: int, maximum: int) -> float:
    """Percentage with two-decimal precision."""
    if maximum <= 0:
        return 0.0
    return ((mana * 10000) // maximum) / 100


def get_estimated_rc_cost(body_length: int) -> int:
    # Linear proxy for ledger-side bandwidth cost; a pre-flight heuristic only.
    return max(1000, round(body_length * 1.2))


class ResourceCreditGuard:
    def __init__(
        self,
        node: NodeReader,
        config: Settings = default_settings,
        clock: Callable[[], float] = time.time,
    ):
        self.node = node
        self.config = config
        self.clock = clock

    def get_estimated_rc_cost(self, body_length: int) -> int:
        return get_estimated_rc_cost(body_length)

    async def can_user_post(self, username: str) -> ResourceCreditStatus:
        try:
            status = await self._check_rc_api(username)
            log.debug("rc_checked", username=username, rc_percentage=status.rc_percentage, source="rc_api")
            return status
        except Exception as e:
            log.warning("rc_primary_check_failed", username=username, error=str(e))

        try:
            status = await self._check_account_api(username)
            log.debug("rc_checked", username=username, rc_percentage=status.rc_percentage, source="condenser_api")
            return status
        except Exception as e:
            log.error("rc_fallback_check_failed", username=username, error=str(e))

        return ResourceCreditStatus(can_post=False, rc_percentage=0.0, message=RC_CHECK_FAILED_MESSAGE)

    async def _check_rc_api(self, username: str) -> ResourceCreditStatus:
        result = await self.node.call("rc_api.find_rc_accounts", {"accounts": [username]})
        if not isinstance(result, dict) or "rc_accounts" not in result:
            raise ReadFailureError("Malformed rc_api response")

        accounts = result["rc_accounts"]
        if not accounts:
            return ResourceCreditStatus(can_post=False, rc_percentage=0.0, message="Account not found")
        return self._status_from_manabar(accounts[0])

    async def _check_account_api(self, username: str) -> ResourceCreditStatus:
        accounts = await self.node.call("condenser_api.get_accounts", [[username]])
        if not accounts:
            return ResourceCreditStatus(
                can_post=False, rc_percentage=0.0, message="Unable to fetch account information"
            )
        return self._status_from_manabar(accounts[0])

    def _status_from_manabar(self, account: RawRcAccount) -> ResourceCreditStatus:
        manabar = account.get("rc_manabar")
        max_rc = account.get("max_rc")
        if not manabar or not max_rc:
            return ResourceCreditStatus(
                can_post=False, rc_percentage=0.0, message="Resource Credits information not available"
            )

        maximum = int(max_rc)
        mana = current_mana(
            int(manabar["current_mana"]),
            maximum,
            int(manabar["last_update_time"]),
            int(self.clock()),
            self.config.manabar_regeneration_seconds,
        )
        percentage = manabar_percentage(mana, maximum)

        if percentage < self.config.min_rc_percentage:
            return ResourceCreditStatus(can_post=False, rc_percentage=percentage, message=INSUFFICIENT_RC_MESSAGE)
        return ResourceCreditStatus(can_post=True, rc_percentage=percentage)

    async def require_post_budget(self, username: str) -> Optional[ResourceCreditStatus]:
        """Return the blocking status when posting must not proceed, else None."""
        status = await self.can_user_post(username)
        if status.can_post:
            return None
        log.warning("rc_preflight_blocked", username=username, rc_percentage=status.rc_percentage,
                    message=status.message)
        return status
