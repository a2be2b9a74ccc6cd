# authorization.py
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from access import AccessController, EnforcementResult
from device import PendingAuthorizationRequest, UNKNOWN_NAME
from events import DEVICE_APPROVED, NEW_DEVICE_ATTEMPT, EventBroadcaster
from scheduler import TaskScheduler
from utils import format_mac, isoformat, utc_now

logger = logging.getLogger(__name__)

APPROVE = "approve"
DENY_ACTIONS = ("deny", "reject")


class AuthorizationWorkflow:
    """Pending access requests from unrecognized devices, and their resolution.

    Per MAC: (none) -> pending -> approved | denied. Resolved requests are
    dropped from the pending set; there is no history here.
    """

    def __init__(self, access: AccessController, broadcaster: Optional[EventBroadcaster] = None,
                 scheduler: Optional[TaskScheduler] = None,
                 refresh: Optional[Callable[[], Awaitable[object]]] = None):
        self.access = access
        self.broadcaster = broadcaster
        self.scheduler = scheduler or access.scheduler
        self.refresh = refresh
        self._pending: Dict[str, PendingAuthorizationRequest] = {}

    def pending(self) -> List[PendingAuthorizationRequest]:
        return list(self._pending.values())

    def request(self, mac: str, ip: str = "", name: str = "") -> bool:
        """Queues an access request; returns False if one is already pending for the MAC."""
        mac = format_mac(mac)
        if mac in self._pending:
            logger.debug(f"Access request for {mac} already pending")
            return False

        entry = PendingAuthorizationRequest(
            mac=mac, ip=ip or "", name=name or UNKNOWN_NAME, timestamp=isoformat(utc_now()),
        )
        self._pending[mac] = entry
        logger.info(f"New device {entry.name} ({mac}) at {entry.ip or '?'} is requesting access")
        if self.broadcaster:
            self.broadcaster.publish(NEW_DEVICE_ATTEMPT, {"mac": mac, "ip": entry.ip, "name": entry.name})
        return True

    async def resolve(self, mac: str, action: str, time_limit_minutes: Optional[float] = None) -> EnforcementResult:
        """Approves or denies a device, whether or not it had a pending request.

        Args:
            mac: Device MAC address.
            action: "approve", or "deny"/"reject".
            time_limit_minutes: For approvals, re-block the device after this
                many minutes. None or 0 means no limit.

        Raises:
            ValueError: for an unknown action.
        """
        action = action.lower()
        if action != APPROVE and action not in DENY_ACTIONS:
            raise ValueError(f"Unsupported action: {action}")

        mac = format_mac(mac)
        self._pending.pop(mac, None)
        self.scheduler.cancel(mac)

        if action == APPROVE:
            result = await self.access.unblock(mac)
            if self.broadcaster:
                self.broadcaster.publish(DEVICE_APPROVED, {"mac": mac})
            if time_limit_minutes and time_limit_minutes > 0:
                self.scheduler.schedule(mac, time_limit_minutes * 60, lambda: self._revoke(mac))
                logger.info(f"Approved {mac} for {time_limit_minutes} minutes")
            else:
                logger.info(f"Approved {mac}")
        else:
            result = await self.access.block(mac)
            logger.info(f"Denied {mac}")

        if self.refresh:
            await self.refresh()
        return result

    async def _revoke(self, mac: str) -> None:
        logger.info(f"Time-limited access for {mac} expired")
        await self.access.block(mac)
        if self.refresh:
            await self.refresh()

    def close(self) -> None:
        self.scheduler.cancel_all()
