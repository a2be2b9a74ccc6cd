# access.py
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from events import DEVICE_BLOCKED, DEVICE_UNBLOCKED, EventBroadcaster
from presence import PresenceCache
from runners import BaseRunner, CommandError
from scheduler import TaskScheduler
from utils import format_mac

logger = logging.getLogger(__name__)

CHAINS = ("INPUT", "FORWARD")


@dataclass
class EnforcementResult:
    mac: str
    ok: bool
    message: str
    deauthenticated: Optional[bool] = None


class AccessController:
    """Blocks and unblocks devices with iptables MAC DROP rules and hostapd deauth.

    The ``blocked`` flag in the presence cache is the source of truth; the
    firewall rules are the enforcement side effect and can be re-derived with
    ``reapply``.

    Deferred re-blocks (auto-revoke, guest expiry) share ``scheduler``, keyed by
    MAC, so any later access decision for a device supersedes a pending one.
    """

    def __init__(self, runner: BaseRunner, cache: PresenceCache,
                 broadcaster: Optional[EventBroadcaster] = None, interface: str = "wlan0",
                 scheduler: Optional[TaskScheduler] = None):
        self.runner = runner
        self.cache = cache
        self.broadcaster = broadcaster
        self.interface = interface
        self.scheduler = scheduler or TaskScheduler("access")

    @staticmethod
    def rule(action: str, chain: str, mac: str) -> List[str]:
        return ["iptables", action, chain, "-m", "mac", "--mac-source", mac, "-j", "DROP"]

    async def _rule_exists(self, chain: str, mac: str) -> bool:
        try:
            await self.runner.run(self.rule("-C", chain, mac))
            return True
        except CommandError:
            return False

    async def _insert_rules(self, mac: str) -> List[str]:
        """Inserts missing DROP rules and returns the chains it added to.

        If an insertion fails, only the rules added by this call are removed
        before the error is re-raised; rules already in place stay.
        """
        inserted = []
        try:
            for chain in CHAINS:
                if await self._rule_exists(chain, mac):
                    logger.debug(f"DROP rule for {mac} already present in {chain}")
                    continue
                await self.runner.run(self.rule("-I", chain, mac))
                inserted.append(chain)
        except CommandError:
            await self._remove_rules(mac, inserted)
            raise
        return inserted

    async def _remove_rules(self, mac: str, chains: Sequence[str] = CHAINS) -> None:
        for chain in chains:
            try:
                await self.runner.run(self.rule("-D", chain, mac))
            except CommandError as e:
                logger.debug(f"No DROP rule removed for {mac} in {chain}: {e}")

    async def deauthenticate(self, mac: str) -> bool:
        try:
            await self.runner.run(["hostapd_cli", "-i", self.interface, "deauthenticate", mac])
            return True
        except CommandError as e:
            logger.warning(f"Deauthentication of {mac} failed: {e}")
            return False

    def _publish(self, event_type: str, mac: str) -> None:
        if self.broadcaster:
            self.broadcaster.publish(event_type, {"mac": mac})

    async def block(self, mac: str) -> EnforcementResult:
        mac = format_mac(mac)
        try:
            await self._insert_rules(mac)
        except CommandError as e:
            logger.error(f"Error blocking device {mac}: {e}")
            return EnforcementResult(mac, False, f"Failed to block device {mac}")

        deauthenticated = await self.deauthenticate(mac)
        await self.cache.set_blocked(mac, True)
        logger.info(f"Blocked device: {mac}")
        self._publish(DEVICE_BLOCKED, mac)
        return EnforcementResult(mac, True, f"Device {mac} blocked successfully", deauthenticated)

    async def unblock(self, mac: str) -> EnforcementResult:
        mac = format_mac(mac)
        if self.scheduler.cancel(mac):
            logger.info(f"Cancelled pending re-block of {mac}")
        await self._remove_rules(mac)
        await self.cache.set_blocked(mac, False)
        logger.info(f"Unblocked device: {mac}")
        self._publish(DEVICE_UNBLOCKED, mac)
        return EnforcementResult(mac, True, f"Device {mac} unblocked successfully")

    async def reapply(self) -> int:
        """Re-installs DROP rules for every cached device flagged as blocked."""
        count = 0
        for record in await self.cache.devices():
            if not record.blocked:
                continue
            try:
                await self._insert_rules(record.mac)
                count += 1
            except CommandError as e:
                logger.error(f"Could not re-apply block for {record.mac}: {e}")
        if count:
            logger.info(f"Re-applied DROP rules for {count} blocked devices")
        return count
