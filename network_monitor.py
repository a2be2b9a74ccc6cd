# network_monitor.py
import argparse
import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from dynaconf import Dynaconf, Validator
from mac_vendor_lookup import MacLookup

from access import AccessController
from authorization import AuthorizationWorkflow
from data import JsonRepository
from device import DeviceRecord
from events import DEVICE_SCAN, EventBroadcaster
from guests import GuestManager
from presence import PresenceCache
from runners import get_runner
from scanner import ScanFailure, Scanner, VendorResolver

# Load settings
config = Dynaconf(
    settings_files=['config/settings.toml'],
    envvar_prefix="NETGUARD",
    validators=[
        Validator("general.interface", default="wlan0"),
        Validator("general.runner", default="local"),
        Validator("general.use_sudo", default=True),
        Validator("general.command_timeout", default=30),
        Validator("general.scan_interval", default=300),
        Validator("general.device_cache", default="device-cache.json"),
        Validator("general.guest_cache", default="guest-cache.json"),
        Validator("server.host", default="0.0.0.0"),
        Validator("server.port", default=3000),
        Validator("server.max_pending_events", default=100),
    ],
)

logger = logging.getLogger(__name__)


class NetworkMonitor:
    """Wires the scan -> reconcile -> enforce -> broadcast loop together."""

    def __init__(self, scanner: Scanner, cache: PresenceCache, access: AccessController,
                 broadcaster: EventBroadcaster, guest_repository: JsonRepository):
        self.scanner = scanner
        self.cache = cache
        self.access = access
        self.broadcaster = broadcaster
        self.authorization = AuthorizationWorkflow(access, broadcaster, scheduler=access.scheduler,
                                                   refresh=self.refresh)
        self.guests = GuestManager(guest_repository, access, broadcaster, scheduler=access.scheduler)
        self.last_scan_failure: Optional[ScanFailure] = None

    async def refresh(self) -> List[DeviceRecord]:
        """Scans, reconciles and broadcasts; serves the cached list if the scan fails."""
        observations = await self.scanner.scan()
        if isinstance(observations, ScanFailure):
            self.last_scan_failure = observations
            devices = await self.cache.devices()
            logger.warning(f"Serving {len(devices)} cached devices after scan failure")
        else:
            self.last_scan_failure = None
            devices = await self.cache.reconcile(observations)
        # reconcile has already written through to disk at this point
        self.broadcaster.publish(DEVICE_SCAN, [d.to_dict() for d in devices])
        return devices

    async def start(self) -> None:
        await self.access.reapply()
        await self.guests.restore()

    async def run_forever(self, interval: float) -> None:
        while True:
            try:
                await self.refresh()
            except Exception:  # pylint: disable=broad-except
                logger.exception("Unexpected error during periodic scan")
            await asyncio.sleep(interval)

    def close(self) -> None:
        self.authorization.close()
        self.guests.close()


def build_monitor(config: Dynaconf, mac_lookup=None) -> NetworkMonitor:
    """Builds a monitor from settings."""
    runner = get_runner(config)
    interface = config.general.interface
    broadcaster = EventBroadcaster(max_pending=config.server.max_pending_events)
    cache = PresenceCache(JsonRepository(Path(config.general.device_cache), dict), VendorResolver(mac_lookup))
    return NetworkMonitor(
        scanner=Scanner(runner, interface=interface),
        cache=cache,
        access=AccessController(runner, cache, broadcaster, interface=interface),
        broadcaster=broadcaster,
        guest_repository=JsonRepository(Path(config.general.guest_cache), list),
    )

async def run_once(monitor: NetworkMonitor) -> List[DeviceRecord]:
    devices = await monitor.refresh()
    if monitor.last_scan_failure:
        logger.error(f"Scan failed: {monitor.last_scan_failure.reason}")
    return devices

def main():
    parser = argparse.ArgumentParser(description="Pi network guard: device presence and access control")
    parser.add_argument("--update-mac-db", action="store_true", help="Force update of the MAC vendor database")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--once", action="store_true", help="Scan once, print the device list and exit")
    parser.add_argument("--host", help="Address to bind the HTTP server to")
    parser.add_argument("--port", type=int, help="Port for the HTTP server")
    args = parser.parse_args()

    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format='%(asctime)s - %(levelname)s - %(name)s - %(message)s')
    else:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(name)s - %(message)s')

    if args.update_mac_db:
        # Update the database if requested.
        MacLookup().update_vendors()

    config.validators.validate()
    monitor = build_monitor(config)

    if args.once:
        for device in asyncio.run(run_once(monitor)):
            print(device.to_dict())
        return

    import uvicorn
    from api import create_app

    app = create_app(monitor, scan_interval=config.general.scan_interval)
    uvicorn.run(app, host=args.host or config.server.host, port=args.port or config.server.port,
                log_level="debug" if args.debug else "info")

if __name__ == "__main__":
    main()
