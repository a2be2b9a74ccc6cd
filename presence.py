# presence.py
import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from data import JsonRepository
from device import DeviceRecord, DeviceStatus, UNKNOWN_NAME, UNKNOWN_VENDOR
from scanner import RawObservation, VendorResolver, classify_device
from utils import format_mac, isoformat, utc_now

logger = logging.getLogger(__name__)

def sort_devices(devices: Iterable[DeviceRecord]) -> List[DeviceRecord]:
    """Sorts by name, case-insensitively, with the MAC as tie-break."""
    return sorted(devices, key=lambda d: (d.name.lower(), d.mac))


class PresenceCache:
    """MAC-keyed device state, reconciled against each scan and written through to disk.

    The cache is the only writer of ``status`` and ``last_seen``. The ``blocked``
    flag is changed only through ``set_blocked``, which the access controller calls.
    """

    def __init__(self, repository: JsonRepository, vendor_resolver: VendorResolver):
        self.repository = repository
        self.vendor_resolver = vendor_resolver
        self._devices: Optional[Dict[str, DeviceRecord]] = None
        self._save_lock = asyncio.Lock()

    async def _ensure_loaded(self) -> Dict[str, DeviceRecord]:
        if self._devices is None:
            raw = await asyncio.to_thread(self.repository.load)
            devices: Dict[str, DeviceRecord] = {}
            for key, entry in raw.items():
                try:
                    record = DeviceRecord.from_dict({**entry, "mac": format_mac(entry.get("mac") or key)})
                except (AttributeError, KeyError, TypeError) as e:
                    logger.warning(f"Skipping malformed cache entry {key!r}: {e}")
                    continue
                devices[record.mac] = record
            if self._devices is None:
                self._devices = devices
                logger.debug(f"Loaded {len(devices)} cached devices from {self.repository.path}")
        return self._devices

    async def _persist(self) -> bool:
        async with self._save_lock:
            snapshot = {mac: record.to_dict() for mac, record in self._devices.items()}
            saved = await asyncio.to_thread(self.repository.save, snapshot)
        if not saved:
            logger.error(f"Device cache not persisted to {self.repository.path}; serving in-memory state")
        return saved

    async def devices(self) -> List[DeviceRecord]:
        """Returns the last reconciled device list without scanning."""
        return sort_devices((await self._ensure_loaded()).values())

    async def get(self, mac: str) -> Optional[DeviceRecord]:
        return (await self._ensure_loaded()).get(format_mac(mac))

    async def reconcile(self, observations: List[RawObservation]) -> List[DeviceRecord]:
        """Merges a scan into the cache and returns the full, sorted device list."""
        devices = await self._ensure_loaded()
        vendors = {obs.mac: await self.vendor_resolver.resolve(obs.mac) for obs in observations}
        now = isoformat(utc_now())

        seen = set()
        for obs in observations:
            mac = format_mac(obs.mac)
            seen.add(mac)
            vendor = vendors[obs.mac]
            record = devices.get(mac)
            if record is None:
                fallback = vendor if vendor != UNKNOWN_VENDOR else UNKNOWN_NAME
                record = DeviceRecord(mac=mac, name=obs.raw_name or fallback)
                devices[mac] = record
                logger.info(f"New device: {mac} at {obs.ip} ({record.name})")
            elif obs.raw_name:
                record.name = obs.raw_name

            if record.status != DeviceStatus.ONLINE:
                logger.info(f"Device online: {mac} at {obs.ip}")
            record.ip = obs.ip
            record.vendor = vendor
            record.type = classify_device(vendor, record.name)
            record.status = DeviceStatus.ONLINE
            record.last_seen = now

        for mac, record in devices.items():
            if mac not in seen and record.status == DeviceStatus.ONLINE:
                record.status = DeviceStatus.OFFLINE
                logger.info(f"Device went offline: MAC={mac}, IP={record.ip}")

        await self._persist()
        return sort_devices(devices.values())

    async def set_blocked(self, mac: str, blocked: bool) -> DeviceRecord:
        """Sets the sticky block flag, creating an offline placeholder for unseen MACs."""
        devices = await self._ensure_loaded()
        mac = format_mac(mac)
        record = devices.get(mac)
        if record is None:
            record = DeviceRecord(mac=mac, name=mac)
            devices[mac] = record
        record.blocked = blocked
        await self._persist()
        return record
