# scanner.py
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from mac_vendor_lookup import AsyncMacLookup

from device import DeviceType, UNKNOWN_VENDOR
from runners import BaseRunner, CommandError
from utils import format_mac, is_valid_ipv4

logger = logging.getLogger(__name__)

SCAN_LINE = re.compile(r"^(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})\s+([0-9A-Fa-f:]{17})\s*(.*)$")

# (type, substrings, whole words), first match wins. Compound TV tokens come
# first so that "Samsung TV" is not taken by the generic Samsung phone token.
TYPE_PRECEDENCE: List[Tuple[DeviceType, Tuple[str, ...], Tuple[str, ...]]] = [
    (DeviceType.TV, ("smart tv", "samsung tv", "android tv"), ()),
    (DeviceType.PHONE, ("phone", "android", "samsung"), ()),
    (DeviceType.LAPTOP, ("intel", "dell", "lenovo", "hewlett"), ("hp",)),
    (DeviceType.TV, (), ("lg", "tv")),
]


@dataclass(frozen=True)
class RawObservation:
    ip: str
    mac: str
    raw_name: str = ""


@dataclass(frozen=True)
class ScanFailure:
    reason: str


def classify_device(vendor: str, name: str) -> DeviceType:
    """Guesses the device type from vendor and name substrings."""
    text = f"{vendor} {name}".lower()
    words = set(re.findall(r"[a-z0-9]+", text))
    for device_type, substrings, whole_words in TYPE_PRECEDENCE:
        if any(token in text for token in substrings) or any(word in words for word in whole_words):
            return device_type
    return DeviceType.OTHER

def parse_scan_line(line: str) -> Optional[RawObservation]:
    """Parses a single line of arp-scan output; header and footer lines yield None."""
    match = SCAN_LINE.match(line.strip())
    if not match:
        return None
    ip, mac, rest = match.groups()
    if not is_valid_ipv4(ip):
        return None
    return RawObservation(ip=ip, mac=format_mac(mac), raw_name=" ".join(rest.split()))

def parse_scan_output(output: str) -> List[RawObservation]:
    """Parses arp-scan output, keeping the first observation of each MAC."""
    observations: Dict[str, RawObservation] = {}
    for line in output.splitlines():
        observation = parse_scan_line(line)
        if observation and observation.mac not in observations:
            observations[observation.mac] = observation
    return list(observations.values())


class VendorResolver:
    """Best-effort OUI lookup. Never raises; unresolved prefixes map to "Unknown"."""

    def __init__(self, mac_lookup=None):
        self.mac_lookup = mac_lookup or AsyncMacLookup()
        self._cache: Dict[str, str] = {}

    async def resolve(self, mac: str) -> str:
        prefix = format_mac(mac)[:8]
        if prefix in self._cache:
            return self._cache[prefix]
        try:
            vendor = (await self.mac_lookup.lookup(mac) or "").strip() or UNKNOWN_VENDOR
        except Exception as e:  # pylint: disable=broad-except
            logger.debug(f"Could not determine vendor for MAC {mac}: {e}")
            vendor = UNKNOWN_VENDOR
        self._cache[prefix] = vendor
        return vendor


class Scanner:
    """Discovers devices on the local subnet with arp-scan."""

    def __init__(self, runner: BaseRunner, interface: str = "wlan0", timeout: Optional[float] = None):
        self.runner = runner
        self.interface = interface
        self.timeout = timeout

    @property
    def command(self) -> List[str]:
        return ["arp-scan", f"--interface={self.interface}", "--localnet"]

    async def scan(self) -> Union[List[RawObservation], ScanFailure]:
        try:
            output = await self.runner.run(self.command, timeout=self.timeout)
        except CommandError as e:
            logger.warning(f"Network scan failed: {e}")
            return ScanFailure(str(e))
        observations = parse_scan_output(output)
        logger.info(f"Scan found {len(observations)} devices on {self.interface}")
        return observations
