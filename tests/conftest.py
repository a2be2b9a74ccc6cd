"""Shared fixtures: a fake command runner with an in-memory firewall, and a fake OUI table."""

from pathlib import Path

import pytest

from access import AccessController
from data import JsonRepository
from events import EventBroadcaster
from network_monitor import NetworkMonitor
from presence import PresenceCache
from runners import BaseRunner, CommandError
from scanner import Scanner, VendorResolver

ARP_SCAN_OUTPUT = """Interface: wlan0, type: EN10MB, MAC: b8:27:eb:00:00:01, IPv4: 192.168.1.2
Starting arp-scan 1.9.7 with 256 hosts (https://github.com/royhills/arp-scan)
192.168.1.5\taa:bb:cc:dd:ee:ff\tMyPhone
192.168.1.7\t00:1A:11:22:33:44\tGoogle, Inc.
192.168.1.9\t3c:5a:b4:01:02:03\t

3 packets received by filter, 0 packets dropped by kernel
Ending arp-scan 1.9.7: 256 hosts scanned in 1.870 seconds (136.90 hosts/sec). 3 responded
"""


class FakeRunner(BaseRunner):
    """Records every argv and emulates arp-scan, iptables and hostapd_cli."""

    def __init__(self, scan_output: str = ARP_SCAN_OUTPUT):
        super().__init__()
        self.scan_output = scan_output
        self.calls = []
        self.rules = set()
        self.failures = {}

    def fail(self, *prefix: str, stderr: str = "failed"):
        self.failures[tuple(prefix)] = stderr

    def commands(self, name: str):
        return [c for c in self.calls if c[0] == name]

    async def run(self, argv, timeout=None):
        argv = list(argv)
        self.calls.append(argv)
        for prefix, stderr in self.failures.items():
            if tuple(argv[:len(prefix)]) == prefix:
                raise CommandError(argv, 1, stderr)

        if argv[0] == "arp-scan":
            return self.scan_output
        if argv[0] == "iptables":
            action, chain, mac = argv[1], argv[2], argv[6]
            rule = (chain, mac)
            if action == "-C":
                if rule not in self.rules:
                    raise CommandError(argv, 1, "Bad rule (does a matching rule exist in that chain?)")
            elif action == "-I":
                self.rules.add(rule)
            elif action == "-D":
                if rule not in self.rules:
                    raise CommandError(argv, 1, "Bad rule (does a matching rule exist in that chain?)")
                self.rules.discard(rule)
            return ""
        return "OK\n"


class FakeMacLookup:
    """Stands in for AsyncMacLookup with a tiny OUI table."""

    VENDORS = {
        "00:1a:11": "Google, Inc.",
        "3c:5a:b4": "Google, Inc.",
        "f0:27:2d": "Amazon Technologies Inc.",
    }

    def __init__(self):
        self.lookups = 0

    async def lookup(self, mac):
        self.lookups += 1
        return self.VENDORS[mac.lower()[:8]]


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def mac_lookup() -> FakeMacLookup:
    return FakeMacLookup()


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / "device-cache.json"


@pytest.fixture
def guest_path(tmp_path: Path) -> Path:
    return tmp_path / "guest-cache.json"


@pytest.fixture
def broadcaster() -> EventBroadcaster:
    return EventBroadcaster(max_pending=10)


@pytest.fixture
def cache(cache_path, mac_lookup) -> PresenceCache:
    return PresenceCache(JsonRepository(cache_path, dict), VendorResolver(mac_lookup))


@pytest.fixture
def access(runner, cache, broadcaster) -> AccessController:
    return AccessController(runner, cache, broadcaster, interface="wlan0")


@pytest.fixture
def monitor(runner, cache, access, broadcaster, guest_path) -> NetworkMonitor:
    return NetworkMonitor(
        scanner=Scanner(runner, interface="wlan0"),
        cache=cache,
        access=access,
        broadcaster=broadcaster,
        guest_repository=JsonRepository(guest_path, list),
    )