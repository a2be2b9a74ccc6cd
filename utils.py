# utils.py
import re
from datetime import datetime, timezone

MAC_PATTERN = re.compile(r"^([0-9a-f]{2}:){5}[0-9a-f]{2}$")


def format_mac(mac: str) -> str:
    """Formats a MAC address to lowercase with colons."""
    return mac.strip().lower().replace("-", ":")

def is_valid_mac(mac: str) -> bool:
    """Checks if a string is a MAC address once normalized."""
    return bool(MAC_PATTERN.match(format_mac(mac)))

def is_valid_ipv4(ip: str) -> bool:
    """Checks if a string is a valid IPv4 address."""
    pattern = r"^(\d{1,3}\.){3}\d{1,3}$"
    if re.match(pattern, ip):
        parts = ip.split('.')
        return all(0 <= int(part) <= 255 for part in parts)
    return False

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def isoformat(moment: datetime) -> str:
    """RFC 3339 UTC timestamp with a Z suffix, as the dashboard expects."""
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")

def parse_timestamp(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value).astimezone(timezone.utc)
