# scan.py
import asyncio

from network_monitor import config
from runners import get_runner  # Import the factory
from scanner import ScanFailure, Scanner

def main():
    """Simple script to run arp-scan once and display the raw observations, without touching the cache."""

    config.validators.validate()
    scanner = Scanner(get_runner(config), interface=config.general.interface)
    result = asyncio.run(scanner.scan())

    if isinstance(result, ScanFailure):
        print(f"Scan failed: {result.reason}")
        return
    for observation in result:
        print(observation)

if __name__ == "__main__":
    main()
