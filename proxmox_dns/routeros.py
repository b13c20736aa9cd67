"""
RouterOS REST API client for the DHCP server lease table.
"""

import json
import logging
from dataclasses import dataclass
from ipaddress import IPv4Address, AddressValueError
from typing import Any, Dict, List, Optional

import aiohttp

from proxmox_dns.errors import ParseError, RouterOSError
from proxmox_dns.macspec import MacAddress
from proxmox_dns.proxmox import parse_base_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Lease:
    """A DHCP lease binding a MAC address to an IPv4 address."""

    address: IPv4Address
    mac: MacAddress


def parse_lease(entry: Dict[str, Any]) -> Optional[Lease]:
    """Build a Lease from one item of /rest/ip/dhcp-server/lease.

    The MAC that currently holds the lease ("active-mac-address") is
    preferred over the configured one, which only counts for bound leases.
    Returns None for disabled or inactive entries and for entries that carry
    no address or MAC at all; raises RouterOSError for malformed values.
    """
    if not isinstance(entry, dict):
        raise RouterOSError(f"Lease entry is not an object: {entry!r}")

    # REST booleans arrive as "true"/"false"
    if str(entry.get("disabled", "false")).lower() == "true":
        return None

    address = entry.get("address")
    mac = entry.get("active-mac-address")
    if not mac and entry.get("status", "bound") == "bound":
        mac = entry.get("mac-address")
    if not address or not mac:
        return None

    try:
        return Lease(address=IPv4Address(address), mac=MacAddress.parse(mac))
    except (AddressValueError, ParseError) as e:
        raise RouterOSError(f"Malformed lease {entry!r}: {e}") from e


class RouterOSClient:
    """Client for the RouterOS v7 REST API, using HTTP basic auth."""

    def __init__(self, url: str, username: str, password: str,
                 verify_ssl: bool = True, timeout: float = 10):
        self.url = parse_base_url(url)
        self.auth = aiohttp.BasicAuth(username, password)
        self.verify_ssl = verify_ssl
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session = None

    async def _get(self, path: str) -> Any:
        if not self.session or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=self.timeout)

        url = self.url.with_path(f"/rest/{path}")
        async with self.session.get(url, auth=self.auth, ssl=self.verify_ssl) as r:
            text = await r.text()
            if r.status >= 400:
                raise RouterOSError(f"GET {url} failed (HTTP {r.status}): {text}")

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise RouterOSError(f"GET {url} returned invalid JSON: {e}: {text}") from e

    async def list_leases(self) -> List[Lease]:
        entries = await self._get("ip/dhcp-server/lease")
        if not isinstance(entries, list):
            raise RouterOSError(f"Lease table is not a list: {entries!r}")

        leases = []
        for entry in entries:
            lease = parse_lease(entry)
            if lease is None:
                logger.debug(f"Skipping inactive lease or lease without address or MAC: {entry}")
                continue
            leases.append(lease)
        return leases

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
