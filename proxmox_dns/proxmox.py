"""
Proxmox VE API client: guest inventory and per-guest network config.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import aiohttp
from yarl import URL

from proxmox_dns.errors import ProxmoxError

logger = logging.getLogger(__name__)

QEMU = "qemu"
LXC = "lxc"
GUEST_KINDS = (QEMU, LXC)

# Interface keys are net0, net1, ... for both VMs and containers
NET_KEY = re.compile(r"^net(\d+)$")


@dataclass(frozen=True)
class Guest:
    """A virtual machine or container as reported by PVE.

    nets maps the interface index to its raw config string, or is None when
    the guest's config could not be fetched.
    """

    vmid: int
    name: str
    kind: str
    nets: Optional[Dict[int, str]] = None


def decode_nets(config: Mapping[str, Any]) -> Dict[int, str]:
    """Pick the net<N> entries out of a guest config, ordered by N.

    Indices may be sparse (net0, net3), so the index itself is the key.
    """
    nets = {}
    for key, value in config.items():
        match = NET_KEY.match(key)
        if match and isinstance(value, str):
            nets[int(match.group(1))] = value
    return dict(sorted(nets.items()))


def parse_base_url(url: str) -> URL:
    """Validate a configured API base URL."""
    parsed = URL(url)
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ValueError(f"Invalid API URL {url!r}: expected http(s)://host[:port]")
    return parsed


class ProxmoxClient:
    """Client for the PVE JSON API, authenticated with an API token."""

    def __init__(self, url: str, username: str, token: str,
                 verify_ssl: bool = False, timeout: float = 10):
        self.url = parse_base_url(url)
        self.username = username
        self.token = token
        self.verify_ssl = verify_ssl
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session = None

    def _auth_header(self) -> Dict[str, str]:
        return {"Authorization": f"PVEAPIToken={self.username}={self.token}"}

    def _endpoint(self, path: str) -> URL:
        return self.url.with_path(f"/api2/json/{path}")

    async def _get(self, path: str) -> Any:
        """GET an API path and return the payload under "data"."""
        if not self.session or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=self.timeout)

        url = self._endpoint(path)
        async with self.session.get(url, headers=self._auth_header(),
                                    ssl=self.verify_ssl) as r:
            text = await r.text()
            if r.status >= 400:
                raise ProxmoxError(f"GET {url} failed (HTTP {r.status}): {text}")

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise ProxmoxError(f"GET {url} returned invalid JSON: {e}: {text}") from e

        if not isinstance(payload, dict) or "data" not in payload:
            raise ProxmoxError(f"GET {url} returned no data: {text}")
        return payload["data"]

    async def guest_config(self, node: str, kind: str, vmid: int) -> Dict[int, str]:
        config = await self._get(f"nodes/{node}/{kind}/{vmid}/config")
        if not isinstance(config, dict):
            raise ProxmoxError(f"Config of {kind} {vmid} is not an object: {config!r}")
        return decode_nets(config)

    async def list_guests(self, node: str, kind: str) -> List[Guest]:
        """List guests of one kind on a node, with their network config.

        Config fetches run concurrently. A guest whose config cannot be
        fetched is still returned, with nets set to None.
        """
        if kind not in GUEST_KINDS:
            raise ValueError(f"Unknown guest kind: {kind}")

        entries = await self._get(f"nodes/{node}/{kind}")
        if not isinstance(entries, list):
            raise ProxmoxError(f"Guest list for {kind} is not a list: {entries!r}")

        listed = []
        for entry in entries:
            try:
                # qemu reports vmid as a number, lxc as a string
                vmid = int(entry["vmid"])
                name = str(entry.get("name") or "")
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise ProxmoxError(f"Malformed {kind} entry {entry!r}: {e}") from e
            listed.append((vmid, name))

        configs = await asyncio.gather(
            *(self.guest_config(node, kind, vmid) for vmid, _ in listed),
            return_exceptions=True,
        )

        guests = []
        for (vmid, name), config in zip(listed, configs):
            if isinstance(config, BaseException):
                if isinstance(config, asyncio.CancelledError):
                    raise config
                logger.error(f"Failed to get config of {kind} {vmid} ({name}): {config!r}")
                config = None
            guests.append(Guest(vmid=vmid, name=name, kind=kind, nets=config))
        return guests

    async def virtual_machines(self, node: str) -> List[Guest]:
        return await self.list_guests(node, QEMU)

    async def containers(self, node: str) -> List[Guest]:
        return await self.list_guests(node, LXC)

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
