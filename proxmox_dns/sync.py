"""
Periodic rebuild of the zone from Proxmox inventory and RouterOS leases.
"""

import asyncio
import logging
from typing import List

from proxmox_dns import config
from proxmox_dns.host import ResolvedHost, index_leases, resolve_host
from proxmox_dns.zone import ZoneStore, build_zone

logger = logging.getLogger(__name__)


class ZoneUpdater:
    """Keeps a ZoneStore in sync with the guests and leases.

    Every cycle fetches everything from scratch and publishes a complete new
    snapshot. A cycle in which any source fails publishes nothing, so the
    DNS server keeps answering from the last good data.
    """

    def __init__(self, inventory, leases, store: ZoneStore, node: str,
                 interval: float = config.SYNC_INTERVAL, ttl: int = config.A_TTL,
                 soa_ttl: int = config.SOA_TTL, catchall: str = config.CATCHALL):
        self.inventory = inventory
        self.leases = leases
        self.store = store
        self.node = node
        self.interval = interval
        self.ttl = ttl
        self.soa_ttl = soa_ttl
        self.catchall = catchall

    async def _fetch(self):
        results = await asyncio.gather(
            self.inventory.virtual_machines(self.node),
            self.inventory.containers(self.node),
            self.leases.list_leases(),
            return_exceptions=True,
        )

        failed = False
        for what, result in zip(("vms", "containers", "leases"), results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(f"Fetch {what} failed: {result!r}")
                failed = True
        return None if failed else results

    def _resolve(self, guests, leases) -> List[ResolvedHost]:
        index = index_leases(leases)
        hosts = []
        for guest in guests:
            try:
                hosts.append(resolve_host(guest, index))
            except Exception as e:
                logger.error(f"Make host from {guest.kind} {guest.vmid} failed: {e}")
        return hosts

    async def run_once(self) -> bool:
        """Run one sync cycle. Returns True if a new snapshot was published."""
        fetched = await self._fetch()
        if fetched is None:
            logger.warning("Sync cycle skipped, keeping previous zone")
            return False

        vms, cts, leases = fetched
        hosts = self._resolve(list(vms) + list(cts), leases)
        snapshot = build_zone(self.store.origin, hosts, ttl=self.ttl,
                              soa_ttl=self.soa_ttl, catchall=self.catchall)

        changed = await self.store.replace_all(snapshot)
        resolved = sum(1 for h in hosts if h.addresses)
        if changed:
            logger.info(f"Updated zone {self.store.origin}: {resolved}/{len(hosts)} hosts resolved, "
                        f"{len(snapshot)} records")
        else:
            logger.debug(f"Zone {self.store.origin} unchanged ({len(snapshot)} records)")
        return True

    async def run(self):
        """Sync forever, sleeping interval seconds between cycles."""
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Update error")

            await asyncio.sleep(self.interval)
