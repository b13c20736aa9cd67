"""
Correlation of guests with DHCP leases by MAC address.
"""

import logging
from dataclasses import dataclass
from ipaddress import IPv4Address
from typing import Dict, FrozenSet, Iterable

from proxmox_dns.errors import MacParseError, MissingConfigError
from proxmox_dns.macspec import MacAddress, extract_mac
from proxmox_dns.proxmox import Guest
from proxmox_dns.routeros import Lease

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedHost:
    name: str
    addresses: FrozenSet[IPv4Address]


def index_leases(leases: Iterable[Lease]) -> Dict[MacAddress, IPv4Address]:
    """Map each MAC to its address. The first lease for a MAC wins."""
    index = {}
    for lease in leases:
        index.setdefault(lease.mac, lease.address)
    return index


def resolve_host(guest: Guest, leases) -> ResolvedHost:
    """Collect the leased addresses of every interface of a guest.

    leases is either a list of Lease or a mapping built by index_leases().
    Interfaces without a MAC are logged and skipped, MACs without a lease
    contribute nothing. Raises MissingConfigError if the guest has no config.
    """
    if guest.nets is None:
        raise MissingConfigError(f"{guest.kind} {guest.vmid} ({guest.name}) has no config")

    if not isinstance(leases, dict):
        leases = index_leases(leases)

    addresses = set()
    for index, net in guest.nets.items():
        try:
            mac = extract_mac(net)
        except MacParseError as e:
            logger.error(f"Extract MAC failed for {guest.kind} {guest.vmid} net{index}: {e}")
            continue

        address = leases.get(mac)
        if address is None:
            logger.debug(f"No lease for {guest.name} net{index} ({mac})")
            continue
        addresses.add(address)

    return ResolvedHost(name=guest.name, addresses=frozenset(addresses))
