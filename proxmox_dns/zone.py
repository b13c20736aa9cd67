"""
Zone snapshots and the store the DNS server answers from.

A snapshot is built completely before it is published, and the store swaps
a single reference to publish it. Readers therefore see either the previous
record set or the new one, never a cleared or half-filled zone.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Optional, Tuple, Union

import dns.exception
import dns.name
import dns.rdata
import dns.rdataclass
import dns.rdatatype
import dns.rrset

from proxmox_dns import config
from proxmox_dns.errors import InvalidHostnameError
from proxmox_dns.host import ResolvedHost

logger = logging.getLogger(__name__)

LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


def to_origin(origin: Union[str, dns.name.Name]) -> dns.name.Name:
    if isinstance(origin, dns.name.Name):
        return origin if origin.is_absolute() else origin.concatenate(dns.name.root)
    return dns.name.from_text(origin)


def host_name(name: str, origin: dns.name.Name) -> dns.name.Name:
    """Return the owner name for a guest, or raise InvalidHostnameError."""
    if not name or not all(LABEL.match(label) for label in name.split(".")):
        raise InvalidHostnameError(f"Not a valid DNS name: {name!r}")
    try:
        return dns.name.from_text(name, origin)
    except dns.exception.DNSException as e:
        raise InvalidHostnameError(f"Not a valid DNS name: {name!r}: {e}") from e


@dataclass(frozen=True)
class ZoneRecord:
    name: dns.name.Name
    ttl: int
    rdata: dns.rdata.Rdata

    @property
    def rdtype(self) -> dns.rdatatype.RdataType:
        return self.rdata.rdtype


@dataclass(frozen=True)
class ZoneSnapshot:
    """An immutable, complete record set for one zone."""

    origin: dns.name.Name
    records: Tuple[ZoneRecord, ...]
    _rrsets: Dict[Tuple[dns.name.Name, int], dns.rrset.RRset] = field(
        init=False, repr=False, compare=False)
    _names: FrozenSet[dns.name.Name] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        rrsets = {}
        names = set()
        for record in self.records:
            key = (record.name, record.rdtype)
            rrset = rrsets.get(key)
            if rrset is None:
                rrset = rrsets[key] = dns.rrset.RRset(
                    record.name, dns.rdataclass.IN, record.rdtype)
                rrset.ttl = record.ttl
            # Identical rdata collapse into one RR
            rrset.add(record.rdata)

            # Ancestors up to the origin exist too (empty non-terminals)
            name = record.name
            while name != self.origin and name.is_subdomain(self.origin):
                names.add(name)
                name = name.parent()
            names.add(self.origin)

        object.__setattr__(self, "_rrsets", rrsets)
        object.__setattr__(self, "_names", frozenset(names))

    def lookup(self, name: dns.name.Name, rdtype: int) -> Optional[dns.rrset.RRset]:
        return self._rrsets.get((name, rdtype))

    def has_name(self, name: dns.name.Name) -> bool:
        return name in self._names

    @property
    def soa(self) -> dns.rrset.RRset:
        return self._rrsets[(self.origin, dns.rdatatype.SOA)]

    def __len__(self) -> int:
        return len(self.records)


def soa_record(origin: dns.name.Name, ttl: int) -> ZoneRecord:
    # Not a transfer-capable zone: all SOA timers and the serial stay at zero
    origin_text = origin.to_text()
    rdata = dns.rdata.from_text(
        dns.rdataclass.IN, dns.rdatatype.SOA, f"{origin_text} {origin_text} 0 0 0 0 0")
    return ZoneRecord(origin, ttl, rdata)


def build_zone(origin, hosts: Iterable[ResolvedHost], ttl: int = config.A_TTL,
               soa_ttl: int = config.SOA_TTL, catchall: str = config.CATCHALL) -> ZoneSnapshot:
    """Build a complete zone from resolved hosts.

    Every address of every host gets an A record under the host name and a
    second one under the catch-all name. Hosts without addresses are left
    out, hosts with unusable names are logged and skipped.
    """
    origin = to_origin(origin)
    catchall_name = dns.name.from_text(catchall, origin)

    records = [soa_record(origin, soa_ttl)]
    for host in hosts:
        if not host.addresses:
            continue
        try:
            name = host_name(host.name, origin)
        except InvalidHostnameError as e:
            logger.error(f"Skipping host: {e}")
            continue

        for address in sorted(host.addresses):
            rdata = dns.rdata.from_text(dns.rdataclass.IN, dns.rdatatype.A, str(address))
            records.append(ZoneRecord(name, ttl, rdata))
            records.append(ZoneRecord(catchall_name, ttl, rdata))

    return ZoneSnapshot(origin=origin, records=tuple(records))


class ZoneStore:
    """The live zone, shared between the sync loop and the DNS server.

    Reads go against the current snapshot without locking. Writers are
    serialized and publish by swapping the snapshot reference.
    """

    def __init__(self, origin, soa_ttl: int = config.SOA_TTL):
        self.origin = to_origin(origin)
        self._snapshot = build_zone(self.origin, [], soa_ttl=soa_ttl)
        self._lock = asyncio.Lock()

    @property
    def snapshot(self) -> ZoneSnapshot:
        return self._snapshot

    def lookup(self, name: dns.name.Name, rdtype: int) -> Optional[dns.rrset.RRset]:
        return self._snapshot.lookup(name, rdtype)

    def has_name(self, name: dns.name.Name) -> bool:
        return self._snapshot.has_name(name)

    def soa(self) -> dns.rrset.RRset:
        return self._snapshot.soa

    async def replace_all(self, snapshot: ZoneSnapshot) -> bool:
        """Publish snapshot in place of the current records.

        Returns True if the record set changed.
        """
        if snapshot.origin != self.origin:
            raise ValueError(f"Snapshot for {snapshot.origin} cannot replace zone {self.origin}")

        async with self._lock:
            changed = snapshot != self._snapshot
            self._snapshot = snapshot
        return changed
