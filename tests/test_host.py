"""Tests for correlating guests with leases."""

import logging
from ipaddress import IPv4Address

import pytest

from proxmox_dns.errors import MissingConfigError
from proxmox_dns.host import ResolvedHost, index_leases, resolve_host
from proxmox_dns.macspec import MacAddress
from proxmox_dns.proxmox import LXC, QEMU, Guest
from proxmox_dns.routeros import Lease, parse_lease


def lease(address, mac):
    return Lease(address=IPv4Address(address), mac=MacAddress.parse(mac))


LEASES = [
    lease("10.0.0.5", "AA:AA:AA:AA:AA:AA"),
    lease("10.0.0.6", "BB:BB:BB:BB:BB:BB"),
]


def test_resolve_single_interface():
    guest = Guest(vmid=100, name="web1", kind=QEMU, nets={0: "virtio=AA:AA:AA:AA:AA:AA,bridge=vmbr0"})
    assert resolve_host(guest, LEASES) == ResolvedHost("web1", frozenset({IPv4Address("10.0.0.5")}))


def test_resolve_skips_unparsable_interface(caplog):
    guest = Guest(vmid=101, name="web2", kind=QEMU, nets={
        0: "virtio=BB:BB:BB:BB:BB:BB,bridge=vmbr0",
        1: "bridge=vmbr0,tag=10",
    })
    host = resolve_host(guest, LEASES)

    assert host.addresses == frozenset({IPv4Address("10.0.0.6")})
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "qemu 101 net1" in errors[0].getMessage()


def test_resolve_container_hwaddr():
    guest = Guest(vmid=200, name="ct", kind=LXC, nets={
        3: "name=eth0,bridge=vmbr0,hwaddr=aa:aa:aa:aa:aa:aa,ip=dhcp",
    })
    assert resolve_host(guest, LEASES).addresses == frozenset({IPv4Address("10.0.0.5")})


def test_unmatched_mac_is_not_an_error(caplog):
    guest = Guest(vmid=102, name="offline", kind=QEMU, nets={0: "virtio=CC:CC:CC:CC:CC:CC"})
    host = resolve_host(guest, LEASES)

    assert host == ResolvedHost("offline", frozenset())
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]


def test_duplicate_addresses_collapse():
    guest = Guest(vmid=103, name="twin", kind=QEMU, nets={
        0: "virtio=AA:AA:AA:AA:AA:AA",
        1: "e1000=aa:aa:aa:aa:aa:aa",
        2: "virtio=BB:BB:BB:BB:BB:BB",
    })
    assert resolve_host(guest, LEASES).addresses == frozenset(
        {IPv4Address("10.0.0.5"), IPv4Address("10.0.0.6")})


def test_missing_config_raises():
    guest = Guest(vmid=104, name="broken", kind=QEMU, nets=None)
    with pytest.raises(MissingConfigError):
        resolve_host(guest, LEASES)


def test_guest_without_interfaces_resolves_empty():
    guest = Guest(vmid=105, name="template", kind=QEMU, nets={})
    assert resolve_host(guest, LEASES).addresses == frozenset()


def test_index_leases_first_match_wins():
    index = index_leases([
        lease("10.0.0.10", "AA:AA:AA:AA:AA:AA"),
        lease("10.0.0.11", "aa:aa:aa:aa:aa:aa"),
    ])
    assert index == {MacAddress.parse("AA:AA:AA:AA:AA:AA"): IPv4Address("10.0.0.10")}


def test_resolve_accepts_prebuilt_index():
    guest = Guest(vmid=100, name="web1", kind=QEMU, nets={0: "virtio=AA:AA:AA:AA:AA:AA"})
    assert resolve_host(guest, index_leases(LEASES)).addresses == frozenset({IPv4Address("10.0.0.5")})


def test_inactive_lease_does_not_win_over_bound_lease():
    table = [
        {"address": "10.0.0.9", "mac-address": "AA:AA:AA:AA:AA:AA", "disabled": "true", "status": "waiting"},
        {"address": "10.0.0.5", "active-mac-address": "AA:AA:AA:AA:AA:AA", "status": "bound"},
    ]
    leases = [parsed for parsed in map(parse_lease, table) if parsed is not None]
    guest = Guest(vmid=100, name="web1", kind=QEMU, nets={0: "virtio=AA:AA:AA:AA:AA:AA"})

    assert resolve_host(guest, leases).addresses == frozenset({IPv4Address("10.0.0.5")})
