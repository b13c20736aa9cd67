"""
Authoritative DNS server answering A and SOA queries from a ZoneStore.
"""

import asyncio
import logging
from typing import Tuple

import dns.exception
import dns.flags
import dns.message
import dns.opcode
import dns.rcode
import dns.rdatatype

from proxmox_dns import config
from proxmox_dns.zone import ZoneStore

logger = logging.getLogger(__name__)

# Largest UDP response for clients that do not use EDNS
UDP_MAX_SIZE = 512
# Largest message the TCP length prefix can carry
TCP_MAX_SIZE = 65535


def build_response(store: ZoneStore, request: dns.message.Message) -> dns.message.Message:
    """Build the authoritative answer to request from the store's current records."""
    response = dns.message.make_response(request)

    if request.opcode() != dns.opcode.QUERY:
        response.set_rcode(dns.rcode.NOTIMP)
        return response
    if len(request.question) != 1:
        response.set_rcode(dns.rcode.FORMERR)
        return response

    question = request.question[0]
    qname = question.name
    qtype = question.rdtype

    # One snapshot for the whole answer
    zone = store.snapshot

    if not qname.is_subdomain(zone.origin) or qtype in (dns.rdatatype.AXFR, dns.rdatatype.IXFR):
        response.set_rcode(dns.rcode.REFUSED)
        return response

    response.flags |= dns.flags.AA

    qtypes = (dns.rdatatype.SOA, dns.rdatatype.A) if qtype == dns.rdatatype.ANY else (qtype,)
    for rdtype in qtypes:
        rrset = zone.lookup(qname, rdtype)
        if rrset is not None:
            response.answer.append(rrset)

    if not response.answer:
        if not zone.has_name(qname):
            response.set_rcode(dns.rcode.NXDOMAIN)
        response.authority.append(zone.soa)

    return response


def truncating_wire(response: dns.message.Message, max_size: int) -> bytes:
    """Render response within max_size bytes, setting TC if it does not fit."""
    try:
        return response.to_wire(max_size=max_size)
    except dns.exception.TooBig:
        response.answer = []
        response.authority = []
        response.flags |= dns.flags.TC
        return response.to_wire(max_size=max_size)


def udp_wire(response: dns.message.Message, request: dns.message.Message) -> bytes:
    """Render response for UDP, honouring the client's EDNS payload size."""
    max_size = max(request.payload, UDP_MAX_SIZE) if request.edns >= 0 else UDP_MAX_SIZE
    return truncating_wire(response, max_size)


class DNSServer:
    """DNS server listening on UDP and TCP on the same port."""

    def __init__(self, store: ZoneStore, host: str = "0.0.0.0", port: int = 53,
                 tcp_timeout: float = config.TCP_TIMEOUT):
        self.store = store
        self.host = host
        self.port = port
        self.tcp_timeout = tcp_timeout
        self.udp_server = None
        self.tcp_server = None

    async def start(self):
        """Start the DNS server (both UDP and TCP)."""
        loop = asyncio.get_running_loop()

        self.udp_server = await loop.create_datagram_endpoint(
            lambda: DNSUDPHandler(self.store),
            local_addr=(self.host, self.port)
        )
        logger.info(f"DNS server listening on UDP {self.host}:{self.port} for zone {self.store.origin}")

        self.tcp_server = await asyncio.start_server(
            DNSTCPHandler(self.store, self.tcp_timeout).handle_connection,
            host=self.host,
            port=self.port
        )
        logger.info(f"DNS server listening on TCP {self.host}:{self.port} for zone {self.store.origin}")

    async def stop(self):
        """Stop the DNS server."""
        if self.udp_server:
            transport, protocol = self.udp_server
            transport.close()
            self.udp_server = None

        if self.tcp_server:
            self.tcp_server.close()
            await self.tcp_server.wait_closed()
            self.tcp_server = None


class DNSUDPHandler(asyncio.DatagramProtocol):
    """DNS protocol handler for UDP."""

    def __init__(self, store: ZoneStore):
        self.store = store
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data: bytes, addr: Tuple):
        """Handle incoming DNS query."""
        try:
            request = dns.message.from_wire(data)
        except dns.exception.DNSException as e:
            logger.debug(f"Dropping malformed query from {addr}: {e}")
            return

        if request.question:
            q = request.question[0]
            logger.debug(f"DNS query from {addr}: name={q.name}, type={dns.rdatatype.to_text(q.rdtype)}")

        try:
            response = build_response(self.store, request)
            self.transport.sendto(udp_wire(response, request), addr)
        except Exception as e:
            logger.error(f"Error processing DNS query from {addr}: {e}")


class DNSTCPHandler:
    """Handler for DNS queries over TCP (2-byte length prefixed messages).

    A connection that stays idle, or sends a message slower than timeout
    seconds, is closed.
    """

    def __init__(self, store: ZoneStore, timeout: float = config.TCP_TIMEOUT):
        self.store = store
        self.timeout = timeout

    async def _read(self, reader: asyncio.StreamReader, n: int) -> bytes:
        return await asyncio.wait_for(reader.readexactly(n), self.timeout)

    async def handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Answer queries until the client closes the connection or goes idle."""
        addr = writer.get_extra_info('peername')
        logger.debug(f"TCP connection from {addr}")

        try:
            while True:
                length_data = await self._read(reader, 2)
                msg_length = int.from_bytes(length_data, byteorder='big')
                data = await self._read(reader, msg_length)

                try:
                    request = dns.message.from_wire(data)
                except dns.exception.DNSException as e:
                    logger.debug(f"Closing TCP connection from {addr} after malformed query: {e}")
                    break

                if request.question:
                    q = request.question[0]
                    logger.debug(f"TCP DNS query from {addr}: name={q.name}, "
                                 f"type={dns.rdatatype.to_text(q.rdtype)}")

                response = build_response(self.store, request)
                response_data = truncating_wire(response, TCP_MAX_SIZE)
                writer.write(len(response_data).to_bytes(2, byteorder='big') + response_data)
                await writer.drain()

        except asyncio.IncompleteReadError:
            logger.debug(f"Client {addr} disconnected")
        except asyncio.TimeoutError:
            logger.debug(f"Closing idle TCP connection from {addr}")
        except Exception as e:
            logger.error(f"Error handling TCP connection from {addr}: {e}")
        finally:
            writer.close()
            await writer.wait_closed()
