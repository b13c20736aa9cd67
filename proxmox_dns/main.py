"""
Entry point: serve the zone and keep it in sync until told to stop.
"""

import asyncio
import logging
import signal
import sys

import dns.exception

from proxmox_dns import config
from proxmox_dns.dns_server import DNSServer
from proxmox_dns.proxmox import ProxmoxClient
from proxmox_dns.routeros import RouterOSClient
from proxmox_dns.sync import ZoneUpdater
from proxmox_dns.zone import ZoneStore

logger = logging.getLogger(__name__)


async def main() -> int:
    """Run the server. Returns the process exit status."""
    missing = config.missing_env()
    if missing:
        logger.error(f"Missing mandatory environment variables: {', '.join(missing)}")
        return 1

    invalid = config.invalid_env()
    if invalid:
        logger.error(f"Invalid values in environment variables: {', '.join(invalid)}")
        return 1

    try:
        store = ZoneStore(config.DNS_DOMAIN, soa_ttl=config.SOA_TTL)
        pve_client = ProxmoxClient(config.PVE_URL, config.PVE_USERNAME, config.PVE_TOKENID,
                                   verify_ssl=config.PVE_VERIFY_SSL, timeout=config.REQUEST_TIMEOUT)
        ros_client = RouterOSClient(config.ROS_URL, config.ROS_USERNAME, config.ROS_PASSWORD,
                                    verify_ssl=config.ROS_VERIFY_SSL, timeout=config.REQUEST_TIMEOUT)
    except (ValueError, dns.exception.DNSException) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    updater = ZoneUpdater(pve_client, ros_client, store, config.PVE_NODE,
                          interval=config.SYNC_INTERVAL, ttl=config.A_TTL,
                          soa_ttl=config.SOA_TTL, catchall=config.CATCHALL)
    dns_server = DNSServer(store, config.DNS_LISTEN, config.DNS_PORT, tcp_timeout=config.TCP_TIMEOUT)

    logger.info(f"DNS zone configured: {store.origin}")
    logger.info(f"PVE_URL: {config.PVE_URL} (node {config.PVE_NODE})")
    logger.info(f"ROS_URL: {config.ROS_URL}")

    try:
        await dns_server.start()
    except OSError as e:
        logger.error(f"Cannot listen on {config.DNS_LISTEN}:{config.DNS_PORT}: {e}")
        await dns_server.stop()
        return 1

    update_task = asyncio.create_task(updater.run())

    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def signal_handler(signum, frame):
        logger.info("Shutdown signal received")
        loop.call_soon_threadsafe(stop.set)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await stop.wait()
    finally:
        logger.info("Cleaning up...")
        update_task.cancel()
        try:
            await update_task
        except asyncio.CancelledError:
            pass
        await dns_server.stop()
        await pve_client.close()
        await ros_client.close()

    return 0


def run():
    config.setup_logging()
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
