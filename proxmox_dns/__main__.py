from proxmox_dns.main import run

run()
