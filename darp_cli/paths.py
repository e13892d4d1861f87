"""On-disk layout under $DARP_ROOT (default ~/.darp)"""

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_HOSTS_FILE = Path("/etc/hosts")


def get_darp_root() -> Path:
    """Get the darp state directory, honouring DARP_ROOT"""
    env_root = os.getenv("DARP_ROOT", "").strip()
    if env_root:
        return Path(env_root).expanduser()
    return Path.home() / ".darp"


@dataclass(frozen=True)
class DarpPaths:
    root: Path
    hosts_file: Path = DEFAULT_HOSTS_FILE

    @classmethod
    def from_env(cls) -> "DarpPaths":
        hosts_file = os.getenv("DARP_HOSTS_FILE", "").strip()
        return cls(root=get_darp_root(), hosts_file=Path(hosts_file) if hosts_file else DEFAULT_HOSTS_FILE)

    @property
    def config_path(self) -> Path:
        return self.root / "config.json"

    @property
    def portmap_path(self) -> Path:
        return self.root / "portmap.json"

    @property
    def dnsmasq_dir(self) -> Path:
        return self.root / "dnsmasq.d"

    @property
    def dnsmasq_conf(self) -> Path:
        return self.dnsmasq_dir / "darp.conf"

    @property
    def vhost_container_conf(self) -> Path:
        return self.root / "vhost_container.conf"

    @property
    def hosts_container_path(self) -> Path:
        return self.root / "hosts_container"

    @property
    def nginx_conf_path(self) -> Path:
        return self.root / "nginx.conf"

    def ensure_dirs(self) -> None:
        """Create the state directories if they are missing"""
        for d in (self.root, self.dnsmasq_dir):
            d.mkdir(parents=True, exist_ok=True)
