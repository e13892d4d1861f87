"""
Local name resolution for project URLs.

Two mutually exclusive modes, chosen by the urls_in_hosts flag:

- dnsmasq (urls_in_hosts = false): wildcard rules ``*.{domain}.test -> 127.0.0.1``
  served by the darp-masq container.
- hosts (urls_in_hosts = true): one ``127.0.0.1 {project}.{domain}.test`` line per
  project inside a marked block of the OS hosts file.

Also renders the hosts file mounted into project containers.
"""

import logging
from collections.abc import Iterable, Mapping
from enum import Enum
from pathlib import Path

from .errors import HostsFileError
from .platform import privileged_write
from .proxy import TLD, project_url
from .validation import validate_host_label

logger = logging.getLogger("darp.dns")

LOOPBACK = "127.0.0.1"
CONTAINER_BIND_ALL = "0.0.0.0"

HOSTS_BEGIN = "# --- DARP HOSTS START ---"
HOSTS_END = "# --- DARP HOSTS END ---"


class ResolutionMode(str, Enum):
    DNSMASQ = "dnsmasq"
    HOSTS = "hosts"

    @classmethod
    def from_flag(cls, urls_in_hosts: bool) -> "ResolutionMode":
        return cls.HOSTS if urls_in_hosts else cls.DNSMASQ


# ─────────────────────────────────────────────────────────────
# Rendering
# ─────────────────────────────────────────────────────────────


def render_dnsmasq(domains: Iterable[str]) -> str:
    """dnsmasq rules answering every name under each domain with loopback"""
    names = sorted(set(domains))
    lines = ["# Auto-generated by darp - do not edit"]
    for name in names:
        validate_host_label(name)
        lines.append(f"address=/{name}.{TLD}/{LOOPBACK}")
    return "\n".join(lines) + "\n"


def hosts_lines(assignments: Mapping[tuple[str, str], int], address: str = LOOPBACK) -> list[str]:
    """One hosts-file line per project, sorted by (domain, project)"""
    lines = []
    for domain, project in sorted(assignments):
        validate_host_label(domain)
        validate_host_label(project)
        lines.append(f"{address}   {project_url(project, domain)}")
    return lines


def render(
    domains: Iterable[str],
    mode: ResolutionMode,
    assignments: Mapping[tuple[str, str], int] | None = None,
) -> str:
    """
    Render the resolver artifact for the active mode.

    dnsmasq mode needs only domain names; hosts mode lists every project that
    has an assignment in one of the given domains.
    """
    domain_set = set(domains)
    if mode is ResolutionMode.DNSMASQ:
        return render_dnsmasq(domain_set)

    live = {key: port for key, port in (assignments or {}).items() if key[0] in domain_set}
    return "".join(f"{line}\n" for line in hosts_lines(live))


def render_container_hosts(assignments: Mapping[tuple[str, str], int]) -> str:
    """
    Hosts file for project containers.

    Project URLs point at 0.0.0.0 so the nginx inside a project container
    answers for sibling projects and forwards them through the host gateway.
    """
    lines = [f"{LOOPBACK}   localhost"]
    lines.extend(hosts_lines(assignments, address=CONTAINER_BIND_ALL))
    return "\n".join(lines) + "\n"


# ─────────────────────────────────────────────────────────────
# OS hosts file block
# ─────────────────────────────────────────────────────────────


def splice_block(content: str, lines: list[str]) -> str:
    """
    Replace the darp block in hosts-file text, leaving other content intact.

    An empty ``lines`` removes the block entirely.
    """
    content = content.replace("\r\n", "\n")
    after = ""
    start = content.find(HOSTS_BEGIN)
    end = content.find(HOSTS_END, start) if start != -1 else -1
    if start != -1 and end != -1:
        before = content[:start]
        after = content[end + len(HOSTS_END) :]
    else:
        before = content

    block = "\n".join([HOSTS_BEGIN, *lines, HOSTS_END]) if lines else ""
    sections = [s for s in (before.strip("\n"), block, after.strip("\n")) if s]
    return "\n\n".join(sections) + "\n" if sections else ""


def extract_block(content: str) -> list[str]:
    """Lines currently inside the darp block"""
    start = content.find(HOSTS_BEGIN)
    if start == -1:
        return []
    end = content.find(HOSTS_END, start)
    if end == -1:
        return []
    inner = content[start + len(HOSTS_BEGIN) : end]
    return [line for line in inner.replace("\r\n", "\n").split("\n") if line.strip()]


class HostsFile:
    """The OS hosts file, edited only inside the darp block."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> str:
        if not self.path.exists():
            return ""
        try:
            return self.path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise HostsFileError(f"unable to read {self.path}: {e}") from e

    def _write(self, content: str) -> None:
        privileged_write(self.path, content)

    def entries(self) -> list[str]:
        return extract_block(self.read())

    def sync(self, lines: list[str]) -> bool:
        """Make the darp block hold exactly ``lines``. Returns True if the file changed."""
        current = self.read()
        if not lines and HOSTS_BEGIN not in current:
            return False
        updated = splice_block(current, lines)
        if updated == current:
            return False
        self._write(updated)
        logger.info("Updated %s with %d darp entr(ies)", self.path, len(lines))
        return True

    def clear(self) -> bool:
        """Remove the darp block. Returns True if the file changed."""
        return self.sync([])
