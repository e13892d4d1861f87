"""
Reverse proxy virtual hosts (nginx).

The rendered file is mounted into the darp-reverse-proxy container and into
project containers. Output is deterministic: identical assignments always give
byte-identical text, so the deploy can skip proxy restarts.
"""

import logging
from collections.abc import Iterable, Mapping

from .validation import validate_host_label

logger = logging.getLogger("darp.proxy")

TLD = "test"
DEFAULT_UPSTREAM_HOST = "127.0.0.1"

HEADER = "# Auto-generated by darp - do not edit"


def project_url(project: str, domain: str) -> str:
    """Hostname of a project, e.g. hello-world.projects.test"""
    return f"{project}.{domain}.{TLD}"


def _server_block(host: str, upstream_host: str, port: int) -> list[str]:
    return [
        "server {",
        "    listen 80;",
        f"    server_name {host};",
        "    location / {",
        f"        proxy_pass http://{upstream_host}:{port}/;",
        "        proxy_http_version 1.1;",
        "        proxy_set_header Host $host;",
        "        proxy_set_header Upgrade $http_upgrade;",
        '        proxy_set_header Connection "upgrade";',
        "        proxy_set_header X-Real-IP $remote_addr;",
        "        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;",
        "        proxy_set_header X-Forwarded-Proto $scheme;",
        "    }",
        "}",
        "",
    ]


def render(
    assignments: Mapping[tuple[str, str], int],
    domains: Iterable[str] | None = None,
    upstream_host: str = DEFAULT_UPSTREAM_HOST,
) -> str:
    """
    Render one server block per (domain, project) assignment.

    Args:
        assignments: (domain name, project name) -> host port
        domains: Registered domain names; assignments outside them are skipped
        upstream_host: Address the proxy uses to reach host ports

    Raises:
        InvalidHostLabel: a domain or project name cannot be a hostname label
    """
    allowed = set(domains) if domains is not None else None
    for name in sorted(allowed or ()):
        validate_host_label(name)

    live = sorted(
        (key, port) for key, port in assignments.items() if allowed is None or key[0] in allowed
    )

    lines = [HEADER, f"# Projects: {len(live)}", ""]
    for (domain, project), port in live:
        validate_host_label(domain)
        validate_host_label(project)
        lines.extend(_server_block(project_url(project, domain), upstream_host, port))

    logger.debug("Rendered %d virtual host(s)", len(live))
    return "\n".join(lines).rstrip() + "\n"
