"""Project discovery inside domain directories"""

import logging
from collections.abc import Iterator
from pathlib import Path

from .errors import DomainUnreadable

logger = logging.getLogger("darp.scanner")


def is_project_dir(entry: Path) -> bool:
    """A project is any visible directory"""
    return not entry.name.startswith(".") and entry.is_dir()


def scan(domain_path: str | Path) -> Iterator[str]:
    """
    Yield project names under a domain directory in lexicographic order.

    The directory is read when iteration starts, so every call sees the
    current filesystem. Missing or unreadable directories raise
    DomainUnreadable.
    """
    path = Path(domain_path)
    try:
        names = sorted(entry.name for entry in path.iterdir() if is_project_dir(entry))
    except FileNotFoundError:
        raise DomainUnreadable(str(path), "directory does not exist") from None
    except NotADirectoryError:
        raise DomainUnreadable(str(path), "not a directory") from None
    except PermissionError:
        raise DomainUnreadable(str(path), "permission denied") from None
    except OSError as e:
        raise DomainUnreadable(str(path), e.strerror or str(e)) from e

    logger.debug("Found %d project(s) in %s", len(names), path)
    yield from names


def scan_list(domain_path: str | Path) -> list[str]:
    return list(scan(domain_path))
