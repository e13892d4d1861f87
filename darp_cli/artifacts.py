"""Generated file handling: change detection by SHA-256 and atomic writes"""

import hashlib
import logging
from pathlib import Path

logger = logging.getLogger("darp.artifacts")


def content_hash(content: str) -> str:
    return f"sha256:{hashlib.sha256(content.encode('utf-8')).hexdigest()}"


def compute_file_hash(filepath: Path) -> str | None:
    """Compute SHA-256 hash of a file, None when it does not exist"""
    if not filepath.exists():
        return None
    hasher = hashlib.sha256()
    with open(filepath, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            hasher.update(chunk)
    return f"sha256:{hasher.hexdigest()}"


def is_current(path: Path, content: str) -> bool:
    """True when the file on disk already holds exactly ``content``"""
    return compute_file_hash(path) == content_hash(content)


def write_atomic(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    with open(tmp, "w", encoding="utf-8", newline="\n") as f:
        f.write(content)
    tmp.replace(path)


def write_if_changed(path: Path, content: str) -> bool:
    """Write ``content`` unless the file already matches. Returns True if written."""
    if is_current(path, content):
        logger.debug("%s unchanged", path)
        return False
    write_atomic(path, content)
    logger.info("Wrote %s", path)
    return True


def remove_if_exists(path: Path) -> bool:
    if not path.exists():
        return False
    path.unlink()
    logger.info("Removed %s", path)
    return True
