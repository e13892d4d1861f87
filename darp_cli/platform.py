"""Platform detection and privileged file helpers"""

import logging
import os
import platform
import subprocess
from pathlib import Path

from .errors import HostsFileError
from .subprocess_timeouts import get_timeout

logger = logging.getLogger("darp.platform")

IS_WINDOWS = platform.system() == "Windows"
IS_MACOS = platform.system() == "Darwin"
IS_LINUX = platform.system() == "Linux"

# macOS sends lookups for *.test to the nameserver listed here
RESOLVER_FILE = Path("/etc/resolver/test")


def is_admin() -> bool:
    """Check if running with root privileges"""
    return os.geteuid() == 0 if hasattr(os, "geteuid") else False


def _sudo(cmd: list[str], content: str | None = None) -> None:
    full = ["sudo", *cmd]
    try:
        subprocess.run(
            full,
            input=content,
            text=True,
            stdout=subprocess.DEVNULL,
            check=True,
            timeout=get_timeout("sudo"),
        )
    except subprocess.TimeoutExpired as e:
        raise HostsFileError(f"'{' '.join(full)}' timed out") from e
    except (OSError, subprocess.CalledProcessError) as e:
        raise HostsFileError(f"'{' '.join(full)}' failed: {e}") from e


def privileged_write(path: Path, content: str) -> None:
    """Write a system file, going through ``sudo tee`` when direct access is denied"""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return
    except PermissionError:
        logger.info("No write access to %s, retrying through sudo", path)
    except OSError as e:
        raise HostsFileError(f"unable to write {path}: {e}") from e

    _sudo(["mkdir", "-p", str(path.parent)])
    _sudo(["tee", str(path)], content)


def privileged_remove(path: Path) -> bool:
    """Remove a system file if present. Returns True if something was removed."""
    if not path.exists():
        return False
    try:
        path.unlink()
    except PermissionError:
        _sudo(["rm", "-f", str(path)])
    except OSError as e:
        raise HostsFileError(f"unable to remove {path}: {e}") from e
    logger.info("Removed %s", path)
    return True
