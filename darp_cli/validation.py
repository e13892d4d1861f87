"""Name, port and value validation"""

import logging
import re

from .errors import ConfigError, InvalidHostLabel

logger = logging.getLogger("darp.validation")

# RFC 1035: maximum length of a single DNS label
MAX_LABEL_LENGTH = 63

VALID_LABEL_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$", re.IGNORECASE)

SUPPORTED_ENGINES = ("docker", "podman")

TRUE_VALUES = {"true", "1", "yes", "y", "on"}
FALSE_VALUES = {"false", "0", "no", "n", "off"}


def validate_host_label(label: str) -> str:
    """
    Check that a project or domain name can be used as one hostname label.

    Returns the label unchanged. Names are never sanitized: anything outside
    RFC 1123 raises InvalidHostLabel.
    """
    if not label:
        raise InvalidHostLabel(label, "label cannot be empty")

    if any(c in label for c in ("\r", "\n", "\x00")):
        raise InvalidHostLabel(label, "label contains control characters")

    if len(label) > MAX_LABEL_LENGTH:
        raise InvalidHostLabel(label, f"{len(label)} chars (max {MAX_LABEL_LENGTH} per RFC 1035)")

    if not VALID_LABEL_PATTERN.match(label):
        logger.debug("Rejected host label: %r", label)
        raise InvalidHostLabel(label, "only letters, numbers and inner hyphens are allowed")

    return label


def is_valid_host_label(label: str) -> bool:
    try:
        validate_host_label(label)
    except InvalidHostLabel:
        return False
    return True


def validate_port(port: int | str) -> int:
    """Validate a TCP port number"""
    try:
        value = int(port)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid port: {port!r}") from None
    if value < 1 or value > 65535:
        raise ConfigError(f"Port must be between 1 and 65535 (got {value})")
    return value


def validate_engine(name: str) -> str:
    engine = (name or "").strip().lower()
    if engine not in SUPPORTED_ENGINES:
        raise ConfigError("engine must be 'podman' or 'docker'")
    return engine


def parse_bool(value: str) -> bool:
    """Parse a user supplied boolean (TRUE/FALSE/yes/no/1/0 ...)"""
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ConfigError(f"Invalid boolean value: {value} (expected TRUE/FALSE/yes/no/1/0)")


def slugify_name(text: str) -> str:
    """
    Turn a directory name into a domain label.

    Lower-cases, collapses spaces/underscores/dashes into single '-', drops
    other punctuation and falls back to 'domain' when nothing is left.
    """
    out: list[str] = []
    last_dash = False
    for ch in text.strip():
        if ch.isascii() and ch.isalnum():
            out.append(ch.lower())
            last_dash = False
        elif ch.isspace() or ch in "_-":
            if not last_dash and out:
                out.append("-")
                last_dash = True

    slug = "".join(out).rstrip("-")
    return slug or "domain"
