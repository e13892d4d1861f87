"""Exception hierarchy for darp.

Store-level problems (``ConfigError``) are fatal to the running command.
Everything else is scoped to one project, one domain or one container step
and is collected into the deploy report instead of aborting the run.
"""


class DarpError(Exception):
    """Base class for all darp errors."""


class ConfigError(DarpError):
    """Persisted state is malformed, missing, or a config mutation is invalid."""


class PortExhausted(ConfigError):
    """No free port is left above the configured base port."""


class DeployError(DarpError):
    """Reconciliation cannot start at all."""


# ─────────────────────────────────────────────────────────────
# Per-project resolution
# ─────────────────────────────────────────────────────────────


class ResolutionError(DarpError):
    """Effective settings could not be computed for a project."""


class UnknownDomain(ResolutionError):
    def __init__(self, domain: str):
        super().__init__(f"domain '{domain}' is not registered")
        self.domain = domain


class UnknownEnvironment(ResolutionError):
    def __init__(self, environment: str, referenced_by: str | None = None):
        message = f"environment '{environment}' does not exist"
        if referenced_by:
            message += f" (referenced by {referenced_by})"
        super().__init__(message)
        self.environment = environment
        self.referenced_by = referenced_by


class MissingImage(ResolutionError):
    def __init__(self, domain: str, project: str, environment: str | None = None):
        where = f"'{project}.{domain}'"
        if environment:
            where += f" in environment '{environment}'"
        super().__init__(
            f"No container image provided for {where}. Pass an image explicitly or set "
            "default_container_image on the service or environment."
        )
        self.domain = domain
        self.project = project
        self.environment = environment


# ─────────────────────────────────────────────────────────────
# Filesystem and naming
# ─────────────────────────────────────────────────────────────


class DomainUnreadable(DarpError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"cannot read domain directory {path}: {reason}")
        self.path = path
        self.reason = reason


class InvalidHostLabel(DarpError):
    def __init__(self, label: str, reason: str):
        super().__init__(f"'{label}' is not a valid hostname label: {reason}")
        self.label = label
        self.reason = reason


class HostsFileError(DarpError):
    """A system file (hosts file, resolver file) could not be read or rewritten."""


# ─────────────────────────────────────────────────────────────
# Container engine
# ─────────────────────────────────────────────────────────────


class EngineError(DarpError):
    """A container engine invocation did not succeed."""


class EngineTimeout(EngineError):
    def __init__(self, command: list[str], timeout: float | None):
        super().__init__(f"'{' '.join(command)}' timed out after {timeout}s")
        self.command = command
        self.timeout = timeout


class EngineInvocationFailed(EngineError):
    def __init__(self, command: list[str], reason: str):
        super().__init__(f"'{' '.join(command)}' failed: {reason}")
        self.command = command
        self.reason = reason
