"""
Timeouts for external commands.

Every engine and privileged call goes through these constants instead of
hard-coded values, so a hung container engine is reported as a failed step.
"""

# Short operations: version checks, container listing
TIMEOUT_QUICK = 5

# Standard operations: start/stop containers, privileged file writes
TIMEOUT_STANDARD = 30

# Long operations: image pulls on first container start
TIMEOUT_LONG = 120

# Interactive operations (shell, serve): no timeout
TIMEOUT_NONE = None


TIMEOUTS = {
    # Engine readiness and inspection
    "engine_info": TIMEOUT_STANDARD,
    "engine_machine_list": TIMEOUT_STANDARD,
    "engine_ps": TIMEOUT_QUICK,
    # Support container lifecycle
    "engine_run": TIMEOUT_LONG,
    "engine_stop": TIMEOUT_STANDARD,
    # Privileged writes (hosts file, resolver file)
    "sudo": TIMEOUT_STANDARD,
    # Project containers attached to a terminal
    "interactive": TIMEOUT_NONE,
}


def get_timeout(operation: str, default: int | None = TIMEOUT_STANDARD) -> int | None:
    """
    Get the timeout for an operation.

    Examples:
        >>> get_timeout("engine_ps")
        5
        >>> get_timeout("interactive") is None
        True
        >>> get_timeout("unknown_operation")
        30
    """
    return TIMEOUTS.get(operation, default)
