"""Console output utilities and colors"""

import os
import sys


class Colors:
    """ANSI colors for terminal output"""

    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    GRAY = "\033[90m"

    @classmethod
    def disable(cls):
        """Disable colors for non-TTY output"""
        cls.RESET = cls.RED = cls.GREEN = cls.YELLOW = cls.BLUE = cls.CYAN = cls.GRAY = ""


if os.environ.get("NO_COLOR") or not sys.stdout.isatty():
    Colors.disable()


ICON_SUCCESS = "[ok]"
ICON_ERROR = "[x]"
ICON_WARN = "[!]"
ICON_INFO = ">"


def msg_success(text: str):
    """Print success message"""
    print(f"{Colors.GREEN}{ICON_SUCCESS}{Colors.RESET} {text}")


def msg_error(text: str):
    """Print error message"""
    print(f"{Colors.RED}{ICON_ERROR}{Colors.RESET} {text}", file=sys.stderr)


def msg_warning(text: str):
    """Print warning message"""
    print(f"{Colors.YELLOW}{ICON_WARN}{Colors.RESET} {text}")


def msg_info(text: str):
    """Print info message"""
    print(f"{Colors.BLUE}{ICON_INFO}{Colors.RESET} {text}")


def msg_action(verb: str, name: str):
    """Print a container action line such as 'starting darp-masq'"""
    print(f"{verb} {Colors.CYAN}{name}{Colors.RESET}")
