"""Install and uninstall: state directory, nginx.conf template, OS resolver file,
shell completions.

Nothing here touches user config. Uninstall stops darp containers and
removes the OS resolver file and completions but leaves $DARP_ROOT on disk.
"""

import logging
from pathlib import Path

from .artifacts import write_if_changed
from .completions import install_completions, uninstall_completions
from .dns import HostsFile
from .engine import RESOLVER, REVERSE_PROXY, Engine
from .paths import DarpPaths
from .platform import IS_MACOS, RESOLVER_FILE, is_admin, privileged_remove, privileged_write
from .utils import msg_action, msg_info, msg_success, msg_warning

logger = logging.getLogger("darp.installer")

RESOLVER_CONTENT = "nameserver 127.0.0.1\n"
PRIVILEGE_WARNING = "{engine} needs elevated privileges while urls_in_hosts is enabled; run 'darp deploy' with sudo"

# nginx.conf mounted into project containers; vhosts come from http.d/
NGINX_CONF = """user root;
worker_processes 1;
error_log /dev/stderr warn;
pid /tmp/nginx.pid;

events {
    worker_connections 1024;
}

http {
    access_log off;
    proxy_buffering off;
    include /etc/nginx/http.d/*.conf;
}
"""


def install(
    paths: DarpPaths,
    engine: Engine,
    urls_in_hosts: bool = False,
    write_resolver: bool = IS_MACOS,
    completions: dict[str, list[str]] | None = None,
    home: Path | None = None,
    shell: str | None = None,
) -> None:
    """
    Prepare the state directory, the OS resolver and shell completions.

    Args:
        paths: darp state locations
        engine: Configured engine, used for the privilege warning and watch-mode note
        urls_in_hosts: Current resolution mode, for the privilege warning
        write_resolver: Write /etc/resolver/test (macOS routes *.test lookups through it)
        completions: Command tree to generate completion scripts from, None to skip them
        home: Home directory completions are installed under
        shell: Shell to install completions for, detected from $SHELL when None
    """
    msg_info("Running installation")
    paths.ensure_dirs()

    if write_if_changed(paths.nginx_conf_path, NGINX_CONF):
        msg_success(f"{paths.nginx_conf_path} created")

    if write_resolver:
        privileged_write(RESOLVER_FILE, RESOLVER_CONTENT)
        msg_success(f"{RESOLVER_FILE} created")

    if completions is not None:
        install_completions(completions, home or Path.home(), shell)

    if engine.kind.needs_elevated_privileges(urls_in_hosts) and not is_admin():
        msg_warning(PRIVILEGE_WARNING.format(engine=engine.bin))
    msg_info(engine.watch_mode_note())
    logger.info("Installed darp state under %s", paths.root)


def uninstall(
    paths: DarpPaths,
    engine: Engine,
    remove_resolver: bool = IS_MACOS,
    home: Path | None = None,
    shell: str | None = None,
) -> None:
    """Stop every darp container, clear the hosts block, remove the OS resolver file and completions"""
    msg_info("Running uninstallation")

    for name in engine.stop_project_containers():
        msg_action("stopped", name)
    for name in (REVERSE_PROXY, RESOLVER):
        if engine.stop_if_running(name):
            msg_action("stopped", name)

    if HostsFile(paths.hosts_file).clear():
        msg_success(f"darp entries removed from {paths.hosts_file}")

    if remove_resolver and privileged_remove(RESOLVER_FILE):
        msg_success(f"{RESOLVER_FILE} removed")

    uninstall_completions(home or Path.home(), shell)

    msg_success(f"Uninstall complete. Config and data under {paths.root} were left untouched.")
