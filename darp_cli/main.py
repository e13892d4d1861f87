"""Main entry point for darp CLI"""

import argparse
import sys
from pathlib import Path

from . import __version__
from .completions import command_tree
from .config import LAYER_FIELDS, SERVICE_FIELDS, Config
from .deploy import Reconciler
from .engine import Engine
from .errors import DarpError
from .installer import PRIVILEGE_WARNING, install, uninstall
from .output import config_table, console, print_deploy_report, urls_table
from .paths import DarpPaths
from .platform import is_admin
from .ports import PortStore, listening_ports
from .resolver import Overrides
from .runner import ProjectRunner
from .structured_logging import setup_logging
from .utils import msg_action, msg_error, msg_info, msg_success, msg_warning
from .validation import parse_bool


def _flag(field_name: str) -> str:
    return field_name.replace("_", "-")


# ─────────────────────────────────────────────────────────────
# Command handlers
# ─────────────────────────────────────────────────────────────


def handle_install(args, paths: DarpPaths, config: Config) -> int:
    engine = Engine.from_config(config)
    install(paths, engine, urls_in_hosts=config.urls_in_hosts, completions=command_tree(build_parser()))
    config.save(paths.config_path)
    return 0


def handle_uninstall(args, paths: DarpPaths, config: Config) -> int:
    engine = Engine.from_config(config)
    engine.require_ready()
    uninstall(paths, engine)
    return 0


def handle_deploy(args, paths: DarpPaths, config: Config) -> int:
    engine = Engine.from_config(config)
    if engine.kind.needs_elevated_privileges(config.urls_in_hosts) and not is_admin():
        msg_warning(PRIVILEGE_WARNING.format(engine=engine.bin))
    engine.require_ready()

    msg_info("Deploying Container Development")
    report = Reconciler(config, paths, engine).deploy()
    print_deploy_report(report)
    return 0 if report.ok else 1


def handle_urls(args, paths: DarpPaths, config: Config) -> int:
    assignments = PortStore(paths.portmap_path).load()
    if not assignments:
        msg_info("No URLs yet. Run 'darp deploy' first.")
        return 0
    console.print(urls_table(assignments, listening_ports()))
    return 0


def handle_project_container(args, paths: DarpPaths, config: Config) -> int:
    """shell and serve: run the current project's container attached to the terminal"""
    engine = Engine.from_config(config)
    engine.require_ready()

    overrides = Overrides(environment=args.environment, image=args.image)
    runner = ProjectRunner(config, paths)
    if args.command == "serve":
        request = runner.serve_request(Path.cwd(), overrides)
    else:
        request = runner.shell_request(Path.cwd(), overrides)

    msg_action("starting", request.name)
    return engine.run_attached(request)


def handle_config(args, paths: DarpPaths, config: Config) -> int:
    if args.config_action == "show":
        console.print(config_table(config))
        return 0

    op = getattr(args, "config_op", None)
    if op is None:
        msg_info(f"Usage: darp config {args.config_action} <setting> ...")
        return 1

    message = op(config, args)
    config.save(paths.config_path)
    msg_success(message)
    return 0


# ─────────────────────────────────────────────────────────────
# Config mutations (each returns the success message)
# ─────────────────────────────────────────────────────────────


def _set_engine(config: Config, args) -> str:
    config.set_engine(args.engine)
    return f"Engine set to {config.engine}"


def _set_podman_machine(config: Config, args) -> str:
    config.set_podman_machine(args.machine)
    return f"podman_machine set to '{config.podman_machine}'"


def _set_urls_in_hosts(config: Config, args) -> str:
    config.urls_in_hosts = parse_bool(args.value)
    state = "enabled" if config.urls_in_hosts else "disabled"
    return f"urls_in_hosts has been {state}. Next 'darp deploy' will sync the hosts file accordingly."


def _set_base_port(config: Config, args) -> str:
    config.set_base_port(args.port)
    return f"base_port set to {config.base_port}"


def _set_domain_env(config: Config, args) -> str:
    config.set_domain_default_environment(args.domain, args.environment)
    return f"Default environment for domain '{args.domain}' set to '{args.environment}'"


def _add_domain(config: Config, args) -> str:
    name, location = config.add_domain(args.location)
    return f"Added domain '{name}' at {location}"


def _add_env(config: Config, args) -> str:
    config.add_environment(args.environment)
    return f"Created environment '{args.environment}'"


def _add_env_portmap(config: Config, args) -> str:
    config.add_env_portmap(args.environment, args.host_port, args.container_port)
    return f"Added portmap {args.host_port}:{args.container_port} to environment '{args.environment}'"


def _add_env_volume(config: Config, args) -> str:
    config.add_env_volume(args.environment, args.container_dir, args.host_dir)
    return f"Added volume {args.host_dir} -> {args.container_dir} to environment '{args.environment}'"


def _add_svc_portmap(config: Config, args) -> str:
    config.add_service_portmap(args.domain, args.service, args.host_port, args.container_port)
    return f"Added portmap {args.host_port}:{args.container_port} to service '{args.domain}.{args.service}'"


def _add_svc_volume(config: Config, args) -> str:
    config.add_service_volume(args.domain, args.service, args.container_dir, args.host_dir)
    return f"Added volume {args.host_dir} -> {args.container_dir} to service '{args.domain}.{args.service}'"


def _rm_domain(config: Config, args) -> str:
    name = config.rm_domain(args.name)
    return f"Removed domain '{name}'. Its ports are released on the next 'darp deploy'."


def _rm_podman_machine(config: Config, args) -> str:
    config.rm_podman_machine()
    return "podman_machine removed"


def _rm_domain_env(config: Config, args) -> str:
    config.rm_domain_default_environment(args.domain)
    return f"Removed default environment from domain '{args.domain}'"


def _rm_env(config: Config, args) -> str:
    config.rm_environment(args.environment)
    return f"Deleted environment '{args.environment}'"


def _rm_env_portmap(config: Config, args) -> str:
    config.rm_env_portmap(args.environment, args.host_port)
    return f"Removed portmap {args.host_port} from environment '{args.environment}'"


def _rm_env_volume(config: Config, args) -> str:
    config.rm_env_volume(args.environment, args.container_dir, args.host_dir)
    return f"Removed volume {args.host_dir} -> {args.container_dir} from environment '{args.environment}'"


def _rm_svc_portmap(config: Config, args) -> str:
    config.rm_service_portmap(args.domain, args.service, args.host_port)
    return f"Removed portmap {args.host_port} from service '{args.domain}.{args.service}'"


def _rm_svc_volume(config: Config, args) -> str:
    config.rm_service_volume(args.domain, args.service, args.container_dir, args.host_dir)
    return f"Removed volume {args.host_dir} -> {args.container_dir} from service '{args.domain}.{args.service}'"


def _set_env_field(field_name: str):
    def op(config: Config, args) -> str:
        config.set_env_field(args.environment, field_name, args.value)
        return f"Set {field_name} for environment '{args.environment}' to:\n  {args.value}"

    return op


def _rm_env_field(field_name: str):
    def op(config: Config, args) -> str:
        config.rm_env_field(args.environment, field_name)
        return f"Removed {field_name} from environment '{args.environment}'"

    return op


def _set_svc_field(field_name: str):
    def op(config: Config, args) -> str:
        config.set_service_field(args.domain, args.service, field_name, args.value)
        return f"Set {field_name} for service '{args.domain}.{args.service}' to:\n  {args.value}"

    return op


def _rm_svc_field(field_name: str):
    def op(config: Config, args) -> str:
        config.rm_service_field(args.domain, args.service, field_name)
        return f"Removed {field_name} from service '{args.domain}.{args.service}'"

    return op


def _leaf(sub, name: str, help_text: str, op, *args: tuple[str, str]) -> argparse.ArgumentParser:
    p = sub.add_parser(name, help=help_text)
    for arg, arg_help in args:
        p.add_argument(arg, help=arg_help)
    p.set_defaults(config_op=op)
    return p


ENV_ARG = ("environment", "Environment name")
DOMAIN_ARG = ("domain", "Domain name")
SERVICE_ARG = ("service", "Service (project directory) name")
CONTAINER_DIR_ARG = ("container_dir", "Path inside the container")


def _add_config_parsers(config_sub) -> None:
    # config set
    set_sub = config_sub.add_parser("set", help="Set a configuration value").add_subparsers(dest="setting")
    _leaf(set_sub, "engine", "Container engine (podman or docker)", _set_engine, ("engine", "podman or docker"))
    _leaf(
        set_sub,
        "podman-machine",
        "Podman machine to check before running containers",
        _set_podman_machine,
        ("machine", "Podman machine name"),
    )
    _leaf(
        set_sub,
        "urls-in-hosts",
        "Write project URLs to the hosts file instead of using dnsmasq",
        _set_urls_in_hosts,
        ("value", "true or false"),
    )
    _leaf(set_sub, "base-port", "First port handed out to projects", _set_base_port, ("port", "Port number"))
    _leaf(set_sub, "domain", "Set a domain's default environment", _set_domain_env, DOMAIN_ARG, ENV_ARG)

    env_sub = set_sub.add_parser("env", help="Set an environment setting").add_subparsers(dest="field")
    for field_name in LAYER_FIELDS:
        _leaf(env_sub, _flag(field_name), f"Set {field_name}", _set_env_field(field_name), ENV_ARG, ("value", field_name))

    svc_sub = set_sub.add_parser("svc", help="Set a service setting").add_subparsers(dest="field")
    for field_name in SERVICE_FIELDS:
        _leaf(
            svc_sub,
            _flag(field_name),
            f"Set {field_name}",
            _set_svc_field(field_name),
            DOMAIN_ARG,
            SERVICE_ARG,
            ("value", field_name),
        )

    # config add
    add_sub = config_sub.add_parser("add", help="Add a domain, environment, port mapping or volume").add_subparsers(
        dest="setting"
    )
    _leaf(
        add_sub,
        "domain",
        "Register a directory of projects as a domain",
        _add_domain,
        ("location", "Directory holding one project per subdirectory"),
    )

    env_sub = add_sub.add_parser("env", help="Add an environment or environment entries").add_subparsers(dest="field")
    _leaf(env_sub, "new", "Create an empty environment", _add_env, ENV_ARG)
    _leaf(
        env_sub,
        "portmap",
        "Publish a host port",
        _add_env_portmap,
        ENV_ARG,
        ("host_port", "Host port"),
        ("container_port", "Container port"),
    )
    _leaf(
        env_sub,
        "volume",
        "Mount a host directory",
        _add_env_volume,
        ENV_ARG,
        CONTAINER_DIR_ARG,
        ("host_dir", "Host path ({pwd} and {home} are expanded)"),
    )

    svc_sub = add_sub.add_parser("svc", help="Add service entries").add_subparsers(dest="field")
    _leaf(
        svc_sub,
        "portmap",
        "Publish a host port",
        _add_svc_portmap,
        DOMAIN_ARG,
        SERVICE_ARG,
        ("host_port", "Host port"),
        ("container_port", "Container port"),
    )
    _leaf(
        svc_sub,
        "volume",
        "Mount a host directory",
        _add_svc_volume,
        DOMAIN_ARG,
        SERVICE_ARG,
        CONTAINER_DIR_ARG,
        ("host_dir", "Host path ({pwd} and {home} are expanded)"),
    )

    # config rm
    rm_sub = config_sub.add_parser("rm", help="Remove a configuration value").add_subparsers(dest="setting")
    _leaf(rm_sub, "domain", "Unregister a domain", _rm_domain, ("name", "Domain name or location"))
    _leaf(rm_sub, "podman-machine", "Forget the configured podman machine", _rm_podman_machine)
    _leaf(rm_sub, "domain-env", "Remove a domain's default environment", _rm_domain_env, DOMAIN_ARG)

    env_sub = rm_sub.add_parser("env", help="Remove an environment or environment entries").add_subparsers(dest="field")
    _leaf(env_sub, "delete", "Delete an environment nothing refers to", _rm_env, ENV_ARG)
    _leaf(env_sub, "portmap", "Remove a published host port", _rm_env_portmap, ENV_ARG, ("host_port", "Host port"))
    _leaf(
        env_sub,
        "volume",
        "Remove a volume",
        _rm_env_volume,
        ENV_ARG,
        CONTAINER_DIR_ARG,
        ("host_dir", "Host path as configured"),
    )
    for field_name in LAYER_FIELDS:
        _leaf(env_sub, _flag(field_name), f"Remove {field_name}", _rm_env_field(field_name), ENV_ARG)

    svc_sub = rm_sub.add_parser("svc", help="Remove service entries").add_subparsers(dest="field")
    _leaf(
        svc_sub,
        "portmap",
        "Remove a published host port",
        _rm_svc_portmap,
        DOMAIN_ARG,
        SERVICE_ARG,
        ("host_port", "Host port"),
    )
    _leaf(
        svc_sub,
        "volume",
        "Remove a volume",
        _rm_svc_volume,
        DOMAIN_ARG,
        SERVICE_ARG,
        CONTAINER_DIR_ARG,
        ("host_dir", "Host path as configured"),
    )
    for field_name in SERVICE_FIELDS:
        _leaf(svc_sub, _flag(field_name), f"Remove {field_name}", _rm_svc_field(field_name), DOMAIN_ARG, SERVICE_ARG)

    config_sub.add_parser("show", help="Show the current configuration")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="darp",
        description="darp - container development environments with local *.test URLs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"darp {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("install", help="Prepare the darp state directory, OS resolver and shell completions")
    subparsers.add_parser("uninstall", help="Stop darp containers and remove the OS resolver and shell completions")
    subparsers.add_parser("deploy", help="Assign ports, regenerate proxy/DNS config and restart support containers")
    subparsers.add_parser("urls", help="List project URLs and their ports")

    for name, help_text in (
        ("shell", "Open a shell in a container for the current project"),
        ("serve", "Run the current project's serve_command in a container"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("-e", "--environment", help="Environment to use instead of the configured one")
        p.add_argument("image", nargs="?", help="Container image to use instead of the configured one")

    config_parser = subparsers.add_parser("config", help="Show or change configuration")
    config_sub = config_parser.add_subparsers(dest="config_action")
    _add_config_parsers(config_sub)

    return parser


HANDLERS = {
    "install": handle_install,
    "uninstall": handle_uninstall,
    "deploy": handle_deploy,
    "urls": handle_urls,
    "shell": handle_project_container,
    "serve": handle_project_container,
    "config": handle_config,
}


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level="DEBUG" if args.verbose else None)

    if args.command is None:
        parser.print_help()
        return 1
    if args.command == "config" and args.config_action is None:
        msg_info("Usage: darp config {set|add|rm|show}")
        return 1

    paths = DarpPaths.from_env()
    try:
        config = Config.load(paths.config_path)
        return HANDLERS[args.command](args, paths, config)
    except DarpError as e:
        msg_error(str(e))
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
