"""
Shell completions for darp.

Scripts are generated from the argparse command tree and installed into the
user's home: bash and zsh also get a marker block in their rc file so the
completions load in new shells. Fish picks its file up on its own.
"""

import argparse
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .utils import msg_info, msg_success

logger = logging.getLogger("darp.completions")

RC_START_MARKER = "# >>> darp completions >>>"
RC_END_MARKER = "# <<< darp completions <<<"

SUPPORTED_SHELLS = ("bash", "zsh", "fish")

BASH_RC_BODY = """if command -v darp >/dev/null 2>&1; then
  source "${XDG_DATA_HOME:-$HOME/.local/share}/bash-completion/completions/darp"
fi"""

ZSH_RC_BODY = """if command -v darp >/dev/null 2>&1; then
  fpath+=("$HOME/.zfunc")
  autoload -Uz compinit
  compinit
fi"""


@dataclass(frozen=True)
class CompletionTarget:
    shell: str
    script: Path
    rc_file: Path | None = None
    rc_body: str | None = None


def detect_shell(shell_path: str | None = None) -> str | None:
    """Shell name from $SHELL (or ``shell_path``), if it is one we support"""
    name = Path(shell_path if shell_path is not None else os.getenv("SHELL", "")).name
    return name if name in SUPPORTED_SHELLS else None


def target_for(shell: str, home: Path) -> CompletionTarget:
    if shell == "bash":
        return CompletionTarget(
            shell, home / ".local/share/bash-completion/completions/darp", home / ".bashrc", BASH_RC_BODY
        )
    if shell == "zsh":
        return CompletionTarget(shell, home / ".zfunc/_darp", home / ".zshrc", ZSH_RC_BODY)
    return CompletionTarget(shell, home / ".config/fish/completions/darp.fish")


# ─────────────────────────────────────────────────────────────
# Script generation
# ─────────────────────────────────────────────────────────────


def _subcommands(parser: argparse.ArgumentParser) -> dict[str, argparse.ArgumentParser]:
    for action in parser._actions:
        if isinstance(action, argparse._SubParsersAction):
            return dict(action.choices)
    return {}


def command_tree(parser: argparse.ArgumentParser) -> dict[str, list[str]]:
    """Top-level commands mapped to their sorted subcommands"""
    return {name: sorted(_subcommands(sub)) for name, sub in sorted(_subcommands(parser).items())}


def render_bash(tree: dict[str, list[str]]) -> str:
    cases = "".join(
        f'        {name}) COMPREPLY=($(compgen -W "{" ".join(subs)}" -- "$cur")) ;;\n'
        for name, subs in tree.items()
        if subs
    )
    return (
        "# bash completion for darp\n"
        "_darp() {\n"
        '    local cur="${COMP_WORDS[COMP_CWORD]}"\n'
        '    if [ "$COMP_CWORD" -eq 1 ]; then\n'
        f'        COMPREPLY=($(compgen -W "{" ".join(tree)}" -- "$cur"))\n'
        "        return\n"
        "    fi\n"
        '    [ "$COMP_CWORD" -eq 2 ] || return\n'
        '    case "${COMP_WORDS[1]}" in\n'
        f"{cases}"
        "    esac\n"
        "}\n"
        "complete -F _darp darp\n"
    )


def render_zsh(tree: dict[str, list[str]]) -> str:
    cases = "".join(f"      {name}) compadd -- {' '.join(subs)} ;;\n" for name, subs in tree.items() if subs)
    return (
        "#compdef darp\n"
        "_darp() {\n"
        "  if (( CURRENT == 2 )); then\n"
        f"    compadd -- {' '.join(tree)}\n"
        "  elif (( CURRENT == 3 )); then\n"
        "    case $words[2] in\n"
        f"{cases}"
        "    esac\n"
        "  fi\n"
        "}\n"
        '_darp "$@"\n'
    )


def render_fish(tree: dict[str, list[str]]) -> str:
    lines = [
        "# fish completion for darp",
        "complete -c darp -f",
        f'complete -c darp -n "__fish_use_subcommand" -a "{" ".join(tree)}"',
    ]
    lines += [
        f'complete -c darp -n "__fish_seen_subcommand_from {name}" -a "{" ".join(subs)}"'
        for name, subs in tree.items()
        if subs
    ]
    return "\n".join(lines) + "\n"


RENDERERS = {"bash": render_bash, "zsh": render_zsh, "fish": render_fish}


# ─────────────────────────────────────────────────────────────
# rc file block
# ─────────────────────────────────────────────────────────────


def ensure_rc_block(rc_path: Path, body: str) -> bool:
    """Append the darp block unless one is already there. Returns True if the file changed."""
    content = rc_path.read_text(encoding="utf-8") if rc_path.exists() else ""
    if RC_START_MARKER in content:
        return False
    if content and not content.endswith("\n"):
        content += "\n"
    body = body.rstrip("\n")
    content += f"{RC_START_MARKER}\n{body}\n{RC_END_MARKER}\n"
    rc_path.parent.mkdir(parents=True, exist_ok=True)
    rc_path.write_text(content, encoding="utf-8")
    return True


def remove_rc_block(rc_path: Path) -> bool:
    """Remove the darp block, keeping everything around it. Returns True if the file changed."""
    if not rc_path.exists():
        return False
    content = rc_path.read_text(encoding="utf-8")
    start = content.find(RC_START_MARKER)
    if start == -1:
        return False
    end = content.find(RC_END_MARKER, start)
    end = len(content) if end == -1 else end + len(RC_END_MARKER)

    sections = [s for s in (content[:start].strip("\n"), content[end:].strip("\n")) if s]
    rc_path.write_text("\n".join(sections) + "\n" if sections else "", encoding="utf-8")
    return True


# ─────────────────────────────────────────────────────────────
# Install / uninstall
# ─────────────────────────────────────────────────────────────


def install_completions(tree: dict[str, list[str]], home: Path, shell: str | None = None) -> Path | None:
    """Write the completion script for the user's shell. Returns its path, or None when skipped."""
    shell = shell or detect_shell()
    if shell is None:
        msg_info("Could not detect a supported shell from $SHELL; skipping shell completion install.")
        return None

    target = target_for(shell, home)
    target.script.parent.mkdir(parents=True, exist_ok=True)
    target.script.write_text(RENDERERS[shell](tree), encoding="utf-8")
    msg_success(f"Installed {shell} completions to {target.script}")

    if target.rc_file is not None and ensure_rc_block(target.rc_file, target.rc_body or ""):
        msg_success(f"Updated {target.rc_file} with darp completion block")
    logger.info("Installed %s completions", shell)
    return target.script


def uninstall_completions(home: Path, shell: str | None = None) -> list[Path]:
    """Remove the completion script and rc block. Returns the paths that changed."""
    shell = shell or detect_shell()
    if shell is None:
        msg_info("Could not detect a supported shell from $SHELL; skipping shell completion removal.")
        return []

    target = target_for(shell, home)
    changed = []
    if target.script.exists():
        target.script.unlink()
        msg_success(f"Removed {shell} completions at {target.script}")
        changed.append(target.script)
    if target.rc_file is not None and remove_rc_block(target.rc_file):
        changed.append(target.rc_file)
    return changed
