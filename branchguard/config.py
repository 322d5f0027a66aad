"""Configuration management for branchguard."""

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict

import typer
import yaml
from rich.console import Console

console = Console()

DEFAULT_REMOTE = "origin"
DEFAULT_PROTECTED_BRANCH = "main"


@dataclass(frozen=True)
class Capabilities:
    """
    Feature switches for the merge workflow.

    Turning everything off gives the plain stage/commit/merge helper; turning
    everything on gives the full guarded flow.
    """

    risk_analysis: bool = True
    divergence_analysis: bool = True
    safe_replace: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Capabilities":
        return cls(
            risk_analysis=bool(data.get("risk_analysis", True)),
            divergence_analysis=bool(data.get("divergence_analysis", True)),
            safe_replace=bool(data.get("safe_replace", True)),
        )

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)


CAPABILITY_NAMES = tuple(Capabilities().to_dict())


def default_config() -> Dict[str, Any]:
    return {
        "default": {"remote": DEFAULT_REMOTE, "protected_branch": DEFAULT_PROTECTED_BRANCH},
        "capabilities": Capabilities().to_dict(),
    }


def get_config_dir() -> Path:
    """Get branchguard configuration directory."""
    config_dir = Path.home() / ".branchguard"
    config_dir.mkdir(exist_ok=True)
    return config_dir


def get_config_file() -> Path:
    """Get configuration file path."""
    return get_config_dir() / "config.yml"


def load_config() -> Dict[str, Any]:
    """Load configuration from file, filling in defaults for missing keys."""
    config = default_config()
    config_file = get_config_file()
    if not config_file.exists():
        return config

    with open(config_file) as f:
        loaded = yaml.safe_load(f) or {}

    for section, values in loaded.items():
        if values is None:
            continue
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section].update(values)
        else:
            config[section] = values
    return config


def save_config(config: Dict[str, Any]) -> None:
    """Save configuration to file."""
    config_file = get_config_file()
    with open(config_file, "w") as f:
        yaml.dump(config, f, default_flow_style=False)


def get_remote() -> str:
    """Get configured remote name."""
    return load_config().get("default", {}).get("remote") or DEFAULT_REMOTE


def get_protected_branch() -> str:
    """Get the branch treated as protected (default merge and replace target)."""
    return load_config().get("default", {}).get("protected_branch") or DEFAULT_PROTECTED_BRANCH


def get_capabilities() -> Capabilities:
    """Get configured capability flags."""
    capabilities = load_config().get("capabilities") or {}
    return Capabilities.from_dict(capabilities if isinstance(capabilities, dict) else {})


def set_remote_command(remote: str) -> None:
    """Set the remote used for pushes and backups."""
    config = load_config()
    config.setdefault("default", {})["remote"] = remote
    save_config(config)

    console.print(f"[green]✅ Remote set to: {remote}[/green]")


def set_protected_command(branch: str) -> None:
    """Set the protected branch."""
    config = load_config()
    config.setdefault("default", {})["protected_branch"] = branch
    save_config(config)

    console.print(f"[green]✅ Protected branch set to: {branch}[/green]")


def set_capability_command(name: str, enabled: bool) -> None:
    """Enable or disable one capability flag."""
    if name not in CAPABILITY_NAMES:
        console.print(
            f"[red]Error: Unknown capability '{name}'. "
            f"Choose from: {', '.join(CAPABILITY_NAMES)}[/red]"
        )
        raise typer.Exit(1)

    config = load_config()
    config.setdefault("capabilities", {})[name] = enabled
    save_config(config)

    state = "enabled" if enabled else "disabled"
    console.print(f"[green]✅ Capability {name} {state}[/green]")


def show_config_command(format_type: str = "table") -> None:
    """Show current configuration."""
    config = load_config()
    capabilities = get_capabilities()

    if format_type == "json":
        output = {
            "remote": get_remote(),
            "protected_branch": get_protected_branch(),
            "capabilities": capabilities.to_dict(),
            "config_file": str(get_config_file()),
        }
        console.print(json.dumps(output, indent=2))
    else:
        console.print("[bold]Branchguard Configuration[/bold]")
        console.print(f"Remote: {config['default'].get('remote')}")
        console.print(f"Protected branch: {config['default'].get('protected_branch')}")
        for name, enabled in capabilities.to_dict().items():
            marker = "[green]on[/green]" if enabled else "[red]off[/red]"
            console.print(f"Capability {name}: {marker}")
        console.print(f"Config file: {get_config_file()}")
