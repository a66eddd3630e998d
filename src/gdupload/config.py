"""
Configuration loading and merging for gdupload.

Handles optional hierarchical configuration from global and project-level
JSON files. Command-line flags always win over configured values.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click

from gdupload.auth import DEFAULT_AUTH_TIMEOUT, DEFAULT_PORT
from gdupload.exceptions import ConfigurationError
from gdupload.models import CompressionMode

PROJECT_CONFIG_NAME = ".gdupload.json"

DEFAULTS: Dict[str, Any] = {
    "credentials_file": "credentials.json",
    "token_file": "token.json",
    "port": DEFAULT_PORT,
    "compression": CompressionMode.NONE.value,
    "auth_timeout": DEFAULT_AUTH_TIMEOUT,
}

# Keys holding file paths, resolved relative to the config file defining them
PATH_KEYS = ("credentials_file", "token_file")


def global_config_locations() -> List[Path]:
    return [
        Path.home() / ".gdupload" / "gdupload.json",
        Path.home() / ".config" / "gdupload" / "gdupload.json",
    ]


def _resolve_paths(section: Dict[str, Any], config_dir: Path) -> Dict[str, Any]:
    resolved = section.copy()
    for key in PATH_KEYS:
        if key in resolved and resolved[key]:
            path = Path(resolved[key]).expanduser()
            if not path.is_absolute():
                path = config_dir / path
            resolved[key] = str(path.resolve())
    return resolved


def _read_config(path: Path) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        click.echo(f"Warning: Failed to parse '{path}': {e}", err=True)
        return None
    if not isinstance(data, dict):
        click.echo(f"Warning: Ignoring '{path}': top level must be an object", err=True)
        return None
    return data


def load_config_with_sources() -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Load and merge configuration files with source tracking.

    Search order and merging:
    1. The first global config found in ~/.gdupload/gdupload.json or
       ~/.config/gdupload/gdupload.json (base)
    2. Every .gdupload.json from the filesystem root down to the current
       directory (deeper files override)

    Merging rules:
    - global_excludes: additive
    - bindings: deep-merged per binding
    - other top-level keys: deeper files override

    Returns:
        Tuple of (merged_config, source_map). Both are empty apart from the
        ``config_files`` list when no configuration file exists.
    """
    configs: List[Tuple[Path, Dict[str, Any]]] = []
    source_map: Dict[str, Any] = {
        "settings": {},
        "global_excludes": {},
        "bindings": {},
        "config_files": [],
    }

    for location in global_config_locations():
        if location.exists():
            data = _read_config(location)
            if data is not None:
                configs.append((location, data))
            break

    project_configs: List[Path] = []
    current = Path.cwd()
    while True:
        candidate = current / PROJECT_CONFIG_NAME
        if candidate.exists():
            project_configs.append(candidate)
        if current.parent == current:
            break
        current = current.parent

    for config_path in reversed(project_configs):
        data = _read_config(config_path)
        if data is not None:
            configs.append((config_path, data))

    merged: Dict[str, Any] = {}
    all_excludes: List[str] = []

    for config_path, config in configs:
        source = str(config_path)
        source_map["config_files"].append(source)
        config = _resolve_paths(config, config_path.parent)

        for pattern in config.get("global_excludes", []):
            source_map["global_excludes"].setdefault(pattern, []).append(source)
            all_excludes.append(pattern)

        for name, binding in config.get("bindings", {}).items():
            entry = source_map["bindings"].setdefault(name, {"defined_in": [], "properties": {}})
            entry["defined_in"].append(source)
            for prop in binding:
                entry["properties"].setdefault(prop, []).append(source)
            merged.setdefault("bindings", {}).setdefault(name, {}).update(binding)

        for key, value in config.items():
            if key in ("global_excludes", "bindings"):
                continue
            merged[key] = value
            source_map["settings"].setdefault(key, []).append(source)

    if all_excludes:
        merged["global_excludes"] = all_excludes

    return merged, source_map


def load_config() -> Dict[str, Any]:
    """Load and merge all configuration files (see load_config_with_sources)."""
    merged, _ = load_config_with_sources()
    return merged


def get_binding(config: Dict[str, Any], alias: str) -> Dict[str, Any]:
    """
    Get a binding by alias.

    Raises:
        ConfigurationError: If the alias is not configured.
    """
    bindings = config.get("bindings", {})
    if alias not in bindings:
        raise ConfigurationError(f"Binding '{alias}' not found in configuration")
    return bindings[alias]


def resolve_setting(
    key: str,
    cli_value: Any,
    config: Dict[str, Any],
    binding: Optional[Dict[str, Any]] = None,
) -> Any:
    """Pick a setting by precedence: CLI flag, binding, top-level config, default."""
    if cli_value is not None:
        return cli_value
    if binding and binding.get(key) is not None:
        return binding[key]
    if config.get(key) is not None:
        return config[key]
    return DEFAULTS.get(key)


def resolve_destination(
    config: Dict[str, Any], destination: str
) -> Tuple[str, Optional[Dict[str, Any]]]:
    """
    Map a destination argument to a Drive folder id.

    A destination naming a configured binding resolves to that binding's
    ``folder_id``; anything else is taken as a folder id.

    Returns:
        Tuple of (folder_id, binding or None).
    """
    binding = config.get("bindings", {}).get(destination)
    if binding is None:
        return destination, None
    folder_id = binding.get("folder_id")
    if not folder_id:
        raise ConfigurationError(f"Binding '{destination}' has no folder_id")
    return folder_id, binding


def collect_excludes(config: Dict[str, Any], binding: Optional[Dict[str, Any]]) -> List[str]:
    excludes = list(config.get("global_excludes", []))
    if binding:
        excludes.extend(binding.get("excludes", []))
    return excludes


def show_config(merged_config: Dict[str, Any], source_map: Dict[str, Any]) -> None:
    """
    Display merged configuration with source annotations.

    Args:
        merged_config: The final merged configuration.
        source_map: Dictionary tracking sources for each config item.
    """
    click.echo(click.style("\n📋 Configuration Files (merge order):", fg="cyan", bold=True))
    if not source_map["config_files"]:
        click.echo("  (none found, using defaults)")
    for i, config_file in enumerate(source_map["config_files"], 1):
        click.echo(f"  {i}. {config_file}")

    click.echo(click.style("\n🔀 Merged Configuration:", fg="cyan", bold=True))
    click.echo(click.style(json.dumps(merged_config, indent=2), fg="green"))

    click.echo(click.style("\n📍 Source Annotations:", fg="cyan", bold=True))

    for key, sources in source_map.get("settings", {}).items():
        click.echo(f"  • {click.style(key, fg='white')}")
        click.echo(f"    ↳ from: {click.style(', '.join(sources), fg='blue')}")

    if source_map.get("global_excludes"):
        click.echo(click.style("\n  global_excludes:", fg="yellow", bold=True))
        for pattern, sources in source_map["global_excludes"].items():
            click.echo(f"    • {click.style(pattern, fg='white')}")
            click.echo(f"      ↳ from: {click.style(', '.join(sources), fg='blue')}")

    if source_map.get("bindings"):
        click.echo(click.style("\n  bindings:", fg="yellow", bold=True))
        for name, info in source_map["bindings"].items():
            click.echo(f"    • {click.style(name, fg='white', bold=True)}")
            defined_in = ", ".join(info["defined_in"])
            click.echo(f"      ↳ defined in: {click.style(defined_in, fg='blue', dim=True)}")
            for prop, sources in info["properties"].items():
                click.echo(
                    f"        - {click.style(prop, fg='magenta')}: from "
                    f"{click.style(', '.join(sources), fg='blue', dim=True)}"
                )
