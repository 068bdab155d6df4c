"""Export resolved configurations as JSON or YAML."""

from typing import Any

import yaml

from pyimagegen.resolver.models import ResolvedConfig
from pyimagegen.types import ExportFormat


def config_to_dict(config: ResolvedConfig) -> dict[str, Any]:
    """Convert a resolved configuration to plain data.

    Plain-text credentials are masked; secret credentials show their id.
    """
    return config.model_dump(mode="json", by_alias=True, exclude_none=True)


def config_to_yaml_string(config: ResolvedConfig) -> str:
    """Convert a resolved configuration to a YAML string.

    Args:
        config: ResolvedConfig instance to convert.

    Returns:
        YAML string representation.
    """
    result: str = yaml.dump(
        config_to_dict(config),
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
    )
    return result


def config_to_json_string(config: ResolvedConfig) -> str:
    return config.model_dump_json(indent=2, by_alias=True, exclude_none=True)


def export_config(config: ResolvedConfig, fmt: ExportFormat) -> str:
    """Render a resolved configuration in the requested format."""
    if fmt == ExportFormat.YAML:
        return config_to_yaml_string(config)
    return config_to_json_string(config)


__all__ = [
    "config_to_dict",
    "config_to_json_string",
    "config_to_yaml_string",
    "export_config",
]
