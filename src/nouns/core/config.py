"""
Configuration models.

Parses the [nouns] section from nouns.toml:

    [nouns]
    context = "https://startups.do"

    [nouns.codegen]
    export_name = "Startup"
    output = "generated/startup.py"
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

CONFIG_FILENAME = "nouns.toml"


class CodegenConfig(BaseModel):
    """Code generation configuration."""

    export_name: str | None = None
    output: str | None = None

    def get_output_path(self, project_root: Path) -> Path | None:
        """Absolute output path, or None when output goes to stdout."""
        if not self.output:
            return None
        output = Path(self.output)
        if output.is_absolute():
            return output
        return project_root / output


class NounsConfig(BaseModel):
    """Complete nouns configuration."""

    context: str | None = None
    codegen: CodegenConfig = Field(default_factory=CodegenConfig)


def load_config(toml_path: Path | None = None) -> NounsConfig:
    """
    Load configuration from nouns.toml.

    Args:
        toml_path: Path to nouns.toml; defaults to ./nouns.toml

    Returns:
        NounsConfig with parsed values or defaults
    """
    toml_path = toml_path or Path.cwd() / CONFIG_FILENAME
    if not toml_path.exists():
        return NounsConfig()

    with open(toml_path, "rb") as f:
        data = tomllib.load(f)

    nouns_data: dict[str, Any] = data.get("nouns", {})
    if not nouns_data:
        return NounsConfig()

    config_dict: dict[str, Any] = {"context": nouns_data.get("context")}

    if "codegen" in nouns_data:
        codegen_data = nouns_data["codegen"]
        config_dict["codegen"] = CodegenConfig(
            export_name=codegen_data.get("export_name"),
            output=codegen_data.get("output"),
        )

    return NounsConfig(**config_dict)
