"""Configuration schema, external config file loading, and merging."""

import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, StrictBool, StrictStr, ValidationError
from pydantic.alias_generators import to_camel

from .appendix import merge_appendices
from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILES = [
    ".pastoralistrc",
    ".pastoralistrc.json",
    "pastoralist.json",
    "pastoralist.config.js",
    "pastoralist.config.ts",
]

SCRIPT_TIMEOUT = 30.0

SecurityProviderName = Literal["osv", "github", "snyk", "npm", "socket"]
SeverityThreshold = Literal["low", "medium", "high", "critical"]


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class Ledger(_ConfigModel):
    added_date: StrictStr
    reason: Optional[StrictStr] = None
    security_checked: Optional[StrictBool] = None
    security_check_date: Optional[StrictStr] = None
    security_provider: Optional[SecurityProviderName] = None


class AppendixItemModel(_ConfigModel):
    root_deps: Optional[list[StrictStr]] = None
    dependents: Optional[dict[str, Any]] = None
    patches: Optional[list[StrictStr]] = None
    ledger: Optional[Ledger] = None


class SecurityConfig(_ConfigModel):
    enabled: Optional[StrictBool] = None
    provider: Optional[Union[SecurityProviderName, list[SecurityProviderName]]] = None
    auto_fix: Optional[StrictBool] = None
    interactive: Optional[StrictBool] = None
    security_provider_token: Optional[StrictStr] = None
    severity_threshold: Optional[SeverityThreshold] = None
    exclude_packages: Optional[list[StrictStr]] = None
    has_workspace_security_checks: Optional[StrictBool] = None


class PastoralistConfig(_ConfigModel):
    """The ``pastoralist`` block of package.json or an external config file."""

    appendix: Optional[dict[str, AppendixItemModel]] = None
    dep_paths: Optional[Union[Literal["workspace", "workspaces"], list[StrictStr]]] = None
    check_security: Optional[StrictBool] = None
    override_paths: Optional[dict[str, dict[str, AppendixItemModel]]] = None
    resolution_paths: Optional[dict[str, dict[str, AppendixItemModel]]] = None
    security: Optional[SecurityConfig] = None

    def to_dict(self) -> dict[str, Any]:
        """Dump using the camelCase keys found in package.json."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def appendix_dict(self) -> dict[str, dict]:
        return self.to_dict().get("appendix", {})

    def tracked_paths(self) -> dict[str, dict[str, dict]]:
        """overridePaths, falling back to resolutionPaths."""
        data = self.to_dict()
        return data.get("overridePaths") or data.get("resolutionPaths") or {}


def validate_config(data: Any) -> PastoralistConfig:
    """Validate raw config data.

    Raises:
        ConfigError: The data does not match the config schema
    """
    if isinstance(data, PastoralistConfig):
        return data
    if not isinstance(data, dict):
        raise ConfigError("Invalid config structure")
    try:
        return PastoralistConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError("Invalid config structure") from e


def safe_validate_config(data: Any) -> PastoralistConfig | None:
    try:
        return validate_config(data)
    except ConfigError:
        return None


def load_json_config(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


# Imports the module and prints its default export as JSON
NODE_EXPORT_SCRIPT = (
    "const { pathToFileURL } = require('node:url');"
    "import(pathToFileURL(process.argv[1]).href).then((m) => {"
    "  const value = m.default ?? m;"
    "  process.stdout.write(JSON.stringify(value.default ?? value));"
    "});"
)


def load_script_config(path: Path) -> Any:
    """Evaluate a JS/TS config module with node and return its export."""
    command = ["node"]
    if path.suffix == ".ts":
        command.append("--experimental-strip-types")
    command += ["-e", NODE_EXPORT_SCRIPT, str(path)]

    result = subprocess.run(
        command,
        capture_output=True,
        text=True,
        timeout=SCRIPT_TIMEOUT,
        check=True,
        cwd=path.parent,
    )
    return json.loads(result.stdout)


CONFIG_LOADERS: dict[str, Callable[[Path], Any]] = {
    "json": load_json_config,
    "script": load_script_config,
}


def config_format(filename: str) -> str:
    if filename == ".pastoralistrc" or filename.endswith(".json"):
        return "json"
    return "script"


def _try_load_config(filename: str, root: Path) -> PastoralistConfig | None:
    path = root / filename
    if not path.is_file():
        return None

    loader = CONFIG_LOADERS[config_format(filename)]
    try:
        data = loader(path)
    except (OSError, ValueError, subprocess.SubprocessError) as e:
        logger.debug("Failed to load config from %s: %s", filename, e)
        return None

    if not data:
        return None

    config = safe_validate_config(data)
    if config is None:
        logger.debug("Ignoring invalid config in %s", filename)
    return config


def load_external_config(root: str | Path = ".") -> PastoralistConfig | None:
    """Load the first external config file that exists and validates."""
    root_path = Path(root)
    for filename in CONFIG_FILES:
        config = _try_load_config(filename, root_path)
        if config is not None:
            logger.debug("Loaded config from %s", root_path / filename)
            return config
    return None


def _merge_paths(external: dict | None, embedded: dict | None) -> dict | None:
    if external is None and embedded is None:
        return None
    merged = dict(external or {})
    for path, appendix in (embedded or {}).items():
        merged[path] = merge_appendices(merged.get(path), appendix)
    return merged


def merge_configs(
    external: PastoralistConfig | None,
    embedded: PastoralistConfig | None,
) -> PastoralistConfig | None:
    """Merge an external config with the manifest-embedded one.

    Top-level keys from the embedded config win. appendix, overridePaths,
    resolutionPaths and security are unioned key by key instead.
    """
    if external is None:
        return embedded
    if embedded is None:
        return external

    ext = external.to_dict()
    emb = embedded.to_dict()
    merged = {**ext, **emb}

    if "appendix" in ext or "appendix" in emb:
        merged["appendix"] = merge_appendices(ext.get("appendix"), emb.get("appendix"))

    for key in ("overridePaths", "resolutionPaths"):
        paths = _merge_paths(ext.get(key), emb.get(key))
        if paths is not None:
            merged[key] = paths

    if "security" in ext or "security" in emb:
        merged["security"] = {**ext.get("security", {}), **emb.get("security", {})}

    return PastoralistConfig.model_validate(merged)


def load_config(
    root: str | Path = ".",
    embedded: PastoralistConfig | dict | None = None,
    validate: bool = True,
) -> PastoralistConfig | None:
    """Load the external config for root and merge the embedded one over it.

    With validate=False an invalid embedded config is ignored instead.

    Raises:
        ConfigError: The embedded config is invalid
    """
    embedded_config = None
    if embedded is not None:
        embedded_config = validate_config(embedded) if validate else safe_validate_config(embedded)
    return merge_configs(load_external_config(root), embedded_config)
