"""Override field normalisation across npm, yarn, pnpm and bun."""

from typing import Any

from .models import Manifest, OverrideField, PackageManager

FIELD_FOR_MANAGER: dict[str, OverrideField] = {
    "yarn": "resolutions",
    "pnpm": "pnpm",
    "npm": "overrides",
    "bun": "overrides",
}


def _pnpm_section(manifest: Manifest) -> dict:
    pnpm = manifest.get("pnpm")
    return pnpm if isinstance(pnpm, dict) else {}


def _has_entries(value: Any) -> bool:
    return isinstance(value, dict) and bool(value)


def existing_field(manifest: Manifest | None) -> OverrideField | None:
    """Return the override field already present in the manifest.

    Only non-empty maps count. When several are present the priority is
    resolutions, overrides, then pnpm.overrides.
    """
    if not manifest:
        return None
    if _has_entries(manifest.get("resolutions")):
        return "resolutions"
    if _has_entries(manifest.get("overrides")):
        return "overrides"
    if _has_entries(_pnpm_section(manifest).get("overrides")):
        return "pnpm"
    return None


def field_for_manager(package_manager: PackageManager) -> OverrideField:
    return FIELD_FOR_MANAGER[package_manager]


def get_overrides(manifest: Manifest | None, field: OverrideField | None = None) -> dict[str, Any]:
    """Read the override map from the given (or currently active) field."""
    if not manifest:
        return {}
    field = field or existing_field(manifest)
    if field == "pnpm":
        overrides = _pnpm_section(manifest).get("overrides")
    elif field:
        overrides = manifest.get(field)
    else:
        overrides = None
    return dict(overrides) if isinstance(overrides, dict) else {}


def apply_overrides(
    manifest: Manifest,
    overrides: dict[str, Any],
    field: OverrideField | None,
) -> Manifest:
    """Write overrides into the selected field.

    Sibling keys of the pnpm section are preserved. A None field leaves the
    manifest unchanged.
    """
    if field is None:
        return manifest
    if field == "pnpm":
        return {**manifest, "pnpm": {**_pnpm_section(manifest), "overrides": overrides}}
    return {**manifest, field: overrides}


def remove_overrides(manifest: Manifest) -> Manifest:
    """Drop every override field, keeping pnpm only if other keys remain."""
    updated = {
        key: value for key, value in manifest.items()
        if key not in ("resolutions", "overrides", "pnpm")
    }
    if "pnpm" not in manifest:
        return updated

    rest = {key: value for key, value in _pnpm_section(manifest).items() if key != "overrides"}
    if rest:
        # Rebuild in the original key order
        return {
            key: (rest if key == "pnpm" else value)
            for key, value in manifest.items()
            if key not in ("resolutions", "overrides")
        }
    return updated
