"""Loading of declarative configuration units.

A unit is a single ``module.yaml`` / ``module.yml`` / ``module.json`` document
describing one capability. JSON documents are parsed by the YAML loader,
since JSON is a subset of YAML.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


UNIT_FILENAMES = ("module.yaml", "module.yml", "module.json")


def find_unit_file(directory: Path) -> Optional[Path]:
    """Return the first configuration unit file inside ``directory``.

    Args:
        directory: Candidate unit directory

    Returns:
        Path to the unit file, or None if the directory holds none
    """
    for filename in UNIT_FILENAMES:
        candidate = directory / filename
        if candidate.is_file():
            return candidate
    return None


def load_unit(unit_path: Union[str, Path]) -> Dict[str, Any]:
    """Load a configuration unit from disk.

    Args:
        unit_path: Path to the unit file

    Returns:
        Unit dictionary with environment variables expanded

    Raises:
        FileNotFoundError: If the unit file doesn't exist
        yaml.YAMLError: If the unit file is not valid YAML/JSON
        TypeError: If the document root is not a mapping
    """
    unit_file = Path(unit_path)

    if not unit_file.exists():
        raise FileNotFoundError(f"Configuration unit not found: {unit_path}")

    with unit_file.open("r", encoding="utf-8") as f:
        unit = yaml.safe_load(f)

    if unit is None:
        unit = {}

    if not isinstance(unit, dict):
        raise TypeError(
            f"Configuration unit root must be a mapping, got {type(unit).__name__}"
        )

    return _expand_env_vars(unit)


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in a unit."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj
