"""Capability definitions and validation.

A capability definition is the parsed form of one configuration unit::

    identifier: invoicing
    name: Invoicing
    version: 1.2.0
    isActive: true
    actions: [read, write, delete]
    defaultActions: [read]
    icon: receipt
    category: finance
    dependsOn: [clients]
    config:
      currency: PLN

Keys used by earlier deployments (``slug``, ``permissions``,
``defaultPermissions``, ``dependencies``) are accepted as aliases.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from .errors import InvalidCapabilityError

logger = logging.getLogger(__name__)


IDENTIFIER_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")
VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")

# canonical key -> accepted aliases, in lookup order
KEY_ALIASES: Dict[str, Tuple[str, ...]] = {
    "identifier": ("identifier", "slug"),
    "is_active": ("isActive", "is_active"),
    "actions": ("actions", "permissions"),
    "default_actions": ("defaultActions", "default_actions", "defaultPermissions"),
    "depends_on": ("dependsOn", "depends_on", "dependencies"),
}


@dataclass
class CapabilityDefinition:
    """A validated capability declared by a configuration unit."""

    identifier: str
    name: str
    version: str
    actions: List[str]
    is_active: bool = True
    description: Optional[str] = None
    default_actions: Optional[List[str]] = None
    icon: Optional[str] = None
    category: Optional[str] = None
    depends_on: Optional[List[str]] = None
    config: Optional[Dict[str, Any]] = None
    config_path: Optional[str] = None


@dataclass(frozen=True)
class CapabilityRecord:
    """Immutable snapshot of a persisted capability, safe to cache."""

    id: Any
    identifier: str
    name: str
    version: str
    is_active: bool
    actions: FrozenSet[str]
    default_actions: Tuple[str, ...] = ()
    source: str = "config"
    description: Optional[str] = None
    icon: Optional[str] = None
    category: Optional[str] = None
    depends_on: Tuple[str, ...] = ()
    config: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_model(cls, capability) -> "CapabilityRecord":
        return cls(
            id=capability.id,
            identifier=capability.identifier,
            name=capability.name,
            version=capability.version,
            is_active=bool(capability.is_active),
            actions=frozenset(capability.actions or []),
            default_actions=tuple(capability.default_actions or []),
            source=capability.source,
            description=capability.description,
            icon=capability.icon,
            category=capability.category,
            depends_on=tuple(capability.depends_on or []),
            config=dict(capability.config or {}),
        )


def _lookup(unit: Dict[str, Any], key: str, default: Any = None) -> Any:
    for alias in KEY_ALIASES.get(key, (key,)):
        if alias in unit:
            return unit[alias]
    return default


def _parse_flag(value: Any) -> Optional[bool]:
    """Booleans, or the strings true/false left behind by env expansion. None otherwise."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def validate_fields(
    identifier: Any,
    name: Any,
    version: Any,
    actions: Any,
) -> List[str]:
    """Validate the required fields of a capability.

    Returns:
        List of human-readable errors; empty when valid
    """
    errors = []

    if not identifier:
        errors.append("identifier is required")
    elif not isinstance(identifier, str) or not IDENTIFIER_PATTERN.match(identifier):
        errors.append(
            "identifier must start with a lowercase letter and contain only "
            "lowercase letters, digits and hyphens"
        )

    if not name or not isinstance(name, str):
        errors.append("name is required")

    if not version:
        errors.append("version is required")
    elif not isinstance(version, str) or not VERSION_PATTERN.match(version):
        errors.append("version must be in semver format (x.y.z)")

    if not isinstance(actions, list) or len(actions) == 0:
        errors.append("actions list is required and must not be empty")
    elif not all(isinstance(a, str) and a for a in actions):
        errors.append("actions must be non-empty strings")

    return errors


def is_valid_identifier(identifier: Any) -> bool:
    return isinstance(identifier, str) and bool(IDENTIFIER_PATTERN.match(identifier))


def parse_definition(
    unit: Dict[str, Any],
    storage_key: Optional[str] = None,
    config_path: Optional[str] = None,
) -> CapabilityDefinition:
    """Parse and validate one configuration unit.

    Args:
        unit: Raw unit dictionary
        storage_key: Name the unit is stored under (its directory name).
            When it differs from the declared identifier, the storage key wins.
        config_path: Location of the unit file, recorded for operators

    Returns:
        CapabilityDefinition instance

    Raises:
        InvalidCapabilityError: If the unit fails validation
    """
    identifier = _lookup(unit, "identifier")
    name = unit.get("name")
    version = unit.get("version")
    actions = _lookup(unit, "actions")

    errors = validate_fields(identifier, name, version, actions)
    if errors:
        raise InvalidCapabilityError(identifier, errors)

    if storage_key is not None and storage_key != identifier:
        if not is_valid_identifier(storage_key):
            raise InvalidCapabilityError(
                storage_key, ["storage key is not a valid identifier"]
            )
        logger.warning(
            f"Capability identifier '{identifier}' doesn't match storage key "
            f"'{storage_key}'. Using storage key."
        )
        identifier = storage_key

    # Keep declaration order, drop duplicates
    actions = list(dict.fromkeys(actions))

    default_actions = _lookup(unit, "default_actions")
    if default_actions is not None:
        if not isinstance(default_actions, list):
            raise InvalidCapabilityError(identifier, ["defaultActions must be a list"])
        unknown = [a for a in default_actions if a not in actions]
        if unknown:
            logger.warning(
                f"Dropping default actions not declared by '{identifier}': {', '.join(map(str, unknown))}"
            )
        default_actions = [a for a in dict.fromkeys(default_actions) if a in actions]

    depends_on = _lookup(unit, "depends_on")
    if depends_on is not None and not isinstance(depends_on, list):
        raise InvalidCapabilityError(identifier, ["dependsOn must be a list"])

    config = unit.get("config")
    if config is not None and not isinstance(config, dict):
        raise InvalidCapabilityError(identifier, ["config must be a mapping"])

    is_active = _parse_flag(_lookup(unit, "is_active", True))
    if is_active is None:
        raise InvalidCapabilityError(identifier, ["isActive must be a boolean"])

    return CapabilityDefinition(
        identifier=identifier,
        name=name,
        version=version,
        actions=actions,
        is_active=is_active,
        description=unit.get("description"),
        default_actions=default_actions,
        icon=unit.get("icon"),
        category=unit.get("category"),
        depends_on=depends_on,
        config=config,
        config_path=config_path,
    )
