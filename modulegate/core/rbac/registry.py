"""Capability registry.

Keeps the persisted capability table in step with the declarative
configuration units and serves capability lookups through a time-boxed,
process-local cache.

Synchronization is one-way: discover -> validate -> idempotent upsert. The
persisted store is the runtime source of truth; discovery is disposable and
can be re-run at any time. Rows that disappear from configuration are left
in place for an operator to deactivate.
"""

import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from modulegate.common.logger import get_logger
from modulegate.common.units import find_unit_file, load_unit
from modulegate.db.models import Capability, CapabilitySource

from .cache import TTLCache
from .definitions import (
    CapabilityDefinition,
    CapabilityRecord,
    is_valid_identifier,
    parse_definition,
    validate_fields,
)
from .errors import ConflictError, InvalidCapabilityError, NotFoundError

logger = get_logger("capability_registry")


DEFAULT_CACHE_TTL = 300  # seconds

# Capability columns an operator may change after creation
UPDATABLE_FIELDS = frozenset([
    "name",
    "description",
    "version",
    "is_active",
    "actions",
    "default_actions",
    "icon",
    "category",
    "depends_on",
    "config",
])

# Of those, the ones that can never be cleared
REQUIRED_FIELDS = frozenset(["name", "version", "is_active", "actions"])


def _definition_fields(definition: CapabilityDefinition) -> Dict[str, Any]:
    """Column values a configuration unit controls."""
    return {
        "name": definition.name,
        "description": definition.description,
        "version": definition.version,
        "is_active": definition.is_active,
        "source": CapabilitySource.CONFIG,
        "actions": list(definition.actions),
        "default_actions": list(definition.default_actions) if definition.default_actions is not None else None,
        "config_path": definition.config_path,
        "icon": definition.icon,
        "category": definition.category,
        "depends_on": list(definition.depends_on) if definition.depends_on is not None else None,
        "config": definition.config,
    }


def _apply_fields(capability: Capability, fields: Dict[str, Any]) -> bool:
    """Assign changed values only. Returns True if anything changed."""
    changed = False
    for column, value in fields.items():
        if getattr(capability, column) != value:
            setattr(capability, column, value)
            changed = True
    return changed


class CapabilityRegistry:
    """Registry of capabilities backed by the persisted store.

    One instance lives for the whole process; database sessions are passed
    per call so the registry itself holds no request state. The cache only
    reflects this process's view: other instances may serve stale entries
    for up to one TTL after an administrative change.
    """

    def __init__(
        self,
        modules_path: str,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the registry.

        Args:
            modules_path: Directory holding one sub-directory per unit
            cache_ttl: Lifetime of cached lookups, in seconds
            clock: Monotonic time source (overridable in tests)
        """
        self.modules_path = Path(modules_path)
        self._cache: TTLCache[CapabilityRecord] = TTLCache(cache_ttl, clock)
        self._discovered: Dict[str, CapabilityDefinition] = {}
        self._discovery_complete = False

    @property
    def discovery_complete(self) -> bool:
        """Whether startup discovery has finished, successfully or not."""
        return self._discovery_complete

    @property
    def cache_ttl(self) -> float:
        return self._cache.ttl

    # ------------------------------------------------------------------
    # Discovery and synchronization
    # ------------------------------------------------------------------

    def discover(self) -> List[CapabilityDefinition]:
        """Read and validate every configuration unit.

        Invalid or unreadable units are logged and skipped.

        Returns:
            List of valid capability definitions
        """
        discovered: List[CapabilityDefinition] = []

        if not self.modules_path.is_dir():
            logger.warning(f"Modules directory not found: {self.modules_path}")
            self._discovered = {}
            return discovered

        for entry in sorted(self.modules_path.iterdir()):
            if not entry.is_dir():
                continue

            unit_file = find_unit_file(entry)
            if unit_file is None:
                logger.debug(f"No configuration unit found in {entry.name}, skipping")
                continue

            try:
                unit = load_unit(unit_file)
                definition = parse_definition(
                    unit, storage_key=entry.name, config_path=str(unit_file)
                )
            except InvalidCapabilityError as e:
                logger.error(f"Invalid configuration unit in {entry.name}: {', '.join(e.errors)}")
                continue
            except (yaml.YAMLError, TypeError, OSError) as e:
                logger.error(f"Failed to parse configuration unit in {entry.name}: {e}")
                continue

            discovered.append(definition)
            logger.info(
                f"Discovered capability: {definition.name} ({definition.identifier}) v{definition.version}"
            )

        self._discovered = {d.identifier: d for d in discovered}
        return discovered

    def sync_to_store(self, db: Session, definitions: List[CapabilityDefinition]) -> Dict[str, int]:
        """Upsert one capability row per definition.

        Safe to re-run: unchanged definitions produce no writes. Each
        definition is synced in its own savepoint, so one failure does not
        abort the rest. The caller owns the outer transaction.

        Returns:
            Counts of created, updated, unchanged and failed definitions
        """
        summary = {"created": 0, "updated": 0, "unchanged": 0, "failed": 0}

        for definition in definitions:
            try:
                outcome = self._sync_one(db, definition)
            except SQLAlchemyError as e:
                logger.error(f"Failed to sync capability {definition.identifier} with store: {e}")
                summary["failed"] += 1
                continue

            summary[outcome] += 1
            if outcome != "unchanged":
                self._cache.invalidate(definition.identifier)
                logger.info(f"{outcome.capitalize()} capability in store: {definition.identifier}")

        return summary

    def _sync_one(self, db: Session, definition: CapabilityDefinition) -> str:
        try:
            with db.begin_nested():
                return self._upsert(db, definition)
        except IntegrityError:
            # Another process inserted the same identifier between our read
            # and our insert; the row exists now, so retry once as an update.
            logger.warning(
                f"Concurrent insert detected for capability {definition.identifier}, retrying as update"
            )
            with db.begin_nested():
                return self._upsert(db, definition)

    def _upsert(self, db: Session, definition: CapabilityDefinition) -> str:
        fields = _definition_fields(definition)
        existing = db.query(Capability).filter(
            Capability.identifier == definition.identifier
        ).first()

        if existing is not None:
            return "updated" if _apply_fields(existing, fields) else "unchanged"

        db.add(Capability(identifier=definition.identifier, **fields))
        db.flush()
        return "created"

    def initialize(self, session_factory: Callable[[], Session]) -> None:
        """Run discovery and sync once at process start.

        Never raises: on failure the registry keeps serving whatever is
        already persisted and still reports discovery as complete.
        """
        logger.info("Starting capability discovery...")
        try:
            db = session_factory()
            try:
                definitions = self.discover()
                self.sync_to_store(db, definitions)
                db.commit()
            finally:
                db.close()
            logger.info(f"Capability discovery complete. Found {len(self._discovered)} capabilities.")
        except Exception:
            logger.exception("Failed to complete capability discovery, serving persisted capabilities")
        self._discovery_complete = True

    def reload(self, db: Session) -> List[CapabilityDefinition]:
        """Force re-discovery and sync. The caller commits."""
        logger.info("Reloading capabilities...")
        self._discovery_complete = False
        try:
            definitions = self.discover()
            self.sync_to_store(db, definitions)
        finally:
            self._discovery_complete = True
        self.invalidate_all()
        logger.info(f"Capability reload complete. Found {len(definitions)} capabilities.")
        return definitions

    # ------------------------------------------------------------------
    # Lookup and cache lifecycle
    # ------------------------------------------------------------------

    def lookup(self, db: Session, identifier: str) -> Optional[CapabilityRecord]:
        """Get a capability by identifier, read-through the TTL cache."""
        if not is_valid_identifier(identifier):
            return None

        cached = self._cache.get(identifier)
        if cached is not None:
            return cached

        capability = db.query(Capability).filter(Capability.identifier == identifier).first()
        if capability is None:
            return None

        record = CapabilityRecord.from_model(capability)
        self._cache.set(identifier, record)
        return record

    def invalidate(self, identifier: str) -> None:
        """Evict one capability from this process's cache."""
        if self._cache.invalidate(identifier):
            logger.debug(f"Cache invalidated for capability: {identifier}")

    def invalidate_all(self) -> None:
        """Evict every cached capability in this process."""
        self._cache.clear()
        logger.debug("Capability cache cleared")

    def get_definition(self, identifier: str) -> Optional[CapabilityDefinition]:
        """Get the definition found by the last discovery run."""
        return self._discovered.get(identifier)

    def action_vocabulary(self, db: Session, identifier: str) -> Optional[List[str]]:
        record = self.lookup(db, identifier)
        return sorted(record.actions) if record else None

    def default_actions(self, db: Session, identifier: str) -> Optional[List[str]]:
        record = self.lookup(db, identifier)
        return list(record.default_actions) if record else None

    def stats(self) -> Dict[str, Any]:
        return {
            "discovered_count": len(self._discovered),
            "capabilities": sorted(self._discovered.keys()),
            "modules_path": str(self.modules_path),
            "cache_size": len(self._cache),
            "cache_ttl": self._cache.ttl,
            "discovery_complete": self._discovery_complete,
        }

    # ------------------------------------------------------------------
    # Operator-managed capabilities
    # ------------------------------------------------------------------

    def create_capability(
        self,
        db: Session,
        identifier: str,
        name: str,
        version: str,
        actions: List[str],
        *,
        description: Optional[str] = None,
        default_actions: Optional[List[str]] = None,
        is_active: bool = True,
        icon: Optional[str] = None,
        category: Optional[str] = None,
        depends_on: Optional[List[str]] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> CapabilityRecord:
        """
        Create a capability outside of configuration.

        Raises:
            InvalidCapabilityError: If fields fail validation
            ConflictError: If the identifier already exists
        """
        errors = validate_fields(identifier, name, version, actions)
        if default_actions and not set(default_actions) <= set(actions or []):
            errors.append("defaultActions must be a subset of actions")
        if errors:
            raise InvalidCapabilityError(identifier, errors)

        existing = db.query(Capability).filter(Capability.identifier == identifier).first()
        if existing is not None:
            raise ConflictError(f"Capability with identifier '{identifier}' already exists")

        capability = Capability(
            identifier=identifier,
            name=name,
            description=description,
            version=version,
            is_active=is_active,
            actions=list(dict.fromkeys(actions)),
            default_actions=default_actions,
            source=CapabilitySource.OPERATOR,
            icon=icon,
            category=category,
            depends_on=depends_on,
            config=config,
        )
        db.add(capability)
        db.flush()

        self.invalidate(identifier)
        logger.info(f"Operator created capability: {identifier}")
        return CapabilityRecord.from_model(capability)

    def update_capability(self, db: Session, identifier: str, /, **changes: Any) -> CapabilityRecord:
        """
        Update an existing capability. Identifiers are immutable.

        Raises:
            NotFoundError: If the capability doesn't exist
            InvalidCapabilityError: If the result fails validation
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidCapabilityError(
                identifier, [f"cannot update field(s): {', '.join(sorted(unknown))}"]
            )

        cleared = sorted(f for f in REQUIRED_FIELDS if f in changes and changes[f] is None)
        if cleared:
            raise InvalidCapabilityError(
                identifier, [f"{f} cannot be null" for f in cleared]
            )

        capability = db.query(Capability).filter(Capability.identifier == identifier).first()
        if capability is None:
            raise NotFoundError("Capability", identifier)

        merged = {
            "name": changes.get("name", capability.name),
            "version": changes.get("version", capability.version),
            "actions": changes.get("actions", capability.actions),
        }
        errors = validate_fields(identifier, merged["name"], merged["version"], merged["actions"])
        default_actions = changes.get("default_actions", capability.default_actions)
        if default_actions and not set(default_actions) <= set(merged["actions"] or []):
            errors.append("defaultActions must be a subset of actions")
        if errors:
            raise InvalidCapabilityError(identifier, errors)

        if _apply_fields(capability, changes):
            db.flush()
            logger.info(f"Updated capability: {identifier} ({', '.join(sorted(changes))})")

        self.invalidate(identifier)
        return CapabilityRecord.from_model(capability)

    def deactivate_capability(self, db: Session, identifier: str) -> CapabilityRecord:
        """Soft-delete a capability. The row and its grants are kept."""
        return self.update_capability(db, identifier, is_active=False)
