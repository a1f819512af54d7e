"""Ordered access checks for endpoints.

Endpoints declare requirements as strings::

    requires-tenant
    requires-capability:invoicing
    requires-action:invoicing:write

The pipeline always evaluates them in the same order, whatever order they
were declared in:

1. authenticated
2. tenant-affiliated (only when ``requires-tenant`` is declared)
3. every capability reachable (including those named by action requirements)
4. every action permitted

Evaluation stops at the first failure. Authentication comes first so
anonymous callers learn nothing about which capabilities exist.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Union

from .definitions import is_valid_identifier
from .resolver import PermissionResolver
from .roles import Actor


class RequirementKind(str, Enum):
    TENANT = "requires-tenant"
    CAPABILITY = "requires-capability"
    ACTION = "requires-action"


class DenialReason(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    NO_TENANT = "no_tenant"
    CAPABILITY_UNREACHABLE = "capability_unreachable"
    ACTION_FORBIDDEN = "action_forbidden"


@dataclass(frozen=True)
class Requirement:
    """A parsed endpoint requirement."""

    kind: RequirementKind
    capability: Optional[str] = None
    action: Optional[str] = None

    def __str__(self) -> str:
        parts = [self.kind.value]
        if self.capability:
            parts.append(self.capability)
        if self.action:
            parts.append(self.action)
        return ":".join(parts)


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of a pipeline evaluation."""

    allowed: bool
    reason: Optional[DenialReason] = None
    detail: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed

    @classmethod
    def allow(cls) -> "AccessDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenialReason, detail: Optional[str] = None) -> "AccessDecision":
        return cls(allowed=False, reason=reason, detail=detail)


def parse_requirement(declaration: Union[str, Requirement]) -> Requirement:
    """
    Parse a requirement declaration.

    Raises:
        ValueError: If the declaration is malformed
    """
    if isinstance(declaration, Requirement):
        return declaration
    if not isinstance(declaration, str):
        raise ValueError(f"Requirement must be a string, got {type(declaration).__name__}")

    kind, _, rest = declaration.partition(":")

    if kind == RequirementKind.TENANT.value:
        if rest:
            raise ValueError(f"Requirement '{declaration}' takes no arguments")
        return Requirement(RequirementKind.TENANT)

    if kind == RequirementKind.CAPABILITY.value:
        if not is_valid_identifier(rest):
            raise ValueError(f"Invalid capability in requirement '{declaration}'")
        return Requirement(RequirementKind.CAPABILITY, capability=rest)

    if kind == RequirementKind.ACTION.value:
        capability, _, action = rest.partition(":")
        if not is_valid_identifier(capability) or not action or ":" in action:
            raise ValueError(
                f"Invalid requirement '{declaration}', expected requires-action:<capability>:<action>"
            )
        return Requirement(RequirementKind.ACTION, capability=capability, action=action)

    raise ValueError(f"Unknown requirement '{declaration}'")


def parse_requirements(declarations: Iterable[Union[str, Requirement]]) -> List[Requirement]:
    return [parse_requirement(d) for d in declarations]


class AccessPipeline:
    """Evaluates endpoint requirements for an actor."""

    def __init__(self, resolver: PermissionResolver):
        self.resolver = resolver

    def evaluate(
        self,
        actor: Optional[Actor],
        requirements: Iterable[Union[str, Requirement]],
    ) -> AccessDecision:
        """
        Evaluate requirements in fixed order, stopping at the first failure.

        Args:
            actor: Authenticated actor, or None for anonymous callers
            requirements: Declarations or parsed requirements

        Returns:
            AccessDecision with the denial reason when not allowed
        """
        parsed = parse_requirements(requirements)

        if actor is None:
            return AccessDecision.deny(DenialReason.UNAUTHENTICATED)

        if any(r.kind == RequirementKind.TENANT for r in parsed) and not actor.has_tenant:
            return AccessDecision.deny(DenialReason.NO_TENANT, f"actor {actor.id} has no tenant")

        # Capabilities named by action requirements must be reachable as well
        capabilities: List[str] = []
        for requirement in parsed:
            if requirement.capability and requirement.capability not in capabilities:
                capabilities.append(requirement.capability)

        for identifier in capabilities:
            if not self.resolver.can_reach(actor, identifier):
                return AccessDecision.deny(
                    DenialReason.CAPABILITY_UNREACHABLE,
                    f"capability '{identifier}' unreachable for {actor.role.value} {actor.id}",
                )

        for requirement in parsed:
            if requirement.kind != RequirementKind.ACTION:
                continue
            if not self.resolver.can_perform(actor, requirement.capability, requirement.action):
                return AccessDecision.deny(
                    DenialReason.ACTION_FORBIDDEN,
                    f"action '{requirement.capability}:{requirement.action}' forbidden "
                    f"for {actor.role.value} {actor.id}",
                )

        return AccessDecision.allow()
