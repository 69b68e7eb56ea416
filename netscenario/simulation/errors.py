"""
Exception hierarchy for scenario compilation.

Fatal conditions abort the build; ``UnresolvedTargetError`` is isolated by
the scheduler to the spec that raised it.
"""


class ScenarioError(Exception):
    """Base class for all scenario compilation errors."""


class AddressSpaceExhausted(ScenarioError):
    """The address pool or a subnet's host range has no room left."""


class AddressConflict(ScenarioError, ValueError):
    """A requested subnet base is misaligned, outside the pool, or already taken."""


class UnresolvedTargetError(ScenarioError, LookupError):
    """A symbolic role/index/service reference has no binding in the topology."""


class CatalogValidationError(ScenarioError, ValueError):
    """A FlowSpec, AttackSpec or distribution carries malformed parameters."""


class PortConflictError(ScenarioError):
    """Two services on the same node claim one port with overlapping lifetimes."""
