"""Error taxonomy shared by services and routers.

Validation problems subclass ``ValueError``; routers map them to 400 or 404.
Persistence failures and invariant violations do not.
"""


class EntityNotFoundError(ValueError):
    """A referenced project, phase, deliverable, task or session does not exist."""


class InsufficientBalanceError(ValueError):
    """A manual time removal exceeds the entity's running total."""


class TimerConflictError(RuntimeError):
    """Another caller changed the active timer while this start was in flight."""


class PersistenceError(RuntimeError):
    """A database read or write failed; nothing was changed."""


class InvariantViolationError(AssertionError):
    """Persisted state breaks a rule that transactional writes should guarantee."""
