"""Error kinds surfaced by the budget engine."""


class BudgetEngineError(RuntimeError):
    """Base class for engine failures that callers may want to map to a response."""


class NotFound(BudgetEngineError):
    """A budget or saved template does not exist, or no prior-month budgets exist to roll forward."""


class InvalidBudget(BudgetEngineError, ValueError):
    """A budget definition violates its invariants (non-positive amount, inverted window)."""


class CollaboratorFailure(BudgetEngineError):
    """
    The ledger (budgets, transactions, accounts) could not be read or written.

    Adapters raise this with the native error chained as ``__cause__``. The engine
    never converts it into a zero or default value.
    """


class InvalidRequest(BudgetEngineError, ValueError):
    """A caller-supplied value (target month, month count) could not be interpreted."""
