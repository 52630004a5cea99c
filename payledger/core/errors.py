"""
Exception taxonomy for the payroll engine.

Every error is a recoverable, caller-facing condition. Callers switch on the
class (or on ``code`` when the error crosses a serialization boundary) to tell
the user what to fix: reopen a period, refresh advances, correct the rate
table, and so on.
"""
from typing import Any, Dict, Optional

class PayrollEngineError(Exception):
    """Base exception for all engine errors"""

    code = "PAYROLL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result = {"code": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result

class InvalidConfigurationError(PayrollEngineError):
    """Malformed tax bands, statutory rates or payroll accounts."""
    code = "INVALID_CONFIGURATION"

class ClosedPeriodError(PayrollEngineError):
    """Run or posting date falls in a closed or locked financial period."""
    code = "CLOSED_PERIOD"

class AdvanceAlreadySettledError(PayrollEngineError):
    """Advance balance was exhausted by a concurrent run."""
    code = "ADVANCE_ALREADY_SETTLED"

class UnbalancedEntryError(PayrollEngineError):
    """Journal debits and credits differ."""
    code = "UNBALANCED_ENTRY"

class RunLockedError(PayrollEngineError):
    """Mutation attempted on a finalized payroll run."""
    code = "RUN_LOCKED"

class RunNotFoundError(PayrollEngineError):
    code = "RUN_NOT_FOUND"

class InvalidTransitionError(PayrollEngineError):
    """Workflow transition not allowed from the run's current state."""
    code = "INVALID_TRANSITION"

class NoActiveEmployeesError(PayrollEngineError):
    code = "NO_ACTIVE_EMPLOYEES"

class InvalidAdditionError(PayrollEngineError):
    code = "INVALID_ADDITION"

class ValidationError(PayrollEngineError):
    code = "VALIDATION_ERROR"

class OverlappingRunError(PayrollEngineError):
    """Another payroll run already covers part of the requested period."""
    code = "OVERLAPPING_RUN"

class NegativeNetPayError(PayrollEngineError):
    """Deductions exceed gross pay for at least one employee."""
    code = "NEGATIVE_NET_PAY"
