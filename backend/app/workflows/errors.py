# /app/workflows/errors.py

"""
Exceptions raised by the flow layer.

An invalid button choice is deliberately absent here: it is a normal
outcome of the transition algorithm, surfaced as a re-prompt response.
"""

from typing import List, Optional


class FlowError(Exception):
    """Base class for flow definition and engine errors."""


class UnknownStepError(FlowError, LookupError):
    """A referenced step id does not exist in the flow."""

    def __init__(self, step_id: Optional[str]):
        self.step_id = step_id
        super().__init__(f"Step '{step_id}' is not defined in the flow")


class GraphError(FlowError):
    """A single structural problem found while validating a flow."""

    def __init__(self, code: str, message: str, step_id: Optional[str] = None):
        self.code = code
        self.message = message
        self.step_id = step_id
        super().__init__(message)

    def __repr__(self) -> str:
        return f"GraphError(code={self.code!r}, step_id={self.step_id!r})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, GraphError):
            return NotImplemented
        return (self.code, self.step_id, self.message) == (other.code, other.step_id, other.message)

    def __hash__(self) -> int:
        return hash((self.code, self.step_id, self.message))


class FlowValidationError(FlowError):
    """Raised at load time when a flow fails validation. Fatal at startup."""

    def __init__(self, flow_name: str, errors: List[GraphError]):
        self.flow_name = flow_name
        self.errors = list(errors)
        details = "; ".join(error.message for error in self.errors)
        super().__init__(f"Flow '{flow_name}' is invalid: {details}")
