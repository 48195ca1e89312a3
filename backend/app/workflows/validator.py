# /app/workflows/validator.py

"""
Pure validation functions for flow definitions.

This module checks the structure of a flow graph once, at load time:
- Every transition target references an existing step
- Button transitions only map the step's own option ids
- Step ids and option ids are unique
- The declared start step exists
- At least one end step exists

All functions are:
- Pure (no side effects)
- Deterministic (same input = same output)
- No database access
- No logging
"""

from typing import Dict, List, Any, Union
from pydantic import ValidationError

from app.models.flow import FlowDefinition, ButtonStep, EndStep
from app.workflows.errors import GraphError, FlowValidationError


def _check_unique_step_ids(flow: FlowDefinition) -> List[GraphError]:
    errors = []
    seen = set()
    for step in flow.steps:
        if step.id in seen:
            errors.append(GraphError(
                "DUPLICATE_STEP_ID",
                f"Step id '{step.id}' is declared more than once",
                step.id
            ))
        seen.add(step.id)
    return errors


def _check_start_step(flow: FlowDefinition) -> List[GraphError]:
    if not flow.has_step(flow.start_step_id):
        return [GraphError(
            "UNKNOWN_START_STEP",
            f"Start step '{flow.start_step_id}' is not defined in the flow",
            flow.start_step_id
        )]
    return []


def _check_transitions(flow: FlowDefinition) -> List[GraphError]:
    errors = []
    for step in flow.steps:
        if isinstance(step, EndStep):
            continue

        if isinstance(step, ButtonStep):
            option_ids = step.option_ids()
            duplicates = sorted({oid for oid in option_ids if option_ids.count(oid) > 1})
            for option_id in duplicates:
                errors.append(GraphError(
                    "DUPLICATE_OPTION_ID",
                    f"Option id '{option_id}' is declared more than once in step '{step.id}'",
                    step.id
                ))
            # Unmapped options are allowed: choosing one is an invalid choice.
            for option_id, target in step.next.items():
                if option_id not in option_ids:
                    errors.append(GraphError(
                        "UNKNOWN_OPTION",
                        f"Step '{step.id}' maps option '{option_id}' which is not one of its options",
                        step.id
                    ))
                if not flow.has_step(target):
                    errors.append(GraphError(
                        "UNKNOWN_TRANSITION_TARGET",
                        f"Step '{step.id}' option '{option_id}' leads to unknown step '{target}'",
                        step.id
                    ))
        elif not flow.has_step(step.next):
            errors.append(GraphError(
                "UNKNOWN_TRANSITION_TARGET",
                f"Step '{step.id}' leads to unknown step '{step.next}'",
                step.id
            ))
    return errors


def _check_end_step(flow: FlowDefinition) -> List[GraphError]:
    if not any(isinstance(step, EndStep) for step in flow.steps):
        return [GraphError("NO_END_STEP", f"Flow '{flow.name}' has no end step")]
    return []


def validate_flow(flow: FlowDefinition) -> List[GraphError]:
    """
    Validate the structure of a flow graph.

    Args:
        flow: The parsed flow definition

    Returns:
        Every GraphError found; an empty list means the flow is valid
    """
    return (
        _check_unique_step_ids(flow)
        + _check_start_step(flow)
        + _check_transitions(flow)
        + _check_end_step(flow)
    )


def load_flow(data: Union[Dict[str, Any], FlowDefinition]) -> FlowDefinition:
    """
    Parse and validate a flow. Raises FlowValidationError if anything is wrong,
    including malformed steps (unknown kind, fields on the wrong kind of step).
    """
    if isinstance(data, FlowDefinition):
        flow = data
    else:
        try:
            flow = FlowDefinition.model_validate(data)
        except ValidationError as e:
            name = data.get("name", "<unnamed>") if isinstance(data, dict) else "<unnamed>"
            errors = [
                GraphError(
                    "MALFORMED_FLOW",
                    f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                )
                for err in e.errors()
            ]
            raise FlowValidationError(name, errors) from e

    errors = validate_flow(flow)
    if errors:
        raise FlowValidationError(flow.name, errors)
    return flow
