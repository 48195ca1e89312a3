# /app/workflows/engine.py

"""
Conversation flow engine.

Given a user id and the plain text of their message, this module decides the
user's next position in the flow and what to show them:
- Resets the session on the control commands ("menu" / "start")
- Records the reply under the current step's store_key
- Resolves the next step by step kind (button choice, fixed successor, sticky end)
- Interpolates the next step's template with the session answers
- Returns a render-ready ResponseDescriptor

The engine is synchronous and does no I/O:
- No database writes
- No message sending
- No locking (callers serialize messages per user)
"""

from typing import Optional, Iterable, TypedDict
from datetime import datetime

from app.config import strings
from app.models.flow import (
    FlowDefinition,
    FlowSession,
    HistoryEntry,
    ResponseDescriptor,
    Step,
    ButtonStep,
    InputStep,
    MessageStep,
    EndStep,
)
from app.workflows.errors import UnknownStepError, FlowValidationError
from app.workflows.session_store import SessionStore
from app.workflows.template import interpolate
from app.workflows.validator import validate_flow

CONTROL_COMMANDS = frozenset({"menu", "start"})


class EngineResult(TypedDict):
    """Result of handling one inbound message."""
    response: ResponseDescriptor
    outcome: str  # reset | advanced | invalid_choice | terminal | unknown_step
    step_id: Optional[str]


class FlowEngine:
    def __init__(
        self,
        flow: FlowDefinition,
        sessions: Optional[SessionStore] = None,
        control_commands: Iterable[str] = CONTROL_COMMANDS,
        invalid_choice_prompt: str = strings.INVALID_CHOICE_PROMPT,
        unknown_step_message: str = strings.UNKNOWN_STEP_MESSAGE,
    ):
        errors = validate_flow(flow)
        if errors:
            raise FlowValidationError(flow.name, errors)
        self.flow = flow
        self.sessions = sessions if sessions is not None else SessionStore(flow.start_step_id)
        self.control_commands = frozenset(command.lower() for command in control_commands)
        self.invalid_choice_prompt = invalid_choice_prompt
        self.unknown_step_message = unknown_step_message

    # ==================== Public API ====================

    def handle_message(self, user_id: str, message_text: str) -> ResponseDescriptor:
        """Advance the user's session by one message and return what to show next."""
        return self.apply_message(user_id, message_text)["response"]

    def apply_message(self, user_id: str, message_text: str) -> EngineResult:
        """
        Run the transition algorithm for one inbound message.

        Args:
            user_id: Channel user identifier
            message_text: Plain text already extracted from the channel envelope
                (for a button click, the clicked option id)

        Returns:
            EngineResult with the response descriptor and the transition outcome
        """
        if self.is_control_command(message_text):
            return {"response": self.start_conversation(user_id), "outcome": "reset",
                    "step_id": self.flow.start_step_id}

        session = self.sessions.get_or_create(user_id)
        try:
            return self._transition(session, message_text)
        except UnknownStepError:
            # Stale or foreign session state; the user can recover with "menu".
            return {
                "response": ResponseDescriptor.build(self.unknown_step_message),
                "outcome": "unknown_step",
                "step_id": None,
            }

    def start_conversation(self, user_id: str) -> ResponseDescriptor:
        """Reset the user's session and render the start step fresh."""
        self.sessions.reset(user_id)
        session = self.sessions.get_or_create(user_id)
        start_step = self.flow.resolve_step(self.flow.start_step_id)
        return self.render(start_step, session)

    def is_control_command(self, message_text: str) -> bool:
        return isinstance(message_text, str) and message_text.lower() in self.control_commands

    def render(self, step: Step, session: FlowSession) -> ResponseDescriptor:
        """Interpolate a step's template with the session answers."""
        options = step.options if isinstance(step, ButtonStep) else None
        return ResponseDescriptor.build(
            interpolate(step.text, session.answers),
            options=options,
            step_kind=step.kind,
            step_id=step.id,
        )

    # ==================== Transition ====================

    def _transition(self, session: FlowSession, message_text: str) -> EngineResult:
        current_step = self.flow.resolve_step(session.current_step_id)

        self._record_input(session, current_step, message_text)

        if isinstance(current_step, ButtonStep):
            next_step_id = current_step.next.get(message_text)
            if next_step_id is None or message_text not in current_step.option_ids():
                return {
                    "response": self._invalid_choice(current_step, session),
                    "outcome": "invalid_choice",
                    "step_id": current_step.id,
                }
            if message_text in self.flow.intents:
                # Explicit choice wins over any default intent recorded above.
                session.intent = message_text
            outcome = "advanced"
        elif isinstance(current_step, (InputStep, MessageStep)):
            next_step_id = current_step.next
            outcome = "advanced"
        elif isinstance(current_step, EndStep):
            next_step_id = current_step.id
            outcome = "terminal"
        else:
            raise TypeError(f"Unsupported step kind: {current_step.kind!r}")

        next_step = self.flow.resolve_step(next_step_id)
        response = self.render(next_step, session)

        # A closing notice parks the user on the end step it leads to.
        if isinstance(next_step, MessageStep) and isinstance(self.flow.resolve_step(next_step.next), EndStep):
            session.current_step_id = next_step.next
        else:
            session.current_step_id = next_step.id
        session.last_updated = datetime.utcnow()

        return {"response": response, "outcome": outcome, "step_id": next_step.id}

    def _record_input(self, session: FlowSession, step: Step, message_text: str) -> None:
        if not isinstance(step, (InputStep, ButtonStep)) or not step.store_key:
            return
        session.answers[step.store_key] = message_text
        session.history.append(HistoryEntry(step_id=step.id, raw_input=message_text))
        if session.intent is None and step.default_intent:
            session.intent = step.default_intent
        session.last_updated = datetime.utcnow()

    def _invalid_choice(self, step: ButtonStep, session: FlowSession) -> ResponseDescriptor:
        text = interpolate(step.text, session.answers)
        if self.invalid_choice_prompt:
            text = f"{self.invalid_choice_prompt}\n\n{text}" if text else self.invalid_choice_prompt
        return ResponseDescriptor.build(text, options=step.options, step_kind=step.kind, step_id=step.id)
