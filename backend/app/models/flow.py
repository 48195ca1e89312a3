# /app/models/flow.py

from typing import Optional, List, Dict, Literal, Union, Annotated
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, PrivateAttr

from app.workflows.errors import UnknownStepError


class ButtonOption(BaseModel):
    """A single reply button offered by a button step."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., min_length=1, description="Option identifier sent back by the channel")
    title: str = Field(..., description="Label shown to the user")


class _StepBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., min_length=1, description="Unique step identifier within the flow")
    text: str = Field(default="", description="Template with {{name}} placeholders")


class MessageStep(_StepBase):
    """Display-only step with a fixed successor."""
    kind: Literal["message"] = "message"
    next: str


class InputStep(_StepBase):
    """Free-text question."""
    kind: Literal["input"] = "input"
    store_key: Optional[str] = None
    default_intent: Optional[str] = None
    next: str


class ButtonStep(_StepBase):
    """Choice among fixed options; `next` maps option ids to step ids."""
    kind: Literal["button"] = "button"
    options: List[ButtonOption] = Field(..., min_length=1)
    store_key: Optional[str] = None
    default_intent: Optional[str] = None
    next: Dict[str, str] = Field(default_factory=dict)

    def option_ids(self) -> List[str]:
        return [option.id for option in self.options]


class EndStep(_StepBase):
    """Terminal step. Any further message re-renders it."""
    kind: Literal["end"] = "end"


Step = Annotated[
    Union[MessageStep, InputStep, ButtonStep, EndStep],
    Field(discriminator="kind"),
]


class FlowDefinition(BaseModel):
    """
    Immutable step graph of a scripted conversation.

    This is a PURE DATA model: structural checks (targets, start step,
    terminal steps) live in app.workflows.validator and run once at load time.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    start_step_id: str
    steps: List[Step]
    intents: List[str] = Field(default_factory=list, description="Reserved top-level intent tags")

    _index: Dict[str, Step] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context) -> None:
        # Duplicate ids are reported by the validator; the first occurrence wins here.
        index: Dict[str, Step] = {}
        for step in self.steps:
            index.setdefault(step.id, step)
        self._index = index

    def resolve_step(self, step_id: str) -> Step:
        """Exact lookup of a step by id. Raises UnknownStepError if absent."""
        try:
            return self._index[step_id]
        except (KeyError, TypeError):
            raise UnknownStepError(step_id) from None

    def has_step(self, step_id: str) -> bool:
        return step_id in self._index


class HistoryEntry(BaseModel):
    """One recorded answer, kept for observability only."""
    step_id: str
    raw_input: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class FlowSession(BaseModel):
    """
    Per-user progress through a flow.

    Mutated in place by the engine; the store hands out the live object.
    """
    user_id: str = Field(..., description="Channel user identifier (phone number)")
    current_step_id: str = Field(..., description="Step the user is positioned at")
    answers: Dict[str, str] = Field(default_factory=dict, description="Answers keyed by store_key, last write wins")
    intent: Optional[str] = Field(default=None, description="High-level goal tag for the session")
    history: List[HistoryEntry] = Field(default_factory=list, description="Append-only answer log")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_updated: datetime = Field(default_factory=datetime.utcnow)


class ResponseDescriptor(BaseModel):
    """What to show the user next. Delivery is the outbound adapter's job."""
    kind: Literal["text", "interactive", "end"]
    text: str
    options: List[ButtonOption] = Field(default_factory=list)
    step_id: Optional[str] = None

    @classmethod
    def build(cls, text: str, options: Optional[List[ButtonOption]] = None,
              step_kind: Optional[str] = None, step_id: Optional[str] = None) -> "ResponseDescriptor":
        if options:
            return cls(kind="interactive", text=text, options=list(options), step_id=step_id)
        kind = "end" if step_kind == "end" else "text"
        return cls(kind=kind, text=text, step_id=step_id)
