"""
Phone menu state machine.

``transition`` is a pure function from (state, event) to the next state, the
selected category and the effects the transport layer should perform. It does
no I/O; ``VoiceCallService`` loads and saves the call session around it.

    menu --digit/timeout--> recording --finished--> processing
    processing --reply--> processing
    processing --"1"--> recording
    processing --other digit--> completed
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

from supportdesk.errors import InvalidTransitionError
from supportdesk.models.schemas import SessionState

DEFAULT_CATEGORY = "1"
MORE_HELP_DIGIT = "1"

MENU_PROMPT = ("Welcome to our support system. Press 1 for technical support, "
               "press 2 for account issues, or press 3 for other inquiries.")
FOLLOW_UP_PROMPT = ("Press 1 if you need more help, or press 2 if your issue "
                    "is resolved.")
MORE_DETAILS_PROMPT = ("Please provide more details about your issue after "
                       "the beep.")
GOODBYE_PROMPT = "Thank you for contacting our support. Have a great day!"
TIMEOUT_PROMPT = ("We did not receive a selection. Please describe your issue "
                  "after the beep.")

CATEGORY_CONTEXT = {
    "1": "technical support",
    "2": "account issues",
    "3": "general inquiries"
}

SELECTION_PROMPTS = {
    "1": "You selected technical support. Please describe your issue after the beep.",
    "2": "You selected account support. Please describe your issue after the beep.",
    "3": "You selected general inquiries. Please describe your question after the beep."
}

REPLY_VOICE = "Polly.Joanna"


# Events

@dataclass(frozen=True)
class CallStarted:
    caller: Optional[str] = None


@dataclass(frozen=True)
class DigitPressed:
    digit: str


@dataclass(frozen=True)
class MenuTimeout:
    pass


@dataclass(frozen=True)
class RecordingFinished:
    recording_url: str


@dataclass(frozen=True)
class ReplyGenerated:
    reply: str


@dataclass(frozen=True)
class FollowUpSelected:
    digit: str


Event = Union[CallStarted, DigitPressed, MenuTimeout, RecordingFinished,
              ReplyGenerated, FollowUpSelected]


# Effects

@dataclass(frozen=True)
class Say:
    text: str
    voice: Optional[str] = None


@dataclass(frozen=True)
class Gather:
    prompt: str
    num_digits: int = 1
    timeout: int = 10


@dataclass(frozen=True)
class Record:
    max_length: int = 60
    timeout: int = 5


@dataclass(frozen=True)
class ProcessRecording:
    recording_url: str


@dataclass(frozen=True)
class Hangup:
    pass


@dataclass(frozen=True)
class ReportDuration:
    seconds: Optional[float] = None


Effect = Union[Say, Gather, Record, ProcessRecording, Hangup, ReportDuration]


def effect_to_dict(effect: Effect) -> Dict[str, Any]:
    """JSON friendly form of an effect for the transport layer."""
    return {"type": type(effect).__name__, **asdict(effect)}


@dataclass
class Transition:
    state: SessionState
    category: Optional[str] = None  # None leaves the category unchanged
    effects: List[Effect] = field(default_factory=list)


def _invalid(state: SessionState, event: Event) -> InvalidTransitionError:
    return InvalidTransitionError(
        f"{type(event).__name__} is not valid in state {state.value}")


def transition(state: SessionState, event: Event) -> Transition:
    if state == SessionState.MENU:
        if isinstance(event, CallStarted):
            return Transition(SessionState.MENU, effects=[Gather(MENU_PROMPT)])
        if isinstance(event, DigitPressed):
            category = event.digit if event.digit in CATEGORY_CONTEXT else DEFAULT_CATEGORY
            prompt = SELECTION_PROMPTS.get(
                event.digit,
                "Invalid selection. Please describe your issue after the beep.")
            return Transition(SessionState.RECORDING, category,
                              [Say(prompt), Record()])
        if isinstance(event, MenuTimeout):
            return Transition(SessionState.RECORDING, DEFAULT_CATEGORY,
                              [Say(TIMEOUT_PROMPT), Record()])

    elif state == SessionState.RECORDING:
        if isinstance(event, RecordingFinished):
            return Transition(SessionState.PROCESSING,
                              effects=[ProcessRecording(event.recording_url)])

    elif state == SessionState.PROCESSING:
        if isinstance(event, ReplyGenerated):
            return Transition(SessionState.PROCESSING,
                              effects=[Say(event.reply, voice=REPLY_VOICE),
                                       Gather(FOLLOW_UP_PROMPT)])
        if isinstance(event, FollowUpSelected):
            if event.digit == MORE_HELP_DIGIT:
                return Transition(SessionState.RECORDING,
                                  effects=[Say(MORE_DETAILS_PROMPT), Record()])
            return Transition(SessionState.COMPLETED,
                              effects=[Say(GOODBYE_PROMPT), Hangup(),
                                       ReportDuration()])

    raise _invalid(state, event)


def resume_state(event: Event) -> SessionState:
    """State in which ``event`` is accepted; used when a call has no stored session."""
    if isinstance(event, (CallStarted, DigitPressed, MenuTimeout)):
        return SessionState.MENU
    if isinstance(event, RecordingFinished):
        return SessionState.RECORDING
    if isinstance(event, (ReplyGenerated, FollowUpSelected)):
        return SessionState.PROCESSING
    raise TypeError(f"Unknown call event: {event!r}")
