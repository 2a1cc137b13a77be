"""Tests for the pure phone menu state machine."""

import pytest

from supportdesk.errors import InvalidTransitionError
from supportdesk.models.schemas import SessionState
from supportdesk.sessions.ivr import (
    FOLLOW_UP_PROMPT,
    MENU_PROMPT,
    CallStarted,
    DigitPressed,
    FollowUpSelected,
    Gather,
    Hangup,
    MenuTimeout,
    ProcessRecording,
    Record,
    RecordingFinished,
    ReplyGenerated,
    ReportDuration,
    Say,
    effect_to_dict,
    resume_state,
    transition
)


class TestMenu:

    def test_call_start_plays_menu(self):
        step = transition(SessionState.MENU, CallStarted(caller="+15550001"))

        assert step.state == SessionState.MENU
        assert step.effects == [Gather(MENU_PROMPT)]

    def test_digit_two_selects_account_issues(self):
        step = transition(SessionState.MENU, DigitPressed("2"))

        assert step.state == SessionState.RECORDING
        assert step.category == "2"
        assert isinstance(step.effects[0], Say)
        assert "account" in step.effects[0].text
        assert step.effects[-1] == Record()

    def test_timeout_defaults_to_category_one(self):
        step = transition(SessionState.MENU, MenuTimeout())

        assert step.state == SessionState.RECORDING
        assert step.category == "1"
        assert step.effects[-1] == Record()

    def test_unknown_digit_defaults_to_category_one(self):
        step = transition(SessionState.MENU, DigitPressed("9"))

        assert step.state == SessionState.RECORDING
        assert step.category == "1"
        assert step.effects[0].text.startswith("Invalid selection")


class TestRecordingAndProcessing:

    def test_finished_recording_is_processed(self):
        step = transition(SessionState.RECORDING,
                          RecordingFinished("https://rec/1"))

        assert step.state == SessionState.PROCESSING
        assert step.category is None
        assert step.effects == [ProcessRecording("https://rec/1")]

    def test_reply_is_spoken_then_follow_up_asked(self):
        step = transition(SessionState.PROCESSING,
                          ReplyGenerated("Click Share."))

        assert step.state == SessionState.PROCESSING
        assert step.effects[0].text == "Click Share."
        assert step.effects[1] == Gather(FOLLOW_UP_PROMPT)

    def test_more_help_returns_to_recording(self):
        step = transition(SessionState.PROCESSING, FollowUpSelected("1"))

        assert step.state == SessionState.RECORDING
        assert step.effects[-1] == Record()

    @pytest.mark.parametrize("digit", ["2", "", "7"])
    def test_anything_else_completes_the_call(self, digit):
        step = transition(SessionState.PROCESSING, FollowUpSelected(digit))

        assert step.state == SessionState.COMPLETED
        assert Hangup() in step.effects
        assert ReportDuration() in step.effects


class TestInvalidTransitions:

    @pytest.mark.parametrize("state, event", [
        (SessionState.MENU, RecordingFinished("https://rec/1")),
        (SessionState.RECORDING, DigitPressed("1")),
        (SessionState.PROCESSING, MenuTimeout()),
        (SessionState.COMPLETED, FollowUpSelected("1")),
        (SessionState.COMPLETED, CallStarted()),
        (SessionState.ACTIVE, DigitPressed("1")),
    ])
    def test_rejected(self, state, event):
        with pytest.raises(InvalidTransitionError):
            transition(state, event)


class TestResumeState:

    @pytest.mark.parametrize("event, state", [
        (CallStarted(), SessionState.MENU),
        (DigitPressed("3"), SessionState.MENU),
        (MenuTimeout(), SessionState.MENU),
        (RecordingFinished("https://rec/1"), SessionState.RECORDING),
        (FollowUpSelected("2"), SessionState.PROCESSING),
    ])
    def test_event_is_accepted_in_resume_state(self, event, state):
        assert resume_state(event) == state
        transition(state, event)


def test_effects_serialise_with_type():
    assert effect_to_dict(Gather("Press 1")) == {
        "type": "Gather", "prompt": "Press 1", "num_digits": 1, "timeout": 10}
