# backend/tests/unit/test_engine.py

import pytest

from app.config import strings
from app.models.flow import FlowDefinition
from app.workflows.engine import FlowEngine
from app.workflows.errors import FlowValidationError
from app.workflows.validator import load_flow

WELCOME_OPTIONS = ["buy", "sell", "repair"]


def _option_ids(response):
    return [option.id for option in response.options]


class TestControlCommands:

    @pytest.mark.parametrize("command", ["menu", "MENU", "Start", "start"])
    def test_reset_from_any_step(self, engine, command):
        engine.handle_message("u1", "menu")
        engine.handle_message("u1", "buy")
        engine.handle_message("u1", "iPhone")

        response = engine.handle_message("u1", command)

        session = engine.sessions.peek("u1")
        assert session.current_step_id == "welcome"
        assert session.answers == {}
        assert session.intent is None
        assert session.history == []
        assert response == engine.start_conversation("fresh-user")

    def test_reset_renders_start_step(self, engine):
        response = engine.handle_message("u1", "menu")
        assert response.kind == "interactive"
        assert response.step_id == "welcome"
        assert _option_ids(response) == WELCOME_OPTIONS
        assert "SmartFix" in response.text

    def test_reset_takes_precedence_over_button_step(self, engine):
        engine.handle_message("u1", "menu")
        engine.handle_message("u1", "sell")
        engine.handle_message("u1", "Galaxy S21")
        assert engine.sessions.peek("u1").current_step_id == "ask_condition"

        engine.handle_message("u1", "Menu")

        assert engine.sessions.peek("u1").current_step_id == "welcome"

    def test_command_with_whitespace_is_not_a_reset(self, engine):
        engine.handle_message("u1", "menu")
        response = engine.handle_message("u1", " menu ")
        assert response.kind == "interactive"
        assert response.text.startswith(strings.INVALID_CHOICE_PROMPT)

    def test_reset_is_idempotent(self, engine):
        first = engine.handle_message("u1", "menu")
        second = engine.handle_message("u1", "menu")
        assert first == second
        assert len(engine.sessions) == 1


class TestButtonSteps:

    def test_invalid_choice_leaves_step_unchanged(self, engine):
        engine.handle_message("u1", "menu")

        response = engine.handle_message("u1", "xyz")

        assert engine.sessions.peek("u1").current_step_id == "welcome"
        assert response.kind == "interactive"
        assert _option_ids(response) == WELCOME_OPTIONS
        assert strings.INVALID_CHOICE_PROMPT in response.text
        assert "Comment pouvons-nous vous aider ?" in response.text

    def test_option_matching_is_case_sensitive(self, engine):
        engine.handle_message("u1", "menu")
        result = engine.apply_message("u1", "Buy")
        assert result["outcome"] == "invalid_choice"
        assert engine.sessions.peek("u1").current_step_id == "welcome"

    def test_option_matching_does_not_trim(self, engine):
        engine.handle_message("u1", "menu")
        assert engine.apply_message("u1", "buy ")["outcome"] == "invalid_choice"

    def test_valid_choice_transitions_and_sets_intent(self, engine):
        engine.handle_message("u1", "menu")

        response = engine.handle_message("u1", "buy")

        session = engine.sessions.peek("u1")
        assert session.current_step_id == "ask_brand_buy"
        assert session.intent == "buy"
        assert response.kind == "text"
        assert "Quelle marque" in response.text

    def test_button_answer_stores_raw_option_id(self, engine):
        engine.handle_message("u1", "menu")
        engine.handle_message("u1", "sell")
        engine.handle_message("u1", "iPhone 13")

        response = engine.handle_message("u1", "bon")

        session = engine.sessions.peek("u1")
        assert session.answers["condition"] == "bon"
        assert "iPhone 13 en état bon" in response.text

    def test_non_intent_option_does_not_change_intent(self, engine):
        engine.handle_message("u1", "menu")
        engine.handle_message("u1", "repair")
        engine.handle_message("u1", "Huawei P30")
        engine.handle_message("u1", "autre")

        session = engine.sessions.peek("u1")
        assert session.intent == "repair"
        assert session.current_step_id == "ask_issue_detail"

    def test_unmapped_option_is_an_invalid_choice(self):
        flow = load_flow({
            "name": "partial",
            "start_step_id": "choose",
            "steps": [
                {"id": "choose", "kind": "button", "text": "Pick",
                 "options": [{"id": "a", "title": "A"}, {"id": "b", "title": "B"}],
                 "next": {"a": "done"}},
                {"id": "done", "kind": "end", "text": "Done"}
            ]
        })
        engine = FlowEngine(flow)

        result = engine.apply_message("u1", "b")

        assert result["outcome"] == "invalid_choice"
        assert _option_ids(result["response"]) == ["a", "b"]
        assert engine.sessions.peek("u1").current_step_id == "choose"

    def test_invalid_choice_still_records_answer(self, engine):
        # The reply is stored before the choice is checked.
        engine.handle_message("u1", "menu")
        engine.handle_message("u1", "sell")
        engine.handle_message("u1", "Pixel 7")
        engine.handle_message("u1", "great")

        session = engine.sessions.peek("u1")
        assert session.answers["condition"] == "great"
        assert session.current_step_id == "ask_condition"


class TestIntent:

    def _flow(self, intents):
        return load_flow({
            "name": "intent",
            "start_step_id": "name",
            "intents": intents,
            "steps": [
                {"id": "name", "kind": "input", "text": "Name?", "store_key": "name",
                 "default_intent": "browse", "next": "choose"},
                {"id": "choose", "kind": "button", "text": "Goal?", "store_key": "goal",
                 "default_intent": "ignored",
                 "options": [{"id": "buy", "title": "Buy"}, {"id": "other", "title": "Other"}],
                 "next": {"buy": "done", "other": "done"}},
                {"id": "done", "kind": "end", "text": "{{name}} wants {{goal}}"}
            ]
        })

    def test_default_intent_is_set_only_once(self):
        engine = FlowEngine(self._flow(intents=["buy"]))
        engine.handle_message("u1", "Sam")
        assert engine.sessions.peek("u1").intent == "browse"

        engine.handle_message("u1", "other")
        assert engine.sessions.peek("u1").intent == "browse"

    def test_declared_intent_option_overwrites_default(self):
        engine = FlowEngine(self._flow(intents=["buy"]))
        engine.handle_message("u1", "Sam")
        response = engine.handle_message("u1", "buy")

        assert engine.sessions.peek("u1").intent == "buy"
        assert response.text == "Sam wants buy"

    def test_intent_overwrite_follows_declared_intents_not_literals(self):
        # "buy" is not declared as an intent here, so choosing it keeps the default.
        engine = FlowEngine(self._flow(intents=[]))
        engine.handle_message("u1", "Sam")
        engine.handle_message("u1", "buy")
        assert engine.sessions.peek("u1").intent == "browse"


class TestEndAndMessageSteps:

    def test_end_step_is_sticky(self, engine):
        for text in ["menu", "buy", "iPhone", "5000"]:
            engine.handle_message("u1", text)
        assert engine.sessions.peek("u1").current_step_id == "end"

        for text in ["thanks", "buy", "hello again"]:
            result = engine.apply_message("u1", text)
            assert result["outcome"] == "terminal"
            assert result["response"].kind == "end"
            assert "Tapez 'menu' pour recommencer" in result["response"].text
            assert engine.sessions.peek("u1").current_step_id == "end"

    def test_end_step_rerender_uses_current_answers(self):
        engine = FlowEngine(load_flow({
            "name": "thanks",
            "start_step_id": "ask",
            "steps": [
                {"id": "ask", "kind": "input", "text": "Name?", "store_key": "name", "next": "bye"},
                {"id": "bye", "kind": "end", "text": "Bye {{name}}"}
            ]
        }))
        first = engine.handle_message("u1", "Ana")
        again = engine.handle_message("u1", "anything")
        assert first.kind == again.kind == "end"
        assert first.text == again.text == "Bye Ana"

    def test_message_step_is_followed_by_fixed_transition(self):
        engine = FlowEngine(load_flow({
            "name": "notice",
            "start_step_id": "notice",
            "steps": [
                {"id": "notice", "kind": "message", "text": "Read this", "next": "ask"},
                {"id": "ask", "kind": "input", "text": "Name?", "store_key": "name", "next": "bye"},
                {"id": "bye", "kind": "end", "text": "Bye {{name}}"}
            ]
        }))
        assert engine.handle_message("u1", "start").kind == "text"

        response = engine.handle_message("u1", "ok")

        assert response.text == "Name?"
        assert engine.sessions.peek("u1").current_step_id == "ask"
        assert engine.sessions.peek("u1").answers == {}

    def test_notice_between_questions_is_shown_before_next_question(self):
        engine = FlowEngine(load_flow({
            "name": "notice_mid",
            "start_step_id": "ask_brand",
            "steps": [
                {"id": "ask_brand", "kind": "input", "text": "Brand?", "store_key": "brand", "next": "notice"},
                {"id": "notice", "kind": "message", "text": "Noted {{brand}}", "next": "ask_budget"},
                {"id": "ask_budget", "kind": "input", "text": "Budget?", "store_key": "budget", "next": "bye"},
                {"id": "bye", "kind": "end", "text": "Bye {{brand}} {{budget}}"}
            ]
        }))
        texts = [engine.handle_message("u1", text).text
                 for text in ["menu", "iPhone", "ok thanks", "3000"]]

        assert texts == ["Brand?", "Noted iPhone", "Budget?", "Bye iPhone 3000"]
        session = engine.sessions.peek("u1")
        assert session.answers == {"brand": "iPhone", "budget": "3000"}
        assert session.current_step_id == "bye"

    def test_consecutive_messages_are_all_shown(self):
        engine = FlowEngine(load_flow({
            "name": "two_notices",
            "start_step_id": "ask",
            "steps": [
                {"id": "ask", "kind": "input", "text": "?", "store_key": "name", "next": "first"},
                {"id": "first", "kind": "message", "text": "First", "next": "second"},
                {"id": "second", "kind": "message", "text": "Second", "next": "bye"},
                {"id": "bye", "kind": "end", "text": "Bye"}
            ]
        }))
        texts = [engine.handle_message("u1", text).text for text in ["menu", "Ana", "ok", "ok"]]

        assert texts == ["?", "First", "Second", "Bye"]
        assert engine.sessions.peek("u1").current_step_id == "bye"

    def test_message_and_end_steps_record_no_answer(self):
        engine = FlowEngine(load_flow({
            "name": "no_keys",
            "start_step_id": "notice",
            "steps": [
                {"id": "notice", "kind": "message", "text": "Hi", "next": "bye"},
                {"id": "bye", "kind": "end", "text": "Bye"}
            ]
        }))
        engine.handle_message("u1", "hello")
        engine.handle_message("u1", "again")

        session = engine.sessions.peek("u1")
        assert session.answers == {}
        assert session.history == []
        assert session.intent is None


class TestUnknownStep:

    def test_corrupted_session_gets_reset_prompt(self, engine):
        engine.handle_message("u1", "menu")
        engine.sessions.peek("u1").current_step_id = "deleted_step"

        result = engine.apply_message("u1", "hello")

        assert result["outcome"] == "unknown_step"
        assert result["response"].kind == "text"
        assert result["response"].text == strings.UNKNOWN_STEP_MESSAGE

    def test_reset_recovers_corrupted_session(self, engine):
        engine.sessions.get_or_create("u1").current_step_id = "deleted_step"
        response = engine.handle_message("u1", "menu")
        assert response.step_id == "welcome"
        assert engine.sessions.peek("u1").current_step_id == "welcome"


class TestScenario:

    def test_buy_conversation(self, engine):
        welcome = engine.handle_message("u1", "menu")
        assert welcome.kind == "interactive"
        assert len(welcome.options) == 3

        ask_brand = engine.handle_message("u1", "buy")
        assert ask_brand.step_id == "ask_brand_buy"
        assert engine.sessions.peek("u1").intent == "buy"

        ask_budget = engine.handle_message("u1", "iPhone")
        assert ask_budget.step_id == "ask_budget"
        assert engine.sessions.peek("u1").answers["brand"] == "iPhone"

        confirmation = engine.handle_message("u1", "5000")
        assert confirmation.step_id == "confirm_buy"
        assert confirmation.kind == "text"
        assert "iPhone" in confirmation.text
        assert "5000" in confirmation.text

        session = engine.sessions.peek("u1")
        assert session.current_step_id == "end"
        assert session.answers == {"brand": "iPhone", "budget": "5000"}
        assert [entry.step_id for entry in session.history] == ["ask_brand_buy", "ask_budget"]
        assert [entry.raw_input for entry in session.history] == ["iPhone", "5000"]

    def test_first_contact_without_menu_starts_at_welcome(self, engine):
        response = engine.handle_message("new-user", "repair")
        assert response.step_id == "ask_brand_repair"
        assert engine.sessions.peek("new-user").intent == "repair"

    def test_repair_with_detail(self, engine):
        for text in ["menu", "repair", "iPhone 12", "autre"]:
            engine.handle_message("u2", text)

        response = engine.handle_message("u2", "Le micro ne marche plus")

        assert "iPhone 12" in response.text
        assert "autre Le micro ne marche plus" in response.text

    def test_repair_without_detail_blanks_placeholder(self, engine):
        for text in ["menu", "repair", "iPhone 12"]:
            engine.handle_message("u3", text)

        response = engine.handle_message("u3", "ecran")

        assert "Problème : ecran \n" in response.text
        assert "{{" not in response.text

    def test_users_do_not_share_sessions(self, engine):
        engine.handle_message("a", "buy")
        engine.handle_message("b", "sell")
        assert engine.sessions.peek("a").intent == "buy"
        assert engine.sessions.peek("b").intent == "sell"


def test_engine_refuses_invalid_flow():
    flow = FlowDefinition.model_validate({
        "name": "broken",
        "start_step_id": "ask",
        "steps": [{"id": "ask", "kind": "input", "text": "?", "next": "nowhere"}]
    })
    with pytest.raises(FlowValidationError) as exc_info:
        FlowEngine(flow)
    assert {error.code for error in exc_info.value.errors} == {"UNKNOWN_TRANSITION_TARGET", "NO_END_STEP"}
