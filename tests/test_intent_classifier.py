"""Tests for intent classification and entity extraction."""

import pytest

from autobooker.conversation.intent_classifier import (
    IntentClassifier,
    LLMIntentClassifier,
    RuleBasedIntentClassifier,
    extract_date_entities,
    extract_entities,
    extract_time_entities,
)
from autobooker.schemas.conversation_schema import ChatMessage, IntentType, Role


class TestRuleBasedClassifier:
    @pytest.mark.parametrize("text,expected", [
        ("Je voudrais un RDV demain à 14h", IntentType.BOOK),
        ("Bonjour, je souhaite prendre rendez-vous", IntentType.BOOK),
        ("I'd like to book an appointment", IntentType.BOOK),
        ("Je veux annuler mon rendez-vous", IntentType.CANCEL),
        ("Please cancel my appointment", IntentType.CANCEL),
        ("Je voudrais déplacer mon rdv", IntentType.MODIFY),
        ("Can I reschedule?", IntentType.MODIFY),
        ("Quels sont vos horaires ?", IntentType.HOURS_INFO),
        ("What are your opening hours?", IntentType.HOURS_INFO),
        ("Quels sont vos tarifs ?", IntentType.SERVICE_INFO),
        ("Bonjour", IntentType.GREETING),
        ("Hello", IntentType.GREETING),
        ("Il fait beau aujourd'hui", IntentType.OTHER),
    ])
    def test_labels(self, classifier, text, expected):
        assert classifier.classify(text).type == expected

    def test_unknown_text_has_low_confidence(self, classifier):
        intent = classifier.classify("blabla")
        assert intent.type == IntentType.OTHER
        assert intent.confidence == pytest.approx(0.5)

    def test_cancel_beats_book(self, classifier):
        # "rendez-vous" is a booking keyword too
        assert classifier.classify("annuler le rendez-vous").type == IntentType.CANCEL

    def test_entities_attached(self, classifier):
        intent = classifier.classify("RDV demain à 14h30 pour un suivi")
        pairs = {(e.type, e.value) for e in intent.entities}
        assert ("date", "demain") in pairs
        assert ("time", "14:30") in pairs
        assert ("service", "suivi") in pairs

    def test_satisfies_protocol(self, classifier):
        assert isinstance(classifier, IntentClassifier)


class TestDateEntities:
    def test_iso_date_first(self):
        values = [e.value for e in extract_date_entities("le 2026-10-20 ou sinon demain")]
        assert values == ["2026-10-20", "demain"]

    def test_numeric_date(self):
        assert [e.value for e in extract_date_entities("le 16/10 svp")] == ["16/10"]

    def test_relative_dates_normalized(self):
        assert extract_date_entities("tomorrow please")[0].value == "demain"
        assert extract_date_entities("après-demain")[0].value == "après-demain"
        assert extract_date_entities("aujourd'hui")[0].value == "aujourd'hui"

    def test_day_after_tomorrow_is_not_tomorrow(self):
        values = [e.value for e in extract_date_entities("après-demain matin")]
        assert values == ["après-demain"]

    def test_weekday(self):
        assert [e.value for e in extract_date_entities("Vendredi")] == ["vendredi"]

    def test_no_date(self):
        assert extract_date_entities("oui") == []


class TestTimeEntities:
    @pytest.mark.parametrize("text,expected", [
        ("à 14h", "14:00"),
        ("à 9h", "09:00"),
        ("vers 14h30", "14:30"),
        ("à 14:30", "14:30"),
        ("à 14 heures", "14:00"),
        ("at 2pm", "14:00"),
        ("at 9:30am", "09:30"),
        ("12am", "00:00"),
        ("à midi", "12:00"),
    ])
    def test_formats(self, text, expected):
        assert [e.value for e in extract_time_entities(text)] == [expected]

    def test_several_in_order(self):
        values = [e.value for e in extract_time_entities("entre 9h et 14h30")]
        assert values == ["09:00", "14:30"]

    def test_phone_number_is_not_a_time(self):
        assert extract_time_entities("06 12 34 56 78") == []


class TestExtractEntities:
    def test_service_alias(self):
        entities = extract_entities("une consultation approfondie jeudi")
        services = [e.value for e in entities if e.type == "service"]
        assert services == ["consultation_longue"]


class FakeCompletion:
    def __init__(self, answer: str = "", error: Exception = None):
        self.answer = answer
        self.error = error
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.answer


class TestLLMIntentClassifier:
    def test_parses_json_answer(self):
        complete = FakeCompletion(
            '{"type": "book", "confidence": 0.92, '
            '"entities": [{"type": "date", "value": "demain", "confidence": 0.9}]}'
        )
        intent = LLMIntentClassifier(complete).classify("un rdv demain")
        assert intent.type == IntentType.BOOK
        assert intent.confidence == pytest.approx(0.92)
        assert intent.entities[0].value == "demain"

    def test_json_inside_prose(self):
        complete = FakeCompletion('Voici ma réponse : {"type": "cancel", "confidence": 0.8} merci')
        assert LLMIntentClassifier(complete).classify("annuler").type == IntentType.CANCEL

    def test_legacy_french_labels(self):
        complete = FakeCompletion('{"type": "prise_rdv", "confidence": 0.8}')
        assert LLMIntentClassifier(complete).classify("rdv").type == IntentType.BOOK

    @pytest.mark.parametrize("answer", [
        "je ne sais pas",
        '{"type": "book", "confidence": }',
        '{"type": "dance", "confidence": 0.9}',
        '{"type": "book", "confidence": 1.5}',
        "",
    ])
    def test_unusable_answers_fall_back(self, answer):
        intent = LLMIntentClassifier(FakeCompletion(answer)).classify("hello")
        assert intent.type == IntentType.OTHER
        assert intent.confidence == pytest.approx(0.1)

    def test_model_failure_falls_back(self):
        complete = FakeCompletion(error=RuntimeError("timeout"))
        intent = LLMIntentClassifier(complete).classify("hello")
        assert intent.type == IntentType.OTHER
        assert intent.confidence == pytest.approx(0.1)

    def test_prompt_carries_recent_history(self):
        complete = FakeCompletion('{"type": "other", "confidence": 0.6}')
        history = [ChatMessage(role=Role.USER, content=f"message {i}") for i in range(10)]
        LLMIntentClassifier(complete, max_history=2).classify("oui", history)

        prompt = complete.prompts[0]
        assert "Message to classify: oui" in prompt
        assert "user: message 9" in prompt
        assert "user: message 8" in prompt
        assert "message 7" not in prompt

    def test_satisfies_protocol(self):
        assert isinstance(LLMIntentClassifier(FakeCompletion()), IntentClassifier)
