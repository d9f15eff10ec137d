from autobooker.conversation.engine import ConversationEngine
from autobooker.conversation.guardrails import MessageGuardrailPipeline
from autobooker.conversation.intent_classifier import (
    IntentClassifier,
    LLMIntentClassifier,
    RuleBasedIntentClassifier,
)
from autobooker.conversation.session_store import InMemorySessionStore
from autobooker.conversation.slot_manager import SlotManager
from autobooker.conversation.state_machine import derive_stage

__all__ = [
    "ConversationEngine",
    "IntentClassifier",
    "RuleBasedIntentClassifier",
    "LLMIntentClassifier",
    "SlotManager",
    "MessageGuardrailPipeline",
    "InMemorySessionStore",
    "derive_stage",
]
