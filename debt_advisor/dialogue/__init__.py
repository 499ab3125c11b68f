"""Dialogue package exports."""

from .engine import DialogueEngine, EngineConfig
from .extractors import Extractor, ExtractorRegistry
from .generator import OpenRouterGenerator, ReplyGenerator, build_generator
from .interrupts import InterruptChain, InterruptClassifier, InterruptContext
from .resync import ResyncResult, StepResynchronizer
from .script import FaqEntry, Script, load_script
from .types import ConversationState, Outcome, SlotKind, Step, TurnRequest, TurnResponse

__all__ = [
    "DialogueEngine",
    "EngineConfig",
    "Extractor",
    "ExtractorRegistry",
    "OpenRouterGenerator",
    "ReplyGenerator",
    "build_generator",
    "InterruptChain",
    "InterruptClassifier",
    "InterruptContext",
    "ResyncResult",
    "StepResynchronizer",
    "FaqEntry",
    "Script",
    "load_script",
    "ConversationState",
    "Outcome",
    "SlotKind",
    "Step",
    "TurnRequest",
    "TurnResponse",
]
