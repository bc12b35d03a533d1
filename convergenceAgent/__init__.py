from .agent import CodeAssistant
from .convergence_controller import ConvergenceController, configure_logging, select_best_round
from .llm_synthesis_strategy import ODAISynthesisStrategy, is_empty_document
from .loop_states import ProgressEmitter, Transition
from .synthesis_contracts import (
    ConvergenceResult,
    IterationRecord,
    ProgressEvent,
    ProgressEventType,
    StopReason,
    SynthesisRequest,
    SynthesisResult,
)
from .synthesis_strategy import SynthesisStrategy

__all__ = [
    "CodeAssistant", "ConvergenceController", "configure_logging", "select_best_round",
    "ODAISynthesisStrategy", "is_empty_document", "ProgressEmitter", "Transition",
    "ConvergenceResult", "IterationRecord", "ProgressEvent", "ProgressEventType", "StopReason",
    "SynthesisRequest", "SynthesisResult", "SynthesisStrategy",
]
