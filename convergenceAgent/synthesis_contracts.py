"""
Synthesis Contracts
===================

Records exchanged between the convergence controller and the synthesis
strategy, and the records the controller returns to its caller.
Controller knows WHAT (contracts), not HOW (synthesis).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from core.schemas import (
    CodeUnit,
    Distillation,
    Instruction,
    RepairDirective,
    SpecialistCritique,
    TaskType,
)


@dataclass(frozen=True)
class SynthesisRequest:
    """
    Everything the synthesizer needs for one round.

    Example:
        request = SynthesisRequest(
            instruction=build_instruction("Add input validation"),
            critiques=tuple(critiques),
            code_unit=code_unit,
            task_type=TaskType.OTHER,
        )
    """
    instruction: Instruction
    critiques: Tuple[SpecialistCritique, ...]
    code_unit: CodeUnit
    task_type: TaskType
    repair_directive: Optional[RepairDirective] = None  # previous round's, if any
    round_number: int = 1


@dataclass(frozen=True)
class SynthesisResult:
    """
    Final-phase output of one round.

    Guardrails:
    - success=True carries no repair directive
    - success=False always carries a repair directive
    - quality_score is in [0, 10]
    """
    success: bool
    quality_score: float
    explanation: str = ""
    code: Optional[str] = None
    key_decisions: Optional[Dict[str, str]] = None
    repair_directive: Optional[RepairDirective] = None
    distillation: Optional[Distillation] = None
    recovered: bool = False  # built from non-structured model output

    def __post_init__(self):
        if not 0.0 <= self.quality_score <= 10.0:
            raise ValueError(f"quality_score out of range: {self.quality_score}")
        if self.success and self.repair_directive is not None:
            raise ValueError("A successful synthesis cannot carry a repair directive")
        if not self.success and self.repair_directive is None:
            raise ValueError("A failed synthesis must carry a repair directive")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "quality_score": self.quality_score,
            "explanation": self.explanation,
            "code": self.code,
            "key_decisions": self.key_decisions,
            "repair_directive": (
                self.repair_directive.model_dump(mode="json") if self.repair_directive else None
            ),
            "distillation": self.distillation.model_dump(mode="json") if self.distillation else None,
            "recovered": self.recovered,
        }


@dataclass(frozen=True)
class IterationRecord:
    """Immutable snapshot of one round."""
    round_number: int
    critiques: Tuple[SpecialistCritique, ...]
    synthesis: SynthesisResult
    quality_score: float
    repair_directive_in: Optional[RepairDirective] = None  # directive this round was steered by
    specialist_time: float = 0.0
    synthesis_time: float = 0.0
    total_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round_number": self.round_number,
            "critiques": [c.model_dump(mode="json") for c in self.critiques],
            "synthesis": self.synthesis.to_dict(),
            "quality_score": self.quality_score,
            "repair_directive_in": (
                self.repair_directive_in.model_dump(mode="json") if self.repair_directive_in else None
            ),
            "specialist_time": self.specialist_time,
            "synthesis_time": self.synthesis_time,
            "total_time": self.total_time,
        }


class StopReason(str, Enum):
    """Why the loop terminated."""
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"
    PLATEAU = "plateau"
    REGRESSION = "regression"


@dataclass(frozen=True)
class ConvergenceResult:
    """
    Overall outcome of a convergence run.

    converged distinguishes "met the threshold" from "budget exhausted
    or stopped early"; in the latter case the best round's output is
    returned.
    """
    success: bool
    converged: bool
    final_content: str
    explanation: str
    quality_score: float
    iterations: Tuple[IterationRecord, ...]
    total_time: float
    best_round: int
    stop_reason: StopReason
    key_decisions: Dict[str, str] = field(default_factory=dict)
    token_usage: Dict[str, int] = field(default_factory=dict)

    def summary(self) -> Dict[str, Any]:
        """Compact execution summary."""
        rounds = len(self.iterations)
        scores = [it.quality_score for it in self.iterations]
        specialist_time = sum(it.specialist_time for it in self.iterations)
        synthesis_time = sum(it.synthesis_time for it in self.iterations)
        total = self.total_time or 1e-9
        return {
            "converged": self.converged,
            "stop_reason": self.stop_reason.value,
            "rounds": rounds,
            "best_round": self.best_round,
            "final_quality": self.quality_score,
            "average_quality": round(sum(scores) / rounds, 2) if rounds else 0.0,
            "quality_trend": scores,
            "total_time": round(self.total_time, 2),
            "specialist_time_share": round(specialist_time / total, 3),
            "synthesis_time_share": round(synthesis_time / total, 3),
        }

    def to_dict(self, include_history: bool = True) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "converged": self.converged,
            "final_content": self.final_content,
            "explanation": self.explanation,
            "quality_score": self.quality_score,
            "total_time": self.total_time,
            "best_round": self.best_round,
            "stop_reason": self.stop_reason.value,
            "key_decisions": dict(self.key_decisions),
            "token_usage": dict(self.token_usage),
            "summary": self.summary(),
        }
        if include_history:
            data["iterations"] = [it.to_dict() for it in self.iterations]
        return data


class ProgressEventType(str, Enum):
    ITERATION_START = "iteration_start"
    AGENTS_START = "agents_start"
    AGENT_COMPLETE = "agent_complete"
    AGENTS_COMPLETE = "agents_complete"
    SYNTHESIS_START = "synthesis_start"
    SYNTHESIS_COMPLETE = "synthesis_complete"
    ITERATION_COMPLETE = "iteration_complete"


@dataclass(frozen=True)
class ProgressEvent:
    """Observability event emitted by the controller."""
    type: ProgressEventType
    round_number: int
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "round": self.round_number,
            "message": self.message,
            "data": self.data,
        }
