"""
Convergence Controller
=======================

The N² loop: every round runs all specialists concurrently, hands their
critiques to the synthesizer and either accepts the result or carries
the repair directive into the next round.

States: RoundState -> RoundState | ConvergedState | ExhaustedState
"""

import logging
import os
import time
from typing import Dict, Optional, Sequence, Tuple

from core.agent_config import AgentConfig
from core.context_async import ConvergenceContext
from core.schemas import CodeUnit, Instruction
from core.transitions import TransitionValidator
from agents.specialist_agent import SpecialistAgent
from convergenceAgent.loop_states import (
    ConvergedState,
    ExhaustedState,
    LoopState,
    ProgressCallback,
    ProgressEmitter,
    RoundState,
    Transition,
)
from convergenceAgent.synthesis_contracts import ConvergenceResult, IterationRecord, StopReason
from convergenceAgent.synthesis_strategy import SynthesisStrategy

logger = logging.getLogger("ConvergenceEngine")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(log_file: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Attach console (and optional file) handlers to the engine logger.

    Safe to call more than once; handlers are only added the first time.
    """
    engine_logger = logging.getLogger("ConvergenceEngine")
    engine_logger.setLevel(level)
    if not engine_logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT)
        sh = logging.StreamHandler()
        sh.setFormatter(formatter)
        engine_logger.addHandler(sh)

        if log_file:
            directory = os.path.dirname(log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            fh = logging.FileHandler(log_file, encoding="utf-8")
            fh.setFormatter(formatter)
            engine_logger.addHandler(fh)
    return engine_logger


def select_best_round(history: Sequence[IterationRecord]) -> IterationRecord:
    """Highest quality; earliest round on exact ties."""
    if not history:
        raise ValueError("No rounds recorded")
    best = history[0]
    for record in history[1:]:
        if record.quality_score > best.quality_score:
            best = record
    return best


class ConvergenceController:
    """
    Runs the convergence loop for one request at a time.

    Example:
        >>> controller = ConvergenceController(specialists, ODAISynthesisStrategy(llm, config), config)
        >>> result = await controller.run(build_instruction("Fix the null check"), code_unit)
        >>> result.converged, result.quality_score
    """

    def __init__(
        self,
        specialists: Sequence[SpecialistAgent],
        synthesizer: SynthesisStrategy,
        config: Optional[AgentConfig] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.specialists = list(specialists)
        self.synthesizer = synthesizer
        self.config = (config or AgentConfig()).validate()
        self.progress_callback = progress_callback

    def _build_states(self, emitter: ProgressEmitter) -> Dict[str, LoopState]:
        return {
            "RoundState": RoundState(self.specialists, self.synthesizer, self.config, emitter),
            "ConvergedState": ConvergedState(),
            "ExhaustedState": ExhaustedState(),
        }

    async def dispatch(self, context: ConvergenceContext, states: Dict[str, LoopState]) -> str:
        """
        Drive the loop states until a terminal state is reached.

        Returns:
            Name of the terminal state
        """
        state_name = "RoundState"
        while True:
            result = await states[state_name].handle(context)
            if result is None:
                logger.info(f"🏁 [Engine] Reached terminal state: {state_name}")
                return state_name

            if not isinstance(result, Transition):
                raise TypeError(f"{state_name} returned {type(result).__name__}, expected Transition")
            TransitionValidator.validate_or_raise(state_name, result.to)
            logger.info(f"🔄 Transition: {state_name} -> {result.to} (reason: {result.reason})")
            if result.metadata:
                logger.debug(f"   Metadata: {result.metadata}")
            state_name = result.to

    async def run(
        self,
        instruction: Instruction,
        code_unit: CodeUnit,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ConvergenceResult:
        """
        Run rounds until convergence, budget exhaustion or early stop.

        Raises:
            ConfigurationError: Missing or rejected credentials
        """
        start = time.time()
        context = ConvergenceContext(
            instruction=instruction,
            code_unit=code_unit,
            max_rounds=self.config.max_rounds,
        )
        emitter = ProgressEmitter(progress_callback or self.progress_callback)

        logger.info(
            f"🚀 [N²] Starting: task={instruction.task_type.value}, specialists={len(self.specialists)}, "
            f"threshold={self.synthesizer.quality_threshold}, max_rounds={self.config.max_rounds}"
        )
        terminal = await self.dispatch(context, self._build_states(emitter))
        stop_reason = await context.get_memory("stop_reason", StopReason.EXHAUSTED)

        result = self._build_result(context.history, terminal, stop_reason, time.time() - start)
        logger.info(
            f"📊 [N²] Done: converged={result.converged}, quality={result.quality_score:.2f}, "
            f"rounds={len(result.iterations)}, best_round={result.best_round}, "
            f"stop={result.stop_reason.value}, {result.total_time:.2f}s"
        )
        return result

    def _build_result(
        self,
        history: Tuple[IterationRecord, ...],
        terminal: str,
        stop_reason: StopReason,
        total_time: float,
    ) -> ConvergenceResult:
        if terminal == "ConvergedState":
            chosen = history[-1]
            converged = True
        else:
            chosen = select_best_round(history)
            converged = False

        synthesis = chosen.synthesis
        # Failed rounds carry a directive, not content
        content = synthesis.code or ""
        if synthesis.success:
            explanation = synthesis.explanation
        else:
            explanation = (
                f"Quality threshold not met (best {chosen.quality_score:.2f} in round {chosen.round_number}). "
                f"{synthesis.explanation}"
            ).strip()

        return ConvergenceResult(
            success=converged,
            converged=converged,
            final_content=content,
            explanation=explanation,
            quality_score=chosen.quality_score,
            iterations=history,
            total_time=total_time,
            best_round=chosen.round_number,
            stop_reason=stop_reason,
            key_decisions=dict(synthesis.key_decisions or {}),
        )
