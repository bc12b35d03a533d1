"""
Convergence Loop States
========================

RoundState runs one full round (specialist fan-out, synthesis) and
decides where the loop goes next. ConvergedState and ExhaustedState are
terminal and only record why the loop stopped.
"""

import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

from core.agent_config import AgentConfig, ConfigurationError
from core.context_async import ConvergenceContext
from core.schemas import SpecialistCritique, TaskType
from agents.specialist_agent import SpecialistAgent
from convergenceAgent.synthesis_contracts import (
    IterationRecord,
    ProgressEvent,
    ProgressEventType,
    StopReason,
    SynthesisRequest,
    SynthesisResult,
)
from convergenceAgent.synthesis_strategy import SynthesisStrategy

logger = logging.getLogger("ConvergenceEngine")

ProgressCallback = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


class Transition:
    """Transition object for state changes."""
    def __init__(self, to: str, reason: str = "", metadata: dict = None):
        self.to = to
        self.reason = reason
        self.metadata = metadata or {}


class ProgressEmitter:
    """Delivers progress events to an optional sync or async callback."""

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback

    async def emit(self, event_type: ProgressEventType, round_number: int, message: str = "", **data):
        if self.callback is None:
            return
        event = ProgressEvent(type=event_type, round_number=round_number, message=message, data=data)
        try:
            outcome = self.callback(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            # Observers must not break the loop
            logger.warning(f"⚠️ [Progress] Callback failed for {event_type.value}: {e}")


class LoopState(ABC):
    """Base class for convergence loop states."""

    @abstractmethod
    async def handle(self, context: ConvergenceContext) -> Optional[Transition]:
        """
        Process context and return the next transition.
        Terminal states return None.
        """
        pass


def detect_early_stop(scores: Sequence[float], plateau_epsilon: float) -> Optional[StopReason]:
    """
    Compare the last two round scores.

    Strict regression always stops; a non-negative delta below
    plateau_epsilon stops only when plateau_epsilon > 0.
    """
    if len(scores) < 2:
        return None
    delta = scores[-1] - scores[-2]
    if delta < 0:
        return StopReason.REGRESSION
    if plateau_epsilon > 0 and delta < plateau_epsilon:
        return StopReason.PLATEAU
    return None


class RoundState(LoopState):
    """
    One round of the N² loop.

    Flow: fan-out specialists -> synthesize -> record -> decide
    (RoundState | ConvergedState | ExhaustedState)
    """

    def __init__(
        self,
        specialists: Sequence[SpecialistAgent],
        synthesizer: SynthesisStrategy,
        config: AgentConfig,
        emitter: ProgressEmitter,
    ):
        self.specialists = list(specialists)
        self.synthesizer = synthesizer
        self.config = config
        self.emitter = emitter

    async def handle(self, context: ConvergenceContext) -> Transition:
        context.current_round += 1
        round_number = context.current_round
        directive = context.pending_directive
        # Directive is consumed by this round only
        context.pending_directive = None
        task_type = context.instruction.task_type

        logger.info("=" * 70)
        logger.info(f"🔄 [N²] ROUND {round_number}/{context.max_rounds} ({task_type.value})")
        if directive is not None:
            logger.info(f"   🔁 Steered by repair directive: {directive.overall_guidance[:100]}")
        logger.info("=" * 70)
        await self.emitter.emit(
            ProgressEventType.ITERATION_START, round_number,
            f"Round {round_number} of {context.max_rounds}",
            has_directive=directive is not None,
        )

        round_start = time.time()
        critiques = await self._run_specialists(context, round_number, directive)
        specialist_time = time.time() - round_start

        await self.emitter.emit(
            ProgressEventType.SYNTHESIS_START, round_number, "Synthesizing critiques",
            critiques=len(critiques),
        )
        synthesis_start = time.time()
        synthesis = await self.synthesizer.synthesize(SynthesisRequest(
            instruction=context.instruction,
            critiques=tuple(critiques),
            code_unit=context.code_unit,
            task_type=task_type,
            repair_directive=directive,
            round_number=round_number,
        ))
        synthesis_time = time.time() - synthesis_start
        await self.emitter.emit(
            ProgressEventType.SYNTHESIS_COMPLETE, round_number,
            f"Quality {synthesis.quality_score:.2f}/10",
            quality=synthesis.quality_score, success=synthesis.success,
        )

        record = IterationRecord(
            round_number=round_number,
            critiques=tuple(critiques),
            synthesis=synthesis,
            quality_score=synthesis.quality_score,
            repair_directive_in=directive,
            specialist_time=specialist_time,
            synthesis_time=synthesis_time,
            total_time=time.time() - round_start,
        )
        await context.append_record(record)
        await self.emitter.emit(
            ProgressEventType.ITERATION_COMPLETE, round_number,
            f"Round {round_number} complete",
            quality=synthesis.quality_score, duration=round(record.total_time, 3),
        )

        return await self._decide(context, synthesis)

    async def _run_specialists(self, context: ConvergenceContext, round_number: int, directive) -> List[SpecialistCritique]:
        instruction = context.instruction
        await self.emitter.emit(
            ProgressEventType.AGENTS_START, round_number,
            f"Running {len(self.specialists)} specialists",
            roles=[s.role.value for s in self.specialists],
        )

        async def run_one(agent: SpecialistAgent) -> SpecialistCritique:
            critique = await agent.analyze(
                instruction, context.code_unit, instruction.task_type,
                instruction.guidance, repair_directive=directive,
            )
            await self.emitter.emit(
                ProgressEventType.AGENT_COMPLETE, round_number,
                f"{agent.role.value} finished",
                role=agent.role.value, relevance=critique.relevance,
                confidence=critique.confidence, degraded=critique.degraded,
            )
            return critique

        results = await asyncio.gather(*(run_one(a) for a in self.specialists), return_exceptions=True)

        critiques = []
        for agent, result in zip(self.specialists, results):
            if isinstance(result, ConfigurationError):
                raise result
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error(f"❌ [N²] {agent.role.value} escaped its own error handling: {result}")
                result = agent.degraded_critique("", f"unhandled error: {result}")
            critiques.append(result)

        await self.emitter.emit(
            ProgressEventType.AGENTS_COMPLETE, round_number,
            f"{len(critiques)} critiques collected",
            degraded=sum(1 for c in critiques if c.degraded),
        )
        return critiques

    async def _decide(self, context: ConvergenceContext, synthesis: SynthesisResult) -> Transition:
        round_number = context.current_round
        threshold = self.synthesizer.quality_threshold

        if synthesis.success and synthesis.quality_score >= threshold:
            return Transition(
                to="ConvergedState", reason="Quality threshold met",
                metadata={"quality": synthesis.quality_score},
            )

        if round_number >= context.max_rounds:
            await context.set_memory("stop_reason", StopReason.EXHAUSTED)
            return Transition(to="ExhaustedState", reason="Round budget exhausted")

        if self.config.early_stopping:
            scores = [r.quality_score for r in context.history]
            stop = detect_early_stop(scores, self.config.plateau_epsilon)
            if stop is not None:
                await context.set_memory("stop_reason", stop)
                return Transition(
                    to="ExhaustedState", reason=f"Early stop: {stop.value}",
                    metadata={"trend": scores[-2:]},
                )

        context.pending_directive = synthesis.repair_directive
        return Transition(
            to="RoundState", reason="Repair directive issued",
            metadata={"quality": synthesis.quality_score},
        )


class ConvergedState(LoopState):
    """Terminal: the quality gate was met."""

    async def handle(self, context: ConvergenceContext) -> None:
        await context.set_memory("stop_reason", StopReason.CONVERGED)
        logger.info(f"🏁 [N²] Converged in round {context.current_round}")
        return None


class ExhaustedState(LoopState):
    """Terminal: budget exhausted or stopped early; best round wins."""

    async def handle(self, context: ConvergenceContext) -> None:
        reason = await context.get_memory("stop_reason", StopReason.EXHAUSTED)
        logger.info(f"🏁 [N²] Stopped after round {context.current_round} ({reason.value})")
        return None
