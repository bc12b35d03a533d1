"""
Specialist Agent
================

Base class for fixed-viewpoint critics. A specialist turns one model
call into a SpecialistCritique and never raises for model failures:
errors, timeouts and unparsable output all become a degraded critique.

Subclasses only declare their viewpoint (role, perspective, focus list,
relevance hints); prompting, parsing and degradation live here.
"""

import logging
import time
from abc import ABC
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from core.agent_config import AgentConfig, ConfigurationError
from core.output_technician import OutputTechnician
from core.schemas import (
    CodeUnit,
    Instruction,
    RepairDirective,
    SpecialistCritique,
    SpecialistRole,
    TaskType,
    clamp,
)
from core.structured_output import ParseResult, ParseTier, StructuredOutputParser
from core.task_classifier import get_expected_relevance, get_task_guidance
from core.text_extraction import extract_bullets, extract_labeled_number, truncate
from core.timeout_decorator import ConvergenceTimeoutError, with_configurable_timeout
from providers.provider import LLMConfig, ModelClient, RequestError
from agents.prompt_templates import (
    CRITIQUE_STRUCTURE,
    JSON_OUTPUT_INSTRUCTIONS,
    RELEVANCE_RUBRIC,
    format_code_context,
    format_repair_directive,
)

logger = logging.getLogger(__name__)

DEGRADED_CONFIDENCE = 0.1
DEGRADED_RELEVANCE = 0.2
RECOVERED_CONFIDENCE_CAP = 0.5
RECOVERED_DEFAULT_CONFIDENCE = 0.3
RAW_INSIGHT_CHARS = 500

_CRITIQUE_KEYS = {"insights", "issues", "recommendations", "confidence"}


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    try:
        float(value)
    except (TypeError, ValueError):
        return False
    return True


class SpecialistAgent(ABC):
    """
    Base specialist.

    Example:
        >>> agent = SecurityAgent(llm, config)
        >>> critique = await agent.analyze(
        ...     instruction, code_unit, TaskType.BUG_FIX, instruction.guidance
        ... )
        >>> critique.relevance, critique.confidence
    """

    role: ClassVar[SpecialistRole]
    perspective: ClassVar[str]
    focus: ClassVar[Tuple[str, ...]] = ()
    relevance_hints: ClassVar[str] = ""

    def __init__(
        self,
        llm: ModelClient,
        config: Optional[AgentConfig] = None,
        parser: Optional[StructuredOutputParser] = None,
        technician: Optional[OutputTechnician] = None,
    ):
        """
        Args:
            llm: Model client
            config: Run configuration (model, temperature, timeouts)
            parser: Structured-output parser (shared instance is fine)
            technician: Optional LLM repair pass for malformed output
        """
        self.llm = llm
        self.config = config or AgentConfig()
        self.parser = parser or StructuredOutputParser()
        self.technician = technician
        self.label = f"Specialist:{self.role.value}"

    @property
    def name(self) -> str:
        return self.role.value

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def analyze(
        self,
        instruction: Union[Instruction, str],
        code_unit: CodeUnit,
        task_type: TaskType,
        task_guidance: str,
        repair_directive: Optional[RepairDirective] = None,
    ) -> SpecialistCritique:
        """
        Critique the code unit from this specialist's viewpoint.

        Args:
            instruction: User request
            code_unit: Code under work (never mutated)
            task_type: Classified task type
            task_guidance: Guidance string for the task type
            repair_directive: Previous round's directive, if any

        Returns:
            SpecialistCritique (degraded on any model failure)

        Raises:
            ConfigurationError: Missing or rejected credentials
        """
        start = time.perf_counter()
        logger.info(f"🔎 [{self.label}] Analyzing ({task_type.value})")
        try:
            critique = await self._analyze(instruction, code_unit, task_type, task_guidance, repair_directive)
        except ConfigurationError:
            raise
        except ConvergenceTimeoutError:
            logger.error(f"⏱️ [{self.label}] Timed out after {self.config.specialist_timeout}s")
            critique = self.degraded_critique(reason=f"timed out after {self.config.specialist_timeout}s")
        except RequestError as e:
            logger.error(f"❌ [{self.label}] Model request failed: {e}")
            critique = self.degraded_critique(reason=str(e))
        except Exception as e:
            logger.exception(f"❌ [{self.label}] Unexpected failure: {e}")
            critique = self.degraded_critique(reason=f"{type(e).__name__}: {e}")

        elapsed = time.perf_counter() - start
        logger.info(
            f"✅ [{self.label}] Done in {elapsed:.2f}s "
            f"(confidence={critique.confidence:.2f}, relevance={critique.relevance:.2f}, "
            f"issues={critique.issues.total}{', degraded' if critique.degraded else ''})"
        )
        return critique.model_copy(update={"execution_time": elapsed})

    def degraded_critique(self, raw_text: str = "", reason: str = "") -> SpecialistCritique:
        """Low-confidence, low-relevance critique with no issues."""
        if raw_text and raw_text.strip():
            insights = [truncate(raw_text.strip(), RAW_INSIGHT_CHARS)]
        else:
            insights = [f"{self.role.value} analysis unavailable{': ' + reason if reason else ''}"]
        return SpecialistCritique(
            role=self.role,
            insights=insights,
            confidence=DEGRADED_CONFIDENCE,
            relevance=DEGRADED_RELEVANCE,
            degraded=True,
            raw_response=raw_text or None,
        )

    # -------------------------------------------------------------------------
    # Prompting
    # -------------------------------------------------------------------------

    def build_system_prompt(self) -> str:
        focus = "\n".join(f"- {item}" for item in self.focus)
        hints = f"\n{self.relevance_hints}" if self.relevance_hints else ""
        return (
            f"SPECIALIST ROLE: {self.role.value}\n"
            f"You are {self.perspective}\n\n"
            f"Analyze the code ONLY from your perspective. Focus on:\n{focus}\n"
            f"{RELEVANCE_RUBRIC}{hints}\n"
            f"{JSON_OUTPUT_INSTRUCTIONS}"
        )

    def build_messages(
        self,
        instruction: Union[Instruction, str],
        code_unit: CodeUnit,
        task_type: TaskType,
        task_guidance: str,
        repair_directive: Optional[RepairDirective] = None,
    ) -> List[Dict[str, str]]:
        text = instruction.text if isinstance(instruction, Instruction) else str(instruction)
        expected = get_expected_relevance(task_type, self.role)
        user = (
            f"TASK TYPE: {task_type.value}\n"
            f"TASK GUIDANCE: {task_guidance}\n"
            f"ROLE FOCUS: {get_task_guidance(task_type, self.role)}\n"
            f"EXPECTED RELEVANCE BASELINE: {expected:.1f}\n\n"
            f"USER REQUEST: {text}\n\n"
            f"CODE CONTEXT:\n{format_code_context(code_unit)}\n"
            f"{format_repair_directive(repair_directive, self.role)}"
        )
        return [
            {"role": "system", "content": self.build_system_prompt()},
            {"role": "user", "content": user},
        ]

    # -------------------------------------------------------------------------
    # Model call and parsing
    # -------------------------------------------------------------------------

    @with_configurable_timeout(lambda self: self.config.specialist_timeout)
    async def _analyze(
        self,
        instruction: Union[Instruction, str],
        code_unit: CodeUnit,
        task_type: TaskType,
        task_guidance: str,
        repair_directive: Optional[RepairDirective],
    ) -> SpecialistCritique:
        messages = self.build_messages(instruction, code_unit, task_type, task_guidance, repair_directive)
        llm_config = LLMConfig(
            model=self.config.specialist_model,
            temperature=self.config.specialist_temperature,
            max_tokens=self.config.specialist_max_tokens,
        )
        response = await self.llm.complete(messages, llm_config)
        raw = response.content or ""
        logger.debug(f"[{self.label}] Raw response ({len(raw)} chars): {raw[:300]}")

        result = self.parse_critique(raw, task_type)

        if result.recovered and self.technician is not None and raw.strip():
            repaired = await self.technician.repair(raw, self.label, CRITIQUE_STRUCTURE)
            if repaired:
                second = self.parse_critique(repaired, task_type)
                if second.tier == ParseTier.DIRECT:
                    logger.info(f"🔧 [{self.label}] Technician repair succeeded")
                    result = second

        return self._finalize(result.value)

    def parse_critique(self, raw_text: str, task_type: TaskType) -> ParseResult[SpecialistCritique]:
        """Run the parser tiers for a critique."""
        return self.parser.parse_with_report(
            raw_text,
            fallback=self.degraded_critique(raw_text, reason="unparsable response"),
            context_label=self.label,
            coerce=lambda data: self._coerce(data, task_type),
            auto_wrap=lambda text: self._recover_from_text(text, task_type),
        )

    def _coerce(self, data: Any, task_type: TaskType) -> SpecialistCritique:
        if isinstance(data, dict) and len(data) == 1:
            inner = next(iter(data.values()))
            if isinstance(inner, dict) and _CRITIQUE_KEYS & set(inner):
                data = inner
        if not isinstance(data, dict) or not (_CRITIQUE_KEYS & set(data)):
            raise ValueError("not a critique object")

        payload = dict(data)
        payload["role"] = self.role
        payload.pop("execution_time", None)
        payload.pop("degraded", None)
        if not _is_number(payload.get("relevance")):
            payload["relevance"] = get_expected_relevance(task_type, self.role)
        if not _is_number(payload.get("confidence")):
            payload["confidence"] = 0.5
        return SpecialistCritique.model_validate(payload)

    def _recover_from_text(self, text: str, task_type: TaskType) -> SpecialistCritique:
        insights = extract_bullets(text, section="insights") or [truncate(text, RAW_INSIGHT_CHARS)]
        recommendations = extract_bullets(text, section="recommendations")
        confidence = extract_labeled_number(text, "confidence")
        relevance = extract_labeled_number(text, "relevance")

        confidence = (
            min(clamp(confidence, 0.0, 1.0, RECOVERED_DEFAULT_CONFIDENCE), RECOVERED_CONFIDENCE_CAP)
            if confidence is not None
            else RECOVERED_DEFAULT_CONFIDENCE
        )
        if relevance is None:
            relevance = get_expected_relevance(task_type, self.role)

        return SpecialistCritique(
            role=self.role,
            insights=insights,
            recommendations=recommendations,
            confidence=confidence,
            relevance=relevance,
            degraded=True,
            raw_response=text,
        )

    def _finalize(self, critique: SpecialistCritique) -> SpecialistCritique:
        if critique.recommendations or not critique.issues.total:
            return critique
        derived = [
            issue.fix for issue in (*critique.issues.critical, *critique.issues.warnings)
            if issue.fix
        ]
        if not derived:
            return critique
        return critique.model_copy(update={"recommendations": tuple(derived[:5])})
