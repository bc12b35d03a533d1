"""
LLM Synthesis Strategy
=======================

Two-phase LLM synthesizer (Observe/Distill, then Adapt or Integrate).

Phase A merges all critiques, weighted by relevance x confidence, into
a Distillation whose quality score is capped by a deterministic
readiness score: unresolved critical issues pull it down much harder
than suggestions. Phase B either integrates the final content
(score >= threshold) or produces a repair directive for the next round.

Controller doesn't see:
- Prompt engineering
- Model selection
- Temperature
- Token limits
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from core.agent_config import AgentConfig, ConfigurationError
from core.schemas import (
    CodeUnit,
    Distillation,
    Observation,
    RepairDirective,
    SpecialistCritique,
    SpecialistRole,
    TaskType,
    clamp,
)
from core.structured_output import StructuredOutputParser
from core.text_extraction import extract_bullets, extract_labeled_number, strip_code_fences, truncate
from providers.provider import LLMConfig, ModelClient, RequestError
from agents.prompt_templates import format_code_context
from convergenceAgent.synthesis_contracts import SynthesisRequest, SynthesisResult
from convergenceAgent.synthesis_strategy import SynthesisStrategy

logger = logging.getLogger("ConvergenceEngine")

RECOVERY_PENALTY = 1.0
EMPTY_DOCUMENT_CHARS = 200
PROSE_LANGUAGES = frozenset({"markdown", "plaintext", "text", "restructuredtext", "asciidoc", "rst", "md"})

DISTILL_MARKER = "SYNTHESIS PHASE: OBSERVE & DISTILL"
ADAPT_MARKER = "SYNTHESIS PHASE: ADAPT"
INTEGRATE_MARKER = "SYNTHESIS PHASE: INTEGRATE"
FULL_DOCUMENT_MARKER = "SCOPE: COMPLETE DOCUMENT"

_DISTILL_KEYS = ("qualityScore", "quality_score", "score")


def is_empty_document(code_unit: CodeUnit, task_type: TaskType) -> bool:
    """Near-empty file whose task asks for a document, not a diff."""
    if len(code_unit.source.strip()) >= EMPTY_DOCUMENT_CHARS:
        return False
    return task_type == TaskType.DOCUMENTATION or code_unit.language.lower() in PROSE_LANGUAGES


@dataclass
class _PhaseA:
    distillation: Distillation
    model_score: Optional[float]
    recovered: bool = False


@dataclass
class _Integration:
    code: str
    explanation: str = ""
    key_decisions: Dict[str, str] = field(default_factory=dict)
    recovered: bool = False


class ODAISynthesisStrategy(SynthesisStrategy):
    """
    Observe, Distill, Adapt, Integrate.

    Example:
        >>> strategy = ODAISynthesisStrategy(llm, AgentConfig(quality_threshold=9.0))
        >>> result = await strategy.synthesize(request)
        >>> result.success, result.quality_score
    """

    def __init__(
        self,
        llm: ModelClient,
        config: Optional[AgentConfig] = None,
        parser: Optional[StructuredOutputParser] = None,
    ):
        """
        Args:
            llm: Model client
            config: Threshold, models, temperatures and readiness penalties
            parser: Structured-output parser
        """
        self.llm = llm
        self.config = config or AgentConfig()
        self.parser = parser or StructuredOutputParser()
        self.quality_threshold = self.config.quality_threshold

    # =========================================================================
    # Entry point
    # =========================================================================

    async def synthesize(self, request: SynthesisRequest) -> SynthesisResult:
        """
        Synthesize one round. Never raises except for configuration errors.
        """
        logger.info(
            f"🧬 [ODAI] Round {request.round_number}: synthesizing {len(request.critiques)} critiques"
        )

        try:
            phase_a = await self.observe_and_distill(request)
        except ConfigurationError:
            raise
        except RequestError as e:
            logger.error(f"❌ [ODAI] Distill request failed: {e}")
            return self._distill_failed(request, e)
        except Exception as e:
            logger.exception(f"❌ [ODAI] Distill failed unexpectedly: {e}")
            return self._distill_failed(request, e)

        score = self.aggregate_quality(phase_a.model_score, request.critiques, phase_a.recovered)
        distillation = phase_a.distillation.model_copy(update={"quality_score": score})
        logger.info(
            f"📊 [ODAI] Quality {score:.2f}/10 (model={phase_a.model_score}, "
            f"threshold={self.quality_threshold})"
        )

        if score >= self.quality_threshold:
            result = await self._integrate_or_degrade(request, distillation)
        else:
            result = await self._adapt_or_default(request, distillation)
        return self._enforce_acceptance(result, request)

    # =========================================================================
    # Scoring
    # =========================================================================

    def critique_readiness(self, critique: SpecialistCritique) -> float:
        """10 minus severity-weighted issue penalties, clamped to [0, 10]."""
        issues = critique.issues
        penalty = (
            self.config.critical_penalty * len(issues.critical)
            + self.config.warning_penalty * len(issues.warnings)
            + self.config.suggestion_penalty * len(issues.suggestions)
        )
        return clamp(10.0 - penalty, 0.0, 10.0, 0.0)

    def weighted_readiness(self, critiques: Sequence[SpecialistCritique]) -> Optional[float]:
        """
        Mean readiness weighted by relevance x confidence; None if total weight is 0.

        Degraded critiques without issues carry no evidence either way and
        are left out; a degraded critique that still reports issues counts.
        """
        evidence = [c for c in critiques if not (c.degraded and c.issues.total == 0)]
        total_weight = sum(c.weight for c in evidence)
        if total_weight <= 0:
            return None
        return sum(c.weight * self.critique_readiness(c) for c in evidence) / total_weight

    def aggregate_quality(
        self,
        model_score: Optional[float],
        critiques: Sequence[SpecialistCritique],
        recovered: bool = False,
    ) -> float:
        """
        quality = min(model score, weighted readiness), minus a recovery
        penalty when phase A had to be salvaged from free text.
        """
        readiness = self.weighted_readiness(critiques)
        candidates = [s for s in (model_score, readiness) if s is not None]
        score = min(candidates) if candidates else 0.0
        if recovered:
            score -= RECOVERY_PENALTY
        return round(clamp(score, 0.0, 10.0, 0.0), 2)

    def _conservative_score(self, candidate: float) -> float:
        return round(max(0.0, min(candidate, self.quality_threshold) - RECOVERY_PENALTY), 2)

    # =========================================================================
    # Phase A: Observe & Distill
    # =========================================================================

    def _format_critiques(self, critiques: Sequence[SpecialistCritique]) -> str:
        # Heaviest first, then role, then text: input order never matters
        blocks = []
        for c in critiques:
            lines = [
                f"### {c.role.value.upper()} (relevance={c.relevance:.2f}, confidence={c.confidence:.2f}, "
                f"weight={c.weight:.2f}{', DEGRADED' if c.degraded else ''})"
            ]
            if c.insights:
                lines.append("Insights:")
                lines.extend(f"- {i}" for i in c.insights)
            for label, bucket in (
                ("CRITICAL", c.issues.critical),
                ("WARNING", c.issues.warnings),
                ("SUGGESTION", c.issues.suggestions),
            ):
                for issue in bucket:
                    where = f" (line {issue.line})" if issue.line else ""
                    fix = f" -> fix: {issue.fix}" if issue.fix else ""
                    lines.append(f"[{label}] {issue.type}{where}: {issue.description}{fix}")
            if c.recommendations:
                lines.append("Recommendations:")
                lines.extend(f"- {r}" for r in c.recommendations)
            blocks.append((-c.weight, c.role.value, "\n".join(lines)))
        blocks.sort()
        return "\n\n".join(b[2] for b in blocks) if blocks else "(no critiques)"

    def _format_directive(self, directive: Optional[RepairDirective]) -> str:
        if directive is None:
            return ""
        lines = ["", "PREVIOUS ROUND'S REPAIR DIRECTIVE (check whether it was addressed):"]
        if directive.overall_guidance:
            lines.append(f"Overall: {directive.overall_guidance}")
        for role, text in sorted(directive.role_instructions.items(), key=lambda kv: kv[0].value):
            lines.append(f"- {role.value}: {text}")
        if directive.focus_areas:
            lines.append(f"Focus areas: {', '.join(directive.focus_areas)}")
        return "\n".join(lines)

    async def observe_and_distill(self, request: SynthesisRequest) -> _PhaseA:
        """Phase A: merge weighted critiques into a scored distillation."""
        system = f"""{DISTILL_MARKER}
You are the synthesis lead of a team of code specialists.

1. OBSERVE: read every critique. Weight each by its "weight" (relevance x confidence):
   low-weight critiques should barely influence your conclusions.
2. DISTILL: consolidate the core requirements, key constraints and implementation
   principles a complete solution must satisfy.
3. SCORE (0-10): how ready is a solution that addresses these combined requirements?
   Unresolved CRITICAL issues must weigh the score down far more than missing suggestions.
   Do not average confidences.

Return ONLY JSON:
{{
  "observation": {{"coreNeed": "...", "patterns": [], "conflicts": [], "criticalIssues": [], "unifiedDirection": "..."}},
  "coreRequirements": ["..."],
  "keyConstraints": ["..."],
  "implementationPrinciples": ["..."],
  "qualityScore": 7.5,
  "scoringRationale": "..."
}}"""
        user = (
            f"USER REQUEST: {request.instruction.text}\n"
            f"TASK TYPE: {request.task_type.value}\n"
            f"ROUND: {request.round_number}\n"
            f"{self._format_directive(request.repair_directive)}\n\n"
            f"SPECIALIST CRITIQUES:\n{self._format_critiques(request.critiques)}\n\n"
            f"CODE CONTEXT:\n{format_code_context(request.code_unit)}"
        )
        response = await self.llm.complete(
            [{"role": "system", "content": system}, {"role": "user", "content": user}],
            LLMConfig(
                model=self.config.synthesis_model,
                temperature=self.config.distill_temperature,
                max_tokens=self.config.specialist_max_tokens,
            ),
        )
        return self.parser.parse(
            response.content,
            fallback=_PhaseA(Distillation(rationale="Distillation response was unusable"), None, True),
            context_label="Distill",
            coerce=self._coerce_distillation,
            auto_wrap=self._recover_distillation,
        )

    def _coerce_distillation(self, data: Any) -> _PhaseA:
        if not isinstance(data, dict):
            raise ValueError("distillation must be an object")
        if "distillation" in data and isinstance(data["distillation"], dict):
            merged = dict(data["distillation"])
            merged.setdefault("observation", data.get("observation"))
            data = merged
        raw_score = next((data[k] for k in _DISTILL_KEYS if k in data), None)
        if raw_score is None:
            raise ValueError("distillation has no quality score")
        model_score = clamp(raw_score, 0.0, 10.0, -1.0)
        if model_score < 0:
            raise ValueError(f"non-numeric quality score: {raw_score!r}")

        payload = {k: v for k, v in data.items() if k not in _DISTILL_KEYS and k != "observation"}
        observation = data.get("observation")
        distillation = Distillation.model_validate({
            **payload,
            "quality_score": model_score,
            "observation": Observation.model_validate(observation) if isinstance(observation, dict) else None,
        })
        return _PhaseA(distillation, model_score)

    def _recover_distillation(self, text: str) -> _PhaseA:
        model_score = extract_labeled_number(text, "qualityScore", "quality score", "quality_score", "score")
        if model_score is not None:
            model_score = clamp(model_score, 0.0, 10.0, 0.0)
        requirements = extract_bullets(text, section="coreRequirements") or extract_bullets(text)
        distillation = Distillation(
            core_requirements=requirements,
            key_constraints=extract_bullets(text, section="keyConstraints"),
            rationale=truncate(text, 1000),
            quality_score=model_score or 0.0,
            recovered=True,
        )
        return _PhaseA(distillation, model_score, recovered=True)

    # =========================================================================
    # Phase B: Adapt
    # =========================================================================

    async def _adapt_or_default(self, request: SynthesisRequest, distillation: Distillation) -> SynthesisResult:
        try:
            directive = await self.adapt(request, distillation)
        except ConfigurationError:
            raise
        except RequestError as e:
            logger.error(f"❌ [ODAI] Adapt request failed: {e}")
            directive = self.default_directive(request, distillation)
        except Exception as e:
            logger.exception(f"❌ [ODAI] Adapt failed unexpectedly: {e}")
            directive = self.default_directive(request, distillation)

        logger.info(
            f"🔁 [ODAI] Repair directive: {len(directive.role_instructions)} role instruction(s), "
            f"{len(directive.focus_areas)} focus area(s)"
        )
        return SynthesisResult(
            success=False,
            quality_score=distillation.quality_score,
            explanation=distillation.rationale
            or f"Quality {distillation.quality_score:.2f} below threshold {self.quality_threshold}",
            repair_directive=directive,
            distillation=distillation,
            recovered=distillation.recovered,
        )

    async def adapt(self, request: SynthesisRequest, distillation: Distillation) -> RepairDirective:
        """Phase B (below threshold): produce a directive for the next round."""
        roles = ", ".join(r.value for r in SpecialistRole)
        system = f"""{ADAPT_MARKER}
The synthesized solution scored {distillation.quality_score:.2f}/10, below the acceptance
threshold of {self.quality_threshold}. Produce a repair directive for the next round.

- overallGuidance: what must change overall
- agentSpecific: one concrete corrective instruction per specialist role that contributed
  to the shortfall (roles: {roles})
- focusAreas: the areas responsible for the score shortfall

Return ONLY JSON:
{{"overallGuidance": "...", "agentSpecific": {{"security": "..."}}, "focusAreas": ["..."]}}"""
        user = (
            f"USER REQUEST: {request.instruction.text}\n"
            f"TASK TYPE: {request.task_type.value}\n\n"
            f"CORE REQUIREMENTS:\n" + "\n".join(f"- {r}" for r in distillation.core_requirements) + "\n\n"
            f"KEY CONSTRAINTS:\n" + "\n".join(f"- {c}" for c in distillation.key_constraints) + "\n\n"
            f"SCORING RATIONALE: {distillation.rationale}\n"
            f"{self._format_directive(request.repair_directive)}\n\n"
            f"SPECIALIST CRITIQUES:\n{self._format_critiques(request.critiques)}"
        )
        response = await self.llm.complete(
            [{"role": "system", "content": system}, {"role": "user", "content": user}],
            LLMConfig(
                model=self.config.synthesis_model,
                temperature=self.config.adapt_temperature,
                max_tokens=self.config.specialist_max_tokens,
            ),
        )
        return self.parser.parse(
            response.content,
            fallback=self.default_directive(request, distillation),
            context_label="Adapt",
            coerce=self._coerce_directive,
            auto_wrap=lambda text: RepairDirective(
                overall_guidance=truncate(text, 1500),
                focus_areas=extract_bullets(text, section="focusAreas") or extract_bullets(text, limit=5),
            ),
        )

    @staticmethod
    def _coerce_directive(data: Any) -> RepairDirective:
        if isinstance(data, dict) and isinstance(data.get("repairDirective"), dict):
            data = data["repairDirective"]
        keys = {"overallGuidance", "overall_guidance", "guidance", "agentSpecific",
                "agent_specific", "role_instructions", "focusAreas", "focus_areas"}
        if not isinstance(data, dict) or not keys & set(data):
            raise ValueError("not a repair directive")
        directive = RepairDirective.model_validate(data)
        if not (directive.overall_guidance or directive.role_instructions or directive.focus_areas):
            raise ValueError("empty repair directive")
        return directive

    def default_directive(self, request: SynthesisRequest, distillation: Optional[Distillation]) -> RepairDirective:
        """Deterministic directive built from the critiques' own findings."""
        role_instructions = {}
        focus_areas: List[str] = []
        for critique in sorted(request.critiques, key=lambda c: c.role.value):
            blocking = (*critique.issues.critical, *critique.issues.warnings)
            if not blocking:
                continue
            top = blocking[0]
            role_instructions[critique.role] = (
                f"Resolve: {top.description}" + (f" (suggested fix: {top.fix})" if top.fix else "")
            )
            focus_areas.extend(i.description for i in critique.issues.critical)
        guidance = (
            distillation.rationale if distillation and distillation.rationale
            else "Address all critical issues and unmet requirements before regenerating."
        )
        return RepairDirective(
            overall_guidance=guidance,
            role_instructions=role_instructions,
            focus_areas=focus_areas[:8] or list(distillation.core_requirements[:5] if distillation else ()),
        )

    # =========================================================================
    # Phase B: Integrate
    # =========================================================================

    async def _integrate_or_degrade(self, request: SynthesisRequest, distillation: Distillation) -> SynthesisResult:
        try:
            integration = await self.integrate(request, distillation)
        except ConfigurationError:
            raise
        except RequestError as e:
            logger.error(f"❌ [ODAI] Integrate request failed: {e}")
            return self._conservative_result(
                request, distillation, distillation.quality_score, f"integration failed: {e}"
            )
        except Exception as e:
            logger.exception(f"❌ [ODAI] Integrate failed unexpectedly: {e}")
            return self._conservative_result(
                request, distillation, distillation.quality_score, f"integration failed: {e}"
            )

        if integration is None or not integration.code.strip():
            return self._conservative_result(
                request, distillation, distillation.quality_score, "integration produced no content"
            )

        logger.info(
            f"✅ [ODAI] Integrated {len(integration.code)} chars"
            f"{' (recovered from raw output)' if integration.recovered else ''}"
        )
        return SynthesisResult(
            success=True,
            quality_score=distillation.quality_score,
            code=integration.code,
            explanation=integration.explanation or distillation.rationale,
            key_decisions=integration.key_decisions or None,
            distillation=distillation,
            recovered=integration.recovered or distillation.recovered,
        )

    def _scope_instructions(self, code_unit: CodeUnit, task_type: TaskType) -> str:
        if is_empty_document(code_unit, task_type):
            return f"""{FULL_DOCUMENT_MARKER}
- The file is currently EMPTY or a stub (under {EMPTY_DOCUMENT_CHARS} characters).
- Generate the COMPLETE, COMPREHENSIVE {code_unit.language} document from scratch.
- Include ALL sections, content, examples, diagrams and details the requirements call for.
- This is a production-ready, thorough document (thousands of characters), not an outline."""
        if code_unit.selection:
            s = code_unit.selection
            return (
                f"SCOPE: SELECTION\nGenerate ONLY the replacement for lines {s.start_line}-{s.end_line} "
                f"(the selected portion). Use the rest of the file for imports, types and structure."
            )
        return "SCOPE: FILE\nGenerate the complete updated content of the file."

    async def integrate(self, request: SynthesisRequest, distillation: Distillation) -> Optional[_Integration]:
        """Phase B (at or above threshold): generate the final content."""
        system = f"""{INTEGRATE_MARKER}
You are a code and documentation generation assistant.
Generate COMPLETE content that fulfills every requirement; never stubs or placeholders.

Return ONLY JSON (the content goes in "code" as a JSON string, without markdown fences):
{{
  "success": true,
  "code": "...",
  "explanation": "What was implemented and why",
  "keyDecisions": {{"architecture": "...", "security": "...", "performance": "...", "testing": "...", "documentation": "..."}}
}}"""
        numbered = lambda items: "\n".join(f"{i}. {x}" for i, x in enumerate(items, 1)) or "(none)"
        user = (
            f"{self._scope_instructions(request.code_unit, request.task_type)}\n\n"
            f"USER REQUEST: {request.instruction.text}\n\n"
            f"REQUIREMENTS (fulfill ALL):\n{numbered(distillation.core_requirements)}\n\n"
            f"CONSTRAINTS (apply ALL):\n{numbered(distillation.key_constraints)}\n\n"
            f"IMPLEMENTATION PRINCIPLES:\n{numbered(distillation.implementation_principles)}\n\n"
            f"CODE CONTEXT:\n{format_code_context(request.code_unit)}"
        )
        response = await self.llm.complete(
            [{"role": "system", "content": system}, {"role": "user", "content": user}],
            LLMConfig(
                model=self.config.synthesis_model,
                temperature=self.config.integrate_temperature,
                max_tokens=self.config.synthesis_max_tokens,
            ),
        )
        return self.parser.parse(
            response.content,
            fallback=None,
            context_label="Integrate",
            coerce=self._coerce_integration,
            auto_wrap=lambda text: _Integration(
                code=strip_code_fences(text),
                explanation="Content recovered from a non-JSON response",
                recovered=True,
            ),
        )

    @staticmethod
    def _coerce_integration(data: Any) -> _Integration:
        if not isinstance(data, dict):
            raise ValueError("integration must be an object")
        code = data.get("code")
        if not isinstance(code, str) or not code.strip():
            raise ValueError("integration has no code")
        decisions = data.get("keyDecisions") or data.get("key_decisions") or {}
        if not isinstance(decisions, dict):
            decisions = {}
        return _Integration(
            code=strip_code_fences(code),
            explanation=str(data.get("explanation") or ""),
            key_decisions={str(k): str(v) for k, v in decisions.items() if v},
        )

    # =========================================================================
    # Guards
    # =========================================================================

    def _distill_failed(self, request: SynthesisRequest, error: Exception) -> SynthesisResult:
        readiness = self.weighted_readiness(request.critiques)
        return self._conservative_result(
            request, None, readiness if readiness is not None else 0.0, f"distillation failed: {error}"
        )

    def _conservative_result(
        self,
        request: SynthesisRequest,
        distillation: Optional[Distillation],
        candidate_score: float,
        reason: str,
    ) -> SynthesisResult:
        score = self._conservative_score(candidate_score)
        logger.warning(f"⚠️ [ODAI] Conservative result ({reason}), quality {score:.2f}")
        directive = self.default_directive(request, distillation)
        if distillation is not None:
            distillation = distillation.model_copy(update={"quality_score": score})
        return SynthesisResult(
            success=False,
            quality_score=score,
            explanation=f"Synthesis degraded: {reason}",
            repair_directive=directive,
            distillation=distillation,
            recovered=True,
        )

    def _enforce_acceptance(self, result: SynthesisResult, request: SynthesisRequest) -> SynthesisResult:
        if result.success or result.quality_score < self.quality_threshold:
            return result
        return self._conservative_result(request, result.distillation, result.quality_score, "acceptance guard")
