"""
Core Schemas
============

Typed records exchanged by the classifier, specialists, synthesizer
and convergence controller.

Records produced from model output (critiques, issues) are lenient on
input and strictly typed past the parser boundary: scores are clamped
and malformed entries dropped.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def clamp(value: Any, low: float, high: float, default: float) -> float:
    """Coerce value to float in [low, high], or default when not numeric."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(low, min(high, number))


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, dict):
        return [f"{k}: {v}" for k, v in value.items()]
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            if item is None:
                continue
            if isinstance(item, dict):
                text = item.get("description") or item.get("text") or item.get("recommendation")
                items.append(str(text) if text else ", ".join(f"{k}: {v}" for k, v in item.items()))
            else:
                text = str(item).strip()
                if text:
                    items.append(text)
        return items
    return [str(value)]


# =============================================================================
# Task classification
# =============================================================================

class TaskType(str, Enum):
    """Coarse classification of the user's instruction."""
    CODE_GENERATION = "code-generation"
    BUG_FIX = "bug-fix"
    REFACTOR = "refactor"
    DOCUMENTATION = "documentation"
    REVIEW = "review"
    TEST_GENERATION = "test-generation"
    OTHER = "other"


class SpecialistRole(str, Enum):
    """Fixed viewpoints of the specialists."""
    ARCHITECT = "architect"
    ENGINEER = "engineer"
    SECURITY = "security"
    PERFORMANCE = "performance"
    TESTING = "testing"
    DOCUMENTATION = "documentation"


class Instruction(BaseModel):
    """User request plus its classification. Invariant across rounds."""
    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Natural-language request")
    task_type: TaskType = Field(default=TaskType.OTHER, description="Classified task type")
    guidance: str = Field(default="", description="Short guidance derived from the task type")


# =============================================================================
# Code context
# =============================================================================

class DiagnosticSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HINT = "hint"


class Diagnostic(BaseModel):
    """A static-analysis annotation for the code unit (1-based line)."""
    model_config = ConfigDict(frozen=True)

    line: int = Field(..., description="1-based line number")
    character: int = Field(default=0, description="0-based column")
    severity: DiagnosticSeverity = Field(default=DiagnosticSeverity.WARNING)
    message: str = Field(..., description="Diagnostic message")
    source: Optional[str] = Field(default=None, description="Tool that produced it (e.g. 'pylint')")
    code: Optional[str] = Field(default=None, description="Rule/diagnostic code")


class Selection(BaseModel):
    """The sub-range of the source the edit must target (1-based, inclusive lines)."""
    model_config = ConfigDict(frozen=True)

    start_line: int = Field(..., ge=1)
    end_line: int = Field(..., ge=1)
    text: str = Field(default="", description="Selected text")


class RelatedFile(BaseModel):
    """Additional file shown to specialists as context."""
    model_config = ConfigDict(frozen=True)

    path: str
    content: str
    relevance: Optional[str] = None


class CodeUnit(BaseModel):
    """
    The code being worked on. Immutable; shared read-only by all
    specialists of a round.
    """
    model_config = ConfigDict(frozen=True)

    source: str = Field(default="", description="Full source text")
    language: str = Field(default="plaintext", description="Language identifier")
    file_path: Optional[str] = Field(default=None, description="Path of the file")
    selection: Optional[Selection] = Field(default=None, description="Targeted sub-range")
    diagnostics: Tuple[Diagnostic, ...] = Field(default_factory=tuple)
    related_files: Tuple[RelatedFile, ...] = Field(default_factory=tuple)
    framework: Optional[str] = Field(default=None, description="Detected framework, if any")


# =============================================================================
# Specialist output
# =============================================================================

class Issue(BaseModel):
    """A single finding in a critique."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: str = Field(default="general", description="Short type tag")
    line: Optional[int] = Field(default=None, description="1-based line, if known")
    description: str = Field(..., description="What is wrong")
    fix: str = Field(
        default="",
        validation_alias=AliasChoices("fix", "suggestion", "fixSuggestion", "fix_suggestion"),
        description="Suggested fix",
    )
    impact: Optional[str] = Field(default=None, description="Optional impact note")

    @field_validator("line", mode="before")
    @classmethod
    def _coerce_line(cls, value):
        try:
            line = int(value)
        except (TypeError, ValueError):
            return None
        return line if line > 0 else None

    @field_validator("type", "fix", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        return "" if value is None else str(value)

    @field_validator("impact", mode="before")
    @classmethod
    def _coerce_impact(cls, value):
        return None if value is None else str(value)


def _as_issue_list(value: Any) -> List[Issue]:
    if not isinstance(value, (list, tuple)):
        return []
    issues = []
    for item in value:
        if isinstance(item, Issue):
            issues.append(item)
        elif isinstance(item, str) and item.strip():
            issues.append(Issue(description=item.strip()))
        elif isinstance(item, dict) and (item.get("description") or item.get("issue")):
            data = dict(item)
            data["description"] = str(data.get("description") or data.pop("issue"))
            issues.append(Issue.model_validate(data))
    return issues


class IssueBuckets(BaseModel):
    """Issues bucketed by severity."""
    model_config = ConfigDict(frozen=True)

    critical: Tuple[Issue, ...] = Field(default_factory=tuple)
    warnings: Tuple[Issue, ...] = Field(default_factory=tuple)
    suggestions: Tuple[Issue, ...] = Field(default_factory=tuple)

    @field_validator("critical", "warnings", "suggestions", mode="before")
    @classmethod
    def _coerce_issues(cls, value):
        return tuple(_as_issue_list(value))

    @property
    def total(self) -> int:
        return len(self.critical) + len(self.warnings) + len(self.suggestions)


class SpecialistCritique(BaseModel):
    """
    Output of one specialist for one round. Never mutated.

    Example:
        >>> SpecialistCritique.model_validate({
        ...     "insights": ["Uses a single global lock"],
        ...     "issues": {"critical": [], "warnings": [], "suggestions": []},
        ...     "recommendations": ["Split the lock per resource"],
        ...     "confidence": 0.8,
        ...     "relevance": 0.5,
        ... })
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role: SpecialistRole = Field(default=SpecialistRole.ENGINEER)
    insights: Tuple[str, ...] = Field(default_factory=tuple)
    issues: IssueBuckets = Field(default_factory=IssueBuckets)
    recommendations: Tuple[str, ...] = Field(default_factory=tuple)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    relevance: float = Field(default=0.5, ge=0.0, le=1.0)
    execution_time: float = Field(
        default=0.0,
        validation_alias=AliasChoices("execution_time", "executionTime"),
        description="Wall-clock seconds",
    )
    degraded: bool = Field(default=False, description="True if built from a failed/unparsable response")
    raw_response: Optional[str] = Field(default=None, exclude=True)

    @field_validator("insights", "recommendations", mode="before")
    @classmethod
    def _coerce_lists(cls, value):
        return tuple(_as_str_list(value))

    @field_validator("issues", mode="before")
    @classmethod
    def _coerce_buckets(cls, value):
        if isinstance(value, IssueBuckets):
            return value
        if isinstance(value, list):
            # flat list of issues with a severity field
            buckets = {"critical": [], "warnings": [], "suggestions": []}
            for item in value:
                severity = str(item.get("severity", "")).lower() if isinstance(item, dict) else ""
                if severity.startswith("crit") or severity in ("high", "error"):
                    buckets["critical"].append(item)
                elif severity.startswith("warn") or severity == "medium":
                    buckets["warnings"].append(item)
                else:
                    buckets["suggestions"].append(item)
            return buckets
        if not isinstance(value, dict):
            return {}
        return value

    @field_validator("confidence", "relevance", mode="before")
    @classmethod
    def _clamp_unit(cls, value):
        return clamp(value, 0.0, 1.0, 0.5)

    @property
    def weight(self) -> float:
        """Contribution weight used by the synthesizer."""
        return self.relevance * self.confidence


# =============================================================================
# Synthesis
# =============================================================================

class Observation(BaseModel):
    """Phase A observation of all critiques (kept for audit)."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    core_need: str = Field(default="", validation_alias=AliasChoices("core_need", "coreNeed"))
    patterns: Tuple[str, ...] = Field(default_factory=tuple)
    conflicts: Tuple[str, ...] = Field(default_factory=tuple)
    critical_issues: Tuple[str, ...] = Field(
        default_factory=tuple, validation_alias=AliasChoices("critical_issues", "criticalIssues")
    )
    unified_direction: str = Field(
        default="", validation_alias=AliasChoices("unified_direction", "unifiedDirection")
    )

    @field_validator("patterns", "conflicts", "critical_issues", mode="before")
    @classmethod
    def _coerce_lists(cls, value):
        return tuple(_as_str_list(value))

    @field_validator("core_need", "unified_direction", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        return "" if value is None else str(value)


class Distillation(BaseModel):
    """First-phase synthesizer output. Decides the synthesis branch."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    core_requirements: Tuple[str, ...] = Field(
        default_factory=tuple, validation_alias=AliasChoices("core_requirements", "coreRequirements")
    )
    key_constraints: Tuple[str, ...] = Field(
        default_factory=tuple, validation_alias=AliasChoices("key_constraints", "keyConstraints")
    )
    implementation_principles: Tuple[str, ...] = Field(
        default_factory=tuple,
        validation_alias=AliasChoices("implementation_principles", "implementationPrinciples"),
    )
    quality_score: float = Field(
        default=0.0, ge=0.0, le=10.0, validation_alias=AliasChoices("quality_score", "qualityScore")
    )
    rationale: str = Field(
        default="", validation_alias=AliasChoices("rationale", "scoringRationale", "scoring_rationale")
    )
    observation: Optional[Observation] = Field(default=None)
    recovered: bool = Field(default=False, description="True if built from non-structured output")

    @field_validator("core_requirements", "key_constraints", "implementation_principles", mode="before")
    @classmethod
    def _coerce_lists(cls, value):
        return tuple(_as_str_list(value))

    @field_validator("quality_score", mode="before")
    @classmethod
    def _clamp_score(cls, value):
        return clamp(value, 0.0, 10.0, 0.0)

    @field_validator("rationale", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        return "" if value is None else str(value)


class RepairDirective(BaseModel):
    """Feedback routed into the next round only."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    overall_guidance: str = Field(
        default="",
        validation_alias=AliasChoices("overall_guidance", "overallGuidance", "guidance"),
    )
    role_instructions: Dict[SpecialistRole, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("role_instructions", "agentSpecific", "agent_specific"),
    )
    focus_areas: Tuple[str, ...] = Field(
        default_factory=tuple, validation_alias=AliasChoices("focus_areas", "focusAreas")
    )

    @field_validator("overall_guidance", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        return "" if value is None else str(value)

    @field_validator("role_instructions", mode="before")
    @classmethod
    def _coerce_roles(cls, value):
        if not isinstance(value, dict):
            return {}
        aliases = {"implementation": "engineer", "architecture": "architect", "docs": "documentation"}
        known = {r.value for r in SpecialistRole}
        roles = {}
        for key, text in value.items():
            name = str(getattr(key, "value", key)).strip().lower()
            name = aliases.get(name, name)
            if name in known and text:
                roles[name] = str(text)
        return roles

    @field_validator("focus_areas", mode="before")
    @classmethod
    def _coerce_lists(cls, value):
        return tuple(_as_str_list(value))

    def for_role(self, role: SpecialistRole) -> Optional[str]:
        """Instruction for one specialist role, if any."""
        return self.role_instructions.get(role)
