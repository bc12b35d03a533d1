from .agent_config import AgentConfig, ConfigurationError, InvalidConfigError, FAST_CONFIG, ROBUST_CONFIG
from .schemas import (
    CodeUnit,
    Diagnostic,
    DiagnosticSeverity,
    Distillation,
    Instruction,
    Issue,
    IssueBuckets,
    Observation,
    RelatedFile,
    RepairDirective,
    Selection,
    SpecialistCritique,
    SpecialistRole,
    TaskType,
)
from .structured_output import ParseResult, ParseTier, StructuredOutputParser
from .task_classifier import build_instruction, classify, get_expected_relevance, get_task_guidance

__all__ = [
    "AgentConfig", "ConfigurationError", "InvalidConfigError", "FAST_CONFIG", "ROBUST_CONFIG",
    "CodeUnit", "Diagnostic", "DiagnosticSeverity", "Distillation", "Instruction", "Issue",
    "IssueBuckets", "Observation", "RelatedFile", "RepairDirective", "Selection",
    "SpecialistCritique", "SpecialistRole", "TaskType",
    "ParseResult", "ParseTier", "StructuredOutputParser",
    "build_instruction", "classify", "get_expected_relevance", "get_task_guidance",
]
