"""
Task Classifier
===============

Pure keyword classifier mapping a free-text instruction to a TaskType,
plus the per-role guidance and expected-relevance tables the
specialists use to calibrate their critiques.
"""

import re
from typing import Dict, List, Pattern, Tuple, Union

from core.schemas import Instruction, SpecialistRole, TaskType


def _compile(*patterns: str) -> List[Pattern]:
    return [re.compile(p) for p in patterns]


# Checked in order; first match wins
_RULES: Tuple[Tuple[TaskType, List[Pattern]], ...] = (
    (TaskType.DOCUMENTATION, _compile(
        r"\b(document|documentation|readme|guide|explain|describe|comment|comments|doc|docs|docstrings?)\b",
        r"\badd\b.*\bcomments?\b",
        r"\bwrite\b.*\bdoc",
        r"\b(create|write|generate|draft)\b.*\b(plan|readme|guide|docs?|documentation|spec|specification|overview|tutorial|changelog)\b",
    )),
    (TaskType.TEST_GENERATION, _compile(
        r"\b(write|add|create|generate|improve|increase)\b.*\b(tests?|unit tests?|test cases?|test suite|specs|coverage)\b",
        r"^\s*(unit|integration|regression|property)[ -]tests?\b",
    )),
    (TaskType.BUG_FIX, _compile(
        r"\b(fix|fixes|bug|bugs|error|errors|issue|problem|crash|crashes|fail|fails|failing)\b",
        r"\bdebug",
        r"\bnot working\b",
        r"\bbroken\b",
        r"\bthrows?\b",
    )),
    (TaskType.REFACTOR, _compile(
        r"\b(refactor|refactoring|clean|cleanup|simplify|restructure|reorgani[zs]e|rename|extract|moderni[zs]e)\b",
        r"\bimprove\b.*\b(structure|readability)\b",
        r"\bmake\b.*\bcleaner\b",
        r"\b(optimi[zs]e|performance|faster|speed up|slow)\b",
        r"\breduce\b.*\b(time|memory|latency)\b",
    )),
    (TaskType.REVIEW, _compile(
        r"\b(review|audit|critique|assess|evaluate|inspect)\b",
        r"\bcheck\b.*\b(code|quality|security|correctness)\b",
        r"\bany (problems|concerns|smells)\b",
    )),
    (TaskType.CODE_GENERATION, _compile(
        r"\b(add|create|implement|build|generate|write)\b.*\b(function|class|component|feature|method|module|endpoint|api|script|cli)\b",
        r"\bnew\s+(function|class|component|feature|module)\b",
        r"\b(implement|scaffold)\b",
        r"\bmake\b.*\bdo\b",
    )),
)


def classify(text: str) -> TaskType:
    """
    Classify an instruction into a TaskType.

    Deterministic and total: unmatched input maps to TaskType.OTHER.

    Example:
        >>> classify("Fix the crash when the list is empty")
        <TaskType.BUG_FIX: 'bug-fix'>
        >>> classify("hello")
        <TaskType.OTHER: 'other'>
    """
    lowered = (text or "").lower()
    for task_type, patterns in _RULES:
        if any(p.search(lowered) for p in patterns):
            return task_type
    return TaskType.OTHER


_TASK_GUIDANCE: Dict[TaskType, str] = {
    TaskType.CODE_GENERATION: "Produce new, complete, working code that integrates with the existing context.",
    TaskType.BUG_FIX: "Find the root cause, fix it with a minimal change and prevent regressions.",
    TaskType.REFACTOR: "Improve structure or performance while preserving observable behavior.",
    TaskType.DOCUMENTATION: "Produce complete, well-structured documentation for every audience.",
    TaskType.REVIEW: "Assess the code critically and report concrete, prioritized findings.",
    TaskType.TEST_GENERATION: "Produce meaningful tests covering normal paths, edge cases and failures.",
    TaskType.OTHER: "Analyze the request and respond with the most useful change.",
}

_ROLE_GUIDANCE: Dict[TaskType, Dict[SpecialistRole, str]] = {
    TaskType.DOCUMENTATION: {
        SpecialistRole.ARCHITECT: "Focus on: What architectural decisions should be documented? What design patterns are used? What are the high-level concepts?",
        SpecialistRole.ENGINEER: "Focus on: What implementation details are important? What are the technical requirements? What are the dependencies?",
        SpecialistRole.SECURITY: "Focus on: What security considerations should be documented? What threats are mitigated? What authentication/authorization is used?",
        SpecialistRole.PERFORMANCE: "Focus on: What performance characteristics should be documented? What are the bottlenecks? What optimizations are present?",
        SpecialistRole.TESTING: "Focus on: What testing approach should be documented? What test scenarios are critical? What coverage is expected?",
        SpecialistRole.DOCUMENTATION: "Focus on: Structure, clarity, completeness. Ensure all sections are present, examples are clear, and the document serves all audiences.",
    },
    TaskType.CODE_GENERATION: {
        SpecialistRole.ARCHITECT: "Focus on: What design patterns fit? How does this integrate with existing architecture? What are the long-term maintainability implications?",
        SpecialistRole.ENGINEER: "Focus on: Correct implementation, edge cases, error handling, type safety, and adherence to coding standards.",
        SpecialistRole.SECURITY: "Focus on: Input validation, injection attacks, authentication/authorization, data exposure, secure defaults.",
        SpecialistRole.PERFORMANCE: "Focus on: Algorithm complexity, memory usage, caching opportunities, unnecessary operations.",
        SpecialistRole.TESTING: "Focus on: Testability of the new code, unit test scenarios, integration test needs.",
        SpecialistRole.DOCUMENTATION: "Focus on: Inline comments for complex logic, public API documentation, usage examples.",
    },
    TaskType.BUG_FIX: {
        SpecialistRole.ARCHITECT: "Focus on: Is this a symptom of a deeper architectural issue? Are there design flaws that enabled this bug?",
        SpecialistRole.ENGINEER: "Focus on: Root cause analysis, the actual fix implementation, preventing similar bugs, code correctness.",
        SpecialistRole.SECURITY: "Focus on: Is this bug a security vulnerability? Could it be exploited? Are there related security issues?",
        SpecialistRole.PERFORMANCE: "Focus on: Does the fix introduce performance regressions? Are there more efficient solutions?",
        SpecialistRole.TESTING: "Focus on: Regression tests for this bug, how did this bug slip through? Test coverage gaps.",
        SpecialistRole.DOCUMENTATION: "Focus on: Document the bug, its cause, and the fix for future reference.",
    },
    TaskType.REFACTOR: {
        SpecialistRole.ARCHITECT: "Focus on: Improved structure, separation of concerns, cleaner abstractions, scalability bottlenecks.",
        SpecialistRole.ENGINEER: "Focus on: Correctness preservation, incremental changes, maintaining behavior, reducing complexity.",
        SpecialistRole.SECURITY: "Focus on: Ensure the change does not weaken security properties (e.g. timing attacks, cache poisoning).",
        SpecialistRole.PERFORMANCE: "Focus on: Do not degrade performance; measurable gains, trade-offs and hot paths when optimizing.",
        SpecialistRole.TESTING: "Focus on: Regression tests to ensure behavior is preserved, improved testability, benchmarks when optimizing.",
        SpecialistRole.DOCUMENTATION: "Focus on: Update documentation to reflect the new structure, clarify intent and trade-offs.",
    },
    TaskType.REVIEW: {
        SpecialistRole.ARCHITECT: "Focus on: Design soundness, coupling, cohesion, and whether the structure will scale.",
        SpecialistRole.ENGINEER: "Focus on: Correctness, edge cases, error handling and readability of the implementation.",
        SpecialistRole.SECURITY: "Focus on: Vulnerabilities, unsafe input handling, secrets and data exposure.",
        SpecialistRole.PERFORMANCE: "Focus on: Complexity hot spots, wasteful allocations, blocking calls.",
        SpecialistRole.TESTING: "Focus on: Test coverage gaps and untestable constructs.",
        SpecialistRole.DOCUMENTATION: "Focus on: Missing or misleading comments and public API documentation.",
    },
    TaskType.TEST_GENERATION: {
        SpecialistRole.ARCHITECT: "Focus on: Test boundaries, seams for mocking, and which units deserve isolation.",
        SpecialistRole.ENGINEER: "Focus on: Correct test code, fixtures, realistic inputs and deterministic assertions.",
        SpecialistRole.SECURITY: "Focus on: Negative tests for malicious or malformed input.",
        SpecialistRole.PERFORMANCE: "Focus on: Keeping the suite fast; identify candidates for benchmarks.",
        SpecialistRole.TESTING: "Focus on: Coverage of normal paths, edge cases, error paths and regressions.",
        SpecialistRole.DOCUMENTATION: "Focus on: Descriptive test names and docstrings explaining intent.",
    },
    TaskType.OTHER: {
        SpecialistRole.ARCHITECT: "Analyze from architectural and design perspective.",
        SpecialistRole.ENGINEER: "Analyze from implementation and correctness perspective.",
        SpecialistRole.SECURITY: "Analyze from security perspective.",
        SpecialistRole.PERFORMANCE: "Analyze from performance perspective.",
        SpecialistRole.TESTING: "Analyze from testability and quality perspective.",
        SpecialistRole.DOCUMENTATION: "Analyze from documentation and maintainability perspective.",
    },
}

_EXPECTED_RELEVANCE: Dict[TaskType, Dict[SpecialistRole, float]] = {
    TaskType.DOCUMENTATION: {
        SpecialistRole.ARCHITECT: 0.9,
        SpecialistRole.ENGINEER: 0.8,
        SpecialistRole.SECURITY: 0.8,
        SpecialistRole.PERFORMANCE: 0.7,
        SpecialistRole.TESTING: 0.8,
        SpecialistRole.DOCUMENTATION: 1.0,
    },
    TaskType.CODE_GENERATION: {
        SpecialistRole.ARCHITECT: 1.0,
        SpecialistRole.ENGINEER: 1.0,
        SpecialistRole.SECURITY: 0.9,
        SpecialistRole.PERFORMANCE: 0.8,
        SpecialistRole.TESTING: 0.9,
        SpecialistRole.DOCUMENTATION: 0.6,
    },
    TaskType.BUG_FIX: {
        SpecialistRole.ARCHITECT: 0.6,
        SpecialistRole.ENGINEER: 1.0,
        SpecialistRole.SECURITY: 0.8,
        SpecialistRole.PERFORMANCE: 0.5,
        SpecialistRole.TESTING: 0.9,
        SpecialistRole.DOCUMENTATION: 0.4,
    },
    TaskType.REFACTOR: {
        SpecialistRole.ARCHITECT: 1.0,
        SpecialistRole.ENGINEER: 1.0,
        SpecialistRole.SECURITY: 0.7,
        SpecialistRole.PERFORMANCE: 0.8,
        SpecialistRole.TESTING: 0.9,
        SpecialistRole.DOCUMENTATION: 0.6,
    },
    TaskType.REVIEW: {
        SpecialistRole.ARCHITECT: 0.9,
        SpecialistRole.ENGINEER: 1.0,
        SpecialistRole.SECURITY: 0.9,
        SpecialistRole.PERFORMANCE: 0.8,
        SpecialistRole.TESTING: 0.8,
        SpecialistRole.DOCUMENTATION: 0.6,
    },
    TaskType.TEST_GENERATION: {
        SpecialistRole.ARCHITECT: 0.5,
        SpecialistRole.ENGINEER: 0.9,
        SpecialistRole.SECURITY: 0.6,
        SpecialistRole.PERFORMANCE: 0.4,
        SpecialistRole.TESTING: 1.0,
        SpecialistRole.DOCUMENTATION: 0.4,
    },
}

DEFAULT_RELEVANCE = 0.7


def _role(role: Union[SpecialistRole, str]) -> SpecialistRole:
    return role if isinstance(role, SpecialistRole) else SpecialistRole(role)


def get_task_guidance(task_type: TaskType, role: Union[SpecialistRole, str]) -> str:
    """Role-specific focus for a task type."""
    role = _role(role)
    table = _ROLE_GUIDANCE.get(task_type) or _ROLE_GUIDANCE[TaskType.OTHER]
    return table.get(role) or _ROLE_GUIDANCE[TaskType.OTHER][role]


def get_expected_relevance(task_type: TaskType, role: Union[SpecialistRole, str]) -> float:
    """Baseline relevance of a role for a task type (fallback when the model omits it)."""
    return _EXPECTED_RELEVANCE.get(task_type, {}).get(_role(role), DEFAULT_RELEVANCE)


def build_instruction(text: str) -> Instruction:
    """Classify text and wrap it with its general guidance."""
    task_type = classify(text)
    return Instruction(text=text, task_type=task_type, guidance=_TASK_GUIDANCE[task_type])
