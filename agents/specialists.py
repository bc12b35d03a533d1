"""
Specialists
===========

The six fixed viewpoints run in parallel each round.
"""

from typing import List, Optional

from core.agent_config import AgentConfig
from core.output_technician import OutputTechnician
from core.schemas import SpecialistRole
from core.structured_output import StructuredOutputParser
from providers.provider import ModelClient
from agents.specialist_agent import SpecialistAgent


class ArchitectAgent(SpecialistAgent):
    """Design, structure and long-term maintainability."""
    role = SpecialistRole.ARCHITECT
    perspective = "a senior software architect reviewing design and structure."
    focus = (
        "Design patterns and whether they fit the problem",
        "Separation of concerns, coupling and cohesion",
        "Integration with the existing architecture and project conventions",
        "Scalability and long-term maintainability",
    )
    relevance_hints = (
        "Examples: new module or public API -> 1.0; refactor of one function -> 0.5; "
        "typo or rename -> 0.2."
    )


class EngineerAgent(SpecialistAgent):
    """Correct, complete implementation."""
    role = SpecialistRole.ENGINEER
    perspective = "a senior software engineer responsible for a correct implementation."
    focus = (
        "Correctness and completeness of the logic",
        "Edge cases, error handling and input validation",
        "Type safety and language idioms",
        "Adherence to the file's existing coding standards",
    )
    relevance_hints = "Implementation quality matters for almost every code task; documentation-only tasks -> ~0.5."


class SecurityAgent(SpecialistAgent):
    """Vulnerabilities and unsafe handling of data."""
    role = SpecialistRole.SECURITY
    perspective = "an application security engineer hunting for vulnerabilities."
    focus = (
        "Injection (SQL, command, template) and unsafe deserialization",
        "Authentication, authorization and secrets handling",
        "Validation of untrusted input and output encoding",
        "Sensitive data exposure in logs, errors and responses",
    )
    relevance_hints = (
        "Examples: handles user input or credentials -> 1.0; internal utility -> 0.5; "
        "renaming a variable or writing a README -> 0.2."
    )


class PerformanceAgent(SpecialistAgent):
    """Algorithmic cost and resource usage."""
    role = SpecialistRole.PERFORMANCE
    perspective = "a performance engineer focused on efficiency."
    focus = (
        "Algorithmic complexity and hot loops",
        "Memory usage, allocations and copies",
        "Blocking I/O, unnecessary network or disk calls",
        "Caching opportunities and their invalidation",
    )
    relevance_hints = "Examples: optimization request -> 1.0; typical feature -> 0.5; documentation -> 0.2."


class TestingAgent(SpecialistAgent):
    """Testability and coverage."""
    __test__ = False  # not a pytest test class

    role = SpecialistRole.TESTING
    perspective = "a QA engineer focused on testability and coverage."
    focus = (
        "Unit test scenarios for normal paths, edge cases and failures",
        "Regression risks introduced by the change",
        "Testability: seams, dependency injection, determinism",
        "Missing assertions or coverage gaps",
    )
    relevance_hints = "Examples: test generation -> 1.0; bug fix -> 0.9; documentation -> 0.3."


class DocumentationAgent(SpecialistAgent):
    """Clarity, completeness and structure of documentation."""
    role = SpecialistRole.DOCUMENTATION
    perspective = "a technical writer who also reads code fluently."
    focus = (
        "Docstrings and comments for public APIs and complex logic",
        "Structure, completeness and accuracy of written documents",
        "Usage examples and audience fit",
        "Naming that documents intent",
    )
    relevance_hints = "Examples: write docs or a plan -> 1.0; new public API -> 0.6; internal bug fix -> 0.2."


SPECIALIST_CLASSES = (
    ArchitectAgent,
    EngineerAgent,
    SecurityAgent,
    PerformanceAgent,
    TestingAgent,
    DocumentationAgent,
)


def default_specialists(
    llm: ModelClient,
    config: Optional[AgentConfig] = None,
    parser: Optional[StructuredOutputParser] = None,
    technician: Optional[OutputTechnician] = None,
) -> List[SpecialistAgent]:
    """Instantiate all six specialists sharing one client and parser."""
    parser = parser or StructuredOutputParser()
    return [cls(llm, config, parser, technician) for cls in SPECIALIST_CLASSES]
