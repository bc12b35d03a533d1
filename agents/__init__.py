from .specialist_agent import SpecialistAgent
from .specialists import (
    ArchitectAgent,
    DocumentationAgent,
    EngineerAgent,
    PerformanceAgent,
    SecurityAgent,
    SPECIALIST_CLASSES,
    TestingAgent,
    default_specialists,
)

__all__ = [
    "SpecialistAgent", "ArchitectAgent", "EngineerAgent", "SecurityAgent",
    "PerformanceAgent", "TestingAgent", "DocumentationAgent",
    "SPECIALIST_CLASSES", "default_specialists",
]
