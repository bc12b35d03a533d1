"""
Test Specialist Agents
======================

Verifies critique parsing, lenient recovery, degradation on model
failures and timeouts, and repair-directive routing into prompts.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
import json

import pytest

from core.agent_config import AgentConfig, ConfigurationError
from core.output_technician import OutputTechnician
from core.schemas import CodeUnit, RepairDirective, Selection, SpecialistRole, TaskType
from core.task_classifier import build_instruction, get_expected_relevance
from providers.provider import ModelClient, RequestError, RequestErrorKind
from agents.prompt_templates import format_code_context
from agents.specialists import SPECIALIST_CLASSES, EngineerAgent, SecurityAgent, TestingAgent, default_specialists
from fake_llm import FakeLLM, critique_json

CODE = CodeUnit(
    source="def paginate(items, page, size):\n    start = page * size\n    return items[start:start + size + 1]\n",
    language="python",
    file_path="app/pages.py",
)


async def analyze(agent, text="Fix the off-by-one bug in paginate", code_unit=CODE, directive=None):
    instruction = build_instruction(text)
    return await agent.analyze(instruction, code_unit, instruction.task_type, instruction.guidance,
                               repair_directive=directive)


class SlowLLM(ModelClient):
    async def complete(self, messages, config):
        await asyncio.sleep(5)


async def test_valid_critique():
    """Clean JSON becomes a typed critique with this specialist's role."""
    print("\n🧪 Test: valid critique")
    llm = FakeLLM(specialist=critique_json(confidence=0.9, relevance=0.8, critical=1, warnings=2))
    critique = await analyze(SecurityAgent(llm))

    assert critique.role == SpecialistRole.SECURITY
    assert critique.confidence == pytest.approx(0.9)
    assert critique.relevance == pytest.approx(0.8)
    assert len(critique.issues.critical) == 1
    assert len(critique.issues.warnings) == 2
    assert not critique.degraded
    assert critique.execution_time >= 0
    assert critique.weight == pytest.approx(0.72)


async def test_flat_issue_list_is_bucketed():
    payload = json.dumps({
        "insights": ["x"],
        "issues": [
            {"severity": "critical", "description": "SQL injection"},
            {"severity": "medium", "description": "No timeout"},
            {"severity": "low", "description": "Rename var"},
        ],
        "confidence": 0.7,
        "relevance": 0.9,
    })
    critique = await analyze(SecurityAgent(FakeLLM(specialist=payload)))
    assert [i.description for i in critique.issues.critical] == ["SQL injection"]
    assert [i.description for i in critique.issues.warnings] == ["No timeout"]
    assert [i.description for i in critique.issues.suggestions] == ["Rename var"]


async def test_missing_relevance_uses_expected_table():
    payload = json.dumps({"insights": ["ok"], "issues": {}, "confidence": 0.8})
    critique = await analyze(TestingAgent(FakeLLM(specialist=payload)))
    assert critique.relevance == pytest.approx(get_expected_relevance(TaskType.BUG_FIX, SpecialistRole.TESTING))


async def test_recommendations_derived_from_fixes():
    payload = json.dumps({
        "insights": ["x"],
        "issues": {"critical": [{"description": "Off by one", "fix": "Drop the + 1"}]},
        "confidence": 0.8,
        "relevance": 0.9,
    })
    critique = await analyze(EngineerAgent(FakeLLM(specialist=payload)))
    assert critique.recommendations == ("Drop the + 1",)


async def test_prose_is_recovered_with_capped_confidence():
    """Unstructured text yields a recovered critique, not a failure."""
    print("\n🧪 Test: prose recovery")
    prose = "insights:\n- The slice end is off by one\n- No bounds check\nrecommendations:\n- Remove + 1\nconfidence: 0.95"
    critique = await analyze(EngineerAgent(FakeLLM(specialist=prose)))

    assert critique.degraded
    assert critique.confidence <= 0.5
    assert "The slice end is off by one" in critique.insights
    assert critique.recommendations == ("Remove + 1",)


async def test_request_error_degrades():
    llm = FakeLLM(specialist=RequestError(RequestErrorKind.FATAL, "boom", 500))
    critique = await analyze(SecurityAgent(llm))
    assert critique.degraded
    assert critique.confidence == pytest.approx(0.1)
    assert critique.relevance == pytest.approx(0.2)
    assert critique.issues.total == 0


async def test_unexpected_error_degrades():
    critique = await analyze(SecurityAgent(FakeLLM(specialist=RuntimeError("bad"))))
    assert critique.degraded


async def test_configuration_error_propagates():
    llm = FakeLLM(specialist=ConfigurationError("no key"))
    with pytest.raises(ConfigurationError):
        await analyze(SecurityAgent(llm))


async def test_timeout_degrades():
    """A hung model call is cut off by specialist_timeout."""
    print("\n🧪 Test: specialist timeout")
    agent = SecurityAgent(SlowLLM(), AgentConfig(specialist_timeout=0.05))
    critique = await analyze(agent)
    assert critique.degraded
    assert "timed out" in critique.insights[0]


async def test_empty_response_degrades():
    critique = await analyze(SecurityAgent(FakeLLM(specialist="")))
    assert critique.degraded
    assert critique.confidence == pytest.approx(0.1)


async def test_technician_repairs_malformed_output():
    llm = FakeLLM(specialist="insights: it is broken somehow", other=critique_json(confidence=0.8))
    agent = SecurityAgent(llm, technician=OutputTechnician(llm, "test-model"))
    critique = await analyze(agent)

    assert not critique.degraded
    assert critique.confidence == pytest.approx(0.8)
    assert len(llm.calls_for("other")) == 1


async def test_directive_is_routed_per_role():
    """Each specialist sees the overall guidance and only its own instruction."""
    print("\n🧪 Test: directive routing")
    llm = FakeLLM()
    directive = RepairDirective(
        overall_guidance="Handle empty pages",
        role_instructions={SpecialistRole.SECURITY: "Reject negative sizes"},
        focus_areas=["bounds"],
    )
    await analyze(SecurityAgent(llm), directive=directive)
    await analyze(EngineerAgent(llm), directive=directive)

    security_prompt = llm.calls_for("specialist", "security")[0].user
    engineer_prompt = llm.calls_for("specialist", "engineer")[0].user
    assert "For you (security): Reject negative sizes" in security_prompt
    assert "Handle empty pages" in engineer_prompt
    assert "Reject negative sizes" not in engineer_prompt


async def test_prompt_without_directive_has_no_directive_block():
    llm = FakeLLM()
    await analyze(SecurityAgent(llm))
    assert "REPAIR DIRECTIVE" not in llm.calls_for("specialist", "security")[0].user


def test_default_specialists_cover_all_roles():
    agents = default_specialists(FakeLLM())
    assert {a.role for a in agents} == set(SpecialistRole)
    assert len(SPECIALIST_CLASSES) == 6


def test_code_context_marks_selection():
    unit = CODE.model_copy(update={"selection": Selection(start_line=2, end_line=3, text="")})
    rendered = format_code_context(unit)
    assert ">>> USER SELECTION STARTS >>>" in rendered
    assert "<<< USER SELECTION ENDS <<<" in rendered
    assert "   3| " in rendered


def test_code_context_empty_file():
    rendered = format_code_context(CodeUnit(source="", language="markdown", file_path="PLAN.md"))
    assert "(The file is empty.)" in rendered
