"""
Test ODAI Synthesizer
=====================

Verifies the two-phase synthesis: scoring (model score capped by
weighted readiness), Integrate vs Adapt branching, raw-content
recovery, empty-document scope and conservative degradation.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import random

import pytest

from core.agent_config import AgentConfig, ConfigurationError
from core.schemas import CodeUnit, Issue, IssueBuckets, SpecialistCritique, SpecialistRole, TaskType
from core.task_classifier import build_instruction
from providers.provider import RequestError, RequestErrorKind
from convergenceAgent.llm_synthesis_strategy import FULL_DOCUMENT_MARKER, ODAISynthesisStrategy, is_empty_document
from convergenceAgent.synthesis_contracts import SynthesisRequest
from fake_llm import FakeLLM, adapt_json, distill_json, integrate_json

CODE = CodeUnit(source="def f(x):\n    return x\n", language="python", file_path="f.py")


def critique(role, confidence=0.9, relevance=0.8, critical=0, warnings=0, degraded=False):
    return SpecialistCritique(
        role=role,
        insights=[f"{role.value} insight"],
        issues=IssueBuckets(
            critical=[Issue(type="bug", description=f"{role.value} critical {i}", fix="fix it") for i in range(critical)],
            warnings=[Issue(type="smell", description=f"{role.value} warning {i}") for i in range(warnings)],
        ),
        confidence=confidence,
        relevance=relevance,
        degraded=degraded,
    )


def clean_critiques():
    return tuple(critique(role) for role in SpecialistRole)


def request(critiques=None, text="Add input validation", code_unit=CODE, directive=None):
    instruction = build_instruction(text)
    return SynthesisRequest(
        instruction=instruction,
        critiques=critiques if critiques is not None else clean_critiques(),
        code_unit=code_unit,
        task_type=instruction.task_type,
        repair_directive=directive,
    )


def strategy(llm, **overrides):
    return ODAISynthesisStrategy(llm, AgentConfig(**overrides))


async def test_integrate_above_threshold():
    print("\n🧪 Test: integrate branch")
    llm = FakeLLM(distill=distill_json(9.4), integrate=integrate_json(code="def f(x):\n    assert x\n"))
    result = await strategy(llm).synthesize(request())

    assert result.success
    assert result.quality_score == pytest.approx(9.4)
    assert result.code == "def f(x):\n    assert x\n"
    assert result.repair_directive is None
    assert result.key_decisions == {"architecture": "kept flat"}
    assert result.distillation.core_requirements == ("Validate inputs",)
    assert len(llm.calls_for("integrate")) == 1
    assert llm.calls_for("adapt") == []


async def test_adapt_below_threshold():
    llm = FakeLLM(distill=distill_json(8.2), adapt=adapt_json())
    result = await strategy(llm).synthesize(request())

    assert not result.success
    assert result.quality_score == pytest.approx(8.2)
    assert result.code is None
    directive = result.repair_directive
    assert directive.overall_guidance == "Tighten validation"
    assert directive.for_role(SpecialistRole.SECURITY) == "Reject negative sizes"
    assert directive.focus_areas == ("input validation",)
    assert llm.calls_for("integrate") == []


async def test_critical_issues_cap_model_score():
    """An optimistic model score cannot outrun unresolved critical issues."""
    print("\n🧪 Test: readiness cap")
    critiques = (
        critique(SpecialistRole.SECURITY, confidence=1.0, relevance=1.0, critical=2),
        critique(SpecialistRole.ENGINEER, confidence=1.0, relevance=1.0, critical=2),
    )
    llm = FakeLLM(distill=distill_json(9.8))
    synth = strategy(llm)
    result = await synth.synthesize(request(critiques))

    assert synth.weighted_readiness(critiques) == pytest.approx(5.0)
    assert result.quality_score == pytest.approx(5.0)
    assert not result.success


async def test_low_weight_critiques_barely_count():
    critiques = (
        critique(SpecialistRole.ENGINEER, confidence=0.9, relevance=1.0),
        critique(SpecialistRole.DOCUMENTATION, confidence=0.1, relevance=0.1, critical=3),
    )
    readiness = strategy(FakeLLM()).weighted_readiness(critiques)
    assert readiness > 9.5


async def test_critique_order_does_not_change_prompt():
    critiques = list(clean_critiques()) + [critique(SpecialistRole.SECURITY, critical=1)]
    shuffled = critiques[:]
    random.Random(7).shuffle(shuffled)

    llm = FakeLLM(distill=distill_json(5.0))
    await strategy(llm).synthesize(request(tuple(critiques)))
    await strategy(llm).synthesize(request(tuple(shuffled)))

    first, second = llm.calls_for("distill")
    assert first.user == second.user


async def test_previous_directive_is_shown_to_distill():
    from core.schemas import RepairDirective
    llm = FakeLLM(distill=distill_json(5.0))
    directive = RepairDirective(overall_guidance="Check for None", focus_areas=["nulls"])
    await strategy(llm).synthesize(request(directive=directive))
    assert "Check for None" in llm.calls_for("distill")[0].user


async def test_raw_diagram_integration_is_kept_verbatim():
    """Integrate output with no JSON at all becomes the content itself."""
    print("\n🧪 Test: raw integrate output")
    diagram = "+------+      +-----+\\n| user | ---> | api |\\n+------+      +-----+"
    llm = FakeLLM(distill=distill_json(9.5), integrate=diagram)
    result = await strategy(llm).synthesize(request(text="Draw the architecture diagram"))

    assert result.success
    assert result.recovered
    assert result.code == diagram.replace("\\n", "\n")


async def test_indented_raw_output_keeps_leading_whitespace():
    diagram = "    +------+\\n    | user |\\n    +------+"
    llm = FakeLLM(distill=distill_json(9.5), integrate=diagram)
    result = await strategy(llm).synthesize(request(text="Draw the architecture diagram"))

    assert result.success
    assert result.code == "    +------+\n    | user |\n    +------+"


async def test_fenced_code_inside_json_is_unwrapped():
    llm = FakeLLM(distill=distill_json(9.5), integrate=integrate_json(code="```python\nx = 1\n```"))
    result = await strategy(llm).synthesize(request())
    assert result.code == "x = 1"


async def test_empty_document_requests_complete_document():
    """A near-empty markdown file gets a full document, not a stub."""
    print("\n🧪 Test: empty document scope")
    stub = CodeUnit(source="# Plan\n", language="markdown", file_path="PLAN.md")
    document = "# Implementation Plan\n\n" + "\n".join(
        f"## Phase {i}\n\n- Deliverable {i}: build and verify component {i} end to end.\n" for i in range(1, 40)
    )
    llm = FakeLLM(distill=distill_json(9.5), integrate=integrate_json(code=document))
    result = await strategy(llm).synthesize(request(text="create implementation plan", code_unit=stub))

    integrate_call = llm.calls_for("integrate")[0]
    assert FULL_DOCUMENT_MARKER in integrate_call.user
    assert integrate_call.config.max_tokens == AgentConfig().synthesis_max_tokens
    assert result.success
    assert len(result.code) >= 100 * len(stub.source)


def test_empty_document_heuristic():
    assert is_empty_document(CodeUnit(source="", language="markdown"), TaskType.OTHER)
    assert is_empty_document(CodeUnit(source="x = 1", language="python"), TaskType.DOCUMENTATION)
    assert not is_empty_document(CodeUnit(source="x = 1", language="python"), TaskType.BUG_FIX)
    assert not is_empty_document(CodeUnit(source="word " * 100, language="markdown"), TaskType.DOCUMENTATION)


async def test_prose_distillation_is_penalized():
    llm = FakeLLM(distill="Overall quality score: 9.6\ncoreRequirements:\n- Validate inputs", adapt=adapt_json())
    result = await strategy(llm).synthesize(request())

    assert result.quality_score == pytest.approx(8.6)
    assert not result.success
    assert result.distillation.recovered
    assert result.distillation.core_requirements == ("Validate inputs",)


async def test_distill_request_error_is_conservative():
    llm = FakeLLM(distill=RequestError(RequestErrorKind.TIMEOUT, "too slow"))
    result = await strategy(llm).synthesize(request((critique(SpecialistRole.SECURITY, critical=1),)))

    assert not result.success
    assert result.quality_score < 9.0
    assert result.repair_directive.for_role(SpecialistRole.SECURITY).startswith("Resolve:")
    assert llm.calls_for("adapt") == []


async def test_integrate_failure_becomes_repair_directive():
    llm = FakeLLM(distill=distill_json(9.5), integrate=RequestError(RequestErrorKind.FATAL, "500"))
    result = await strategy(llm).synthesize(request())

    assert not result.success
    assert result.quality_score == pytest.approx(8.0)
    assert result.repair_directive is not None


async def test_empty_integration_becomes_repair_directive():
    llm = FakeLLM(distill=distill_json(9.5), integrate="")
    result = await strategy(llm).synthesize(request())
    assert not result.success
    assert result.quality_score < 9.0


async def test_unusable_adapt_output_uses_default_directive():
    critiques = (critique(SpecialistRole.SECURITY, critical=1), critique(SpecialistRole.ENGINEER))
    llm = FakeLLM(distill=distill_json(4.0, rationale="Unsafe input handling"), adapt="")
    result = await strategy(llm).synthesize(request(critiques))

    directive = result.repair_directive
    assert directive.overall_guidance == "Unsafe input handling"
    assert directive.for_role(SpecialistRole.SECURITY) == "Resolve: security critical 0 (suggested fix: fix it)"
    assert directive.for_role(SpecialistRole.ENGINEER) is None
    assert "security critical 0" in directive.focus_areas


async def test_configuration_error_propagates():
    llm = FakeLLM(distill=ConfigurationError("bad key"))
    with pytest.raises(ConfigurationError):
        await strategy(llm).synthesize(request())


async def test_unexpected_client_errors_never_escape():
    """A client bug in any phase becomes a conservative, failed round."""
    print("\n🧪 Test: unexpected client errors")
    distill_bug = await strategy(FakeLLM(distill=RuntimeError("client bug"))).synthesize(request())
    assert not distill_bug.success
    assert distill_bug.quality_score == pytest.approx(8.0)
    assert distill_bug.repair_directive is not None

    llm = FakeLLM(distill=distill_json(4.0, rationale="Needs checks"), adapt=ValueError("bad payload"))
    adapt_bug = await strategy(llm).synthesize(request())
    assert not adapt_bug.success
    assert adapt_bug.repair_directive.overall_guidance == "Needs checks"

    integrate_bug = await strategy(
        FakeLLM(distill=distill_json(9.5), integrate=KeyError("choices"))
    ).synthesize(request())
    assert not integrate_bug.success
    assert integrate_bug.quality_score == pytest.approx(8.0)
    assert integrate_bug.repair_directive is not None


def test_failed_critiques_without_issues_do_not_inflate_readiness():
    synth = strategy(FakeLLM())
    flagged = critique(SpecialistRole.SECURITY, confidence=0.9, relevance=0.9, critical=2)
    failed = critique(SpecialistRole.ENGINEER, confidence=0.9, relevance=0.9, degraded=True)

    assert synth.weighted_readiness((flagged, failed)) == pytest.approx(synth.critique_readiness(flagged))
    assert synth.weighted_readiness((failed,)) is None

    failed_with_issues = critique(SpecialistRole.TESTING, critical=1, degraded=True)
    assert synth.weighted_readiness((failed_with_issues,)) == pytest.approx(7.5)


@pytest.mark.parametrize("model_score", [0.0, 3.2, 8.99, 9.0, 9.5, 10.0])
@pytest.mark.parametrize("threshold", [5.0, 9.0, 10.0])
async def test_success_agrees_with_threshold(model_score, threshold):
    llm = FakeLLM(distill=distill_json(model_score))
    result = await strategy(llm, quality_threshold=threshold).synthesize(request())
    if result.success:
        assert result.quality_score >= threshold
    else:
        assert result.quality_score < threshold
        assert result.repair_directive is not None
