"""
Prompt Templates
================

Shared prompt fragments for specialists: output format, relevance
rubric, code-context rendering and repair-directive steering.
"""

from typing import List, Optional

from core.schemas import CodeUnit, DiagnosticSeverity, RepairDirective, SpecialistRole

RELATED_FILE_PREVIEW_CHARS = 2000
MAX_INFO_DIAGNOSTICS = 5

CRITIQUE_STRUCTURE = """{
  "insights": ["observation 1", "observation 2"],
  "issues": {
    "critical": [{"type": "tag", "line": 12, "description": "...", "fix": "...", "impact": "..."}],
    "warnings": [],
    "suggestions": []
  },
  "recommendations": ["recommendation 1"],
  "confidence": 0.85,
  "relevance": 0.7
}"""

JSON_OUTPUT_INSTRUCTIONS = f"""
OUTPUT FORMAT:
1. Return ONLY valid JSON (no markdown fences, no commentary before or after)
2. Start directly with {{ and end with }}
3. Escape special characters inside strings (\\" for quotes, \\n for newlines, \\\\ for backslashes)
4. No trailing commas; double quotes only
5. "line" is the 1-based line number in the file, or null

Expected structure:
{CRITIQUE_STRUCTURE}
"""

RELEVANCE_RUBRIC = """
RELEVANCE RUBRIC (report as "relevance", 0.0-1.0):
- 1.0  your perspective is central to this task
- ~0.5 your perspective is somewhat relevant
- ~0.2 your perspective is marginal for this task
Be honest: a low relevance is a useful signal, not a failure.
Report "confidence" (0.0-1.0) as how sure you are of your own findings."""


def _diagnostic_lines(code_unit: CodeUnit) -> List[str]:
    if not code_unit.diagnostics:
        return []

    selection = code_unit.selection

    def marker(line: int) -> str:
        if selection and selection.start_line <= line <= selection.end_line:
            return " [IN SELECTION] ⚡"
        return ""

    errors = [d for d in code_unit.diagnostics if d.severity == DiagnosticSeverity.ERROR]
    warnings = [d for d in code_unit.diagnostics if d.severity == DiagnosticSeverity.WARNING]
    info = [
        d for d in code_unit.diagnostics
        if d.severity in (DiagnosticSeverity.INFO, DiagnosticSeverity.HINT)
    ]

    out = [
        "⚠️ EXISTING ISSUES DETECTED BY LINTER/COMPILER:",
        "(Fix these issues or avoid introducing similar ones)",
        "",
    ]
    for title, items in (("🔴 ERRORS", errors), ("🟡 WARNINGS", warnings)):
        if not items:
            continue
        out.append(f"{title} ({len(items)}):")
        for d in items:
            code = f" [{d.code}]" if d.code else ""
            out.append(f"  Line {d.line}, Col {d.character}: {d.message}{code}{marker(d.line)}")
            if d.source:
                out.append(f"    Source: {d.source}")
        out.append("")
    if info and len(info) <= MAX_INFO_DIAGNOSTICS:
        out.append(f"ℹ️ INFO/HINTS ({len(info)}):")
        for d in info:
            out.append(f"  Line {d.line}: {d.message}{marker(d.line)}")
        out.append("")
    out.extend(["---", ""])
    return out


def format_code_context(code_unit: CodeUnit) -> str:
    """
    Render the code unit for a prompt: related files first, then
    diagnostics, then the line-numbered file with the selection marked.
    """
    out: List[str] = []

    if code_unit.related_files:
        out.append(f"📁 RELATED FILES FOR CONTEXT ({len(code_unit.related_files)}):")
        out.append("")
        for index, related in enumerate(code_unit.related_files, 1):
            preview = related.content
            if len(preview) > RELATED_FILE_PREVIEW_CHARS:
                preview = (
                    preview[:RELATED_FILE_PREVIEW_CHARS]
                    + f"\n\n... (truncated, {len(related.content)} total chars) ..."
                )
            note = f" - {related.relevance}" if related.relevance else ""
            out.append(f"--- Related File {index}: {related.path}{note} ---")
            out.append(preview)
            out.append("")
        out.append("--- End of Related Files ---")
        out.append("")
        out.append("📝 NOW ANALYZING TARGET FILE:")
        out.append("")

    out.append(f"File: {code_unit.file_path or '(untitled)'}")
    out.append(f"Language: {code_unit.language}")
    if code_unit.framework:
        out.append(f"Framework: {code_unit.framework}")
    out.append("")
    out.extend(_diagnostic_lines(code_unit))

    if not code_unit.source.strip():
        out.append("(The file is empty.)")
        return "\n".join(out)

    selection = code_unit.selection
    lines = code_unit.source.split("\n")
    if selection:
        out.append(
            f"USER SELECTED LINES {selection.start_line}-{selection.end_line} (marked with >>> and <<<)"
        )
        out.append("Full file context provided below:")
        out.append("")

    out.append(f"```{code_unit.language}")
    for number, line in enumerate(lines, 1):
        prefix = f"{number:>4}|"
        if selection and number == selection.start_line:
            out.append(f"{prefix} >>> USER SELECTION STARTS >>>")
        out.append(f"{prefix} {line}")
        if selection and number == selection.end_line:
            out.append(f"{prefix} <<< USER SELECTION ENDS <<<")
    out.append("```")
    return "\n".join(out)


def format_repair_directive(directive: Optional[RepairDirective], role: SpecialistRole) -> str:
    """
    Render the previous round's directive for one role.

    Empty string when there is no directive.
    """
    if directive is None:
        return ""

    out = ["", "🔁 REPAIR DIRECTIVE FROM THE PREVIOUS ROUND (you MUST address this):"]
    if directive.overall_guidance:
        out.append(f"Overall: {directive.overall_guidance}")
    role_text = directive.for_role(role)
    if role_text:
        out.append(f"For you ({role.value}): {role_text}")
    if directive.focus_areas:
        out.append("Focus areas:")
        out.extend(f"- {area}" for area in directive.focus_areas)
    return "\n".join(out)
