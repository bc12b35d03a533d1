"""
Example: Running the Convergence Loop
=====================================

Runs all six specialists against a small Python file, prints progress
events as they arrive, then the final content and execution summary.

Requires OPENROUTER_API_KEY (in the environment or a .env file).
"""

import sys
import os
import asyncio

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from core.agent_config import AgentConfig
from core.schemas import CodeUnit, Diagnostic, DiagnosticSeverity, Selection
from convergenceAgent.agent import CodeAssistant
from convergenceAgent.convergence_controller import configure_logging
from convergenceAgent.synthesis_contracts import ProgressEvent


SOURCE = '''def paginate(items, page, size):
    start = page * size
    return items[start:start + size + 1]


def load_user(db, user_id):
    return db.execute("SELECT * FROM users WHERE id = " + user_id).fetchone()
'''


def on_progress(event: ProgressEvent):
    print(f"   [{event.type.value}] round {event.round_number}: {event.message}")


async def main():
    configure_logging("logs/convergence.log")

    config = AgentConfig.from_env().with_overrides(quality_threshold=8.5, max_rounds=3)
    assistant = CodeAssistant(config=config, progress_callback=on_progress)

    code_unit = CodeUnit(
        source=SOURCE,
        language="python",
        file_path="app/users.py",
        selection=Selection(start_line=1, end_line=3, text="\n".join(SOURCE.splitlines()[:3])),
        diagnostics=(
            Diagnostic(line=7, severity=DiagnosticSeverity.WARNING,
                       message="Possible SQL injection", source="bandit", code="B608"),
        ),
    )

    print("\n" + "=" * 60)
    print("🚀 Running convergence loop")
    print("=" * 60)
    result = await assistant.run("Fix the off-by-one bug in paginate", code_unit)

    print("\n" + "=" * 60)
    print(f"✅ Converged: {result.converged} (quality {result.quality_score:.2f}, round {result.best_round})")
    print("=" * 60)
    print(result.final_content or "(no content produced)")
    print("\n📊 Summary:")
    for key, value in result.summary().items():
        print(f"   {key}: {value}")
    print(f"   tokens: {result.token_usage}")


if __name__ == "__main__":
    asyncio.run(main())
