"""
FastAPI host surface for the convergence loop
"""
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sse_starlette.sse import EventSourceResponse
import asyncio
import json
import logging
from typing import AsyncGenerator, Callable, Optional

from core.agent_config import AgentConfig, ConfigurationError, InvalidConfigError
from core.schemas import CodeUnit
from core.timeout_decorator import ConvergenceTimeoutError
from convergenceAgent.agent import CodeAssistant
from convergenceAgent.convergence_controller import configure_logging
from convergenceAgent.synthesis_contracts import ProgressEvent
from api.api_schemas import AssistRequest, AssistResponse

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def _code_unit(request: AssistRequest) -> CodeUnit:
    return CodeUnit(
        source=request.source,
        language=request.language,
        file_path=request.file_path,
        selection=request.selection,
        diagnostics=tuple(request.diagnostics),
        related_files=tuple(request.related_files),
        framework=request.framework,
    )


def create_app(assistant_factory: Optional[Callable[[], CodeAssistant]] = None) -> FastAPI:
    """
    Build the API app.

    Args:
        assistant_factory: Returns the CodeAssistant to use (built lazily from
            the environment when omitted, so the app starts without credentials)
    """
    app = FastAPI(
        title="CodeMind Convergence API",
        description="Multi-specialist code assistant with iterative synthesis",
        version=VERSION,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    state = {"assistant": None}

    def get_assistant() -> CodeAssistant:
        if state["assistant"] is None:
            factory = assistant_factory or (lambda: CodeAssistant(config=AgentConfig.from_env()))
            state["assistant"] = factory()
        return state["assistant"]

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "CodeMind Convergence API",
            "version": VERSION,
            "endpoints": {
                "/assist": "POST - Run the convergence loop",
                "/assist/stream": "POST - Run with progress events (SSE)",
                "/health": "GET - Health check",
            },
        }

    @app.get("/health")
    async def health():
        """Health check"""
        try:
            assistant = get_assistant()
        except ConfigurationError as e:
            return {"status": "unconfigured", "error": str(e)}
        return {
            "status": "healthy",
            "specialists": [s.role.value for s in assistant.specialists],
            "quality_threshold": assistant.config.quality_threshold,
            "max_rounds": assistant.config.max_rounds,
        }

    @app.post("/assist", response_model=AssistResponse)
    async def assist(request: AssistRequest):
        """
        Run the convergence loop and return the final result.
        """
        try:
            assistant = get_assistant()
        except ConfigurationError as e:
            raise HTTPException(status_code=500, detail=str(e))

        try:
            result = await assistant.run(
                request.instruction,
                _code_unit(request),
                quality_threshold=request.quality_threshold,
                max_rounds=request.max_rounds,
            )
        except ConvergenceTimeoutError as e:
            raise HTTPException(status_code=504, detail=str(e))
        except InvalidConfigError as e:
            # Server settings were validated when the assistant was built
            raise HTTPException(status_code=400, detail=str(e))
        except ConfigurationError as e:
            raise HTTPException(status_code=500, detail=str(e))

        return AssistResponse(**result.to_dict(include_history=request.include_history))

    @app.post("/assist/stream")
    async def assist_stream(request: AssistRequest):
        """
        Run the convergence loop, streaming progress events via Server-Sent Events.
        """
        queue: asyncio.Queue = asyncio.Queue()

        async def on_progress(event: ProgressEvent):
            await queue.put({"event": "progress", "data": json.dumps(event.to_dict())})

        async def run_assistant():
            try:
                result = await get_assistant().run(
                    request.instruction,
                    _code_unit(request),
                    quality_threshold=request.quality_threshold,
                    max_rounds=request.max_rounds,
                    progress_callback=on_progress,
                )
                payload = result.to_dict(include_history=request.include_history)
                await queue.put({"event": "result", "data": json.dumps(payload)})
            except (ConvergenceTimeoutError, ConfigurationError) as e:
                if isinstance(e, ConvergenceTimeoutError):
                    kind = "timeout"
                elif isinstance(e, InvalidConfigError):
                    kind = "invalid_request"
                else:
                    kind = "configuration"
                await queue.put({"event": "error", "data": json.dumps({"type": kind, "message": str(e)})})
            except Exception as e:
                logger.exception(f"❌ [API] Stream run failed: {e}")
                await queue.put({"event": "error", "data": json.dumps({"type": "internal", "message": str(e)})})
            finally:
                await queue.put(None)

        async def generate_stream() -> AsyncGenerator[dict, None]:
            task = asyncio.create_task(run_assistant())
            try:
                while True:
                    item = await queue.get()
                    if item is None:
                        break
                    yield item
            finally:
                if not task.done():
                    task.cancel()

        return EventSourceResponse(generate_stream())

    return app


if __name__ == "__main__":
    import uvicorn

    configure_logging("logs/convergence.log")

    print("\n" + "=" * 70)
    print("🚀 Starting CodeMind Convergence API...")
    print("=" * 70)
    print("\n📍 Endpoints:")
    print("   • http://localhost:8000/")
    print("   • http://localhost:8000/assist (POST)")
    print("   • http://localhost:8000/assist/stream (POST)")
    print("   • http://localhost:8000/health")
    print("=" * 70 + "\n")

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
