import logging
import os
from typing import Any, Dict

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from transmix import __version__
from transmix.config import MixSettings
from transmix.dsp.adaptive.adaptive_eq import plan_background_eq
from transmix.dsp.graph.compiler import MixGraphCompiler
from transmix.dsp_engine.ffmpeg_render import build_ffmpeg_command, to_filter_complex
from transmix.errors import GraphConstructionError
from transmix.models import CompileRequest, CompileResponse, EqPlanRequest, EqPlanResponse

logger = logging.getLogger("transmix")

app = FastAPI(title="Transmission Mixer", version=__version__)

# Comma-separated list, e.g. the podcast dashboard and local development
_origins = [o.strip() for o in os.getenv("TRANSMIX_CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, code: str, exc: Exception) -> HTTPException:
    detail: Dict[str, Any] = {"error": code, "message": str(exc)}
    return HTTPException(status_code=status_code, detail=detail)


@app.get("/health")
async def health():
    """Static payload for uptime checks; touches no audio code."""

    return {"status": "ok", "version": __version__}


@app.post("/eq-plan", response_model=EqPlanResponse)
async def eq_plan(request: EqPlanRequest):
    """Complementary EQ chain for one background role.

    Without a profile the neutral fallback chain is returned.
    """

    profile = request.profile.to_profile() if request.profile is not None else None
    plan = plan_background_eq(profile, request.role, request.input_bus)
    return plan.to_dict()


@app.post("/compile", response_model=CompileResponse)
async def compile_graph(request: CompileRequest):
    """Compile timed layers into the mix graph and its ffmpeg rendering.

    This endpoint does *not* render audio. It returns the typed graph plus
    the ``-filter_complex`` text and argument list a render worker runs.
    """

    try:
        settings = MixSettings.from_mapping(request.settings)
        layers = [layer.to_layer() for layer in request.layers]
    except ValueError as exc:
        raise _error(422, "INVALID_MIX_REQUEST", exc) from exc

    profile = request.profile.to_profile() if request.profile is not None else None
    compiler = MixGraphCompiler(settings)
    try:
        graph = compiler.compile(layers, profile)
        filter_complex = to_filter_complex(graph)
        args = build_ffmpeg_command(graph, f"episode.{settings.processing.container}")
    except GraphConstructionError as exc:
        logger.exception("[GRAPH] Compilation failed for %d layers", len(layers))
        raise _error(422, "GRAPH_CONSTRUCTION_FAILED", exc) from exc

    return {
        "graph": graph.to_dict(),
        "filter_complex": filter_complex,
        "ffmpeg_args": args,
    }
