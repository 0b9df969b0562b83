# medassist/main.py
from __future__ import annotations

import logging
import math
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from medassist.agents.chat_agent import ChatAgent
from medassist.agents.diagnosis_agent import analyze_symptoms
from medassist.agents.gemini import GeminiGenerator, TextGenerator
from medassist.config import configure_logging, settings
from medassist.errors import BackendCapacityError, BackendConfigError, ValidationError
from medassist.memory.diagnosis_store import DiagnosisStore
from medassist.models import (
    ChatHealthResponse,
    ChatStreamRequest,
    DiagnosisCreated,
    DiagnosisPage,
    DiagnosisRecord,
    DiagnosisRequest,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="MedAssist", version="1.0")
app.state.diagnoses = DiagnosisStore()
app.state.generator = None


def get_generator(request: Request) -> TextGenerator:
    if request.app.state.generator is None:
        request.app.state.generator = GeminiGenerator(settings)
    return request.app.state.generator


def get_diagnosis_store(request: Request) -> DiagnosisStore:
    return request.app.state.diagnoses


def _http_error(e: Exception, what: str) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=e.user_message)
    if isinstance(e, BackendCapacityError):
        logger.warning("%s: backend at capacity: %s", what, e)
        return HTTPException(status_code=503, detail=e.user_message)
    if isinstance(e, BackendConfigError):
        logger.error("%s: backend configuration error: %s", what, e)
        return HTTPException(status_code=500, detail=e.user_message)
    logger.exception("%s failed", what)
    return HTTPException(status_code=500, detail="Failed to process your request. Please try again.")


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())})


@app.on_event("startup")
def startup_log() -> None:
    configure_logging()
    logger.info("Starting MedAssist server")
    logger.info("GOOGLE_CLOUD_PROJECT = %s", settings.google_cloud_project)
    logger.info("GOOGLE_CLOUD_LOCATION = %s", settings.google_cloud_location)
    logger.info("MEDASSIST_MODEL = %s", settings.model_name)
    logger.info(
        "history: prompt=%d turns, window=%d turns; suggestions %d-%d chars",
        settings.prompt_history_turns,
        settings.history_window,
        settings.suggestion_min_length,
        settings.suggestion_max_length,
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/chat-health", response_model=ChatHealthResponse)
def chat_health() -> ChatHealthResponse:
    return ChatHealthResponse()


@app.post("/chat-stream")
async def chat_stream(
    req: ChatStreamRequest,
    generator: TextGenerator = Depends(get_generator),
) -> StreamingResponse:
    agent = ChatAgent(generator, settings)
    try:
        relay = await agent.open_stream(req.message, req.category, req.conversation_history)
    except Exception as e:
        raise _http_error(e, "/chat-stream")

    return StreamingResponse(relay, media_type="text/plain; charset=utf-8")


@app.post("/diagnoses", response_model=DiagnosisCreated)
async def create_diagnosis(
    req: DiagnosisRequest,
    generator: TextGenerator = Depends(get_generator),
    store: DiagnosisStore = Depends(get_diagnosis_store),
) -> DiagnosisCreated:
    if req.type != "symptoms":
        raise HTTPException(status_code=400, detail="Invalid diagnosis type")

    try:
        record = await analyze_symptoms(req.data, generator, store)
    except Exception as e:
        raise _http_error(e, "/diagnoses")

    return DiagnosisCreated(diagnosis_id=record.id, diagnosis=record)


@app.get("/diagnoses", response_model=DiagnosisPage)
def list_diagnoses(
    page: int = 1,
    limit: int = 10,
    status: str | None = None,
    store: DiagnosisStore = Depends(get_diagnosis_store),
) -> DiagnosisPage:
    if page < 1 or limit < 1:
        raise HTTPException(status_code=400, detail="page and limit must be positive")

    records = store.list_all()
    if status:
        records = [r for r in records if r.status == status]

    start = (page - 1) * limit
    return DiagnosisPage(
        diagnoses=records[start:start + limit],
        total=len(records),
        page=page,
        limit=limit,
        total_pages=math.ceil(len(records) / limit),
    )


@app.get("/diagnoses/{diagnosis_id}", response_model=DiagnosisRecord)
def get_diagnosis(
    diagnosis_id: str,
    store: DiagnosisStore = Depends(get_diagnosis_store),
) -> Any:
    record = store.get(diagnosis_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Diagnosis not found")
    return record
