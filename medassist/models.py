from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ChatTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class ChatStreamRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: Any = None
    category: str | None = None
    conversation_history: list[ChatTurn] = Field(default_factory=list, alias="conversationHistory")


class ResponseMetadata(BaseModel):
    suggestions: list[str] = Field(default_factory=list)
    done: bool = False
    timestamp: str | None = None
    category: str | None = None


class StreamedMessage(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    sender: Literal["user", "assistant"]
    content: str = ""
    streaming: bool = False
    created_at: str = Field(default_factory=utc_now_iso)
    status: Literal["ok", "error"] = "ok"
    metadata: ResponseMetadata | None = None


class ChatHealthResponse(BaseModel):
    status: str = "healthy"
    service: str = "chat"
    timestamp: str = Field(default_factory=utc_now_iso)


# ----------------------------
# Diagnoses
# ----------------------------

class SymptomData(BaseModel):
    description: str
    duration: str
    severity: str
    medical_history: str | None = None


class DiagnosisRequest(BaseModel):
    type: str
    data: SymptomData


class AIModelData(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_version: str
    analysis_timestamp: str
    processing_time: str
    features_analyzed: str


class AIResponse(BaseModel):
    full_text: str
    sections: list[str] = Field(default_factory=list)


class DiagnosisFields(BaseModel):
    diagnosis_date: str
    type: str
    ai_diagnosis: str
    confidence: int = 0
    status: Literal["pending", "approved", "rejected"] = "pending"
    symptoms: str = ""
    doctor_name: str = "Pending Review"
    doctor_feedback: str = ""
    image_src: str = ""
    ai_model_data: AIModelData
    treatment_recommendations: list[str] = Field(default_factory=list)
    risk_factors: list[str] = Field(default_factory=list)
    ai_response: AIResponse | None = None
    review_date: str | None = None


class DiagnosisRecord(DiagnosisFields):
    id: str


class DiagnosisCreated(BaseModel):
    success: bool = True
    diagnosis_id: str
    diagnosis: DiagnosisRecord


class DiagnosisPage(BaseModel):
    diagnoses: list[DiagnosisRecord] = Field(default_factory=list)
    total: int
    page: int
    limit: int
    total_pages: int
