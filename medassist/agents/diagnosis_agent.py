from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from medassist.agents.gemini import TextGenerator, collect_text
from medassist.memory.diagnosis_store import DiagnosisStore
from medassist.models import AIModelData, AIResponse, DiagnosisFields, DiagnosisRecord, SymptomData, utc_now_iso
from medassist.tools.extraction import StructuredDiagnosis, coerce_confidence, parse_diagnosis_response

logger = logging.getLogger(__name__)

SYMPTOM_MODEL_VERSION = "GeminiMedical-2.0"
PENDING_DIAGNOSIS = "Pending AI diagnosis"


def build_symptom_prompt(symptoms: SymptomData) -> str:
    history = f"Medical History: {symptoms.medical_history}\n" if symptoms.medical_history else ""

    return f"""
You are a medical AI assistant. Analyze the following symptoms and provide a preliminary diagnosis.
Please structure your response with the following sections:
1. Potential Diagnoses (with confidence levels)
2. Analysis Explanation
3. Recommended Next Steps
4. Risk Factors to Consider
5. Treatment Suggestions (noting these are preliminary and subject to doctor confirmation)

Patient Symptoms:
Description: {symptoms.description}
Duration: {symptoms.duration}
Severity: {symptoms.severity}
{history}
Important: Always clarify that this is an AI-generated preliminary assessment and not a replacement for professional medical advice.
""".strip()


def build_diagnosis_record(
    symptoms: SymptomData,
    structured: StructuredDiagnosis,
    processing_time: float = 0.0,
) -> DiagnosisFields:
    return DiagnosisFields(
        diagnosis_date=datetime.now(timezone.utc).date().isoformat(),
        type="Symptom Analysis",
        ai_diagnosis=structured.primary_diagnosis or PENDING_DIAGNOSIS,
        confidence=coerce_confidence(structured.confidence_level),
        status="pending",
        symptoms=symptoms.description,
        ai_model_data=AIModelData(
            model_version=SYMPTOM_MODEL_VERSION,
            analysis_timestamp=utc_now_iso(),
            processing_time=f"{processing_time:.1f} seconds",
            features_analyzed=f"{len(structured.sections)} response sections analyzed",
        ),
        treatment_recommendations=structured.recommendations,
        risk_factors=["To be determined by doctor review"],
        ai_response=AIResponse(full_text=structured.full_text, sections=structured.sections),
    )


async def analyze_symptoms(
    symptoms: SymptomData,
    generator: TextGenerator,
    store: DiagnosisStore,
) -> DiagnosisRecord:
    """Run the symptom prompt, scrape the reply and store a pending record."""
    started = time.monotonic()
    text = await collect_text(generator.stream(build_symptom_prompt(symptoms)))
    elapsed = time.monotonic() - started

    structured = parse_diagnosis_response(text)
    if not structured.primary_diagnosis:
        logger.info("no primary diagnosis found in %d chars of model output", len(text))

    record = store.create(build_diagnosis_record(symptoms, structured, processing_time=elapsed))
    logger.info("created diagnosis %s (%s, %d%%)", record.id, record.ai_diagnosis, record.confidence)
    return record
