# healthdesk/gemini.py
import logging
from typing import Any, Dict, Optional

from google import genai
from google.genai import types

from . import errors
from .config import Settings

logger = logging.getLogger(__name__)

CHAT_TEXT_BUDGET = 50_000
TRUNCATION_MARKER = "\n\n[... text truncated for length ...]"

PLAIN_TEXT_RULES = """IMPORTANT FORMATTING:
- Do NOT use markdown formatting (no asterisks, hashtags, or backticks)
- Use plain text only
- Use line breaks and simple dashes for bullet points
- Keep formatting clean and readable"""


def _format_structured_data(structured: Dict[str, Any]) -> str:
    results = structured.get("testResults") or []
    if results:
        lines = "\n".join(
            f"- {r.get('name')}: {r.get('value')} {r.get('unit') or ''} "
            f"(Reference: {r.get('referenceRange') or 'N/A'}) [Status: {r.get('status') or 'unknown'}]"
            for r in results
        )
    else:
        lines = "No structured test results found"
    return (
        "EXTRACTED STRUCTURED DATA:\n"
        f"- Test Type: {structured.get('testType') or 'Not specified'}\n"
        f"- Date: {structured.get('date') or 'Not specified'}\n"
        f"- Patient: {structured.get('patientName') or 'Not specified'}\n\n"
        f"TEST RESULTS:\n{lines}\n"
    )


def build_text_prompt(raw_text: str, structured: Optional[Dict[str, Any]] = None) -> str:
    prompt = (
        "You are a clinical assistant helping patients understand lab test results. "
        "You have access to extracted lab report data.\n\n"
        f"RAW LAB REPORT TEXT:\n{raw_text}\n"
    )
    if structured:
        prompt += "\n\n" + _format_structured_data(structured)
    prompt += f"""

TASKS:
1. Summarize the overall picture in simple, reassuring language.
2. Call out any abnormal values (high/low/critical) and what they might mean in broad terms.
3. For each abnormal value, explain what it typically indicates (in general terms, not specific diagnoses).
4. Suggest 3-5 concrete follow-up questions the patient could ask their clinician.
5. Use short paragraphs and bullet points for clarity.
6. Do NOT give treatment plans, prescriptions, or specific medical diagnoses.
7. Always remind the patient to consult with their healthcare provider for medical advice.

{PLAIN_TEXT_RULES}"""
    return prompt


def build_pdf_prompt(file_name: Optional[str] = None) -> str:
    return f"""You are a clinical assistant helping patients understand lab test results in PDF form.

FILE NAME: {file_name or "Lab report PDF"}

TASKS:
1. Carefully read the entire lab report PDF, including any tables and reference ranges.
2. Summarize the overall picture in simple, reassuring language.
3. Call out any clearly abnormal values and what they might mean in broad terms (no diagnoses).
4. Group results into sections (for example: blood counts, kidney function, liver function, cholesterol, glucose, etc.) when possible.
5. Suggest 3-5 specific follow-up questions the patient could ask their clinician.
6. Use short paragraphs and bullet points. Do NOT give treatment plans, prescriptions, or specific medical diagnoses.
7. Always include a short disclaimer reminding the patient to discuss results with their clinician.

{PLAIN_TEXT_RULES}"""


def build_chat_prompt(raw_text: str, prior_analysis: Optional[str], question: str) -> str:
    source = raw_text[:CHAT_TEXT_BUDGET]
    if len(raw_text) > CHAT_TEXT_BUDGET:
        source += TRUNCATION_MARKER

    prompt = (
        "You are a clinical assistant helping a patient understand their lab test results. "
        "You have access to the COMPLETE RAW TEXT from their lab report PDF, and optionally a summary analysis.\n\n"
        f"=== RAW LAB REPORT TEXT (COMPLETE) ===\n{source}\n=== END OF RAW TEXT ==="
    )
    if prior_analysis and prior_analysis.strip():
        prompt += f"\n\n=== PREVIOUS AI ANALYSIS SUMMARY ===\n{prior_analysis}\n=== END OF ANALYSIS ==="

    prompt += f"""

The patient is now asking a follow-up question about their lab results.

PATIENT'S QUESTION: {question}

CRITICAL INSTRUCTIONS:
1. You have the COMPLETE RAW TEXT from the lab report above. Use this as your primary source of information.
2. If an analysis summary is provided, you can reference it, but always verify details against the raw text.
3. DO NOT say you don't have access to the lab report data - you have the complete raw text above.
4. Reference specific values, test names, reference ranges, and findings from the raw text when answering.
5. Use simple, patient-friendly language.
6. If the question asks about something not in the report, acknowledge that and suggest they ask their healthcare provider.
7. Do NOT provide diagnoses or treatment plans.
8. Always remind them to consult their healthcare provider for medical advice.

{PLAIN_TEXT_RULES.replace("bullet points", "lists")}

Answer the patient's question now, using the raw lab report text above as your source of information:"""
    return prompt


class LabAnalyzer:
    """Gemini-backed explanations of lab reports.

    Calls are single-shot and blocking; routes run them in the threadpool.
    The SDK client is created on first use and reused for the life of the
    analyzer.
    """

    def __init__(self, settings: Settings, client: Optional[Any] = None):
        self.api_key = settings.gemini_api_key
        self.model = settings.gemini_model
        self._client = client

    def _get_client(self):
        if self._client is None:
            if not self.api_key:
                raise errors.ServiceUnavailable("AI analysis not configured. Set GEMINI_API_KEY.")
            try:
                self._client = genai.Client(api_key=self.api_key)
            except Exception as exc:
                logger.error("Could not create Gemini client: %s", exc)
                raise errors.ServiceError("AI analysis unavailable", details=str(exc)) from exc
        return self._client

    def _generate(self, contents) -> str:
        client = self._get_client()
        try:
            response = client.models.generate_content(model=self.model, contents=contents)
        except Exception as exc:
            logger.error("Gemini request failed: %s", exc)
            raise errors.ServiceError("Failed to get answer from AI", details=str(exc)) from exc
        text = getattr(response, "text", None)
        if not text:
            raise errors.ServiceError("Failed to get answer from AI", details="Empty response from model")
        return text

    def analyze_text(self, raw_text: str, structured_data: Optional[Dict[str, Any]] = None) -> str:
        self._get_client()
        text = self._generate(build_text_prompt(raw_text, structured_data))
        logger.info("Generated text analysis (%d characters)", len(text))
        return text

    def analyze_pdf(self, pdf_bytes: bytes, file_name: Optional[str] = None) -> str:
        self._get_client()
        try:
            contents = [
                types.Part.from_text(text=build_pdf_prompt(file_name)),
                types.Part.from_bytes(data=pdf_bytes, mime_type="application/pdf"),
            ]
        except Exception as exc:
            raise errors.ServiceError("Failed to prepare PDF for analysis", details=str(exc)) from exc
        text = self._generate(contents)
        logger.info("Generated PDF analysis (%d characters)", len(text))
        return text

    def chat(self, raw_text: str, prior_analysis: Optional[str], question: str) -> str:
        self._get_client()
        if not raw_text or not raw_text.strip():
            raise errors.ValidationError("Lab report raw text is required for chat")
        logger.info(
            "Chat request: question %d chars, raw text %d chars, analysis %d chars",
            len(question),
            len(raw_text),
            len(prior_analysis or ""),
        )
        return self._generate(build_chat_prompt(raw_text, prior_analysis, question))
