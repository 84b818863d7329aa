# healthdesk/reports.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from . import database, errors, models, schemas
from .deps import ensure_owner, get_analyzer, get_current_user, get_optional_user, get_settings
from .text_format import clean_markdown

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lab", tags=["lab"])

RAW_TEXT_PLACEHOLDER = "PDF text extraction not enabled"


def _is_pdf(upload: UploadFile) -> bool:
    return upload.content_type == "application/pdf" or (upload.filename or "").lower().endswith(".pdf")


def _owned_report(db: Session, report_id: str, user_id: str) -> Optional[models.LabReport]:
    return (
        db.query(models.LabReport)
        .filter(models.LabReport.id == report_id, models.LabReport.user_id == user_id)
        .first()
    )


def _store_report(db: Session, report: models.LabReport) -> models.LabReport:
    db.add(report)
    database.commit_or_fail(db, "Failed to save lab report")
    db.refresh(report)
    return report


@router.post("/upload", response_model=schemas.LabReportEnvelope, status_code=201)
async def upload_report(
    file: Optional[UploadFile] = File(default=None),
    file_name: Optional[str] = Form(default=None, alias="fileName"),
    user_id: Optional[str] = Form(default=None, alias="userId"),
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
    analyzer=Depends(get_analyzer),
    settings=Depends(get_settings),
):
    user_id = ensure_owner(current, user_id)
    if file is None or not file.filename:
        raise errors.ValidationError("No file provided")
    if not _is_pdf(file):
        raise errors.ValidationError("Only PDF files are supported")

    pdf_bytes = await file.read()
    if not pdf_bytes:
        raise errors.ValidationError("Uploaded file is empty")
    if len(pdf_bytes) > settings.max_upload_mb * 1024 * 1024:
        raise errors.PayloadTooLarge(f"File too large (max {settings.max_upload_mb}MB)")
    name = (file_name or "").strip() or file.filename

    # analysis is best-effort; the upload is kept even when it fails
    ai_analysis = None
    try:
        ai_analysis = await run_in_threadpool(analyzer.analyze_pdf, pdf_bytes, name)
    except errors.AppError as exc:
        logger.warning("AI analysis failed for upload by %s: %s", user_id, exc.message)
    except Exception:
        logger.exception("AI analysis crashed for upload by %s", user_id)

    report = models.LabReport(
        user_id=user_id,
        file_name=name,
        raw_text=RAW_TEXT_PLACEHOLDER,
        structured_data=None,
        ai_analysis=ai_analysis,
    )
    report = await run_in_threadpool(_store_report, db, report)
    logger.info("Stored lab report %s (%d bytes)", report.id, len(pdf_bytes))
    return {"lab_report": report}


@router.get("/reports", response_model=schemas.LabReportList)
def list_reports(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    db: Session = Depends(database.get_db),
    current: Optional[models.User] = Depends(get_optional_user),
):
    if not user_id:
        raise errors.ValidationError("User ID required")
    if current is None:
        # anonymous callers own no rows
        return {"lab_reports": []}
    ensure_owner(current, user_id)
    rows = (
        db.query(models.LabReport)
        .filter(models.LabReport.user_id == user_id)
        .order_by(models.LabReport.uploaded_at.desc())
        .all()
    )
    return {"lab_reports": rows}


@router.delete("/reports", response_model=schemas.SuccessOut)
def delete_report(
    report_id: Optional[str] = Query(default=None, alias="id"),
    user_id: Optional[str] = Query(default=None, alias="userId"),
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
):
    if not report_id or not user_id:
        raise errors.ValidationError("Report ID and User ID required")
    ensure_owner(current, user_id)
    report = _owned_report(db, report_id, user_id)
    if not report:
        raise errors.NotFound("Lab report not found")
    db.delete(report)
    database.commit_or_fail(db, "Failed to delete lab report")
    logger.info("Deleted lab report %s", report_id)
    return {"success": True}


@router.post("/analyze", response_model=schemas.AnalyzeOut)
async def analyze_text(payload: schemas.AnalyzeIn, analyzer=Depends(get_analyzer)):
    text = (payload.text or "").strip()
    if not text:
        raise errors.ValidationError("Missing 'text' field in request body")
    structured = payload.structured_data.model_dump(by_alias=True) if payload.structured_data else None
    analysis = await run_in_threadpool(analyzer.analyze_text, text, structured)
    return {"analysis": clean_markdown(analysis)}


@router.post("/chat", response_model=schemas.ChatOut)
async def chat_with_report(
    payload: schemas.ChatIn,
    db: Session = Depends(database.get_db),
    current: models.User = Depends(get_current_user),
    analyzer=Depends(get_analyzer),
):
    if not payload.report_id or not payload.question.strip():
        raise errors.ValidationError("Report ID, question, and user ID are required")
    user_id = ensure_owner(current, payload.user_id)

    report = await run_in_threadpool(_owned_report, db, payload.report_id, user_id)
    if not report:
        raise errors.NotFound("Lab report not found")
    if not report.raw_text or not report.raw_text.strip():
        raise errors.ValidationError("Lab report text not available. Please re-upload the report.")

    answer = await run_in_threadpool(analyzer.chat, report.raw_text, report.ai_analysis, payload.question)
    return {"answer": clean_markdown(answer)}
