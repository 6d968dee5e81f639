import logging
from datetime import datetime
from typing import Optional

import redis
import requests
from celery.result import AsyncResult
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.models.account import Account
from app.models.scan import Scan, ScanIssue, ScanStatus
from app.schemas.analysis import LabelAnalysisResult
from app.services.account_service import reset_usage_if_due
from app.services.ai_service import LabelAnalyzer, build_prompt, fallback_result, load_prompt_context
from app.utils.storage import StorageManager, get_storage
from app.utils.uploads import PDF_CONTENT_TYPE, extract_pdf_text, prepare_image
from app.websocket.broadcast import get_redis_client, publish_completed, publish_error, publish_progress
from app.worker import celery_app

logger = logging.getLogger(__name__)

QUEUE_NAME = "label-scans"

_analyzer: Optional[LabelAnalyzer] = None


class ScanNotFoundError(LookupError):
    pass


def get_analyzer() -> LabelAnalyzer:
    global _analyzer
    if _analyzer is None:
        _analyzer = LabelAnalyzer()
    return _analyzer


def fetch_label(label_url: str, storage: StorageManager) -> bytes:
    """Remote URLs are downloaded; `/uploads/...` paths come from object storage"""
    if label_url.startswith(("http://", "https://")):
        response = requests.get(label_url, timeout=30)
        response.raise_for_status()
        return response.content
    return storage.get_bytes(label_url)


def save_analysis(db: Session, scan: Scan, result: LabelAnalysisResult) -> None:
    scan.status = ScanStatus.COMPLETED
    scan.score = result.compliance.score
    scan.risk_level = result.compliance.riskLevel
    scan.results = result.model_dump(mode="json")
    scan.completed_at = datetime.utcnow()

    # A retried job may have written issues before failing
    db.query(ScanIssue).filter(ScanIssue.scan_id == scan.id).delete(synchronize_session=False)
    for issue in result.issues:
        db.add(ScanIssue(
            scan_id=scan.id,
            category=issue.category,
            severity=issue.severity,
            description=issue.description,
            recommendation=issue.recommendation,
            regulation=issue.regulation,
        ))
    db.commit()


def run_scan_analysis(
    db: Session,
    scan_id: int,
    analyzer: Optional[LabelAnalyzer] = None,
    storage: Optional[StorageManager] = None,
) -> dict:
    """
    Full analysis lifecycle for one scan: load the label, ask the model,
    persist the report. Progress is published at every stage.
    """
    scan = db.query(Scan).filter(Scan.id == scan_id).first()
    if scan is None:
        raise ScanNotFoundError(f"Scan {scan_id} not found")

    analyzer = analyzer or get_analyzer()
    storage = storage or get_storage()

    publish_progress(scan_id, "analyzing", 10, "Starting AI analysis...")
    scan.status = ScanStatus.PROCESSING
    db.commit()

    publish_progress(scan_id, "analyzing", 20, "Loading image...")
    content = fetch_label(scan.label_url, storage)

    image_bytes, image_type, document_text = None, "image/jpeg", None
    if scan.content_type == PDF_CONTENT_TYPE:
        document_text = extract_pdf_text(content)
        scan.extracted_text = document_text or None
        db.commit()
    else:
        image_bytes, image_type = prepare_image(content)

    system_settings, rules = load_prompt_context(db, scan.category, scan.marketplaces or [])
    prompt = build_prompt(scan.category, scan.marketplaces or [], system_settings, rules)

    publish_progress(scan_id, "analyzing", 30, "Analyzing label with Claude AI (30-90 seconds)...")
    result = analyzer.analyze(prompt, image_bytes=image_bytes, image_type=image_type, document_text=document_text)

    publish_progress(scan_id, "saving", 90, "Saving analysis results...")
    save_analysis(db, scan, result)

    publish_progress(scan_id, "completed", 100, "Analysis completed!")
    publish_completed(scan_id, result.compliance.score, result.compliance.passed, result.summary)

    logger.info(f"Scan {scan_id} completed with score {result.compliance.score}")
    return {"scan_id": scan_id, "score": result.compliance.score, "passed": result.compliance.passed}


def mark_scan_failed(db: Session, scan_id: int, error: Exception) -> None:
    scan = db.query(Scan).filter(Scan.id == scan_id).first()
    if scan is None:
        return
    scan.status = ScanStatus.FAILED
    scan.results = fallback_result(str(error))
    scan.completed_at = datetime.utcnow()
    db.commit()
    publish_error(scan_id, str(error) or "Analysis failed")


@celery_app.task(
    bind=True,
    name="app.tasks.scan_tasks.process_label_scan",
    max_retries=settings.SCAN_MAX_ATTEMPTS - 1,
    rate_limit=settings.SCAN_RATE_LIMIT,
)
def process_label_scan(
    self,
    scan_id: int,
    user_id: Optional[int] = None,
    image_url: Optional[str] = None,
    category: Optional[str] = None,
    marketplaces: Optional[list] = None,
    product_name: Optional[str] = None,
):
    """
    Background worker for a label scan. The payload mirrors the scan row so
    the job is readable in the broker; the row is the source of truth.
    """
    db = SessionLocal()
    try:
        return run_scan_analysis(db, scan_id)

    except ScanNotFoundError:
        logger.error(f"Label scan failed: Scan ID {scan_id} not found in DB.")
        return None

    except Exception as exc:
        db.rollback()
        attempt = self.request.retries + 1
        if self.request.retries < self.max_retries:
            countdown = settings.SCAN_RETRY_BACKOFF_SECONDS * (2 ** self.request.retries)
            logger.warning(f"Scan {scan_id} attempt {attempt} failed: {exc}. Retrying in {countdown}s")
            scan = db.query(Scan).filter(Scan.id == scan_id).first()
            if scan is not None:
                scan.status = ScanStatus.QUEUED
                db.commit()
            publish_progress(scan_id, "retrying", 0, f"Analysis attempt {attempt} failed, retrying in {countdown}s...")
            raise self.retry(exc=exc, countdown=countdown)

        logger.error(f"Scan {scan_id} failed after {attempt} attempts: {exc}")
        mark_scan_failed(db, scan_id, exc)
        raise

    finally:
        db.close()


@celery_app.task(name="app.tasks.scan_tasks.reset_monthly_scan_usage")
def reset_monthly_scan_usage() -> int:
    """Beat task: reset the monthly scan counter of accounts past their reset date"""
    db = SessionLocal()
    try:
        now = datetime.utcnow()
        accounts = db.query(Account).filter(Account.scan_limit_reset_at <= now).all()
        for account in accounts:
            reset_usage_if_due(account, now)
        db.commit()
        logger.info(f"Reset monthly scan usage for {len(accounts)} accounts")
        return len(accounts)
    finally:
        db.close()


def enqueue_scan(scan: Scan) -> str:
    """Queue a scan for analysis; the job id is the scan id"""
    publish_progress(scan.id, "queued", 0, "Scan queued for processing")
    result = process_label_scan.apply_async(
        kwargs={
            "scan_id": scan.id,
            "user_id": scan.created_by,
            "image_url": scan.label_url,
            "category": scan.category.value,
            "marketplaces": list(scan.marketplaces or []),
            "product_name": scan.product_name,
        },
        task_id=str(scan.id),
    )
    return result.id


def get_scan_job_status(scan_id: int) -> dict:
    result = AsyncResult(str(scan_id), app=celery_app)
    info = result.info if isinstance(result.info, dict) else None
    return {"jobId": str(scan_id), "state": result.state, "result": info}


def get_queue_stats(db: Session) -> dict:
    """Waiting jobs from the broker, the rest from scan rows"""
    stats = {
        "waiting": None,
        "active": db.query(Scan).filter(Scan.status == ScanStatus.PROCESSING).count(),
        "queued": db.query(Scan).filter(Scan.status == ScanStatus.QUEUED).count(),
        "completed": db.query(Scan).filter(Scan.status == ScanStatus.COMPLETED).count(),
        "failed": db.query(Scan).filter(Scan.status == ScanStatus.FAILED).count(),
    }
    try:
        stats["waiting"] = get_redis_client().llen(QUEUE_NAME)
    except redis.RedisError as e:
        logger.warning(f"Could not read queue length: {e}")
    return stats
