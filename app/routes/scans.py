"""API Routes - Label scans"""
import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy import func
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.database import get_db
from app.models.account import AccountPermission
from app.models.scan import Category, Marketplace, Scan, ScanIssue, ScanStatus
from app.schemas.scan import IssueResponse, ScanCreated, ScanDetail, ScanSummary
from app.services.account_service import release_scan_quota, reserve_scan_quota, reset_usage_if_due
from app.tasks.scan_tasks import enqueue_scan, get_scan_job_status
from app.utils.auth import AccountContext, get_account_context
from app.utils.limiter import limiter
from app.utils.storage import UPLOADS_PREFIX, StorageManager, get_storage
from app.utils.uploads import extension_for, validate_label_file

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scans", tags=["Label Scans"])
uploads_router = APIRouter(tags=["Label Scans"])

DOWNLOAD_URL_EXPIRES = 3600


def _usage(account) -> dict:
    return {
        "scansUsed": account.scans_used_this_month,
        "scanLimit": account.scan_limit_per_month,
        "resetDate": account.scan_limit_reset_at,
    }


def _parse_marketplaces(values: List[str]) -> List[str]:
    """Accepts a JSON array string or repeated form values"""
    raw: List[str] = []
    for value in values:
        value = value.strip()
        if value.startswith("["):
            try:
                parsed = json.loads(value)
            except ValueError:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid marketplaces format")
            if not isinstance(parsed, list):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid marketplaces format")
            raw.extend(str(v) for v in parsed)
        elif value:
            raw.append(value)

    marketplaces = []
    for value in raw:
        try:
            code = Marketplace(value.upper()).value
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid marketplace: {value}")
        if code not in marketplaces:
            marketplaces.append(code)
    if not marketplaces:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one marketplace is required")
    return marketplaces


def _get_account_scan(db: Session, scan_id: int, ctx: AccountContext) -> Scan:
    scan = db.query(Scan).filter(Scan.id == scan_id).first()
    if not scan:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scan not found")
    if scan.account_id != ctx.account_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this scan")
    return scan


@router.get("")
async def list_scans(
    db: Session = Depends(get_db),
    ctx: AccountContext = Depends(get_account_context(require_permissions=[AccountPermission.SCAN_VIEW])),
):
    """Account scans, newest first"""
    scans = (
        db.query(Scan)
        .filter(Scan.account_id == ctx.account_id)
        .order_by(Scan.created_at.desc(), Scan.id.desc())
        .all()
    )
    counts = dict(
        db.query(ScanIssue.scan_id, func.count(ScanIssue.id))
        .join(Scan, ScanIssue.scan_id == Scan.id)
        .filter(Scan.account_id == ctx.account_id)
        .group_by(ScanIssue.scan_id)
        .all()
    )

    items = []
    for scan in scans:
        summary = ScanSummary.model_validate(scan)
        summary.created_by_name = scan.creator.name if scan.creator else None
        summary.issues_count = counts.get(scan.id, 0)
        items.append(summary)

    return {"scans": items, "usage": _usage(ctx.account), "permissions": ctx.permissions}


@router.post("", response_model=ScanCreated, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.SCAN_UPLOAD_RATE_LIMIT)
async def create_scan(
    request: Request,
    productName: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    marketplaces: List[str] = Form([]),
    labelFile: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    ctx: AccountContext = Depends(get_account_context(require_permissions=[AccountPermission.SCAN_CREATE])),
    storage: StorageManager = Depends(get_storage),
):
    """
    Upload a label and queue it for compliance analysis.

    - **productName**: product the label belongs to
    - **category**: TOYS, BABY_PRODUCTS or COSMETICS_PERSONAL_CARE
    - **marketplaces**: JSON array (`["US","UK"]`) or repeated values
    - **labelFile**: JPEG, PNG, WEBP or PDF up to 10MB
    """
    account = ctx.account

    if reset_usage_if_due(account):
        db.commit()

    # the quota is taken before any await so concurrent uploads cannot overrun it
    reserved = reserve_scan_quota(db, account.id)
    db.commit()
    if not reserved:
        db.refresh(account)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=(
                f"Scan limit reached. You have used {account.scans_used_this_month} "
                f"of {account.scan_limit_per_month} scans this month."
            ),
        )

    try:
        product_name = (productName or "").strip()
        if not product_name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product name is required")
        try:
            scan_category = Category((category or "").strip().upper())
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or missing category")
        scan_marketplaces = _parse_marketplaces(marketplaces)
        if labelFile is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Label file is required")

        content = await labelFile.read()
        error = validate_label_file(content, labelFile.content_type)
        if error:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)

        filename = labelFile.filename or f"label.{extension_for(labelFile.content_type)}"
        # StorageError propagates as a 500
        label_url = await run_in_threadpool(storage.upload_bytes, content, filename, labelFile.content_type)
    except Exception:
        db.rollback()
        release_scan_quota(db, account.id)
        db.commit()
        raise

    scan = Scan(
        account_id=account.id,
        created_by=ctx.user.id,
        product_name=product_name,
        category=scan_category,
        marketplaces=scan_marketplaces,
        label_url=label_url,
        original_filename=labelFile.filename,
        content_type=labelFile.content_type,
        status=ScanStatus.QUEUED,
    )
    db.add(scan)
    db.commit()
    db.refresh(scan)

    try:
        enqueue_scan(scan)
    except Exception as e:
        logger.error(f"Failed to enqueue scan {scan.id}: {e}")
        scan.status = ScanStatus.FAILED
        release_scan_quota(db, account.id)
        db.commit()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analysis queue is unavailable. Please try again shortly.",
        )

    logger.info(f"Scan {scan.id} queued for account {account.id}")
    return scan


@router.get("/{scan_id}", response_model=ScanDetail)
async def get_scan(
    scan_id: int,
    db: Session = Depends(get_db),
    ctx: AccountContext = Depends(get_account_context(require_permissions=[AccountPermission.SCAN_VIEW])),
):
    """Full analysis results of a scan"""
    scan = _get_account_scan(db, scan_id, ctx)
    return ScanDetail(
        id=scan.id,
        product_name=scan.product_name,
        category=scan.category,
        marketplaces=scan.marketplaces or [],
        status=scan.status,
        score=scan.score or 0,
        risk_level=scan.risk_level,
        label_url=scan.label_url,
        original_filename=scan.original_filename,
        extracted_text=scan.extracted_text,
        results=scan.results,
        issues=[IssueResponse.model_validate(i) for i in scan.issues],
        plan=ctx.account.plan,
        created_at=scan.created_at,
        updated_at=scan.updated_at,
        completed_at=scan.completed_at,
    )


@router.get("/{scan_id}/download")
async def download_label(
    scan_id: int,
    db: Session = Depends(get_db),
    ctx: AccountContext = Depends(get_account_context(require_permissions=[AccountPermission.SCAN_VIEW])),
    storage: StorageManager = Depends(get_storage),
):
    """Short-lived signed URL for the original label file"""
    scan = _get_account_scan(db, scan_id, ctx)
    filename = scan.original_filename or f"{scan.product_name}-label.{extension_for(scan.content_type)}"
    url = storage.presigned_url(scan.label_url, expires=DOWNLOAD_URL_EXPIRES, filename=filename)
    return {"url": url, "filename": filename, "expiresIn": DOWNLOAD_URL_EXPIRES}


@router.get("/{scan_id}/status")
async def get_scan_status(
    scan_id: int,
    db: Session = Depends(get_db),
    ctx: AccountContext = Depends(get_account_context(require_permissions=[AccountPermission.SCAN_VIEW])),
):
    scan = _get_account_scan(db, scan_id, ctx)
    return {
        "scanId": scan.id,
        "status": scan.status.value,
        "score": scan.score,
        "job": get_scan_job_status(scan.id),
    }


@router.delete("/{scan_id}")
async def delete_scan(
    scan_id: int,
    db: Session = Depends(get_db),
    ctx: AccountContext = Depends(get_account_context(require_permissions=[AccountPermission.SCAN_DELETE])),
    storage: StorageManager = Depends(get_storage),
):
    """Delete a scan, its issues and the stored label"""
    scan = _get_account_scan(db, scan_id, ctx)
    label_url = scan.label_url
    db.delete(scan)
    db.commit()

    if label_url.startswith(UPLOADS_PREFIX):
        await run_in_threadpool(storage.delete_file, label_url)

    return {"message": "Scan deleted successfully"}


@uploads_router.get("/uploads/{key:path}")
async def serve_upload(
    key: str,
    db: Session = Depends(get_db),
    ctx: AccountContext = Depends(get_account_context()),
    storage: StorageManager = Depends(get_storage),
):
    """Stream a stored label to a member of the account that owns it"""
    scan = db.query(Scan).filter(Scan.label_url == f"{UPLOADS_PREFIX}{key}").first()
    if scan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    if scan.account_id != ctx.account_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this file")

    obj = await run_in_threadpool(storage.get_object, key)
    media_type = obj.get("ContentType") or scan.content_type or "application/octet-stream"
    return StreamingResponse(obj["Body"].iter_chunks(), media_type=media_type)
