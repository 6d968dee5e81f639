"""API Routes - Dashboard"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import func

from app.database import get_db
from app.models.scan import IssueSeverity, Scan, ScanIssue, ScanStatus
from app.schemas.scan import ScanSummary
from app.utils.auth import AccountContext, get_account_context

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])

COMPLIANT_SCORE = 80

@router.get("/overview")
async def get_dashboard_overview(
    db: Session = Depends(get_db),
    ctx: AccountContext = Depends(get_account_context()),
):
    """Get dashboard overview statistics for the caller's account"""
    account = ctx.account
    completed = db.query(Scan).filter(Scan.account_id == account.id, Scan.status == ScanStatus.COMPLETED)

    total_scans = db.query(func.count(Scan.id)).filter(Scan.account_id == account.id).scalar()

    compliant_scans = completed.filter(Scan.score >= COMPLIANT_SCORE).count()

    issues_found = (
        db.query(func.count(ScanIssue.id))
        .join(Scan, ScanIssue.scan_id == Scan.id)
        .filter(
            Scan.account_id == account.id,
            Scan.status == ScanStatus.COMPLETED,
            ScanIssue.severity != IssueSeverity.INFO,
        )
        .scalar()
    )

    avg_score = (
        db.query(func.avg(Scan.score))
        .filter(Scan.account_id == account.id, Scan.status == ScanStatus.COMPLETED, Scan.score.isnot(None))
        .scalar()
    )

    recent = (
        db.query(Scan)
        .filter(Scan.account_id == account.id)
        .order_by(Scan.created_at.desc(), Scan.id.desc())
        .limit(5)
        .all()
    )

    return {
        "stats": {
            "totalScans": total_scans,
            "compliantScans": compliant_scans,
            "issuesFound": issues_found,
            "avgScore": round(avg_score) if avg_score is not None else None,
        },
        "recentScans": [ScanSummary.model_validate(s) for s in recent],
        "usage": {
            "scansUsed": account.scans_used_this_month,
            "scanLimit": account.scan_limit_per_month,
            "resetDate": account.scan_limit_reset_at,
        },
        "account": {"plan": account.plan.value},
    }
