# dentalclinic/routers/reports.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas, security
from ..database import get_db
from ..security import AuthContext
from ..services import report_service

router = APIRouter(
    tags=["Reports"],
)

@router.get("/reports", response_model=schemas.ReportResponse)
def read_report(
    period: str = "month",
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_front_desk)
):
    """Operational summary for the last month, quarter or year."""
    return report_service.build_report(db, period)
