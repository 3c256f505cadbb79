import logging
from typing import Dict, List

from sqlalchemy import extract, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import PersistenceError
from .models import Visit

logger = logging.getLogger(__name__)


def record_visit(db: Session) -> Visit:
    visit = Visit()
    try:
        db.add(visit)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("❌ Could not record visit")
        raise PersistenceError("visit insert failed") from e
    logger.debug(f"👀 Visit recorded at {visit.visited_at}")
    return visit


def monthly_stats(db: Session) -> List[Dict]:
    """Visit counts grouped by YYYY-MM, newest month first."""
    year = extract("year", Visit.visited_at)
    month = extract("month", Visit.visited_at)
    rows = db.execute(
        select(year, month, func.count(Visit.id))
        .group_by(year, month)
        .order_by(year.desc(), month.desc())
    ).all()
    return [
        {"month": f"{int(y):04d}-{int(m):02d}", "count": count}
        for y, m, count in rows
    ]
