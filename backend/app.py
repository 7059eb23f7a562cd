import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, Response
from pydantic import ValidationError
from sqlmodel import Session

import store
from attendance import build_month_sheet, parse_filters
from auth import require_allowed_email, require_super_admin
from db import create_db_and_tables, get_session
from harvest import HarvestError, InvalidDateFormat, validate_date_range
from report import export_filename, generate_csv, generate_report_html
from schemas import (
    ActionResult,
    CacheInfo,
    HolidayCreate,
    HolidayResponse,
    HolidayToggleResult,
    MonthSheetResponse,
    OvertimeToggleRequest,
    TimeEntryWithOvertime,
    VisibilityBulkRequest,
)
from time_entries_cache import resolve_time_entries

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    create_db_and_tables()
    logger.info("Database initialized")
    yield


app = FastAPI(title="Harvest Attendance API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins in development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _load_sheet(
    session: Session,
    month: int | None,
    year: int | None,
    refetch: bool,
    filters: str | None,
) -> MonthSheetResponse:
    try:
        highlight_filters = parse_filters(filters)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    try:
        return build_month_sheet(
            session,
            month=month,
            year=year,
            force_refresh=refetch,
            filters=highlight_filters,
        )
    except (HarvestError, ValidationError) as e:
        # A payload Harvest sent that does not parse is a remote failure too
        logger.error(f"Error loading attendance data from Harvest: {str(e)}")
        raise HTTPException(status_code=502, detail=str(e)) from e


@app.get("/attendance", response_model=MonthSheetResponse)
def get_attendance(
    month: int | None = Query(None, description="Month number 1-12, defaults to the current month"),
    year: int | None = Query(None, description="Year, defaults to the current year"),
    refetch: bool = Query(False, description="Drop the cached month and refetch from Harvest"),
    filters: str | None = Query(None, description="Comma separated legend filters to highlight"),
    session: Session = Depends(get_session),
    email: str = Depends(require_allowed_email),
):
    """Monthly attendance sheet for every visible, active Harvest user."""
    logger.info(f"Attendance request from {email}: month={month} year={year} refetch={refetch}")
    return _load_sheet(session, month, year, refetch, filters)


@app.get("/attendance/export.csv")
def export_attendance_csv(
    month: int | None = Query(None),
    year: int | None = Query(None),
    filters: str | None = Query(None),
    session: Session = Depends(get_session),
    email: str = Depends(require_allowed_email),
):
    sheet = _load_sheet(session, month, year, False, filters)
    return Response(
        content=generate_csv(sheet),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(sheet, "csv")}"'},
    )


@app.get("/attendance/export.html", response_class=HTMLResponse)
def export_attendance_html(
    month: int | None = Query(None),
    year: int | None = Query(None),
    filters: str | None = Query(None),
    session: Session = Depends(get_session),
    email: str = Depends(require_allowed_email),
):
    sheet = _load_sheet(session, month, year, False, filters)
    return HTMLResponse(content=generate_report_html(sheet))


@app.get("/time-entries", response_model=list[TimeEntryWithOvertime])
def get_time_entries(
    date_from: str = Query(..., alias="from", description="Range start in YYYY-MM-DD format"),
    date_to: str = Query(..., alias="to", description="Range end in YYYY-MM-DD format"),
    refetch: bool = Query(False),
    session: Session = Depends(get_session),
    email: str = Depends(require_allowed_email),
):
    """Time entries for an exact range key, served from cache when possible."""
    try:
        validate_date_range(date_from, date_to)
        if date_from > date_to:
            raise InvalidDateFormat("Range start must not be after range end")
        return resolve_time_entries(session, date_from, date_to, refetch)
    except InvalidDateFormat as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except (HarvestError, ValidationError) as e:
        logger.error(f"Harvest fetch failed for {date_from} to {date_to}: {str(e)}")
        raise HTTPException(status_code=502, detail=str(e)) from e


@app.get("/cache/info", response_model=CacheInfo)
def get_cache_info(
    date_from: str = Query(..., alias="from"),
    date_to: str = Query(..., alias="to"),
    session: Session = Depends(get_session),
    email: str = Depends(require_allowed_email),
):
    return store.get_cache_info(session, date_from, date_to)


@app.post("/overtime", response_model=ActionResult)
def toggle_overtime(
    request: OvertimeToggleRequest,
    session: Session = Depends(get_session),
    email: str = Depends(require_allowed_email),
):
    """Mark (or unmark) all hours of a cached entry as overtime for one range key."""
    try:
        updated = store.set_overtime(
            session,
            request.entry_id,
            request.date_range_start,
            request.date_range_end,
            request.overtime,
        )
        logger.info(
            f"Overtime={request.overtime} for entry {request.entry_id} "
            f"({request.date_range_start} to {request.date_range_end}): {updated} row(s) updated"
        )
        return ActionResult(success=True)
    except Exception as e:
        logger.error(f"Error toggling overtime: {str(e)}")
        return ActionResult(success=False, error=str(e))


@app.get("/holidays")
def get_holidays(
    date_from: str | None = Query(None, alias="from"),
    date_to: str | None = Query(None, alias="to"),
    session: Session = Depends(get_session),
    email: str = Depends(require_allowed_email),
):
    """All holidays, or just the dates between from and to when both are given."""
    if date_from and date_to:
        return {"dates": store.get_holidays_for_range(session, date_from, date_to)}
    holidays = store.get_all_holidays(session)
    return {"holidays": [HolidayResponse.model_validate(h, from_attributes=True) for h in holidays]}


@app.post("/holidays", response_model=ActionResult)
def add_holiday(
    request: HolidayCreate,
    session: Session = Depends(get_session),
    email: str = Depends(require_allowed_email),
):
    try:
        store.add_holiday(session, request.date, request.name)
        return ActionResult(success=True)
    except Exception as e:
        logger.error(f"Error adding holiday: {str(e)}")
        return ActionResult(success=False, error=str(e))


@app.delete("/holidays/{date}", response_model=ActionResult)
def remove_holiday(
    date: str,
    session: Session = Depends(get_session),
    email: str = Depends(require_allowed_email),
):
    try:
        store.remove_holiday(session, date)
        return ActionResult(success=True)
    except Exception as e:
        logger.error(f"Error removing holiday: {str(e)}")
        return ActionResult(success=False, error=str(e))


@app.post("/holidays/{date}/toggle", response_model=HolidayToggleResult)
def toggle_holiday(
    date: str,
    name: str | None = Query(None),
    session: Session = Depends(get_session),
    email: str = Depends(require_allowed_email),
):
    try:
        HolidayCreate(date=date, name=name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD") from e

    try:
        is_holiday = store.toggle_holiday(session, date, name)
        return HolidayToggleResult(success=True, is_holiday=is_holiday)
    except Exception as e:
        logger.error(f"Error toggling holiday: {str(e)}")
        return HolidayToggleResult(success=False, error=str(e))


@app.get("/user-visibility")
def get_user_visibility(
    session: Session = Depends(get_session),
    email: str = Depends(require_allowed_email),
):
    return {"visibility": store.get_all_user_visibility(session)}


@app.put("/user-visibility", response_model=ActionResult)
def update_user_visibility(
    request: VisibilityBulkRequest,
    session: Session = Depends(get_session),
    email: str = Depends(require_super_admin),
):
    """Apply a batch of visibility changes atomically."""
    try:
        store.set_multiple_user_visibility(
            session, [(item.email, item.is_visible) for item in request.visibilities]
        )
        logger.info(f"{email} updated visibility for {len(request.visibilities)} user(s)")
        return ActionResult(success=True)
    except Exception as e:
        logger.error(f"Error updating user visibility: {str(e)}")
        return ActionResult(success=False, error=str(e))


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Harvest Attendance API", "docs": "/docs"}
