import logging
from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from csrf import generate_csrf_token, validate_csrf_token
from database import SessionLocal
from errors import (
    BalanceError,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
    UpstreamFailureError,
)
from money import from_cents
from periods import Period, resolve_period
from reconstruction import EventLine, HistoryResult, TransferLine
from schemas import (
    BalanceDiagnosticsOut,
    BalanceHistoryEntryOut,
    BalanceHistoryOut,
    BalanceSetIn,
    BalanceSetOut,
    CurrentBalanceOut,
    EventLineOut,
    HistoryOut,
    PeriodOut,
    TransferLineOut,
)
from services import BalanceService, get_current_user_id

settings = get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except ImportError:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except (OSError, tomllib.TOMLDecodeError):
        return "unknown"


APP_VERSION = _load_app_version()

app = FastAPI(title="Household Balances", version=APP_VERSION)


def get_session_factory() -> sessionmaker[Session]:
    return SessionLocal


def current_user_id(x_user_id: Optional[int] = Header(default=None)) -> int:
    return x_user_id if x_user_id is not None else get_current_user_id()


def get_balance_service(
    factory: sessionmaker[Session] = Depends(get_session_factory),
    user_id: int = Depends(current_user_id),
) -> BalanceService:
    return BalanceService(factory, user_id)


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def int_param(request: Request, name: str, default: Optional[int]) -> Optional[int]:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"{name} must be an integer") from exc


def date_param(request: Request, name: str) -> Optional[date]:
    raw = request.query_params.get(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=400, detail=f"{name} must use the YYYY-MM-DD format"
        ) from exc


def flag_param(request: Request, name: str) -> bool:
    return (request.query_params.get(name) or "").strip().lower() in {
        "1",
        "true",
        "yes",
        "on",
    }


def http_error(exc: BalanceError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, UnauthorizedError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, InvalidInputError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, UpstreamFailureError):
        logger.error(f"balance_unavailable: error={exc}")
        return HTTPException(status_code=503, detail="Could not compute balance")
    logger.error(f"balance_error: error={exc}")
    return HTTPException(status_code=500, detail="Could not compute balance")


def event_line_out(line: EventLine) -> EventLineOut:
    return EventLineOut(
        id=line.id,
        amount_cents=line.amount_cents,
        amount=from_cents(line.amount_cents),
        description=line.description or "",
    )


def transfer_line_out(line: TransferLine) -> TransferLineOut:
    return TransferLineOut(
        id=line.id,
        amount_cents=line.amount_cents,
        amount=from_cents(line.amount_cents),
        counterpart_account_id=line.counterpart_account_id,
        counterpart_name=line.counterpart_name,
        description=line.description or "",
    )


def history_payload(account_id: int, result: HistoryResult) -> HistoryOut:
    return HistoryOut(
        account_id=account_id,
        granularity=result.granularity,
        current_balance_cents=result.current.balance_cents,
        pending_drafts_cents=result.current.pending_drafts_cents,
        archive_boundary=result.boundary,
        live_region_change_cents=result.live_region_change_cents,
        gaps=list(result.gaps),
        unbucketed_event_count=result.unbucketed_event_count,
        periods=[
            PeriodOut(
                key=p.bucket.key,
                start=p.bucket.start,
                end=p.bucket.end,
                archived=p.bucket.archived,
                implicit=p.bucket.implicit,
                opening_balance_cents=p.opening_cents,
                closing_balance_cents=p.closing_cents,
                net_change_cents=p.bucket.net_change_cents,
                transaction_count=p.bucket.transaction_count,
                expenses_cents=p.bucket.expenses_cents,
                income_cents=p.bucket.income_cents,
                transfers_in_cents=p.bucket.transfers_in_cents,
                transfers_out_cents=p.bucket.transfers_out_cents,
                transfers_in_count=p.bucket.transfers_in_count,
                transfers_out_count=p.bucket.transfers_out_count,
                transactions=[event_line_out(t) for t in p.bucket.transactions],
                transfers_in=[transfer_line_out(t) for t in p.bucket.transfers_in],
                transfers_out=[transfer_line_out(t) for t in p.bucket.transfers_out],
            )
            for p in result.periods
        ],
    )


@app.get("/health")
def health():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/api/csrf-token")
def api_csrf_token(user_id: int = Depends(current_user_id)):
    return {"csrf_token": generate_csrf_token(user_id)}


@app.get("/api/accounts/{account_id}/balance", response_model=CurrentBalanceOut)
def api_current_balance(
    account_id: int,
    request: Request,
    service: BalanceService = Depends(get_balance_service),
):
    try:
        current = service.current_balance(
            account_id, include_diagnostics=flag_param(request, "diagnostics")
        )
    except BalanceError as exc:
        raise http_error(exc) from exc
    diagnostics = None
    if current.diagnostics is not None:
        diagnostics = BalanceDiagnosticsOut(**asdict(current.diagnostics))
    return CurrentBalanceOut(
        account_id=current.account_id,
        account_type=current.account_type,
        balance_cents=current.balance_cents,
        balance=from_cents(current.balance_cents),
        pending_drafts_cents=current.pending_drafts_cents,
        draft_count=current.draft_count,
        anchor_set_at=current.anchor_set_at,
        diagnostics=diagnostics,
    )


@app.post("/api/accounts/{account_id}/balance", response_model=BalanceSetOut)
def api_set_balance(
    account_id: int,
    payload: BalanceSetIn,
    x_csrf_token: str = Header(default=""),
    user_id: int = Depends(current_user_id),
    service: BalanceService = Depends(get_balance_service),
):
    if not validate_csrf_token(x_csrf_token, user_id):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")
    try:
        result = service.set_balance(account_id, payload.balance, reason=payload.reason)
    except BalanceError as exc:
        raise http_error(exc) from exc
    return BalanceSetOut(
        account_id=result.account_id,
        balance_cents=result.balance_cents,
        balance=from_cents(result.balance_cents),
        set_at=result.set_at,
        previous_balance_cents=result.previous_balance_cents,
        discrepancy_cents=result.discrepancy_cents,
        change_type=result.change_type,
    )


@app.get("/api/accounts/{account_id}/balance/daily", response_model=HistoryOut)
def api_daily_history(
    account_id: int,
    request: Request,
    service: BalanceService = Depends(get_balance_service),
):
    period = period_from_request(request)
    limit = int_param(request, "limit", None)
    try:
        result = service.daily_history(
            account_id,
            period,
            limit,
            fill_gaps=flag_param(request, "fill_gaps"),
        )
    except BalanceError as exc:
        raise http_error(exc) from exc
    return history_payload(account_id, result)


@app.get("/api/accounts/{account_id}/balance/archives", response_model=HistoryOut)
def api_monthly_archives(
    account_id: int,
    service: BalanceService = Depends(get_balance_service),
):
    try:
        result = service.monthly_archive_summary(account_id)
    except BalanceError as exc:
        raise http_error(exc) from exc
    return history_payload(account_id, result)


@app.get("/api/accounts/{account_id}/balance/history", response_model=BalanceHistoryOut)
def api_balance_history(
    account_id: int,
    request: Request,
    service: BalanceService = Depends(get_balance_service),
):
    limit = int_param(request, "limit", 50)
    limit = min(max(limit, 1), 100)
    offset = max(int_param(request, "offset", 0), 0)
    start = date_param(request, "start")
    end = date_param(request, "end")
    try:
        entries, total = service.balance_history(
            account_id, limit=limit, offset=offset, start=start, end=end
        )
    except BalanceError as exc:
        raise http_error(exc) from exc
    return BalanceHistoryOut(
        account_id=account_id,
        items=[BalanceHistoryEntryOut.model_validate(entry) for entry in entries],
        total=total,
        limit=limit,
        offset=offset,
        has_more=total > offset + limit,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
