import logging

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from database import SessionLocal
from errors import NoTransactionsFound, NotFoundError, TransientIOError
from insights import GeminiInsightGenerator, InsightGenerator
from mailer import Mailer, SmtpMailer
from periods import resolve_period
from scheduler import SchedulerManager
from schemas import Pagination, ReportSettingOut, ReportSettingUpdate
from services import (
    ReportHistoryService,
    ReportService,
    ReportSettingService,
    get_current_user_id,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Ledgerly Reports")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_mailer() -> Mailer:
    return SmtpMailer()


def get_insight_generator() -> InsightGenerator:
    return GeminiInsightGenerator()


scheduler_manager = SchedulerManager()


def get_scheduler_manager() -> SchedulerManager:
    return scheduler_manager


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def pagination_from_request(request: Request) -> Pagination:
    try:
        return Pagination(
            page_number=request.query_params.get("pageNumber") or 1,
            page_size=request.query_params.get("pageSize") or 20,
        )
    except PydanticValidationError as exc:
        raise HTTPException(status_code=400, detail="Invalid pagination") from exc


def setting_payload(setting) -> dict[str, object]:
    return ReportSettingOut.model_validate(setting).model_dump(
        by_alias=True, mode="json"
    )


@app.get("/api/reports")
def api_reports(request: Request, db: Session = Depends(get_db)):
    pagination = pagination_from_request(request)
    page = ReportHistoryService(db).list(pagination)
    return {
        "message": "Reports history fetched successfully",
        **page.model_dump(by_alias=True, mode="json"),
    }


@app.get("/api/report-settings")
def api_report_settings(db: Session = Depends(get_db)):
    try:
        setting = ReportSettingService(db).get(get_current_user_id())
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return setting_payload(setting)


@app.put("/api/report-settings")
def api_update_report_settings(
    payload: dict = Body(...), db: Session = Depends(get_db)
):
    try:
        update = ReportSettingUpdate.model_validate(payload)
    except PydanticValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        setting = ReportSettingService(db).update(get_current_user_id(), update)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        "message": "Reports setting updated successfully",
        "setting": setting_payload(setting),
    }


@app.get("/api/reports/generate")
def api_generate_report(
    request: Request,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    insight_generator: InsightGenerator = Depends(get_insight_generator),
):
    start = request.query_params.get("from")
    end = request.query_params.get("to")
    if not start or not end:
        raise HTTPException(
            status_code=400,
            detail="Please provide 'from' and 'to' query parameters.",
        )
    try:
        period = resolve_period("custom", start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    service = ReportService(db, mailer=mailer, insight_generator=insight_generator)
    try:
        report = service.generate(period.start, period.end)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except NoTransactionsFound as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    summary = report.summary
    message = (
        "Report generated and emailed successfully."
        if report.email_sent
        else "Report generated, but the email could not be sent."
    )
    return {
        "message": message,
        "emailSent": report.email_sent,
        "period": summary.period,
        "summary": {
            "income": summary.income,
            "expenses": summary.expenses,
            "balance": summary.balance,
            "savingsRate": summary.savings_rate,
            "topCategories": [
                {"name": c.name, "amount": c.amount, "percent": c.percent}
                for c in summary.top_categories
            ],
        },
        "insights": summary.insights,
    }


def _run_job(manager: SchedulerManager, job: str) -> dict[str, object]:
    try:
        if job == "reports":
            result = manager.run_reports("api")
        else:
            result = manager.run_recurring("api")
    except TransientIOError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return result.as_dict()


@app.post("/admin/jobs/reports/run")
def admin_run_reports(
    manager: SchedulerManager = Depends(get_scheduler_manager),
):
    return _run_job(manager, "reports")


@app.post("/admin/jobs/recurring/run")
def admin_run_recurring(
    manager: SchedulerManager = Depends(get_scheduler_manager),
):
    return _run_job(manager, "recurring")
