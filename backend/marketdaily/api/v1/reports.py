"""Report endpoints: preview (assemble + persist), send, list, detail."""

import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from marketdaily.core.exceptions import PortfolioNotFoundError
from marketdaily.schemas.report import load_report
from marketdaily.services.container import Services
from marketdaily.services.email_renderer import render_email
from marketdaily.api.v1.deps import get_services

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Schemas ──

class PortfolioPreviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    report_date: date | None = Field(default=None, alias="date")
    enhanced: bool = False


class TopicRequest(BaseModel):
    topic: str = Field(min_length=1, max_length=100)
    days: int = Field(default=14, ge=1, le=30)


class PortfolioSendRequest(PortfolioPreviewRequest):
    emails: list[EmailStr] = Field(min_length=1)


class TopicSendRequest(TopicRequest):
    emails: list[EmailStr] = Field(min_length=1)


class DailySendRequest(BaseModel):
    enhanced: bool | None = None


class ReportSummary(BaseModel):
    id: str
    type: str
    title: str
    portfolio_id: str | None = None
    topic: str | None = None
    days: int | None = None
    status: str
    email_sent: bool
    created_at: str


class ReportListResponse(BaseModel):
    reports: list[ReportSummary]
    total: int
    limit: int
    offset: int


class EmailLogResponse(BaseModel):
    recipient: str
    subject: str
    status: str
    error_message: str | None = None
    sent_at: str


class EmailPreviewResponse(BaseModel):
    subject: str
    html: str
    text: str


def _report_response(report) -> dict:
    return {"report_id": str(report.report_id), "type": report.type, "data": report.model_dump(mode="json")}


# ── Preview ──

@router.post("/portfolio/{portfolio_id}/preview")
async def preview_portfolio_report(
    portfolio_id: uuid.UUID,
    body: PortfolioPreviewRequest | None = None,
    services: Services = Depends(get_services),
):
    """Assemble and persist a (optionally enhanced) portfolio report."""
    body = body or PortfolioPreviewRequest()
    assembler = services.assembler
    assemble = (
        assembler.assemble_enhanced_portfolio_report if body.enhanced else assembler.assemble_portfolio_report
    )
    try:
        report = await assemble(portfolio_id, body.report_date)
    except PortfolioNotFoundError:
        raise HTTPException(status_code=404, detail="Portfolio not found")
    return _report_response(report)


@router.post("/topic/preview")
async def preview_topic_report(body: TopicRequest, services: Services = Depends(get_services)):
    report = await services.assembler.assemble_topic_report(body.topic, body.days)
    return _report_response(report)


@router.post("/general/preview")
async def preview_general_report(services: Services = Depends(get_services)):
    report = await services.assembler.assemble_general_report()
    return _report_response(report)


# ── Send ──

@router.post("/portfolio/{portfolio_id}/send")
async def send_portfolio_report(
    portfolio_id: uuid.UUID,
    body: PortfolioSendRequest,
    services: Services = Depends(get_services),
):
    assembler = services.assembler
    assemble = (
        assembler.assemble_enhanced_portfolio_report if body.enhanced else assembler.assemble_portfolio_report
    )
    try:
        report = await assemble(portfolio_id, body.report_date)
    except PortfolioNotFoundError:
        raise HTTPException(status_code=404, detail="Portfolio not found")
    summary = await services.digest.send_report(report, [str(e) for e in body.emails])
    return summary.as_dict()


@router.post("/topic/send")
async def send_topic_report(body: TopicSendRequest, services: Services = Depends(get_services)):
    report = await services.assembler.assemble_topic_report(body.topic, body.days)
    summary = await services.digest.send_report(report, [str(e) for e in body.emails])
    return {"topic": body.topic, "days": body.days, **summary.as_dict()}


@router.post("/portfolio/{portfolio_id}/send-to-subscribers")
async def send_enhanced_to_subscribers(
    portfolio_id: uuid.UUID,
    body: PortfolioPreviewRequest | None = None,
    services: Services = Depends(get_services),
):
    body = body or PortfolioPreviewRequest()
    try:
        summary = await services.digest.send_enhanced_report_to_subscribers(portfolio_id, body.report_date)
    except PortfolioNotFoundError:
        raise HTTPException(status_code=404, detail="Portfolio not found")
    return summary.as_dict()


@router.post("/topic/send-to-subscribers")
async def send_topic_to_subscribers(body: TopicRequest, services: Services = Depends(get_services)):
    summary = await services.digest.send_topic_report_to_subscribers(body.topic, body.days)
    return {"topic": body.topic, "days": body.days, **summary.as_dict()}


@router.post("/daily/send")
async def send_daily_digest(
    body: DailySendRequest | None = None,
    services: Services = Depends(get_services),
):
    """Run the daily digest immediately."""
    body = body or DailySendRequest()
    return await services.digest.send_daily_digest(use_enhanced=body.enhanced)


# ── History ──

@router.get("", response_model=ReportListResponse)
async def list_reports(
    services: Services = Depends(get_services),
    portfolio_id: uuid.UUID | None = None,
    type: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    start = datetime.combine(date_from, time.min, tzinfo=timezone.utc) if date_from else None
    end = datetime.combine(date_to, time.min, tzinfo=timezone.utc) + timedelta(days=1) if date_to else None

    page = await services.report_store.list_reports(
        portfolio_id=portfolio_id,
        type=type,
        date_from=start,
        date_to=end,
        limit=limit,
        offset=offset,
    )
    return ReportListResponse(
        reports=[
            ReportSummary(
                id=str(r.id),
                type=r.type,
                title=r.title,
                portfolio_id=str(r.portfolio_id) if r.portfolio_id else None,
                topic=r.topic,
                days=r.days,
                status=r.status,
                email_sent=r.id in page.sent_ids,
                created_at=r.created_at.isoformat() if r.created_at else "",
            )
            for r in page.reports
        ],
        total=page.total,
        limit=limit,
        offset=offset,
    )


@router.get("/{report_id}")
async def get_report(report_id: uuid.UUID, services: Services = Depends(get_services)):
    report = await services.report_store.get(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    logs = await services.report_store.email_logs(report_id)
    return {
        "id": str(report.id),
        "type": report.type,
        "title": report.title,
        "status": report.status,
        "topic": report.topic,
        "days": report.days,
        "created_at": report.created_at.isoformat() if report.created_at else "",
        "data": report.payload,
        "email_logs": [
            EmailLogResponse(
                recipient=log.recipient,
                subject=log.subject,
                status=log.status,
                error_message=log.error_message,
                sent_at=log.sent_at.isoformat() if log.sent_at else "",
            )
            for log in logs
        ],
    }


@router.get("/{report_id}/email", response_model=EmailPreviewResponse)
async def preview_report_email(report_id: uuid.UUID, services: Services = Depends(get_services)):
    """Render a stored report exactly as it would be emailed."""
    report = await services.report_store.get(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    message = render_email(load_report(report.payload, report_id=report.id))
    return EmailPreviewResponse(subject=message.subject, html=message.html, text=message.text)
