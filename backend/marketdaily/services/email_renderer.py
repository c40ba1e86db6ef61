"""Email rendering for assembled reports.

``render_email`` is pure: the same report record always yields byte-identical
subject, HTML and text (no clock reads, stable ordering). All interpolated
values are HTML-escaped. Optional sections are left out entirely when their
data is missing, empty or a degraded analysis fallback.
"""

from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Sequence

from marketdaily.schemas.report import (
    BaseReport,
    EnhancedPortfolioReport,
    GeneralReport,
    NewsEntry,
    PortfolioReport,
    TopicResearchReport,
    category_name,
)
from marketdaily.services.sentiment import classify_sentiment

NEWS_DISPLAY_LIMIT = 5
CATEGORY_DISPLAY_LIMIT = 3
GENERAL_ENTITY = "Market"

KIND_LABELS = {
    "portfolio": "Portfolio Daily",
    "enhanced-portfolio": "Enhanced Portfolio Report",
    "topic-research": "Topic Research Report",
    "general": "Daily Report",
}


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


# ── HTML Templates ──

_BASE_TEMPLATE = """
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"></head>
<body style="margin:0; padding:0; font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif; background:#f1f5f9; color:#1e293b;">
<div style="max-width:640px; margin:0 auto; padding:32px 24px;">
  <div style="text-align:center; margin-bottom:24px;">
    <h1 style="color:#1d4ed8; font-size:26px; margin:0;">Market Daily</h1>
    <p style="color:#64748b; font-size:12px; margin:4px 0 0;">{tagline}</p>
  </div>
  <div style="background:#ffffff; border-radius:12px; padding:24px; border:1px solid #e2e8f0;">
    {content}
  </div>
  <div style="text-align:center; margin-top:24px; padding-top:16px; border-top:1px solid #e2e8f0;">
    <p style="color:#94a3b8; font-size:11px; margin:0;">
      This report was generated automatically from aggregated news and AI analysis.<br>
      It is not investment advice.
    </p>
  </div>
</div>
</body>
</html>
"""


def _render_template(content_html: str, tagline: str) -> str:
    return _BASE_TEMPLATE.format(content=content_html, tagline=escape(tagline))


def _badge(label: str, color: str) -> str:
    return (
        f'<div style="text-align:center; margin-bottom:12px;">'
        f'<span style="background:{color}20; color:{color}; padding:4px 12px; border-radius:6px; '
        f'font-size:12px; font-weight:600;">{escape(label.upper())}</span></div>'
    )


def _heading(title: str, subtitle: str) -> str:
    return (
        f'<h2 style="text-align:center; margin:8px 0 4px; font-size:22px;">{escape(title)}</h2>'
        f'<p style="text-align:center; color:#64748b; font-size:13px; margin:0 0 16px;">{escape(subtitle)}</p>'
    )


def _section(title: str, inner: str) -> str:
    return (
        f'<div style="margin-top:20px;">'
        f'<h3 style="font-size:15px; margin:0 0 8px; color:#0f172a; border-bottom:1px solid #e2e8f0; '
        f'padding-bottom:6px;">{escape(title)}</h3>{inner}</div>'
    )


def _paragraph(text: str) -> str:
    return f'<p style="font-size:14px; line-height:1.6; margin:8px 0;">{escape(text)}</p>'


def _bullets(items: Sequence[str]) -> str:
    lis = "".join(f'<li style="margin:4px 0;">{escape(item)}</li>' for item in items)
    return f'<ul style="font-size:14px; line-height:1.5; margin:8px 0; padding-left:20px;">{lis}</ul>'


def _stats_table(rows: Sequence[tuple[str, str]]) -> str:
    trs = "".join(
        f'<tr><td style="padding:6px 0; color:#64748b; font-size:13px;">{escape(label)}</td>'
        f'<td style="padding:6px 0; text-align:right; font-weight:600;">{escape(value)}</td></tr>'
        for label, value in rows
    )
    return f'<table style="width:100%; border-collapse:collapse; margin-top:8px;">{trs}</table>'


def _sentiment_block(score: float, label: str = "Market Sentiment") -> str:
    s = classify_sentiment(score)
    return (
        f'<div style="text-align:center; background:#f8fafc; border-radius:8px; padding:16px; margin:12px 0;">'
        f'<p style="color:#64748b; font-size:12px; margin:0 0 4px;">{escape(label)}</p>'
        f'<p style="color:{s.color}; font-size:24px; font-weight:700; margin:0;">'
        f'{s.emoji} {escape(s.label)} ({score:.2f})</p></div>'
    )


def _news_item(item: NewsEntry) -> str:
    title = escape(item.title)
    if item.url:
        title = f'<a href="{escape(item.url, quote=True)}" style="color:#1d4ed8; text-decoration:none;">{title}</a>'
    meta = [item.source or "Unknown source", category_name(item.category)]
    if item.sentiment is not None:
        meta.append(f"sentiment {item.sentiment:.2f}")
    if item.external:
        meta.append("external")
    summary = ""
    if item.summary:
        summary = f'<p style="font-size:13px; color:#475569; margin:4px 0 0;">{escape(item.summary[:240])}</p>'
    return (
        f'<div style="padding:10px 0; border-bottom:1px solid #f1f5f9;">'
        f'<p style="font-size:14px; font-weight:600; margin:0;">{title}</p>'
        f'<p style="font-size:11px; color:#94a3b8; margin:2px 0 0;">{escape(" · ".join(meta))}</p>'
        f"{summary}</div>"
    )


def _news_list(news: Sequence[NewsEntry]) -> str:
    return "".join(_news_item(n) for n in news[:NEWS_DISPLAY_LIMIT])


def _top_categories(news_by_category: dict[str, list[NewsEntry]]) -> list[tuple[str, list[NewsEntry]]]:
    ordered = sorted(news_by_category.items(), key=lambda kv: (-len(kv[1]), kv[0]))
    return ordered[:CATEGORY_DISPLAY_LIMIT]


def _category_sections(news_by_category: dict[str, list[NewsEntry]]) -> str:
    return "".join(
        _section(f"{category_name(category)} ({len(items)})", _news_list(items))
        for category, items in _top_categories(news_by_category)
    )


# ── Text helpers ──


def _text_news(news: Sequence[NewsEntry]) -> list[str]:
    lines = []
    for n in news[:NEWS_DISPLAY_LIMIT]:
        lines.append(f"- {n.title} ({n.source or 'Unknown source'})")
        if n.url:
            lines.append(f"  {n.url}")
    return lines


def _text_section(title: str, body: Sequence[str]) -> list[str]:
    return ["", title, "-" * len(title), *body]


def _text_sentiment(score: float) -> str:
    s = classify_sentiment(score)
    return f"{s.emoji} {s.label} ({score:.2f})"


# ── Subject ──


def email_subject(report: BaseReport) -> str:
    if isinstance(report, PortfolioReport):
        entity = report.portfolio.name
    elif isinstance(report, TopicResearchReport):
        entity = report.topic
    else:
        entity = GENERAL_ENTITY
    return f"{entity} {KIND_LABELS[report.type]} - {report.formatted_date}"


# ── Report bodies ──


def _render_portfolio(report: PortfolioReport) -> tuple[str, list[str]]:
    html = [
        _badge(KIND_LABELS[report.type], "#1d4ed8"),
        _heading(report.portfolio.name, report.formatted_date),
    ]
    text = [f"{report.portfolio.name} - {report.formatted_date}"]

    if report.is_empty:
        advisory = report.advisory or ""
        html.append(_paragraph(advisory))
        text.append(advisory)
        return "".join(html), text

    m = report.metrics
    html.append(_sentiment_block(report.market_sentiment))
    html.append(_stats_table([
        ("Related news", str(report.total_news)),
        ("News in the last 7 days", str(m.weekly_news_count)),
        ("News in the last 30 days", str(m.monthly_news_count)),
        ("7-day average sentiment", f"{m.avg_sentiment:.2f}"),
        ("Holdings", ", ".join(s.symbol for s in report.portfolio.stocks)),
    ]))
    text += [
        f"Market sentiment: {_text_sentiment(report.market_sentiment)}",
        f"Related news: {report.total_news}",
        f"News in the last 7 days: {m.weekly_news_count}",
        f"News in the last 30 days: {m.monthly_news_count}",
        f"7-day average sentiment: {m.avg_sentiment:.2f}",
    ]

    rec = report.ai_recommendations
    if rec is not None and rec.available:
        inner = _paragraph(rec.summary)
        if rec.recommendations:
            inner += _bullets(rec.recommendations)
        inner += _paragraph(f"Risk level: {rec.risk_level}")
        html.append(_section("AI Recommendations", inner))
        text += _text_section("AI Recommendations", [
            rec.summary, *(f"- {r}" for r in rec.recommendations), f"Risk level: {rec.risk_level}",
        ])

    if isinstance(report, EnhancedPortfolioReport):
        _render_enhancements(report, html, text)

    risk = report.risk_analysis
    dist = risk.sentiment_distribution
    html.append(_section("Risk Analysis", _stats_table([
        ("Sector concentration risk", risk.concentration_risk),
        ("News risk", risk.news_risk),
        ("Positive / neutral / negative news", f"{dist.positive} / {dist.neutral} / {dist.negative}"),
    ])))
    text += _text_section("Risk Analysis", [
        f"Sector concentration risk: {risk.concentration_risk}",
        f"News risk: {risk.news_risk}",
        f"Positive / neutral / negative news: {dist.positive} / {dist.neutral} / {dist.negative}",
    ])

    if report.portfolio_news:
        html.append(_category_sections(report.news_by_category))
        text += _text_section("Portfolio News", _text_news(report.portfolio_news))

    return "".join(html), text


def _render_enhancements(report: EnhancedPortfolioReport, html: list[str], text: list[str]) -> None:
    enhanced = report.enhanced_analysis
    if enhanced is not None and enhanced.available:
        inner = _paragraph(enhanced.summary)
        if enhanced.recommendations:
            inner += _bullets(enhanced.recommendations)
        rows = [("Risk assessment", enhanced.risk_assessment)]
        inner += _stats_table(rows)
        if enhanced.market_outlook:
            inner += _paragraph(f"Outlook: {enhanced.market_outlook}")
        if enhanced.action_items:
            inner += _paragraph("Action items:") + _bullets(enhanced.action_items)
        html.append(_section("In-depth Analysis", inner))
        text += _text_section("In-depth Analysis", [
            enhanced.summary,
            *(f"- {r}" for r in enhanced.recommendations),
            f"Risk assessment: {enhanced.risk_assessment}",
            *([f"Outlook: {enhanced.market_outlook}"] if enhanced.market_outlook else []),
            *(f"* {a}" for a in enhanced.action_items),
        ])

    ext = report.external_analysis
    if ext is not None and ext.available:
        inner = _paragraph(ext.summary)
        if ext.key_trends:
            inner += _paragraph("Key trends:") + _bullets(ext.key_trends)
        if ext.risk_factors:
            inner += _paragraph("Risk factors:") + _bullets(ext.risk_factors)
        html.append(_section("External Coverage", inner))
        text += _text_section("External Coverage", [
            ext.summary,
            *(f"- {t}" for t in ext.key_trends),
            *(f"! {r}" for r in ext.risk_factors),
        ])

    if report.external_news:
        html.append(_section(f"External News ({report.total_external_news})", _news_list(report.external_news)))
        text += _text_section("External News", _text_news(report.external_news))


def _render_topic(report: TopicResearchReport) -> tuple[str, list[str]]:
    research = report.research
    html = [
        _badge(KIND_LABELS[report.type], "#7c3aed"),
        _heading(report.topic, f"{report.formatted_date} · {report.date_range}"),
        _paragraph(research.summary),
    ]
    text = [f"{report.topic} - {report.formatted_date} ({report.date_range})", research.summary]

    if not report.has_data:
        return "".join(html), text

    html.append(_sentiment_block(report.sentiment, "Topic Sentiment"))
    html.append(_stats_table([
        ("Articles analysed", str(report.news_count)),
        ("Local / external", f"{report.local_news_count} / {report.external_news_count}"),
    ]))
    text += [
        f"Topic sentiment: {_text_sentiment(report.sentiment)}",
        f"Articles analysed: {report.news_count} "
        f"(local {report.local_news_count}, external {report.external_news_count})",
    ]

    if research.analysis:
        html.append(_section("Analysis", _paragraph(research.analysis)))
        text += _text_section("Analysis", [research.analysis])

    for title, items in (
        ("Trends", research.trends),
        ("Recommendations", research.recommendations),
        ("Risk Factors", research.risk_factors),
        ("Opportunities", research.opportunities),
    ):
        if items:
            html.append(_section(title, _bullets(items)))
            text += _text_section(title, [f"- {i}" for i in items])

    if report.news:
        html.append(_section("Source News", _news_list(report.news)))
        text += _text_section("Source News", _text_news(report.news))

    return "".join(html), text


def _render_general(report: GeneralReport) -> tuple[str, list[str]]:
    html = [
        _badge(KIND_LABELS[report.type], "#0f766e"),
        _heading("Market Overview", report.formatted_date),
        _sentiment_block(report.market_sentiment),
    ]
    text = [
        f"Market Overview - {report.formatted_date}",
        f"Market sentiment: {_text_sentiment(report.market_sentiment)}",
    ]

    if report.market_overview:
        html.append(_paragraph(report.market_overview))
        text.append(report.market_overview)

    if report.trending_topics:
        items = [f"{t.keyword} ({t.count})" for t in report.trending_topics]
        html.append(_section("Trending Topics", _bullets(items)))
        text += _text_section("Trending Topics", [f"- {i}" for i in items])

    if report.market_trends:
        rows = [(category_name(t.category), f"{t.count} · {t.trend}") for t in report.market_trends]
        html.append(_section("Category Activity", _stats_table(rows)))
        text += _text_section("Category Activity", [f"{label}: {value}" for label, value in rows])

    if report.news_by_category:
        html.append(_category_sections(report.news_by_category))
        for category, items in _top_categories(report.news_by_category):
            text += _text_section(category_name(category), _text_news(items))

    if report.public_portfolios:
        items = [f"{p.name} ({p.stock_count} stocks)" for p in report.public_portfolios]
        html.append(_section("Public Portfolios", _bullets(items)))
        text += _text_section("Public Portfolios", [f"- {i}" for i in items])

    return "".join(html), text


def render_email(report: BaseReport) -> RenderedEmail:
    """Render a report record into subject, HTML and plain-text bodies."""
    if isinstance(report, PortfolioReport):
        content, text = _render_portfolio(report)
    elif isinstance(report, TopicResearchReport):
        content, text = _render_topic(report)
    elif isinstance(report, GeneralReport):
        content, text = _render_general(report)
    else:
        raise TypeError(f"Unsupported report type: {type(report).__name__}")

    subject = email_subject(report)
    return RenderedEmail(
        subject=subject,
        html=_render_template(content, KIND_LABELS[report.type]),
        text="\n".join([subject, "=" * len(subject), *text]) + "\n",
    )


def render_admin_error(context: str, error: str, occurred_at: datetime) -> RenderedEmail:
    """Notification for a failed scheduled report generation."""
    content = (
        _badge("Report generation failed", "#dc2626")
        + _paragraph(f"Report generation failed for {context}.")
        + f'<div style="background:#fef2f2; border-radius:8px; padding:12px 16px; margin:16px 0;">'
        f'<p style="color:#991b1b; font-size:13px; font-family:monospace; margin:0; word-break:break-all;">'
        f"{escape(error)}</p></div>"
        + _paragraph(f"Occurred at {occurred_at.isoformat()}")
    )
    subject = f"[Market Daily] Report generation failed: {context}"
    text = f"Report generation failed for {context}.\n\n{error}\n\nOccurred at {occurred_at.isoformat()}\n"
    return RenderedEmail(subject=subject, html=_render_template(content, "System Alert"), text=text)
