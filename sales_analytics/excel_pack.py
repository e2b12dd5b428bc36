"""
excel_pack.py — Excel workbook export for every report shape.

Each report maps to a fixed list of sheets. Every sheet is one branded
header row followed by one row per record, with freeze panes and an
auto-filter on the header:

    TeamLeaderReport       — Team Overview, Team Members Performance,
                             Leads/Meetings/Contracts Details
    SalesReportData        — Sales Summary, Top Performers, Leads by Status,
                             Leads by Source, Revenue by Month
    SalesMemberReport      — 12 "Combined ..." sheets (overview, activity and
                             sales summaries, breakdowns, detail listings)
    AllSalesMembersReport  — Team Summary, Individual Performance,
                             Performance Comparison, Combined Detailed Leads
    UserPerformanceReport  — User Performance Overview plus detailed calls,
                             meetings, leads and contracts

Metrics without a data source are written as "N/A". The workbook is built
in memory; `save_export` puts it on disk atomically.
"""

import io
import logging
import os
import re
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import pandas as pd

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.utils.dataframe import dataframe_to_rows

from sales_analytics.config import DEFAULTS
from sales_analytics.metrics import percentage
from sales_analytics.models import DateRange, NotTracked, parse_date
from sales_analytics.reports import (
    AllSalesMembersReport,
    MemberDetail,
    Report,
    SalesMemberReport,
    SalesReportData,
    TeamLeaderReport,
    UserPerformanceReport,
)

logger = logging.getLogger(__name__)

NA = "N/A"

Row = dict[str, Any]
SheetLayout = tuple[str, list[str], list[Row]]


class ExportError(RuntimeError):
    """Raised when a workbook cannot be serialized or written."""


# ---------------------------------------------------------------------------
# Styling helpers
# ---------------------------------------------------------------------------

THIN = Side(style="thin")
THIN_BORDER = Border(left=THIN, right=THIN, top=THIN, bottom=THIN)


def _fill(hex_colour: str) -> PatternFill:
    return PatternFill(fill_type="solid", fgColor=hex_colour.lstrip("#"))


def _font(bold: bool = False, colour: str = "000000", size: int = 10,
          italic: bool = False) -> Font:
    return Font(name="Calibri", bold=bold, color=colour.lstrip("#"),
                size=size, italic=italic)


def _center() -> Alignment:
    return Alignment(horizontal="center", vertical="center", wrap_text=False)


def _auto_fit(ws, min_w: int = 8, max_w: int = 55) -> None:
    for col in ws.columns:
        max_len = max(
            (len(str(cell.value)) if cell.value else 0 for cell in col), default=0
        )
        ws.column_dimensions[get_column_letter(col[0].column)].width = \
            min(max(max_len + 3, min_w), max_w)


def _write_header_row(ws, row: int, headers: list[str], brand: dict) -> None:
    """Write a formatted header row at the given row index."""
    primary = brand["primary"].lstrip("#")
    for col_i, h in enumerate(headers, start=1):
        cell = ws.cell(row=row, column=col_i, value=h)
        cell.fill = _fill(primary)
        cell.font = _font(bold=True, colour="FFFFFF", size=10)
        cell.alignment = _center()
        cell.border = THIN_BORDER
    ws.row_dimensions[row].height = 20


def _cell_text(val: Any) -> Any:
    """Drop control characters openpyxl refuses to store in a cell."""
    if isinstance(val, str):
        return ILLEGAL_CHARACTERS_RE.sub("", val)
    return val


def _write_sheet(ws, headers: list[str], rows: list[Row], brand: dict,
                 currency: str) -> None:
    """Header row, then one row per record."""
    ws.sheet_properties.tabColor = brand["secondary"].lstrip("#")
    df = pd.DataFrame(rows, columns=headers, dtype=object)
    _write_header_row(ws, 1, headers, brand)
    ws.freeze_panes = "A2"
    ws.auto_filter.ref = f"A1:{get_column_letter(len(headers))}1"

    money = f"({currency})"
    light = _fill(brand["light"])
    for row_i, row in enumerate(
        dataframe_to_rows(df, index=False, header=False), start=2
    ):
        for col_i, val in enumerate(row, start=1):
            c = ws.cell(row=row_i, column=col_i, value=_cell_text(val))
            c.font = _font(size=9)
            c.border = THIN_BORDER
            if row_i % 2 == 1:
                c.fill = light
            header = headers[col_i - 1]
            if isinstance(val, (int, float)) and not isinstance(val, bool):
                if "(%)" in header:
                    c.number_format = "0.0"
                elif money in header:
                    c.number_format = "#,##0.00"
    _auto_fit(ws)


# ---------------------------------------------------------------------------
# Value formatting
# ---------------------------------------------------------------------------

def _value(value: Any) -> Any:
    """Cell-ready value: untracked metrics and missing values become N/A."""
    if isinstance(value, NotTracked) or value is None:
        return NA
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d")
    return value


def _date(raw: Any) -> str:
    parsed = parse_date(raw)
    return parsed.strftime("%Y-%m-%d") if parsed else NA


def _or_na(text: str) -> str:
    return text if text else NA


def _breakdown_rows(counts: dict[str, int], total: int, label: str) -> list[Row]:
    return [
        {label: key, "Count": n, "Percentage (%)": percentage(n, total)}
        for key, n in counts.items()
    ]


# ---------------------------------------------------------------------------
# Record rows
# ---------------------------------------------------------------------------

def _lead_row(lead, cur: str) -> Row:
    return {
        "Lead Name": lead.name,
        "Contact": _or_na(lead.contact),
        "Email": _or_na(lead.email),
        "Status": lead.status_label,
        "Source": _or_na(lead.source),
        f"Budget ({cur})": lead.budget,
        "Assigned Date": _date(lead.created_at),
        "Last Call Date": _date(lead.last_call_date),
        "Last Visit Date": _date(lead.last_visit_date),
    }


def _lead_headers(cur: str) -> list[str]:
    return ["Lead Name", "Contact", "Email", "Status", "Source", f"Budget ({cur})",
            "Assigned Date", "Last Call Date", "Last Visit Date"]


def _meeting_row(meeting) -> Row:
    return {
        "Meeting Title": _or_na(meeting.title),
        "Client": _or_na(meeting.client),
        "Date": _date(meeting.date),
        "Time": _or_na(meeting.time),
        "Duration": _or_na(meeting.duration),
        "Type": _or_na(meeting.type),
        "Status": _or_na(meeting.status),
        "Location": _or_na(meeting.location),
        "Notes": _or_na(meeting.notes),
    }


MEETING_HEADERS = ["Meeting Title", "Client", "Date", "Time", "Duration", "Type",
                   "Status", "Location", "Notes"]


def _contract_row(contract, cur: str) -> Row:
    return {
        "Lead Name": contract.lead_name,
        "Property": contract.property,
        f"Deal Value ({cur})": contract.deal_value,
        "Contract Date": _date(contract.contract_date),
        "Status": _or_na(contract.status),
        "Notes": _or_na(contract.notes),
    }


def _contract_headers(cur: str) -> list[str]:
    return ["Lead Name", "Property", f"Deal Value ({cur})", "Contract Date",
            "Status", "Notes"]


def _call_row(call) -> Row:
    return {
        "Lead Name": call.lead_name,
        "Date": _value(call.date),
        "Duration": _or_na(call.duration),
        "Outcome": _or_na(call.outcome),
        "Notes": _or_na(call.notes),
    }


CALL_HEADERS = ["Lead Name", "Date", "Duration", "Outcome", "Notes"]


def _with_member(column: str, name: str, row: Row) -> Row:
    return {column: name, **row}


def _performance_row(detail: MemberDetail, cur: str) -> Row:
    p = detail.performance
    return {
        "Name": detail.user.name,
        "Email": _or_na(detail.user.email),
        "Role": detail.user.role.value,
        "Total Leads": p.total_leads,
        "Closed Deals": p.closed_deals,
        "Open Deals": p.open_deals,
        "Conversion Rate (%)": p.conversion_rate,
        "Total Calls": p.total_calls,
        "Completed Calls": p.completed_calls,
        "Call Completion Rate (%)": p.call_completion_rate,
        "Total Visits": p.total_visits,
        "Completed Visits": p.completed_visits,
        "Visit Completion Rate (%)": p.visit_completion_rate,
        "Total Meetings": p.total_meetings,
        "Completed Meetings": p.completed_meetings,
        "Meeting Completion Rate (%)": p.meeting_completion_rate,
        "Total Follow-ups": _value(p.total_follow_ups),
        "Follow-up Completion Rate (%)": _value(p.follow_up_completion_rate),
        "Total Contracts": p.total_contracts,
        f"Total Revenue ({cur})": p.total_revenue,
        f"Average Deal Size ({cur})": p.average_deal_size,
        "Last Activity": p.last_activity_label,
    }


# ---------------------------------------------------------------------------
# Sheet lists per report
# ---------------------------------------------------------------------------

def _team_sheets(report: TeamLeaderReport, cur: str) -> list[SheetLayout]:
    t = report.team_performance
    overview = {
        "Team Leader": report.team_leader.name,
        "Period": report.period,
        "Team Size": t.member_count,
        "Total Leads": t.total_leads,
        "Total Calls": t.total_calls,
        "Completed Calls": t.completed_calls,
        "Call Completion Rate (%)": t.call_completion_rate,
        "Total Visits": t.total_visits,
        "Completed Visits": t.completed_visits,
        "Visit Completion Rate (%)": t.visit_completion_rate,
        "Total Meetings": t.total_meetings,
        "Completed Meetings": t.completed_meetings,
        "Meeting Completion Rate (%)": t.meeting_completion_rate,
        "Closed Deals": t.closed_deals,
        "Open Deals": t.open_deals,
        "Conversion Rate (%)": t.conversion_rate,
        f"Total Revenue ({cur})": t.total_revenue,
        f"Average Deal Size ({cur})": t.average_deal_size,
    }
    members = [_performance_row(d, cur) for d in report.members]
    leads = [_with_member("Team Member", d.user.name, _lead_row(lead, cur))
             for d in report.members for lead in d.activity.leads]
    meetings = [_with_member("Team Member", d.user.name, _meeting_row(m))
                for d in report.members for m in d.activity.meetings]
    contracts = [_with_member("Team Member", d.user.name, _contract_row(c, cur))
                 for d in report.members for c in d.activity.contracts]
    return [
        ("Team Overview", list(overview), [overview]),
        ("Team Members Performance", _performance_headers(cur), members),
        ("Leads Details", ["Team Member"] + _lead_headers(cur), leads),
        ("Meetings Details", ["Team Member"] + MEETING_HEADERS, meetings),
        ("Contracts Details", ["Team Member"] + _contract_headers(cur), contracts),
    ]


def _performance_headers(cur: str) -> list[str]:
    return ["Name", "Email", "Role", "Total Leads", "Closed Deals", "Open Deals",
            "Conversion Rate (%)", "Total Calls", "Completed Calls",
            "Call Completion Rate (%)", "Total Visits", "Completed Visits",
            "Visit Completion Rate (%)", "Total Meetings", "Completed Meetings",
            "Meeting Completion Rate (%)", "Total Follow-ups",
            "Follow-up Completion Rate (%)", "Total Contracts",
            f"Total Revenue ({cur})", f"Average Deal Size ({cur})", "Last Activity"]


def _sales_sheets(report: SalesReportData, cur: str) -> list[SheetLayout]:
    p = report.performance
    summary = {
        "Period": report.period,
        "Users": p.member_count,
        "Total Leads": p.total_leads,
        "Total Calls": p.total_calls,
        "Completed Calls": p.completed_calls,
        "Call Completion Rate (%)": p.call_completion_rate,
        "Total Visits": p.total_visits,
        "Completed Visits": p.completed_visits,
        "Visit Completion Rate (%)": p.visit_completion_rate,
        "Total Meetings": p.total_meetings,
        "Completed Meetings": p.completed_meetings,
        "Meeting Completion Rate (%)": p.meeting_completion_rate,
        "Closed Deals": p.closed_deals,
        "Open Deals": p.open_deals,
        "Conversion Rate (%)": p.conversion_rate,
        f"Total Revenue ({cur})": p.total_revenue,
        f"Average Deal Size ({cur})": p.average_deal_size,
    }
    top = [
        {
            "Rank": rank,
            "Name": perf.user.name,
            "Role": perf.user.role.value,
            "Total Leads": perf.total_leads,
            "Closed Deals": perf.closed_deals,
            "Conversion Rate (%)": perf.conversion_rate,
            f"Total Revenue ({cur})": perf.total_revenue,
        }
        for rank, perf in enumerate(report.top_performers, start=1)
    ]
    months = [{"Month": m, f"Revenue ({cur})": v}
              for m, v in report.revenue_by_month.items()]
    return [
        ("Sales Summary", list(summary), [summary]),
        ("Top Performers", ["Rank", "Name", "Role", "Total Leads", "Closed Deals",
                            "Conversion Rate (%)", f"Total Revenue ({cur})"], top),
        ("Leads by Status", ["Status", "Count", "Percentage (%)"],
         _breakdown_rows(report.leads_by_status, p.total_leads, "Status")),
        ("Leads by Source", ["Source", "Count", "Percentage (%)"],
         _breakdown_rows(report.leads_by_source, p.total_leads, "Source")),
        ("Revenue by Month", ["Month", f"Revenue ({cur})"], months),
    ]


def _member_summary_row(r: SalesMemberReport, cur: str) -> Row:
    return {
        "Name": r.user.name,
        "Email": _or_na(r.user.email),
        "Role": r.user.role.value,
        "Members": len(r.population),
        "Total Leads": r.total_leads,
        "New Leads": r.new_leads,
        "Active Leads": r.active_leads,
        "Converted Leads": r.converted_leads,
        "Lost Leads": r.lost_leads,
        "Lead Conversion Rate (%)": r.lead_conversion_rate,
        "Total Calls": r.total_calls,
        "Completed Calls": r.completed_calls,
        "Call Completion Rate (%)": r.call_completion_rate,
        "Total Visits": r.total_visits,
        "Completed Visits": r.completed_visits,
        "Visit Completion Rate (%)": r.visit_completion_rate,
        "Total Meetings": r.total_meetings,
        "Completed Meetings": r.completed_meetings,
        "Meeting Completion Rate (%)": r.meeting_completion_rate,
        "Total Follow-ups": _value(r.total_follow_ups),
        "Completed Follow-ups": _value(r.completed_follow_ups),
        "Follow-up Completion Rate (%)": _value(r.follow_up_completion_rate),
        "Total Reservations": r.total_reservations,
        "Total Contracts": r.total_contracts,
        "Signed Contracts": r.signed_contracts,
        f"Total Revenue ({cur})": r.total_revenue,
        f"Average Deal Size ({cur})": r.average_deal_size,
        "Total Deals": r.total_deals,
        "Closed Deals": r.closed_deals,
        "Conversion Rate (%)": r.conversion_rate,
        "Average Response Time": _value(r.average_response_time),
        "Customer Satisfaction Score": _value(r.customer_satisfaction_score),
    }


def _sales_member_sheets(r: SalesMemberReport, cur: str) -> list[SheetLayout]:
    overview = {"Period": r.period, **_member_summary_row(r, cur)}

    activity_headers = ["Metric", "Total", "Completed", "Outstanding",
                        "Completion Rate (%)", "Average Duration"]
    activity = [
        {"Metric": "Calls", "Total": r.total_calls, "Completed": r.completed_calls,
         "Outstanding": r.missed_calls, "Completion Rate (%)": r.call_completion_rate,
         "Average Duration": r.average_call_duration},
        {"Metric": "Visits", "Total": r.total_visits, "Completed": r.completed_visits,
         "Outstanding": r.scheduled_visits,
         "Completion Rate (%)": r.visit_completion_rate, "Average Duration": NA},
        {"Metric": "Meetings", "Total": r.total_meetings,
         "Completed": r.completed_meetings, "Outstanding": r.scheduled_meetings,
         "Completion Rate (%)": r.meeting_completion_rate, "Average Duration": NA},
        {"Metric": "Follow-ups", "Total": _value(r.total_follow_ups),
         "Completed": _value(r.completed_follow_ups),
         "Outstanding": _value(r.pending_follow_ups),
         "Completion Rate (%)": _value(r.follow_up_completion_rate),
         "Average Duration": NA},
    ]

    sales_headers = ["Metric", "Total", "Successful", "Pending", "Cancelled",
                     "Success Rate (%)"]
    sales = [
        {"Metric": "Contracts", "Total": r.total_contracts,
         "Successful": r.signed_contracts, "Pending": r.pending_contracts,
         "Cancelled": r.cancelled_contracts,
         "Success Rate (%)": percentage(r.signed_contracts, r.total_contracts)},
        {"Metric": "Deals", "Total": r.total_deals, "Successful": r.closed_deals,
         "Pending": r.open_deals, "Cancelled": r.lost_leads,
         "Success Rate (%)": percentage(r.closed_deals, r.total_deals)},
        {"Metric": "Reservations", "Total": r.total_reservations,
         "Successful": NA, "Pending": NA, "Cancelled": NA,
         "Success Rate (%)": NA},
    ]

    recent = [
        {"Date": _value(a.date), "Type": a.type, "Description": a.description,
         "Lead Name": a.lead_name, "Outcome": a.outcome}
        for a in r.recent_activities
    ]
    visits = [
        {"Lead Name": v.lead_name, "Date": _value(v.date), "Status": _or_na(v.status),
         "Notes": _or_na(v.notes)}
        for v in r.visits
    ]
    follow_ups = [] if isinstance(r.follow_ups, NotTracked) else [
        {"Lead Name": f.lead_name, "Date": _value(f.date), "Type": f.type,
         "Status": f.status, "Notes": f.notes, "Synthetic": "Yes" if f.synthetic else "No"}
        for f in r.follow_ups
    ]

    return [
        ("Combined Overview", list(overview), [overview]),
        ("Combined Activity Summary", activity_headers, activity),
        ("Combined Sales Performance", sales_headers, sales),
        ("Combined Leads by Status", ["Status", "Count", "Percentage (%)"],
         _breakdown_rows(r.leads_by_status, r.total_leads, "Status")),
        ("Combined Leads by Source", ["Source", "Count", "Percentage (%)"],
         _breakdown_rows(r.leads_by_source, r.total_leads, "Source")),
        ("Combined Recent Activities",
         ["Date", "Type", "Description", "Lead Name", "Outcome"], recent),
        ("Combined Detailed Calls", CALL_HEADERS, [_call_row(c) for c in r.calls]),
        ("Combined Detailed Visits", ["Lead Name", "Date", "Status", "Notes"], visits),
        ("Combined Detailed Follow-ups",
         ["Lead Name", "Date", "Type", "Status", "Notes", "Synthetic"], follow_ups),
        ("Combined Detailed Leads", _lead_headers(cur),
         [_lead_row(lead, cur) for lead in r.leads]),
        ("Combined Detailed Meetings", MEETING_HEADERS,
         [_meeting_row(m) for m in r.meetings]),
        ("Combined Detailed Contracts", _contract_headers(cur),
         [_contract_row(c, cur) for c in r.contracts]),
    ]


def _all_members_sheets(report: AllSalesMembersReport, cur: str) -> list[SheetLayout]:
    c = report.combined
    summary = {
        "Period": report.period,
        "Total Team Members": len(report.reports),
        "Total Leads": c.total_leads,
        f"Total Revenue ({cur})": c.total_revenue,
        "Total Contracts": c.total_contracts,
        "Average Conversion Rate (%)": c.conversion_rate,
        f"Average Deal Size ({cur})": c.average_deal_size,
    }
    individual = [_member_summary_row(r, cur) for r in report.reports]
    individual_headers = list(_member_summary_row(c, cur))
    comparison = [
        {
            "Name": r.user.name,
            "Role": r.user.role.value,
            "Leads": r.total_leads,
            f"Revenue ({cur})": r.total_revenue,
            "Contracts": r.total_contracts,
            "Conversion Rate (%)": r.conversion_rate,
            "Call Completion Rate (%)": r.call_completion_rate,
            "Meeting Completion Rate (%)": r.meeting_completion_rate,
            "Follow-up Completion Rate (%)": _value(r.follow_up_completion_rate),
            f"Average Deal Size ({cur})": r.average_deal_size,
        }
        for r in report.reports
    ]
    comparison_headers = ["Name", "Role", "Leads", f"Revenue ({cur})", "Contracts",
                          "Conversion Rate (%)", "Call Completion Rate (%)",
                          "Meeting Completion Rate (%)",
                          "Follow-up Completion Rate (%)",
                          f"Average Deal Size ({cur})"]
    leads = [_with_member("Sales Member", d.user.name, _lead_row(lead, cur))
             for d in c.members for lead in d.activity.leads]
    return [
        ("Team Summary", list(summary), [summary]),
        ("Individual Performance", individual_headers, individual),
        ("Performance Comparison", comparison_headers, comparison),
        ("Combined Detailed Leads", ["Sales Member"] + _lead_headers(cur), leads),
    ]


def _user_performance_sheets(report: UserPerformanceReport, cur: str) -> list[SheetLayout]:
    overview = [_performance_row(d, cur) for d in report.members]
    calls = [_with_member("User Name", d.user.name, _call_row(c))
             for d in report.members for c in d.activity.calls]
    meetings = [_with_member("User Name", d.user.name, _meeting_row(m))
                for d in report.members for m in d.activity.meetings]
    leads = [_with_member("Assigned User", d.user.name, _lead_row(lead, cur))
             for d in report.members for lead in d.activity.leads]
    contracts = [_with_member("Created By User", d.user.name, _contract_row(c, cur))
                 for d in report.members for c in d.activity.contracts]
    return [
        ("User Performance Overview", _performance_headers(cur), overview),
        ("Detailed Calls", ["User Name"] + CALL_HEADERS, calls),
        ("Detailed Meetings", ["User Name"] + MEETING_HEADERS, meetings),
        ("Detailed Leads", ["Assigned User"] + _lead_headers(cur), leads),
        ("Detailed Contracts", ["Created By User"] + _contract_headers(cur), contracts),
    ]


# ---------------------------------------------------------------------------
# Filenames
# ---------------------------------------------------------------------------

_WHITESPACE = re.compile(r"\s+")
_UNSAFE = re.compile(r'[\\/:*?"<>|]')


def _sanitize(part: str) -> str:
    return _UNSAFE.sub("_", _WHITESPACE.sub("_", part.strip()))


def build_filename(kind: str, date_range: DateRange,
                   context: Optional[str] = None) -> str:
    """`<Kind>_<Context>_<start|all>_to_<end|all>.xlsx`, filesystem-safe."""
    start = date_range.start_date.strftime("%Y-%m-%d") if date_range.start_date else "all"
    end = date_range.end_date.strftime("%Y-%m-%d") if date_range.end_date else "all"
    parts = [kind] + ([context] if context else []) + [start, "to", end]
    return _sanitize("_".join(parts)) + ".xlsx"


def _layout(report: Report, cur: str) -> tuple[str, list[SheetLayout]]:
    if isinstance(report, TeamLeaderReport):
        name = build_filename("Team_Leader_Report", report.date_range,
                              report.team_leader.name)
        return name, _team_sheets(report, cur)
    if isinstance(report, SalesReportData):
        return build_filename("Sales_Report", report.date_range), _sales_sheets(report, cur)
    if isinstance(report, SalesMemberReport):
        name = build_filename("Sales_Member_Report", report.date_range, report.user.name)
        return name, _sales_member_sheets(report, cur)
    if isinstance(report, AllSalesMembersReport):
        name = build_filename("All_Sales_Members_Report", report.date_range)
        return name, _all_members_sheets(report, cur)
    if isinstance(report, UserPerformanceReport):
        name = build_filename("User_Performance_Report", report.date_range,
                              report.viewer.name)
        return name, _user_performance_sheets(report, cur)
    raise TypeError(f"Cannot export {type(report).__name__}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def export_report(
    report: Report,
    brand: Optional[dict] = None,
    currency: str = "EGP",
) -> tuple[bytes, str]:
    """Serialize a report into an .xlsx workbook in memory.

    Args:
        report: Any report produced by `reports.generate_report`.
        brand: Colour palette with 'primary', 'secondary' and 'light' keys.
        currency: Currency code shown in monetary column headers.

    Returns:
        (workbook bytes, suggested filename).

    Raises:
        ExportError: If the workbook cannot be built or serialized.
    """
    brand = brand or DEFAULTS["report"]["brand"]
    try:
        filename, sheets = _layout(report, currency)

        wb = Workbook()
        wb.remove(wb.active)
        builders: list[tuple[str, Callable]] = [
            (name, lambda ws, h=headers, r=rows: _write_sheet(ws, h, r, brand, currency))
            for name, headers, rows in sheets
        ]
        for sheet_name, builder in builders:
            ws = wb.create_sheet(sheet_name)
            builder(ws)
            logger.debug("Built sheet: %s", sheet_name)

        buffer = io.BytesIO()
        wb.save(buffer)
    except Exception as exc:
        raise ExportError(f"Could not build workbook: {exc}") from exc

    logger.info("Workbook %s built: %d sheets", filename, len(sheets))
    return buffer.getvalue(), filename


def save_export(content: bytes, filename: str, output_dir: str) -> Path:
    """Write workbook bytes to `output_dir/filename` atomically.

    The bytes go to a temporary file in the same directory, which is then
    renamed over the target. A failed write leaves no file behind.

    Raises:
        ExportError: If the directory or file cannot be written.
    """
    out_dir = Path(output_dir)
    target = out_dir / filename
    tmp_name = None
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            dir=out_dir, prefix=".export-", suffix=".tmp", delete=False
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(content)
        os.replace(tmp_name, target)
    except OSError as exc:
        if tmp_name and os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise ExportError(f"Could not write {target}: {exc}") from exc

    logger.info("Report saved to %s", target)
    return target
