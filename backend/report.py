"""CSV and HTML renderings of the monthly attendance sheet."""
import csv
import io
from datetime import date, datetime
from html import escape

from schemas import DayCell, MonthSheetResponse, UserRowResponse

LEGEND = [
    ("Holiday", "Purple background"),
    ("Weekend", "Red background"),
    ("Worked", "Green background (intensity based on hours worked)"),
    ("Absent", "Light red background (0h on working day)"),
    ("Overtime", "Orange background (intensity based on overtime hours)"),
]

BACKGROUND_RGB = {
    "worked": "34, 197, 94",
    "overtime": "251, 146, 60",
    "absent": "239, 68, 68",
}
BACKGROUND_CLASS = {"holiday": "holiday", "weekend": "weekend"}


def export_filename(sheet: MonthSheetResponse, extension: str) -> str:
    return f"Attendance-{sheet.month_name}-{sheet.year}.{extension}"


def day_header(day_str: str) -> str:
    """Day number plus short weekday, e.g. ``"3 Mon"``."""
    day = date.fromisoformat(day_str)
    return f"{day.day} {day.strftime('%a')}"


def cell_text(cell: DayCell) -> str:
    if cell.entry_count == 0:
        return "-"
    parts = []
    if cell.regular_hours > 0:
        parts.append(f"{cell.regular_hours:.1f}H")
    if cell.overtime:
        parts.append(f"+ OT {cell.total_overtime:.1f}H")
    return " ".join(parts)


def summary_values(row: UserRowResponse) -> list[str]:
    stats = row.stats
    hours = f"{stats.total_hours:.1f}h"
    if stats.regular_hours > 0 and stats.total_overtime > 0:
        hours += f" ({stats.regular_hours:.1f} reg)"
    return [
        f"{stats.worked_days:.1f} of {stats.working_days} days",
        f"{stats.total_overtime:.1f}H" if stats.total_overtime > 0 else "-",
        hours,
        f"{stats.present_percentage:.1f}%",
    ]


def _header_row(sheet: MonthSheetResponse) -> list[str]:
    day_strs = [cell.date for cell in sheet.users[0].days] if sheet.users else _month_days(sheet)
    return ["Name", "Email", *[day_header(d) for d in day_strs], "Days", "OT", "Hours", "Present %"]


def _month_days(sheet: MonthSheetResponse) -> list[str]:
    start = date.fromisoformat(sheet.date_range_start)
    end = date.fromisoformat(sheet.date_range_end)
    return [date.fromordinal(o).isoformat() for o in range(start.toordinal(), end.toordinal() + 1)]


def generate_csv(sheet: MonthSheetResponse) -> str:
    """Render the sheet as CSV: one row per visible user, then the legend."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")

    writer.writerow(_header_row(sheet))
    for row in sheet.users:
        writer.writerow([row.name, row.email, *[cell_text(c) for c in row.days], *summary_values(row)])

    writer.writerow([])
    writer.writerow(["Legend:"])
    for label, description in LEGEND:
        writer.writerow([label, description])

    return buffer.getvalue()


def _cell_style(cell: DayCell) -> tuple[str, str]:
    css_class = BACKGROUND_CLASS.get(cell.background, "")
    style = ""
    if cell.background in BACKGROUND_RGB:
        style = f"background-color: rgba({BACKGROUND_RGB[cell.background]}, {cell.background_alpha:.2f});"
    if cell.highlight:
        style += f" outline: 2px solid {cell.highlight}; outline-offset: -2px;"
    return css_class, style.strip()


def generate_report_html(sheet: MonthSheetResponse) -> str:
    """Generate a standalone HTML attendance sheet."""
    headers = _header_row(sheet)
    header_cells = "".join(f"<th>{escape(h)}</th>" for h in headers if h != "Email")

    html = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <title>Attendance {escape(sheet.month_name)} {sheet.year}</title>
        <style>
            body {{ font-family: Arial, sans-serif; background-color: #f5f5f5; padding: 20px; }}
            .container {{ background-color: white; padding: 30px; border-radius: 8px; box-shadow: 0 2px 4px rgba(0,0,0,0.1); overflow-x: auto; }}
            h1 {{ color: #333; border-bottom: 3px solid #000; padding-bottom: 10px; }}
            table {{ border-collapse: collapse; margin-top: 20px; font-size: 12px; }}
            th, td {{ padding: 6px; text-align: center; border: 1px solid #ddd; }}
            th {{ background-color: #000; color: #fff; }}
            td.name {{ text-align: left; white-space: nowrap; }}
            td.holiday {{ background-color: #f3e8ff; border-color: #d8b4fe; }}
            td.weekend {{ background-color: #fef2f2; }}
            .email {{ color: #666; font-size: 11px; }}
            .footer {{ margin-top: 30px; padding-top: 20px; border-top: 1px solid #ddd; color: #666; font-size: 12px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1>Monthly Attendance Sheet</h1>
            <h2>{escape(sheet.month_name)} {sheet.year}</h2>
            <table>
                <thead>
                    <tr>{header_cells}</tr>
                </thead>
                <tbody>
    """

    if sheet.users:
        for row in sheet.users:
            cells = []
            for cell in row.days:
                css_class, style = _cell_style(cell)
                cells.append(f'<td class="{css_class}" style="{style}">{escape(cell_text(cell))}</td>')
            day_cells = "".join(cells)
            summary = "".join(f"<td>{escape(value)}</td>" for value in summary_values(row))
            html += f"""
                    <tr>
                        <td class="name">{escape(row.name)}<div class="email">{escape(row.email)}</div></td>
                        {day_cells}
                        {summary}
                    </tr>
            """
    else:
        html += f"""
                    <tr>
                        <td colspan="{len(headers) - 1}" style="color: #999;">No users to show for this month</td>
                    </tr>
        """

    legend = "".join(f"<li><strong>{label}</strong>: {description}</li>" for label, description in LEGEND)
    cached_at = sheet.cache.cached_at.strftime("%B %d, %Y at %I:%M %p") if sheet.cache.cached_at else "never"
    html += f"""
                </tbody>
            </table>
            <ul>{legend}</ul>

            <div class="footer">
                <p>Generated on {datetime.now().strftime("%B %d, %Y at %I:%M %p")}; Harvest data cached {cached_at}</p>
            </div>
        </div>
    </body>
    </html>
    """

    return html
