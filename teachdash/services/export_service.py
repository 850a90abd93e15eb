"""
Export Service
==============
Printable lesson plans (HTML) and downloadable Word documents for lesson
plans and generated materials. Word output uses python-docx with a small
fixed style: Georgia headings, Calibri body, shaded table headers.
"""
import html
import io
from datetime import datetime

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import parse_xml
from docx.oxml.ns import nsdecls
from docx.shared import Pt, RGBColor

STYLE = {
    "title_font_name": "Georgia",
    "title_font_size": 22,
    "heading_font_name": "Georgia",
    "heading_color": "2F5496",
    "body_font_name": "Calibri",
    "body_font_size": 11,
    "table_header_bg": "4472C4",
}

TYPE_COLORS = {
    'lesson': '#3b82f6', 'game': '#8b5cf6', 'discussion': '#10b981', 'writing': '#f59e0b',
    'assessment': '#ef4444', 'warmup': '#6b7280', 'review': '#06b6d4', 'project': '#ec4899',
    'homework': '#84cc16', 'other': '#9ca3af',
}
MATERIAL_DOTS = {'pending': '#f59e0b', 'ready': '#10b981'}


def format_day_label(date_str: str) -> str:
    """'2026-02-23' -> 'Monday, February 23'."""
    try:
        d = datetime.strptime(date_str, '%Y-%m-%d')
    except (TypeError, ValueError):
        return date_str or 'Unscheduled'
    return f"{d.strftime('%A, %B')} {d.day}"


def format_week_display(week_of: str) -> str:
    try:
        d = datetime.strptime(week_of, '%Y-%m-%d')
    except (TypeError, ValueError):
        return week_of or ''
    return f"{d.strftime('%B')} {d.day}, {d.year}"


def group_activities(activities: list) -> list:
    """[(date_or_'unscheduled', [(class_name, [activity, ...]), ...]), ...] sorted by date."""
    by_date = {}
    for activity in activities:
        by_date.setdefault(activity.get('date') or 'unscheduled', []).append(activity)

    grouped = []
    for day in sorted(by_date):
        by_class = {}
        for activity in sorted(by_date[day], key=lambda a: a.get('sort_order') or 0):
            by_class.setdefault(activity.get('class_name') or 'Unassigned', []).append(activity)
        grouped.append((day, list(by_class.items())))
    return grouped


# ============ HTML ============

def build_lesson_plan_html(plan: dict, activities: list, settings: dict) -> str:
    esc = html.escape
    school = settings.get('school_name') or ''
    teacher = settings.get('teacher_name') or ''
    week = format_week_display(plan.get('week_of'))

    days_html = []
    for day, classes in group_activities(activities):
        label = 'Unscheduled' if day == 'unscheduled' else format_day_label(day)
        class_blocks = []
        for class_name, items in classes:
            color = items[0].get('class_color') or '#4ECDC4'
            rows = []
            for a in items:
                dot = MATERIAL_DOTS.get(a.get('material_status'))
                dot_html = f'<span style="color:{dot};">&#9679;</span> ' if dot else ''
                star = ' <span style="color:#f59e0b;">&#9733;</span>' if a.get('is_graded') else ''
                type_color = TYPE_COLORS.get(a.get('activity_type'), '#9ca3af')
                rows.append(
                    f'<tr><td>{dot_html}{esc(a.get("title") or "")}{star}</td>'
                    f'<td style="text-align:center;"><span style="color:{type_color};">{esc(a.get("activity_type") or "")}</span></td>'
                    f'<td style="color:#6b7280;">{esc(a.get("description") or "")}</td></tr>'
                )
            class_blocks.append(
                f'<div class="class"><h3><span class="dot" style="background:{esc(color)};"></span>{esc(class_name)}</h3>'
                '<table><thead><tr><th>Activity</th><th>Type</th><th>Description</th></tr></thead>'
                f'<tbody>{"".join(rows)}</tbody></table></div>'
            )
        days_html.append(f'<div class="day"><h2>{esc(label)}</h2>{"".join(class_blocks)}</div>')

    if not days_html:
        days_html = ['<p style="color:#9ca3af;">No activities found for this lesson plan.</p>']

    school_html = f'<p class="school">{esc(school)}</p>' if school else ''
    teacher_html = f'<p class="teacher">{esc(teacher)}</p>' if teacher else ''
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Lesson Plan - Week of {esc(week)}</title>
  <style>
    @media print {{ .no-print {{ display: none !important; }} @page {{ margin: 0.75in; }} }}
    body {{ margin: 0; padding: 32px; font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; color: #1f2937; }}
    .wrap {{ max-width: 800px; margin: 0 auto; }}
    header {{ text-align: center; margin-bottom: 32px; border-bottom: 2px solid #e5e7eb; }}
    .school {{ font-size: 13px; color: #6b7280; text-transform: uppercase; }}
    .teacher {{ font-size: 14px; color: #6b7280; }}
    .day {{ margin-bottom: 28px; page-break-inside: avoid; }}
    .day h2 {{ font-size: 17px; border-bottom: 2px solid #4ECDC4; padding-bottom: 6px; }}
    .dot {{ display: inline-block; width: 12px; height: 12px; border-radius: 50%; margin-right: 8px; }}
    table {{ width: 100%; border-collapse: collapse; border: 1px solid #e5e7eb; }}
    th {{ background: #f9fafb; font-size: 12px; color: #6b7280; text-align: left; padding: 8px 12px; }}
    td {{ padding: 8px 12px; border-bottom: 1px solid #e5e7eb; font-size: 14px; }}
  </style>
</head>
<body>
  <div class="wrap">
    <header>{school_html}<h1>Lesson Plan</h1><p>Week of {esc(week)}</p>{teacher_html}</header>
    {"".join(days_html)}
    <div class="no-print" style="text-align:center;margin-top:40px;">
      <button onclick="window.print()">Print / Save as PDF</button>
    </div>
  </div>
</body>
</html>"""


# ============ Word ============

def _style_heading(heading, size):
    for run in heading.runs:
        run.font.name = STYLE["heading_font_name"]
        run.font.size = Pt(size)
        run.font.color.rgb = RGBColor.from_string(STYLE["heading_color"])


def _shade_header_row(row):
    for cell in row.cells:
        cell._tc.get_or_add_tcPr().append(
            parse_xml('<w:shd {} w:fill="{}"/>'.format(nsdecls('w'), STYLE["table_header_bg"])))
        for paragraph in cell.paragraphs:
            for run in paragraph.runs:
                run.bold = True
                run.font.color.rgb = RGBColor(0xFF, 0xFF, 0xFF)


def _new_document(title: str, subtitle: str = ''):
    doc = Document()
    normal = doc.styles['Normal']
    normal.font.name = STYLE["body_font_name"]
    normal.font.size = Pt(STYLE["body_font_size"])

    heading = doc.add_heading(title, level=0)
    heading.alignment = WD_ALIGN_PARAGRAPH.CENTER
    for run in heading.runs:
        run.font.name = STYLE["title_font_name"]
        run.font.size = Pt(STYLE["title_font_size"])
    if subtitle:
        p = doc.add_paragraph(subtitle)
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER
    return doc


def _to_bytes(doc) -> bytes:
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def build_lesson_plan_docx(plan: dict, activities: list, settings: dict) -> bytes:
    subtitle = ' | '.join(filter(None, [
        settings.get('teacher_name'), settings.get('school_name'),
        f"Week of {format_week_display(plan.get('week_of'))}",
    ]))
    doc = _new_document("Lesson Plan", subtitle)

    grouped = group_activities(activities)
    if not grouped:
        doc.add_paragraph("No activities found for this lesson plan.")

    for day, classes in grouped:
        _style_heading(doc.add_heading('Unscheduled' if day == 'unscheduled' else format_day_label(day), level=1), 16)
        for class_name, items in classes:
            _style_heading(doc.add_heading(class_name, level=2), 13)
            table = doc.add_table(rows=1, cols=3)
            table.style = 'Table Grid'
            for cell, text in zip(table.rows[0].cells, ('Activity', 'Type', 'Description')):
                cell.text = text
            _shade_header_row(table.rows[0])
            for a in items:
                cells = table.add_row().cells
                cells[0].text = (a.get('title') or '') + (' *' if a.get('is_graded') else '')
                cells[1].text = a.get('activity_type') or ''
                cells[2].text = a.get('description') or ''
            doc.add_paragraph()

    if plan.get('announcements'):
        _style_heading(doc.add_heading('Announcements', level=1), 16)
        doc.add_paragraph(plan['announcements'])
    return _to_bytes(doc)


def _add_value(doc, value, level=2):
    """Render an arbitrary material JSON value: dicts as labelled sections, lists as bullets."""
    if isinstance(value, dict):
        for key, item in value.items():
            if isinstance(item, (dict, list)):
                _style_heading(doc.add_heading(key.replace('_', ' ').title(), level=min(level, 3)), 12)
                _add_value(doc, item, level + 1)
            else:
                p = doc.add_paragraph()
                p.add_run(f"{key.replace('_', ' ').title()}: ").bold = True
                p.add_run(str(item))
    elif isinstance(value, list):
        for item in value:
            if isinstance(item, dict):
                _add_value(doc, item, level + 1)
                doc.add_paragraph()
            else:
                doc.add_paragraph(str(item), style='List Bullet')
    elif value is not None:
        doc.add_paragraph(str(value))


def build_material_docx(activity: dict, material: dict) -> bytes:
    material = dict(material or {})
    title = material.pop('title', None) or activity.get('title') or 'Classroom Material'
    subtitle = ' | '.join(filter(None, [activity.get('class_name'), activity.get('date')]))
    doc = _new_document(title, subtitle)

    instructions = material.pop('instructions', None)
    if instructions:
        p = doc.add_paragraph()
        p.add_run("Instructions: ").bold = True
        p.add_run(str(instructions))
    _add_value(doc, material)
    return _to_bytes(doc)
