"""Text rendering for reminder messages. Channels call ``render_message``."""

from __future__ import annotations

from app.types.reminder_contract import MessagePayload, TemplateKind

_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def _format_date(payload: MessagePayload) -> str:
    return f"{_WEEKDAYS[payload.date.weekday()]}, {payload.date.strftime('%d/%m/%Y')}"


def _format_time_range(payload: MessagePayload) -> str:
    start = payload.start_time.strftime("%H:%M")
    if payload.end_time:
        return f"{start} - {payload.end_time.strftime('%H:%M')}"
    return start


def _details(payload: MessagePayload) -> list[str]:
    lines = [
        "*Details:*",
        f"Location: {payload.location_name}",
    ]
    if payload.location_address:
        lines.append(f"Address: {payload.location_address}")
    if payload.agent_name:
        lines.append(f"Professional: {payload.agent_name}")
    lines.append(f"Date: {_format_date(payload)}")
    lines.append(f"Time: {_format_time_range(payload)}")
    if payload.services:
        lines.append("")
        lines.append("*Services:*")
        lines.extend(f"- {name}" for name in payload.services)
    if payload.loyalty_summary:
        lines.append("")
        lines.append(payload.loyalty_summary)
    return lines


def _contact_line(payload: MessagePayload) -> str | None:
    phone = payload.location_phone or payload.agent_phone
    if not phone:
        return None
    return f"Need to cancel or reschedule? Call us at {phone}."


def render_day_before(payload: MessagePayload) -> str:
    lines = [
        "*Appointment reminder*",
        "",
        f"Hi {payload.client_name}! This is a reminder that you have an appointment tomorrow.",
        "",
        *_details(payload),
        "",
        "Please arrive 10 minutes early.",
    ]
    contact = _contact_line(payload)
    if contact:
        lines.append(contact)
    lines += ["", "_This is an automated message._"]
    return "\n".join(lines)


def render_near_time(payload: MessagePayload) -> str:
    lines = [
        "*Your appointment is coming up*",
        "",
        f"Hi {payload.client_name}! Your appointment starts at {payload.start_time.strftime('%H:%M')}.",
        "",
        *_details(payload),
        "",
        "See you soon!",
    ]
    contact = _contact_line(payload)
    if contact:
        lines.append(contact)
    lines += ["", "_This is an automated message._"]
    return "\n".join(lines)


def render_message(kind: TemplateKind, payload: MessagePayload) -> str:
    if TemplateKind(kind) == TemplateKind.DAY_BEFORE:
        return render_day_before(payload)
    return render_near_time(payload)
