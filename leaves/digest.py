"""
Daily availability digest.

compose_daily_digest() is a pure function of "now" and the leaves visible in
one channel. It returns an ordered list of Sections which slack_utils turns
into Block Kit blocks:

    header   🌅 Good Morning! Today's Team Availability
    context  date and time line
    divider
    text     one line per leave starting today (or the "everyone is in" line)
    divider + context   summary count, only when someone is away all day
    divider + header + text   upcoming leaves for the next 3 working days,
                              only when at least one of those days has a leave
"""
import logging
from dataclasses import dataclass
from datetime import timedelta

from .calendar_utils import get_calendar

logger = logging.getLogger(__name__)

UPCOMING_DAYS = 3

LEAVE_TYPE_ICONS = {
    'vacation': '🏖️',
    'wellness': '🧘',
    'sick': '🤒',
    'personal': '👤',
    'other': '📝',
}

FULL_DAY_LABELS = {
    'vacation': 'Vacationing',
    'wellness': 'On Wellness Day',
    'sick': 'On Sick Leave',
    'personal': 'On Personal Leave',
    'other': 'On Other Leave',
}

NO_LEAVES_TODAY = '✅ *No team members are away today! Everyone is available.* 🎉'
NO_LEAVES_SCHEDULED = '   • No leaves scheduled'


@dataclass(frozen=True)
class Section:
    kind: str
    text: str = ''


def divider():
    return Section('divider')


def leave_icon(leave_type):
    return LEAVE_TYPE_ICONS.get(leave_type, '📝')


def _sort_key(leave):
    return (leave.start_date, leave.start_time or '', leave.user_name or '')


def _dedupe(leaves):
    seen = set()
    unique = []
    for leave in leaves:
        key = leave.id if leave.id is not None else id(leave)
        if key in seen:
            continue
        seen.add(key)
        unique.append(leave)
    return sorted(unique, key=_sort_key)


def format_today_line(leave, calendar):
    if leave.is_multi_day:
        return (
            f"🏖️ *{leave.user_name}* - Vacationing "
            f"({calendar.format_date(leave.start_date)} - {calendar.format_date(leave.end_date)})"
        )
    if leave.is_full_day:
        label = FULL_DAY_LABELS.get(leave.leave_type, FULL_DAY_LABELS['other'])
        return f"{leave_icon(leave.leave_type)} *{leave.user_name}* - {label}"
    return (
        f"⏰ *{leave.user_name}* - Away between {leave.start_time} to {leave.end_time}\n"
        f"> _{leave.reason}_"
    )


def format_upcoming_line(leave):
    line = f"• {leave_icon(leave.leave_type)} *{leave.user_name}* - "
    if leave.is_full_day:
        line += leave.leave_type.capitalize()
    else:
        line += f"Away {leave.start_time} - {leave.end_time}"
    if leave.reason and leave.leave_type == 'other':
        line += f" ({leave.reason})"
    return line


def away_count(current_leaves):
    """Unique people away for a whole day; partial-day leaves don't count"""
    return len({
        leave.user_id for leave in current_leaves
        if leave.is_multi_day or leave.is_full_day
    })


def upcoming_by_day(leaves, today, calendar):
    """[(day, leaves)] for the next working days, minus anything already ongoing today"""
    days = calendar.next_working_days(UPCOMING_DAYS, start=today + timedelta(days=1))
    future = [leave for leave in leaves if not leave.overlaps(today, today)]
    return [(day, [leave for leave in future if leave.overlaps(day, day)]) for day in days]


def compose_daily_digest(now, channel_leaves, calendar=None):
    calendar = calendar or get_calendar()
    now = calendar.current_date(now)
    today = calendar.today(now)
    tomorrow = calendar.tomorrow(now)
    leaves = _dedupe(channel_leaves)

    sections = [
        Section('header', "🌅 Good Morning! Today's Team Availability"),
        Section(
            'context',
            f"📅 *Today's Team Availability* | ⏰ *{calendar.format_time(now)} "
            f"{calendar.timezone_label(now)}*",
        ),
        divider(),
    ]

    current_leaves = [leave for leave in leaves if leave.start_date == today]
    if not current_leaves:
        sections.append(Section('text', NO_LEAVES_TODAY))
    else:
        sections.extend(Section('text', format_today_line(leave, calendar)) for leave in current_leaves)
        count = away_count(current_leaves)
        if count > 0:
            sections.append(divider())
            sections.append(Section(
                'context', f"📊 *{count} team member{'' if count == 1 else 's'} away today*"
            ))

    upcoming = upcoming_by_day(leaves, today, calendar)
    if any(day_leaves for _, day_leaves in upcoming):
        sections.append(divider())
        sections.append(Section('header', '📅 Upcoming Leaves'))
        for day, day_leaves in upcoming:
            heading = 'Tomorrow' if day == tomorrow else calendar.format_day_heading(day)
            sections.append(Section('text', f"*{heading}:*"))
            if not day_leaves:
                sections.append(Section('text', NO_LEAVES_SCHEDULED))
            else:
                sections.extend(Section('text', format_upcoming_line(leave)) for leave in day_leaves)
    else:
        logger.debug(f"No upcoming leaves in the next {UPCOMING_DAYS} working days from {today}")

    return sections


def lookahead_end(now, calendar=None):
    """Last day the digest for "now" can mention"""
    calendar = calendar or get_calendar()
    today = calendar.today(now)
    days = calendar.next_working_days(UPCOMING_DAYS, start=calendar.tomorrow(now))
    return days[-1] if days else today


def digest_fallback_text(sections):
    """Plain-text notification preview for the chat.postMessage `text` field"""
    headers = [section.text for section in sections if section.kind == 'header']
    return headers[0] if headers else "Today's Team Availability"
