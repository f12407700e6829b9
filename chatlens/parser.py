#!/usr/bin/env python3
"""
KakaoTalk export parser.

Supported line formats (tried in order, anything else is skipped):
1. [Name] [Time] Message
2. 2024. 1. 15. 오후 9:30, Name : Message
3. 2024-01-15 21:30, Name : Message   (CSV exports converted client-side)
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from chatlens.models import Message

BRACKET_LINE = re.compile(r'^\[(.+?)\]\s\[(.+?)\]\s(.+)$')
KOREAN_LINE = re.compile(
    r'^(\d{4}\.\s?\d{1,2}\.\s?\d{1,2}\.\s(?:오전|오후)\s\d{1,2}:\d{2}),\s(.+?)\s:\s(.+)$'
)
CSV_LINE = re.compile(r'^(.+?),\s*(.+?)\s*:\s*(.+)$')
YEAR = re.compile(r'\d{4}')

KOREAN_MERIDIEM_TS = re.compile(r'(\d{4})\.\s?(\d{1,2})\.\s?(\d{1,2})\.\s(오전|오후)\s(\d{1,2}):(\d{2})')
ISO_LIKE_TS = re.compile(r'(\d{4})-(\d{1,2})-(\d{1,2})[\sT]+(\d{1,2}):(\d{2})(?::(\d{2}))?')
DOTTED_24H_TS = re.compile(r'(\d{4})\.\s?(\d{1,2})\.\s?(\d{1,2})\.\s+(\d{1,2}):(\d{2})')


@dataclass
class ParsedConversation:
    messages: List[Message] = field(default_factory=list)
    participants: List[str] = field(default_factory=list)


def parse_chat(content: str) -> ParsedConversation:
    """Parse an exported chat log into ordered messages and participants (first-seen order)."""
    messages = []
    participants = []

    for line in content.splitlines():
        line = line.rstrip('\r')
        if not line.strip():
            continue

        match = BRACKET_LINE.match(line)
        if match:
            participant, timestamp, text = match.groups()
        else:
            match = KOREAN_LINE.match(line)
            if match:
                timestamp, participant, text = match.groups()
            else:
                match = CSV_LINE.match(line)
                if not match:
                    continue
                timestamp, participant, text = (g.strip() for g in match.groups())
                if not YEAR.search(timestamp) or not participant or not text:
                    continue

        if participant not in participants:
            participants.append(participant)
        messages.append(Message(timestamp=timestamp, participant=participant, content=text.strip()))

    return ParsedConversation(messages=messages, participants=participants)


def parse_timestamp(timestamp: str) -> Optional[datetime]:
    """Parse any timestamp form the exports use; None when unrecognized."""
    if not timestamp:
        return None
    try:
        match = KOREAN_MERIDIEM_TS.search(timestamp)
        if match:
            year, month, day, meridiem, hour, minute = match.groups()
            hours = int(hour)
            if meridiem == '오후' and hours != 12:
                hours += 12
            if meridiem == '오전' and hours == 12:
                hours = 0
            return datetime(int(year), int(month), int(day), hours, int(minute))

        match = ISO_LIKE_TS.search(timestamp)
        if match:
            year, month, day, hour, minute, second = match.groups()
            return datetime(int(year), int(month), int(day), int(hour), int(minute), int(second or 0))

        match = DOTTED_24H_TS.search(timestamp)
        if match:
            year, month, day, hour, minute = match.groups()
            return datetime(int(year), int(month), int(day), int(hour), int(minute))

        return datetime.fromisoformat(timestamp.strip())
    except ValueError:
        # Out-of-range fields or not a date at all
        return None


def format_duration(minutes: float) -> str:
    if minutes < 1:
        return f"{round(minutes * 60)}초"
    if minutes < 60:
        return f"{minutes:.1f}분"
    return f"{minutes / 60:.1f}시간"


def calculate_stats(messages: List[Message], participants: List[str]) -> Dict:
    """Display stats: counts and mean gap between consecutive messages."""
    total_diff = 0.0
    diff_count = 0
    prev = None
    for msg in messages:
        curr = parse_timestamp(msg.timestamp)
        if prev is not None and curr is not None:
            total_diff += (curr - prev).total_seconds() / 60
            diff_count += 1
        prev = curr

    avg_minutes = total_diff / diff_count if diff_count else 0.0

    return {
        "totalMessages": len(messages),
        "participants": len(participants),
        "avgResponseTime": format_duration(avg_minutes),
        "sentimentScore": 0,
    }


def generate_chart_data(messages: List[Message]) -> Dict:
    """Message frequency per day, activity per participant and per hour."""
    per_day = Counter()
    per_hour = Counter()
    for msg in messages:
        parsed = parse_timestamp(msg.timestamp)
        if parsed is None:
            continue
        per_day[parsed.date().isoformat()] += 1
        per_hour[parsed.hour] += 1

    per_participant = Counter(m.participant for m in messages)

    return {
        "messageFrequency": [
            {"date": day, "count": count} for day, count in sorted(per_day.items())
        ],
        "participantActivity": [
            {"name": name, "count": count}
            for name, count in sorted(per_participant.items(), key=lambda kv: -kv[1])
        ],
        "hourlyActivity": [{"hour": hour, "count": per_hour.get(hour, 0)} for hour in range(24)],
    }
