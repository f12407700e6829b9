#!/usr/bin/env python3
"""
Session-aware segmentation for ChatLens

Splits a long conversation into bounded batches whose edges fall on
natural session breaks (long silences, goodnights, time-of-day shifts),
so no batch cuts an exchange in half unless it has to.
"""

import re
from datetime import datetime
from typing import List, Optional, Sequence

from chatlens.console import log
from chatlens.models import Batch, IndexedMessage, Message
from chatlens.parser import parse_timestamp

SAME_SESSION_MINUTES = 30
NEW_SESSION_MINUTES = 360
SAME_PERIOD_MINUTES = 120

# Farewell / acknowledgement idioms that usually end an exchange
CLOSING_PATTERNS = [
    re.compile(p) for p in (
        r'잘\s*자', r'고마워?', r'ㅇㅋ', r'나중에', r'바이', r'ㄱㅅ', r'알았어', r'바빠', r'가야\s*돼',
    )
]


def get_time_period(hour: int) -> str:
    """Time-of-day bucket for an hour 0-23."""
    if 6 <= hour < 11:
        return 'morning'
    if 11 <= hour < 14:
        return 'midday'
    if 14 <= hour < 18:
        return 'afternoon'
    if 18 <= hour < 23:
        return 'evening'
    return 'night'


def has_closing_message(text: str) -> bool:
    return any(p.search(text or '') for p in CLOSING_PATTERNS)


def is_session_end(prev_text: str, gap_minutes: float, prev_hour: Optional[int], curr_hour: Optional[int]) -> bool:
    """Decide whether the gap after `prev_text` ends a session."""
    if gap_minutes <= SAME_SESSION_MINUTES:
        return False
    if gap_minutes >= NEW_SESSION_MINUTES:
        return True
    if has_closing_message(prev_text):
        return True
    if prev_hour is not None and curr_hour is not None:
        if get_time_period(prev_hour) == get_time_period(curr_hour) and gap_minutes <= SAME_PERIOD_MINUTES:
            return False
    return True


def gap_between(prev: Optional[datetime], curr: Optional[datetime]) -> float:
    if prev is None or curr is None:
        return 0.0
    return abs((curr - prev).total_seconds()) / 60


def calculate_gap_minutes(prev_timestamp: str, curr_timestamp: str) -> float:
    """Absolute gap in minutes; 0 when either side cannot be parsed."""
    return gap_between(parse_timestamp(prev_timestamp), parse_timestamp(curr_timestamp))


def index_messages(messages: Sequence[Message]) -> List[IndexedMessage]:
    return [
        m if isinstance(m, IndexedMessage) else IndexedMessage(index=i, **m.model_dump())
        for i, m in enumerate(messages)
    ]


def _boundary_after(prev: IndexedMessage, nxt: IndexedMessage) -> bool:
    prev_time = parse_timestamp(prev.timestamp)
    next_time = parse_timestamp(nxt.timestamp)
    return is_session_end(
        prev.content,
        gap_between(prev_time, next_time),
        prev_time.hour if prev_time else None,
        next_time.hour if next_time else None,
    )


def segment_by_sessions(messages: Sequence[Message],
                        target_size: int = 2000,
                        max_size: int = 2200,
                        quiet: bool = False) -> List[Batch]:
    """
    Partition messages into contiguous batches.

    A batch closes after the last message, at a session boundary, or when
    it reaches max_size. target_size is advisory only: reaching it never
    closes a batch by itself.

    Returns batches numbered from 1 whose concatenation is the input.
    """
    if max_size < 1:
        raise ValueError("max_size must be positive")

    indexed = index_messages(messages)
    batches: List[Batch] = []
    current: List[IndexedMessage] = []

    for pos, msg in enumerate(indexed):
        current.append(msg)
        is_last = pos == len(indexed) - 1
        if is_last or len(current) >= max_size or _boundary_after(msg, indexed[pos + 1]):
            batches.append(Batch(batch_id=len(batches) + 1, messages=current))
            current = []

    if not quiet and batches:
        sizes = [b.count for b in batches]
        log('segment', f'{len(indexed)} messages -> {len(batches)} batches '
                       f'(min {min(sizes)}, max {max(sizes)}, target {target_size})')
    return batches

