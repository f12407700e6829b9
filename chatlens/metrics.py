"""
Locally computed conversation metrics.

Everything here is exact arithmetic over the parsed messages, so it is
computed before any provider call and handed to the prompts as ground truth.
"""

import re
from collections import Counter
from typing import Dict, List

from chatlens.models import Message
from chatlens.parser import parse_timestamp

EMOJI = re.compile('[\U0001F000-\U0001FAFF☀-➿]')

POSITIVE_WORDS = ["좋", "행복", "감사", "사랑", "최고", "멋", "예쁘", "웃", "ㅎㅎ", "ㅋㅋ", "^^", "♥", "💕"]
NEGATIVE_WORDS = ["싫", "화", "짜증", "미워", "별로", "속상", "슬프", "힘들"]

STOP_WORDS = {
    '그', '저', '이', '것', '수', '등', '들', '및', '또는', '그리고',
    '은', '는', '가', '을', '를', '에', '의', '와', '과',
    '도', '만', '요', '네', '지',
}
KOREAN_WORD = re.compile(r'[가-힣]{2,}')

# Replies slower than a day are a new conversation, not a response
MAX_RESPONSE_MINUTES = 24 * 60
# Silence after which the next message starts a new conversation
STARTER_GAP_MINUTES = 60


def pair_of(messages: List[Message]):
    """The two main participants, in first-seen order."""
    seen = []
    for m in messages:
        if m.participant not in seen:
            seen.append(m.participant)
        if len(seen) == 2:
            break
    user = seen[0] if seen else "사용자"
    partner = seen[1] if len(seen) > 1 else "상대방"
    return user, partner


def message_ratio(messages: List[Message], user: str, partner: str) -> Dict[str, float]:
    counts = Counter(m.participant for m in messages)
    total = counts[user] + counts[partner]
    if not total:
        return {user: 0.5, partner: 0.5}
    return {user: round(counts[user] / total, 2), partner: round(counts[partner] / total, 2)}


def average_length(messages: List[Message], user: str, partner: str) -> Dict[str, int]:
    out = {}
    for name in (user, partner):
        lengths = [len(m.content) for m in messages if m.participant == name]
        out[name] = round(sum(lengths) / len(lengths)) if lengths else 0
    return out


def question_ratio(messages: List[Message], user: str, partner: str) -> Dict[str, float]:
    out = {}
    for name in (user, partner):
        own = [m for m in messages if m.participant == name]
        questions = [m for m in own if '?' in m.content or '？' in m.content]
        out[name] = round(len(questions) / len(own), 2) if own else 0
    return out


def emoji_count(messages: List[Message], user: str, partner: str) -> Dict[str, int]:
    out = {user: 0, partner: 0}
    for m in messages:
        if m.participant in out:
            out[m.participant] += len(EMOJI.findall(m.content))
    return out


def conversation_starters(messages: List[Message], user: str, partner: str) -> Dict[str, int]:
    """Who opens the first message or the first one after an hour of silence."""
    out = {user: 0, partner: 0}
    last = None
    for i, m in enumerate(messages):
        current = parse_timestamp(m.timestamp)
        if current is None:
            continue
        if i == 0 or (last is not None and (current - last).total_seconds() / 60 > STARTER_GAP_MINUTES):
            if m.participant in out:
                out[m.participant] += 1
        last = current
    return out


def average_response_time(messages: List[Message], user: str, partner: str) -> Dict[str, int]:
    """Mean minutes before replying, per participant, counting turn changes only."""
    samples = {user: [], partner: []}
    for prev, curr in zip(messages, messages[1:]):
        if prev.participant == curr.participant or curr.participant not in samples:
            continue
        prev_time = parse_timestamp(prev.timestamp)
        curr_time = parse_timestamp(curr.timestamp)
        if prev_time is None or curr_time is None:
            continue
        diff = (curr_time - prev_time).total_seconds() / 60
        if diff <= MAX_RESPONSE_MINUTES:
            samples[curr.participant].append(diff)
    return {name: round(sum(v) / len(v)) if v else 0 for name, v in samples.items()}


def sentiment_ratio(messages: List[Message]) -> Dict[str, float]:
    positive = negative = neutral = 0
    for m in messages:
        text = m.content.lower()
        has_pos = any(w in text for w in POSITIVE_WORDS)
        has_neg = any(w in text for w in NEGATIVE_WORDS)
        if has_pos and not has_neg:
            positive += 1
        elif has_neg and not has_pos:
            negative += 1
        else:
            neutral += 1
    total = len(messages) or 1
    return {
        "positive": round(positive / total, 2),
        "neutral": round(neutral / total, 2),
        "negative": round(negative / total, 2),
    }


def top_keywords(messages: List[Message], limit: int = 10) -> List[Dict]:
    counts = Counter()
    for m in messages:
        counts.update(w for w in KOREAN_WORD.findall(m.content) if w not in STOP_WORDS)
    return [{"word": w, "count": c} for w, c in counts.most_common(limit)]


def tikitaka_score(ratio: Dict[str, float], questions: Dict[str, float],
                   emojis: Dict[str, int], response: Dict[str, int],
                   user: str, partner: str) -> int:
    """
    0-100 conversational rhythm score.

    balance 40 (50:50 split is full marks), questions 30,
    emoji use 15, response speed 15 (30 minutes or faster is full marks).
    """
    balance = max(0.0, 40 - abs(ratio[user] - ratio[partner]) * 80)
    question = min(30.0, (questions[user] + questions[partner]) / 2 * 150)
    emoji = min(15.0, (emojis[user] + emojis[partner]) / 10)
    avg_time = (response[user] + response[partner]) / 2
    speed = max(0.0, 15 - (avg_time / 30) * 15)
    return round(balance + question + emoji + speed)


def compute_metrics(messages: List[Message]) -> Dict:
    """All indicators for a conversation, keyed the way prompts and charts expect."""
    user, partner = pair_of(messages)
    ratio = message_ratio(messages, user, partner)
    questions = question_ratio(messages, user, partner)
    emojis = emoji_count(messages, user, partner)
    response = average_response_time(messages, user, partner)

    return {
        "participants": [user, partner],
        "totalMessages": len(messages),
        "tikitakaScore": tikitaka_score(ratio, questions, emojis, response, user, partner),
        "messageRatio": ratio,
        "avgMessageLength": average_length(messages, user, partner),
        "questionRatio": questions,
        "emojiCount": emojis,
        "conversationStarters": conversation_starters(messages, user, partner),
        "avgResponseTime": response,
        "sentimentRatio": sentiment_ratio(messages),
        "topKeywords": top_keywords(messages),
    }
