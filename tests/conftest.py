"""Shared fixtures: fake providers, recorded sleeps, synthetic conversations."""

import asyncio
import json
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chatlens import console as chat_console  # noqa: E402
from chatlens.models import Message  # noqa: E402


class FakeProvider:
    """
    Stand-in for ChatProvider.

    Either a handler(system, user) -> str (may raise) or a list of
    responses consumed in order, the last one repeating. Exceptions in
    the list are raised.
    """

    def __init__(self, responses=None, handler=None, name="fake"):
        self.name = name
        self.responses = list(responses or [])
        self.handler = handler
        self.calls = []

    async def complete(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        if self.handler is not None:
            return self.handler(system_prompt, user_prompt)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture(autouse=True)
def quiet_console(monkeypatch):
    monkeypatch.setattr(chat_console, "quiet", True)


@pytest.fixture
def sleeps(monkeypatch):
    """Replace asyncio.sleep with a recorder that only yields to the loop."""
    recorded = []
    real_sleep = asyncio.sleep

    async def fake_sleep(delay, *args, **kwargs):
        recorded.append(delay)
        await real_sleep(0)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return recorded


def make_messages(count, start=datetime(2024, 3, 1, 20, 0), per_minute=1,
                  participants=("민수", "지연"), content=lambda i: f"메시지 {i}"):
    """`count` alternating messages, `per_minute` of them per minute."""
    return [
        Message(
            timestamp=(start + timedelta(minutes=i // per_minute)).strftime("%Y-%m-%d %H:%M"),
            participant=participants[i % len(participants)],
            content=content(i),
        )
        for i in range(count)
    ]


def to_export(messages):
    """Render messages in the converted CSV export format."""
    return "\n".join(f"{m.timestamp}, {m.participant} : {m.content}" for m in messages)


def analysis_json(overview="두 사람은 안정적인 관계입니다.", immediate=("대화 시간을 정하세요",),
                  long_term=("주간 회고",), tips=("I-message 사용",), conclusion="좋은 관계입니다."):
    return json.dumps({
        "relationshipOverview": overview,
        "communicationPatterns": {
            "tikitakaAnalysis": "균형 잡힌 대화",
            "conversationFlow": "자연스러움",
            "responsePatterns": "빠른 응답",
        },
        "emotionalDynamics": {
            "sentimentTrends": "긍정적",
            "emotionalMoments": [{"type": "기쁨", "description": "여행 계획", "context": "주말"}],
            "emotionalBalance": "안정적",
        },
        "psychologicalInsights": {
            "attachmentStyle": "안정형",
            "conflictResolution": "대화로 해결",
            "intimacyPatterns": "꾸준함",
            "communicationBarriers": "바쁜 일정",
        },
        "relationshipHealth": {
            "currentState": "건강함",
            "strengths": ["신뢰"],
            "concerns": ["시간 부족"],
            "trajectory": "상승",
        },
        "practicalAdvice": {
            "immediateActions": list(immediate),
            "longTermStrategies": list(long_term),
            "communicationTips": list(tips),
        },
        "conclusion": conclusion,
    }, ensure_ascii=False)
