"""
Root conftest.py — shared fixtures for the entire test suite.

Guidelines:
    • No __init__.py in test sub-directories (avoids shadowing root packages).
    • pytest.ini_options lives in pyproject.toml with pythonpath=["."].
    • Service tests never use real timers: FakeTimerFactory records every timer and tests
      fire them explicitly.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List

import pytest

from adapters.in_memory_store import InMemoryMeetingDatabase
from domain.models import (
    AgendaTemplate,
    Initiative,
    Meeting,
    MeetingStatus,
    MeetingType,
    Person,
    Phase,
)


# ---------------------------------------------------------------------------
# Marker registration
# ---------------------------------------------------------------------------

def pytest_configure(config):
    config.addinivalue_line("markers", "integration: mark test as integration test")


# ---------------------------------------------------------------------------
# Deterministic timers and clocks
# ---------------------------------------------------------------------------


class FakeTimer:
    """Stand-in for threading.Timer that only runs when told to."""

    def __init__(self, interval: float, function: Callable[[], None]) -> None:
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return self.started and not self.cancelled and not self.fired

    def fire(self) -> None:
        if not self.active:
            return
        self.fired = True
        self.function()


class FakeTimerFactory:
    """Callable timer factory that keeps every timer it creates."""

    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, interval: float, function: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    def active(self, interval: float = None) -> List[FakeTimer]:
        return [
            timer for timer in self.timers
            if timer.active and (interval is None or timer.interval == interval)
        ]

    def fire_all(self, interval: float = None) -> int:
        fired = 0
        for timer in list(self.active(interval)):
            timer.fire()
            fired += 1
        return fired


@pytest.fixture()
def timer_factory() -> FakeTimerFactory:
    return FakeTimerFactory()


class SteppingClock:
    """UTC clock that advances by one second on every call."""

    def __init__(self, start: datetime = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


@pytest.fixture()
def clock() -> SteppingClock:
    return SteppingClock()


# ---------------------------------------------------------------------------
# Template and notes fixtures
# ---------------------------------------------------------------------------

SAMPLE_TEMPLATE: Dict[str, Any] = {
    "agenda_sections": [
        {
            "section": "Opening",
            "purpose": "Set context for the review",
            "time_minutes": 10,
            "talking_points": ["Welcome", "Goals for today"],
        },
        {
            "section": "Discovery",
            "purpose": "Understand current pain points",
            "time_minutes": 30,
            "questions": ["What slows you down?", "Which tools do you use?"],
            "talking_points": ["Current process"],
        },
        {
            "section": "Wrap-up",
            "purpose": "Agree next steps",
            "time_minutes": 5,
            "checklist": ["Confirm owners"],
        },
    ],
    "key_messages": ["We are here to listen"],
    "expected_outputs": ["List of pain points"],
}


@pytest.fixture()
def sample_template_document() -> Dict[str, Any]:
    return {
        **SAMPLE_TEMPLATE,
        "agenda_sections": [dict(section) for section in SAMPLE_TEMPLATE["agenda_sections"]],
    }


@pytest.fixture()
def sample_template(sample_template_document) -> AgendaTemplate:
    return AgendaTemplate.model_validate(sample_template_document)


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

PEOPLE = [
    Person(person_id=1, first_name="Ada", last_name="Lovelace", email="ada@example.com",
           role_title="Engineer", department_name="Research"),
    Person(person_id=2, first_name="Grace", last_name="Hopper", email="grace@example.com",
           role_title="Admiral", department_name="Navy"),
    Person(person_id=3, first_name="Alan", last_name="Turing", email="alan@example.com"),
]


@pytest.fixture()
def memory_db() -> InMemoryMeetingDatabase:
    """In-memory database seeded with people, one meeting type, phase and initiative."""
    db = InMemoryMeetingDatabase()
    for person in PEOPLE:
        db.add_person(person)
    db.add_meeting_type(MeetingType(
        meeting_type_id=1,
        type_name="Discovery Session",
        template_structure=SAMPLE_TEMPLATE,
    ))
    db.add_phase(Phase(phase_id=1, phase_name="Discover", phase_number=1))
    db.add_initiative(Initiative(initiative_id=1, initiative_name="Platform Refresh"))
    return db


def create_meeting_row(
    db: InMemoryMeetingDatabase,
    status: MeetingStatus = MeetingStatus.NOT_SCHEDULED,
    **fields: Any,
) -> Meeting:
    """Insert a meeting straight into the store, bypassing the service rules."""
    row = {
        "meeting_name": "Quarterly Review",
        "duration_minutes": 60,
        "meeting_type_id": 1,
        "phase_id": 1,
        "initiative_id": 1,
        "status": status.value,
        **fields,
    }
    return db.create_meeting(row)


@pytest.fixture()
def make_meeting(memory_db) -> Callable[..., Meeting]:
    def _make(status: MeetingStatus = MeetingStatus.NOT_SCHEDULED, **fields: Any) -> Meeting:
        return create_meeting_row(memory_db, status, **fields)
    return _make
