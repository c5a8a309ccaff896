"""Mandated invoice notes.

The operator and issue-time notes are not stored on the Invoice model. They are
composed from ``operator_name``/``issue_datetime`` when rendering and decomposed
again when parsing, by fixed literal prefix.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from ubl_cius.config import (
    ISSUE_TIME_NOTE_FORMAT,
    ISSUE_TIME_NOTE_PREFIX,
    OPERATOR_NOTE_PREFIX,
    OPERATOR_OIB_NOTE_PREFIX,
)
from ubl_cius.models.invoice import Invoice
from ubl_cius.utils.formatters import format_issue_timestamp


def operator_note(operator_name: str) -> str:
    return f"{OPERATOR_NOTE_PREFIX}{operator_name}"


def issue_time_note(issue_datetime: datetime) -> str:
    return f"{ISSUE_TIME_NOTE_PREFIX}{format_issue_timestamp(issue_datetime)}"


def operator_oib_note(oib: str) -> str:
    return f"{OPERATOR_OIB_NOTE_PREFIX}{oib}"


def compose_notes(invoice: Invoice) -> list[str]:
    """Return every cbc:Note text for *invoice*, mandated notes first."""
    notes = [operator_note(invoice.operator_name), issue_time_note(invoice.issue_datetime)]
    if invoice.operator_oib:
        notes.append(operator_oib_note(invoice.operator_oib))
    notes.extend(invoice.notes)
    return notes


@dataclass(frozen=True)
class NoteParts:
    operator_name: str | None
    issue_timestamp_confirmed: bool | None
    operator_oib: str | None
    other: tuple[str, ...]


def _confirms(note_value: str, issue_datetime: datetime | None) -> bool:
    if issue_datetime is None:
        return False
    try:
        stamped = datetime.strptime(note_value.strip(), ISSUE_TIME_NOTE_FORMAT)
    except ValueError:
        return False
    return stamped == issue_datetime.replace(second=0, microsecond=0)


def decompose_notes(notes: Iterable[str], issue_datetime: datetime | None = None) -> NoteParts:
    """Split note texts into the mandated parts and the remaining free-text notes.

    The issue-time note confirms the timestamp when its minute-precision value matches
    *issue_datetime*. ``issue_timestamp_confirmed`` is None when the note is absent.
    Only the first note carrying each prefix is consumed; later duplicates stay in ``other``.
    """
    operator_name = None
    confirmed = None
    operator_oib = None
    other: list[str] = []
    for note in notes:
        if operator_name is None and note.startswith(OPERATOR_NOTE_PREFIX):
            operator_name = note[len(OPERATOR_NOTE_PREFIX) :].strip()
        elif confirmed is None and note.startswith(ISSUE_TIME_NOTE_PREFIX):
            confirmed = _confirms(note[len(ISSUE_TIME_NOTE_PREFIX) :], issue_datetime)
        elif operator_oib is None and note.startswith(OPERATOR_OIB_NOTE_PREFIX):
            operator_oib = note[len(OPERATOR_OIB_NOTE_PREFIX) :].strip()
        else:
            other.append(note)
    return NoteParts(
        operator_name=operator_name,
        issue_timestamp_confirmed=confirmed,
        operator_oib=operator_oib,
        other=tuple(other),
    )
