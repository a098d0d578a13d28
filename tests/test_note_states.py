"""Macchina a stati del DDT: derivazione dello stato e transizioni ammesse."""

from datetime import datetime

import pytest

from app.services.errors import InvalidTransitionError
from app.services.note_states import (
    Action,
    NoteState,
    check_invariants,
    ensure_allowed,
    is_allowed,
    state_of,
)
from tests.conftest import make_view

ARCHIVED_AT = datetime(2024, 4, 1, 9, 0)


@pytest.mark.parametrize(
    "fields, expected",
    [
        ({}, NoteState.DRAFT),
        ({"pending": False, "sign": "u://sign"}, NoteState.SIGNED_NO_DOC),
        ({"pending": False, "sign": "u://sign", "pdf_url": "u://pdf"}, NoteState.SIGNED),
        ({"deleted_at": ARCHIVED_AT}, NoteState.ARCHIVED_DRAFT),
        ({"pending": False, "sign": "u://sign", "deleted_at": ARCHIVED_AT}, NoteState.ARCHIVED_SIGNED),
        (
            {"pending": False, "sign": "u://sign", "pdf_url": "u://pdf", "deleted_at": ARCHIVED_AT},
            NoteState.ARCHIVED_SIGNED,
        ),
    ],
)
def test_state_is_derived_from_record(fields, expected):
    assert state_of(make_view(**fields)) is expected


def test_draft_transitions():
    assert is_allowed(NoteState.DRAFT, Action.UPDATE)
    assert is_allowed(NoteState.DRAFT, Action.SOFT_DELETE)
    assert is_allowed(NoteState.DRAFT, Action.SIGN)
    assert not is_allowed(NoteState.DRAFT, Action.HARD_DELETE)
    assert not is_allowed(NoteState.DRAFT, Action.FINISH_SIGNING)


def test_signed_states_are_not_editable_nor_resignable():
    for state in (NoteState.SIGNED_NO_DOC, NoteState.SIGNED):
        assert not is_allowed(state, Action.UPDATE)
        assert not is_allowed(state, Action.SIGN)
        assert is_allowed(state, Action.HARD_DELETE)
        assert is_allowed(state, Action.SOFT_DELETE)
    assert is_allowed(NoteState.SIGNED_NO_DOC, Action.FINISH_SIGNING)


def test_archived_states_only_restore():
    assert is_allowed(NoteState.ARCHIVED_DRAFT, Action.RESTORE)
    assert is_allowed(NoteState.ARCHIVED_SIGNED, Action.RESTORE)
    assert not is_allowed(NoteState.ARCHIVED_DRAFT, Action.HARD_DELETE)
    assert is_allowed(NoteState.ARCHIVED_SIGNED, Action.HARD_DELETE)
    for state in (NoteState.ARCHIVED_DRAFT, NoteState.ARCHIVED_SIGNED):
        assert not is_allowed(state, Action.UPDATE)
        assert not is_allowed(state, Action.SIGN)
        assert not is_allowed(state, Action.RENDER)


def test_ensure_allowed_raises_with_context():
    with pytest.raises(InvalidTransitionError) as excinfo:
        ensure_allowed(NoteState.DRAFT, Action.HARD_DELETE, note_id=3)

    payload = excinfo.value.to_payload()
    assert payload["error"] == "invalid_transition"
    assert payload["note_id"] == 3
    assert payload["state"] == "draft"
    assert payload["action"] == "hard_delete"


def test_check_invariants():
    assert check_invariants(make_view())
    assert check_invariants(make_view(pending=False, sign="u://s", pdf_url="u://p"))
    # firmato senza firma
    assert not check_invariants(make_view(pending=False))
    # firma su bozza
    assert not check_invariants(make_view(sign="u://s"))
    # PDF senza firma
    assert not check_invariants(make_view(pdf_url="u://p"))
