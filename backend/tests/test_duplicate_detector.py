from datetime import date, datetime, timedelta, timezone

from budget_app import crud
from budget_app.domain.entities import ExtractedTransaction
from budget_app.models import TransactionSource
from budget_app.pipeline.duplicates import is_duplicate
from budget_app.pipeline.ledger import commit_transaction


def _candidate(amount=150.0, merchant="Cafe X", tx_date=date(2025, 8, 18)):
    return ExtractedTransaction(
        amount=amount,
        merchant=merchant,
        category="Food",
        date=tx_date,
        type="expense",
    )


def _manual(db_session, user_id, merchant, amount=150.0, tx_date=date(2025, 8, 18)):
    return crud.create_transaction(
        db_session,
        user_id,
        amount=amount,
        date_=tx_date,
        category="Food",
        type_="expense",
        merchant=merchant,
        notes=None,
    )


def test_pipeline_row_with_same_amount_and_date_is_duplicate(db_session, make_user):
    user = make_user(phone_number="97517773326")
    commit_transaction(db_session, user.id, _candidate(merchant="Bank Transfer"))

    assert is_duplicate(db_session, user.id, _candidate(merchant="Something Else"))


def test_manual_row_with_overlapping_merchant_is_duplicate(db_session, make_user):
    user = make_user()
    _manual(db_session, user.id, "cafe x downtown")

    assert is_duplicate(db_session, user.id, _candidate(merchant="Cafe X"))


def test_manual_row_with_note_marker_counts_as_pipeline_row(db_session, make_user):
    user = make_user()
    row = _manual(db_session, user.id, "Other Shop")
    row.notes = "Auto-added via WhatsApp for: Other Shop"
    db_session.commit()

    assert row.source == TransactionSource.MANUAL
    assert is_duplicate(db_session, user.id, _candidate(merchant="Cafe X"))


def test_manual_row_with_unrelated_merchant_is_not_duplicate(db_session, make_user):
    user = make_user()
    _manual(db_session, user.id, "Grocery Mart")

    assert not is_duplicate(db_session, user.id, _candidate(merchant="Cafe X"))


def test_rows_outside_window_are_ignored(db_session, make_user):
    user = make_user()
    commit_transaction(db_session, user.id, _candidate())

    later = datetime.now(timezone.utc) + timedelta(hours=25)
    assert not is_duplicate(db_session, user.id, _candidate(), now=later)
    assert is_duplicate(db_session, user.id, _candidate(), window=timedelta(hours=48), now=later)


def test_different_amount_date_or_account_is_not_duplicate(db_session, make_user):
    user = make_user()
    other = make_user(username="pema")
    commit_transaction(db_session, user.id, _candidate())

    assert not is_duplicate(db_session, user.id, _candidate(amount=151.0))
    assert not is_duplicate(db_session, user.id, _candidate(tx_date=date(2025, 8, 19)))
    assert not is_duplicate(db_session, other.id, _candidate())


def test_query_failure_is_not_duplicate(broken_session):
    assert not is_duplicate(broken_session, 1, _candidate())
    assert broken_session.rolled_back
