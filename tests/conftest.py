"""Shared fixtures: engine settings, ledgers, expenses and a seeded store."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from sharedledger.config import EngineSettings
from sharedledger.engine import amortize_installment
from sharedledger.models import CardKey, Expense, Ledger, Member, SettlementRecord
from sharedledger.services.storage import InMemoryLedgerStore
from sharedledger.validation import ExpenseValidator

NUBANK_GOLD = CardKey(bank_name="Nubank", card_type="Gold")
ITAU_PLATINUM = CardKey(bank_name="Itau", card_type="Platinum")


@pytest.fixture
def engine_settings() -> EngineSettings:
    return EngineSettings(
        default_closing_day=1,
        equal_split_remainder="payer",
        max_installments=72,
    )


@pytest.fixture
def validator(engine_settings) -> ExpenseValidator:
    return ExpenseValidator(engine_settings)


@pytest.fixture
def make_expense():
    """Build an Expense from a share map; amount defaults to the sum of shares."""

    def _make(
        payer_id: str,
        shares: dict,
        amount=None,
        card: CardKey = None,
        on: date = date(2024, 3, 10),
        installments: int = None,
        expense_id: str = None,
        description: str = "Dinner",
    ) -> Expense:
        share_map = {member_id: Decimal(str(v)) for member_id, v in shares.items()}
        total = Decimal(str(amount)) if amount is not None else sum(share_map.values(), Decimal("0"))
        fields = {
            "description": description,
            "amount": total,
            "payer_id": payer_id,
            "participant_ids": list(share_map),
            "share_map": share_map,
            "transaction_date": on,
        }
        if expense_id is not None:
            fields["id"] = expense_id
        if card is not None:
            fields.update(is_card_purchase=True, card_key=card)
        if installments is not None:
            plan = amortize_installment(total, installments, on)
            fields.update(
                is_installment=True,
                installment_count=plan.installment_count,
                installment_amount=plan.installment_amount,
                payoff_month=plan.payoff_month,
            )
        return Expense(**fields)

    return _make


@pytest.fixture
def make_ledger():
    """Build a Ledger whose members are named after their ids."""

    def _make(
        ledger_id: str,
        member_ids: list[str],
        expenses=(),
        settlements=(),
    ) -> Ledger:
        return Ledger(
            id=ledger_id,
            name=f"Ledger {ledger_id}",
            members=[Member(id=m, display_name=m.title()) for m in member_ids],
            expenses=list(expenses),
            settlements=list(settlements),
        )

    return _make


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 3, 31, 12, 0, 0)


def ledger_document(ledger: Ledger) -> dict:
    """The ledger header as the document store would hold it."""
    return {
        "id": ledger.id,
        "name": ledger.name,
        "members": [
            {"id": m.id, "displayName": m.display_name} for m in ledger.members
        ],
    }


@pytest.fixture
def seed_store():
    """Put ledgers (with their expenses and settlements) into an in-memory store."""

    def _seed(store: InMemoryLedgerStore, *ledgers: Ledger) -> InMemoryLedgerStore:
        for ledger in ledgers:
            store.add_ledger(ledger_document(ledger))
            for expense in ledger.expenses:
                store.add_expense(ledger.id, expense.model_dump(mode="json", by_alias=True))
            for settlement in ledger.settlements:
                store.add_settlement(ledger.id, settlement.model_dump(mode="json", by_alias=True))
        return store

    return _seed


@pytest.fixture
def trip_ledger(make_ledger, make_expense) -> Ledger:
    """Alice, Bob and Carol sharing two card purchases and a cash dinner."""
    return make_ledger("trip", ["alice", "bob", "carol"], expenses=[
        make_expense(
            "alice", {"alice": 40, "bob": 40, "carol": 40},
            card=NUBANK_GOLD, on=date(2024, 3, 10), expense_id="hotel",
            description="Hotel",
        ),
        make_expense(
            "bob", {"alice": 15, "bob": 15},
            card=ITAU_PLATINUM, on=date(2024, 3, 5), expense_id="museum",
            description="Museum",
        ),
        make_expense(
            "carol", {"alice": 10, "carol": 10},
            expense_id="dinner",
        ),
    ], settlements=[
        SettlementRecord(id="s1", from_member_id="carol", to_member_id="alice", amount=Decimal("20")),
    ])
