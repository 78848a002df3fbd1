"""Tests for obligation aggregation and reconciliation."""

import itertools
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from sharedledger.engine import aggregate_obligations, reconcile_obligations
from sharedledger.models import (
    BucketKey,
    Card,
    CardKey,
    ObligationRecord,
    ReimbursementDirection,
)
from sharedledger.services.storage import stage_batch

NUBANK_GOLD = CardKey(bank_name="Nubank", card_type="Gold")
ITAU_PLATINUM = CardKey(bank_name="Itau", card_type="Platinum")


@pytest.fixture
def id_factory():
    counter = itertools.count(1)
    return lambda: f"ob-{next(counter)}"


def apply(existing: list[ObligationRecord], batch) -> list[ObligationRecord]:
    table = stage_batch({r.id: r for r in existing}, batch.user_id, batch)
    return list(table.values())


class TestAggregateObligations:
    """Tests for aggregate_obligations."""

    def test_buckets_by_due_month_and_card(self, trip_ledger):
        """Hotel and museum land in separate card buckets for May."""
        buckets = aggregate_obligations("alice", [trip_ledger], [])
        assert set(buckets) == {
            BucketKey("2024-05", NUBANK_GOLD),
            BucketKey("2024-05", ITAU_PLATINUM),
        }
        assert buckets[BucketKey("2024-05", NUBANK_GOLD)].total == Decimal("40")
        assert buckets[BucketKey("2024-05", ITAU_PLATINUM)].total == Decimal("15")

    def test_cash_expenses_ignored(self, trip_ledger):
        """The dinner wasn't on a card."""
        buckets = aggregate_obligations("carol", [trip_ledger], [])
        assert [b.expense_ids for b in buckets.values()] == [["hotel"]]

    def test_registered_closing_day_moves_due_month(self, trip_ledger):
        """Closing on the 15th puts the March 10 hotel in April."""
        cards = [Card(bank_name="Nubank", card_type="Gold", closing_day=15)]
        buckets = aggregate_obligations("alice", [trip_ledger], cards)
        assert BucketKey("2024-04", NUBANK_GOLD) in buckets

    def test_payer_reimbursements_owed_to_user(self, trip_ledger):
        """Alice paid the hotel, Bob and Carol owe her their shares."""
        bucket = aggregate_obligations("alice", [trip_ledger], [])[BucketKey("2024-05", NUBANK_GOLD)]
        entries = bucket.sorted_reimbursements()
        assert [(r.direction, r.counterparty_id, r.amount) for r in entries] == [
            (ReimbursementDirection.OWED_TO_USER, "bob", Decimal("40")),
            (ReimbursementDirection.OWED_TO_USER, "carol", Decimal("40")),
        ]
        assert entries[0].counterparty_name == "Bob"
        assert entries[0].source_description == "Hotel"

    def test_participant_reimbursement_user_owes(self, trip_ledger):
        """Alice shared Bob's museum charge, so she owes him."""
        bucket = aggregate_obligations("alice", [trip_ledger], [])[BucketKey("2024-05", ITAU_PLATINUM)]
        [entry] = bucket.reimbursements
        assert entry.direction == ReimbursementDirection.USER_OWES
        assert entry.counterparty_id == "bob"
        assert entry.amount == Decimal("15")

    def test_installment_purchase_counts_monthly_amount(self, make_ledger, make_expense):
        """A 12x purchase adds one twelfth to its bucket."""
        ledger = make_ledger("home", ["alice", "bob"], expenses=[
            make_expense(
                "alice", {"alice": 600, "bob": 600},
                card=NUBANK_GOLD, on=date(2024, 3, 10), installments=12,
            ),
        ])
        bucket = aggregate_obligations("alice", [ledger], [])[BucketKey("2024-05", NUBANK_GOLD)]
        assert bucket.total == Decimal("100")

    def test_installment_counted_for_member_outside_split(self, make_ledger, make_expense):
        """A financed purchase lands on every member's card projection."""
        ledger = make_ledger("home", ["alice", "bob"], expenses=[
            make_expense("alice", {"alice": 600}, card=NUBANK_GOLD, installments=6),
        ])
        buckets = aggregate_obligations("bob", [ledger], [])
        bucket = buckets[BucketKey("2024-05", NUBANK_GOLD)]
        assert bucket.total == Decimal("100")
        assert bucket.reimbursements == []

    def test_ledgers_without_user_ignored(self, make_ledger, make_expense):
        """Charges in groups the user isn't in don't count."""
        ledger = make_ledger("work", ["bob", "carol"], expenses=[
            make_expense("bob", {"bob": 10, "carol": 10}, card=NUBANK_GOLD),
        ])
        assert aggregate_obligations("alice", [ledger], []) == {}

    def test_buckets_span_ledgers(self, make_ledger, make_expense):
        """Two groups charging the same card in the same cycle share one bucket."""
        first = make_ledger("trip", ["alice", "bob"], expenses=[
            make_expense("alice", {"alice": 20, "bob": 20}, card=NUBANK_GOLD, expense_id="e1"),
        ])
        second = make_ledger("flat", ["alice", "carol"], expenses=[
            make_expense("alice", {"alice": 5, "carol": 5}, card=NUBANK_GOLD, expense_id="e2"),
        ])
        buckets = aggregate_obligations("alice", [first, second], [])
        assert len(buckets) == 1
        assert buckets[BucketKey("2024-05", NUBANK_GOLD)].total == Decimal("25")


class TestReconcileObligations:
    """Tests for reconcile_obligations."""

    def test_first_pass_creates_one_record_per_bucket(self, trip_ledger, fixed_now, id_factory):
        """Nothing stored yet: every positive bucket is created."""
        batch = reconcile_obligations("alice", [trip_ledger], [], [], now=fixed_now, id_factory=id_factory)

        assert batch.updates == [] and batch.deletes == []
        assert [(r.card_key.label, r.amount) for r in batch.creates] == [
            ("Itau - Platinum", Decimal("15")),
            ("Nubank - Gold", Decimal("40")),
        ]
        record = batch.creates[1]
        assert record.user_id == "alice"
        assert record.due_month == "2024-05"
        assert record.source_scope == "aggregate"
        assert record.description == "Card debt (shared ledgers) - Nubank - Gold"
        assert record.created_at == fixed_now == record.last_modified_at
        assert record.owed_to_user == Decimal("80")

    def test_second_pass_is_empty(self, trip_ledger, fixed_now, id_factory):
        """Reconciling unchanged data twice changes nothing the second time."""
        first = reconcile_obligations("alice", [trip_ledger], [], [], now=fixed_now, id_factory=id_factory)
        stored = apply([], first)

        later = fixed_now + timedelta(days=3)
        second = reconcile_obligations("alice", [trip_ledger], [], stored, now=later, id_factory=id_factory)

        assert second.is_empty
        assert all(r.created_at == fixed_now for r in stored)

    def test_changed_bucket_updated_in_place(
        self, trip_ledger, make_expense, fixed_now, id_factory,
    ):
        """A new charge on an existing bucket updates that record only."""
        stored = apply([], reconcile_obligations(
            "alice", [trip_ledger], [], [], now=fixed_now, id_factory=id_factory,
        ))
        nubank = next(r for r in stored if r.card_key == NUBANK_GOLD)

        trip_ledger.expenses.append(make_expense(
            "alice", {"alice": 12, "bob": 12}, card=NUBANK_GOLD,
            on=date(2024, 3, 20), expense_id="taxi", description="Taxi",
        ))
        later = fixed_now + timedelta(hours=1)
        batch = reconcile_obligations("alice", [trip_ledger], [], stored, now=later, id_factory=id_factory)

        assert batch.creates == [] and batch.deletes == []
        [updated] = batch.updates
        assert updated.id == nubank.id
        assert updated.amount == Decimal("52")
        assert updated.created_at == fixed_now
        assert updated.last_modified_at == later
        assert len(updated.reimbursements) == 3

    def test_bucket_emptied_deletes_only_its_record(self, trip_ledger, fixed_now, id_factory):
        """Removing the hotel deletes the Nubank record and nothing else."""
        stored = apply([], reconcile_obligations(
            "alice", [trip_ledger], [], [], now=fixed_now, id_factory=id_factory,
        ))
        nubank = next(r for r in stored if r.card_key == NUBANK_GOLD)

        trip_ledger.expenses = [e for e in trip_ledger.expenses if e.id != "hotel"]
        batch = reconcile_obligations("alice", [trip_ledger], [], stored, now=fixed_now, id_factory=id_factory)

        assert batch.deletes == [nubank.id]
        assert batch.creates == [] and batch.updates == []

    def test_user_leaving_ledger_deletes_everything(self, trip_ledger, fixed_now, id_factory):
        """No ledgers means no obligations."""
        stored = apply([], reconcile_obligations(
            "alice", [trip_ledger], [], [], now=fixed_now, id_factory=id_factory,
        ))
        batch = reconcile_obligations("alice", [], [], stored, now=fixed_now)
        assert sorted(batch.deletes) == sorted(r.id for r in stored)

    def test_zero_total_bucket_not_created(self, make_ledger, make_expense, fixed_now):
        """Paying for others only leaves nothing on the user's own burden."""
        ledger = make_ledger("gift", ["alice", "bob"], expenses=[
            make_expense("alice", {"bob": 50}, card=NUBANK_GOLD),
        ])
        batch = reconcile_obligations("alice", [ledger], [], [], now=fixed_now)
        assert batch.is_empty

    def test_duplicate_records_collapse_to_oldest(self, trip_ledger, fixed_now):
        """Two records for one bucket: the older survives, the newer is deleted."""
        older = ObligationRecord(
            id="old", user_id="alice", amount=Decimal("1"), due_month="2024-05",
            card_key=NUBANK_GOLD, created_at=fixed_now - timedelta(days=10),
            last_modified_at=fixed_now - timedelta(days=10),
        )
        newer = older.model_copy(update={"id": "new", "created_at": fixed_now - timedelta(days=1)})

        batch = reconcile_obligations(
            "alice", [trip_ledger], [], [newer, older], now=fixed_now,
        )

        assert "new" in batch.deletes
        assert "old" not in batch.deletes
        assert [r.id for r in batch.updates] == ["old"]
        assert batch.updates[0].amount == Decimal("40")
        assert len(batch.creates) == 1

    def test_other_users_records_untouched(self, trip_ledger, fixed_now):
        """Bob's records never appear in Alice's batch."""
        bobs = ObligationRecord(
            id="bob-1", user_id="bob", amount=Decimal("40"), due_month="2024-05",
            card_key=NUBANK_GOLD, created_at=fixed_now, last_modified_at=fixed_now,
        )
        batch = reconcile_obligations("alice", [trip_ledger], [], [bobs], now=fixed_now)
        assert "bob-1" not in batch.deletes
        assert all(r.id != "bob-1" for r in batch.updates)

    def test_matching_ignores_description_text(self, trip_ledger, fixed_now, id_factory):
        """A record with an edited description still matches its bucket by key."""
        stored = apply([], reconcile_obligations(
            "alice", [trip_ledger], [], [], now=fixed_now, id_factory=id_factory,
        ))
        renamed = [r.model_copy(update={"description": "something else"}) for r in stored]

        batch = reconcile_obligations("alice", [trip_ledger], [], renamed, now=fixed_now)

        assert batch.creates == [] and batch.deletes == []

    def test_closing_day_change_moves_record(self, trip_ledger, fixed_now, id_factory):
        """Registering a closing day re-buckets the hotel: old month deleted, new created."""
        stored = apply([], reconcile_obligations(
            "alice", [trip_ledger], [], [], now=fixed_now, id_factory=id_factory,
        ))
        cards = [Card(bank_name="Nubank", card_type="Gold", closing_day=15)]

        batch = reconcile_obligations(
            "alice", [trip_ledger], cards, stored, now=fixed_now, id_factory=id_factory,
        )

        assert [r.due_month for r in batch.creates] == ["2024-04"]
        assert len(batch.deletes) == 1
        assert batch.updates == []

    def test_uses_injected_clock_and_ids(self, trip_ledger):
        """Timestamps and ids come from the caller when given."""
        now = datetime(2030, 1, 1)
        batch = reconcile_obligations(
            "alice", [trip_ledger], [], [], now=now, id_factory=lambda: "fixed",
        )
        assert {r.id for r in batch.creates} == {"fixed"}
        assert {r.created_at for r in batch.creates} == {now}
