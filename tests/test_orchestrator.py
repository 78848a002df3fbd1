"""
Flow tests against the in-memory store.

Each flow is driven end to end: documents in the store, parsed at the
boundary, computed by the engine, written back and audited.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from sharedledger.audit import AuditLogger
from sharedledger.errors import (
    NotFoundError,
    ReconciliationIOError,
    SplitMismatchError,
)
from sharedledger.models import (
    AuditEventType,
    CardKey,
    ExpenseDraft,
    FutureItem,
    Transfer,
)
from sharedledger.orchestrator import (
    BudgetFlow,
    ExpenseEntryFlow,
    LedgerSummaryFlow,
    ReconciliationFlow,
    create_app_components,
)
from sharedledger.queries import ProjectionQueryExecutor
from sharedledger.services.storage import InMemoryLedgerStore, StorageError


NUBANK_GOLD = CardKey(bank_name="Nubank", card_type="Gold")


class UnreadableStore(InMemoryLedgerStore):
    """A store whose expense documents can't be read."""

    async def list_expense_documents(self, ledger_id):
        raise StorageError(f"Timed out reading {ledger_id}")


class HeaderlessLedgerStore(InMemoryLedgerStore):
    """A store handing back a ledger document without an id."""

    async def list_ledgers_for_member(self, user_id):
        return [{"name": "Trip", "members": [{"id": user_id}]}]


@pytest.fixture
def store(seed_store, trip_ledger):
    return seed_store(InMemoryLedgerStore(), trip_ledger)


@pytest.fixture
def audit(store):
    return AuditLogger(store)


async def event_types(store):
    return [e.event_type for e in reversed(await store.get_recent_events())]


class TestExpenseEntryFlow:
    """Tests for recording expenses."""

    @pytest.mark.asyncio
    async def test_record_expense(self, store, audit, validator):
        """A valid draft comes back with frozen shares and is audited."""
        flow = ExpenseEntryFlow(store, validator=validator, audit_logger=audit)
        draft = ExpenseDraft(
            description="Taxi", amount=Decimal("30"), payer_id="bob",
            participant_ids=["alice", "bob", "carol"],
        )

        expense = await flow.record_expense("trip", draft)

        assert expense.share_map == {
            "alice": Decimal("10.00"), "bob": Decimal("10.00"), "carol": Decimal("10.00"),
        }
        assert await event_types(store) == [AuditEventType.EXPENSE_RECORDED]

    @pytest.mark.asyncio
    async def test_rejected_split_audited_and_raised(self, store, audit, validator):
        """A mismatched split is logged as a warning and re-raised."""
        flow = ExpenseEntryFlow(store, validator=validator, audit_logger=audit)
        draft = ExpenseDraft(
            amount=Decimal("30"), payer_id="bob", participant_ids=["alice", "bob"],
            split_policy="by_amount", raw_values={"alice": Decimal("10"), "bob": Decimal("10")},
        )

        with pytest.raises(SplitMismatchError):
            await flow.record_expense("trip", draft)

        [event] = await store.get_recent_events()
        assert event.event_type == AuditEventType.SPLIT_REJECTED
        assert event.entity_id == "trip"

    @pytest.mark.asyncio
    async def test_non_member_rejected(self, store, validator):
        """Only members can take part in an expense."""
        flow = ExpenseEntryFlow(store, validator=validator)
        draft = ExpenseDraft(amount=Decimal("30"), payer_id="bob", participant_ids=["bob", "dave"])
        with pytest.raises(NotFoundError):
            await flow.record_expense("trip", draft)

    @pytest.mark.asyncio
    async def test_unknown_ledger(self, store, validator):
        """Recording into a ledger that doesn't exist fails."""
        flow = ExpenseEntryFlow(store, validator=validator)
        draft = ExpenseDraft(amount=Decimal("30"), payer_id="bob", participant_ids=["bob"])
        with pytest.raises(NotFoundError):
            await flow.record_expense("nope", draft)

    @pytest.mark.asyncio
    async def test_review_expense(self, store, validator):
        """Review reports instead of raising."""
        flow = ExpenseEntryFlow(store, validator=validator)
        draft = ExpenseDraft(amount=Decimal("30"), payer_id="bob", participant_ids=["dave"])

        result, message = await flow.review_expense("trip", draft)

        assert not result.is_valid
        assert "can't be saved" in message


class TestLedgerSummaryFlow:
    """Tests for balances, transfers and settling up."""

    @pytest.mark.asyncio
    async def test_summarize(self, store, validator):
        """Balances net out the settlement; transfers clear them."""
        flow = LedgerSummaryFlow(store, validator=validator)

        summary = await flow.summarize("trip")

        assert summary.balances == {
            "alice": Decimal("35"), "bob": Decimal("-25"), "carol": Decimal("-10"),
        }
        assert [(t.from_member_id, t.to_member_id, t.amount) for t in summary.transfers] == [
            ("bob", "alice", Decimal("25")),
            ("carol", "alice", Decimal("10")),
        ]
        assert summary.total_spent == Decimal("170")
        assert not summary.is_settled

    @pytest.mark.asyncio
    async def test_explain_transfer(self, store, validator):
        """Bob owes Alice because of the hotel."""
        flow = LedgerSummaryFlow(store, validator=validator)
        transfer = Transfer(from_member_id="bob", to_member_id="alice", amount=Decimal("25"))

        expenses = await flow.explain_transfer("trip", transfer)

        assert [e.id for e in expenses] == ["hotel"]

    @pytest.mark.asyncio
    async def test_settle_all_transfers(self, store, audit, validator):
        """Paying every suggested transfer leaves the ledger settled."""
        flow = LedgerSummaryFlow(store, settlement_storage=store, validator=validator, audit_logger=audit)

        for transfer in (await flow.summarize("trip")).transfers:
            await flow.settle_transfer("trip", transfer)

        summary = await flow.summarize("trip")
        assert summary.is_settled
        assert all(balance == 0 for balance in summary.balances.values())
        assert (await event_types(store)).count(AuditEventType.SETTLEMENT_RECORDED) == 2

    @pytest.mark.asyncio
    async def test_settle_leaves_expenses_alone(self, store, validator):
        """Settling changes balances, not the card charges behind them."""
        flow = LedgerSummaryFlow(store, settlement_storage=store, validator=validator)
        before = await store.list_expense_documents("trip")

        await flow.settle_transfer(
            "trip", Transfer(from_member_id="bob", to_member_id="alice", amount=Decimal("25")),
        )

        assert await store.list_expense_documents("trip") == before

    @pytest.mark.asyncio
    async def test_settle_with_non_member(self, store, validator):
        """Strangers can't settle into a ledger."""
        flow = LedgerSummaryFlow(store, settlement_storage=store, validator=validator)
        with pytest.raises(NotFoundError):
            await flow.settle_transfer(
                "trip", Transfer(from_member_id="dave", to_member_id="alice", amount=Decimal("5")),
            )
        assert len(await store.list_settlement_documents("trip")) == 1

    @pytest.mark.asyncio
    async def test_settle_without_storage(self, store, validator):
        """No settlement storage, no settlement."""
        flow = LedgerSummaryFlow(store, validator=validator)
        with pytest.raises(StorageError):
            await flow.settle_transfer(
                "trip", Transfer(from_member_id="bob", to_member_id="alice", amount=Decimal("5")),
            )


class TestReconciliationFlow:
    """Tests for reconciliation passes."""

    @pytest.mark.asyncio
    async def test_first_pass_then_idempotent(self, store, audit, engine_settings, fixed_now):
        """The second pass over unchanged ledgers writes nothing."""
        flow = ReconciliationFlow(store, store, audit_logger=audit, engine_settings=engine_settings)

        first = await flow.reconcile("alice", now=fixed_now)
        second = await flow.reconcile("alice", now=fixed_now + timedelta(days=1))

        assert len(first.creates) == 2
        assert second.is_empty
        assert len(await store.list_obligations("alice")) == 2
        assert (await event_types(store)).count(AuditEventType.OBLIGATION_BATCH_APPLIED) == 1

    @pytest.mark.asyncio
    async def test_new_expense_updates_projection(
        self, store, engine_settings, fixed_now, make_expense,
    ):
        """A later card charge shows up in the next pass."""
        flow = ReconciliationFlow(store, store, engine_settings=engine_settings)
        await flow.reconcile("alice", now=fixed_now)

        taxi = make_expense("alice", {"alice": 12, "bob": 12}, card=NUBANK_GOLD, expense_id="taxi")
        store.add_expense("trip", taxi.model_dump(mode="json", by_alias=True))

        batch = await flow.reconcile("alice", now=fixed_now)

        assert len(batch.updates) == 1
        assert batch.creates == [] and batch.deletes == []

    @pytest.mark.asyncio
    async def test_unreadable_source_aborts_without_writing(
        self, seed_store, trip_ledger, engine_settings, fixed_now,
    ):
        """A read failure aborts the pass and leaves stored records alone."""
        store = seed_store(UnreadableStore(), trip_ledger)
        flow = ReconciliationFlow(
            store, store, audit_logger=AuditLogger(store), engine_settings=engine_settings,
        )

        with pytest.raises(ReconciliationIOError) as exc:
            await flow.reconcile("alice", now=fixed_now)

        assert exc.value.user_id == "alice"
        assert await store.list_obligations("alice") == []
        assert AuditEventType.RECONCILIATION_ABORTED in await event_types(store)

    @pytest.mark.asyncio
    async def test_malformed_expense_aborts(self, store, engine_settings, fixed_now):
        """One expense whose shares don't add up aborts the whole pass."""
        flow = ReconciliationFlow(store, store, engine_settings=engine_settings)
        await flow.reconcile("alice", now=fixed_now)
        before = await store.list_obligations("alice")

        store.add_expense("trip", {
            "id": "broken", "amount": "50", "payerId": "alice",
            "participantIds": ["alice", "bob"], "splitPolicy": "equal",
            "shareMap": {"alice": "25", "bob": "5"}, "transactionDate": "2024-03-12",
        })

        with pytest.raises(ReconciliationIOError):
            await flow.reconcile("alice", now=fixed_now)
        assert await store.list_obligations("alice") == before

    @pytest.mark.asyncio
    async def test_ledger_without_id_aborts(self, engine_settings, fixed_now):
        """A ledger document missing its id aborts the pass and is audited."""
        store = HeaderlessLedgerStore()
        flow = ReconciliationFlow(
            store, store, audit_logger=AuditLogger(store), engine_settings=engine_settings,
        )

        with pytest.raises(ReconciliationIOError):
            await flow.reconcile("alice", now=fixed_now)

        assert await store.list_obligations("alice") == []
        assert AuditEventType.RECONCILIATION_ABORTED in await event_types(store)

    @pytest.mark.asyncio
    async def test_card_cycles(self, store, engine_settings):
        """Registered cards report the open cycle total."""
        store.add_card("alice", {"bankName": "Nubank", "cardType": "Gold", "closingDay": 15})
        flow = ReconciliationFlow(store, store, engine_settings=engine_settings)

        [cycle] = await flow.card_cycles("alice", today=date(2024, 3, 12))

        assert cycle.next_closing_date == date(2024, 3, 15)
        assert cycle.current_cycle_total == Decimal("40")
        assert cycle.expense_count == 1


class TestBudgetFlow:
    """Tests for the personal budget."""

    @pytest.fixture
    def budget(self, store, audit, engine_settings):
        return BudgetFlow(store, store, audit_logger=audit, engine_settings=engine_settings)

    @pytest.mark.asyncio
    async def test_second_rent_replaces_first(self, store, budget, fixed_now):
        """Saving the rent twice keeps one item with the newer amount."""
        first = await budget.save_future_item(FutureItem(
            user_id="alice", description="Rent", amount=Decimal("300"),
            item_type="expense", recurrence="recurring_fixed", start_date=date(2024, 1, 1),
        ))
        second = await budget.save_future_item(FutureItem(
            user_id="alice", description="Rent", amount=Decimal("350"),
            item_type="expense", recurrence="recurring_fixed", start_date=date(2024, 4, 1),
        ), now=fixed_now)

        [stored] = await store.list_future_items("alice")
        assert second.id == first.id == stored.id
        assert stored.amount == Decimal("350")
        assert stored.last_modified_at == fixed_now

        events = [e for e in await store.get_recent_events()
                  if e.event_type == AuditEventType.FUTURE_ITEM_SAVED]
        assert sorted(e.details["created"] for e in events) == [False, True]

    @pytest.mark.asyncio
    async def test_monthly_balance_includes_card_debt(
        self, store, budget, engine_settings, fixed_now,
    ):
        """Card bills projected by reconciliation come off the month they're due."""
        await ReconciliationFlow(store, store, engine_settings=engine_settings).reconcile(
            "alice", now=fixed_now,
        )
        await budget.save_future_item(FutureItem(
            user_id="alice", description="Salary", amount=Decimal("1000"),
            item_type="income", recurrence="monthly", start_date=date(2024, 1, 5),
        ))
        await budget.save_future_item(FutureItem(
            user_id="alice", description="Rent", amount=Decimal("300"),
            item_type="expense", recurrence="recurring_fixed", start_date=date(2024, 1, 1),
        ))

        may = await budget.monthly_balance("alice", "2024-05")
        june = await budget.monthly_balance("alice", "2024-06")

        assert may.card_debt == Decimal("55")
        assert may.balance == Decimal("645")
        assert june.card_debt == 0
        assert june.balance == Decimal("700")

    @pytest.mark.asyncio
    async def test_items_are_per_user(self, store, budget):
        """Bob's salary isn't Alice's."""
        await budget.save_future_item(FutureItem(
            user_id="bob", description="Salary", amount=Decimal("900"),
            item_type="income", recurrence="monthly", start_date=date(2024, 1, 1),
        ))
        assert (await budget.monthly_balance("alice", "2024-03")).income == 0


class TestCreateAppComponents:
    """Tests for the component factory."""

    @pytest.mark.asyncio
    async def test_in_memory_wiring(self, store, fixed_now):
        """Without Sheets, the ledger store holds obligations and settlements."""
        expense_flow, summary_flow, reconciliation_flow, budget_flow, queries = create_app_components(
            store, use_sheets=False,
        )

        assert isinstance(expense_flow, ExpenseEntryFlow)
        assert isinstance(budget_flow, BudgetFlow)
        assert isinstance(queries, ProjectionQueryExecutor)

        await reconciliation_flow.reconcile("alice", now=fixed_now)
        projection = await queries.monthly_projection("alice")
        assert [m.due_month for m in projection] == ["2024-05"]
        assert projection[0].total == Decimal("55")

        await summary_flow.settle_transfer(
            "trip", Transfer(from_member_id="bob", to_member_id="alice", amount=Decimal("25")),
        )
        assert len(await store.list_settlement_documents("trip")) == 2
