"""
Calculation engine.

Pure, synchronous functions over typed snapshots. Nothing in this package
performs I/O.
"""

from sharedledger.engine.balances import balances_are_settled, compute_balances, total_spent
from sharedledger.engine.billing import (
    DEFAULT_CLOSING_DAY,
    closing_day_for,
    resolve_billing_cycle,
    summarize_card_cycle,
)
from sharedledger.engine.budget import calculate_monthly_balance, upsert_future_item
from sharedledger.engine.debts import apply_transfers, expenses_for_transfer, minimize_debts
from sharedledger.engine.installments import amortize_installment
from sharedledger.engine.obligations import (
    ObligationBucket,
    aggregate_obligations,
    reconcile_obligations,
)
from sharedledger.engine.splits import evaluate_split

__all__ = [
    "DEFAULT_CLOSING_DAY",
    "ObligationBucket",
    "aggregate_obligations",
    "amortize_installment",
    "apply_transfers",
    "balances_are_settled",
    "calculate_monthly_balance",
    "closing_day_for",
    "compute_balances",
    "evaluate_split",
    "expenses_for_transfer",
    "minimize_debts",
    "reconcile_obligations",
    "resolve_billing_cycle",
    "summarize_card_cycle",
    "total_spent",
    "upsert_future_item",
]
