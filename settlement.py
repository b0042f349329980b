import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

EPSILON = 0.01
ZERO_SUM_TOLERANCE = 1e-6


class SettlementError(Exception):
    """Base class for ledger errors raised by the settlement computation."""


class InvalidExpenseError(SettlementError):
    pass


class ReferentialIntegrityError(SettlementError):
    pass


class UnbalancedLedgerError(SettlementError):
    pass


@dataclass(frozen=True)
class Member:
    id: str
    name: str


@dataclass(frozen=True)
class Expense:
    id: str
    payer: Member
    amount: float
    participants: Sequence[Member]
    description: str = ""
    created_at: Optional[str] = None


@dataclass(frozen=True)
class Settlement:
    """One recommended payment: `payer` (debtor) sends `amount` to `receiver` (creditor)."""
    payer: Member
    receiver: Member
    amount: int

    def as_dict(self) -> Dict:
        return {"from": self.payer.name, "to": self.receiver.name, "amount": self.amount}


def round_up_amount(value) -> int:
    """
    Parse an amount typed by a user and round it up to a whole unit.
    '1200.10' -> 1201
    """
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise InvalidExpenseError(f"Invalid amount: {value!r}")
    if math.isnan(amount) or math.isinf(amount) or amount <= 0:
        raise InvalidExpenseError(f"Amount must be positive, got {value!r}")
    return math.ceil(amount)


def _index_members(members: Sequence[Member]) -> Dict[str, Member]:
    by_id = {}
    for m in members:
        if m.id in by_id:
            raise ReferentialIntegrityError(f"Duplicate member id {m.id!r}")
        by_id[m.id] = m
    return by_id


def _validate_expense(expense: Expense, by_id: Dict[str, Member]):
    amount = expense.amount
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) \
            or not math.isfinite(amount) or amount <= 0:
        raise InvalidExpenseError(f"Expense {expense.id!r}: amount must be positive, got {amount!r}")
    if not expense.participants:
        raise InvalidExpenseError(f"Expense {expense.id!r} has no participants")
    ids = [p.id for p in expense.participants]
    if len(set(ids)) != len(ids):
        raise InvalidExpenseError(f"Expense {expense.id!r} lists a participant twice")
    if expense.payer is None or expense.payer.id not in by_id:
        payer_id = expense.payer.id if expense.payer is not None else None
        raise ReferentialIntegrityError(f"Expense {expense.id!r}: unknown payer {payer_id!r}")
    for pid in ids:
        if pid not in by_id:
            raise ReferentialIntegrityError(f"Expense {expense.id!r}: unknown participant {pid!r}")


def compute_balances(members: Sequence[Member], expenses: Sequence[Expense]) -> Dict[str, float]:
    """
    Each member's net position (paid - share), keyed by member id.
    Positive -> owed money by the group; negative -> owes money.

    Every expense is validated before anything is summed, so a bad
    expense anywhere in the list fails the whole call.
    """
    by_id = _index_members(members)
    for e in expenses:
        _validate_expense(e, by_id)

    balances = {m.id: 0.0 for m in members}
    for e in expenses:
        balances[e.payer.id] += e.amount
        share = e.amount / len(e.participants)
        for p in e.participants:
            balances[p.id] -= share
    return balances


def plan_settlements(balances: Dict[str, float], members: Sequence[Member]) -> List[Settlement]:
    """
    Greedy pairing of the largest creditor with the largest debtor until
    every balance is within EPSILON of zero.

    Ties go to whichever member comes first in `balances`, so the same
    input always yields the same plan. Each transfer is rounded up to a
    whole unit, which means the plan can move slightly more money than
    the exact imbalance.
    """
    by_id = _index_members(members)
    for member_id in balances:
        if member_id not in by_id:
            raise ReferentialIntegrityError(f"Balance for unknown member {member_id!r}")
    for member_id, b in balances.items():
        if not math.isfinite(b):
            raise UnbalancedLedgerError(f"Balance for {member_id!r} is not finite: {b!r}")
    # float noise grows with the size of the amounts involved
    total = math.fsum(balances.values())
    scale = max(1.0, math.fsum(abs(b) for b in balances.values()))
    if abs(total) > ZERO_SUM_TOLERANCE * scale:
        raise UnbalancedLedgerError(f"Balances sum to {total!r}, expected 0")

    working = dict(balances)
    open_ids = list(working)
    settlements = []

    while len(open_ids) > 1:
        # max()/min() keep the first of equal keys
        creditor_id = max(open_ids, key=lambda u: working[u])
        debtor_id = min(open_ids, key=lambda u: working[u])

        if abs(working[creditor_id]) < EPSILON and abs(working[debtor_id]) < EPSILON:
            break

        x = min(working[creditor_id], abs(working[debtor_id]))
        if x > 0:
            settlements.append(Settlement(by_id[debtor_id], by_id[creditor_id], math.ceil(x)))

        working[creditor_id] -= x
        working[debtor_id] += x

        if abs(working[creditor_id]) < EPSILON:
            open_ids.remove(creditor_id)
        if debtor_id != creditor_id and abs(working[debtor_id]) < EPSILON:
            open_ids.remove(debtor_id)

    return settlements


def settle(members: Sequence[Member], expenses: Sequence[Expense]) -> List[Settlement]:
    """Balances and settlement plan in one step."""
    return plan_settlements(compute_balances(members, expenses), members)


def describe_balances(balances: Dict[str, float], members: Sequence[Member]) -> str:
    """
    print lines like:
      'Alice is owed 200.00'
      'Bob owes 100.00'
      'Cara is settled'
    """
    names = {m.id: m.name for m in members}
    lines = []
    for member_id, b in balances.items():
        name = names.get(member_id, member_id)
        if b >= EPSILON:
            lines.append(f"{name} is owed {b:,.2f}")
        elif b <= -EPSILON:
            lines.append(f"{name} owes {-b:,.2f}")
        else:
            lines.append(f"{name} is settled")
    return "\n".join(lines)


def describe_settlements(settlements: List[Settlement]) -> str:
    """
    print lines like:
    'Bob pays Alice 100'
    """
    if not settlements:
        return "Everyone is already settled!"
    return "\n".join(f"{s.payer.name} pays {s.receiver.name} {s.amount:,}" for s in settlements)
