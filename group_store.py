"""
Supabase access for groups, members and expenses.

Every function takes the client explicitly; nothing here keeps state
between calls. Reads come back as `Member` / `Expense` values ready for
`settlement.compute_balances`.
"""
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from postgrest.exceptions import APIError

from settlement import Expense, Member, ReferentialIntegrityError, round_up_amount

EXPENSE_COLUMNS = (
    "id, description, amount, created_at, "
    "payer:payer_id(id, name), "
    "participants:expense_participants(member:members(id, name))"
)


class GroupStoreError(Exception):
    pass


class GroupValidationError(GroupStoreError):
    pass


@dataclass(frozen=True)
class GroupSnapshot:
    group_id: str
    name: str
    members: Tuple[Member, ...]
    expenses: Tuple[Expense, ...]


def _execute(query, what: str):
    try:
        return query.execute()
    except APIError as e:
        raise GroupStoreError(f"Could not {what}: {e.message}") from e


def _insert_children(client, parent_table: str, parent_id, child_table: str, rows, what: str):
    """Insert rows that belong to a just-created parent; drop the parent if that fails."""
    try:
        _execute(client.table(child_table).insert(rows), what)
    except GroupStoreError:
        _execute(client.table(parent_table).delete().eq("id", parent_id), f"roll back {parent_table}")
        raise


def create_group(client, name: str, member_names: Sequence[str]) -> str:
    """Insert a group with its members and return the new group id."""
    name = (name or "").strip()
    if not name:
        raise GroupValidationError("Group name is required")
    names = [n.strip() for n in member_names]
    if any(not n for n in names):
        raise GroupValidationError("Member names cannot be blank")
    if len(set(names)) != len(names):
        raise GroupValidationError("Member names must be unique")
    if len(names) < 2:
        raise GroupValidationError("A group needs at least 2 members")

    res = _execute(client.table("groups").insert({"name": name}), "create group")
    group_id = res.data[0]["id"]
    _insert_children(
        client, "groups", group_id,
        "members", [{"group_id": group_id, "name": n} for n in names],
        "add members",
    )
    return group_id


def fetch_group_name(client, group_id: str) -> str:
    res = _execute(
        client.table("groups").select("name").eq("id", group_id).single(),
        "load group",
    )
    return res.data["name"]


def load_members(client, group_id: str) -> List[Member]:
    res = _execute(
        client.table("members").select("id, name").eq("group_id", group_id),
        "load members",
    )
    return [Member(id=str(r["id"]), name=r["name"]) for r in res.data]


def _parse_member(row, expense_id, role: str) -> Member:
    # embedded to-one relations can come back as a one-element list
    if isinstance(row, list):
        if len(row) != 1:
            raise ReferentialIntegrityError(
                f"Expense {expense_id!r}: expected one {role}, got {len(row)}"
            )
        row = row[0]
    if not isinstance(row, dict) or row.get("id") is None:
        raise ReferentialIntegrityError(f"Expense {expense_id!r}: missing {role}")
    return Member(id=str(row["id"]), name=row.get("name", ""))


def parse_expense_row(row: Dict) -> Expense:
    """Turn one nested `expenses` row into an `Expense`."""
    expense_id = str(row["id"])
    payer = _parse_member(row.get("payer"), expense_id, "payer")
    participants = [
        _parse_member(p.get("member") if isinstance(p, dict) else None, expense_id, "participant")
        for p in row.get("participants") or []
    ]
    return Expense(
        id=expense_id,
        payer=payer,
        amount=row["amount"],
        participants=tuple(participants),
        description=row.get("description") or "",
        created_at=row.get("created_at"),
    )


def load_expenses(client, group_id: str) -> List[Expense]:
    """All expenses of the group, newest first."""
    res = _execute(
        client.table("expenses")
        .select(EXPENSE_COLUMNS)
        .eq("group_id", group_id)
        .order("created_at", desc=True),
        "load expenses",
    )
    return [parse_expense_row(r) for r in res.data]


def load_snapshot(client, group_id: str) -> GroupSnapshot:
    return GroupSnapshot(
        group_id=group_id,
        name=fetch_group_name(client, group_id),
        members=tuple(load_members(client, group_id)),
        expenses=tuple(load_expenses(client, group_id)),
    )


def add_expense(client, group_id: str, payer_id: str, description: str, amount,
                participant_ids: Sequence[str]) -> str:
    """
    Record an expense and who it was for. The amount is rounded up to a
    whole unit before it is stored. Returns the new expense id.
    """
    description = (description or "").strip()
    if not description or not payer_id or not participant_ids:
        raise GroupValidationError("Description, payer and participants are required")
    rounded = round_up_amount(amount)

    res = _execute(
        client.table("expenses").insert({
            "group_id": group_id,
            "payer_id": payer_id,
            "description": description,
            "amount": rounded,
        }),
        "add expense",
    )
    expense_id = res.data[0]["id"]
    _insert_children(
        client, "expenses", expense_id,
        "expense_participants", [{"expense_id": expense_id, "member_id": m} for m in participant_ids],
        "add expense participants",
    )
    return expense_id


def share_url(base_url: str, group_id: str) -> str:
    return f"{(base_url or '').rstrip('/')}/?group={group_id}"
