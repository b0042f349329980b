import streamlit as st
import pandas as pd
from io import StringIO
from supabase import create_client

import group_store
from group_store import GroupStoreError
from settlement import (
    EPSILON,
    SettlementError,
    compute_balances,
    plan_settlements,
    describe_balances,
    describe_settlements,
)

# ----------------------- CONFIG -----------------------
st.set_page_config(page_title="Settle up", page_icon="💸", layout="wide")
st.markdown("<style>.block-container{padding-top:2rem;padding-bottom:2rem}</style>", unsafe_allow_html=True)


@st.cache_resource
def get_client():
    return create_client(st.secrets["supabase"]["url"], st.secrets["supabase"]["key"])


supabase = get_client()
base_url = st.secrets.get("app", {}).get("base_url", "")
group_id = st.query_params.get("group")
view = st.query_params.get("view", "")


# ----------------------- CREATE GROUP -----------------------
def create_group_page():
    st.title("💸 Create a group")

    if "new_members" not in st.session_state:
        st.session_state.new_members = []

    with st.form("add_member_form", clear_on_submit=True):
        new_person = st.text_input("Member name", placeholder="Name")
        if st.form_submit_button("➕ Add member") and new_person.strip():
            p = new_person.strip()
            if p in st.session_state.new_members:
                st.warning(f"{p} already exists")
            else:
                st.session_state.new_members.append(p)

    to_remove = None
    for idx, name in enumerate(st.session_state.new_members):
        c1, c2 = st.columns([9, 1])
        c1.write(name)
        if c2.button("❌", key=f"rm_{idx}", help=f"Remove {name}"):
            to_remove = idx
    if to_remove is not None:
        del st.session_state.new_members[to_remove]
        st.rerun()

    group_name = st.text_input("Group name")
    if st.button("Create group"):
        try:
            new_id = group_store.create_group(supabase, group_name, st.session_state.new_members)
        except GroupStoreError as e:
            st.error(str(e))
        else:
            st.session_state.new_members = []
            st.query_params.update({"group": new_id, "view": "share"})
            st.rerun()


# ----------------------- SHARE -----------------------
def share_page(gid):
    try:
        name = group_store.fetch_group_name(supabase, gid)
    except GroupStoreError as e:
        st.error(str(e))
        st.stop()

    st.title(f"🔗 {name}")
    st.write("Share this link with the group:")
    st.code(group_store.share_url(base_url, gid), language="text")
    if st.button("Go to group ➡️"):
        st.query_params.update({"group": gid, "view": ""})
        st.rerun()


# ----------------------- GROUP -----------------------
def expense_form(gid, members):
    st.sidebar.header("🧾 Add an expense")
    names = {m.id: m.name for m in members}
    ids = list(names)
    with st.sidebar.form("add_expense", clear_on_submit=True):
        desc = st.text_input("Description", placeholder="Dinner, Hotel, etc.")
        amount = st.number_input("Amount", min_value=0.0, step=1.0)
        payer = st.selectbox("Who paid?", ids, format_func=names.get)
        selected = st.multiselect("Who was involved?", ids, default=ids, format_func=names.get)
        add = st.form_submit_button("➕ Add expense")

    if add:
        try:
            group_store.add_expense(supabase, gid, payer, desc, amount, selected)
        except (GroupStoreError, SettlementError) as e:
            st.sidebar.warning(str(e))
        else:
            st.sidebar.success(f"Added {desc} paid by {names[payer]}")
            st.rerun()


def group_page(gid):
    try:
        snapshot = group_store.load_snapshot(supabase, gid)
    except (GroupStoreError, SettlementError) as e:
        st.error(str(e))
        st.stop()

    members = snapshot.members
    expenses = snapshot.expenses
    st.title(f"💸 {snapshot.name}")
    st.caption("👥 " + ", ".join(m.name for m in members))
    expense_form(gid, members)

    try:
        balances = compute_balances(members, expenses)
        settlements = plan_settlements(balances, members)
    except SettlementError as e:
        st.error(str(e))
        st.stop()

    total_spent = sum(e.amount for e in expenses)
    paid = {m.id: 0 for m in members}
    for e in expenses:
        paid[e.payer.id] += e.amount

    people_rows = []
    for m in members:
        bal = balances[m.id]
        status = "is owed" if bal >= EPSILON else ("owes" if bal <= -EPSILON else "settled")
        people_rows.append({"Name": m.name, "Paid": paid[m.id], "Balance": bal, "Status": status})
    people_df = pd.DataFrame(people_rows, columns=["Name", "Paid", "Balance", "Status"])

    transfers_df = pd.DataFrame(
        [{"Payer": s.payer.name, "Receiver": s.receiver.name, "Amount": s.amount} for s in settlements],
        columns=["Payer", "Receiver", "Amount"],
    )

    expense_rows = [
        {
            "Date": (e.created_at or "")[:10],
            "Description": e.description,
            "Amount": e.amount,
            "Paid by": e.payer.name,
            "For": ", ".join(p.name for p in e.participants),
        }
        for e in expenses
    ]

    text = StringIO()
    text.write("Balances:\n")
    text.write(describe_balances(balances, members))
    text.write("\n\nWho pays whom:\n")
    text.write(describe_settlements(settlements))
    text_report = text.getvalue()

    left, right = st.columns([1, 2], gap="small")

    with left:
        st.subheader("📊 Summary")
        st.metric("Members", len(members))
        st.metric("Expenses", len(expenses))
        st.metric("Total spent", f"{total_spent:,}")
        st.metric("Transfers", len(settlements))
        st.download_button(
            "⬇️ Download settlement instructions (.txt)",
            data=text_report,
            file_name="settlement_instructions.txt",
            mime="text/plain",
        )

    with right:
        st.subheader("🧾 Details")
        tabs = st.tabs(["Transfers", "Balances", "Expenses", "Text output"])
        with tabs[0]:
            if transfers_df.empty:
                st.info("No transfers needed.")
            else:
                st.dataframe(transfers_df.style.format({"Amount": "{:,}"}), width='stretch', hide_index=True)
        with tabs[1]:
            st.caption("Positive balance → owed money; negative → owes money.")
            st.dataframe(
                people_df.style.format({"Paid": "{:,.0f}", "Balance": "{:,.2f}"}),
                width='stretch',
                hide_index=True,
            )
        with tabs[2]:
            if expense_rows:
                st.dataframe(pd.DataFrame(expense_rows), width='stretch', hide_index=True)
            else:
                st.info("No expenses yet. Add one on the left.")
        with tabs[3]:
            st.code(text_report, language="text")


# ----------------------- ROUTING -----------------------
if not group_id:
    create_group_page()
elif view == "share":
    share_page(group_id)
else:
    group_page(group_id)
