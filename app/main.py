"""
Streamlit Frontend for Pocket Ledger

This is the user interface people use day to day to record what came
in and what went out.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Every figure is recomputed from the full list of transactions
3. Clear error messages in simple language
4. Visual feedback for all operations
5. No hidden actions

Storage is shared by the whole process; each browser session gets its
own SessionContext and services, kept in st.session_state.
"""

import asyncio
from datetime import datetime, time
from decimal import Decimal
from typing import Optional

import streamlit as st

from pocket_ledger.auth import AuthenticationError
from pocket_ledger.config import get_settings, validate_all_settings
from pocket_ledger.ledger import compute_account_balance
from pocket_ledger.models import (
    NOT_SPECIFIED,
    KnownPaymentMethod,
    LoanAccountDraft,
    LoanAccountType,
    Period,
    Transaction,
    TransactionDraft,
    TransactionKind,
    is_known_method,
)
from pocket_ledger.orchestrator import (
    AppComponents,
    create_backends,
    create_session_components,
)
from pocket_ledger.services.storage import ChangeTopic, StorageError
from pocket_ledger.validation import WriteRejectedError, get_user_friendly_summary


# Page configuration
st.set_page_config(
    page_title="Pocket Ledger",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
    }
    .credit { color: #10b981; font-weight: bold; }
    .debit { color: #ef4444; font-weight: bold; }
    .big-number {
        font-size: 2.2em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)

OTHER_METHOD = "Other…"


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_backends():
    """Storage shared across sessions (cached)."""
    try:
        return create_backends(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize storage: {e}")
        return create_backends(use_storage=False)


def get_components() -> AppComponents:
    """This browser session's components."""
    if "components" not in st.session_state:
        st.session_state.components = create_session_components(get_backends())
        st.session_state.pending_changes = {"count": 0}
        components = st.session_state.components
        if run_async(components.session.initialize(st.session_state.get("token"))):
            start_live_refresh(components)
    return st.session_state.components


def money(value: Decimal) -> str:
    symbol = get_settings().app.currency_symbol
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


def today():
    return datetime.now(get_settings().app.tzinfo).date()


def start_live_refresh(components: AppComponents) -> None:
    """Count change events so the page can tell the user something changed elsewhere."""
    counter = st.session_state.pending_changes

    def on_change(event):
        counter["count"] += 1

    for topic in (ChangeTopic.TRANSACTIONS, ChangeTopic.LOAN_ACCOUNTS):
        components.session.subscribe(topic, on_change)


def main():
    """Main application entry point."""
    components = get_components()
    session = components.session

    st.sidebar.title("💰 Pocket Ledger")
    st.sidebar.markdown("---")

    if not session.is_authenticated:
        render_auth_page(components)
        return

    page = st.sidebar.radio(
        "Navigate to:",
        [
            "🏠 Home",
            "📒 Ledger",
            "💸 Transactions",
            "💳 Payment Methods",
            "🏦 Accounts",
            "👤 Profile",
            "⚙️ Settings",
        ],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.caption(f"Signed in as {session.user.email}")
    if components.backends.name == "memory":
        st.sidebar.warning("Demo mode: data is kept in memory only.")

    pending = st.session_state.pending_changes
    if pending["count"]:
        st.toast(f"🔄 {pending['count']} change(s) since your last view")
        pending["count"] = 0

    if page == "🏠 Home":
        render_home_page(components)
    elif page == "📒 Ledger":
        render_ledger_page(components)
    elif page == "💸 Transactions":
        render_transactions_page(components)
    elif page == "💳 Payment Methods":
        render_methods_page(components)
    elif page == "🏦 Accounts":
        render_accounts_page(components)
    elif page == "👤 Profile":
        render_profile_page(components)
    elif page == "⚙️ Settings":
        render_settings_page(components)


def render_auth_page(components: AppComponents):
    """Sign in or create an account."""
    st.title("Welcome to Pocket Ledger")
    st.markdown("Track what comes in and what goes out, one entry at a time.")

    login_tab, signup_tab = st.tabs(["Log in", "Sign up"])

    with login_tab:
        with st.form("login"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Log in", type="primary")
        if submitted:
            try:
                run_async(components.session.log_in(email, password))
                st.session_state.token = components.session.token
                start_live_refresh(components)
                st.rerun()
            except AuthenticationError as e:
                st.error(str(e))

    with signup_tab:
        min_length = get_settings().auth.min_password_length
        with st.form("signup"):
            email = st.text_input("Email", key="signup_email")
            password = st.text_input(
                "Password",
                type="password",
                key="signup_password",
                help=f"At least {min_length} characters",
            )
            submitted = st.form_submit_button("Create account", type="primary")
        if submitted:
            try:
                run_async(components.session.sign_up(email, password))
                st.session_state.token = components.session.token
                start_live_refresh(components)
                st.rerun()
            except AuthenticationError as e:
                st.error(str(e))


def method_options(components: AppComponents) -> list[str]:
    """Known methods first, then anything else the user has used."""
    known = [m.value for m in KnownPaymentMethod]
    used = run_async(components.views.payment_methods())
    extra = [m for m in used if not is_known_method(m)]
    return [NOT_SPECIFIED] + known + extra + [OTHER_METHOD]


def transaction_form(
    components: AppComponents,
    key: str,
    existing: Optional[Transaction] = None,
) -> Optional[TransactionDraft]:
    """Render an add/edit form. Returns a draft when submitted."""
    options = method_options(components)
    current_method = existing.method_label if existing else NOT_SPECIFIED
    if current_method not in options:
        options.insert(-1, current_method)

    with st.form(key, clear_on_submit=existing is None):
        col1, col2 = st.columns(2)
        with col1:
            amount = st.number_input(
                "Amount *",
                min_value=0.0,
                step=1.0,
                format="%.2f",
                value=float(existing.amount) if existing else 0.0,
            )
            kind = st.radio(
                "Type *",
                options=list(TransactionKind),
                index=list(TransactionKind).index(existing.kind) if existing else 1,
                format_func=lambda k: "Credit (money in)" if k == TransactionKind.CREDIT else "Debit (money out)",
                horizontal=True,
            )
            method = st.selectbox("Payment method", options, index=options.index(current_method))
            custom_method = st.text_input(
                "Other method",
                help=f"Used when '{OTHER_METHOD}' is selected",
            )
        with col2:
            occurred_on = st.date_input(
                "Date *",
                value=existing.occurred_on if existing else today(),
            )
            with_time = st.checkbox(
                "Add a time",
                value=bool(existing and existing.occurred_at),
            )
            occurred_at = st.time_input(
                "Time",
                value=(existing.occurred_at if existing and existing.occurred_at else time(9, 0)),
                step=60,
            )
            description = st.text_input(
                "Description",
                value=(existing.description or "") if existing else "",
            )

        submitted = st.form_submit_button(
            "💾 Save changes" if existing else "➕ Add transaction",
            type="primary",
        )

    if not submitted:
        return None

    chosen_method = custom_method if method == OTHER_METHOD else method
    return TransactionDraft(
        amount=Decimal(str(amount)).quantize(Decimal("0.01")),
        kind=kind.value,
        occurred_on=occurred_on,
        occurred_at=occurred_at if with_time else None,
        description=description,
        payment_method=chosen_method,
    )


def save_draft(
    components: AppComponents,
    draft: TransactionDraft,
    existing: Optional[Transaction] = None,
) -> bool:
    """Submit a draft and report the outcome. Returns True if saved."""
    try:
        if existing:
            run_async(components.transactions.edit_transaction(existing.id, draft))
            st.success("✅ Transaction updated")
        else:
            run_async(components.transactions.add_transaction(draft))
            st.success("✅ Transaction added")
        checked = components.transactions.check_draft(draft)
        if checked.warnings:
            st.warning(get_user_friendly_summary(checked))
        return True
    except WriteRejectedError as e:
        st.error(get_user_friendly_summary(e.result))
    except StorageError as e:
        st.error(f"Could not save: {e}")
    return False


def render_transaction_rows(
    components: AppComponents,
    transactions: list[Transaction],
    key_prefix: str,
):
    """List transactions with inline edit and delete."""
    if not transactions:
        st.info("No transactions yet.")
        return

    for txn in transactions:
        css = "credit" if txn.kind == TransactionKind.CREDIT else "debit"
        sign = "+" if txn.kind == TransactionKind.CREDIT else "−"
        when = txn.occurred_on.strftime("%d %b %Y")
        if txn.occurred_at:
            when += f" {txn.occurred_at.strftime('%H:%M')}"
        header = f"{when} · {txn.description or txn.method_label}"

        with st.expander(header):
            st.markdown(
                f"<span class='{css}'>{sign}{money(txn.amount)}</span> · {txn.method_label}",
                unsafe_allow_html=True,
            )
            draft = transaction_form(components, f"{key_prefix}-edit-{txn.id}", existing=txn)
            if draft and save_draft(components, draft, existing=txn):
                st.rerun()
            if st.button("🗑️ Delete", key=f"{key_prefix}-delete-{txn.id}"):
                try:
                    run_async(components.transactions.delete_transaction(txn.id))
                    st.rerun()
                except StorageError as e:
                    st.error(f"Could not delete: {e}")


def pick_period(key: str) -> Period:
    """Month and year selectors defaulting to the current month."""
    current = Period.current(get_settings().app.tzinfo)
    col1, col2 = st.columns(2)
    with col1:
        month = st.selectbox(
            "Month",
            options=list(range(1, 13)),
            index=current.month - 1,
            format_func=lambda m: datetime(2000, m, 1).strftime("%B"),
            key=f"{key}-month",
        )
    with col2:
        years = list(range(current.year - 5, current.year + 2))
        year = st.selectbox("Year", options=years, index=years.index(current.year), key=f"{key}-year")
    return Period(month=month, year=year)


def render_home_page(components: AppComponents):
    """Month at a glance, plus add/edit/delete."""
    st.title("🏠 Home")

    period = pick_period("home")
    totals = run_async(components.views.totals(period=period))

    col1, col2, col3 = st.columns(3)
    col1.metric("Income this month", money(totals.total_credit))
    col2.metric("Expenses this month", money(totals.total_debit))
    col3.metric("Balance (all time)", money(totals.balance))
    st.caption(f"{totals.transaction_count} transaction(s) in {period.label}")

    st.markdown("---")
    st.subheader("Add a transaction")
    draft = transaction_form(components, "home-add")
    if draft and save_draft(components, draft):
        st.rerun()

    st.markdown("---")
    month_txns = run_async(components.views.month_transactions(period))
    monthly, credits, debits = st.tabs(["Monthly", "Credits", "Debits"])
    with monthly:
        render_transaction_rows(components, month_txns, "home-all")
    with credits:
        render_transaction_rows(
            components,
            [t for t in month_txns if t.kind == TransactionKind.CREDIT],
            "home-credit",
        )
    with debits:
        render_transaction_rows(
            components,
            [t for t in month_txns if t.kind == TransactionKind.DEBIT],
            "home-debit",
        )


def render_ledger_page(components: AppComponents):
    """Running balance, newest first."""
    st.title("📒 Ledger")

    col1, col2 = st.columns(2)
    with col1:
        kind = st.selectbox(
            "Type",
            options=["all", TransactionKind.CREDIT.value, TransactionKind.DEBIT.value],
            format_func=lambda k: k.title(),
        )
    with col2:
        methods = ["all"] + run_async(components.views.filter_methods())
        method = st.selectbox(
            "Payment method",
            options=methods,
            format_func=lambda m: "All methods" if m == "all" else m,
        )

    entries, summary = run_async(components.views.ledger(kind=kind, payment_method=method))

    col1, col2, col3 = st.columns(3)
    col1.metric("Credits", money(summary.credits))
    col2.metric("Debits", money(summary.debits))
    col3.metric("Balance", money(summary.balance))

    st.markdown("---")
    if not entries:
        st.info("No transactions match these filters.")
        return

    rows = []
    for entry in entries:
        rows.append({
            "Date": entry.occurred_on.isoformat(),
            "Time": entry.occurred_at.strftime("%H:%M") if entry.occurred_at else "",
            "Description": entry.description or "",
            "Method": entry.method_label,
            "Credit": money(entry.amount) if entry.kind == TransactionKind.CREDIT else "",
            "Debit": money(entry.amount) if entry.kind == TransactionKind.DEBIT else "",
            "Balance": money(entry.running_balance),
        })
    st.dataframe(rows, use_container_width=True, hide_index=True)


def render_pie(title: str, slices):
    st.markdown(f"**{title}**")
    if not slices:
        st.caption("Nothing recorded this month.")
        return
    spec = {
        "data": {"values": [{"name": s.name, "value": float(s.value)} for s in slices]},
        "mark": {"type": "arc", "innerRadius": 40},
        "encoding": {
            "theta": {"field": "value", "type": "quantitative"},
            "color": {
                "field": "name",
                "type": "nominal",
                "scale": {
                    "domain": [s.name for s in slices],
                    "range": [s.color for s in slices],
                },
                "legend": {"title": "Method"},
            },
            "tooltip": [
                {"field": "name", "type": "nominal"},
                {"field": "value", "type": "quantitative", "format": ",.2f"},
            ],
        },
    }
    st.vega_lite_chart(spec=spec, use_container_width=True)


def render_transactions_page(components: AppComponents):
    """Filterable list plus where the money went this month."""
    st.title("💸 Transactions")

    current = components.views.current_period()
    col1, col2 = st.columns(2)
    with col1:
        render_pie(
            f"Income by method · {current.label}",
            run_async(components.views.method_breakdown(TransactionKind.CREDIT, current)),
        )
    with col2:
        render_pie(
            f"Expenses by method · {current.label}",
            run_async(components.views.method_breakdown(TransactionKind.DEBIT, current)),
        )

    st.markdown("---")
    col1, col2 = st.columns(2)
    with col1:
        kind = st.selectbox(
            "Type",
            options=["all", TransactionKind.CREDIT.value, TransactionKind.DEBIT.value],
            format_func=lambda k: k.title(),
            key="txn-kind",
        )
    with col2:
        methods = ["all"] + run_async(components.views.filter_methods())
        method = st.selectbox(
            "Payment method",
            options=methods,
            format_func=lambda m: "All methods" if m == "all" else m,
            key="txn-method",
        )

    entries, _ = run_async(components.views.ledger(kind=kind, payment_method=method))
    render_transaction_rows(components, list(entries), "txn")


def render_methods_page(components: AppComponents):
    """How often each payment method is used."""
    st.title("💳 Payment Methods")

    stats = run_async(components.views.method_stats())
    if not stats:
        st.info("Add a transaction to see payment method statistics.")
    for usage in stats:
        col1, col2, col3 = st.columns([2, 1, 1])
        col1.markdown(f"**{usage.name}**  \nLast used {usage.last_used.strftime('%d %b %Y')}")
        col2.metric("Transactions", usage.count)
        col3.metric("Total", money(usage.total))

    st.markdown("---")
    st.markdown("**Quick picks**")
    st.caption(", ".join(m.value for m in KnownPaymentMethod))


def render_accounts_page(components: AppComponents):
    """Cash, bank and card totals, plus loans and credit cards tracked by hand."""
    st.title("🏦 Accounts")

    sections = run_async(components.views.account_sections())
    col1, col2, col3 = st.columns(3)
    col1.metric("Cash", money(sections.cash))
    col2.metric("Bank account", money(sections.account))
    col3.metric("Credit card", money(sections.credit_card))

    st.markdown("---")
    with st.expander("➕ Add a loan or credit card"):
        with st.form("open-account", clear_on_submit=True):
            account_type = st.selectbox(
                "Type",
                options=list(LoanAccountType),
                format_func=lambda t: t.section_title,
            )
            name = st.text_input("Name *", help="Who the loan is with, or the card's name")
            initial = st.number_input("Initial amount *", min_value=0.0, step=100.0, format="%.2f")
            description = st.text_input("Description")
            submitted = st.form_submit_button("Add", type="primary")
        if submitted:
            draft = LoanAccountDraft(
                account_type=account_type.value,
                counterparty_name=name,
                initial_amount=Decimal(str(initial)).quantize(Decimal("0.01")),
                description=description,
            )
            try:
                run_async(components.loan_accounts.open_account(draft))
                st.rerun()
            except WriteRejectedError as e:
                st.error(get_user_friendly_summary(e.result))

    for section in run_async(components.views.loan_sections()):
        st.subheader(f"{section.account_type.section_title} · {money(section.total)}")
        if not section.accounts:
            st.caption("None yet.")
        for item in section.accounts:
            render_loan_account(components, item.account)


def render_loan_account(components: AppComponents, account):
    with st.expander(f"{account.counterparty_name} · {money(compute_account_balance(account))}"):
        col1, col2, col3 = st.columns(3)
        col1.metric("Initial", money(account.initial_amount))
        col2.metric("Received", money(account.amount_received))
        col3.metric("Paid", money(account.amount_paid))
        if account.description:
            st.caption(account.description)

        delta = st.number_input(
            "Amount",
            min_value=0.0,
            step=100.0,
            format="%.2f",
            key=f"delta-{account.id}",
        )
        col1, col2, col3 = st.columns(3)
        amount = Decimal(str(delta)).quantize(Decimal("0.01"))
        try:
            if col1.button("⬇️ Received", key=f"received-{account.id}"):
                run_async(components.loan_accounts.record_received(account.id, amount))
                st.rerun()
            if col2.button("⬆️ Paid", key=f"paid-{account.id}"):
                run_async(components.loan_accounts.record_paid(account.id, amount))
                st.rerun()
            if col3.button("🗑️ Delete", key=f"delete-{account.id}"):
                run_async(components.loan_accounts.delete_account(account.id))
                st.rerun()
        except WriteRejectedError as e:
            st.error(get_user_friendly_summary(e.result))
        except StorageError as e:
            st.error(f"Could not update: {e}")


def render_profile_page(components: AppComponents):
    """Who is signed in, lifetime totals, logout."""
    st.title("👤 Profile")
    user = components.session.require_user()

    st.markdown(f"**Email:** {user.email}")
    st.markdown(f"**Member since:** {user.created_at.strftime('%d %B %Y')}")

    totals = run_async(components.views.totals())
    col1, col2, col3 = st.columns(3)
    col1.metric("Total income", money(totals.all_time_credit))
    col2.metric("Total expenses", money(totals.all_time_debit))
    col3.metric("Transactions", totals.transaction_count)

    st.markdown("---")
    if st.button("🚪 Log out", type="primary"):
        run_async(components.session.log_out())
        st.session_state.token = None
        st.rerun()

    with st.expander("⚠️ Delete account"):
        st.warning("This removes your account and every transaction and loan you recorded.")
        confirm = st.checkbox("I understand this cannot be undone")
        if st.button("Delete my account", disabled=not confirm):
            run_async(components.session.delete_account())
            st.session_state.token = None
            st.rerun()


def render_settings_page(components: AppComponents):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    sections = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Authentication", "auth"),
        ("Application", "app"),
    ]

    for name, key in sections:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown(f"**Active storage:** {components.backends.name}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your settings. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
