"""
Streamlit Frontend for the Family Expense Tracker

This is the interface family members use day to day.

DESIGN PRINCIPLES:
1. Nothing is shown before access is confirmed
2. Clear error messages in simple language
3. Explicit confirmation before deletes and restores
4. Visual feedback for all operations

Page flow:
- Signed out → sign in / sign up
- Pending, rejected or expired → status screen
- Approved or admin → the ledger (admin also gets the Admin page)
"""

import asyncio
import time
from datetime import date, datetime

import streamlit as st

from family_tracker.admin import GrantDuration, admin_error_message
from family_tracker.backup import ImportFormatError, parse_backup
from family_tracker.config import get_settings
from family_tracker.models import (
    HOME_BALANCE,
    ICONS,
    AccessState,
    TransactionType,
    UserStatus,
)
from family_tracker.orchestrator import AppComponents, create_app_components, create_backend
from family_tracker.queries import (
    HOME_MEMBER_FILTER,
    DateRange,
    SortOrder,
    TransactionFilter,
    apply_filter,
    build_dashboard,
    categories_for_type,
)
from family_tracker.services.auth import AuthError
from family_tracker.services.storage import PermissionDeniedError, StorageError
from family_tracker.validation import ValidationError


# Page configuration
st.set_page_config(
    page_title="Family Expense Tracker",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

DARK_THEME_CSS = """
<style>
    .stApp { background-color: #0f172a; color: #e2e8f0; }
    .stApp h1, .stApp h2, .stApp h3, .stApp p, .stApp label { color: #e2e8f0; }
</style>
"""

STATUS_SCREENS = {
    AccessState.PENDING: (
        "Approval Pending",
        "Your account has been created successfully.\n\n"
        "An administrator will review your request shortly. Please check back later.",
    ),
    AccessState.REJECTED: (
        "Access Denied",
        "Your request for access has been rejected by the administrator.\n\n"
        "If you believe this is an error, please contact support.",
    ),
    AccessState.EXPIRED: (
        "Access Expired",
        "Your access to the application has expired.\n\n"
        "Please contact the administrator to renew your access.",
    ),
}

# Seconds between reruns while the access state is still loading
LOADING_POLL_SECONDS = 0.5

PERMISSION_MESSAGE = (
    "The database refused this request. Ask the administrator to check the "
    "Firestore security rules for your account."
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_backend():
    """Document store and identity provider shared by all sessions (cached)."""
    return create_backend()


def get_components() -> AppComponents:
    """Per-session components; identity state must never be shared."""
    if "components" not in st.session_state:
        store, provider = get_backend()
        st.session_state["components"] = create_app_components(store, provider)
    return st.session_state["components"]


def money(amount, currency: str) -> str:
    return f"{currency}{float(amount):,.2f}"


def show_store_error(e: Exception):
    if isinstance(e, PermissionDeniedError):
        st.error(f"❌ {PERMISSION_MESSAGE}")
    else:
        st.error(f"❌ Could not reach the database: {e}")


def show_validation_error(e: ValidationError):
    for issue in e.issues:
        st.error(f"❌ {issue.message}")


def main():
    """Main application entry point."""
    components = get_components()
    preferences = components.preferences.load()
    if preferences.theme == "dark":
        st.markdown(DARK_THEME_CSS, unsafe_allow_html=True)

    watcher = components.watcher
    if watcher.awaiting_profile:
        run_async(watcher.load_profile())
    state = watcher.state
    components.sync_owner()

    if state == AccessState.LOADING:
        st.title("Loading Application...")
        # Snapshots arrive on a background thread and never trigger a rerun
        time.sleep(LOADING_POLL_SECONDS)
        st.rerun()

    if state == AccessState.NO_AUTH:
        render_auth_page(components)
        return

    if state in STATUS_SCREENS:
        render_status_screen(components, state)
        return

    render_ledger(components, state)


def render_auth_page(components: AppComponents):
    """Sign-in and sign-up forms."""
    st.title("💰 Family Expense Tracker")
    sign_in_tab, sign_up_tab = st.tabs(["Sign In", "Sign Up"])

    with sign_in_tab:
        with st.form("sign_in"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign In", type="primary")
        if submitted:
            try:
                run_async(components.session.sign_in(email, password))
                st.rerun()
            except AuthError as e:
                st.error(f"❌ {e}")

    with sign_up_tab:
        with st.form("sign_up"):
            username = st.text_input("Name (optional)")
            email = st.text_input("Email", key="sign_up_email")
            password = st.text_input("Password", type="password", key="sign_up_password")
            submitted = st.form_submit_button("Create Account", type="primary")
        if submitted:
            try:
                run_async(components.session.sign_up(email, password, username=username))
                st.rerun()
            except AuthError as e:
                # ProfileCreationError lands here too; the session is already signed out
                st.error(f"❌ {e}")


def render_status_screen(components: AppComponents, state: AccessState):
    title, body = STATUS_SCREENS[state]
    st.title(title)
    st.info(body)
    check_col, sign_out_col = st.columns(2)
    if check_col.button("🔄 Check Again"):
        st.rerun()
    if sign_out_col.button("Sign Out"):
        run_async(components.session.sign_out())
        st.rerun()


def render_ledger(components: AppComponents, state: AccessState):
    ledger = components.ledger
    sync = components.synchronizers
    currency = get_currency()

    if sync.errors:
        show_store_error(sync.errors[0])

    # First run: seed defaults unless local data is waiting to be migrated
    kv = components.preferences.kv
    if not sync.loading and not sync.categories.items:
        if ledger.has_legacy_data(kv):
            render_migration_prompt(components)
        else:
            try:
                run_async(ledger.seed_default_categories(kv))
            except StorageError as e:
                show_store_error(e)

    # Sidebar navigation
    identity = components.session.identity
    st.sidebar.title("💰 Family Expense Tracker")
    st.sidebar.caption(identity.email if identity else "")
    st.sidebar.markdown("---")

    pages = [
        "📊 Dashboard",
        "📋 Transactions",
        "🏷️ Categories",
        "👪 Members",
        "💾 Backup",
        "🤖 Assistant",
        "⚙️ Settings",
    ]
    if state == AccessState.ADMIN:
        pages.insert(0, "🛡️ Admin")

    page = st.sidebar.radio("Navigate to:", pages, index=0)

    st.sidebar.markdown("---")
    theme_label = "🌙 Dark mode" if components.preferences.load().theme == "light" else "☀️ Light mode"
    if st.sidebar.button(theme_label):
        components.preferences.toggle_theme()
        st.rerun()
    if st.sidebar.button("Sign Out"):
        run_async(components.session.sign_out())
        components.sync_owner()
        st.rerun()

    if sync.loading:
        st.info("Loading your data...")

    # Route to appropriate page
    if page == "🛡️ Admin":
        render_admin_page(components)
    elif page == "📊 Dashboard":
        render_dashboard_page(components, currency)
    elif page == "📋 Transactions":
        render_transactions_page(components, currency)
    elif page == "🏷️ Categories":
        render_categories_page(components)
    elif page == "👪 Members":
        render_members_page(components)
    elif page == "💾 Backup":
        render_backup_page(components)
    elif page == "🤖 Assistant":
        render_assistant_page(components)
    elif page == "⚙️ Settings":
        render_settings_page()


def get_currency() -> str:
    return get_settings().app.currency_symbol


def render_migration_prompt(components: AppComponents):
    st.warning(
        "We found data saved on this device by an older version of the app. "
        "Import it into your account?"
    )
    if st.button("Import local data", type="primary"):
        try:
            counts = run_async(components.ledger.migrate_legacy_data(components.preferences.kv))
            st.success(
                f"✅ Data migrated successfully! "
                f"{counts['transactions']} transactions, {counts['categories']} categories."
            )
        except ValidationError as e:
            show_validation_error(e)
        except StorageError as e:
            st.error("❌ An error occurred during migration.")
            show_store_error(e)


def render_dashboard_page(components: AppComponents, currency: str):
    """Totals, category breakdown, member contributions and trend."""
    st.title("📊 Dashboard")

    date_range = st.radio(
        "Period",
        options=list(DateRange),
        format_func=lambda r: {"month": "This Month", "year": "This Year", "all": "All Time"}[r.value],
        horizontal=True,
    )
    dashboard = build_dashboard(components.ledger.snapshot(), date_range, datetime.now())
    summary = dashboard.summary

    col1, col2, col3 = st.columns(3)
    col1.metric("Total Income", money(summary.total_income, currency))
    col2.metric("Total Expense", money(summary.total_expense, currency))
    col3.metric("Balance", money(summary.balance, currency))

    st.markdown("---")
    left, right = st.columns(2)

    with left:
        st.markdown("### Expenses by Category")
        if dashboard.category_totals:
            st.bar_chart(
                {
                    "Category": [c.name for c in dashboard.category_totals],
                    "Total": [float(c.total) for c in dashboard.category_totals],
                },
                x="Category",
                y="Total",
            )
        else:
            st.caption("No expenses in this period.")

    with right:
        st.markdown("### Member Contributions")
        if dashboard.member_contributions:
            for contribution in dashboard.member_contributions:
                st.markdown(f"**{contribution.name}**: {money(contribution.net, currency)}")
        else:
            st.caption("Add family members to see their contributions.")

    st.markdown("### Trend")
    if dashboard.trend:
        st.bar_chart(
            {
                "Period": [b.label for b in dashboard.trend],
                "Income": [float(b.income) for b in dashboard.trend],
                "Expense": [float(b.expense) for b in dashboard.trend],
            },
            x="Period",
            y=["Income", "Expense"],
        )
    else:
        st.caption("No transactions in this period.")


def render_transaction_form(components: AppComponents, existing=None):
    """Add or edit form. Income entries only offer income categories."""
    sync = components.synchronizers
    key = existing.id if existing else "new"

    transaction_type = st.radio(
        "Type",
        options=list(TransactionType),
        index=list(TransactionType).index(existing.type) if existing else 1,
        format_func=lambda t: t.value.title(),
        horizontal=True,
        key=f"type_{key}",
    )
    categories = categories_for_type(sync.categories.items, transaction_type)
    members = sync.members.items

    with st.form(f"transaction_{key}"):
        amount = st.number_input(
            "Amount",
            min_value=0.0,
            step=1.0,
            format="%.2f",
            value=float(existing.amount) if existing else 0.0,
        )
        category_ids = [c.id for c in categories]
        category_id = st.selectbox(
            "Category",
            options=category_ids,
            index=category_ids.index(existing.category_id)
            if existing and existing.category_id in category_ids else 0,
            format_func=lambda cid: next(c.name for c in categories if c.id == cid),
        ) if categories else None
        member_options = [None] + [m.id for m in members]
        member_id = st.selectbox(
            "Member",
            options=member_options,
            index=member_options.index(existing.member_id)
            if existing and existing.member_id in member_options else 0,
            format_func=lambda mid: HOME_BALANCE if mid is None else next(
                m.name for m in members if m.id == mid
            ),
        )
        when = st.date_input("Date", value=existing.date if existing else date.today())
        description = st.text_input("Description", value=existing.description if existing else "")
        submitted = st.form_submit_button("💾 Save", type="primary")

    if submitted:
        form = dict(
            type=transaction_type,
            amount=amount,
            category_id=category_id,
            date=when,
            description=description,
            member_id=member_id,
        )
        try:
            if existing:
                run_async(components.ledger.update_transaction(existing.id, **form))
            else:
                run_async(components.ledger.add_transaction(**form))
            st.success("✅ Transaction saved")
        except ValidationError as e:
            show_validation_error(e)
        except StorageError as e:
            show_store_error(e)


def render_transactions_page(components: AppComponents, currency: str):
    """Searchable, filterable transaction list."""
    st.title("📋 Transactions")
    snapshot = components.ledger.snapshot()
    category_names = snapshot.category_names()
    member_names = snapshot.member_names()

    with st.expander("➕ Add Transaction"):
        render_transaction_form(components)

    col1, col2, col3, col4, col5 = st.columns(5)
    search = col1.text_input("Search", placeholder="Description...")
    category_id = col2.selectbox(
        "Category",
        options=[None] + list(category_names),
        format_func=lambda cid: "All Categories" if cid is None else category_names[cid],
    )
    transaction_type = col3.selectbox(
        "Type",
        options=[None] + list(TransactionType),
        format_func=lambda t: "All Types" if t is None else t.value.title(),
    )
    member_id = col4.selectbox(
        "Member",
        options=[None, HOME_MEMBER_FILTER] + list(member_names),
        format_func=lambda mid: "All Members" if mid is None else (
            HOME_BALANCE if mid == HOME_MEMBER_FILTER else member_names[mid]
        ),
    )
    sort = col5.selectbox(
        "Sort",
        options=list(SortOrder),
        format_func=lambda s: {
            "date-desc": "Newest first",
            "date-asc": "Oldest first",
            "amount-desc": "Largest first",
            "amount-asc": "Smallest first",
        }[s.value],
    )

    criteria = TransactionFilter(
        search=search,
        category_id=category_id,
        type=transaction_type,
        member_id=member_id,
        sort=sort,
    )
    transactions = apply_filter(snapshot.transactions, criteria)

    st.markdown("---")
    if not transactions:
        st.info("📋 No transactions found.")
        return

    for t in transactions:
        sign = "+" if t.type == TransactionType.INCOME else "-"
        with st.expander(
            f"{t.date.isoformat()} · {t.description or '(no description)'} · "
            f"{sign}{money(t.amount, currency)}"
        ):
            st.markdown(
                f"**Category:** {category_names.get(t.category_id, 'Uncategorized')}  \n"
                f"**Member:** {member_names.get(t.member_id, HOME_BALANCE) if t.member_id else HOME_BALANCE}"
            )
            render_transaction_form(components, existing=t)
            if st.button("🗑️ Delete", key=f"delete_{t.id}"):
                try:
                    run_async(components.ledger.delete_transaction(t.id))
                    st.rerun()
                except StorageError as e:
                    show_store_error(e)


def render_categories_page(components: AppComponents):
    st.title("🏷️ Categories")
    ledger = components.ledger

    with st.form("new_category"):
        col1, col2, col3, col4 = st.columns(4)
        name = col1.text_input("Name")
        category_type = col2.selectbox(
            "Type", options=list(TransactionType), index=1, format_func=lambda t: t.value.title()
        )
        icon = col3.selectbox("Icon", options=list(ICONS), index=len(ICONS) - 1)
        color = col4.color_picker("Color", value="#64748b")
        submitted = st.form_submit_button("➕ Add Category", type="primary")
    if submitted:
        try:
            run_async(ledger.add_category(name=name, type=category_type, color=color, icon=icon))
            st.success("✅ Category added")
        except ValidationError as e:
            show_validation_error(e)
        except StorageError as e:
            show_store_error(e)

    for category in components.synchronizers.categories.items:
        col1, col2, col3 = st.columns([4, 2, 1])
        col1.markdown(f"**{category.name}** · {category.icon.title()}")
        col2.caption(category.type.value.title())
        if col3.button("🗑️", key=f"delete_category_{category.id}"):
            try:
                run_async(ledger.delete_category(category.id))
                st.rerun()
            except ValidationError as e:
                show_validation_error(e)
            except StorageError as e:
                show_store_error(e)


def render_members_page(components: AppComponents):
    st.title("👪 Family Members")
    ledger = components.ledger
    st.caption(f"Transactions without a member count towards {HOME_BALANCE}.")

    with st.form("new_member"):
        name = st.text_input("Name")
        submitted = st.form_submit_button("➕ Add Member", type="primary")
    if submitted:
        try:
            run_async(ledger.add_member(name))
            st.success("✅ Member added")
        except ValidationError as e:
            show_validation_error(e)
        except StorageError as e:
            show_store_error(e)

    for member in components.synchronizers.members.items:
        col1, col2 = st.columns([5, 1])
        with col1.form(f"member_{member.id}"):
            new_name = st.text_input("Name", value=member.name)
            saved = st.form_submit_button("💾 Save")
        if saved and new_name != member.name:
            try:
                run_async(ledger.update_member(member.id, new_name))
                st.success("✅ Member renamed")
            except ValidationError as e:
                show_validation_error(e)
            except StorageError as e:
                show_store_error(e)
        if col2.button("🗑️", key=f"delete_member_{member.id}"):
            try:
                run_async(ledger.delete_member(member.id))
                st.rerun()
            except ValidationError as e:
                show_validation_error(e)
            except StorageError as e:
                show_store_error(e)


def render_backup_page(components: AppComponents):
    st.title("💾 Backup & Restore")
    ledger = components.ledger

    st.markdown("### Export")
    col1, col2 = st.columns(2)
    json_export = ledger.build_export("json")
    col1.download_button(
        "⬇️ Download JSON backup",
        data=json_export.content,
        file_name=json_export.filename,
        mime=json_export.mime_type,
        on_click=ledger.record_export,
        args=("json",),
    )
    csv_export = ledger.build_export("csv")
    col2.download_button(
        "⬇️ Download CSV",
        data=csv_export.content,
        file_name=csv_export.filename,
        mime=csv_export.mime_type,
        on_click=ledger.record_export,
        args=("csv",),
    )

    st.markdown("---")
    st.markdown("### Restore")
    st.caption("Restoring adds the backup's records to your account. Nothing is deleted.")
    uploaded = st.file_uploader("JSON backup", type=["json"])
    if uploaded is None:
        return

    try:
        bundle = parse_backup(uploaded.getvalue().decode("utf-8"))
    except (ImportFormatError, UnicodeDecodeError) as e:
        st.error(f"❌ {e}")
        return

    st.info(
        f"Backup contains {len(bundle.transactions)} transactions, "
        f"{len(bundle.categories)} categories and {len(bundle.members)} members."
    )
    if st.button("✅ Restore", type="primary"):
        with st.spinner("Restoring..."):
            try:
                report = run_async(ledger.restore(bundle))
                st.success(f"✅ Data restored successfully! {report.total} records added.")
            except StorageError as e:
                show_store_error(e)


def render_assistant_page(components: AppComponents):
    st.title("🤖 Financial Assistant")
    st.markdown("Ask anything about your family's income and spending.")

    with st.expander("📝 Example Questions"):
        st.markdown("""
        - "What did we spend most on this month?"
        - "How much has each family member contributed?"
        - "Compare our grocery spending over the last three months"
        """)

    question = st.text_input("Your question:")
    if st.button("🔍 Ask", type="primary") and question:
        try:
            assistant = components.assistant()
        except Exception as e:
            st.error(f"❌ The assistant is not configured: {e}")
            return
        with st.spinner("Thinking..."):
            reply = run_async(assistant.ask(question, components.ledger.snapshot()))
        if reply is None:
            return
        if reply.is_error:
            st.error(reply.text)
        else:
            st.markdown(reply.text)


def render_admin_page(components: AppComponents):
    """Approve, reject and revoke user access."""
    st.title("🛡️ Admin Panel")
    admin = components.admin_service()
    try:
        run_async(admin.load_profiles())
    except StorageError as e:
        st.error(f"❌ {admin_error_message(e)}")
        return

    groups = admin.grouped()
    own_uid = components.session.identity.uid
    for status, title in (
        (UserStatus.PENDING, "Pending Approval"),
        (UserStatus.APPROVED, "Approved Users"),
        (UserStatus.REJECTED, "Rejected Users"),
    ):
        st.markdown(f"### {title} ({len(groups[status])})")
        for profile in groups[status]:
            if profile.id == own_uid:
                continue
            render_profile_row(admin, profile)


def render_profile_row(admin, profile):
    col1, col2 = st.columns([3, 4])
    with col1:
        st.markdown(f"**{profile.username or profile.email or profile.id}**")
        if profile.status == UserStatus.APPROVED:
            st.caption(
                f"Expires: {profile.access_expires_at.astimezone().date().isoformat()}"
                if profile.access_expires_at else "Lifetime Access"
            )

    with col2:
        try:
            if profile.status == UserStatus.APPROVED:
                if st.button("Revoke", key=f"revoke_{profile.id}"):
                    run_async(admin.revoke(profile.id))
                    st.rerun()
                return

            b1, b2, b3, b4 = st.columns(4)
            if b1.button("30d", key=f"30d_{profile.id}"):
                run_async(admin.approve(profile.id, GrantDuration.THIRTY_DAYS))
                st.rerun()
            if b2.button("1y", key=f"1y_{profile.id}"):
                run_async(admin.approve(profile.id, GrantDuration.ONE_YEAR))
                st.rerun()
            if b3.button("Lifetime", key=f"life_{profile.id}"):
                run_async(admin.approve(profile.id, GrantDuration.LIFETIME))
                st.rerun()
            if profile.status == UserStatus.PENDING and b4.button("Reject", key=f"reject_{profile.id}"):
                run_async(admin.reject(profile.id))
                st.rerun()

            day = st.date_input("Until", value=None, key=f"until_{profile.id}")
            if st.button("Approve until date", key=f"custom_{profile.id}"):
                run_async(admin.approve_until(profile.id, day))
                st.rerun()
        except ValueError as e:
            st.error(f"❌ {e}")
        except StorageError as e:
            st.error(f"❌ {admin_error_message(e)}")


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    # Check services
    from family_tracker.config import validate_all_settings

    status = validate_all_settings()

    services = [
        ("Firebase (Auth & Firestore)", "firebase"),
        ("Administrator", "access"),
        ("Gemini (Assistant)", "gemini"),
        ("Application", "app"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your Firebase "
        "and Gemini keys. See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
