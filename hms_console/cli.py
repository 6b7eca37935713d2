"""
Interactive console for the hospital operations system.
Sign in, browse the role menu and open guarded screens from the terminal.
"""

import asyncio
import getpass

from hms_console.backend import SqlBackend, init_engine
from hms_console.config import DASHBOARD_ROUTE, LOGIN_ROUTE
from hms_console.dashboard import DashboardAggregator, DashboardView
from hms_console.errors import AuthError, ProfileError
from hms_console.guard import ProtectedRoute
from hms_console.models import DashboardSnapshot, GuardDecision, Role
from hms_console.rbac import capabilities_for
from hms_console.session_store import SessionStore

COUNTER_TITLES = {
    "total_patients": "Total Patients",
    "total_appointments": "Pending Appointments",
    "pending_tests": "Pending Lab Tests",
    "unpaid_bills": "Unpaid Bills",
    "low_stock": "Low Stock Items",
    "pending_prescriptions": "Pending Prescriptions",
}


async def ask(text: str, secret: bool = False) -> str:
    reader = getpass.getpass if secret else input
    return (await asyncio.to_thread(reader, text)).strip()


def print_notice(level: str, message: str) -> None:
    print(f"[{level}] {message}")


def render_snapshot(snapshot: DashboardSnapshot) -> None:
    role = snapshot.role.value if snapshot.role else "no role"
    print(f"\n=== Dashboard ({role}) ===")
    if not snapshot.counters:
        print("  (no statistics for this role)")
    for key, value in snapshot.counters.items():
        print(f"  {COUNTER_TITLES.get(key, key):<24} {value}")
    if snapshot.counters:
        print(f"  {'Unread Notifications':<24} {len(snapshot.recent_notifications)}")
    if snapshot.degraded:
        print(f"  (unavailable: {', '.join(snapshot.degraded)})")

    print("\n[Recent notifications]")
    if not snapshot.recent_notifications:
        print("  No new notifications")
    for n in snapshot.recent_notifications:
        when = n.created_at.strftime("%Y-%m-%d %H:%M") if n.created_at else ""
        print(f"  - {n.title} ({when})\n    {n.message}")


async def login_flow(store: SessionStore) -> bool:
    """Prompt until signed in. Returns False when the user quits."""
    while True:
        try:
            choice = (await ask("\n[login] 'login', 'signup' or 'quit': ")).lower()
        except (EOFError, KeyboardInterrupt):
            return False

        if choice in {"quit", "exit"}:
            return False

        if choice == "signup":
            try:
                email = await ask("Email: ")
                password = await ask("Password: ", secret=True)
                first = await ask("First name: ")
                last = await ask("Last name: ")
                role = await ask(f"Role ({', '.join(r.value for r in Role)}): ")
                await store.sign_up(email, password, role, first, last)
            except (ValueError, AuthError, ProfileError) as e:
                print("\n[ERROR] Signup failed.")
                print("Details:", e)
                continue
            print("\n[auth] Account created successfully! Please log in.")
            continue

        if choice == "login":
            email = await ask("Email: ")
            password = await ask("Password: ", secret=True)
            try:
                current = await store.sign_in(email, password)
            except AuthError as e:
                print("\n[ERROR] Login failed.")
                print("Details:", e)
                continue
            role = current.role.value if current.role else "none"
            print(f"\n[auth] Logged in as: {current.session.email} (role={role})")
            return True


async def open_route(store: SessionStore, view: DashboardView, route_id: str) -> bool:
    """Navigate through the guard. Returns False when redirected to login."""
    guard = ProtectedRoute(store, route_id)
    try:
        result = await guard.resolve()
    finally:
        guard.close()

    if result is None or result.decision is GuardDecision.DENY:
        print(f"\n[guard] Access to {route_id} denied – redirecting to {LOGIN_ROUTE}")
        return False

    if route_id == DASHBOARD_ROUTE:
        render_snapshot(await view.activate())
    else:
        print(f"\n[view] {route_id} is served by the records service.")
    return True


def print_menu(store: SessionStore) -> list:
    items = capabilities_for(store.current_role).navigation_items
    print("\n[menu]")
    for i, item in enumerate(items, 1):
        print(f"  {i}. {item.label:<18} {item.route_id}")
    print("  r. refresh   o. logout   q. quit")
    return list(items)


async def run_console(backend: SqlBackend) -> None:
    client = backend.client()
    store = SessionStore(client, on_notice=print_notice)
    view = DashboardView(store, DashboardAggregator(client))
    await store.initialize()

    try:
        while True:
            if store.current_session is None:
                if not await login_flow(store):
                    print("Goodbye.")
                    return
                await open_route(store, view, DASHBOARD_ROUTE)

            items = print_menu(store)
            try:
                choice = await ask("\nSelect an item (number or path): ")
            except (EOFError, KeyboardInterrupt):
                print("\nExiting.")
                return

            if not choice:
                continue
            if choice.lower() in {"q", "quit", "exit"}:
                print("Goodbye.")
                return
            if choice.lower() in {"o", "logout"}:
                await store.sign_out()
                print("[auth] Signed out.")
                continue
            if choice.lower() in {"r", "refresh"}:
                await store.revalidate()
                route_id = DASHBOARD_ROUTE
            elif choice.isdigit() and 1 <= int(choice) <= len(items):
                route_id = items[int(choice) - 1].route_id
            else:
                route_id = choice

            if not await open_route(store, view, route_id):
                if not await login_flow(store):
                    continue
    finally:
        view.close()
        store.close()


def main():
    print("=== Hospital Operations Console ===\n")
    backend = SqlBackend(init_engine())
    backend.create_schema()
    try:
        asyncio.run(run_console(backend))
    except KeyboardInterrupt:
        print("\nExiting.")


if __name__ == "__main__":
    main()
