"""
Role-Based Access Control – navigation capabilities, dashboard query
plans and the single route authorization predicate.
"""

from typing import Dict, Iterable, Optional, Tuple

from hms_console.config import (
    DASHBOARD_ROUTE,
    NOTIFICATIONS_TABLE,
    PENDING_STATUS,
)
from hms_console.models import (
    CURRENT_USER,
    Capabilities,
    NavigationItem,
    QuerySpec,
    Role,
)

ADMIN, DOCTOR, NURSE = Role.ADMIN, Role.DOCTOR, Role.NURSE
PHARMACIST, LAB_TECHNICIAN, PATIENT = Role.PHARMACIST, Role.LAB_TECHNICIAN, Role.PATIENT

BASE_ITEM = NavigationItem("Dashboard", DASHBOARD_ROUTE)

# ── Route registry (allowed roles per protected route) ──────────────
# An empty tuple means any authenticated user.
ROUTES: Dict[str, Tuple[Role, ...]] = {
    DASHBOARD_ROUTE: (ADMIN, DOCTOR, NURSE, PHARMACIST, LAB_TECHNICIAN),
    "/patients": (ADMIN, DOCTOR, NURSE),
    "/doctors": (ADMIN,),
    "/appointments": (ADMIN, DOCTOR, NURSE, PATIENT),
    "/records": (ADMIN, DOCTOR, NURSE, PATIENT),
    "/billing": (ADMIN, PATIENT),
    "/inventory": (ADMIN, PHARMACIST),
    "/pharmacy": (ADMIN, PHARMACIST),
    "/laboratory": (ADMIN, LAB_TECHNICIAN),
    "/prescriptions": (ADMIN, DOCTOR, PHARMACIST, PATIENT),
    "/test-results": (ADMIN, LAB_TECHNICIAN),
    "/settings": (ADMIN,),
    "/users": (ADMIN,),
}

# ── Navigation (beyond the base dashboard item) ──────────────────────
_NAVIGATION: Dict[Role, Tuple[NavigationItem, ...]] = {
    ADMIN: (
        NavigationItem("Patients", "/patients"),
        NavigationItem("Doctors", "/doctors"),
        NavigationItem("Appointments", "/appointments"),
        NavigationItem("Medical Records", "/records"),
        NavigationItem("Billing", "/billing"),
        NavigationItem("Inventory", "/inventory"),
        NavigationItem("Pharmacy", "/pharmacy"),
        NavigationItem("Laboratory", "/laboratory"),
        NavigationItem("Prescriptions", "/prescriptions"),
        NavigationItem("Test Results", "/test-results"),
        NavigationItem("Settings", "/settings"),
        NavigationItem("User Management", "/users"),
    ),
    DOCTOR: (
        NavigationItem("My Patients", "/patients"),
        NavigationItem("Appointments", "/appointments"),
        NavigationItem("Medical Records", "/records"),
        NavigationItem("Prescriptions", "/prescriptions"),
    ),
    NURSE: (
        NavigationItem("Patients", "/patients"),
        NavigationItem("Appointments", "/appointments"),
        NavigationItem("Medical Records", "/records"),
    ),
    PHARMACIST: (
        NavigationItem("Pharmacy", "/pharmacy"),
        NavigationItem("Inventory", "/inventory"),
        NavigationItem("Prescriptions", "/prescriptions"),
    ),
    LAB_TECHNICIAN: (
        NavigationItem("Laboratory", "/laboratory"),
        NavigationItem("Test Results", "/test-results"),
    ),
    PATIENT: (
        NavigationItem("My Appointments", "/appointments"),
        NavigationItem("My Records", "/records"),
        NavigationItem("My Bills", "/billing"),
        NavigationItem("Prescriptions", "/prescriptions"),
    ),
}

# ── Dashboard query plans ────────────────────────────────────────────
_PENDING = (("status", PENDING_STATUS),)

UNREAD_NOTIFICATIONS = QuerySpec(
    key="recent_notifications",
    table=NOTIFICATIONS_TABLE,
    kind="notifications",
    equals=(("user_id", CURRENT_USER), ("read", False)),
)

_PLANS: Dict[Role, Tuple[QuerySpec, ...]] = {
    ADMIN: (
        QuerySpec("total_patients", "patients"),
        QuerySpec("total_appointments", "appointments", equals=_PENDING),
        QuerySpec("pending_tests", "lab_tests", equals=_PENDING),
        QuerySpec("unpaid_bills", "bills", equals=_PENDING),
        QuerySpec("low_stock", "inventory", below=("quantity", "reorder_level")),
        UNREAD_NOTIFICATIONS,
    ),
    DOCTOR: (
        QuerySpec("total_patients", "patients", equals=(("doctor_id", CURRENT_USER),)),
        QuerySpec(
            "total_appointments", "appointments",
            equals=(("doctor_id", CURRENT_USER),) + _PENDING,
        ),
        UNREAD_NOTIFICATIONS,
    ),
    NURSE: (
        QuerySpec("total_appointments", "appointments", equals=_PENDING),
        UNREAD_NOTIFICATIONS,
    ),
    PHARMACIST: (
        QuerySpec("low_stock", "pharmacy_items", below=("quantity", "reorder_level")),
        QuerySpec("pending_prescriptions", "prescriptions", equals=_PENDING),
        UNREAD_NOTIFICATIONS,
    ),
    LAB_TECHNICIAN: (
        QuerySpec("pending_tests", "lab_tests", equals=_PENDING),
        UNREAD_NOTIFICATIONS,
    ),
    # TODO: decide with product whether patients get counters (own
    # appointments, unpaid bills); until then the dashboard stays blank.
    PATIENT: (),
}


def _check_exhaustive(table: Dict[Role, tuple], name: str) -> None:
    missing = set(Role) - set(table)
    if missing:
        raise RuntimeError(f"{name} has no row for: {sorted(r.value for r in missing)}")


_check_exhaustive(_NAVIGATION, "navigation table")
_check_exhaustive(_PLANS, "dashboard plan table")


def capabilities_for(role: Optional[Role]) -> Capabilities:
    """Return navigation items and dashboard plan for *role*.

    None (no profile) and anything that is not a Role get the base item
    only and an empty plan.
    """
    if not isinstance(role, Role):
        return Capabilities(navigation_items=(BASE_ITEM,), dashboard_plan=())
    return Capabilities(
        navigation_items=(BASE_ITEM,) + _NAVIGATION[role],
        dashboard_plan=_PLANS[role],
    )


def access_allowed(role: Optional[Role], route_id: str,
                   allowed_roles: Iterable[Role]) -> bool:
    """True iff *allowed_roles* is empty or contains *role*.

    *route_id* is carried for call-site symmetry and logging; the
    decision depends on the role list alone.
    """
    allowed = tuple(allowed_roles)
    if not allowed:
        return True
    return role is not None and role in allowed


def allowed_roles_for(route_id: str) -> Optional[Tuple[Role, ...]]:
    """Registered roles for *route_id*, or None when the route is unknown."""
    return ROUTES.get(route_id)