"""
Seed the configured database with demo accounts and records.
"""

from hms_console.backend import SqlBackend, init_engine
from hms_console.demo_data import DEMO_ACCOUNTS, DEMO_PASSWORD, seed_demo_data


def main():
    print("=" * 60)
    print("Hospital Operations Console – Demo Data")
    print("=" * 60)
    backend = SqlBackend(init_engine())
    seed_demo_data(backend)
    print("\n[seed] Demo accounts (password: %s)" % DEMO_PASSWORD)
    for email, role, _first, _last in DEMO_ACCOUNTS:
        print(f"  - {role.value:<15} {email}")
    print("=" * 60)


if __name__ == "__main__":
    main()
