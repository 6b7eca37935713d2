"""
Smoke run against a live console API.
Start the API first (hms-console-api), seed demo data (hms-console-seed),
then run: python scripts/api_smoke.py
"""

import json

import requests

BASE_URL = "http://localhost:8000"


def banner(title):
    print("\n" + "=" * 50)
    print(f"CHECK: {title}")
    print("=" * 50)


def show(response):
    print(f"Status Code: {response.status_code}")
    print(f"Response: {json.dumps(response.json(), indent=2)}")


def check_health():
    banner("Health")
    response = requests.get(f"{BASE_URL}/health")
    show(response)
    return response.status_code == 200


def check_login_invalid():
    banner("Login with Invalid Credentials")
    response = requests.post(
        f"{BASE_URL}/api/auth/login",
        json={"email": "nobody@hms.local", "password": "wrong"},
    )
    show(response)
    return response.status_code == 401


def login(email, password):
    banner(f"Login as {email}")
    response = requests.post(
        f"{BASE_URL}/api/auth/login",
        json={"email": email, "password": password},
    )
    show(response)
    if response.status_code == 200:
        return response.json().get("token")
    return None


def check_get(token, path, expected=200):
    banner(f"GET {path}")
    response = requests.get(
        f"{BASE_URL}{path}",
        headers={"Authorization": f"Bearer {token}"},
    )
    show(response)
    return response.status_code == expected


def check_logout(token):
    banner("Logout")
    response = requests.post(
        f"{BASE_URL}/api/auth/logout",
        headers={"Authorization": f"Bearer {token}"},
    )
    show(response)
    return response.status_code == 200


def main():
    print("=" * 50)
    print("Console API Smoke Run")
    print("=" * 50)
    print(f"Base URL: {BASE_URL}")

    email = input("Email [admin@hms.local]: ").strip() or "admin@hms.local"
    password = input("Password [changeme123]: ").strip() or "changeme123"

    results = {}
    try:
        results["Health"] = check_health()
        results["Login Invalid"] = check_login_invalid()

        token = login(email, password)
        results["Login Valid"] = token is not None
        if token:
            results["Session"] = check_get(token, "/api/session")
            results["Navigation"] = check_get(token, "/api/navigation")
            results["Access /doctors"] = check_get(token, "/api/access?route=/doctors")
            results["Dashboard"] = check_get(token, "/api/dashboard")
            results["Logout"] = check_logout(token)
            results["Session After Logout"] = check_get(token, "/api/session", expected=401)
        else:
            print("\nERROR: Could not login. Remaining checks skipped.")
    except requests.RequestException as e:
        print(f"\n\nERROR: {e}")

    print("\n" + "=" * 50)
    print("SUMMARY")
    print("=" * 50)
    passed = sum(1 for v in results.values() if v)
    for name, ok in results.items():
        print(f"{'✓ PASS' if ok else '✗ FAIL'}: {name}")
    print(f"\nTotal: {passed}/{len(results)} checks passed")


if __name__ == "__main__":
    main()
