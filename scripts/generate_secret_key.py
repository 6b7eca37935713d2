#!/usr/bin/env python3
"""
Generate a signing key for console session tokens.
Run this and copy the output to your .env file.
"""

import secrets

if __name__ == "__main__":
    print("=" * 60)
    print("Session Token Secret Generator")
    print("=" * 60)
    print("\nGenerating a secure random key...\n")

    secret_key = secrets.token_hex(32)

    print(f"JWT_SECRET_KEY={secret_key}")
    print("# optional: TOKEN_EXPIRY_HOURS=8")
    print("\n" + "=" * 60)
    print("Copy the lines above to your .env file")
    print("=" * 60)
