#!/usr/bin/env python3
"""
Generate the bcrypt hash that guards castellan's reload command.

Usage: python3 generate_password_hash.py [--rounds N]

Paste the result into config/config.yaml under core.super_admin_password_hash.
Admins then open a session with: /msg <bot> auth <password>
"""

import argparse
import getpass
import sys

import bcrypt

MIN_LENGTH = 8


def password_problem(password: str, confirm: str):
    """Return why a password is unacceptable, or None."""
    if password != confirm:
        return "Passwords do not match."
    if len(password) < MIN_LENGTH:
        return f"Password must be at least {MIN_LENGTH} characters."
    return None


def hash_password(password: str, rounds: int = 12) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def prompt_password() -> str:
    while True:
        password = getpass.getpass("Enter super admin password: ")
        confirm = getpass.getpass("Confirm password: ")
        problem = password_problem(password, confirm)
        if problem is None:
            return password
        print(f"{problem} Please try again.\n")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate a bcrypt hash for castellan super admin sessions")
    parser.add_argument("--rounds", type=int, default=12, help="bcrypt cost factor (default: 12)")
    args = parser.parse_args(argv)

    print("=== castellan super admin password ===\n")
    password_hash = hash_password(prompt_password(), args.rounds)

    print("\n" + "=" * 70)
    print(password_hash)
    print("=" * 70)
    print("\nconfig/config.yaml:")
    print("core:")
    print(f"  super_admin_password_hash: \"{password_hash}\"")
    print("  super_admin_session_hours: 1")
    print("\nKeep this hash private; it can be used to test password guesses offline.")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n\nCancelled.")
        sys.exit(1)
