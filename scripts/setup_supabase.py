#!/usr/bin/env python3
"""
Supabase check for the Brief Engine.

Verifies the connection and that the tables and database functions the
generation pipeline uses are present.

Usage:
    python scripts/setup_supabase.py

Requires SUPABASE_URL and SUPABASE_SERVICE_KEY (environment or .env).
"""

import sys

from briefing.config import config
from briefing.database import SupabaseClientError, get_supabase_admin_client


REQUIRED_TABLES = [
    "users",
    "investigations",
    "investigation_sources",
    "credit_transactions",
    "credit_refunds",
]

REQUIRED_FUNCTIONS = ["deduct_credits", "add_credits"]


def check_tables(client) -> list[str]:
    print("\n📋 Checking required tables:")
    missing = []
    for table in REQUIRED_TABLES:
        try:
            client.table(table).select("*").limit(1).execute()
            print(f"   ✅ {table}")
        except Exception as e:
            if "does not exist" in str(e):
                print(f"   ❌ {table} (missing)")
                missing.append(table)
            else:
                print(f"   ⚠️  {table} ({type(e).__name__})")
    return missing


def print_function_reminder():
    print("\n🔧 The credit ledger also needs these database functions:")
    for name in REQUIRED_FUNCTIONS:
        print(f"   - {name}(p_user_id, p_amount, p_transaction_type, p_reference_id, p_description, ...)")


def main() -> int:
    print("=" * 60)
    print("🚀 Brief Engine - Supabase check")
    print("=" * 60)

    if not config.supabase_configured:
        print("\n❌ Missing Supabase credentials!")
        print("  SUPABASE_URL=https://your-project.supabase.co")
        print("  SUPABASE_SERVICE_KEY=eyJhbGci...")
        return 1

    try:
        client = get_supabase_admin_client()
    except SupabaseClientError as e:
        print(f"\n❌ {e}")
        return 1

    print(f"\n🔗 Connected to: {config.SUPABASE_URL}")
    missing = check_tables(client)
    print_function_reminder()

    if missing:
        print(f"\n⚠️  Missing {len(missing)} table(s)")
        return 1

    print("\n✅ All tables exist!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
