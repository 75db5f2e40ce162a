"""
Counter Verification Script

Checks, through the API, that the outlet's stored active order count
matches the number of its orders that are still in progress, and that
pickup codes are unique.
Run from project root: python scripts/verify.py

Version: 1.0.0
"""

import sys
from collections import Counter
from datetime import datetime

import httpx

API_BASE_URL = "http://localhost:8001"
OUTLET_ID = "outlet-demo"
OWNER_ID = "owner-demo"

TERMINAL = {"completed", "cancelled"}


def verify_counters() -> bool:
    """Compare the stored counter with the outlet's order queue."""

    print("=" * 60)
    print("🔍 COUNTER VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"🏪 Outlet: {OUTLET_ID}")
    print("=" * 60)

    headers = {"X-User-Id": OWNER_ID}
    try:
        with httpx.Client(base_url=API_BASE_URL, headers=headers, timeout=10.0) as client:
            outlet = client.get(f"/api/outlets/{OUTLET_ID}").raise_for_status().json()
            orders = client.get(f"/api/outlets/{OUTLET_ID}/orders").raise_for_status().json()["orders"]
    except httpx.HTTPError as e:
        print(f"\n❌ Could not reach the API: {e}")
        return False

    by_status = Counter(o["status"] for o in orders)
    active = sum(n for status, n in by_status.items() if status not in TERMINAL)
    stored = outlet["active_orders_count"]

    print(f"\n📊 STATISTICS:")
    print(f"   Total Orders: {len(orders)}")
    for status, n in sorted(by_status.items()):
        print(f"   {status:<10} {n}")
    print(f"\n   Stored active count:   {stored}")
    print(f"   Computed active count: {active}")
    print(f"   Chill period: {outlet['is_chill_period']} (ends {outlet['chill_period_ends_at']})")

    ok = True
    if stored != active:
        print(f"\n❌ Counter drift: stored {stored}, expected {active}")
        ok = False
    else:
        print(f"\n✅ Active order counter consistent")

    duplicates = [code for code, n in Counter(o["qr_code"] for o in orders).items() if n > 1]
    if duplicates:
        print(f"❌ {len(duplicates)} duplicate pickup codes found!")
        ok = False
    else:
        print(f"✅ No duplicate pickup codes")

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE" if ok else "❌ VERIFICATION FAILED")
    print("=" * 60)

    return ok


if __name__ == "__main__":
    sys.exit(0 if verify_counters() else 1)
