"""
Lunch Rush Simulation Script

Fires concurrent orders from many students at one outlet to exercise the
active-order counter and automatic chill periods, then walks accepted
orders through the workflow and pickup.
Run from project root after seeding: python scripts/simulate.py

Version: 1.0.0
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 30
OUTLET_ID = "outlet-demo"
OWNER_ID = "owner-demo"
STUDENT_IDS = [f"student-{n:02d}" for n in range(1, 11)]

INSTRUCTIONS = [None, "Less spicy", "Extra chutney", "No onion", "Pack separately"]


def headers(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


async def fetch_menu(client: httpx.AsyncClient) -> list[dict[str, Any]]:
    response = await client.get(f"{API_BASE_URL}/api/outlets/{OUTLET_ID}", headers=headers(OWNER_ID))
    response.raise_for_status()
    return [d for d in response.json()["dishes"] if d["is_available"]]


def generate_order_payload(menu: list[dict[str, Any]]) -> dict[str, Any]:
    """Random basket from the outlet's menu."""
    dishes = random.sample(menu, k=random.randint(1, min(3, len(menu))))
    items = [
        {"dish_id": d["id"], "quantity": random.randint(1, 2), "price": d["price"]}
        for d in dishes
    ]
    return {
        "outlet_id": OUTLET_ID,
        "items": items,
        "total_amount": sum(i["quantity"] * i["price"] for i in items),
        "payment_method": random.choice(["cash", "upi"]),
        "special_instructions": random.choice(INSTRUCTIONS),
    }


async def send_order(
    client: httpx.AsyncClient,
    order_num: int,
    menu: list[dict[str, Any]],
) -> dict[str, Any]:
    student_id = random.choice(STUDENT_IDS)
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json=generate_order_payload(menu),
            headers=headers(student_id),
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "order_id": data["id"],
                "student_id": student_id,
                "qr_code": data["qr_code"],
                "total": data["total_amount"],
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "status_code": response.status_code,
            "error": response.json().get("detail", response.text[:100]),
            "time": elapsed,
        }
    except Exception as e:
        elapsed = round(time.time() - start_time, 3)
        return {
            "order_num": order_num,
            "success": False,
            "status_code": None,
            "error": str(e)[:100],
            "time": elapsed,
        }


async def advance_to_ready(client: httpx.AsyncClient, order_id: str) -> bool:
    for status in ("confirmed", "preparing", "ready"):
        response = await client.patch(
            f"{API_BASE_URL}/api/orders/{order_id}/status",
            json={"status": status},
            headers=headers(OWNER_ID),
        )
        if response.status_code != 200:
            print(f"   ⚠️ {order_id} → {status}: {response.text[:100]}")
            return False
    return True


async def pick_up(client: httpx.AsyncClient, order: dict[str, Any]) -> bool:
    """Alternate between student confirmation and counter scan."""
    if order["order_num"] % 2:
        response = await client.post(
            f"{API_BASE_URL}/api/orders/{order['order_id']}/confirm-pickup",
            headers=headers(order["student_id"]),
        )
    else:
        response = await client.post(
            f"{API_BASE_URL}/api/orders/scan-qr",
            json={"qr_code": order["qr_code"], "outlet_id": OUTLET_ID},
            headers=headers(OWNER_ID),
        )
    return response.status_code == 200


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_orders: int = TOTAL_ORDERS, fulfil: bool = True) -> dict[str, Any]:
    print("=" * 70)
    print("🔥 LUNCH RUSH SIMULATION - HIGH CONCURRENCY TEST")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL} (outlet {OUTLET_ID})")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        menu = await fetch_menu(client)

        print("\n🚀 Firing concurrent orders...\n")
        tasks = [send_order(client, i + 1, menu) for i in range(num_orders)]
        results = await asyncio.gather(*tasks)

        successful = [r for r in results if r["success"]]
        chilled = [r for r in results if r.get("status_code") == 409]
        failed = [r for r in results if not r["success"] and r.get("status_code") != 409]

        completed = 0
        if fulfil and successful:
            print("👨‍🍳 Preparing and handing over accepted orders...\n")
            ready = await asyncio.gather(*[advance_to_ready(client, r["order_id"]) for r in successful])
            picked = await asyncio.gather(*[
                pick_up(client, r) for r, ok in zip(successful, ready) if ok
            ])
            completed = sum(picked)

    total_time = round(time.time() - start_time, 2)

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Accepted Orders: {len(successful)}/{num_orders}")
    print(f"🧊 Refused (chill period): {len(chilled)}/{num_orders}")
    print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
    if fulfil:
        print(f"🎉 Picked Up: {completed}/{len(successful)}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        total_revenue = sum(r["total"] for r in successful)
        print(f"\n📈 Performance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")
        print(f"   💰 Total Revenue: ₹{total_revenue}")

    if failed:
        print(f"\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)
    print("🔍 VERIFICATION STEPS")
    print("=" * 70)
    print("1. Run: python scripts/verify.py")
    print(f"2. Resume the outlet: PATCH /api/outlets/{OUTLET_ID}/chill-period")
    print("=" * 70)

    return {
        "total": num_orders,
        "accepted": len(successful),
        "chilled": len(chilled),
        "failed": len(failed),
        "completed": completed,
        "total_time": total_time,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Lunch Rush Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--no-fulfil", action="store_true", help="Leave accepted orders pending")
    args = parser.parse_args()

    asyncio.run(run_simulation(num_orders=args.orders, fulfil=not args.no_fulfil))
