"""
Manual Redis Cleanup Script
Run this to immediately delete saved orders older than the given number of days.

Usage: python manual_cleanup.py [days_to_keep]
"""
import sys
from redis_state import redis_cleanup_old_orders

if __name__ == "__main__":
    days_to_keep = int(sys.argv[1]) if len(sys.argv) > 1 else 2

    print(f"🗑️  Starting manual cleanup...")
    print(f"📅 Keeping today + {days_to_keep} previous days")
    print()

    deleted_count = redis_cleanup_old_orders(days_to_keep=days_to_keep)

    print()
    print(f"✅ Cleanup complete! Deleted {deleted_count} orders.")
