#!/usr/bin/env python3
"""
Seed the message table with sample data for local development.

Creates 20 pending and 5 already-sent messages. Skips seeding when the
store already holds any message.

Usage:
    python scripts/seed_messages.py
    python scripts/seed_messages.py --pending 50 --sent 10
"""
import asyncio
import os
import random
import sys
import uuid
import argparse
from datetime import datetime, timedelta, timezone

# Ensure app root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

FIRST_NAMES = ["Ayse", "Mehmet", "Elif", "Can", "Zeynep", "Emre", "Deniz", "Selin", "Burak", "Ece"]

TEMPLATES = [
    "Hello {name}! Your order #{code} has been confirmed.",
    "Hi {name}, your appointment is scheduled for {when}.",
    "Dear {name}, your verification code is: {code}",
    "{name}, your package has been shipped! Track: {ref}",
    "Welcome {name}! Your account has been created successfully.",
    "Reminder: {name}, your subscription expires on {date}",
    "Hi {name}! Special offer: {percent}% discount on all products!",
    "{name}, your payment of ${amount} has been received.",
    "Dear {name}, your reservation #{code} is confirmed.",
    "{name}, your password reset code is: {code}",
]

# Turkish mobile operator prefixes
OPERATORS = ["505", "506", "530", "532", "533", "535", "541", "542", "544", "553", "555", "559"]


def random_phone(rng: random.Random) -> str:
    return f"+90{rng.choice(OPERATORS)}{rng.randint(1000000, 9999999)}"


def random_content(rng: random.Random, i: int) -> str:
    now = datetime.now(timezone.utc)
    return TEMPLATES[i % len(TEMPLATES)].format(
        name=rng.choice(FIRST_NAMES),
        code="".join(rng.choices("ABCDEFGHJKLMNPQRSTUVWXYZ23456789", k=8)),
        when=(now + timedelta(hours=48)).strftime("%b %d, %H:%M"),
        date=(now + timedelta(days=30)).strftime("%Y-%m-%d"),
        ref=uuid.uuid4(),
        percent=rng.randint(10, 50),
        amount=f"{rng.uniform(50, 500):.2f}",
    )


async def seed(store, pending: int = 20, sent: int = 5, rng: random.Random = None) -> dict[str, int]:
    """Insert sample messages into `store`. Returns the counts that were created."""
    rng = rng or random.Random()

    existing = await store.list_messages(limit=1)
    if existing:
        return {"pending": 0, "sent": 0}

    for i in range(pending):
        await store.create(random_phone(rng), random_content(rng, i))

    for _ in range(sent):
        msg = await store.create(random_phone(rng), "This is a sent message from the seed data.")
        sent_at = datetime.now(timezone.utc) - timedelta(hours=rng.randint(1, 72))
        await store.mark_sent(msg.id, str(uuid.uuid4()), sent_at)

    return {"pending": pending, "sent": sent}


async def run(pending: int, sent: int):
    from config.settings import load_settings
    settings = load_settings()

    from database.session import init_db, close_db
    from database.store_factory import create_store

    if settings.database.store_backend == "sql":
        await init_db()
    store = create_store(settings.database)

    created = await seed(store, pending=pending, sent=sent)
    if not any(created.values()):
        print("Database already has messages, skipping seed.")
    else:
        print(f"Database seeded: {created['pending']} pending, {created['sent']} sent ✓")

    await close_db()


def main():
    parser = argparse.ArgumentParser(description="Seed sample messages")
    parser.add_argument("--pending", type=int, default=20, help="Pending messages to create")
    parser.add_argument("--sent", type=int, default=5, help="Sent messages to create")
    args = parser.parse_args()

    asyncio.run(run(args.pending, args.sent))


if __name__ == "__main__":
    main()
