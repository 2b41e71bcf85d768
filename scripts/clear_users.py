import argparse
import os
import sqlite3
from pathlib import Path
from typing import Optional

# Leaf tables first so the script also works on files created without foreign keys.
CHILD_TABLES = [
    "chat_history",
    "chat_sessions",
    "cart_items",
    "user_supplements",
    "supplement_stacks",
    "meal_entries",
    "health_metrics",
    "workout_sessions",
    "subscriptions",
    "model_usage_stats",
    "profiles",
]


def resolve_db_path(override: Optional[str]) -> Path:
    if override:
        return Path(override).expanduser().resolve()
    return Path(os.getenv("DB_PATH", "/var/data/biowell.db")).expanduser().resolve()


def existing_tables(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {str(r[0]) for r in rows}


def find_users(conn: sqlite3.Connection, emails: Optional[list[str]]) -> list[tuple[int, str]]:
    if emails is None:
        rows = conn.execute("SELECT id, email FROM users ORDER BY id").fetchall()
    elif not emails:
        return []
    else:
        placeholders = ",".join("?" for _ in emails)
        sql = f"SELECT id, email FROM users WHERE lower(email) IN ({placeholders}) ORDER BY id"
        rows = conn.execute(sql, [e.lower() for e in emails]).fetchall()
    return [(int(r[0]), str(r[1])) for r in rows]


def delete_users(conn: sqlite3.Connection, user_ids: list[int]) -> dict[str, int]:
    tables = existing_tables(conn)
    counts: dict[str, int] = {}
    if not user_ids:
        return counts
    placeholders = ",".join("?" for _ in user_ids)

    if "exercise_sets" in tables and "workout_sessions" in tables:
        cur = conn.execute(
            "DELETE FROM exercise_sets WHERE workout_id IN "
            f"(SELECT id FROM workout_sessions WHERE user_id IN ({placeholders}))",
            user_ids,
        )
        counts["exercise_sets"] = max(cur.rowcount, 0)
    for table in CHILD_TABLES:
        if table not in tables:
            continue
        cur = conn.execute(f"DELETE FROM {table} WHERE user_id IN ({placeholders})", user_ids)
        counts[table] = max(cur.rowcount, 0)
    cur = conn.execute(f"DELETE FROM users WHERE id IN ({placeholders})", user_ids)
    counts["users"] = max(cur.rowcount, 0)
    return counts


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Delete Biowell users and their data from the SQLite DB.")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--email", action="append", help="User email to delete (repeatable).")
    target.add_argument("--all", action="store_true", help="Delete every user.")
    parser.add_argument("--db-path", default=None, help="SQLite file. Defaults to DB_PATH.")
    parser.add_argument("--dry-run", action="store_true", help="List matched users without deleting.")
    parser.add_argument("--yes", action="store_true", help="Confirm deletion.")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.dry_run and not args.yes:
        parser.error("Add --yes to confirm deletion")

    db_path = resolve_db_path(args.db_path)
    if not db_path.exists():
        print(f"DB not found: {db_path}")
        return 1

    conn = sqlite3.connect(str(db_path))
    try:
        conn.execute("PRAGMA foreign_keys = ON")
        emails = None if args.all else [e.strip().lower() for e in args.email if e.strip()]
        users = find_users(conn, emails)
        print(f"Target DB: {db_path}")
        print(f"Matched users: {len(users)}")
        for user_id, email in users:
            print(f"  {user_id}: {email}")
        if args.dry_run:
            return 0

        counts = delete_users(conn, [user_id for user_id, _ in users])
        conn.commit()
        print("Deleted rows:")
        for table, count in counts.items():
            print(f"  {table}: {count}")
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
