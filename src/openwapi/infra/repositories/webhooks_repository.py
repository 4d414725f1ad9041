"""Webhook subscriptions repository.

At most one row per event kind: set_webhook deletes the previous rows for
the event and inserts the new one inside the caller's transaction, so the
swap is atomic.
"""

from psycopg2.extensions import cursor as PgCursor

from openwapi.whatsapp.models import WebhookSubscription


def get_active_webhook(cur: PgCursor, event: str) -> WebhookSubscription | None:
    cur.execute(
        """
        SELECT id, url, event, active, created_at
        FROM webhooks
        WHERE event = %s AND active = TRUE
        LIMIT 1
        """,
        (event,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return WebhookSubscription(
        id=int(row[0]),
        url=row[1],
        event=row[2],
        active=bool(row[3]),
        created_at=row[4].isoformat() if hasattr(row[4], "isoformat") else str(row[4]),
    )


def set_webhook(cur: PgCursor, url: str, event: str) -> None:
    cur.execute("DELETE FROM webhooks WHERE event = %s", (event,))
    cur.execute(
        "INSERT INTO webhooks (url, event) VALUES (%s, %s)",
        (url, event),
    )


def delete_webhook(cur: PgCursor, event: str) -> None:
    cur.execute("DELETE FROM webhooks WHERE event = %s", (event,))
