"""Messages repository - persistence of inbound and outbound message rows.

Uses raw SQL with psycopg2 (no ORM). Callers own the transaction
(with txn() as cur:).
"""

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from openwapi.infra.time import record_timestamp
from openwapi.whatsapp.models import Message, NewMessage

_COLUMNS = """
    id, direction, phone, message, reply_status,
    media_type, media_url, sender_name, created_at
"""


def _row_to_message(row: tuple[Any, ...]) -> Message:
    return Message(
        id=int(row[0]),
        direction=row[1],
        phone=row[2],
        message=row[3],
        status=row[4],
        media_type=row[5],
        media_url=row[6],
        sender_name=row[7],
        created_at=row[8],
    )


def insert_message(cur: PgCursor, new: NewMessage) -> Message:
    """Insert a message row stamped with the record timestamp.

    Returns:
        The stored Message, including its assigned id.
    """
    created_at = record_timestamp()
    cur.execute(
        """
        INSERT INTO messages (
            direction, phone, sender_name, message, reply_status,
            media_type, media_url, created_at
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            new.direction,
            new.phone,
            new.sender_name,
            new.message,
            new.status,
            new.media_type,
            new.media_url,
            created_at,
        ),
    )
    row = cur.fetchone()
    return Message(
        id=int(row[0]),
        direction=new.direction,
        phone=new.phone,
        message=new.message,
        status=new.status,
        media_type=new.media_type,
        media_url=new.media_url,
        sender_name=new.sender_name,
        created_at=created_at,
    )


def get_message(cur: PgCursor, message_id: int) -> Message | None:
    cur.execute(f"SELECT {_COLUMNS} FROM messages WHERE id = %s", (message_id,))
    row = cur.fetchone()
    return _row_to_message(row) if row else None


def update_status(cur: PgCursor, message_id: int, status: str) -> bool:
    """Set reply_status. Returns False when no row has that id."""
    cur.execute(
        "UPDATE messages SET reply_status = %s WHERE id = %s",
        (status, message_id),
    )
    return cur.rowcount > 0


def update_media(
    cur: PgCursor,
    message_id: int,
    media_type: str | None,
    media_url: str | None,
) -> bool:
    cur.execute(
        "UPDATE messages SET media_type = %s, media_url = %s WHERE id = %s",
        (media_type, media_url, message_id),
    )
    return cur.rowcount > 0


def list_unread_incoming(cur: PgCursor) -> list[Message]:
    """All unread incoming messages, newest first."""
    cur.execute(
        f"""
        SELECT {_COLUMNS}
        FROM messages
        WHERE direction = 'incoming' AND reply_status = 'unread'
        ORDER BY created_at DESC, id DESC
        """
    )
    return [_row_to_message(row) for row in cur.fetchall()]


def list_messages(cur: PgCursor, *, limit: int, offset: int) -> list[Message]:
    cur.execute(
        f"""
        SELECT {_COLUMNS}
        FROM messages
        ORDER BY created_at DESC, id DESC
        LIMIT %s OFFSET %s
        """,
        (limit, offset),
    )
    return [_row_to_message(row) for row in cur.fetchall()]


def count_incoming(cur: PgCursor) -> int:
    """Count incoming rows only; outgoing replies never contribute."""
    cur.execute("SELECT COUNT(*) FROM messages WHERE direction = 'incoming'")
    row = cur.fetchone()
    return int(row[0]) if row else 0
