from uuid import UUID

from .connection import get_db_cursor


def insert_feedback(
    user_id: UUID | None, type: str, message: str, page_url: str | None
) -> int:
    """Store a feedback message and return its id."""
    with get_db_cursor() as cursor:
        cursor.execute(
            """
            INSERT INTO user_feedback (user_id, type, message, page_url)
            VALUES (%s, %s, %s, %s)
            RETURNING id
            """,
            (str(user_id) if user_id else None, type, message, page_url),
        )
        row = cursor.fetchone()
        return row[0]
