# util.py
import json
import re
from datetime import datetime, timezone

SQLITE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def query_string(*parts):
    """Join statement fragments into one SQL string.

    query_string("SELECT * FROM jobs", "WHERE id = :id")
    -> "SELECT * FROM jobs\nWHERE id = :id"
    """
    return "\n".join(parts)


def parameterize(key, values):
    """Build named placeholders for an IN (...) list.

    parameterize("id", [1, 2]) -> ({"id0": 1, "id1": 2}, ":id0, :id1")
    """
    args = {f"{key}{i}": v for i, v in enumerate(values)}
    placeholders = ", ".join(f":{key}{i}" for i in range(len(values)))
    return args, placeholders


def jsonify(value):
    """Decode a JSON column, returning None instead of raising."""
    if value is None or value == "":
        return None
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return None


def get_full_query_string(sql, params=None):
    # For logging only: parameters are inlined without escaping.
    text = sql
    if isinstance(params, dict):
        for key in sorted(params, key=len, reverse=True):
            text = text.replace(f":{key}", repr(params[key]))
    elif params:
        for value in params:
            text = text.replace("?", repr(value), 1)
    return "\n".join(line for line in text.splitlines() if line.strip())


def sanitize_like(text):
    """Escape LIKE wildcards; use with ``ESCAPE '\\'``."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def sanitize_sql_path(text):
    """Strip everything but alphanumerics and underscores."""
    return re.sub(r"[^a-zA-Z0-9_]", "", text)


def to_sqlite_date_string(dt):
    """Format a datetime the way SQLite's CURRENT_TIMESTAMP does (UTC)."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime(SQLITE_DATE_FORMAT)


def parse_sqlite_date(text):
    if text is None:
        return None
    if isinstance(text, datetime):
        value = text
    else:
        value = datetime.fromisoformat(str(text).replace("T", " ").replace("Z", ""))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def utcnow():
    return datetime.now(timezone.utc)
