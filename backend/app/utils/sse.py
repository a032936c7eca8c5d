import orjson
from typing import Any


def format_sse(event: str, data: Any) -> str:
    """Format data as SSE event"""
    payload = data if isinstance(data, dict) else {"message": data}
    return f"event: {event}\ndata: {orjson.dumps(payload).decode()}\n\n"
