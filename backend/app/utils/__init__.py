from app.utils.cancellation import CancellationToken
from app.utils.sse import format_sse

__all__ = ["CancellationToken", "format_sse"]
