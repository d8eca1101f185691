from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

# Request id of the running unit of work: a beat job name, or a caller-supplied id
request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    return request_id_context.get()


@contextmanager
def job_context(request_id: str) -> Iterator[str]:
    """Scope every log line emitted inside the block to `request_id`."""
    token = request_id_context.set(request_id)
    try:
        yield request_id
    finally:
        request_id_context.reset(token)
