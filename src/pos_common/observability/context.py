from contextvars import ContextVar
from typing import Optional

operation_id_var: ContextVar[Optional[str]] = ContextVar("operation_id", default=None)
