from __future__ import annotations
from typing import Any, Dict, Optional


class InputError(ValueError):
    """Invalid input shape, raised at the boundary of the calculation pipeline.

    kind: short machine-readable tag (e.g. "missing_field", "invalid_value")
    field: dotted path of the offending field, when known
    """

    def __init__(self, kind: str, message: str, field: Optional[str] = None):
        super().__init__(f"{message} ({field})" if field else message)
        self.kind = kind
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message, "field": self.field}


class PathError(InputError):
    """Unknown or non-numeric perturbation path."""

    def __init__(self, path: str, message: str = "unresolvable parameter path"):
        super().__init__("unresolved_path", message, field=path)
        self.path = path
