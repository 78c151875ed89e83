"""
Command specifications.

A ``CommandSpec`` bundles the SQL text (or stored procedure name), its
named parameters, the command kind and the timeout it runs with.
Parameter names follow SQL Server conventions: they are written as
``@name`` in the SQL text and may be supplied with or without the
leading ``@`` in the mapping.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class CommandKind(enum.Enum):
    TEXT = "text"
    STORED_PROCEDURE = "stored_procedure"


def normalize_parameters(parameters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Strip the optional ``@`` prefix from parameter names.

    Insertion order and values are preserved untouched.

    Raises:
        ValueError: If a name is not a valid identifier or two names
            collide once normalised (e.g. ``'@id'`` and ``'id'``);
            names compare case-insensitively like SQL Server variables.
    """
    normalized: Dict[str, Any] = {}
    seen = set()
    for key, value in (parameters or {}).items():
        if not isinstance(key, str):
            raise ValueError(f"Parameter names must be strings, got {key!r}")
        name = key[1:] if key.startswith("@") else key
        if not _IDENTIFIER.match(name):
            raise ValueError(f"Invalid parameter name: {key!r}")
        if name.lower() in seen:
            raise ValueError(f"Duplicate parameter name: @{name}")
        seen.add(name.lower())
        normalized[name] = value
    return normalized


@dataclass(frozen=True)
class CommandSpec:
    """A single command to execute.

    Attributes:
        text: SQL text, or the procedure name for stored procedures.
        parameters: Parameter values keyed by name (without ``@``).
        kind: Whether ``text`` is SQL or a stored procedure name.
        timeout: Query timeout in seconds.
    """

    text: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    kind: CommandKind = CommandKind.TEXT
    timeout: int = 30

    @classmethod
    def build(
        cls,
        text: str,
        parameters: Optional[Mapping[str, Any]] = None,
        kind: CommandKind = CommandKind.TEXT,
        timeout: int = 30,
    ) -> "CommandSpec":
        if not text or not text.strip():
            raise ValueError("Command text must not be empty")
        return cls(
            text=text.strip() if kind is CommandKind.STORED_PROCEDURE else text,
            parameters=normalize_parameters(parameters),
            kind=kind,
            timeout=timeout,
        )

    @property
    def is_stored_procedure(self) -> bool:
        return self.kind is CommandKind.STORED_PROCEDURE
