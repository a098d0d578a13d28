"""DTO e helper per i filtri di elenco DDT."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional


@dataclass
class NoteFilters:
    user_id: Optional[int] = None
    client_id: Optional[int] = None
    project_id: Optional[int] = None

    @staticmethod
    def _parse_int(value: Any) -> Optional[int]:
        if value in (None, ""):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @classmethod
    def from_query_args(cls, args: Mapping[str, Any]) -> "NoteFilters":
        # Accetta anche i nomi camelCase usati dai client storici (?userId=...)
        return cls(
            user_id=cls._parse_int(args.get("user_id") or args.get("userId")),
            client_id=cls._parse_int(args.get("client_id") or args.get("clientId")),
            project_id=cls._parse_int(args.get("project_id") or args.get("projectId")),
        )

    def as_kwargs(self) -> Dict[str, Optional[int]]:
        return asdict(self)
