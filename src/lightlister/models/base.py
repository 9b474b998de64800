from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DBSerializableModel(BaseModel):
    """
    Base Pydantic model that knows how to:
    - Serialize itself for DB persistence
    - Provide a backend-agnostic DB schema description derived from fields

    The actual SQL/NoSQL DDL is produced offline by the schema generator
    using this description; this class is not meant to hit the database
    at runtime for schema work.
    """

    # Enums are stored as their plain string value
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    # Logical collection / table name; subclasses should override
    collection_name: ClassVar[str]

    primary_key: ClassVar[Optional[str]] = "id"

    def serialize_for_db(self) -> Dict[str, Any]:
        """
        Convert to a dict suitable for DB persistence.

        This is the single place to control how models are stored;
        DB adapters can still post-process this if needed.
        """
        return self.model_dump(mode="python", exclude_none=True)

    @classmethod
    def db_schema(cls) -> Dict[str, Any]:
        """
        Return a backend-agnostic schema description derived from model fields.

        The schema generator runs this once (e.g. from a CLI) to produce:
        - SQL DDL for relational databases
        - JSON/metadata for NoSQL collections and indexes
        """
        fields: Mapping[str, Any] = cls.model_fields

        properties: Dict[str, Any] = {}
        required: list[str] = []

        for name, field in fields.items():
            properties[name] = {
                "type": cls._map_type(field.annotation),
                "nullable": not field.is_required(),
                "default": cls._json_default(field.default),
                "description": field.description,
            }
            if field.is_required():
                required.append(name)

        return {
            "collection_name": cls.collection_name,
            "primary_key": cls.primary_key,
            "properties": properties,
            "required": required,
        }

    @staticmethod
    def _json_default(default: Any) -> Any:
        if isinstance(default, Enum):
            return default.value
        if isinstance(default, (int, float, str, bool)):
            return default
        return None

    @staticmethod
    def _map_type(annotation: Any) -> str:
        """
        Map a Python / Pydantic type annotation to a generic logical type.
        The schema generator will translate these to dialect-specific types.
        """
        origin: Any = getattr(annotation, "__origin__", None)
        if origin is list or origin is tuple or origin is set:
            return "array"
        if origin is dict or annotation is dict:
            return "object"

        # Optional[X] arrives as a Union; map the first non-None member
        args = getattr(annotation, "__args__", None)
        if args and type(None) in args:
            members = [a for a in args if a is not type(None)]
            if members:
                return DBSerializableModel._map_type(members[0])

        if annotation in (bool,):
            return "boolean"
        if annotation in (int,):
            return "integer"
        if annotation in (float,):
            return "number"
        if annotation in (str,):
            return "string"

        # Enums persist as their string value
        if isinstance(annotation, type) and issubclass(annotation, str):
            return "string"

        # Fallback for datetime, UUID, etc.; generator can refine using metadata
        name = getattr(annotation, "__name__", "object")
        return name.lower()
