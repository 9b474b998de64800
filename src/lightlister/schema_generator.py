from __future__ import annotations

import argparse
import json
from typing import Any, Dict, List, Type

from .models.base import DBSerializableModel
from .models.ledger import LedgerEntry
from .models.transaction import CreditTransaction
from .models.user import UserCreditRecord


MODEL_REGISTRY: List[Type[DBSerializableModel]] = [
    UserCreditRecord,
    CreditTransaction,
    LedgerEntry,
]


def generate_logical_schema() -> Dict[str, Any]:
    """
    Generate a backend-agnostic logical schema for all registered models.
    This is the single source of truth; SQL/NoSQL specific renderers convert it.
    """
    return {model.collection_name: model.db_schema() for model in MODEL_REGISTRY}


def render_sql_ddl(schema: Dict[str, Any], dialect: str = "postgres") -> str:
    """
    Small SQL DDL renderer for relational deployments. The primary key on
    `users.id` is the identity uniqueness constraint that first-access
    creation relies on.
    """
    lines: List[str] = []
    for table_name, spec in schema.items():
        props = spec["properties"]
        pk = spec.get("primary_key") or "id"
        columns: List[str] = []
        for field_name, meta in props.items():
            sql_type = _map_logical_to_sql(meta["type"], dialect=dialect)
            required = field_name in spec.get("required", [])
            nullable = "NOT NULL" if required or meta.get("default") is not None else "NULL"
            default = _render_default(meta.get("default"))
            columns.append(f'    "{field_name}" {sql_type} {nullable}{default}')
        columns.append(f'    PRIMARY KEY ("{pk}")')
        ddl = f'CREATE TABLE IF NOT EXISTS "{table_name}" (\n' + ",\n".join(columns) + "\n);\n"
        lines.append(ddl)
    return "\n".join(lines)


def render_nosql_schema(schema: Dict[str, Any]) -> str:
    """
    Render a JSON representation that can be used to configure validators
    for document databases like MongoDB.
    """
    return json.dumps(schema, indent=2, default=str)


def _render_default(default: Any) -> str:
    if isinstance(default, bool):
        return f" DEFAULT {'TRUE' if default else 'FALSE'}"
    if isinstance(default, (int, float)):
        return f" DEFAULT {default}"
    if isinstance(default, str):
        return f" DEFAULT '{default}'"
    return ""


def _map_logical_to_sql(logical_type: str, dialect: str) -> str:
    logical_type = logical_type.lower()
    if logical_type == "integer":
        return "INTEGER"
    if logical_type == "number":
        return "DOUBLE PRECISION"
    if logical_type == "boolean":
        return "BOOLEAN"
    if logical_type == "string":
        return "TEXT"
    if logical_type in {"datetime", "date"}:
        return "TIMESTAMPTZ" if dialect == "postgres" else "TIMESTAMP"
    if logical_type == "object":
        return "JSONB" if dialect == "postgres" else "TEXT"
    return "TEXT"


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Generate DB schemas for the lightlister credit store."
    )
    parser.add_argument(
        "--backend",
        choices=["sql", "nosql"],
        required=True,
        help="Type of schema to generate.",
    )
    parser.add_argument(
        "--dialect",
        default="postgres",
        help="SQL dialect hint (e.g. postgres, mysql).",
    )
    args = parser.parse_args()

    schema = generate_logical_schema()

    if args.backend == "sql":
        print(render_sql_ddl(schema, dialect=args.dialect))
    else:
        print(render_nosql_schema(schema))


if __name__ == "__main__":
    main()
