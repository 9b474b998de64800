from __future__ import annotations

import json
import sys

from lightlister import schema_generator
from lightlister.models.user import UserCreditRecord


def test_logical_schema_describes_user_counters():
    schema = UserCreditRecord.db_schema()

    assert schema["collection_name"] == "users"
    assert schema["primary_key"] == "id"
    assert schema["required"] == ["id"]
    assert schema["properties"]["credits_used"]["type"] == "integer"
    assert schema["properties"]["credits_used"]["default"] == 0
    assert schema["properties"]["email"]["type"] == "string"
    assert schema["properties"]["subscription_status"]["default"] == "trial"
    assert schema["properties"]["subscription_valid_until"]["type"] == "datetime"


def test_sql_ddl_keys_users_by_identity():
    ddl = schema_generator.render_sql_ddl(schema_generator.generate_logical_schema())

    assert 'CREATE TABLE IF NOT EXISTS "users"' in ddl
    assert '"id" TEXT NOT NULL' in ddl
    assert '"credits_total" INTEGER NOT NULL DEFAULT 0' in ddl
    assert '"subscription_status" TEXT NOT NULL DEFAULT \'trial\'' in ddl
    assert '"created_at" TIMESTAMPTZ NULL' in ddl
    assert '"metadata" JSONB NULL' in ddl
    assert 'CREATE TABLE IF NOT EXISTS "credit_transactions"' in ddl
    assert 'CREATE TABLE IF NOT EXISTS "credit_ledger"' in ddl


def test_cli_renders_nosql_schema(monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["lightlister-schema", "--backend", "nosql"])

    schema_generator.main()

    rendered = json.loads(capsys.readouterr().out)
    assert set(rendered) == {"users", "credit_transactions", "credit_ledger"}
