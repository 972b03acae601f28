from __future__ import annotations

import logging

from factories import col, snapshot, table

from driftsync.services.differ import DriftResult, diff


def _crm_schema(environment: str):
    return snapshot(
        environment,
        table("agents", ("id", "integer"), ("email", "text"), ("commission_rate", "numeric")),
        table("merchants", ("id", "integer"), ("agent_id", "integer"), ("dba_name", "text")),
    )


def test_identical_snapshots_have_no_drift():
    a = _crm_schema("development")

    result = diff(a, a)

    assert result == DriftResult()
    assert result.has_drift is False


def test_equal_snapshots_from_different_environments_have_no_drift():
    result = diff(_crm_schema("development"), _crm_schema("test"))

    assert not result.has_drift


def test_missing_column_in_shared_table():
    source = snapshot("development", table("users", ("id", "integer"), ("email", "text")))
    target = snapshot("test", table("users", ("id", "integer")))

    result = diff(source, target)

    assert result.missing_in_target == (col("users", "email", "text", position=2),)
    assert result.extra_in_target == ()
    assert result.missing_tables == ()
    assert result.extra_tables == ()
    assert result.has_drift


def test_missing_table_contributes_all_its_columns():
    campaigns = table("campaigns", ("id", "integer"), ("name", "text"))
    source = snapshot("development", table("users", ("id", "integer")), campaigns)
    target = snapshot("test", table("users", ("id", "integer")))

    result = diff(source, target)

    assert result.missing_tables == ("campaigns",)
    assert result.missing_in_target == campaigns.columns


def test_extra_table_and_extra_column_are_reported():
    source = snapshot("development", table("users", ("id", "integer")))
    target = snapshot(
        "production",
        table("users", ("id", "integer"), ("legacy_flag", "boolean")),
        table("audit_logs", ("id", "integer"), ("action", "text")),
    )

    result = diff(source, target)

    assert result.extra_tables == ("audit_logs",)
    assert [c.column for c in result.extra_in_target] == ["legacy_flag", "id", "action"]
    assert result.missing_in_target == ()


def test_diff_is_antisymmetric():
    a = snapshot(
        "development",
        table("users", ("id", "integer"), ("email", "text")),
        table("fee_groups", ("id", "integer")),
    )
    b = snapshot(
        "test",
        table("users", ("id", "integer"), ("phone", "text")),
        table("audit_logs", ("id", "integer")),
    )

    forward = diff(a, b)
    backward = diff(b, a)

    assert forward.missing_in_target == backward.extra_in_target
    assert forward.extra_in_target == backward.missing_in_target
    assert forward.missing_tables == backward.extra_tables
    assert forward.extra_tables == backward.missing_tables


def test_type_and_nullability_changes_are_not_drift():
    source = snapshot("development", table("users", ("email", "text", {"nullable": False})))
    target = snapshot("test", table("users", ("email", "character varying", {"default": "''::text"})))

    assert not diff(source, target).has_drift


def test_column_names_compare_case_sensitively():
    source = snapshot("development", table("merchants", ("merchantId", "integer")))
    target = snapshot("test", table("merchants", ("merchant_id", "integer")))

    result = diff(source, target)

    assert [c.column for c in result.missing_in_target] == ["merchantId"]
    assert [c.column for c in result.extra_in_target] == ["merchant_id"]


def test_grouping_by_table_preserves_discovery_order():
    source = snapshot(
        "development",
        table("agents", ("id", "integer"), ("email", "text"), ("phone", "text")),
        table("merchants", ("id", "integer"), ("mcc", "text")),
    )
    target = snapshot("test", table("agents", ("id", "integer")), table("merchants", ("id", "integer")))

    grouped = diff(source, target).missing_by_table()

    assert list(grouped) == ["agents", "merchants"]
    assert [c.column for c in grouped["agents"]] == ["email", "phone"]


def test_diff_logs_summary_event(caplog):
    source = snapshot("development", table("users", ("id", "integer"), ("email", "text")))
    target = snapshot("test", table("users", ("id", "integer")))

    with caplog.at_level(logging.INFO, logger="driftsync.services.differ"):
        diff(source, target)

    record = next(r for r in caplog.records if r.message == "drift.diff.completed")
    assert record.source_env == "development"
    assert record.target_env == "test"
    assert record.missing_columns == 1
    assert record.has_drift is True
