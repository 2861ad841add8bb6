from apex.db.base import Base
from apex.db import models  # noqa: F401  ensure models are loaded


def test_metadata_contains_core_tables() -> None:
    table_names = set(Base.metadata.tables.keys())
    expected = {
        "users",
        "protocols",
        "module_protocol_map",
        "module_enrollment",
        "user_protocol_enrollment",
        "protocol_logs",
        "daily_tasks",
        "calendar_integrations",
        "daily_calendar_metrics",
        "user_state",
        "mvd_history",
        "live_nudges",
    }

    assert expected.issubset(table_names)


def test_natural_keys_are_unique_constraints() -> None:
    def unique_columns(table_name: str) -> set:
        table = Base.metadata.tables[table_name]
        return {
            tuple(column.name for column in constraint.columns)
            for constraint in table.constraints
            if constraint.__class__.__name__ == "UniqueConstraint"
        }

    assert ("user_id", "task_key") in unique_columns("daily_tasks")
    assert ("user_id", "date") in unique_columns("daily_calendar_metrics")
    assert ("user_id", "module_id") in unique_columns("module_enrollment")
    assert ("user_id", "protocol_id") in unique_columns("user_protocol_enrollment")
    assert ("user_id", "nudge_key") in unique_columns("live_nudges")
    assert ("user_id", "provider") in unique_columns("calendar_integrations")


def test_calendar_metrics_store_no_event_content() -> None:
    columns = set(Base.metadata.tables["daily_calendar_metrics"].columns.keys())
    assert not columns & {"title", "attendees", "location", "description"}
