from sqlalchemy import inspect

import biowell.db.session as session_module


def test_create_tables_builds_full_schema_and_is_idempotent(test_db_path) -> None:
    session_module.create_tables()
    inspector = inspect(session_module.engine)
    columns = {
        table: {column["name"] for column in inspector.get_columns(table)}
        for table in ("chat_history", "health_metrics", "supplement_stacks")
    }
    assert "context_enhanced" in columns["chat_history"]
    assert {"source", "unit"} <= columns["health_metrics"]
    assert "is_favorite" in columns["supplement_stacks"]
    assert session_module.DB_PATH == str(test_db_path)
