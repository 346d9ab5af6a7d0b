"""Database schema DDL. All tables use CREATE IF NOT EXISTS for idempotency."""

from nestedset.config import TreeConfig


def nodes_table_sql(config: TreeConfig) -> str:
    """DDL for a nested-set table shaped by ``config``.

    Scope columns are declared as TEXT; the soft-delete column only exists
    when soft delete is enabled.
    """
    columns = [
        f"{config.key} INTEGER PRIMARY KEY AUTOINCREMENT",
        "name TEXT",
        "attributes TEXT NOT NULL DEFAULT '{}'",
        f"{config.parent_id} INTEGER",
        f"{config.lft} INTEGER NOT NULL DEFAULT 0",
        f"{config.rgt} INTEGER NOT NULL DEFAULT 0",
    ]
    columns += [f"{column} TEXT" for column in config.scope]
    if config.soft_delete:
        columns.append(f"{config.deleted_at} TEXT")

    body = ",\n    ".join(columns)
    scope_cols = ", ".join((*config.scope, config.lft, config.rgt))
    return f"""
CREATE TABLE IF NOT EXISTS {config.table} (
    {body}
);

CREATE INDEX IF NOT EXISTS idx_{config.table}_bounds ON {config.table}({scope_cols});
CREATE INDEX IF NOT EXISTS idx_{config.table}_parent_id ON {config.table}({config.parent_id});
"""


# Default table: one forest per tree_id, soft delete enabled.
SCHEMA_SQL = nodes_table_sql(TreeConfig(scope=("tree_id",), soft_delete=True))
