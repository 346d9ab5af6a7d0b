"""Table layout and application settings.

TreeConfig describes where the nested-set columns live. Column and table
names end up interpolated into SQL, so every identifier is validated here;
values always travel as bound parameters.
"""

import os
import re
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_identifier(value: str) -> str:
    if not _IDENTIFIER.match(value):
        raise ValueError(f"Invalid SQL identifier: {value!r}")
    return value


class TreeConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    table: str = "nodes"
    key: str = "id"
    lft: str = "lft"
    rgt: str = "rgt"
    parent_id: str = "parent_id"
    scope: tuple[str, ...] = ()
    soft_delete: bool = False
    deleted_at: str = "deleted_at"

    @field_validator("table", "key", "lft", "rgt", "parent_id", "deleted_at")
    @classmethod
    def _identifier(cls, value: str) -> str:
        return _check_identifier(value)

    @field_validator("scope")
    @classmethod
    def _scope_identifiers(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for column in value:
            _check_identifier(column)
        return value


class Settings(BaseModel):
    db_path: str = "nestedset.db"
    tree: TreeConfig = TreeConfig(scope=("tree_id",), soft_delete=True)


def load_settings(env_file: Path | None = None) -> Settings:
    """Build settings from the environment, reading a .env file first if present."""
    load_dotenv(env_file or Path(__file__).resolve().parent.parent / ".env")

    tree_kwargs: dict = {}
    if table := os.environ.get("NESTEDSET_TABLE"):
        tree_kwargs["table"] = table
    scope = os.environ.get("NESTEDSET_SCOPE")
    tree_kwargs["scope"] = (
        tuple(col.strip() for col in scope.split(",") if col.strip())
        if scope is not None
        else ("tree_id",)
    )
    soft_delete = os.environ.get("NESTEDSET_SOFT_DELETE", "1")
    tree_kwargs["soft_delete"] = soft_delete.lower() not in ("0", "false", "no", "")

    return Settings(
        db_path=os.environ.get("NESTEDSET_DB_PATH", "nestedset.db"),
        tree=TreeConfig(**tree_kwargs),
    )
