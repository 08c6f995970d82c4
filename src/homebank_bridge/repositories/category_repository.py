from __future__ import annotations

import sqlite3
from typing import Any

from homebank_bridge.core.errors import ValidationError
from homebank_bridge.logger import get_logger
from homebank_bridge.models import Category, CategoryType
from homebank_bridge.repositories.base_repository import BaseRepository

logger = get_logger(__name__)

INTERNAL_TRANSFER_CATEGORY = "Internal Transfer"


class CategoryRepository(BaseRepository):
    TABLE = "categories"
    ENTITY = "Category"
    UPDATE_STATEMENTS = {
        "name": "UPDATE categories SET name = ? WHERE id = ?",
        "type": "UPDATE categories SET type = ? WHERE id = ?",
        "parent_id": "UPDATE categories SET parent_id = ? WHERE id = ?",
    }

    def list_rows(self) -> list[sqlite3.Row]:
        return self._db.fetch_all(
            """
            SELECT
                c.id, c.name, c.type, c.parent_id,
                (SELECT COUNT(*) FROM transactions t WHERE t.category_id = c.id) AS usage_count,
                (SELECT SUM(amount) FROM transactions t WHERE t.category_id = c.id) AS total_amount
            FROM categories c
            ORDER BY c.parent_id ASC, c.name ASC
            """
        )

    def list_tree(self) -> list[Category]:
        return build_tree(self.list_rows())

    def find_child(self, name: str, parent_id: int | None) -> int | None:
        """Case-insensitive lookup of ``name`` directly under ``parent_id`` (root when None)."""
        row = self._db.fetch_one(
            """
            SELECT id FROM categories
            WHERE LOWER(name) = LOWER(?) AND parent_id IS ?
            ORDER BY id
            LIMIT 1
            """,
            (name, parent_id),
        )
        return row["id"] if row else None

    def find_by_name(self, name: str) -> int | None:
        row = self._db.fetch_one("SELECT id FROM categories WHERE name = ? LIMIT 1", (name,))
        return row["id"] if row else None

    def _check_parent(self, parent_id: int | None, category_id: int | None = None) -> None:
        if parent_id is None:
            return
        if parent_id == category_id:
            raise ValidationError.for_field("parent_id", "A category cannot be its own parent")
        if not self.exists(parent_id):
            raise ValidationError.for_field("parent_id", "Parent category not found")
        if category_id is not None and category_id in self.ancestors(parent_id):
            raise ValidationError.for_field("parent_id", "Parent would create a cycle")

    def ancestors(self, category_id: int) -> list[int]:
        rows = self._db.fetch_all(
            """
            WITH RECURSIVE chain(id, parent_id) AS (
                SELECT id, parent_id FROM categories WHERE id = ?
                UNION
                SELECT c.id, c.parent_id FROM categories c JOIN chain ON c.id = chain.parent_id
            )
            SELECT id FROM chain
            """,
            (category_id,),
        )
        return [row["id"] for row in rows]

    def create(self, name: str, category_type: CategoryType | str, parent_id: int | None = None) -> int:
        self._check_parent(parent_id)
        return self.insert(name, category_type, parent_id)

    def insert(self, name: str, category_type: CategoryType | str, parent_id: int | None) -> int:
        return self._db.insert(
            "INSERT INTO categories (name, type, parent_id) VALUES (?, ?, ?)",
            (name, CategoryType(category_type).value, parent_id),
        )

    def update(self, category_id: int, changes: dict[str, Any]) -> None:
        with self._db.transaction():
            self.require(category_id)
            if "parent_id" in changes:
                self._check_parent(changes["parent_id"], category_id)
            if isinstance(changes.get("type"), CategoryType):
                changes = {**changes, "type": changes["type"].value}
            self.apply_changes(category_id, changes)

    def delete(self, category_id: int) -> None:
        """Delete a category; children move to the root and references are cleared."""
        with self._db.transaction():
            self.require(category_id)
            self._db.execute("UPDATE categories SET parent_id = NULL WHERE parent_id = ?", (category_id,))
            self._db.execute("UPDATE transactions SET category_id = NULL WHERE category_id = ?", (category_id,))
            self._db.execute(
                "UPDATE payees SET default_category_id = NULL WHERE default_category_id = ?",
                (category_id,),
            )
            self._db.execute("DELETE FROM categories WHERE id = ?", (category_id,))
        logger.info("[CATEGORIES] Deleted category %s.", category_id)


def build_tree(rows: list[sqlite3.Row] | list[dict[str, Any]]) -> list[Category]:
    nodes: dict[int, Category] = {}
    for row in rows:
        data = dict(row)
        data.setdefault("usage_count", 0)
        nodes[data["id"]] = Category(**data)

    roots: list[Category] = []
    for node in nodes.values():
        parent = nodes.get(node.parent_id) if node.parent_id is not None else None
        if parent is None:
            roots.append(node)
        else:
            parent.children.append(node)
    return roots
