"""
Tests for SQLGlot projection parsing.
"""
import pytest

from datatables_ssp.projection import ExpressionKind, ProjectionParser


class TestProjectionParser:
    """Parse SELECT lists into projected expressions"""

    def test_column_refs_and_aliases(self):
        """Test qualified columns keep their parts and explicit aliases"""
        parsed = ProjectionParser("sqlite").parse(
            "SELECT u.id, u.name AS full_name FROM users AS u"
        )
        first, second = parsed.projection
        assert first.kind is ExpressionKind.COLUMN
        assert first.parts == ("u", "id")
        assert first.expression == "u.id"
        assert first.alias is None
        assert first.name == "id"
        assert second.alias == "full_name"
        assert second.parts == ("u", "name")

    def test_function_expression(self):
        """Test aggregate calls are rendered canonically"""
        parsed = ProjectionParser("sqlite").parse(
            "SELECT COUNT(o.id) FROM users AS u JOIN orders AS o ON o.user_id = u.id GROUP BY u.id"
        )
        item = parsed.projection[0]
        assert item.kind is ExpressionKind.FUNCTION
        assert item.expression == "COUNT(o.id)"
        assert item.alias is None

    def test_nested_function_rendering(self):
        """Test nested calls render recursively with ', ' between arguments"""
        parsed = ProjectionParser("sqlite").parse(
            "SELECT COALESCE(NULLIF(email, ''), name) AS contact FROM users"
        )
        item = parsed.projection[0]
        assert item.kind is ExpressionKind.FUNCTION
        assert item.expression == "COALESCE(NULLIF(email, ''), name)"
        assert item.alias == "contact"

    def test_other_expression(self):
        """Test arithmetic is kept as rendered SQL"""
        parsed = ProjectionParser("sqlite").parse("SELECT price * qty AS total FROM items")
        item = parsed.projection[0]
        assert item.kind is ExpressionKind.OTHER
        assert item.expression == "price * qty"
        assert item.alias == "total"

    def test_bare_star(self):
        """Test SELECT * is flagged as a wildcard"""
        parsed = ProjectionParser("sqlite").parse("SELECT * FROM users")
        item = parsed.projection[0]
        assert item.is_star
        assert item.parts == ()
        assert [t.name for t in parsed.tables] == ["users"]

    def test_qualified_star_resolves_alias(self):
        """Test t.* keeps its qualifier and resolves to the aliased table"""
        parsed = ProjectionParser("sqlite").parse(
            "SELECT u.*, o.amount FROM users u JOIN orders o ON o.user_id = u.id"
        )
        star = parsed.projection[0]
        assert star.is_star
        assert star.parts == ("u",)
        assert parsed.resolve_table("u").name == "users"
        assert [t.qualifier for t in parsed.tables] == ["u", "o"]

    def test_subquery_tables_are_not_sources(self):
        """Test tables inside subqueries are not FROM sources"""
        parsed = ProjectionParser("sqlite").parse(
            "SELECT u.id FROM users u WHERE u.id IN (SELECT user_id FROM orders)"
        )
        assert [t.name for t in parsed.tables] == ["users"]

    def test_rejects_non_select(self):
        """Test non-SELECT statements are rejected"""
        with pytest.raises(ValueError):
            ProjectionParser("sqlite").parse("UPDATE users SET name = 'x'")

    def test_dialect_normalization(self):
        """Test SQLAlchemy dialect names map onto SQLGlot's"""
        assert ProjectionParser("postgresql").dialect == "postgres"
        assert ProjectionParser("mssql").dialect == "tsql"
        assert ProjectionParser("MySQL").dialect == "mysql"

    def test_column_sql_quotes_only_when_needed(self):
        """Test identifiers are quoted only when they need it"""
        parser = ProjectionParser("sqlite")
        assert parser.column_sql("name", "users") == "users.name"
        assert parser.column_sql("first name", "users") == 'users."first name"'
