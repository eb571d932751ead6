import pytest

from analyst_chat.query_gate import apply_row_ceiling, validate_query


@pytest.mark.parametrize(
    "query",
    [
        "SELECT * FROM sales",
        "select product_name, revenue from product_performance",
        "INSERT INTO sales(id, amount) VALUES ('s1', 10)",
        "UPDATE sales SET amount = 5 WHERE id = 's1'",
        "DELETE FROM sales WHERE id='1'",
        "  SELECT COUNT(*) FROM analytics_users;",
    ],
)
def test_allowed_queries_pass(query):
    result = validate_query(query)
    assert result.valid
    assert result.to_dict() == {"valid": True}


@pytest.mark.parametrize("query", ["DROP TABLE x", "GRANT ALL ON x TO y", "WITH t AS (SELECT 1) SELECT * FROM t", ""])
def test_disallowed_operation_names_allowed_set(query):
    result = validate_query(query)
    assert not result.valid
    for op in ("SELECT", "INSERT", "UPDATE", "DELETE"):
        assert op in result.reason
    assert result.suggestion


def test_delete_without_where_is_rejected():
    result = validate_query("DELETE FROM sales")
    assert not result.valid
    assert "WHERE" in result.reason


def test_update_without_where_is_rejected():
    result = validate_query("UPDATE sales SET amount = 0")
    assert not result.valid
    assert "UPDATE" in result.reason
    assert "WHERE" in result.reason


def test_denylisted_keyword_inside_allowed_statement():
    result = validate_query("SELECT 1; DROP TABLE sales")
    assert not result.valid
    assert "DROP" in result.reason
    assert result.to_dict()["suggestion"]


def test_unqualified_bulk_delete_of_protected_table():
    result = validate_query("DELETE FROM sales WHERE 1=1; DELETE FROM analytics_users")
    assert not result.valid
    assert "analytics_users" in result.reason


def test_where_heuristic_is_textual():
    # A WHERE anywhere in the text satisfies the check.
    result = validate_query("DELETE FROM user_events -- WHERE nothing")
    assert result.valid


def test_row_ceiling_appended_to_select_without_limit():
    assert apply_row_ceiling("SELECT * FROM sales;", 100) == "SELECT * FROM sales LIMIT 100"


def test_row_ceiling_keeps_explicit_limit_and_non_select():
    assert apply_row_ceiling("SELECT * FROM sales LIMIT 5", 100) == "SELECT * FROM sales LIMIT 5"
    assert apply_row_ceiling("DELETE FROM sales WHERE id='1'", 100) == "DELETE FROM sales WHERE id='1'"
