"""Regression test to prevent duplicate index definitions."""

from __future__ import annotations

from collections import Counter

from binary_network.models import Base


def test_no_duplicate_indices():
    """Ensure no duplicate index names exist across all tables."""

    all_index_names = []
    for table_name, table in Base.metadata.tables.items():
        for idx in table.indexes:
            all_index_names.append((idx.name, table_name))

    name_counter = Counter([name for name, _ in all_index_names])
    duplicates = {name: count for name, count in name_counter.items() if count > 1}

    assert not duplicates, (
        f"Duplicate index names found: {duplicates}. "
        "This typically happens when a column has both 'index=True' "
        "and an explicit Index() object in __table_args__. "
        "Use only one method to define each index."
    )


def test_no_overlapping_column_and_explicit_indices():
    """Ensure columns don't have both index=True and explicit Index objects."""

    errors = []

    for table_name, table in Base.metadata.tables.items():
        for column in table.columns:
            if not column.index:
                continue

            single_column_indexes = [
                idx
                for idx in table.indexes
                if len(idx.columns) == 1 and idx.columns[0].name == column.name
            ]

            if len(single_column_indexes) > 1:
                index_names = [idx.name for idx in single_column_indexes]
                errors.append(
                    f"Table '{table_name}' has multiple single-column indices for "
                    f"'{column.name}': {index_names}."
                )

    assert not errors, "\n".join(errors)


def test_tree_tables_have_expected_indices():
    """Verify the traversal and workflow lookups are indexed."""

    expected = {
        "tree_nodes": {
            "ix_tree_nodes_parent_id",
            "ix_tree_nodes_sponsor_id",
            "ix_tree_nodes_status",
        },
        "pending_recruits": {
            "ix_pending_recruits_status",
            "ix_pending_recruits_upline_id_status",
            "ix_pending_recruits_recruiter_id",
        },
    }

    for table_name, expected_indices in expected.items():
        index_names = {idx.name for idx in Base.metadata.tables[table_name].indexes}
        assert expected_indices.issubset(index_names), (
            f"{table_name} missing expected indices. "
            f"Expected: {expected_indices}, Found: {index_names}"
        )
