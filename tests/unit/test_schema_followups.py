"""
Unit tests for post-mutation follow-ups.
"""

import pytest

from schemashift.schema.executor import MutationExecutor, MutationResult, MutationStatus
from schemashift.schema.followups import PrivilegeRenameFollowUp


class TestPrivilegeRenameFollowUp:
    """Test carrying column grants over to renamed columns."""

    def test_statements(self, store_factory):
        follow_up = PrivilegeRenameFollowUp(store_factory([]), "shop")
        result = MutationResult(
            table="users",
            status=MutationStatus.SUCCESS,
            renamed_columns={"name": "display_name", "mail": "email"},
        )

        assert follow_up.statements(result) == [
            "UPDATE mysql.columns_priv SET Column_name = 'display_name' "
            "WHERE Db = 'shop' AND Table_name = 'users' AND Column_name = 'name'",
            "UPDATE mysql.columns_priv SET Column_name = 'email' "
            "WHERE Db = 'shop' AND Table_name = 'users' AND Column_name = 'mail'",
            "FLUSH PRIVILEGES",
        ]

    def test_values_are_escaped(self, store_factory):
        follow_up = PrivilegeRenameFollowUp(store_factory([]), "shop")
        result = MutationResult(table="users", renamed_columns={"a": "o'brien"})

        assert "SET Column_name = 'o\\'brien'" in follow_up.statements(result)[0]

    def test_nothing_renamed(self, store_factory):
        follow_up = PrivilegeRenameFollowUp(store_factory([]), "shop")

        assert follow_up.statements(MutationResult(table="users")) == []

    @pytest.mark.asyncio
    async def test_runs_through_executor(self, store_factory):
        store = store_factory([])
        executor = MutationExecutor(store)
        result = MutationResult(
            table="users",
            status=MutationStatus.SUCCESS,
            renamed_columns={"name": "display_name"},
        )

        await executor.run_follow_ups(result, [PrivilegeRenameFollowUp(store, "shop")])

        assert store.executed[-1] == "FLUSH PRIVILEGES"
        assert len(store.executed) == 2
        assert result.follow_up_errors == []

    @pytest.mark.asyncio
    async def test_missing_grant_tables_are_collected(self, store_factory):
        store = store_factory([], failing_calls=[0])
        executor = MutationExecutor(store)
        result = MutationResult(
            table="users",
            status=MutationStatus.SUCCESS,
            renamed_columns={"name": "display_name"},
        )

        await executor.run_follow_ups(result, [PrivilegeRenameFollowUp(store, "shop")])

        assert len(result.follow_up_errors) == 1
        assert result.follow_up_errors[0].startswith("privilege-rename: ")
        assert result.status == MutationStatus.SUCCESS
