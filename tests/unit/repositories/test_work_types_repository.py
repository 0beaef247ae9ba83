"""
Unit tests for WorkTypeRepository stage ordering.
"""

import pytest
from unittest.mock import Mock

from command_center.database.exceptions import EntityNotFoundError, ValidationError
from command_center.database.models import WorkTypeStageDB
from command_center.database.repositories.work_types import DEFAULT_WORK_TYPE, WorkTypeRepository


@pytest.fixture
def work_type_repository(mock_database):
    db, session = mock_database
    repo = WorkTypeRepository()
    repo.db = db
    return repo, session


def stage(stage_id, order_index, key=None):
    return WorkTypeStageDB(
        id=stage_id,
        work_type_id=1,
        name=f"Stage {stage_id}",
        key=key or f"stage_{stage_id}",
        order_index=order_index,
        category="production",
        triggers_scheduler=False,
        triggers_purchase_order=False,
    )


def scalars_result(items):
    result = Mock()
    result.scalars.return_value.all.return_value = items
    return result


def scalar_result(value):
    result = Mock()
    result.scalar_one_or_none = Mock(return_value=value)
    result.scalar = Mock(return_value=value)
    return result


class TestCreate:

    @pytest.mark.asyncio
    async def test_stages_numbered_from_one(self, work_type_repository):
        repo, session = work_type_repository

        work_type = await repo.create(
            name="Gates",
            stages=[{"name": "Measure", "key": "measure"}, {"name": "Fabricate", "key": "fabricate"}],
        )

        assert [s.order_index for s in work_type.stages] == [1, 2]
        assert work_type.stages[0].category == "production"
        session.add.assert_called_once()

    def test_default_work_type_has_seven_stages(self):
        keys = [s["key"] for s in DEFAULT_WORK_TYPE["stages"]]
        assert len(keys) == 7
        assert len(set(keys)) == 7


class TestAddStage:

    @pytest.mark.asyncio
    async def test_appends_after_last(self, work_type_repository):
        repo, session = work_type_repository
        session.execute.side_effect = [scalar_result(1), scalar_result(4)]

        new_stage = await repo.add_stage(1, name="Paint", key="paint")

        assert new_stage.order_index == 5
        session.add.assert_called_once()

    @pytest.mark.asyncio
    async def test_first_stage_is_one(self, work_type_repository):
        repo, session = work_type_repository
        session.execute.side_effect = [scalar_result(1), scalar_result(None)]

        new_stage = await repo.add_stage(1, name="Paint", key="paint")

        assert new_stage.order_index == 1

    @pytest.mark.asyncio
    async def test_missing_work_type(self, work_type_repository):
        repo, session = work_type_repository
        session.execute.return_value = scalar_result(None)

        with pytest.raises(EntityNotFoundError):
            await repo.add_stage(99, name="Paint", key="paint")


class TestDeleteStage:

    @pytest.mark.asyncio
    async def test_closes_gap(self, work_type_repository):
        repo, session = work_type_repository
        stages = [stage(10, 1), stage(11, 2), stage(12, 3)]
        session.execute.return_value = scalars_result(stages)

        assert await repo.delete_stage(1, 11) is True

        session.delete.assert_awaited_once_with(stages[1])
        assert (stages[0].order_index, stages[2].order_index) == (1, 2)

    @pytest.mark.asyncio
    async def test_unknown_stage(self, work_type_repository):
        repo, session = work_type_repository
        session.execute.return_value = scalars_result([stage(10, 1)])

        assert await repo.delete_stage(1, 99) is False
        session.delete.assert_not_awaited()


class TestReorder:

    @pytest.mark.asyncio
    async def test_permutation_rewrites_one_to_n(self, work_type_repository):
        repo, session = work_type_repository
        stages = [stage(10, 1), stage(11, 2), stage(12, 3)]
        session.execute.return_value = scalars_result(stages)

        ordered = await repo.reorder_stages(1, [12, 10, 11])

        assert [s.id for s in ordered] == [12, 10, 11]
        assert [s.order_index for s in ordered] == [1, 2, 3]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ids", [[10, 11], [10, 10, 11], [10, 11, 99], [10, 11, 12, 13]])
    async def test_rejects_non_permutation(self, work_type_repository, ids):
        repo, session = work_type_repository
        stages = [stage(10, 1), stage(11, 2), stage(12, 3)]
        session.execute.return_value = scalars_result(stages)

        with pytest.raises(ValidationError):
            await repo.reorder_stages(1, ids)

        assert [s.order_index for s in stages] == [1, 2, 3]
