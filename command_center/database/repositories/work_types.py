"""
Work type repository.

A work type is a named job template with an ordered checklist of stages.
Stage order_index is 1-based and contiguous within a work type; the only way
to change order is reorder_stages with the full id list.
"""

import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..connection import get_database
from ..models import WorkTypeDB, WorkTypeStageDB
from ..exceptions import (
    DatabaseConstraintError,
    DatabaseOperationError,
    EntityNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

WORK_TYPE_FIELDS = ("name", "description", "color", "is_default", "is_active")
STAGE_FIELDS = ("name", "key", "category", "triggers_scheduler", "triggers_purchase_order")

DEFAULT_WORK_TYPE = {
    "name": "PVC Fencing: Supply & Install",
    "description": "Standard supply and install job",
    "color": "blue",
    "is_default": True,
    "stages": [
        {"name": "Order Materials", "key": "order_materials", "category": "purchase_order",
         "triggers_purchase_order": True},
        {"name": "Manufacture Posts", "key": "manufacture_posts", "category": "production"},
        {"name": "Install Posts", "key": "install_posts", "category": "install",
         "triggers_scheduler": True},
        {"name": "Measure Panels", "key": "measure_panels", "category": "install"},
        {"name": "Manufacture Panels", "key": "manufacture_panels", "category": "production"},
        {"name": "Install Panels", "key": "install_panels", "category": "install",
         "triggers_scheduler": True},
        {"name": "Final Invoice", "key": "final_invoice", "category": "admin"},
    ],
}


class WorkTypeRepository:
    """Repository for work types and their stages."""

    def __init__(self):
        self.db = get_database()

    # ==================== WORK TYPES ====================

    async def get_all(self, active_only: bool = False) -> List[WorkTypeDB]:
        async with self.db.session() as session:
            query = select(WorkTypeDB).options(selectinload(WorkTypeDB.stages))
            if active_only:
                query = query.where(WorkTypeDB.is_active == True)  # noqa: E712
            result = await session.execute(query.order_by(WorkTypeDB.id))
            return list(result.scalars().all())

    async def get_by_id(self, work_type_id: int) -> Optional[WorkTypeDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(WorkTypeDB)
                .options(selectinload(WorkTypeDB.stages))
                .where(WorkTypeDB.id == work_type_id)
            )
            return result.scalar_one_or_none()

    async def create(
        self,
        name: str,
        description: Optional[str] = None,
        color: str = "blue",
        is_default: bool = False,
        is_active: bool = True,
        stages: Optional[List[Dict[str, Any]]] = None,
    ) -> WorkTypeDB:
        """Create a work type, optionally with its initial stages in order."""
        async with self.db.session() as session:
            try:
                work_type = WorkTypeDB(
                    name=name,
                    description=description,
                    color=color,
                    is_default=is_default,
                    is_active=is_active,
                )
                for index, stage in enumerate(stages or [], start=1):
                    work_type.stages.append(WorkTypeStageDB(
                        name=stage["name"],
                        key=stage["key"],
                        order_index=index,
                        category=stage.get("category", "production"),
                        triggers_scheduler=stage.get("triggers_scheduler", False),
                        triggers_purchase_order=stage.get("triggers_purchase_order", False),
                    ))
                session.add(work_type)
                await session.flush()

                logger.info(f"Created work type: {name} with {len(work_type.stages)} stages")
                return work_type

            except IntegrityError as e:
                logger.error(f"Constraint violation creating work type {name}: {e}")
                raise DatabaseConstraintError(f"Cannot create work type {name}")

            except Exception as e:
                logger.error(f"Work type creation failed for {name}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create work type {name}: {e}")

    async def update(self, work_type_id: int, updates: Dict[str, Any]) -> Optional[WorkTypeDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(WorkTypeDB)
                .options(selectinload(WorkTypeDB.stages))
                .where(WorkTypeDB.id == work_type_id)
            )
            work_type = result.scalar_one_or_none()
            if not work_type:
                return None

            for key, value in updates.items():
                if key in WORK_TYPE_FIELDS:
                    setattr(work_type, key, value)
            await session.flush()
            return work_type

    async def delete(self, work_type_id: int) -> bool:
        """Delete a work type and its stages. Jobs keep running with work_type_id NULL."""
        async with self.db.session() as session:
            result = await session.execute(
                select(WorkTypeDB).where(WorkTypeDB.id == work_type_id)
            )
            work_type = result.scalar_one_or_none()
            if not work_type:
                return False
            await session.delete(work_type)
            logger.info(f"Deleted work type {work_type_id}")
            return True

    async def seed_default(self) -> Optional[WorkTypeDB]:
        """Create the default work type when none exist yet."""
        async with self.db.session() as session:
            result = await session.execute(select(func.count(WorkTypeDB.id)))
            if result.scalar() > 0:
                return None

        data = dict(DEFAULT_WORK_TYPE)
        return await self.create(**data)

    # ==================== STAGES ====================

    async def add_stage(
        self,
        work_type_id: int,
        name: str,
        key: str,
        category: str = "production",
        triggers_scheduler: bool = False,
        triggers_purchase_order: bool = False,
    ) -> WorkTypeStageDB:
        """Append a stage at the end of the work type's checklist."""
        async with self.db.session() as session:
            exists = await session.execute(
                select(WorkTypeDB.id).where(WorkTypeDB.id == work_type_id)
            )
            if exists.scalar_one_or_none() is None:
                raise EntityNotFoundError(f"Work type {work_type_id} not found")

            result = await session.execute(
                select(func.max(WorkTypeStageDB.order_index))
                .where(WorkTypeStageDB.work_type_id == work_type_id)
            )
            next_index = (result.scalar() or 0) + 1

            stage = WorkTypeStageDB(
                work_type_id=work_type_id,
                name=name,
                key=key,
                order_index=next_index,
                category=category,
                triggers_scheduler=triggers_scheduler,
                triggers_purchase_order=triggers_purchase_order,
            )
            session.add(stage)
            await session.flush()
            logger.info(f"Added stage {key} to work type {work_type_id} at position {next_index}")
            return stage

    async def update_stage(
        self, work_type_id: int, stage_id: int, updates: Dict[str, Any]
    ) -> Optional[WorkTypeStageDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(WorkTypeStageDB).where(
                    WorkTypeStageDB.id == stage_id,
                    WorkTypeStageDB.work_type_id == work_type_id,
                )
            )
            stage = result.scalar_one_or_none()
            if not stage:
                return None

            for key, value in updates.items():
                if key in STAGE_FIELDS:
                    setattr(stage, key, value)
            await session.flush()
            return stage

    async def delete_stage(self, work_type_id: int, stage_id: int) -> bool:
        """Remove a stage and close the gap so order_index stays 1..n."""
        async with self.db.session() as session:
            result = await session.execute(
                select(WorkTypeStageDB)
                .where(WorkTypeStageDB.work_type_id == work_type_id)
                .order_by(WorkTypeStageDB.order_index)
            )
            stages = list(result.scalars().all())
            target = next((s for s in stages if s.id == stage_id), None)
            if not target:
                return False

            await session.delete(target)
            remaining = [s for s in stages if s.id != stage_id]
            for index, stage in enumerate(remaining, start=1):
                stage.order_index = index
            await session.flush()
            return True

    async def get_stages(self, work_type_id: int) -> List[WorkTypeStageDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(WorkTypeStageDB)
                .where(WorkTypeStageDB.work_type_id == work_type_id)
                .order_by(WorkTypeStageDB.order_index)
            )
            return list(result.scalars().all())

    async def get_stage(self, stage_id: int) -> Optional[WorkTypeStageDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(WorkTypeStageDB).where(WorkTypeStageDB.id == stage_id)
            )
            return result.scalar_one_or_none()

    async def reorder_stages(self, work_type_id: int, stage_ids: List[int]) -> List[WorkTypeStageDB]:
        """
        Rewrite order_index to 1..n following stage_ids.

        stage_ids must be a permutation of the work type's current stage ids.
        Raises ValidationError otherwise, leaving the order untouched.
        """
        async with self.db.session() as session:
            result = await session.execute(
                select(WorkTypeStageDB).where(WorkTypeStageDB.work_type_id == work_type_id)
            )
            stages = {stage.id: stage for stage in result.scalars().all()}

            if len(stage_ids) != len(set(stage_ids)) or set(stage_ids) != set(stages):
                raise ValidationError(
                    f"Reorder for work type {work_type_id} must list each of its "
                    f"{len(stages)} stages exactly once"
                )

            for index, stage_id in enumerate(stage_ids, start=1):
                stages[stage_id].order_index = index
            await session.flush()

            logger.info(f"Reordered {len(stage_ids)} stages of work type {work_type_id}")
            return [stages[stage_id] for stage_id in stage_ids]

    # ==================== SERIALIZATION ====================

    def stage_to_dict(self, stage: WorkTypeStageDB) -> Dict[str, Any]:
        return {
            "id": stage.id,
            "work_type_id": stage.work_type_id,
            "name": stage.name,
            "key": stage.key,
            "order_index": stage.order_index,
            "category": stage.category,
            "triggers_scheduler": stage.triggers_scheduler,
            "triggers_purchase_order": stage.triggers_purchase_order,
        }

    def to_dict(self, work_type: WorkTypeDB, include_stages: bool = True) -> Dict[str, Any]:
        data = {
            "id": work_type.id,
            "name": work_type.name,
            "description": work_type.description,
            "color": work_type.color,
            "is_default": work_type.is_default,
            "is_active": work_type.is_active,
        }
        if include_stages:
            data["stages"] = [self.stage_to_dict(s) for s in work_type.stages]
        return data


# Singleton
_work_type_repository: Optional[WorkTypeRepository] = None


def get_work_type_repository() -> WorkTypeRepository:
    """Get the work type repository singleton."""
    global _work_type_repository
    if _work_type_repository is None:
        _work_type_repository = WorkTypeRepository()
    return _work_type_repository
