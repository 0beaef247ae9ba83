"""
Staff repository.

Staff members drive install capacity: the daily install capacity is the sum
of daily_capacity_hours over active install-role staff.
"""

import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError

from ..connection import get_database
from ..models import StaffMemberDB
from ..exceptions import DatabaseConstraintError, DatabaseOperationError

logger = logging.getLogger(__name__)

STAFF_FIELDS = ("name", "role", "daily_capacity_hours", "skills", "color", "active")


class StaffRepository:
    """Repository for staff member operations."""

    def __init__(self):
        self.db = get_database()

    async def get_all(self, active_only: bool = False) -> List[StaffMemberDB]:
        async with self.db.session() as session:
            query = select(StaffMemberDB)
            if active_only:
                query = query.where(StaffMemberDB.active == True)  # noqa: E712
            result = await session.execute(query.order_by(StaffMemberDB.name))
            return list(result.scalars().all())

    async def get_by_id(self, staff_id: str) -> Optional[StaffMemberDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(StaffMemberDB).where(StaffMemberDB.id == staff_id)
            )
            return result.scalar_one_or_none()

    async def get_install_staff(self) -> List[StaffMemberDB]:
        """Active install-role staff, the pool that defines daily capacity."""
        async with self.db.session() as session:
            result = await session.execute(
                select(StaffMemberDB).where(
                    StaffMemberDB.role == "install",
                    StaffMemberDB.active == True,  # noqa: E712
                )
            )
            return list(result.scalars().all())

    async def create(
        self,
        staff_id: str,
        name: str,
        role: str,
        daily_capacity_hours: int = 8,
        skills: Optional[List[str]] = None,
        color: str = "bg-gray-500",
        active: bool = True,
    ) -> StaffMemberDB:
        """Create a staff member."""
        async with self.db.session() as session:
            try:
                member = StaffMemberDB(
                    id=staff_id,
                    name=name,
                    role=role,
                    daily_capacity_hours=daily_capacity_hours,
                    skills=skills or [],
                    color=color,
                    active=active,
                )
                session.add(member)
                await session.flush()

                logger.info(f"Created staff member: {name} ({role})")
                return member

            except IntegrityError as e:
                logger.error(f"Constraint violation creating staff member {staff_id}: {e}")
                raise DatabaseConstraintError(f"Staff member {staff_id} already exists")

            except Exception as e:
                logger.error(f"Staff creation failed for {staff_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create staff member {staff_id}: {e}")

    async def update(self, staff_id: str, updates: Dict[str, Any]) -> Optional[StaffMemberDB]:
        """Partial update. Returns None if the member does not exist."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(StaffMemberDB).where(StaffMemberDB.id == staff_id)
                )
                member = result.scalar_one_or_none()
                if not member:
                    return None

                for key, value in updates.items():
                    if key in STAFF_FIELDS:
                        setattr(member, key, value)

                await session.flush()
                return member

            except Exception as e:
                logger.error(f"Staff update failed for {staff_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to update staff member {staff_id}: {e}")

    async def delete(self, staff_id: str) -> bool:
        async with self.db.session() as session:
            result = await session.execute(
                delete(StaffMemberDB).where(StaffMemberDB.id == staff_id)
            )
            deleted = result.rowcount > 0
            if deleted:
                logger.info(f"Deleted staff member {staff_id}")
            return deleted

    async def replace_all(self, members: List[Dict[str, Any]]) -> Dict[str, int]:
        """
        Make the table match a full staff list from the settings panel.

        Listed members are created or updated, unlisted ones deleted. The
        "all" filter entry is not a person and never stored.
        """
        wanted = {m["id"]: m for m in members if m["id"] != "all"}
        existing = {m.id for m in await self.get_all()}
        counts = {"created": 0, "updated": 0, "deleted": 0}

        for staff_id, member in wanted.items():
            fields = {k: member[k] for k in STAFF_FIELDS if k in member}
            if staff_id in existing:
                await self.update(staff_id, fields)
                counts["updated"] += 1
            else:
                await self.create(staff_id=staff_id, **fields)
                counts["created"] += 1

        for staff_id in existing - set(wanted):
            await self.delete(staff_id)
            counts["deleted"] += 1

        logger.info(f"Replaced staff list: {counts}")
        return counts

    async def seed_defaults(self, members: List[Dict[str, Any]]) -> int:
        """Insert any default staff that are missing. Skips the "all" filter entry."""
        created = 0
        for member in members:
            if member["id"] == "all":
                continue
            if await self.get_by_id(member["id"]):
                continue
            await self.create(
                staff_id=member["id"],
                name=member["name"],
                role=member["role"],
                daily_capacity_hours=member.get("daily_capacity_hours", 8),
                skills=member.get("skills"),
                color=member.get("color", "bg-gray-500"),
                active=member.get("active", True),
            )
            created += 1
        if created:
            logger.info(f"Seeded {created} staff members")
        return created

    def to_dict(self, member: StaffMemberDB) -> Dict[str, Any]:
        """Convert staff member to dictionary."""
        return {
            "id": member.id,
            "name": member.name,
            "role": member.role,
            "daily_capacity_hours": member.daily_capacity_hours,
            "skills": member.skills or [],
            "color": member.color,
            "active": member.active,
        }


# Singleton
_staff_repository: Optional[StaffRepository] = None


def get_staff_repository() -> StaffRepository:
    """Get the staff repository singleton."""
    global _staff_repository
    if _staff_repository is None:
        _staff_repository = StaffRepository()
    return _staff_repository
