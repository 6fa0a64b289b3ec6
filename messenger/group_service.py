import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, asc
from sqlalchemy.orm import selectinload

from messenger.errors import NotFoundError
from messenger.models import Group, GroupMember

# Настройка логирования
logger = logging.getLogger(__name__)

# Создание группы; создатель всегда входит в участники
async def create_group(
    session: AsyncSession,
    name: str,
    created_by: str,
    members: list[str] | None = None
) -> Group:
    usernames = set(members or []) | {created_by}
    logger.info(f"Creating group '{name}' by {created_by} with {len(usernames)} member(s)")
    group = Group(
        name=name,
        created_by=created_by,
        memberships=[GroupMember(username=u) for u in sorted(usernames)]
    )
    session.add(group)
    await session.flush()
    logger.info(f"Group created with id={group.id}")
    return group

# Получение группы по id (участники подгружаются заново)
async def get_group_by_id(
    session: AsyncSession,
    group_id: int
) -> Group | None:
    logger.info(f"Fetching group with id={group_id}")
    result = await session.execute(
        select(Group)
        .where(Group.id == group_id)
        .options(selectinload(Group.memberships))
        .execution_options(populate_existing=True)
    )
    group = result.scalar_one_or_none()
    if group is None:
        logger.info("Group not found.")
    return group

async def _require_group(session: AsyncSession, group_id: int) -> Group:
    group = await get_group_by_id(session, group_id)
    if group is None:
        raise NotFoundError("group not found")
    return group

# Добавление участника (повторное добавление ничего не меняет)
async def add_member(
    session: AsyncSession,
    group_id: int,
    username: str
) -> Group:
    group = await _require_group(session, group_id)
    if username in group.members:
        logger.info(f"{username} is already a member of group_id={group_id}")
        return group
    logger.info(f"Adding {username} to group_id={group_id}")
    group.memberships.append(GroupMember(username=username))
    await session.flush()
    return group

# Удаление участника (отсутствующий участник не ошибка)
async def remove_member(
    session: AsyncSession,
    group_id: int,
    username: str
) -> Group:
    group = await _require_group(session, group_id)
    logger.info(f"Removing {username} from group_id={group_id}")
    for membership in list(group.memberships):
        if membership.username == username:
            group.memberships.remove(membership)
    await session.flush()
    return group

# Все группы, в которых состоит пользователь
async def get_groups_for_user(
    session: AsyncSession,
    username: str
) -> list[Group]:
    logger.info(f"Fetching groups for {username}")
    result = await session.execute(
        select(Group)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(GroupMember.username == username)
        .options(selectinload(Group.memberships))
        .order_by(asc(Group.created_at), asc(Group.id))
    )
    groups = result.scalars().all()
    logger.info(f"Fetched {len(groups)} groups.")
    return groups
