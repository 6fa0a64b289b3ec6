import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, asc, or_
from messenger.models import (
    DirectMessage, GroupMessage, Message, MessageStatus
)

# Настройка логирования
logger = logging.getLogger(__name__)

# Создание личного сообщения (статус SENT)
async def create_direct_message(
    session: AsyncSession,
    sender: str,
    receiver: str,
    content: str
) -> DirectMessage:
    logger.info(f"Creating direct message {sender} -> {receiver}")
    message = DirectMessage(
        sender=sender,
        receiver=receiver,
        content=content,
        status=MessageStatus.SENT
    )
    session.add(message)
    await session.flush()  # Получаем id (но без commit)
    logger.info(f"Message created with id={message.id}")
    return message

# Создание группового сообщения; статус у групповых не отслеживается
async def create_group_message(
    session: AsyncSession,
    group_id: int,
    sender: str,
    content: str
) -> GroupMessage:
    logger.info(f"Creating group message from {sender} in group_id={group_id}")
    message = GroupMessage(
        sender=sender,
        group_id=group_id,
        content=content,
        status=MessageStatus.SENT
    )
    session.add(message)
    await session.flush()
    logger.info(f"Group message created with id={message.id}")
    return message

async def get_message_by_id(
    session: AsyncSession,
    message_id: int
) -> Message | None:
    result = await session.execute(
        select(Message).where(Message.id == message_id)
    )
    return result.scalar_one_or_none()

# Недоставленные сообщения получателя, по возрастанию времени
async def get_undelivered_messages(
    session: AsyncSession,
    receiver: str
) -> list[DirectMessage]:
    logger.info(f"Fetching undelivered messages for {receiver}")
    result = await session.execute(
        select(DirectMessage)
        .where(
            DirectMessage.receiver == receiver,
            DirectMessage.status == MessageStatus.SENT
        )
        .order_by(asc(DirectMessage.timestamp), asc(DirectMessage.id))
    )
    messages = result.scalars().all()
    logger.info(f"Fetched {len(messages)} undelivered messages")
    return messages

# История личной переписки пользователя (входящие и исходящие)
async def get_message_history(
    session: AsyncSession,
    username: str
) -> list[DirectMessage]:
    logger.info(f"Fetching message history for {username}")
    result = await session.execute(
        select(DirectMessage)
        .where(or_(
            DirectMessage.sender == username,
            DirectMessage.receiver == username
        ))
        .order_by(asc(DirectMessage.timestamp), asc(DirectMessage.id))
    )
    messages = result.scalars().all()
    logger.info(f"Fetched {len(messages)} messages")
    return messages

# Сообщения группы по возрастанию времени
async def get_group_messages(
    session: AsyncSession,
    group_id: int
) -> list[GroupMessage]:
    logger.info(f"Fetching messages for group_id={group_id}")
    result = await session.execute(
        select(GroupMessage)
        .where(GroupMessage.group_id == group_id)
        .order_by(asc(GroupMessage.timestamp), asc(GroupMessage.id))
    )
    messages = result.scalars().all()
    logger.info(f"Fetched {len(messages)} group messages")
    return messages

# SENT -> DELIVERED; False, если сообщение уже не в SENT
async def mark_delivered(
    session: AsyncSession,
    message_id: int
) -> bool:
    result = await session.execute(
        update(Message)
        .where(
            Message.id == message_id,
            Message.status.in_(MessageStatus.DELIVERED.earlier())
        )
        .values(status=MessageStatus.DELIVERED)
        .execution_options(synchronize_session="evaluate")
    )
    updated = result.rowcount == 1
    logger.info(f"Message id={message_id} delivered={updated}")
    return updated

# Перевод в READ (личные и групповые); возвращает только реально изменённые сообщения
async def mark_read(
    session: AsyncSession,
    message_ids: list[int]
) -> list[Message]:
    ids = set(message_ids)
    if not ids:
        return []
    logger.info(f"Marking {len(ids)} message(s) as read")
    result = await session.execute(
        select(Message)
        .where(
            Message.id.in_(ids),
            Message.status.in_(MessageStatus.READ.earlier())
        )
        .order_by(asc(Message.id))
    )
    messages = result.scalars().all()
    if not messages:
        return []
    await session.execute(
        update(Message)
        .where(
            Message.id.in_([m.id for m in messages]),
            Message.status.in_(MessageStatus.READ.earlier())
        )
        .values(status=MessageStatus.READ)
        .execution_options(synchronize_session="evaluate")
    )
    logger.info(f"Marked {len(messages)} message(s) as read")
    return messages
