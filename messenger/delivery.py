import logging
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from . import message_service
from .models import DirectMessage, Group, GroupMessage, Message, MessageStatus
from .presence import Notifier
from .shemas import message_to_schema

# Настройка логирования
logger = logging.getLogger(__name__)

# --- События realtime-канала (сервер -> клиент) ---
NEW_MESSAGE = "new_message"
NEW_GROUP_MESSAGE = "new_group_message"
MESSAGE_STATUS = "message_status"
GROUP_ADDED = "group_added"
AUTHENTICATED = "authenticated"
ERROR = "error"


def message_payload(message: Message) -> dict[str, Any]:
    return jsonable_encoder(message_to_schema(message), by_alias=True)


def status_payload(message: Message) -> dict[str, Any]:
    return {"id": message.id, "status": message.status.value}


class DeliveryCoordinator:
    # Решает: отправить сообщение сейчас или оставить до переподключения.
    # Смена статуса коммитится до отправки события о ней

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    async def send_direct(
        self,
        session: AsyncSession,
        sender: str,
        receiver: str,
        content: str
    ) -> DirectMessage:
        message = await message_service.create_direct_message(
            session, sender, receiver, content
        )
        await session.commit()

        if self.notifier.is_online(receiver):
            await message_service.mark_delivered(session, message.id)
            await session.commit()
            await session.refresh(message)
            logger.info(f"Message id={message.id} pushed to {receiver}")
            await self.notifier.send(
                receiver, NEW_MESSAGE, message_payload(message)
            )
        else:
            logger.info(
                f"{receiver} is offline, message id={message.id} left as SENT"
            )
        await self.notifier.send(sender, MESSAGE_STATUS, status_payload(message))
        return message

    async def send_group(
        self,
        session: AsyncSession,
        group: Group,
        sender: str,
        content: str
    ) -> GroupMessage:
        message = await message_service.create_group_message(
            session, group.id, sender, content
        )
        await session.commit()

        payload = {**message_payload(message), "groupName": group.name}
        members = group.members
        logger.info(
            f"Fanning out group message id={message.id} to {len(members)} member(s)"
        )
        # Офлайн-участники забирают историю сами через GET /groups/:id/messages
        for member in members:
            await self.notifier.send(member, NEW_GROUP_MESSAGE, payload)
        return message

    async def replay_backlog(
        self,
        session: AsyncSession,
        username: str
    ) -> int:
        backlog = await message_service.get_undelivered_messages(
            session, username
        )
        delivered = 0
        for message in backlog:
            # Сообщение могла уже доставить параллельная переигровка
            if not await message_service.mark_delivered(session, message.id):
                continue
            await session.commit()
            await session.refresh(message)
            await self.notifier.send(
                username, NEW_MESSAGE, message_payload(message)
            )
            await self.notifier.send(
                message.sender, MESSAGE_STATUS, status_payload(message)
            )
            delivered += 1
        logger.info(f"Replayed {delivered} backlogged message(s) to {username}")
        return delivered

    async def mark_read(
        self,
        session: AsyncSession,
        username: str,
        message_ids: list[int]
    ) -> list[Message]:
        # Принадлежность сообщений переписке username не проверяется
        messages = await message_service.mark_read(session, message_ids)
        await session.commit()
        logger.info(f"{username} read {len(messages)} message(s)")
        for message in messages:
            await self.notifier.send(
                message.sender, MESSAGE_STATUS,
                {"id": message.id, "status": MessageStatus.READ.value}
            )
        return messages

    async def notify_group_added(self, group: Group, username: str) -> None:
        await self.notifier.send(
            username, GROUP_ADDED, {"groupId": group.id, "name": group.name}
        )
