from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import Message, MessageStatus, UserStatus

NonEmptyStr = Annotated[str, Field(min_length=1)]


# camelCase на проводе, snake_case в коде
class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class RegisterRequest(CamelModel):
    username: NonEmptyStr
    password: NonEmptyStr

class LoginRequest(CamelModel):
    username: NonEmptyStr
    password: NonEmptyStr

class LogoutRequest(CamelModel):
    username: NonEmptyStr
    token: NonEmptyStr

class TokenResponse(CamelModel):
    token: str
    username: str

class OkResponse(CamelModel):
    ok: bool = True

class UserResponse(CamelModel):
    username: str
    status: UserStatus

class SendMessageRequest(CamelModel):
    sender: NonEmptyStr = Field(alias="from")
    receiver: NonEmptyStr = Field(alias="to")
    content: NonEmptyStr

class MarkReadRequest(CamelModel):
    username: NonEmptyStr
    message_ids: List[int]

class DirectMessageResponse(CamelModel):
    kind: Literal["direct"] = "direct"
    id: int
    sender: str
    receiver: str
    content: str
    timestamp: datetime
    status: MessageStatus

class GroupMessageResponse(CamelModel):
    kind: Literal["group"] = "group"
    id: int
    sender: str
    group_id: int
    content: str
    timestamp: datetime
    status: MessageStatus

MessageResponse = Annotated[
    Union[DirectMessageResponse, GroupMessageResponse],
    Field(discriminator="kind")
]

class SendMessageResponse(CamelModel):
    ok: bool = True
    message: MessageResponse

class CreateGroupRequest(CamelModel):
    name: NonEmptyStr
    created_by: NonEmptyStr
    members: Optional[List[str]] = None

class GroupMemberRequest(CamelModel):
    username: NonEmptyStr

class GroupMessageRequest(CamelModel):
    sender: NonEmptyStr = Field(alias="from")
    content: NonEmptyStr

class GroupResponse(CamelModel):
    id: int
    name: str
    created_by: str
    members: List[str]
    created_at: Optional[datetime] = None


# ORM-сообщение -> схема нужного варианта
def message_to_schema(
    message: Message
) -> Union[DirectMessageResponse, GroupMessageResponse]:
    if message.kind == "group":
        return GroupMessageResponse.model_validate(message)
    return DirectMessageResponse.model_validate(message)
