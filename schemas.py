from typing import Optional, Union

from pydantic import BaseModel


class CodeBlockRecord(BaseModel):
    id: str
    title: str
    initial_template: str = ""
    solution: str = ""


class ChatMessage(BaseModel):
    sender: str
    text: str


# ---- Inbound socket payloads ----

class JoinRoomPayload(BaseModel):
    roomId: str


class CodeUpdatePayload(BaseModel):
    roomId: str
    code: str


class ChatMessagePayload(BaseModel):
    roomId: str
    message: str
    sender: Optional[str] = None


class LeaveRoomPayload(BaseModel):
    roomId: str


def parse_join_payload(data: Union[str, dict, None]) -> JoinRoomPayload:
    """join-room accepts either a bare room key or {"roomId": key}"""
    if isinstance(data, str):
        return JoinRoomPayload(roomId=data)
    return JoinRoomPayload.model_validate(data or {})
