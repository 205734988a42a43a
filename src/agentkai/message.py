from enum import Enum

from pydantic import BaseModel, field_serializer

from agentkai.streaming import ToolCall


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    TOOL = "tool"


class Message(BaseModel):
    role: MessageRole
    content: str = ""

    @field_serializer("role")
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value

    def to_openai(self) -> dict:
        """Return the chat-completions wire form of this message."""
        return {"role": self.role.value, "content": self.content}


class ToolCallRequestMessage(Message):
    role: MessageRole = MessageRole.ASSISTANT
    tool_calls: list[ToolCall]

    @field_serializer("tool_calls")
    def serialize_tool_calls(self, tool_calls: list[ToolCall]) -> list[dict]:
        return [t.to_openai() for t in tool_calls]

    def to_openai(self) -> dict:
        return {
            "role": self.role.value,
            "content": self.content,
            "tool_calls": [t.to_openai() for t in self.tool_calls],
        }


class ToolCallResultMessage(Message):
    role: MessageRole = MessageRole.TOOL
    tool_call_id: str

    def to_openai(self) -> dict:
        return {
            "role": self.role.value,
            "content": self.content,
            "tool_call_id": self.tool_call_id,
        }
