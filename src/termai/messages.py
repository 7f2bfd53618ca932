"""Conversation data model: role-tagged messages, function calls, usage."""

from dataclasses import dataclass, field
from typing import Any, Literal

SYSTEM = "system"
USER = "user"
ASSISTANT = "assistant"
FUNCTION = "function"
FUNCTION_CALL = "function_call"


@dataclass
class FunctionCall:
    """A model request to invoke a locally registered function."""
    name: str
    arguments: dict[str, Any]
    call_id: str


@dataclass
class FunctionResult:
    """Outcome of one function call, paired to it by call_id."""
    name: str
    result: str
    call_id: str
    error: str | None = None


@dataclass
class SystemMessage:
    content: str
    role: Literal["system"] = field(default=SYSTEM, init=False)


@dataclass
class UserMessage:
    content: str
    role: Literal["user"] = field(default=USER, init=False)


@dataclass
class AssistantMessage:
    content: str
    role: Literal["assistant"] = field(default=ASSISTANT, init=False)


@dataclass
class FunctionCallMessage:
    content: list[FunctionCall]
    role: Literal["function_call"] = field(default=FUNCTION_CALL, init=False)


@dataclass
class FunctionMessage:
    content: list[FunctionResult]
    role: Literal["function"] = field(default=FUNCTION, init=False)


Message = SystemMessage | UserMessage | AssistantMessage | FunctionCallMessage | FunctionMessage

TEXT_MESSAGES = {SYSTEM: SystemMessage, USER: UserMessage, ASSISTANT: AssistantMessage}


@dataclass
class FunctionDefinition:
    """Declarative function schema advertised to the provider."""
    name: str
    description: str
    properties: dict[str, dict[str, Any]]
    required: list[str] = field(default_factory=list)

    def parameters(self) -> dict[str, Any]:
        params: dict[str, Any] = {"type": "object", "properties": self.properties}
        if self.required:
            params["required"] = list(self.required)
        return params

    def to_schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters(),
        }


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            model=self.model or other.model,
        )


# "auto", "none", or {"name": "<function>"} to force one function
FunctionCallPolicy = str | dict[str, str]


@dataclass
class CompletionOptions:
    functions: list[FunctionDefinition] = field(default_factory=list)
    function_call: FunctionCallPolicy = "auto"


@dataclass
class CompletionResult:
    content: str
    function_calls: list[FunctionCall] = field(default_factory=list)
    usage: TokenUsage | None = None


def message_to_dict(msg: Message) -> dict[str, Any]:
    """Serialize a message into its persisted JSON shape."""
    if isinstance(msg, FunctionCallMessage):
        return {
            "role": msg.role,
            "content": [
                {"name": c.name, "arguments": c.arguments, "callId": c.call_id}
                for c in msg.content
            ],
        }
    if isinstance(msg, FunctionMessage):
        content = []
        for r in msg.content:
            entry: dict[str, Any] = {"name": r.name, "result": r.result, "callId": r.call_id}
            if r.error is not None:
                entry["error"] = r.error
            content.append(entry)
        return {"role": msg.role, "content": content}
    if isinstance(msg, (SystemMessage, UserMessage, AssistantMessage)):
        return {"role": msg.role, "content": msg.content}
    raise TypeError(f"Not a message: {msg!r}")


def message_from_dict(data: dict[str, Any]) -> Message:
    """Inverse of message_to_dict. Raises ValueError on an unknown role or shape."""
    role = data.get("role")
    content = data.get("content")

    if role in TEXT_MESSAGES:
        if not isinstance(content, str):
            raise ValueError(f"{role} message content must be text")
        return TEXT_MESSAGES[role](content)

    try:
        return _function_message(role, content)
    except KeyError as e:
        raise ValueError(f"{role} entry is missing {e}") from e


def _function_message(role: Any, content: Any) -> Message:
    if role == FUNCTION_CALL:
        return FunctionCallMessage([
            FunctionCall(
                name=c["name"],
                arguments=dict(c.get("arguments") or {}),
                call_id=c["callId"],
            )
            for c in _entries(content)
        ])

    if role == FUNCTION:
        return FunctionMessage([
            FunctionResult(
                name=r["name"],
                result=r.get("result", ""),
                call_id=r["callId"],
                error=r.get("error"),
            )
            for r in _entries(content)
        ])

    raise ValueError(f"Unknown message role: {role!r}")


def _entries(content: Any) -> list[dict[str, Any]]:
    if not isinstance(content, list):
        raise ValueError("function message content must be a list")
    try:
        return [dict(entry) for entry in content]
    except (TypeError, ValueError) as e:
        raise ValueError(f"Malformed function entry: {e}") from e
