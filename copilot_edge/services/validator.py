"""Inbound request validation.

Turns a raw JSON payload into either a canonical :class:`ChatEnvelope` or
a ready-made passthrough body (greeting, empty operation result). The
validator is pure: it performs no I/O and keeps no state between calls.
"""

import json
from typing import Any, Dict, List, Optional

from copilot_edge.core.config import Settings
from copilot_edge.core.errors import ValidationError
from copilot_edge.models.chat import (
    ChatEnvelope,
    DirectChatRequest,
    InboundRequest,
    Message,
    OperationRequest,
    Role,
    ValidatedRequest,
)
from copilot_edge.services import normalizer

COPILOT_OPERATION = "generateCopilotResponse"

_ROLES = {role.value for role in Role}


def check_object_depth(value: Any, max_depth: int, current_depth: int = 0) -> None:
    """Raise if dicts/lists nest deeper than ``max_depth``."""
    if current_depth > max_depth:
        raise ValidationError(f"Object nesting exceeds maximum depth of {max_depth}")

    if isinstance(value, dict):
        children = value.values()
    elif isinstance(value, list):
        children = value
    else:
        return

    for child in children:
        if isinstance(child, (dict, list)):
            check_object_depth(child, max_depth, current_depth + 1)


def serialized_size(value: Any) -> int:
    """UTF-8 byte length of the compact JSON form of ``value``."""
    try:
        encoded = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError):
        raise ValidationError("Request body must be JSON-serializable")
    return len(encoded.encode("utf-8"))


class RequestValidator:
    """Validates and canonicalizes both inbound request shapes."""

    def __init__(
        self,
        max_request_size: int = 1024 * 1024,
        max_messages: int = 100,
        max_message_size: int = 10000,
        max_object_depth: int = 10,
        strict_operations: bool = False,
    ):
        self.max_request_size = max_request_size
        self.max_messages = max_messages
        self.max_message_size = max_message_size
        self.max_object_depth = max_object_depth
        self.strict_operations = strict_operations

    @classmethod
    def from_settings(cls, settings: Settings) -> "RequestValidator":
        return cls(
            max_request_size=settings.max_request_size,
            max_messages=settings.max_messages,
            max_message_size=settings.max_message_size,
            max_object_depth=settings.max_object_depth,
            strict_operations=settings.strict_operations,
        )

    def validate(self, payload: Any) -> ValidatedRequest:
        """Validate ``payload`` and return the canonical request.

        Raises:
            ValidationError: if the payload is malformed, oversized or
                uses a disallowed role.
        """
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be an object")

        check_object_depth(payload, self.max_object_depth)

        if serialized_size(payload) > self.max_request_size:
            raise ValidationError(
                f"Request size exceeds maximum of {self.max_request_size} bytes"
            )

        request = self.parse_request(payload)
        if isinstance(request, OperationRequest):
            return self._from_operation(request)

        self._check_messages(request.messages, "messages")
        return ValidatedRequest(
            envelope=ChatEnvelope(
                kind="direct",
                messages=request.messages,
                model=request.model,
                stream=request.stream,
                conversation_id=request.conversation_id,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
        )

    def parse_request(self, payload: Dict[str, Any]) -> InboundRequest:
        """Classify ``payload`` into one of the two request variants."""
        if "operationName" in payload:
            name = payload["operationName"]
            if not isinstance(name, str):
                raise ValidationError("operationName must be a string", field="operationName")
            variables = payload.get("variables")
            return OperationRequest(
                operation_name=name,
                variables=variables if isinstance(variables, dict) else {},
            )

        if "messages" in payload:
            raw_messages = payload["messages"]
            if not isinstance(raw_messages, list):
                raise ValidationError("messages must be an array", field="messages")

            messages = [self._parse_message(item) for item in raw_messages]
            return DirectChatRequest(
                messages=messages,
                stream=self._optional(payload, "stream", bool),
                model=self._optional(payload, "model", str),
                temperature=self._optional(payload, "temperature", (int, float)),
                max_tokens=self._optional(payload, "max_tokens", int),
                conversation_id=self._optional(payload, "conversation_id", str)
                or self._optional(payload, "conversationId", str),
            )

        raise ValidationError(
            "Unsupported request format. Expected CopilotKit GraphQL or chat messages"
        )

    def _from_operation(self, request: OperationRequest) -> ValidatedRequest:
        if request.operation_name != COPILOT_OPERATION:
            if self.strict_operations:
                raise ValidationError(
                    f"Unsupported operation: {request.operation_name}",
                    field="operationName",
                )
            return ValidatedRequest(
                passthrough=normalizer.empty_operation_response(request.operation_name)
            )

        data = request.data
        if data is None:
            raise ValidationError(
                "Missing variables.data in GraphQL mutation", field="variables.data"
            )

        if serialized_size(data) > self.max_request_size // 2:
            raise ValidationError(
                f"Operation data exceeds maximum of {self.max_request_size // 2} bytes",
                field="variables.data",
            )

        messages = self._extract_text_messages(data.get("messages"))
        if not messages:
            return ValidatedRequest(
                passthrough=normalizer.default_copilot_response(request.thread_id)
            )

        self._check_messages(messages, "variables.data.messages")
        return ValidatedRequest(
            envelope=ChatEnvelope(
                kind="operation",
                messages=messages,
                thread_id=request.thread_id,
            )
        )

    def _extract_text_messages(self, raw_messages: Any) -> List[Message]:
        """Pull non-empty, non-system ``textMessage`` entries."""
        if not isinstance(raw_messages, list):
            return []

        messages = []
        for item in raw_messages:
            text_message = item.get("textMessage") if isinstance(item, dict) else None
            if not isinstance(text_message, dict):
                continue

            content = text_message.get("content")
            role = text_message.get("role")
            if not isinstance(content, str) or not content.strip():
                continue
            if role == Role.SYSTEM.value:
                continue
            if role not in _ROLES:
                raise ValidationError(f"Invalid role: {role}", field="role")

            messages.append(Message(role=role, content=content.strip()))
        return messages

    def _parse_message(self, item: Any) -> Message:
        if not isinstance(item, dict):
            raise ValidationError("Each message must be an object", field="messages")

        role = item.get("role")
        content = item.get("content")
        if not role or not content:
            raise ValidationError("Each message must have role and content", field="messages")
        if not isinstance(content, str):
            raise ValidationError("Message content must be a string", field="content")
        if role not in _ROLES:
            raise ValidationError(f"Invalid role: {role}", field="role")

        return Message(role=role, content=content)

    def _check_messages(self, messages: List[Message], field: str) -> None:
        if not messages:
            raise ValidationError("messages must not be empty", field=field)
        if len(messages) > self.max_messages:
            raise ValidationError(
                f"Too many messages: {len(messages)} exceeds maximum of {self.max_messages}",
                field=field,
            )
        for message in messages:
            size = len(message.content.encode("utf-8"))
            if size > self.max_message_size:
                raise ValidationError(
                    f"Message content exceeds maximum of {self.max_message_size} bytes",
                    field="content",
                )

    @staticmethod
    def _optional(payload: Dict[str, Any], name: str, expected: Any) -> Optional[Any]:
        value = payload.get(name)
        if value is None:
            return None
        # bool is an int subclass; keep booleans out of numeric fields
        if isinstance(value, bool) and expected is not bool:
            raise ValidationError(f"{name} has an invalid type", field=name)
        if not isinstance(value, expected):
            raise ValidationError(f"{name} has an invalid type", field=name)
        return value
