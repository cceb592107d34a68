"""Tests for inbound request validation."""

import pytest

from copilot_edge.core.errors import ValidationError
from copilot_edge.services.normalizer import DEFAULT_GREETING
from copilot_edge.services.validator import RequestValidator, check_object_depth


def copilot_payload(messages, thread_id="thread-1", operation="generateCopilotResponse"):
    return {
        "operationName": operation,
        "variables": {"data": {"threadId": thread_id, "messages": messages}},
    }


def text_message(role, content):
    return {"textMessage": {"role": role, "content": content}}


class TestDirectRequests:
    """Tests for the plain messages form."""

    def test_valid_request_produces_envelope(self):
        """Test a minimal request is canonicalized."""
        validated = RequestValidator().validate({"messages": [{"role": "user", "content": "Hi"}]})

        assert not validated.is_passthrough
        envelope = validated.envelope
        assert envelope.kind == "direct"
        assert envelope.message_dicts() == [{"role": "user", "content": "Hi"}]
        assert envelope.stream is None

    def test_optional_fields_are_carried(self):
        """Test stream, model, params and conversation id pass through."""
        validated = RequestValidator().validate({
            "messages": [{"role": "user", "content": "Hi"}],
            "stream": True,
            "model": "@cf/openai/gpt-oss-120b",
            "temperature": 0.2,
            "max_tokens": 50,
            "conversationId": "conv-9",
        })

        envelope = validated.envelope
        assert envelope.stream is True
        assert envelope.model == "@cf/openai/gpt-oss-120b"
        assert envelope.params == {"temperature": 0.2, "max_tokens": 50}
        assert envelope.conversation_id == "conv-9"

    def test_empty_messages_rejected(self):
        """Test an empty message list is invalid."""
        with pytest.raises(ValidationError, match="must not be empty"):
            RequestValidator().validate({"messages": []})

    def test_messages_must_be_list(self):
        """Test a non-array messages field is invalid."""
        with pytest.raises(ValidationError):
            RequestValidator().validate({"messages": "hello"})

    def test_missing_content_rejected(self):
        """Test every message needs role and content."""
        with pytest.raises(ValidationError, match="role and content"):
            RequestValidator().validate({"messages": [{"role": "user"}]})

    def test_invalid_role_rejected(self):
        """Test roles outside user/assistant/system are refused."""
        with pytest.raises(ValidationError, match="Invalid role"):
            RequestValidator().validate({"messages": [{"role": "tool", "content": "x"}]})

    def test_too_many_messages(self):
        """Test the message count limit."""
        validator = RequestValidator(max_messages=2)
        messages = [{"role": "user", "content": str(i)} for i in range(3)]

        with pytest.raises(ValidationError, match="Too many messages"):
            validator.validate({"messages": messages})

    def test_message_count_at_limit_allowed(self):
        """Test exactly max_messages messages pass."""
        validator = RequestValidator(max_messages=2)
        messages = [{"role": "user", "content": str(i)} for i in range(2)]

        assert len(validator.validate({"messages": messages}).envelope.messages) == 2

    def test_message_one_byte_over_limit_rejected(self):
        """Test a message one byte over the limit fails."""
        validator = RequestValidator(max_message_size=10)

        with pytest.raises(ValidationError, match="exceeds maximum"):
            validator.validate({"messages": [{"role": "user", "content": "a" * 11}]})

    def test_message_size_measured_in_bytes(self):
        """Test multi-byte content counts its encoded length."""
        validator = RequestValidator(max_message_size=10)

        validator.validate({"messages": [{"role": "user", "content": "a" * 10}]})
        with pytest.raises(ValidationError, match="exceeds maximum"):
            validator.validate({"messages": [{"role": "user", "content": "é" * 6}]})

    def test_request_size_limit(self):
        """Test the whole-body size limit."""
        validator = RequestValidator(max_request_size=100, max_message_size=1000)

        with pytest.raises(ValidationError, match="Request size"):
            validator.validate({"messages": [{"role": "user", "content": "x" * 200}]})

    def test_boolean_is_not_a_number(self):
        """Test temperature=true is refused."""
        with pytest.raises(ValidationError, match="temperature"):
            RequestValidator().validate({
                "messages": [{"role": "user", "content": "Hi"}],
                "temperature": True,
            })

    def test_unknown_shape_rejected(self):
        """Test a body with neither shape is invalid."""
        with pytest.raises(ValidationError, match="Unsupported request format"):
            RequestValidator().validate({"prompt": "hello"})

    def test_non_object_rejected(self):
        """Test a top-level array is invalid."""
        with pytest.raises(ValidationError):
            RequestValidator().validate([1, 2, 3])


class TestObjectDepth:
    """Tests for nesting depth limits."""

    def test_depth_at_limit_allowed(self):
        """Test nesting exactly at the limit passes."""
        check_object_depth({"a": {"b": {}}}, max_depth=2)

    def test_depth_over_limit_rejected(self):
        """Test one level too deep fails."""
        with pytest.raises(ValidationError, match="depth"):
            check_object_depth({"a": {"b": {"c": {}}}}, max_depth=2)

    def test_validate_applies_depth_limit(self):
        """Test deep payloads are refused before parsing."""
        payload = {"messages": [{"role": "user", "content": "Hi"}], "extra": {"a": {"b": {"c": 1}}}}

        with pytest.raises(ValidationError, match="depth"):
            RequestValidator(max_object_depth=2).validate(payload)


class TestOperationRequests:
    """Tests for the CopilotKit operation form."""

    def test_text_messages_extracted(self):
        """Test textMessage entries become the conversation."""
        validated = RequestValidator().validate(copilot_payload([
            text_message("system", "You are helpful"),
            text_message("user", "  Hello  "),
            {"actionExecutionMessage": {"name": "noop"}},
            text_message("assistant", ""),
        ]))

        envelope = validated.envelope
        assert envelope.kind == "operation"
        assert envelope.thread_id == "thread-1"
        assert envelope.message_dicts() == [{"role": "user", "content": "Hello"}]

    def test_no_usable_messages_returns_greeting(self):
        """Test an empty conversation gets the default greeting."""
        validated = RequestValidator().validate(copilot_payload([text_message("system", "x")]))

        assert validated.is_passthrough
        response = validated.passthrough["data"]["generateCopilotResponse"]
        assert response["threadId"] == "thread-1"
        assert response["messages"][0]["content"] == [DEFAULT_GREETING]

    def test_missing_data_rejected(self):
        """Test generateCopilotResponse needs variables.data."""
        with pytest.raises(ValidationError, match="variables.data"):
            RequestValidator().validate({"operationName": "generateCopilotResponse", "variables": {}})

    def test_unknown_operation_gets_empty_result(self):
        """Test other operations answer with an empty data object."""
        validated = RequestValidator().validate({"operationName": "availableAgents", "variables": {}})

        assert validated.passthrough == {"data": {}}

    def test_introspection_gets_schema(self):
        """Test introspection answers with a minimal schema."""
        validated = RequestValidator().validate({"operationName": "IntrospectionQuery"})

        assert "__schema" in validated.passthrough["data"]

    def test_strict_mode_rejects_unknown_operation(self):
        """Test strict operations refuse unknown names."""
        with pytest.raises(ValidationError, match="Unsupported operation"):
            RequestValidator(strict_operations=True).validate({"operationName": "availableAgents"})

    def test_operation_data_half_budget(self):
        """Test operation data is limited to half the request budget."""
        validator = RequestValidator(max_request_size=500, max_message_size=1000)
        payload = copilot_payload([text_message("user", "x" * 300)])

        with pytest.raises(ValidationError, match="Operation data"):
            validator.validate(payload)

    def test_invalid_role_in_text_message(self):
        """Test unknown textMessage roles are refused."""
        with pytest.raises(ValidationError, match="Invalid role"):
            RequestValidator().validate(copilot_payload([text_message("robot", "hi")]))
