"""Error hierarchy shared by the service, the HTTP layer and the client."""
from __future__ import annotations


class QuizError(Exception):
    code = "QUIZ_ERROR"
    http_status = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        data = {"code": self.code, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class ValidationError(QuizError):
    code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, {"field": field} if field else None)
        self.field = field

    @classmethod
    def invalid_direction(cls, value) -> ValidationError:
        return cls(f"Invalid direction: {value!r}. Expected EN_TO_PL or PL_TO_EN", "direction")

    @classmethod
    def invalid_difficulty(cls, value) -> ValidationError:
        return cls(f"Invalid difficulty: {value!r}. Expected 1, 2 or 3", "difficulty")

    @classmethod
    def empty_field(cls, field: str) -> ValidationError:
        return cls(f"{field} must not be empty", field)


class NotFoundError(QuizError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity: str, entity_id: str | None = None):
        if entity_id:
            message = f'{entity} with id "{entity_id}" not found'
        else:
            message = f"{entity} not found"
        super().__init__(message, {"entity": entity, "id": entity_id})
        self.entity = entity
        self.entity_id = entity_id

    @classmethod
    def word(cls, word_id: str) -> NotFoundError:
        return cls("Word", word_id)


class TransportError(QuizError):
    """Raised by the RPC client when the server cannot be reached or misbehaves."""

    code = "TRANSPORT_ERROR"
    http_status = 502
