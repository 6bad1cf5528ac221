from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for request/response bodies: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageResponse(ApiModel):
    success: bool = True
    message: str


class ErrorResponse(ApiModel):
    success: bool = False
    message: str
    errors: list[dict] | None = None


class HealthResponse(BaseModel):
    status: str
    database: str
    redis: str
