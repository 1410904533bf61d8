# app/models/api/base.py
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Request/response bodies use the client's camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
