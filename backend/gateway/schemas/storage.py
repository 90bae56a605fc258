from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadUrlRequest(CamelModel):
    # Left untyped; the route decides how to treat non-string values.
    file_name: Any = None
    content_type: Any = None


class UploadUrlResponse(CamelModel):
    signed_url: str
    object_url: str
    expires_in: int


class UploadResponse(CamelModel):
    object_url: str
