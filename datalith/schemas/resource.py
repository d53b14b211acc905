"""Resource schema returned by uploads."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Resource(BaseModel):
    """A stored binary object and its metadata.

    Instances are built from the store's JSON responses; there is no need to
    create one yourself.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        description="Resource ID assigned by the store",
        min_length=1,
        examples=["3f0b1c1e-6a2e-4c4e-9a8e-0d5f6c1b2a3d"]
    )

    created_at: datetime = Field(
        ...,
        description="Creation time"
    )

    file_type: str = Field(
        ...,
        description="MIME type of the stored file",
        examples=["image/png"]
    )

    file_size: int = Field(
        ...,
        ge=0,
        description="File size in bytes"
    )

    file_name: str = Field(
        ...,
        description="File name"
    )

    is_temporary: bool = Field(
        ...,
        description="Whether the store may expire this resource"
    )
