"""Image schemas returned by image uploads and conversions."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ImageSize(BaseModel):
    """Width and height of an image in pixels."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(..., gt=0, description="Width in pixels")
    height: int = Field(..., gt=0, description="Height in pixels")


class Image(BaseModel):
    """A stored image.

    The store reports the size of the 1x rendition as two flat fields,
    ``image_width`` and ``image_height``, which are collected into
    ``image_size``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        description="Image ID assigned by the store",
        min_length=1
    )

    created_at: datetime = Field(
        ...,
        description="Creation time"
    )

    image_stem: str = Field(
        ...,
        description="File name of the image without extension or resolution suffix"
    )

    image_size: ImageSize = Field(
        ...,
        description="Size of the 1x image"
    )

    @model_validator(mode="before")
    @classmethod
    def collect_image_size(cls, data: Any) -> Any:
        """Build image_size from the flat image_width / image_height fields."""
        if isinstance(data, dict) and "image_size" not in data:
            if "image_width" in data or "image_height" in data:
                data = dict(data)
                data["image_size"] = {
                    "width": data.pop("image_width", None),
                    "height": data.pop("image_height", None),
                }
        return data
