from pydantic import BaseModel


class ImageFile(BaseModel):
    name: str
    url: str


class UploadResult(BaseModel):
    url: str


def display_name(url: str) -> str:
    """Last path segment of an image URL ("" for an unset slot)."""
    if not url:
        return ""
    path = url.split("?", 1)[0].split("#", 1)[0].rstrip("/")
    return path.rsplit("/", 1)[-1]
