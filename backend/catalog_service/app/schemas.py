# backend/catalog_service/app/schemas.py

from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ProductPayload(BaseModel):
    """
    Body of POST /api/products and PUT /api/products/{id}.

    Only id/name are typed here. Every other field is taken as sent and
    normalized by the write path, so a malformed value falls back to its
    default instead of failing the request.
    """

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: Optional[str] = Field(None, max_length=128)
    name: Optional[str] = Field(None, max_length=255)
    brand: Any = None
    category: Any = None
    price: Any = None
    stock: Any = None
    colors: Any = None
    features: Any = None
    specs: Any = None
    tags: Any = None
    active: Any = None
    featured: Any = None
    release: Any = Field(
        None,
        validation_alias=AliasChoices("release", "release_date"),
        description="Release date, YYYY-MM-DD or an ISO timestamp.",
    )
    warranty: Any = None
    notes: Any = None
    images: Any = Field(
        None, description="Replaces all images: URL strings or {url} objects."
    )
    services: Any = Field(
        None,
        description="Replaces all services: [{k, v}] entries or a {key: value} mapping.",
    )


class ImageCreate(BaseModel):
    url: Optional[str] = None


class ServiceCreate(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    k: Optional[str] = Field(None, validation_alias=AliasChoices("k", "key"))
    v: Optional[Union[str, int, float, bool]] = Field(
        None, validation_alias=AliasChoices("v", "value")
    )


class ServiceUpdate(ServiceCreate):
    pass


class ReviewCreate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    rating: Optional[float] = None
    comment: Optional[str] = None


class ReviewResponse(BaseModel):
    id: int
    name: str
    rating: float
    comment: str = ""
    created_ms: Optional[int] = None
    created_at: str = ""


class ProductResponse(BaseModel):
    id: str
    name: str
    brand: str = ""
    category: str = ""
    price: Union[int, float] = 0
    stock: int = 0
    colors: List[Any] = []
    features: List[Any] = []
    specs: Dict[str, Any] = {}
    tags: List[Any] = []
    active: bool = True
    featured: bool = False
    release: str = ""
    warranty: str = ""
    notes: str = ""
    created_at: str = ""
    images: List[str] = []
    services: Dict[str, Union[int, float, str]] = {}
    reviews: List[ReviewResponse] = []
