from pydantic import BaseModel, Field, field_validator

from tableside.models.models import ProductCategoryEnum
from tableside.schemas.common import UtcDatetime


class ProductBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    price: float = Field(ge=0)
    description: str = ""
    full_description: str = ""
    image: str = ""
    rating: float = Field(default=0.0, ge=0, le=5)
    spice_level: int = Field(default=0, ge=0, le=5)
    chef_special: bool = False
    order_count: int = Field(default=0, ge=0)
    review_count: int = Field(default=0, ge=0)
    category: ProductCategoryEnum = ProductCategoryEnum.MAIN_COURSE
    is_popular: bool = False
    is_available: bool = True

    @field_validator("name")
    @classmethod
    def _name_strip(cls, value: str) -> str:
        return value.strip()


class ProductCreate(ProductBase):
    id: str | None = Field(default=None, max_length=64)


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    price: float | None = Field(default=None, ge=0)
    description: str | None = None
    full_description: str | None = None
    image: str | None = None
    rating: float | None = Field(default=None, ge=0, le=5)
    spice_level: int | None = Field(default=None, ge=0, le=5)
    chef_special: bool | None = None
    order_count: int | None = Field(default=None, ge=0)
    review_count: int | None = Field(default=None, ge=0)
    category: ProductCategoryEnum | None = None
    is_popular: bool | None = None
    is_available: bool | None = None


class ProductPublic(ProductBase):
    id: str
    created_at: UtcDatetime | None = None
    updated_at: UtcDatetime | None = None

    model_config = {"from_attributes": True}


class MenuCategory(BaseModel):
    category: str
    title: str
    products: list[ProductPublic]


class MenuPublic(BaseModel):
    categories: list[MenuCategory]
    popular: list[ProductPublic]
