"""
Product data models for database documents.
Only the fields the order subsystem reads or mutates are modelled here;
catalog management owns the rest of the document.
"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ProductVariant(BaseModel):
    """A purchasable size of a product with its remaining stock."""
    size: str = Field(..., min_length=1, description="Size selector, matched exactly")
    stock: int = Field(..., ge=0, description="Units left; never negative")


class ProductDocument(BaseModel):
    """
    Product document model representing the MongoDB document structure.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = Field(None, alias="_id", description="Product ID")
    name: str = Field(..., min_length=1, description="Product name")
    price: float = Field(..., ge=0, description="List price")
    discounted_price: Optional[float] = Field(None, ge=0, description="Sale price, if any")
    variants: List[ProductVariant] = Field(default_factory=list, description="Size/stock variants")

    @property
    def selling_price(self) -> float:
        if self.discounted_price:
            return self.discounted_price
        return self.price

    def variant(self, size: str) -> Optional[ProductVariant]:
        for variant in self.variants:
            if variant.size == size:
                return variant
        return None
