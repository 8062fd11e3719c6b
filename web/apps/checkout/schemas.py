"""Pydantic schemas for the checkout endpoints.

Request bodies are parsed here, before any business logic runs. The top level
of each body is closed (unknown keys are rejected); cart items and addresses
tolerate the extra display fields the storefront keeps in its cart.
"""

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from .domain import ShippingAddress


class CartItemIn(BaseModel):
    """One cart entry as sent by the storefront.

    Attributes:
        product_id: Catalog id (``productId``; the legacy cart field ``id`` is
            accepted too). Entries without it are dropped during
            normalisation, not rejected.
        quantity: Requested units; missing or non-positive means 1.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    product_id: Optional[str] = Field(default=None, alias="productId")
    legacy_id: Optional[str] = Field(default=None, alias="id")
    quantity: Optional[int] = None

    @model_validator(mode="after")
    def fold_legacy_id(self):
        if not self.product_id and self.legacy_id:
            self.product_id = self.legacy_id
        return self


class ShippingAddressIn(BaseModel):
    """Destination address. ``prefecture`` drives the shipping fee."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    prefecture: str = Field(default="", max_length=32)
    city: str = Field(default="", max_length=100)
    line1: str = Field(default="", max_length=200, validation_alias=AliasChoices("line1", "address1", "street"))
    line2: Optional[str] = Field(default=None, max_length=200, validation_alias=AliasChoices("line2", "address2"))
    postal_code: str = Field(default="", max_length=16, validation_alias=AliasChoices("postalCode", "zipCode", "postal_code"))
    name: str = Field(default="", max_length=100)

    def to_domain(self) -> ShippingAddress:
        return ShippingAddress(
            prefecture=self.prefecture,
            city=self.city,
            line1=self.line1,
            line2=self.line2 or None,
            postal_code=self.postal_code,
            name=self.name,
        )

    def as_record(self) -> dict:
        """Address as stored on an order."""
        street = self.line1 if not self.line2 else f"{self.line1} {self.line2}"
        return {
            "zipCode": self.postal_code,
            "prefecture": self.prefecture,
            "city": self.city,
            "street": street,
        }


class CartRequest(BaseModel):
    """Body shared by ``/checkout`` and ``/payment/create-intent``."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    items: List[CartItemIn] = Field(max_length=200)
    shipping_address: Optional[ShippingAddressIn] = Field(default=None, alias="shippingAddress")

    def address(self) -> Optional[ShippingAddress]:
        return self.shipping_address.to_domain() if self.shipping_address else None
