from __future__ import annotations
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ApiType(str, Enum):
    GENERIC = "Generic"
    WORDPRESS = "WordPress"


class _AuthBase(BaseModel):
    # Fields of other variants are rejected, not silently carried.
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


class NoAuth(_AuthBase):
    type: Literal["none"] = "none"


class BasicAuth(_AuthBase):
    type: Literal["basic"] = "basic"
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class BearerAuth(_AuthBase):
    type: Literal["bearer"] = "bearer"
    token: str = Field(min_length=1)


class ApiKeyAuth(_AuthBase):
    type: Literal["apiKey"] = "apiKey"
    header_name: str = Field(min_length=1, alias="headerName")
    api_key: str = Field(min_length=1, alias="apiKey")


class WooCommerceAuth(_AuthBase):
    type: Literal["wooCommerce"] = "wooCommerce"
    consumer_key: str = Field(min_length=1, alias="consumerKey")
    consumer_secret: str = Field(min_length=1, alias="consumerSecret")


AuthConfig = Annotated[
    Union[NoAuth, BasicAuth, BearerAuth, ApiKeyAuth, WooCommerceAuth],
    Field(discriminator="type"),
]


class NewConnection(BaseModel):
    """
    User-submitted connection settings, before the store assigns an id.

    `auth` is a tagged union on `type`: exactly one variant is active and
    credential fields belonging to another variant fail validation.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    base_url: str = Field(min_length=1, alias="baseUrl")
    api_type: ApiType = Field(default=ApiType.GENERIC, alias="apiType")
    auth: AuthConfig = Field(default_factory=NoAuth)

    @field_validator("base_url")
    @classmethod
    def _absolute_http_url(cls, value: str) -> str:
        value = value.strip()
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an absolute http(s) URL: {value!r}")
        return value


class Connection(NewConnection):
    """A stored connection. Mutable only by full replace through the store."""

    id: str = Field(min_length=1)

    @property
    def is_wordpress(self) -> bool:
        return self.api_type == ApiType.WORDPRESS
