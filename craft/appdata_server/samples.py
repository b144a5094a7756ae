"""
Sample entity types.

Registered at startup when Settings.register_samples is on. They give the
form-rendering client something to show and double as test fixtures.
"""

from __future__ import annotations

from typing import ClassVar

from pydantic import ConfigDict, Field

from .entity.types import KEY_MAX, Entity


class UserProfile(Entity):
    model_config = ConfigDict(title="User Profile")

    store_name: ClassVar[str] = "UserProfile"

    id: int = Field(..., ge=0, le=KEY_MAX)
    name: str = Field(..., title="Full Name", description="Enter your full name")
    email: str = Field(..., title="Email", description="Enter your email address")
    age: int = Field(..., ge=0, le=150, title="Age", description="Enter your age")
    is_active: bool = Field(..., title="Is Active", description="Whether the user is active")

    @classmethod
    def default(cls) -> UserProfile:
        return cls(
            id=1,
            name="andeya",
            email="andeyalee@outlook.com",
            age=0,
            is_active=True,
        )


class ProductConfig(Entity):
    model_config = ConfigDict(title="Product Config")

    store_name: ClassVar[str] = "ProductConfig"

    id: int = Field(..., ge=0, le=KEY_MAX, description="The product ID")
    name: str = Field(..., title="Product Name", description="Enter the product name")
    price: float = Field(..., ge=0, title="Price", description="Enter the product price")
    category: str = Field(..., title="Category", description="Select the product category")
    in_stock: bool = Field(..., title="In Stock", description="Whether the product is in stock")

    @classmethod
    def default(cls) -> ProductConfig:
        return cls(id=1, name="craft-gui", price=88.88, category="", in_stock=True)


class SystemSettings(Entity):
    model_config = ConfigDict(title="System Settings")

    store_name: ClassVar[str] = "SystemSettings"

    id: int = Field(..., ge=0, le=KEY_MAX)
    theme: str = Field(..., title="Theme", description="Select the application theme")
    language: str = Field(..., title="Language", description="Select the application language")
    auto_save: bool = Field(..., title="Auto Save", description="Enable auto save functionality")
    max_file_size: int = Field(
        ...,
        ge=1,
        le=1000,
        title="Max File Size",
        description="Maximum file size in MB",
    )

    @classmethod
    def default(cls) -> SystemSettings:
        return cls(id=0, theme="light", language="en", auto_save=False, max_file_size=10)


SAMPLE_ENTITIES: tuple[type[Entity], ...] = (UserProfile, ProductConfig, SystemSettings)
