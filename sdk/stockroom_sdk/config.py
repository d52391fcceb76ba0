"""
Configuration for the Stockroom SDK.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """SDK configuration loaded from environment."""

    # Backend collections
    stores_collection: str = Field(default="stores", description="Collection holding stores")
    products_collection: str = Field(default="products", description="Collection holding products")
    logs_collection: str = Field(default="logs", description="Collection holding audit logs")

    # Presentation
    default_store_description: str = Field(
        default="No description provided.",
        description="Description stored when a store is created without one",
    )
    currency_symbol: str = Field(default="₱", description="Prefix for prices in audit logs")

    # Auth
    min_password_length: int = Field(default=6, description="Shortest password accepted at sign-up")

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING or ERROR")
    log_format: str = Field(default="json", description="json or text")

    model_config = {"env_prefix": "STOCKROOM_"}
