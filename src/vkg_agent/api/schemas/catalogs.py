"""
Catalog registry models for the API contract
"""

from pydantic import BaseModel, Field
from typing import Optional


class CatalogRegisterRequest(BaseModel):
    """External database to expose as a Trino catalog"""
    name: str = Field(..., min_length=1, description="Label; the catalog is named t{tenant}_{name}")
    connector: str = Field(..., description="postgresql | mysql | mariadb | sqlserver | clickhouse | oracle")
    host: str = Field(..., min_length=1)
    port: Optional[int] = Field(default=None, description="Defaults to the connector's standard port")
    database: Optional[str] = None
    schema_name: Optional[str] = Field(default=None, alias="schema")
    user: str = Field(..., min_length=1)
    password: Optional[str] = None

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "name": "crm",
                    "connector": "postgresql",
                    "host": "localhost",
                    "port": 5432,
                    "database": "crm",
                    "user": "readonly",
                    "password": "secret",
                }
            ]
        },
    }

    def to_config(self) -> dict:
        config = self.model_dump(exclude_none=True)
        if "schema_name" in config:
            config["schema"] = config.pop("schema_name")
        return config
