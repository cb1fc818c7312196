"""
Base model for entities persisted in the blob store: camelCase on the wire, snake_case in Python.
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_blob(self) -> dict:
        """JSON-ready dict with camelCase keys (the persisted and API shape)."""
        return self.model_dump(mode="json", by_alias=True)
