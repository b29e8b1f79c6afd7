"""Reusable base models for chain payloads and persisted records."""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Pydantic model whose fields are aliased to their camel case names.

    `block_number` validates from either `block_number` or `blockNumber` and is
    written back as `blockNumber` when dumped with `by_alias=True`.

    Persisted records and API payloads use the camel case form, which is also
    the form the remote node speaks.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_default=True,
        arbitrary_types_allowed=True,
    )

    def to_document(self) -> dict[str, Any]:
        """Dump the model as a JSON-compatible dict keyed by camel case names."""
        return self.model_dump(mode="json", by_alias=True)


class StrictBaseModel(CamelModel):
    """An immutable pydantic base model that rejects unknown fields."""

    model_config = CamelModel.model_config | {
        "extra": "forbid",
        "frozen": True,
    }
