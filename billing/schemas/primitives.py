from __future__ import annotations

from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# --- Numeric primitives ---
Money = Annotated[Decimal, Field(ge=0, max_digits=12, decimal_places=2)]
Factor = Annotated[Decimal, Field(ge=0, le=1, max_digits=8, decimal_places=6)]


class ApiModel(BaseModel):
    """
    Wire models: snake_case in Python, camelCase on the wire.
    Both spellings are accepted on input.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
