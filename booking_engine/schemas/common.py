from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, PlainSerializer

# Amounts are kept as Decimal internally and written to JSON as numbers
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
