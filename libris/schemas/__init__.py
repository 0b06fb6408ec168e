from decimal import Decimal
from typing import Annotated
from pydantic import PlainSerializer

# Fixed point on the wire: two decimals, as a JSON number
Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(round(v, 2)), return_type=float, when_used='json'),
]
