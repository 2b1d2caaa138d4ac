from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator

from tableside.core.clock import as_utc


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]
