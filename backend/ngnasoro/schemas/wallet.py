from pydantic import BaseModel, ConfigDict
from uuid import UUID
from decimal import Decimal
from typing import Literal, Optional

ClientAccountActionName = Literal["getBalance", "updateBalance", "deposit", "withdrawal", "getTransactions"]


class ClientAccountAction(BaseModel):
    """Body of POST /client-accounts."""

    model_config = ConfigDict(extra="ignore")

    action: ClientAccountActionName
    clientId: Optional[UUID] = None
    userId: Optional[UUID] = None
    sfdId: Optional[UUID] = None
    amount: Optional[Decimal] = None
    description: Optional[str] = None
    performedBy: Optional[UUID] = None
    limit: int = 50
