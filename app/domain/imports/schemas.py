"""Import domain schemas"""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from ...services.document_classifier import InvoiceData


class BatchImportItem(BaseModel):
    """One reviewed document; its file is sent as the form field file_<id>"""

    id: str = Field(min_length=1)
    type: Literal["expense", "invoice"]
    data: dict
    suggestedFilename: str = Field(min_length=1)


class ImportedInvoice(InvoiceData):
    # Absent: match by client name. None: create a new client. Id: use that client.
    selectedClientId: Optional[int] = None
