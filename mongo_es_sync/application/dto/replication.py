from pydantic import BaseModel


class BootstrapResult(BaseModel):
    """Result DTO for a collection dump."""

    collection: str
    documents_sent: int
    nominal_total: int
    batches_sent: int
    read_errors: int = 0
    duration_seconds: float
    last_id: str | None = None  # Hex ObjectId of the last transferred document
