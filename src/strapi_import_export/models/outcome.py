"""Per-record outcomes and the aggregate import result."""

from pydantic import BaseModel, Field

from .enums import OutcomeStatus, RecordState


class ImportOutcome(BaseModel):
    """Result of importing one top-level record.

    Attributes:
        index: Position of the record in the input (0-based)
        status: Created, updated or failed
        entity_id: Id of the written entity (None when failed)
        reason: Failure message
        error_type: Exception class name of the failure
        failed_at: Pipeline stage the record was in when it failed
    """

    index: int
    status: OutcomeStatus
    entity_id: int | None = None
    reason: str | None = None
    error_type: str | None = None
    failed_at: RecordState | None = None

    @classmethod
    def created(cls, index: int, entity_id: int) -> "ImportOutcome":
        return cls(index=index, status=OutcomeStatus.CREATED, entity_id=entity_id)

    @classmethod
    def updated(cls, index: int, entity_id: int) -> "ImportOutcome":
        return cls(index=index, status=OutcomeStatus.UPDATED, entity_id=entity_id)

    @classmethod
    def failed(
        cls, index: int, error: Exception, failed_at: RecordState | None = None
    ) -> "ImportOutcome":
        return cls(
            index=index,
            status=OutcomeStatus.FAILED,
            reason=str(error),
            error_type=type(error).__name__,
            failed_at=failed_at,
        )

    @property
    def succeeded(self) -> bool:
        return self.status != OutcomeStatus.FAILED


class ImportResult(BaseModel):
    """Ordered outcomes of an import run plus aggregate counts.

    Example:
        >>> result = await importer.import_records(records, "api::article.article")
        >>> print(f"{result.created} created, {result.failed} failed")
    """

    collection: str
    outcomes: list[ImportOutcome] = Field(default_factory=list)
    aborted: bool = False
    skipped: int = 0

    @property
    def created(self) -> int:
        return self._count(OutcomeStatus.CREATED)

    @property
    def updated(self) -> int:
        return self._count(OutcomeStatus.UPDATED)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def success(self) -> bool:
        """True when every scheduled record succeeded and the run was not aborted."""
        return self.failed == 0 and not self.aborted

    def failures(self) -> list[ImportOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)
