from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from apiexplorer.classifier.response_classifier import (
    Classification,
    Discovery,
    DiscoveryRoute,
    classify,
    row_sequence,
)
from apiexplorer.columns.model import ColumnModel
from apiexplorer.connections.models import Connection
from apiexplorer.errors import ExportError
from apiexplorer.export.projector import ExportResult, export
from apiexplorer.query.models import ApiResponseEnvelope, QueryRequest
from apiexplorer.query.orchestrator import QueryOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class RunOutcome:
    generation: int
    envelope: ApiResponseEnvelope
    applied: bool    # False when a newer run was issued before this one resolved


class ExplorerSession:
    """
    Displayed state of one explorer view: the latest envelope and the Column
    Model derived from it.

    Every run() takes the next generation number. When it resolves, its
    envelope is applied only if no newer run was started in the meantime;
    superseded responses are dropped whatever order they arrive in.
    """

    def __init__(self, orchestrator: QueryOrchestrator) -> None:
        self._orchestrator = orchestrator
        self._generation = 0
        self._in_flight = 0
        self.envelope: Optional[ApiResponseEnvelope] = None
        self.classification: Optional[Classification] = None
        self.columns = ColumnModel()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_pending(self) -> bool:
        return self._in_flight > 0

    async def run(
        self,
        connection: Optional[Connection],
        request: Union[QueryRequest, Dict[str, Any]],
    ) -> RunOutcome:
        self._generation += 1
        generation = self._generation
        self._in_flight += 1
        try:
            envelope = await self._orchestrator.execute(connection, request)
        finally:
            self._in_flight -= 1

        if generation != self._generation:
            logger.warning(
                "Discarding superseded response (generation %d, latest %d)",
                generation, self._generation,
            )
            return RunOutcome(generation=generation, envelope=envelope, applied=False)

        self._apply(envelope)
        return RunOutcome(generation=generation, envelope=envelope, applied=True)

    def _apply(self, envelope: ApiResponseEnvelope) -> None:
        self.envelope = envelope
        if envelope.error is not None:
            # Errors replace the whole view; no partial data is kept.
            self.classification = None
            self.columns = ColumnModel()
            return

        self.classification = classify(envelope.data)
        if isinstance(self.classification, Discovery):
            self.columns = ColumnModel()
        else:
            self.columns = ColumnModel.derive_from_rows(
                row_sequence(self.classification), envelope.suggested_names
            )

    # ------------------------------------------------------------------
    # Views over the current result
    # ------------------------------------------------------------------

    @property
    def error(self) -> Optional[str]:
        return self.envelope.error if self.envelope else None

    def rows(self) -> List[Any]:
        if self.classification is None:
            return []
        return row_sequence(self.classification)

    def discovery_routes(self) -> List[DiscoveryRoute]:
        if isinstance(self.classification, Discovery):
            return self.classification.routes
        return []

    def export(self, fmt: str) -> ExportResult:
        """Export the current rows through the visible columns, in display order."""
        visible = self.columns.visible_columns()
        rows = self.rows()
        if not rows or not visible:
            raise ExportError("There is no data to export.")
        return export(rows, visible, fmt)
