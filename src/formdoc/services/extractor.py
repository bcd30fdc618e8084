"""Record graph extraction.

Starting from one root row, the extractor walks the relations declared in
ServiceMetadata: object sections are reached through an embedded reference
column on their logical parent row, collection sections through a foreign-key
query against their own table. The result is one ExtractedRecord holding a
flat field map per object section and a list of flat maps per collection.
"""

from collections.abc import Callable

import structlog

from formdoc.errors import ConfigurationError, RowAccessError
from formdoc.models.base import is_blank
from formdoc.models.diagnostics import GapCallback, ResolutionGap
from formdoc.models.enums import GapKind
from formdoc.models.metadata import RESERVED_ID_KEY, SectionMapping, ServiceMetadata
from formdoc.models.record import ExtractedRecord, FieldValues, SectionData
from formdoc.services.row_store import Row, RowAccessor

ColumnLookup = Callable[[str], str | None]


class _ExtractionPass:
    """Mutable state for a single extract() call."""

    def __init__(self, root_id: str, root_row: Row) -> None:
        self.root_id = root_id
        self.root_row = root_row
        self.sections: dict[str, SectionData] = {}
        self.rows: dict[str, Row] = {}
        self.keys: dict[str, str] = {}


class RecordGraphExtractor:
    """Assembles an ExtractedRecord from a row accessor.

    Section-level misconfiguration is reported as a ResolutionGap and the
    section is skipped. A row access fault of any kind ends the pass early and
    the sections gathered so far are returned; ConfigurationError propagates.
    """

    def __init__(
        self,
        metadata: ServiceMetadata,
        row_store: RowAccessor,
        column_prefix: str = "c_",
        key_column: str = RESERVED_ID_KEY,
        logger: structlog.stdlib.BoundLogger | None = None,
        on_gap: GapCallback | None = None,
    ) -> None:
        self._metadata = metadata
        self._rows = row_store
        self._column_prefix = column_prefix
        self._key_column = key_column
        self._logger = logger or structlog.get_logger(__name__)
        self._on_gap = on_gap

    def extract(self, root_id: str) -> ExtractedRecord:
        """Extract every declared section reachable from ``root_id``.

        Args:
            root_id: Key of the root row.

        Returns:
            The assembled record. A missing root row yields a record holding
            only the id.
        """
        root = self._metadata.root
        self._logger.info("extraction_started", service_id=self._metadata.id, root_id=root_id)

        state: _ExtractionPass | None = None
        try:
            root_row = self._rows.fetch_by_key(root.table, root.key_column, root_id)
            if root_row is None:
                self._logger.warning("root_record_not_found", table=root.table, root_id=root_id)
                return ExtractedRecord(record_id=root_id)

            state = _ExtractionPass(root_id, root_row)
            for section in self._metadata.sections:
                self._extract_section(section, state)
        except RowAccessError as e:
            self._logger.error(
                "extraction_aborted",
                root_id=root_id,
                error=str(e),
                sections_gathered=len(state.sections) if state else 0,
            )
        except ConfigurationError:
            raise
        except Exception as e:
            # Third-party accessors raise their own fault types.
            self._logger.error(
                "extraction_aborted",
                root_id=root_id,
                error=str(e),
                error_type=type(e).__name__,
                sections_gathered=len(state.sections) if state else 0,
            )

        sections = state.sections if state else {}
        self._logger.info("extraction_completed", root_id=root_id, section_count=len(sections))
        return ExtractedRecord(record_id=root_id, sections=sections)

    def _extract_section(self, section: SectionMapping, state: _ExtractionPass) -> None:
        if section.from_root:
            self._attach(section, self._read_fields(section, state.root_row), state)
            return

        if section.table is None:
            self._gap(GapKind.MISSING_CONFIG, section.name, "section has no table")
            return

        if section.is_collection:
            self._extract_collection(section, state)
        else:
            self._extract_object(section, state)

    def _extract_object(self, section: SectionMapping, state: _ExtractionPass) -> None:
        if section.reference_field is None:
            self._gap(GapKind.MISSING_CONFIG, section.name, "object section has no reference_field")
            return

        parent_row, parent_column = self._parent_of(section, state)
        reference = self._lookup(parent_row, section.reference_field, parent_column)
        if reference is None:
            self._gap(
                GapKind.UNRESOLVED_KEY,
                section.name,
                f"reference field '{section.reference_field}' is empty on the parent row",
            )
            return

        row = self._rows.fetch_by_key(section.table, self._key_column, reference)
        if row is None:
            self._gap(GapKind.UNRESOLVED_KEY, section.name, f"no row in '{section.table}' for key '{reference}'")
            return

        state.rows[section.name] = row
        state.keys[section.name] = reference
        self._attach(section, self._read_fields(section, row), state)

    def _extract_collection(self, section: SectionMapping, state: _ExtractionPass) -> None:
        if section.foreign_key_column is None:
            self._gap(GapKind.UNRESOLVED_KEY, section.name, "foreign key column could not be resolved")
            return

        parent_key = state.root_id
        owner = self._metadata.grid_owner(section)
        if owner is not None:
            parent_key = self._owner_key(section, owner, state)

        rows = self._rows.query(section.table, section.foreign_key_column, parent_key)
        items = [values for values in (self._read_fields(section, row) for row in rows) if values]
        self._logger.debug(
            "collection_extracted",
            section=section.name,
            foreign_key_column=section.foreign_key_column,
            parent_key=parent_key,
            row_count=len(rows),
        )
        self._attach(section, items, state)

    def _owner_key(self, section: SectionMapping, owner: SectionMapping, state: _ExtractionPass) -> str:
        """Key of a grid owner's row, independent of declaration order."""
        if owner.name in state.keys:
            return state.keys[owner.name]

        if owner.reference_field is not None:
            reference = self._lookup(state.root_row, owner.reference_field, self._metadata.root.column_for)
            if reference is not None:
                return reference

        self._gap(
            GapKind.UNRESOLVED_KEY,
            section.name,
            f"grid owner '{owner.name}' has no key on the root row; querying by root id",
        )
        return state.root_id

    def _parent_of(self, section: SectionMapping, state: _ExtractionPass) -> tuple[Row, ColumnLookup]:
        collection = self._metadata.grid_collection_for(section)
        if collection is not None:
            owner = self._metadata.grid_owner(collection)
            if owner is not None and owner.name in state.rows:
                return state.rows[owner.name], owner.column_for
        return state.root_row, self._metadata.root.column_for

    def _read_fields(self, section: SectionMapping, row: Row) -> FieldValues:
        values: FieldValues = {}
        for catalog_field in section.catalog:
            value = self._lookup(row, catalog_field.field_id, lambda _: catalog_field.column)
            if value is not None:
                values[catalog_field.field_id] = value
        return values

    def _lookup(self, row: Row, name: str, column_for: ColumnLookup) -> str | None:
        """Find ``name`` on a row by catalog column, prefixed column, then bare name."""
        candidates = [column_for(name), f"{self._column_prefix}{name}", name]
        for candidate in candidates:
            if candidate is None:
                continue
            value = row.get(candidate)
            if not is_blank(value):
                return value
        return None

    def _attach(self, section: SectionMapping, data: SectionData, state: _ExtractionPass) -> None:
        if not data:
            self._logger.debug("section_empty", section=section.name)
            return
        state.sections[section.name] = data

    def _gap(self, kind: GapKind, section: str, detail: str) -> None:
        self._logger.warning("section_skipped", section=section, gap=kind.value, detail=detail)
        if self._on_gap is not None:
            self._on_gap(ResolutionGap(kind=kind, section=section, detail=detail))
