"""Loads and merges service metadata from YAML declarations.

Two declarations feed every service: a per-service mapping declaration
(``<service_id>.yml``) naming sections, field paths and relational links, and a
shared structural declaration cataloging forms, tables, columns and grids. Both
are located through a layered search (packaged resource, metadata directory,
resources directory) and merged into one immutable ServiceMetadata.
"""

from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any, TypeVar

import structlog
import yaml
from pydantic import BaseModel, ValidationError

from formdoc.config import Settings
from formdoc.errors import ConfigurationError
from formdoc.models.declarations import (
    FieldDeclaration,
    FormDeclaration,
    MappingDeclaration,
    SectionDeclaration,
    StructureDeclaration,
)
from formdoc.models.enums import MergeStrategy, SectionKind
from formdoc.models.metadata import (
    RESERVED_ID_KEY,
    CatalogField,
    FieldMapping,
    RootEntity,
    SectionMapping,
    ServiceMetadata,
    TypeAnnotation,
)

T_Declaration = TypeVar("T_Declaration", bound=BaseModel)

MAPPING_SUFFIXES = (".yml", ".yaml")
RESOURCE_SUBDIRECTORY = "metadata"


class MetadataLoader:
    """Reads, validates and caches ServiceMetadata per service id.

    Each loader instance owns its cache. Metadata is loaded once per service
    id and only re-read when ``load`` is called with ``reload=True``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._logger = logger or structlog.get_logger(__name__)
        self._cache: dict[str, ServiceMetadata] = {}

    @property
    def settings(self) -> Settings:
        return self._settings

    def load(self, service_id: str, reload: bool = False) -> ServiceMetadata:
        """Return merged metadata for a service.

        Args:
            service_id: Identifier of the service; also the mapping file stem.
            reload: Re-read both declarations even when cached.

        Returns:
            The merged, immutable ServiceMetadata.

        Raises:
            ConfigurationError: If either declaration is missing or invalid.
        """
        if not service_id or not service_id.strip():
            raise ConfigurationError("service id cannot be empty")

        if not reload and service_id in self._cache:
            return self._cache[service_id]

        mapping_names = [f"{service_id}{suffix}" for suffix in MAPPING_SUFFIXES]
        mapping_data, mapping_source = self._read_declaration(mapping_names)
        structure_data, structure_source = self._read_declaration([self._settings.structure_file])

        mapping = self._parse(MappingDeclaration, mapping_data, mapping_source)
        structure = self._parse(StructureDeclaration, structure_data, structure_source)

        metadata = self._merge(service_id, mapping, structure)
        self._cache[service_id] = metadata

        self._logger.info(
            "metadata_loaded",
            service_id=service_id,
            mapping_source=mapping_source,
            structure_source=structure_source,
            section_count=len(metadata.sections),
        )
        return metadata

    def invalidate(self, service_id: str | None = None) -> None:
        """Drop one cached service, or all of them."""
        if service_id is None:
            self._cache.clear()
        else:
            self._cache.pop(service_id, None)

    def _candidates(self, name: str) -> list[Path | Traversable]:
        candidates: list[Path | Traversable] = []
        if self._settings.resource_package:
            try:
                package_root = resources.files(self._settings.resource_package)
            except ModuleNotFoundError:
                self._logger.warning(
                    "resource_package_not_found",
                    resource_package=self._settings.resource_package,
                )
            else:
                candidates.append(package_root / RESOURCE_SUBDIRECTORY / name)
        candidates.append(self._settings.metadata_path / name)
        candidates.append(self._settings.resources_path / name)
        return candidates

    def _read_declaration(self, names: list[str]) -> tuple[Any, str]:
        searched: list[str] = []
        for name in names:
            for candidate in self._candidates(name):
                searched.append(str(candidate))
                if not candidate.is_file():
                    continue
                text = candidate.read_text(encoding="utf-8")
                try:
                    return yaml.safe_load(text), str(candidate)
                except yaml.YAMLError as e:
                    raise ConfigurationError(f"invalid YAML in {candidate}: {e}") from e

        raise ConfigurationError(f"declaration {names[0]} not found; searched {', '.join(searched)}")

    @staticmethod
    def _parse(model: type[T_Declaration], data: Any, source: str) -> T_Declaration:
        if not isinstance(data, dict):
            raise ConfigurationError(f"{source} must contain a mapping at the top level")
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"invalid declaration in {source}: {e}") from e

    def _merge(
        self,
        service_id: str,
        mapping: MappingDeclaration,
        structure: StructureDeclaration,
    ) -> ServiceMetadata:
        service = mapping.service
        if service is None:
            raise ConfigurationError(f"mapping declaration for '{service_id}' has no service block")
        if service.id != service_id:
            raise ConfigurationError(
                f"mapping declaration service id '{service.id}' does not match requested '{service_id}'"
            )

        root_declaration = service.root
        if root_declaration is None or root_declaration.form is None:
            raise ConfigurationError(f"service '{service_id}' must declare root.form")
        if root_declaration.table is None:
            raise ConfigurationError(f"service '{service_id}' must declare root.table")

        flagged_roots = structure.root_forms()
        if len(flagged_roots) > 1:
            raise ConfigurationError(f"structure flags more than one root form: {', '.join(flagged_roots)}")
        root_forms = {root_declaration.form, *flagged_roots}

        root_form = structure.forms.get(root_declaration.form)
        root = RootEntity(
            form=root_declaration.form,
            table=root_declaration.table,
            key_column=root_declaration.key_column or self._settings.key_column,
            defaults=root_declaration.defaults,
            catalog=tuple(self._structural_catalog(root_form)) if root_form else (),
        )

        sections: list[SectionMapping] = []
        for name, declaration in mapping.sections.items():
            declaration = declaration or SectionDeclaration()
            section = self._build_section(name, declaration, structure, root, root_forms)
            if section is not None:
                sections.append(section)

        try:
            return ServiceMetadata(
                id=service_id,
                name=service.name,
                version=service.version,
                schema_version=service.schema_version,
                root=root,
                sections=tuple(sections),
            )
        except ValidationError as e:
            raise ConfigurationError(f"invalid metadata for '{service_id}': {e}") from e

    def _build_section(
        self,
        name: str,
        declaration: SectionDeclaration,
        structure: StructureDeclaration,
        root: RootEntity,
        root_forms: set[str],
    ) -> SectionMapping | None:
        if name == RESERVED_ID_KEY:
            raise ConfigurationError(f"section name '{RESERVED_ID_KEY}' is reserved for the record id")
        if declaration.kind == SectionKind.COLLECTION and declaration.document_path is None:
            raise ConfigurationError(f"collection section '{name}' requires a document_path")

        form_name = declaration.form or name
        if form_name in root_forms and not declaration.from_root:
            self._logger.debug("root_form_section_excluded", section=name, form=form_name)
            return None

        fields, grid_links = self._field_mappings(name, declaration.fields)
        form = structure.forms.get(form_name)
        catalog = self._catalog(form, fields)

        table = form.table_name if form and form.table_name else declaration.table
        if table is None and not declaration.from_root:
            self._logger.warning("section_table_undeclared", section=name, form=form_name)

        foreign_key_column = None
        if declaration.kind == SectionKind.COLLECTION:
            foreign_key_column = self._resolve_foreign_key(name, declaration, structure, root)

        try:
            return SectionMapping(
                name=name,
                kind=declaration.kind,
                table=table,
                form=form_name,
                fields=tuple(fields),
                catalog=tuple(catalog),
                reference_field=declaration.reference_field,
                from_root=declaration.from_root,
                grid=declaration.grid,
                grid_links=tuple(grid_links),
                parent_key=declaration.parent_key,
                foreign_key_column=foreign_key_column,
                document_path=declaration.document_path,
            )
        except ValidationError as e:
            raise ConfigurationError(f"invalid section '{name}': {e}") from e

    def _field_mappings(
        self,
        section: str,
        declarations: list[FieldDeclaration],
    ) -> tuple[list[FieldMapping], list[str]]:
        fields: list[FieldMapping] = []
        grid_links: list[str] = []
        for declaration in declarations:
            if declaration.is_grid_link:
                if declaration.source:
                    grid_links.append(declaration.source)
                continue
            if declaration.source is None or declaration.target is None:
                self._logger.warning(
                    "field_mapping_dropped",
                    section=section,
                    source=declaration.source,
                    target=declaration.target,
                )
                continue

            annotation = None
            if declaration.type_annotation is not None:
                annotation = TypeAnnotation(
                    path=declaration.type_annotation.path,
                    value=declaration.type_annotation.value,
                )
            fields.append(
                FieldMapping(
                    source_id=declaration.source,
                    target_path=declaration.target,
                    fallback_path=declaration.fallback_target,
                    transform=declaration.transform,
                    value_map=declaration.value_map or {},
                    required=declaration.required,
                    type_annotation=annotation,
                )
            )
        return fields, grid_links

    def _catalog(self, form: FormDeclaration | None, fields: list[FieldMapping]) -> list[CatalogField]:
        mapped_ids = list(dict.fromkeys(field.source_id for field in fields))
        if form is None:
            return [CatalogField(field_id=field_id) for field_id in mapped_ids]

        catalog = self._structural_catalog(form)
        if self._settings.merge_strategy == MergeStrategy.STRUCTURE:
            return catalog

        known = {catalog_field.field_id for catalog_field in catalog}
        catalog.extend(CatalogField(field_id=field_id) for field_id in mapped_ids if field_id not in known)
        return catalog

    @staticmethod
    def _structural_catalog(form: FormDeclaration) -> list[CatalogField]:
        catalog: list[CatalogField] = []
        seen: set[str] = set()
        for structure_field in form.all_fields():
            if structure_field.field_id is None or structure_field.field_id in seen:
                continue
            seen.add(structure_field.field_id)
            catalog.append(CatalogField(field_id=structure_field.field_id, column=structure_field.column))
        return catalog

    def _resolve_foreign_key(
        self,
        name: str,
        declaration: SectionDeclaration,
        structure: StructureDeclaration,
        root: RootEntity,
    ) -> str | None:
        if declaration.parent_key:
            self._logger.debug("foreign_key_resolved", section=name, tier="explicit", column=declaration.parent_key)
            return declaration.parent_key

        grid = structure.find_grid(declaration.grid or name)
        if grid is not None and grid.foreign_key:
            sub_form = structure.forms.get(grid.sub_form_id or declaration.form or name)
            column = None
            if sub_form is not None:
                for structure_field in sub_form.all_fields():
                    if structure_field.field_id == grid.foreign_key:
                        column = structure_field.column
                        break
            column = column or f"{self._settings.column_prefix}{grid.foreign_key}"
            self._logger.debug("foreign_key_resolved", section=name, tier="grid", column=column)
            return column

        if root.defaults.grid_parent_column:
            column = root.defaults.grid_parent_column
            self._logger.debug("foreign_key_resolved", section=name, tier="default", column=column)
            return column

        self._logger.warning("foreign_key_unresolved", section=name)
        return None
