# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Entity mapping model: property mappings, entity mappings and the mapping registry.

Mappings are declared once at startup, either fluently::

    mapping = EntityMapping(Reading).to_table("reading", schema="telemetry")
    mapping.has_property("id").that_is_auto_generated().that_is_key()
    mapping.has_property("record_id")

or declaratively on pydantic models with :func:`pg_entity` and :func:`pg_field`.
Declaration order of the properties is the column order of every generated
command. All validation is fail-fast: a bad declaration raises immediately.
"""

from __future__ import annotations

import dataclasses
import logging
import operator
import re
from collections import OrderedDict
from dataclasses import dataclass
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Set,
    Type,
    TypeVar,
    Union,
    get_type_hints,
)

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from .constants import (
    ErrorMessages,
    ModelMetadataConstants,
    PerformanceConstants,
    PostgresDataType,
    SqlConstants,
)
from .exceptions import MappingConfigurationError, MappingNotFoundError
from .pg_types import infer_column_type, quote_identifier, resolve_column_type

if TYPE_CHECKING:
    from .settings import BulkSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PARAMETER_TOKEN_RE = re.compile(SqlConstants.PARAMETER_TOKEN_INVALID_CHARS)


# -----------------------------------------------------------------------------
# Property mapping
# -----------------------------------------------------------------------------

class PropertyMapping:
    """
    Binding of one entity attribute to one table column.

    The read accessor is always present. The write accessor only exists when the
    column is read back after an insert or an update.
    """

    def __init__(
        self,
        owner: "EntityMapping",
        attribute: str,
        column: str,
        column_type: PostgresDataType,
        is_nullable: bool = False,
    ):
        self._owner = owner
        self.attribute = attribute
        self.column = column
        self.column_type = column_type
        self.is_nullable = is_nullable
        self.is_key = False
        self.is_auto_generated = False
        self.returns_after_insert = False
        self.returns_after_update = False
        self._getter: Callable[[Any], Any] = operator.attrgetter(attribute)
        self.parameter_token = _PARAMETER_TOKEN_RE.sub(SqlConstants.PARAMETER_TOKEN_REPLACEMENT, column)

    # ---- accessors ----------------------------------------------------------

    @property
    def getter(self) -> Callable[[Any], Any]:
        return self._getter

    @property
    def setter(self) -> Optional[Callable[[Any, Any], None]]:
        """Write accessor, None unless the column is returned by the database."""
        if self.returns_after_insert or self.returns_after_update:
            return self._set_value
        return None

    def get_value(self, entity: Any) -> Any:
        return self._getter(entity)

    def _set_value(self, entity: Any, value: Any) -> None:
        setattr(entity, self.attribute, value)

    @property
    def quoted_column(self) -> str:
        return quote_identifier(self.column)

    def parameter_name(self, index: int) -> str:
        """Bound parameter name of this column for the element at ``index``."""
        return SqlConstants.PARAMETER_NAME_TEMPLATE.format(token=self.parameter_token, index=index)

    # ---- fluent refinement --------------------------------------------------

    def that_is_auto_generated(self) -> "PropertyMapping":
        """The value is generated by the database; it is never inserted, always read back."""
        self._owner._ensure_not_frozen()
        self.is_auto_generated = True
        self.returns_after_insert = True
        return self

    def that_is_key(self) -> "PropertyMapping":
        """The column takes part in the predicate that targets a row on update."""
        self._owner._ensure_not_frozen()
        self.is_key = True
        return self

    def must_be_updated_after_insert(self) -> "PropertyMapping":
        self._owner._ensure_not_frozen()
        self.returns_after_insert = True
        return self

    def must_be_updated_after_update(self) -> "PropertyMapping":
        self._owner._ensure_not_frozen()
        self.returns_after_update = True
        return self

    def has_column_type(self, column_type: Union[PostgresDataType, str]) -> "PropertyMapping":
        self._owner._ensure_not_frozen()
        self.column_type = resolve_column_type(column_type, self.column)
        return self

    def that_is_nullable(self, nullable: bool = True) -> "PropertyMapping":
        self._owner._ensure_not_frozen()
        self.is_nullable = nullable
        return self

    def __repr__(self) -> str:
        flags = [
            name for name, on in (
                ("key", self.is_key),
                ("auto_generated", self.is_auto_generated),
                ("returns_after_insert", self.returns_after_insert),
                ("returns_after_update", self.returns_after_update),
                ("nullable", self.is_nullable),
            ) if on
        ]
        return f"<PropertyMapping({self.attribute} -> {self.column!r} {self.column_type}, {flags})>"


# -----------------------------------------------------------------------------
# Entity mapping
# -----------------------------------------------------------------------------

def _class_properties(entity_type: Type[Any]) -> Set[str]:
    return {
        name
        for klass in entity_type.__mro__
        for name, value in klass.__dict__.items()
        if isinstance(value, property)
    }


def _declared_attributes(entity_type: Type[Any]) -> Optional[Set[str]]:
    """
    Names of the attributes an entity type declares, or None if it can not be known.

    Pydantic models and dataclasses list their fields. Other classes are only
    checked when every class of the MRO defines ``__slots__``: instances with a
    ``__dict__`` may get any attribute in ``__init__`` or later.
    """
    model_fields = getattr(entity_type, "model_fields", None)
    if isinstance(model_fields, dict):
        return set(model_fields) | _class_properties(entity_type)
    if dataclasses.is_dataclass(entity_type):
        return {f.name for f in dataclasses.fields(entity_type)} | _class_properties(entity_type)

    hierarchy = [klass for klass in entity_type.__mro__ if klass is not object]
    if not all("__slots__" in klass.__dict__ for klass in hierarchy):
        return None
    names = _class_properties(entity_type)
    for klass in hierarchy:
        slots = klass.__dict__["__slots__"]
        names.update([slots] if isinstance(slots, str) else slots)
    return names


def _resolved_annotations(entity_type: Type[Any]) -> Dict[str, Any]:
    model_fields = getattr(entity_type, "model_fields", None)
    if isinstance(model_fields, dict):
        return {name: info.annotation for name, info in model_fields.items()}
    try:
        return get_type_hints(entity_type)
    except (NameError, TypeError) as e:
        # || S.1: Unresolvable forward references only disable type inference
        logger.debug("Cannot resolve annotations of %s: %s", entity_type.__name__, e)
        return {}


class EntityMapping:
    """
    Mapping of one entity type to one table.

    :class: EntityMapping
    :synopsis: Ordered column mapping plus table identity and batch-size policy
    """

    def __init__(
        self,
        entity_type: Type[Any],
        table_name: Optional[str] = None,
        schema: Optional[str] = None,
        maximum_sent_elements: int = 0,
    ):
        if not isinstance(entity_type, type):
            raise MappingConfigurationError(
                ErrorMessages.INVALID_MODEL_TYPE.format(actual=type(entity_type).__name__)
            )
        self.entity_type = entity_type
        self.table_name: Optional[str] = None
        self.schema: Optional[str] = None
        self.maximum_sent_elements = 0
        self._properties: "OrderedDict[str, PropertyMapping]" = OrderedDict()
        self._frozen = False
        self._declared = _declared_attributes(entity_type)
        self._annotations = _resolved_annotations(entity_type)

        if table_name is not None:
            self.to_table(table_name, schema)
        self.has_batch_size(maximum_sent_elements)

    @property
    def entity_name(self) -> str:
        return self.entity_type.__name__

    @property
    def properties(self) -> Mapping[str, PropertyMapping]:
        """Column name -> property mapping, in declaration order (read-only view)."""
        return MappingProxyType(self._properties)

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    @property
    def qualified_table_name(self) -> str:
        """Quoted ``"schema"."table"`` or ``"table"``."""
        if not self.table_name:
            raise MappingConfigurationError(
                ErrorMessages.MISSING_TABLE_NAME.format(entity_name=self.entity_name)
            )
        if self.schema:
            return (
                f"{quote_identifier(self.schema)}{SqlConstants.QUALIFIED_NAME_SEPARATOR}"
                f"{quote_identifier(self.table_name)}"
            )
        return quote_identifier(self.table_name)

    @property
    def max_parameters_per_entity(self) -> int:
        """Upper bound of bound parameters one element needs in an insert."""
        return sum(1 for prop in self._properties.values() if not prop.is_auto_generated)

    @property
    def key_properties(self) -> List[PropertyMapping]:
        return [prop for prop in self._properties.values() if prop.is_key]

    @property
    def returning_after_insert(self) -> List[PropertyMapping]:
        return [prop for prop in self._properties.values() if prop.returns_after_insert]

    @property
    def returning_after_update(self) -> List[PropertyMapping]:
        return [prop for prop in self._properties.values() if prop.returns_after_update]

    # ---- registration -------------------------------------------------------

    def to_table(self, name: str, schema: Optional[str] = None) -> "EntityMapping":
        """Set the table identity; the schema is optional."""
        self._ensure_not_frozen()
        if not name or not name.strip():
            raise MappingConfigurationError(
                ErrorMessages.MISSING_TABLE_NAME.format(entity_name=self.entity_name)
            )
        self.table_name = name
        self.schema = schema or None
        return self

    def has_batch_size(self, maximum_sent_elements: int) -> "EntityMapping":
        """Per-type batch size; 0 falls back to the global default."""
        self._ensure_not_frozen()
        if maximum_sent_elements < 0:
            raise MappingConfigurationError(
                ErrorMessages.NEGATIVE_BATCH_SIZE.format(batch_size=maximum_sent_elements)
            )
        self.maximum_sent_elements = maximum_sent_elements
        return self

    def has_property(
        self,
        attribute: str,
        column: Optional[str] = None,
        column_type: Optional[Union[PostgresDataType, str]] = None,
    ) -> PropertyMapping:
        """
        Declare a property from a plain attribute name.

        Args:
            attribute: Attribute of the entity holding the value
            column: Column name, defaults to the attribute name
            column_type: Column type, inferred from the annotation when omitted

        Returns:
            The new property mapping, for fluent refinement

        Raises:
            MappingConfigurationError: Invalid accessor, unknown attribute or duplicate column
        """
        self._ensure_not_frozen()
        if not isinstance(attribute, str) or not attribute.isidentifier():
            raise MappingConfigurationError(
                ErrorMessages.INVALID_ACCESSOR.format(attribute=attribute, entity_name=self.entity_name)
            )
        if self._declared is not None and attribute not in self._declared:
            raise MappingConfigurationError(
                ErrorMessages.UNKNOWN_ATTRIBUTE.format(attribute=attribute, entity_name=self.entity_name)
            )

        column_name = attribute if column is None else column
        if not column_name or not column_name.strip():
            raise MappingConfigurationError(ErrorMessages.EMPTY_COLUMN_NAME.format(attribute=attribute))
        if column_name in self._properties:
            raise MappingConfigurationError(
                ErrorMessages.DUPLICATE_COLUMN.format(column=column_name, entity_name=self.entity_name)
            )

        inferred_type, nullable = infer_column_type(self._annotations.get(attribute))
        prop = PropertyMapping(self, attribute, column_name, inferred_type, is_nullable=nullable)
        for other in self._properties.values():
            if other.parameter_token == prop.parameter_token:
                raise MappingConfigurationError(
                    ErrorMessages.DUPLICATE_PARAMETER_TOKEN.format(
                        column=column_name, entity_name=self.entity_name, other=other.column
                    )
                )
        if column_type is not None:
            prop.has_column_type(column_type)
        self._properties[column_name] = prop
        return prop

    def validate(self) -> None:
        """Check that the mapping can be used to generate commands."""
        if not self.table_name:
            raise MappingConfigurationError(
                ErrorMessages.MISSING_TABLE_NAME.format(entity_name=self.entity_name)
            )
        if not self._properties:
            raise MappingConfigurationError(
                ErrorMessages.NO_PROPERTIES.format(entity_name=self.entity_name)
            )

    def freeze(self) -> "EntityMapping":
        """Validate and make the mapping immutable."""
        self.validate()
        self._frozen = True
        return self

    def _ensure_not_frozen(self) -> None:
        if self._frozen:
            raise MappingConfigurationError(
                ErrorMessages.MAPPING_FROZEN.format(entity_name=self.entity_name)
            )

    def __repr__(self) -> str:
        table = self.table_name if not self.schema else f"{self.schema}.{self.table_name}"
        return f"<EntityMapping({self.entity_name} -> {table}, columns={list(self._properties)})>"


# -----------------------------------------------------------------------------
# Declarative mapping for pydantic models
# -----------------------------------------------------------------------------

@dataclass
class PgFieldMetadata:
    """
    Column metadata attached to a pydantic field by :func:`pg_field`.

    :class: PgFieldMetadata
    :synopsis: Metadata container for mapped model fields
    """
    column: Optional[str] = None
    column_type: Optional[Union[PostgresDataType, str]] = None
    key: bool = False
    auto_generated: bool = False
    return_after_insert: bool = False
    return_after_update: bool = False
    nullable: Optional[bool] = None


def pg_field(
    default: Any = ...,
    *,
    column: Optional[str] = None,
    column_type: Optional[Union[PostgresDataType, str]] = None,
    key: bool = False,
    auto_generated: bool = False,
    return_after_insert: bool = False,
    return_after_update: bool = False,
    nullable: Optional[bool] = None,
    default_factory: Optional[Callable[[], Any]] = None,
    description: Optional[str] = None,
) -> Any:
    """
    Create a pydantic Field with attached column metadata.

    Auto-generated fields default to None so instances can be created before the
    database assigns the value.
    """
    metadata = PgFieldMetadata(
        column=column,
        column_type=column_type,
        key=key,
        auto_generated=auto_generated,
        return_after_insert=return_after_insert,
        return_after_update=return_after_update,
        nullable=nullable,
    )
    field_kwargs = {
        "json_schema_extra": {ModelMetadataConstants.FIELD_METADATA_KEY: metadata},
        "description": description,
    }
    if default_factory is not None:
        return Field(default_factory=default_factory, **field_kwargs)
    if auto_generated and default is ...:
        return Field(default=None, **field_kwargs)
    return Field(default=default, **field_kwargs)


def get_field_metadata(field_info: Any) -> Optional[PgFieldMetadata]:
    extra = getattr(field_info, "json_schema_extra", None)
    if isinstance(extra, dict):
        meta = extra.get(ModelMetadataConstants.FIELD_METADATA_KEY)
        if isinstance(meta, PgFieldMetadata):
            return meta
    return None


def build_model_mapping(
    model_class: Type[BaseModel],
    table: str,
    schema: Optional[str] = None,
    batch_size: int = 0,
) -> EntityMapping:
    """Build an entity mapping from the fields of a pydantic model, in field order."""
    mapping = EntityMapping(model_class, table, schema, batch_size)
    for field_name, field_info in model_class.model_fields.items():
        meta = get_field_metadata(field_info)
        if meta is None:
            mapping.has_property(field_name)
            continue
        prop = mapping.has_property(field_name, meta.column, meta.column_type)
        if meta.nullable is not None:
            prop.that_is_nullable(meta.nullable)
        if meta.key:
            prop.that_is_key()
        if meta.auto_generated:
            prop.that_is_auto_generated()
        if meta.return_after_insert:
            prop.must_be_updated_after_insert()
        if meta.return_after_update:
            prop.must_be_updated_after_update()
    return mapping


def pg_entity(
    table: str,
    schema: Optional[str] = None,
    batch_size: int = 0,
) -> Callable[[Type[T]], Type[T]]:
    """Decorator to map a pydantic model to a table."""

    def decorator(cls: Type[T]) -> Type[T]:
        if not isinstance(getattr(cls, "model_fields", None), dict):
            raise MappingConfigurationError(ErrorMessages.NOT_A_MODEL.format(entity_name=cls.__name__))
        mapping = build_model_mapping(cls, table, schema, batch_size)  # type: ignore[arg-type]
        setattr(cls, ModelMetadataConstants.ENTITY_MAPPING_ATTR, mapping)
        return cls

    return decorator


def get_model_mapping(model_class: Type[Any]) -> EntityMapping:
    mapping = model_class.__dict__.get(ModelMetadataConstants.ENTITY_MAPPING_ATTR)
    if not isinstance(mapping, EntityMapping):
        raise MappingConfigurationError(ErrorMessages.NOT_A_MODEL.format(entity_name=model_class.__name__))
    return mapping


# -----------------------------------------------------------------------------
# Registry / options
# -----------------------------------------------------------------------------

class BulkServiceOptions(BaseModel):
    """
    Configuration object shared by the command builders and the bulk service.

    Holds the entity type -> mapping registry. Mappings are frozen when they are
    added, so the registry is safe to share once startup is over.
    """

    model_config = ConfigDict(validate_assignment=True)

    maximum_sent_elements: int = Field(
        default=PerformanceConstants.DEFAULT_MAXIMUM_SENT_ELEMENTS,
        ge=0,
        description="Default number of elements per round trip, 0 disables splitting",
    )
    max_parameters_per_command: int = Field(
        default=PerformanceConstants.MAX_PARAMETERS_PER_COMMAND,
        ge=1,
        le=PerformanceConstants.MAX_PARAMETERS_PER_COMMAND,
        description="Ceiling of bound parameters in one insert statement",
    )
    inline_numeric_literals: bool = Field(
        default=False,
        description="Render numeric and boolean values as literals instead of parameters",
    )

    _mappings: Dict[type, EntityMapping] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: "BulkSettings") -> "BulkServiceOptions":
        return cls(
            maximum_sent_elements=settings.maximum_sent_elements,
            max_parameters_per_command=settings.max_parameters_per_command,
            inline_numeric_literals=settings.inline_numeric_literals,
        )

    @property
    def supported_entity_types(self) -> Mapping[type, EntityMapping]:
        return MappingProxyType(self._mappings)

    def add(self, mapping: EntityMapping) -> "BulkServiceOptions":
        """Validate, freeze and register a mapping."""
        if mapping.entity_type in self._mappings:
            raise MappingConfigurationError(
                ErrorMessages.DUPLICATE_MAPPING.format(entity_name=mapping.entity_name)
            )
        mapping.freeze()
        self._mappings[mapping.entity_type] = mapping
        logger.debug("Registered mapping %r", mapping)
        return self

    def add_model(self, model_class: Type[Any]) -> "BulkServiceOptions":
        """Register the mapping built by :func:`pg_entity`."""
        return self.add(get_model_mapping(model_class))

    def get_mapping(self, entity_type: Type[Any]) -> EntityMapping:
        mapping = self._mappings.get(entity_type)
        if mapping is None:
            raise MappingNotFoundError(
                ErrorMessages.MAPPING_NOT_FOUND.format(entity_name=getattr(entity_type, "__name__", entity_type))
            )
        return mapping

    def effective_batch_size(self, mapping: EntityMapping) -> int:
        if mapping.maximum_sent_elements > 0:
            return mapping.maximum_sent_elements
        return self.maximum_sent_elements
