from .context import LIVE_VERSION, Context
from .db import (
    close_db,
    create_tables,
    drop_tables,
    get_db,
    init_db,
    is_initialized,
    normalize_url,
)
from .definition import EntityDefinition, EntityTranslationDefinition, MappingEntityDefinition
from .exceptions import (
    DefinitionError,
    DefinitionNotFoundError,
    FieldValueError,
    RestrictDeleteViolationError,
    ShopDALError,
    WriteError,
    WriteValidationError,
    WriteViolation,
)
from .registry import DefinitionRegistry
from .repository import EntityRepository, SearchHit
from .schema_generator import ApiSchemaGenerator, SchemaConfig
from .system import LanguageDefinition, language_id, language_payloads
from .writer import EntityWriter, EntityWriteResult, WriteResult

__all__ = [
    "LIVE_VERSION",
    "ApiSchemaGenerator",
    "Context",
    "DefinitionError",
    "DefinitionNotFoundError",
    "DefinitionRegistry",
    "EntityDefinition",
    "EntityRepository",
    "EntityTranslationDefinition",
    "EntityWriteResult",
    "EntityWriter",
    "FieldValueError",
    "LanguageDefinition",
    "MappingEntityDefinition",
    "RestrictDeleteViolationError",
    "SchemaConfig",
    "SearchHit",
    "ShopDALError",
    "WriteError",
    "WriteResult",
    "WriteValidationError",
    "WriteViolation",
    "close_db",
    "create_tables",
    "drop_tables",
    "get_db",
    "init_db",
    "is_initialized",
    "language_id",
    "language_payloads",
    "normalize_url",
]
