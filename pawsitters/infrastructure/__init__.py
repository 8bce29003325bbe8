# Infrastructure Layer
from .metadata import ColumnInfo, EntityMetadata, MetadataRegistry, describe_model
from .uow import EntityRepository, UnitOfWork
