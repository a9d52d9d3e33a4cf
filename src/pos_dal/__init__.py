"""Structural query translation layer over an embedded SQLite store."""

from pos_dal.client import PosClient, get_client, reset_client
from pos_dal.config import DalSettings
from pos_dal.errors import (
    DalError,
    IncludeDepthExceeded,
    InvalidIdentifier,
    InvalidParameterType,
    InvalidQueryArgument,
    NoFieldsToUpdate,
)
from pos_dal.ids import generate_id
from pos_dal.model import TableModel
from pos_dal.predicates import UNSET, translate_where, where_clause
from pos_dal.relations import (
    MODEL_TABLES,
    POS_RELATIONSHIPS,
    Relation,
    RelationKind,
    RelationshipRegistry,
)
from pos_dal.sqlite import SqliteStore, Statement

__all__ = [
    "DalError",
    "DalSettings",
    "IncludeDepthExceeded",
    "InvalidIdentifier",
    "InvalidParameterType",
    "InvalidQueryArgument",
    "MODEL_TABLES",
    "NoFieldsToUpdate",
    "POS_RELATIONSHIPS",
    "PosClient",
    "Relation",
    "RelationKind",
    "RelationshipRegistry",
    "SqliteStore",
    "Statement",
    "TableModel",
    "UNSET",
    "generate_id",
    "get_client",
    "reset_client",
    "translate_where",
    "where_clause",
]
