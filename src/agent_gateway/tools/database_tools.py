"""
Database tools - read-only views over the document store for the agent.
"""

from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from ..store import (
    DocumentStore,
    FilterError,
    UnknownCollectionError,
    UnknownModelError,
)
from .base import JsonArgument, JsonArgumentError, Tool, ToolContext, ToolParameter
from .errors import ErrorCode, tool_error, tool_success

logger = structlog.get_logger()

QUERY_TYPES = [
    "listDatabases",
    "listCollections",
    "countDocuments",
    "findOne",
    "aggregate",
    "adminCommand",
]

# Collection-scoped query types
COLLECTION_QUERIES = {"countDocuments", "findOne", "aggregate"}


def _limit(value: Any, default: int) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return default


def _storage_unavailable(tool: str, e: Exception) -> str:
    logger.error("Database tool storage error", tool=tool, error=str(e))
    return tool_error(
        ErrorCode.SERVICE_UNAVAILABLE,
        "database_unavailable",
        "The database is currently unavailable",
        retry_after=5,
        suggestions=["Retry the query shortly"],
        context={"tool": tool},
    )


def create_query_database_tool(documents: DocumentStore) -> Tool:
    """Generic lookup by model name."""

    async def handler(args: dict[str, Any], context: ToolContext) -> str:
        model_name = str(args.get("modelName") or "").strip()
        limit = _limit(args.get("limit"), 5)

        try:
            query = JsonArgument.parse(args.get("query"))
            spec = query.as_object() if query else {}
        except JsonArgumentError as e:
            return tool_error(
                ErrorCode.INVALID_INPUT,
                "invalid_query",
                str(e),
                suggestions=['Pass the query as an object, e.g. {"status": "published"}'],
                context={"modelName": model_name},
            )

        try:
            rows = await documents.find(model_name, spec, limit=limit)
        except UnknownModelError:
            return tool_error(
                ErrorCode.NOT_FOUND,
                "model_not_found",
                f"Model '{model_name}' does not exist",
                recoverable=True,
                suggestions=[
                    "Use raw_db_query with queryType 'listCollections' to discover what is stored",
                    f"Known models: {', '.join(documents.model_names())}",
                ],
                context={"modelName": model_name},
            )
        except FilterError as e:
            return tool_error(ErrorCode.INVALID_INPUT, "invalid_query", str(e), context={"query": spec})
        except SQLAlchemyError as e:
            return _storage_unavailable("query_database", e)

        return tool_success({"modelName": model_name, "count": len(rows), "results": rows})

    return Tool(
        name="query_database",
        description="Look up records of a model (e.g. Agent, Document, JsonConfig) using a filter object.",
        parameters=[
            ToolParameter(name="modelName", param_type="string", description="Model to query"),
            ToolParameter(
                name="query",
                param_type=["object", "string"],
                description="Filter object (field equality, $in, $regex, $gt, ...)",
                required=False,
            ),
            ToolParameter(
                name="limit",
                param_type="integer",
                description="Maximum records to return",
                required=False,
                default=5,
            ),
        ],
        handler=handler,
    )


def create_system_stats_tool(documents: DocumentStore) -> Tool:
    """Document counts for every registered model."""

    async def handler(args: dict[str, Any], context: ToolContext) -> str:
        counts: dict[str, int] = {}
        try:
            for model_name in documents.model_names():
                counts[model_name] = await documents.count(model_name)
        except SQLAlchemyError as e:
            return _storage_unavailable("get_system_stats", e)
        return tool_success({"counts": counts, "total": sum(counts.values())})

    return Tool(
        name="get_system_stats",
        description="Get the number of stored records for every model.",
        parameters=[],
        handler=handler,
    )


def create_raw_db_query_tool(documents: DocumentStore) -> Tool:
    """Low-level discovery queries."""

    def failed(query_type: str, message: str, **context: Any) -> str:
        return tool_error(
            ErrorCode.INVALID_INPUT,
            "query_execution_failed",
            message,
            recoverable=True,
            suggestions=[
                "Pass 'filter' and 'adminCommand' as JSON objects or valid JSON strings",
                "Use queryType 'listCollections' to see available collections",
            ],
            context={"queryType": query_type, **context},
        )

    async def handler(args: dict[str, Any], context: ToolContext) -> str:
        query_type = str(args.get("queryType") or "").strip()
        collection = str(args.get("collection") or "").strip()
        limit = _limit(args.get("limit"), 10)

        if query_type not in QUERY_TYPES:
            return tool_error(
                ErrorCode.INVALID_INPUT,
                "invalid_query_type",
                f"Unknown queryType '{query_type}'",
                suggestions=[f"Use one of: {', '.join(QUERY_TYPES)}"],
            )
        if query_type in COLLECTION_QUERIES and not collection:
            return tool_error(
                ErrorCode.MISSING_REQUIRED,
                "missing_parameter",
                f"'collection' is required for {query_type}",
                suggestions=["Use queryType 'listCollections' first"],
            )

        try:
            filter_arg = JsonArgument.parse(args.get("filter"))
            command_arg = JsonArgument.parse(args.get("adminCommand"))
        except JsonArgumentError as e:
            return failed(query_type, str(e))

        try:
            if query_type == "listDatabases":
                result: Any = {"databases": await documents.list_databases()}
            elif query_type == "listCollections":
                result = {"collections": await documents.list_collections()}
            elif query_type == "countDocuments":
                spec = filter_arg.as_object() if filter_arg else {}
                result = {"collection": collection, "count": await documents.count_collection(collection, spec)}
            elif query_type == "findOne":
                spec = filter_arg.as_object() if filter_arg else {}
                result = {"collection": collection, "document": await documents.find_one_in_collection(collection, spec)}
            elif query_type == "aggregate":
                pipeline = filter_arg.as_pipeline() if filter_arg else []
                rows = await documents.aggregate(collection, pipeline)
                result = {"collection": collection, "count": len(rows), "results": rows[:limit]}
            else:
                if command_arg is None:
                    return failed(query_type, "'adminCommand' is required for adminCommand queries")
                result = await documents.admin_command(command_arg.as_object())

        except JsonArgumentError as e:
            return failed(query_type, str(e))
        except FilterError as e:
            return failed(query_type, str(e))
        except UnknownCollectionError:
            return tool_error(
                ErrorCode.NOT_FOUND,
                "collection_not_found",
                f"Collection '{collection}' does not exist",
                recoverable=True,
                suggestions=["Use queryType 'listCollections' to see available collections"],
                context={"collection": collection},
            )
        except SQLAlchemyError as e:
            return _storage_unavailable("raw_db_query", e)

        return tool_success({"queryType": query_type, **result})

    return Tool(
        name="raw_db_query",
        description=(
            "Low-level database discovery: list databases or collections, count or "
            "fetch one document, run an aggregation pipeline, or run an admin command."
        ),
        parameters=[
            ToolParameter(
                name="queryType",
                param_type="string",
                description="Kind of query",
                enum=QUERY_TYPES,
            ),
            ToolParameter(
                name="database",
                param_type="string",
                description="Database name (informational; there is one database)",
                required=False,
            ),
            ToolParameter(
                name="collection",
                param_type="string",
                description="Collection (table) name",
                required=False,
            ),
            ToolParameter(
                name="filter",
                param_type=["object", "array", "string"],
                description="Filter object, or pipeline array for aggregate",
                required=False,
            ),
            ToolParameter(
                name="limit",
                param_type="integer",
                description="Maximum results for aggregate",
                required=False,
                default=10,
            ),
            ToolParameter(
                name="adminCommand",
                param_type=["object", "string"],
                description='Admin command, e.g. {"ping": 1} or {"dbStats": 1}',
                required=False,
            ),
        ],
        handler=handler,
    )


def create_database_tools(documents: DocumentStore) -> list[Tool]:
    return [
        create_query_database_tool(documents),
        create_system_stats_tool(documents),
        create_raw_db_query_tool(documents),
    ]
