"""
Per-kind node execution.

Processes interpret their steps in declared order; databases verify
connectivity and declared tables; queues enqueue and/or consume depending
on where they sit in the drawn graph. Soft failures are logged and
execution continues; hard failures raise a RuntimeFlowError.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, assert_never

from pydantic import ValidationError

from archgraph.adapters.persistence import PersistencePool
from archgraph.adapters.queue import QueueAdapter
from archgraph.config import RuntimeSettings
from archgraph.ir.errors import ProcessValidationError, UnsafeIdentifierError
from archgraph.ir.graph import GraphNode
from archgraph.ir.nodes import (
    ApiBinding,
    DatabaseBlock,
    InfraBlock,
    ProcessDefinition,
    ProcessStep,
    QueueBlock,
    ServiceBoundaryBlock,
)
from archgraph.runtime.context import GraphExecutionContext, ProcessContext

logger = logging.getLogger(__name__)

SAFE_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_safe_identifier(value: str) -> bool:
    return bool(SAFE_IDENTIFIER.match(value))


@dataclass
class DatabaseIndex:
    """Database nodes addressable by graph id, domain id, or label."""
    by_graph_id: Dict[str, DatabaseBlock] = field(default_factory=dict)
    by_domain_id: Dict[str, DatabaseBlock] = field(default_factory=dict)
    by_label: Dict[str, DatabaseBlock] = field(default_factory=dict)

    @classmethod
    def build(cls, nodes: List[GraphNode]) -> "DatabaseIndex":
        index = cls()
        for node in nodes:
            if not isinstance(node.data, DatabaseBlock):
                continue
            index.by_graph_id.setdefault(node.id, node.data)
            if node.data.id:
                index.by_domain_id.setdefault(node.data.id, node.data)
            if node.data.label:
                index.by_label.setdefault(node.data.label, node.data)
        return index

    def resolve(self, ref: str) -> Optional[DatabaseBlock]:
        if not ref:
            return None
        return (
            self.by_graph_id.get(ref)
            or self.by_domain_id.get(ref)
            or self.by_label.get(ref)
        )


class NodeExecutor:
    def __init__(
        self,
        pool: PersistencePool,
        queue: QueueAdapter,
        settings: RuntimeSettings,
    ):
        self.pool = pool
        self.queue = queue
        self.settings = settings

    async def execute(
        self,
        node: GraphNode,
        context: ProcessContext,
        databases: DatabaseIndex,
        graph: GraphExecutionContext,
    ) -> None:
        match node.data:
            case ProcessDefinition() as process:
                output = await self.execute_process(process, context, databases)
                if output is not None:
                    context.output = output
            case QueueBlock() as queue_block:
                await self.execute_queue(node.id, queue_block, context, graph)
            case DatabaseBlock() as database:
                await self.execute_database(database)
            case ApiBinding() | InfraBlock() | ServiceBoundaryBlock():
                return
            case _:
                assert_never(node.data)

    # ---- process ----

    async def execute_process(
        self,
        process: ProcessDefinition,
        context: ProcessContext,
        databases: DatabaseIndex,
    ) -> Optional[Dict[str, Any]]:
        for step in process.steps:
            match step.kind:
                case "condition":
                    if context.strict_validation:
                        self.validate_required_fields(process, step, context.input)
                case "db_operation":
                    await self.execute_db_operation(process, step, context, databases)
                case "return":
                    return self.return_value(step, context)
                case "compute" | "external_call" | "transform" | "ref":
                    continue
        return None

    @staticmethod
    def validate_required_fields(
        process: ProcessDefinition,
        step: ProcessStep,
        payload: Any,
    ) -> None:
        raw = (step.config or {}).get("requiredFields")
        required = [name for name in raw if isinstance(name, str)] if isinstance(raw, list) else []
        if not required:
            return

        if not isinstance(payload, dict):
            raise ProcessValidationError(process.id, step.id)

        missing = [name for name in required if payload.get(name) in (None, "")]
        if missing:
            raise ProcessValidationError(process.id, step.id, missing)

    @staticmethod
    def return_value(step: ProcessStep, context: ProcessContext) -> Dict[str, Any]:
        explicit = (step.config or {}).get("value")
        if isinstance(explicit, dict):
            return explicit
        if isinstance(context.input, dict):
            return context.input
        return {"value": explicit}

    async def execute_db_operation(
        self,
        process: ProcessDefinition,
        step: ProcessStep,
        context: ProcessContext,
        databases: DatabaseIndex,
    ) -> None:
        ref = (step.ref or "").strip()
        database = databases.resolve(ref)
        if database is None:
            logger.warning(
                'Process "%s" references missing database "%s" in step "%s"',
                process.id, ref, step.id,
            )
            return

        await self.execute_database(database)

        operation = str((step.config or {}).get("operation") or "").strip().lower()
        if operation == "create":
            await self.execute_create(database, step.config or {}, context)

    # ---- database ----

    def resolve_connection_string(self, database: DatabaseBlock) -> str:
        return (
            database.environments.connection_string_for(self.settings.db_env)
            or self.settings.database_url
        )

    async def execute_database(self, database: DatabaseBlock) -> None:
        try:
            database = DatabaseBlock.model_validate(database.model_dump())
        except ValidationError as exc:
            logger.error('Invalid database block "%s" configuration: %s', database.id, exc)
            return

        connection_string = self.resolve_connection_string(database)
        if not connection_string:
            logger.error('Database block "%s" has no connection string configured', database.id)
            return

        adapter = self.pool.get(connection_string)
        try:
            await adapter.connect()

            tables = [table.name.strip() for table in database.tables if table.name.strip()]
            if not tables:
                return

            schemas = [schema.strip() for schema in database.schemas if schema.strip()] or ["public"]
            for table in tables:
                if not await adapter.table_exists(schemas, table):
                    logger.warning(
                        'Table "%s" for database block "%s" was not found', table, database.id
                    )
        except Exception as exc:
            logger.error(
                'Failed to connect/validate database block "%s": %s', database.id, exc
            )

    def _create_target(
        self, database: DatabaseBlock, config: Dict[str, Any]
    ) -> Tuple[str, str]:
        table = str(config.get("table") or config.get("model") or "").strip()
        if not table and database.tables:
            table = database.tables[0].name.strip()

        schema = str(config.get("schema") or "").strip()
        if not schema and database.schemas:
            schema = database.schemas[0].strip()
        return schema or "public", table

    async def execute_create(
        self,
        database: DatabaseBlock,
        config: Dict[str, Any],
        context: ProcessContext,
    ) -> None:
        if database.db_type != "sql":
            logger.warning(
                'Create operation is only supported for SQL database blocks ("%s")', database.id
            )
            return

        schema, table = self._create_target(database, config)
        if not table:
            logger.warning('Create operation for "%s" has no target table/model', database.id)
            return

        if not is_safe_identifier(schema):
            raise UnsafeIdentifierError(database.id, schema, "schema")
        if not is_safe_identifier(table):
            raise UnsafeIdentifierError(database.id, table, "table")

        data = config.get("data")
        values = data if isinstance(data, dict) else context.input_object()
        if values is None:
            logger.warning('Create operation for "%s" requires object payload data', database.id)
            return
        if not values:
            logger.warning('Create operation for "%s" has no insertable fields', database.id)
            return

        for column in values:
            if not is_safe_identifier(column):
                raise UnsafeIdentifierError(database.id, column, "column")

        connection_string = self.resolve_connection_string(database)
        if not connection_string:
            logger.error(
                'Cannot run create operation for "%s" without connection string', database.id
            )
            return

        adapter = self.pool.get(connection_string)
        try:
            await adapter.connect()
            await adapter.insert_row(schema, table, dict(values))
        except Exception as exc:
            logger.error(
                'Create operation failed for "%s" on "%s.%s": %s',
                database.id, schema, table, exc,
            )
            return

        context.output = {**(context.output or {}), "insertedTable": table}
        logger.info('Inserted row into "%s.%s" for "%s"', schema, table, database.id)

    # ---- queue ----

    @staticmethod
    def queue_name(queue_block: QueueBlock) -> str:
        return queue_block.label.strip() or queue_block.id

    @staticmethod
    def queue_modes(node_id: str, graph: GraphExecutionContext) -> Tuple[bool, bool]:
        """
        (ingestion, consumer) inferred from drawn edges around the queue.

        Ingestion: any inbound edge from a non-queue node. Consumer: any
        outbound edge to a process or API node. Neither: both.
        """
        incoming = graph.incoming_by_id.get(node_id, [])
        outgoing = graph.outgoing_by_id.get(node_id, [])

        ingestion = any(
            graph.node_by_id[source].kind != "queue"
            for source in incoming
            if source in graph.node_by_id
        )
        consumer = any(
            graph.node_by_id[target].kind in ("process", "api_binding")
            for target in outgoing
            if target in graph.node_by_id
        )

        if not ingestion and not consumer:
            return True, True
        return ingestion, consumer

    @staticmethod
    def queue_payload(context: ProcessContext) -> Dict[str, Any]:
        if context.output is not None:
            return context.output
        if isinstance(context.input, dict):
            return context.input
        return {"value": context.input}

    async def execute_queue(
        self,
        node_id: str,
        queue_block: QueueBlock,
        context: ProcessContext,
        graph: GraphExecutionContext,
    ) -> None:
        name = self.queue_name(queue_block)
        ingestion, consumer = self.queue_modes(node_id, graph)
        backend = self.queue.kind

        if ingestion:
            job = await self.queue.enqueue(name, self.queue_payload(context))
            logger.info('Enqueued job "%s" to queue "%s" (%s)', job.job_id, name, backend)

        if consumer:
            async def handle(payload: Dict[str, Any]) -> None:
                logger.info(
                    'Processed queue job from "%s" with payload keys: %s',
                    name, ", ".join(payload),
                )

            await self.queue.register_worker(name, handle)
            processed = await self.queue.drain(name)
            logger.info(
                'Queue worker ready for "%s" (%s, processed %d jobs)', name, backend, processed
            )
