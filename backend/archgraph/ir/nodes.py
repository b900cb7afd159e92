from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire (editor snapshot format)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


FieldType = Literal["string", "number", "boolean", "object", "array", "any"]

# ---- Fields ----

class InputField(CamelModel):
    name: str
    type: FieldType
    required: bool = True
    description: Optional[str] = None


class OutputField(CamelModel):
    name: str
    type: FieldType
    description: Optional[str] = None


# ---- API Binding ----

HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]

ApiProtocol = Literal[
    "rest",
    "ws",
    "socket.io",
    "webrtc",
    "graphql",
    "grpc",
    "sse",
    "webhook",
]


class SecurityScheme(CamelModel):
    type: Literal["none", "api_key", "bearer", "oauth2", "basic"] = "none"
    header_name: Optional[str] = None
    scopes: List[str] = Field(default_factory=list)


class RateLimit(CamelModel):
    enabled: bool = False
    requests: int = 100
    window: Literal["second", "minute", "hour", "day"] = "minute"


class RequestBody(CamelModel):
    content_type: Literal["application/json", "multipart/form-data", "text/plain"] = "application/json"
    fields: List[InputField] = Field(default_factory=list, alias="schema")


class ApiRequest(CamelModel):
    path_params: List[InputField] = Field(default_factory=list)
    query_params: List[InputField] = Field(default_factory=list)
    headers: List[InputField] = Field(default_factory=list)
    body: RequestBody = Field(default_factory=RequestBody)


class ApiResponse(CamelModel):
    status_code: int
    fields: List[OutputField] = Field(default_factory=list, alias="schema")


class ApiResponses(CamelModel):
    success: ApiResponse = Field(default_factory=lambda: ApiResponse(status_code=200))
    error: ApiResponse = Field(default_factory=lambda: ApiResponse(status_code=400))


class ApiInstance(CamelModel):
    """Protocol-specific configuration for non-REST bindings."""

    model_config = ConfigDict(extra="allow")

    protocol: ApiProtocol
    config: Dict[str, Any] = Field(default_factory=dict)


class ApiBinding(CamelModel):
    kind: Literal["api_binding"] = "api_binding"
    id: str
    label: str = ""
    description: Optional[str] = None
    protocol: ApiProtocol = "rest"
    api_type: Optional[Literal["openapi", "asyncapi"]] = None
    instance: Optional[ApiInstance] = None
    method: Optional[HttpMethod] = None
    route: Optional[str] = None
    request: Optional[ApiRequest] = None
    responses: Optional[ApiResponses] = None
    security: Optional[SecurityScheme] = None
    rate_limit: Optional[RateLimit] = None
    version: str = "v1"
    deprecated: bool = False
    process_ref: str = ""

    @model_validator(mode="after")
    def check_protocol_fields(self) -> "ApiBinding":
        if self.protocol == "rest":
            if self.instance is not None:
                raise ValueError("REST protocol cannot include instance config")
            return self

        if self.instance is None:
            raise ValueError("Non-REST protocols require an instance config")
        if self.instance.protocol != self.protocol:
            raise ValueError("Protocol must match instance protocol")
        if self.method or self.route or self.request or self.responses:
            raise ValueError(
                "Non-REST protocols cannot include REST method/route/request/responses fields"
            )
        return self


# ---- Process (business function) ----

StepKind = Literal[
    "compute",
    "db_operation",
    "external_call",
    "condition",
    "transform",
    "ref",
    "return",
]


class ProcessStep(CamelModel):
    id: str
    kind: StepKind
    description: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    ref: Optional[str] = None


class ProcessOutputs(CamelModel):
    success: List[OutputField] = Field(default_factory=list)
    error: List[OutputField] = Field(default_factory=list)


class ProcessTrigger(CamelModel):
    queue: Optional[str] = None
    event: Optional[str] = None


class RetryPolicy(CamelModel):
    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff: Literal["fixed", "linear", "exponential"] = "exponential"
    delay_ms: int = Field(default=1000, ge=0)


class ProcessDefinition(CamelModel):
    kind: Literal["process"] = "process"
    id: str
    label: str = ""
    description: Optional[str] = None
    process_type: Literal["function_block"] = "function_block"
    execution: Literal["sync", "async", "scheduled", "event_driven"] = "sync"
    inputs: List[InputField] = Field(default_factory=list)
    outputs: ProcessOutputs = Field(default_factory=ProcessOutputs)
    steps: List[ProcessStep] = Field(default_factory=list)
    schedule: Optional[str] = None
    trigger: Optional[ProcessTrigger] = None
    timeout: Optional[int] = Field(default=None, ge=0)
    retry_policy: Optional[RetryPolicy] = None
    tags: List[str] = Field(default_factory=list)


# ---- Database ----

DatabaseFieldType = Literal[
    "string",
    "number",
    "date",
    "text",
    "int",
    "bigint",
    "float",
    "decimal",
    "boolean",
    "datetime",
    "json",
    "uuid",
]


class DatabaseCapabilities(CamelModel):
    crud: bool = True
    transactions: bool = True
    joins: bool = True
    aggregations: bool = True
    indexes: bool = True
    constraints: bool = True
    pagination: bool = True


class DatabaseEnvironmentConfig(CamelModel):
    connection_string: str = ""
    performance_tier: Literal["small", "medium", "large"] = "small"


class DatabaseEnvironments(CamelModel):
    dev: DatabaseEnvironmentConfig = Field(default_factory=DatabaseEnvironmentConfig)
    staging: DatabaseEnvironmentConfig = Field(
        default_factory=lambda: DatabaseEnvironmentConfig(performance_tier="medium")
    )
    production: DatabaseEnvironmentConfig = Field(
        default_factory=lambda: DatabaseEnvironmentConfig(performance_tier="large")
    )

    def connection_string_for(self, env: str) -> str:
        if env == "production":
            return self.production.connection_string.strip()
        if env == "staging":
            return self.staging.connection_string.strip()
        return self.dev.connection_string.strip()


class DatabaseTableField(CamelModel):
    id: Optional[str] = None
    name: str
    type: DatabaseFieldType = "string"
    nullable: Optional[bool] = None
    is_primary_key: Optional[bool] = None


class DatabaseTable(CamelModel):
    id: Optional[str] = None
    name: str
    fields: List[DatabaseTableField] = Field(default_factory=list)
    indexes: Optional[List[str]] = None


class DatabaseBlock(CamelModel):
    kind: Literal["database"] = "database"
    id: str
    label: str = ""
    description: Optional[str] = None
    db_type: Literal["sql", "nosql", "kv", "graph"] = "sql"
    engine: Optional[str] = None
    capabilities: DatabaseCapabilities = Field(default_factory=DatabaseCapabilities)
    environments: DatabaseEnvironments = Field(default_factory=DatabaseEnvironments)
    schemas: List[str] = Field(default_factory=list)
    tables: List[DatabaseTable] = Field(default_factory=list)


# ---- Queue ----

class QueueRetry(CamelModel):
    max_attempts: int = 3
    backoff: Literal["linear", "exponential"] = "exponential"


class QueueBlock(CamelModel):
    kind: Literal["queue"] = "queue"
    id: str
    label: str = ""
    description: Optional[str] = None
    delivery: Literal["at_least_once", "at_most_once", "exactly_once"] = "at_least_once"
    retry: QueueRetry = Field(default_factory=QueueRetry)
    dead_letter: bool = False


# ---- Infrastructure ----

InfraResourceType = Literal[
    "ec2",
    "lambda",
    "eks",
    "vpc",
    "s3",
    "rds",
    "load_balancer",
    "hpc",
]

COMPUTE_RESOURCE_TYPES = frozenset({"ec2", "lambda", "eks", "hpc"})


class InfraBlock(CamelModel):
    kind: Literal["infra"] = "infra"
    id: str
    label: str = ""
    description: Optional[str] = None
    provider: Literal["aws", "gcp", "azure", "generic"] = "aws"
    environment: Literal["production", "staging", "preview", "dev"] = "dev"
    region: str = ""
    tags: List[str] = Field(default_factory=list)
    resource_type: InfraResourceType
    config: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_compute(self) -> bool:
        return self.resource_type in COMPUTE_RESOURCE_TYPES


# ---- Service Boundary ----

class CommunicationPolicy(CamelModel):
    allow_api_calls: bool = True
    allow_queue_events: bool = True
    allow_event_bus: bool = True
    allow_direct_db_access: bool = False


class ServiceBoundaryBlock(CamelModel):
    kind: Literal["service_boundary"] = "service_boundary"
    id: str
    label: str = ""
    description: Optional[str] = None
    api_refs: List[str] = Field(default_factory=list)
    function_refs: List[str] = Field(default_factory=list)
    data_refs: List[str] = Field(default_factory=list)
    compute_ref: Optional[str] = None
    communication: CommunicationPolicy = Field(default_factory=CommunicationPolicy)


# ---- Node Data union ----

NodeData = Annotated[
    Union[
        ApiBinding,
        ProcessDefinition,
        DatabaseBlock,
        QueueBlock,
        InfraBlock,
        ServiceBoundaryBlock,
    ],
    Field(discriminator="kind"),
]

NodeKind = Literal[
    "api_binding",
    "process",
    "database",
    "queue",
    "infra",
    "service_boundary",
]
