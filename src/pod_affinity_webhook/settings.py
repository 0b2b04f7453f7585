"""Centralized operator settings using pydantic-settings.

This module provides a single source of truth for all operator configuration
loaded from environment variables. Uses pydantic for automatic validation,
type coercion, and documentation.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pod_affinity_webhook import constants


class Settings(BaseSettings):
    """Operator configuration loaded from environment variables.

    All settings have sensible defaults for production use. Override via
    environment variables as documented per field.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Operator identification
    operator_namespace: str = Field(
        default="tekton-pipelines",
        description="Namespace where the operator is deployed (owner of the registration)",
        validation_alias="SYSTEM_NAMESPACE",
    )
    operator_name: str = Field(
        default="pod-affinity-webhook",
        description="Name of the operator deployment",
        validation_alias="OPERATOR_NAME",
    )

    # Pod identification (from downward API)
    pod_name: str = Field(
        default="",
        description="Name of the operator pod",
        validation_alias="POD_NAME",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Enable JSON formatted logging for structured log aggregation",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Enable correlation IDs in logs for request tracing",
    )
    log_health_probes: bool = Field(
        default=False,
        validation_alias="LOG_HEALTH_PROBES",
        description="Log health probe and metrics scrape requests",
    )
    webhook_log_level: str = Field(
        default="INFO",
        validation_alias="WEBHOOK_LOG_LEVEL",
        description="Log level for the admission webhook loggers",
    )

    # Registration (MutatingWebhookConfiguration) management
    webhook_name: str = Field(
        default=constants.DEFAULT_WEBHOOK_NAME,
        validation_alias="WEBHOOK_NAME",
        description="Name of the MutatingWebhookConfiguration kept in sync",
    )
    webhook_path: str = Field(
        default=constants.DEFAULT_WEBHOOK_PATH,
        validation_alias="WEBHOOK_PATH",
        description="HTTP path the API server calls for pod admission",
    )
    webhook_secret_name: str = Field(
        default=constants.DEFAULT_SECRET_NAME,
        validation_alias="WEBHOOK_SECRET_NAME",
        description="Secret in the operator namespace holding the CA bundle",
    )
    ca_cert_key: str = Field(
        default=constants.CA_CERT_KEY,
        validation_alias="WEBHOOK_CA_CERT_KEY",
        description="Key of the CA certificate inside the webhook secret",
    )
    exclude_label_key: str = Field(
        default=constants.EXCLUDE_LABEL_KEY,
        validation_alias="WEBHOOK_EXCLUDE_LABEL_KEY",
        description="Namespace label that opts a namespace out of the webhook",
    )

    # Admission behavior
    owning_workflow_label: str = Field(
        default=constants.OWNING_WORKFLOW_LABEL_KEY,
        validation_alias="OWNING_WORKFLOW_LABEL",
        description="Pod label identifying the workflow that created the pod",
    )
    affinity_assistant_annotation: str = Field(
        default=constants.AFFINITY_ASSISTANT_ANNOTATION,
        validation_alias="AFFINITY_ASSISTANT_ANNOTATION",
        description="Pod annotation marking an existing affinity assistant placement",
    )
    instance_label_key: str = Field(
        default=constants.INSTANCE_LABEL_KEY,
        validation_alias="AFFINITY_INSTANCE_LABEL",
        description="Label key matched by the injected pod affinity term",
    )
    topology_key: str = Field(
        default=constants.HOSTNAME_TOPOLOGY_KEY,
        validation_alias="AFFINITY_TOPOLOGY_KEY",
        description="Topology key of the injected pod affinity term",
    )

    # Admission webhook server
    webhook_port: int = Field(
        default=8443,
        validation_alias="WEBHOOK_PORT",
        description="Port for admission webhook server",
    )
    webhook_host: str = Field(
        default="0.0.0.0",
        validation_alias="WEBHOOK_HOST",
        description="Host address to bind the admission webhook server",
    )
    webhook_cert_dir: str = Field(
        default="/tmp/k8s-webhook-server/serving-certs",
        validation_alias="WEBHOOK_CERT_DIR",
        description="Directory holding tls.crt and tls.key for the webhook server",
    )

    # Metrics and observability
    metrics_port: int = Field(
        default=8081,
        validation_alias="METRICS_PORT",
        description="Port for Prometheus metrics endpoint",
    )
    metrics_host: str = Field(
        default="0.0.0.0",
        validation_alias="METRICS_HOST",
        description="Host address to bind metrics server",
    )
    tracing_enabled: bool = Field(
        default=False,
        validation_alias="OTEL_TRACING_ENABLED",
        description="Enable OpenTelemetry tracing",
    )
    tracing_endpoint: str = Field(
        default="http://localhost:4317",
        validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT",
        description="OTLP gRPC collector endpoint",
    )
    tracing_sample_rate: float = Field(
        default=1.0,
        validation_alias="OTEL_TRACES_SAMPLER_ARG",
        description="Fraction of root traces to sample (0.0-1.0)",
    )

    # Leader election
    leader_election_enabled: bool = Field(
        default=False,
        validation_alias="LEADER_ELECTION_ENABLED",
        description="Gate registration writes on holding the leader lease",
    )
    leader_election_lease_name: str = Field(
        default="pod-affinity-webhook",
        validation_alias="LEADER_ELECTION_LEASE_NAME",
        description="Name of the coordination Lease whose holder is the leader",
    )
    leader_election_lease_duration_seconds: int = Field(
        default=15,
        validation_alias="LEADER_ELECTION_LEASE_DURATION",
        description="Seconds a lease stays valid without renewal",
    )
    leader_election_renew_interval_seconds: float = Field(
        default=5.0,
        validation_alias="LEADER_ELECTION_RENEW_INTERVAL",
        description="Interval between lease acquire/renew attempts",
    )

    # Reconciliation behavior
    reconcile_timeout_seconds: float = Field(
        default=constants.DEFAULT_RECONCILIATION_TIMEOUT,
        validation_alias="RECONCILE_TIMEOUT_SECONDS",
        description="Deadline for each Kubernetes read or write of a reconcile pass",
    )
    resync_interval_seconds: float = Field(
        default=constants.DEFAULT_RESYNC_INTERVAL,
        validation_alias="RESYNC_INTERVAL_SECONDS",
        description="Interval between periodic registration reconciles",
    )


# Global settings instance - initialized once at module import
settings = Settings()
