"""
Error handling module for the pod affinity webhook.

This module provides an error hierarchy that integrates with kopf
and provides clear categorization for different types of failures.
"""

from .operator_errors import (
    AdmissionDecodeError,
    AdmissionError,
    ConfigurationError,
    ExternalServiceError,
    KubernetesAPIError,
    OperatorError,
    PatchGenerationError,
    TemporaryError,
)

__all__ = [
    "OperatorError",
    "TemporaryError",
    "ExternalServiceError",
    "KubernetesAPIError",
    "ConfigurationError",
    "AdmissionError",
    "AdmissionDecodeError",
    "PatchGenerationError",
]
