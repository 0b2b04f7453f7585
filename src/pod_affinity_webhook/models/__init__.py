"""
Pydantic models for the pod affinity webhook.

Contains the AdmissionReview envelope and the subset of the Pod schema the
admission path works with.
"""
