"""
Serving — FastAPI application and KServe runtime for the query service.

This module exposes question answering over HTTP so it can be deployed as
a standalone container or a KServe InferenceService.
"""
