"""
Shared pieces: value types, degree/meter helpers, JSON logging, params.yaml loading.
"""
