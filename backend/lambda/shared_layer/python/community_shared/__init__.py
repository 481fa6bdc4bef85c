"""community_shared — Shared utilities for multilingual community Lambda functions.

Provides:
    - Cognito JWT authentication (bearer header or cookie)
    - AWS client singletons (DynamoDB, Translate, SSM, Secrets Manager)
    - HTTP response helpers with CORS and the error envelope
    - DynamoDB serialization/deserialization and timestamp helpers
    - Structured observability log lines
"""

__version__ = "1.0.0"
