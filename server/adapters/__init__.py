"""Cloud provider adapters for lambda-http-bridge.

This package contains adapters that transform cloud-specific event formats
into InvocationEvents and InvocationResponses back into the cloud-specific
response format.

Each adapter handles:
- Event format transformation (cloud-specific -> InvocationEvent)
- Response format transformation (InvocationResponse -> cloud-specific)
- Cloud-specific context extraction (request IDs, function names, etc.)
"""

from .aws_lambda import AwsLambdaAdapter, lambda_handler

__all__ = ["AwsLambdaAdapter", "lambda_handler"]
