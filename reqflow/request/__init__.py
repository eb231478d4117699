"""reqflow.request

Single attempts: cancellation, the timeout envelope, retry policy, HTTP.
"""

from .cancel import CancelToken
from .executor import RequestExecutor
from .http import HttpTransport, make_request, query_params
from .retry import RetryPolicy

__all__ = ["CancelToken", "HttpTransport", "RequestExecutor", "RetryPolicy", "make_request", "query_params"]
