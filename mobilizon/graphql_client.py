"""Minimal GraphQL client for the Mobilizon API."""
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class GraphQLError(Exception):
    """Raised when Mobilizon answers with an HTTP error or GraphQL errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def parse_graphql_response(response: requests.Response) -> Dict[str, Any]:
    """
    Extract the ``data`` member of a GraphQL response.

    Args:
        response: HTTP response from the /api endpoint

    Returns:
        The data dict

    Raises:
        GraphQLError: On HTTP errors, invalid JSON or GraphQL errors
    """
    status = response.status_code
    if status >= 400:
        raise GraphQLError(f"HTTP {status}: {response.text[:200]}", status)

    try:
        body = response.json()
    except ValueError as e:
        raise GraphQLError(f"Invalid JSON in response: {e}", status)

    errors = body.get('errors') if isinstance(body, dict) else None
    if errors:
        messages = []
        for error in errors:
            message = str(error.get('message', error)) if isinstance(error, dict) else str(error)
            code = error.get('code') if isinstance(error, dict) else None
            if code and str(code) not in message:
                message = f"{message} ({code})"
            messages.append(message)
        raise GraphQLError('; '.join(messages), status)

    data = body.get('data') if isinstance(body, dict) else None
    if data is None:
        raise GraphQLError("No data in response", status)
    return data


class GraphQLClient:
    """Executes GraphQL operations against Mobilizon's /api endpoint."""

    def __init__(self, transport, endpoint: str):
        """
        Initialize the client.

        Args:
            transport: Object with a requests-compatible post() method
            endpoint: GraphQL endpoint URL, e.g. https://mobilisons.ch/api
        """
        self.transport = transport
        self.endpoint = endpoint

    def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute a query or mutation.

        Args:
            query: GraphQL document
            variables: Operation variables

        Returns:
            The data dict of the response

        Raises:
            GraphQLError: If the server reports an error
        """
        response = self.transport.post(
            self.endpoint,
            json={'query': query, 'variables': variables or {}}
        )
        return parse_graphql_response(response)
