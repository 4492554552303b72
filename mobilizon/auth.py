"""OAuth2 authorization against Mobilizon: token refresh and device flow."""
import logging
import os
from typing import Callable, Optional

import requests

from mobilizon.graphql_client import GraphQLError, parse_graphql_response
from processor.models import AuthState
from storage.cache_manager import load_json, save_json

logger = logging.getLogger(__name__)

SCOPES = 'write:event:create write:event:update write:media:upload'
DEVICE_GRANT_TYPE = 'urn:ietf:params:oauth:grant-type:device_code'

APP_NAME = 'Concert Cloud Bot'
APP_REDIRECT_URI = 'https://login.microsoftonline.com/common/oauth2/nativeclient'
APP_WEBSITE = 'https://concertcloud.live'

REFRESH_TOKEN_MUTATION = """
mutation refreshToken($refreshToken: String!) {
  refreshToken(refreshToken: $refreshToken) {
    accessToken
    refreshToken
  }
}
"""


class AuthorizationError(Exception):
    """Raised when the bot cannot obtain a valid access token."""


class AuthManager:
    """
    Holds the bot's OAuth2 tokens and keeps them valid.

    Tokens are persisted in an auth.json file. A stored refresh token is
    exchanged for a new access token on every run; the interactive device
    flow is only used when explicitly requested.
    """

    def __init__(
        self,
        base_url: str,
        auth_file: str,
        client_id: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
        input_func: Callable[[str], str] = input,
        output: Callable[[str], None] = print
    ):
        """
        Initialize the auth manager.

        Args:
            base_url: Mobilizon base URL
            auth_file: Path of the persisted token file
            client_id: OAuth2 client id (default: GRAPHQL_CLIENT_ID)
            session: requests session without retries (default: new session)
            timeout: HTTP request timeout in seconds
            input_func: Blocks until the user confirms the device code
            output: Writes user-facing instructions
        """
        self.base_url = base_url.rstrip('/')
        self.auth_file = auth_file
        self.client_id = client_id if client_id is not None else os.environ.get('GRAPHQL_CLIENT_ID', '')
        self.session = session or requests.Session()
        self.timeout = timeout
        self.input_func = input_func
        self.output = output
        self.state = AuthState()

    def current_token(self) -> str:
        return self.state.access_token

    def load(self) -> bool:
        """
        Load the persisted token state.

        Returns:
            True if a refresh token was found
        """
        data = load_json(self.auth_file)
        self.state = AuthState.from_dict(data)
        return bool(self.state.refresh_token)

    def save(self) -> None:
        save_json(self.auth_file, self.state.to_dict())
        logger.debug(f"Saved authorization to {self.auth_file}")

    def refresh(self) -> bool:
        """
        Exchange the stored refresh token for a new access token.

        Returns:
            True if the tokens were renewed and saved
        """
        if not self.state.refresh_token and not self.load():
            logger.info("No refresh token available")
            return False

        try:
            response = self.session.post(
                f"{self.base_url}/api",
                json={
                    'query': REFRESH_TOKEN_MUTATION,
                    'variables': {'refreshToken': self.state.refresh_token}
                },
                timeout=self.timeout
            )
            data = parse_graphql_response(response)
        except (requests.RequestException, GraphQLError) as e:
            logger.error(f"Failed auth token renewal: {e}")
            return False

        tokens = data.get('refreshToken') or {}
        if not tokens.get('accessToken'):
            logger.error("Failed auth token renewal: no access token returned")
            return False

        self.state.access_token = tokens['accessToken']
        self.state.refresh_token = tokens.get('refreshToken') or self.state.refresh_token
        try:
            self.save()
        except OSError as e:
            logger.error(f"Error saving auth file {self.auth_file}: {e}")
        logger.info("Renewed authorization token")
        return True

    def ensure_authorized(self, interactive: bool = False) -> None:
        """
        Make sure a valid access token is available.

        Args:
            interactive: Fall back to the device flow if the refresh fails

        Raises:
            AuthorizationError: If no token could be obtained
        """
        if self.refresh():
            return
        if not interactive:
            raise AuthorizationError(
                "Authorization could not be renewed. Run with --authorize to "
                "authorize this bot interactively."
            )
        self.authorize_device()

    def authorize_device(self) -> None:
        """
        Perform the OAuth2 device authorization grant.

        Prints the verification URI and user code, waits for the user and
        then exchanges the device code for tokens.

        Raises:
            AuthorizationError: If any step fails
        """
        if not self.client_id:
            raise AuthorizationError("GRAPHQL_CLIENT_ID is not set. Run with --register first.")

        logger.debug("Performing OAuth2 device flow")
        grant = self._post_form(
            '/login/device/code',
            {'client_id': self.client_id, 'scope': SCOPES}
        )
        if grant.get('error'):
            raise AuthorizationError(f"Error getting verification URI: {grant['error']}")
        if not grant.get('device_code'):
            raise AuthorizationError("No device code in response")

        self.output(f"Please visit this URL and enter the code below {grant.get('verification_uri', '')}")
        self.output('')
        self.output(grant.get('user_code', ''))
        self.output('')
        self.input_func('Then press Enter to continue.')

        tokens = self._post_form(
            '/oauth/token',
            {
                'client_id': self.client_id,
                'device_code': grant['device_code'],
                'grant_type': DEVICE_GRANT_TYPE
            }
        )
        if tokens.get('error') or not tokens.get('access_token'):
            raise AuthorizationError(
                f"Error getting access token: {tokens.get('error', 'no access token')}"
            )

        self.state = AuthState.from_dict(tokens)
        try:
            self.save()
        except OSError as e:
            raise AuthorizationError(f"Error writing auth file {self.auth_file}: {e}")
        logger.info("Authorization successful")

    def register_app(self) -> str:
        """
        Register the bot as an OAuth2 application.

        Returns:
            The new client id, also printed as a shell export line

        Raises:
            AuthorizationError: If the registration fails
        """
        registration = self._post_form(
            '/apps',
            {
                'name': APP_NAME,
                'redirect_uri': APP_REDIRECT_URI,
                'website': APP_WEBSITE,
                'scope': SCOPES
            }
        )
        client_id = registration.get('client_id')
        if not client_id:
            raise AuthorizationError(f"Registration failed: {registration.get('error', 'no client id')}")

        os.environ['GRAPHQL_CLIENT_ID'] = client_id
        self.client_id = client_id
        self.output(f"export GRAPHQL_CLIENT_ID={client_id}")
        return client_id

    def _post_form(self, path: str, form: dict) -> dict:
        try:
            response = self.session.post(
                f"{self.base_url}{path}",
                data=form,
                timeout=self.timeout
            )
            data = response.json()
        except requests.RequestException as e:
            raise AuthorizationError(f"Request to {path} failed: {e}")
        except ValueError as e:
            raise AuthorizationError(f"Invalid JSON from {path}: {e}")
        if not isinstance(data, dict):
            raise AuthorizationError(f"Unexpected response from {path}")
        return data
