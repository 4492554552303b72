"""Command-line and environment configuration for the bot."""
import argparse
import os
from dataclasses import dataclass
from typing import List, Optional

DEFAULT_MOBILIZON_URL = 'https://mobilisons.ch'
DEFAULT_TIMEZONE = 'Europe/Zurich'


def default_config_dir() -> str:
    """Return $XDG_CONFIG_HOME/mobilizon, falling back to ~/.config/mobilizon."""
    base = os.environ.get('XDG_CONFIG_HOME') or os.path.join(os.path.expanduser('~'), '.config')
    return os.path.join(base, 'mobilizon')


@dataclass
class Settings:
    """Complete set of options for one bot run."""
    mobilizon_url: str = DEFAULT_MOBILIZON_URL
    city: str = 'X'
    country: str = ''
    limit: str = ''
    page: str = ''
    radius: str = ''
    date: str = ''
    file: str = ''
    auth_config: str = ''
    config_dir: str = ''
    actor_id: str = ''
    group_id: str = ''
    timezone: str = DEFAULT_TIMEZONE
    noop: bool = False
    register: bool = False
    authorize: bool = False
    draft: bool = False
    debug: bool = False
    client_id: str = ''
    log_level: str = 'INFO'
    timeout: int = 30

    @property
    def api_url(self) -> str:
        return self.mobilizon_url.rstrip('/') + '/api'

    @classmethod
    def from_args(cls, argv: Optional[List[str]] = None) -> 'Settings':
        """
        Build settings from command-line arguments and the environment.

        Args:
            argv: Arguments without the program name (default: sys.argv)

        Returns:
            Settings object
        """
        args = build_parser().parse_args(argv)

        config_dir = args.config or default_config_dir()
        auth_config = args.authconfig or os.path.join(config_dir, 'auth.json')

        return cls(
            mobilizon_url=args.mobilizonurl,
            city=args.city,
            country=args.country,
            limit=args.limit,
            page=args.page,
            radius=args.radius,
            date=args.date,
            file=args.file,
            auth_config=auth_config,
            config_dir=config_dir,
            actor_id=args.actor,
            group_id=args.group,
            timezone=args.timezone,
            noop=args.noop,
            register=args.register,
            authorize=args.authorize,
            draft=args.draft,
            debug=args.debug,
            client_id=os.environ.get('GRAPHQL_CLIENT_ID', ''),
            log_level='DEBUG' if args.debug else os.environ.get('LOG_LEVEL', 'INFO'),
            timeout=int(os.environ.get('TIMEOUT_SECONDS', '30'))
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cc2mob',
        description='Import events from ConcertCloud into Mobilizon.'
    )
    parser.add_argument('--mobilizonurl', default=DEFAULT_MOBILIZON_URL,
                        help='Your Mobilizon base URL')
    # defaults to X to avoid accidental flooding
    parser.add_argument('--city', default='X', help="The concertcloud API param 'city'")
    parser.add_argument('--country', default='', help="The concertcloud API param 'country'")
    parser.add_argument('--limit', default='', help="The concertcloud API param 'limit'")
    parser.add_argument('--page', default='', help="The concertcloud API param 'page'")
    parser.add_argument('--radius', default='', help="The concertcloud API param 'radius'")
    parser.add_argument('--date', default='', help="The concertcloud API param 'date'")
    parser.add_argument('--file', default='',
                        help='Instead of fetching from concertcloud, use local file.')
    parser.add_argument('--authconfig', default='',
                        help='Use this file for authorization tokens (default: <config>/auth.json).')
    parser.add_argument('--config', default='',
                        help='Use this directory for configuration (default: $XDG_CONFIG_HOME/mobilizon).')
    parser.add_argument('--actor', default='',
                        help='The Mobilizon actor ID to use as the event organizer.')
    parser.add_argument('--group', default='',
                        help='The Mobilizon group ID to use for the event attribution.')
    parser.add_argument('--timezone', default=DEFAULT_TIMEZONE,
                        help='The timezone to use for the events.')
    parser.add_argument('--noop', action='store_true',
                        help='Gather all required information and report on it, '
                             'but do not create events in Mobilizon.')
    parser.add_argument('--register', action='store_true',
                        help='Register this bot and quit. A client id will be output.')
    parser.add_argument('--authorize', action='store_true',
                        help='Authorize this bot interactively and quit.')
    parser.add_argument('--draft', action='store_true', help='Create events in draft mode.')
    parser.add_argument('--debug', action='store_true', help='Debug mode.')
    return parser
