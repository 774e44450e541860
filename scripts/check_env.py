"""Preflight checks for the Spotify credential service.

Run before starting the API, or after editing ``.env``::

    # Settings load and the redirect URI is one Spotify will accept.
    python -m scripts.check_env config --env-file /opt/cleanplayer/.env

    # Also open the device-local store and read the shared credential store.
    python -m scripts.check_env stores --env-file /opt/cleanplayer/.env

    # Print a consent URL and its verifier to walk through a login by hand.
    python -m scripts.check_env authorize-url --env-file .env
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Callable
from urllib.parse import urlsplit

from pydantic import ValidationError

from cleanplayer.clients import LocalCredentialStore, SpotifyOAuthClient
from cleanplayer.clients.credential_store import StoreUnavailableError
from cleanplayer.core.config import AppSettings, _load_env_file
from cleanplayer.dependencies.clients import build_credential_store
from cleanplayer.services import TokenCipherService
from cleanplayer.services.pkce import generate_pkce_pair

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_STORE_ERROR = 4
EXIT_RUNTIME_ERROR = 5

# Spotify accepts plain http redirect URIs only for loopback addresses.
_LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


def _load_settings(env_file: Path) -> AppSettings:
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _redirect_uri_problems(redirect_uri: str) -> list[str]:
    parsed = urlsplit(redirect_uri)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return [f"SPOTIFY_REDIRECT_URI {redirect_uri!r} is not an absolute http(s) URL."]

    problems = []
    if parsed.scheme == "http" and parsed.hostname not in _LOOPBACK_HOSTS:
        problems.append(
            f"SPOTIFY_REDIRECT_URI {redirect_uri!r} must use https unless it "
            "points at a loopback address."
        )
    if parsed.fragment:
        problems.append(f"SPOTIFY_REDIRECT_URI {redirect_uri!r} must not contain a fragment.")
    return problems


def _configuration_problems(settings: AppSettings) -> list[str]:
    """Return problems that pass field validation but break the login flow."""
    problems = _redirect_uri_problems(settings.spotify.redirect_uri)
    if not settings.security.token_encryption_secret:
        problems.append("TOKEN_ENCRYPTION_SECRET is empty; stored tokens cannot be encrypted.")
    if not settings.spotify.scopes:
        problems.append("SPOTIFY_SCOPES is empty; playback control needs scopes.")
    storage = settings.storage
    if storage.backend == "dynamodb" and not storage.dynamodb_table_name:
        problems.append("CREDENTIAL_STORE_BACKEND=dynamodb requires DYNAMODB_TABLE_NAME.")
    return problems


def _describe(settings: AppSettings) -> str:
    """Summarize the settings that must match external registrations."""
    storage = settings.storage
    shared = (
        f"dynamodb table {storage.dynamodb_table_name} ({storage.region_name})"
        if storage.backend == "dynamodb"
        else f"sqlite {storage.remote_db_path}"
    )
    return (
        f"Spotify redirect URI: {settings.spotify.redirect_uri}\n"
        f"Requested scopes: {len(settings.spotify.scopes)}\n"
        f"Shared credential store: {shared}"
    )


def _check_stores(settings: AppSettings) -> int:
    cipher = TokenCipherService(secret=settings.security.token_encryption_secret)
    try:
        LocalCredentialStore(settings.storage.local_db_path)
        records = build_credential_store(settings.storage, cipher).list_all()
    except StoreUnavailableError as exc:
        print(f"Credential store check failed: {exc}", file=sys.stderr)
        return EXIT_STORE_ERROR

    usable = sum(1 for record in records if record.is_usable())
    print(f"Local store OK: {settings.storage.local_db_path}")
    print(f"Shared store OK: {len(records)} credential(s), {usable} usable")
    return EXIT_OK


def _print_authorize_url(settings: AppSettings) -> int:
    pair = generate_pkce_pair(settings.spotify.verifier_length)
    client = SpotifyOAuthClient(settings.spotify)
    print(f"Authorize URL: {client.build_authorization_url(pair.challenge)}")
    print(f"Code verifier: {pair.verifier}")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--env-file",
        default=".env",
        type=Path,
        help="Path to the environment file (default: .env in the repo root).",
    )

    parser = argparse.ArgumentParser(
        description="Check that the Spotify credential service is ready to run."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser(
        "config", parents=[common], help="Validate settings and the redirect URI."
    )
    subparsers.add_parser(
        "stores",
        parents=[common],
        help="Validate settings, then open the local and shared credential stores.",
    )
    subparsers.add_parser(
        "authorize-url",
        parents=[common],
        help="Validate settings, then print a Spotify consent URL.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    if not env_file.exists():
        print(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    try:
        settings = _load_settings(env_file)
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    problems = _configuration_problems(settings)
    if problems:
        print("Settings validation failed:", file=sys.stderr)
        for problem in problems:
            print(f"  - {problem}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    print(_describe(settings))
    handlers: dict[str, Callable[[], int]] = {
        "config": lambda: EXIT_OK,
        "stores": lambda: _check_stores(settings),
        "authorize-url": lambda: _print_authorize_url(settings),
    }
    return handlers[args.command]()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
