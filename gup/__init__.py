"""
gup — Google Drive from the command line.

Package structure:
    gup.cli               — argparse entry point (`gup` console script)
    gup.commands          — one BaseCommand subclass per sub-command
    gup.base              — BaseCommand abstract class (logging, timing, errors)
    gup.config            — Config (config.json + environment + .env)
    gup.errors            — exception hierarchy
    gup.models            — CredentialRecord, DriveFile dataclasses
    gup.token_store       — TokenStore (token.json persistence)
    gup.token_refresh     — TokenRefresher (expiry check + refresh grant)
    gup.callback_listener — CallbackListener (loopback OAuth2 redirect)
    gup.auth_flow         — AuthorizationFlow (browser consent + code exchange)
    gup.session           — Session (the one place commands get credentials from)
    gup.google_factory    — GoogleServiceFactory (lazy, cached API services)
    gup.drive_client      — DriveClient
    gup.formatter         — rich / JSON rendering of file listings
"""

__version__ = "1.0.0"
