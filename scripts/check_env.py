"""Pre-flight check for the campus proxy ``.env`` file.

Each Google-backed application resolves to one of three modes:

* ``fake``: requests are served from the fixtures directory, which must exist.
* ``live``: requests reach Google, so a client id and secret are required.
* ``disabled``: no client registration; OAuth and stored tokens are unavailable.

The credential store settings are checked for the selected backend. A baseline
holding the file checksum and every app's mode can be recorded and verified
later, so an edit that flips an app to fake mode is reported by name.

Example usages::

    python -m scripts.check_env check --env-file /opt/campus-proxy/.env

    python -m scripts.check_env record --env-file /opt/campus-proxy/.env \
        --baseline /opt/campus-proxy/.env.baseline.json

    python -m scripts.check_env verify --env-file /opt/campus-proxy/.env \
        --baseline /opt/campus-proxy/.env.baseline.json
"""

from __future__ import annotations

import argparse
import hashlib
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from campus_proxy.core.config import (
    APP_ID,
    OEC_APP_ID,
    AppSettings,
    CredentialStoreSettings,
    GoogleProxySettings,
    OAuthSettings,
    OecGoogleSettings,
    ProxyAppSettings,
    SecuritySettings,
    resolve_app_config,
)

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5

APP_IDS = (APP_ID, OEC_APP_ID)
ENV_PREFIXES = {APP_ID: "GOOGLE_PROXY_", OEC_APP_ID: "OEC_GOOGLE_"}


@dataclass
class EnvReport:
    checksum: str
    modes: dict[str, str] = field(default_factory=dict)
    problems: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def baseline(self) -> dict:
        return {"sha256": self.checksum, "modes": dict(self.modes)}


def _app_mode(app_id: str, config: ProxyAppSettings) -> str:
    if config.fake:
        return "fake"
    # The portal app is always live; other apps only once registered.
    if config.client_id or app_id == APP_ID:
        return "live"
    return "disabled"


def _check_app(app_id: str, config: ProxyAppSettings, report: EnvReport) -> None:
    prefix = ENV_PREFIXES[app_id]
    mode = _app_mode(app_id, config)
    report.modes[app_id] = mode

    if mode == "fake":
        if not Path(config.fixtures_dir).is_dir():
            report.problems.append(
                f"{app_id}: fixtures directory {config.fixtures_dir} does not exist "
                f"({prefix}FIXTURES_DIR)."
            )
    elif mode == "live":
        missing = [
            f"{prefix}{name.upper()}"
            for name in ("client_id", "client_secret")
            if not getattr(config, name)
        ]
        if missing:
            report.problems.append(f"{app_id}: live mode requires {', '.join(missing)}.")
        if config.redirect_uri is None:
            report.warnings.append(
                f"{app_id}: {prefix}REDIRECT_URI is unset; the consent flow cannot start."
            )


def _check_store(settings: AppSettings, report: EnvReport) -> None:
    store = settings.store
    if store.backend == "dynamodb" and not store.dynamodb_table_name:
        report.problems.append(
            "CREDENTIAL_STORE_DYNAMODB_TABLE_NAME is required for the dynamodb backend."
        )
    if store.backend == "sqlite":
        parent = Path(store.sqlite_path).parent
        if parent.exists() and not parent.is_dir():
            report.problems.append(
                f"CREDENTIAL_STORE_SQLITE_PATH parent {parent} is not a directory."
            )
    if not settings.security.token_encryption_secret:
        report.warnings.append(
            "TOKEN_ENCRYPTION_SECRET is unset; credentials are stored in plaintext."
        )


def load_settings(env_file: Path) -> AppSettings:
    """Build settings from ``env_file`` without touching ``os.environ``."""
    return AppSettings(
        _env_file=env_file,
        google_proxy=GoogleProxySettings(_env_file=env_file),
        oec_google=OecGoogleSettings(_env_file=env_file),
        store=CredentialStoreSettings(_env_file=env_file),
        security=SecuritySettings(_env_file=env_file),
        oauth=OAuthSettings(_env_file=env_file),
    )


def build_report(env_file: Path) -> EnvReport:
    """Validate ``env_file``; raises ``ValidationError`` for malformed values."""
    report = EnvReport(checksum=hashlib.sha256(env_file.read_bytes()).hexdigest())
    settings = load_settings(env_file)
    for app_id in APP_IDS:
        _check_app(app_id, resolve_app_config(settings, app_id), report)
    _check_store(settings, report)
    return report


def _record(report: EnvReport, baseline_file: Path) -> int:
    baseline_file.write_text(json.dumps(report.baseline(), indent=2) + "\n", encoding="utf-8")
    print(f"Recorded baseline to {baseline_file} ({report.checksum})")
    return EXIT_OK


def _verify(report: EnvReport, baseline_file: Path) -> int:
    try:
        expected = json.loads(baseline_file.read_text(encoding="utf-8"))
        expected_checksum = expected["sha256"]
        expected_modes = expected["modes"]
    except FileNotFoundError:
        print(
            f"Baseline {baseline_file} is missing. "
            "Re-run with the 'record' command to establish one.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR
    except (ValueError, KeyError, TypeError) as exc:
        print(f"Baseline {baseline_file} is unreadable: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    drift = []
    for app_id in APP_IDS:
        before = expected_modes.get(app_id)
        after = report.modes[app_id]
        if before != after:
            drift.append(f"  {app_id}: {before} -> {after}")
    if expected_checksum != report.checksum:
        drift.append(f"  checksum: {expected_checksum} -> {report.checksum}")

    if not drift:
        print("Environment matches baseline.")
        return EXIT_OK

    print(
        "Environment drifted from baseline:\n"
        + "\n".join(drift)
        + "\nInvestigate recent changes before restarting services.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate campus proxy settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("check", "Validate settings and print each app's mode."),
        ("record", "Validate settings and store the baseline."),
        ("verify", "Validate settings and compare them with the baseline."),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env).",
        )
        if name != "check":
            subparser.add_argument(
                "--baseline",
                required=True,
                type=Path,
                help="JSON file holding the checksum and app modes.",
            )

    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    if not env_file.is_file():
        print(f"Environment file {env_file} does not exist.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    try:
        report = build_report(env_file)
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    for app_id, mode in report.modes.items():
        print(f"{app_id}: {mode}")
    for warning in report.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    if report.problems:
        print(
            "Settings validation failed:\n"
            + "\n".join(f"  {problem}" for problem in report.problems),
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    if args.command == "record":
        return _record(report, args.baseline)
    if args.command == "verify":
        return _verify(report, args.baseline)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
