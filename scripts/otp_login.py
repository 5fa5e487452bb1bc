#!/usr/bin/env python
"""Command-line OTP login against the TezDM API using the local credential store."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Callable

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tezdm_client.core.config import get_settings  # noqa: E402
from tezdm_client.core.logging import configure_logging  # noqa: E402
from tezdm_client.dependencies import get_credential_store, get_session  # noqa: E402
from tezdm_client.services import OtpStep, SessionStateMachine  # noqa: E402

MAX_CODE_ATTEMPTS = 3


async def run_login(
    session: SessionStateMachine,
    email: str,
    prompt: Callable[[str], str] = input,
) -> int:
    if not await session.generate_otp(email):
        print(f"Could not send a code: {session.error}")
        return 1
    print(f"A one-time code was sent to {email}.")

    for _ in range(MAX_CODE_ATTEMPTS):
        code = prompt("Code (leave empty to resend): ").strip()
        if not code:
            if await session.resend_otp():
                print("A new code is on its way.")
            else:
                print(f"Could not resend the code: {session.error}")
            continue
        result = await session.validate_otp(email, code)
        if result.success:
            name = session.user.name if session.user else email
            print(f"Signed in as {name}. Next: {result.redirect_to}")
            return 0
        print(f"Login failed: {session.error}")
        if session.otp_step is not OtpStep.OTP:
            return 1

    print("Too many attempts.")
    return 1


def run_status() -> int:
    validation = get_credential_store().validate_all_data()
    if validation.is_valid:
        print("Stored session is valid.")
        return 0
    print("Stored session is not usable:")
    for error in validation.errors:
        print(f"  - {error}")
    return 1


async def run_signout(session: SessionStateMachine) -> int:
    await session.signout()
    print("Signed out.")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Sign in to TezDM with a one-time passcode, inspect or end the session."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    login_parser = subparsers.add_parser("login", help="Sign in with an emailed code.")
    login_parser.add_argument("--email", required=True, help="Account email address.")
    subparsers.add_parser("status", help="Validate the stored session.")
    subparsers.add_parser("signout", help="End the stored session.")

    args = parser.parse_args(argv)
    configure_logging(get_settings().log_level)

    if args.command == "status":
        return run_status()
    # get_session() reconciles the stored session on first use.
    session = get_session()
    if args.command == "login":
        return asyncio.run(run_login(session, args.email))
    return asyncio.run(run_signout(session))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
