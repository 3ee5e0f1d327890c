#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0

"""
Issue a token pair for an identity subject, or print a fresh RSA key pair.

Tokens are signed with JWT_PRIVATE_KEY / JWT_PUBLIC_KEY from the environment,
so the API must be configured with the same pair to accept them.

    python -m haven_api.scripts.issue_token --keys
    python -m haven_api.scripts.issue_token user-123 --email ana@example.org
"""

import argparse
import json
import os
import sys

from ..services.auth import AuthService


def print_key_pair():
    private_key, public_key = AuthService._generate_dev_key_pair()

    print("=== JWT PRIVATE KEY ===")
    print(private_key)
    print("\n=== JWT PUBLIC KEY ===")
    print(public_key)

    print("\n=== Environment Variables ===")
    newline = "\\n"
    print(f'JWT_PRIVATE_KEY="{private_key.replace(chr(10), newline)}"')
    print(f'JWT_PUBLIC_KEY="{public_key.replace(chr(10), newline)}"')


def main(argv=None):
    parser = argparse.ArgumentParser(description="Issue Haven API tokens")
    parser.add_argument("subject", nargs="?", help="Identity id placed in the sub claim")
    parser.add_argument("--email")
    parser.add_argument("--first-name")
    parser.add_argument("--last-name")
    parser.add_argument("--profile-image-url")
    parser.add_argument("--keys", action="store_true", help="Print a new RSA key pair and exit")
    args = parser.parse_args(argv)

    if args.keys:
        print_key_pair()
        return 0

    if not args.subject:
        parser.error("subject is required unless --keys is given")

    if not os.getenv("JWT_PRIVATE_KEY") or not os.getenv("JWT_PUBLIC_KEY"):
        print("JWT_PRIVATE_KEY and JWT_PUBLIC_KEY must be set", file=sys.stderr)
        return 1

    claims = {
        "email": args.email,
        "first_name": args.first_name,
        "last_name": args.last_name,
        "profile_image_url": args.profile_image_url
    }
    tokens = AuthService().generate_tokens(args.subject, claims)
    print(json.dumps(tokens, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
