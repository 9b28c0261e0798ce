#!/usr/bin/env python3
"""
Basic usage examples for the Duo HMAC client library.

Set DUO_IKEY, DUO_SKEY and DUO_HOST to run the live examples against an
Admin API integration; without them only the offline signing examples run.
"""

import logging
import os
import sys

from duo_hmac_client import (
    ApiError,
    DuoClient,
    DuoClientError,
    SignatureVersion,
    canonicalize,
)


def main():
    """Run basic usage examples."""

    ikey = os.environ.get("DUO_IKEY", "DIXXXXXXXXXXXXXXXXXX")
    skey = os.environ.get("DUO_SKEY", "example-secret-key-example-secret-key")
    host = os.environ.get("DUO_HOST", "api-xxxxxxxx.duosecurity.com")
    live = all(name in os.environ for name in ("DUO_IKEY", "DUO_SKEY", "DUO_HOST"))

    print("=== Duo HMAC Client Usage Examples ===\n")

    print("1. Creating client...")
    client = DuoClient(ikey, skey, host)
    print(f"   Client created for: {host}")
    print(f"   Integration key: {ikey}")
    print(f"   Secret key: {skey[:4]}...\n")

    try:
        print("2. Canonicalizing parameters...")
        params = {"username": "root", "realname": "First Last"}
        print(f"   {canonicalize(params)}\n")

        print("3. Signing a request with each signature version...")
        for version in SignatureVersion:
            body = {"name": "example"} if version is SignatureVersion.V4 else None
            headers = client.sign_request(
                "POST", "/admin/v1/users",
                params=None if body else params, json=body,
                signature_version=version)
            print(f"   v{int(version)}: {headers['Authorization'][:40]}...")
            print(f"       X-Duo-Date: {headers['X-Duo-Date']}")
        print()

        if not live:
            print("DUO_IKEY/DUO_SKEY/DUO_HOST not set, skipping live calls.")
            return

        print("4. Fetching one page of users...")
        try:
            users, paging = client.json_paging_api_call("GET", "/admin/v1/users", {}, 0, 10)
            print(f"   ✓ Got {len(users)} users")
            print(f"   Next offset: {paging.next_offset}")
        except ApiError as e:
            print(f"   ✗ API error {e.code}: {e.api_message}")
        print()

        print("5. Raw call with rate-limit handling...")
        result = client.api_call("GET", "/admin/v1/info/summary")
        if result.ok:
            print(f"   ✓ HTTP {result.status}")
        else:
            print(f"   ✗ {result.error}")
        print()

        print("=== All Examples Completed Successfully! ===")

    except DuoClientError as e:
        print(f"Duo Client Error: {e}")
        sys.exit(1)
    finally:
        # Clean up
        client.close()


def demonstrate_configuration():
    """Demonstrate client configuration options."""

    print("\n=== Configuration Options Example ===")

    client = DuoClient(
        "DIXXXXXXXXXXXXXXXXXX",
        "example-secret-key-example-secret-key",
        "api-xxxxxxxx.duosecurity.com",
        signature_version=SignatureVersion.V2,
        timeout=60,                     # 60 second HTTP timeout
        user_agent="ExampleApp/1.0",
    )

    print("✓ Client configured with:")
    print(f"  - Signature version: v{int(client.signature_version)}")
    print(f"  - HTTP timeout: {client.config['timeout']} seconds")
    print(f"  - User agent: {client.user_agent}")
    print(f"  - Environment: {client.config['environment']}")

    client.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    main()
    demonstrate_configuration()
