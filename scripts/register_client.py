import argparse
import asyncio
from loguru import logger
from auth_provider.constants import DEFAULT_CLIENT_SCOPES
from auth_provider.database import create_tables
from auth_provider.idp.service import register_client


async def main(args):
    await create_tables()
    client_id, client_secret = await register_client(
        name=args.name,
        redirect_uris=args.redirect_uri,
        allowed_origin=args.allowed_origin,
        scopes=args.scope or DEFAULT_CLIENT_SCOPES,
    )
    logger.success(f"Registered {args.name!r}")
    print(f"client_id={client_id}")
    print(f"client_secret={client_secret}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Register an OAuth client.")
    parser.add_argument("name")
    parser.add_argument("--redirect-uri", action="append", required=True)
    parser.add_argument("--allowed-origin")
    parser.add_argument("--scope", action="append")
    asyncio.run(main(parser.parse_args()))
