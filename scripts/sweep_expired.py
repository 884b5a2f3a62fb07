import asyncio
from loguru import logger
from auth_provider.sweeper import sweep_expired


async def main():
    counts = await sweep_expired()
    logger.success(f"Sweep complete: {counts}")


if __name__ == "__main__":
    asyncio.run(main())
